"""
VERDICT Elaboration Controller
==============================
Tracks how much the candidate has said to the current question and emits at
most two scripted "please elaborate" prompts before letting the interview
move on.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

from .config import (
    ELABORATION_PROMPTS, ELABORATION_WORD_FLOOR, MAX_ELABORATION_PROMPTS,
    MOVE_ON_PATTERNS,
)
from .structs import ElaborationState

logger = logging.getLogger(__name__)

_MOVE_ON = [re.compile(p, re.IGNORECASE) for p in MOVE_ON_PATTERNS]


def word_count(text: str) -> int:
    return len(text.split())


def wants_to_move_on(utterance: str) -> bool:
    return any(p.search(utterance) for p in _MOVE_ON)


@dataclass
class ElaborationDecision:
    combined_text: str
    word_count: int
    prompt: Optional[str] = None
    exhausted: bool = False   # no further prompts will be emitted for this question


class ElaborationController:
    """One per live session. State is replaced, never merged, on a new question."""

    def __init__(self):
        self.state: Optional[ElaborationState] = None

    def reset(self, question_text: str):
        self.state = ElaborationState(question_text=question_text)

    def observe(self, question_text: str, utterance: str) -> ElaborationDecision:
        if self.state is None or self.state.question_text != question_text:
            self.reset(question_text)
        state = self.state

        text = utterance.strip()
        if text:
            state.combined_text = f"{state.combined_text} {text}" if state.combined_text else text

        count = word_count(state.combined_text)
        decision = ElaborationDecision(combined_text=state.combined_text, word_count=count)

        if count >= ELABORATION_WORD_FLOOR:
            return decision

        if wants_to_move_on(text):
            # Candidate asked to continue: stop nudging on this question.
            state.prompt_count = MAX_ELABORATION_PROMPTS
            decision.exhausted = True
            return decision

        if state.prompt_count < MAX_ELABORATION_PROMPTS:
            decision.prompt = ELABORATION_PROMPTS[state.prompt_count]
            state.prompt_count += 1
            logger.info(f"Elaboration prompt {state.prompt_count}/{MAX_ELABORATION_PROMPTS} ({count} words so far)")

        decision.exhausted = state.prompt_count >= MAX_ELABORATION_PROMPTS
        return decision
