"""
VERDICT Question Tracking
=========================
Works out which configured question the agent is asking from its spoken text.

Matching is a keyword-overlap heuristic: a question's five longest words
(longer than 4 characters) are looked up verbatim in the agent utterance.
Two hits, or the question's first 30 characters appearing as a substring,
count as a match. Thresholds live in config and are tunable.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from .config import (
    ADHOC_CRITERION, DISFLUENCY_MARKERS, ELABORATION_PROMPTS, KEYWORD_MATCH_THRESHOLD,
    KEYWORD_MIN_LENGTH, KEYWORD_POOL_SIZE, MIN_UTTERANCE_LENGTH,
    QUESTION_PREFIX_LENGTH, SETUP_PHRASES,
)
from .normalizer import is_closing_message
from .structs import AnswerPair, Question, TranscriptTurn

_WORD = re.compile(r"[A-Za-z0-9'’-]+")
_QUESTION_SENTENCE = re.compile(r"[^.!?]*\?")


@dataclass(frozen=True)
class TrackedQuestion:
    text: str
    criterion: str
    number: Optional[int] = None   # configured ordinal, None for ad-hoc questions

    @property
    def configured(self) -> bool:
        return self.number is not None


def question_keywords(text: str) -> List[str]:
    words = [w.lower() for w in _WORD.findall(text) if len(w) >= KEYWORD_MIN_LENGTH]
    unique = list(dict.fromkeys(words))
    return sorted(unique, key=len, reverse=True)[:KEYWORD_POOL_SIZE]


def keyword_overlap(question_text: str, utterance: str) -> int:
    lowered = utterance.lower()
    return sum(1 for kw in question_keywords(question_text) if kw in lowered)


def match_configured(utterance: str, questions: Sequence[Question]) -> Optional[Question]:
    lowered = utterance.lower()
    best, best_rank = None, None
    for q in questions:
        overlap = keyword_overlap(q.text, utterance)
        prefix = q.text[:QUESTION_PREFIX_LENGTH].lower().strip()
        prefix_hit = bool(prefix) and prefix in lowered
        if overlap < KEYWORD_MATCH_THRESHOLD and not prefix_hit:
            continue
        rank = (overlap, prefix_hit)
        if best_rank is None or rank > best_rank:
            best, best_rank = q, rank
    return best


def extract_last_question(utterance: str) -> Optional[str]:
    sentences = [s.strip() for s in _QUESTION_SENTENCE.findall(utterance) if s.strip(" ?")]
    return sentences[-1] if sentences else None


_ELABORATION_QUESTIONS = {
    (extract_last_question(prompt) or prompt).strip().lower() for prompt in ELABORATION_PROMPTS
}


def is_elaboration_prompt(utterance: str) -> bool:
    """The agent repeating one of the scripted elaboration prompts, not a new question."""
    last = extract_last_question(utterance)
    return last is not None and last.strip().lower() in _ELABORATION_QUESTIONS


def is_setup_confirmation(question_text: str) -> bool:
    lowered = question_text.lower()
    return any(phrase in lowered for phrase in SETUP_PHRASES)


def is_trivial(utterance: str) -> bool:
    text = utterance.strip()
    if text.lower().strip(" .,!?") in DISFLUENCY_MARKERS or text.lower() in DISFLUENCY_MARKERS:
        return True
    return len(text) <= MIN_UTTERANCE_LENGTH


class QuestionTracker:
    """Holds the 'current question' pointer for one session."""

    def __init__(self, questions: Sequence[Question]):
        self.questions = list(questions)
        self.current: Optional[TrackedQuestion] = None
        self.asked: Set[int] = set()
        self._held = False

    @property
    def all_asked(self) -> bool:
        return bool(self.questions) and len(self.asked) >= len(self.questions)

    def hold(self):
        """Keep the current question through the next agent utterance (a steered reply)."""
        self._held = True

    def resolve(self, utterance: str) -> Optional[TrackedQuestion]:
        """Work out which question an agent utterance asks, without moving the pointer."""
        if "?" not in utterance or is_elaboration_prompt(utterance):
            return None
        matched = match_configured(utterance, self.questions)
        if matched is not None:
            return TrackedQuestion(text=matched.text, criterion=matched.criterion, number=matched.index)
        adhoc = extract_last_question(utterance)
        if adhoc:
            return TrackedQuestion(text=adhoc, criterion=ADHOC_CRITERION)
        return None

    def observe_agent(self, utterance: str) -> Optional[TrackedQuestion]:
        if is_elaboration_prompt(utterance):
            return None
        if self._held:
            self._held = False
            return None
        tracked = self.resolve(utterance)
        if tracked is None:
            return None
        if tracked.configured:
            self.asked.add(tracked.number)
        self.current = tracked
        return tracked


def extract_answer_pairs(turns: Sequence[TranscriptTurn], questions: Sequence[Question]) -> List[AnswerPair]:
    """
    Rebuild question/answer pairs from a complete transcript using the same
    rules as the live path. Setup confirmations and disfluencies are dropped.
    """
    tracker = QuestionTracker(questions)
    pairs: Dict[str, AnswerPair] = {}
    next_adhoc = len(questions) + 1

    for turn in turns:
        if turn.role == "agent":
            tracker.observe_agent(turn.text)
            continue

        current = tracker.current
        if current is None or is_setup_confirmation(current.text) or is_closing_message(current.text):
            continue
        if is_trivial(turn.text):
            continue

        pair = pairs.get(current.text)
        if pair is None:
            number = current.number
            if number is None:
                number, next_adhoc = next_adhoc, next_adhoc + 1
            pair = AnswerPair(question_number=number, question_text=current.text, criterion=current.criterion)
            pairs[current.text] = pair
        text = turn.text.strip()
        pair.answer = f"{pair.answer} {text}" if pair.answer else text

    return list(pairs.values())
