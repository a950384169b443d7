"""
VERDICT Transcript Store
========================
Append-only, ordered log of conversation turns. Every turn is written to a
JSON-lines file as soon as it is recorded so a crash mid-interview keeps the
partial history.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import aiofiles
from pydantic import ValidationError

from .config import TRANSCRIPTS_DIR
from .structs import TranscriptTurn

logger = logging.getLogger(__name__)

INAUDIBLE = "[inaudible]"


class TranscriptStore:

    def __init__(self, session_id: str, directory: Optional[Path] = None):
        self.session_id = session_id
        self.path = (directory or TRANSCRIPTS_DIR) / f"{session_id}.jsonl"
        self.turns: List[TranscriptTurn] = []
        self._agent_buffer: List[str] = []
        self._write_lock = asyncio.Lock()

    @classmethod
    def load(cls, session_id: str, directory: Optional[Path] = None) -> "TranscriptStore":
        """Rebuild a store from its file; unreadable lines are skipped."""
        store = cls(session_id, directory)
        if store.path.exists():
            for line in store.path.read_text(encoding="utf-8").splitlines():
                if not line.strip():
                    continue
                try:
                    store.turns.append(TranscriptTurn.model_validate_json(line))
                except ValidationError as e:
                    logger.warning(f"Session {session_id}: skipping corrupt transcript line: {e}")
        return store

    async def append(self, role: str, text: str) -> TranscriptTurn:
        turn = TranscriptTurn(role=role, text=text)
        self.turns.append(turn)
        async with self._write_lock:
            async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
                await f.write(turn.model_dump_json() + "\n")
        return turn

    # ── Agent speech: buffered, flushed only on "utterance complete" ──

    def buffer_agent_delta(self, delta: str):
        self._agent_buffer.append(delta)

    @property
    def pending_agent_text(self) -> str:
        return "".join(self._agent_buffer)

    async def flush_agent(self) -> Optional[TranscriptTurn]:
        text = self.pending_agent_text.strip()
        self._agent_buffer.clear()
        if not text:
            return None
        return await self.append("agent", text)

    # ── Candidate speech: flushed immediately per completed utterance ──

    async def add_candidate(self, text: Optional[str]) -> Optional[TranscriptTurn]:
        text = (text or "").strip() or INAUDIBLE
        last = self.turns[-1] if self.turns else None
        if last is not None and last.role == "candidate" and last.text == text:
            return None
        return await self.append("candidate", text)

    def render(self) -> str:
        return "\n\n".join(
            f"{'Interviewer' if t.role == 'agent' else 'Candidate'}: {t.text}" for t in self.turns
        )

    def __len__(self):
        return len(self.turns)
