import unittest
import asyncio
import os
import sys
import tempfile
from pathlib import Path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault("VERDICT_DATA_DIR", tempfile.mkdtemp(prefix="verdict_test_"))

from verdict_core.transcript import INAUDIBLE, TranscriptStore


class TestTranscriptStore(unittest.TestCase):
    def setUp(self):
        self.directory = Path(tempfile.mkdtemp(prefix="verdict_transcripts_"))

    def test_agent_deltas_buffered_until_flush(self):
        store = TranscriptStore("s1", self.directory)

        async def run_test():
            store.buffer_agent_delta("Tell me ")
            store.buffer_agent_delta("about yourself?")
            self.assertEqual(len(store), 0)
            self.assertEqual(store.pending_agent_text, "Tell me about yourself?")

            turn = await store.flush_agent()
            self.assertEqual(turn.role, "agent")
            self.assertEqual(turn.text, "Tell me about yourself?")
            self.assertEqual(store.pending_agent_text, "")
            self.assertIsNone(await store.flush_agent())

        asyncio.run(run_test())
        self.assertEqual(len(store), 1)

    def test_candidate_turns(self):
        store = TranscriptStore("s2", self.directory)

        async def run_test():
            empty = await store.add_candidate("   ")
            self.assertEqual(empty.text, INAUDIBLE)

            first = await store.add_candidate("I work on compilers.")
            duplicate = await store.add_candidate("I work on compilers.")
            self.assertIsNotNone(first)
            self.assertIsNone(duplicate)

        asyncio.run(run_test())
        self.assertEqual([t.text for t in store.turns], [INAUDIBLE, "I work on compilers."])

    def test_persisted_and_reloaded(self):
        store = TranscriptStore("s3", self.directory)

        async def run_test():
            store.buffer_agent_delta("Why this role?")
            await store.flush_agent()
            await store.add_candidate("Because I like hard problems.")

        asyncio.run(run_test())

        lines = store.path.read_text(encoding="utf-8").splitlines()
        self.assertEqual(len(lines), 2)

        reloaded = TranscriptStore.load("s3", self.directory)
        self.assertEqual([t.role for t in reloaded.turns], ["agent", "candidate"])
        self.assertEqual(
            reloaded.render(),
            "Interviewer: Why this role?\n\nCandidate: Because I like hard problems."
        )

    def test_corrupt_line_skipped(self):
        path = self.directory / "s4.jsonl"
        path.write_text('{"role": "agent", "text": "Hello?"}\nnot-json\n', encoding="utf-8")
        reloaded = TranscriptStore.load("s4", self.directory)
        self.assertEqual(len(reloaded), 1)


if __name__ == '__main__':
    unittest.main()
