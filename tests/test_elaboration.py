import unittest
import os
import sys
import tempfile
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault("VERDICT_DATA_DIR", tempfile.mkdtemp(prefix="verdict_test_"))

from verdict_core.config import ELABORATION_PROMPTS
from verdict_core.elaboration import ElaborationController, wants_to_move_on, word_count

QUESTION = "Tell me about a project you are proud of."


class TestElaboration(unittest.TestCase):
    def test_prompt_cap(self):
        controller = ElaborationController()
        prompts = []
        for utterance in ["I built a scheduler.", "It used Redis.", "It was fast.",
                          "The team liked it.", "We shipped it in May."]:
            decision = controller.observe(QUESTION, utterance)
            if decision.prompt:
                prompts.append(decision.prompt)

        self.assertEqual(prompts, list(ELABORATION_PROMPTS))
        self.assertTrue(decision.exhausted)
        self.assertEqual(decision.combined_text,
                         "I built a scheduler. It used Redis. It was fast. The team liked it. We shipped it in May.")

    def test_long_answer_needs_no_prompt(self):
        controller = ElaborationController()
        decision = controller.observe(QUESTION, " ".join(["word"] * 80))
        self.assertIsNone(decision.prompt)
        self.assertEqual(decision.word_count, 80)

    def test_cumulative_words_stop_prompting(self):
        controller = ElaborationController()
        first = controller.observe(QUESTION, " ".join(["alpha"] * 50))
        self.assertIsNotNone(first.prompt)
        second = controller.observe(QUESTION, " ".join(["beta"] * 30))
        self.assertIsNone(second.prompt)
        self.assertEqual(second.word_count, 80)

    def test_new_question_resets_state(self):
        controller = ElaborationController()
        controller.observe(QUESTION, "Short.")
        controller.observe(QUESTION, "Still short.")
        decision = controller.observe("How do you handle conflict?", "I talk it out.")

        self.assertEqual(decision.prompt, ELABORATION_PROMPTS[0])
        self.assertEqual(decision.combined_text, "I talk it out.")
        self.assertEqual(controller.state.question_text, "How do you handle conflict?")

    def test_move_on_request(self):
        controller = ElaborationController()
        controller.observe(QUESTION, "I built a scheduler.")
        decision = controller.observe(QUESTION, "That's all, let's move on.")
        self.assertIsNone(decision.prompt)
        self.assertTrue(decision.exhausted)
        self.assertIsNone(controller.observe(QUESTION, "Nothing else.").prompt)

    def test_helpers(self):
        self.assertEqual(word_count("  one two   three "), 3)
        self.assertTrue(wants_to_move_on("Can we go to the next question?"))
        self.assertTrue(wants_to_move_on("I'm done"))
        self.assertFalse(wants_to_move_on("I moved the database to Postgres."))


if __name__ == '__main__':
    unittest.main()
