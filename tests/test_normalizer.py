import unittest
import os
import sys
import tempfile
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault("VERDICT_DATA_DIR", tempfile.mkdtemp(prefix="verdict_test_"))

from verdict_core.errors import MalformedPayloadError
from verdict_core.normalizer import (
    coerce_payload, configured_total, is_closing_message, normalize, normalize_raw,
)
from verdict_core.structs import AnswerPair, FlatQuestionPayload, LegacyGroupedPayload, Question

ANSWER = "We migrated the monolith gradually behind a feature flag and tracked error budgets."

QUESTIONS = [
    Question(index=1, text="Tell me about a system you designed.", criterion="Technical"),
    Question(index=2, text="How do you explain trade-offs to stakeholders?", criterion="Communication"),
    Question(index=3, text="Do you have any questions for me?", criterion="General"),
]


class TestShapes(unittest.TestCase):
    def test_flat_payload(self):
        raw = {
            "questions": [
                {"questionNumber": 1, "question": "Tell me about a system you designed.",
                 "category": "Technical", "score": 80, "full_answer": ANSWER},
                {"question_text": "How do you explain trade-offs to stakeholders?",
                 "criterion": "Communication", "score": 70, "candidate_response": ANSWER},
            ],
            "overall_score": 99,
        }
        payload = coerce_payload(raw)
        self.assertIsInstance(payload, FlatQuestionPayload)

        result = normalize(payload, QUESTIONS)
        self.assertEqual([e.question_number for e in result.evaluations], [1, 2])
        self.assertEqual(result.evaluations[0].criterion, "Technical")
        self.assertEqual(result.evaluations[0].candidate_response, ANSWER)
        self.assertTrue(all(e.source == "batch" for e in result.evaluations))
        # Upstream totals are kept for reference only, never used as the score
        self.assertEqual(result.upstream_overall_score, 99)
        self.assertNotEqual(result.score.overall_score, 99)

    def test_unparseable_upstream_total_ignored(self):
        result = normalize_raw({
            "questions": [
                {"question_text": QUESTIONS[0].text, "criterion": "Technical",
                 "score": 90, "candidate_response": ANSWER},
            ],
            "overall_score": "N/A",
        }, QUESTIONS)

        self.assertFalse(result.is_fallback)
        self.assertEqual(result.source, "batch")
        self.assertIsNone(result.upstream_overall_score)
        self.assertEqual(result.evaluations[0].score, 90)
        self.assertGreater(result.score.overall_score, 0)

        legacy = normalize_raw({"categories": {"Technical": [
            {"question": QUESTIONS[0].text, "score": 90, "answer": ANSWER},
        ]}, "overall_score": {"value": 50}}, QUESTIONS)
        self.assertFalse(legacy.is_fallback)
        self.assertIsNone(legacy.upstream_overall_score)

    def test_bare_list_is_flat(self):
        payload = coerce_payload([{"question_text": "Q?", "score": 10}])
        self.assertIsInstance(payload, FlatQuestionPayload)

    def test_legacy_numbering(self):
        raw = {
            "category_scores": {
                "Technical": [
                    {"id": 7, "question": "Tell me about a system you designed.", "score": 80, "answer": ANSWER},
                    {"id": 3, "question": "Which database would you pick?", "score": 60, "answer": ANSWER},
                ],
                "Culture": [
                    {"question": "Why this company?", "score": 50, "answer": ANSWER},
                ],
            }
        }
        payload = coerce_payload(raw)
        self.assertIsInstance(payload, LegacyGroupedPayload)

        result = normalize(payload)
        self.assertEqual([e.question_number for e in result.evaluations], [1, 2, 3])
        self.assertEqual([e.criterion for e in result.evaluations], ["Technical", "Technical", "Culture"])

    def test_unknown_shape_rejected(self):
        with self.assertRaises(MalformedPayloadError):
            coerce_payload({"summary": "great candidate"})
        with self.assertRaises(MalformedPayloadError):
            coerce_payload("not json at all")


class TestClosingMessages(unittest.TestCase):
    def test_closing_question_never_scored(self):
        payload = coerce_payload({"questions": [
            {"question_text": "Tell me about a system you designed.", "criterion": "Technical",
             "score": 80, "candidate_response": ANSWER},
            {"question_text": "Do you have any questions for me?", "criterion": "General",
             "score": 100, "candidate_response": ANSWER},
        ]})
        result = normalize(payload, QUESTIONS)

        texts = [e.question_text for e in result.evaluations]
        self.assertNotIn("Do you have any questions for me?", texts)
        self.assertEqual(result.excluded_questions, ["Do you have any questions for me?"])
        self.assertNotIn("General", [b.criterion for b in result.score.per_criterion])
        self.assertEqual(result.score.marks.total_configured_questions, 2)

    def test_configured_total(self):
        self.assertEqual(configured_total(QUESTIONS), 2)
        self.assertIsNone(configured_total([]))
        self.assertTrue(is_closing_message("Thank you for your time today."))
        self.assertFalse(is_closing_message("Tell me about a system you designed."))


class TestFallback(unittest.TestCase):
    def test_malformed_payload_uses_flagged_fallback(self):
        answers = [
            AnswerPair(question_number=1, question_text=QUESTIONS[0].text, criterion="Technical", answer=ANSWER),
        ]
        result = normalize_raw({"unexpected": True}, QUESTIONS, answers=answers)

        self.assertTrue(result.is_fallback)
        self.assertEqual(result.source, "fallback")
        self.assertEqual(len(result.evaluations), 1)
        self.assertEqual(result.evaluations[0].source, "fallback")
        self.assertEqual(result.evaluations[0].score, 0)
        self.assertEqual(result.score.overall_score, 0)

    def test_fallback_without_answers_uses_configured_questions(self):
        result = normalize_raw(None, QUESTIONS)
        self.assertTrue(result.is_fallback)
        self.assertEqual([e.question_number for e in result.evaluations], [1, 2])

    def test_invalid_record_falls_back(self):
        result = normalize_raw({"questions": [{"question_text": "Q?", "score": "not a number"}]}, QUESTIONS)
        self.assertTrue(result.is_fallback)


if __name__ == '__main__':
    unittest.main()
