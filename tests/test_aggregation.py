import unittest
import os
import sys
import tempfile
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault("VERDICT_DATA_DIR", tempfile.mkdtemp(prefix="verdict_test_"))

from verdict_core.aggregation import aggregate, is_unanswered, pass_fail, recommendation_for
from verdict_core.structs import AnswerEvaluation

LONG_ANSWER = "I designed the service around an event queue and measured the latency carefully."


def evaluation(number, criterion, score, response=LONG_ANSWER, answered=True, text=None):
    return AnswerEvaluation(
        question_number=number,
        question_text=text or f"Question {number}?",
        criterion=criterion,
        score=score,
        answered=answered,
        candidate_response=response,
    )


class TestScenarios(unittest.TestCase):
    def test_weighted_hire(self):
        result = aggregate([
            evaluation(1, "Technical", 80),
            evaluation(2, "Technical", 60),
            evaluation(3, "Communication", 90),
            evaluation(4, "Culture", 50),
        ], total_configured_questions=4)

        self.assertEqual(result.overall_score, 68)
        self.assertEqual(result.recommendation, "Hire")
        by_name = {b.criterion: b for b in result.per_criterion}
        self.assertEqual(by_name["Technical"].average_score, 70)
        self.assertEqual(by_name["Technical"].weighted_contribution, 35.0)
        self.assertEqual(by_name["Communication"].weighted_contribution, 18.0)
        self.assertEqual(by_name["Culture"].weight_percentage, 30)
        self.assertEqual(by_name["Culture"].weighted_contribution, 15.0)

    def test_skipped_answer_drops_to_maybe(self):
        result = aggregate([
            evaluation(1, "Technical", 80),
            evaluation(2, "Technical", 60),
            evaluation(3, "Communication", 90),
            evaluation(4, "Culture", 50, response="skip"),
        ], total_configured_questions=4)

        self.assertEqual(result.overall_score, 53)
        self.assertEqual(result.recommendation, "Maybe")
        culture = [b for b in result.per_criterion if b.criterion == "Culture"][0]
        self.assertEqual(culture.average_score, 0)
        self.assertEqual(culture.answered_count, 0)

    def test_breakdown_order_fixed_criteria_first(self):
        result = aggregate([
            evaluation(1, "Leadership", 70),
            evaluation(2, "Technical Skills", 70),
        ], total_configured_questions=2)
        self.assertEqual([b.criterion for b in result.per_criterion],
                         ["Technical Skills", "Communication", "Leadership"])
        self.assertIn("Communication", result.categories_not_used)
        self.assertIn("=", result.formula)


class TestUnanswered(unittest.TestCase):
    def test_not_sure_scores_zero(self):
        result = aggregate([evaluation(1, "Technical", 95, response="not sure")], 1)
        self.assertTrue(result.question_scores[0].unanswered)
        self.assertEqual(result.question_scores[0].effective_score, 0)
        self.assertEqual(result.question_scores[0].raw_score, 95)

    def test_detection_rules(self):
        self.assertTrue(is_unanswered(evaluation(1, "Technical", 80, answered=False)))
        self.assertTrue(is_unanswered(evaluation(1, "Technical", 80, response="   yes  ")))
        self.assertTrue(is_unanswered(evaluation(1, "Technical", 80, response="Honestly, I Don’t Know that one")))
        self.assertTrue(is_unanswered(evaluation(1, "Technical", 80, response="No, sorry, please ask the next one")))
        self.assertFalse(is_unanswered(evaluation(1, "Technical", 80)))


class TestMarks(unittest.TestCase):
    def test_zero_for_unasked(self):
        present = [evaluation(i, "Technical", 100) for i in range(1, 7)]
        result = aggregate(present, total_configured_questions=10)

        self.assertEqual(result.marks.marks_per_question, 10)
        self.assertEqual(result.marks.questions_asked, 6)
        self.assertEqual(result.marks.questions_not_asked, 4)
        self.assertEqual(result.marks.total_marks_obtained, 60)
        self.assertEqual(result.marks.total_possible_marks, 100)
        # No other criteria: Technical 100 × 71.43% + Communication 0 × 28.57%
        self.assertEqual(result.overall_score, 71)

    def test_default_total(self):
        result = aggregate([evaluation(1, "Technical", 50)])
        self.assertEqual(result.marks.total_configured_questions, 10)
        self.assertEqual(result.marks.marks_per_question, 10)
        self.assertEqual(result.question_scores[0].marks_obtained, 5)


class TestWeights(unittest.TestCase):
    def assertWeightsSumTo100(self, result):
        total_bp = sum(round(b.weight_percentage * 100) for b in result.per_criterion)
        self.assertEqual(total_bp, 10000)

    def test_only_fixed_criteria(self):
        result = aggregate([evaluation(1, "Technical", 60), evaluation(2, "Communication", 60)], 2)
        self.assertWeightsSumTo100(result)
        self.assertEqual(result.overall_score, 60)

    def test_no_questions_at_all(self):
        result = aggregate([], 5)
        self.assertWeightsSumTo100(result)
        self.assertEqual(result.overall_score, 0)
        self.assertEqual(result.recommendation, "No Hire")
        self.assertEqual(len(result.per_criterion), 2)

    def test_uneven_split(self):
        others = ["Culture", "Leadership", "Teamwork", "Experience", "Behavioral", "Adaptability", "Problem Solving"]
        result = aggregate([evaluation(i, c, 70) for i, c in enumerate(others, start=1)], 7)
        self.assertWeightsSumTo100(result)
        self.assertEqual(len(result.per_criterion), 9)

    def test_missing_criterion_is_general(self):
        result = aggregate([AnswerEvaluation(question_number=1, question_text="Why us?", score=80,
                                             candidate_response=LONG_ANSWER)], 1)
        self.assertIn("General", [b.criterion for b in result.per_criterion])
        self.assertWeightsSumTo100(result)


class TestDeterminism(unittest.TestCase):
    def test_identical_output(self):
        data = [
            evaluation(1, "Technical", 33.3),
            evaluation(2, "Communication", 66.6),
            evaluation(3, "Culture", 12.5, response="skip this please"),
            evaluation(4, "Leadership", 91),
        ]
        first = aggregate(data, 4).model_dump_json()
        second = aggregate(list(data), 4).model_dump_json()
        self.assertEqual(first, second)


class TestLabels(unittest.TestCase):
    def test_thresholds(self):
        self.assertEqual(recommendation_for(65), "Hire")
        self.assertEqual(recommendation_for(64), "Maybe")
        self.assertEqual(recommendation_for(40), "Maybe")
        self.assertEqual(recommendation_for(39), "No Hire")
        self.assertEqual(pass_fail(65), "Pass")
        self.assertEqual(pass_fail(64), "Fail")


if __name__ == '__main__':
    unittest.main()
