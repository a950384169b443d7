"""
VERDICT Scoring Aggregation
===========================
Pure transform from per-question evaluations to one canonical score.

The whole question set is re-aggregated on every call; nothing here keeps
state between runs, so the same input always yields the same AggregatedScore.
Weights are held in basis points so they always sum to exactly 100%.
"""

import math
from typing import Dict, List, Optional, Sequence

from .config import (
    COMMUNICATION_CRITERIA, COMMUNICATION_LABEL, COMMUNICATION_WEIGHT,
    DEFAULT_TOTAL_QUESTIONS, DISENGAGEMENT_PHRASES, HIRE_THRESHOLD,
    MAYBE_THRESHOLD, MIN_ANSWER_LENGTH, OTHER_CRITERIA_WEIGHT, PASS_THRESHOLD,
    TECHNICAL_CRITERIA, TECHNICAL_LABEL, TECHNICAL_WEIGHT,
)
from .structs import (
    AggregatedScore, AnswerEvaluation, CriterionBreakdown, MarksSummary,
    QuestionScore,
)

TECHNICAL_KEY = "technical"
COMMUNICATION_KEY = "communication"
_FULL_WEIGHT_BP = 10000


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_unanswered(evaluation: AnswerEvaluation) -> bool:
    """True when the candidate effectively gave no answer."""
    if not evaluation.answered:
        return True
    response = evaluation.candidate_response.strip()
    if len(response) < MIN_ANSWER_LENGTH:
        return True
    lowered = response.lower().replace("’", "'")
    return any(phrase in lowered for phrase in DISENGAGEMENT_PHRASES)


def criterion_key(label: str) -> str:
    lowered = label.strip().lower()
    if lowered in TECHNICAL_CRITERIA:
        return TECHNICAL_KEY
    if lowered in COMMUNICATION_CRITERIA:
        return COMMUNICATION_KEY
    return lowered


def recommendation_for(overall_score: int) -> str:
    if overall_score >= HIRE_THRESHOLD:
        return "Hire"
    if overall_score >= MAYBE_THRESHOLD:
        return "Maybe"
    return "No Hire"


def pass_fail(overall_score: int) -> str:
    return "Pass" if overall_score >= PASS_THRESHOLD else "Fail"


def _weights_bp(other_keys: List[str]) -> Dict[str, int]:
    weights = {}
    if other_keys:
        weights[TECHNICAL_KEY] = TECHNICAL_WEIGHT * 100
        weights[COMMUNICATION_KEY] = COMMUNICATION_WEIGHT * 100
        share, remainder = divmod(OTHER_CRITERIA_WEIGHT * 100, len(other_keys))
        for i, key in enumerate(other_keys):
            weights[key] = share + (1 if i < remainder else 0)
    else:
        # Nothing to share the remainder with: scale the fixed weights up to 100%.
        fixed_total = TECHNICAL_WEIGHT + COMMUNICATION_WEIGHT
        technical_bp = (_FULL_WEIGHT_BP * TECHNICAL_WEIGHT + fixed_total // 2) // fixed_total
        weights[TECHNICAL_KEY] = technical_bp
        weights[COMMUNICATION_KEY] = _FULL_WEIGHT_BP - technical_bp
    return weights


def _summary(count: int, answered: int, average: float) -> str:
    if count == 0:
        return "No questions asked in this category; scored as 0."
    noun = "question" if count == 1 else "questions"
    return f"{answered} of {count} {noun} answered, average {average:.1f}/100."


def aggregate(
    questions: Sequence[AnswerEvaluation],
    total_configured_questions: Optional[int] = None,
) -> AggregatedScore:
    """
    Compute the canonical weighted score for a set of evaluations.

    Unanswered questions score 0 whatever their upstream score. Configured
    questions that were never asked only reduce the marks summary; the overall
    score is purely the criterion-weighted average.
    """
    total = total_configured_questions or DEFAULT_TOTAL_QUESTIONS
    if total <= 0:
        total = DEFAULT_TOTAL_QUESTIONS
    marks_per_question = 100 // total

    # 1. Per-question effective scores and marks
    question_scores: List[QuestionScore] = []
    groups: Dict[str, Dict] = {
        TECHNICAL_KEY: {"label": None, "scores": [], "answered": 0},
        COMMUNICATION_KEY: {"label": None, "scores": [], "answered": 0},
    }
    for evaluation in questions:
        unanswered = is_unanswered(evaluation)
        score = 0.0 if unanswered else evaluation.score
        question_scores.append(QuestionScore(
            question_number=evaluation.question_number,
            question_text=evaluation.question_text,
            criterion=evaluation.criterion,
            raw_score=evaluation.score,
            effective_score=score,
            unanswered=unanswered,
            marks_obtained=round_half_up((score / 100) * marks_per_question),
        ))

        key = criterion_key(evaluation.criterion)
        group = groups.setdefault(key, {"label": None, "scores": [], "answered": 0})
        if group["label"] is None:
            group["label"] = evaluation.criterion
        group["scores"].append(score)
        if not unanswered:
            group["answered"] += 1

    groups[TECHNICAL_KEY]["label"] = groups[TECHNICAL_KEY]["label"] or TECHNICAL_LABEL
    groups[COMMUNICATION_KEY]["label"] = groups[COMMUNICATION_KEY]["label"] or COMMUNICATION_LABEL

    # 2. Weighting policy
    other_keys = [k for k in groups if k not in (TECHNICAL_KEY, COMMUNICATION_KEY)]
    weights = _weights_bp(other_keys)

    # 3. Per-criterion breakdown
    breakdown: List[CriterionBreakdown] = []
    total_contribution = 0.0
    for key, group in groups.items():
        scores = group["scores"]
        average = sum(scores) / len(scores) if scores else 0.0
        weight_bp = weights[key]
        contribution = average * weight_bp / _FULL_WEIGHT_BP
        total_contribution += contribution
        breakdown.append(CriterionBreakdown(
            criterion=group["label"],
            question_count=len(scores),
            answered_count=group["answered"],
            average_score=round(average, 2),
            weight_percentage=weight_bp / 100,
            weighted_contribution=round(contribution, 2),
            summary=_summary(len(scores), group["answered"], average),
        ))

    overall = max(0, min(100, round_half_up(total_contribution)))

    formula = " + ".join(
        f"{b.criterion} ({b.average_score:.1f} × {b.weight_percentage:g}%)" for b in breakdown
    ) + f" = {overall}"

    # 4. Marks-based summary
    answered_count = sum(1 for q in question_scores if not q.unanswered)
    marks = MarksSummary(
        total_configured_questions=total,
        marks_per_question=marks_per_question,
        total_possible_marks=marks_per_question * total,
        total_marks_obtained=sum(q.marks_obtained for q in question_scores),
        questions_asked=len(question_scores),
        questions_answered=answered_count,
        questions_unanswered=len(question_scores) - answered_count,
        questions_not_asked=max(0, total - len(question_scores)),
    )

    return AggregatedScore(
        overall_score=overall,
        per_criterion=breakdown,
        categories_used=[b.criterion for b in breakdown if b.question_count > 0],
        categories_not_used=[b.criterion for b in breakdown if b.question_count == 0],
        formula=formula,
        recommendation=recommendation_for(overall),
        marks=marks,
        question_scores=question_scores,
    )
