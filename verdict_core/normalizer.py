"""
VERDICT Response Normalizer
===========================
Reduces the two upstream evaluation payload shapes to the canonical
AnswerEvaluation list, drops closing-message questions, and re-runs the
aggregation so upstream totals are never trusted.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from .aggregation import aggregate
from .config import CLOSING_MESSAGE_PATTERNS
from .errors import MalformedPayloadError
from .structs import (
    AnswerEvaluation, AnswerPair, EvaluationPayload, FlatQuestionPayload,
    LegacyGroupedPayload, NormalizedEvaluation, Question,
)

logger = logging.getLogger(__name__)

FALLBACK_REASONING = (
    "Automated evaluation unavailable: the scoring service returned a response "
    "that could not be parsed. This is a default low-confidence placeholder."
)

_payload_adapter = TypeAdapter(EvaluationPayload)


def is_closing_message(text: str) -> bool:
    lowered = (text or "").lower().replace("’", "'")
    return any(pattern in lowered for pattern in CLOSING_MESSAGE_PATTERNS)


def configured_total(configured_questions: Optional[Sequence[Question]]) -> Optional[int]:
    """Configured question count with closing messages left out; None when unknown."""
    if not configured_questions:
        return None
    count = sum(1 for q in configured_questions if not is_closing_message(q.text))
    return count or None


def coerce_payload(raw: Any) -> EvaluationPayload:
    """Tag a raw upstream document with its shape and validate it."""
    if isinstance(raw, list):
        raw = {"questions": raw}
    if not isinstance(raw, dict):
        raise MalformedPayloadError(f"Expected a JSON object, got {type(raw).__name__}")

    data = dict(raw)
    if "shape" not in data:
        if isinstance(data.get("questions"), list):
            data["shape"] = "flat"
        elif isinstance(data.get("categories"), dict):
            data["shape"] = "legacy"
        elif isinstance(data.get("category_scores"), dict):
            data["shape"] = "legacy"
            data["categories"] = data.pop("category_scores")
        else:
            raise MalformedPayloadError("Payload has neither 'questions' nor 'categories'")

    try:
        return _payload_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid evaluation payload: {e}") from e


def _to_evaluation(item: Dict[str, Any], number: int, source: str,
                   criterion: Optional[str] = None) -> AnswerEvaluation:
    data = {k: v for k, v in item.items() if k != "source"}
    if criterion is not None and not (data.get("criterion") or data.get("category")):
        data["criterion"] = criterion
    data["source"] = source
    try:
        evaluation = AnswerEvaluation.model_validate(data)
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid question record #{number}: {e}") from e
    if evaluation.question_number <= 0:
        evaluation = evaluation.model_copy(update={"question_number": number})
    return evaluation


def flatten_flat(payload: FlatQuestionPayload, source: str = "batch") -> List[AnswerEvaluation]:
    return [
        _to_evaluation(item, position, source)
        for position, item in enumerate(payload.questions, start=1)
    ]


def flatten_legacy(payload: LegacyGroupedPayload, source: str = "batch") -> List[AnswerEvaluation]:
    """Flatten category groups in category-then-list order, numbering sequentially."""
    evaluations = []
    number = 0
    for category, items in payload.categories.items():
        for item in items:
            number += 1
            data = {k: v for k, v in item.items() if k not in ("question_number", "questionNumber", "number", "id")}
            evaluations.append(_to_evaluation(data, number, source, criterion=category))
    return evaluations


def normalize(
    payload: EvaluationPayload,
    configured_questions: Optional[Sequence[Question]] = None,
    source: str = "batch",
) -> NormalizedEvaluation:
    if isinstance(payload, LegacyGroupedPayload):
        evaluations = flatten_legacy(payload, source)
    else:
        evaluations = flatten_flat(payload, source)

    kept, excluded = [], []
    for evaluation in evaluations:
        if is_closing_message(evaluation.question_text):
            excluded.append(evaluation.question_text)
        else:
            kept.append(evaluation)
    if excluded:
        logger.info(f"Excluded {len(excluded)} closing-message question(s) from scoring")

    score = aggregate(kept, configured_total(configured_questions))
    return NormalizedEvaluation(
        evaluations=kept,
        score=score,
        source=source,
        excluded_questions=excluded,
        upstream_overall_score=payload.overall_score,
    )


def fallback_evaluation(
    configured_questions: Optional[Sequence[Question]] = None,
    answers: Optional[Sequence[AnswerPair]] = None,
) -> NormalizedEvaluation:
    """Default low-confidence set used when the upstream payload is unusable."""
    pairs: List[AnswerPair] = list(answers or [])
    if not pairs and configured_questions:
        pairs = [
            AnswerPair(question_number=q.index, question_text=q.text, criterion=q.criterion)
            for q in configured_questions
        ]

    evaluations = [
        AnswerEvaluation(
            question_number=pair.question_number,
            question_text=pair.question_text,
            criterion=pair.criterion,
            score=0,
            completeness="incomplete",
            answered=bool(pair.answer.strip()),
            candidate_response=pair.answer,
            reasoning=FALLBACK_REASONING,
            source="fallback",
        )
        for pair in pairs
        if not is_closing_message(pair.question_text)
    ]
    score = aggregate(evaluations, configured_total(configured_questions))
    return NormalizedEvaluation(
        evaluations=evaluations,
        score=score,
        source="fallback",
        is_fallback=True,
    )


def normalize_raw(
    raw: Any,
    configured_questions: Optional[Sequence[Question]] = None,
    source: str = "batch",
    answers: Optional[Sequence[AnswerPair]] = None,
) -> NormalizedEvaluation:
    """Normalize an untrusted upstream document, falling back on parse failure."""
    try:
        payload = coerce_payload(raw)
        return normalize(payload, configured_questions, source)
    except MalformedPayloadError as e:
        logger.warning(f"Upstream evaluation payload unusable, using fallback set: {e}")
        return fallback_evaluation(configured_questions, answers)
