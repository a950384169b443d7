"""
VERDICT Finalizer
=================
Turns a finished interview into its one canonical evaluation:
- Rebuilds question/answer pairs from the complete transcript
- Runs the batch evaluation (the durable retry path for live scoring)
- Normalizes and re-aggregates from scratch
- Persists the result and marks the session completed exactly once
"""

import math
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .aggregation import pass_fail
from .config import MIN_QUESTION_COVERAGE, REPORTS_DIR
from .credentials import TenantCredentialStore, credential_store
from .engine import ScoringEngine, engine as default_engine
from .errors import (
    ConfigurationError, IncompleteInterviewError, MalformedPayloadError,
    ScoringCredentialError, ScoringServiceError, SessionAlreadyCompletedError,
)
from .normalizer import configured_total, fallback_evaluation, normalize, normalize_raw
from .structs import (
    AnswerEvaluation, AnswerPair, FinalEvaluation, FlatQuestionPayload, InterviewSession,
    NormalizedEvaluation,
)
from .tracking import extract_answer_pairs
from .transcript import TranscriptStore

logger = logging.getLogger(__name__)


def required_coverage(configured: int) -> int:
    """Distinct questions a transcript must contain to count as a full interview."""
    return max(1, math.ceil(configured * MIN_QUESTION_COVERAGE))


def build_rationale(result: NormalizedEvaluation) -> str:
    score = result.score
    lines = [
        f"Overall score {score.overall_score}/100 ({score.recommendation}).",
        f"Weighting: {score.formula}",
        f"Marks: {score.marks.total_marks_obtained}/{score.marks.total_possible_marks} "
        f"({score.marks.questions_answered} answered, {score.marks.questions_unanswered} unanswered, "
        f"{score.marks.questions_not_asked} not asked).",
    ]
    if result.is_fallback:
        lines.append("NOTE: automated scoring was unavailable; these are fallback placeholder scores.")
    for q, evaluation in zip(score.question_scores, result.evaluations):
        reasoning = evaluation.reasoning.strip() or "No reasoning provided."
        flag = " [unanswered]" if q.unanswered else ""
        lines.append(f"Q{q.question_number} ({q.criterion}) {q.effective_score:.0f}/100{flag}: {reasoning}")
    return "\n".join(lines)


def build_rubric_notes(result: NormalizedEvaluation) -> str:
    strengths = [s for e in result.evaluations for s in e.strengths]
    gaps = [g for e in result.evaluations for g in e.gaps]
    sections = [
        "## Summary",
        f"{result.score.recommendation} with an overall score of {result.score.overall_score}/100.",
        "",
        "## Strengths",
        *([f"- {s}" for s in strengths] or ["- None recorded"]),
        "",
        "## Areas for Improvement",
        *([f"- {g}" for g in gaps] or ["- None recorded"]),
        "",
        "## Detailed Scores",
        *[
            f"- **{b.criterion}**: {b.average_score:.1f}/100 (weight {b.weight_percentage:g}%) - {b.summary}"
            for b in result.score.per_criterion
        ],
    ]
    return "\n".join(sections)


class Finalizer:

    def __init__(self, scoring_engine: Optional[ScoringEngine] = None,
                 credentials: Optional[TenantCredentialStore] = None,
                 reports_dir: Optional[Path] = None,
                 save_session: Optional[Callable[[InterviewSession], None]] = None):
        self.engine = scoring_engine or default_engine
        self.credentials = credentials or credential_store
        self.reports_dir = reports_dir or REPORTS_DIR
        self.save_session = save_session
        self._in_progress = set()

    async def finalize(self, session: InterviewSession, transcript: TranscriptStore,
                       live_evaluations: Sequence[AnswerEvaluation] = ()) -> FinalEvaluation:
        if session.completed:
            raise SessionAlreadyCompletedError(f"Session {session.id} has already been finalized")
        if session.id in self._in_progress:
            raise SessionAlreadyCompletedError(f"Session {session.id} is already being finalized")

        self._in_progress.add(session.id)
        try:
            return await self._finalize(session, transcript, live_evaluations)
        finally:
            self._in_progress.discard(session.id)

    async def _finalize(self, session: InterviewSession, transcript: TranscriptStore,
                        live_evaluations: Sequence[AnswerEvaluation]) -> FinalEvaluation:
        logger.info(f"Session {session.id}: Finalizing ({len(transcript)} turns, {len(live_evaluations)} live evaluations)")

        credential = await self.credentials.resolve(session.tenant_id)
        live = [e for e in live_evaluations if e.source == "live"]

        if not credential and not live:
            raise ConfigurationError(
                "No scoring credential is configured for this tenant and there are no "
                "real-time evaluations to score from."
                if len(transcript) else
                "No scoring credential, no real-time evaluations and no transcript for this session."
            )

        # Coverage is judged on the transcript whichever path produces the scores
        pairs = extract_answer_pairs(transcript.turns, session.questions)
        configured = configured_total(session.questions) or len(pairs)
        needed = required_coverage(configured)
        if len(pairs) < needed:
            raise IncompleteInterviewError(
                f"Only {len(pairs)} question(s) detected in the transcript; at least {needed} "
                f"of {configured} configured are required.",
                detected=len(pairs), configured=configured,
            )

        if not credential:
            logger.warning(f"Session {session.id}: no credential, finalizing from live evaluations only")
            result = self._from_live(session, live)
        else:
            result = await self._from_batch(session, transcript, pairs, live, credential)

        final = FinalEvaluation(
            session_id=session.id,
            source=result.source,
            is_fallback=result.is_fallback,
            status=pass_fail(result.score.overall_score),
            score=result.score,
            evaluations=result.evaluations,
            rationale=build_rationale(result),
            rubric_notes=build_rubric_notes(result),
            upstream_overall_score=result.upstream_overall_score,
        )

        report_path = self.reports_dir / f"{session.id}.json"
        report_path.write_text(final.model_dump_json(indent=2), encoding="utf-8")

        session.final_evaluation = final
        session.completed = True
        session.completed_at = datetime.now()
        if self.save_session:
            self.save_session(session)

        logger.info(f"Session {session.id}: Final score {final.score.overall_score} "
                    f"({final.score.recommendation}, {final.status}, source={final.source})")
        return final

    def _from_live(self, session: InterviewSession, live: List[AnswerEvaluation]) -> NormalizedEvaluation:
        payload = FlatQuestionPayload(questions=[e.model_dump() for e in live])
        return normalize(payload, session.questions, source="live")

    async def _from_batch(self, session: InterviewSession, transcript: TranscriptStore,
                          pairs: List[AnswerPair], live: List[AnswerEvaluation],
                          credential: str) -> NormalizedEvaluation:
        try:
            raw = await self.engine.evaluate_transcript(
                transcript.render(), pairs, session.questions, session.job, credential
            )
        except ScoringCredentialError:
            if live:
                logger.warning(f"Session {session.id}: credential rejected, using live evaluations")
                return self._from_live(session, live)
            raise
        except ScoringServiceError as e:
            if live:
                logger.warning(f"Session {session.id}: batch evaluation failed ({e}), using live evaluations")
                return self._from_live(session, live)
            logger.error(f"Session {session.id}: batch evaluation failed and no live evaluations: {e}")
            raise
        except MalformedPayloadError as e:
            logger.warning(f"Session {session.id}: batch evaluation unparseable ({e}), using fallback set")
            return fallback_evaluation(session.questions, pairs)

        return normalize_raw(raw, session.questions, source="batch", answers=pairs)
