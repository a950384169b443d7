"""
VERDICT Real-Time Evaluation Client
===================================
Submits at most one live scoring request at a time per session, never the
same answer text twice, and keeps only the latest evaluation per question.

Failures are reported as EvalResult values; the batch pass at finalize is the
retry path, so nothing here retries.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .config import MIN_ANSWER_LENGTH
from .credentials import TenantCredentialStore, credential_store
from .engine import ScoringEngine, engine as default_engine
from .errors import MalformedPayloadError, ScoringServiceError
from .structs import AnswerEvaluation, EvalResult, FlowAnalysis, JobContext, ScoringRequest

logger = logging.getLogger(__name__)


@dataclass
class LiveEvaluationState:
    """Session-scoped mutable state; only the session's event loop writes it."""

    in_flight: bool = False
    last_evaluated_answer: Optional[str] = None
    question_counter: int = 0
    evaluations: List[AnswerEvaluation] = field(default_factory=list)

    def find(self, question_text: str) -> Optional[int]:
        for i, evaluation in enumerate(self.evaluations):
            if evaluation.question_text == question_text:
                return i
        return None


class RealTimeEvaluationClient:

    def __init__(self, tenant_id: str, job: Optional[JobContext] = None, total_questions: int = 0,
                 scoring_engine: Optional[ScoringEngine] = None,
                 credentials: Optional[TenantCredentialStore] = None):
        self.tenant_id = tenant_id
        self.job = job or JobContext()
        self.total_questions = total_questions
        self.engine = scoring_engine or default_engine
        self.credentials = credentials or credential_store

    async def evaluate(self, state: LiveEvaluationState, question_text: str, answer: str,
                       criterion: str, question_number: Optional[int] = None) -> EvalResult:
        # Guards, in order
        if state.in_flight:
            return EvalResult(status="skipped", reason="in_flight")
        if answer == state.last_evaluated_answer:
            return EvalResult(status="skipped", reason="duplicate_answer")
        if len(answer.strip()) < MIN_ANSWER_LENGTH:
            return EvalResult(status="skipped", reason="answer_too_short")

        state.in_flight = True
        try:
            credential = await self.credentials.resolve(self.tenant_id)
            if not credential:
                logger.info(f"Tenant {self.tenant_id}: no scoring credential, live evaluation skipped")
                return EvalResult(status="skipped", reason="no_credential")

            existing = state.find(question_text)
            if question_number is None:
                if existing is not None:
                    question_number = state.evaluations[existing].question_number
                else:
                    # Ad-hoc questions are numbered after every configured ordinal
                    taken = [e.question_number for e in state.evaluations]
                    question_number = max([self.total_questions] + taken) + 1

            request = ScoringRequest(
                question=question_text,
                answer=answer,
                criterion=criterion,
                question_number=question_number,
                total_questions=self.total_questions,
                job_context=self.job,
                tenant_credential=credential,
            )
            state.last_evaluated_answer = answer

            try:
                evaluation = await self.engine.score_answer(request)
            except (ScoringServiceError, MalformedPayloadError) as e:
                logger.warning(f"Live evaluation failed for Q{question_number}: {e}")
                return EvalResult(status="failed", reason=str(e))
        finally:
            state.in_flight = False

        self._record(state, evaluation)
        logger.info(f"Live evaluation Q{evaluation.question_number} ({evaluation.criterion}): {evaluation.score:.0f}/100")
        return EvalResult(status="success", evaluation=evaluation)

    @staticmethod
    def _record(state: LiveEvaluationState, evaluation: AnswerEvaluation):
        index = state.find(evaluation.question_text)
        if index is not None:
            state.evaluations[index] = evaluation
        else:
            state.evaluations.append(evaluation)
            state.question_counter += 1

    async def classify_flow(self, question_text: str, answer: str, criterion: str) -> Optional[FlowAnalysis]:
        """Flow check for the redirect policy. Runs alongside scoring, touches no state."""
        credential = await self.credentials.resolve(self.tenant_id)
        if not credential:
            return None
        request = ScoringRequest(
            question=question_text,
            answer=answer,
            criterion=criterion,
            total_questions=self.total_questions,
            job_context=self.job,
            tenant_credential=credential,
        )
        try:
            return await self.engine.classify_flow(request)
        except (ScoringServiceError, MalformedPayloadError) as e:
            logger.warning(f"Flow classification failed: {e}")
            return None
