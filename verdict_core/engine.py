# ═════════════════════════════════════════════════════════════════════════
# VERDICT SCORING ENGINE
# Calls to the hosted scoring model: live answer scoring, flow
# classification, and the batch transcript evaluation at finalize.
# ═════════════════════════════════════════════════════════════════════════

import json
import logging
from typing import Any, List, Optional, Sequence

from .config import (
    CRITERIA_EVALUATION_FOCUS, DEFAULT_EVALUATION_FOCUS,
    FLOW_CLASSIFICATION_MAX_TOKENS, LIVE_SCORING_MAX_TOKENS,
)
from .llm_gateway import AsyncLLMGateway, llm_gateway
from .structs import (
    AnswerAssessment, AnswerEvaluation, AnswerPair, FlowAnalysis, InterviewSession,
    JobContext, Question, ScoringRequest,
)

logger = logging.getLogger(__name__)


def evaluation_focus(criterion: str) -> str:
    return CRITERIA_EVALUATION_FOCUS.get(criterion, DEFAULT_EVALUATION_FOCUS)


class ScoringEngine:
    """
    Prompts and response handling for the hosted scoring service:
    1. Live Answer Scoring (one answer, single attempt)
    2. Flow Classification (continue / redirect, independent of scoring)
    3. Batch Transcript Evaluation (complete transcript, retried)
    """

    def __init__(self, gateway: Optional[AsyncLLMGateway] = None):
        self.gateway = gateway or llm_gateway

    # ── LIVE SCORING ──
    async def score_answer(self, request: ScoringRequest) -> AnswerEvaluation:
        sys_prompt = """You are a STRICT expert interview evaluator for a competitive hiring process.
Score the candidate's answer from 0 to 100.

STRICT SCORING GUIDELINES:
- 90-100: Exceptional, multiple specific examples and deep expertise. Rarely given.
- 70-89: Strong answer with concrete examples.
- 50-69: Addresses the question but lacks depth or specifics.
- 30-49: Brief, generic or missing key points.
- 0-29: Off-topic, refused, inaudible, or "I don't know".
Brief answers (under 30 words) should score below 50 unless perfectly targeted."""

        user_prompt = f"""Position: {request.job_context.job_title or 'Not specified'}
Company: {request.job_context.company_name or 'Not specified'}
Question {request.question_number or '?'} of {request.total_questions or '?'}

Question asked: "{request.question}"
Assigned criterion: {request.criterion}
Evaluation focus: {evaluation_focus(request.criterion)}

Candidate's full answer: "{request.answer}"
"""
        assessment = await self.gateway.generate_structured(
            sys_prompt, user_prompt, AnswerAssessment, request.tenant_credential,
            max_tokens=LIVE_SCORING_MAX_TOKENS, retries=False
        )

        return AnswerEvaluation(
            question_number=request.question_number,
            question_text=request.question,
            criterion=request.criterion,
            score=assessment.score,
            completeness=assessment.completeness,
            answered=assessment.completeness != "off_topic" or assessment.matches_question,
            candidate_response=request.answer,
            strengths=assessment.strengths,
            gaps=assessment.gaps,
            reasoning=assessment.reasoning,
            source="live",
        )

    # ── FLOW CONTROL ──
    async def classify_flow(self, request: ScoringRequest) -> FlowAnalysis:
        """Decide whether the answer drifted off the question. Never feeds the score."""
        sys_prompt = """You monitor the flow of a live job interview.
Decide whether the candidate's answer stays on the question asked.
Recommend "redirect" ONLY if the answer is clearly about something unrelated.
Brief, vague or weak answers that are on-topic are "continue"."""

        user_prompt = f"""Question asked: "{request.question}"
Candidate's answer: "{request.answer}"
"""
        return await self.gateway.generate_structured(
            sys_prompt, user_prompt, FlowAnalysis, request.tenant_credential,
            max_tokens=FLOW_CLASSIFICATION_MAX_TOKENS, retries=False
        )

    # ── BATCH EVALUATION ──
    async def evaluate_transcript(self, transcript_text: str, pairs: Sequence[AnswerPair],
                                  questions: Sequence[Question], job: JobContext,
                                  credential: str) -> Any:
        """
        Rescore every answer from the complete transcript. Returns the raw JSON
        document; shape validation happens in the normalizer.
        """
        logger.info(f"Batch evaluation of {len(pairs)} detected answer(s)")

        sys_prompt = """You are an expert HR evaluator. Score every question/answer pair
from this interview on a 0-100 scale, strictly and objectively.
Mark answered=false when the candidate did not actually answer.

Return JSON:
{
  "questions": [
    {
      "question_number": 1,
      "question_text": "...",
      "criterion": "...",
      "score": 0,
      "completeness": "complete | partial | incomplete",
      "answered": true,
      "candidate_response": "the candidate's full answer, verbatim",
      "strengths": ["..."],
      "gaps": ["..."],
      "reasoning": "..."
    }
  ]
}"""

        detected = [
            {
                "question_number": p.question_number,
                "question_text": p.question_text,
                "criterion": p.criterion,
                "candidate_response": p.answer,
                "evaluation_focus": evaluation_focus(p.criterion),
            }
            for p in pairs
        ]
        configured = [{"number": q.index, "text": q.text, "criterion": q.criterion} for q in questions]

        user_prompt = f"""Position: {job.job_title or 'Not specified'}
Company: {job.company_name or 'Not specified'}
Candidate: {job.candidate_name or 'Not specified'}

Configured questions: {json.dumps(configured)}
Detected answers: {json.dumps(detected)}

Full transcript:
{transcript_text}
"""
        return await self.gateway.generate_json(sys_prompt, user_prompt, credential, retries=True)


def agent_instructions(session: InterviewSession) -> str:
    """Persona and question list for the hosted conversational agent."""
    job = session.job
    lines: List[str] = [
        "You are a professional AI recruiter conducting a structured voice interview.",
        f"Greet {job.candidate_name or 'the candidate'} warmly, then confirm: "
        "\"Before we begin, can you please confirm that your audio and video are working fine, "
        "and you can hear and see me clearly?\"",
        f"The interview lasts about {session.duration_minutes} minutes and is for the "
        f"{job.job_title or 'open'} role at {job.company_name or 'our company'}.",
        "Ask these questions in order, one at a time, waiting for each answer:",
    ]
    for q in session.questions:
        lines.append(f"{q.index}. {q.text}")
    lines.append(
        "When all questions are covered say: \"That concludes my set of questions. "
        "Do you have any questions for me?\""
    )
    lines.append(
        "Close with: \"Thank you for your time today. The recruitment team will respond with feedback.\""
    )
    return "\n".join(lines)


engine = ScoringEngine()
