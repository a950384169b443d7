"""
VERDICT Core Data Structures
============================
Pydantic models for sessions, transcripts, evaluations and aggregated scores.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
import uuid

from .config import ADHOC_CRITERION, DEFAULT_DURATION_MINUTES

InterviewPhase = Literal["setup", "greeting", "questions", "candidate_questions", "closing"]
PHASE_ORDER: List[str] = ["setup", "greeting", "questions", "candidate_questions", "closing"]

Completeness = Literal["complete", "partial", "incomplete"]
EvaluationSource = Literal["live", "batch", "fallback"]
Recommendation = Literal["Hire", "Maybe", "No Hire"]


def _clamp_score(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    score = float(value)
    return max(0.0, min(100.0, score))


def _lenient_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _normalize_criterion(value: Any) -> str:
    if value is None:
        return ADHOC_CRITERION
    text = str(value).strip()
    return text or ADHOC_CRITERION


# ─── INTERVIEW CONTENT MODELS ───────────────────────────────────────────────

class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=1, description="Ordinal position in the configured list (1..N)")
    text: str = Field(..., description="The question as the agent should ask it")
    criterion: str = Field(ADHOC_CRITERION, description="Evaluation dimension this question feeds")
    round_id: Optional[str] = Field(None, description="Interview round the question was sourced from")

    @field_validator("criterion", mode="before")
    @classmethod
    def _criterion(cls, value):
        return _normalize_criterion(value)


class JobContext(BaseModel):
    job_title: str = ""
    company_name: str = ""
    candidate_name: str = ""


class TranscriptTurn(BaseModel):
    role: Literal["agent", "candidate"]
    text: str
    timestamp: datetime = Field(default_factory=datetime.now)


class AnswerPair(BaseModel):
    """A question the agent asked and everything the candidate said to it."""

    question_number: int
    question_text: str
    criterion: str = ADHOC_CRITERION
    answer: str = ""


class ElaborationState(BaseModel):
    question_text: str
    combined_text: str = ""
    prompt_count: int = Field(0, ge=0)


# ─── EVALUATION MODELS ──────────────────────────────────────────────────────

class AnswerEvaluation(BaseModel):
    """One scored answer. Immutable; superseded wholesale at finalize."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question_number: int = Field(
        0, validation_alias=AliasChoices("question_number", "questionNumber", "number", "id")
    )
    question_text: str = Field(
        "", validation_alias=AliasChoices("question_text", "questionText", "question")
    )
    criterion: str = Field(ADHOC_CRITERION, validation_alias=AliasChoices("criterion", "category"))
    score: float = 0.0
    completeness: Completeness = "partial"
    answered: bool = True
    candidate_response: str = Field(
        "",
        validation_alias=AliasChoices("candidate_response", "candidateResponse", "full_answer", "answer", "response"),
    )
    strengths: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("gaps", "weaknesses", "missing_elements")
    )
    reasoning: str = ""
    source: EvaluationSource = "batch"

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value):
        return _clamp_score(value)

    @field_validator("criterion", mode="before")
    @classmethod
    def _criterion(cls, value):
        return _normalize_criterion(value)

    @field_validator("completeness", mode="before")
    @classmethod
    def _completeness(cls, value):
        text = str(value or "partial").strip().lower()
        if text in ("complete", "partial", "incomplete"):
            return text
        if text in ("off_topic", "off-topic", "none", "missing"):
            return "incomplete"
        return "partial"

    @field_validator("strengths", "gaps", mode="before")
    @classmethod
    def _string_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return [str(v) for v in value]

    @field_validator("candidate_response", "question_text", "reasoning", mode="before")
    @classmethod
    def _text(cls, value):
        return "" if value is None else str(value)


class AnswerAssessment(BaseModel):
    """Shape the scoring model is asked to return for a single live answer."""

    matches_question: bool = Field(True, description="Whether the answer addresses the question")
    completeness: Literal["complete", "partial", "incomplete", "off_topic"] = Field(
        "partial", description="How fully the question was answered"
    )
    score: float = Field(0, description="Score from 0 to 100")
    reasoning: str = Field("", description="Why this score was given, citing the answer")
    strengths: List[str] = Field(default_factory=list, description="Specific strengths in the answer")
    gaps: List[str] = Field(default_factory=list, description="What the answer failed to address")

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value):
        return _clamp_score(value)


class FlowAnalysis(BaseModel):
    recommendation: Literal["continue", "redirect"] = Field(
        "continue", description="Whether the candidate should be steered back to the question"
    )
    confidence: float = Field(0, description="Confidence in the recommendation, 0-100")
    reason: str = Field("", description="Short justification")

    @field_validator("recommendation", mode="before")
    @classmethod
    def _recommendation(cls, value):
        text = str(value or "continue").strip().lower()
        return "redirect" if text == "redirect" else "continue"

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value):
        return _clamp_score(value)


class ScoringRequest(BaseModel):
    question: str
    answer: str
    criterion: str = ADHOC_CRITERION
    question_number: int = 0
    total_questions: int = 0
    job_context: JobContext = Field(default_factory=JobContext)
    tenant_credential: str = Field(..., repr=False, exclude=True)


class EvalResult(BaseModel):
    """Outcome of one live evaluation attempt: success, skip or failure."""

    status: Literal["success", "skipped", "failed"]
    reason: str = ""
    evaluation: Optional[AnswerEvaluation] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


# ─── UPSTREAM PAYLOAD VARIANTS ──────────────────────────────────────────────

class FlatQuestionPayload(BaseModel):
    """Per-question records already resembling AnswerEvaluation."""

    model_config = ConfigDict(extra="allow")

    shape: Literal["flat"] = "flat"
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    overall_score: Optional[float] = None

    @field_validator("overall_score", mode="before")
    @classmethod
    def _overall(cls, value):
        return _lenient_float(value)


class LegacyGroupedPayload(BaseModel):
    """Per-question records grouped under their category name, unnumbered."""

    model_config = ConfigDict(extra="allow")

    shape: Literal["legacy"] = "legacy"
    categories: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    overall_score: Optional[float] = None

    @field_validator("overall_score", mode="before")
    @classmethod
    def _overall(cls, value):
        return _lenient_float(value)


EvaluationPayload = Annotated[
    Union[FlatQuestionPayload, LegacyGroupedPayload], Field(discriminator="shape")
]


# ─── AGGREGATION MODELS ─────────────────────────────────────────────────────

class QuestionScore(BaseModel):
    question_number: int
    question_text: str
    criterion: str
    raw_score: float
    effective_score: float
    unanswered: bool
    marks_obtained: int


class CriterionBreakdown(BaseModel):
    criterion: str
    question_count: int
    answered_count: int
    average_score: float
    weight_percentage: float
    weighted_contribution: float
    summary: str


class MarksSummary(BaseModel):
    total_configured_questions: int
    marks_per_question: int
    total_possible_marks: int
    total_marks_obtained: int
    questions_asked: int
    questions_answered: int
    questions_unanswered: int
    questions_not_asked: int


class AggregatedScore(BaseModel):
    overall_score: int = Field(..., ge=0, le=100)
    per_criterion: List[CriterionBreakdown]
    categories_used: List[str]
    categories_not_used: List[str]
    formula: str
    recommendation: Recommendation
    marks: MarksSummary
    question_scores: List[QuestionScore]


class NormalizedEvaluation(BaseModel):
    evaluations: List[AnswerEvaluation]
    score: AggregatedScore
    source: EvaluationSource
    is_fallback: bool = False
    excluded_questions: List[str] = Field(default_factory=list)
    upstream_overall_score: Optional[float] = None


class FinalEvaluation(BaseModel):
    session_id: str
    generated_at: datetime = Field(default_factory=datetime.now)
    source: EvaluationSource
    is_fallback: bool = False
    status: Literal["Pass", "Fail"]
    score: AggregatedScore
    evaluations: List[AnswerEvaluation]
    rationale: str
    rubric_notes: str
    upstream_overall_score: Optional[float] = None


# ─── SESSION STATE ──────────────────────────────────────────────────────────

class InterviewSession(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    phase: InterviewPhase = "setup"
    setup_complete: bool = False
    completed: bool = False

    job: JobContext = Field(default_factory=JobContext)
    questions: List[Question] = Field(default_factory=list)

    final_evaluation: Optional[FinalEvaluation] = None
