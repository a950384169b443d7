"""
VERDICT Conversation Orchestrator
=================================
Manages the lifecycle of live interview sessions, including:
- Phase progression (setup → greeting → questions → candidate_questions → closing)
- Tracking which question the candidate is currently answering
- Elaboration prompts and off-topic redirects
- Live scoring hand-off without blocking the event stream
- Persistent storage and one-time finalization
"""

import asyncio
import logging
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Set

from .config import (
    DEFAULT_TOTAL_QUESTIONS, REDIRECT_CONFIDENCE_THRESHOLD, REDIRECT_INSTRUCTION,
    SESSIONS_DIR, SIGN_OFF_PATTERNS, WRAP_UP_PATTERNS,
)
from .engine import agent_instructions
from .elaboration import ElaborationController
from .errors import SessionNotFoundError
from .evaluator import LiveEvaluationState, RealTimeEvaluationClient
from .finalizer import Finalizer
from .normalizer import is_closing_message
from .structs import (
    EvalResult, FinalEvaluation, InterviewSession, JobContext, PHASE_ORDER, Question,
)
from .tracking import QuestionTracker, TrackedQuestion, is_setup_confirmation, is_trivial
from .transcript import TranscriptStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

AGENT_DELTA_EVENTS = {
    "response.audio_transcript.delta",
    "response.output_audio_transcript.delta",
    "response.output_text.delta",
}
AGENT_DONE_EVENTS = {
    "response.audio_transcript.done",
    "response.output_audio_transcript.done",
}
CANDIDATE_DONE_EVENT = "conversation.item.input_audio_transcription.completed"


class AgentChannel(Protocol):
    """Outbound side of the live duplex channel to the hosted conversational agent."""

    async def send(self, message: Dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class SessionManager:
    """Session storage with JSON persistence."""
    _sessions: Dict[str, InterviewSession] = {}
    directory: Path = SESSIONS_DIR

    @classmethod
    def load_all_sessions(cls):
        """Load sessions from disk on startup."""
        for file in cls.directory.glob("*.json"):
            try:
                data = json.loads(file.read_text(encoding="utf-8"))
                session = InterviewSession.model_validate(data)
                cls._sessions[session.id] = session
            except Exception as e:
                logger.warning(f"Failed to load session {file}: {e}")

    @classmethod
    def save_session(cls, session: InterviewSession):
        """Persist session to disk."""
        path = cls.directory / f"{session.id}.json"
        path.write_text(session.model_dump_json(indent=2), encoding="utf-8")

    @classmethod
    def create_session(cls, tenant_id: str, questions: List[Question],
                       job: Optional[JobContext] = None, duration_minutes: Optional[int] = None) -> InterviewSession:
        session = InterviewSession(tenant_id=tenant_id, questions=questions, job=job or JobContext())
        if duration_minutes:
            session.duration_minutes = duration_minutes
        cls._sessions[session.id] = session
        cls.save_session(session)
        return session

    @classmethod
    def get_session(cls, session_id: str) -> Optional[InterviewSession]:
        return cls._sessions.get(session_id)

    @classmethod
    def require_session(cls, session_id: str) -> InterviewSession:
        session = cls._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    @classmethod
    def list_sessions(cls):
        return cls._sessions.values()


# Load sessions immediately
SessionManager.load_all_sessions()


class ConversationOrchestrator:
    """
    Single logical actor for one interview session. Events must be fed to
    handle_event one at a time; network calls run as background tasks so the
    event stream is never blocked.
    """

    def __init__(self, session: InterviewSession,
                 transcript: Optional[TranscriptStore] = None,
                 evaluator: Optional[RealTimeEvaluationClient] = None,
                 finalizer: Optional[Finalizer] = None):
        self.session = session
        self.transcript = transcript or TranscriptStore.load(session.id)
        self.tracker = QuestionTracker(session.questions)
        self.elaboration = ElaborationController()
        self.live = LiveEvaluationState()
        self.evaluator = evaluator or RealTimeEvaluationClient(
            session.tenant_id, session.job, len(session.questions) or DEFAULT_TOTAL_QUESTIONS
        )
        self.finalizer = finalizer or Finalizer(save_session=SessionManager.save_session)
        self.channel: Optional[AgentChannel] = None
        self._tasks: Set[asyncio.Task] = set()

    # ── PHASES ──

    @property
    def phase(self) -> str:
        return self.session.phase

    def _phase_at_least(self, phase: str) -> bool:
        return PHASE_ORDER.index(self.session.phase) >= PHASE_ORDER.index(phase)

    def advance_phase(self, phase: str) -> bool:
        """Move forward to `phase`; never moves backwards."""
        if PHASE_ORDER.index(phase) <= PHASE_ORDER.index(self.session.phase):
            return False
        logger.info(f"Session {self.session.id}: Phase {self.session.phase} -> {phase}")
        self.session.phase = phase
        SessionManager.save_session(self.session)
        return True

    def mark_setup_complete(self):
        self.session.setup_complete = True
        SessionManager.save_session(self.session)

    async def connect(self, channel: AgentChannel):
        """The live transport is up: greeting begins and the agent is configured."""
        self.channel = channel
        self.session.started_at = self.session.started_at or datetime.now()
        self.session.setup_complete = True
        self.advance_phase("greeting")

        await channel.send({
            "type": "session.update",
            "session": {
                "modalities": ["audio", "text"],
                "instructions": agent_instructions(self.session),
                "input_audio_transcription": {"model": "whisper-1"},
                "turn_detection": {"type": "server_vad"},
            }
        })
        await channel.send({"type": "response.create", "response": {"modalities": ["audio", "text"]}})

    # ── EVENT STREAM ──

    async def handle_event(self, event: Dict[str, Any]):
        event_type = event.get("type", "")

        if event_type in AGENT_DELTA_EVENTS:
            delta = event.get("delta")
            if isinstance(delta, str):
                self.transcript.buffer_agent_delta(delta)
        elif event_type in AGENT_DONE_EVENTS:
            turn = await self.transcript.flush_agent()
            if turn is not None:
                await self.on_agent_utterance(turn.text)
        elif event_type == CANDIDATE_DONE_EVENT:
            await self.on_candidate_utterance(event.get("transcript"))
        else:
            logger.debug(f"Session {self.session.id}: ignoring event {event_type or '<untyped>'}")

    async def on_agent_utterance(self, text: str) -> Optional[TrackedQuestion]:
        previous = self.tracker.current
        tracked = self.tracker.observe_agent(text)
        lowered = text.lower()

        if tracked is not None and tracked != previous:
            logger.info(f"Session {self.session.id}: Current question -> "
                        f"{'Q' + str(tracked.number) if tracked.configured else 'ad-hoc'} [{tracked.criterion}]")

        if tracked is not None and not is_setup_confirmation(tracked.text) and not is_closing_message(tracked.text):
            if self.phase == "questions" and not tracked.configured and self.tracker.all_asked:
                self.advance_phase("candidate_questions")
            else:
                self.advance_phase("questions")

        if self._phase_at_least("questions"):
            if any(p in lowered for p in WRAP_UP_PATTERNS):
                self.advance_phase("candidate_questions")
            if any(p in lowered for p in SIGN_OFF_PATTERNS):
                self.advance_phase("closing")
        return tracked

    async def on_candidate_utterance(self, text: Optional[str]) -> str:
        """Record a candidate turn and decide what to do with it."""
        turn = await self.transcript.add_candidate(text)
        if turn is None:
            return "duplicate"

        current = self.tracker.current
        if current is None:
            return "no_question"
        if is_setup_confirmation(current.text):
            return "setup_confirmation"
        if self.phase != "questions":
            return "out_of_phase"
        if is_trivial(turn.text):
            return "trivial"

        await self._analyze(current, turn.text)
        return "analyzed"

    async def _analyze(self, question: TrackedQuestion, utterance: str):
        decision = self.elaboration.observe(question.text, utterance)
        if decision.prompt:
            await self._steer(f"Say exactly: \"{decision.prompt}\"")

        # Scoring and flow control see the same raw text but never each other's result.
        self._spawn(self._evaluate(question, decision.combined_text))
        self._spawn(self._check_flow(question, utterance))

    async def _evaluate(self, question: TrackedQuestion, answer: str) -> EvalResult:
        result = await self.evaluator.evaluate(
            self.live, question.text, answer, question.criterion, question.number
        )
        if not result.ok:
            logger.info(f"Session {self.session.id}: live evaluation {result.status} ({result.reason})")
        return result

    async def _check_flow(self, question: TrackedQuestion, utterance: str):
        analysis = await self.evaluator.classify_flow(question.text, utterance, question.criterion)
        if analysis is None:
            return
        if analysis.recommendation == "redirect" and analysis.confidence >= REDIRECT_CONFIDENCE_THRESHOLD:
            if self.tracker.current != question or self.channel is None:
                return
            logger.info(f"Session {self.session.id}: Redirecting candidate ({analysis.confidence:.0f}% confidence)")
            # The agent's redirect restates the question; it must not move the pointer.
            self.tracker.hold()
            await self._steer(REDIRECT_INSTRUCTION.format(question=question.text))

    async def _steer(self, instructions: str):
        """One-shot response instruction to the conversational agent."""
        if self.channel is None:
            return
        await self.channel.send({"type": "response.create", "response": {"instructions": instructions}})

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self):
        """Wait for outstanding scoring and flow calls."""
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Session {self.session.id}: background task failed: {result}")

    # ── SESSION END ──

    async def end(self) -> FinalEvaluation:
        """
        Tear down the live channel, flush buffered agent speech as a final
        turn, and finalize. A second call is rejected by the finalizer.
        """
        if not self.session.completed:
            turn = await self.transcript.flush_agent()
            if turn is not None:
                logger.info(f"Session {self.session.id}: flushed partial agent turn at end")
        if self.channel is not None:
            try:
                await self.channel.close()
            except Exception as e:
                logger.warning(f"Session {self.session.id}: channel close failed: {e}")
            self.channel = None
        await self.drain()
        return await self.finalize()

    async def finalize(self) -> FinalEvaluation:
        return await self.finalizer.finalize(self.session, self.transcript, self.live.evaluations)


class InterviewOrchestrator:
    """
    Registry of live sessions. Each session gets its own
    ConversationOrchestrator; nothing is shared between sessions.
    """

    def __init__(self):
        self._live: Dict[str, ConversationOrchestrator] = {}

    def create_session(self, tenant_id: str, questions: List[Question],
                       job: Optional[JobContext] = None, duration_minutes: Optional[int] = None) -> InterviewSession:
        session = SessionManager.create_session(tenant_id, questions, job, duration_minutes)
        logger.info(f"Session {session.id}: Created for tenant {tenant_id} with {len(questions)} questions")
        return session

    def runtime(self, session_id: str) -> ConversationOrchestrator:
        runtime = self._live.get(session_id)
        if runtime is None:
            session = SessionManager.require_session(session_id)
            runtime = ConversationOrchestrator(session)
            self._live[session_id] = runtime
        return runtime

    async def finalize(self, session_id: str) -> FinalEvaluation:
        runtime = self.runtime(session_id)
        try:
            return await runtime.end()
        finally:
            if runtime.session.completed:
                self._live.pop(session_id, None)


orchestrator = InterviewOrchestrator()
