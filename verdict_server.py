"""
VERDICT Interview Server
========================
FastAPI surface for the voice interview scoring engine.

Features:
- Session creation from a configured question list
- WebSocket relay for the hosted conversational agent's realtime events
- Live scoring in the background, batch re-scoring at finalize
- Explicit, typed errors (configuration / incomplete interview / scoring outage)
"""

import logging
import uvicorn
from typing import List, Optional
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Import Core Logic
from verdict_core.orchestrator import orchestrator, SessionManager
from verdict_core.errors import (
    ConfigurationError, IncompleteInterviewError, ScoringServiceError,
    SessionAlreadyCompletedError, SessionNotFoundError, VerdictError,
)
from verdict_core.structs import JobContext, Question

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="VERDICT Interview Engine", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    SessionNotFoundError: 404,
    SessionAlreadyCompletedError: 409,
    ConfigurationError: 400,
    IncompleteInterviewError: 422,
    ScoringServiceError: 502,
}


class CreateSessionRequest(BaseModel):
    tenant_id: str
    questions: List[Question] = Field(default_factory=list)
    job: JobContext = Field(default_factory=JobContext)
    duration_minutes: Optional[int] = None


@app.exception_handler(VerdictError)
async def verdict_error_handler(request, exc: VerdictError):
    status = 500
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status = code
            break
    body = {"error": exc.code, "message": str(exc)}
    if isinstance(exc, IncompleteInterviewError):
        body["detected_questions"] = exc.detected
        body["configured_questions"] = exc.configured
    return JSONResponse(body, status_code=status)


class WebSocketChannel:
    """Sends orchestrator control messages back over the client socket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.closed = False

    async def send(self, message: dict):
        if not self.closed:
            await self.websocket.send_json(message)

    async def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            await self.websocket.close()
        except RuntimeError:
            # Already closed by the peer
            pass


# ── ENDPOINTS ──

@app.post("/sessions")
async def create_session(payload: CreateSessionRequest):
    session = orchestrator.create_session(
        payload.tenant_id, payload.questions, payload.job, payload.duration_minutes
    )
    return {"session_id": session.id, "phase": session.phase, "question_count": len(session.questions)}


@app.post("/sessions/{session_id}/setup-complete")
async def setup_complete(session_id: str):
    runtime = orchestrator.runtime(session_id)
    runtime.mark_setup_complete()
    return {"session_id": session_id, "setup_complete": True, "phase": runtime.phase}


@app.websocket("/sessions/{session_id}/live")
async def live_relay(websocket: WebSocket, session_id: str):
    """
    Relay for the hosted conversational agent. Inbound frames are realtime
    events; a session.end frame or a disconnect finalizes the interview.
    """
    try:
        runtime = orchestrator.runtime(session_id)
    except SessionNotFoundError:
        await websocket.close(code=4404)
        return

    await websocket.accept()
    channel = WebSocketChannel(websocket)
    await runtime.connect(channel)

    try:
        while True:
            event = await websocket.receive_json()
            if event.get("type") == "session.end":
                break
            await runtime.handle_event(event)
    except WebSocketDisconnect:
        logger.info(f"[{session_id}] Live channel disconnected")
        channel.closed = True

    if runtime.session.completed:
        return
    try:
        final = await orchestrator.finalize(session_id)
        logger.info(f"[{session_id}] Finalized on channel close: {final.score.overall_score}")
    except VerdictError as e:
        logger.error(f"[{session_id}] Finalize on channel close failed ({e.code}): {e}")


@app.post("/sessions/{session_id}/finalize")
async def finalize_session(session_id: str):
    final = await orchestrator.finalize(session_id)
    return final.model_dump(mode="json")


@app.get("/sessions/{session_id}")
async def get_session(session_id: str):
    session = SessionManager.require_session(session_id)
    return session.model_dump(mode="json", exclude={"final_evaluation"})


@app.get("/sessions/{session_id}/transcript")
async def get_transcript(session_id: str):
    runtime = orchestrator.runtime(session_id)
    return {
        "session_id": session_id,
        "turns": [t.model_dump(mode="json") for t in runtime.transcript.turns],
        "text": runtime.transcript.render(),
    }


@app.get("/sessions/{session_id}/evaluation")
async def get_evaluation(session_id: str):
    session = SessionManager.require_session(session_id)
    if session.final_evaluation is None:
        raise HTTPException(404, "Session has not been finalized")
    return session.final_evaluation.model_dump(mode="json")


@app.get("/debug/sessions")
async def debug_sessions():
    """List known sessions (Debug only)."""
    return [s.id for s in SessionManager.list_sessions()]


if __name__ == "__main__":
    uvicorn.run("verdict_server:app", host="0.0.0.0", port=8000, reload=True)
