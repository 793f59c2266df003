"""Conversation service API endpoints for presentation Q&A."""

from datetime import timedelta

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from services.narration.speech import audio_url_for
from services.runtime import services
from shared.errors import InvalidInputError, ProvidersExhaustedError, ProviderUnavailableError, ServiceError
from shared.models import (
    AnalyticsResponse,
    ChatRequest,
    ChatResponse,
    ContextUpdateRequest,
    IntentDetectRequest,
    IntentDetectResponse,
    SessionCleanupRequest,
    SessionInitRequest,
    SessionInitResponse,
    SessionListResponse,
    SessionSummary,
)
from shared.response_models import HealthResponse, http_error
from shared.utils import config, setup_logging

logger = setup_logging("conversation-service")

app = FastAPI(
    title="Conversation Service",
    description="Multi-turn question answering about the presentation being narrated",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/session/init", response_model=SessionInitResponse, response_model_by_alias=True)
async def init_session(req: SessionInitRequest):
    """Start a conversation session, optionally seeded with the slide context."""
    try:
        session = await services.conversation_manager.init(req.session_id, req.slide_context)
        return SessionInitResponse(session_id=session.session_id, created_at=session.created_at)
    except ServiceError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.error(f"Error initializing session: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.put("/session/{session_id}/context", response_model=SessionSummary, response_model_by_alias=True)
async def update_context(session_id: str, req: ContextUpdateRequest):
    """Merge new slide context into the session."""
    try:
        if req.slide_context is None:
            raise InvalidInputError("SlideContext is required", code="MISSING_SLIDE_CONTEXT")
        manager = services.conversation_manager
        await manager.update_context(session_id, req.slide_context)
        return manager.summary(session_id)
    except ServiceError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.error(f"Error updating context for session {session_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/session/{session_id}", response_model=SessionSummary, response_model_by_alias=True)
async def get_session(session_id: str, include_history: bool = Query(False, alias="includeHistory")):
    try:
        return services.conversation_manager.summary(session_id, include_history)
    except ServiceError as e:
        raise http_error(e) from e


@app.delete("/session/{session_id}")
async def delete_session(session_id: str):
    if not services.conversation_manager.delete(session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"success": True, "sessionId": session_id, "message": "Session deleted"}


@app.get("/session/{session_id}/analytics", response_model=AnalyticsResponse, response_model_by_alias=True)
async def session_analytics(session_id: str):
    try:
        return AnalyticsResponse(**services.conversation_manager.analytics(session_id))
    except ServiceError as e:
        raise http_error(e) from e


@app.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
async def chat(req: ChatRequest):
    """
    Answer a question about the presentation.

    When every text provider fails the response is a 503 whose body carries
    ``fallbackMessage``, a polite sentence safe to show to the audience.
    """
    manager = services.conversation_manager
    try:
        turn = await manager.ask(req.session_id, req.message, req.options, req.slide_context)
        session = manager.get(req.session_id.strip())
        return ChatResponse(
            session_id=session.session_id,
            message=turn.response_text,
            audio_ref=turn.response_audio_ref,
            audio_url=audio_url_for(turn.response_audio_ref),
            intent=turn.detected_intent,
            confidence=turn.confidence,
            relevant_slides=turn.relevant_slides,
            response_time_ms=turn.latency_ms,
            timestamp=turn.timestamp,
            history=list(session.history),
        )
    except (ProvidersExhaustedError, ProviderUnavailableError) as e:
        logger.error(f"Chat failed for session {req.session_id}: {e}")
        raise http_error(e, fallback_message=manager.fallback_message()) from e
    except ServiceError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.error(f"Unexpected chat error for session {req.session_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/intent/detect", response_model=IntentDetectResponse, response_model_by_alias=True)
async def detect_intent(req: IntentDetectRequest):
    try:
        result = services.conversation_manager.detect_intent(req.message)
    except ServiceError as e:
        raise http_error(e) from e
    return IntentDetectResponse(intent=result.intent, confidence=result.confidence, raw_input=result.raw_input)


@app.get("/sessions", response_model=SessionListResponse, response_model_by_alias=True)
async def list_sessions(limit: int = Query(50, ge=1, le=500), sort_by: str = Query("lastActive", alias="sortBy")):
    """List sessions, most recent first."""
    try:
        manager = services.conversation_manager
        sessions = manager.list_sessions(limit=limit, sort_by=sort_by)
        return SessionListResponse(sessions=sessions, total_sessions=len(manager.store))
    except ServiceError as e:
        raise http_error(e) from e


@app.post("/cleanup")
async def cleanup_sessions(req: SessionCleanupRequest | None = None):
    max_age = None
    if req is not None and req.max_age_hours is not None:
        max_age = timedelta(hours=req.max_age_hours)
    removed = services.conversation_manager.cleanup_expired(max_age)
    return {"success": True, "removed": removed}


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint for the conversation service."""
    return HealthResponse(
        status="healthy",
        message="Conversation service is running",
        version="1.0.0",
        dependencies={"active_sessions": str(len(services.conversation_manager.store))},
    )
