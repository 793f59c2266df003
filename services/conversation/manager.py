"""
Conversation session manager.

Each session behaves as a single logical actor: every operation on a
session runs under that session's lock, so turns are appended in order with
strictly increasing timestamps. Distinct sessions never wait on each other.
"""

import asyncio
import random
import time
import uuid
from datetime import datetime, timedelta
from typing import Any

from services.audio_cache.cache import AudioCache
from services.conversation.intents import IntentClassifier, IntentResult
from services.conversation.prompts import build_conversation_prompt
from services.conversation.store import InMemorySessionStore, SessionStore
from services.narration.speech import synthesize_cached
from services.providers.router import ProviderRouter
from services.relevance.ranker import SlideRelevanceRanker
from shared.enums import CONVERSATION_ASSET_HASH, Capability, SessionState
from shared.errors import InvalidInputError, NotFoundError, ProvidersExhaustedError, ProviderUnavailableError
from shared.models import ChatOptions, ConversationSession, SessionSummary, SlideContext, Turn
from shared.utils import setup_logging, utc_now

logger = setup_logging("conversation-manager")

FALLBACK_MESSAGES = [
    "I apologize, but I'm having trouble processing your request right now. Could you please rephrase your question?",
    "Sorry, there seems to be a technical issue. Please try asking your question in a different way.",
    "I'm experiencing some difficulties at the moment. Can you try asking a more specific question about the presentation?",
    "Unfortunately, I can't process that request right now. Please ask about specific topics from the slides.",
]

SORT_KEYS = {
    "lastActive": lambda session: session.last_active_at,
    "createdAt": lambda session: session.created_at,
    "totalQuestions": lambda session: session.metrics.total_questions,
}


def merge_slide_context(current: SlideContext, update: SlideContext) -> SlideContext:
    """Shallow merge: fields present in ``update`` replace those in ``current``."""
    merged = current.model_dump(by_alias=False)
    merged.update(update.model_dump(by_alias=False, exclude_unset=True))
    return SlideContext.model_validate(merged)


class ConversationManager:
    """Owns conversation sessions and answers questions within them."""

    def __init__(
        self,
        router: ProviderRouter,
        audio_cache: AudioCache,
        ranker: SlideRelevanceRanker,
        store: SessionStore | None = None,
        classifier: IntentClassifier | None = None,
        history_window: int = 3,
        session_ttl: timedelta = timedelta(hours=24),
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> None:
        self.router = router
        self.audio_cache = audio_cache
        self.ranker = ranker
        self.store = store or InMemorySessionStore()
        self.classifier = classifier or IntentClassifier()
        self.history_window = history_window
        self.session_ttl = session_ttl
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._locks: dict[str, asyncio.Lock] = {}
        self._sweep_task: asyncio.Task | None = None

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    @staticmethod
    def _validate_session_id(session_id: Any) -> str:
        if session_id is None or (isinstance(session_id, str) and not session_id.strip()):
            raise InvalidInputError("SessionId is required", code="MISSING_SESSION_ID")
        if not isinstance(session_id, str):
            raise InvalidInputError("SessionId must be a string", code="INVALID_SESSION_ID")
        return session_id.strip()

    def _is_expired(self, session: ConversationSession, now: datetime | None = None) -> bool:
        return (now or utc_now()) - session.last_active_at > self.session_ttl

    def state(self, session_id: str) -> SessionState:
        session = self.store.get(session_id)
        if session is None:
            return SessionState.UNINITIALIZED
        if self._is_expired(session):
            return SessionState.EXPIRED
        return SessionState.ACTIVE

    def get(self, session_id: str) -> ConversationSession | None:
        return self.store.get(session_id)

    def _require(self, session_id: str) -> ConversationSession:
        session = self.store.get(session_id)
        if session is None:
            raise NotFoundError("Session not found", code="SESSION_NOT_FOUND", details={"sessionId": session_id})
        return session

    def _activate(self, session_id: str) -> ConversationSession:
        """Return the live session, starting a fresh one when absent or expired."""
        session = self.store.get(session_id)
        if session is not None and self._is_expired(session):
            logger.info(f"Session {session_id} expired; starting a new one")
            session = None
        if session is None:
            session = ConversationSession(session_id=session_id)
            self.store.put(session)
            logger.info(f"Initialized conversation session: {session_id}")
        return session

    async def init(self, session_id: str | None = None, slide_context: SlideContext | None = None) -> ConversationSession:
        """Start (or restart) a session with an optional slide context."""
        session_id = self._validate_session_id(session_id) if session_id is not None else uuid.uuid4().hex
        async with self._lock(session_id):
            session = ConversationSession(session_id=session_id, slide_context=slide_context or SlideContext())
            self.store.put(session)
            logger.info(f"Initialized conversation session: {session_id}")
            return session

    async def update_context(self, session_id: str, slide_context: SlideContext) -> ConversationSession:
        """Merge ``slide_context`` into the session, creating the session if needed."""
        session_id = self._validate_session_id(session_id)
        async with self._lock(session_id):
            session = self._activate(session_id)
            session.slide_context = merge_slide_context(session.slide_context, slide_context)
            session.last_active_at = utc_now()
            logger.info(f"Updated slide context for session: {session_id}")
            return session

    async def ask(
        self,
        session_id: str,
        user_input: str,
        options: ChatOptions | None = None,
        slide_context: SlideContext | None = None,
    ) -> Turn:
        """
        Answer ``user_input`` within a session and record the turn.

        Raises:
            InvalidInputError: Missing session id or empty message
            ProvidersExhaustedError: Every text generation provider failed
            ProviderUnavailableError: No text generation provider configured
        """
        session_id = self._validate_session_id(session_id)
        if not isinstance(user_input, str) or not user_input.strip():
            raise InvalidInputError("Message is required and must be a non-empty string", code="INVALID_MESSAGE")
        options = options or ChatOptions()

        async with self._lock(session_id):
            start_time = time.perf_counter()
            session = self._activate(session_id)
            if slide_context is not None:
                session.slide_context = merge_slide_context(session.slide_context, slide_context)
            session.last_active_at = utc_now()

            intent = self.classifier.detect(user_input)
            logger.info(f"Intent detected: {intent.intent.value} (confidence: {intent.confidence})")
            recent = session.history[-self.history_window:] if self.history_window > 0 else []
            prompt = build_conversation_prompt(intent.intent, user_input, session.slide_context, recent)

            try:
                result = await self.router.generate(
                    Capability.TEXT_GEN,
                    prompt,
                    {
                        "max_tokens": options.max_tokens or self.max_tokens,
                        "temperature": options.temperature if options.temperature is not None else self.temperature,
                    },
                )
            except (ProvidersExhaustedError, ProviderUnavailableError):
                session.metrics.failed_requests += 1
                raise
            response_text = result.text.strip()

            audio_ref = None
            if options.generate_audio:
                try:
                    entry = await synthesize_cached(self.router, self.audio_cache, CONVERSATION_ASSET_HASH, response_text)
                    audio_ref = entry.fingerprint
                except Exception as e:
                    logger.warning(f"Audio generation failed for session {session_id}; answering text-only: {e}")

            relevant_slides = await self.ranker.rank(user_input, session.slide_context.slides)

            turn = Turn(
                timestamp=self._next_timestamp(session),
                user_input=user_input,
                detected_intent=intent.intent,
                confidence=intent.confidence,
                response_text=response_text,
                response_audio_ref=audio_ref,
                relevant_slides=relevant_slides,
                latency_ms=round((time.perf_counter() - start_time) * 1000, 3),
            )
            session.history.append(turn)
            self._record_metrics(session, turn)
            logger.info(f"Generated response in {turn.latency_ms}ms for session: {session_id}")
            return turn

    @staticmethod
    def _next_timestamp(session: ConversationSession) -> datetime:
        now = utc_now()
        if session.history and now <= session.history[-1].timestamp:
            now = session.history[-1].timestamp + timedelta(microseconds=1)
        return now

    @staticmethod
    def _record_metrics(session: ConversationSession, turn: Turn) -> None:
        metrics = session.metrics
        metrics.total_questions += 1
        count = metrics.total_questions
        metrics.average_response_time_ms = (metrics.average_response_time_ms * (count - 1) + turn.latency_ms) / count
        intent = turn.detected_intent.value
        metrics.intent_counts[intent] = metrics.intent_counts.get(intent, 0) + 1

    def detect_intent(self, text: str | None) -> IntentResult:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Message is required and must be a string", code="INVALID_MESSAGE")
        return self.classifier.detect(text)

    def analytics(self, session_id: str) -> dict[str, Any]:
        session = self._require(session_id)
        return {
            "session_id": session.session_id,
            "question_count": session.metrics.total_questions,
            "failed_requests": session.metrics.failed_requests,
            "average_response_time_ms": session.metrics.average_response_time_ms,
            "intent_distribution": dict(session.metrics.intent_counts),
            "session_duration_seconds": (utc_now() - session.created_at).total_seconds(),
            "conversation_length": len(session.history),
            "last_active_at": session.last_active_at,
        }

    def summary(self, session_id: str, include_history: bool = False) -> SessionSummary:
        return self._summarize(self._require(session_id), include_history)

    def _summarize(self, session: ConversationSession, include_history: bool = False) -> SessionSummary:
        return SessionSummary(
            session_id=session.session_id,
            state=SessionState.EXPIRED if self._is_expired(session) else SessionState.ACTIVE,
            created_at=session.created_at,
            last_active_at=session.last_active_at,
            total_questions=session.metrics.total_questions,
            slide_count=len(session.slide_context.slides),
            presentation_title=session.slide_context.title,
            recent_questions=[
                {"question": turn.user_input, "intent": turn.detected_intent.value} for turn in session.history[-5:]
            ],
            history=list(session.history) if include_history else None,
        )

    def list_sessions(self, limit: int = 50, sort_by: str = "lastActive") -> list[SessionSummary]:
        key = SORT_KEYS.get(sort_by)
        if key is None:
            raise InvalidInputError(
                f"Unsupported sort key: {sort_by}",
                code="INVALID_SORT_KEY",
                details={"allowed": list(SORT_KEYS)},
            )
        sessions = sorted(self.store.values(), key=key, reverse=True)
        return [self._summarize(session) for session in sessions[: max(0, limit)]]

    def delete(self, session_id: str) -> bool:
        deleted = self.store.delete(session_id)
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]
        return deleted

    def cleanup_expired(self, max_age: timedelta | None = None) -> int:
        """Drop sessions inactive for longer than ``max_age`` (default: the session TTL)."""
        cutoff = utc_now() - (max_age if max_age is not None else self.session_ttl)
        stale = [session.session_id for session in self.store.values() if session.last_active_at < cutoff]
        for session_id in stale:
            self.delete(session_id)
        if stale:
            logger.info(f"Cleaned up {len(stale)} old conversation sessions")
        return len(stale)

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.cleanup_expired()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")

    def start_periodic_cleanup(self, interval: float) -> None:
        """Expire idle sessions every ``interval`` seconds on the running loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop(interval))
        logger.info(f"Started session cleanup every {interval}s")

    async def stop_periodic_cleanup(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def clear(self) -> int:
        self._locks = {key: lock for key, lock in self._locks.items() if lock.locked()}
        return self.store.clear()

    @staticmethod
    def fallback_message() -> str:
        """Polite, non-technical text shown when an answer cannot be produced."""
        return random.choice(FALLBACK_MESSAGES)
