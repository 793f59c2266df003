"""
Process-wide service wiring.

The HTTP apps share one provider router, one audio cache, one narration
service and so on. Each collaborator is built lazily from configuration on
first access and can be replaced (tests assign fakes) or dropped with ``del``.
"""

from datetime import timedelta

from shared.utils import config, setup_logging

logger = setup_logging("service-runtime")


class ServiceRegistry:
    """Lazily constructed collaborators shared by the service apps."""

    def __init__(self) -> None:
        self._router = None
        self._audio_cache = None
        self._narration_service = None
        self._scheduler = None
        self._ranker = None
        self._conversation_manager = None
        self._slide_service = None

    @property
    def router(self):
        """Lazy load provider router."""
        if self._router is None:
            from services.providers.registry import build_router

            self._router = build_router()
        return self._router

    @router.setter
    def router(self, router):
        self._router = router

    @router.deleter
    def router(self):
        self._router = None

    @property
    def audio_cache(self):
        """Lazy load audio cache."""
        if self._audio_cache is None:
            from services.audio_cache.cache import build_audio_cache

            self._audio_cache = build_audio_cache()
        return self._audio_cache

    @audio_cache.setter
    def audio_cache(self, cache):
        self._audio_cache = cache

    @audio_cache.deleter
    def audio_cache(self):
        self._audio_cache = None

    @property
    def narration_service(self):
        """Lazy load narration service."""
        if self._narration_service is None:
            from pathlib import Path

            from services.narration.service import NarrationService

            self._narration_service = NarrationService(
                self.router,
                self.audio_cache,
                max_tokens=int(config.get_pipeline_value("narration.max_tokens", 120)),
                temperature=float(config.get_pipeline_value("narration.temperature", 0.6)),
                max_characters=int(config.get_pipeline_value("narration.max_characters", 500)),
                image_roots=[Path(config.get("media_root", "./media")), Path(config.get("uploads_root", "./uploads"))],
            )
        return self._narration_service

    @narration_service.setter
    def narration_service(self, service):
        self._narration_service = service

    @narration_service.deleter
    def narration_service(self):
        self._narration_service = None

    @property
    def scheduler(self):
        """Lazy load pre-generation scheduler."""
        if self._scheduler is None:
            from services.pregeneration.scheduler import PreGenerationScheduler

            self._scheduler = PreGenerationScheduler(
                self.narration_service,
                max_workers=int(config.get_pipeline_value("pregeneration.max_workers", 2)),
                low_priority_delay=float(config.get_pipeline_value("pregeneration.low_priority_delay_seconds", 2.0)),
                lookahead=int(config.get_pipeline_value("pregeneration.lookahead", 2)),
            )
        return self._scheduler

    @scheduler.setter
    def scheduler(self, scheduler):
        self._scheduler = scheduler

    @scheduler.deleter
    def scheduler(self):
        self._scheduler = None

    @property
    def ranker(self):
        """Lazy load slide relevance ranker."""
        if self._ranker is None:
            from services.relevance.ranker import SlideRelevanceRanker

            self._ranker = SlideRelevanceRanker(
                self.router,
                use_ai_ranking=bool(config.get_pipeline_value("relevance.use_ai_ranking", True)),
                max_results=int(config.get_pipeline_value("relevance.max_results", 3)),
                cache_ttl_seconds=float(config.get_pipeline_value("relevance.cache_ttl_seconds", 600)),
            )
        return self._ranker

    @ranker.setter
    def ranker(self, ranker):
        self._ranker = ranker

    @ranker.deleter
    def ranker(self):
        self._ranker = None

    @property
    def conversation_manager(self):
        """Lazy load conversation manager."""
        if self._conversation_manager is None:
            from services.conversation.manager import ConversationManager

            self._conversation_manager = ConversationManager(
                self.router,
                self.audio_cache,
                self.ranker,
                history_window=int(config.get_pipeline_value("conversation.history_window", 3)),
                session_ttl=timedelta(hours=float(config.get_pipeline_value("conversation.session_ttl_hours", 24))),
                max_tokens=int(config.get_pipeline_value("conversation.max_tokens", 500)),
                temperature=float(config.get_pipeline_value("conversation.temperature", 0.7)),
            )
        return self._conversation_manager

    @conversation_manager.setter
    def conversation_manager(self, manager):
        self._conversation_manager = manager

    @conversation_manager.deleter
    def conversation_manager(self):
        self._conversation_manager = None

    @property
    def slide_service(self):
        """Lazy load slide deck service."""
        if self._slide_service is None:
            from services.slides.service import build_slide_service

            self._slide_service = build_slide_service()
        return self._slide_service

    @slide_service.setter
    def slide_service(self, service):
        self._slide_service = service

    @slide_service.deleter
    def slide_service(self):
        self._slide_service = None

    async def start(self) -> None:
        """Start background work: pre-generation workers, the cache sweep and session expiry."""
        self.scheduler.start()
        interval = float(config.get_pipeline_value("audio_cache.sweep_interval_seconds", 3600))
        if interval > 0:
            self.audio_cache.start_periodic_sweep(interval)
        session_interval = float(config.get_pipeline_value("conversation.cleanup_interval_seconds", 3600))
        if session_interval > 0:
            self.conversation_manager.start_periodic_cleanup(session_interval)
        logger.info("Background services started")

    async def stop(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.shutdown()
        if self._audio_cache is not None:
            await self._audio_cache.stop_periodic_sweep()
        if self._conversation_manager is not None:
            await self._conversation_manager.stop_periodic_cleanup()
        logger.info("Background services stopped")

    def reset(self) -> None:
        """Forget every collaborator so the next access rebuilds from configuration."""
        self.__init__()


services = ServiceRegistry()
