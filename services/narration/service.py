"""Per-slide narration pipeline: describe, narrate, synthesize, record."""

import asyncio
from functools import partial
from pathlib import Path

from services.audio_cache.cache import AudioCache
from services.audio_cache.fingerprint import hash_text, source_asset_hash
from services.narration.prompts import (
    VISION_PROMPT,
    build_narration_prompt,
    clean_narration,
    describe_from_text,
    template_narration,
)
from services.narration.speech import synthesize_cached
from services.providers.router import ProviderRouter
from shared.enums import TEMPLATE_PROVIDER_ID, TEXT_ONLY_DESCRIPTION, Capability
from shared.errors import ProvidersExhaustedError, ProviderUnavailableError
from shared.models import NarrationRecord, Slide
from shared.utils import setup_logging

logger = setup_logging("narration-service")


def asset_hash_for(slide: Slide, search_roots: list[Path] | None = None) -> str:
    """Content hash of the slide's source file; blocking when the file has to be read."""
    if slide.source_asset_hash:
        return slide.source_asset_hash
    if slide.source_asset_ref:
        return source_asset_hash(slide.source_asset_ref, search_roots)
    return hash_text(f"slide:{slide.id}")


class NarrationService:
    """Generates and records narration for individual slides."""

    def __init__(
        self,
        router: ProviderRouter,
        audio_cache: AudioCache,
        max_tokens: int = 120,
        temperature: float = 0.6,
        max_characters: int = 500,
        image_roots: list[Path] | None = None,
    ) -> None:
        self.router = router
        self.audio_cache = audio_cache
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_characters = max_characters
        self.image_roots = image_roots or []
        self._records: dict[str, list[NarrationRecord]] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def current(self, slide_key: str) -> NarrationRecord | None:
        """Latest record for a slide key."""
        history = self._records.get(slide_key)
        return history[-1] if history else None

    def records(self, slide_key: str) -> list[NarrationRecord]:
        return list(self._records.get(slide_key, []))

    def is_ready(self, slide_key: str) -> bool:
        """True when a record exists and its audio (if any) is still servable."""
        record = self.current(slide_key)
        if record is None:
            return False
        if record.audio_fingerprint is None:
            return True
        return self.audio_cache.peek(record.audio_fingerprint) is not None

    async def narrate(self, slide: Slide) -> NarrationRecord:
        """Return the slide's current narration, generating it first when needed."""
        if self.is_ready(slide.slide_key):
            return self.current(slide.slide_key)
        return await self.generate(slide)

    async def generate(self, slide: Slide) -> NarrationRecord:
        """
        Run the narration pipeline for ``slide``.

        Concurrent callers for the same slide key share one run.
        """
        key = slide.slide_key
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._generate(slide))
            self._inflight[key] = task
            task.add_done_callback(partial(self._release, key))
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Narration run for {key} failed: {task.exception()}")

    async def _generate(self, slide: Slide) -> NarrationRecord:
        description, description_source = await self._describe(slide)
        text, generated_by = await self._narration_text(slide, description)

        audio_entry = None
        try:
            asset_hash = await asyncio.to_thread(asset_hash_for, slide, self.image_roots)
            audio_entry = await synthesize_cached(self.router, self.audio_cache, asset_hash, text)
        except Exception as e:
            logger.warning(f"Audio unavailable for slide {slide.slide_key}; continuing text-only: {e}")

        record = NarrationRecord(
            slide_id=slide.id,
            slide_key=slide.slide_key,
            text=text,
            audio_fingerprint=audio_entry.fingerprint if audio_entry else None,
            audio_ref=audio_entry.fingerprint if audio_entry else None,
            mime_type=audio_entry.mime_type if audio_entry else None,
            generated_by=generated_by,
            speech_provider=audio_entry.generated_by if audio_entry else None,
            description_source=description_source,
        )
        self._records.setdefault(slide.slide_key, []).append(record)
        logger.info(f"Narrated slide {slide.slide_key} via {generated_by} (audio: {record.speech_provider})")
        return record

    def _resolve_image(self, image_ref: str | None) -> Path | None:
        if not image_ref:
            return None
        for candidate in [Path(image_ref), *(root / image_ref for root in self.image_roots)]:
            if candidate.is_file():
                return candidate
        return None

    async def _describe(self, slide: Slide) -> tuple[str, str]:
        """Visual description and the provider (or text-only path) that produced it."""
        image_path = self._resolve_image(slide.image_ref)
        if image_path is None or not self.router.has_capability(Capability.VISION):
            return describe_from_text(slide), TEXT_ONLY_DESCRIPTION

        try:
            result = await self.router.generate(
                Capability.VISION,
                {"image_ref": str(image_path), "prompt": VISION_PROMPT},
            )
        except (ProvidersExhaustedError, ProviderUnavailableError) as e:
            logger.warning(f"Vision unavailable for slide {slide.slide_key}; using text-only description: {e.message}")
            return describe_from_text(slide), TEXT_ONLY_DESCRIPTION
        return result.text, result.provider_id

    async def _narration_text(self, slide: Slide, description: str) -> tuple[str, str]:
        prompt = build_narration_prompt(slide, description)
        try:
            result = await self.router.generate(
                Capability.TEXT_GEN,
                prompt,
                {"max_tokens": self.max_tokens, "temperature": self.temperature},
            )
        except (ProvidersExhaustedError, ProviderUnavailableError) as e:
            logger.warning(f"Text generation unavailable for slide {slide.slide_key}; using template: {e.message}")
            return template_narration(slide, self.max_characters), TEMPLATE_PROVIDER_ID

        text = clean_narration(result.text, self.max_characters)
        if not text:
            logger.warning(f"Provider {result.provider_id} returned no usable narration for {slide.slide_key}")
            return template_narration(slide, self.max_characters), TEMPLATE_PROVIDER_ID
        return text, result.provider_id

    def clear(self) -> int:
        """Forget every narration record. Returns how many were dropped."""
        count = sum(len(history) for history in self._records.values())
        self._records.clear()
        return count
