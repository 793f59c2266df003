"""
Content-addressed audio cache with single-flight generation.

``reserve`` is the only mutual-exclusion point for audio generation. It never
awaits, so within one event loop the check-and-claim is atomic: the first
caller for a fingerprint gets ``RESERVED`` and every concurrent caller gets
``ALREADY_PENDING`` with a handle it can await.
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field

from shared.enums import ReservationKind
from shared.errors import CacheReservationError
from shared.models import AudioCacheEntry, AudioCacheInfo
from shared.utils import config as service_config, initialize_storage_root, setup_logging, utc_now

from .store import AudioCacheStore, FileAudioCacheStore, InMemoryAudioCacheStore

logger = setup_logging("audio-cache")

DEFAULT_TTL = timedelta(days=30)
DEFAULT_SYNTHETIC_TTL = timedelta(minutes=10)


class GeneratedAudio(BaseModel):
    """What a generation factory hands back to the cache."""

    data: bytes = Field(repr=False)
    mime_type: str = "audio/mpeg"
    generated_by: str
    synthetic: bool = False


class Reservation(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: ReservationKind
    fingerprint: str
    info: AudioCacheInfo | None = None
    handle: asyncio.Future | None = Field(default=None, exclude=True)


class AudioCache:
    """Audio cache keyed by fingerprint with at most one generation in flight per key."""

    def __init__(
        self,
        store: AudioCacheStore | None = None,
        ttl: timedelta = DEFAULT_TTL,
        synthetic_ttl: timedelta = DEFAULT_SYNTHETIC_TTL,
    ) -> None:
        self.store = store or InMemoryAudioCacheStore()
        self.ttl = ttl
        self.synthetic_ttl = synthetic_ttl
        self._pending: dict[str, asyncio.Future] = {}
        self._sweep_task: asyncio.Task | None = None
        self._hits = 0
        self._misses = 0
        self._generations = 0

    def _is_expired(self, info: AudioCacheInfo, ttl: timedelta | None = None) -> bool:
        limit = ttl if ttl is not None else self.ttl
        if info.synthetic:
            limit = min(limit, self.synthetic_ttl)
        return utc_now() - info.created_at > limit

    def _fresh_info(self, fingerprint: str) -> AudioCacheInfo | None:
        info = self.store.info(fingerprint)
        if info is None or self._is_expired(info):
            return None
        return info

    async def lookup(self, fingerprint: str) -> AudioCacheEntry | None:
        """Return the committed entry, or None when absent or expired."""
        if self._fresh_info(fingerprint) is None:
            self._misses += 1
            return None
        entry = await self.store.read(fingerprint)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry

    def peek(self, fingerprint: str) -> AudioCacheInfo | None:
        """Metadata for a fresh committed entry without loading its bytes."""
        return self._fresh_info(fingerprint)

    def is_pending(self, fingerprint: str) -> bool:
        return fingerprint in self._pending

    def reserve(self, fingerprint: str) -> Reservation:
        """Claim the right to generate ``fingerprint``, or learn who already has it."""
        handle = self._pending.get(fingerprint)
        if handle is not None:
            return Reservation(kind=ReservationKind.ALREADY_PENDING, fingerprint=fingerprint, handle=handle)

        info = self._fresh_info(fingerprint)
        if info is not None:
            return Reservation(kind=ReservationKind.ALREADY_COMPLETE, fingerprint=fingerprint, info=info)

        self._pending[fingerprint] = asyncio.get_running_loop().create_future()
        logger.debug(f"Reserved {fingerprint}")
        return Reservation(kind=ReservationKind.RESERVED, fingerprint=fingerprint)

    async def commit(
        self,
        fingerprint: str,
        data: bytes,
        mime_type: str = "audio/mpeg",
        generated_by: str = "unknown",
        synthetic: bool = False,
    ) -> AudioCacheEntry:
        """Store generated audio for a reserved fingerprint and release its waiters."""
        if fingerprint not in self._pending:
            raise CacheReservationError(
                f"Cannot commit {fingerprint}: not reserved",
                details={"fingerprint": fingerprint},
            )

        entry = AudioCacheEntry(
            fingerprint=fingerprint,
            byte_length=len(data),
            data=data,
            mime_type=mime_type,
            generated_by=generated_by,
            synthetic=synthetic,
        )
        try:
            await self.store.write(entry)
        except Exception:
            self.abandon(fingerprint)
            raise

        handle = self._pending.pop(fingerprint)
        if not handle.done():
            handle.set_result(entry)
        self._generations += 1
        logger.info(f"Cached {len(data)} bytes for {fingerprint} from {generated_by}")
        return entry

    def abandon(self, fingerprint: str) -> None:
        """Release a reservation without storing anything; waiters will retry."""
        handle = self._pending.pop(fingerprint, None)
        if handle is None:
            raise CacheReservationError(
                f"Cannot abandon {fingerprint}: not reserved",
                details={"fingerprint": fingerprint},
            )
        if not handle.done():
            handle.set_result(None)
        logger.debug(f"Abandoned reservation for {fingerprint}")

    async def wait(self, handle: asyncio.Future, timeout: float | None = None) -> AudioCacheEntry | None:
        """
        Wait for a pending generation.

        Cancelling the waiter (or hitting ``timeout``) never cancels the
        generation itself. Returns None when the owner abandoned.
        """
        if timeout is None:
            return await asyncio.shield(handle)
        return await asyncio.wait_for(asyncio.shield(handle), timeout)

    async def get_or_generate(
        self,
        fingerprint: str,
        factory: Callable[[], Awaitable[GeneratedAudio]],
    ) -> AudioCacheEntry:
        """Return cached audio, joining or running the single generation for ``fingerprint``."""
        while True:
            reservation = self.reserve(fingerprint)

            if reservation.kind is ReservationKind.ALREADY_COMPLETE:
                entry = await self.lookup(fingerprint)
                if entry is not None:
                    return entry
                continue

            if reservation.kind is ReservationKind.ALREADY_PENDING:
                entry = await self.wait(reservation.handle)
                if entry is not None:
                    self._hits += 1
                    return entry
                logger.debug(f"Owner abandoned {fingerprint}; retrying reservation")
                continue

            try:
                generated = await factory()
            except BaseException:
                self.abandon(fingerprint)
                raise
            return await self.commit(
                fingerprint,
                generated.data,
                mime_type=generated.mime_type,
                generated_by=generated.generated_by,
                synthetic=generated.synthetic,
            )

    async def sweep_expired(self, ttl: timedelta | None = None) -> int:
        """Remove committed entries older than ``ttl``. Pending reservations are untouched."""
        removed = 0
        for info in self.store.infos():
            if info.fingerprint in self._pending:
                continue
            if self._is_expired(info, ttl) and await self.store.delete(info.fingerprint):
                removed += 1
        if removed:
            logger.info(f"Audio cache sweep removed {removed} expired entries")
        return removed

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_expired()
            except Exception as e:
                logger.error(f"Audio cache sweep failed: {e}")

    def start_periodic_sweep(self, interval: float) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop(interval))
        logger.info(f"Started audio cache sweep every {interval}s")

    async def stop_periodic_sweep(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def clear(self) -> int:
        """Drop every committed entry. Pending reservations are untouched."""
        removed = await self.store.clear()
        logger.info(f"Cleared {removed} cached audio entries")
        return removed

    def stats(self) -> dict[str, Any]:
        infos = self.store.infos()
        return {
            "backend": self.store.backend_name,
            "entries": len(infos),
            "total_bytes": sum(info.byte_length for info in infos),
            "synthetic_entries": sum(1 for info in infos if info.synthetic),
            "pending": len(self._pending),
            "hits": self._hits,
            "misses": self._misses,
            "generations": self._generations,
            "ttl_days": self.ttl.total_seconds() / 86400,
            "synthetic_ttl_seconds": self.synthetic_ttl.total_seconds(),
        }


def build_audio_cache(cache_root: str | None = None) -> AudioCache:
    """Create the cache configured in the pipeline file (memory or disk backend)."""
    backend = service_config.get_pipeline_value("audio_cache.backend", "disk")
    ttl_days = float(service_config.get_pipeline_value("audio_cache.ttl_days", 30))
    synthetic_ttl = float(service_config.get_pipeline_value("audio_cache.synthetic_ttl_seconds", 600))

    if backend == "memory":
        store: AudioCacheStore = InMemoryAudioCacheStore()
    else:
        media_root = Path(service_config.get("media_root", "./media"))
        target = Path(cache_root) if cache_root else media_root / "audio-cache"
        root = initialize_storage_root(target, Path.cwd() / "media" / "audio-cache", logger)
        store = FileAudioCacheStore(root)

    return AudioCache(
        store=store,
        ttl=timedelta(days=ttl_days),
        synthetic_ttl=timedelta(seconds=synthetic_ttl),
    )
