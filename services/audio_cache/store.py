"""
Storage backends for cached audio.

Metadata for every entry is indexed in memory so membership checks never
block; audio bytes are read and written through awaitables so the disk
backend can push file I/O onto a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import mimetypes
import os
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from shared.models import AudioCacheEntry, AudioCacheInfo
from shared.utils import ensure_directory, setup_logging

logger = setup_logging("audio-cache-store")

EXTENSION_OVERRIDES = {
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/flac": ".flac",
}


def extension_for(mime_type: str) -> str:
    return EXTENSION_OVERRIDES.get(mime_type) or mimetypes.guess_extension(mime_type) or ".bin"


class AudioCacheStore(ABC):
    """Abstract backend holding committed audio entries."""

    backend_name = "abstract"

    @abstractmethod
    def info(self, fingerprint: str) -> AudioCacheInfo | None:
        """Metadata for a stored entry, without touching the payload."""

    @abstractmethod
    def infos(self) -> list[AudioCacheInfo]:
        """Metadata for every stored entry."""

    @abstractmethod
    async def read(self, fingerprint: str) -> AudioCacheEntry | None:
        """Load a stored entry including its bytes."""

    @abstractmethod
    async def write(self, entry: AudioCacheEntry) -> None:
        """Persist an entry, replacing any previous one with the same fingerprint."""

    @abstractmethod
    async def delete(self, fingerprint: str) -> bool:
        """Remove an entry. Returns True when something was removed."""

    async def clear(self) -> int:
        removed = 0
        for info in self.infos():
            if await self.delete(info.fingerprint):
                removed += 1
        return removed

    def __len__(self) -> int:
        return len(self.infos())


class InMemoryAudioCacheStore(AudioCacheStore):
    backend_name = "memory"

    def __init__(self) -> None:
        self._entries: dict[str, AudioCacheEntry] = {}

    def info(self, fingerprint: str) -> AudioCacheInfo | None:
        entry = self._entries.get(fingerprint)
        return entry.info() if entry else None

    def infos(self) -> list[AudioCacheInfo]:
        return [entry.info() for entry in self._entries.values()]

    async def read(self, fingerprint: str) -> AudioCacheEntry | None:
        return self._entries.get(fingerprint)

    async def write(self, entry: AudioCacheEntry) -> None:
        self._entries[entry.fingerprint] = entry

    async def delete(self, fingerprint: str) -> bool:
        return self._entries.pop(fingerprint, None) is not None

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count


class FileAudioCacheStore(AudioCacheStore):
    """Directory of ``<fingerprint><ext>`` payloads with JSON sidecar metadata."""

    backend_name = "disk"

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        ensure_directory(str(self.root))
        self._index: dict[str, AudioCacheInfo] = {}
        self._load_index()

    def _load_index(self) -> None:
        for sidecar in self.root.glob("*.json"):
            try:
                info = AudioCacheInfo.model_validate_json(sidecar.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as exc:
                logger.warning(f"Ignoring unreadable cache metadata {sidecar.name}: {exc}")
                continue
            if not self._payload_path(info).exists():
                logger.warning(f"Cache metadata {sidecar.name} has no payload; ignoring")
                continue
            self._index[info.fingerprint] = info
        logger.info(f"Loaded {len(self._index)} cached audio entries from {self.root}")

    def _payload_path(self, info: AudioCacheInfo) -> Path:
        return self.root / f"{info.fingerprint}{extension_for(info.mime_type)}"

    def _sidecar_path(self, fingerprint: str) -> Path:
        return self.root / f"{fingerprint}.json"

    def info(self, fingerprint: str) -> AudioCacheInfo | None:
        return self._index.get(fingerprint)

    def infos(self) -> list[AudioCacheInfo]:
        return list(self._index.values())

    async def read(self, fingerprint: str) -> AudioCacheEntry | None:
        info = self._index.get(fingerprint)
        if info is None:
            return None
        try:
            data = await asyncio.to_thread(self._payload_path(info).read_bytes)
        except FileNotFoundError:
            logger.warning(f"Cached audio for {fingerprint} vanished from disk; dropping index entry")
            self._index.pop(fingerprint, None)
            return None
        return AudioCacheEntry(**info.model_dump(), data=data)

    async def write(self, entry: AudioCacheEntry) -> None:
        info = entry.info()
        previous = self._index.get(entry.fingerprint)
        await asyncio.to_thread(self._write_files, info, entry.data, previous)
        self._index[entry.fingerprint] = info

    def _write_files(self, info: AudioCacheInfo, data: bytes, previous: AudioCacheInfo | None) -> None:
        payload_path = self._payload_path(info)
        tmp_path = payload_path.with_suffix(payload_path.suffix + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, payload_path)
        self._sidecar_path(info.fingerprint).write_text(info.model_dump_json(), encoding="utf-8")
        if previous is not None and self._payload_path(previous) != payload_path:
            self._payload_path(previous).unlink(missing_ok=True)

    async def delete(self, fingerprint: str) -> bool:
        info = self._index.pop(fingerprint, None)
        if info is None:
            return False
        await asyncio.to_thread(self._delete_files, info)
        return True

    def _delete_files(self, info: AudioCacheInfo) -> None:
        self._payload_path(info).unlink(missing_ok=True)
        self._sidecar_path(info.fingerprint).unlink(missing_ok=True)
