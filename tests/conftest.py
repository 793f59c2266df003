import asyncio
import sys
from pathlib import Path
from typing import Any, Generator

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from services.audio_cache.cache import AudioCache
from services.audio_cache.store import InMemoryAudioCacheStore
from services.providers.drivers.base import SpeechDriver, SpeechResult, TextGenerationDriver, VisionDriver
from services.providers.registry import build_router
from services.runtime import services
from shared.models import Slide
from shared.utils import config as service_config, ensure_directory


class FakeTextDriver(TextGenerationDriver):
    """Text driver returning canned replies and recording prompts."""

    def __init__(self, reply: str = "This slide explains the wind turbine rollout.", fail: bool = False, delay: float = 0):
        self.reply = reply
        self.fail = fail
        self.delay = delay
        self.prompts: list[str] = []

    async def generate_text(self, prompt: str, **options: Any) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("quota exceeded")
        return self.reply

    @property
    def calls(self) -> int:
        return len(self.prompts)


class FakeVisionDriver(VisionDriver):
    def __init__(self, description: str = "A bar chart of turbine output by region.", fail: bool = False):
        self.description = description
        self.fail = fail
        self.images: list[str] = []

    async def describe_image(self, image_ref: str, prompt: str, **options: Any) -> str:
        self.images.append(image_ref)
        if self.fail:
            raise RuntimeError("vision model overloaded")
        return self.description


class FakeSpeechDriver(SpeechDriver):
    def __init__(self, data: bytes = b"ID3-fake-mp3-" + bytes(range(256)), fail: bool = False, delay: float = 0):
        self.data = data
        self.fail = fail
        self.delay = delay
        self.texts: list[str] = []

    async def synthesize(self, text: str, **options: Any) -> SpeechResult:
        self.texts.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("speech service unavailable")
        return SpeechResult(data=self.data, mime_type="audio/mpeg")

    @property
    def calls(self) -> int:
        return len(self.texts)


def make_slide(ordinal: int = 1, total: int = 3, **overrides: Any) -> Slide:
    fields = {
        "id": str(ordinal),
        "ordinal": ordinal,
        "total_count": total,
        "title": f"Slide title {ordinal}",
        "body_text": f"Body text for slide {ordinal}",
        "source_asset_ref": "uploads/deck.pptx",
        "source_asset_hash": "deckhash",
    }
    fields.update(overrides)
    return Slide(**fields)


def make_slides(total: int = 3) -> list[Slide]:
    return [make_slide(ordinal, total) for ordinal in range(1, total + 1)]


@pytest.fixture(autouse=True)
def test_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point storage at a temp dir, keep caches in memory and drop shared services between tests."""
    media_root = tmp_path / "media"
    uploads_root = tmp_path / "uploads"
    ensure_directory(str(media_root))
    ensure_directory(str(uploads_root))

    monkeypatch.setenv("MEDIA_ROOT", str(media_root))
    monkeypatch.setenv("PIPELINE_FLAG_AUDIO_CACHE_BACKEND", "memory")
    monkeypatch.setenv("PIPELINE_FLAG_PREGENERATION_LOW_PRIORITY_DELAY_SECONDS", "0.05")
    monkeypatch.setenv("PIPELINE_FLAG_AUDIO_CACHE_SWEEP_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("PIPELINE_FLAG_CONVERSATION_CLEANUP_INTERVAL_SECONDS", "0")
    service_config.set("media_root", str(media_root))
    service_config.set("uploads_root", str(uploads_root))

    services.reset()
    try:
        yield tmp_path
    finally:
        services.reset()


@pytest.fixture
def text_driver() -> FakeTextDriver:
    return FakeTextDriver()


@pytest.fixture
def speech_driver() -> FakeSpeechDriver:
    return FakeSpeechDriver()


@pytest.fixture
def router(text_driver: FakeTextDriver, speech_driver: FakeSpeechDriver):
    return build_router({"fake-text": text_driver, "fake-speech": speech_driver})


@pytest.fixture
def audio_cache() -> AudioCache:
    return AudioCache(InMemoryAudioCacheStore())


@pytest.fixture
def wired_services(router, audio_cache):
    """Shared service registry backed by fake providers."""
    services.router = router
    services.audio_cache = audio_cache
    return services
