"""Tests for provider routing, fallback and the provider drivers."""

import asyncio
import io
import wave
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeSpeechDriver, FakeTextDriver, FakeVisionDriver
from services.providers.app import app
from services.providers.drivers import AzureSpeechDriver, GroqTextDriver, OpenAIDriver
from services.providers.fallback import synthesize_fallback_tone, tone_duration
from services.providers.registry import build_router
from services.providers.router import ProviderRouter
from services.runtime import services
from shared.enums import SYNTHETIC_PROVIDER_ID, Capability
from shared.errors import ProvidersExhaustedError, ProviderUnavailableError


class TestRouting:
    @pytest.mark.asyncio
    async def test_speech_falls_back_to_next_provider(self):
        failing = FakeSpeechDriver(fail=True)
        working = FakeSpeechDriver(data=b"provider-b-audio")
        router = build_router({"speech-a": failing, "speech-b": working})

        result = await router.generate(Capability.SPEECH, "Hello audience")

        assert result.provider_id == "speech-b"
        assert result.speech.data == b"provider-b-audio"
        assert result.attempted == ["speech-a", "speech-b"]
        assert not result.synthetic
        assert failing.calls == 1

    @pytest.mark.asyncio
    async def test_slow_provider_counts_as_failure(self):
        router = ProviderRouter(timeout_seconds=0.05)
        router.register("slow", FakeTextDriver(delay=1))
        router.register("fast", FakeTextDriver(reply="fast answer"))

        result = await router.generate(Capability.TEXT_GEN, "prompt")

        assert result.provider_id == "fast"
        assert result.text == "fast answer"

    @pytest.mark.asyncio
    async def test_empty_text_is_treated_as_failure(self):
        router = build_router({"blank": FakeTextDriver(reply="   "), "real": FakeTextDriver(reply="content")})

        result = await router.generate(Capability.TEXT_GEN, "prompt")

        assert result.provider_id == "real"

    @pytest.mark.asyncio
    async def test_text_exhaustion_raises_with_attempts(self):
        router = build_router({"a": FakeTextDriver(fail=True), "b": FakeTextDriver(fail=True)})

        with pytest.raises(ProvidersExhaustedError) as exc_info:
            await router.generate(Capability.TEXT_GEN, "prompt")

        assert exc_info.value.code == "AI_GENERATION_FAILED"
        assert exc_info.value.details["attempted"] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_no_text_provider_is_unavailable(self):
        router = build_router({"speech": FakeSpeechDriver()})

        with pytest.raises(ProviderUnavailableError):
            await router.generate(Capability.TEXT_GEN, "prompt")

    @pytest.mark.asyncio
    async def test_speech_exhaustion_returns_synthetic_tone(self):
        router = build_router({"a": FakeSpeechDriver(fail=True)})

        result = await router.generate(Capability.SPEECH, "Short text")

        assert result.synthetic
        assert result.provider_id == SYNTHETIC_PROVIDER_ID
        assert result.speech.mime_type == "audio/wav"
        assert result.speech.data[:4] == b"RIFF"

    @pytest.mark.asyncio
    async def test_no_speech_provider_still_returns_playable_audio(self):
        router = build_router({"text": FakeTextDriver()})

        result = await router.generate(Capability.SPEECH, "Anything")

        assert result.synthetic
        assert result.speech.data

    @pytest.mark.asyncio
    async def test_vision_payload_is_forwarded(self):
        vision = FakeVisionDriver()
        router = build_router({"eyes": vision})

        result = await router.generate(Capability.VISION, {"image_ref": "/tmp/slide.png", "prompt": "describe"})

        assert result.text == vision.description
        assert vision.images == ["/tmp/slide.png"]


class TestOperationalToggles:
    def test_active_provider_is_tried_first(self):
        router = build_router({"a": FakeTextDriver(), "b": FakeTextDriver()})

        router.set_active(Capability.TEXT_GEN, "b")

        assert router.chain(Capability.TEXT_GEN) == ["b", "a"]
        descriptors = {descriptor.id: descriptor for descriptor in router.descriptors()}
        assert descriptors["b"].active_for == [Capability.TEXT_GEN]

    def test_set_active_validates_provider(self):
        router = build_router({"speech": FakeSpeechDriver()})

        with pytest.raises(KeyError):
            router.set_active(Capability.SPEECH, "missing")
        with pytest.raises(ValueError):
            router.set_active(Capability.TEXT_GEN, "speech")

    @pytest.mark.asyncio
    async def test_disabled_provider_is_skipped_until_enabled(self):
        first = FakeTextDriver(reply="first")
        router = build_router({"first": first, "second": FakeTextDriver(reply="second")})

        router.disable("first", "quota")
        assert (await router.generate(Capability.TEXT_GEN, "p")).provider_id == "second"
        assert first.calls == 0
        assert router.status()["disabled"] == {"first": "quota"}

        router.enable("first")
        assert (await router.generate(Capability.TEXT_GEN, "p")).provider_id == "first"

    @pytest.mark.asyncio
    async def test_failures_do_not_disable_providers(self):
        flaky = FakeTextDriver(fail=True)
        router = build_router({"flaky": flaky, "steady": FakeTextDriver()})

        await router.generate(Capability.TEXT_GEN, "p")
        flaky.fail = False
        result = await router.generate(Capability.TEXT_GEN, "p")

        assert result.provider_id == "flaky"

    def test_registering_non_driver_is_rejected(self):
        with pytest.raises(ValueError):
            ProviderRouter().register("bogus", object())


class TestRegistry:
    def test_providers_without_credentials_are_skipped(self, monkeypatch):
        monkeypatch.setattr("services.providers.registry.DRIVER_BUILDERS", {
            "openai": lambda: None,
            "groq": lambda: FakeTextDriver(),
            "azure": lambda: None,
            "huggingface": lambda: FakeSpeechDriver(),
        })

        router = build_router()

        assert [descriptor.id for descriptor in router.descriptors()] == ["groq", "huggingface"]
        assert router.has_capability(Capability.SPEECH)
        assert not router.has_capability(Capability.VISION)

    def test_each_capability_follows_its_own_order(self, monkeypatch):
        class TextAndSpeechDriver(FakeTextDriver, FakeSpeechDriver):
            def __init__(self):
                FakeTextDriver.__init__(self)
                FakeSpeechDriver.__init__(self)

        monkeypatch.setenv("PIPELINE_FLAG_PROVIDERS_ORDER_TEXT_GEN", "groq,openai")
        monkeypatch.setenv("PIPELINE_FLAG_PROVIDERS_ORDER_SPEECH", "azure,openai")
        monkeypatch.setattr("services.providers.registry.DRIVER_BUILDERS", {
            "openai": TextAndSpeechDriver,
            "groq": lambda: FakeTextDriver(),
            "azure": lambda: FakeSpeechDriver(),
            "huggingface": lambda: None,
        })

        router = build_router()

        assert router.chain(Capability.TEXT_GEN) == ["groq", "openai"]
        assert router.chain(Capability.SPEECH) == ["azure", "openai"]

    def test_unlisted_capability_ranks_after_listed_providers(self):
        router = ProviderRouter()
        router.register("both", FakeSpeechDriver(), priority=0, capability_priorities={})
        router.register("speaker", FakeSpeechDriver(), priority=5, capability_priorities={Capability.SPEECH: 0})

        assert router.chain(Capability.SPEECH) == ["speaker", "both"]


class TestFallbackTone:
    def test_duration_tracks_text_length_within_bounds(self):
        assert tone_duration("") == 1.0
        assert tone_duration("x" * 60) == pytest.approx(3.0)
        assert tone_duration("x" * 10000) == 8.0

    def test_tone_is_valid_wav(self):
        result = synthesize_fallback_tone("x" * 40)

        with wave.open(io.BytesIO(result.data)) as wav_file:
            assert wav_file.getnchannels() == 1
            assert wav_file.getframerate() == 16000
            assert wav_file.getnframes() == 32000


class TestDrivers:
    def _completion(self, content):
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    @pytest.mark.asyncio
    async def test_openai_text_generation(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=self._completion("  Narration text  "))
        driver = OpenAIDriver(client=client)

        text = await driver.generate_text("prompt", max_tokens=50, system_prompt="Be brief")

        assert text == "Narration text"
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["max_tokens"] == 50
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief"}

    @pytest.mark.asyncio
    async def test_openai_vision_sends_data_url(self, tmp_path):
        image = tmp_path / "slide.png"
        image.write_bytes(b"\x89PNG fake")
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=self._completion("A chart"))
        driver = OpenAIDriver(client=client)

        assert await driver.describe_image(str(image), "describe") == "A chart"
        content = client.chat.completions.create.await_args.kwargs["messages"][0]["content"]
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_openai_speech_maps_format(self):
        client = MagicMock()
        client.audio.speech.create = AsyncMock(return_value=SimpleNamespace(content=b"opus-bytes"))
        driver = OpenAIDriver(client=client)

        result = await driver.synthesize("Hello", voice="unknown-voice", output_format="opus", speed=9)

        assert result.mime_type == "audio/ogg"
        kwargs = client.audio.speech.create.await_args.kwargs
        assert kwargs["voice"] == "alloy"
        assert kwargs["speed"] == 4.0

    @pytest.mark.asyncio
    async def test_openai_empty_completion_raises(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=self._completion(""))

        with pytest.raises(RuntimeError):
            await OpenAIDriver(client=client).generate_text("prompt")

    @pytest.mark.asyncio
    async def test_groq_text_generation(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=self._completion("Answer"))

        assert await GroqTextDriver(client=client).generate_text("question") == "Answer"

    @pytest.mark.asyncio
    async def test_azure_escapes_ssml(self):
        response = MagicMock(status=200)
        response.read = AsyncMock(return_value=b"azure-audio")
        post_context = MagicMock()
        post_context.__aenter__ = AsyncMock(return_value=response)
        post_context.__aexit__ = AsyncMock(return_value=False)
        session = MagicMock()
        session.post = MagicMock(return_value=post_context)
        session_context = MagicMock()
        session_context.__aenter__ = AsyncMock(return_value=session)
        session_context.__aexit__ = AsyncMock(return_value=False)

        with patch("services.providers.drivers.azure_speech.aiohttp.ClientSession", return_value=session_context):
            result = await AzureSpeechDriver("key", "westeurope").synthesize("Profit & <loss>")

        assert result.data == b"azure-audio"
        ssml = session.post.call_args.kwargs["data"].decode("utf-8")
        assert "Profit &amp; &lt;loss&gt;" in ssml
        assert "xml:lang='en-US'" in ssml


class TestProvidersApi:
    @pytest.fixture
    def client(self):
        services.router = build_router({"text": FakeTextDriver(), "speech": FakeSpeechDriver()})
        with TestClient(app) as test_client:
            yield test_client

    def test_list_providers(self, client):
        response = client.get("/providers")

        assert response.status_code == 200
        body = response.json()
        assert [provider["id"] for provider in body] == ["text", "speech"]
        assert body[0]["activeFor"] == []

    def test_set_active_unknown_provider_is_404(self, client):
        response = client.post("/providers/speech/active", json={"providerId": "nope"})

        assert response.status_code == 404

    def test_set_active_wrong_capability_is_400(self, client):
        response = client.post("/providers/vision/active", json={"providerId": "speech"})

        assert response.status_code == 400

    def test_disable_and_enable(self, client):
        assert client.post("/providers/text/disable", params={"reason": "maintenance"}).json()["enabled"] is False
        status = client.get("/providers/status").json()
        assert status["disabled"] == {"text": "maintenance"}
        assert status["chains"]["text_gen"] == []

        assert client.post("/providers/text/enable").json()["enabled"] is True

    def test_health_reports_capabilities(self, client):
        body = client.get("/health").json()

        assert body["dependencies"] == {"text_gen": "available", "vision": "unavailable", "speech": "available"}
