"""Tests for the per-slide narration pipeline."""

import asyncio

import pytest

from conftest import FakeSpeechDriver, FakeTextDriver, FakeVisionDriver, make_slide
from services.audio_cache.fingerprint import audio_fingerprint
from services.narration.prompts import clean_narration, describe_from_text, template_narration
from services.narration.service import NarrationService, asset_hash_for
from services.providers.registry import build_router
from shared.enums import TEMPLATE_PROVIDER_ID, TEXT_ONLY_DESCRIPTION


@pytest.fixture
def narration_service(router, audio_cache):
    return NarrationService(router, audio_cache)


class TestPrompts:
    def test_clean_narration_strips_chatter(self):
        raw = 'Here\'s the narration for slide 2:\n"Wind power now supplies a fifth of demand."'

        assert clean_narration(raw) == "Wind power now supplies a fifth of demand."

    def test_clean_narration_caps_length_on_word_boundary(self):
        text = clean_narration("word " * 200, max_characters=50)

        assert len(text) <= 51
        assert text.endswith("word.")

    def test_template_narration_reads_slide_text(self):
        slide = make_slide(2, 5, title="Market outlook", body_text="Demand grows  steadily.")

        assert template_narration(slide) == "Slide 2 of 5. Market outlook. Demand grows steadily."

    def test_text_only_description_without_content(self):
        slide = make_slide(1, 1, title="", body_text="")

        assert "presentation slide" in describe_from_text(slide)


class TestNarrationService:
    @pytest.mark.asyncio
    async def test_generate_produces_text_and_cached_audio(self, narration_service, text_driver, speech_driver, audio_cache):
        slide = make_slide(1, 3)

        record = await narration_service.generate(slide)

        assert record.text == text_driver.reply
        assert record.generated_by == "fake-text"
        assert record.description_source == TEXT_ONLY_DESCRIPTION
        assert record.audio_ref == audio_fingerprint("deckhash", record.text)
        assert (await audio_cache.lookup(record.audio_ref)).data == speech_driver.data
        assert narration_service.current(slide.slide_key) == record

    @pytest.mark.asyncio
    async def test_vision_used_when_image_readable(self, tmp_path, audio_cache):
        image = tmp_path / "page-1.png"
        image.write_bytes(b"png")
        vision = FakeVisionDriver()
        text = FakeTextDriver()
        router = build_router({"vision": vision, "text": text, "speech": FakeSpeechDriver()})
        service = NarrationService(router, audio_cache, image_roots=[tmp_path])

        record = await service.generate(make_slide(1, 1, image_ref="page-1.png"))

        assert record.description_source == "vision"
        assert vision.images == [str(image)]
        assert vision.description in text.prompts[0]

    @pytest.mark.asyncio
    async def test_vision_failure_falls_back_to_text_only(self, tmp_path, audio_cache):
        image = tmp_path / "page-1.png"
        image.write_bytes(b"png")
        router = build_router({"vision": FakeVisionDriver(fail=True), "text": FakeTextDriver(), "speech": FakeSpeechDriver()})
        service = NarrationService(router, audio_cache)

        record = await service.generate(make_slide(1, 1, image_ref=str(image)))

        assert record.description_source == TEXT_ONLY_DESCRIPTION

    @pytest.mark.asyncio
    async def test_text_exhaustion_uses_template(self, audio_cache):
        router = build_router({"text": FakeTextDriver(fail=True), "speech": FakeSpeechDriver()})
        service = NarrationService(router, audio_cache)
        slide = make_slide(2, 3, title="Costs", body_text="Costs fell 40%.")

        record = await service.generate(slide)

        assert record.generated_by == TEMPLATE_PROVIDER_ID
        assert record.text == "Slide 2 of 3. Costs. Costs fell 40%."
        assert record.audio_ref is not None

    @pytest.mark.asyncio
    async def test_speech_failure_yields_synthetic_audio(self, audio_cache):
        router = build_router({"text": FakeTextDriver(), "speech": FakeSpeechDriver(fail=True)})
        service = NarrationService(router, audio_cache)

        record = await service.generate(make_slide())

        assert record.speech_provider == "synthetic-tone"
        assert record.mime_type == "audio/wav"

    @pytest.mark.asyncio
    async def test_audio_error_degrades_to_text_only(self, narration_service, monkeypatch):
        async def broken(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("services.narration.service.synthesize_cached", broken)

        record = await narration_service.generate(make_slide())

        assert record.text
        assert record.audio_ref is None
        assert narration_service.is_ready(record.slide_key)

    @pytest.mark.asyncio
    async def test_concurrent_generations_share_one_run(self, audio_cache):
        text = FakeTextDriver(delay=0.02)
        speech = FakeSpeechDriver()
        service = NarrationService(build_router({"text": text, "speech": speech}), audio_cache)
        slide = make_slide()

        first, second = await asyncio.gather(service.generate(slide), service.generate(slide))

        assert first is second
        assert text.calls == 1
        assert speech.calls == 1

    @pytest.mark.asyncio
    async def test_narrate_returns_ready_record_without_provider_calls(self, narration_service, text_driver):
        slide = make_slide()
        record = await narration_service.narrate(slide)

        again = await narration_service.narrate(slide)

        assert again is record
        assert text_driver.calls == 1

    @pytest.mark.asyncio
    async def test_regeneration_appends_history(self, narration_service):
        slide = make_slide()
        await narration_service.generate(slide)
        await narration_service.generate(slide)

        assert len(narration_service.records(slide.slide_key)) == 2
        assert narration_service.clear() == 2
        assert narration_service.current(slide.slide_key) is None

    def test_asset_hash_falls_back_to_reference(self):
        slide = make_slide(source_asset_hash=None, source_asset_ref="uploads/other.pptx")

        assert asset_hash_for(slide) != asset_hash_for(make_slide())
        assert asset_hash_for(slide) == asset_hash_for(make_slide(source_asset_hash=None, source_asset_ref="uploads/other.pptx"))

    def test_identical_uploads_share_an_asset_hash(self, tmp_path):
        (tmp_path / "a.pptx").write_bytes(b"same deck")
        (tmp_path / "b.pptx").write_bytes(b"same deck")
        first = make_slide(source_asset_hash=None, source_asset_ref="/uploads/a.pptx")
        second = make_slide(source_asset_hash=None, source_asset_ref="/uploads/b.pptx")

        assert asset_hash_for(first, [tmp_path]) == asset_hash_for(second, [tmp_path])

    @pytest.mark.asyncio
    async def test_reuploaded_deck_reuses_audio(self, router, audio_cache, speech_driver, tmp_path):
        (tmp_path / "monday.pptx").write_bytes(b"quarterly deck")
        (tmp_path / "tuesday.pptx").write_bytes(b"quarterly deck")
        service = NarrationService(router, audio_cache, image_roots=[tmp_path])

        first = await service.generate(make_slide(source_asset_hash=None, source_asset_ref="monday.pptx"))
        second = await service.generate(make_slide(source_asset_hash=None, source_asset_ref="tuesday.pptx"))

        assert first.slide_key != second.slide_key
        assert second.audio_fingerprint == first.audio_fingerprint
        assert speech_driver.calls == 1
