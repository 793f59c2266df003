"""Hugging Face inference API speech driver."""

from __future__ import annotations

from typing import Any, ClassVar

import aiohttp

from shared.utils import setup_logging

from .base import SpeechDriver, SpeechResult

logger = setup_logging("huggingface-speech")


class HuggingFaceSpeechDriver(SpeechDriver):
    """Tries several hosted TTS models in order until one returns audio."""

    BASE_URL: ClassVar[str] = "https://api-inference.huggingface.co/models"
    DEFAULT_MODELS: ClassVar[list[str]] = [
        "microsoft/speecht5_tts",
        "facebook/fastspeech2-en-ljspeech",
        "facebook/mms-tts-eng",
    ]
    SPEAKER_EMBEDDINGS: ClassVar[str] = (
        "https://huggingface.co/datasets/Matthijs/cmu-arctic-xvectors/resolve/main/"
        "cmu_us_bdl_arctic-wav-22050_16bit-mono-xvector.npy"
    )

    def __init__(self, token: str, models: list[str] | None = None, base_url: str | None = None) -> None:
        self.token = token
        self.models = models or list(self.DEFAULT_MODELS)
        self.base_url = base_url or self.BASE_URL

    async def synthesize(self, text: str, **options: Any) -> SpeechResult:
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }
        payload = {"inputs": text, "parameters": {"speaker_embeddings": self.SPEAKER_EMBEDDINGS}}
        errors: list[str] = []

        async with aiohttp.ClientSession() as session:
            for model in self.models:
                try:
                    async with session.post(f"{self.base_url}/{model}", json=payload, headers=headers) as resp:
                        if resp.status != 200:
                            errors.append(f"{model}: {resp.status}")
                            logger.warning(f"HF model {model} failed: {resp.status} - {await resp.text()}")
                            continue
                        audio_data = await resp.read()
                        mime_type = resp.headers.get("Content-Type", "audio/flac").split(";")[0]
                except aiohttp.ClientError as exc:
                    errors.append(f"{model}: {exc}")
                    logger.warning(f"HF model {model} request error: {exc}")
                    continue

                if not audio_data:
                    errors.append(f"{model}: empty audio")
                    logger.warning(f"HF model {model} returned empty audio")
                    continue

                logger.info(f"HF TTS succeeded with {model} ({len(audio_data)} bytes)")
                return SpeechResult(data=audio_data, mime_type=mime_type)

        raise RuntimeError(f"All Hugging Face TTS models failed: {errors}")
