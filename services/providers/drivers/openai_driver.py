"""OpenAI driver covering text generation, vision and speech using AsyncOpenAI."""

from __future__ import annotations

import asyncio
import base64
import mimetypes
from pathlib import Path
from typing import Any, ClassVar

from openai import AsyncOpenAI

from shared.openai_client import create_openai_client
from shared.utils import config as service_config

from .base import SpeechDriver, SpeechResult, TextGenerationDriver, VisionDriver


class OpenAIDriver(TextGenerationDriver, VisionDriver, SpeechDriver):
    """Direct OpenAI implementation for all three capabilities."""

    SUPPORTED_VOICES: ClassVar[list[str]] = ["alloy", "echo", "fable", "onyx", "nova", "shimmer"]
    FORMAT_MIME_TYPES: ClassVar[dict[str, str]] = {
        "mp3": "audio/mpeg",
        "opus": "audio/ogg",
        "aac": "audio/aac",
        "flac": "audio/flac",
        "wav": "audio/wav",
    }

    def __init__(self, api_key: str | None = None, client: AsyncOpenAI | None = None) -> None:
        self.client = client or create_openai_client(api_key=api_key, async_client=True)
        self.text_model: str = service_config.get("openai_text_model", "gpt-4o-mini")
        self.vision_model: str = service_config.get("openai_vision_model", "gpt-4o-mini")
        self.tts_model: str = service_config.get("openai_tts_model", "tts-1")
        self.tts_voice: str = service_config.get("openai_tts_voice", "alloy")

    async def generate_text(self, prompt: str, **options: Any) -> str:
        messages: list[dict[str, Any]] = []
        system_prompt = options.get("system_prompt")
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=options.get("model", self.text_model),
            messages=messages,
            temperature=options.get("temperature", 0.7),
            max_tokens=options.get("max_tokens", 500),
        )

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise RuntimeError("OpenAI returned an empty completion")
        return content.strip()

    async def describe_image(self, image_ref: str, prompt: str, **options: Any) -> str:
        path = Path(image_ref)
        image_bytes = await asyncio.to_thread(path.read_bytes)
        mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
        data_url = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"

        response = await self.client.chat.completions.create(
            model=options.get("model", self.vision_model),
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                },
            ],
            max_tokens=options.get("max_tokens", 300),
        )

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise RuntimeError("OpenAI Vision returned an empty description")
        return content.strip()

    async def synthesize(self, text: str, **options: Any) -> SpeechResult:
        voice = options.get("voice", self.tts_voice)
        if voice not in self.SUPPORTED_VOICES:
            voice = "alloy"

        output_format = options.get("output_format", "mp3")
        if output_format not in self.FORMAT_MIME_TYPES:
            output_format = "mp3"

        # Clamp speed to valid range
        speed = max(0.25, min(4.0, float(options.get("speed", 1.0))))

        response = await self.client.audio.speech.create(
            model=options.get("model", self.tts_model),
            voice=voice,
            input=text,
            response_format=output_format,
            speed=speed,
        )

        audio_data = response.content
        if not audio_data:
            raise RuntimeError("OpenAI TTS returned empty audio")
        return SpeechResult(data=audio_data, mime_type=self.FORMAT_MIME_TYPES[output_format])
