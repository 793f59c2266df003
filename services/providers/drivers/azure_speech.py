from typing import Any
from xml.sax.saxutils import escape

import aiohttp

from .base import SpeechDriver, SpeechResult


class AzureSpeechDriver(SpeechDriver):
    """Azure Cognitive Services TTS implementation."""

    def __init__(self, api_key: str, region: str, voice: str = "en-US-AriaNeural"):
        self.api_key = api_key
        self.region = region
        self.voice = voice
        self.endpoint = f"https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"

    async def synthesize(self, text: str, **options: Any) -> SpeechResult:
        voice = options.get("voice", self.voice)
        speed = float(options.get("speed", 1.0))
        output_format = options.get("output_format", "mp3")
        locale = options.get("language") or self._derive_language_from_voice(voice)

        headers = {
            "Ocp-Apim-Subscription-Key": self.api_key,
            "Content-Type": "application/ssml+xml",
            "X-Microsoft-OutputFormat": self._map_output_format(output_format),
            "User-Agent": "slide-narration-service",
        }
        # 1.0 -> 100%, 1.5 -> 150%
        rate_percent = f"{speed * 100:g}%"

        ssml = (
            f"<speak version='1.0' xml:lang='{locale}'>"
            f"<voice xml:lang='{locale}' name='{voice}'>"
            f"<prosody rate='{rate_percent}'>{escape(text)}</prosody>"
            f"</voice></speak>"
        )
        async with (
            aiohttp.ClientSession() as session,
            session.post(self.endpoint, data=ssml.encode("utf-8"), headers=headers) as resp,
        ):
            if resp.status != 200:
                raise RuntimeError(f"Azure TTS failed: {resp.status} {await resp.text()}")
            audio_data = await resp.read()

        if not audio_data:
            raise RuntimeError("Azure TTS returned empty audio")
        mime_type = "audio/wav" if output_format == "wav" else "audio/mpeg"
        return SpeechResult(data=audio_data, mime_type=mime_type)

    @staticmethod
    def _map_output_format(output_format: str) -> str:
        if output_format == "wav":
            return "riff-24khz-16bit-mono-pcm"
        return "audio-16khz-128kbitrate-mono-mp3"

    @staticmethod
    def _derive_language_from_voice(voice: str) -> str:
        parts = voice.split("-")
        if len(parts) >= 2:
            return f"{parts[0]}-{parts[1]}"
        return "en-US"
