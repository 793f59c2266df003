"""
Last-resort speech output.

When every speech provider has failed the router still has to hand the UI
something playable, so it synthesizes a short, quiet tone whose length
follows the text length.
"""

import io
import math
import wave
from array import array

from shared.enums import SYNTHETIC_PROVIDER_ID

from .drivers.base import SpeechResult

SAMPLE_RATE = 16000
TONE_FREQUENCY_HZ = 440.0
AMPLITUDE = 0.2
SECONDS_PER_CHARACTER = 0.05
MIN_DURATION_SECONDS = 1.0
MAX_DURATION_SECONDS = 8.0
FADE_SECONDS = 0.05


def tone_duration(text: str) -> float:
    """Tone length in seconds for ``text``, clamped to a sane window."""
    raw = len(text.strip()) * SECONDS_PER_CHARACTER
    return max(MIN_DURATION_SECONDS, min(MAX_DURATION_SECONDS, raw))


def synthesize_fallback_tone(text: str) -> SpeechResult:
    """Return a deterministic mono 16-bit WAV tone sized to ``text``."""
    duration = tone_duration(text)
    total_frames = int(SAMPLE_RATE * duration)
    fade_frames = int(SAMPLE_RATE * FADE_SECONDS)
    peak = int(32767 * AMPLITUDE)

    samples = array("h")
    for index in range(total_frames):
        envelope = min(1.0, index / fade_frames, (total_frames - index) / fade_frames)
        value = math.sin(2 * math.pi * TONE_FREQUENCY_HZ * index / SAMPLE_RATE)
        samples.append(int(peak * envelope * value))

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(SAMPLE_RATE)
        wav_file.writeframes(samples.tobytes())

    return SpeechResult(data=buffer.getvalue(), mime_type="audio/wav")


__all__ = ["SYNTHETIC_PROVIDER_ID", "synthesize_fallback_tone", "tone_duration"]
