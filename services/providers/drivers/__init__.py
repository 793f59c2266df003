"""Provider driver implementations"""

from .azure_speech import AzureSpeechDriver
from .base import SpeechDriver, SpeechResult, TextGenerationDriver, VisionDriver, capabilities_of
from .groq_driver import GroqTextDriver
from .huggingface_speech import HuggingFaceSpeechDriver
from .openai_driver import OpenAIDriver

__all__ = [
    "AzureSpeechDriver",
    "GroqTextDriver",
    "HuggingFaceSpeechDriver",
    "OpenAIDriver",
    "SpeechDriver",
    "SpeechResult",
    "TextGenerationDriver",
    "VisionDriver",
    "capabilities_of",
]
