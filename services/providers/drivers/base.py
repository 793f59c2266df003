from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shared.enums import Capability


class SpeechResult(BaseModel):
    """Raw audio returned by a speech driver."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    mime_type: str = "audio/mpeg"


class TextGenerationDriver(ABC):
    """Abstract base class for text generation drivers."""

    @abstractmethod
    async def generate_text(self, prompt: str, **options: Any) -> str:
        """Generate text for the prompt. Options include max_tokens, temperature and system_prompt."""
        pass


class VisionDriver(ABC):
    """Abstract base class for image description drivers."""

    @abstractmethod
    async def describe_image(self, image_ref: str, prompt: str, **options: Any) -> str:
        """Describe the image at ``image_ref`` (a readable file path)."""
        pass


class SpeechDriver(ABC):
    """Abstract base class for speech synthesis drivers."""

    @abstractmethod
    async def synthesize(self, text: str, **options: Any) -> SpeechResult:
        """Synthesize speech from text."""
        pass


def capabilities_of(driver: Any) -> list[Capability]:
    """Capabilities a driver supports, derived from the interfaces it implements."""
    capabilities: list[Capability] = []
    if isinstance(driver, TextGenerationDriver):
        capabilities.append(Capability.TEXT_GEN)
    if isinstance(driver, VisionDriver):
        capabilities.append(Capability.VISION)
    if isinstance(driver, SpeechDriver):
        capabilities.append(Capability.SPEECH)
    return capabilities
