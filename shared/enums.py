"""
Enums and constants used across the application.
"""

from enum import Enum


class Capability(str, Enum):
    """Kinds of generation a provider may support."""

    TEXT_GEN = "text_gen"
    VISION = "vision"
    SPEECH = "speech"


class JobPriority(str, Enum):
    """Pre-generation priority. HIGH is the next slide, LOW the one after."""

    HIGH = "high"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Queue ordering key; lower is served first."""
        return 0 if self is JobPriority.HIGH else 1


class JobStatus(str, Enum):
    """Lifecycle of a pre-generation job."""

    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


class ReservationKind(str, Enum):
    """Outcome of reserving a fingerprint in the audio cache."""

    ALREADY_COMPLETE = "already_complete"
    ALREADY_PENDING = "already_pending"
    RESERVED = "reserved"


class Intent(str, Enum):
    """Conversational intents recognised by the heuristic classifier."""

    GREETING = "greeting"
    QUESTION = "question"
    CLARIFICATION = "clarification"
    SUMMARY = "summary"
    NAVIGATION = "navigation"
    FAREWELL = "farewell"
    UNKNOWN = "unknown"


class SessionState(str, Enum):
    """Conversation session lifecycle."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    EXPIRED = "expired"


SYNTHETIC_PROVIDER_ID = "synthetic-tone"
TEMPLATE_PROVIDER_ID = "template"
TEXT_ONLY_DESCRIPTION = "text-only"
CONVERSATION_ASSET_HASH = "conversation"
