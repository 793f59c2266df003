from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from shared.enums import Capability, Intent, JobPriority, JobStatus, SessionState
from shared.utils import utc_now


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Domain models
class Slide(CamelModel):
    """One page produced by the conversion collaborator. Never mutated."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    ordinal: int = Field(..., ge=1, description="1-based position in the deck")
    total_count: int = Field(..., ge=1)
    title: str = ""
    body_text: str = ""
    image_ref: str | None = Field(default=None, description="Opaque handle to the page image")
    source_asset_ref: str | None = None
    source_asset_hash: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "Slide":
        if self.ordinal > self.total_count:
            raise ValueError(f"ordinal {self.ordinal} exceeds total_count {self.total_count}")
        return self

    @property
    def slide_key(self) -> str:
        """Identity of the slide across requests and presentations."""
        asset = self.source_asset_hash or self.source_asset_ref or "unbound"
        return f"{asset}:{self.id}"


class NarrationRecord(CamelModel):
    slide_id: str
    slide_key: str
    text: str
    audio_fingerprint: str | None = None
    audio_ref: str | None = None
    mime_type: str | None = None
    generated_by: str
    speech_provider: str | None = None
    description_source: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class AudioCacheInfo(CamelModel):
    """Metadata for a cached audio payload."""

    fingerprint: str
    byte_length: int = Field(..., ge=0)
    mime_type: str = "audio/mpeg"
    generated_by: str
    synthetic: bool = False
    created_at: datetime = Field(default_factory=utc_now)


class AudioCacheEntry(AudioCacheInfo):
    data: bytes = Field(repr=False, exclude=True)

    def info(self) -> AudioCacheInfo:
        return AudioCacheInfo.model_validate(self.model_dump())


class PreGenerationJob(CamelModel):
    slide_key: str
    slide_id: str
    ordinal: int
    priority: JobPriority
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    error: str | None = None
    record: NarrationRecord | None = None


class SlideSummary(CamelModel):
    """Slide entry inside a conversation's slide context."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    ordinal: int | None = None
    title: str = ""
    content: str = ""
    text: str = ""
    narration: str = ""
    summary: str = ""

    @property
    def searchable_text(self) -> str:
        return " ".join(part for part in (self.content, self.text, self.narration, self.summary) if part)


class SlideContext(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    title: str | None = None
    current_slide: int | None = None
    slides: list[SlideSummary] = Field(default_factory=list)


class RelevantSlide(CamelModel):
    slide_ordinal: int
    score: float = Field(..., ge=0.0, le=1.0)
    title: str = ""
    reason: str | None = None


class Turn(CamelModel):
    timestamp: datetime
    user_input: str
    detected_intent: Intent
    confidence: float = Field(..., ge=0.0, le=1.0)
    response_text: str
    response_audio_ref: str | None = None
    relevant_slides: list[RelevantSlide] = Field(default_factory=list)
    latency_ms: float


class SessionMetrics(CamelModel):
    total_questions: int = 0
    failed_requests: int = 0
    average_response_time_ms: float = 0.0
    intent_counts: dict[str, int] = Field(default_factory=dict)


class ConversationSession(CamelModel):
    session_id: str
    created_at: datetime = Field(default_factory=utc_now)
    last_active_at: datetime = Field(default_factory=utc_now)
    slide_context: SlideContext = Field(default_factory=SlideContext)
    history: list[Turn] = Field(default_factory=list)
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)


class ProviderDescriptor(CamelModel):
    id: str
    capabilities: list[Capability]
    priority: int
    enabled: bool = True
    active_for: list[Capability] = Field(default_factory=list)


# Request/Response Models
class NarrateRequest(CamelModel):
    slide: Slide


class NarrateResponse(CamelModel):
    slide_id: str
    narration_text: str
    audio_ref: str | None = None
    audio_url: str | None = None
    generated_by: str
    status: JobStatus = JobStatus.READY
    cached: bool = False


class PregenerateRequest(CamelModel):
    slide: Slide
    priority: JobPriority = JobPriority.HIGH
    wait: bool = Field(default=True, description="Block until the job settles")


class PregenerateResponse(CamelModel):
    slide_id: str
    status: JobStatus
    narration_text: str | None = None
    audio_ref: str | None = None
    audio_url: str | None = None
    error: str | None = None


class AdvanceRequest(CamelModel):
    slides: list[Slide] = Field(..., min_length=1)
    current_index: int = Field(..., ge=0, description="0-based index of the slide now playing")


class AdvanceResponse(CamelModel):
    current_index: int
    scheduled: list[PreGenerationJob]
    deferred: list[str] = Field(default_factory=list, description="Slide keys queued after the delay")


class CleanupRequest(CamelModel):
    max_age_days: float | None = Field(default=None, ge=0)
    audio: bool = True
    sessions: bool = True


class CleanupResponse(CamelModel):
    removed: dict[str, int]
    total: int


class SessionInitRequest(CamelModel):
    session_id: str | None = None
    slide_context: SlideContext | None = None


class SessionInitResponse(CamelModel):
    success: bool = True
    session_id: str
    created_at: datetime
    message: str = "Conversation session initialized successfully"


class ContextUpdateRequest(CamelModel):
    slide_context: SlideContext | None = None


class ChatOptions(CamelModel):
    generate_audio: bool = True
    max_tokens: int | None = Field(default=None, ge=1, le=4000)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)


class ChatRequest(CamelModel):
    session_id: str | None = None
    message: str | None = None
    slide_context: SlideContext | None = None
    options: ChatOptions = Field(default_factory=ChatOptions)


class ChatResponse(CamelModel):
    success: bool = True
    session_id: str
    message: str
    audio_ref: str | None = None
    audio_url: str | None = None
    intent: Intent
    confidence: float
    relevant_slides: list[RelevantSlide]
    response_time_ms: float
    timestamp: datetime
    history: list[Turn] = Field(default_factory=list)


class AnalyticsResponse(CamelModel):
    session_id: str
    question_count: int
    failed_requests: int
    average_response_time_ms: float
    intent_distribution: dict[str, int]
    session_duration_seconds: float
    conversation_length: int
    last_active_at: datetime


class IntentDetectRequest(CamelModel):
    message: str | None = None


class IntentDetectResponse(CamelModel):
    intent: Intent
    confidence: float
    raw_input: str


class SlidesProcessRequest(CamelModel):
    files: list[str] = Field(..., min_length=1)


class SlidesProcessResponse(CamelModel):
    slides: list[Slide]


class ActiveProviderRequest(CamelModel):
    provider_id: str


class SessionSummary(CamelModel):
    session_id: str
    state: SessionState
    created_at: datetime
    last_active_at: datetime
    total_questions: int
    slide_count: int
    presentation_title: str | None = None
    recent_questions: list[dict[str, str]] = Field(default_factory=list)
    history: list[Turn] | None = None


class SessionListResponse(CamelModel):
    sessions: list[SessionSummary]
    total_sessions: int


class SessionCleanupRequest(CamelModel):
    max_age_hours: float | None = Field(default=None, ge=0)
