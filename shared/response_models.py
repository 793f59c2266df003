"""
Common API response models.
"""

from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.errors import ServiceError
from shared.utils import utc_now


class ErrorResponse(BaseModel):
    """Standard API error response."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = Field(default=False, description="Always false for errors")
    message: str = Field(..., description="Error message")
    error: str | None = Field(None, description="Detailed error information")
    error_code: str | None = Field(None, description="Error code for programmatic handling")
    fallback_message: str | None = Field(None, description="Polite text safe to show to end users")
    details: dict[str, Any] | None = Field(None, description="Structured error context")
    timestamp: str | None = Field(None, description="Error timestamp")

    @classmethod
    def from_error(cls, exc: ServiceError, fallback_message: str | None = None) -> "ErrorResponse":
        return cls(
            message=exc.message,
            error=type(exc).__name__,
            error_code=exc.code,
            fallback_message=fallback_message,
            details=exc.details or None,
            timestamp=utc_now().isoformat(),
        )


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Service status")
    message: str = Field(..., description="Health check message")
    version: str | None = Field(None, description="Service version")
    uptime: float | None = Field(None, description="Service uptime in seconds")
    dependencies: dict[str, str] | None = Field(None, description="Dependency status")


def http_error(exc: ServiceError, fallback_message: str | None = None) -> HTTPException:
    """Translate a service error into an HTTPException carrying an ErrorResponse body."""
    body = ErrorResponse.from_error(exc, fallback_message)
    return HTTPException(
        status_code=exc.status_code,
        detail=body.model_dump(by_alias=True, exclude_none=True),
    )
