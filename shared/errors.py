"""
Error taxonomy shared by the services.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer maps it to.
"""

from typing import Any


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}


class ProviderUnavailableError(ServiceError):
    """No provider is configured (or enabled) for a capability."""

    code = "PROVIDER_UNAVAILABLE"
    status_code = 503


class ProviderFailureError(ServiceError):
    """A specific provider timed out, hit a quota or returned garbage."""

    code = "PROVIDER_FAILURE"
    status_code = 502

    def __init__(self, provider_id: str, message: str) -> None:
        super().__init__(f"{provider_id}: {message}", details={"provider": provider_id})
        self.provider_id = provider_id


class ProvidersExhaustedError(ServiceError):
    """Every provider for a capability failed."""

    code = "AI_GENERATION_FAILED"
    status_code = 503

    def __init__(self, capability: str, failures: list[ProviderFailureError]) -> None:
        attempted = [failure.provider_id for failure in failures]
        super().__init__(
            f"All {capability} providers failed (attempted: {attempted})",
            details={"capability": capability, "attempted": attempted},
        )
        self.capability = capability
        self.failures = failures


class InvalidInputError(ServiceError):
    """Request is missing or has malformed required fields."""

    code = "INVALID_INPUT"
    status_code = 400


class NotFoundError(ServiceError):
    """Referenced resource does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class InternalError(ServiceError):
    """Unexpected failure."""


class CacheReservationError(InternalError):
    """Commit/abandon called for a fingerprint that is not reserved."""

    code = "CACHE_RESERVATION_ERROR"
