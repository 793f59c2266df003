"""
Provider Router

Uniform entry point over interchangeable generation backends. For each
capability the router walks an ordered provider chain (the operator-selected
active provider first, then that capability's configured order) and returns the first
usable result. Individual provider failures are logged and recovered here;
only exhaustion of the whole chain reaches the caller.
"""

import asyncio
import time
from typing import Any

from pydantic import BaseModel, Field

from shared.enums import SYNTHETIC_PROVIDER_ID, Capability
from shared.errors import ProviderFailureError, ProvidersExhaustedError, ProviderUnavailableError
from shared.models import ProviderDescriptor
from shared.utils import setup_logging

from .drivers.base import SpeechResult, capabilities_of
from .fallback import synthesize_fallback_tone

logger = setup_logging("provider-router")


class ProviderResult(BaseModel):
    """Outcome of a routed generation call."""

    capability: Capability
    provider_id: str
    output: str | SpeechResult
    synthetic: bool = False
    attempted: list[str] = Field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def text(self) -> str:
        if not isinstance(self.output, str):
            raise TypeError(f"{self.capability.value} result does not carry text")
        return self.output

    @property
    def speech(self) -> SpeechResult:
        if not isinstance(self.output, SpeechResult):
            raise TypeError(f"{self.capability.value} result does not carry audio")
        return self.output


class _Registration:
    __slots__ = ("provider_id", "driver", "priority", "capabilities", "capability_priorities")

    def __init__(
        self,
        provider_id: str,
        driver: Any,
        priority: int,
        capabilities: list[Capability],
        capability_priorities: dict[Capability, int],
    ):
        self.provider_id = provider_id
        self.driver = driver
        self.priority = priority
        self.capabilities = capabilities
        self.capability_priorities = capability_priorities

    def rank(self, capability: Capability) -> tuple[int, int, str]:
        """Sort key within one capability's chain: its own order first, then the global priority."""
        if capability in self.capability_priorities:
            return (0, self.capability_priorities[capability], self.provider_id)
        return (1, self.priority, self.provider_id)


class ProviderRouter:
    """Ordered, timeout-bounded fallback over provider drivers."""

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._providers: dict[str, _Registration] = {}
        self._disabled: dict[str, str] = {}
        self._active: dict[Capability, str] = {}

    def register(
        self,
        provider_id: str,
        driver: Any,
        priority: int | None = None,
        capability_priorities: dict[Capability, int] | None = None,
    ) -> ProviderDescriptor:
        """
        Register a driver; its capabilities follow from the interfaces it implements.

        ``capability_priorities`` places the provider in a specific capability's
        chain. Capabilities it does not name fall back to ``priority``, after
        every provider ranked explicitly for that capability.
        """
        capabilities = capabilities_of(driver)
        if not capabilities:
            raise ValueError(f"Driver for {provider_id} implements no provider interface")
        if priority is None:
            priority = len(self._providers)
        self._providers[provider_id] = _Registration(
            provider_id,
            driver,
            priority,
            capabilities,
            {cap: rank for cap, rank in (capability_priorities or {}).items() if cap in capabilities},
        )
        logger.info(f"Registered provider {provider_id} ({[c.value for c in capabilities]}, priority {priority})")
        return self._describe(self._providers[provider_id])

    def unregister(self, provider_id: str) -> None:
        self._providers.pop(provider_id, None)
        self._disabled.pop(provider_id, None)
        for capability, active_id in list(self._active.items()):
            if active_id == provider_id:
                del self._active[capability]

    def descriptors(self) -> list[ProviderDescriptor]:
        ordered = sorted(self._providers.values(), key=lambda reg: (reg.priority, reg.provider_id))
        return [self._describe(reg) for reg in ordered]

    def chain(self, capability: Capability) -> list[str]:
        """Enabled provider ids for ``capability`` in the order they will be tried."""
        candidates = sorted(
            (
                reg
                for reg in self._providers.values()
                if capability in reg.capabilities and reg.provider_id not in self._disabled
            ),
            key=lambda reg: reg.rank(capability),
        )
        ordered = [reg.provider_id for reg in candidates]
        active = self._active.get(capability)
        if active in ordered:
            ordered.remove(active)
            ordered.insert(0, active)
        return ordered

    def has_capability(self, capability: Capability) -> bool:
        return bool(self.chain(capability))

    async def generate(
        self,
        capability: Capability,
        payload: Any,
        options: dict[str, Any] | None = None,
    ) -> ProviderResult:
        """
        Run ``payload`` through the provider chain for ``capability``.

        Payload is the prompt for TEXT_GEN, the text for SPEECH and a dict
        with ``image_ref`` and ``prompt`` for VISION.

        Raises:
            ProviderUnavailableError: No enabled TEXT_GEN/VISION provider exists
            ProvidersExhaustedError: Every TEXT_GEN/VISION provider failed
        """
        options = dict(options or {})
        chain = self.chain(capability)
        start_time = time.perf_counter()

        if not chain and capability is not Capability.SPEECH:
            raise ProviderUnavailableError(
                f"No {capability.value} provider configured",
                details={"capability": capability.value},
            )

        failures: list[ProviderFailureError] = []
        for provider_id in chain:
            driver = self._providers[provider_id].driver
            try:
                output = await asyncio.wait_for(
                    self._invoke(capability, driver, payload, options),
                    timeout=self.timeout_seconds,
                )
                self._validate(capability, provider_id, output)
            except asyncio.TimeoutError:
                failure = ProviderFailureError(provider_id, f"timed out after {self.timeout_seconds}s")
                logger.warning(f"{capability.value} provider {failure.message}")
                failures.append(failure)
                continue
            except ProviderFailureError as failure:
                logger.warning(f"{capability.value} provider {failure.message}")
                failures.append(failure)
                continue
            except Exception as e:
                failure = ProviderFailureError(provider_id, str(e) or type(e).__name__)
                logger.warning(f"{capability.value} provider {failure.message}")
                failures.append(failure)
                continue

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            if failures:
                logger.info(f"{capability.value} served by fallback provider {provider_id} after {len(failures)} failure(s)")
            return ProviderResult(
                capability=capability,
                provider_id=provider_id,
                output=output,
                attempted=[f.provider_id for f in failures] + [provider_id],
                elapsed_ms=elapsed_ms,
            )

        if capability is Capability.SPEECH:
            text = payload if isinstance(payload, str) else str(payload)
            logger.error(
                f"All speech providers failed (attempted: {[f.provider_id for f in failures]}); "
                "returning synthetic tone"
            )
            return ProviderResult(
                capability=capability,
                provider_id=SYNTHETIC_PROVIDER_ID,
                output=synthesize_fallback_tone(text),
                synthetic=True,
                attempted=[f.provider_id for f in failures],
                elapsed_ms=(time.perf_counter() - start_time) * 1000,
            )

        error = ProvidersExhaustedError(capability.value, failures)
        logger.error(error.message)
        raise error

    @staticmethod
    async def _invoke(capability: Capability, driver: Any, payload: Any, options: dict[str, Any]) -> Any:
        if capability is Capability.TEXT_GEN:
            return await driver.generate_text(payload, **options)
        if capability is Capability.VISION:
            return await driver.describe_image(payload["image_ref"], payload.get("prompt", ""), **options)
        return await driver.synthesize(payload, **options)

    @staticmethod
    def _validate(capability: Capability, provider_id: str, output: Any) -> None:
        if capability is Capability.SPEECH:
            if not isinstance(output, SpeechResult) or not output.data:
                raise ProviderFailureError(provider_id, "malformed or empty audio response")
        elif not isinstance(output, str) or not output.strip():
            raise ProviderFailureError(provider_id, "malformed or empty text response")

    # Operational toggles

    def set_active(self, capability: Capability, provider_id: str) -> None:
        """Select the provider tried first for ``capability``."""
        registration = self._providers.get(provider_id)
        if registration is None:
            raise KeyError(provider_id)
        if capability not in registration.capabilities:
            raise ValueError(f"Provider {provider_id} does not support {capability.value}")
        self._active[capability] = provider_id
        logger.info(f"Active {capability.value} provider set to {provider_id}")

    def disable(self, provider_id: str, reason: str = "manual") -> None:
        """Manually disable a provider (for maintenance, quota exhaustion, etc.)."""
        if provider_id not in self._providers:
            raise KeyError(provider_id)
        self._disabled[provider_id] = reason
        logger.info(f"Disabled provider {provider_id}: {reason}")

    def enable(self, provider_id: str) -> None:
        """Re-enable a disabled provider."""
        if provider_id not in self._providers:
            raise KeyError(provider_id)
        if self._disabled.pop(provider_id, None) is not None:
            logger.info(f"Re-enabled provider {provider_id}")

    def status(self) -> dict[str, Any]:
        return {
            "timeout_seconds": self.timeout_seconds,
            "providers": [descriptor.model_dump(by_alias=True, mode="json") for descriptor in self.descriptors()],
            "active": {capability.value: provider_id for capability, provider_id in self._active.items()},
            "disabled": dict(self._disabled),
            "chains": {capability.value: self.chain(capability) for capability in Capability},
        }

    def _describe(self, registration: _Registration) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=registration.provider_id,
            capabilities=registration.capabilities,
            priority=registration.priority,
            enabled=registration.provider_id not in self._disabled,
            active_for=[cap for cap, pid in self._active.items() if pid == registration.provider_id],
        )
