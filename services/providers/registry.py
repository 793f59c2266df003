"""Build the default provider router from configuration."""

from typing import Any, Callable

from shared.enums import Capability
from shared.utils import config as service_config, setup_logging

from .drivers import AzureSpeechDriver, GroqTextDriver, HuggingFaceSpeechDriver, OpenAIDriver
from .router import ProviderRouter

logger = setup_logging("provider-registry")

DEFAULT_ORDER: dict[str, list[str]] = {
    Capability.TEXT_GEN.value: ["groq", "openai"],
    Capability.VISION.value: ["openai"],
    Capability.SPEECH.value: ["openai", "azure", "huggingface"],
}


def _build_openai() -> Any | None:
    api_key = service_config.get("openai_api_key")
    return OpenAIDriver(api_key=api_key) if api_key else None


def _build_groq() -> Any | None:
    api_key = service_config.get("groq_api_key")
    return GroqTextDriver(api_key=api_key) if api_key else None


def _build_azure() -> Any | None:
    api_key = service_config.get("azure_speech_key")
    region = service_config.get("azure_speech_region")
    if not api_key or not region:
        return None
    return AzureSpeechDriver(api_key, region, voice=service_config.get("azure_speech_voice", "en-US-AriaNeural"))


def _build_huggingface() -> Any | None:
    token = service_config.get("hf_token")
    return HuggingFaceSpeechDriver(token) if token else None


DRIVER_BUILDERS: dict[str, Callable[[], Any | None]] = {
    "openai": _build_openai,
    "groq": _build_groq,
    "azure": _build_azure,
    "huggingface": _build_huggingface,
}


def capability_orders() -> dict[Capability, list[str]]:
    """Configured provider ids for each capability, in the order they are tried."""
    orders: dict[Capability, list[str]] = {}
    for capability in Capability:
        configured = service_config.get_pipeline_value(
            f"providers.order.{capability.value}",
            DEFAULT_ORDER[capability.value],
        )
        orders[capability] = list(dict.fromkeys(configured or []))
    return orders


def provider_order(orders: dict[Capability, list[str]] | None = None) -> list[str]:
    """Every configured provider id once, first mention wins."""
    orders = orders if orders is not None else capability_orders()
    return list(dict.fromkeys(provider_id for order in orders.values() for provider_id in order))


def build_router(drivers: dict[str, Any] | None = None) -> ProviderRouter:
    """
    Create a router with every provider that has credentials configured.

    Args:
        drivers: Pre-built drivers keyed by provider id (skips credential lookup)

    Returns:
        Configured ProviderRouter
    """
    timeout = float(service_config.get_pipeline_value("providers.timeout_seconds", 30))
    router = ProviderRouter(timeout_seconds=timeout)

    if drivers is not None:
        for priority, (provider_id, driver) in enumerate(drivers.items()):
            router.register(provider_id, driver, priority)
        return router

    orders = capability_orders()
    for priority, provider_id in enumerate(provider_order(orders)):
        builder = DRIVER_BUILDERS.get(provider_id)
        if builder is None:
            logger.warning(f"Unknown provider '{provider_id}' in configuration; skipping")
            continue
        driver = builder()
        if driver is None:
            logger.info(f"Provider {provider_id} has no credentials configured; skipping")
            continue
        capability_priorities = {
            capability: order.index(provider_id) for capability, order in orders.items() if provider_id in order
        }
        router.register(provider_id, driver, priority, capability_priorities)

    for capability in Capability:
        if not router.has_capability(capability):
            logger.warning(f"No {capability.value} provider available")
    return router
