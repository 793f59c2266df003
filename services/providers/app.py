from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from services.runtime import services
from shared.enums import Capability
from shared.models import ActiveProviderRequest, ProviderDescriptor
from shared.response_models import HealthResponse
from shared.utils import config as service_config

app = FastAPI(
    title="Provider Router",
    description="Routing and operational toggles for text, vision and speech providers",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=service_config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/providers", response_model=list[ProviderDescriptor], response_model_by_alias=True)
async def list_providers():
    """List registered providers with their capabilities and state."""
    return services.router.descriptors()


@app.get("/providers/status")
async def providers_status():
    return services.router.status()


@app.post("/providers/{capability}/active")
async def set_active_provider(capability: Capability, req: ActiveProviderRequest):
    """Choose the provider tried first for a capability."""
    try:
        services.router.set_active(capability, req.provider_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {req.provider_id}") from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"capability": capability.value, "providerId": req.provider_id}


@app.post("/providers/{provider_id}/disable")
async def disable_provider(provider_id: str, reason: str = "manual"):
    try:
        services.router.disable(provider_id, reason)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider_id}") from e
    return {"providerId": provider_id, "enabled": False, "reason": reason}


@app.post("/providers/{provider_id}/enable")
async def enable_provider(provider_id: str):
    try:
        services.router.enable(provider_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider_id}") from e
    return {"providerId": provider_id, "enabled": True}


@app.get("/health", response_model=HealthResponse)
async def health_check():
    router = services.router
    dependencies = {
        capability.value: ("available" if router.has_capability(capability) else "unavailable")
        for capability in Capability
    }
    return HealthResponse(
        status="healthy",
        message="Provider router is running",
        version="1.0.0",
        dependencies=dependencies,
    )
