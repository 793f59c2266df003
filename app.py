"""
Slide narration backend - unified application entry point.
Mounts the service apps under a single FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.audio_delivery.app import app as audio_delivery_app
from services.conversation.app import app as conversation_app
from services.narration.app import app as narration_app
from services.providers.app import app as providers_app
from services.runtime import services
from services.slides.app import app as slides_app
from shared.enums import Capability
from shared.utils import config, setup_logging

logger = setup_logging("narration-backend")


@asynccontextmanager
async def lifespan(_: FastAPI):
    await services.start()
    logger.info("Narration backend started")
    try:
        yield
    finally:
        await services.stop()


app = FastAPI(
    title="Slide Narration Backend API",
    description="""
    Slide narration with look-ahead audio pre-generation and conversational Q&A
    about the presentation being narrated.

    All endpoints are documented below. Service routes are organized by tag.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Health", "description": "Service health and status endpoints"},
        {"name": "Narration", "description": "Slide narration and pre-generation - mounted at /api"},
        {"name": "Audio", "description": "Cached audio delivery with range support - mounted at /api"},
        {"name": "Slides", "description": "Presentation conversion - mounted at /api"},
        {"name": "Providers", "description": "AI provider routing and toggles - mounted at /api"},
        {"name": "Conversation", "description": "Conversational Q&A - mounted at /api/conversation"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Accept-Ranges", "Content-Range", "Content-Length"],
)

# Routes to exclude (internal FastAPI docs routes)
EXCLUDED_PATHS = {"/openapi.json", "/docs", "/docs/oauth2-redirect", "/redoc"}

# Services sharing the /api prefix would collide on /health; the gateway's own /health covers them
SHARED_PREFIX_EXCLUDED_PATHS = EXCLUDED_PATHS | {"/health"}


def include_service_routes(service_app: FastAPI, prefix: str, tag: str, name_prefix: str, excluded: set[str]) -> None:
    """Copy a service app's routes onto the gateway under ``prefix``."""
    for route in service_app.routes:
        if hasattr(route, "path") and hasattr(route, "endpoint"):
            # Skip internal documentation routes
            if route.path in excluded:
                continue
            route_kwargs = {
                "path": f"{prefix}{route.path}",
                "endpoint": route.endpoint,
                "methods": route.methods,
                "tags": [tag],
            }
            if hasattr(route, "name"):
                route_kwargs["name"] = f"{name_prefix}_{route.name}"
            if hasattr(route, "response_model"):
                route_kwargs["response_model"] = route.response_model
                route_kwargs["response_model_by_alias"] = route.response_model_by_alias
            app.add_api_route(**route_kwargs)


include_service_routes(narration_app, "/api", "Narration", "narration", SHARED_PREFIX_EXCLUDED_PATHS)
include_service_routes(audio_delivery_app, "/api", "Audio", "audio", SHARED_PREFIX_EXCLUDED_PATHS)
include_service_routes(slides_app, "/api", "Slides", "slides", SHARED_PREFIX_EXCLUDED_PATHS)
include_service_routes(providers_app, "/api", "Providers", "providers", SHARED_PREFIX_EXCLUDED_PATHS)
include_service_routes(conversation_app, "/api/conversation", "Conversation", "conversation", EXCLUDED_PATHS)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with service information and API navigation"""
    return {
        "service": "Slide Narration Backend API",
        "version": "1.0.0",
        "services": {
            "narration": {"base_url": "/api", "endpoints": ["/narrate", "/pregenerate-audio", "/advance", "/jobs"]},
            "audio": {"base_url": "/api/audio"},
            "slides": {"base_url": "/api/slides"},
            "providers": {"base_url": "/api/providers"},
            "conversation": {
                "base_url": "/api/conversation",
                "health": "/api/conversation/health",
            },
        },
        "documentation": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_json": "/openapi.json",
        },
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for all services"""
    router = services.router
    return {
        "status": "healthy",
        "services": {
            "api_gateway": "operational",
            "narration": "operational",
            "audio": "operational",
            "slides": "operational",
            "conversation": "operational",
            "scheduler": "running" if services.scheduler.running else "idle",
        },
        "providers": {
            capability.value: ("available" if router.has_capability(capability) else "unavailable")
            for capability in Capability
        },
        "audioCache": services.audio_cache.stats(),
    }


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting narration backend on http://0.0.0.0:8000")
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
