"""Narration service API endpoints: per-slide narration and look-ahead pre-generation."""

from datetime import timedelta

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from services.narration.speech import audio_url_for
from services.runtime import services
from shared.enums import JobStatus
from shared.errors import NotFoundError, ServiceError
from shared.models import (
    AdvanceRequest,
    AdvanceResponse,
    CleanupRequest,
    CleanupResponse,
    NarrateRequest,
    NarrateResponse,
    PregenerateRequest,
    PregenerateResponse,
    PreGenerationJob,
)
from shared.response_models import HealthResponse, http_error
from shared.utils import config, setup_logging

logger = setup_logging("narration-service")

app = FastAPI(
    title="Narration Service",
    description="AI narration for presentation slides with look-ahead audio pre-generation",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

NARRATION_FALLBACK_MESSAGE = "Narration for this slide is not available right now. Please continue with the slide content."


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint for the narration service."""
    scheduler = services.scheduler
    return HealthResponse(
        status="healthy",
        message="Narration service is running",
        version="1.0.0",
        dependencies={
            "scheduler": "running" if scheduler.running else "idle",
            "audio_cache": services.audio_cache.store.backend_name,
        },
    )


@app.post("/narrate", response_model=NarrateResponse, response_model_by_alias=True)
async def narrate(req: NarrateRequest):
    """Return the slide's narration, generating text and audio when nothing is ready yet."""
    narration_service = services.narration_service
    try:
        cached = narration_service.is_ready(req.slide.slide_key)
        record = await narration_service.narrate(req.slide)
        return NarrateResponse(
            slide_id=record.slide_id,
            narration_text=record.text,
            audio_ref=record.audio_ref,
            audio_url=audio_url_for(record.audio_ref),
            generated_by=record.generated_by,
            status=JobStatus.READY,
            cached=cached,
        )
    except ServiceError as e:
        raise http_error(e, fallback_message=NARRATION_FALLBACK_MESSAGE) from e
    except Exception as e:
        logger.error(f"Error narrating slide {req.slide.slide_key}: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/pregenerate-audio", response_model=PregenerateResponse, response_model_by_alias=True)
async def pregenerate_audio(req: PregenerateRequest):
    """
    Queue (or reuse) the pre-generation job for one slide.

    Repeated calls for a slide that is already READY return the same audio
    reference without contacting any provider.
    """
    scheduler = services.scheduler
    job = scheduler.submit(req.slide, req.priority)
    if job is None:
        raise http_error(
            NotFoundError("Slide is outside the presentation", code="SLIDE_OUT_OF_RANGE"),
        )
    if req.wait and job.status in (JobStatus.PENDING, JobStatus.GENERATING):
        timeout = float(config.get_pipeline_value("pregeneration.wait_timeout_seconds", 120))
        job = await scheduler.wait_for(job.slide_key, timeout) or job
    return _pregenerate_response(job)


def _pregenerate_response(job: PreGenerationJob) -> PregenerateResponse:
    record = job.record
    return PregenerateResponse(
        slide_id=job.slide_id,
        status=job.status,
        narration_text=record.text if record else None,
        audio_ref=record.audio_ref if record else None,
        audio_url=audio_url_for(record.audio_ref) if record else None,
        error=job.error,
    )


@app.post("/advance", response_model=AdvanceResponse, response_model_by_alias=True)
async def advance(req: AdvanceRequest):
    """Notify the scheduler that the presenter reached ``slides[currentIndex]``."""
    if req.current_index >= len(req.slides):
        raise http_error(
            NotFoundError(
                "currentIndex is outside the slide list",
                code="SLIDE_OUT_OF_RANGE",
                details={"currentIndex": req.current_index, "slideCount": len(req.slides)},
            )
        )
    return AdvanceResponse(**services.scheduler.on_slide_advanced(req.slides, req.current_index))


@app.get("/jobs", response_model=list[PreGenerationJob], response_model_by_alias=True)
async def list_jobs():
    return services.scheduler.jobs()


@app.get("/jobs/{slide_key:path}", response_model=PreGenerationJob, response_model_by_alias=True)
async def get_job(slide_key: str):
    job = services.scheduler.get_job(slide_key)
    if job is None:
        raise http_error(NotFoundError(f"No job for slide {slide_key}", code="JOB_NOT_FOUND"))
    return job


@app.delete("/jobs/{slide_key:path}")
async def cancel_job(slide_key: str):
    scheduler = services.scheduler
    job = scheduler.get_job(slide_key)
    cancelled = scheduler.cancel(slide_key)
    if job is None and not cancelled:
        raise http_error(NotFoundError(f"No job for slide {slide_key}", code="JOB_NOT_FOUND"))
    return {
        "slideKey": slide_key,
        "cancelled": cancelled,
        "status": job.status.value if job else None,
    }


@app.get("/cache/stats")
async def cache_stats():
    return {
        "audioCache": services.audio_cache.stats(),
        "scheduler": services.scheduler.stats(),
    }


@app.post("/cleanup", response_model=CleanupResponse, response_model_by_alias=True)
async def cleanup(req: CleanupRequest | None = None):
    """
    Remove stale audio and conversation sessions.

    Without ``maxAgeDays`` everything is cleared, including narration records
    and the job table.
    """
    req = req or CleanupRequest()
    removed: dict[str, int] = {}
    try:
        if req.max_age_days is None:
            if req.audio:
                removed["audio"] = await services.audio_cache.clear()
            if req.sessions:
                removed["sessions"] = services.conversation_manager.clear()
            removed["narrations"] = services.narration_service.clear()
            removed["jobs"] = services.scheduler.clear()
        else:
            max_age = timedelta(days=req.max_age_days)
            if req.audio:
                removed["audio"] = await services.audio_cache.sweep_expired(max_age)
            if req.sessions:
                removed["sessions"] = services.conversation_manager.cleanup_expired(max_age)
    except Exception as e:
        logger.error(f"Cleanup failed: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e

    total = sum(removed.values())
    logger.info(f"Cleanup removed {total} items: {removed}")
    return CleanupResponse(removed=removed, total=total)
