"""Audio delivery API: cached audio by reference with HTTP range support."""

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from services.audio_delivery.ranges import RangeNotSatisfiableError, parse_range_header
from services.runtime import services
from shared.errors import NotFoundError
from shared.response_models import HealthResponse, http_error
from shared.utils import config, setup_logging

logger = setup_logging("audio-delivery")

app = FastAPI(
    title="Audio Delivery",
    description="Serves cached narration audio with byte-range support",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Accept-Ranges", "Content-Range", "Content-Length"],
)


@app.api_route("/audio/{audio_ref}", methods=["GET", "HEAD"])
async def serve_audio(audio_ref: str, request: Request):
    """
    Serve the audio stored under ``audio_ref``.

    A ``Range`` header yields 206 with only the requested window; without
    one the full body is returned. HEAD returns the same headers and no body.
    """
    entry = await services.audio_cache.lookup(audio_ref)
    if entry is None:
        raise http_error(NotFoundError("Audio not found", code="AUDIO_NOT_FOUND", details={"audioRef": audio_ref}))

    size = len(entry.data)
    headers = {"Accept-Ranges": "bytes", "Cache-Control": "public, max-age=3600"}
    head_only = request.method == "HEAD"

    try:
        byte_range = parse_range_header(request.headers.get("range"), size)
    except RangeNotSatisfiableError as e:
        logger.debug(f"Unsatisfiable range for {audio_ref}: {e.message}")
        raise HTTPException(
            status_code=416,
            detail=e.message,
            headers={"Content-Range": f"bytes */{size}", "Accept-Ranges": "bytes"},
        ) from e

    if byte_range is None:
        headers["Content-Length"] = str(size)
        return Response(content=b"" if head_only else entry.data, media_type=entry.mime_type, headers=headers)

    headers["Content-Range"] = byte_range.content_range
    headers["Content-Length"] = str(byte_range.length)
    body = b"" if head_only else entry.data[byte_range.start : byte_range.end + 1]
    return Response(content=body, status_code=206, media_type=entry.mime_type, headers=headers)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    stats = services.audio_cache.stats()
    return HealthResponse(
        status="healthy",
        message="Audio delivery is running",
        version="1.0.0",
        dependencies={"audio_cache": f"{stats.get('entries', 0)} entries"},
    )
