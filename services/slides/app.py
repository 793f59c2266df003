"""Slide processing API."""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from services.runtime import services
from shared.errors import ServiceError
from shared.models import SlidesProcessRequest, SlidesProcessResponse
from shared.response_models import HealthResponse, http_error
from shared.utils import config, setup_logging

logger = setup_logging("slides-service")

app = FastAPI(
    title="Slide Processing",
    description="Converts uploaded presentations into slide images",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/slides/process", response_model=SlidesProcessResponse, response_model_by_alias=True)
async def process_slides(req: SlidesProcessRequest):
    """Convert uploaded files (decks, PDFs, images) into an ordered slide list."""
    try:
        slides = await services.slide_service.build_slides(req.files)
        return SlidesProcessResponse(slides=slides)
    except ServiceError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.error(f"Error processing slides: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="healthy", message="Slide processing is running", version="1.0.0")
