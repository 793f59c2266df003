"""Builds Slide records from uploaded files."""

import asyncio
from pathlib import Path

from services.audio_cache.fingerprint import hash_file
from services.slides.converter import CommandLineDocumentConverter, DocumentConverter
from shared.errors import InvalidInputError, NotFoundError
from shared.models import Slide
from shared.utils import config, initialize_storage_root, setup_logging

logger = setup_logging("slide-service")


class SlideDeckService:
    """Converts uploaded files into one ordered deck of slides."""

    def __init__(self, converter: DocumentConverter, uploads_root: Path, output_root: Path) -> None:
        self.converter = converter
        self.uploads_root = uploads_root
        self.output_root = output_root

    def resolve(self, file_ref: str) -> Path:
        """Locate an uploaded file given as an absolute path or relative to the uploads root."""
        relative = file_ref.lstrip("/")
        candidates = [
            Path(file_ref),
            self.uploads_root / relative,
            self.uploads_root / Path(relative).name,
            Path.cwd() / relative,
        ]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise NotFoundError(f"File not found: {file_ref}", code="FILE_NOT_FOUND", details={"file": file_ref})

    async def build_slides(self, files: list[str]) -> list[Slide]:
        """
        Convert ``files`` in order and number the resulting pages as one deck.

        Each slide keeps the reference and content hash of the file it came
        from; slide ids are page numbers within that file, so slide keys stay
        stable when the same file is processed again.
        """
        if not files:
            raise InvalidInputError("No files provided", code="MISSING_FILES")

        pages: list[tuple[str, str, int, Path]] = []
        for file_ref in files:
            source = self.resolve(file_ref)
            asset_hash = await asyncio.to_thread(hash_file, source)
            images = await self.converter.convert(source, self.output_root / asset_hash)
            for page_number, image in enumerate(images, start=1):
                pages.append((file_ref, asset_hash, page_number, image))

        total = len(pages)
        slides = [
            Slide(
                id=str(page_number),
                ordinal=ordinal,
                total_count=total,
                title=f"Slide {ordinal}",
                image_ref=str(image),
                source_asset_ref=file_ref,
                source_asset_hash=asset_hash,
            )
            for ordinal, (file_ref, asset_hash, page_number, image) in enumerate(pages, start=1)
        ]
        logger.info(f"Built {total} slides from {len(files)} files")
        return slides


def build_slide_service(converter: DocumentConverter | None = None) -> SlideDeckService:
    uploads_root = Path(config.get("uploads_root", "./uploads"))
    media_root = Path(config.get("media_root", "./media"))
    output_root = initialize_storage_root(media_root / "slides", Path.cwd() / "media" / "slides", logger)
    return SlideDeckService(converter or CommandLineDocumentConverter(), uploads_root, output_root)
