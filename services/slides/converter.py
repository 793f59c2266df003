"""
Document conversion backends.

Presentations are converted to PDF with LibreOffice, then rasterized one PNG
per page with poppler's ``pdftoppm``. Image files pass through unchanged.
"""

import asyncio
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from shared.errors import InternalError, InvalidInputError
from shared.utils import setup_logging

logger = setup_logging("slide-converter")

PRESENTATION_EXTENSIONS = {".ppt", ".pptx", ".odp"}
PDF_EXTENSIONS = {".pdf"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}

_PAGE_NUMBER = re.compile(r"-(\d+)\.png$")


class ConversionError(InternalError):
    code = "CONVERSION_FAILED"


class DocumentConverter(ABC):
    """Turns one uploaded file into an ordered list of page images."""

    @abstractmethod
    async def convert(self, source: Path, output_dir: Path) -> list[Path]:
        pass


class CommandLineDocumentConverter(DocumentConverter):
    """Converter driving the ``soffice`` and ``pdftoppm`` command line tools."""

    def __init__(
        self,
        soffice: str = "soffice",
        pdftoppm: str = "pdftoppm",
        timeout: float = 120,
        dpi: int = 110,
    ) -> None:
        self.soffice = soffice
        self.pdftoppm = pdftoppm
        self.timeout = timeout
        self.dpi = dpi

    async def convert(self, source: Path, output_dir: Path) -> list[Path]:
        suffix = source.suffix.lower()
        if suffix in IMAGE_EXTENSIONS:
            return [source]
        if suffix not in PRESENTATION_EXTENSIONS | PDF_EXTENSIONS:
            raise InvalidInputError(
                f"Unsupported file type: {source.name}",
                code="UNSUPPORTED_FILE",
                details={"file": source.name},
            )

        output_dir.mkdir(parents=True, exist_ok=True)
        existing = self._page_images(output_dir)
        if existing:
            logger.debug(f"Reusing {len(existing)} rendered pages for {source.name}")
            return existing

        pdf_path = source
        if suffix in PRESENTATION_EXTENSIONS:
            pdf_path = await self._to_pdf(source, output_dir)
        return await self._rasterize(pdf_path, output_dir)

    async def _to_pdf(self, source: Path, output_dir: Path) -> Path:
        await self._run(
            [self.soffice, "--headless", "--convert-to", "pdf", "--outdir", str(output_dir), str(source)],
            source,
        )
        pdf_path = output_dir / f"{source.stem}.pdf"
        if not pdf_path.exists():
            raise ConversionError(f"PDF not created for {source.name}", details={"file": source.name})
        logger.info(f"Converted {source.name} to PDF")
        return pdf_path

    async def _rasterize(self, pdf_path: Path, output_dir: Path) -> list[Path]:
        await self._run(
            [self.pdftoppm, "-png", "-r", str(self.dpi), str(pdf_path), str(output_dir / "page")],
            pdf_path,
        )
        pages = self._page_images(output_dir)
        if not pages:
            raise ConversionError(f"No pages rendered for {pdf_path.name}", details={"file": pdf_path.name})
        logger.info(f"Rendered {len(pages)} pages from {pdf_path.name}")
        return pages

    async def _run(self, command: list[str], source: Path) -> None:
        if shutil.which(command[0]) is None:
            raise ConversionError(f"{command[0]} is not installed", details={"tool": command[0]})
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ConversionError(
                f"{command[0]} timed out after {self.timeout}s converting {source.name}",
                details={"file": source.name},
            ) from e

        if result.returncode != 0:
            logger.error(f"{command[0]} failed (returncode={result.returncode} stderr={result.stderr.strip()})")
            raise ConversionError(
                f"{command[0]} failed converting {source.name}",
                details={"file": source.name, "stderr": (result.stderr or result.stdout).strip()[-500:]},
            )

    @staticmethod
    def _page_images(output_dir: Path) -> list[Path]:
        pages = []
        for path in output_dir.glob("page-*.png"):
            match = _PAGE_NUMBER.search(path.name)
            if match:
                pages.append((int(match.group(1)), path))
        return [path for _, path in sorted(pages)]
