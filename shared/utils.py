"""
File and text processing utilities shared by the services.
"""

import hashlib
import re
from datetime import UTC, datetime
from pathlib import Path

from shared.cache import Cache
from shared.config import config
from shared.logging_utils import setup_logging

__all__ = [
    "Cache",
    "config",
    "setup_logging",
    "ensure_directory",
    "generate_hash",
    "initialize_storage_root",
    "normalize_whitespace",
    "utc_now",
]


def generate_hash(text: str) -> str:
    """Generate a SHA-256 hex digest for cache keys."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def ensure_directory(path: str) -> None:
    """Ensure directory exists, create if not."""
    Path(path).mkdir(parents=True, exist_ok=True)


def initialize_storage_root(target: Path, fallback: Path, logger) -> Path:
    """Create ``target`` or fall back to a local directory when it is not writable."""
    try:
        ensure_directory(str(target))
        return target
    except PermissionError:
        logger.warning(
            "Unable to create storage at %s due to permissions; falling back to %s",
            target,
            fallback,
        )
        ensure_directory(str(fallback))
        return fallback


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim the ends."""
    return re.sub(r"\s+", " ", text).strip()


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)
