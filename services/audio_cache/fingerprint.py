"""
Hashing helpers for cache keys.
"""

import hashlib
import re
from pathlib import Path

CHUNK_SIZE = 64 * 1024


def hash_file(path: str | Path) -> str:
    """SHA-256 of a file's contents, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as stream:
        for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_text(text: str) -> str:
    """Trim and collapse whitespace so cosmetic differences share one fingerprint."""
    return re.sub(r"\s+", " ", text or "").strip()


def audio_fingerprint(source_asset_hash: str, text: str) -> str:
    """Cache key for the audio of ``text`` narrated from ``source_asset_hash``."""
    return f"{source_asset_hash}-{hash_text(normalize_text(text))}"


def source_asset_hash(source_ref: str, search_roots: list[Path] | None = None) -> str:
    """
    Stable hash for a source asset reference.

    The file contents are hashed when ``source_ref`` resolves to a readable
    file (as given, relative to one of ``search_roots``, or by file name
    inside one of them), so identical uploads share a hash whatever they are
    called; otherwise the reference string itself is hashed.
    """
    relative = source_ref.lstrip("/")
    candidates = [Path(source_ref)]
    for root in search_roots or []:
        candidates.extend([Path(root) / relative, Path(root) / Path(relative).name])

    for candidate in candidates:
        try:
            if candidate.is_file():
                return hash_file(candidate)
        except OSError:
            continue
    return hash_text(source_ref)
