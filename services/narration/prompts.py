"""Prompt text and post-processing for slide narration."""

import re

from shared.models import Slide
from shared.utils import normalize_whitespace

VISION_PROMPT = (
    "Describe this presentation slide for a narrator in two or three sentences. "
    "Mention the main message and any charts, tables or diagrams. Plain text only."
)

GENERIC_DESCRIPTION = (
    "A presentation slide containing visual content, charts, text, or other informational "
    "elements that support the overall presentation narrative."
)

_PREFIX_PATTERN = re.compile(r"^(?:here's|here is|the narration is)[^:\n]*:\s*|^narration:\s*", re.IGNORECASE)
_EDGE_QUOTES = re.compile(r"^[\"']|[\"']$")
_TRAILING_PARTIAL_WORD = re.compile(r"\s+\S*$")


def build_narration_prompt(slide: Slide, description: str) -> str:
    return f"""Create a 60-80 word professional narration for this slide.

Slide: "{slide.title or 'Untitled'}" (page {slide.ordinal} of {slide.total_count})
Content: {slide.body_text or 'Visual presentation content'}
Description: {description}

Rules:
- Maximum 80 words
- Natural speaking style
- Explain the slide's purpose and content
- No quotes, no "here's", no formatting
- Direct narration only

Narration:"""


def describe_from_text(slide: Slide) -> str:
    """Visual description derived only from the slide's own text."""
    title = normalize_whitespace(slide.title)
    body = normalize_whitespace(slide.body_text)
    if not title and not body:
        return GENERIC_DESCRIPTION

    parts = [f"Slide {slide.ordinal} of {slide.total_count}"]
    if title:
        parts[0] += f' titled "{title}"'
    if body:
        parts.append(f"It presents: {body[:300]}")
    return ". ".join(parts) + "."


def truncate_narration(text: str, max_characters: int) -> str:
    if len(text) <= max_characters:
        return text
    return _TRAILING_PARTIAL_WORD.sub("", text[:max_characters]) + "."


def clean_narration(raw: str, max_characters: int = 500) -> str:
    """Strip model chatter (lead-in phrases, quotes, line breaks) and cap the length."""
    text = raw.strip()
    text = _PREFIX_PATTERN.sub("", text)
    text = _EDGE_QUOTES.sub("", text)
    text = normalize_whitespace(text)
    return truncate_narration(text, max_characters)


def template_narration(slide: Slide, max_characters: int = 500) -> str:
    """Deterministic narration read from the slide's own title and body."""
    parts = [f"Slide {slide.ordinal} of {slide.total_count}."]
    title = normalize_whitespace(slide.title)
    body = normalize_whitespace(slide.body_text)
    if title:
        parts.append(title if title.endswith((".", "!", "?")) else f"{title}.")
    if body:
        parts.append(body)
    return truncate_narration(" ".join(parts), max_characters)
