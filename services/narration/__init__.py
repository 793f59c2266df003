"""Narration service for presentation slides.

This service runs the per-slide narration pipeline:
- Visual description (vision provider or text-only path)
- Narration text generation
- Cached speech synthesis
"""

__version__ = "1.0.0"
