"""Conversational Q&A over presentation slides.

Holds per-session state (slide context, turn history, metrics), classifies
intents with lightweight patterns and builds intent-specific prompts.
"""

__version__ = "1.0.0"
