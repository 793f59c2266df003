"""
Audio delivery: serves cached narration and answer audio over HTTP with
byte-range support so players can seek.
"""

__version__ = "1.0.0"
