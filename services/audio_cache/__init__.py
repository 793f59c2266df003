"""Content-addressed audio cache.

Audio is keyed by a fingerprint of the source asset and the normalized text,
so identical narration is never synthesized twice and at most one generation
per fingerprint is in flight at any time.
"""

__version__ = "1.0.0"
