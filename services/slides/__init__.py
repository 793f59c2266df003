"""
Slide conversion: turns uploaded decks, PDFs and images into ordered Slide
records with page images and stable source asset hashes.
"""

__version__ = "1.0.0"
