"""Provider routing for text generation, vision and speech.

Tries external generation providers in a configured order, bounding every
call with a timeout, and degrades speech to a synthetic tone when every
provider fails.
"""

__version__ = "1.0.0"
