"""Storage backends, circuit breaking and image manipulation for an image proxy."""

__version__ = "0.1.0"