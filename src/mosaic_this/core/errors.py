"""Error types raised by the mosaic core."""


class InvalidColorFormat(ValueError):
    """A palette hex string is not a 6-hex-digit color."""


class DegenerateImage(ValueError):
    """An image with zero width or height; nothing downstream can proceed."""
