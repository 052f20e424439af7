"""Utility modules for MosaicThis."""

from .image import load_image, ImageLoader, validate_image_dimensions
from .math import normalize_degrees, round_half_up
from .profiler import PerformanceProfiler

__all__ = [
    "load_image",
    "ImageLoader",
    "validate_image_dimensions",
    "normalize_degrees",
    "round_half_up",
    "PerformanceProfiler",
]
