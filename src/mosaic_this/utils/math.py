"""Mathematical utilities for tile geometry and orientation."""

import math

import numpy as np


def round_half_up(value):
    """Round to the nearest integer with halves rounded up.

    Works on scalars and numpy arrays. Python's built-in ``round`` uses
    banker's rounding, which would shift sample positions sitting exactly
    on a pixel midpoint.
    """
    return np.floor(np.asarray(value, dtype=np.float64) + 0.5).astype(np.int64)


def normalize_degrees(degrees: float) -> float:
    """Normalize an angle in degrees into [0, 360).

    ``math.fmod`` is exact, so the second pass maps ``-1e-17 + 360`` (which
    rounds to 360.0) back to 0.0 instead of leaving it at 360.
    """
    wrapped = math.fmod(degrees, 360.0)
    wrapped = math.fmod(wrapped + 360.0, 360.0)
    return wrapped
