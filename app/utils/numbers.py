"""Numeric helpers shared by calibration, scoring and efficiency math."""

from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``round`` is banker's)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
