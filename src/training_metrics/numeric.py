"""Finite-safe arithmetic shared by the aggregators."""

from __future__ import annotations

import math


def finite_or_zero(value: float) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return float(value)


def safe_div(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 unless the denominator is finite and positive."""
    if denominator is None or not math.isfinite(denominator) or denominator <= 0:
        return 0.0
    return finite_or_zero(numerator / denominator)


def round2(value: float) -> float:
    return round(finite_or_zero(value), 2)


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; display values round .5 upward.
    return int(math.floor(finite_or_zero(value) + 0.5))
