"""Small numeric helpers shared by the analyzers."""

from collections.abc import Sequence

import numpy as np


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def std(values: Sequence[float]) -> float:
    """Population standard deviation, 0.0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return float(np.std(values))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Standard deviation divided by mean (0.0 when the mean is zero)."""
    avg = mean(values)
    if avg == 0:
        return 0.0
    return std(values) / avg


def least_squares_slope(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Slope of the ordinary least-squares line through (xs, ys).

    Returns 0.0 when fewer than two points are given or all xs are equal.
    """
    if len(xs) != len(ys):
        raise ValueError("xs and ys must have the same length")
    n = len(xs)
    if n < 2:
        return 0.0

    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    denominator = n * np.sum(x * x) - np.sum(x) ** 2
    if denominator == 0:
        return 0.0
    return float((n * np.sum(x * y) - np.sum(x) * np.sum(y)) / denominator)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
