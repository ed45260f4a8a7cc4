"""Factor weights for groundwater potential and borehole success probability."""

from typing import Mapping, Optional

from agrisite.utils.stats import clamp

BASE_WEIGHTS = {
    "elevation": 0.15,
    "slope": 0.10,
    "landcover": 0.10,
    "soil_moisture": 0.15,
    "temperature": 0.10,
    "geology": 0.20,
    "precipitation": 0.20,
}

# Reliability thresholds for shifting weight onto/off precipitation
HIGH_RELIABILITY = 0.8
LOW_RELIABILITY = 0.4
RELIABILITY_SHIFT = 0.05

# Success probability weights for region statistics
SUCCESS_WEIGHTS = {
    "elevation": 0.15,
    "soil_moisture": 0.20,
    "temperature": 0.15,
}
GEOLOGY_WEIGHT = 0.25
PRECIPITATION_WEIGHT = 0.25
DEFAULT_SUCCESS_PROBABILITY = 50.0


def adjust_weights(weights: Mapping[str, float], factor: str, delta: float) -> dict[str, float]:
    """Shift ``delta`` onto ``factor`` and take it evenly from the others.

    The total is unchanged, so normalised weights stay normalised.

    Raises:
        KeyError: If ``factor`` is not one of the weights
    """
    if factor not in weights:
        raise KeyError(f"Unknown weight factor: {factor}")
    others = [k for k in weights if k != factor]
    share = delta / len(others) if others else 0.0

    adjusted = dict(weights)
    adjusted[factor] = weights[factor] + delta
    for key in others:
        adjusted[key] = weights[key] - share
    return adjusted


def calculate_dynamic_weights(reliability_overall: float) -> dict[str, float]:
    """Base weights, shifted toward or away from precipitation by its reliability."""
    if reliability_overall > HIGH_RELIABILITY:
        return adjust_weights(BASE_WEIGHTS, "precipitation", RELIABILITY_SHIFT)
    if reliability_overall < LOW_RELIABILITY:
        return adjust_weights(BASE_WEIGHTS, "precipitation", -RELIABILITY_SHIFT)
    return dict(BASE_WEIGHTS)


def calculate_success_probability(
    stats: Mapping[str, Optional[float]],
    geology_score: float,
    precipitation_reliability: float,
    has_centroid: bool = True,
) -> float:
    """Borehole success probability in percent (0-100).

    Only keys in SUCCESS_WEIGHTS contribute; unknown or missing statistics
    count as zero.
    """
    if not has_centroid:
        return DEFAULT_SUCCESS_PROBABILITY

    weighted = sum(
        value * SUCCESS_WEIGHTS[key]
        for key, value in stats.items()
        if key in SUCCESS_WEIGHTS and value is not None
    )
    total = (
        weighted
        + geology_score * GEOLOGY_WEIGHT
        + precipitation_reliability * PRECIPITATION_WEIGHT
    )
    return clamp(total * 100, 0.0, 100.0)
