from __future__ import annotations

import math

HEALTHY = "healthy"
WARNING = "warning"
CRITICAL = "critical"
UNKNOWN = "unknown"
PENDING = "pending"

# Violation percentage breakpoints shared by every pillar.
WARNING_THRESHOLD = 10.0
CRITICAL_THRESHOLD = 25.0


def classify_status(violation_percent: float) -> str:
    """
    Map a "percent violated" value onto healthy / warning / critical.

    Equivalent to: healthy when the healthy share is at least 90%, warning at
    75% or more, critical below that.
    """
    if violation_percent < WARNING_THRESHOLD:
        return HEALTHY
    if violation_percent < CRITICAL_THRESHOLD:
        return WARNING
    return CRITICAL


def status_from_score(score: float) -> str:
    """Classify a 0-100 "higher is better" score."""
    return classify_status(100 - score)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up (56.5 -> 57), unlike built-in `round()`."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(round_half_up(value, 0))
