"""Duration rules shared by routing, availability and insights"""

import math
from typing import Optional

from ...config import DEFAULT_JOB_HOURS, TURNAROUND_BUFFER_MINUTES

MAX_SERVICE_MINUTES = 24 * 60


def _usable_minutes(value) -> Optional[float]:
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(minutes) or minutes <= 0:
        return None
    return min(minutes, MAX_SERVICE_MINUTES)


def effective_duration_minutes(
    hours: Optional[float],
    actual_minutes: Optional[float] = None,
    historical_minutes: Optional[float] = None,
) -> float:
    """Best-known service length.

    Recorded actual, then the most recent actual at the same location, then
    the scheduled hours, then the business default.
    """
    for candidate in (actual_minutes, historical_minutes):
        minutes = _usable_minutes(candidate)
        if minutes is not None:
            return minutes

    scheduled = _usable_minutes(hours * 60) if hours is not None else None
    if scheduled is not None:
        return scheduled
    return DEFAULT_JOB_HOURS * 60


def planning_window_minutes(effective_minutes: float) -> float:
    """Footprint a job blocks out of the day: effective duration plus turnaround"""
    return effective_minutes + TURNAROUND_BUFFER_MINUTES


def travel_relevant_minutes(effective_minutes: float) -> float:
    """Time on site before the technician can drive away; buffer excluded"""
    return effective_minutes


def duration_from_price(price: Optional[float]) -> int:
    """Estimated minutes for a job that only has a quoted price"""
    if price is None or not math.isfinite(price) or price <= 0:
        return int(DEFAULT_JOB_HOURS * 60)
    if price <= 350:
        return 90
    if price < 600:
        return 150
    if price <= 800:
        return 180
    if price <= 1000:
        return 210
    if price <= 1500:
        return 240
    extra_hours = math.ceil((price - 1500) / 300)
    return min(240 + extra_hours * 60, 480)
