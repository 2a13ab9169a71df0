"""Day Router - travel legs for one technician-day"""

from datetime import datetime
from typing import Optional

from ...config import DEPOT_GAP_THRESHOLD_HOURS
from ..travel.address import normalize_address
from ..travel.schemas import RouteJob, TravelSegment
from .time_calculator import minutes_between


def build_segments(
    jobs: list[RouteJob],
    depot_address: Optional[str] = None,
    gap_threshold_hours: float = DEPOT_GAP_THRESHOLD_HOURS,
) -> list[TravelSegment]:
    """
    Travel legs for jobs already in service-day order.

    With a depot the route starts and ends there, and an idle gap of at least
    `gap_threshold_hours` sends the technician back to the depot in between.
    Legs whose normalized ends are equal are dropped.
    """
    depot = depot_address.strip() if depot_address and depot_address.strip() else None
    segments: list[TravelSegment] = []

    def add_leg(
        from_address: Optional[str],
        to_address: Optional[str],
        departure_at: datetime,
        from_kind: str,
        to_kind: str,
        from_booking_id: Optional[int] = None,
        to_booking_id: Optional[int] = None,
    ) -> None:
        if not from_address or not to_address:
            return
        if normalize_address(from_address) == normalize_address(to_address):
            return
        segments.append(
            TravelSegment(
                from_address=from_address,
                to_address=to_address,
                departure_at=departure_at,
                from_kind=from_kind,
                to_kind=to_kind,
                from_booking_id=from_booking_id,
                to_booking_id=to_booking_id,
            )
        )

    if not jobs:
        return segments

    first, last = jobs[0], jobs[-1]
    if depot:
        add_leg(depot, first.location, first.start_at, "depot", "job", None, first.booking_id)

    for current, following in zip(jobs, jobs[1:]):
        idle_minutes = minutes_between(current.end_at, following.start_at)
        if depot and idle_minutes >= gap_threshold_hours * 60:
            add_leg(
                current.location, depot, current.end_at, "job", "depot", current.booking_id, None
            )
            add_leg(
                depot, following.location, following.start_at, "depot", "job", None, following.booking_id
            )
        else:
            add_leg(
                current.location,
                following.location,
                current.end_at,
                "job",
                "job",
                current.booking_id,
                following.booking_id,
            )

    if depot:
        add_leg(last.location, depot, last.end_at, "job", "depot", last.booking_id, None)

    return segments
