"""Travel domain schemas - value objects for routing and cached estimates"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

StopKind = Literal["depot", "job"]


class RoutePair(BaseModel):
    """One origin/destination/departure query, already keyed for the cache"""

    origin: str
    destination: str
    departure_at: datetime  # business-local wall clock
    origin_normalized: str
    destination_normalized: str
    time_bucket: str
    pair_hash: str


class TravelEstimate(BaseModel):
    pair_hash: str
    origin_normalized: str
    destination_normalized: str
    time_bucket: str
    typical_minutes: float
    distance_km: float
    route_polyline: Optional[str] = None
    travel_notes: Optional[str] = None

    class Config:
        from_attributes = True


class RouteJob(BaseModel):
    """A job as the day router sees it: a place and a routing timeline"""

    booking_id: Optional[int] = None
    location: str
    start_at: datetime  # routing start (service-day adjusted)
    end_at: datetime  # routing start + travel-relevant duration


class TravelSegment(BaseModel):
    from_address: str
    to_address: str
    departure_at: datetime
    from_kind: StopKind
    to_kind: StopKind
    from_booking_id: Optional[int] = None
    to_booking_id: Optional[int] = None


class SegmentEstimate(TravelSegment):
    """A segment with its estimate; minutes/km stay None when unknown"""

    typical_minutes: Optional[float] = None
    distance_km: Optional[float] = None
    route_polyline: Optional[str] = None
    travel_notes: Optional[str] = None


class DayTravelSummary(BaseModel):
    date: str
    technician_id: Optional[int] = None
    total_travel_minutes: float = 0
    total_travel_km: float = 0
    segments: list[SegmentEstimate] = []
    is_partial: bool = False  # no depot, so the first and last legs are missing
    has_unknown: bool = False  # at least one segment has no estimate
