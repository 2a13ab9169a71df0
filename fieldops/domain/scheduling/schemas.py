"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime, timedelta
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import (
    validate_address,
    validate_date_key,
    validate_duration_hours,
    validate_time_of_day,
)
from ..travel.schemas import RouteJob
from .durations import planning_window_minutes, travel_relevant_minutes
from .time_calculator import date_key, routing_start, service_day_ordering_key


class ScheduledJob(BaseModel):
    """An existing booking with its effective duration resolved"""

    booking_id: int
    technician_ids: list[int] = []
    client_name: Optional[str] = None
    location: Optional[str] = None
    start_at: datetime  # stored wall-clock start
    effective_minutes: float

    @property
    def date_key(self) -> str:
        return date_key(self.start_at)

    @property
    def ordering_key(self) -> tuple[str, int]:
        return service_day_ordering_key(self.start_at)

    @property
    def routing_start(self) -> datetime:
        return routing_start(self.start_at)

    @property
    def travel_end(self) -> datetime:
        return self.routing_start + timedelta(minutes=travel_relevant_minutes(self.effective_minutes))

    @property
    def blocked_end(self) -> datetime:
        return self.routing_start + timedelta(minutes=planning_window_minutes(self.effective_minutes))

    def to_route_job(self) -> RouteJob:
        return RouteJob(
            booking_id=self.booking_id,
            location=self.location or "",
            start_at=self.routing_start,
            end_at=self.travel_end,
        )


class DueItem(BaseModel):
    """Due work without a booking"""

    due_job_id: int
    client_name: Optional[str] = None
    location: Optional[str] = None
    due_date: date
    price: Optional[float] = None
    estimated_minutes: int


class AvailabilityRequest(BaseModel):
    """Schema for an availability lookup"""

    dateFrom: str
    dateTo: str
    requestedTime: str
    durationHours: float
    location: Optional[str] = None
    technicianId: Optional[int] = None

    @field_validator("dateFrom", "dateTo")
    @classmethod
    def validate_dates(cls, v):
        return validate_date_key(v)

    @field_validator("requestedTime")
    @classmethod
    def validate_time(cls, v):
        return validate_time_of_day(v)

    @field_validator("durationHours")
    @classmethod
    def validate_duration(cls, v):
        return validate_duration_hours(v)

    @field_validator("location")
    @classmethod
    def validate_location(cls, v):
        return validate_address(v)


class DayAvailability(BaseModel):
    date: str
    available: bool
    reason: Optional[str] = None
    projectedTravelMinutes: Optional[float] = None
    closeRoute: bool = False


class AvailabilityResponse(BaseModel):
    days: list[DayAvailability]


class RankedDay(BaseModel):
    date: str
    currentTravelMinutes: float
    projectedTravelMinutes: float
    existingJobCount: int
    closeRoute: bool = False


class RankedDaysResponse(BaseModel):
    days: list[RankedDay]
