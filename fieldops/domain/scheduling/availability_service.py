"""Availability Engine - per-day feasibility of a requested appointment.

Each day is checked in a fixed order and the first failing check names the
reason: hard closures, direct overlap, neighbor travel buffers, then the daily
drive-time ceiling. Missing travel estimates never make a day available.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import (
    CLOSE_ROUTE_MINUTES,
    CLOSED_WEEKDAYS,
    DAILY_DRIVE_CEILING_MINUTES,
    MAX_AVAILABILITY_RANGE_DAYS,
)
from ..travel.cache_service import make_pair
from ..travel.schemas import RoutePair, TravelEstimate
from ..travel.service import TravelService
from .booking_directory import BookingDirectory
from .day_router import build_segments
from .durations import planning_window_minutes, travel_relevant_minutes
from .schemas import DayAvailability, ScheduledJob
from .time_calculator import (
    business_now,
    combine_date_time,
    date_key,
    iter_days,
    minutes_between,
    routing_start,
)

logger = logging.getLogger(__name__)

REASON_CLOSED = "closed"
REASON_PASSED = "passed"
REASON_ALREADY_BOOKED = "already booked"
REASON_ESTIMATE_UNAVAILABLE = "travel estimate unavailable — conservative fallback"
REASON_NOT_ENOUGH_TRAVEL = "not enough travel time"
REASON_DRIVE_LIMIT = "exceeds drive-time limit"


class RequestedSlot:
    """The candidate job placed on one particular day"""

    def __init__(self, day: date, requested_time: str, duration_hours: float, location: Optional[str]):
        minutes = duration_hours * 60
        self.day = day
        self.location = location
        self.start = routing_start(combine_date_time(day, requested_time))
        self.travel_end = self.start + timedelta(minutes=travel_relevant_minutes(minutes))
        self.blocked_end = self.start + timedelta(minutes=planning_window_minutes(minutes))

    def overlaps(self, job: ScheduledJob) -> bool:
        return self.start < job.blocked_end and job.routing_start < self.blocked_end


class DayPlan:
    """Pairs one open day needs resolved before the travel checks can run"""

    def __init__(self, slot: RequestedSlot, jobs: list[ScheduledJob], depot: Optional[str]):
        self.slot = slot
        self.jobs = jobs
        self.previous: Optional[ScheduledJob] = None
        self.next: Optional[ScheduledJob] = None
        self.previous_pair: Optional[RoutePair] = None
        self.next_pair: Optional[RoutePair] = None

        for job in jobs:
            if job.travel_end <= slot.start:
                if self.previous is None or job.travel_end > self.previous.travel_end:
                    self.previous = job
            elif job.routing_start >= slot.travel_end:
                if self.next is None or job.routing_start < self.next.routing_start:
                    self.next = job

        if slot.location:
            if self.previous and self.previous.location:
                self.previous_pair = make_pair(
                    self.previous.location, slot.location, self.previous.travel_end
                )
            if self.next and self.next.location:
                self.next_pair = make_pair(slot.location, self.next.location, slot.travel_end)

        self.day_pairs = [
            make_pair(segment.from_address, segment.to_address, segment.departure_at)
            for segment in build_segments([job.to_route_job() for job in jobs], depot)
        ]

    def all_pairs(self) -> list[RoutePair]:
        return [p for p in (self.previous_pair, self.next_pair) if p is not None] + self.day_pairs


def leg_minutes(pair: Optional[RoutePair], known: dict[str, TravelEstimate]) -> Optional[float]:
    """0 for no leg or a same-place leg, None when the estimate is unknown"""
    if pair is None or pair.origin_normalized == pair.destination_normalized:
        return 0.0
    estimate = known.get(pair.pair_hash)
    return estimate.typical_minutes if estimate else None


class AvailabilityService:
    """Service layer for day-by-day availability"""

    def __init__(self, db: Session, travel: Optional[TravelService] = None):
        self.db = db
        self.directory = BookingDirectory(db)
        self.travel = travel or TravelService(db)

    @staticmethod
    def validate_range(date_from: date, date_to: date) -> None:
        if date_to < date_from:
            raise HTTPException(status_code=400, detail="dateTo must not be before dateFrom")
        if (date_to - date_from).days + 1 > MAX_AVAILABILITY_RANGE_DAYS:
            raise HTTPException(
                status_code=400,
                detail=f"Date range cannot exceed {MAX_AVAILABILITY_RANGE_DAYS} days",
            )

    def _hard_checks(self, day: date, slot: RequestedSlot, jobs: list[ScheduledJob], today: date):
        if day.weekday() in CLOSED_WEEKDAYS:
            return REASON_CLOSED
        if day < today:
            return REASON_PASSED
        if any(slot.overlaps(job) for job in jobs):
            return REASON_ALREADY_BOOKED
        return None

    def _travel_checks(self, plan: DayPlan, known: dict[str, TravelEstimate]) -> DayAvailability:
        day_key = date_key(plan.slot.day)
        previous_leg = leg_minutes(plan.previous_pair, known)
        next_leg = leg_minutes(plan.next_pair, known)

        if previous_leg is None or next_leg is None:
            return DayAvailability(date=day_key, available=False, reason=REASON_ESTIMATE_UNAVAILABLE)

        if plan.previous_pair and minutes_between(plan.previous.travel_end, plan.slot.start) < previous_leg:
            return DayAvailability(date=day_key, available=False, reason=REASON_NOT_ENOUGH_TRAVEL)
        if plan.next_pair and minutes_between(plan.slot.travel_end, plan.next.routing_start) < next_leg:
            return DayAvailability(date=day_key, available=False, reason=REASON_NOT_ENOUGH_TRAVEL)

        existing_minutes = 0.0
        for pair in plan.day_pairs:
            minutes = leg_minutes(pair, known)
            if minutes is None:
                return DayAvailability(
                    date=day_key, available=False, reason=REASON_ESTIMATE_UNAVAILABLE
                )
            existing_minutes += minutes

        projected = round(existing_minutes + previous_leg + next_leg, 1)
        if projected <= DAILY_DRIVE_CEILING_MINUTES:
            return DayAvailability(date=day_key, available=True, projectedTravelMinutes=projected)

        # Over the ceiling: only a stop that sits on the existing route is accepted.
        # TODO: confirm with operations whether close stops need a per-day job cap
        if self._is_close_to_route(plan, previous_leg, next_leg):
            return DayAvailability(
                date=day_key, available=True, projectedTravelMinutes=projected, closeRoute=True
            )
        return DayAvailability(
            date=day_key, available=False, reason=REASON_DRIVE_LIMIT, projectedTravelMinutes=projected
        )

    @staticmethod
    def _is_close_to_route(plan: DayPlan, previous_leg: float, next_leg: float) -> bool:
        """A neighbor leg within CLOSE_ROUTE_MINUTES; a same-place neighbor is a 0 minute leg"""
        if plan.previous_pair and previous_leg <= CLOSE_ROUTE_MINUTES:
            return True
        return bool(plan.next_pair) and next_leg <= CLOSE_ROUTE_MINUTES

    async def get_available_days(
        self,
        date_from: date,
        date_to: date,
        requested_time: str,
        duration_hours: float,
        location: Optional[str] = None,
        technician_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[DayAvailability]:
        """
        Availability verdict for every calendar day in [date_from, date_to].

        Routing pairs for all days that survive the hard checks are resolved
        together, so the cache is read once and misses are estimated once.
        """
        self.validate_range(date_from, date_to)
        today = (now or business_now()).date()
        location = location.strip() if location and location.strip() else None

        logger.info(
            f"🔄 Availability {date_from}..{date_to} at {requested_time} for {duration_hours}h "
            f"(technician={technician_id})"
        )

        jobs = self.directory.jobs_in_range(
            date_from, date_to, [technician_id] if technician_id is not None else None
        )
        jobs_by_day: dict[str, list[ScheduledJob]] = {}
        for job in jobs:
            jobs_by_day.setdefault(job.date_key, []).append(job)
        depot = self.directory.depot_for(technician_id)

        verdicts: dict[str, DayAvailability] = {}
        plans: list[DayPlan] = []
        for day in iter_days(date_from, date_to):
            day_key = date_key(day)
            day_jobs = jobs_by_day.get(day_key, [])
            slot = RequestedSlot(day, requested_time, duration_hours, location)
            reason = self._hard_checks(day, slot, day_jobs, today)
            if reason:
                verdicts[day_key] = DayAvailability(date=day_key, available=False, reason=reason)
            else:
                plans.append(DayPlan(slot, day_jobs, depot))

        pairs = [pair for plan in plans for pair in plan.all_pairs()]
        known = await self.travel.resolve_pairs(pairs) if pairs else {}

        for plan in plans:
            verdicts[date_key(plan.slot.day)] = self._travel_checks(plan, known)

        days = [verdicts[date_key(day)] for day in iter_days(date_from, date_to)]
        available = sum(1 for d in days if d.available)
        logger.info(f"📊 Availability: {available}/{len(days)} days open")
        return days
