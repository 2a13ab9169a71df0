"""Crew slot candidates for moving a booking or placing due work.

Candidates are scored without the routing provider first (due penalty plus
crew load); travel is only priced for the best few when a location is known.
"""

from datetime import date, datetime, timedelta
from itertools import combinations
from typing import Optional

from pydantic import BaseModel

from ...config import CLOSED_WEEKDAYS
from ..scheduling.schemas import ScheduledJob
from ..scheduling.time_calculator import date_key, iter_days
from .schemas import PlacementCandidate, ScoreBreakdown

MAX_CREW_DAY_HOURS = 12
DEFAULT_START_HOUR = 9
DUE_PLACEMENT_BUFFER_MINUTES = 30
HARD_DUE_POINTS_PER_DAY = 120
SOFT_DUE_POINTS_PER_DAY = 20
SOFT_DUE_MAX_DAYS = 14
MOVE_TRAVEL_SHORTLIST = 28
MOVE_MAX_CANDIDATES = 3
DUE_MAX_CANDIDATES = 5


class CrewSlot(BaseModel):
    """A crew on a day, before travel is priced"""

    day: date
    start_at: datetime
    technician_ids: list[int]
    technician_names: list[str]
    last_locations: list[Optional[str]]
    load_hours: float
    due_penalty_days: int
    due_penalty_points: int

    @property
    def load_points(self) -> int:
        return round(self.load_hours * 10)

    @property
    def pre_travel_score(self) -> int:
        return self.due_penalty_points + self.load_points


def due_penalty_points(days_late: int, policy: str) -> int:
    if days_late <= 0:
        return 0
    if policy == "hard":
        return days_late * HARD_DUE_POINTS_PER_DAY
    return min(days_late, SOFT_DUE_MAX_DAYS) * SOFT_DUE_POINTS_PER_DAY


def group_by_technician_day(jobs: list[ScheduledJob]) -> dict[tuple[int, str], list[ScheduledJob]]:
    """Jobs per (technician, stored date) in service-day order"""
    grouped: dict[tuple[int, str], list[ScheduledJob]] = {}
    for job in jobs:
        for technician_id in job.technician_ids:
            grouped.setdefault((technician_id, job.date_key), []).append(job)
    for day_jobs in grouped.values():
        day_jobs.sort(key=lambda j: (j.ordering_key, j.booking_id))
    return grouped


def crew_slots(
    technicians: list,
    jobs_by_day: dict[tuple[int, str], list[ScheduledJob]],
    date_from: date,
    date_to: date,
    due_date: date,
    job_hours: float,
    crew_size: int,
    policy: str,
    buffer_minutes: int,
    today: date,
) -> list[CrewSlot]:
    """
    Every crew of `crew_size` from `technicians` on every open day of the window,
    best pre-travel score first.

    A crew is skipped on a day when any member would pass MAX_CREW_DAY_HOURS.
    The crew starts once its busiest member is free again.
    """
    if not technicians:
        return []
    size = max(1, min(crew_size, len(technicians)))

    slots = []
    for day in iter_days(date_from, date_to):
        if day.weekday() in CLOSED_WEEKDAYS or day < today:
            continue
        days_late = max(0, (day - due_date).days)
        penalty = due_penalty_points(days_late, policy)
        day_start = datetime(day.year, day.month, day.day, DEFAULT_START_HOUR)

        for crew in combinations(technicians, size):
            starts = []
            last_locations = []
            loads = []
            for technician in crew:
                day_jobs = jobs_by_day.get((technician.id, date_key(day)), [])
                load = sum(job.effective_minutes for job in day_jobs) / 60
                if load + job_hours > MAX_CREW_DAY_HOURS:
                    break
                loads.append(load)
                if day_jobs:
                    last = day_jobs[-1]
                    last_locations.append(last.location)
                    starts.append(last.travel_end + timedelta(minutes=buffer_minutes))
                else:
                    last_locations.append(None)
                    starts.append(day_start)
            else:
                slots.append(
                    CrewSlot(
                        day=day,
                        start_at=max(starts),
                        technician_ids=[t.id for t in crew],
                        technician_names=[t.name for t in crew],
                        last_locations=last_locations,
                        load_hours=sum(loads) / len(crew),
                        due_penalty_days=days_late,
                        due_penalty_points=penalty,
                    )
                )

    # Stable: ties keep day then crew order
    slots.sort(key=lambda slot: slot.pre_travel_score)
    return slots


def tail_legs(
    previous_location: Optional[str], location: str, depot: Optional[str]
) -> list[tuple[str, str, int]]:
    """(origin, destination, sign) legs whose sum is the cost of appending `location`"""
    if not location:
        return []
    if not depot:
        return [(previous_location, location, 1)] if previous_location else []
    if not previous_location:
        return [(depot, location, 1), (location, depot, 1)]
    return [(previous_location, location, 1), (location, depot, 1), (previous_location, depot, -1)]


def to_candidate(
    slot: CrewSlot,
    job_hours: float,
    policy: str,
    travel_minutes: Optional[float] = None,
    travel_unknown: bool = False,
    booking_id: Optional[int] = None,
    due_job_id: Optional[int] = None,
) -> PlacementCandidate:
    """Candidate view of a slot; `travel_minutes` None means travel was not priced"""
    travel = travel_minutes or 0
    score = slot.pre_travel_score + travel

    reason = [f"Crew load {slot.load_hours:.1f}h avg"]
    if travel_minutes is not None:
        reason.append(f"+{travel:g}m travel" if travel > 0 else "low travel impact")
    if slot.due_penalty_days > 0:
        reason.append(f"{slot.due_penalty_days} day(s) past due ({policy} due mode)")
    else:
        reason.append("on/before due date")

    return PlacementCandidate(
        date=date_key(slot.day),
        startAt=slot.start_at,
        technicianIds=slot.technician_ids,
        technicianNames=slot.technician_names,
        estimatedJobHours=job_hours,
        incrementalTravelMinutes=travel,
        travelUnknown=travel_unknown,
        score=score,
        scoreBreakdown=ScoreBreakdown(
            duePenaltyDays=slot.due_penalty_days,
            duePenaltyPoints=slot.due_penalty_points,
            loadHours=round(slot.load_hours, 2),
            loadPoints=slot.load_points,
            travelPoints=travel,
            totalScore=score,
            duePolicy=policy,
        ),
        reason=" • ".join(reason),
        bookingId=booking_id,
        dueJobId=due_job_id,
    )
