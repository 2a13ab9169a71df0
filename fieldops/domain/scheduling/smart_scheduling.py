"""Ranks feasible days for a new job by how much driving they add"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..travel.service import TravelService
from .availability_service import AvailabilityService
from .schemas import RankedDay
from .time_calculator import date_key

logger = logging.getLogger(__name__)


class SmartSchedulingService:
    def __init__(self, db: Session, travel: Optional[TravelService] = None):
        self.db = db
        self.travel = travel or TravelService(db)
        self.availability = AvailabilityService(db, self.travel)

    async def rank_days(
        self,
        date_from: date,
        date_to: date,
        requested_time: str,
        duration_hours: float,
        location: Optional[str] = None,
        technician_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[RankedDay]:
        """Available days ordered by projected travel, then existing job count, then date"""
        verdicts = await self.availability.get_available_days(
            date_from, date_to, requested_time, duration_hours, location, technician_id, now
        )
        open_days = {v.date: v for v in verdicts if v.available}
        if not open_days:
            return []

        directory = self.availability.directory
        jobs = directory.jobs_in_range(
            date_from, date_to, [technician_id] if technician_id is not None else None
        )
        jobs_by_day: dict[str, list] = {}
        for job in jobs:
            if job.date_key in open_days:
                jobs_by_day.setdefault(job.date_key, []).append(job)

        depot = directory.depot_for(technician_id)
        summaries = await self.travel.summarize_days(
            [
                (day_key, technician_id, [j.to_route_job() for j in jobs_by_day.get(day_key, [])], depot)
                for day_key in open_days
            ]
        )

        ranked = []
        for summary in summaries:
            verdict = open_days[summary.date]
            ranked.append(
                RankedDay(
                    date=summary.date,
                    currentTravelMinutes=summary.total_travel_minutes,
                    projectedTravelMinutes=verdict.projectedTravelMinutes or 0,
                    existingJobCount=len(jobs_by_day.get(summary.date, [])),
                    closeRoute=verdict.closeRoute,
                )
            )

        ranked.sort(key=lambda d: (d.projectedTravelMinutes, d.existingJobCount, d.date))
        logger.info(
            f"📊 Ranked {len(ranked)} open days between {date_key(date_from)} and {date_key(date_to)}"
        )
        return ranked
