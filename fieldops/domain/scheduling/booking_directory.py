"""Read model over the booking store used by availability and insights"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_DEPOT_ADDRESS
from ...models import Booking, Technician
from ..travel.address import normalize_address
from .durations import duration_from_price, effective_duration_minutes
from .repository import BookingRepository
from .schemas import DueItem, ScheduledJob
from .time_calculator import day_bounds

logger = logging.getLogger(__name__)


class BookingDirectory:
    """Turns stored bookings into ScheduledJob views with effective durations"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    def _historical_lookup(self, bookings: list[Booking]):
        """Most recent actual minutes at the same location, before a given start"""
        if not bookings:
            return lambda booking: None

        latest_start = max(b.start_at for b in bookings)
        by_location: dict[str, list[tuple]] = {}
        for past in self.repo.find_recent_actuals(self.db, latest_start):
            key = normalize_address(past.location or "")
            if key:
                by_location.setdefault(key, []).append((past.start_at, past.actual_duration_minutes))

        def lookup(booking: Booking) -> Optional[float]:
            for started, minutes in by_location.get(normalize_address(booking.location or ""), []):
                if started < booking.start_at:
                    return minutes
            return None

        return lookup

    def _scheduled_jobs(self, bookings: list[Booking]) -> list[ScheduledJob]:
        historical = self._historical_lookup(
            [b for b in bookings if b.actual_duration_minutes is None]
        )

        jobs = []
        for booking in bookings:
            jobs.append(
                ScheduledJob(
                    booking_id=booking.id,
                    technician_ids=sorted(t.id for t in booking.technicians),
                    client_name=booking.client_name,
                    location=booking.location,
                    start_at=booking.start_at,
                    effective_minutes=effective_duration_minutes(
                        booking.hours,
                        booking.actual_duration_minutes,
                        historical(booking) if booking.actual_duration_minutes is None else None,
                    ),
                )
            )
        jobs.sort(key=lambda job: (job.ordering_key, job.booking_id))
        return jobs

    def jobs_in_range(
        self,
        date_from: date,
        date_to: date,
        technician_ids: Optional[list[int]] = None,
    ) -> list[ScheduledJob]:
        start, end = day_bounds(date_from, date_to)
        return self._scheduled_jobs(
            self.repo.find_bookings_in_range(self.db, start, end, technician_ids)
        )

    def get_job(self, booking_id: int) -> Optional[ScheduledJob]:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            return None
        return self._scheduled_jobs([booking])[0]

    def technician_pool(self, technician_ids: Optional[list[int]] = None) -> list[Technician]:
        """Active technicians, narrowed to `technician_ids` when given"""
        technicians = self.repo.list_active_technicians(self.db)
        if technician_ids:
            technicians = [t for t in technicians if t.id in technician_ids]
        return technicians

    def due_unscheduled(self, date_from: date, date_to: date) -> list[DueItem]:
        return [
            DueItem(
                due_job_id=job.id,
                client_name=job.client_name,
                location=job.location,
                due_date=job.due_date,
                price=job.price,
                estimated_minutes=duration_from_price(job.price),
            )
            for job in self.repo.find_due_unscheduled_in_range(self.db, date_from, date_to)
        ]

    def depot_for(self, technician_id: Optional[int]) -> Optional[str]:
        if technician_id is not None:
            technician = self.repo.get_technician(self.db, technician_id)
            if technician and technician.depot_address:
                return technician.depot_address
        return DEFAULT_DEPOT_ADDRESS

    def depots_for(self, technician_ids: list[int]) -> dict[int, Optional[str]]:
        depots = {
            technician.id: technician.depot_address or DEFAULT_DEPOT_ADDRESS
            for technician in self.repo.get_technicians(self.db, technician_ids)
        }
        for technician_id in technician_ids:
            depots.setdefault(technician_id, DEFAULT_DEPOT_ADDRESS)
        return depots
