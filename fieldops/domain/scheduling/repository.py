"""Scheduling repository - Database operations for bookings, due jobs and technicians"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...models import Booking, DueJob, Technician


class BookingRepository:
    """Repository for booking store queries"""

    @staticmethod
    def find_bookings_in_range(
        db: Session,
        start: datetime,
        end: datetime,
        technician_ids: Optional[list[int]] = None,
    ) -> list[Booking]:
        """Non-cancelled bookings with start in [start, end), optionally for some technicians"""
        query = (
            db.query(Booking)
            .options(selectinload(Booking.technicians))
            .filter(
                Booking.start_at >= start,
                Booking.start_at < end,
                Booking.status != "cancelled",
            )
        )
        if technician_ids:
            query = query.filter(Booking.technicians.any(Technician.id.in_(technician_ids)))
        return query.order_by(Booking.start_at.asc()).all()

    @staticmethod
    def find_recent_actuals(db: Session, before: datetime, limit: int = 1000) -> list[Booking]:
        """Bookings with a recorded actual duration, newest first"""
        return (
            db.query(Booking)
            .filter(
                Booking.start_at < before,
                Booking.actual_duration_minutes.isnot(None),
                Booking.actual_duration_minutes > 0,
            )
            .order_by(Booking.start_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def find_due_unscheduled_in_range(db: Session, start: date, end: date) -> list[DueJob]:
        """Due jobs with a due date in [start, end] and no booking yet"""
        return (
            db.query(DueJob)
            .filter(
                DueJob.due_date >= start,
                DueJob.due_date <= end,
                DueJob.scheduled_booking_id.is_(None),
            )
            .order_by(DueJob.due_date.asc(), DueJob.id.asc())
            .all()
        )

    @staticmethod
    def get_technician(db: Session, technician_id: int) -> Optional[Technician]:
        return db.query(Technician).filter(Technician.id == technician_id).first()

    @staticmethod
    def get_technicians(db: Session, technician_ids: list[int]) -> list[Technician]:
        if not technician_ids:
            return []
        return db.query(Technician).filter(Technician.id.in_(technician_ids)).all()

    @staticmethod
    def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
        return (
            db.query(Booking)
            .options(selectinload(Booking.technicians))
            .filter(Booking.id == booking_id)
            .first()
        )

    @staticmethod
    def list_active_technicians(db: Session) -> list[Technician]:
        return db.query(Technician).filter(Technician.is_active.is_(True)).order_by(Technician.id).all()
