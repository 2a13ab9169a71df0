from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# A booking may be worked by more than one technician
booking_technicians = Table(
    "booking_technicians",
    Base.metadata,
    Column("booking_id", Integer, ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "technician_id", Integer, ForeignKey("technicians.id", ondelete="CASCADE"), primary_key=True
    ),
)


class Technician(Base):
    __tablename__ = "technicians"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    depot_address = Column(String(500), nullable=True)  # home base, start/end of the day route
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    bookings = relationship("Booking", secondary=booking_technicians, back_populates="technicians")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    client_name = Column(String(255), nullable=True)
    location = Column(String(500), nullable=True)
    # Wall-clock time in BUSINESS_TIME_ZONE, stored without offset
    start_at = Column(DateTime, nullable=False, index=True)
    hours = Column(Float, nullable=True)  # nominal scheduled duration
    actual_duration_minutes = Column(Float, nullable=True)
    status = Column(String(50), default="scheduled")  # scheduled, completed, cancelled
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    technicians = relationship(
        "Technician", secondary=booking_technicians, back_populates="bookings"
    )


class DueJob(Base):
    """Recurring work that is due but may not have a booking yet"""

    __tablename__ = "due_jobs"

    id = Column(Integer, primary_key=True, index=True)
    client_name = Column(String(255), nullable=True)
    location = Column(String(500), nullable=True)
    due_date = Column(Date, nullable=False, index=True)
    price = Column(Float, nullable=True)
    scheduled_booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class TravelTimeCache(Base):
    __tablename__ = "travel_time_cache"

    id = Column(Integer, primary_key=True, index=True)
    pair_hash = Column(String(64), unique=True, nullable=False, index=True)
    origin_normalized = Column(String(500), nullable=False)
    destination_normalized = Column(String(500), nullable=False)
    time_bucket = Column(String(20), nullable=False)  # w{weekday Sun=0}|h{hour bucket}
    typical_minutes = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=False)
    route_polyline = Column(Text, nullable=True)
    travel_notes = Column(String(500), nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ScheduleInsight(Base):
    __tablename__ = "schedule_insights"
    __table_args__ = (
        # At most one open insight per fingerprint
        Index(
            "uq_schedule_insights_open_fingerprint",
            "fingerprint",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    # travel_overload_day, rest_gap_warning, service_day_boundary_risk,
    # route_efficiency_opportunity, due_soon_unscheduled
    kind = Column(String(50), nullable=False, index=True)
    severity = Column(String(20), nullable=False)  # info, warning, critical
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    date_key = Column(String(10), nullable=True, index=True)  # YYYY-MM-DD
    technician_id = Column(Integer, ForeignKey("technicians.id"), nullable=True, index=True)
    booking_ids = Column(JSON, default=list)
    due_job_id = Column(Integer, ForeignKey("due_jobs.id"), nullable=True)
    fingerprint = Column(String(64), nullable=False, index=True)
    status = Column(String(20), default="open", index=True)  # open, resolved, dismissed
    source = Column(String(20), default="rule")  # rule, hybrid
    confidence = Column(Float, nullable=True)
    details = Column(JSON, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolution_note = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ScheduleInsightRun(Base):
    """Append-only log of analyzer invocations"""

    __tablename__ = "schedule_insight_runs"

    id = Column(Integer, primary_key=True, index=True)
    trigger = Column(String(20), nullable=False)  # auto, manual_day, manual_range, manual_move
    date_from = Column(String(10), nullable=False)
    date_to = Column(String(10), nullable=False)
    technician_ids = Column(JSON, default=list)
    generated_count = Column(Integer, default=0)
    dismissed_count = Column(Integer, default=0)
    enhanced = Column(Boolean, default=False)
    model = Column(String(100), nullable=True)
    duration_ms = Column(Integer, default=0)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
