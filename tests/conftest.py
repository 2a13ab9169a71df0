from datetime import date, datetime
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fieldops import models
from fieldops.database import Base
from fieldops.domain.travel.address import normalize_address
from fieldops.domain.travel.cache_service import TravelPairCache, make_pair
from fieldops.domain.travel.schemas import TravelEstimate

# Tuesday 2030-01-01 08:00 business-local; every scenario is dated after it
NOW = datetime(2030, 1, 1, 8, 0)
TODAY = date(2030, 1, 1)
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
FRIDAY = date(2030, 1, 11)
SATURDAY = date(2030, 1, 12)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("REDIS_HOST", raising=False)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


class FakeRoutingProvider:
    """Stands in for GoogleRoutesService and records every call"""

    is_configured = True

    def __init__(self, minutes: Optional[dict] = None, default_minutes: Optional[float] = None):
        self.minutes = {
            (normalize_address(o), normalize_address(d)): m for (o, d), m in (minutes or {}).items()
        }
        self.default_minutes = default_minutes
        self.calls = []

    async def compute_route(self, origin, destination, departure_utc=None):
        self.calls.append((origin, destination, departure_utc))
        key = (normalize_address(origin), normalize_address(destination))
        minutes = self.minutes.get(key, self.default_minutes)
        if minutes is None:
            return None
        return {"minutes": minutes, "km": minutes * 0.8, "polyline": "abc"}


@pytest.fixture
def provider():
    return FakeRoutingProvider()


def add_technician(db, name="Alex", depot_address=None) -> models.Technician:
    technician = models.Technician(name=name, depot_address=depot_address)
    db.add(technician)
    db.commit()
    db.refresh(technician)
    return technician


def add_booking(
    db,
    start_at: datetime,
    location: str,
    hours: Optional[float] = 4,
    technicians=(),
    actual_duration_minutes: Optional[float] = None,
    client_name: Optional[str] = None,
    status: str = "scheduled",
) -> models.Booking:
    booking = models.Booking(
        start_at=start_at,
        location=location,
        hours=hours,
        actual_duration_minutes=actual_duration_minutes,
        client_name=client_name,
        status=status,
    )
    booking.technicians = list(technicians)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def add_due_job(db, due_date: date, location="9 Due Way", price=None, client_name=None):
    job = models.DueJob(due_date=due_date, location=location, price=price, client_name=client_name)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def seed_travel(db, origin: str, destination: str, departure_at: datetime, minutes: float, km=None):
    """Put a known estimate in the travel cache"""
    pair = make_pair(origin, destination, departure_at)
    TravelPairCache(db).store(
        [
            TravelEstimate(
                pair_hash=pair.pair_hash,
                origin_normalized=pair.origin_normalized,
                destination_normalized=pair.destination_normalized,
                time_bucket=pair.time_bucket,
                typical_minutes=minutes,
                distance_km=km if km is not None else minutes * 0.8,
            )
        ]
    )
    return pair
