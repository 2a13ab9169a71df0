"""Service-day and business-time-zone arithmetic.

Booking times are stored as naive wall-clock values in BUSINESS_TIME_ZONE.
Jobs that start before SERVICE_DAY_CUTOFF_HOUR belong to the tail of the
service day named by their stored date: 02:00 on the 15th is one of the last
stops of the 15th and is physically driven in the early hours of the 16th.
Only ordering and routing use that shift; date grouping keeps the stored date.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from dateutil import tz

from ...config import BUSINESS_TIME_ZONE, SERVICE_DAY_CUTOFF_HOUR


def business_tz():
    zone = tz.gettz(BUSINESS_TIME_ZONE)
    if zone is None:
        raise ValueError(f"Unknown time zone: {BUSINESS_TIME_ZONE}")
    return zone


def to_business_local(value: datetime) -> datetime:
    """Naive wall-clock datetime in the business zone; naive input is already local"""
    if value.tzinfo is None:
        return value
    return value.astimezone(business_tz()).replace(tzinfo=None)


def to_utc_instant(local_value: datetime) -> datetime:
    """Attach the business zone to a naive wall-clock value and convert to UTC"""
    if local_value.tzinfo is not None:
        return local_value.astimezone(tz.UTC)
    return local_value.replace(tzinfo=business_tz()).astimezone(tz.UTC)


def business_now() -> datetime:
    return datetime.now(tz.UTC).astimezone(business_tz()).replace(tzinfo=None)


def date_key(value) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    return value.isoformat()


def service_day_ordering_key(start_at: datetime) -> tuple[str, int]:
    """(date key, minutes into the service day) used for every job ordering.

    The date key is the stored calendar date. Minutes before the cutoff hour
    are pushed past midnight so they sort after the evening jobs.
    """
    local = to_business_local(start_at)
    hour = local.hour + 24 if local.hour < SERVICE_DAY_CUTOFF_HOUR else local.hour
    return date_key(local), hour * 60 + local.minute


def routing_start(start_at: datetime) -> datetime:
    """Physical start used for travel timelines and departure instants"""
    local = to_business_local(start_at)
    if local.hour < SERVICE_DAY_CUTOFF_HOUR:
        return local + timedelta(days=1)
    return local


def combine_date_time(day: date, time_of_day: str) -> datetime:
    hour, minute = (int(part) for part in time_of_day.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute)


def iter_days(date_from: date, date_to: date):
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)


def day_bounds(date_from: date, date_to: date) -> tuple[datetime, datetime]:
    """Half-open [start, end) wall-clock range covering both dates"""
    start = datetime(date_from.year, date_from.month, date_from.day)
    end = datetime(date_to.year, date_to.month, date_to.day) + timedelta(days=1)
    return start, end


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60


def is_future(local_value: datetime, now: Optional[datetime] = None) -> bool:
    reference = now or datetime.now(tz.UTC)
    if reference.tzinfo is None:
        reference = to_utc_instant(reference)
    return to_utc_instant(local_value) > reference


def utc_now() -> datetime:
    """Naive UTC timestamp, the form stored in expiry and audit columns"""
    return datetime.now(tz.UTC).replace(tzinfo=None)
