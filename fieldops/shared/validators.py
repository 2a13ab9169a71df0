"""Shared validation utilities"""

import math
import re
from datetime import date, datetime
from typing import Optional

DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
MAX_ADDRESS_LENGTH = 500


def validate_date_key(value: str) -> str:
    """
    Validate a calendar date key.

    Args:
        value: Date string in YYYY-MM-DD format

    Returns:
        The same date key

    Raises:
        ValueError: If the value is not a real calendar date
    """
    if not value or not DATE_KEY_PATTERN.match(value):
        raise ValueError("Date must be in YYYY-MM-DD format")
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Invalid calendar date: {value}") from e
    return value


def validate_time_of_day(value: str) -> str:
    """
    Validate and zero-pad a 24h time of day.

    Args:
        value: Time string such as "9:30" or "14:00"

    Returns:
        Zero-padded HH:MM string

    Raises:
        ValueError: If the time is malformed
    """
    match = TIME_PATTERN.match((value or "").strip())
    if not match:
        raise ValueError("Time must be in HH:MM 24-hour format")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def validate_address(address: Optional[str]) -> Optional[str]:
    """Reject blank or oversized addresses; None passes through"""
    if address is None:
        return None
    stripped = address.strip()
    if not stripped:
        raise ValueError("Address cannot be blank")
    if len(stripped) > MAX_ADDRESS_LENGTH:
        raise ValueError(f"Address must be at most {MAX_ADDRESS_LENGTH} characters")
    return stripped


def validate_duration_hours(hours: float) -> float:
    if hours is None or not math.isfinite(hours) or hours <= 0 or hours > 24:
        raise ValueError("Duration must be greater than 0 and at most 24 hours")
    return hours


def parse_date_key(value: str) -> date:
    return datetime.strptime(validate_date_key(value), "%Y-%m-%d").date()
