import asyncio
from datetime import date, datetime

import pytest
from fastapi import HTTPException

from conftest import (
    MONDAY,
    NOW,
    TUESDAY,
    FakeRoutingProvider,
    add_booking,
    add_technician,
    seed_travel,
)
from fieldops.cache import Cache
from fieldops.domain.scheduling.availability_service import (
    REASON_ALREADY_BOOKED,
    REASON_CLOSED,
    REASON_DRIVE_LIMIT,
    REASON_ESTIMATE_UNAVAILABLE,
    REASON_NOT_ENOUGH_TRAVEL,
    REASON_PASSED,
    AvailabilityService,
)
from fieldops.domain.scheduling.smart_scheduling import SmartSchedulingService
from fieldops.domain.travel.cache_service import TravelPairCache
from fieldops.domain.travel.service import TravelService

DEPOT = "100 Depot Rd"


def travel_service(db, provider):
    return TravelService(db, provider, cache=TravelPairCache(db, hot_cache=Cache()))


def check(db, provider, day_from, day_to, time, hours, location=None, technician_id=None):
    service = AvailabilityService(db, travel_service(db, provider))
    return asyncio.run(
        service.get_available_days(
            day_from, day_to, time, hours, location, technician_id, now=NOW
        )
    )


def check_day(db, provider, day, time, hours, location=None, technician_id=None):
    return check(db, provider, day, day, time, hours, location, technician_id)[0]


def test_every_day_in_range_gets_a_verdict_in_order(db, provider):
    days = check(db, provider, date(2029, 12, 30), date(2030, 1, 5), "10:00", 2)

    assert [(d.date, d.available, d.reason) for d in days] == [
        ("2029-12-30", False, REASON_PASSED),
        ("2029-12-31", False, REASON_PASSED),
        ("2030-01-01", True, None),
        ("2030-01-02", True, None),
        ("2030-01-03", True, None),
        ("2030-01-04", False, REASON_CLOSED),
        ("2030-01-05", False, REASON_CLOSED),
    ]
    assert provider.calls == []


def test_reversed_or_oversized_range_is_rejected(db, provider):
    with pytest.raises(HTTPException) as reversed_range:
        check(db, provider, TUESDAY, MONDAY, "10:00", 2)
    with pytest.raises(HTTPException) as oversized:
        check(db, provider, date(2030, 1, 1), date(2030, 5, 1), "10:00", 2)

    assert reversed_range.value.status_code == 400
    assert oversized.value.status_code == 400


def test_overlap_includes_turnaround_buffer(db, provider):
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", hours=4)

    assert check_day(db, provider, TUESDAY, "13:00", 2).reason == REASON_ALREADY_BOOKED
    # Booking ends 14:00 but blocks until 14:15
    assert check_day(db, provider, TUESDAY, "14:10", 2).reason == REASON_ALREADY_BOOKED
    assert check_day(db, provider, TUESDAY, "07:00", 2).available


def test_cancelled_bookings_do_not_block(db, provider):
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", status="cancelled")

    assert check_day(db, provider, TUESDAY, "11:00", 2).available


def test_other_technicians_bookings_do_not_block(db, provider):
    alex = add_technician(db, "Alex")
    sam = add_technician(db, "Sam")
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", technicians=[alex])

    assert check_day(db, provider, TUESDAY, "11:00", 2, technician_id=sam.id).available
    assert (
        check_day(db, provider, TUESDAY, "11:00", 2, technician_id=alex.id).reason
        == REASON_ALREADY_BOOKED
    )


def test_historical_duration_extends_the_blocked_window(db, provider):
    add_booking(db, datetime(2029, 12, 1, 10, 0), "1 Main St", actual_duration_minutes=300)
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 main street", hours=2)

    # 10:00 + 300 min + 15 min buffer = 15:15
    assert check_day(db, provider, TUESDAY, "15:00", 1).reason == REASON_ALREADY_BOOKED
    assert check_day(db, provider, TUESDAY, "15:15", 1).available


def test_arrival_too_soon_after_previous_job(db, provider):
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", hours=4)
    seed_travel(db, "1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 14, 0), 40)

    verdict = check_day(db, provider, TUESDAY, "14:20", 2, location="2 Oak Ave")

    assert not verdict.available
    assert verdict.reason == REASON_NOT_ENOUGH_TRAVEL
    assert provider.calls == []


def test_arrival_with_enough_travel_time(db, provider):
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", hours=4)
    seed_travel(db, "1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 14, 0), 40)

    verdict = check_day(db, provider, TUESDAY, "14:45", 2, location="2 Oak Ave")

    assert verdict.available
    assert verdict.projectedTravelMinutes == 40
    assert provider.calls == []


def test_departure_too_late_for_next_job(db, provider):
    add_booking(db, datetime(2030, 1, 8, 14, 0), "1 Main St", hours=2)
    seed_travel(db, "2 Oak Ave", "1 Main St", datetime(2030, 1, 8, 13, 0), 90)

    verdict = check_day(db, provider, TUESDAY, "11:00", 2, location="2 Oak Ave")

    assert verdict.reason == REASON_NOT_ENOUGH_TRAVEL


def _heavy_day(db, depot_out, depot_back):
    technician = add_technician(db, "Alex", depot_address=DEPOT)
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", hours=2, technicians=[technician])
    seed_travel(db, DEPOT, "1 Main St", datetime(2030, 1, 8, 10, 0), depot_out)
    seed_travel(db, "1 Main St", DEPOT, datetime(2030, 1, 8, 12, 0), depot_back)
    return technician


def test_day_over_drive_ceiling_is_rejected(db, provider):
    technician = _heavy_day(db, 100, 100)
    seed_travel(db, "1 Main St", "3 Far Rd", datetime(2030, 1, 8, 12, 0), 45)

    verdict = check_day(
        db, provider, TUESDAY, "15:00", 1, location="3 Far Rd", technician_id=technician.id
    )

    assert not verdict.available
    assert verdict.reason == REASON_DRIVE_LIMIT
    assert verdict.projectedTravelMinutes == 245
    assert provider.calls == []


def test_same_location_as_existing_job_adds_no_travel(db, provider):
    technician = _heavy_day(db, 100, 100)

    verdict = check_day(
        db, provider, TUESDAY, "15:00", 1, location="1 main street", technician_id=technician.id
    )

    assert verdict.available
    assert not verdict.closeRoute
    assert verdict.projectedTravelMinutes == 200


def test_same_location_stop_is_allowed_over_the_ceiling(db, provider):
    technician = add_technician(db, "Alex", depot_address=DEPOT)
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", hours=2, technicians=[technician])
    add_booking(db, datetime(2030, 1, 8, 17, 0), "5 Far Rd", hours=1, technicians=[technician])
    # The five-hour gap sends the technician home in between: four depot legs
    seed_travel(db, DEPOT, "1 Main St", datetime(2030, 1, 8, 10, 0), 60)
    seed_travel(db, "1 Main St", DEPOT, datetime(2030, 1, 8, 12, 0), 60)
    seed_travel(db, DEPOT, "5 Far Rd", datetime(2030, 1, 8, 17, 0), 60)
    seed_travel(db, "5 Far Rd", DEPOT, datetime(2030, 1, 8, 18, 0), 60)
    seed_travel(db, "1 Main St", "5 Far Rd", datetime(2030, 1, 8, 15, 0), 60)

    same_place = check_day(
        db, provider, TUESDAY, "14:00", 1, location="1 main street", technician_id=technician.id
    )

    assert same_place.available
    assert same_place.closeRoute
    assert same_place.projectedTravelMinutes == 300
    assert provider.calls == []


def test_close_stop_is_allowed_over_the_ceiling(db, provider):
    technician = _heavy_day(db, 110, 115)
    seed_travel(db, "1 Main St", "4 Near Pl", datetime(2030, 1, 8, 12, 0), 20)

    verdict = check_day(
        db, provider, TUESDAY, "15:00", 1, location="4 Near Pl", technician_id=technician.id
    )

    assert verdict.available
    assert verdict.closeRoute
    assert verdict.projectedTravelMinutes == 245


def test_unknown_travel_is_never_available(db):
    provider = FakeRoutingProvider()
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", hours=2)

    verdict = check_day(db, provider, TUESDAY, "15:00", 1, location="2 Oak Ave")

    assert not verdict.available
    assert verdict.reason == REASON_ESTIMATE_UNAVAILABLE
    assert len(provider.calls) == 1


def test_unknown_day_route_is_never_available(db, provider):
    technician = add_technician(db, "Alex", depot_address=DEPOT)
    add_booking(db, datetime(2030, 1, 8, 10, 0), "1 Main St", hours=2, technicians=[technician])
    seed_travel(db, "1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 12, 0), 15)

    verdict = check_day(
        db, provider, TUESDAY, "15:00", 1, location="2 Oak Ave", technician_id=technician.id
    )

    assert verdict.reason == REASON_ESTIMATE_UNAVAILABLE


def test_repeated_pairs_are_estimated_once_then_cached(db):
    provider = FakeRoutingProvider(default_minutes=20)
    add_booking(db, datetime(2030, 1, 7, 9, 0), "1 Main St", hours=2)
    add_booking(db, datetime(2030, 1, 14, 9, 0), "1 Main St", hours=2)

    first = check(db, provider, MONDAY, date(2030, 1, 14), "13:00", 1, location="2 Oak Ave")
    second = check(db, provider, MONDAY, date(2030, 1, 14), "13:00", 1, location="2 Oak Ave")

    # Both Mondays share the weekday/hour bucket, so one provider call covers them
    assert len(provider.calls) == 1
    assert first == second
    by_date = {d.date: d for d in first}
    assert by_date["2030-01-07"].projectedTravelMinutes == 20
    assert by_date["2030-01-14"].projectedTravelMinutes == 20
    assert by_date["2030-01-11"].reason == REASON_CLOSED


def test_ranked_days_prefer_least_added_driving(db):
    provider = FakeRoutingProvider(default_minutes=20)
    add_booking(db, datetime(2030, 1, 7, 9, 0), "1 Main St", hours=2)
    service = SmartSchedulingService(db, travel_service(db, provider))

    ranked = asyncio.run(
        service.rank_days(MONDAY, date(2030, 1, 12), "13:00", 1, "2 Oak Ave", now=NOW)
    )

    assert [d.date for d in ranked] == ["2030-01-08", "2030-01-09", "2030-01-10", "2030-01-07"]
    assert ranked[-1].projectedTravelMinutes == 20
    assert ranked[-1].existingJobCount == 1
