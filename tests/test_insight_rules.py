from datetime import date, datetime

from conftest import TODAY
from fieldops.domain.insights.rules import (
    DUE_SOON_MAX_ITEMS,
    boundary_drafts,
    due_soon_drafts,
    fingerprint,
    rest_gap_drafts,
    travel_drafts,
)
from fieldops.domain.scheduling.schemas import DueItem, ScheduledJob
from fieldops.domain.travel.schemas import DayTravelSummary, SegmentEstimate


def scheduled(booking_id, start_at, minutes=240, location="1 Main St", technician_ids=(7,)):
    return ScheduledJob(
        booking_id=booking_id,
        technician_ids=list(technician_ids),
        location=location,
        start_at=start_at,
        effective_minutes=minutes,
    )


def summary(total_minutes, booking_ids=(1, 2)):
    segment = SegmentEstimate(
        from_address="1 Main St",
        to_address="2 Oak Ave",
        departure_at=datetime(2030, 1, 8, 12, 0),
        from_kind="job",
        to_kind="job",
        from_booking_id=booking_ids[0],
        to_booking_id=booking_ids[1],
        typical_minutes=total_minutes,
    )
    return DayTravelSummary(
        date="2030-01-08",
        technician_id=7,
        total_travel_minutes=total_minutes,
        segments=[segment],
    )


def test_fingerprint_ignores_key_order():
    assert fingerprint({"a": 1, "b": "x"}) == fingerprint({"b": "x", "a": 1})
    assert fingerprint({"a": 1}) != fingerprint({"a": 2})


def test_light_day_has_no_travel_findings():
    assert travel_drafts(summary(60), work_minutes=480) == []


def test_travel_overload_severity_thresholds():
    warning = travel_drafts(summary(160), work_minutes=600)
    critical = travel_drafts(summary(230), work_minutes=600)

    assert [(d.kind, d.severity) for d in warning] == [("travel_overload_day", "warning")]
    assert critical[0].kind == "travel_overload_day"
    assert critical[0].severity == "critical"
    assert critical[0].booking_ids == [1, 2]
    assert critical[0].confidence == 0.92


def test_overload_fingerprint_is_stable_within_ten_minutes():
    first = travel_drafts(summary(161), work_minutes=600)[0]
    second = travel_drafts(summary(163), work_minutes=600)[0]
    third = travel_drafts(summary(178), work_minutes=600)[0]

    assert first.fingerprint == second.fingerprint
    assert first.fingerprint != third.fingerprint


def test_route_efficiency_needs_travel_and_ratio():
    drafts = travel_drafts(summary(100), work_minutes=200)
    low_ratio = travel_drafts(summary(100), work_minutes=400)

    assert [d.kind for d in drafts] == ["route_efficiency_opportunity"]
    assert drafts[0].details["ratio"] == 0.5
    assert low_ratio == []


def test_cross_midnight_short_rest_is_critical():
    evening = scheduled(1, datetime(2030, 1, 7, 18, 0), minutes=240)  # ends 22:00 Monday
    early = scheduled(2, datetime(2030, 1, 8, 3, 0), minutes=120)

    drafts = rest_gap_drafts(7, [early, evening])

    assert len(drafts) == 1
    assert drafts[0].kind == "rest_gap_warning"
    assert drafts[0].severity == "critical"
    assert drafts[0].date_key == "2030-01-08"
    assert drafts[0].booking_ids == [1, 2]
    assert drafts[0].details == {"gapHours": 5.0}


def test_rest_gap_between_six_and_eight_hours_is_a_warning():
    evening = scheduled(1, datetime(2030, 1, 7, 18, 0), minutes=240)
    morning = scheduled(2, datetime(2030, 1, 8, 5, 0))

    drafts = rest_gap_drafts(7, [evening, morning])

    assert [d.severity for d in drafts] == ["warning"]


def test_same_day_gaps_and_long_rests_are_not_flagged():
    same_day = [scheduled(1, datetime(2030, 1, 8, 8, 0), 60), scheduled(2, datetime(2030, 1, 8, 10, 0))]
    long_rest = [scheduled(1, datetime(2030, 1, 7, 8, 0)), scheduled(2, datetime(2030, 1, 8, 8, 0))]

    assert rest_gap_drafts(7, same_day) == []
    assert rest_gap_drafts(7, long_rest) == []


def test_pre_cutoff_job_is_ordered_after_evening_job():
    # Stored 02:00 on the 8th is driven in the early hours of the 9th
    evening = scheduled(1, datetime(2030, 1, 8, 20, 0), minutes=120)  # ends 22:00
    late = scheduled(2, datetime(2030, 1, 8, 2, 0), minutes=60)

    drafts = rest_gap_drafts(7, [late, evening])

    assert len(drafts) == 1
    assert drafts[0].booking_ids == [1, 2]
    assert drafts[0].details == {"gapHours": 4.0}


def test_boundary_risk_only_for_pre_cutoff_jobs():
    jobs = [scheduled(1, datetime(2030, 1, 8, 2, 30)), scheduled(2, datetime(2030, 1, 8, 3, 0))]

    drafts = boundary_drafts(jobs)

    assert [d.booking_ids for d in drafts] == [[1]]
    assert drafts[0].technician_id == 7
    assert drafts[0].date_key == "2030-01-08"


def test_due_soon_severity_and_cap():
    items = [
        DueItem(due_job_id=n, due_date=date(2030, 1, 1 + n % 5), estimated_minutes=90)
        for n in range(DUE_SOON_MAX_ITEMS + 5)
    ]

    drafts = due_soon_drafts(items, TODAY)

    assert len(drafts) == DUE_SOON_MAX_ITEMS
    by_id = {d.due_job_id: d for d in drafts}
    assert by_id[0].severity == "critical"  # due today
    assert by_id[1].severity == "critical"  # due tomorrow
    assert by_id[2].severity == "warning"
    assert by_id[2].details == {"daysToDue": 2, "estimatedMinutes": 90}
