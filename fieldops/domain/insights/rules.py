"""Rule-based schedule findings and their fingerprints"""

import hashlib
import json
from datetime import date
from typing import Any, Optional

from ...config import SERVICE_DAY_CUTOFF_HOUR
from ..scheduling.schemas import DueItem, ScheduledJob
from ..scheduling.time_calculator import date_key, minutes_between
from ..travel.schemas import DayTravelSummary
from .schemas import InsightDraft

TRAVEL_OVERLOAD_WARNING_MINUTES = 150
TRAVEL_OVERLOAD_CRITICAL_MINUTES = 220
ROUTE_EFFICIENCY_MIN_TRAVEL_MINUTES = 90
ROUTE_EFFICIENCY_MIN_RATIO = 0.4
REST_GAP_MIN_HOURS = 8
REST_GAP_CRITICAL_HOURS = 6
DUE_SOON_CRITICAL_DAYS = 1
DUE_SOON_MAX_ITEMS = 25

CONFIDENCE = {
    "travel_overload_day": 0.92,
    "route_efficiency_opportunity": 0.84,
    "rest_gap_warning": 0.88,
    "service_day_boundary_risk": 0.8,
    "due_soon_unscheduled": 0.95,
}


def fingerprint(facts: dict[str, Any]) -> str:
    """SHA-256 over a sorted-key JSON rendering of the identifying facts"""
    canonical = json.dumps(facts, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _job_label(job: ScheduledJob) -> str:
    return job.client_name or job.location or f"booking #{job.booking_id}"


def travel_drafts(summary: DayTravelSummary, work_minutes: float) -> list[InsightDraft]:
    """Travel overload and route efficiency findings for one technician-day"""
    drafts = []
    travel = summary.total_travel_minutes
    booking_ids = sorted(
        {
            booking_id
            for segment in summary.segments
            for booking_id in (segment.from_booking_id, segment.to_booking_id)
            if booking_id is not None
        }
    )
    details = {
        "totalTravelMinutes": travel,
        "totalTravelKm": summary.total_travel_km,
        "isPartial": summary.is_partial,
        "hasUnknownSegments": summary.has_unknown,
    }

    if travel > TRAVEL_OVERLOAD_WARNING_MINUTES:
        kind = "travel_overload_day"
        drafts.append(
            InsightDraft(
                kind=kind,
                severity="critical" if travel > TRAVEL_OVERLOAD_CRITICAL_MINUTES else "warning",
                title="High Travel Load",
                message=(
                    f"Estimated travel {round(travel)} min for this tech/day. "
                    "Consider regrouping locations."
                ),
                date_key=summary.date,
                technician_id=summary.technician_id,
                booking_ids=booking_ids,
                confidence=CONFIDENCE[kind],
                details=details,
                fingerprint=fingerprint(
                    {
                        "kind": kind,
                        "technicianId": summary.technician_id,
                        "dateKey": summary.date,
                        "roundedTravel": round(travel / 10) * 10,
                    }
                ),
            )
        )

    ratio = travel / work_minutes if work_minutes > 0 else 0
    if travel >= ROUTE_EFFICIENCY_MIN_TRAVEL_MINUTES and ratio >= ROUTE_EFFICIENCY_MIN_RATIO:
        kind = "route_efficiency_opportunity"
        drafts.append(
            InsightDraft(
                kind=kind,
                severity="warning",
                title="Route Efficiency Opportunity",
                message=(
                    f"Travel-to-work ratio is {ratio * 100:.0f}%. A reorder may reduce drive time."
                ),
                date_key=summary.date,
                technician_id=summary.technician_id,
                booking_ids=booking_ids,
                confidence=CONFIDENCE[kind],
                details={**details, "workMinutes": round(work_minutes, 1), "ratio": round(ratio, 3)},
                fingerprint=fingerprint(
                    {
                        "kind": kind,
                        "technicianId": summary.technician_id,
                        "dateKey": summary.date,
                        "ratioBucket": round(ratio, 1),
                    }
                ),
            )
        )

    return drafts


def rest_gap_drafts(technician_id: Optional[int], jobs: list[ScheduledJob]) -> list[InsightDraft]:
    """
    Short overnight rest between consecutive jobs of one technician.
    Gaps inside one calendar day are ordinary breaks and never flagged.
    """
    kind = "rest_gap_warning"
    ordered = sorted(jobs, key=lambda job: (job.routing_start, job.booking_id))
    drafts = []

    for current, following in zip(ordered, ordered[1:]):
        current_end = current.travel_end
        next_start = following.routing_start
        if current_end.date() == next_start.date():
            continue

        gap_hours = minutes_between(current_end, next_start) / 60
        if gap_hours < 0 or gap_hours >= REST_GAP_MIN_HOURS:
            continue

        gap_rounded = round(gap_hours, 1)
        drafts.append(
            InsightDraft(
                kind=kind,
                severity="critical" if gap_hours < REST_GAP_CRITICAL_HOURS else "warning",
                title="Short Rest Gap Between Jobs",
                message=(
                    f"Only {gap_rounded:g}h rest between {_job_label(current)} "
                    f"(ends {current_end:%H:%M}) and {_job_label(following)} "
                    f"(starts {next_start:%H:%M})."
                ),
                date_key=following.date_key,
                technician_id=technician_id,
                booking_ids=[current.booking_id, following.booking_id],
                confidence=CONFIDENCE[kind],
                details={"gapHours": gap_rounded},
                fingerprint=fingerprint(
                    {
                        "kind": kind,
                        "technicianId": technician_id,
                        "currentId": current.booking_id,
                        "nextId": following.booking_id,
                        "dateKey": following.date_key,
                    }
                ),
            )
        )

    return drafts


def boundary_drafts(jobs: list[ScheduledJob]) -> list[InsightDraft]:
    """Jobs stored before the service-day cutoff hour"""
    kind = "service_day_boundary_risk"
    drafts = []
    for job in jobs:
        if job.start_at.hour >= SERVICE_DAY_CUTOFF_HOUR:
            continue
        drafts.append(
            InsightDraft(
                kind=kind,
                severity="warning",
                title="Early-Morning Boundary Job",
                message=(
                    f"Job starts before {SERVICE_DAY_CUTOFF_HOUR:02d}:00 service-day cutoff. "
                    "Verify sequencing and technician rest assumptions."
                ),
                date_key=job.date_key,
                technician_id=job.technician_ids[0] if job.technician_ids else None,
                booking_ids=[job.booking_id],
                confidence=CONFIDENCE[kind],
                fingerprint=fingerprint(
                    {"kind": kind, "scheduleId": job.booking_id, "dateKey": job.date_key}
                ),
            )
        )
    return drafts


def due_soon_drafts(items: list[DueItem], today: date) -> list[InsightDraft]:
    """Due work with no booking; at most DUE_SOON_MAX_ITEMS per run"""
    kind = "due_soon_unscheduled"
    drafts = []
    for item in items[:DUE_SOON_MAX_ITEMS]:
        days_to_due = (item.due_date - today).days
        due_key = date_key(item.due_date)
        label = item.client_name or item.location or f"Job #{item.due_job_id}"
        drafts.append(
            InsightDraft(
                kind=kind,
                severity="critical" if days_to_due <= DUE_SOON_CRITICAL_DAYS else "warning",
                title="Due Soon Job Not Scheduled",
                message=f"{label} due {item.due_date:%b %d, %Y}. Assign a slot before the due date.",
                date_key=due_key,
                due_job_id=item.due_job_id,
                confidence=CONFIDENCE[kind],
                details={"daysToDue": days_to_due, "estimatedMinutes": item.estimated_minutes},
                fingerprint=fingerprint(
                    {"kind": kind, "jobsDueSoonId": item.due_job_id, "dueDate": due_key}
                ),
            )
        )
    return drafts
