"""Schedule Insight Analyzer - rule findings over a technician-day window"""

import logging
import time
from datetime import date, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import INSIGHT_AUTO_WINDOW_DAYS, MAX_AVAILABILITY_RANGE_DAYS
from ...models import ScheduleInsight, ScheduleInsightRun
from ..scheduling.booking_directory import BookingDirectory
from ..scheduling.durations import travel_relevant_minutes
from ..scheduling.schemas import ScheduledJob
from ..scheduling.time_calculator import business_now, date_key, utc_now
from ..travel.cache_service import make_pair
from ..travel.service import TravelService
from .enhancer import InsightEnhancer
from .placement import (
    DUE_MAX_CANDIDATES,
    DUE_PLACEMENT_BUFFER_MINUTES,
    MOVE_MAX_CANDIDATES,
    MOVE_TRAVEL_SHORTLIST,
    CrewSlot,
    crew_slots,
    group_by_technician_day,
    tail_legs,
    to_candidate,
)
from .repository import InsightRepository
from .rules import boundary_drafts, due_soon_drafts, rest_gap_drafts, travel_drafts
from .schemas import ALL_KINDS, DuePlacementSuggestion, InsightDraft, PlacementCandidate

logger = logging.getLogger(__name__)

AUTO_DISMISS_NOTE = "Auto-cleared after re-analysis"


class InsightService:
    """Service layer for schedule insight analysis and operator actions"""

    def __init__(
        self,
        db: Session,
        travel: Optional[TravelService] = None,
        enhancer: Optional[InsightEnhancer] = None,
    ):
        self.db = db
        self.repo = InsightRepository()
        self.directory = BookingDirectory(db)
        self.travel = travel or TravelService(db)
        self.enhancer = enhancer

    @staticmethod
    def _validate_window(date_from: date, date_to: date) -> None:
        if date_to < date_from:
            raise HTTPException(status_code=400, detail="dateTo must not be before dateFrom")
        if (date_to - date_from).days + 1 > MAX_AVAILABILITY_RANGE_DAYS:
            raise HTTPException(
                status_code=400,
                detail=f"Date range cannot exceed {MAX_AVAILABILITY_RANGE_DAYS} days",
            )

    async def build_drafts(
        self,
        date_from: date,
        date_to: date,
        technician_ids: Optional[list[int]],
        kinds: tuple[str, ...],
        today: date,
    ) -> list[InsightDraft]:
        """Rule drafts for the window, deduplicated by fingerprint"""
        jobs = self.directory.jobs_in_range(date_from, date_to, technician_ids)

        # A job with several technicians counts toward each of their days
        by_technician: dict[Optional[int], list[ScheduledJob]] = {}
        for job in jobs:
            owners = job.technician_ids or [None]
            for technician_id in owners:
                if technician_ids and technician_id not in technician_ids:
                    continue
                by_technician.setdefault(technician_id, []).append(job)

        drafts: list[InsightDraft] = []

        if "travel_overload_day" in kinds or "route_efficiency_opportunity" in kinds:
            depots = self.directory.depots_for([t for t in by_technician if t is not None])
            days = []
            work_minutes: dict[tuple, float] = {}
            for technician_id, technician_jobs in by_technician.items():
                by_day: dict[str, list[ScheduledJob]] = {}
                for job in technician_jobs:
                    by_day.setdefault(job.date_key, []).append(job)
                for day_key, day_jobs in sorted(by_day.items()):
                    day_jobs.sort(key=lambda j: (j.ordering_key, j.booking_id))
                    days.append(
                        (
                            day_key,
                            technician_id,
                            [j.to_route_job() for j in day_jobs],
                            depots.get(technician_id) if technician_id is not None else None,
                        )
                    )
                    work_minutes[(technician_id, day_key)] = sum(
                        travel_relevant_minutes(j.effective_minutes) for j in day_jobs
                    )

            for summary in await self.travel.summarize_days(days):
                for draft in travel_drafts(
                    summary, work_minutes[(summary.technician_id, summary.date)]
                ):
                    if draft.kind in kinds:
                        drafts.append(draft)

        if "rest_gap_warning" in kinds:
            for technician_id, technician_jobs in by_technician.items():
                if technician_id is None:
                    continue
                drafts.extend(rest_gap_drafts(technician_id, technician_jobs))

        if "service_day_boundary_risk" in kinds:
            drafts.extend(boundary_drafts(jobs))

        if "due_soon_unscheduled" in kinds:
            drafts.extend(due_soon_drafts(self.directory.due_unscheduled(date_from, date_to), today))

        unique: dict[str, InsightDraft] = {}
        for draft in drafts:
            unique.setdefault(draft.fingerprint, draft)
        return list(unique.values())

    async def analyze_window(
        self,
        date_from: date,
        date_to: date,
        technician_ids: Optional[list[int]] = None,
        kinds: Optional[list[str]] = None,
        trigger: str = "manual_range",
        use_ai: bool = True,
        created_by: Optional[str] = None,
        today: Optional[date] = None,
    ) -> tuple[ScheduleInsightRun, list[ScheduleInsight]]:
        """
        Analyze [date_from, date_to], persist findings and retire stale ones.

        Re-running over unchanged bookings leaves the same open fingerprints.
        Routing and enhancement outages only reduce what is found; storage
        errors roll back the whole run and propagate.
        """
        self._validate_window(date_from, date_to)
        started = time.monotonic()
        analyzed_kinds = tuple(k for k in ALL_KINDS if not kinds or k in kinds)
        today = today or business_now().date()
        window = (date_key(date_from), date_key(date_to))
        logger.info(f"🔄 Analyzing schedule {window[0]}..{window[1]} ({trigger})")

        drafts = await self.build_drafts(date_from, date_to, technician_ids, analyzed_kinds, today)

        enhanced = False
        if use_ai and self.enhancer is not None and drafts:
            drafts = await self.enhancer.enhance(drafts)
            enhanced = any(d.source == "hybrid" for d in drafts)

        try:
            insights = [self.repo.upsert_open(self.db, draft) for draft in drafts]
            dismissed = self.repo.auto_dismiss_missing(
                self.db,
                window[0],
                window[1],
                list(analyzed_kinds),
                [d.fingerprint for d in drafts],
                technician_ids,
                AUTO_DISMISS_NOTE,
                utc_now(),
            )
            run = self.repo.create_run(
                self.db,
                trigger=trigger,
                date_from=window[0],
                date_to=window[1],
                technician_ids=technician_ids or [],
                generated_count=len(drafts),
                dismissed_count=dismissed,
                enhanced=enhanced,
                model=self.enhancer.model if enhanced else None,
                duration_ms=int((time.monotonic() - started) * 1000),
                created_by=created_by,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to persist schedule insights: {e}")
            raise

        for insight in insights:
            self.db.refresh(insight)
        self.db.refresh(run)

        logger.info(
            f"📊 Insight run {run.id}: {len(drafts)} open, {dismissed} auto-dismissed "
            f"in {run.duration_ms}ms"
        )
        return run, insights

    async def analyze_auto(self, today: Optional[date] = None) -> ScheduleInsightRun:
        today = today or business_now().date()
        run, _ = await self.analyze_window(
            today,
            today + timedelta(days=INSIGHT_AUTO_WINDOW_DAYS),
            trigger="auto",
            created_by="system",
            today=today,
        )
        return run

    async def _priced_candidates(
        self,
        slots: list[CrewSlot],
        target: ScheduledJob,
        job_hours: float,
        due_policy: str,
    ) -> list[PlacementCandidate]:
        """Add each crew member's tail travel to the slot score, best first"""
        depots = self.directory.depots_for(
            sorted({t for slot in slots for t in slot.technician_ids})
        )

        planned = []
        all_pairs = []
        for slot in slots:
            member_legs = []
            for technician_id, previous in zip(slot.technician_ids, slot.last_locations):
                legs = [
                    (make_pair(origin, destination, slot.start_at), sign)
                    for origin, destination, sign in tail_legs(
                        previous, target.location, depots.get(technician_id)
                    )
                ]
                all_pairs.extend(pair for pair, _ in legs)
                member_legs.append(legs)
            planned.append((slot, member_legs))

        known = await self.travel.resolve_pairs(all_pairs)

        candidates = []
        for slot, member_legs in planned:
            travel = 0
            unknown = False
            for legs in member_legs:
                minutes = 0.0
                for pair, sign in legs:
                    if pair.origin_normalized == pair.destination_normalized:
                        continue
                    estimate = known.get(pair.pair_hash)
                    if estimate is None:
                        unknown = True
                        continue
                    minutes += sign * estimate.typical_minutes
                travel += max(0, round(minutes))
            candidates.append(
                to_candidate(
                    slot,
                    job_hours,
                    due_policy,
                    travel_minutes=travel,
                    travel_unknown=unknown,
                    booking_id=target.booking_id,
                )
            )

        candidates.sort(key=lambda c: c.score)
        return candidates[:MOVE_MAX_CANDIDATES]

    async def analyze_move_job(
        self,
        booking_id: int,
        date_from: date,
        date_to: date,
        technician_ids: Optional[list[int]] = None,
        crew_size: int = 2,
        due_policy: str = "soft",
        buffer_minutes: int = 30,
        created_by: Optional[str] = None,
        today: Optional[date] = None,
    ) -> tuple[ScheduleInsightRun, list[PlacementCandidate]]:
        """
        Best crew slots in the window for re-placing an existing booking.

        The booking's own stored date is the due date. Every call is logged
        as a `manual_move` run.
        """
        self._validate_window(date_from, date_to)
        started = time.monotonic()
        today = today or business_now().date()

        target = self.directory.get_job(booking_id)
        if target is None:
            raise HTTPException(status_code=404, detail="Booking not found")
        pool = self.directory.technician_pool(technician_ids)
        if len(pool) < crew_size:
            raise HTTPException(
                status_code=400,
                detail=f"Select at least {crew_size} technicians to build crew suggestions",
            )

        candidates: list[PlacementCandidate] = []
        if target.location:
            others = [
                job
                for job in self.directory.jobs_in_range(date_from, date_to)
                if job.booking_id != booking_id
            ]
            job_hours = round(target.effective_minutes / 60, 2)
            slots = crew_slots(
                pool,
                group_by_technician_day(others),
                date_from,
                date_to,
                target.start_at.date(),
                job_hours,
                crew_size,
                due_policy,
                buffer_minutes,
                today,
            )
            candidates = await self._priced_candidates(
                slots[:MOVE_TRAVEL_SHORTLIST], target, job_hours, due_policy
            )
        else:
            logger.warning(f"⚠️ Booking {booking_id} has no location, no move candidates")

        try:
            run = self.repo.create_run(
                self.db,
                trigger="manual_move",
                date_from=date_key(date_from),
                date_to=date_key(date_to),
                technician_ids=technician_ids or target.technician_ids,
                generated_count=len(candidates),
                dismissed_count=0,
                enhanced=False,
                model=None,
                duration_ms=int((time.monotonic() - started) * 1000),
                created_by=created_by,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to log move analysis for booking {booking_id}: {e}")
            raise

        self.db.refresh(run)
        logger.info(f"📊 Move analysis for booking {booking_id}: {len(candidates)} candidates")
        return run, candidates

    def suggest_due_placements(
        self,
        due_job_ids: list[int],
        date_from: date,
        date_to: date,
        technician_ids: Optional[list[int]] = None,
        crew_size: int = 1,
        due_policy: str = "soft",
        today: Optional[date] = None,
    ) -> list[DuePlacementSuggestion]:
        """Crew slots for selected unscheduled due work, ranked without travel"""
        self._validate_window(date_from, date_to)
        if not due_job_ids:
            return []
        today = today or business_now().date()

        wanted = set(due_job_ids)
        items = [
            item
            for item in self.directory.due_unscheduled(date_from, date_to)
            if item.due_job_id in wanted
        ]
        if not items:
            return []

        pool = self.directory.technician_pool(technician_ids)
        by_day = group_by_technician_day(self.directory.jobs_in_range(date_from, date_to))

        suggestions = []
        for item in items:
            hours = round(item.estimated_minutes / 60, 2)
            slots = crew_slots(
                pool,
                by_day,
                date_from,
                date_to,
                item.due_date,
                hours,
                crew_size,
                due_policy,
                DUE_PLACEMENT_BUFFER_MINUTES,
                today,
            )
            suggestions.append(
                DuePlacementSuggestion(
                    dueJobId=item.due_job_id,
                    clientName=item.client_name,
                    location=item.location,
                    dueDate=date_key(item.due_date),
                    estimatedHours=hours,
                    candidates=[
                        to_candidate(slot, hours, due_policy, due_job_id=item.due_job_id)
                        for slot in slots[:DUE_MAX_CANDIDATES]
                    ],
                )
            )

        logger.info(f"📊 Placement suggestions for {len(suggestions)} due jobs")
        return suggestions

    def list_insights(
        self,
        status: Optional[str] = "open",
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        technician_id: Optional[int] = None,
        kinds: Optional[list[str]] = None,
        limit: int = 100,
    ) -> list[ScheduleInsight]:
        return self.repo.list_insights(
            self.db, status, date_from, date_to, technician_id, kinds, max(1, min(limit, 500))
        )

    def _close(self, insight_id: int, status: str, note: Optional[str]) -> ScheduleInsight:
        insight = self.repo.get_insight_by_id(self.db, insight_id)
        if not insight:
            raise HTTPException(status_code=404, detail="Insight not found")
        if insight.status != "open":
            raise HTTPException(
                status_code=409, detail=f"Insight is already {insight.status}"
            )
        logger.info(f"✅ Insight {insight_id} -> {status}")
        return self.repo.close_insight(self.db, insight, status, note, utc_now())

    def resolve_insight(self, insight_id: int, note: Optional[str] = None) -> ScheduleInsight:
        return self._close(insight_id, "resolved", note)

    def dismiss_insight(self, insight_id: int, note: Optional[str] = None) -> ScheduleInsight:
        return self._close(insight_id, "dismissed", note)

    def list_runs(self, limit: int = 20) -> list[ScheduleInsightRun]:
        return self.repo.list_runs(self.db, max(1, min(limit, 100)))
