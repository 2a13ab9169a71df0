"""Insight repository - Database operations for schedule insights and run logs"""

from datetime import datetime
from typing import Optional

from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from ...models import ScheduleInsight, ScheduleInsightRun
from .schemas import InsightDraft

SEVERITY_RANK = case(
    (ScheduleInsight.severity == "critical", 0),
    (ScheduleInsight.severity == "warning", 1),
    else_=2,
)


class InsightRepository:
    """Repository for schedule insight database operations"""

    @staticmethod
    def _apply_draft(insight: ScheduleInsight, draft: InsightDraft) -> None:
        insight.kind = draft.kind
        insight.severity = draft.severity
        insight.title = draft.title
        insight.message = draft.message
        insight.date_key = draft.date_key
        insight.technician_id = draft.technician_id
        insight.booking_ids = list(draft.booking_ids)
        insight.due_job_id = draft.due_job_id
        insight.fingerprint = draft.fingerprint
        insight.source = draft.source
        insight.confidence = draft.confidence
        insight.details = draft.details
        insight.status = "open"
        insight.resolved_at = None
        insight.resolution_note = None

    @staticmethod
    def find_open_by_fingerprint(db: Session, fingerprint: str) -> Optional[ScheduleInsight]:
        return (
            db.query(ScheduleInsight)
            .filter(ScheduleInsight.fingerprint == fingerprint, ScheduleInsight.status == "open")
            .first()
        )

    @staticmethod
    def upsert_open(db: Session, draft: InsightDraft) -> ScheduleInsight:
        """
        Create or overwrite the open insight for a fingerprint.
        A concurrent writer that loses the race hits the partial unique index
        and gets IntegrityError instead of a duplicate open row.
        """
        insight = InsightRepository.find_open_by_fingerprint(db, draft.fingerprint)
        if insight is None:
            insight = ScheduleInsight()
            db.add(insight)
        InsightRepository._apply_draft(insight, draft)
        db.flush()
        return insight

    @staticmethod
    def auto_dismiss_missing(
        db: Session,
        date_from: str,
        date_to: str,
        kinds: list[str],
        keep_fingerprints: list[str],
        technician_ids: Optional[list[int]],
        note: str,
        now: datetime,
    ) -> int:
        """Dismiss open insights in the window that this run did not reproduce"""
        if not kinds:
            return 0

        query = db.query(ScheduleInsight).filter(
            ScheduleInsight.status == "open",
            ScheduleInsight.kind.in_(kinds),
            ScheduleInsight.date_key >= date_from,
            ScheduleInsight.date_key <= date_to,
        )
        if keep_fingerprints:
            query = query.filter(ScheduleInsight.fingerprint.notin_(keep_fingerprints))
        if technician_ids:
            # Due work is not tied to a technician and is always re-analyzed
            query = query.filter(
                or_(
                    ScheduleInsight.technician_id.in_(technician_ids),
                    ScheduleInsight.kind == "due_soon_unscheduled",
                )
            )

        return query.update(
            {
                ScheduleInsight.status: "dismissed",
                ScheduleInsight.resolved_at: now,
                ScheduleInsight.resolution_note: note,
            },
            synchronize_session=False,
        )

    @staticmethod
    def list_insights(
        db: Session,
        status: Optional[str] = "open",
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        technician_id: Optional[int] = None,
        kinds: Optional[list[str]] = None,
        limit: int = 100,
    ) -> list[ScheduleInsight]:
        """Filtered insights, most severe first, then newest"""
        query = db.query(ScheduleInsight)
        if status:
            query = query.filter(ScheduleInsight.status == status)
        if date_from:
            query = query.filter(ScheduleInsight.date_key >= date_from)
        if date_to:
            query = query.filter(ScheduleInsight.date_key <= date_to)
        if technician_id is not None:
            query = query.filter(ScheduleInsight.technician_id == technician_id)
        if kinds:
            query = query.filter(ScheduleInsight.kind.in_(kinds))

        return (
            query.order_by(
                SEVERITY_RANK,
                ScheduleInsight.created_at.desc(),
                ScheduleInsight.id.desc(),
            )
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_insight_by_id(db: Session, insight_id: int) -> Optional[ScheduleInsight]:
        return db.query(ScheduleInsight).filter(ScheduleInsight.id == insight_id).first()

    @staticmethod
    def close_insight(
        db: Session, insight: ScheduleInsight, status: str, note: Optional[str], now: datetime
    ) -> ScheduleInsight:
        insight.status = status
        insight.resolved_at = now
        insight.resolution_note = note
        db.commit()
        db.refresh(insight)
        return insight

    @staticmethod
    def create_run(db: Session, **run_data) -> ScheduleInsightRun:
        run = ScheduleInsightRun(**run_data)
        db.add(run)
        db.flush()
        return run

    @staticmethod
    def list_runs(db: Session, limit: int = 20) -> list[ScheduleInsightRun]:
        return (
            db.query(ScheduleInsightRun)
            .order_by(ScheduleInsightRun.created_at.desc(), ScheduleInsightRun.id.desc())
            .limit(limit)
            .all()
        )
