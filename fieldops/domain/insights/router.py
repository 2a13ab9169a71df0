"""Insight router - FastAPI endpoints for schedule insight analysis and review"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...shared.validators import parse_date_key
from ..scheduling.router import get_travel_service
from ..travel.service import TravelService
from .enhancer import InsightEnhancer, default_provider_health
from .schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    DuePlacementRequest,
    DuePlacementResponse,
    InsightActionRequest,
    InsightResponse,
    InsightRunResponse,
    MoveJobRequest,
    MoveJobResponse,
)
from .service import InsightService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/insights", tags=["Schedule Insights"])


def get_insight_enhancer() -> InsightEnhancer:
    """Dependency injection for the enhancer; provider health is process-wide"""
    return InsightEnhancer(health=default_provider_health)


def get_insight_service(
    db: Session = Depends(get_db),
    travel: TravelService = Depends(get_travel_service),
    enhancer: InsightEnhancer = Depends(get_insight_enhancer),
) -> InsightService:
    """Dependency injection for InsightService"""
    return InsightService(db, travel, enhancer)


# ============================================================================
# ANALYSIS
# ============================================================================


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_schedule(
    data: AnalyzeRequest,
    service: InsightService = Depends(get_insight_service),
):
    """Run the analyzer over a day or a date range"""
    date_from = parse_date_key(data.dateFrom)
    date_to = parse_date_key(data.dateTo) if data.dateTo else date_from
    run, insights = await service.analyze_window(
        date_from,
        date_to,
        technician_ids=data.technicianIds,
        kinds=data.kinds,
        trigger="manual_day" if date_from == date_to else "manual_range",
        use_ai=data.useAi,
        created_by="operator",
    )
    return AnalyzeResponse(
        run=InsightRunResponse.model_validate(run),
        insights=[InsightResponse.model_validate(i) for i in insights],
    )


@router.get("/runs", response_model=list[InsightRunResponse])
async def list_insight_runs(
    limit: int = Query(20),
    service: InsightService = Depends(get_insight_service),
):
    """Most recent analysis runs"""
    return service.list_runs(limit)


# ============================================================================
# PLACEMENT
# ============================================================================


@router.post("/move-job", response_model=MoveJobResponse)
async def analyze_move_job(
    data: MoveJobRequest,
    service: InsightService = Depends(get_insight_service),
):
    """Best crew slots for moving an existing booking"""
    run, candidates = await service.analyze_move_job(
        data.bookingId,
        parse_date_key(data.dateFrom),
        parse_date_key(data.dateTo),
        technician_ids=data.technicianIds,
        crew_size=data.crewSize,
        due_policy=data.duePolicy,
        buffer_minutes=data.bufferMinutes,
        created_by="operator",
    )
    return MoveJobResponse(
        run=InsightRunResponse.model_validate(run),
        candidates=candidates,
        crewSize=data.crewSize,
        duePolicy=data.duePolicy,
    )


@router.post("/due-soon/placements", response_model=DuePlacementResponse)
async def suggest_due_placements(
    data: DuePlacementRequest,
    service: InsightService = Depends(get_insight_service),
):
    """Crew slots for unscheduled due work"""
    suggestions = service.suggest_due_placements(
        data.dueJobIds,
        parse_date_key(data.dateFrom),
        parse_date_key(data.dateTo),
        technician_ids=data.technicianIds,
        crew_size=data.crewSize,
        due_policy=data.duePolicy,
    )
    return DuePlacementResponse(suggestions=suggestions)


# ============================================================================
# REVIEW
# ============================================================================


@router.get("", response_model=list[InsightResponse])
async def list_insights(
    status: Optional[str] = Query("open"),
    dateFrom: Optional[str] = Query(None),
    dateTo: Optional[str] = Query(None),
    technicianId: Optional[int] = Query(None),
    kinds: Optional[list[str]] = Query(None),
    limit: int = Query(100),
    service: InsightService = Depends(get_insight_service),
):
    """Insights filtered by status, date range, technician and kind"""
    return service.list_insights(status, dateFrom, dateTo, technicianId, kinds, limit)


@router.post("/{insight_id}/resolve", response_model=InsightResponse)
async def resolve_insight(
    insight_id: int,
    data: Optional[InsightActionRequest] = None,
    service: InsightService = Depends(get_insight_service),
):
    return service.resolve_insight(insight_id, data.note if data else None)


@router.post("/{insight_id}/dismiss", response_model=InsightResponse)
async def dismiss_insight(
    insight_id: int,
    data: Optional[InsightActionRequest] = None,
    service: InsightService = Depends(get_insight_service),
):
    return service.dismiss_insight(insight_id, data.note if data else None)
