"""Scheduling router - FastAPI endpoints for availability and day travel"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...config import AVAILABILITY_RPM
from ...database import get_db
from ...rate_limiter import create_rate_limiter
from ...services.google_routes_service import GoogleRoutesService
from ...shared.validators import parse_date_key
from ..travel.schemas import DayTravelSummary
from ..travel.service import TravelService
from .availability_service import AvailabilityService
from .booking_directory import BookingDirectory
from .schemas import AvailabilityRequest, AvailabilityResponse, RankedDaysResponse
from .smart_scheduling import SmartSchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])

rate_limit_availability = create_rate_limiter(
    limit=AVAILABILITY_RPM,
    window_seconds=60,
    key_prefix="availability",
    use_ip=True,
)


def get_routing_provider() -> GoogleRoutesService:
    """Dependency injection for the routing provider"""
    return GoogleRoutesService()


def get_travel_service(
    db: Session = Depends(get_db),
    provider: GoogleRoutesService = Depends(get_routing_provider),
) -> TravelService:
    return TravelService(db, provider)


def get_availability_service(
    db: Session = Depends(get_db),
    travel: TravelService = Depends(get_travel_service),
) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db, travel)


def get_smart_scheduling_service(
    db: Session = Depends(get_db),
    travel: TravelService = Depends(get_travel_service),
) -> SmartSchedulingService:
    return SmartSchedulingService(db, travel)


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.post("/availability", response_model=AvailabilityResponse)
async def get_available_days(
    data: AvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(rate_limit_availability),
):
    """Day-by-day availability for a requested time, duration and location"""
    days = await service.get_available_days(
        parse_date_key(data.dateFrom),
        parse_date_key(data.dateTo),
        data.requestedTime,
        data.durationHours,
        data.location,
        data.technicianId,
    )
    return AvailabilityResponse(days=days)


@router.post("/availability/ranked", response_model=RankedDaysResponse)
async def rank_available_days(
    data: AvailabilityRequest,
    service: SmartSchedulingService = Depends(get_smart_scheduling_service),
    _: None = Depends(rate_limit_availability),
):
    """Open days ordered by the driving they would add"""
    days = await service.rank_days(
        parse_date_key(data.dateFrom),
        parse_date_key(data.dateTo),
        data.requestedTime,
        data.durationHours,
        data.location,
        data.technicianId,
    )
    return RankedDaysResponse(days=days)


# ============================================================================
# DAY TRAVEL
# ============================================================================


@router.get("/travel/day", response_model=DayTravelSummary)
async def get_day_travel(
    date: str = Query(..., description="YYYY-MM-DD"),
    technicianId: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    travel: TravelService = Depends(get_travel_service),
):
    """Travel segments and totals for one technician-day"""
    try:
        day = parse_date_key(date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    directory = BookingDirectory(db)
    jobs = directory.jobs_in_range(day, day, [technicianId] if technicianId is not None else None)
    return await travel.summarize_day(
        date,
        [job.to_route_job() for job in jobs],
        directory.depot_for(technicianId),
        technicianId,
    )
