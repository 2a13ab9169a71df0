"""Insight domain schemas - Pydantic models for drafts, API payloads and enhancer replies"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_date_key

InsightKind = Literal[
    "travel_overload_day",
    "rest_gap_warning",
    "service_day_boundary_risk",
    "route_efficiency_opportunity",
    "due_soon_unscheduled",
]
InsightSeverity = Literal["info", "warning", "critical"]
InsightStatus = Literal["open", "resolved", "dismissed"]
InsightTrigger = Literal["auto", "manual_day", "manual_range", "manual_move"]
DuePolicy = Literal["hard", "soft"]

ALL_KINDS: tuple[str, ...] = (
    "travel_overload_day",
    "rest_gap_warning",
    "service_day_boundary_risk",
    "route_efficiency_opportunity",
    "due_soon_unscheduled",
)


class InsightDraft(BaseModel):
    """A finding produced by the rules, before persistence"""

    kind: InsightKind
    severity: InsightSeverity
    title: str
    message: str
    date_key: Optional[str] = None
    technician_id: Optional[int] = None
    booking_ids: list[int] = []
    due_job_id: Optional[int] = None
    fingerprint: str
    source: Literal["rule", "hybrid"] = "rule"
    confidence: Optional[float] = None
    details: Optional[dict[str, Any]] = None


class AnalyzeRequest(BaseModel):
    """Schema for a manual analysis run"""

    dateFrom: str
    dateTo: Optional[str] = None
    technicianIds: Optional[list[int]] = None
    kinds: Optional[list[InsightKind]] = None
    useAi: bool = True

    @field_validator("dateFrom", "dateTo")
    @classmethod
    def validate_dates(cls, v):
        if v is None:
            return v
        return validate_date_key(v)


class InsightActionRequest(BaseModel):
    note: Optional[str] = None

    @field_validator("note")
    @classmethod
    def validate_note(cls, v):
        if v is not None and len(v) > 500:
            raise ValueError("Note must be at most 500 characters")
        return v


class InsightResponse(BaseModel):
    id: int
    kind: str
    severity: str
    title: str
    message: str
    date_key: Optional[str] = None
    technician_id: Optional[int] = None
    booking_ids: list[int] = []
    due_job_id: Optional[int] = None
    fingerprint: str
    status: str
    source: str
    confidence: Optional[float] = None
    details: Optional[dict[str, Any]] = None
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InsightRunResponse(BaseModel):
    id: int
    trigger: str
    date_from: str
    date_to: str
    technician_ids: list[int] = []
    generated_count: int
    dismissed_count: int
    enhanced: bool
    model: Optional[str] = None
    duration_ms: int
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AnalyzeResponse(BaseModel):
    run: InsightRunResponse
    insights: list[InsightResponse]


# ============================================================================
# PLACEMENT SUGGESTIONS
# ============================================================================


class ScoreBreakdown(BaseModel):
    duePenaltyDays: int
    duePenaltyPoints: int
    loadHours: float
    loadPoints: int
    travelPoints: float = 0
    totalScore: float
    duePolicy: DuePolicy


class PlacementCandidate(BaseModel):
    """One crew slot proposed for a job; lower score is better"""

    date: str
    startAt: datetime
    technicianIds: list[int]
    technicianNames: list[str]
    estimatedJobHours: float
    incrementalTravelMinutes: float = 0
    travelUnknown: bool = False
    score: float
    scoreBreakdown: ScoreBreakdown
    reason: str
    bookingId: Optional[int] = None
    dueJobId: Optional[int] = None


class PlacementWindowRequest(BaseModel):
    dateFrom: str
    dateTo: str
    technicianIds: Optional[list[int]] = None
    duePolicy: DuePolicy = "soft"

    @field_validator("dateFrom", "dateTo")
    @classmethod
    def validate_dates(cls, v):
        return validate_date_key(v)


class MoveJobRequest(PlacementWindowRequest):
    """Schema for re-placing an existing booking"""

    bookingId: int
    crewSize: int = 2
    bufferMinutes: int = 30

    @field_validator("crewSize")
    @classmethod
    def validate_crew_size(cls, v):
        if v < 1 or v > 6:
            raise ValueError("Crew size must be between 1 and 6")
        return v

    @field_validator("bufferMinutes")
    @classmethod
    def validate_buffer(cls, v):
        if v < 0 or v > 240:
            raise ValueError("Buffer must be between 0 and 240 minutes")
        return v


class DuePlacementRequest(PlacementWindowRequest):
    """Schema for slotting unscheduled due work"""

    dueJobIds: list[int]
    crewSize: int = 1

    @field_validator("crewSize")
    @classmethod
    def validate_crew_size(cls, v):
        if v < 1 or v > 6:
            raise ValueError("Crew size must be between 1 and 6")
        return v


class MoveJobResponse(BaseModel):
    run: InsightRunResponse
    candidates: list[PlacementCandidate]
    crewSize: int
    duePolicy: DuePolicy


class DuePlacementSuggestion(BaseModel):
    dueJobId: int
    clientName: Optional[str] = None
    location: Optional[str] = None
    dueDate: str
    estimatedHours: float
    candidates: list[PlacementCandidate]


class DuePlacementResponse(BaseModel):
    suggestions: list[DuePlacementSuggestion]


class EnhancedItem(BaseModel):
    """One refinement returned by the text model"""

    index: int
    title: Optional[str] = None
    message: Optional[str] = None
    severity: Optional[str] = None
    confidence: Optional[float] = None


class EnhancedReply(BaseModel):
    items: list[EnhancedItem]
