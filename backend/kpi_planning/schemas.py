"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Optional
from datetime import date, datetime
from uuid import UUID


# KPI schemas
class KpiCreate(BaseModel):
    """Raw KPI payload; numbers and the breakdown are validated by the breakdown validator."""
    target_value: Any
    unit_label: Optional[str] = None
    notes: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    year: Optional[int] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)
    week_breakdown: Optional[list[Any]] = None


class KpiUpdate(BaseModel):
    target_value: Optional[Any] = None
    unit_label: Optional[str] = None
    notes: Optional[str] = None


class WeeksReplace(BaseModel):
    weeks: list[Any]


class DaysReplace(BaseModel):
    days: list[Any]


class DistributionPreviewRequest(BaseModel):
    target_value: Any
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    year: Optional[int] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)


class DayBreakdownOut(BaseModel):
    date: str
    target_value: int
    is_working_day: bool


class WeekBreakdownOut(BaseModel):
    week_index: int
    start_date: str
    end_date: str
    target_value: int
    working_days: Optional[int] = None
    day_breakdown: list[DayBreakdownOut]


class DistributionPreviewResponse(BaseModel):
    weeks: list[WeekBreakdownOut]
    total_working_days: int


class ChainKpiResponse(BaseModel):
    id: UUID
    chain_id: UUID
    target_value: int
    unit_label: str
    notes: Optional[str] = None
    year: Optional[int] = None
    month: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    weeks: Optional[list[WeekBreakdownOut]] = None
    is_accumulated: bool
    accumulated_at: Optional[datetime] = None
    created_by: UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Assignment schemas
class AssignmentSliceIn(BaseModel):
    step_id: UUID
    assigned_to: UUID
    day_assignments: dict[str, Any] = Field(default_factory=dict)
    day_titles: Optional[dict[str, Any]] = None


class AssignWeekRequest(BaseModel):
    week_index: int = Field(gt=0)
    assignments: list[AssignmentSliceIn]


class DayResultRequest(BaseModel):
    date: str
    slot_index: int = Field(ge=0)
    link: str = Field(min_length=1)


class AssignmentResponse(BaseModel):
    id: UUID
    chain_kpi_id: UUID
    week_index: int
    step_id: UUID
    assigned_to: UUID
    day_assignments: dict[str, int]
    day_results: dict[str, Any]
    day_titles: dict[str, Any]
    accepted: bool
    accepted_by: Optional[UUID] = None
    accepted_at: Optional[datetime] = None
    handed_over: bool
    handed_over_by: Optional[UUID] = None
    handed_over_at: Optional[datetime] = None
    created_by: UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Completion schemas
class CompletionResponse(BaseModel):
    id: UUID
    chain_kpi_id: UUID
    completion_type: str
    week_index: Optional[int] = None
    date_iso: Optional[date] = None
    completed_by: UUID
    completed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ToggleResponse(BaseModel):
    completed: bool
    completion_type: str
    key: str
    is_accumulated: bool
    completion: Optional[CompletionResponse] = None
