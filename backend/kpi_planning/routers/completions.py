"""KPI completion ledger endpoints."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import Actor, get_current_actor, require_planner
from ..database import get_db
from ..schemas import CompletionResponse, ToggleResponse
from ..use_cases.completions import ToggleResult, list_completions_use_case, toggle_completion_use_case

router = APIRouter(prefix="/kpis", tags=["completions"])


def _toggle_response(result: ToggleResult) -> ToggleResponse:
    return ToggleResponse(
        completed=result.completed,
        completion_type=result.completion_type,
        key=result.key,
        is_accumulated=result.is_accumulated,
        completion=CompletionResponse.model_validate(result.completion) if result.completion else None,
    )


@router.post("/{kpi_id}/complete-week/{week_index}", response_model=ToggleResponse)
def toggle_week_completion(
    kpi_id: UUID,
    week_index: int,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    """Mark a week completed, or reopen it when already completed."""
    result = toggle_completion_use_case(
        db=db,
        kpi_id=kpi_id,
        completion_type="week",
        key=week_index,
        actor=current_actor,
    )
    return _toggle_response(result)


@router.post("/{kpi_id}/complete-day/{date_iso}", response_model=ToggleResponse)
def toggle_day_completion(
    kpi_id: UUID,
    date_iso: str,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    """Mark a day completed, or reopen it when already completed."""
    result = toggle_completion_use_case(
        db=db,
        kpi_id=kpi_id,
        completion_type="day",
        key=date_iso,
        actor=current_actor,
    )
    return _toggle_response(result)


@router.get("/{kpi_id}/completions", response_model=list[CompletionResponse])
def list_completions(
    kpi_id: UUID,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return list_completions_use_case(db=db, kpi_id=kpi_id)
