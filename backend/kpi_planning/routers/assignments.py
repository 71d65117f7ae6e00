"""KPI assignment endpoints."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import Actor, get_current_actor, require_planner
from ..database import get_db
from ..schemas import AssignmentResponse, AssignWeekRequest, DayResultRequest
from ..use_cases.assignments import (
    AssignmentSlice,
    accept_assignment_use_case,
    assign_week_use_case,
    hand_over_assignment_use_case,
    list_my_assignments_use_case,
    list_week_assignments_use_case,
    submit_day_result_use_case,
)

router = APIRouter(tags=["assignments"])


@router.post("/kpis/{kpi_id}/assign-week", response_model=list[AssignmentResponse])
def assign_week(
    kpi_id: UUID,
    payload: AssignWeekRequest,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    """Create or replace the per-step slices of one KPI week."""
    slices = [
        AssignmentSlice(
            step_id=item.step_id,
            assigned_to=item.assigned_to,
            day_assignments=item.day_assignments,
            day_titles=item.day_titles,
        )
        for item in payload.assignments
    ]
    return assign_week_use_case(
        db=db,
        kpi_id=kpi_id,
        week_index=payload.week_index,
        slices=slices,
        actor=current_actor,
    )


@router.get("/kpis/{kpi_id}/assignments", response_model=list[AssignmentResponse])
def list_week_assignments(
    kpi_id: UUID,
    week_index: Optional[int] = None,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return list_week_assignments_use_case(db=db, kpi_id=kpi_id, week_index=week_index)


@router.get("/assignments/my", response_model=list[AssignmentResponse])
def list_my_assignments(
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Assignments of the current worker, newest first."""
    return list_my_assignments_use_case(db=db, actor=current_actor)


@router.post("/assignments/{assignment_id}/accept", response_model=AssignmentResponse)
def accept_assignment(
    assignment_id: UUID,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return accept_assignment_use_case(db=db, assignment_id=assignment_id, actor=current_actor)


@router.post("/assignments/{assignment_id}/hand-over", response_model=AssignmentResponse)
def hand_over_assignment(
    assignment_id: UUID,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    return hand_over_assignment_use_case(db=db, assignment_id=assignment_id, actor=current_actor)


@router.post("/assignments/{assignment_id}/day-result", response_model=AssignmentResponse)
def submit_day_result(
    assignment_id: UUID,
    payload: DayResultRequest,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Save a result link into one slot of an assigned day."""
    return submit_day_result_use_case(
        db=db,
        assignment_id=assignment_id,
        date_value=payload.date,
        slot_index=payload.slot_index,
        link=payload.link,
        actor=current_actor,
    )
