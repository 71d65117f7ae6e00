"""Chain KPI endpoints: targets and their week/day breakdown."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ..auth import Actor, get_current_actor, require_planner
from ..database import get_db
from ..schemas import (
    ChainKpiResponse,
    DaysReplace,
    DistributionPreviewRequest,
    DistributionPreviewResponse,
    KpiCreate,
    KpiUpdate,
    WeeksReplace,
)
from ..use_cases.kpi_records import (
    create_kpi_use_case,
    delete_kpi_use_case,
    get_kpi_use_case,
    list_chain_kpis_use_case,
    preview_distribution_use_case,
    replace_breakdown_use_case,
    replace_days_use_case,
    update_kpi_use_case,
)

router = APIRouter(tags=["kpis"])


@router.post("/chains/{chain_id}/kpis", response_model=ChainKpiResponse, status_code=status.HTTP_201_CREATED)
def create_chain_kpi(
    chain_id: UUID,
    payload: KpiCreate,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    """Create a KPI; the breakdown is generated from the period when not supplied."""
    return create_kpi_use_case(
        db=db,
        chain_id=chain_id,
        payload=payload.model_dump(exclude_unset=True),
        actor=current_actor,
    )


@router.get("/chains/{chain_id}/kpis", response_model=list[ChainKpiResponse])
def list_chain_kpis(
    chain_id: UUID,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return list_chain_kpis_use_case(db=db, chain_id=chain_id)


@router.post("/kpis/distribution-preview", response_model=DistributionPreviewResponse)
def preview_distribution(
    payload: DistributionPreviewRequest,
    current_actor: Actor = Depends(require_planner),
):
    """Fair split of a target over a period, without saving."""
    distribution = preview_distribution_use_case(payload=payload.model_dump(exclude_unset=True))
    return DistributionPreviewResponse(
        weeks=distribution.weeks,
        total_working_days=distribution.total_working_days,
    )


@router.get("/kpis/{kpi_id}", response_model=ChainKpiResponse)
def get_kpi(
    kpi_id: UUID,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return get_kpi_use_case(db=db, kpi_id=kpi_id)


@router.put("/kpis/{kpi_id}", response_model=ChainKpiResponse)
def update_kpi(
    kpi_id: UUID,
    payload: KpiUpdate,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    """Update target, unit label and notes."""
    return update_kpi_use_case(
        db=db,
        kpi_id=kpi_id,
        payload=payload.model_dump(exclude_unset=True),
        actor=current_actor,
    )


@router.put("/kpis/{kpi_id}/weeks", response_model=ChainKpiResponse)
def replace_kpi_weeks(
    kpi_id: UUID,
    payload: WeeksReplace,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    return replace_breakdown_use_case(db=db, kpi_id=kpi_id, weeks=payload.weeks, actor=current_actor)


@router.put("/kpis/{kpi_id}/days", response_model=ChainKpiResponse)
def replace_kpi_days(
    kpi_id: UUID,
    payload: DaysReplace,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    return replace_days_use_case(db=db, kpi_id=kpi_id, days=payload.days, actor=current_actor)


@router.delete("/kpis/{kpi_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_kpi(
    kpi_id: UUID,
    current_actor: Actor = Depends(require_planner),
    db: Session = Depends(get_db),
):
    delete_kpi_use_case(db=db, kpi_id=kpi_id, actor=current_actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
