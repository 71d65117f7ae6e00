"""Assignment use-cases: slice a KPI week across workers, accept, hand over and record results."""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..auth import Actor
from ..domain_errors import DomainError, not_found
from ..models import ChainKpi, ChainKpiAssignment, ProductionChainStep
from ..services.assignment_slots import (
    normalize_day_assignments,
    normalize_day_titles,
    now_utc,
    read_ratchet,
    reslice_day_slots,
    write_ratchet,
    write_slot_result,
)
from ..services.breakdown_validator import normalize_date, parse_positive_int
from ..services.notifications import Audience, Dispatch, EntityRef, notify
from .common import commit_or_raise, require_entity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignmentSlice:
    """One worker's share of a KPI week for one chain step."""

    step_id: UUID
    assigned_to: UUID
    day_assignments: Mapping[str, Any]
    day_titles: Mapping[str, Any] | None = None


def _find_week(kpi: ChainKpi, week_index: Any) -> dict[str, Any]:
    index = parse_positive_int(week_index)
    for week in kpi.weeks or []:
        if index is not None and int(week.get("week_index", 0)) == index:
            return week
    raise not_found("kpi_week", week_index)


def _day_targets(week: Mapping[str, Any]) -> dict[str, int]:
    days = week.get("day_breakdown") or week.get("days") or []
    return {day["date"]: int(day.get("target_value") or 0) for day in days}


def _slot_counts(assignment: ChainKpiAssignment) -> dict[str, int]:
    return {key: int(value) for key, value in (assignment.day_assignments or {}).items()}


def assign_week_use_case(
    *,
    db: Session,
    kpi_id: UUID,
    week_index: int,
    slices: Sequence[AssignmentSlice],
    actor: Actor,
    notifier: Dispatch | None = None,
) -> list[ChainKpiAssignment]:
    """Create or replace assignments keyed by (kpi, week, step).

    On replace, stored results and titles keep their slot positions: trailing
    slots past a reduced count are dropped, new slots start empty and dates
    no longer assigned lose their results.
    """
    kpi = require_entity(db, ChainKpi, kpi_id, entity="kpi", lock=True)
    week = _find_week(kpi, week_index)
    week_index = int(week["week_index"])
    day_targets = _day_targets(week)

    if not slices:
        raise DomainError(
            code="INVALID_SLOT",
            http_status=400,
            message="At least one assignment is required",
            details={"week_index": week_index},
        )

    seen_steps: set[UUID] = set()
    for item in slices:
        if item.step_id in seen_steps:
            raise DomainError(
                code="DUPLICATE_STEP_ASSIGNMENT",
                http_status=400,
                message=f"Step {item.step_id} is assigned more than once",
                details={"week_index": week_index, "step_id": str(item.step_id)},
            )
        seen_steps.add(item.step_id)

    chain_step_ids = {
        step.id
        for step in db.query(ProductionChainStep).filter(ProductionChainStep.chain_id == kpi.chain_id).all()
    }
    for item in slices:
        if item.step_id not in chain_step_ids:
            raise not_found("step", item.step_id)

    existing = {
        row.step_id: row
        for row in db.query(ChainKpiAssignment).filter(
            ChainKpiAssignment.chain_kpi_id == kpi.id,
            ChainKpiAssignment.week_index == week_index,
        ).with_for_update().all()
    }

    planned_counts = [
        normalize_day_assignments(item.day_assignments, day_targets=day_targets, week_index=week_index)
        for item in slices
    ]

    for item in slices:
        row = existing.get(item.step_id)
        if row is not None and row.accepted and row.assigned_to != item.assigned_to:
            raise DomainError(
                code="ASSIGNMENT_ALREADY_ACCEPTED",
                http_status=409,
                message="Accepted assignment cannot be moved to another worker",
                details={
                    "assignment_id": str(row.id),
                    "week_index": week_index,
                    "step_id": str(item.step_id),
                },
            )

    planned_titles = [
        normalize_day_titles(item.day_titles, counts) if item.day_titles is not None else None
        for item, counts in zip(slices, planned_counts)
    ]

    saved: list[ChainKpiAssignment] = []
    new_assignees: list[ChainKpiAssignment] = []
    for item, counts, titles in zip(slices, planned_counts, planned_titles):
        row = existing.get(item.step_id)
        if row is None:
            row = ChainKpiAssignment(
                chain_kpi_id=kpi.id,
                week_index=week_index,
                step_id=item.step_id,
                assigned_to=item.assigned_to,
                day_assignments=counts,
                day_results={},
                day_titles=titles or {},
                accepted=False,
                handed_over=False,
                created_by=actor.id,
            )
            db.add(row)
            new_assignees.append(row)
        else:
            if row.assigned_to != item.assigned_to:
                new_assignees.append(row)
            row.assigned_to = item.assigned_to
            row.day_assignments = counts
            row.day_results = reslice_day_slots(row.day_results, counts)
            row.day_titles = titles if titles is not None else reslice_day_slots(row.day_titles, counts)
        saved.append(row)

    commit_or_raise(db, operation="assign_week")

    logger.info(
        "Assigned week %s of KPI %s: %s slice(s) by %s",
        week_index,
        kpi.id,
        len(saved),
        actor.id,
    )
    for row in new_assignees:
        notify(
            Audience.user(row.assigned_to),
            "kpi_assignment",
            "New KPI assignment",
            f"{actor.label} assigned you week {week_index} of KPI {kpi.target_value} {kpi.unit_label}",
            metadata={
                "chain_id": kpi.chain_id,
                "chain_kpi_id": kpi.id,
                "week_index": week_index,
                "step_id": row.step_id,
                "day_assignments": row.day_assignments,
            },
            entity_ref=EntityRef("chain_kpi_assignment", row.id),
            dispatch=notifier,
        )
    notify(
        Audience.admins(),
        "chain_assignment",
        "KPI assignment",
        f"{actor.label} assigned {len(saved)} slice(s) for week {week_index} of KPI {kpi.target_value} {kpi.unit_label}",
        metadata={
            "chain_id": kpi.chain_id,
            "chain_kpi_id": kpi.id,
            "assignment_ids": [row.id for row in saved],
            "week_index": week_index,
            "event": "assigned",
        },
        entity_ref=EntityRef("chain_kpi", kpi.id),
        dispatch=notifier,
    )
    return saved


def accept_assignment_use_case(
    *,
    db: Session,
    assignment_id: UUID,
    actor: Actor,
    notifier: Dispatch | None = None,
) -> ChainKpiAssignment:
    assignment = require_entity(db, ChainKpiAssignment, assignment_id, entity="assignment", lock=True)
    if assignment.assigned_to != actor.id:
        raise DomainError(
            code="NOT_ASSIGNEE",
            http_status=403,
            message="Only the assigned worker can accept this assignment",
            details={"assignment_id": str(assignment.id)},
        )

    current = read_ratchet(assignment, "accepted")
    if current.engaged:
        return assignment

    write_ratchet(assignment, "accepted", current.engage(actor_id=actor.id))
    commit_or_raise(db, operation="accept_assignment")
    db.refresh(assignment)

    logger.info("Assignment %s accepted by %s", assignment.id, actor.id)
    notify(
        Audience.leaders(),
        "kpi_accept",
        "KPI assignment accepted",
        f"{actor.label} accepted the assignment for week {assignment.week_index}",
        metadata={
            "chain_kpi_id": assignment.chain_kpi_id,
            "week_index": assignment.week_index,
            "step_id": assignment.step_id,
            "accepted_by": actor.id,
        },
        entity_ref=EntityRef("chain_kpi_assignment", assignment.id),
        dispatch=notifier,
    )
    return assignment


def hand_over_assignment_use_case(
    *,
    db: Session,
    assignment_id: UUID,
    actor: Actor,
    notifier: Dispatch | None = None,
) -> ChainKpiAssignment:
    assignment = require_entity(db, ChainKpiAssignment, assignment_id, entity="assignment", lock=True)
    current = read_ratchet(assignment, "handed_over")
    if current.engaged:
        return assignment

    write_ratchet(assignment, "handed_over", current.engage(actor_id=actor.id))
    commit_or_raise(db, operation="hand_over_assignment")
    db.refresh(assignment)

    logger.info("Assignment %s handed over by %s", assignment.id, actor.id)
    notify(
        Audience.user(assignment.assigned_to),
        "kpi_hand_over",
        "KPI assignment handed over",
        f"{actor.label} handed over your assignment for week {assignment.week_index}",
        metadata={
            "chain_kpi_id": assignment.chain_kpi_id,
            "week_index": assignment.week_index,
            "handed_over_by": actor.id,
        },
        entity_ref=EntityRef("chain_kpi_assignment", assignment.id),
        dispatch=notifier,
    )
    return assignment


def submit_day_result_use_case(
    *,
    db: Session,
    assignment_id: UUID,
    date_value: Any,
    slot_index: int,
    link: str,
    actor: Actor,
    notifier: Dispatch | None = None,
) -> ChainKpiAssignment:
    """Store ``link`` in one slot of one assigned day (last write wins)."""
    assignment = require_entity(db, ChainKpiAssignment, assignment_id, entity="assignment", lock=True)
    if not assignment.accepted:
        raise DomainError(
            code="NOT_ACCEPTED",
            http_status=409,
            message="Assignment must be accepted before submitting results",
            details={"assignment_id": str(assignment.id)},
        )
    if assignment.assigned_to != actor.id:
        raise DomainError(
            code="NOT_ASSIGNEE",
            http_status=403,
            message="Only the assigned worker can submit results",
            details={"assignment_id": str(assignment.id)},
        )

    date_iso = normalize_date(date_value)
    if date_iso is None:
        raise DomainError(
            code="INVALID_SLOT",
            http_status=400,
            message=f"Invalid date format: {date_value}",
            details={"date": str(date_value), "slot_index": slot_index},
        )
    cleaned_link = link.strip() if isinstance(link, str) else ""
    if not cleaned_link:
        raise DomainError(
            code="INVALID_RESULT_LINK",
            http_status=400,
            message="Result link cannot be empty",
            details={"date": date_iso, "slot_index": slot_index},
        )

    entry = {
        "link": cleaned_link,
        "saved_by": str(actor.id),
        "saved_at": now_utc().isoformat(),
    }
    assignment.day_results = write_slot_result(
        assignment.day_results,
        _slot_counts(assignment),
        date_iso=date_iso,
        slot_index=slot_index,
        entry=entry,
    )
    commit_or_raise(db, operation="submit_day_result")
    db.refresh(assignment)

    logger.info("Result saved for assignment %s on %s slot %s", assignment.id, date_iso, slot_index)
    notify(
        Audience.leaders(),
        "kpi_result",
        "KPI result submitted",
        f"{actor.label} submitted a result for {date_iso} (slot {slot_index + 1})",
        metadata={
            "chain_kpi_id": assignment.chain_kpi_id,
            "week_index": assignment.week_index,
            "date": date_iso,
            "slot_index": slot_index,
            "link": cleaned_link,
        },
        entity_ref=EntityRef("chain_kpi_assignment", assignment.id),
        dispatch=notifier,
    )
    return assignment


def list_my_assignments_use_case(*, db: Session, actor: Actor) -> list[ChainKpiAssignment]:
    return db.query(ChainKpiAssignment).filter(
        ChainKpiAssignment.assigned_to == actor.id,
    ).order_by(ChainKpiAssignment.created_at.desc()).all()


def list_week_assignments_use_case(
    *,
    db: Session,
    kpi_id: UUID,
    week_index: int | None = None,
) -> list[ChainKpiAssignment]:
    kpi = require_entity(db, ChainKpi, kpi_id, entity="kpi")
    query = db.query(ChainKpiAssignment).filter(ChainKpiAssignment.chain_kpi_id == kpi.id)
    if week_index is not None:
        query = query.filter(ChainKpiAssignment.week_index == week_index)
    return query.order_by(ChainKpiAssignment.week_index.asc(), ChainKpiAssignment.created_at.asc()).all()
