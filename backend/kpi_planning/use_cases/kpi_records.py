"""KPI record use-cases: create, update and replace a chain KPI's breakdown."""
from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..auth import Actor
from ..config import settings
from ..domain_errors import DomainError
from ..models import ChainKpi, ChainKpiAssignment, KpiCompletion, ProductionChain
from ..services.breakdown_validator import (
    normalize_date,
    parse_non_negative_int,
    sanitize_kpi_payload,
    validate_week_breakdown,
)
from ..services.distribution import KpiDistribution, calculate_kpi_distribution, month_date_range
from ..services.notifications import Audience, Dispatch, EntityRef, notify
from .common import commit_or_raise, require_entity
from .completions import day_completions_by_date, refresh_accumulation_state

logger = logging.getLogger(__name__)


def _invalid_range(message: str, **details: Any) -> DomainError:
    return DomainError(code="INVALID_RANGE", http_status=400, message=message, details=details)


def _resolve_period(
    payload: Mapping[str, Any],
    weeks: list[dict[str, Any]] | None,
) -> tuple[date | None, date | None, int | None, int | None]:
    """Planned period as (start, end, year, month).

    Explicit ``start_date``/``end_date`` win, then ``year``/``month``, then the
    first/last day of a supplied breakdown.
    """
    raw_start = payload.get("start_date")
    raw_end = payload.get("end_date")
    year = payload.get("year")
    month = payload.get("month")

    if raw_start is not None or raw_end is not None:
        start_iso = normalize_date(raw_start)
        end_iso = normalize_date(raw_end)
        if start_iso is None or end_iso is None:
            raise _invalid_range(
                "start_date and end_date must both be valid dates",
                start_date=str(raw_start),
                end_date=str(raw_end),
            )
        if start_iso > end_iso:
            raise _invalid_range(
                f"start_date {start_iso} is after end_date {end_iso}",
                start_date=start_iso,
                end_date=end_iso,
            )
        start, end = date.fromisoformat(start_iso), date.fromisoformat(end_iso)
    elif year is not None or month is not None:
        start, end = month_date_range(year, month)
    elif weeks:
        start = date.fromisoformat(min(week["start_date"] for week in weeks))
        end = date.fromisoformat(max(week["end_date"] for week in weeks))
    else:
        return None, None, None, None

    if start.year == end.year and start.month == end.month:
        return start, end, start.year, start.month
    return start, end, None, None


def _notify_admins(
    kpi: ChainKpi,
    notification_type: str,
    title: str,
    message: str,
    *,
    actor: Actor,
    notifier: Dispatch | None,
    **metadata: Any,
) -> None:
    notify(
        Audience.admins(),
        notification_type,
        title,
        message,
        metadata={"chain_id": kpi.chain_id, "actor_id": actor.id, **metadata},
        entity_ref=EntityRef("chain_kpi", kpi.id),
        dispatch=notifier,
    )


def create_kpi_use_case(
    *,
    db: Session,
    chain_id: UUID,
    payload: Mapping[str, Any],
    actor: Actor,
    notifier: Dispatch | None = None,
) -> ChainKpi:
    """Validate and store a KPI.

    A supplied ``week_breakdown`` is stored exactly as validated. Without one,
    a date range (or year/month) makes the generator derive it, and the
    generated breakdown goes through the same validation.
    """
    chain = require_entity(db, ProductionChain, chain_id, entity="chain")
    sanitized = sanitize_kpi_payload(
        payload,
        require_week_breakdown=False,
        default_unit_label=settings.DEFAULT_UNIT_LABEL,
    )
    weeks = sanitized.week_breakdown
    start, end, year, month = _resolve_period(payload, weeks)

    if weeks is None and start is not None:
        distribution = calculate_kpi_distribution(sanitized.target_value, start, end)
        weeks = validate_week_breakdown(distribution.weeks, sanitized.target_value)

    kpi = ChainKpi(
        chain_id=chain.id,
        target_value=sanitized.target_value,
        unit_label=sanitized.unit_label,
        notes=sanitized.notes,
        year=year,
        month=month,
        start_date=start,
        end_date=end,
        weeks=weeks,
        is_accumulated=False,
        created_by=actor.id,
    )
    db.add(kpi)
    commit_or_raise(db, operation="create_kpi")
    db.refresh(kpi)

    logger.info(
        "Created KPI %s for chain %s: %s %s over %s week(s)",
        kpi.id,
        chain.id,
        kpi.target_value,
        kpi.unit_label,
        len(weeks or []),
    )
    _notify_admins(
        kpi,
        "kpi_created",
        "New KPI",
        f"{actor.label} set KPI {kpi.target_value} {kpi.unit_label} for chain \"{chain.name}\"",
        actor=actor,
        notifier=notifier,
    )
    return kpi


def update_kpi_use_case(
    *,
    db: Session,
    kpi_id: UUID,
    payload: Mapping[str, Any],
    actor: Actor,
    notifier: Dispatch | None = None,
) -> ChainKpi:
    kpi = require_entity(db, ChainKpi, kpi_id, entity="kpi", lock=True)
    merged = {
        "target_value": payload.get("target_value", kpi.target_value),
        "unit_label": payload.get("unit_label", kpi.unit_label),
        "notes": payload.get("notes", kpi.notes),
    }
    sanitized = sanitize_kpi_payload(
        merged,
        require_week_breakdown=False,
        default_unit_label=settings.DEFAULT_UNIT_LABEL,
    )
    # The stored breakdown must still sum to the (possibly new) target.
    if kpi.weeks:
        kpi.weeks = validate_week_breakdown(kpi.weeks, sanitized.target_value)

    previous_target = kpi.target_value
    kpi.target_value = sanitized.target_value
    kpi.unit_label = sanitized.unit_label
    kpi.notes = sanitized.notes
    commit_or_raise(db, operation="update_kpi")
    db.refresh(kpi)

    logger.info("Updated KPI %s: target %s -> %s", kpi.id, previous_target, kpi.target_value)
    _notify_admins(
        kpi,
        "kpi_updated",
        "KPI updated",
        f"{actor.label} updated KPI to {kpi.target_value} {kpi.unit_label}",
        actor=actor,
        notifier=notifier,
        previous_target=previous_target,
    )
    return kpi


def replace_breakdown_use_case(
    *,
    db: Session,
    kpi_id: UUID,
    weeks: Any,
    actor: Actor,
    notifier: Dispatch | None = None,
) -> ChainKpi:
    """Swap the whole breakdown for ``weeks`` after full validation; nothing is merged."""
    kpi = require_entity(db, ChainKpi, kpi_id, entity="kpi", lock=True)
    kpi.weeks = validate_week_breakdown(weeks, kpi.target_value)
    refresh_accumulation_state(kpi, set(day_completions_by_date(db, kpi.id)))
    commit_or_raise(db, operation="replace_breakdown")
    db.refresh(kpi)

    logger.info("Replaced breakdown of KPI %s with %s week(s)", kpi.id, len(kpi.weeks))
    _notify_admins(
        kpi,
        "kpi_updated",
        "KPI breakdown updated",
        f"{actor.label} replaced the weekly breakdown of KPI {kpi.target_value} {kpi.unit_label}",
        actor=actor,
        notifier=notifier,
        weeks=len(kpi.weeks),
    )
    return kpi


def _parse_day_updates(days: Any) -> dict[str, int]:
    if not isinstance(days, list) or not days:
        raise DomainError(
            code="INVALID_BREAKDOWN",
            http_status=400,
            message="days must be a non-empty array",
            details={"reason": "not_a_list"},
        )

    updates: dict[str, int] = {}
    for day in days:
        raw_date = day.get("date") if isinstance(day, Mapping) else None
        date_iso = normalize_date(raw_date)
        if date_iso is None:
            raise DomainError(
                code="INVALID_BREAKDOWN",
                http_status=400,
                message=f"Invalid date format: {raw_date}",
                details={"reason": "invalid_date", "value": str(raw_date)},
            )
        if date_iso in updates:
            raise DomainError(
                code="INVALID_BREAKDOWN",
                http_status=400,
                message=f"Duplicate date {date_iso}",
                details={"reason": "duplicate_date", "date": date_iso},
            )
        target_value = parse_non_negative_int(day.get("target_value"))
        if target_value is None:
            raise DomainError(
                code="INVALID_TARGET",
                http_status=400,
                message=f"Invalid target_value for date {date_iso}",
                details={"date": date_iso, "value": str(day.get("target_value"))},
            )
        updates[date_iso] = target_value
    return updates


def replace_days_use_case(
    *,
    db: Session,
    kpi_id: UUID,
    days: Any,
    actor: Actor,
    notifier: Dispatch | None = None,
) -> ChainKpi:
    """Overwrite targets of existing breakdown days, then revalidate the breakdown.

    Week targets are kept, so the new day targets must still add up to them.
    """
    kpi = require_entity(db, ChainKpi, kpi_id, entity="kpi", lock=True)
    if not kpi.weeks:
        raise DomainError(
            code="KPI_BREAKDOWN_MISSING",
            http_status=409,
            message="KPI has no weekly breakdown to update",
            details={"kpi_id": str(kpi.id)},
        )
    updates = _parse_day_updates(days)

    weeks = copy.deepcopy(kpi.weeks)
    applied: set[str] = set()
    for week in weeks:
        day_entries = week.get("day_breakdown") or week.get("days") or []
        for day in day_entries:
            date_iso = normalize_date(day.get("date"))
            if date_iso in updates:
                day["target_value"] = updates[date_iso]
                applied.add(date_iso)

    unknown = sorted(set(updates) - applied)
    if unknown:
        raise DomainError(
            code="INVALID_BREAKDOWN",
            http_status=400,
            message=f"Dates not in the KPI breakdown: {', '.join(unknown)}",
            details={"reason": "unknown_date", "dates": unknown},
        )

    kpi.weeks = validate_week_breakdown(weeks, kpi.target_value)
    refresh_accumulation_state(kpi, set(day_completions_by_date(db, kpi.id)))
    commit_or_raise(db, operation="replace_days")
    db.refresh(kpi)

    logger.info("Updated %s day target(s) of KPI %s", len(updates), kpi.id)
    _notify_admins(
        kpi,
        "kpi_updated",
        "KPI days updated",
        f"{actor.label} updated {len(updates)} day target(s) of KPI {kpi.target_value} {kpi.unit_label}",
        actor=actor,
        notifier=notifier,
        dates=sorted(updates),
    )
    return kpi


def preview_distribution_use_case(*, payload: Mapping[str, Any]) -> KpiDistribution:
    """Run the generator for a date range or year/month without storing anything."""
    start, end, _, _ = _resolve_period(payload, None)
    if start is None:
        raise _invalid_range("Either start_date/end_date or year/month is required")
    return calculate_kpi_distribution(payload.get("target_value"), start, end)


def get_kpi_use_case(*, db: Session, kpi_id: UUID) -> ChainKpi:
    return require_entity(db, ChainKpi, kpi_id, entity="kpi")


def list_chain_kpis_use_case(*, db: Session, chain_id: UUID) -> list[ChainKpi]:
    chain = require_entity(db, ProductionChain, chain_id, entity="chain")
    return db.query(ChainKpi).filter(
        ChainKpi.chain_id == chain.id,
    ).order_by(ChainKpi.start_date.desc(), ChainKpi.created_at.desc()).all()


def delete_kpi_use_case(
    *,
    db: Session,
    kpi_id: UUID,
    actor: Actor,
    notifier: Dispatch | None = None,
) -> None:
    kpi = require_entity(db, ChainKpi, kpi_id, entity="kpi", lock=True)
    chain_id = kpi.chain_id
    db.query(KpiCompletion).filter(KpiCompletion.chain_kpi_id == kpi.id).delete(synchronize_session=False)
    db.query(ChainKpiAssignment).filter(ChainKpiAssignment.chain_kpi_id == kpi.id).delete(synchronize_session=False)
    db.delete(kpi)
    commit_or_raise(db, operation="delete_kpi")

    logger.info("Deleted KPI %s of chain %s", kpi_id, chain_id)
    notify(
        Audience.admins(),
        "kpi_deleted",
        "KPI deleted",
        f"{actor.label} deleted KPI {kpi.target_value} {kpi.unit_label}",
        metadata={"chain_id": chain_id, "actor_id": actor.id},
        entity_ref=EntityRef("chain_kpi", kpi_id),
        dispatch=notifier,
    )
