"""Completion ledger use-cases: toggle week/day completion of a KPI."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..auth import Actor
from ..config import settings
from ..domain_errors import DomainError
from ..models import ChainKpi, KpiCompletion
from ..services.assignment_slots import now_utc
from ..services.breakdown_validator import is_working_day, normalize_date, parse_positive_int
from ..services.notifications import Audience, Dispatch, EntityRef, notify
from .common import commit_or_raise, require_entity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleResult:
    completed: bool
    completion_type: str
    key: str
    is_accumulated: bool
    completion: KpiCompletion | None = None


def _date_key(value: Any) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)


def _parse_key(completion_type: str, key: Any) -> tuple[int | None, date | None]:
    if completion_type == "week":
        week_index = parse_positive_int(key)
        if week_index is None:
            raise DomainError(
                code="INVALID_COMPLETION_KEY",
                http_status=400,
                message=f"Invalid week_index: {key}",
                details={"completion_type": completion_type, "key": str(key)},
            )
        return week_index, None
    if completion_type == "day":
        date_iso = normalize_date(key)
        if date_iso is None:
            raise DomainError(
                code="INVALID_COMPLETION_KEY",
                http_status=400,
                message=f"Invalid date (expected YYYY-MM-DD): {key}",
                details={"completion_type": completion_type, "key": str(key)},
            )
        return None, date.fromisoformat(date_iso)
    raise DomainError(
        code="INVALID_COMPLETION_KEY",
        http_status=400,
        message=f"Unknown completion type: {completion_type}",
        details={"completion_type": str(completion_type)},
    )


def _find_completion(
    db: Session,
    *,
    kpi_id: UUID,
    completion_type: str,
    week_index: int | None = None,
    day: date | None = None,
) -> KpiCompletion | None:
    query = db.query(KpiCompletion).filter(
        KpiCompletion.chain_kpi_id == kpi_id,
        KpiCompletion.completion_type == completion_type,
    )
    if completion_type == "week":
        query = query.filter(KpiCompletion.week_index == week_index)
    else:
        query = query.filter(KpiCompletion.date_iso == day)
    return query.first()


def day_completions_by_date(db: Session, kpi_id: UUID) -> dict[str, KpiCompletion]:
    rows = db.query(KpiCompletion).filter(
        KpiCompletion.chain_kpi_id == kpi_id,
        KpiCompletion.completion_type == "day",
    ).all()
    return {_date_key(row.date_iso): row for row in rows if row.completion_type == "day"}


def _week_days(kpi: ChainKpi, week_index: int) -> list[dict[str, Any]]:
    for week in kpi.weeks or []:
        if int(week.get("week_index", 0)) == week_index:
            return list(week.get("day_breakdown") or week.get("days") or [])
    return []


def _working_days(days: list[dict[str, Any]]) -> list[str]:
    return [
        day["date"]
        for day in days
        if day.get("is_working_day", is_working_day(day["date"]))
    ]


def _week_containing(kpi: ChainKpi, date_iso: str) -> int | None:
    for week in kpi.weeks or []:
        days = week.get("day_breakdown") or week.get("days") or []
        if any(day.get("date") == date_iso for day in days):
            return int(week["week_index"])
    return None


def collect_non_zero_dates(weeks: list[dict[str, Any]] | None) -> set[str]:
    dates: set[str] = set()
    for week in weeks or []:
        for day in week.get("day_breakdown") or week.get("days") or []:
            if day.get("date") and int(day.get("target_value") or 0) > 0:
                dates.add(day["date"])
    return dates


def refresh_accumulation_state(kpi: ChainKpi, completed_dates: set[str]) -> bool:
    """Mark the KPI accumulated iff every day with a non-zero target is completed.

    Returns True when the flag changed. A KPI without non-zero days is left as is.
    """
    non_zero_dates = collect_non_zero_dates(kpi.weeks)
    if not non_zero_dates:
        return False

    fully_completed = non_zero_dates <= completed_dates
    if fully_completed and not kpi.is_accumulated:
        kpi.is_accumulated = True
        kpi.accumulated_at = now_utc()
        return True
    if not fully_completed and kpi.is_accumulated:
        kpi.is_accumulated = False
        kpi.accumulated_at = None
        return True
    return False


def _cascade_week_to_days(
    db: Session,
    *,
    kpi: ChainKpi,
    week_index: int,
    completed: bool,
    day_rows: dict[str, KpiCompletion],
    actor: Actor,
) -> None:
    for date_iso in _working_days(_week_days(kpi, week_index)):
        if completed and date_iso not in day_rows:
            row = KpiCompletion(
                chain_kpi_id=kpi.id,
                completion_type="day",
                date_iso=date.fromisoformat(date_iso),
                completed_by=actor.id,
                completed_at=now_utc(),
            )
            db.add(row)
            day_rows[date_iso] = row
        elif not completed and date_iso in day_rows:
            db.delete(day_rows.pop(date_iso))


def _cascade_day_to_week(
    db: Session,
    *,
    kpi: ChainKpi,
    date_iso: str,
    day_rows: dict[str, KpiCompletion],
    actor: Actor,
) -> None:
    week_index = _week_containing(kpi, date_iso)
    if week_index is None:
        return
    working_days = _working_days(_week_days(kpi, week_index))
    if not working_days:
        return

    all_done = all(day in day_rows for day in working_days)
    week_row = _find_completion(db, kpi_id=kpi.id, completion_type="week", week_index=week_index)
    if all_done and week_row is None:
        db.add(
            KpiCompletion(
                chain_kpi_id=kpi.id,
                completion_type="week",
                week_index=week_index,
                completed_by=actor.id,
                completed_at=now_utc(),
            )
        )
    elif not all_done and week_row is not None:
        db.delete(week_row)


def toggle_completion_use_case(
    *,
    db: Session,
    kpi_id: UUID,
    completion_type: str,
    key: Any,
    actor: Actor,
    cascade: bool | None = None,
    notifier: Dispatch | None = None,
) -> ToggleResult:
    """Delete the ledger row for the key if present, otherwise create it.

    The KPI row is locked for the whole check-then-act so concurrent togglers
    of the same KPI serialize; the partial unique indexes reject any duplicate
    that slips through and surface it as CONCURRENT_MODIFICATION.
    """
    kpi = require_entity(db, ChainKpi, kpi_id, entity="kpi", lock=True)
    week_index, day = _parse_key(completion_type, key)
    cascade = settings.KPI_COMPLETION_CASCADE if cascade is None else cascade

    day_rows = day_completions_by_date(db, kpi.id)
    existing = _find_completion(
        db,
        kpi_id=kpi.id,
        completion_type=completion_type,
        week_index=week_index,
        day=day,
    )

    row = None
    if existing is not None:
        db.delete(existing)
        if day is not None:
            day_rows.pop(day.isoformat(), None)
    else:
        row = KpiCompletion(
            chain_kpi_id=kpi.id,
            completion_type=completion_type,
            week_index=week_index,
            date_iso=day,
            completed_by=actor.id,
            completed_at=now_utc(),
        )
        db.add(row)
        if day is not None:
            day_rows[day.isoformat()] = row
    completed = row is not None

    if cascade and week_index is not None:
        _cascade_week_to_days(
            db, kpi=kpi, week_index=week_index, completed=completed, day_rows=day_rows, actor=actor
        )
    elif cascade and day is not None:
        _cascade_day_to_week(db, kpi=kpi, date_iso=day.isoformat(), day_rows=day_rows, actor=actor)

    refresh_accumulation_state(kpi, set(day_rows))
    commit_or_raise(db, operation="toggle_completion")

    key_label = str(week_index) if week_index is not None else day.isoformat()
    logger.info(
        "KPI %s %s %s %s by %s",
        kpi.id,
        completion_type,
        key_label,
        "completed" if completed else "reopened",
        actor.id,
    )

    unit = f"week {key_label}" if completion_type == "week" else f"day {key_label}"
    notify(
        Audience.admins(),
        "kpi_completion",
        "KPI completed" if completed else "KPI completion cancelled",
        f"{actor.label} {'completed' if completed else 'reopened'} {unit} of KPI {kpi.target_value} {kpi.unit_label}",
        metadata={
            "chain_id": kpi.chain_id,
            "completion_type": completion_type,
            "key": key_label,
            "completed": completed,
            "is_accumulated": kpi.is_accumulated,
        },
        entity_ref=EntityRef("chain_kpi", kpi.id),
        dispatch=notifier,
    )
    return ToggleResult(
        completed=completed,
        completion_type=completion_type,
        key=key_label,
        is_accumulated=bool(kpi.is_accumulated),
        completion=row,
    )


def list_completions_use_case(*, db: Session, kpi_id: UUID) -> list[KpiCompletion]:
    kpi = require_entity(db, ChainKpi, kpi_id, entity="kpi")
    return db.query(KpiCompletion).filter(
        KpiCompletion.chain_kpi_id == kpi.id,
    ).order_by(KpiCompletion.completed_at.asc()).all()
