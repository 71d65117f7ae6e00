"""KPI week/day breakdown validation.

The backend validates and stores exactly the breakdown it is given; it never
redistributes a supplied breakdown. All dates are normalized to UTC
``YYYY-MM-DD``. Every failure is a ``DomainError`` whose ``details`` name the
offending week/date so the planner can fix the input.
"""
from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from ..domain_errors import DomainError

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Odd targets split upstream round by at most one unit per level.
SUM_TOLERANCE = 1

DEFAULT_UNIT_LABEL = "products"


@dataclass(frozen=True)
class SanitizedKpiPayload:
    target_value: int
    unit_label: str
    notes: str | None
    week_breakdown: list[dict[str, Any]] | None = None


def _invalid(code: str, message: str, **details: Any) -> DomainError:
    return DomainError(code=code, http_status=400, message=message, details=details or None)


def normalize_date(value: Any) -> str | None:
    """Return ``value`` as a UTC ``YYYY-MM-DD`` string, or None if unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if DATE_RE.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def parse_non_negative_int(value: Any) -> int | None:
    """Parse ints, integral floats and numeric strings; reject bools and fractions."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        parsed = int(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            if not math.isfinite(number) or not number.is_integer():
                return None
            parsed = int(number)
    else:
        return None
    return parsed if parsed >= 0 else None


def parse_positive_int(value: Any) -> int | None:
    parsed = parse_non_negative_int(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def is_working_day(date_iso: str) -> bool:
    """Monday..Friday."""
    return date.fromisoformat(date_iso).weekday() < 5


def validate_day_entry(day: Any, *, week_index: int) -> dict[str, Any]:
    if not isinstance(day, Mapping):
        raise _invalid(
            "INVALID_BREAKDOWN",
            f"Week {week_index}: invalid day entry",
            week_index=week_index,
            reason="invalid_day_entry",
        )

    date_iso = normalize_date(day.get("date"))
    if not date_iso:
        raise _invalid(
            "INVALID_BREAKDOWN",
            f"Week {week_index}: invalid date format: {day.get('date')}",
            week_index=week_index,
            reason="invalid_date",
            value=str(day.get("date")),
        )

    target_value = parse_non_negative_int(day.get("target_value"))
    if target_value is None:
        raise _invalid(
            "INVALID_TARGET",
            f"Week {week_index}: invalid target_value for date {date_iso}",
            week_index=week_index,
            date=date_iso,
            value=str(day.get("target_value")),
        )

    return {
        "date": date_iso,
        "target_value": target_value,
        "is_working_day": is_working_day(date_iso),
    }


def validate_week_entry(week: Any, *, tolerance: int = SUM_TOLERANCE) -> dict[str, Any]:
    if not isinstance(week, Mapping):
        raise _invalid("INVALID_BREAKDOWN", "Invalid week entry", reason="invalid_week_entry")

    week_index = parse_positive_int(week.get("week_index"))
    if week_index is None:
        raise _invalid(
            "INVALID_BREAKDOWN",
            f"Invalid week_index: {week.get('week_index')}",
            reason="invalid_week_index",
            value=str(week.get("week_index")),
        )

    target_value = parse_non_negative_int(week.get("target_value"))
    if target_value is None:
        raise _invalid(
            "INVALID_TARGET",
            f"Invalid target_value for week {week_index}",
            week_index=week_index,
            value=str(week.get("target_value")),
        )

    # "days" is the key used by generated breakdowns stored before day_breakdown existed.
    raw_days = week.get("day_breakdown", week.get("days"))
    if not isinstance(raw_days, list) or not raw_days:
        raise _invalid(
            "INVALID_BREAKDOWN",
            f"Missing day_breakdown for week {week_index}",
            week_index=week_index,
            reason="missing_day_breakdown",
        )

    days: list[dict[str, Any]] = []
    seen_dates: set[str] = set()
    for raw_day in raw_days:
        day = validate_day_entry(raw_day, week_index=week_index)
        if day["date"] in seen_dates:
            raise _invalid(
                "INVALID_BREAKDOWN",
                f"Week {week_index}: duplicate date {day['date']}",
                week_index=week_index,
                date=day["date"],
                reason="duplicate_date",
            )
        seen_dates.add(day["date"])
        days.append(day)

    day_sum = sum(day["target_value"] for day in days)
    if abs(day_sum - target_value) > tolerance:
        raise _invalid(
            "DAY_WEEK_SUM_MISMATCH",
            f"Week {week_index}: sum of days ({day_sum}) does not match week target ({target_value})",
            week_index=week_index,
            day_sum=day_sum,
            week_target=target_value,
            tolerance=tolerance,
        )

    days.sort(key=lambda item: item["date"])
    return {
        "week_index": week_index,
        "start_date": days[0]["date"],
        "end_date": days[-1]["date"],
        "target_value": target_value,
        "day_breakdown": days,
    }


def validate_week_breakdown(
    week_breakdown: Any,
    month_target: int,
    *,
    tolerance: int = SUM_TOLERANCE,
) -> list[dict[str, Any]]:
    """Validate a full breakdown against ``month_target``; returns it sorted."""
    if not isinstance(week_breakdown, list):
        raise _invalid("INVALID_BREAKDOWN", "week_breakdown must be an array", reason="not_a_list")
    if not week_breakdown:
        raise _invalid("INVALID_BREAKDOWN", "week_breakdown cannot be empty", reason="empty")

    weeks: list[dict[str, Any]] = []
    seen_indices: set[int] = set()
    for raw_week in week_breakdown:
        week = validate_week_entry(raw_week, tolerance=tolerance)
        if week["week_index"] in seen_indices:
            raise _invalid(
                "DUPLICATE_WEEK_INDEX",
                f"Duplicate week_index: {week['week_index']}",
                week_index=week["week_index"],
            )
        seen_indices.add(week["week_index"])
        weeks.append(week)

    week_sum = sum(week["target_value"] for week in weeks)
    if abs(week_sum - month_target) > tolerance:
        raise _invalid(
            "WEEK_MONTH_SUM_MISMATCH",
            f"Sum of weeks ({week_sum}) does not match month target ({month_target})",
            week_sum=week_sum,
            target_value=month_target,
            tolerance=tolerance,
        )

    weeks.sort(key=lambda item: item["week_index"])
    return weeks


def sanitize_kpi_payload(
    payload: Any,
    *,
    require_week_breakdown: bool = True,
    default_unit_label: str = DEFAULT_UNIT_LABEL,
) -> SanitizedKpiPayload:
    """Normalize target/unit/notes and validate ``week_breakdown`` when given or required."""
    if not isinstance(payload, Mapping):
        raise _invalid("INVALID_BREAKDOWN", "Invalid payload", reason="invalid_payload")

    target_value = parse_positive_int(payload.get("target_value"))
    if target_value is None:
        raise _invalid(
            "INVALID_TARGET",
            "target_value must be a positive integer",
            field="target_value",
            value=str(payload.get("target_value")),
        )

    raw_unit = payload.get("unit_label")
    unit_label = raw_unit.strip() if isinstance(raw_unit, str) else ""
    raw_notes = payload.get("notes")
    notes = raw_notes.strip() if isinstance(raw_notes, str) else ""

    week_breakdown = payload.get("week_breakdown")
    weeks = None
    if week_breakdown is not None or require_week_breakdown:
        weeks = validate_week_breakdown(week_breakdown, target_value)

    return SanitizedKpiPayload(
        target_value=target_value,
        unit_label=unit_label or default_unit_label,
        notes=notes or None,
        week_breakdown=weeks,
    )
