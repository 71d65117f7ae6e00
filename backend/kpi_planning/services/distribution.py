"""Fair week/day distribution of a KPI target over a date range."""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from ..domain_errors import DomainError
from .breakdown_validator import normalize_date, parse_non_negative_int


@dataclass(frozen=True)
class KpiDistribution:
    weeks: list[dict[str, Any]]
    total_working_days: int


def _invalid_range(start: Any, end: Any, message: str) -> DomainError:
    return DomainError(
        code="INVALID_RANGE",
        http_status=400,
        message=message,
        details={"start_date": str(start), "end_date": str(end)},
    )


def _as_date(value: Any) -> date | None:
    date_iso = normalize_date(value)
    return date.fromisoformat(date_iso) if date_iso else None


def month_date_range(year: Any, month: Any) -> tuple[date, date]:
    """First and last calendar day of ``year``/``month``."""
    try:
        year_int = int(year)
        month_int = int(month)
        last_day = calendar.monthrange(year_int, month_int)[1]
        return date(year_int, month_int, 1), date(year_int, month_int, last_day)
    except (TypeError, ValueError, calendar.IllegalMonthError):
        raise _invalid_range(year, month, f"Invalid month: {year}-{month}") from None


def calculate_kpi_distribution(target_value: Any, start_date: Any, end_date: Any) -> KpiDistribution:
    """Split ``target_value`` over the working days of ``[start_date, end_date]``.

    Weeks are Monday-aligned and list only in-range days. Every working day
    (Mon-Fri) receives ``base`` units and the first ``target % working_days``
    of them, in date order, one extra; weekend days receive 0. A range with no
    working days yields an all-zero breakdown.
    """
    target = parse_non_negative_int(target_value)
    if target is None:
        raise DomainError(
            code="INVALID_TARGET",
            http_status=400,
            message="target_value must be a non-negative integer",
            details={"field": "target_value", "value": str(target_value)},
        )

    start = _as_date(start_date)
    end = _as_date(end_date)
    if start is None or end is None:
        raise _invalid_range(start_date, end_date, "start_date and end_date must be valid dates")
    if start > end:
        raise _invalid_range(start_date, end_date, f"start_date {start} is after end_date {end}")

    weeks: list[dict[str, Any]] = []
    total_working_days = 0
    week_start = start - timedelta(days=start.weekday())
    while week_start <= end:
        days = []
        working_days = 0
        for offset in range(7):
            current = week_start + timedelta(days=offset)
            if current < start or current > end:
                continue
            working = current.weekday() < 5
            days.append({"date": current.isoformat(), "target_value": 0, "is_working_day": working})
            if working:
                working_days += 1

        if days:
            weeks.append({
                "week_index": len(weeks) + 1,
                "start_date": days[0]["date"],
                "end_date": days[-1]["date"],
                "target_value": 0,
                "working_days": working_days,
                "day_breakdown": days,
            })
            total_working_days += working_days
        week_start += timedelta(days=7)

    if total_working_days > 0:
        base, remainder = divmod(target, total_working_days)
        seen_working = 0
        for week in weeks:
            for day in week["day_breakdown"]:
                if day["is_working_day"]:
                    day["target_value"] = base + (1 if seen_working < remainder else 0)
                    seen_working += 1
            week["target_value"] = sum(day["target_value"] for day in week["day_breakdown"])

    return KpiDistribution(weeks=weeks, total_working_days=total_working_days)
