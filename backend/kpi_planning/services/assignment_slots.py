"""Assignment invariant helpers: one-way ratchets and per-day slot lists."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from ..domain_errors import DomainError
from .breakdown_validator import normalize_date, parse_non_negative_int


RATCHET_FIELDS: dict[str, tuple[str, str, str]] = {
    "accepted": ("accepted", "accepted_by", "accepted_at"),
    "handed_over": ("handed_over", "handed_over_by", "handed_over_at"),
}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Ratchet:
    """Boolean that only moves false -> true, stored with who/when engaged it."""

    engaged: bool = False
    by: UUID | None = None
    at: datetime | None = None

    def engage(self, *, actor_id: UUID, at: datetime | None = None) -> Ratchet:
        if self.engaged:
            return self
        return Ratchet(engaged=True, by=actor_id, at=at or now_utc())


def read_ratchet(record: Any, name: str) -> Ratchet:
    flag_attr, by_attr, at_attr = RATCHET_FIELDS[name]
    return Ratchet(
        engaged=bool(getattr(record, flag_attr)),
        by=getattr(record, by_attr),
        at=getattr(record, at_attr),
    )


def write_ratchet(record: Any, name: str, ratchet: Ratchet) -> bool:
    """Store ``ratchet`` on ``record``; returns False when nothing changed."""
    current = read_ratchet(record, name)
    if current.engaged and not ratchet.engaged:
        raise ValueError(f"{name} cannot be reverted once set")
    if current == ratchet:
        return False
    flag_attr, by_attr, at_attr = RATCHET_FIELDS[name]
    setattr(record, flag_attr, ratchet.engaged)
    setattr(record, by_attr, ratchet.by)
    setattr(record, at_attr, ratchet.at)
    return True


def _invalid_slot(message: str, **details: Any) -> DomainError:
    return DomainError(code="INVALID_SLOT", http_status=400, message=message, details=details)


def as_slot_list(value: Any) -> list[Any]:
    # Older rows stored a single result object for a day instead of a list.
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def resize_slots(slots: Any, count: int) -> list[Any]:
    """Truncate trailing slots past ``count`` or pad with empty (None) slots."""
    current = as_slot_list(slots)[:count]
    return current + [None] * (count - len(current))


def reslice_day_slots(existing: Mapping[str, Any] | None, counts: Mapping[str, int]) -> dict[str, list[Any]]:
    """Fit stored per-day slot lists to new slot counts without moving any slot."""
    resliced: dict[str, list[Any]] = {}
    for date_iso, slots in (existing or {}).items():
        count = counts.get(date_iso, 0)
        if count > 0:
            resliced[date_iso] = resize_slots(slots, count)
    return resliced


def normalize_day_assignments(
    raw: Mapping[str, Any] | None,
    *,
    day_targets: Mapping[str, int],
    week_index: int,
) -> dict[str, int]:
    """Validate date -> slot count against the week's day targets; zero counts are dropped."""
    counts: dict[str, int] = {}
    for raw_date, raw_count in (raw or {}).items():
        date_iso = normalize_date(raw_date)
        if date_iso is None or date_iso not in day_targets:
            raise _invalid_slot(
                f"Date {raw_date} is not part of week {week_index}",
                week_index=week_index,
                date=str(raw_date),
            )
        count = parse_non_negative_int(raw_count)
        if count is None:
            raise _invalid_slot(
                f"Slot count for {date_iso} must be a non-negative integer",
                week_index=week_index,
                date=date_iso,
                value=str(raw_count),
            )
        if count > day_targets[date_iso]:
            raise DomainError(
                code="ASSIGNMENT_EXCEEDS_DAY_TARGET",
                http_status=400,
                message=f"Assigned slots for {date_iso} exceed the day target ({count}/{day_targets[date_iso]})",
                details={
                    "week_index": week_index,
                    "date": date_iso,
                    "assigned": count,
                    "day_target": day_targets[date_iso],
                },
            )
        if count > 0:
            counts[date_iso] = count
    return dict(sorted(counts.items()))


def normalize_day_titles(raw: Mapping[str, Any] | None, counts: Mapping[str, int]) -> dict[str, list[str | None]]:
    titles: dict[str, list[str | None]] = {}
    for raw_date, raw_titles in (raw or {}).items():
        date_iso = normalize_date(raw_date)
        if date_iso is None or date_iso not in counts:
            raise _invalid_slot(f"Titles given for unassigned date {raw_date}", date=str(raw_date))
        labels = as_slot_list(raw_titles)
        if len(labels) > counts[date_iso]:
            raise _invalid_slot(
                f"{len(labels)} titles for {date_iso} but only {counts[date_iso]} slots",
                date=date_iso,
                titles=len(labels),
                slot_count=counts[date_iso],
            )
        cleaned = [label.strip() if isinstance(label, str) and label.strip() else None for label in labels]
        titles[date_iso] = resize_slots(cleaned, counts[date_iso])
    return titles


def write_slot_result(
    day_results: Mapping[str, Any] | None,
    counts: Mapping[str, int],
    *,
    date_iso: str,
    slot_index: int,
    entry: dict[str, Any],
) -> dict[str, list[Any]]:
    """Return a copy of ``day_results`` with ``entry`` stored in one slot."""
    count = counts.get(date_iso)
    if not count:
        raise _invalid_slot(
            f"Date {date_iso} has no assigned slots",
            date=date_iso,
            slot_index=slot_index,
            slot_count=0,
        )
    if slot_index < 0 or slot_index >= count:
        raise _invalid_slot(
            f"Slot {slot_index} is out of range for {date_iso} ({count} slots)",
            date=date_iso,
            slot_index=slot_index,
            slot_count=count,
        )

    updated = {key: as_slot_list(value) for key, value in (day_results or {}).items()}
    slots = resize_slots(updated.get(date_iso), count)
    slots[slot_index] = entry
    updated[date_iso] = slots
    return updated
