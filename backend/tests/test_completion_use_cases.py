from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from kpi_planning.domain_errors import DomainError
from kpi_planning.models import ChainKpi, KpiCompletion
from kpi_planning.use_cases.completions import (
    list_completions_use_case,
    refresh_accumulation_state,
    toggle_completion_use_case,
)

MON, TUE, SAT = "2024-06-03", "2024-06-04", "2024-06-08"


def _kpi(db):
    kpi = SimpleNamespace(
        id=uuid4(),
        chain_id=uuid4(),
        target_value=5,
        unit_label="videos",
        weeks=[
            {
                "week_index": 1,
                "start_date": MON,
                "end_date": SAT,
                "target_value": 5,
                "day_breakdown": [
                    {"date": MON, "target_value": 3, "is_working_day": True},
                    {"date": TUE, "target_value": 2, "is_working_day": True},
                    {"date": SAT, "target_value": 0, "is_working_day": False},
                ],
            }
        ],
        is_accumulated=False,
        accumulated_at=None,
    )
    return db.put(ChainKpi, kpi)


def _rows(db, completion_type):
    return [row for row in db.rows_for(KpiCompletion) if row.completion_type == completion_type]


def test_toggle_day_alternates_between_completed_and_open(db, planner, notifier) -> None:
    kpi = _kpi(db)

    results = [
        toggle_completion_use_case(
            db=db, kpi_id=kpi.id, completion_type="day", key=MON, actor=planner, notifier=notifier
        )
        for _ in range(3)
    ]

    assert [result.completed for result in results] == [True, False, True]
    assert results[0].key == MON
    assert len(_rows(db, "day")) == 1
    assert _rows(db, "day")[0].date_iso == date(2024, 6, 3)
    assert _rows(db, "day")[0].completed_by == planner.id
    assert ChainKpi in db.locked
    assert db.commit_calls == 3
    assert notifier.types == ["kpi_completion"] * 3


def test_toggle_week_without_cascade_leaves_days_alone(db, planner, notifier) -> None:
    kpi = _kpi(db)

    result = toggle_completion_use_case(
        db=db, kpi_id=kpi.id, completion_type="week", key=1, actor=planner, cascade=False, notifier=notifier
    )

    assert result.completed is True
    assert result.key == "1"
    assert len(_rows(db, "week")) == 1
    assert _rows(db, "day") == []
    assert kpi.is_accumulated is False


def test_accumulation_follows_non_zero_day_completions(db, planner, notifier) -> None:
    kpi = _kpi(db)

    toggle_completion_use_case(db=db, kpi_id=kpi.id, completion_type="day", key=MON, actor=planner, notifier=notifier)
    assert kpi.is_accumulated is False

    result = toggle_completion_use_case(
        db=db, kpi_id=kpi.id, completion_type="day", key=TUE, actor=planner, notifier=notifier
    )
    assert result.is_accumulated is True
    assert kpi.accumulated_at is not None

    toggle_completion_use_case(db=db, kpi_id=kpi.id, completion_type="day", key=MON, actor=planner, notifier=notifier)
    assert kpi.is_accumulated is False
    assert kpi.accumulated_at is None


def test_week_cascade_completes_and_reopens_working_days(db, planner, notifier) -> None:
    kpi = _kpi(db)

    toggle_completion_use_case(
        db=db, kpi_id=kpi.id, completion_type="week", key=1, actor=planner, cascade=True, notifier=notifier
    )

    assert sorted(row.date_iso.isoformat() for row in _rows(db, "day")) == [MON, TUE]
    assert kpi.is_accumulated is True

    toggle_completion_use_case(
        db=db, kpi_id=kpi.id, completion_type="week", key=1, actor=planner, cascade=True, notifier=notifier
    )

    assert _rows(db, "day") == []
    assert _rows(db, "week") == []
    assert kpi.is_accumulated is False


def test_day_cascade_completes_week_once_all_working_days_are_done(db, planner, notifier) -> None:
    kpi = _kpi(db)

    toggle_completion_use_case(
        db=db, kpi_id=kpi.id, completion_type="day", key=MON, actor=planner, cascade=True, notifier=notifier
    )
    assert _rows(db, "week") == []

    toggle_completion_use_case(
        db=db, kpi_id=kpi.id, completion_type="day", key=TUE, actor=planner, cascade=True, notifier=notifier
    )
    assert [row.week_index for row in _rows(db, "week")] == [1]

    toggle_completion_use_case(
        db=db, kpi_id=kpi.id, completion_type="day", key=TUE, actor=planner, cascade=True, notifier=notifier
    )
    assert _rows(db, "week") == []


def test_unique_violation_becomes_concurrent_modification(db, planner, notifier) -> None:
    kpi = _kpi(db)
    db.commit_error = IntegrityError("INSERT", {}, Exception("duplicate key value"))

    with pytest.raises(DomainError) as exc:
        toggle_completion_use_case(
            db=db, kpi_id=kpi.id, completion_type="day", key=MON, actor=planner, notifier=notifier
        )

    assert exc.value.code == "CONCURRENT_MODIFICATION"
    assert exc.value.http_status == 409
    assert db.rollback_calls == 1
    assert notifier.payloads == []


@pytest.mark.parametrize(
    ("completion_type", "key"),
    [("week", "abc"), ("week", 0), ("day", "2024-13-01"), ("month", "6")],
)
def test_invalid_completion_key(db, planner, completion_type, key) -> None:
    kpi = _kpi(db)

    with pytest.raises(DomainError) as exc:
        toggle_completion_use_case(db=db, kpi_id=kpi.id, completion_type=completion_type, key=key, actor=planner)

    assert exc.value.code == "INVALID_COMPLETION_KEY"
    assert db.added == []


def test_missing_kpi_is_not_found(db, planner) -> None:
    with pytest.raises(DomainError) as exc:
        toggle_completion_use_case(db=db, kpi_id=uuid4(), completion_type="week", key=1, actor=planner)

    assert exc.value.code == "KPI_NOT_FOUND"


def test_refresh_accumulation_ignores_kpi_without_non_zero_days() -> None:
    kpi = SimpleNamespace(weeks=None, is_accumulated=False, accumulated_at=None)

    assert refresh_accumulation_state(kpi, {MON}) is False
    assert kpi.is_accumulated is False


def test_list_completions_for_kpi(db, planner, notifier) -> None:
    kpi = _kpi(db)
    toggle_completion_use_case(db=db, kpi_id=kpi.id, completion_type="week", key=1, actor=planner, notifier=notifier)
    db.put(KpiCompletion, SimpleNamespace(id=uuid4(), chain_kpi_id=uuid4(), completion_type="week"))

    rows = list_completions_use_case(db=db, kpi_id=kpi.id)

    assert [row.completion_type for row in rows] == ["week"]
