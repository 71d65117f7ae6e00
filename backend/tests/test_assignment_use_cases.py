from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from kpi_planning.domain_errors import DomainError
from kpi_planning.models import ChainKpi, ChainKpiAssignment, ProductionChainStep
from kpi_planning.use_cases.assignments import (
    AssignmentSlice,
    accept_assignment_use_case,
    assign_week_use_case,
    hand_over_assignment_use_case,
    list_week_assignments_use_case,
    submit_day_result_use_case,
)

MON, TUE = "2024-06-03", "2024-06-04"


def _kpi(db):
    chain_id = uuid4()
    kpi = SimpleNamespace(
        id=uuid4(),
        chain_id=chain_id,
        target_value=5,
        unit_label="videos",
        weeks=[
            {
                "week_index": 1,
                "start_date": MON,
                "end_date": TUE,
                "target_value": 5,
                "day_breakdown": [
                    {"date": MON, "target_value": 3, "is_working_day": True},
                    {"date": TUE, "target_value": 2, "is_working_day": True},
                ],
            }
        ],
    )
    db.put(ChainKpi, kpi)
    steps = [SimpleNamespace(id=uuid4(), chain_id=chain_id) for _ in range(2)]
    db.put(ProductionChainStep, *steps)
    return kpi, steps


def _assignment(db, *, kpi, step, assigned_to, day_assignments, day_results=None, accepted=False):
    row = SimpleNamespace(
        id=uuid4(),
        chain_kpi_id=kpi.id,
        week_index=1,
        step_id=step.id,
        assigned_to=assigned_to,
        day_assignments=day_assignments,
        day_results=day_results or {},
        day_titles={},
        accepted=accepted,
        accepted_by=assigned_to if accepted else None,
        accepted_at=None,
        handed_over=False,
        handed_over_by=None,
        handed_over_at=None,
    )
    db.put(ChainKpiAssignment, row)
    return row


def test_assign_week_creates_slices_and_notifies_workers(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)
    first_worker, second_worker = uuid4(), uuid4()

    rows = assign_week_use_case(
        db=db,
        kpi_id=kpi.id,
        week_index=1,
        slices=[
            AssignmentSlice(step_id=steps[0].id, assigned_to=first_worker, day_assignments={MON: 2}),
            AssignmentSlice(
                step_id=steps[1].id,
                assigned_to=second_worker,
                day_assignments={MON: 1, TUE: 2},
                day_titles={TUE: ["Teaser"]},
            ),
        ],
        actor=planner,
        notifier=notifier,
    )

    assert [row.assigned_to for row in rows] == [first_worker, second_worker]
    assert rows[0].day_assignments == {MON: 2}
    assert rows[1].day_titles == {TUE: ["Teaser", None]}
    assert rows[0].accepted is False
    assert db.commit_calls == 1
    assert ChainKpiAssignment in db.locked
    assert notifier.types == ["kpi_assignment", "kpi_assignment", "chain_assignment"]
    assert {payload.recipient_user_id for payload in notifier.payloads[:2]} == {str(first_worker), str(second_worker)}
    summary = notifier.payloads[-1]
    assert summary.recipient_role == "admin"
    assert summary.metadata["assignment_ids"] == [str(row.id) for row in rows]
    assert summary.entity_type == "chain_kpi"


def test_assign_week_rejects_slice_above_day_target(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)

    with pytest.raises(DomainError) as exc:
        assign_week_use_case(
            db=db,
            kpi_id=kpi.id,
            week_index=1,
            slices=[AssignmentSlice(step_id=steps[0].id, assigned_to=uuid4(), day_assignments={TUE: 3})],
            actor=planner,
            notifier=notifier,
        )

    assert exc.value.code == "ASSIGNMENT_EXCEEDS_DAY_TARGET"
    assert exc.value.details == {"week_index": 1, "date": TUE, "assigned": 3, "day_target": 2}
    assert db.commit_calls == 0
    assert notifier.payloads == []


def test_each_step_may_take_the_full_day_target(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)
    _assignment(db, kpi=kpi, step=steps[1], assigned_to=uuid4(), day_assignments={MON: 3})

    rows = assign_week_use_case(
        db=db,
        kpi_id=kpi.id,
        week_index=1,
        slices=[AssignmentSlice(step_id=steps[0].id, assigned_to=uuid4(), day_assignments={MON: 3, TUE: 2})],
        actor=planner,
        notifier=notifier,
    )

    assert rows[0].day_assignments == {MON: 3, TUE: 2}
    assert db.commit_calls == 1


def test_assign_week_rejects_duplicate_steps(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)
    slice_ = AssignmentSlice(step_id=steps[0].id, assigned_to=uuid4(), day_assignments={MON: 1})

    with pytest.raises(DomainError) as exc:
        assign_week_use_case(
            db=db, kpi_id=kpi.id, week_index=1, slices=[slice_, slice_], actor=planner, notifier=notifier
        )

    assert exc.value.code == "DUPLICATE_STEP_ASSIGNMENT"


def test_assign_week_requires_step_of_kpi_chain(db, planner, notifier) -> None:
    kpi, _ = _kpi(db)
    foreign_step = db.put(ProductionChainStep, SimpleNamespace(id=uuid4(), chain_id=uuid4()))

    with pytest.raises(DomainError) as exc:
        assign_week_use_case(
            db=db,
            kpi_id=kpi.id,
            week_index=1,
            slices=[AssignmentSlice(step_id=foreign_step.id, assigned_to=uuid4(), day_assignments={MON: 1})],
            actor=planner,
            notifier=notifier,
        )

    assert exc.value.code == "STEP_NOT_FOUND"
    assert exc.value.http_status == 404


def test_assign_week_requires_existing_week(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)

    with pytest.raises(DomainError) as exc:
        assign_week_use_case(
            db=db,
            kpi_id=kpi.id,
            week_index=4,
            slices=[AssignmentSlice(step_id=steps[0].id, assigned_to=uuid4(), day_assignments={MON: 1})],
            actor=planner,
            notifier=notifier,
        )

    assert exc.value.code == "KPI_WEEK_NOT_FOUND"


def test_reassign_shrinks_and_grows_slots_without_moving_results(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)
    worker_id = uuid4()
    a, b, c = ({"link": f"https://example.com/{n}"} for n in "abc")
    row = _assignment(
        db,
        kpi=kpi,
        step=steps[0],
        assigned_to=worker_id,
        day_assignments={MON: 3, TUE: 1},
        day_results={MON: [a, b, c], TUE: [None]},
    )

    assign_week_use_case(
        db=db,
        kpi_id=kpi.id,
        week_index=1,
        slices=[AssignmentSlice(step_id=steps[0].id, assigned_to=worker_id, day_assignments={MON: 1})],
        actor=planner,
        notifier=notifier,
    )

    assert row.day_assignments == {MON: 1}
    assert row.day_results == {MON: [a]}
    assert notifier.types == ["chain_assignment"]

    assign_week_use_case(
        db=db,
        kpi_id=kpi.id,
        week_index=1,
        slices=[AssignmentSlice(step_id=steps[0].id, assigned_to=worker_id, day_assignments={MON: 3})],
        actor=planner,
        notifier=notifier,
    )

    assert row.day_results == {MON: [a, None, None]}
    assert db.commit_calls == 2


def test_reslicing_accepted_assignment_keeps_results_and_acceptance(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)
    worker_id = uuid4()
    a, b = ({"link": f"https://example.com/{n}"} for n in "ab")
    row = _assignment(
        db,
        kpi=kpi,
        step=steps[0],
        assigned_to=worker_id,
        day_assignments={MON: 2},
        day_results={MON: [a, b]},
        accepted=True,
    )

    assign_week_use_case(
        db=db,
        kpi_id=kpi.id,
        week_index=1,
        slices=[AssignmentSlice(step_id=steps[0].id, assigned_to=worker_id, day_assignments={MON: 3})],
        actor=planner,
        notifier=notifier,
    )

    assert row.day_results == {MON: [a, b, None]}
    assert row.accepted is True
    assert row.accepted_by == worker_id

    assign_week_use_case(
        db=db,
        kpi_id=kpi.id,
        week_index=1,
        slices=[AssignmentSlice(step_id=steps[0].id, assigned_to=worker_id, day_assignments={MON: 1, TUE: 1})],
        actor=planner,
        notifier=notifier,
    )

    assert row.day_assignments == {MON: 1, TUE: 1}
    assert row.day_results == {MON: [a]}
    assert row.accepted is True
    assert notifier.types == ["chain_assignment", "chain_assignment"]


def test_accepted_assignment_cannot_move_to_another_worker(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)
    worker_id = uuid4()
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=worker_id, day_assignments={MON: 1}, accepted=True)

    with pytest.raises(DomainError) as exc:
        assign_week_use_case(
            db=db,
            kpi_id=kpi.id,
            week_index=1,
            slices=[AssignmentSlice(step_id=steps[0].id, assigned_to=uuid4(), day_assignments={MON: 1})],
            actor=planner,
            notifier=notifier,
        )

    assert exc.value.code == "ASSIGNMENT_ALREADY_ACCEPTED"
    assert exc.value.http_status == 409
    assert row.assigned_to == worker_id
    assert row.accepted is True


def test_accept_is_restricted_to_assignee(db, worker, notifier) -> None:
    kpi, steps = _kpi(db)
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=uuid4(), day_assignments={MON: 1})

    with pytest.raises(DomainError) as exc:
        accept_assignment_use_case(db=db, assignment_id=row.id, actor=worker, notifier=notifier)

    assert exc.value.code == "NOT_ASSIGNEE"
    assert exc.value.http_status == 403
    assert row.accepted is False


def test_accept_is_idempotent(db, worker, notifier) -> None:
    kpi, steps = _kpi(db)
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=worker.id, day_assignments={MON: 1})

    first = accept_assignment_use_case(db=db, assignment_id=row.id, actor=worker, notifier=notifier)
    stamped_at = row.accepted_at
    second = accept_assignment_use_case(db=db, assignment_id=row.id, actor=worker, notifier=notifier)

    assert first is second is row
    assert row.accepted is True
    assert row.accepted_by == worker.id
    assert row.accepted_at == stamped_at
    assert db.commit_calls == 1
    assert notifier.types == ["kpi_accept"]
    assert notifier.payloads[0].recipient_role == "leader"


def test_hand_over_is_idempotent_and_independent_of_acceptance(db, planner, notifier) -> None:
    kpi, steps = _kpi(db)
    worker_id = uuid4()
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=worker_id, day_assignments={MON: 1})

    hand_over_assignment_use_case(db=db, assignment_id=row.id, actor=planner, notifier=notifier)
    hand_over_assignment_use_case(db=db, assignment_id=row.id, actor=planner, notifier=notifier)

    assert row.handed_over is True
    assert row.handed_over_by == planner.id
    assert row.accepted is False
    assert db.commit_calls == 1
    assert notifier.payloads[0].recipient_user_id == str(worker_id)


def test_submit_result_requires_acceptance_first(db, worker, notifier) -> None:
    kpi, steps = _kpi(db)
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=worker.id, day_assignments={MON: 2})

    with pytest.raises(DomainError) as exc:
        submit_day_result_use_case(
            db=db,
            assignment_id=row.id,
            date_value=MON,
            slot_index=0,
            link="https://example.com/v1",
            actor=worker,
            notifier=notifier,
        )

    assert exc.value.code == "NOT_ACCEPTED"
    assert row.day_results == {}
    assert db.commit_calls == 0

    accept_assignment_use_case(db=db, assignment_id=row.id, actor=worker, notifier=notifier)
    submit_day_result_use_case(
        db=db,
        assignment_id=row.id,
        date_value=MON,
        slot_index=1,
        link=" https://example.com/v1 ",
        actor=worker,
        notifier=notifier,
    )

    slots = row.day_results[MON]
    assert len(slots) == 2
    assert slots[0] is None
    assert slots[1]["link"] == "https://example.com/v1"
    assert slots[1]["saved_by"] == str(worker.id)
    assert notifier.types == ["kpi_accept", "kpi_result"]


def test_unaccepted_assignment_rejects_results_from_anyone(db, worker, notifier) -> None:
    kpi, steps = _kpi(db)
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=uuid4(), day_assignments={MON: 1})

    with pytest.raises(DomainError) as exc:
        submit_day_result_use_case(
            db=db,
            assignment_id=row.id,
            date_value=MON,
            slot_index=0,
            link="https://example.com/v1",
            actor=worker,
            notifier=notifier,
        )

    assert exc.value.code == "NOT_ACCEPTED"
    assert exc.value.http_status == 409
    assert row.day_results == {}


def test_submit_result_rejects_slot_outside_assigned_count(db, worker, notifier) -> None:
    kpi, steps = _kpi(db)
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=worker.id, day_assignments={MON: 2}, accepted=True)

    with pytest.raises(DomainError) as exc:
        submit_day_result_use_case(
            db=db,
            assignment_id=row.id,
            date_value=MON,
            slot_index=2,
            link="https://example.com/v3",
            actor=worker,
            notifier=notifier,
        )

    assert exc.value.code == "INVALID_SLOT"
    assert exc.value.details == {"date": MON, "slot_index": 2, "slot_count": 2}
    assert row.day_results == {}


def test_submit_result_rejects_blank_link(db, worker, notifier) -> None:
    kpi, steps = _kpi(db)
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=worker.id, day_assignments={MON: 1}, accepted=True)

    with pytest.raises(DomainError) as exc:
        submit_day_result_use_case(
            db=db, assignment_id=row.id, date_value=MON, slot_index=0, link="   ", actor=worker, notifier=notifier
        )

    assert exc.value.code == "INVALID_RESULT_LINK"


def test_same_slot_writes_are_last_write_wins(db, worker, notifier) -> None:
    kpi, steps = _kpi(db)
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=worker.id, day_assignments={MON: 1}, accepted=True)

    for link in ("https://example.com/first", "https://example.com/second"):
        submit_day_result_use_case(
            db=db, assignment_id=row.id, date_value=MON, slot_index=0, link=link, actor=worker, notifier=notifier
        )

    assert [slot["link"] for slot in row.day_results[MON]] == ["https://example.com/second"]


def test_list_week_assignments_filters_by_week(db) -> None:
    kpi, steps = _kpi(db)
    row = _assignment(db, kpi=kpi, step=steps[0], assigned_to=uuid4(), day_assignments={MON: 1})
    other = _assignment(db, kpi=kpi, step=steps[1], assigned_to=uuid4(), day_assignments={TUE: 1})
    other.week_index = 2

    assert list_week_assignments_use_case(db=db, kpi_id=kpi.id, week_index=1) == [row]
    assert len(list_week_assignments_use_case(db=db, kpi_id=kpi.id)) == 2
