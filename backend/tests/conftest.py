from __future__ import annotations

import operator
from uuid import uuid4

import pytest

from kpi_planning.auth import Actor


class _QueryStub:
    """Filters stored rows by ``Model.column == value`` criteria."""

    def __init__(self, session: "InMemorySession", model):
        self._session = session
        self._model = model
        self._criteria: list[tuple[str, object]] = []

    def filter(self, *criteria):
        for criterion in criteria:
            if criterion.operator is not operator.eq:
                raise AssertionError(f"Unsupported filter operator: {criterion.operator}")
            self._criteria.append((criterion.left.key, criterion.right.value))
        return self

    def with_for_update(self):
        self._session.locked.append(self._model)
        return self

    def order_by(self, *_args):
        return self

    def _matches(self, row) -> bool:
        return all(getattr(row, key, None) == value for key, value in self._criteria)

    def all(self):
        return [row for row in self._session.rows_for(self._model) if self._matches(row)]

    def first(self):
        rows = self.all()
        return rows[0] if rows else None

    def delete(self, synchronize_session=None):
        matched = self.all()
        for row in matched:
            self._session.rows_for(self._model).remove(row)
        self._session.bulk_deleted.extend(matched)
        return len(matched)


class InMemorySession:
    def __init__(self):
        self._rows: dict[type, list] = {}
        self.added = []
        self.deleted = []
        self.bulk_deleted = []
        self.locked = []
        self.commit_calls = 0
        self.rollback_calls = 0
        self.commit_error: Exception | None = None
        self.closed = False

    def rows_for(self, model) -> list:
        return self._rows.setdefault(model, [])

    def put(self, model, *rows):
        self.rows_for(model).extend(rows)
        return rows[0] if len(rows) == 1 else rows

    def query(self, model):
        return _QueryStub(self, model)

    def add(self, obj):
        if getattr(obj, "id", None) is None:
            obj.id = uuid4()
        self.added.append(obj)
        self.rows_for(type(obj)).append(obj)

    def delete(self, obj):
        for rows in self._rows.values():
            if obj in rows:
                rows.remove(obj)
        self.deleted.append(obj)

    def commit(self):
        if self.commit_error is not None:
            raise self.commit_error
        self.commit_calls += 1

    def rollback(self):
        self.rollback_calls += 1

    def refresh(self, _obj):
        return None

    def close(self):
        self.closed = True


class NotificationRecorder:
    def __init__(self):
        self.payloads = []

    def __call__(self, payload):
        self.payloads.append(payload)

    @property
    def types(self) -> list[str]:
        return [payload.type for payload in self.payloads]


@pytest.fixture
def db() -> InMemorySession:
    return InMemorySession()


@pytest.fixture
def notifier() -> NotificationRecorder:
    return NotificationRecorder()


@pytest.fixture
def planner() -> Actor:
    return Actor(id=uuid4(), role="admin", name="Planner")


@pytest.fixture
def worker() -> Actor:
    return Actor(id=uuid4(), role="user", name="Worker")
