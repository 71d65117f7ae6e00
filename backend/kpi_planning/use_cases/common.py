"""Shared loading/commit helpers for KPI use-cases."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain_errors import DomainError, StorageError, not_found

logger = logging.getLogger(__name__)


def require_entity(db: Session, model: type, entity_id: Any, *, entity: str, lock: bool = False):
    """Load ``model`` by id (row-locked when ``lock``) or raise the NotFound error."""
    query = db.query(model).filter(model.id == entity_id)
    if lock:
        query = query.with_for_update()
    obj = query.first()
    if obj is None:
        raise not_found(entity, entity_id)
    return obj


def commit_or_raise(db: Session, *, operation: str) -> None:
    """Commit, translating uniqueness races and infrastructure failures."""
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Conflicting write during %s: %s", operation, exc.orig)
        raise DomainError(
            code="CONCURRENT_MODIFICATION",
            http_status=409,
            message=f"Concurrent modification during {operation}, please retry",
            details={"operation": operation},
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to commit %s", operation)
        raise StorageError(details={"operation": operation}) from exc
