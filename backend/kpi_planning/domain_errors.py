"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class StorageError(Exception):
    """Infrastructure failure while persisting; the caller may retry.

    Kept outside the DomainError hierarchy so callers can tell
    "your input was wrong" apart from "try again".
    """

    message: str = "Storage temporarily unavailable"
    details: dict[str, Any] | None = None
    code: str = field(default="STORAGE_ERROR", init=False)
    http_status: int = field(default=503, init=False)

    def __str__(self) -> str:
        return self.message


def not_found(entity: str, entity_id: Any) -> DomainError:
    """Build the NotFound-family error for a missing chain/kpi/step/assignment."""
    return DomainError(
        code=f"{entity.upper()}_NOT_FOUND",
        http_status=404,
        message=f"{entity.replace('_', ' ').capitalize()} not found",
        details={"entity": entity, "id": str(entity_id)},
    )
