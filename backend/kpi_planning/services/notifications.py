"""Best-effort notification side-channel.

Use-cases call ``notify`` only after their transaction has committed. A
notification that cannot be built or dispatched is logged and dropped; it
never propagates into the operation that triggered it.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from ..celery_app import deliver_notification, store_notification
from ..config import settings

logger = logging.getLogger(__name__)

RECIPIENT_ROLES = {"admin", "leader", "user"}


@dataclass(frozen=True)
class Audience:
    """Role broadcast (admin/leader) or a single user."""

    role: str
    user_id: UUID | None = None

    @classmethod
    def admins(cls) -> Audience:
        return cls(role="admin")

    @classmethod
    def leaders(cls) -> Audience:
        return cls(role="leader")

    @classmethod
    def user(cls, user_id: UUID) -> Audience:
        return cls(role="user", user_id=user_id)


@dataclass(frozen=True)
class EntityRef:
    entity_type: str
    entity_id: Any


@dataclass(frozen=True)
class NotificationPayload:
    type: str
    title: str
    message: str
    metadata: dict[str, Any]
    recipient_role: str
    recipient_user_id: str | None
    entity_type: str | None
    entity_id: str | None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


Dispatch = Callable[[NotificationPayload], None]


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def build_payload(
    audience: Audience,
    notification_type: str,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
    entity_ref: EntityRef | None = None,
) -> NotificationPayload:
    if audience.role not in RECIPIENT_ROLES:
        raise ValueError(f"Unknown notification audience: {audience.role}")
    if audience.role == "user" and audience.user_id is None:
        raise ValueError("user_id is required to notify a user")

    return NotificationPayload(
        type=notification_type,
        title=title,
        message=message,
        metadata=_json_safe(metadata or {}),
        recipient_role=audience.role,
        recipient_user_id=str(audience.user_id) if audience.user_id else None,
        entity_type=entity_ref.entity_type if entity_ref else None,
        entity_id=str(entity_ref.entity_id) if entity_ref else None,
    )


def dispatch_notification(payload: NotificationPayload) -> None:
    """Enqueue delivery on the worker, or store in-process when async is disabled."""
    if settings.NOTIFICATIONS_ASYNC:
        deliver_notification.delay(payload.as_dict())
    else:
        store_notification(payload.as_dict())


def notify(
    audience: Audience,
    notification_type: str,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
    entity_ref: EntityRef | None = None,
    *,
    dispatch: Dispatch | None = None,
) -> bool:
    """Fire-and-forget; returns whether the notification was handed off."""
    if not settings.NOTIFICATIONS_ENABLED:
        return False
    try:
        payload = build_payload(audience, notification_type, title, message, metadata, entity_ref)
        (dispatch or dispatch_notification)(payload)
    except Exception:
        logger.warning("Dropped %s notification for %s", notification_type, audience.role, exc_info=True)
        return False
    return True
