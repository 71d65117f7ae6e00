"""
Celery worker delivering KPI notifications.

Delivery is at-most-once: tasks are never retried, a failed write is logged
and the notification is lost.
"""
from celery import Celery
from uuid import UUID
import logging
from .config import settings
from .database import SessionLocal
from .models import Notification

logger = logging.getLogger(__name__)

celery_app = Celery(
    "kpi_planning",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_acks_late=False,
    task_ignore_result=True,
)


def store_notification(payload: dict) -> None:
    """Write one notification row in its own session."""
    db = SessionLocal()

    try:
        recipient_user_id = payload.get("recipient_user_id")
        db.add(
            Notification(
                type=payload["type"],
                title=payload["title"],
                message=payload["message"],
                meta_data=payload.get("metadata") or {},
                status='unread',
                recipient_role=payload["recipient_role"],
                recipient_user_id=UUID(recipient_user_id) if recipient_user_id else None,
                entity_type=payload.get("entity_type"),
                entity_id=payload.get("entity_id"),
            )
        )
        db.commit()
        logger.info(
            "Stored %s notification for %s",
            payload["type"],
            recipient_user_id or payload["recipient_role"],
        )

    except Exception:
        db.rollback()
        logger.error("Error storing %s notification", payload.get("type"), exc_info=True)
        raise

    finally:
        db.close()


@celery_app.task(name="deliver_notification")
def deliver_notification(payload: dict) -> None:
    """Persist a notification produced by a committed KPI transition."""
    store_notification(payload)
