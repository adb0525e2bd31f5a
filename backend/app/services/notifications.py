"""Notification dispatch boundary.

The ledger only guarantees that it attempts a dispatch after each committed
state transition. Delivery (push, email, in-app) belongs to the dispatcher.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from app.models.notification import Notification as NotificationRow

logger = logging.getLogger(__name__)

NEW_TRANSACTION = "new_transaction"
TRANSACTION_FAILED = "transaction_failed"
TRANSACTION_REFUNDED = "transaction_refunded"


@dataclass(frozen=True)
class Notification:
    recipient_user_id: str
    kind: str
    title: str
    message: str
    related_entity: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def dispatch(self, notification: Notification) -> None:
        ...


class InAppNotificationDispatcher:
    """Stores notifications for the in-app inbox using its own session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def dispatch(self, notification: Notification) -> None:
        db = self._session_factory()
        try:
            db.add(
                NotificationRow(
                    id=str(uuid.uuid4()),
                    recipient_user_id=notification.recipient_user_id,
                    kind=notification.kind,
                    title=notification.title,
                    message=notification.message,
                    related_entity=notification.related_entity,
                    data=notification.data,
                )
            )
            db.commit()
        finally:
            db.close()


def dispatch_safely(dispatcher: Optional[NotificationDispatcher], notification: Notification) -> bool:
    """
    Fire-and-forget dispatch. Returns True if the dispatcher accepted the notification.
    Never raises: the financial state is already committed when this runs.
    """
    if dispatcher is None:
        logger.warning("No notification dispatcher configured; dropping %s for %s", notification.kind, notification.recipient_user_id)
        return False
    try:
        dispatcher.dispatch(notification)
        return True
    except Exception:
        logger.exception("Failed to dispatch %s notification to %s", notification.kind, notification.recipient_user_id)
        return False


def format_minor_units(amount: int, currency: str) -> str:
    """Human-readable amount, e.g. 123456 BRL -> 'BRL 1,234.56'."""
    sign = "-" if amount < 0 else ""
    major, minor = divmod(abs(amount), 100)
    return f"{sign}{currency.upper()} {major:,}.{minor:02d}"
