from typing import Dict, Generator

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.models.partner_transaction import BookingKind
from app.services.booking_lookup import BookingLookup, default_booking_lookups
from app.services.notifications import InAppNotificationDispatcher, NotificationDispatcher


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_dispatcher() -> NotificationDispatcher:
    # Own session per dispatch so a failed notification never touches the ledger session
    return InAppNotificationDispatcher(SessionLocal)


def get_booking_lookups() -> Dict[BookingKind, BookingLookup]:
    return default_booking_lookups()
