"""Shared fixtures: in-memory SQLite ledger, recording dispatcher, fake booking lookups, API client."""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

import uuid
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.deps import get_booking_lookups, get_db, get_dispatcher
from app.core.permissions import Actor
from app.core.security import create_access_token, get_password_hash
from app.main import app
from app.models import Base
from app.models.admin_user import AdminUser
from app.models.partner_transaction import BookingKind
from app.services import partner_registry
from app.services.booking_lookup import BookingSummary
from app.services.notifications import Notification


class RecordingDispatcher:
    def __init__(self, fail: bool = False):
        self.sent: List[Notification] = []
        self.fail = fail

    def dispatch(self, notification: Notification) -> None:
        if self.fail:
            raise RuntimeError("push gateway unavailable")
        self.sent.append(notification)


class FakeBookingLookup:
    def __init__(self, kind: BookingKind, bookings: Optional[Dict[str, BookingSummary]] = None, error: bool = False):
        self.kind = kind
        self.bookings = bookings or {}
        self.error = error

    def describe(self, booking_reference: str) -> Optional[BookingSummary]:
        if self.error:
            raise ConnectionError("booking service down")
        return self.bookings.get(booking_reference)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def booking_lookups() -> Dict[BookingKind, FakeBookingLookup]:
    return {
        BookingKind.activity: FakeBookingLookup(
            BookingKind.activity,
            {"BK-1": BookingSummary(label="Passeio de barco", customer_name="Ana Souza")},
        ),
        BookingKind.event: FakeBookingLookup(BookingKind.event, error=True),
    }


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id="admin-1", is_platform_admin=True)


@pytest.fixture
def partner(db):
    partner_id = partner_registry.create_account(
        db,
        user_id="user-1",
        processor_account_ref="acct_1",
        country="BR",
        default_fee_percentage=Decimal("15"),
        business_name="Pousada do Sol",
    )
    return partner_registry.get_account(db, partner_id)


@pytest.fixture
def admin_user(db) -> AdminUser:
    admin = AdminUser(
        id=str(uuid.uuid4()),
        username="root",
        hashed_password=get_password_hash("s3cret-pass"),
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture
def client(session_factory, dispatcher, booking_lookups):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_booking_lookups] = lambda: booking_lookups
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(admin_user) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=admin_user.id)}"}
