"""Booking domain lookup: display label and customer name for a booking.

One lookup per BookingKind, each knowing its own endpoint and title field.
Lookups return None when the booking does not exist; transport errors raise
and are absorbed by the caller (notify_new_transaction falls back to
generic labels).
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from app.core.config import settings
from app.models.partner_transaction import BookingKind

logger = logging.getLogger(__name__)

FALLBACK_BOOKING_LABEL = "Reserva"
FALLBACK_CUSTOMER_NAME = "Cliente"


@dataclass(frozen=True)
class BookingSummary:
    label: str
    customer_name: Optional[str] = None


class BookingLookup(Protocol):
    kind: BookingKind

    def describe(self, booking_reference: str) -> Optional[BookingSummary]:
        ...


class HttpBookingLookup:
    """GET {BOOKING_SERVICE_URL}/{path}/{reference} and read the title from `label_field`."""

    kind: BookingKind
    path: str
    label_field: str

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.BOOKING_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.BOOKING_LOOKUP_TIMEOUT_SECONDS

    def describe(self, booking_reference: str) -> Optional[BookingSummary]:
        url = f"{self.base_url}/{self.path}/{booking_reference}"
        with httpx.Client(timeout=self.timeout) as client:
            response = client.get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return self.parse(response.json())

    def parse(self, payload: Dict[str, Any]) -> Optional[BookingSummary]:
        if not payload:
            return None
        label = payload.get(self.label_field)
        if not label:
            return None
        customer = payload.get("customerInfo") or {}
        return BookingSummary(label=label, customer_name=customer.get("name") or payload.get("customerName"))


class ActivityBookingLookup(HttpBookingLookup):
    kind = BookingKind.activity
    path = "activities/bookings"
    label_field = "activityTitle"


class EventBookingLookup(HttpBookingLookup):
    kind = BookingKind.event
    path = "events/bookings"
    label_field = "eventTitle"


class VehicleBookingLookup(HttpBookingLookup):
    kind = BookingKind.vehicle
    path = "vehicles/bookings"
    label_field = "vehicleName"


class AccommodationBookingLookup(HttpBookingLookup):
    kind = BookingKind.accommodation
    path = "accommodations/bookings"
    label_field = "accommodationName"


class PackageBookingLookup(HttpBookingLookup):
    kind = BookingKind.package
    path = "packages/bookings"
    label_field = "packageName"


def default_booking_lookups() -> Dict[BookingKind, BookingLookup]:
    lookups = [
        ActivityBookingLookup(),
        EventBookingLookup(),
        VehicleBookingLookup(),
        AccommodationBookingLookup(),
        PackageBookingLookup(),
    ]
    return {lookup.kind: lookup for lookup in lookups}


def resolve_booking_summary(
    lookups: Optional[Dict[BookingKind, BookingLookup]],
    kind: BookingKind,
    booking_reference: str,
) -> BookingSummary:
    """Best-effort lookup; any failure or empty result yields the generic labels."""
    lookup = (lookups or {}).get(kind)
    summary = None
    if lookup is None:
        logger.warning("No booking lookup registered for %s", kind.value)
    else:
        try:
            summary = lookup.describe(booking_reference)
        except Exception as e:
            logger.warning("Booking lookup failed for %s %s: %s", kind.value, booking_reference, e)
    if summary is None:
        return BookingSummary(label=FALLBACK_BOOKING_LABEL, customer_name=FALLBACK_CUSTOMER_NAME)
    return BookingSummary(
        label=summary.label or FALLBACK_BOOKING_LABEL,
        customer_name=summary.customer_name or FALLBACK_CUSTOMER_NAME,
    )
