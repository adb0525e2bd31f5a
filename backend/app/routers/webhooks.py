import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.deps import get_booking_lookups, get_db, get_dispatcher
from app.models.partner_transaction import BookingKind
from app.schemas.webhook import ProcessorEvent, ProcessorEventAck
from app.services import processor_events
from app.services.booking_lookup import BookingLookup
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/processor", response_model=ProcessorEventAck)
async def processor_webhook(
    request: Request,
    x_processor_timestamp: Optional[str] = Header(None),
    x_processor_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    booking_lookups: Dict[BookingKind, BookingLookup] = Depends(get_booking_lookups),
):
    """
    Payment processor callbacks (account status, capture, failure, transfer, refund).
    Events are at-least-once; every handler is idempotent on the processor's references.
    """
    body = await request.body()
    if settings.PROCESSOR_WEBHOOK_SECRET and not processor_events.verify_signature(
        settings.PROCESSOR_WEBHOOK_SECRET, x_processor_timestamp, x_processor_signature, body
    ):
        logger.warning("Rejected processor webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")
    try:
        event = ProcessorEvent.model_validate_json(body)
    except PydanticValidationError:
        raise HTTPException(status_code=400, detail="Malformed event payload")

    # Session work and booking lookups are blocking
    action = await run_in_threadpool(processor_events.handle_event, db, event, dispatcher, booking_lookups)
    return ProcessorEventAck(action=action)
