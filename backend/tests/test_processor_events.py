"""Tests for processor webhook event routing."""
import pytest

from app.core.exceptions import ValidationError
from app.models.partner import OnboardingStatus
from app.models.partner_transaction import PartnerTransaction, TransactionStatus
from app.schemas.webhook import ProcessorEvent
from app.services import ledger, partner_registry, processor_events


def _event(event_type, obj, account=None, event_id="evt_1") -> ProcessorEvent:
    return ProcessorEvent.model_validate(
        {"id": event_id, "type": event_type, "account": account, "data": {"object": obj}}
    )


def _capture(db, dispatcher, booking_lookups, payment="pay_1", amount=10000):
    event = _event(
        "payment.captured",
        {
            "id": payment,
            "amount": amount,
            "currency": "brl",
            "metadata": {"bookingReference": "BK-1", "bookingKind": "activity"},
        },
        account="acct_1",
    )
    return processor_events.handle_event(db, event, dispatcher, booking_lookups)


class TestSignature:
    def test_round_trip(self) -> None:
        body = b'{"id":"evt_1"}'
        signature = processor_events.compute_signature("whsec", "1700000000", body)
        assert processor_events.verify_signature("whsec", "1700000000", signature, body)

    def test_tampered_body_rejected(self) -> None:
        signature = processor_events.compute_signature("whsec", "1700000000", b"{}")
        assert not processor_events.verify_signature("whsec", "1700000000", signature, b'{"x":1}')

    def test_missing_headers_rejected(self) -> None:
        assert not processor_events.verify_signature("whsec", None, "abc", b"{}")
        assert not processor_events.verify_signature("whsec", "1", None, b"{}")


class TestAccountEvents:
    def test_account_updated_completes_onboarding(self, db, partner) -> None:
        event = _event(
            "account.updated",
            {
                "id": "acct_1",
                "details_submitted": True,
                "charges_enabled": True,
                "payouts_enabled": True,
                "capabilities": {"card_payments": "active", "transfers": "active"},
            },
        )
        assert processor_events.handle_event(db, event) == "onboarding_completed"
        account = partner_registry.get_account(db, partner.id)
        assert account.is_active is True
        assert account.can_accept_cards is True

    def test_update_without_capabilities_keeps_flags(self, db, partner) -> None:
        partner_registry.update_onboarding_status(
            db, "acct_1", "completed", partner_registry.Capabilities(can_accept_cards=True, can_receive_transfers=True)
        )
        event = _event("account.updated", {"id": "acct_1", "details_submitted": True})
        assert processor_events.handle_event(db, event) == "onboarding_in_progress"
        account = partner_registry.get_account(db, partner.id)
        assert account.can_accept_cards is True
        assert account.can_receive_transfers is True

    def test_deauthorized_rejects(self, db, partner) -> None:
        event = _event("account.application.deauthorized", {}, account="acct_1")
        assert processor_events.handle_event(db, event) == "onboarding_rejected"
        assert partner_registry.get_account(db, partner.id).onboarding_status == OnboardingStatus.rejected


class TestPaymentEvents:
    def test_capture_records_and_notifies(self, db, partner, dispatcher, booking_lookups) -> None:
        assert _capture(db, dispatcher, booking_lookups) == "transaction_recorded"
        txn = ledger.get_by_payment_reference(db, "pay_1")
        assert txn.partner_amount == 8500
        assert txn.currency == "BRL"
        assert txn.metadata_["processorEventId"] == "evt_1"
        assert len(dispatcher.sent) == 1

    def test_capture_redelivery_is_idempotent(self, db, partner, dispatcher, booking_lookups) -> None:
        _capture(db, dispatcher, booking_lookups)
        _capture(db, dispatcher, booking_lookups)
        assert db.query(PartnerTransaction).count() == 1
        assert len(dispatcher.sent) == 1

    def test_capture_for_unknown_account_ignored(self, db, dispatcher, booking_lookups) -> None:
        assert _capture(db, dispatcher, booking_lookups) == "ignored_unknown_account"
        assert db.query(PartnerTransaction).count() == 0

    def test_capture_missing_booking_metadata(self, db, partner) -> None:
        event = _event("payment.captured", {"id": "pay_1", "amount": 100, "currency": "brl"}, account="acct_1")
        with pytest.raises(ValidationError, match="bookingReference"):
            processor_events.handle_event(db, event)

    @pytest.mark.parametrize("amount", ["ten", 10.5, True, {"value": 1}])
    def test_capture_with_non_integer_amount(self, db, partner, amount) -> None:
        event = _event(
            "payment.captured",
            {
                "id": "pay_1",
                "amount": amount,
                "currency": "brl",
                "metadata": {"bookingReference": "BK-1", "bookingKind": "activity"},
            },
            account="acct_1",
        )
        with pytest.raises(ValidationError, match="amount"):
            processor_events.handle_event(db, event)
        assert db.query(PartnerTransaction).count() == 0

    def test_refund_with_non_integer_amount(self, db, partner, dispatcher, booking_lookups) -> None:
        _capture(db, dispatcher, booking_lookups)
        event = _event("charge.refunded", {"payment_reference": "pay_1", "refund": {"id": "re_1", "amount": "5,000"}})
        with pytest.raises(ValidationError, match="amount"):
            processor_events.handle_event(db, event, dispatcher)
        assert ledger.get_by_payment_reference(db, "pay_1").status == TransactionStatus.pending

    def test_transfer_completes(self, db, partner, dispatcher, booking_lookups) -> None:
        _capture(db, dispatcher, booking_lookups)
        event = _event("transfer.completed", {"id": "tr_1", "payment_reference": "pay_1"})
        assert processor_events.handle_event(db, event) == "transaction_completed"
        txn = ledger.get_by_payment_reference(db, "pay_1")
        assert txn.status == TransactionStatus.completed
        assert txn.processor_transfer_reference == "tr_1"

    def test_payment_failed(self, db, partner, dispatcher, booking_lookups) -> None:
        _capture(db, dispatcher, booking_lookups)
        event = _event("payment.failed", {"id": "pay_1", "last_payment_error": {"message": "insufficient funds"}})
        assert processor_events.handle_event(db, event, dispatcher) == "transaction_failed"
        txn = ledger.get_by_payment_reference(db, "pay_1")
        assert txn.status == TransactionStatus.failed
        assert txn.metadata_["error"] == "insufficient funds"

    def test_payment_failed_untracked(self, db) -> None:
        event = _event("payment.failed", {"id": "pay_x"})
        assert processor_events.handle_event(db, event) == "ignored_untracked_payment"

    def test_refund(self, db, partner, dispatcher, booking_lookups) -> None:
        _capture(db, dispatcher, booking_lookups)
        event = _event(
            "charge.refunded",
            {"payment_reference": "pay_1", "refund": {"id": "re_1", "amount": 5000, "reason": "duplicate"}},
        )
        assert processor_events.handle_event(db, event, dispatcher) == "transaction_refunded"
        txn = ledger.get_by_payment_reference(db, "pay_1")
        assert txn.metadata_["partnerRefund"] == 4250

    def test_refund_untracked(self, db) -> None:
        event = _event("charge.refunded", {"payment_reference": "pay_x", "refund": {"id": "re_1", "amount": 10}})
        assert processor_events.handle_event(db, event) == "ignored_untracked_payment"

    def test_unknown_event_type(self, db) -> None:
        assert processor_events.handle_event(db, _event("customer.created", {})) == "ignored"
