"""HTTP surface tests through FastAPI's TestClient."""
import asyncio
import json
from decimal import Decimal

from app.core.config import settings
from app.core.security import create_access_token
from app.services import processor_events


def _create_partner(client, auth_headers, user_id="user-1", account_ref="acct_1", **extra):
    body = {"user_id": user_id, "processor_account_ref": account_ref, "country": "br", **extra}
    return client.post("/partners", json=body, headers=auth_headers)


def _record(client, auth_headers, partner_id, reference="pay_1", **extra):
    body = {
        "partner_account_id": partner_id,
        "booking_reference": "BK-1",
        "booking_kind": "activity",
        "processor_payment_reference": reference,
        "amount": 10000,
        "platform_fee": 1500,
        "partner_amount": 8500,
        "currency": "BRL",
        **extra,
    }
    return client.post("/transactions", json=body, headers=auth_headers)


class TestAuth:
    def test_health_is_public(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["database"] == "connected"

    def test_login(self, client, admin_user) -> None:
        resp = client.post("/auth/login", json={"username": "root", "password": "s3cret-pass"})
        assert resp.status_code == 200
        assert resp.json()["access_token"]

    def test_login_wrong_password(self, client, admin_user) -> None:
        resp = client.post("/auth/login", json={"username": "root", "password": "nope"})
        assert resp.status_code == 401

    def test_ledger_routes_require_token(self, client) -> None:
        assert client.get("/partners").status_code == 401

    def test_token_with_wrong_role_rejected(self, client, admin_user) -> None:
        token = create_access_token(subject=admin_user.id, role="partner")
        resp = client.get("/partners", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_create_admin_user_conflict(self, client, auth_headers) -> None:
        resp = client.post("/auth/users", json={"username": "ops", "password": "another-pass"}, headers=auth_headers)
        assert resp.status_code == 200
        resp = client.post("/auth/users", json={"username": "ops", "password": "another-pass"}, headers=auth_headers)
        assert resp.status_code == 409


class TestPartners:
    def test_create_uses_default_fee(self, client, auth_headers) -> None:
        resp = _create_partner(client, auth_headers)
        assert resp.status_code == 201
        data = resp.json()
        assert data["onboarding_status"] == "pending"
        assert data["is_active"] is False
        assert data["country"] == "BR"
        assert Decimal(data["fee_percentage"]) == settings.DEFAULT_FEE_PERCENTAGE

    def test_duplicate_user_conflicts(self, client, auth_headers) -> None:
        _create_partner(client, auth_headers)
        resp = _create_partner(client, auth_headers, account_ref="acct_2")
        assert resp.status_code == 409

    def test_fee_change_and_history(self, client, auth_headers) -> None:
        partner_id = _create_partner(client, auth_headers, default_fee_percentage="10").json()["id"]
        resp = client.patch(f"/partners/{partner_id}/fee", json={"fee_percentage": "12", "reason": "renegotiated"}, headers=auth_headers)
        assert resp.status_code == 200
        assert Decimal(resp.json()["fee_percentage"]) == Decimal("12")

        history = client.get(f"/partners/{partner_id}/fees", headers=auth_headers).json()
        assert [h["sequence"] for h in history] == [2, 1]
        assert Decimal(history[0]["previous_fee"]) == Decimal("10")
        assert history[0]["reason"] == "renegotiated"

    def test_fee_out_of_range(self, client, auth_headers) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        resp = client.patch(f"/partners/{partner_id}/fee", json={"fee_percentage": "120"}, headers=auth_headers)
        assert resp.status_code == 422

    def test_fee_quote(self, client, auth_headers) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        quote = client.get(f"/partners/{partner_id}/fee-quote", params={"amount": 999}, headers=auth_headers).json()
        assert quote["platform_fee"] == 149
        assert quote["partner_amount"] == 850

    def test_unknown_partner_is_404(self, client, auth_headers) -> None:
        resp = client.get("/partners/missing", headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Partner not found"

    def test_suspend(self, client, auth_headers) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        resp = client.patch(f"/partners/{partner_id}/active", json={"is_active": True}, headers=auth_headers)
        assert resp.json()["is_active"] is True
        listed = client.get("/partners", params={"active": "true"}, headers=auth_headers).json()
        assert [p["id"] for p in listed] == [partner_id]


class TestTransactions:
    def test_record_and_fetch(self, client, auth_headers) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        resp = _record(client, auth_headers, partner_id, metadata={"channel": "web"})
        assert resp.status_code == 201
        txn = resp.json()
        assert txn["status"] == "pending"
        assert txn["metadata"] == {"channel": "web"}

        fetched = client.get(f"/transactions/{txn['id']}", headers=auth_headers).json()
        assert fetched["processor_payment_reference"] == "pay_1"

    def test_bad_split_is_422(self, client, auth_headers) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        resp = _record(client, auth_headers, partner_id, partner_amount=8000)
        assert resp.status_code == 422

    def test_duplicate_reference_is_409(self, client, auth_headers) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        _record(client, auth_headers, partner_id)
        assert _record(client, auth_headers, partner_id).status_code == 409

    def test_failure_and_notify(self, client, auth_headers, dispatcher) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        txn_id = _record(client, auth_headers, partner_id).json()["id"]

        resp = client.post(f"/transactions/{txn_id}/failure", json={"error_message": "chargeback"}, headers=auth_headers)
        assert resp.json()["status"] == "failed"
        assert resp.json()["metadata"]["error"] == "chargeback"

        resp = client.post(f"/transactions/{txn_id}/notify", headers=auth_headers)
        assert resp.json() == {"ok": True, "dispatched": True}
        assert [n.kind for n in dispatcher.sent] == ["transaction_failed", "new_transaction"]

    def test_balance_and_listing(self, client, auth_headers) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        _record(client, auth_headers, partner_id, reference="pay_1", status="completed")
        _record(client, auth_headers, partner_id, reference="pay_2")

        balance = client.get(f"/partners/{partner_id}/balance", headers=auth_headers).json()
        assert balance["available_balance"] == 8500
        assert balance["pending_balance"] == 8500

        listed = client.get(f"/partners/{partner_id}/transactions", params={"status": "completed"}, headers=auth_headers).json()
        assert [t["processor_payment_reference"] for t in listed] == ["pay_1"]

        analytics = client.get(f"/partners/{partner_id}/analytics", headers=auth_headers).json()
        assert analytics["summary"]["completed_transactions"] == 1


class TestProcessorWebhook:
    def _post(self, client, payload, secret=None):
        body = json.dumps(payload).encode()
        headers = {"Content-Type": "application/json"}
        if secret:
            headers["X-Processor-Timestamp"] = "1700000000"
            headers["X-Processor-Signature"] = processor_events.compute_signature(secret, "1700000000", body)
        return client.post("/webhooks/processor", content=body, headers=headers)

    def test_capture_flow(self, client, auth_headers, dispatcher) -> None:
        partner_id = _create_partner(client, auth_headers).json()["id"]
        capture = {
            "id": "evt_1",
            "type": "payment.captured",
            "account": "acct_1",
            "data": {
                "object": {
                    "id": "pay_1",
                    "amount": 10000,
                    "currency": "brl",
                    "metadata": {"bookingReference": "BK-1", "bookingKind": "activity"},
                }
            },
        }
        resp = self._post(client, capture)
        assert resp.json() == {"received": True, "action": "transaction_recorded"}
        assert self._post(client, capture).status_code == 200

        listed = client.get(f"/partners/{partner_id}/transactions", headers=auth_headers).json()
        assert len(listed) == 1
        assert len(dispatcher.sent) == 1

    def test_invalid_signature_rejected(self, client, monkeypatch) -> None:
        monkeypatch.setattr(settings, "PROCESSOR_WEBHOOK_SECRET", "whsec")
        body = json.dumps({"id": "evt_1", "type": "customer.created"}).encode()
        resp = client.post(
            "/webhooks/processor",
            content=body,
            headers={"X-Processor-Timestamp": "1700000000", "X-Processor-Signature": "bad"},
        )
        assert resp.status_code == 401

    def test_valid_signature_accepted(self, client, monkeypatch) -> None:
        monkeypatch.setattr(settings, "PROCESSOR_WEBHOOK_SECRET", "whsec")
        resp = self._post(client, {"id": "evt_1", "type": "customer.created"}, secret="whsec")
        assert resp.status_code == 200
        assert resp.json()["action"] == "ignored"

    def test_events_handled_off_the_event_loop(self, client, monkeypatch) -> None:
        seen = {}

        def fake_handle_event(db, event, dispatcher, booking_lookups):
            try:
                asyncio.get_running_loop()
                seen["on_loop"] = True
            except RuntimeError:
                seen["on_loop"] = False
            return "ignored"

        monkeypatch.setattr(processor_events, "handle_event", fake_handle_event)
        resp = self._post(client, {"id": "evt_1", "type": "customer.created"})
        assert resp.status_code == 200
        assert seen == {"on_loop": False}

    def test_malformed_payload(self, client) -> None:
        resp = client.post("/webhooks/processor", content=b"not json")
        assert resp.status_code == 400

    def test_untracked_transfer_is_404(self, client) -> None:
        resp = self._post(client, {"id": "evt_2", "type": "transfer.completed", "data": {"object": {"id": "tr_1", "payment_reference": "pay_x"}}})
        assert resp.status_code == 404
