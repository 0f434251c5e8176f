"""
Tests for the payment webhook.

Covers:
- HMAC signature verification with timestamp tolerance
- Paid orders create exactly one commission across redelivery
- Orders created from payment metadata use the pre-discount subtotal
- Processing errors answer 500 so the provider redelivers
- Redeemed store credit is deducted once per order
"""

import json
import time

from sqlalchemy.exc import OperationalError

from app.config import settings
from app.models.commission import CommissionStatus
from app.models.order import PaymentStatus
from app.repositories.commission_repository import CommissionRepository
from app.repositories.order_repository import OrderRepository
from app.services.payment_webhook_service import (
    compute_signature,
    parse_signature_header,
    pre_discount_subtotal,
    verify_webhook_signature,
)

from tests.conftest import PARTNER_CODE

SECRET = "whsec_unit"
WEBHOOK_URL = "/api/v1/webhooks/payments"


def sign(body: bytes, secret: str = SECRET, timestamp: int = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(body, timestamp, secret)}"


def succeeded_event(intent_id="pi_123", email="buyer@customers.example.com", amount=4500, **metadata) -> dict:
    return {
        "id": "evt_1",
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": intent_id,
                "amount": amount,
                "amount_received": amount,
                "currency": "gbp",
                "receipt_email": email,
                "metadata": {"customer_email": email, **metadata},
            }
        },
    }


async def post_event(client, event: dict, secret: str = None):
    body = json.dumps(event).encode()
    return await client.post(
        WEBHOOK_URL,
        content=body,
        headers={
            "Content-Type": "application/json",
            "Payment-Signature": sign(body, secret or settings.PAYMENT_WEBHOOK_SECRET),
        },
    )


class TestSignatureVerification:

    def test_valid_signature(self):
        body = b'{"type":"payment_intent.succeeded"}'
        assert verify_webhook_signature(body, sign(body), SECRET)

    def test_tampered_body(self):
        header = sign(b'{"amount":100}')
        assert not verify_webhook_signature(b'{"amount":999}', header, SECRET)

    def test_wrong_secret(self):
        body = b"{}"
        assert not verify_webhook_signature(body, sign(body, secret="whsec_other"), SECRET)

    def test_stale_timestamp(self):
        body = b"{}"
        header = sign(body, timestamp=int(time.time()) - 3600)
        assert not verify_webhook_signature(body, header, SECRET, tolerance=300)

    def test_tolerance_uses_clock_override(self):
        body = b"{}"
        header = sign(body, timestamp=1_700_000_000)
        assert verify_webhook_signature(body, header, SECRET, tolerance=300, now=1_700_000_100)

    def test_missing_header_or_secret(self):
        assert not verify_webhook_signature(b"{}", None, SECRET)
        assert not verify_webhook_signature(b"{}", sign(b"{}"), None)

    def test_malformed_timestamp(self):
        assert not verify_webhook_signature(b"{}", "t=soon,v1=abc", SECRET)

    def test_any_v1_signature_may_match(self):
        body = b"{}"
        timestamp = int(time.time())
        header = f"t={timestamp},v1=deadbeef,v1={compute_signature(body, timestamp, SECRET)}"
        assert verify_webhook_signature(body, header, SECRET)

    def test_parse_signature_header(self):
        assert parse_signature_header("t=1, v1=a,v1=b,junk") == {"t": ["1"], "v1": ["a", "b"]}


class TestPreDiscountSubtotal:

    def test_adds_back_discount_and_credit(self):
        # paid 4500 after a 500 referral discount, 200 credit, 300 shipping
        assert pre_discount_subtotal(4500, 500, 200, 300) == 4900

    def test_never_negative(self):
        assert pre_discount_subtotal(0, 0, 0, 500) == 0


class TestPaymentWebhookEndpoint:

    async def test_unsigned_webhook_is_rejected(self, client):
        response = await client.post(WEBHOOK_URL, content=b"{}")
        assert response.status_code == 401

    async def test_bad_signature_is_rejected(self, client):
        response = await post_event(client, succeeded_event(), secret="whsec_wrong")
        assert response.status_code == 401

    async def test_invalid_json_is_rejected(self, client):
        body = b"not json"
        response = await client.post(WEBHOOK_URL, content=body, headers={"Payment-Signature": sign(body, settings.PAYMENT_WEBHOOK_SECRET)})
        assert response.status_code == 400

    async def test_paid_order_creates_commission_once(self, client, make_partner, db_session):
        partner = await make_partner(code=PARTNER_CODE)
        signup = await client.post("/api/v1/auth/signup/customer", json={
            "email": "buyer@customers.example.com",
            "firstName": "Bea",
            "lastName": "Buyer",
            "referralCode": PARTNER_CODE,
        })
        assert signup.status_code == 201

        # £50 basket, paid £45 after a £5 referral discount
        event = succeeded_event(amount=4500, referral_discount="500", referral_code=PARTNER_CODE)

        first = await post_event(client, event)
        second = await post_event(client, event)

        assert first.status_code == 200
        assert first.json()["commission"] == "CREATED"
        assert second.status_code == 200
        assert second.json()["commission"] == "DUPLICATE"

        order = await OrderRepository(db_session).get_by_payment_intent("pi_123")
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.subtotal == 5000
        assert order.total_amount == 4500

        items, total = await CommissionRepository(db_session).list_filtered(recipient_id=partner.id)
        assert total == 1
        assert items[0].commission_amount == 500
        assert items[0].status == CommissionStatus.PENDING.value

    async def test_existing_order_is_marked_paid(self, client, make_order, db_session):
        order = await make_order(paid=False, payment_intent_id="pi_existing", subtotal=2500)

        response = await post_event(client, succeeded_event(intent_id="pi_existing", email=order.customer_email))

        assert response.json() == {"status": "ok", "order_number": order.order_number, "commission": "NOT_REFERRED"}
        await db_session.refresh(order)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.paid_at is not None
        assert order.subtotal == 2500

    async def test_payment_failed_marks_order(self, client, make_order, db_session):
        order = await make_order(paid=False, payment_intent_id="pi_failed")
        event = {"type": "payment_intent.payment_failed", "data": {"object": {"id": "pi_failed"}}}

        response = await post_event(client, event)

        assert response.status_code == 200
        await db_session.refresh(order)
        assert order.payment_status == PaymentStatus.FAILED.value

    async def test_unhandled_event_is_ignored(self, client):
        response = await post_event(client, {"type": "charge.dispute.created", "data": {"object": {}}})
        assert response.json() == {"status": "ignored", "event": "charge.dispute.created"}

    async def test_intent_without_email_is_ignored(self, client):
        event = succeeded_event(intent_id="pi_anon", email="")
        response = await post_event(client, event)
        assert response.json()["status"] == "ignored"

    async def test_processing_error_returns_500_and_redelivery_succeeds(self, client, db_session, monkeypatch):
        original = OrderRepository.get_by_payment_intent
        failures = []

        async def flaky_lookup(self, intent_id):
            if not failures:
                failures.append(intent_id)
                raise OperationalError("SELECT", {}, Exception("database unavailable"))
            return await original(self, intent_id)

        monkeypatch.setattr(OrderRepository, "get_by_payment_intent", flaky_lookup)
        event = succeeded_event(intent_id="pi_retry")

        first = await post_event(client, event)
        second = await post_event(client, event)

        assert first.status_code == 500
        assert second.status_code == 200
        assert second.json()["status"] == "ok"
        order = await OrderRepository(db_session).get_by_payment_intent("pi_retry")
        assert order.payment_status == PaymentStatus.PAID.value


class TestCreditRedemption:

    async def test_applied_credit_is_deducted_once(self, client, make_customer, db_session):
        customer = await make_customer(email="buyer@customers.example.com", current_credit_balance=1000)
        event = succeeded_event(intent_id="pi_credit", amount=4000, credit_applied="600")

        first = await post_event(client, event)
        second = await post_event(client, event)

        assert first.status_code == 200
        assert second.status_code == 200
        await db_session.refresh(customer)
        assert customer.current_credit_balance == 400

    async def test_full_balance_is_spent(self, client, make_customer, db_session):
        customer = await make_customer(email="buyer@customers.example.com", current_credit_balance=1000)

        await post_event(client, succeeded_event(intent_id="pi_all", amount=4000, credit_applied="1000"))

        await db_session.refresh(customer)
        assert customer.current_credit_balance == 0

    async def test_balance_never_goes_negative(self, client, make_customer, db_session):
        customer = await make_customer(email="buyer@customers.example.com", current_credit_balance=300)

        await post_event(client, succeeded_event(intent_id="pi_over", amount=4000, credit_applied="1000"))

        await db_session.refresh(customer)
        assert customer.current_credit_balance == 0

    async def test_existing_order_redeems_by_customer_id(self, client, make_customer, make_order, db_session):
        customer = await make_customer(current_credit_balance=800)
        await make_order(customer, paid=False, payment_intent_id="pi_known", credit_applied=500)

        await post_event(client, succeeded_event(intent_id="pi_known", email=customer.email))

        await db_session.refresh(customer)
        assert customer.current_credit_balance == 300

    async def test_no_credit_applied_leaves_balance(self, client, make_customer, db_session):
        customer = await make_customer(email="buyer@customers.example.com", current_credit_balance=1000)

        await post_event(client, succeeded_event(intent_id="pi_plain"))

        await db_session.refresh(customer)
        assert customer.current_credit_balance == 1000
