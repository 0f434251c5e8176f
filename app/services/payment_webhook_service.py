"""
Payment Webhook Service

Handles order events delivered by the payment provider:
- Verify webhook signatures (HMAC-SHA256 over "<timestamp>.<body>")
- Mark orders paid, creating them from payment metadata when the storefront
  only sent the payment intent
- Run the commission calculation for paid orders

Delivery is at-least-once; every step is safe to repeat.
"""

import hashlib
import hmac
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.order import Order, PaymentStatus
from app.repositories.commission_repository import CommissionRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.commission_service import CommissionService, CommissionResult
from app.services.referral_code_service import normalize_code
from app.services.referral_tracker import ReferralTracker

logger = logging.getLogger(__name__)


class WebhookEvent:
    """Payment provider event types."""
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    signed_payload = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def parse_signature_header(header: str) -> Dict[str, list]:
    """Parse "t=123,v1=abc,v1=def" into {"t": ["123"], "v1": ["abc", "def"]}."""
    parts: Dict[str, list] = {}
    for item in header.split(','):
        key, sep, value = item.strip().partition('=')
        if sep:
            parts.setdefault(key, []).append(value)
    return parts


def verify_webhook_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
    tolerance: Optional[int] = None,
    now: Optional[float] = None,
) -> bool:
    """
    Verify a payment webhook signature.

    Args:
        payload: Raw request body bytes
        signature_header: Signature header value ("t=<unix>,v1=<hex>")
        secret: Shared webhook secret
        tolerance: Max age of the signature in seconds
        now: Clock override (unix seconds)

    Returns:
        True if signature is valid, False otherwise
    """
    if not secret:
        logger.warning("Webhook secret not configured")
        return False
    if not signature_header:
        logger.warning("Webhook received without signature header")
        return False

    parts = parse_signature_header(signature_header)
    try:
        timestamp = int(parts.get("t", [""])[0])
    except ValueError:
        logger.warning("Webhook signature header has no valid timestamp")
        return False

    tolerance = settings.PAYMENT_WEBHOOK_TOLERANCE_SECONDS if tolerance is None else tolerance
    now = time.time() if now is None else now
    if tolerance and abs(now - timestamp) > tolerance:
        logger.warning("Webhook signature timestamp outside tolerance")
        return False

    expected = compute_signature(payload, timestamp, secret)
    is_valid = any(hmac.compare_digest(expected, candidate) for candidate in parts.get("v1", []))
    if not is_valid:
        logger.warning("Invalid webhook signature")
    return is_valid


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def pre_discount_subtotal(amount: int, discount: int, credit_applied: int, shipping: int) -> int:
    """Item subtotal before referral discounts and store credit."""
    return max(amount + discount + credit_applied - shipping, 0)


class PaymentWebhookService:
    """Processes payment provider events."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.orders = OrderRepository(db)
        self.customers = CustomerRepository(db)
        referrals = ReferralRepository(db)
        self.commission_service = CommissionService(
            commissions=CommissionRepository(db),
            orders=self.orders,
            partners=PartnerRepository(db),
            customers=self.customers,
            tracker=ReferralTracker(referrals, PreRegistrationCodeRepository(db)),
        )

    async def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_type = event.get("type")
        payment_intent = (event.get("data") or {}).get("object") or {}

        if event_type == WebhookEvent.PAYMENT_SUCCEEDED:
            return await self.handle_payment_succeeded(payment_intent)
        if event_type == WebhookEvent.PAYMENT_FAILED:
            return await self.handle_payment_failed(payment_intent)

        logger.info(f"Unhandled webhook event: {event_type}")
        return {"status": "ignored", "event": event_type}

    async def _find_order(self, payment_intent: Dict[str, Any]) -> Optional[Order]:
        intent_id = payment_intent.get("id")
        if intent_id:
            order = await self.orders.get_by_payment_intent(intent_id)
            if order:
                return order

        order_number = (payment_intent.get("metadata") or {}).get("order_number")
        if order_number:
            return await self.orders.get_by_number(order_number)
        return None

    async def _create_order_from_intent(self, payment_intent: Dict[str, Any]) -> Optional[Order]:
        metadata = payment_intent.get("metadata") or {}
        email = (metadata.get("customer_email") or payment_intent.get("receipt_email") or "").strip().lower()
        if not email:
            logger.warning(f"Payment {payment_intent.get('id')} has no customer email, cannot create order")
            return None

        amount = _int(payment_intent.get("amount_received") or payment_intent.get("amount"))
        discount = _int(metadata.get("referral_discount"))
        credit = _int(metadata.get("credit_applied"))
        shipping = _int(metadata.get("shipping_cost"))

        customer = await self.customers.get_by_email(email)
        order_number = metadata.get("order_number") or f"PP-{datetime.now(timezone.utc):%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"

        return await self.orders.create(
            order_number=order_number,
            payment_intent_id=payment_intent.get("id"),
            customer_email=email,
            customer_id=customer.id if customer else None,
            subtotal=pre_discount_subtotal(amount, discount, credit, shipping),
            discount_amount=discount,
            credit_applied=credit,
            shipping_amount=shipping,
            total_amount=amount,
            currency=(payment_intent.get("currency") or "gbp").upper(),
            referral_code=normalize_code(metadata.get("referral_code")) or None,
            items=metadata.get("items"),
        )

    async def handle_payment_succeeded(self, payment_intent: Dict[str, Any]) -> Dict[str, Any]:
        intent_id = payment_intent.get("id")
        order = await self._find_order(payment_intent)
        if order is None:
            order = await self._create_order_from_intent(payment_intent)
            if order is None:
                return {"status": "ignored", "reason": "order not found"}
            logger.info(f"Created order {order.order_number} from payment {intent_id}")

        if order.payment_status != PaymentStatus.PAID.value:
            order.payment_status = PaymentStatus.PAID.value
            order.paid_at = datetime.now(timezone.utc)
            if intent_id and not order.payment_intent_id:
                order.payment_intent_id = intent_id
            await self.db.flush()
            logger.info(f"Order {order.order_number} marked paid")
            await self._redeem_credit(order)
        else:
            logger.info(f"Order {order.order_number} already paid, re-checking commission")

        result = await self._process_commission(order)
        return {
            "status": "ok",
            "order_number": order.order_number,
            "commission": result.outcome.value if result else "ERROR",
        }

    async def _redeem_credit(self, order: Order) -> None:
        """Take the credit spent on this order off the buyer's balance. Runs once per order."""
        if not order.credit_applied:
            return

        customer_id = order.customer_id
        if customer_id is None:
            customer = await self.customers.get_by_email(order.customer_email)
            customer_id = customer.id if customer else None
        if customer_id is None:
            logger.warning(f"Order {order.order_number} applied credit but has no customer account")
            return

        balance = await self.customers.deduct_credit(customer_id, order.credit_applied)
        logger.info(
            f"Redeemed {order.credit_applied} credit on order {order.order_number}, "
            f"customer {customer_id} balance now {balance}"
        )

    async def _process_commission(self, order: Order) -> Optional[CommissionResult]:
        """Commission failures are logged and never fail the order."""
        try:
            async with self.db.begin_nested():
                return await self.commission_service.process_paid_order(order)
        except Exception as e:
            logger.error(f"Commission processing failed for order {order.order_number}: {e}")
            return None

    async def handle_payment_failed(self, payment_intent: Dict[str, Any]) -> Dict[str, Any]:
        order = await self._find_order(payment_intent)
        if order is None:
            return {"status": "ignored", "reason": "order not found"}

        if order.payment_status == PaymentStatus.PENDING.value:
            order.payment_status = PaymentStatus.FAILED.value
            await self.db.flush()
            logger.info(f"Order {order.order_number} payment failed")
        return {"status": "ok", "order_number": order.order_number}
