"""
Commission Service

Computes what a referring account earns when a referred customer's order is
paid:

- Partner referrals earn a PENDING commission at the partner's initial rate
  on the customer's first paid order and at the lifetime rate afterwards.
- Customer referrals earn the referrer an auto-approved store credit at
  CUSTOMER_CREDIT_RATE on every order.

Amounts are computed on the pre-discount subtotal in minor units:
round(subtotal * rate / 100), half-up.

Each order yields at most one commission. Missing referrers are skipped with
a warning; nothing here is allowed to block order fulfilment.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Tuple

from app.config import settings
from app.models.commission import Commission, CommissionStatus, CommissionType, RateType
from app.models.customer import Customer, ReferralType
from app.models.order import Order
from app.models.partner import Partner
from app.repositories.commission_repository import CommissionRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.partner_repository import PartnerRepository
from app.services.referral_tracker import ReferralTracker

logger = logging.getLogger(__name__)


class CommissionOutcome(str, Enum):
    CREATED = "CREATED"
    DUPLICATE = "DUPLICATE"          # Order already commissioned (retried webhook)
    NOT_REFERRED = "NOT_REFERRED"    # Organic customer
    SKIPPED = "SKIPPED"              # Referrer or rate unavailable; left for reconciliation


@dataclass
class CommissionResult:
    outcome: CommissionOutcome
    commission: Optional[Commission] = None
    reason: Optional[str] = None
    is_first_order: Optional[bool] = None


def calculate_commission_amount(subtotal: int, rate: Decimal) -> int:
    """
    Commission in minor units, rounded half-up.

    Example: calculate_commission_amount(5000, Decimal("10.00")) == 500
    """
    amount = Decimal(subtotal) * Decimal(rate) / Decimal("100")
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def select_commission_rate(partner: Partner, is_first_order: bool) -> Tuple[Decimal, RateType]:
    """Initial rate for the first paid order, lifetime rate after that."""
    if is_first_order:
        rate, rate_type = partner.commission_rate, RateType.INITIAL
    else:
        rate, rate_type = partner.lifetime_commission_rate, RateType.LIFETIME

    if rate is None:
        rate = settings.DEFAULT_COMMISSION_RATE
    return Decimal(rate), rate_type


class CommissionService:
    """Creates and settles referral commissions."""

    def __init__(
        self,
        commissions: CommissionRepository,
        orders: OrderRepository,
        partners: PartnerRepository,
        customers: CustomerRepository,
        tracker: Optional[ReferralTracker] = None,
    ):
        self.commissions = commissions
        self.orders = orders
        self.partners = partners
        self.customers = customers
        self.tracker = tracker

    async def process_paid_order(self, order: Order, now: Optional[datetime] = None) -> CommissionResult:
        """
        Create the commission or credit for a paid order, at most once.

        Never raises for business conditions; the result says what happened.
        """
        now = now or datetime.now(timezone.utc)

        existing = await self.commissions.get_by_order(order.id)
        if existing:
            logger.info(f"Commission for order {order.order_number} already exists, skipping")
            return CommissionResult(CommissionOutcome.DUPLICATE, commission=existing)

        customer = await self._get_order_customer(order)
        if customer is None or not customer.is_referred:
            return CommissionResult(CommissionOutcome.NOT_REFERRED)

        is_first_order = not await self.orders.has_other_paid_order(order.customer_email, order.id)

        if customer.referral_type == ReferralType.PARTNER.value:
            data = await self._partner_commission(order, customer, is_first_order)
        else:
            data = await self._customer_credit(order, customer, is_first_order)

        if isinstance(data, str):
            logger.warning(f"Skipping commission for order {order.order_number}: {data}")
            return CommissionResult(CommissionOutcome.SKIPPED, reason=data, is_first_order=is_first_order)

        commission = await self.commissions.create_once(**data)
        if commission is None:
            logger.info(f"Commission for order {order.order_number} created concurrently, skipping")
            return CommissionResult(
                CommissionOutcome.DUPLICATE,
                commission=await self.commissions.get_by_order(order.id),
                is_first_order=is_first_order,
            )

        if commission.commission_type == CommissionType.CUSTOMER_CREDIT.value:
            await self.customers.add_credit(commission.recipient_id, commission.commission_amount)

        logger.info(
            f"Created {commission.commission_type} of {commission.commission_amount} "
            f"({commission.rate_type} {commission.commission_rate}%) for order {order.order_number} "
            f"to {commission.recipient_type} {commission.recipient_id}"
        )

        if is_first_order and customer.referral_order_id is None:
            await self._apply_referral(customer, order, now)

        return CommissionResult(CommissionOutcome.CREATED, commission=commission, is_first_order=is_first_order)

    async def _get_order_customer(self, order: Order) -> Optional[Customer]:
        if order.customer_id:
            customer = await self.customers.get_by_id(order.customer_id)
            if customer:
                return customer
        return await self.customers.get_by_email(order.customer_email)

    async def _partner_commission(self, order: Order, customer: Customer, is_first_order: bool):
        partner = await self.partners.get_by_id(customer.referrer_id)
        if partner is None:
            return f"referring partner {customer.referrer_id} not found"
        if not partner.can_receive_referrals:
            return f"referring partner {partner.id} is inactive or not approved"

        rate, rate_type = select_commission_rate(partner, is_first_order)
        return self._commission_data(
            order,
            customer,
            recipient_type=ReferralType.PARTNER,
            recipient_id=partner.id,
            recipient_email=partner.email,
            commission_type=CommissionType.PARTNER_COMMISSION,
            rate=rate,
            rate_type=rate_type,
            status=CommissionStatus.PENDING,
        )

    async def _customer_credit(self, order: Order, customer: Customer, is_first_order: bool):
        referrer = await self.customers.get_by_id(customer.referrer_id)
        if referrer is None:
            return f"referring customer {customer.referrer_id} not found"

        return self._commission_data(
            order,
            customer,
            recipient_type=ReferralType.CUSTOMER,
            recipient_id=referrer.id,
            recipient_email=referrer.email,
            commission_type=CommissionType.CUSTOMER_CREDIT,
            rate=Decimal(settings.CUSTOMER_CREDIT_RATE),
            rate_type=RateType.INITIAL if is_first_order else RateType.LIFETIME,
            status=CommissionStatus.APPROVED,
        )

    @staticmethod
    def _commission_data(
        order: Order,
        customer: Customer,
        recipient_type: ReferralType,
        recipient_id: uuid.UUID,
        recipient_email: Optional[str],
        commission_type: CommissionType,
        rate: Decimal,
        rate_type: RateType,
        status: CommissionStatus,
    ) -> dict:
        return {
            "id": uuid.uuid4(),
            "order_id": order.id,
            "order_amount": order.subtotal,
            "recipient_type": recipient_type.value,
            "recipient_id": recipient_id,
            "recipient_email": recipient_email,
            "customer_id": customer.id,
            "referral_code": customer.referral_code_used,
            "commission_type": commission_type.value,
            "rate_type": rate_type.value,
            "commission_rate": rate,
            "commission_amount": calculate_commission_amount(order.subtotal, rate),
            "status": status.value,
        }

    async def _apply_referral(self, customer: Customer, order: Order, now: datetime) -> None:
        customer.referral_order_id = order.id
        customer.referral_applied_at = now

        if self.tracker is None or not customer.referral_code_used:
            return
        try:
            async with self.commissions.session.begin_nested():
                await self.tracker.record_first_order(
                    customer.referral_code_used,
                    order_id=order.id,
                    customer_id=customer.id,
                    now=now,
                )
        except Exception as e:
            logger.error(f"Failed to mark referral {customer.referral_code_used} applied: {e}")

    # ==================== Admin ====================

    async def mark_paid(
        self,
        commission_id: uuid.UUID,
        paid_by: str,
        notes: Optional[str] = None,
    ) -> Commission:
        """Admin marks a commission paid out."""
        commission = await self.commissions.get_by_id(commission_id)
        if not commission:
            raise ValueError("Commission not found")

        if commission.is_paid:
            raise ValueError("Commission is already paid")

        if commission.status == CommissionStatus.CANCELLED.value:
            raise ValueError("Cancelled commissions cannot be paid")

        commission.status = CommissionStatus.PAID.value
        commission.paid_at = datetime.now(timezone.utc)
        commission.paid_by = paid_by
        if notes:
            commission.notes = notes

        await self.commissions.session.flush()
        logger.info(f"Commission {commission.id} marked paid by {paid_by}")
        return commission
