"""
Tests for commission calculation.

Covers:
- round(subtotal * rate / 100) in minor units
- Initial vs lifetime rate selection and the default rate
- Exactly one commission per order
- Customer credits, missing referrers and organic orders
- Admin payout marking
"""

import uuid
from decimal import Decimal

import pytest

from app.models.commission import CommissionStatus, CommissionType, RateType
from app.models.customer import ReferralType
from app.models.partner import ApprovalStatus
from app.models.referral import ReferralStatus
from app.repositories.commission_repository import CommissionRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.partner_repository import PartnerRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.commission_service import (
    CommissionOutcome,
    CommissionService,
    calculate_commission_amount,
    select_commission_rate,
)

from tests.conftest import PARTNER_CODE


@pytest.fixture
def commission_service(db_session, tracker):
    return CommissionService(
        commissions=CommissionRepository(db_session),
        orders=OrderRepository(db_session),
        partners=PartnerRepository(db_session),
        customers=CustomerRepository(db_session),
        tracker=tracker,
    )


class TestCommissionAmount:
    """Test the commission formula."""

    def test_ten_percent_of_fifty_pounds(self):
        assert calculate_commission_amount(5000, Decimal("10.00")) == 500

    def test_rounds_half_up(self):
        # 1999 * 12.5 / 100 = 249.875
        assert calculate_commission_amount(1999, Decimal("12.5")) == 250
        # 5 * 10 / 100 = 0.5
        assert calculate_commission_amount(5, Decimal("10")) == 1

    def test_rounds_down_below_half(self):
        # 1234 * 10 / 100 = 123.4
        assert calculate_commission_amount(1234, Decimal("10")) == 123

    def test_zero_subtotal(self):
        assert calculate_commission_amount(0, Decimal("10")) == 0

    def test_returns_int(self):
        assert isinstance(calculate_commission_amount(999, Decimal("7.5")), int)


class TestRateSelection:

    async def test_first_order_uses_initial_rate(self, make_partner):
        partner = await make_partner(commission_rate=Decimal("15.00"), lifetime_commission_rate=Decimal("5.00"))
        assert select_commission_rate(partner, is_first_order=True) == (Decimal("15.00"), RateType.INITIAL)

    async def test_repeat_order_uses_lifetime_rate(self, make_partner):
        partner = await make_partner(commission_rate=Decimal("15.00"), lifetime_commission_rate=Decimal("5.00"))
        assert select_commission_rate(partner, is_first_order=False) == (Decimal("5.00"), RateType.LIFETIME)

    async def test_missing_rate_falls_back_to_default(self, make_partner):
        partner = await make_partner()
        rate, rate_type = select_commission_rate(partner, is_first_order=False)
        assert rate == Decimal("10.00")
        assert rate_type == RateType.LIFETIME


class TestPartnerCommission:

    async def test_first_paid_order_creates_pending_commission(
        self, commission_service, make_partner, make_customer, make_order, db_session
    ):
        partner = await make_partner(code=PARTNER_CODE)
        customer = await make_customer(referred_by=partner)
        order = await make_order(customer, subtotal=5000)

        result = await commission_service.process_paid_order(order)

        assert result.outcome == CommissionOutcome.CREATED
        assert result.is_first_order is True
        commission = result.commission
        assert commission.commission_amount == 500
        assert commission.order_amount == 5000
        assert commission.recipient_type == ReferralType.PARTNER.value
        assert commission.recipient_id == partner.id
        assert commission.commission_type == CommissionType.PARTNER_COMMISSION.value
        assert commission.rate_type == RateType.INITIAL.value
        assert commission.status == CommissionStatus.PENDING.value
        assert commission.referral_code == PARTNER_CODE

        assert customer.referral_order_id == order.id
        assert customer.referral_applied_at is not None
        referral = await ReferralRepository(db_session).get_by_code(PARTNER_CODE)
        assert referral.status == ReferralStatus.APPLIED.value
        assert referral.order_id == order.id

    async def test_reprocessing_an_order_is_a_noop(
        self, commission_service, make_partner, make_customer, make_order, db_session
    ):
        partner = await make_partner(code=PARTNER_CODE)
        customer = await make_customer(referred_by=partner)
        order = await make_order(customer, subtotal=5000)

        first = await commission_service.process_paid_order(order)
        second = await commission_service.process_paid_order(order)

        assert first.outcome == CommissionOutcome.CREATED
        assert second.outcome == CommissionOutcome.DUPLICATE
        assert second.commission.id == first.commission.id
        assert await CommissionRepository(db_session).count(order_id=order.id) == 1

    async def test_repeat_order_earns_lifetime_rate(self, commission_service, make_partner, make_customer, make_order):
        partner = await make_partner(commission_rate=Decimal("15.00"), lifetime_commission_rate=Decimal("5.00"))
        customer = await make_customer(referred_by=partner)
        first_order = await make_order(customer, subtotal=5000)
        await commission_service.process_paid_order(first_order)

        repeat_order = await make_order(customer, subtotal=3000)
        result = await commission_service.process_paid_order(repeat_order)

        assert result.is_first_order is False
        assert result.commission.rate_type == RateType.LIFETIME.value
        assert result.commission.commission_amount == 150
        assert customer.referral_order_id == first_order.id

    async def test_order_without_customer_id_matches_by_email(
        self, commission_service, make_partner, make_customer, make_order
    ):
        partner = await make_partner()
        customer = await make_customer(referred_by=partner, email="buyer@customers.example.com")
        order = await make_order(customer_email="BUYER@customers.example.com", subtotal=2000)

        result = await commission_service.process_paid_order(order)

        assert result.outcome == CommissionOutcome.CREATED
        assert result.commission.customer_id == customer.id
        assert result.commission.commission_amount == 200

    async def test_missing_partner_is_skipped(self, commission_service, make_customer, make_order, db_session):
        customer = await make_customer(
            referral_type=ReferralType.PARTNER.value,
            referrer_id=uuid.uuid4(),
            referral_code_used="PARGONE00",
        )
        order = await make_order(customer)

        result = await commission_service.process_paid_order(order)

        assert result.outcome == CommissionOutcome.SKIPPED
        assert "not found" in result.reason
        assert await CommissionRepository(db_session).count() == 0

    @pytest.mark.parametrize("partner_fields", [
        {"is_active": False},
        {"approval_status": ApprovalStatus.REJECTED.value},
        {"approval_status": ApprovalStatus.PENDING.value},
    ])
    async def test_ineligible_partner_is_skipped(
        self, commission_service, make_partner, make_customer, make_order, db_session, partner_fields
    ):
        partner = await make_partner(code=PARTNER_CODE, **partner_fields)
        customer = await make_customer(referred_by=partner)
        order = await make_order(customer, subtotal=5000)

        result = await commission_service.process_paid_order(order)

        assert result.outcome == CommissionOutcome.SKIPPED
        assert "inactive or not approved" in result.reason
        assert await CommissionRepository(db_session).count() == 0

    async def test_organic_customer_earns_nothing(self, commission_service, make_customer, make_order, db_session):
        customer = await make_customer()
        order = await make_order(customer)

        result = await commission_service.process_paid_order(order)

        assert result.outcome == CommissionOutcome.NOT_REFERRED
        assert await CommissionRepository(db_session).count() == 0


class TestCustomerCredit:

    async def test_referring_customer_gets_approved_credit(
        self, commission_service, make_customer, make_order, db_session
    ):
        referrer = await make_customer()
        friend = await make_customer(referred_by=referrer)
        order = await make_order(friend, subtotal=5000)

        result = await commission_service.process_paid_order(order)

        commission = result.commission
        assert commission.commission_type == CommissionType.CUSTOMER_CREDIT.value
        assert commission.status == CommissionStatus.APPROVED.value
        assert commission.recipient_id == referrer.id
        assert commission.commission_amount == 500

        await db_session.refresh(referrer)
        assert referrer.current_credit_balance == 500

    async def test_missing_referring_customer_is_skipped(self, commission_service, make_customer, make_order):
        friend = await make_customer(
            referral_type=ReferralType.CUSTOMER.value,
            referrer_id=uuid.uuid4(),
            referral_code_used="PETGONE00",
        )
        order = await make_order(friend)

        result = await commission_service.process_paid_order(order)

        assert result.outcome == CommissionOutcome.SKIPPED


class TestCommissionRepository:

    async def test_create_once_rejects_second_insert_for_order(self, make_partner, make_order, db_session):
        partner = await make_partner()
        order = await make_order()
        repo = CommissionRepository(db_session)
        data = {
            "order_id": order.id,
            "order_amount": 5000,
            "recipient_type": ReferralType.PARTNER.value,
            "recipient_id": partner.id,
            "commission_type": CommissionType.PARTNER_COMMISSION.value,
            "rate_type": RateType.INITIAL.value,
            "commission_rate": Decimal("10.00"),
            "commission_amount": 500,
        }

        assert await repo.create_once(**data) is not None
        assert await repo.create_once(**data) is None
        assert await repo.count(order_id=order.id) == 1

    async def test_totals_exclude_cancelled(self, commission_service, make_partner, make_customer, make_order, db_session):
        partner = await make_partner()
        customer = await make_customer(referred_by=partner)
        paid = (await commission_service.process_paid_order(await make_order(customer, subtotal=5000))).commission
        await commission_service.process_paid_order(await make_order(customer, subtotal=3000))
        cancelled = (await commission_service.process_paid_order(await make_order(customer, subtotal=1000))).commission
        await commission_service.mark_paid(paid.id, paid_by="admin-1")
        cancelled.status = CommissionStatus.CANCELLED.value
        await db_session.flush()

        totals = await CommissionRepository(db_session).totals_for_recipient(ReferralType.PARTNER.value, partner.id)

        assert totals == {"earned": 800, "paid": 500, "count": 2}


class TestMarkPaid:

    async def test_mark_paid(self, commission_service, make_partner, make_customer, make_order):
        partner = await make_partner()
        customer = await make_customer(referred_by=partner)
        created = (await commission_service.process_paid_order(await make_order(customer))).commission

        commission = await commission_service.mark_paid(created.id, paid_by="admin-1", notes="BACS 2026-10-19")

        assert commission.is_paid
        assert commission.paid_by == "admin-1"
        assert commission.paid_at is not None
        assert commission.notes == "BACS 2026-10-19"

    async def test_mark_paid_twice_is_rejected(self, commission_service, make_partner, make_customer, make_order):
        partner = await make_partner()
        customer = await make_customer(referred_by=partner)
        created = (await commission_service.process_paid_order(await make_order(customer))).commission
        await commission_service.mark_paid(created.id, paid_by="admin-1")

        with pytest.raises(ValueError, match="already paid"):
            await commission_service.mark_paid(created.id, paid_by="admin-2")

    async def test_mark_paid_unknown_commission(self, commission_service):
        with pytest.raises(ValueError, match="not found"):
            await commission_service.mark_paid(uuid.uuid4(), paid_by="admin-1")
