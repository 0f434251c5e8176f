"""
Signup Service

Creates customer and partner accounts with:
- a personal referral code (unique across all namespaces)
- the referral attribution for the code they signed up with
- a referral record for their own code, so views can be tracked

Attribution and tracking are best-effort: a bad or failing code never stops
the account from being created. Code exhaustion does, because an account
without a unique code cannot be created.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.customer import Customer, ReferralType
from app.models.partner import Partner, PreRegistrationCode, PreRegistrationStatus, ApprovalStatus
from app.repositories.customer_repository import CustomerRepository
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.schemas.signup import CustomerSignupRequest, PartnerSignupRequest
from app.services.attribution_service import Attribution, AttributionService, as_utc
from app.services.referral_code_service import ReferralCodeService, normalize_code
from app.services.referral_tracker import ReferralTracker

logger = logging.getLogger(__name__)


@dataclass
class SignupResult:
    account: Union[Customer, Partner]
    account_type: str
    attribution: Optional[Attribution] = None

    @property
    def share_url(self) -> str:
        path = "p" if self.account_type == ReferralType.PARTNER.value else "c"
        return f"{settings.FRONTEND_URL.rstrip('/')}/{path}/{self.account.personal_referral_code}"


class SignupService:
    """Account creation with referral code issuance and attribution."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.partners = PartnerRepository(db)
        self.pre_registrations = PreRegistrationCodeRepository(db)
        self.customers = CustomerRepository(db)
        self.referrals = ReferralRepository(db)
        self.codes = ReferralCodeService(self.partners, self.pre_registrations, self.customers, self.referrals)
        self.attribution = AttributionService(self.partners, self.pre_registrations, self.customers, self.referrals)
        self.tracker = ReferralTracker(self.referrals, self.pre_registrations)

    async def _resolve_attribution(self, code: Optional[str], email: str) -> Optional[Attribution]:
        if not code:
            return None
        try:
            return await self.attribution.resolve(code, referee_email=email)
        except Exception as e:
            logger.error(f"Attribution lookup failed for code {code}: {e}")
            return None

    async def _record_signup(self, attribution: Attribution, account_id, email: str, is_customer: bool) -> None:
        try:
            async with self.db.begin_nested():
                await self.tracker.record_signup(
                    attribution.code,
                    referee_id=account_id,
                    referee_email=email,
                    referee_is_customer=is_customer,
                )
        except Exception as e:
            logger.error(f"Failed to track signup for referral code {attribution.code}: {e}")

    # ========================================================================
    # Customers
    # ========================================================================

    async def signup_customer(self, data: CustomerSignupRequest) -> SignupResult:
        """
        Register a customer.

        Raises:
            ValueError: email already registered
            CodeGenerationExhausted: no unique personal code could be issued
        """
        if await self.customers.get_by_email(data.email):
            raise ValueError(f"Email {data.email} is already registered")

        attribution = await self._resolve_attribution(data.referral_code, data.email)
        personal_code = await self.codes.issue_customer_code()

        customer = await self.customers.create(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            user_id=data.user_id,
            is_registered=True,
            personal_referral_code=personal_code,
            referral_type=attribution.referral_type.value if attribution else None,
            referrer_id=attribution.referrer_id if attribution else None,
            referral_code_used=attribution.code if attribution else None,
        )
        await self.tracker.create_record(
            personal_code,
            referrer_type=ReferralType.CUSTOMER.value,
            referrer_id=customer.id,
            is_personal=True,
        )

        if attribution:
            await self._record_signup(attribution, customer.id, customer.email, is_customer=True)
        elif data.referral_code:
            logger.info(f"Customer {customer.email} signed up with unmatched code {normalize_code(data.referral_code)}")

        logger.info(f"Customer {customer.id} registered with code {personal_code}")
        return SignupResult(account=customer, account_type=ReferralType.CUSTOMER.value, attribution=attribution)

    # ========================================================================
    # Partners
    # ========================================================================

    async def _claimable_pre_registration(self, code: Optional[str]) -> Optional[PreRegistrationCode]:
        code = normalize_code(code)
        if not code:
            return None

        pre_registration = await self.pre_registrations.get_by_code(code)
        if pre_registration is None:
            logger.warning(f"Pre-registration code {code} not found, issuing a new code")
            return None
        if pre_registration.status != PreRegistrationStatus.ACTIVE.value:
            logger.warning(f"Pre-registration code {code} is {pre_registration.status}, issuing a new code")
            return None
        expiration = as_utc(pre_registration.expiration_date)
        if expiration is not None and expiration <= datetime.now(timezone.utc):
            logger.warning(f"Pre-registration code {code} expired, issuing a new code")
            return None
        return pre_registration

    async def signup_partner(self, data: PartnerSignupRequest) -> SignupResult:
        """
        Register a business partner.

        A valid pre-registration code becomes the partner's personal code;
        otherwise one is issued from the business name prefix.

        Raises:
            ValueError: email already registered
            CodeGenerationExhausted: no unique personal code could be issued
        """
        if await self.partners.get_by_email(data.email):
            raise ValueError(f"Email {data.email} is already registered")

        attribution = await self._resolve_attribution(data.referral_code, data.email)

        pre_registration = await self._claimable_pre_registration(data.pre_registration_code)
        if pre_registration:
            personal_code = pre_registration.code
        else:
            personal_code = await self.codes.issue_partner_code(data.business_name)

        partner = await self.partners.create(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            user_id=data.user_id,
            business_name=data.business_name,
            business_type=data.business_type,
            business_phone=data.business_phone,
            business_website=data.business_website,
            personal_referral_code=personal_code,
            is_active=True,
            approval_status=ApprovalStatus.APPROVED.value,
            referral_type=attribution.referral_type.value if attribution else None,
            referrer_id=attribution.referrer_id if attribution else None,
            referral_code_used=attribution.code if attribution else None,
        )

        if pre_registration:
            conversions = await self.pre_registrations.mark_used(personal_code, partner.id)
            logger.info(f"Pre-registration code {personal_code} claimed by partner {partner.id} ({conversions} conversions)")

        await self.tracker.create_record(
            personal_code,
            referrer_type=ReferralType.PARTNER.value,
            referrer_id=partner.id,
            is_personal=True,
        )

        if attribution:
            await self._record_signup(attribution, partner.id, partner.email, is_customer=False)

        logger.info(f"Partner {partner.id} registered with code {personal_code}")
        return SignupResult(account=partner, account_type=ReferralType.PARTNER.value, attribution=attribution)
