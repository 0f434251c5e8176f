"""
Attribution Service

Decides who referred a new account from the code it signed up with.

Lookup order (first match wins):
1. Partner personal code (partner must be active and approved)
2. Pre-registration code claimed by a partner
3. Registered customer's personal code
4. Referral invite record that has not expired

`referrer_id` is always the matched partner's or customer's own primary key.
A code that matches nothing, or matches an account that cannot receive
referrals, resolves to None; signup carries on without a referral.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from app.models.customer import Customer, ReferralType
from app.models.partner import Partner, PreRegistrationStatus
from app.models.referral import Referral, ReferralStatus
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.referral_code_service import normalize_code

logger = logging.getLogger(__name__)


class AttributionSource:
    """Namespace a code was matched in."""
    PARTNER_CODE = "partner_code"
    PRE_REGISTRATION = "pre_registration"
    CUSTOMER_CODE = "customer_code"
    REFERRAL_RECORD = "referral_record"


@dataclass
class Attribution:
    """Resolved referrer for an inbound code."""
    referral_type: ReferralType
    referrer_id: uuid.UUID
    code: str
    referrer: Union[Partner, Customer]
    source: str
    referral: Optional[Referral] = None

    @property
    def referrer_name(self) -> str:
        if isinstance(self.referrer, Partner):
            return self.referrer.display_name
        return self.referrer.full_name


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AttributionService:
    """Resolves inbound referral codes to their owning account."""

    def __init__(
        self,
        partners: PartnerRepository,
        pre_registrations: PreRegistrationCodeRepository,
        customers: CustomerRepository,
        referrals: ReferralRepository,
    ):
        self.partners = partners
        self.pre_registrations = pre_registrations
        self.customers = customers
        self.referrals = referrals

    async def resolve(
        self,
        code: Optional[str],
        referee_email: Optional[str] = None,
        referee_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Attribution]:
        """
        Resolve a code to the account that should be credited.

        Args:
            code: Code as entered by the user (any case, may be padded)
            referee_email: Email of the account being created, to block self-referral
            referee_id: Primary key of the account being created, if already known
            now: Clock override for expiry checks

        Returns:
            Attribution, or None for "no referral"
        """
        code = normalize_code(code)
        if not code:
            return None

        now = now or datetime.now(timezone.utc)

        attribution = await self._lookup(code, now)
        if attribution is None:
            return None

        if self._is_self_referral(attribution, referee_email, referee_id):
            logger.info(f"Ignoring self-referral with code {code}")
            return None

        logger.info(
            f"Attributed code {code} to {attribution.referral_type.value} "
            f"{attribution.referrer_id} via {attribution.source}"
        )
        return attribution

    async def find_owner(self, code: Optional[str]) -> Optional[Attribution]:
        """
        Owner of a code regardless of partner status or invite expiry.

        Used to audit stored attributions, not to attribute new signups.
        """
        code = normalize_code(code)
        if not code:
            return None
        return await self._lookup(code, datetime.now(timezone.utc), strict=False)

    async def _lookup(self, code: str, now: datetime, strict: bool = True) -> Optional[Attribution]:
        # 1. Partner personal code
        partner = await self.partners.get_by_referral_code(code)
        if partner:
            if strict and not partner.can_receive_referrals:
                logger.info(f"Code {code} belongs to inactive or unapproved partner {partner.id}")
                return None
            return Attribution(
                referral_type=ReferralType.PARTNER,
                referrer_id=partner.id,
                code=code,
                referrer=partner,
                source=AttributionSource.PARTNER_CODE,
            )

        # 2. Pre-registration code assigned to a partner
        pre_registration = await self.pre_registrations.get_by_code(code)
        if pre_registration:
            owner = pre_registration.partner
            if (
                owner is None
                or (strict and pre_registration.status != PreRegistrationStatus.USED.value)
                or (strict and not owner.can_receive_referrals)
            ):
                logger.info(f"Pre-registration code {code} is not assigned to an active partner")
                return None
            return Attribution(
                referral_type=ReferralType.PARTNER,
                referrer_id=owner.id,
                code=code,
                referrer=owner,
                source=AttributionSource.PRE_REGISTRATION,
            )

        # 3. Customer personal code
        customer = await self.customers.get_by_referral_code(code)
        if customer:
            if strict and not customer.is_registered:
                logger.info(f"Code {code} belongs to unregistered customer {customer.id}")
                return None
            return Attribution(
                referral_type=ReferralType.CUSTOMER,
                referrer_id=customer.id,
                code=code,
                referrer=customer,
                source=AttributionSource.CUSTOMER_CODE,
            )

        # 4. Invite record
        referral = await self.referrals.get_by_code(code)
        if referral:
            return await self._from_referral(referral, now, strict)

        logger.info(f"Referral code {code} did not match any account")
        return None

    async def _from_referral(self, referral: Referral, now: datetime, strict: bool = True) -> Optional[Attribution]:
        code = referral.referral_code
        expires_at = as_utc(referral.expires_at)
        if strict and (
            referral.status == ReferralStatus.EXPIRED.value
            or (expires_at is not None and now >= expires_at)
        ):
            logger.info(f"Referral code {code} has expired")
            return None

        if referral.referrer_type == ReferralType.PARTNER.value:
            partner = await self.partners.get_by_id(referral.referrer_id)
            if partner is None or (strict and not partner.can_receive_referrals):
                logger.info(f"Referral {code} owner partner {referral.referrer_id} cannot receive referrals")
                return None
            owner, referral_type = partner, ReferralType.PARTNER
        else:
            customer = await self.customers.get_by_id(referral.referrer_id)
            if customer is None or (strict and not customer.is_registered):
                logger.info(f"Referral {code} owner customer {referral.referrer_id} cannot receive referrals")
                return None
            owner, referral_type = customer, ReferralType.CUSTOMER

        return Attribution(
            referral_type=referral_type,
            referrer_id=owner.id,
            code=code,
            referrer=owner,
            source=AttributionSource.REFERRAL_RECORD,
            referral=referral,
        )

    @staticmethod
    def _is_self_referral(
        attribution: Attribution,
        referee_email: Optional[str],
        referee_id: Optional[uuid.UUID],
    ) -> bool:
        if referee_id is not None and attribution.referrer_id == referee_id:
            return True
        owner_email = attribution.referrer.email
        return bool(referee_email and owner_email and owner_email.lower() == referee_email.strip().lower())
