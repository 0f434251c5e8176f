"""
Referral Service

Account-facing referral operations:
- Public landing pages for shared codes (/p/{code}, /c/{code})
- Invites to specific people
- Referral analytics for partners and customers
- Admin listing and pre-registration code issuance
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.customer import Customer, ReferralType
from app.models.partner import Partner, PreRegistrationCode, PreRegistrationStatus
from app.models.referral import Referral, ReferralEventType, ReferralStatus
from app.repositories.commission_repository import CommissionRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.schemas.referral import PreRegistrationCodeCreate, ReferralCreate
from app.services.attribution_service import AttributionService, as_utc
from app.services.referral_code_service import ReferralCodeService, derive_prefix, normalize_code
from app.services.referral_errors import ReferralExpired, ReferralNotFound
from app.services.referral_tracker import ReferralTracker

logger = logging.getLogger(__name__)


@dataclass
class LandingResult:
    """What a landing page shows for a code."""
    code: str
    status: Optional[str] = None
    referrer: Optional[Union[Partner, Customer]] = None
    referral_type: Optional[str] = None
    scan_count: Optional[int] = None
    is_pre_registration: bool = False
    signup_url: Optional[str] = None
    extra: Dict = field(default_factory=dict)


class ReferralService:
    """Service for referral records, landing pages and analytics."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.partners = PartnerRepository(db)
        self.pre_registrations = PreRegistrationCodeRepository(db)
        self.customers = CustomerRepository(db)
        self.referrals = ReferralRepository(db)
        self.commissions = CommissionRepository(db)
        self.codes = ReferralCodeService(self.partners, self.pre_registrations, self.customers, self.referrals)
        self.attribution = AttributionService(self.partners, self.pre_registrations, self.customers, self.referrals)
        self.tracker = ReferralTracker(self.referrals, self.pre_registrations)

    async def _get_owner(self, referrer_type: str, referrer_id: uuid.UUID) -> Optional[Union[Partner, Customer]]:
        if referrer_type == ReferralType.PARTNER.value:
            return await self.partners.get_by_id(referrer_id)
        return await self.customers.get_by_id(referrer_id)

    # ========================================================================
    # Landing pages
    # ========================================================================

    async def open_landing(
        self,
        code: str,
        source: ReferralEventType = ReferralEventType.PAGE_VIEW,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LandingResult:
        """
        Track a landing page view and return what to display.

        Raises:
            ReferralNotFound: code is unknown or its owner is gone
            ReferralExpired: code's window has elapsed (the view is still counted)
        """
        code = normalize_code(code)
        if not code:
            raise ReferralNotFound(code)

        try:
            view = await self.tracker.record_view(code, source, ip_address=ip_address, user_agent=user_agent)
        except ReferralNotFound:
            return await self._open_pre_registration(code)

        referral = view.referral
        if view.is_expired:
            raise ReferralExpired(code)

        owner = await self._get_owner(referral.referrer_type, referral.referrer_id)
        if owner is None:
            logger.warning(f"Referral {code} owner {referral.referrer_id} no longer exists")
            raise ReferralNotFound(code)
        if isinstance(owner, Partner) and not owner.can_receive_referrals:
            logger.info(f"Landing for code {code} of inactive partner {owner.id}")
            raise ReferralNotFound(code)

        return LandingResult(
            code=code,
            status=referral.status,
            referrer=owner,
            referral_type=referral.referrer_type,
            scan_count=view.scan_count,
        )

    async def _open_pre_registration(self, code: str) -> LandingResult:
        scans = await self.tracker.record_pre_registration_scan(code)
        if scans is None:
            raise ReferralNotFound(code)

        pre_registration = await self.pre_registrations.get_by_code(code)
        expiration = as_utc(pre_registration.expiration_date)
        if pre_registration.status in (
            PreRegistrationStatus.EXPIRED.value,
            PreRegistrationStatus.DEACTIVATED.value,
        ) or (
            pre_registration.status == PreRegistrationStatus.ACTIVE.value
            and expiration is not None
            and expiration <= datetime.now(timezone.utc)
        ):
            raise ReferralExpired(code)

        partner = pre_registration.partner
        if pre_registration.status == PreRegistrationStatus.USED.value and partner is not None:
            if not partner.can_receive_referrals:
                raise ReferralNotFound(code)
            return LandingResult(
                code=code,
                status=pre_registration.status,
                referrer=partner,
                referral_type=ReferralType.PARTNER.value,
                scan_count=scans,
                is_pre_registration=True,
            )

        # Unclaimed printed code: invite the business to sign up
        return LandingResult(
            code=code,
            status=pre_registration.status,
            scan_count=scans,
            is_pre_registration=True,
            signup_url=f"{settings.FRONTEND_URL.rstrip('/')}/partners/signup?preRegCode={code}",
            extra={"business_category": pre_registration.business_category},
        )

    async def verify_code(self, code: str) -> LandingResult:
        """
        Read-only check used by signup forms. Nothing is tracked.

        Raises:
            ReferralNotFound: code does not resolve
            ReferralExpired: code matched an expired invite
        """
        code = normalize_code(code)
        attribution = await self.attribution.resolve(code)
        if attribution is not None:
            return LandingResult(
                code=code,
                status=attribution.referral.status if attribution.referral else None,
                referrer=attribution.referrer,
                referral_type=attribution.referral_type.value,
            )

        referral = await self.referrals.get_by_code(code) if code else None
        if referral is not None and (
            referral.status == ReferralStatus.EXPIRED.value
            or (referral.expires_at is not None and as_utc(referral.expires_at) <= datetime.now(timezone.utc))
        ):
            raise ReferralExpired(code)
        raise ReferralNotFound(code)

    # ========================================================================
    # Invites
    # ========================================================================

    async def create_invite(
        self,
        referrer_type: str,
        referrer_id: uuid.UUID,
        data: ReferralCreate,
    ) -> Referral:
        """
        Issue a fresh code for one referee.

        Raises:
            ValueError: the account does not exist or cannot refer
            CodeGenerationExhausted: no unique code could be issued
        """
        owner = await self._get_owner(referrer_type, referrer_id)
        if owner is None:
            raise ValueError("Referring account not found")
        if isinstance(owner, Partner):
            if not owner.can_receive_referrals:
                raise ValueError("Partner account is not active")
            prefix = derive_prefix(owner.business_name)
        else:
            prefix = settings.CUSTOMER_CODE_PREFIX

        if data.referee_email and owner.email and data.referee_email.lower() == owner.email.lower():
            raise ValueError("You cannot refer yourself")

        code = await self.codes.issue(prefix)
        referral = await self.tracker.create_record(
            code,
            referrer_type=referrer_type,
            referrer_id=owner.id,
            referee_email=data.referee_email,
            referee_name=data.referee_name,
            notes=data.notes,
        )
        logger.info(f"{referrer_type} {owner.id} created referral {code}")
        return referral

    async def list_for_referrer(
        self,
        referrer_type: str,
        referrer_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[Referral], int, Dict[str, int]]:
        items = await self.referrals.find_for_referrer(referrer_type, referrer_id, status, limit, offset)
        counts = await self.referrals.status_counts(referrer_type, referrer_id)
        total = counts.get(status, 0) if status else sum(counts.values())
        return items, total, counts

    # ========================================================================
    # Analytics
    # ========================================================================

    async def get_analytics(self, referrer_type: str, referrer_id: uuid.UUID) -> dict:
        """Referral totals for one account."""
        counts = await self.referrals.status_counts(referrer_type, referrer_id)
        total_scans = await self.referrals.total_scans(referrer_type, referrer_id)
        referred = await self.customers.count_referred_by(referrer_type, referrer_id)
        totals = await self.commissions.totals_for_recipient(referrer_type, referrer_id)

        total_referrals = sum(counts.values())
        conversion_rate = round(referred / total_scans * 100, 2) if total_scans else 0.0

        return {
            "total_referrals": total_referrals,
            "status_counts": counts,
            "total_scans": total_scans,
            "referred_accounts": referred,
            "conversion_rate": conversion_rate,
            "commissions_count": totals["count"],
            "total_earned": totals["earned"],
            "total_paid": totals["paid"],
            "pending_payout": totals["earned"] - totals["paid"],
        }

    # ========================================================================
    # Admin
    # ========================================================================

    async def list_all(
        self,
        status: Optional[str] = None,
        referrer_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[Referral], int, Dict[str, int]]:
        filters = {}
        if status:
            filters["status"] = status
        if referrer_type:
            filters["referrer_type"] = referrer_type
        items = await self.referrals.find_all(limit=limit, offset=offset, **filters)
        total = await self.referrals.count(**filters)
        counts = await self.referrals.status_counts(referrer_type=referrer_type)
        return items, total, counts

    async def issue_pre_registration_codes(
        self,
        data: PreRegistrationCodeCreate,
        created_by: str,
    ) -> List[PreRegistrationCode]:
        """
        Bulk-issue printed partner acquisition codes.

        Raises:
            CodeGenerationExhausted: a unique code could not be issued
        """
        prefix = normalize_code(data.prefix) or settings.DEFAULT_PARTNER_CODE_PREFIX
        issued = []
        for _ in range(data.quantity):
            code = await self.codes.issue(prefix)
            issued.append(await self.pre_registrations.create(
                code=code,
                status=PreRegistrationStatus.ACTIVE.value,
                business_category=data.business_category,
                marketing_campaign=data.marketing_campaign,
                notes=data.notes,
                expiration_date=data.expiration_date,
                created_by=created_by,
                scans_count=0,
                conversions_count=0,
            ))

        logger.info(f"Issued {len(issued)} pre-registration codes with prefix {prefix} for {created_by}")
        return issued
