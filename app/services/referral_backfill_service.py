"""
Backfill personal referral codes for accounts created before codes were
issued at signup. Each new code also gets its evergreen referral record.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.customer import ReferralType
from app.repositories.customer_repository import CustomerRepository
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.referral_code_service import ReferralCodeService
from app.services.referral_tracker import ReferralTracker

logger = logging.getLogger(__name__)


class ReferralBackfillService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.partners = PartnerRepository(db)
        self.customers = CustomerRepository(db)
        referrals = ReferralRepository(db)
        self.codes = ReferralCodeService(self.partners, PreRegistrationCodeRepository(db), self.customers, referrals)
        self.tracker = ReferralTracker(referrals)

    async def backfill(self, limit: int = 500, dry_run: bool = False) -> dict:
        """Issue codes to up to `limit` partners and `limit` customers lacking one."""
        partners = await self.partners.find_without_code(limit=limit)
        customers = await self.customers.find_without_code(limit=limit)

        issued = {"partners": 0, "customers": 0, "dry_run": dry_run}
        for partner in partners:
            code = await self.codes.issue_partner_code(partner.business_name)
            logger.info(f"{'[dry-run] ' if dry_run else ''}Partner {partner.id} -> {code}")
            if not dry_run:
                partner.personal_referral_code = code
                await self.db.flush()
                await self.tracker.create_record(code, ReferralType.PARTNER.value, partner.id, is_personal=True)
            issued["partners"] += 1

        for customer in customers:
            code = await self.codes.issue_customer_code()
            logger.info(f"{'[dry-run] ' if dry_run else ''}Customer {customer.id} -> {code}")
            if not dry_run:
                customer.personal_referral_code = code
                await self.db.flush()
                await self.tracker.create_record(code, ReferralType.CUSTOMER.value, customer.id, is_personal=True)
            issued["customers"] += 1

        return issued
