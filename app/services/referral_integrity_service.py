"""
Referral Integrity Service

Audits stored attributions. A customer's or partner's referrer_id must be the
primary key of the account that owns referral_code_used; older records may
instead hold a surrogate key or the wrong referral_type. The repair pass
re-resolves each code and rewrites the pair to the canonical owner.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.customer import ReferralType
from app.repositories.customer_repository import CustomerRepository
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.attribution_service import AttributionService

logger = logging.getLogger(__name__)


class MismatchReason:
    WRONG_REFERRER_ID = "wrong_referrer_id"
    WRONG_REFERRAL_TYPE = "wrong_referral_type"
    UNRESOLVABLE_CODE = "unresolvable_code"


@dataclass
class ReferrerMismatch:
    account_type: str
    account_id: uuid.UUID
    email: str
    referral_code_used: str
    stored_referral_type: Optional[str]
    stored_referrer_id: Optional[uuid.UUID]
    expected_referral_type: Optional[str]
    expected_referrer_id: Optional[uuid.UUID]
    reason: str

    @property
    def is_repairable(self) -> bool:
        return self.expected_referrer_id is not None


class ReferralIntegrityService:

    def __init__(self, db: AsyncSession, batch_size: int = 500):
        self.db = db
        self.batch_size = batch_size
        self.customers = CustomerRepository(db)
        self.partners = PartnerRepository(db)
        self.attribution = AttributionService(
            self.partners,
            PreRegistrationCodeRepository(db),
            self.customers,
            ReferralRepository(db),
        )

    def _repository(self, account_type: str):
        if account_type == ReferralType.PARTNER.value:
            return self.partners
        return self.customers

    async def find_mismatches(self, limit: Optional[int] = None) -> tuple[int, List[ReferrerMismatch]]:
        """
        Scan referred customers, then referred partners, for attributions that
        disagree with code ownership.

        Returns:
            Tuple of (accounts_checked, mismatches)
        """
        checked = 0
        mismatches: List[ReferrerMismatch] = []

        for account_type in (ReferralType.CUSTOMER.value, ReferralType.PARTNER.value):
            repository = self._repository(account_type)
            offset = 0
            while True:
                batch = await repository.find_referred(limit=self.batch_size, offset=offset)
                if not batch:
                    break
                for account in batch:
                    checked += 1
                    mismatch = await self._check(account_type, account)
                    if mismatch:
                        mismatches.append(mismatch)
                    if limit and checked >= limit:
                        return checked, mismatches
                offset += len(batch)

        return checked, mismatches

    async def _check(self, account_type: str, account) -> Optional[ReferrerMismatch]:
        owner = await self.attribution.find_owner(account.referral_code_used)

        if owner is None:
            reason = MismatchReason.UNRESOLVABLE_CODE
        elif owner.referrer_id != account.referrer_id:
            reason = MismatchReason.WRONG_REFERRER_ID
        elif owner.referral_type.value != account.referral_type:
            reason = MismatchReason.WRONG_REFERRAL_TYPE
        else:
            return None

        return ReferrerMismatch(
            account_type=account_type,
            account_id=account.id,
            email=account.email,
            referral_code_used=account.referral_code_used,
            stored_referral_type=account.referral_type,
            stored_referrer_id=account.referrer_id,
            expected_referral_type=owner.referral_type.value if owner else None,
            expected_referrer_id=owner.referrer_id if owner else None,
            reason=reason,
        )

    async def repair(self, dry_run: bool = True) -> dict:
        """
        Rewrite mismatched attributions to the code owner's primary key.

        Unresolvable codes are reported, never cleared.
        """
        checked, mismatches = await self.find_mismatches()
        fixed = 0
        for mismatch in mismatches:
            label = f"{mismatch.account_type.title()} {mismatch.account_id}"
            if not mismatch.is_repairable:
                logger.warning(f"{label}: code {mismatch.referral_code_used} has no owner, leaving as is")
                continue

            logger.info(
                f"{'[dry-run] ' if dry_run else ''}{label}: "
                f"{mismatch.stored_referral_type}/{mismatch.stored_referrer_id} -> "
                f"{mismatch.expected_referral_type}/{mismatch.expected_referrer_id}"
            )
            if not dry_run:
                await self._repository(mismatch.account_type).update(
                    mismatch.account_id,
                    referral_type=mismatch.expected_referral_type,
                    referrer_id=mismatch.expected_referrer_id,
                )
                fixed += 1

        return {
            "checked": checked,
            "mismatched": len(mismatches),
            "fixed": fixed,
            "unresolved": sum(1 for m in mismatches if not m.is_repairable),
            "dry_run": dry_run,
        }
