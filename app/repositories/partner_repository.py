"""
Partner repositories.

Data access for partners and pre-registration codes.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.partner import Partner, PreRegistrationCode, PreRegistrationStatus
from app.repositories.base import BaseRepository


class PartnerRepository(BaseRepository[Partner]):
    """Partner repository with referral-code queries."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Partner, session)

    async def get_by_referral_code(self, code: str) -> Optional[Partner]:
        return await self.get_by(personal_referral_code=code)

    async def get_by_email(self, email: str) -> Optional[Partner]:
        result = await self.session.execute(
            select(Partner).where(func.lower(Partner.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        result = await self.session.execute(
            select(Partner.id).where(Partner.personal_referral_code == code)
        )
        return result.first() is not None

    async def find_referred(self, limit: int = 1000, offset: int = 0) -> list[Partner]:
        """Partners that recorded a referral code at signup."""
        result = await self.session.execute(
            select(Partner)
            .where(Partner.referral_code_used.is_not(None))
            .order_by(Partner.created_at)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_without_code(self, limit: int = 500) -> list[Partner]:
        result = await self.session.execute(
            select(Partner)
            .where(Partner.personal_referral_code.is_(None))
            .order_by(Partner.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())


class PreRegistrationCodeRepository(BaseRepository[PreRegistrationCode]):
    """Pre-registration code repository with atomic counters."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(PreRegistrationCode, session)

    async def get_by_code(self, code: str) -> Optional[PreRegistrationCode]:
        # Counters and status are updated in SQL; drop any stale identity-map copy
        result = await self.session.execute(
            select(PreRegistrationCode)
            .where(PreRegistrationCode.code == code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        result = await self.session.execute(
            select(PreRegistrationCode.id).where(PreRegistrationCode.code == code)
        )
        return result.first() is not None

    async def increment_scans(self, code: str) -> Optional[int]:
        """
        Atomically bump the scan counter.

        Returns the new count, or None when the code does not exist.
        """
        result = await self.session.execute(
            update(PreRegistrationCode)
            .where(PreRegistrationCode.code == code)
            .values(
                scans_count=PreRegistrationCode.scans_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(PreRegistrationCode.scans_count)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def mark_used(self, code: str, partner_id: uuid.UUID) -> Optional[int]:
        """
        Claim the code for a partner and atomically bump conversions.

        Returns the new conversion count, or None when the code does not exist.
        """
        result = await self.session.execute(
            update(PreRegistrationCode)
            .where(PreRegistrationCode.code == code)
            .values(
                status=PreRegistrationStatus.USED.value,
                partner_id=partner_id,
                conversions_count=PreRegistrationCode.conversions_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(PreRegistrationCode.conversions_count)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def expire_past_due(self, now: datetime) -> int:
        """Expire ACTIVE codes whose expiration_date has passed."""
        result = await self.session.execute(
            update(PreRegistrationCode)
            .where(
                PreRegistrationCode.status == PreRegistrationStatus.ACTIVE.value,
                PreRegistrationCode.expiration_date.is_not(None),
                PreRegistrationCode.expiration_date <= now,
            )
            .values(status=PreRegistrationStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
