"""
Referral repository.

Data access layer for referral records and their analytics events. Counters
are incremented with single UPDATE statements so concurrent scans of the same
shared link never lose an increment.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.referral import Referral, ReferralEvent, ReferralStatus
from app.repositories.base import BaseRepository


TERMINAL_STATUSES = (ReferralStatus.APPLIED.value, ReferralStatus.EXPIRED.value)


class ReferralRepository(BaseRepository[Referral]):
    """Referral repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Referral, session)

    async def get_by_code(self, code: str) -> Optional[Referral]:
        """Load a referral, overwriting any stale identity-map copy."""
        result = await self.session.execute(
            select(Referral)
            .where(Referral.referral_code == code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        result = await self.session.execute(
            select(Referral.id).where(Referral.referral_code == code)
        )
        return result.first() is not None

    async def increment_scan(self, code: str, viewed_at: datetime) -> Optional[int]:
        """
        Atomically bump scan_count for a code.

        Returns the new count, or None when the code does not exist.
        """
        result = await self.session.execute(
            update(Referral)
            .where(Referral.referral_code == code)
            .values(
                scan_count=Referral.scan_count + 1,
                last_viewed_at=viewed_at,
            )
            .returning(Referral.scan_count)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def find_for_referrer(
        self,
        referrer_type: str,
        referrer_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Referral]:
        filters = {"referrer_type": referrer_type, "referrer_id": referrer_id}
        if status:
            filters["status"] = status
        return await self.find_all(limit=limit, offset=offset, **filters)

    async def status_counts(
        self,
        referrer_type: Optional[str] = None,
        referrer_id: Optional[uuid.UUID] = None,
    ) -> dict[str, int]:
        """Referral counts grouped by status, optionally for one referrer."""
        stmt = select(Referral.status, func.count(Referral.id)).group_by(Referral.status)
        if referrer_type:
            stmt = stmt.where(Referral.referrer_type == referrer_type)
        if referrer_id:
            stmt = stmt.where(Referral.referrer_id == referrer_id)

        result = await self.session.execute(stmt)
        counts = {status.value: 0 for status in ReferralStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

    async def total_scans(self, referrer_type: str, referrer_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Referral.scan_count), 0)).where(
                Referral.referrer_type == referrer_type,
                Referral.referrer_id == referrer_id,
            )
        )
        return int(result.scalar() or 0)

    async def expire_stale(self, now: datetime) -> int:
        """Bulk-expire non-terminal referrals whose window has elapsed."""
        result = await self.session.execute(
            update(Referral)
            .where(
                Referral.status.not_in(TERMINAL_STATUSES),
                Referral.expires_at <= now,
            )
            .values(
                status=ReferralStatus.EXPIRED.value,
                expired_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def add_event(
        self,
        referral_id: uuid.UUID,
        event_type: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        event_data: Optional[dict] = None,
    ) -> ReferralEvent:
        event = ReferralEvent(
            referral_id=referral_id,
            event_type=event_type,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            event_data=event_data,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def count_events(self, referral_id: uuid.UUID, event_type: Optional[str] = None) -> int:
        stmt = select(func.count(ReferralEvent.id)).where(ReferralEvent.referral_id == referral_id)
        if event_type:
            stmt = stmt.where(ReferralEvent.event_type == event_type)
        result = await self.session.execute(stmt)
        return result.scalar() or 0
