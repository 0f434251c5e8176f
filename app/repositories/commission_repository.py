"""
Commission repository.

Data access for partner commissions and customer credits.
"""

import uuid
from typing import Optional

from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.commission import Commission, CommissionStatus
from app.repositories.base import BaseRepository


class CommissionRepository(BaseRepository[Commission]):
    """Commission repository with payout queries."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Commission, session)

    async def get_by_order(self, order_id: uuid.UUID) -> Optional[Commission]:
        return await self.get_by(order_id=order_id)

    async def create_once(self, **data) -> Optional[Commission]:
        """
        Insert a commission inside a savepoint.

        Returns None when another request already created the commission for
        this order (unique order_id), leaving the outer transaction usable.
        """
        try:
            async with self.session.begin_nested():
                commission = Commission(**data)
                self.session.add(commission)
        except IntegrityError:
            return None
        return commission

    async def list_filtered(
        self,
        is_paid: Optional[bool] = None,
        recipient_type: Optional[str] = None,
        recipient_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Commission], int]:
        """
        List commissions newest first.

        Returns:
            Tuple of (items, total_count)
        """
        conditions = []
        if is_paid is True:
            conditions.append(Commission.status == CommissionStatus.PAID.value)
        elif is_paid is False:
            conditions.append(Commission.status != CommissionStatus.PAID.value)
        if recipient_type:
            conditions.append(Commission.recipient_type == recipient_type)
        if recipient_id:
            conditions.append(Commission.recipient_id == recipient_id)

        count_result = await self.session.execute(
            select(func.count(Commission.id)).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.session.execute(
            select(Commission)
            .where(*conditions)
            .order_by(Commission.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def totals_for_recipient(self, recipient_type: str, recipient_id: uuid.UUID) -> dict[str, int]:
        """Earned and paid amounts (minor units) for one recipient."""
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(Commission.commission_amount), 0),
                func.coalesce(
                    func.sum(case(
                        (Commission.status == CommissionStatus.PAID.value, Commission.commission_amount),
                        else_=0,
                    )),
                    0,
                ),
                func.count(Commission.id),
            ).where(
                Commission.recipient_type == recipient_type,
                Commission.recipient_id == recipient_id,
                Commission.status != CommissionStatus.CANCELLED.value,
            )
        )
        earned, paid, count = result.one()
        return {"earned": int(earned), "paid": int(paid), "count": int(count)}
