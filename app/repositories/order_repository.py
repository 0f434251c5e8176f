"""
Order repository.
"""

import uuid
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import Order, PaymentStatus
from app.repositories.base import BaseRepository


class OrderRepository(BaseRepository[Order]):

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Order, session)

    async def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        return await self.get_by(payment_intent_id=payment_intent_id)

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        return await self.get_by(order_number=order_number)

    async def has_other_paid_order(self, customer_email: str, exclude_order_id: uuid.UUID) -> bool:
        """True when the email already has a paid order other than the given one."""
        result = await self.session.execute(
            select(func.count(Order.id)).where(
                func.lower(Order.customer_email) == customer_email.lower(),
                Order.payment_status == PaymentStatus.PAID.value,
                Order.id != exclude_order_id,
            )
        )
        return (result.scalar() or 0) > 0
