"""
Customer repository.

Data access for customer accounts, including the attribution back-references
and the atomic credit balance.
"""

import uuid
from typing import Optional

from sqlalchemy import case, select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.customer import Customer
from app.repositories.base import BaseRepository


class CustomerRepository(BaseRepository[Customer]):
    """Customer repository with referral queries."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Customer, session)

    async def get_by_referral_code(self, code: str) -> Optional[Customer]:
        return await self.get_by(personal_referral_code=code)

    async def get_by_email(self, email: str) -> Optional[Customer]:
        result = await self.session.execute(
            select(Customer).where(func.lower(Customer.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        result = await self.session.execute(
            select(Customer.id).where(Customer.personal_referral_code == code)
        )
        return result.first() is not None

    async def find_referred(self, limit: int = 1000, offset: int = 0) -> list[Customer]:
        """Customers that recorded a referral code at signup."""
        result = await self.session.execute(
            select(Customer)
            .where(Customer.referral_code_used.is_not(None))
            .order_by(Customer.created_at)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_without_code(self, limit: int = 500) -> list[Customer]:
        result = await self.session.execute(
            select(Customer)
            .where(
                Customer.personal_referral_code.is_(None),
                Customer.is_registered == True,  # noqa: E712
            )
            .order_by(Customer.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_referred_by(self, referral_type: str, referrer_id: uuid.UUID) -> int:
        return await self.count(referral_type=referral_type, referrer_id=referrer_id)

    async def add_credit(self, customer_id: uuid.UUID, amount: int) -> Optional[int]:
        """
        Atomically add store credit (minor units).

        Returns the new balance, or None when the customer does not exist.
        """
        result = await self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(current_credit_balance=Customer.current_credit_balance + amount)
            .returning(Customer.current_credit_balance)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def deduct_credit(self, customer_id: uuid.UUID, amount: int) -> Optional[int]:
        """
        Atomically take redeemed credit off the balance, never below zero.

        Returns the new balance, or None when the customer does not exist.
        """
        balance = Customer.current_credit_balance
        result = await self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(current_credit_balance=case((balance > amount, balance - amount), else_=0))
            .returning(Customer.current_credit_balance)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()
