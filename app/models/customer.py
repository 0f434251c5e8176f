import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class ReferralType(str, Enum):
    """Who referred an account. Organic signups store NULL."""
    PARTNER = "PARTNER"
    CUSTOMER = "CUSTOMER"


class Customer(Base):
    """
    Storefront customer account.

    The referral fields are written once at signup and are back-references
    only: `referrer_id` is the primary key of the partner or customer whose
    personal code matched `referral_code_used`.
    """
    __tablename__ = "customers"
    __table_args__ = (
        Index('ix_customers_personal_referral_code', 'personal_referral_code', unique=True),
        Index('ix_customers_referrer', 'referral_type', 'referrer_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        primary_key=True,
        default=uuid.uuid4
    )

    # Identity provider subject
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    is_registered: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Code this customer shares with friends
    personal_referral_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Attribution (set once at signup)
    referral_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="PARTNER, CUSTOMER or NULL for organic"
    )
    referrer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(),
        nullable=True,
        comment="partners.id or customers.id of the code owner"
    )
    referral_code_used: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    referral_applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    referral_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(),
        nullable=True,
        comment="First paid order the referral applied to"
    )

    # Store credit earned by referring friends (minor units)
    current_credit_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_referred(self) -> bool:
        return self.referral_type is not None and self.referrer_id is not None

    def __repr__(self) -> str:
        return f"<Customer(email={self.email}, referral_type={self.referral_type})>"
