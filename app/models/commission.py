"""Commission and customer credit records.

One row per paid order tied to a referral. `order_id` is unique, which makes
commission creation idempotent across retried payment webhooks.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, JSONType


class CommissionStatus(str, Enum):
    """Commission payout status."""
    PENDING = "PENDING"       # Calculated, awaiting payout
    APPROVED = "APPROVED"     # Approved (customer credits are auto-approved)
    PAID = "PAID"             # Marked paid by an admin
    CANCELLED = "CANCELLED"   # Order refunded


class CommissionType(str, Enum):
    PARTNER_COMMISSION = "PARTNER_COMMISSION"
    CUSTOMER_CREDIT = "CUSTOMER_CREDIT"


class RateType(str, Enum):
    INITIAL = "INITIAL"       # Referred account's first paid order
    LIFETIME = "LIFETIME"     # Every order after the first


class Commission(Base):
    """Amount owed to a referring partner or customer for one paid order."""
    __tablename__ = "commissions"
    __table_args__ = (
        UniqueConstraint("order_id", name="uq_commissions_order_id"),
        Index('ix_commissions_recipient', 'recipient_type', 'recipient_id'),
        Index('ix_commissions_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        primary_key=True,
        default=uuid.uuid4
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    order_amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Pre-discount subtotal in minor units"
    )

    # Who is owed the amount
    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="PARTNER, CUSTOMER")
    recipient_id: Mapped[uuid.UUID] = mapped_column(UUIDType(), nullable=False)
    recipient_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Referred account whose order earned the commission
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(), nullable=True)
    referral_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Calculation
    commission_type: Mapped[str] = mapped_column(String(30), nullable=False)
    rate_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="INITIAL, LIFETIME")
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        comment="Percentage applied"
    )
    commission_amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Minor units"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=CommissionStatus.PENDING.value,
        nullable=False,
        comment="PENDING, APPROVED, PAID, CANCELLED"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

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
    def is_paid(self) -> bool:
        return self.status == CommissionStatus.PAID.value

    def __repr__(self) -> str:
        return f"<Commission(order={self.order_id}, recipient={self.recipient_id}, amount={self.commission_amount})>"
