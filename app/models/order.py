import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, JSONType


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class FulfillmentStatus(str, Enum):
    """Print fulfilment status (driven by the fulfilment provider)."""
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    PRINTING = "PRINTING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Order(Base):
    """
    Storefront order.

    Amounts are minor currency units. Payment and fulfilment lifecycles are
    owned by external providers; this row mirrors what their webhooks report.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_orders_customer_email', 'customer_email'),
        Index('ix_orders_payment_status', 'payment_status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        primary_key=True,
        default=uuid.uuid4
    )
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)

    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(), nullable=True)

    # Amounts (minor units)
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False, comment="Pre-discount item total")
    discount_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credit_applied: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shipping_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="GBP", nullable=False)

    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.PENDING.value,
        nullable=False
    )
    fulfillment_status: Mapped[str] = mapped_column(
        String(20),
        default=FulfillmentStatus.PENDING.value,
        nullable=False
    )

    referral_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    items: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
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
        return self.payment_status == PaymentStatus.PAID.value

    def __repr__(self) -> str:
        return f"<Order(number={self.order_number}, status={self.payment_status})>"
