"""Referral lifecycle models.

A Referral row is created when a code is issued: one per account for its
personal code, plus one per invite shared with a specific person. It moves
forward through INVITED -> ACCESSED -> ACCEPTED -> APPLIED and can expire
from any non-terminal state.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, JSONType


class ReferralStatus(str, Enum):
    """Referral lifecycle status."""
    INVITED = "INVITED"      # Code issued/shared
    ACCESSED = "ACCESSED"    # Landing page viewed or QR scanned
    ACCEPTED = "ACCEPTED"    # Referee completed signup
    APPLIED = "APPLIED"      # Referee's first paid order (terminal)
    EXPIRED = "EXPIRED"      # Expiry window elapsed (terminal)


class ReferralEventType(str, Enum):
    """Analytics event types."""
    QR_SCAN = "QR_SCAN"
    PAGE_VIEW = "PAGE_VIEW"
    LINK_CLICK = "LINK_CLICK"
    SIGNUP = "SIGNUP"
    ORDER_COMPLETE = "ORDER_COMPLETE"


class Referral(Base):
    """One referral attempt from a specific shared code."""
    __tablename__ = "referrals"
    __table_args__ = (
        Index('ix_referrals_referrer', 'referrer_type', 'referrer_id'),
        Index('ix_referrals_status', 'status'),
        Index('ix_referrals_expires_at', 'expires_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        primary_key=True,
        default=uuid.uuid4
    )

    referral_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    # Owner of the code (partners.id or customers.id)
    referrer_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="PARTNER, CUSTOMER")
    referrer_id: Mapped[uuid.UUID] = mapped_column(UUIDType(), nullable=False)
    is_personal: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Record for the owner's personal code rather than a single invite"
    )

    # Person the code was shared with
    referee_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    referee_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    referee_customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ReferralStatus.INVITED.value,
        nullable=False,
        comment="INVITED, ACCESSED, ACCEPTED, APPLIED, EXPIRED"
    )

    # Partner-facing analytics; incremented on every view, not only on transitions
    scan_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Order that moved the referral to APPLIED
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(), nullable=True)

    # Status history
    accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # NULL for personal codes, which never expire
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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

    events: Mapped[List["ReferralEvent"]] = relationship(
        "ReferralEvent",
        back_populates="referral",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Referral(code={self.referral_code}, status={self.status})>"


class ReferralEvent(Base):
    """Append-only analytics event for a referral."""
    __tablename__ = "referral_events"
    __table_args__ = (
        Index('ix_referral_events_referral_id', 'referral_id'),
        Index('ix_referral_events_created', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        primary_key=True,
        default=uuid.uuid4
    )
    referral_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        ForeignKey("referrals.id", ondelete="CASCADE"),
        nullable=False
    )
    event_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="QR_SCAN, PAGE_VIEW, LINK_CLICK, SIGNUP, ORDER_COMPLETE"
    )
    event_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    referral: Mapped["Referral"] = relationship("Referral", back_populates="events")

    def __repr__(self) -> str:
        return f"<ReferralEvent(referral={self.referral_id}, type={self.event_type})>"
