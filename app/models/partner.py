"""Partner models for the referral channel.

Partners are groomers, breeders, vets and salons who share referral codes
with their clients and earn a commission on the orders those clients place.

Pre-registration codes are printed by admins (QR flyers) before a partner
has signed up; when a partner registers with one, the code becomes that
partner's personal referral code.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType


# ==================== ENUMS (stored as VARCHAR) ====================

class ApprovalStatus(str, Enum):
    """Partner approval status."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PreRegistrationStatus(str, Enum):
    """Pre-registration code status."""
    ACTIVE = "ACTIVE"              # Printed, not yet claimed
    USED = "USED"                  # Claimed by a partner at signup
    EXPIRED = "EXPIRED"
    DEACTIVATED = "DEACTIVATED"    # Withdrawn by an admin


# ==================== MODELS ====================

class Partner(Base):
    """
    Business partner account.

    `personal_referral_code` is owned by exactly one partner. Customers that
    sign up with it store this partner's `id` as their `referrer_id`.
    """
    __tablename__ = "partners"
    __table_args__ = (
        Index('ix_partners_personal_referral_code', 'personal_referral_code', unique=True),
        Index('ix_partners_is_active', 'is_active'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        primary_key=True,
        default=uuid.uuid4
    )

    # Identity provider subject (optional until the partner logs in)
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Business
    business_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    business_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="groomer, breeder, vet, salon, mobile, independent, chain"
    )
    business_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    business_website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    logo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Referral code this partner shares
    personal_referral_code: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Partner's own referral code to share"
    )

    # Who referred this partner (set once at signup)
    referral_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    referrer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(), nullable=True)
    referral_code_used: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    approval_status: Mapped[str] = mapped_column(
        String(20),
        default=ApprovalStatus.APPROVED.value,
        nullable=False,
        comment="PENDING, APPROVED, REJECTED"
    )

    # Commission Rates (percentages); NULL falls back to the configured default
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        comment="Rate for a referred customer's first paid order"
    )
    lifetime_commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        comment="Rate for a referred customer's repeat orders"
    )

    # Timestamps
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
    def display_name(self) -> str:
        return self.business_name or f"{self.first_name} {self.last_name}".strip()

    @property
    def can_receive_referrals(self) -> bool:
        """Only active, approved partners can be credited with a referral."""
        return self.is_active and self.approval_status == ApprovalStatus.APPROVED.value

    def __repr__(self) -> str:
        return f"<Partner(code={self.personal_referral_code}, name={self.display_name})>"


class PreRegistrationCode(Base):
    """
    Partner acquisition code printed before the partner signs up.

    Tracks QR scans and conversions for marketing campaigns.
    """
    __tablename__ = "pre_registration_codes"
    __table_args__ = (
        Index('ix_pre_registration_codes_status', 'status'),
        Index('ix_pre_registration_codes_partner_id', 'partner_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(),
        primary_key=True,
        default=uuid.uuid4
    )

    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=PreRegistrationStatus.ACTIVE.value,
        nullable=False,
        comment="ACTIVE, USED, EXPIRED, DEACTIVATED"
    )

    business_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    marketing_campaign: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Set when a partner signs up with the code
    partner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(),
        ForeignKey("partners.id", ondelete="SET NULL"),
        nullable=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Analytics counters (incremented atomically in SQL)
    scans_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    conversions_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

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

    partner: Mapped[Optional["Partner"]] = relationship("Partner", lazy="selectin")

    def __repr__(self) -> str:
        return f"<PreRegistrationCode(code={self.code}, status={self.status})>"
