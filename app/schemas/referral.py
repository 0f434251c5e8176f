"""Pydantic schemas for referral records, landing pages and analytics."""

from datetime import datetime
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class ReferralCreate(BaseCreateSchema):
    """Invite a specific person with a fresh code."""
    referee_email: Optional[EmailStr] = Field(None, alias="refereeEmail")
    referee_name: Optional[str] = Field(None, max_length=200, alias="refereeName")
    notes: Optional[str] = Field(None, max_length=2000)


class ReferralResponse(BaseResponseSchema):
    id: UUID
    referral_code: str
    referrer_type: str
    referrer_id: UUID
    is_personal: bool
    referee_name: Optional[str] = None
    referee_email: Optional[str] = None
    referee_customer_id: Optional[UUID] = None
    status: str
    scan_count: int
    last_viewed_at: Optional[datetime] = None
    accessed_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    order_id: Optional[UUID] = None
    created_at: datetime


class ReferralListResponse(BaseModel):
    items: List[ReferralResponse]
    total: int
    status_counts: Dict[str, int]


class ReferrerInfo(BaseModel):
    """Public metadata shown on a landing page."""
    referral_type: str
    name: str
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    logo_url: Optional[str] = None
    avatar_url: Optional[str] = None


class ReferralLandingResponse(BaseModel):
    code: str
    valid: bool = True
    status: Optional[str] = None
    referrer: Optional[ReferrerInfo] = None
    scan_count: Optional[int] = None
    # Unclaimed pre-registration codes invite a business to sign up
    is_pre_registration: bool = False
    signup_url: Optional[str] = None


class ReferralAnalyticsResponse(BaseModel):
    """Referral performance for the calling account."""
    total_referrals: int
    status_counts: Dict[str, int]
    total_scans: int
    referred_accounts: int
    conversion_rate: float
    commissions_count: int
    total_earned: int
    total_paid: int
    pending_payout: int


class ReferrerMismatchResponse(BaseModel):
    account_type: str
    account_id: UUID
    email: str
    referral_code_used: str
    stored_referral_type: Optional[str] = None
    stored_referrer_id: Optional[UUID] = None
    expected_referral_type: Optional[str] = None
    expected_referrer_id: Optional[UUID] = None
    reason: str


class ReferralIntegrityResponse(BaseModel):
    checked: int
    mismatches: List[ReferrerMismatchResponse]


class PreRegistrationCodeCreate(BaseCreateSchema):
    """Bulk-issue printed partner acquisition codes."""
    quantity: int = Field(1, ge=1, le=500)
    prefix: Optional[str] = Field(None, min_length=1, max_length=10)
    business_category: Optional[str] = Field(None, max_length=100, alias="businessCategory")
    marketing_campaign: Optional[str] = Field(None, max_length=255, alias="marketingCampaign")
    notes: Optional[str] = None
    expiration_date: Optional[datetime] = Field(None, alias="expirationDate")


class PreRegistrationCodeResponse(BaseResponseSchema):
    id: UUID
    code: str
    status: str
    business_category: Optional[str] = None
    marketing_campaign: Optional[str] = None
    expiration_date: Optional[datetime] = None
    partner_id: Optional[UUID] = None
    scans_count: int
    conversions_count: int
    created_at: datetime
