"""Pydantic schemas for customer and partner signup."""

from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class CustomerSignupRequest(BaseCreateSchema):
    """Customer signup from the storefront."""
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100, alias="firstName")
    last_name: str = Field(..., min_length=1, max_length=100, alias="lastName")
    phone: Optional[str] = Field(None, max_length=30)
    user_id: Optional[str] = Field(None, max_length=100, alias="userId")
    referral_code: Optional[str] = Field(None, max_length=50, alias="referralCode")

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class PartnerSignupRequest(BaseCreateSchema):
    """Partner signup, optionally claiming a printed pre-registration code."""
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100, alias="firstName")
    last_name: str = Field(..., min_length=1, max_length=100, alias="lastName")
    phone: Optional[str] = Field(None, max_length=30)
    user_id: Optional[str] = Field(None, max_length=100, alias="userId")
    business_name: Optional[str] = Field(None, max_length=200, alias="businessName")
    business_type: Optional[str] = Field(None, max_length=50, alias="businessType")
    business_phone: Optional[str] = Field(None, max_length=30, alias="businessPhone")
    business_website: Optional[str] = Field(None, max_length=500, alias="businessWebsite")
    pre_registration_code: Optional[str] = Field(None, max_length=50, alias="preRegCode")
    referral_code: Optional[str] = Field(None, max_length=50, alias="referralCode")

    @field_validator('email')
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class SignupResponse(BaseResponseSchema):
    """Created account with its shareable code and attribution outcome."""
    id: UUID
    account_type: str
    email: str
    personal_referral_code: str
    referral_type: Optional[str] = None
    referrer_id: Optional[UUID] = None
    referral_code_used: Optional[str] = None
    share_url: str
