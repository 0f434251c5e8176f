"""Pydantic schemas for commissions."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema


class CommissionResponse(BaseResponseSchema):
    id: UUID
    order_id: UUID
    order_amount: int
    recipient_type: str
    recipient_id: UUID
    recipient_email: Optional[str] = None
    customer_id: Optional[UUID] = None
    referral_code: Optional[str] = None
    commission_type: str
    rate_type: str
    commission_rate: Decimal
    commission_amount: int
    status: str
    is_paid: bool
    paid_at: Optional[datetime] = None
    paid_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class CommissionListResponse(BaseModel):
    items: List[CommissionResponse]
    total: int
    limit: int
    offset: int


class MarkPaidRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)
