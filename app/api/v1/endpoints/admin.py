"""
Admin API Endpoints

- Commission review and payout marking
- Referral record overview
- Pre-registration QR code issuance
- Attribution integrity report
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from app.api.deps import DB, AdminAccount
from app.models.customer import ReferralType
from app.models.referral import ReferralStatus
from app.repositories.commission_repository import CommissionRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.partner_repository import PartnerRepository
from app.schemas.commission import CommissionListResponse, CommissionResponse, MarkPaidRequest
from app.schemas.referral import (
    PreRegistrationCodeCreate,
    PreRegistrationCodeResponse,
    ReferralIntegrityResponse,
    ReferralListResponse,
    ReferralResponse,
    ReferrerMismatchResponse,
)
from app.services.commission_service import CommissionService
from app.services.referral_errors import CodeGenerationExhausted
from app.services.referral_integrity_service import ReferralIntegrityService
from app.services.referral_service import ReferralService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def _commission_service(db) -> CommissionService:
    return CommissionService(
        commissions=CommissionRepository(db),
        orders=OrderRepository(db),
        partners=PartnerRepository(db),
        customers=CustomerRepository(db),
    )


# ==================== COMMISSIONS ====================

@router.get("/commissions", response_model=CommissionListResponse)
async def list_commissions(
    admin: AdminAccount,
    db: DB,
    is_paid: Optional[bool] = Query(None),
    recipient_type: Optional[ReferralType] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List commissions, newest first."""
    items, total = await CommissionRepository(db).list_filtered(
        is_paid=is_paid,
        recipient_type=recipient_type.value if recipient_type else None,
        limit=limit,
        offset=offset,
    )
    return CommissionListResponse(
        items=[CommissionResponse.model_validate(c) for c in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/commissions/{commission_id}/mark-paid", response_model=CommissionResponse)
async def mark_commission_paid(
    commission_id: UUID,
    admin: AdminAccount,
    db: DB,
    data: Optional[MarkPaidRequest] = None,
):
    """Mark a commission as paid out. Already-paid commissions are rejected."""
    service = _commission_service(db)
    try:
        commission = await service.mark_paid(commission_id, paid_by=admin.id, notes=data.notes if data else None)
    except ValueError as e:
        if "not found" in str(e):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return commission


# ==================== REFERRALS ====================

@router.get("/referrals", response_model=ReferralListResponse)
async def list_referrals(
    admin: AdminAccount,
    db: DB,
    status_filter: Optional[ReferralStatus] = Query(None, alias="status"),
    referrer_type: Optional[ReferralType] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """All referral records with status counts."""
    items, total, counts = await ReferralService(db).list_all(
        status=status_filter.value if status_filter else None,
        referrer_type=referrer_type.value if referrer_type else None,
        limit=limit,
        offset=offset,
    )
    return ReferralListResponse(
        items=[ReferralResponse.model_validate(r) for r in items],
        total=total,
        status_counts=counts,
    )


@router.get("/referrals/integrity", response_model=ReferralIntegrityResponse)
async def referral_integrity_report(
    admin: AdminAccount,
    db: DB,
    limit: Optional[int] = Query(None, ge=1),
):
    """Customers and partners whose stored referrer disagrees with the owner of the code they used."""
    checked, mismatches = await ReferralIntegrityService(db).find_mismatches(limit=limit)
    return ReferralIntegrityResponse(
        checked=checked,
        mismatches=[ReferrerMismatchResponse(**vars(m)) for m in mismatches],
    )


# ==================== PRE-REGISTRATION CODES ====================

@router.post(
    "/pre-registration-codes",
    response_model=List[PreRegistrationCodeResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_pre_registration_codes(
    data: PreRegistrationCodeCreate,
    admin: AdminAccount,
    db: DB,
):
    """Issue printed partner acquisition codes in bulk."""
    try:
        return await ReferralService(db).issue_pre_registration_codes(data, created_by=admin.id)
    except CodeGenerationExhausted as e:
        logger.error(f"Pre-registration code issuance failed: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not issue codes, please try again."
        )
