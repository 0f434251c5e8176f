"""
Referral API Endpoints

- Public landing pages for shared codes: /p/{code} (partners), /c/{code} (customers)
- Code verification for signup forms
- Invites, listing and analytics for the signed-in partner or customer
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from app.api.deps import DB, ReferringAccount
from app.models.partner import Partner
from app.models.referral import ReferralEventType, ReferralStatus
from app.schemas.referral import (
    ReferralAnalyticsResponse,
    ReferralCreate,
    ReferralLandingResponse,
    ReferralListResponse,
    ReferralResponse,
    ReferrerInfo,
)
from app.services.referral_errors import CodeGenerationExhausted, ReferralExpired, ReferralNotFound
from app.services.referral_service import LandingResult, ReferralService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/referrals", tags=["Referrals"])

# Mounted at the application root, outside /api/v1
landing_router = APIRouter(tags=["Referral Landing"])


def _landing_response(result: LandingResult) -> ReferralLandingResponse:
    referrer = None
    owner = result.referrer
    if owner is not None:
        if isinstance(owner, Partner):
            referrer = ReferrerInfo(
                referral_type=result.referral_type,
                name=owner.display_name,
                business_name=owner.business_name,
                business_type=owner.business_type,
                logo_url=owner.logo_url,
                avatar_url=owner.avatar_url,
            )
        else:
            referrer = ReferrerInfo(referral_type=result.referral_type, name=owner.first_name)

    return ReferralLandingResponse(
        code=result.code,
        status=result.status,
        referrer=referrer,
        scan_count=result.scan_count,
        is_pre_registration=result.is_pre_registration,
        signup_url=result.signup_url,
    )


def _expired_response(code: str) -> JSONResponse:
    # Returned rather than raised so the counted view and EXPIRED transition are committed
    return JSONResponse(
        status_code=status.HTTP_410_GONE,
        content={"detail": "This referral link has expired", "code": code, "valid": False},
    )


async def _open_landing(code: str, src: Optional[str], request: Request, db: DB):
    source = ReferralEventType.QR_SCAN if src == "qr" else ReferralEventType.PAGE_VIEW
    service = ReferralService(db)
    try:
        result = await service.open_landing(
            code,
            source=source,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    except ReferralNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Referral code not found")
    except ReferralExpired as e:
        return _expired_response(e.code)

    return _landing_response(result)


@landing_router.get("/p/{code}", response_model=ReferralLandingResponse)
async def partner_landing(
    code: str,
    request: Request,
    db: DB,
    src: Optional[str] = Query(None, description="'qr' when opened from a printed QR code"),
):
    """Partner referral landing page data. Counts the view."""
    return await _open_landing(code, src, request, db)


@landing_router.get("/c/{code}", response_model=ReferralLandingResponse)
async def customer_landing(
    code: str,
    request: Request,
    db: DB,
    src: Optional[str] = Query(None, description="'qr' when opened from a printed QR code"),
):
    """Customer referral landing page data. Counts the view."""
    return await _open_landing(code, src, request, db)


@router.get("/verify/{code}", response_model=ReferralLandingResponse)
async def verify_referral_code(code: str, db: DB):
    """Check a code typed into a signup form. Does not count as a view."""
    service = ReferralService(db)
    try:
        result = await service.verify_code(code)
    except ReferralNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Referral code not found")
    except ReferralExpired:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="This referral code has expired")

    return _landing_response(result)


@router.post("", response_model=ReferralResponse, status_code=status.HTTP_201_CREATED)
async def create_referral(data: ReferralCreate, account: ReferringAccount, db: DB):
    """Invite a specific person with a new code."""
    service = ReferralService(db)
    try:
        referral = await service.create_invite(account.referral_type, account.account_uuid, data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except CodeGenerationExhausted as e:
        logger.error(f"Invite creation failed for {account.id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not create a referral code, please try again."
        )
    return referral


@router.get("", response_model=ReferralListResponse)
async def list_my_referrals(
    account: ReferringAccount,
    db: DB,
    status_filter: Optional[ReferralStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Referral records owned by the caller."""
    service = ReferralService(db)
    items, total, counts = await service.list_for_referrer(
        account.referral_type,
        account.account_uuid,
        status=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )
    return ReferralListResponse(
        items=[ReferralResponse.model_validate(r) for r in items],
        total=total,
        status_counts=counts,
    )


@router.get("/analytics", response_model=ReferralAnalyticsResponse)
async def get_referral_analytics(account: ReferringAccount, db: DB):
    """Scans, conversions and commission totals for the caller."""
    service = ReferralService(db)
    return await service.get_analytics(account.referral_type, account.account_uuid)
