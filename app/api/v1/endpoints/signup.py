"""
Signup API Endpoints

Public account creation for customers and business partners. Each signup
issues the account's personal referral code and records who referred it.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from app.api.deps import DB
from app.schemas.signup import CustomerSignupRequest, PartnerSignupRequest, SignupResponse
from app.services.referral_errors import CodeGenerationExhausted
from app.services.signup_service import SignupResult, SignupService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/signup", tags=["Signup"])

SIGNUP_FAILED_MESSAGE = "Could not complete signup, please try again."


def _to_response(result: SignupResult) -> SignupResponse:
    account = result.account
    return SignupResponse(
        id=account.id,
        account_type=result.account_type,
        email=account.email,
        personal_referral_code=account.personal_referral_code,
        referral_type=account.referral_type,
        referrer_id=account.referrer_id,
        referral_code_used=account.referral_code_used,
        share_url=result.share_url,
    )


@router.post("/customer", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup_customer(data: CustomerSignupRequest, db: DB):
    """
    Register a customer.

    An unknown or ineligible `referralCode` never blocks signup; the account
    is simply created without a referrer.
    """
    service = SignupService(db)
    try:
        result = await service.signup_customer(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except CodeGenerationExhausted as e:
        logger.error(f"Customer signup failed for {data.email}: {e.message}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SIGNUP_FAILED_MESSAGE)

    return _to_response(result)


@router.post("/partner", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup_partner(data: PartnerSignupRequest, db: DB):
    """
    Register a business partner.

    A valid `preRegCode` (printed QR code) becomes the partner's own code.
    """
    service = SignupService(db)
    try:
        result = await service.signup_partner(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except CodeGenerationExhausted as e:
        logger.error(f"Partner signup failed for {data.email}: {e.message}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SIGNUP_FAILED_MESSAGE)

    return _to_response(result)
