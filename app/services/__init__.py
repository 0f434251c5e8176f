# Services module
from app.services.referral_code_service import ReferralCodeService
from app.services.attribution_service import AttributionService, Attribution
from app.services.referral_tracker import ReferralTracker, next_status
from app.services.commission_service import CommissionService, calculate_commission_amount, select_commission_rate
from app.services.signup_service import SignupService
from app.services.referral_service import ReferralService
from app.services.payment_webhook_service import PaymentWebhookService
from app.services.referral_integrity_service import ReferralIntegrityService
from app.services.referral_backfill_service import ReferralBackfillService
from app.services.referral_errors import (
    ReferralError,
    CodeGenerationExhausted,
    ReferralNotFound,
    ReferralExpired,
)

__all__ = [
    "ReferralCodeService",
    "AttributionService",
    "Attribution",
    "ReferralTracker",
    "next_status",
    "CommissionService",
    "calculate_commission_amount",
    "select_commission_rate",
    "SignupService",
    "ReferralService",
    "PaymentWebhookService",
    "ReferralIntegrityService",
    "ReferralBackfillService",
    # Errors
    "ReferralError",
    "CodeGenerationExhausted",
    "ReferralNotFound",
    "ReferralExpired",
]
