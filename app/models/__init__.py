# Models module
from app.models.partner import Partner, PreRegistrationCode, ApprovalStatus, PreRegistrationStatus
from app.models.customer import Customer, ReferralType
from app.models.referral import Referral, ReferralEvent, ReferralStatus, ReferralEventType
from app.models.order import Order, PaymentStatus, FulfillmentStatus
from app.models.commission import Commission, CommissionStatus, CommissionType, RateType

__all__ = [
    "Partner",
    "PreRegistrationCode",
    "ApprovalStatus",
    "PreRegistrationStatus",
    "Customer",
    "ReferralType",
    "Referral",
    "ReferralEvent",
    "ReferralStatus",
    "ReferralEventType",
    "Order",
    "PaymentStatus",
    "FulfillmentStatus",
    "Commission",
    "CommissionStatus",
    "CommissionType",
    "RateType",
]
