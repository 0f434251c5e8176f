"""
Data access layer.

Services receive repositories instead of raw sessions so the referral and
commission rules can be exercised against fakes.
"""

from app.repositories.base import BaseRepository
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.referral_repository import ReferralRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.commission_repository import CommissionRepository

__all__ = [
    "BaseRepository",
    "PartnerRepository",
    "PreRegistrationCodeRepository",
    "CustomerRepository",
    "ReferralRepository",
    "OrderRepository",
    "CommissionRepository",
]
