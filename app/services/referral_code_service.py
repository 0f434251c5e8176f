"""
Referral Code Service

Issues personal referral codes. A code is an uppercase prefix followed by a
random A-Z0-9 suffix, e.g. GRO7K2M9Q. Uniqueness is checked across every
namespace a code can be resolved from: partner personal codes,
pre-registration codes, customer personal codes and referral records.
"""

import logging
import re
import secrets
import string
from typing import Optional

from app.config import settings
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.referral_errors import CodeGenerationExhausted

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
PREFIX_LENGTH = 3


def generate_code(prefix: str, length: int = 6) -> str:
    """Build a candidate code: prefix + `length` random alphanumerics."""
    suffix = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return f"{prefix.upper()}{suffix}"


def derive_prefix(business_name: Optional[str]) -> str:
    """
    First three alphanumerics of a business name, uppercased.

    Example: "Paws & Claws" -> "PAW", "" -> "PAR"
    """
    cleaned = re.sub(r'[^A-Za-z0-9]', '', business_name or '')
    prefix = cleaned[:PREFIX_LENGTH].upper()
    return prefix or settings.DEFAULT_PARTNER_CODE_PREFIX


def normalize_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


class ReferralCodeService:
    """Generates codes that are unique across all referral namespaces."""

    def __init__(
        self,
        partners: PartnerRepository,
        pre_registrations: PreRegistrationCodeRepository,
        customers: CustomerRepository,
        referrals: ReferralRepository,
        max_attempts: Optional[int] = None,
    ):
        self.partners = partners
        self.pre_registrations = pre_registrations
        self.customers = customers
        self.referrals = referrals
        self.max_attempts = max_attempts or settings.REFERRAL_CODE_MAX_ATTEMPTS

    async def is_code_taken(self, code: str) -> bool:
        """True if the code exists in any namespace."""
        if await self.partners.code_exists(code):
            return True
        if await self.pre_registrations.code_exists(code):
            return True
        if await self.customers.code_exists(code):
            return True
        return await self.referrals.code_exists(code)

    async def issue(self, prefix: str, length: Optional[int] = None) -> str:
        """
        Generate a unique code.

        Nothing is written; the caller persists the returned code.

        Raises:
            CodeGenerationExhausted: every attempt collided
        """
        length = length or settings.REFERRAL_CODE_LENGTH

        for attempt in range(1, self.max_attempts + 1):
            code = generate_code(prefix, length)
            if not await self.is_code_taken(code):
                if attempt > 1:
                    logger.info(f"Issued referral code {code} after {attempt} attempts")
                return code
            logger.debug(f"Referral code collision on {code} (attempt {attempt})")

        logger.error(f"Referral code generation exhausted for prefix {prefix} after {self.max_attempts} attempts")
        raise CodeGenerationExhausted(prefix, self.max_attempts)

    async def issue_partner_code(self, business_name: Optional[str]) -> str:
        return await self.issue(derive_prefix(business_name))

    async def issue_customer_code(self) -> str:
        return await self.issue(settings.CUSTOMER_CODE_PREFIX)
