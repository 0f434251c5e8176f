"""
Referral domain errors.

Raised by the referral services and translated to HTTP responses by the
endpoints.
"""
from typing import Dict, Optional


class ReferralError(Exception):
    """Base exception for referral errors."""
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class CodeGenerationExhausted(ReferralError):
    """No unique referral code was found within the retry budget."""
    def __init__(self, prefix: str, attempts: int):
        super().__init__(
            f"Could not generate a unique referral code with prefix {prefix!r} after {attempts} attempts",
            error_code="CODE_GENERATION_EXHAUSTED",
            details={"prefix": prefix, "attempts": attempts},
        )


class ReferralNotFound(ReferralError):
    """Code does not match any referral record or account."""
    def __init__(self, code: str):
        super().__init__(f"Referral code {code!r} not found", error_code="REFERRAL_NOT_FOUND")
        self.code = code


class ReferralExpired(ReferralError):
    """Code matched a referral whose expiry window has elapsed."""
    def __init__(self, code: str):
        super().__init__(f"Referral code {code!r} has expired", error_code="REFERRAL_EXPIRED")
        self.code = code
