from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid

from jose import JWTError, jwt

from app.config import settings


class AccountType:
    """Values of the `account_type` claim."""
    PARTNER = "partner"
    CUSTOMER = "customer"
    ADMIN = "admin"


def create_access_token(
    subject: str | uuid.UUID,
    account_type: str,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None
) -> str:
    """
    Create a JWT access token.

    Tokens are normally issued by the identity provider with the shared
    SECRET_KEY; this is used by scripts and tests.

    Args:
        subject: Account ID (partners.id, customers.id or an admin identifier)
        account_type: partner, customer or admin
        expires_delta: Optional custom expiration time
        additional_claims: Optional additional claims to include
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))

    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "jti": str(uuid.uuid4()),
        "type": "access",
        "account_type": account_type,
    }

    if additional_claims:
        to_encode.update(additional_claims)

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify an access token.

    Returns:
        Payload with `sub` and `account_type`, or None if invalid
    """
    payload = decode_token(token)
    if payload is None:
        return None

    if payload.get("type", "access") != "access":
        return None

    if not payload.get("sub") or payload.get("account_type") not in (
        AccountType.PARTNER, AccountType.CUSTOMER, AccountType.ADMIN
    ):
        return None

    return payload
