from dataclasses import dataclass
from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.security import AccountType, verify_access_token


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


@dataclass
class CurrentAccount:
    """Authenticated caller, taken from the identity provider's token."""
    id: str
    account_type: str

    @property
    def is_admin(self) -> bool:
        return self.account_type == AccountType.ADMIN

    @property
    def account_uuid(self) -> uuid.UUID:
        return uuid.UUID(self.id)

    @property
    def referral_type(self) -> str:
        """PARTNER or CUSTOMER, as stored on referral rows."""
        return self.account_type.upper()


async def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> CurrentAccount:
    """
    Dependency to get the current authenticated account.
    Validates the JWT token; the account itself lives with the identity provider.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    return CurrentAccount(id=str(payload["sub"]), account_type=payload["account_type"])


async def get_referring_account(
    account: Annotated[CurrentAccount, Depends(get_current_account)],
) -> CurrentAccount:
    """Partner or customer that can own referrals."""
    if account.account_type not in (AccountType.PARTNER, AccountType.CUSTOMER):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only partner and customer accounts have referrals"
        )

    try:
        account.account_uuid
    except ValueError:
        logger.warning(f"Invalid account id in token: {account.id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


async def require_admin(
    account: Annotated[CurrentAccount, Depends(get_current_account)],
) -> CurrentAccount:
    if not account.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return account


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentAccountDep = Annotated[CurrentAccount, Depends(get_current_account)]
ReferringAccount = Annotated[CurrentAccount, Depends(get_referring_account)]
AdminAccount = Annotated[CurrentAccount, Depends(require_admin)]
