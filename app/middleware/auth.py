from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.timeutils import utcnow
from app.models import Account

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(account_id: str, expires_minutes: Optional[int] = None) -> str:
    """Issue a signed JWT whose ``sub`` is the account id."""
    settings = get_settings()
    now = utcnow()
    expire = now + timedelta(minutes=expires_minutes or settings.JWT_EXPIRE_MINUTES)
    payload = {
        "sub": account_id,
        "exp": expire,
        "iat": now,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


async def get_current_account(
    bearer: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> Account:
    settings = get_settings()

    if not bearer or not bearer.credentials:
        raise _unauthorized("Authentication required")

    try:
        payload = jwt.decode(
            bearer.credentials,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
        account_id = str(payload["sub"])
    except (JWTError, KeyError):
        raise _unauthorized("Invalid or expired token")

    account = db.query(Account).filter(Account.id == account_id).first()
    if not account:
        raise _unauthorized("Invalid token")
    return account


async def require_admin(account: Account = Depends(get_current_account)) -> Account:
    """Every privileged operation goes through this role check."""
    if not account.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return account
