"""
ladder/rbac.py
Caller resolution for the REST layer.

Bearer JWT access tokens carry:
- sub: user id
- adm: admin flag
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from ladder.config.settings import settings
from ladder.core.ownership_guard import Caller
from ladder.errors import ErrorCode

logger = logging.getLogger(__name__)

# ================= CONFIG =================

SECRET_KEY = settings.JWT_SECRET_KEY
ALGORITHM = settings.JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

# ================= TOKEN UTILS =================


def create_access_token(
    user_id: int,
    is_admin: bool = False,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token for a user (tooling and tests)"""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(user_id),
        "adm": bool(is_admin),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ================= AUTH DEPENDENCIES =================

async def get_current_caller(token: str = Depends(oauth2_scheme)) -> Caller:
    """
    Resolve the calling identity from the bearer token.
    Returns 401 if the token is invalid or expired.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "success": False,
            "error": "Unauthorized",
            "message": "Invalid or expired token",
            "code": ErrorCode.AUTH_INVALID
        },
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise credentials_exception

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        logger.warning("Rejected token with malformed subject")
        raise credentials_exception

    return Caller(user_id=user_id, is_admin=bool(payload.get("adm", False)))
