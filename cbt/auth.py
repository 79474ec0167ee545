"""
cbt/auth.py
Bearer-token identity for the HTTP surface

Tokens are HS256 JWTs carrying `sub` (profile id) and `email`. This module
only verifies them; issuing is a helper for tests and the CLI.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from cbt.config import settings
from cbt.errors import ErrorCode, error_payload
from cbt.schemas.records import IdentityContext

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": user_id,
        "email": email,
        "exp": expire,
        "type": "access"
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def identity_from_token(token: str) -> Optional[IdentityContext]:
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        return None
    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        return None
    return IdentityContext(user_id=str(user_id), email=email)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> IdentityContext:
    """Returns 401 if the token is missing, invalid or expired."""
    identity = identity_from_token(credentials.credentials) if credentials else None
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_payload(
                "Unauthorized",
                "You must be logged in to access this exam. Please log in with your account.",
                ErrorCode.AUTH_REQUIRED
            ),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
