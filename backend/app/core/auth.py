"""
Authentication for the Family Budget API.

Sessions are issued by the external identity provider as HS256 JWTs signed
with the shared secret. This module only verifies them and exposes the
authenticated user id and their active workspace id.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel

from app.core.config import settings


# Security scheme
security = HTTPBearer(auto_error=False)


class TokenUser(BaseModel):
    """Identity carried by a verified session token."""
    user_id: str
    workspace_id: Optional[str] = None
    expires: Optional[int] = None


class AuthError(HTTPException):
    """Authentication error."""
    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


def create_access_token(
    user_id: str,
    workspace_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a session token in the identity provider's format.
    Used by operational tooling and tests; production tokens come from the provider.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    expire = datetime.now(timezone.utc) + expires_delta

    payload = {
        "sub": user_id,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "jti": secrets.token_hex(16),  # Unique token ID
    }
    if workspace_id:
        payload["workspace_id"] = workspace_id

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> TokenUser:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        if "expired" in str(e).lower():
            raise AuthError("Token has expired")
        raise AuthError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token")

    return TokenUser(
        user_id=user_id,
        workspace_id=payload.get("workspace_id"),
        expires=payload.get("exp"),
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenUser:
    """
    Dependency to get the current authenticated user.
    Returns the verified token identity.
    """
    if credentials is None:
        raise AuthError("Authentication required")

    return decode_token(credentials.credentials)
