"""
JWT bearer authentication and role-based authorization.

The POS sync admin surface is restricted to administrators; the roles are
carried in the access token's ``roles`` claim.
"""

from datetime import datetime, timedelta
from typing import Optional, List
import secrets
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import settings

logger = logging.getLogger(__name__)

SECRET_KEY = settings.jwt_secret_key
ALGORITHM = settings.jwt_algorithm
ACCESS_TOKEN_EXPIRE_MINUTES = settings.jwt_access_token_expire_minutes

security = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    """Token payload data."""

    user_id: Optional[int] = None
    username: Optional[str] = None
    roles: List[str] = []
    token_id: Optional[str] = None


class User(BaseModel):
    """User model for authentication."""

    id: int
    username: str
    roles: List[str] = []
    is_active: bool = True


def create_access_token(
    data: dict, expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update(
        {
            "exp": expire,
            "type": "access",
            "jti": secrets.token_urlsafe(16),
            "iat": datetime.utcnow().timestamp(),
        }
    )
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str, token_type: str = "access") -> Optional[TokenData]:
    """
    Verify and decode a JWT token.

    Returns:
        TokenData if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        return None

    if payload.get("type") != token_type:
        logger.warning(
            f"Token type mismatch: expected {token_type}, got {payload.get('type')}"
        )
        return None

    sub = payload.get("sub")
    try:
        user_id = int(sub)
    except (ValueError, TypeError):
        return None

    return TokenData(
        user_id=user_id,
        username=payload.get("username"),
        roles=payload.get("roles", []),
        token_id=payload.get("jti"),
    )


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """Resolve the current authenticated user from the bearer token."""
    if not credentials:
        raise _credentials_exception()

    token_data = verify_token(credentials.credentials)
    if token_data is None or token_data.user_id is None:
        raise _credentials_exception()

    return User(
        id=token_data.user_id,
        username=token_data.username or f"user-{token_data.user_id}",
        roles=token_data.roles,
    )


def require_roles(required_roles: List[str]):
    """Enforce that the current user holds at least one of the specified roles."""

    required_set = set(required_roles)

    async def dependency(user: User = Depends(get_current_user)) -> User:
        user_roles = set(user.roles or [])
        if "admin" not in user_roles and not (user_roles & required_set):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Operation requires one of these roles: {required_roles}",
            )
        return user

    return dependency


# Common role dependencies
require_admin = require_roles(["admin"])
