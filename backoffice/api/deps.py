"""
FastAPI dependencies for authentication, authorization and database access.
"""

import logging
import uuid
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import get_settings
from backoffice.database import get_db
from backoffice.errors import AuthenticationRequired
from backoffice.models.base import Lifecycle
from backoffice.models.user import User
from backoffice.policy import authorize

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode an internal JWT; None when the signature or claims are invalid."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info(f"Rejected access token: {e}")
        return None


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Dependency to get the current authenticated user from the bearer token.
    """
    if not credentials:
        raise AuthenticationRequired()

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise AuthenticationRequired("Token inválido o expirado", code="invalid_token")

    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except (ValueError, TypeError):
        raise AuthenticationRequired("Token inválido o expirado", code="invalid_token")

    result = await db.execute(
        select(User).where(User.id == user_id, User.lifecycle == Lifecycle.ACTIVE)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthenticationRequired("Usuario no encontrado o inactivo", code="inactive_user")

    return user


def require_policy(resource: str, action: str):
    """
    Dependency factory enforcing the policy table for an endpoint.

    Usage:
        @router.get("", dependencies=[Depends(require_policy("invoices", "read"))])
    """
    async def policy_checker(
        user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        return authorize(user, resource, action)

    return policy_checker


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
