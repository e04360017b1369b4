"""
Authentication endpoints.
"""

import uuid
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter
from jose import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr
from sqlalchemy import select

from backoffice.api.common import ApiResponse, UserRef
from backoffice.api.deps import CurrentUser, DbSession
from backoffice.config import get_settings
from backoffice.errors import AuthenticationRequired
from backoffice.models.base import Lifecycle
from backoffice.models.user import User

router = APIRouter()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ============ SCHEMAS ============

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRef


# ============ HELPERS ============

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user_id: uuid.UUID, expires_delta: timedelta | None = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


# ============ ENDPOINTS ============

@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, db: DbSession):
    """Exchange email/password for a bearer token."""
    result = await db.execute(
        select(User).where(User.email == data.email.lower(), User.lifecycle == Lifecycle.ACTIVE)
    )
    user = result.scalar_one_or_none()

    if not user or not user.password_hash or not verify_password(data.password, user.password_hash):
        raise AuthenticationRequired("Correo o contraseña incorrectos", code="invalid_credentials")

    settings = get_settings()
    return LoginResponse(
        access_token=create_access_token(user.id),
        expires_in=settings.access_token_expire_minutes * 60,
        user=UserRef.model_validate(user),
    )


@router.get("/me", response_model=ApiResponse[UserRef])
async def get_me(user: CurrentUser):
    """Get current user info."""
    return ApiResponse(data=UserRef.model_validate(user))
