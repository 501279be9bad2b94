"""Authentication API routes."""

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.core.auth import CurrentUser
from beautyhub.core.config import settings
from beautyhub.core.limiter import limiter
from beautyhub.core.responses import ApiResponse, ok
from beautyhub.core.security import create_access_token, verify_password
from beautyhub.db.session import get_db
from beautyhub.models.user import User

router = APIRouter(prefix=f"{settings.API_V1_PREFIX}/auth", tags=["auth"])
logger = structlog.get_logger()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str | None
    full_name: str | None
    role: str
    provider_id: uuid.UUID | None = None

    model_config = {"from_attributes": True}


@router.post("/login", response_model=ApiResponse[TokenResponse])
@limiter.limit("10/minute")  # Brute force protection
async def login(
    request: Request,  # Required for rate limiter
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[TokenResponse]:
    """Exchange email and password for a bearer token."""
    log = logger.bind(username=form_data.username)
    log.info("login_attempt")

    result = await db.execute(
        select(User).where(func.lower(User.email) == form_data.username.strip().lower())
    )
    user = result.scalar_one_or_none()

    if (
        user is None
        or not user.is_active
        or not user.hashed_password
        or not verify_password(form_data.password, user.hashed_password)
    ):
        log.warning("login_failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    log.info("login_success", user_id=str(user.id))
    return ok(TokenResponse(access_token=create_access_token(user.id, extra_claims={"role": user.role})))


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_current_user_info(current_user: CurrentUser) -> ApiResponse[UserResponse]:
    return ok(UserResponse.model_validate(current_user))
