"""Authentication dependencies and utilities."""

import hmac
import uuid
from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.core.config import settings
from beautyhub.db.session import get_db
from beautyhub.models.user import User, UserRole

logger = structlog.get_logger()

security = HTTPBearer(auto_error=False)

PROVIDER_ROLES = frozenset({UserRole.PROVIDER_OWNER.value, UserRole.PROVIDER_STAFF.value})


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get current authenticated user from JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        subject: str | None = payload.get("sub")
        if subject is None:
            raise credentials_exception
        user_id = uuid.UUID(subject)
    except (JWTError, ValueError) as exc:
        raise credentials_exception from exc

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


# Type alias for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_admin(current_user: CurrentUser) -> User:
    """Require the superadmin role."""
    if not current_user.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return current_user


async def require_provider_member(current_user: CurrentUser) -> User:
    """Require provider owner/staff with a provider attached."""
    if current_user.role not in PROVIDER_ROLES or current_user.provider_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Provider access required"
        )
    return current_user


AdminUser = Annotated[User, Depends(require_admin)]
ProviderUser = Annotated[User, Depends(require_provider_member)]


async def verify_cron_secret(authorization: Annotated[str | None, Header()] = None) -> None:
    """Check the scheduler's shared secret.

    Without a configured secret the endpoint is open. That is logged on every
    call so it shows up in deployment monitoring.
    """
    secret = settings.cron_secret
    if not secret:
        logger.warning(
            "cron_secret_not_configured",
            detail="Automation execution endpoint is unauthenticated",
        )
        return

    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - This endpoint requires cron secret",
        )


def member_provider_id(user: User) -> uuid.UUID:
    """Provider the user works for."""
    if user.provider_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Provider access required"
        )
    return user.provider_id
