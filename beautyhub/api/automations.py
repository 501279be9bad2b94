"""Provider marketing automation routes and the scheduler entry point."""

import uuid
from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.core.auth import ProviderUser, member_provider_id, verify_cron_secret
from beautyhub.core.config import settings
from beautyhub.core.responses import ApiResponse, ok
from beautyhub.db.redis import get_redis
from beautyhub.db.session import get_db
from beautyhub.models.automation import ActionType, AutomationExecution, MarketingAutomation
from beautyhub.services.automations import (
    registered_trigger_types,
    run_locked_pass,
    seed_provider_automation_templates,
)

router = APIRouter(prefix=f"{settings.API_V1_PREFIX}/provider/automations", tags=["automations"])
logger = structlog.get_logger()

NULLABLE_FIELDS = frozenset({"description"})


# =============================================================================
# Pydantic Models
# =============================================================================


def _check_trigger_type(value: str) -> str:
    if value not in registered_trigger_types():
        raise ValueError(
            f"Unknown trigger type '{value}'. Expected one of: {', '.join(registered_trigger_types())}"
        )
    return value


class AutomationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    trigger_type: str
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    delay_minutes: int = Field(default=0, ge=0)
    action_type: ActionType = ActionType.SMS
    action_config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = False

    @field_validator("trigger_type")
    @classmethod
    def validate_trigger_type(cls, v: str) -> str:
        return _check_trigger_type(v)


class AutomationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    trigger_type: str | None = None
    trigger_config: dict[str, Any] | None = None
    delay_minutes: int | None = Field(default=None, ge=0)
    action_type: ActionType | None = None
    action_config: dict[str, Any] | None = None
    is_active: bool | None = None

    @field_validator("trigger_type")
    @classmethod
    def validate_trigger_type(cls, v: str | None) -> str | None:
        return _check_trigger_type(v) if v is not None else v


class AutomationResponse(BaseModel):
    id: uuid.UUID
    provider_id: uuid.UUID
    name: str
    description: str | None
    trigger_type: str
    trigger_config: dict[str, Any]
    delay_minutes: int
    action_type: str
    action_config: dict[str, Any]
    is_active: bool
    is_template: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ExecutionResponse(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    message_id: str | None
    action_type: str
    status: str
    executed_at: datetime

    model_config = {"from_attributes": True}


class SeedTemplatesResponse(BaseModel):
    created: int


# =============================================================================
# Helpers
# =============================================================================


async def _get_owned_automation(
    db: AsyncSession, automation_id: uuid.UUID, provider_id: uuid.UUID
) -> MarketingAutomation:
    result = await db.execute(
        select(MarketingAutomation).where(
            MarketingAutomation.id == automation_id,
            MarketingAutomation.provider_id == provider_id,
        )
    )
    automation = result.scalar_one_or_none()
    if automation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Automation not found")
    return automation


# =============================================================================
# Scheduler
# =============================================================================


@router.post(
    "/execute",
    response_model=ApiResponse[dict[str, Any]],
    dependencies=[Depends(verify_cron_secret)],
)
async def execute_automations(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> ApiResponse[dict[str, Any]]:
    """Run one automation pass.

    Called every 5-15 minutes by the scheduler. Returns 409 while another
    pass holds the lock.
    """
    result = await run_locked_pass(db, redis)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An automation pass is already running",
        )
    return ok(result.to_dict())


# =============================================================================
# Provider management
# =============================================================================


@router.get("", response_model=ApiResponse[list[AutomationResponse]])
async def list_automations(
    current_user: ProviderUser,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[AutomationResponse]]:
    result = await db.execute(
        select(MarketingAutomation)
        .where(MarketingAutomation.provider_id == member_provider_id(current_user))
        .order_by(MarketingAutomation.created_at)
    )
    return ok([AutomationResponse.model_validate(a) for a in result.scalars().all()])


@router.post(
    "",
    response_model=ApiResponse[AutomationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_automation(
    body: AutomationCreate,
    current_user: ProviderUser,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[AutomationResponse]:
    automation = MarketingAutomation(
        provider_id=member_provider_id(current_user),
        name=body.name,
        description=body.description,
        trigger_type=body.trigger_type,
        trigger_config=body.trigger_config,
        delay_minutes=body.delay_minutes,
        action_type=body.action_type.value,
        action_config=body.action_config,
        is_active=body.is_active,
    )
    db.add(automation)
    await db.commit()
    await db.refresh(automation)

    logger.info(
        "automation_created",
        automation_id=str(automation.id),
        provider_id=str(automation.provider_id),
        trigger_type=automation.trigger_type,
    )
    return ok(AutomationResponse.model_validate(automation))


@router.post("/templates/seed", response_model=ApiResponse[SeedTemplatesResponse])
async def seed_templates(
    current_user: ProviderUser,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[SeedTemplatesResponse]:
    """Install the default inactive automation set for this provider."""
    created = await seed_provider_automation_templates(db, member_provider_id(current_user))
    await db.commit()
    return ok(SeedTemplatesResponse(created=len(created)))


@router.patch("/{automation_id}", response_model=ApiResponse[AutomationResponse])
async def update_automation(
    automation_id: uuid.UUID,
    body: AutomationUpdate,
    current_user: ProviderUser,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[AutomationResponse]:
    automation = await _get_owned_automation(db, automation_id, member_provider_id(current_user))

    changes = body.model_dump(exclude_unset=True)
    if changes.get("action_type") is not None:
        changes["action_type"] = ActionType(changes["action_type"]).value
    for field, value in changes.items():
        # Only description may be cleared
        if value is None and field not in NULLABLE_FIELDS:
            continue
        setattr(automation, field, value)

    await db.commit()
    await db.refresh(automation)
    logger.info("automation_updated", automation_id=str(automation.id), fields=sorted(changes))
    return ok(AutomationResponse.model_validate(automation))


@router.get("/{automation_id}/executions", response_model=ApiResponse[list[ExecutionResponse]])
async def list_executions(
    automation_id: uuid.UUID,
    current_user: ProviderUser,
    db: AsyncSession = Depends(get_db),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse[list[ExecutionResponse]]:
    automation = await _get_owned_automation(db, automation_id, member_provider_id(current_user))

    result = await db.execute(
        select(AutomationExecution)
        .where(AutomationExecution.automation_id == automation.id)
        .order_by(AutomationExecution.executed_at.desc())
        .limit(limit)
    )
    return ok([ExecutionResponse.model_validate(e) for e in result.scalars().all()])
