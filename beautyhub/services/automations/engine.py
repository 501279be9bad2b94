"""One automation pass: evaluate triggers, de-duplicate, dispatch.

Automations are processed one after another on a single session. Failures
are collected per automation and per recipient; only failing to load the
automation list aborts a pass.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog
from redis.exceptions import LockError
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.core.config import settings
from beautyhub.models.automation import AutomationExecution, ExecutionStatus, MarketingAutomation
from beautyhub.services.automations.messages import RenderedMessage, render_message
from beautyhub.services.automations.recipients import Recipient, resolve_recipients
from beautyhub.services.automations.triggers import evaluate_trigger, provider_timezone
from beautyhub.services.messaging import (
    DispatchResult,
    MessageDispatcher,
    OutboundMessage,
    ProviderMessagingService,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger()

DEDUP_WINDOW = timedelta(hours=24)
PASS_LOCK_KEY = "automations:pass_lock"


@dataclass(frozen=True)
class AutomationError:
    automation_id: str
    error: str


@dataclass
class AutomationRunResult:
    """Outcome of one automation, or of a whole pass once folded."""

    executed: int = 0
    automation_ids: list[str] = field(default_factory=list)
    errors: list[AutomationError] = field(default_factory=list)

    def merge(self, other: "AutomationRunResult") -> "AutomationRunResult":
        return AutomationRunResult(
            executed=self.executed + other.executed,
            automation_ids=[*self.automation_ids, *other.automation_ids],
            errors=[*self.errors, *other.errors],
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"executed": self.executed, "automationIds": self.automation_ids}
        if self.errors:
            data["errors"] = [
                {"automationId": e.automation_id, "error": e.error} for e in self.errors
            ]
        return data


def dedup_bucket(now: datetime) -> str:
    """UTC calendar day an execution is filed under."""
    return now.astimezone(UTC).strftime("%Y-%m-%d")


class UnsupportedDialectError(Exception):
    """The database has no INSERT ... ON CONFLICT DO NOTHING we can use."""


def claim_statement(dialect_name: str, values: dict[str, Any]) -> Any:
    """INSERT ... ON CONFLICT DO NOTHING RETURNING id for the execution log."""
    if dialect_name == "postgresql":
        stmt = pg_insert(AutomationExecution)
    elif dialect_name == "sqlite":
        stmt = sqlite_insert(AutomationExecution)
    else:
        raise UnsupportedDialectError(f"No insert-if-absent support for dialect {dialect_name}")
    return (
        stmt.values(**values)
        .on_conflict_do_nothing(index_elements=["automation_id", "customer_id", "dedup_bucket"])
        .returning(AutomationExecution.id)
    )


@dataclass(frozen=True)
class _Delivery:
    automation_id: uuid.UUID
    provider_id: uuid.UUID
    action_type: str
    recipient: Recipient
    message: RenderedMessage


class AutomationEngine:
    """Runs automation passes against one database session.

    Execution records are committed per recipient, so the session must not
    expire objects on commit.
    """

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: MessageDispatcher | None = None,
        dispatch_timeout: float | None = None,
    ) -> None:
        self.db = db
        self.dispatcher: MessageDispatcher = dispatcher or ProviderMessagingService(db)
        self.dispatch_timeout = (
            dispatch_timeout if dispatch_timeout is not None else settings.AUTOMATION_DISPATCH_TIMEOUT
        )
        self.logger = logger.bind(component="automation_engine")

    async def load_active_automations(self) -> list[MarketingAutomation]:
        result = await self.db.execute(
            select(MarketingAutomation)
            .where(MarketingAutomation.is_active.is_(True))
            .order_by(MarketingAutomation.created_at)
        )
        return list(result.scalars().all())

    async def run_pass(self, now: datetime | None = None) -> AutomationRunResult:
        """Evaluate every active automation once."""
        now = now or datetime.now(UTC)
        automations = await self.load_active_automations()
        self.logger.info("automation_pass_started", automations=len(automations))

        result = AutomationRunResult()
        for automation in automations:
            result = result.merge(await self.run_automation(automation, now))

        self.logger.info(
            "automation_pass_completed",
            executed=result.executed,
            errors=len(result.errors),
        )
        return result

    async def run_automation(
        self, automation: MarketingAutomation, now: datetime
    ) -> AutomationRunResult:
        automation_id = str(automation.id)
        log = self.logger.bind(automation_id=automation_id, trigger_type=automation.trigger_type)

        try:
            async with self.db.begin_nested():
                evaluation = await evaluate_trigger(self.db, automation, now)
                if not evaluation.fire:
                    return AutomationRunResult()
                recipients = await resolve_recipients(
                    self.db, evaluation.context, automation.action_type
                )
                tz = await provider_timezone(self.db, automation)
                deliveries = [
                    _Delivery(
                        automation_id=automation.id,
                        provider_id=automation.provider_id,
                        action_type=automation.action_type,
                        recipient=recipient,
                        message=render_message(automation, recipient, evaluation.context, tz),
                    )
                    for recipient in recipients
                ]
        except Exception as e:
            log.exception("automation_evaluation_failed")
            return AutomationRunResult(errors=[AutomationError(automation_id, str(e))])

        if not deliveries:
            log.info("automation_fired_without_recipients")
            return AutomationRunResult()

        result = AutomationRunResult(executed=1, automation_ids=[automation_id])
        for delivery in deliveries:
            try:
                error = await self._deliver(delivery, now)
            except Exception as e:
                log.exception(
                    "automation_recipient_failed", customer_id=str(delivery.recipient.customer_id)
                )
                error = f"{type(e).__name__}: {e}"
            if error:
                result.errors.append(AutomationError(automation_id, error))
        return result

    async def _recently_executed(self, delivery: _Delivery, now: datetime) -> bool:
        """Whether the recipient got this automation in the last 24h.

        An unreadable execution log counts as "not sent"; the claim still guards
        the send where it can be written.
        """
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    select(AutomationExecution.id)
                    .where(
                        AutomationExecution.automation_id == delivery.automation_id,
                        AutomationExecution.customer_id == delivery.recipient.customer_id,
                        AutomationExecution.executed_at >= now - DEDUP_WINDOW,
                    )
                    .limit(1)
                )
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            self.logger.warning(
                "automation_dedup_lookup_failed",
                automation_id=str(delivery.automation_id),
                customer_id=str(delivery.recipient.customer_id),
                error=str(e),
            )
            return False

    async def _claim(self, delivery: _Delivery, now: datetime) -> tuple[uuid.UUID | None, bool]:
        """Reserve the (automation, customer, day) slot.

        Returns (claim id, guarded). A None id with guarded=True means another
        pass already holds the slot. guarded=False means the claim could not be
        written at all and the send goes ahead without it.
        """
        values = {
            "id": uuid.uuid4(),
            "automation_id": delivery.automation_id,
            "customer_id": delivery.recipient.customer_id,
            "action_type": delivery.action_type,
            "status": ExecutionStatus.PENDING.value,
            "dedup_bucket": dedup_bucket(now),
            "executed_at": now,
        }
        try:
            async with self.db.begin_nested():
                stmt = claim_statement(self.db.get_bind().dialect.name, values)
                claim_id = (await self.db.execute(stmt)).scalar_one_or_none()
            await self.db.commit()
        except (SQLAlchemyError, UnsupportedDialectError) as e:
            self.logger.warning(
                "automation_claim_failed",
                automation_id=str(delivery.automation_id),
                customer_id=str(delivery.recipient.customer_id),
                error=str(e),
            )
            return None, False
        return claim_id, True

    async def _dispatch(self, delivery: _Delivery) -> DispatchResult:
        """Send one message. Raises TimeoutError when the send overruns."""
        message = OutboundMessage(
            provider_id=delivery.provider_id,
            channel=delivery.action_type,
            to=delivery.recipient.contact,
            body=delivery.message.body,
            subject=delivery.message.subject,
            from_name=delivery.message.from_name,
        )
        try:
            return await asyncio.wait_for(
                self.dispatcher.dispatch(message), timeout=self.dispatch_timeout
            )
        except TimeoutError:
            raise
        except Exception as e:
            self.logger.exception(
                "automation_dispatch_error", automation_id=str(delivery.automation_id)
            )
            return DispatchResult(success=False, error=f"{type(e).__name__}: {e}")

    async def _record_sent(
        self, delivery: _Delivery, claim_id: uuid.UUID | None, message_id: str | None, now: datetime
    ) -> None:
        try:
            async with self.db.begin_nested():
                if claim_id is not None:
                    await self.db.execute(
                        update(AutomationExecution)
                        .where(AutomationExecution.id == claim_id)
                        .values(status=ExecutionStatus.SENT.value, message_id=message_id)
                    )
                else:
                    self.db.add(
                        AutomationExecution(
                            automation_id=delivery.automation_id,
                            customer_id=delivery.recipient.customer_id,
                            message_id=message_id,
                            action_type=delivery.action_type,
                            status=ExecutionStatus.SENT.value,
                            dedup_bucket=dedup_bucket(now),
                            executed_at=now,
                        )
                    )
            await self.db.commit()
        except SQLAlchemyError:
            self.logger.exception(
                "automation_execution_log_failed",
                automation_id=str(delivery.automation_id),
                customer_id=str(delivery.recipient.customer_id),
            )

    async def _release_claim(self, claim_id: uuid.UUID) -> None:
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    delete(AutomationExecution).where(AutomationExecution.id == claim_id)
                )
            await self.db.commit()
        except SQLAlchemyError:
            self.logger.exception("automation_claim_release_failed", claim_id=str(claim_id))

    async def _deliver(self, delivery: _Delivery, now: datetime) -> str | None:
        """Send to one recipient at most once per day. Returns an error or None."""
        log = self.logger.bind(
            automation_id=str(delivery.automation_id),
            customer_id=str(delivery.recipient.customer_id),
        )

        if await self._recently_executed(delivery, now):
            log.debug("automation_recipient_already_sent")
            return None

        claim_id, guarded = await self._claim(delivery, now)
        if guarded and claim_id is None:
            log.debug("automation_recipient_claimed_elsewhere")
            return None

        try:
            outcome = await self._dispatch(delivery)
        except TimeoutError:
            # The send may still land (email runs in a worker thread), so the
            # pending claim stays and blocks a repeat for the day.
            log.warning("automation_dispatch_timed_out", timeout=self.dispatch_timeout)
            return f"Dispatch timed out after {self.dispatch_timeout}s"

        if not outcome.success:
            if claim_id is not None:
                await self._release_claim(claim_id)
            log.warning("automation_dispatch_failed", error=outcome.error)
            return outcome.error or "Dispatch failed"

        await self._record_sent(delivery, claim_id, outcome.message_id, now)
        log.info("automation_message_sent", message_id=outcome.message_id)
        return None


async def run_locked_pass(
    db: AsyncSession,
    redis: "Redis",
    dispatcher: MessageDispatcher | None = None,
    now: datetime | None = None,
) -> AutomationRunResult | None:
    """Run a pass unless another process is already running one.

    Returns None when the pass lock is held elsewhere.
    """
    lock = redis.lock(
        PASS_LOCK_KEY,
        timeout=settings.AUTOMATION_LOCK_TTL_SECONDS,
        blocking=False,
    )
    if not await lock.acquire():
        logger.info("automation_pass_skipped", reason="lock_held")
        return None
    try:
        return await AutomationEngine(db, dispatcher).run_pass(now)
    finally:
        try:
            await lock.release()
        except LockError:
            # Expired mid-pass; the key may already belong to another runner
            logger.warning("automation_pass_lock_expired", key=PASS_LOCK_KEY)
