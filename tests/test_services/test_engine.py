"""Tests for the automation engine."""

import asyncio
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beautyhub.models.automation import AutomationExecution, ExecutionStatus
from beautyhub.services.automations import engine as engine_module
from beautyhub.services.automations.engine import (
    PASS_LOCK_KEY,
    AutomationEngine,
    AutomationError,
    AutomationRunResult,
    UnsupportedDialectError,
    claim_statement,
    dedup_bucket,
    run_locked_pass,
)
from beautyhub.services.automations.worker import AutomationWorker
from beautyhub.services.messaging import DispatchResult, OutboundMessage


class SlowDispatcher:
    async def dispatch(self, message: OutboundMessage) -> DispatchResult:
        await asyncio.sleep(1)
        return DispatchResult(success=True, message_id="late")


async def executions(db: AsyncSession) -> list[AutomationExecution]:
    result = await db.execute(select(AutomationExecution).order_by(AutomationExecution.executed_at))
    return list(result.scalars().all())


@pytest_asyncio.fixture
async def provider(create_test_provider: Any) -> Any:
    return await create_test_provider()


@pytest_asyncio.fixture
async def reminder_setup(
    provider: Any,
    create_test_user: Any,
    create_test_booking: Any,
    create_test_automation: Any,
    now: datetime,
) -> Any:
    """One active 24h reminder and one booking it matches."""
    customer = await create_test_user(full_name="Jane Doe", phone="+15550001111")
    booking = await create_test_booking(
        provider_id=provider.id,
        customer_id=customer.id,
        booking_number="BK-2001",
        scheduled_at=now + timedelta(hours=24, minutes=5),
    )
    automation = await create_test_automation(
        provider_id=provider.id,
        name="24h Upcoming Reminder",
        trigger_config={"hours_before": 24},
        action_config={"message_template": "Hi {{name}}, see you for {{booking_number}}"},
    )
    return automation, customer, booking


class TestRunResult:
    def test_to_dict_omits_errors_when_clean(self) -> None:
        result = AutomationRunResult(executed=2, automation_ids=["a", "b"])

        assert result.to_dict() == {"executed": 2, "automationIds": ["a", "b"]}

    def test_merge_and_errors(self) -> None:
        merged = AutomationRunResult(executed=1, automation_ids=["a"]).merge(
            AutomationRunResult(errors=[AutomationError("b", "boom")])
        )

        assert merged.to_dict() == {
            "executed": 1,
            "automationIds": ["a"],
            "errors": [{"automationId": "b", "error": "boom"}],
        }

    def test_dedup_bucket_is_utc_day(self, now: datetime) -> None:
        assert dedup_bucket(now) == "2025-03-12"
        assert dedup_bucket(now.replace(hour=23, minute=59)) == "2025-03-12"


class TestRunPass:
    @pytest.mark.asyncio
    async def test_sends_and_records_execution(
        self, test_session: AsyncSession, dispatcher: Any, reminder_setup: Any, now: datetime
    ) -> None:
        automation, customer, _ = reminder_setup

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.to_dict() == {"executed": 1, "automationIds": [str(automation.id)]}
        assert len(dispatcher.sent) == 1
        message = dispatcher.sent[0]
        assert message.to == "+15550001111"
        assert message.channel == "sms"
        assert message.body == "Hi Jane Doe, see you for BK-2001"
        assert message.provider_id == automation.provider_id

        records = await executions(test_session)
        assert len(records) == 1
        assert records[0].customer_id == customer.id
        assert records[0].status == ExecutionStatus.SENT.value
        assert records[0].message_id == "msg-1"
        assert records[0].dedup_bucket == "2025-03-12"

    @pytest.mark.asyncio
    async def test_repeated_passes_send_once(
        self, test_session: AsyncSession, dispatcher: Any, reminder_setup: Any, now: datetime
    ) -> None:
        """Overlapping trigger windows never double-send within a day."""
        engine = AutomationEngine(test_session, dispatcher)

        await engine.run_pass(now)
        second = await engine.run_pass(now + timedelta(minutes=5))

        assert len(dispatcher.sent) == 1
        assert len(await executions(test_session)) == 1
        assert second.errors == []

    @pytest.mark.asyncio
    async def test_held_claim_skips_recipient(
        self, test_session: AsyncSession, dispatcher: Any, reminder_setup: Any, now: datetime
    ) -> None:
        automation, customer, _ = reminder_setup
        # Claimed by another pass for today's bucket, old enough to miss the 24h lookback
        test_session.add(
            AutomationExecution(
                automation_id=automation.id,
                customer_id=customer.id,
                action_type="sms",
                status=ExecutionStatus.PENDING.value,
                dedup_bucket=dedup_bucket(now),
                executed_at=now - timedelta(hours=25),
            )
        )
        await test_session.commit()

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert dispatcher.sent == []
        assert result.errors == []
        assert len(await executions(test_session)) == 1

    @pytest.mark.asyncio
    async def test_failed_dispatch_releases_claim(
        self, test_session: AsyncSession, dispatcher: Any, reminder_setup: Any, now: datetime
    ) -> None:
        automation, _, _ = reminder_setup
        dispatcher.fail_for = {"+15550001111"}
        engine = AutomationEngine(test_session, dispatcher)

        result = await engine.run_pass(now)

        assert result.executed == 1
        assert result.errors == [AutomationError(str(automation.id), "rejected +15550001111")]
        assert await executions(test_session) == []

        # Nothing recorded, so a later pass may retry
        dispatcher.fail_for = set()
        retry = await engine.run_pass(now + timedelta(minutes=5))

        assert retry.errors == []
        assert len(dispatcher.sent) == 1
        assert len(await executions(test_session)) == 1

    @pytest.mark.asyncio
    async def test_dispatch_timeout_keeps_claim(
        self, test_session: AsyncSession, dispatcher: Any, reminder_setup: Any, now: datetime
    ) -> None:
        engine = AutomationEngine(test_session, SlowDispatcher(), dispatch_timeout=0.05)

        result = await engine.run_pass(now)

        assert len(result.errors) == 1
        assert "timed out" in result.errors[0].error
        records = await executions(test_session)
        assert [r.status for r in records] == [ExecutionStatus.PENDING.value]

        # The send may have landed, so the next pass leaves the customer alone
        retry = await AutomationEngine(test_session, dispatcher).run_pass(now + timedelta(minutes=5))

        assert retry.errors == []
        assert dispatcher.sent == []

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_other_recipients(
        self,
        test_session: AsyncSession,
        dispatcher: Any,
        reminder_setup: Any,
        provider: Any,
        create_test_user: Any,
        create_test_booking: Any,
        now: datetime,
    ) -> None:
        automation, customer, _ = reminder_setup
        second = await create_test_user(full_name="Sam", phone="+15550002222")
        await create_test_booking(
            provider_id=provider.id,
            customer_id=second.id,
            scheduled_at=now + timedelta(hours=24, minutes=10),
        )
        dispatcher.fail_for = {"+15550002222"}

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.executed == 1
        assert [e.automation_id for e in result.errors] == [str(automation.id)]
        assert [m.to for m in dispatcher.sent] == ["+15550001111"]
        assert [r.customer_id for r in await executions(test_session)] == [customer.id]

    @pytest.mark.asyncio
    async def test_counts_each_firing_automation_once(
        self,
        test_session: AsyncSession,
        dispatcher: Any,
        reminder_setup: Any,
        provider: Any,
        create_test_automation: Any,
        now: datetime,
    ) -> None:
        first, _, _ = reminder_setup
        second = await create_test_automation(
            provider_id=provider.id, name="Email Reminder", action_type="email"
        )
        await create_test_automation(provider_id=provider.id, trigger_type="holiday")
        await create_test_automation(provider_id=provider.id, is_active=False)

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.executed == 2
        assert sorted(result.automation_ids) == sorted([str(first.id), str(second.id)])
        email = next(m for m in dispatcher.sent if m.channel == "email")
        assert email.subject == "Email Reminder"

    @pytest.mark.asyncio
    async def test_fired_without_reachable_recipients_not_counted(
        self,
        test_session: AsyncSession,
        dispatcher: Any,
        provider: Any,
        create_test_user: Any,
        create_test_booking: Any,
        create_test_automation: Any,
        now: datetime,
    ) -> None:
        customer = await create_test_user(email=None, phone=None)
        await create_test_booking(
            provider_id=provider.id, customer_id=customer.id, scheduled_at=now + timedelta(hours=24)
        )
        await create_test_automation(provider_id=provider.id)

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.to_dict() == {"executed": 0, "automationIds": []}

    @pytest.mark.asyncio
    async def test_evaluation_failure_is_isolated(
        self,
        test_session: AsyncSession,
        dispatcher: Any,
        reminder_setup: Any,
        provider: Any,
        create_test_automation: Any,
        now: datetime,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        good, _, _ = reminder_setup
        broken = await create_test_automation(provider_id=provider.id, trigger_type="client_inactive")
        real_evaluate = engine_module.evaluate_trigger

        async def flaky_evaluate(db: AsyncSession, automation: Any, at: datetime) -> Any:
            if automation.id == broken.id:
                raise RuntimeError("query exploded")
            return await real_evaluate(db, automation, at)

        monkeypatch.setattr(engine_module, "evaluate_trigger", flaky_evaluate)

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.automation_ids == [str(good.id)]
        assert result.errors == [AutomationError(str(broken.id), "query exploded")]
        assert len(dispatcher.sent) == 1


class TestDegradedExecutionLog:
    """A broken execution log costs de-duplication, never the send."""

    def test_claim_statement_rejects_unknown_dialect(self) -> None:
        with pytest.raises(UnsupportedDialectError):
            claim_statement("mysql", {})

    @pytest.mark.asyncio
    async def test_missing_execution_table_still_sends(
        self, test_session: AsyncSession, dispatcher: Any, reminder_setup: Any, now: datetime
    ) -> None:
        await test_session.execute(text("DROP TABLE automation_executions"))
        await test_session.commit()

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.executed == 1
        assert result.errors == []
        assert [m.to for m in dispatcher.sent] == ["+15550001111"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure",
        [UnsupportedDialectError("no upsert"), SQLAlchemyError("claim insert failed")],
    )
    async def test_claim_failure_sends_unguarded(
        self,
        test_session: AsyncSession,
        dispatcher: Any,
        reminder_setup: Any,
        now: datetime,
        monkeypatch: pytest.MonkeyPatch,
        failure: Exception,
    ) -> None:
        def broken_claim(dialect_name: str, values: dict[str, Any]) -> Any:
            raise failure

        monkeypatch.setattr(engine_module, "claim_statement", broken_claim)

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.errors == []
        assert len(dispatcher.sent) == 1
        records = await executions(test_session)
        assert [(r.status, r.message_id) for r in records] == [(ExecutionStatus.SENT.value, "msg-1")]

    @pytest.mark.asyncio
    async def test_record_failure_keeps_send_and_pending_claim(
        self,
        test_session: AsyncSession,
        dispatcher: Any,
        reminder_setup: Any,
        now: datetime,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken_update(*args: Any, **kwargs: Any) -> Any:
            raise SQLAlchemyError("execution log unavailable")

        monkeypatch.setattr(engine_module, "update", broken_update)

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.errors == []
        assert len(dispatcher.sent) == 1
        records = await executions(test_session)
        assert [r.status for r in records] == [ExecutionStatus.PENDING.value]

    @pytest.mark.asyncio
    async def test_unexpected_recipient_error_is_isolated(
        self,
        test_session: AsyncSession,
        dispatcher: Any,
        reminder_setup: Any,
        provider: Any,
        create_test_user: Any,
        create_test_booking: Any,
        now: datetime,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        automation, customer, _ = reminder_setup
        second = await create_test_user(full_name="Sam", phone="+15550002222")
        await create_test_booking(
            provider_id=provider.id,
            customer_id=second.id,
            scheduled_at=now + timedelta(hours=24, minutes=10),
        )
        real_lookup = AutomationEngine._recently_executed

        async def flaky_lookup(self: AutomationEngine, delivery: Any, at: datetime) -> bool:
            if delivery.recipient.customer_id == customer.id:
                raise RuntimeError("lookup exploded")
            return await real_lookup(self, delivery, at)

        monkeypatch.setattr(AutomationEngine, "_recently_executed", flaky_lookup)

        result = await AutomationEngine(test_session, dispatcher).run_pass(now)

        assert result.executed == 1
        assert result.errors == [
            AutomationError(str(automation.id), "RuntimeError: lookup exploded")
        ]
        assert [m.to for m in dispatcher.sent] == ["+15550002222"]


class TestLockedPass:
    @pytest.mark.asyncio
    async def test_runs_and_releases_lock(
        self,
        test_session: AsyncSession,
        test_redis: Any,
        dispatcher: Any,
        reminder_setup: Any,
        now: datetime,
    ) -> None:
        result = await run_locked_pass(test_session, test_redis, dispatcher, now)

        assert result is not None
        assert result.executed == 1
        assert await test_redis.get(PASS_LOCK_KEY) is None

    @pytest.mark.asyncio
    async def test_busy_lock_skips_pass(
        self,
        test_session: AsyncSession,
        test_redis: Any,
        dispatcher: Any,
        reminder_setup: Any,
        now: datetime,
    ) -> None:
        await test_redis.set(PASS_LOCK_KEY, "someone-else", ex=60)

        result = await run_locked_pass(test_session, test_redis, dispatcher, now)

        assert result is None
        assert dispatcher.sent == []
        assert await test_redis.get(PASS_LOCK_KEY) == "someone-else"

    @pytest.mark.asyncio
    async def test_expired_lock_is_not_released_from_new_holder(
        self,
        test_session: AsyncSession,
        test_redis: Any,
        reminder_setup: Any,
        now: datetime,
    ) -> None:
        ttls: list[int] = []

        class TakeoverDispatcher:
            """Lets the pass lock lapse mid-send and another runner grab it."""

            async def dispatch(self, message: OutboundMessage) -> DispatchResult:
                ttls.append(await test_redis.ttl(PASS_LOCK_KEY))
                await test_redis.set(PASS_LOCK_KEY, "next-runner", ex=60)
                return DispatchResult(success=True, message_id="m-1")

        result = await run_locked_pass(test_session, test_redis, TakeoverDispatcher(), now)

        assert result is not None
        assert result.errors == []
        assert ttls and ttls[0] > 0
        assert await test_redis.get(PASS_LOCK_KEY) == "next-runner"


class TestAutomationWorker:
    @pytest.mark.asyncio
    async def test_run_once_uses_fresh_session(
        self,
        test_engine: Any,
        test_redis: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        from beautyhub.services.automations import worker as worker_module

        monkeypatch.setattr(worker_module, "get_redis", AsyncMock(return_value=test_redis))
        monkeypatch.setattr(
            worker_module,
            "AsyncSessionLocal",
            async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False),
        )

        result = await AutomationWorker(poll_interval=60).run_once()

        assert result is not None
        assert result.to_dict() == {"executed": 0, "automationIds": []}

    @pytest.mark.asyncio
    async def test_start_and_stop(self, monkeypatch: pytest.MonkeyPatch) -> None:
        worker = AutomationWorker(poll_interval=60)
        run_once = AsyncMock(return_value=None)
        monkeypatch.setattr(worker, "run_once", run_once)

        await worker.start()
        await asyncio.sleep(0)
        await worker.stop()

        assert worker.running is False
        run_once.assert_awaited()

    @pytest.mark.asyncio
    async def test_global_worker_lifecycle(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from beautyhub.services.automations import worker as worker_module

        monkeypatch.setattr(AutomationWorker, "run_once", AsyncMock(return_value=None))

        worker = await worker_module.start_automation_worker()
        assert worker.running is True
        assert await worker_module.start_automation_worker() is worker

        await worker_module.stop_automation_worker()

        assert worker.running is False
        assert worker_module._automation_worker is None


class TestExecutionCount:
    @pytest.mark.asyncio
    async def test_no_active_automations(self, test_session: AsyncSession, dispatcher: Any) -> None:
        result = await AutomationEngine(test_session, dispatcher).run_pass()

        assert result.executed == 0
        assert await test_session.scalar(select(func.count(AutomationExecution.id))) == 0
