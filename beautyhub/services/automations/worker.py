"""In-process scheduler for automation passes.

Deployments that already call the execute endpoint from an external cron
leave AUTOMATION_WORKER_ENABLED off. Both paths share the Redis pass lock.
"""

import asyncio
import contextlib

import structlog

from beautyhub.core.config import settings
from beautyhub.db.redis import get_redis
from beautyhub.db.session import AsyncSessionLocal
from beautyhub.services.automations.engine import AutomationRunResult, run_locked_pass

logger = structlog.get_logger()


class AutomationWorker:
    """Background task running an automation pass every poll interval."""

    def __init__(self, poll_interval: float | None = None) -> None:
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.AUTOMATION_POLL_INTERVAL_SECONDS
        )
        self.running = False
        self.logger = logger.bind(component="automation_worker")
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self.running:
            self.logger.warning("Automation worker already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._run_loop())
        self.logger.info("Automation worker started", poll_interval=self.poll_interval)

    async def stop(self) -> None:
        self.running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self.logger.info("Automation worker stopped")

    async def _run_loop(self) -> None:
        while self.running:
            try:
                await self.run_once()
            except Exception:
                self.logger.exception("Error in automation worker loop")

            await asyncio.sleep(self.poll_interval)

    async def run_once(self) -> AutomationRunResult | None:
        """Run one locked pass on a fresh session."""
        redis = await get_redis()
        async with AsyncSessionLocal() as db:
            try:
                result = await run_locked_pass(db, redis)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        if result is not None:
            self.logger.info(
                "Automation pass finished",
                executed=result.executed,
                errors=len(result.errors),
            )
        return result


# Global worker instance
_automation_worker: AutomationWorker | None = None


async def start_automation_worker() -> AutomationWorker:
    """Start the global automation worker."""
    global _automation_worker

    if _automation_worker is None:
        _automation_worker = AutomationWorker()

    await _automation_worker.start()
    return _automation_worker


async def stop_automation_worker() -> None:
    """Stop the global automation worker."""
    global _automation_worker

    if _automation_worker:
        await _automation_worker.stop()
        _automation_worker = None
