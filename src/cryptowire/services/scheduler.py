"""Cron scheduling with single-flight runs."""

import threading
from datetime import UTC, datetime
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from cryptowire.models import RunResult
from cryptowire.services.orchestrator import RunOrchestrator
from cryptowire.store.repositories import SettingsStore
from cryptowire.store.settings import ParserConfig
from cryptowire.utils.logging import get_logger

logger = get_logger(__name__)

JOB_ID = "parser_run"


class RunInProgressError(Exception):
    """Raised when a manual run is requested while another run is active."""


class SchedulerState:
    """The run-in-progress flag. Only the Scheduler acquires and releases it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def try_acquire(self) -> bool:
        """Set the flag if it is clear. Returns False when a run is already active."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            return True

    def release(self) -> None:
        with self._lock:
            self._running = False


class Scheduler:
    """Arms the cron job from the stored configuration and runs the orchestrator.

    Scheduled and manual runs share one SchedulerState, so a trigger that
    fires while any run is active does nothing.
    """

    def __init__(
        self,
        orchestrator: RunOrchestrator,
        settings_store: SettingsStore,
        timezone: str = "UTC",
        state: SchedulerState | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._settings_store = settings_store
        self._timezone = timezone
        self.state = state or SchedulerState()
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        self._cron: str | None = None

    @property
    def cron_expression(self) -> str | None:
        """Cron expression of the armed job, None when stopped."""
        return self._cron

    async def start(self) -> None:
        """Start the scheduler and arm the job if the parser is enabled."""
        if not self._scheduler.running:
            self._scheduler.start()
        config = await self._settings_store.load_config()
        await self.apply(config)
        logger.info("Scheduler started", enabled=config.enabled, schedule=config.schedule.value)

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    async def apply(self, config: ParserConfig) -> None:
        """Bring the cron job in line with config: arm, re-arm or stop it."""
        if not config.enabled:
            await self._stop_job()
            return
        if config.cron_expression == self._cron and self._scheduler.get_job(JOB_ID):
            return

        trigger = CronTrigger.from_crontab(config.cron_expression, timezone=self._timezone)
        self._scheduler.add_job(
            self.run_scheduled,
            trigger,
            id=JOB_ID,
            name="Crypto news ingestion",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._cron = config.cron_expression
        next_run_at = self.next_fire_time(config.cron_expression)
        await self._settings_store.set_next_run(next_run_at)
        logger.info(
            "Parser job armed",
            cron=config.cron_expression,
            next_run_at=next_run_at.isoformat() if next_run_at else None,
        )

    async def _stop_job(self) -> None:
        if self._scheduler.get_job(JOB_ID):
            self._scheduler.remove_job(JOB_ID)
            logger.info("Parser job stopped")
        self._cron = None
        await self._settings_store.set_next_run(None)

    def next_fire_time(self, cron: str, now: datetime | None = None) -> datetime | None:
        trigger = CronTrigger.from_crontab(cron, timezone=self._timezone)
        return trigger.get_next_fire_time(None, now or datetime.now(UTC))

    async def run_scheduled(self) -> RunResult | None:
        """Job body: one scheduled run, skipped when another run is active."""
        if not self.state.try_acquire():
            logger.info("Run already in progress, skipping scheduled trigger")
            return None

        try:
            config = await self._settings_store.load_config()
            if not config.enabled:
                logger.info("Parser disabled, stopping job")
                await self._stop_job()
                return None
            return await self._orchestrator.run(trigger="scheduled")
        except Exception as e:
            logger.error("Scheduled run failed", error=str(e))
            return None
        finally:
            self.state.release()
            await self._after_run()

    async def run_once(
        self, count: int | None = None, use_feed_mode: bool | None = None
    ) -> RunResult:
        """Manual trigger.

        Raises:
            RunInProgressError: If a run is already active.
            ConfigError: If the orchestrator cannot start the run.
        """
        if not self.state.try_acquire():
            raise RunInProgressError("a parser run is already in progress")
        try:
            return await self._orchestrator.run(
                count=count, use_feed_mode=use_feed_mode, trigger="manual"
            )
        finally:
            self.state.release()
            await self._after_run()

    async def _after_run(self) -> None:
        # Pick up schedule or enablement changes made while the run was going
        try:
            config = await self._settings_store.load_config()
            await self.apply(config)
            if config.enabled and self._cron:
                await self._settings_store.set_next_run(self.next_fire_time(self._cron))
        except Exception as e:
            logger.error("Failed to re-arm parser job", error=str(e))

    async def set_enabled(self, enabled: bool | None = None) -> ParserConfig:
        """Enable, disable or (with None) toggle the parser, then re-arm accordingly."""
        config = await self._settings_store.load_config()
        enabled = not config.enabled if enabled is None else enabled
        config = config.model_copy(update={"enabled": enabled})
        await self._settings_store.save_config(config)
        await self.apply(config)
        logger.info("Parser toggled", enabled=config.enabled)
        return config

    async def get_status(self) -> dict[str, Any]:
        config = await self._settings_store.load_config()
        stats = await self._settings_store.load_stats()
        return {
            "enabled": config.enabled,
            "is_running": self.state.running,
            "schedule": config.schedule.value,
            "articles_per_run": config.articles_per_run,
            "next_run_at": stats.next_run_at,
            "last_run_at": stats.last_run_at,
            "stats": {
                "total_parsed": stats.total_parsed,
                "total_success": stats.total_success,
                "total_failed": stats.total_failed,
                "total_duplicates": stats.total_duplicates,
            },
        }
