"""Background scheduler that drives recurring build maintenance sweeps."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import cast

from apscheduler.events import EVENT_JOB_ERROR  # type: ignore[import-untyped]
from apscheduler.events import EVENT_JOB_EXECUTED
from apscheduler.events import EVENT_JOB_MISSED
from apscheduler.events import JobExecutionEvent
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore  # type: ignore[import-untyped]
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]

from site_builder.config import Settings

MaintenanceSweep = Callable[[], Awaitable[None]]

_scheduler_logger = logging.getLogger("site_builder.scheduler")


class MaintenanceScheduler:
    """Run build maintenance sweeps on the application's event loop.

    Sweeps are persisted in the configured job store so a restart keeps the
    same schedule. At most one instance of a sweep runs at a time and missed
    runs collapse into a single catch-up run.
    """

    def __init__(
        self,
        *,
        enabled: bool,
        jobstore_url: str,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._enabled = enabled
        self._scheduler = scheduler or AsyncIOScheduler(
            jobstores={"default": SQLAlchemyJobStore(url=jobstore_url)}
        )
        self._scheduler.add_listener(
            self._log_sweep_outcome,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> MaintenanceScheduler:
        return cls(
            enabled=settings.SCHEDULER_ENABLED,
            jobstore_url=settings.SCHEDULER_JOBSTORE_URL,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def running(self) -> bool:
        return self._enabled and cast(bool, self._scheduler.running)

    def scheduled_sweep_ids(self) -> list[str]:
        if not self._enabled:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    def schedule_sweep(
        self,
        *,
        sweep_id: str,
        sweep: MaintenanceSweep,
        every_seconds: int,
        name: str,
    ) -> None:
        if not self._enabled:
            raise RuntimeError("Maintenance scheduler is disabled")
        if every_seconds <= 0:
            raise ValueError("Sweep interval must be greater than zero")

        self._scheduler.add_job(
            sweep,
            trigger="interval",
            seconds=every_seconds,
            id=sweep_id,
            name=name,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=every_seconds,
        )
        _scheduler_logger.info(
            "maintenance_sweep_scheduled",
            extra={"sweep_id": sweep_id, "interval_seconds": every_seconds},
        )

    async def start(self) -> None:
        if not self._enabled:
            _scheduler_logger.info("maintenance_scheduler_disabled")
            return
        if self._scheduler.running:
            return

        self._scheduler.start()
        _scheduler_logger.info(
            "maintenance_scheduler_started",
            extra={"sweep_ids": self.scheduled_sweep_ids()},
        )

    async def shutdown(self) -> None:
        if not self.running:
            return

        self._scheduler.shutdown(wait=False)
        _scheduler_logger.info("maintenance_scheduler_shutdown")

    @staticmethod
    def _log_sweep_outcome(event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_MISSED:
            _scheduler_logger.warning(
                "maintenance_sweep_missed",
                extra={
                    "sweep_id": event.job_id,
                    "scheduled_run_time": event.scheduled_run_time.isoformat(),
                },
            )
            return

        if event.exception is None:
            _scheduler_logger.debug(
                "maintenance_sweep_completed",
                extra={"sweep_id": event.job_id},
            )
            return

        _scheduler_logger.error(
            "maintenance_sweep_failed",
            extra={
                "sweep_id": event.job_id,
                "exception": str(event.exception),
                "traceback": event.traceback,
            },
        )


__all__ = ["MaintenanceScheduler", "MaintenanceSweep"]
