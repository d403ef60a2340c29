"""Recurring maintenance jobs registered on the scheduler."""

from __future__ import annotations

import logging

from site_builder.config import Settings
from site_builder.services.build_recovery_service import BuildRecoveryService
from site_builder.services.build_runner import BuildRunner
from site_builder.services.scheduler import MaintenanceScheduler

STALE_BUILD_SWEEP_JOB_ID = "stale-build-sweep"

_maintenance_logger = logging.getLogger("site_builder.scheduler")


class BuildMaintenanceService:
    """Periodically finalize builds that stopped making progress."""

    def __init__(
        self,
        *,
        scheduler: MaintenanceScheduler,
        settings: Settings,
        runner: BuildRunner,
        recovery_service: BuildRecoveryService,
    ) -> None:
        self._scheduler = scheduler
        self._settings = settings
        self._runner = runner
        self._recovery_service = recovery_service

    def register_jobs(self) -> None:
        if not self._scheduler.enabled:
            return

        self._scheduler.schedule_sweep(
            sweep_id=STALE_BUILD_SWEEP_JOB_ID,
            sweep=run_scheduled_stale_build_sweep,
            every_seconds=self._settings.SCHEDULER_STALE_BUILD_SWEEP_INTERVAL_SECONDS,
            name="Stale build sweep",
        )

    async def run_stale_build_sweep(self) -> int:
        finalized = await self._recovery_service.sweep_stale_builds(
            is_running=self._runner.is_running
        )
        _maintenance_logger.debug(
            "stale_build_sweep_finished",
            extra={"finalized_sites": finalized},
        )
        return finalized


_maintenance_service: BuildMaintenanceService | None = None


def set_build_maintenance_service(service: BuildMaintenanceService | None) -> None:
    global _maintenance_service
    _maintenance_service = service


def _require_maintenance_service() -> BuildMaintenanceService:
    if _maintenance_service is None:
        raise RuntimeError("Build maintenance service is not initialized")

    return _maintenance_service


async def run_scheduled_stale_build_sweep() -> None:
    await _require_maintenance_service().run_stale_build_sweep()


__all__ = [
    "BuildMaintenanceService",
    "STALE_BUILD_SWEEP_JOB_ID",
    "run_scheduled_stale_build_sweep",
    "set_build_maintenance_service",
]
