"""Startup, shutdown and periodic recovery for interrupted or stalled builds."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from site_builder.models import BuildRun, Site, SiteStatus
from site_builder.services.build_orchestrator import (
    RunStatus,
    finalize_site_failure,
)
from site_builder.services.progress_tracker import ProgressTracker

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

RESTART_INTERRUPTION_MESSAGE = "Content generation interrupted by a restart"
SHUTDOWN_INTERRUPTION_MESSAGE = "Content generation interrupted by shutdown"
STALLED_BUILD_MESSAGE = "Content generation stalled"

_recovery_logger = logging.getLogger("site_builder.recovery")


@dataclass(slots=True, frozen=True)
class InterruptedBuildRecord:
    """Interrupted run details for logs and lifecycle summaries."""

    run_id: UUID
    site_id: UUID
    trigger_source: str
    was_already_active: bool
    started_at: datetime
    completed_tasks: int
    total_tasks: int


@dataclass(slots=True, frozen=True)
class StartupRecoveryResult:
    """Startup recovery outcome details used by boot logs."""

    detected_runs: tuple[InterruptedBuildRecord, ...]
    sites_finalized: int

    @property
    def detected_count(self) -> int:
        return len(self.detected_runs)


@dataclass(slots=True, frozen=True)
class ShutdownBuildSummary:
    """Session-scoped shutdown aggregate counters."""

    runs_succeeded: int
    runs_degraded: int
    runs_failed: int
    runs_interrupted: int


class BuildRecoveryService:
    """Detect build runs no live process owns and finalize their sites."""

    def __init__(
        self,
        *,
        session_factory: SessionScopeFactory | None = None,
        tracker: ProgressTracker | None = None,
        stale_threshold_seconds: float = 300.0,
    ) -> None:
        if session_factory is None:
            from site_builder.database import session_scope

            session_factory = session_scope

        self._session_factory = session_factory
        self._tracker = tracker or ProgressTracker(session_factory=session_factory)
        self._stale_threshold_seconds = stale_threshold_seconds

    async def handle_startup_recovery(self) -> StartupRecoveryResult:
        """Finalize runs left ``running`` by a previous process."""

        interrupted = await self._interrupt_running_runs(
            reason=RESTART_INTERRUPTION_MESSAGE,
            stage="startup_recovery",
        )
        if interrupted:
            _recovery_logger.warning(
                "startup_interrupted_builds_detected",
                extra={
                    "count": len(interrupted),
                    "run_ids": [str(record.run_id) for record in interrupted],
                    "site_ids": [str(record.site_id) for record in interrupted],
                },
            )
        else:
            _recovery_logger.info("startup_interrupted_builds_not_found")

        finalized = await self._finalize_sites(
            interrupted, message=RESTART_INTERRUPTION_MESSAGE
        )
        return StartupRecoveryResult(
            detected_runs=tuple(interrupted),
            sites_finalized=finalized,
        )

    async def persist_shutdown_checkpoints(self) -> int:
        """Mark runs still ``running`` at shutdown as interrupted."""

        interrupted = await self._interrupt_running_runs(
            reason=SHUTDOWN_INTERRUPTION_MESSAGE,
            stage="shutdown",
        )
        await self._finalize_sites(interrupted, message=SHUTDOWN_INTERRUPTION_MESSAGE)
        return len(interrupted)

    async def sweep_stale_builds(
        self,
        *,
        is_running: Callable[[UUID], bool],
        now: datetime | None = None,
    ) -> int:
        """Finalize builds whose progress stopped moving without a live run."""

        reference = now or datetime.now(UTC)
        cutoff = reference - timedelta(seconds=self._stale_threshold_seconds)

        interrupted = await self._interrupt_running_runs(
            reason=STALLED_BUILD_MESSAGE,
            stage="stale_sweep",
            site_filter=lambda site: not is_running(site.id)
            and _updated_before(site, cutoff),
        )
        finalized = await self._finalize_sites(
            interrupted, message=STALLED_BUILD_MESSAGE
        )

        handled = {record.site_id for record in interrupted}
        async with self._session_factory() as session:
            orphan_site_ids = [
                site.id
                for site in (
                    await session.execute(
                        select(Site).where(Site.status == SiteStatus.BUILDING)
                    )
                )
                .scalars()
                .all()
                if site.id not in handled
                and not is_running(site.id)
                and _updated_before(site, cutoff)
            ]

        for site_id in orphan_site_ids:
            status = await finalize_site_failure(
                self._tracker,
                site_id,
                was_already_active=False,
                message=STALLED_BUILD_MESSAGE,
            )
            if status is not None:
                finalized += 1

        if finalized:
            _recovery_logger.warning(
                "stale_builds_finalized",
                extra={
                    "count": finalized,
                    "interrupted_runs": len(interrupted),
                    "orphan_sites": len(orphan_site_ids),
                },
            )
        return finalized

    async def summarize_session(
        self,
        *,
        session_started_at: datetime,
    ) -> ShutdownBuildSummary:
        """Return session run totals for shutdown logs."""

        async with self._session_factory() as session:
            statuses = (
                (
                    await session.execute(
                        select(BuildRun.status).where(
                            BuildRun.started_at >= session_started_at
                        )
                    )
                )
                .scalars()
                .all()
            )

        return ShutdownBuildSummary(
            runs_succeeded=statuses.count(RunStatus.SUCCEEDED.value),
            runs_degraded=statuses.count(RunStatus.DEGRADED.value),
            runs_failed=statuses.count(RunStatus.FAILED.value),
            runs_interrupted=statuses.count(RunStatus.INTERRUPTED.value),
        )

    async def _interrupt_running_runs(
        self,
        *,
        reason: str,
        stage: str,
        site_filter: Callable[[Site], bool] | None = None,
    ) -> list[InterruptedBuildRecord]:
        interrupted_at = datetime.now(UTC)
        records: list[InterruptedBuildRecord] = []
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(BuildRun, Site)
                    .join(Site, Site.id == BuildRun.site_id)
                    .where(BuildRun.status == RunStatus.RUNNING.value)
                    .order_by(BuildRun.started_at.asc())
                )
            ).all()
            for run, site in rows:
                if site_filter is not None and not site_filter(site):
                    continue
                progress = site.build_progress or {}
                run.status = RunStatus.INTERRUPTED.value
                run.finished_at = interrupted_at
                run.error_message = reason
                run.completed_tasks = int(
                    progress.get("completed_tasks", run.completed_tasks)
                )
                records.append(
                    InterruptedBuildRecord(
                        run_id=run.id,
                        site_id=run.site_id,
                        trigger_source=run.trigger_source,
                        was_already_active=run.was_already_active,
                        started_at=run.started_at,
                        completed_tasks=run.completed_tasks,
                        total_tasks=run.total_tasks,
                    )
                )

        if records:
            _recovery_logger.info(
                "running_builds_marked_interrupted",
                extra={"count": len(records), "stage": stage},
            )
        return records

    async def _finalize_sites(
        self,
        records: list[InterruptedBuildRecord],
        *,
        message: str,
    ) -> int:
        finalized = 0
        seen: set[UUID] = set()
        # Newest run per site decides how that site is finalized.
        for record in reversed(records):
            if record.site_id in seen:
                continue
            seen.add(record.site_id)
            status = await finalize_site_failure(
                self._tracker,
                record.site_id,
                was_already_active=record.was_already_active,
                message=message,
            )
            if status is not None:
                finalized += 1
        return finalized


def _updated_before(site: Site, cutoff: datetime) -> bool:
    updated_at = site.status_updated_at
    if updated_at is None:
        return True
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=UTC)
    return updated_at < cutoff


__all__ = [
    "BuildRecoveryService",
    "InterruptedBuildRecord",
    "RESTART_INTERRUPTION_MESSAGE",
    "SHUTDOWN_INTERRUPTION_MESSAGE",
    "STALLED_BUILD_MESSAGE",
    "ShutdownBuildSummary",
    "StartupRecoveryResult",
]
