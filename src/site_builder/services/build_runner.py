"""Supervised background execution of build runs, one per site."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from site_builder.services.build_orchestrator import (
    BuildConflictError,
    BuildOrchestrator,
    BuildOutcome,
    PreparedBuild,
    RunStatus,
)
from site_builder.services.status_machine import TriggerSource

_runner_logger = logging.getLogger("site_builder.runner")

RUN_TIMEOUT_MESSAGE = "Content generation timed out"
RUN_CRASHED_MESSAGE = "Content generation stopped unexpectedly"
RUN_INTERRUPTED_MESSAGE = "Content generation interrupted by shutdown"


@dataclass(slots=True, frozen=True)
class SubmittedBuild:
    """Acknowledgement handed back to the trigger endpoint."""

    site_id: UUID
    run_id: UUID
    total_tasks: int


class BuildRunner:
    """Own detached build tasks keyed by site id.

    The registry doubles as a per-site advisory lock: while a run for a site
    is being prepared or executed, any further submit for that site is
    rejected, whatever its trigger source.
    """

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        *,
        run_timeout_seconds: float = 300.0,
    ) -> None:
        if run_timeout_seconds <= 0:
            raise ValueError("run_timeout_seconds must be greater than zero")

        self._orchestrator = orchestrator
        self._run_timeout_seconds = run_timeout_seconds
        self._pending: set[UUID] = set()
        self._tasks: dict[UUID, asyncio.Task[BuildOutcome]] = {}
        self._accepting = True

    def is_running(self, site_id: UUID) -> bool:
        return site_id in self._pending or site_id in self._tasks

    async def submit(
        self,
        site_id: UUID,
        *,
        source: TriggerSource,
        retry: bool = False,
    ) -> SubmittedBuild:
        """Prepare a run and start it in the background.

        Precondition failures propagate to the caller before anything is
        scheduled.
        """

        if not self._accepting:
            raise BuildConflictError(site_id, "runner is shutting down")
        if self.is_running(site_id):
            raise BuildConflictError(site_id, "build already running in this process")

        self._pending.add(site_id)
        try:
            prepared = await self._orchestrator.prepare(
                site_id,
                source=source,
                retry=retry,
            )
            task = asyncio.create_task(
                self._supervise(prepared),
                name=f"site-build-{site_id}",
            )
            self._tasks[site_id] = task
            task.add_done_callback(lambda done: self._forget(site_id, done))
        finally:
            self._pending.discard(site_id)

        _runner_logger.info(
            "build_run_submitted",
            extra={
                "site_id": str(site_id),
                "run_id": str(prepared.run_id),
                "trigger_source": source.value,
                "total_tasks": prepared.total_tasks,
            },
        )
        return SubmittedBuild(
            site_id=site_id,
            run_id=prepared.run_id,
            total_tasks=prepared.total_tasks,
        )

    async def wait_idle(self) -> None:
        """Wait until every live run has finished."""

        while self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def shutdown(self, *, grace_period_seconds: float = 0.0) -> int:
        """Stop accepting work, then cancel runs still alive after the grace period."""

        self._accepting = False
        tasks = list(self._tasks.values())
        if not tasks:
            return 0

        if grace_period_seconds > 0:
            _, still_running = await asyncio.wait(tasks, timeout=grace_period_seconds)
        else:
            still_running = {task for task in tasks if not task.done()}

        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)

        _runner_logger.info(
            "build_runner_stopped",
            extra={"cancelled_runs": len(still_running)},
        )
        return len(still_running)

    async def _supervise(self, prepared: PreparedBuild) -> BuildOutcome:
        try:
            return await asyncio.wait_for(
                self._orchestrator.execute(prepared),
                timeout=self._run_timeout_seconds,
            )
        except TimeoutError:
            _runner_logger.error(
                "build_run_timed_out",
                extra={
                    "site_id": str(prepared.site_id),
                    "run_id": str(prepared.run_id),
                    "timeout_seconds": self._run_timeout_seconds,
                },
            )
            return await self._orchestrator.finalize_failure(
                prepared, RUN_TIMEOUT_MESSAGE
            )
        except asyncio.CancelledError:
            _runner_logger.warning(
                "build_run_cancelled",
                extra={
                    "site_id": str(prepared.site_id),
                    "run_id": str(prepared.run_id),
                },
            )
            await asyncio.shield(
                self._orchestrator.finalize_failure(
                    prepared,
                    RUN_INTERRUPTED_MESSAGE,
                    run_status=RunStatus.INTERRUPTED,
                )
            )
            raise
        except Exception:
            _runner_logger.exception(
                "build_run_crashed",
                extra={
                    "site_id": str(prepared.site_id),
                    "run_id": str(prepared.run_id),
                },
            )
            return await self._orchestrator.finalize_failure(
                prepared, RUN_CRASHED_MESSAGE
            )

    def _forget(self, site_id: UUID, task: asyncio.Task[BuildOutcome]) -> None:
        if self._tasks.get(site_id) is task:
            del self._tasks[site_id]


__all__ = [
    "BuildRunner",
    "RUN_CRASHED_MESSAGE",
    "RUN_INTERRUPTED_MESSAGE",
    "RUN_TIMEOUT_MESSAGE",
    "SubmittedBuild",
]
