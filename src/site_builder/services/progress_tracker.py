"""Persistence of site lifecycle state and build progress."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from site_builder.models import Site
from site_builder.services.status_machine import (
    BuildProgress,
    SiteLifecycleState,
    begin,
)

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]
LifecycleTransition = Callable[[SiteLifecycleState], SiteLifecycleState]

_progress_logger = logging.getLogger("site_builder.progress")


class SiteNotFoundError(LookupError):
    """Raised when a site row does not exist."""

    def __init__(self, site_id: UUID) -> None:
        self.site_id = site_id
        super().__init__(f"Site {site_id} not found")


class ProgressNotInitializedError(RuntimeError):
    """Raised when advancing a site that has no build progress record."""

    def __init__(self, site_id: UUID) -> None:
        self.site_id = site_id
        super().__init__(f"Site {site_id} has no build progress to advance")


def lifecycle_state_of(site: Site) -> SiteLifecycleState:
    progress = (
        BuildProgress.from_record(site.build_progress)
        if site.build_progress is not None
        else None
    )
    return SiteLifecycleState(
        status=site.status,
        build_progress=progress,
        status_message=site.status_message,
    )


class ProgressTracker:
    """Read and write the single progress record owned by each site.

    Every write is one row-scoped read-modify-write transaction. Writers for
    different sites never touch the same row, so no global lock is needed.
    """

    def __init__(self, *, session_factory: SessionScopeFactory | None = None) -> None:
        if session_factory is None:
            from site_builder.database import session_scope

            session_factory = session_scope

        self._session_factory = session_factory

    async def init(
        self,
        site_id: UUID,
        total_tasks: int,
        *,
        was_already_active: bool = False,
    ) -> BuildProgress:
        """Start a fresh progress record and enter the build lifecycle."""

        progress = BuildProgress.start(total_tasks)
        await self.apply(
            site_id,
            lambda state: begin(
                state,
                progress=progress,
                was_already_active=was_already_active,
            ),
        )
        _progress_logger.info(
            "build_progress_initialized",
            extra={
                "site_id": str(site_id),
                "total_tasks": total_tasks,
                "was_already_active": was_already_active,
            },
        )
        return progress

    async def advance(
        self,
        site_id: UUID,
        completed_tasks: int,
        current_task: str,
    ) -> BuildProgress:
        """Move progress forward and describe the unit of work now in flight."""

        async with self._session_factory() as session:
            site = await self._lock_site(session, site_id)
            if site.build_progress is None:
                raise ProgressNotInitializedError(site_id)

            current = BuildProgress.from_record(site.build_progress)
            if completed_tasks < current.completed_tasks:
                _progress_logger.debug(
                    "build_progress_regression_ignored",
                    extra={
                        "site_id": str(site_id),
                        "completed_tasks": completed_tasks,
                        "recorded_completed_tasks": current.completed_tasks,
                    },
                )
            elif completed_tasks > current.total_tasks:
                _progress_logger.warning(
                    "build_progress_overflow_clamped",
                    extra={
                        "site_id": str(site_id),
                        "completed_tasks": completed_tasks,
                        "total_tasks": current.total_tasks,
                    },
                )

            advanced = current.advanced_to(completed_tasks, current_task)
            site.build_progress = advanced.to_record()
            site.status_updated_at = datetime.now(UTC)

        return advanced

    async def read(self, site_id: UUID) -> BuildProgress | None:
        state = await self.read_state(site_id)
        return state.build_progress

    async def read_state(self, site_id: UUID) -> SiteLifecycleState:
        async with self._session_factory() as session:
            site = await session.get(Site, site_id)
            if site is None:
                raise SiteNotFoundError(site_id)
            return lifecycle_state_of(site)

    async def apply(
        self,
        site_id: UUID,
        transition: LifecycleTransition,
    ) -> SiteLifecycleState:
        """Apply a lifecycle transition to the stored site state."""

        async with self._session_factory() as session:
            site = await self._lock_site(session, site_id)
            previous = lifecycle_state_of(site)
            updated = transition(previous)

            site.status = updated.status
            site.status_message = updated.status_message
            site.build_progress = (
                updated.build_progress.to_record()
                if updated.build_progress is not None
                else None
            )
            site.status_updated_at = datetime.now(UTC)

        if previous.status is not updated.status:
            _progress_logger.info(
                "site_status_changed",
                extra={
                    "site_id": str(site_id),
                    "previous_status": previous.status.value,
                    "status": updated.status.value,
                },
            )
        return updated

    @staticmethod
    async def _lock_site(session: AsyncSession, site_id: UUID) -> Site:
        site = await session.scalar(
            select(Site).where(Site.id == site_id).with_for_update()
        )
        if site is None:
            raise SiteNotFoundError(site_id)
        return site


__all__ = [
    "LifecycleTransition",
    "ProgressNotInitializedError",
    "ProgressTracker",
    "SiteNotFoundError",
    "lifecycle_state_of",
]
