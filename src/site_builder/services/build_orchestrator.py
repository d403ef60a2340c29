"""Drive one content build run from precondition checks to final site status."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import cast
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from site_builder.config import Settings
from site_builder.models import BuildRun, PageType, Site, SiteStatus
from site_builder.schemas.content import LongFormPageContent, PageContent
from site_builder.services.artifact_store import ArtifactStore
from site_builder.services.content_generator import (
    ContentGeneratorPort,
    GeneratedContent,
    GenerationPayload,
)
from site_builder.services.content_prompts import BusinessContext
from site_builder.services.generation_errors import GeneratorConfigurationError
from site_builder.services.progress_tracker import (
    ProgressNotInitializedError,
    ProgressTracker,
    SiteNotFoundError,
)
from site_builder.services.retry_policy import with_retry
from site_builder.services.reviews_client import ReviewsPort
from site_builder.services.site_snapshot import SiteSnapshot, load_site_snapshot
from site_builder.services.status_machine import (
    InvalidStatusTransitionError,
    SiteLifecycleState,
    TriggerSource,
    can_start_build,
    finalize_fatal,
    finalize_non_fatal_on_active,
    finalize_success,
)
from site_builder.services.task_planner import (
    FALLBACK_CATEGORY_NAME,
    BuildPlan,
    GenerationTask,
    MissingRequiredDataError,
    TaskBatch,
    TaskKind,
    TaskPlanner,
    completed_label,
)

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

RETRYABLE_SITE_STATUSES = frozenset(
    {SiteStatus.FAILED, SiteStatus.ACTIVE, SiteStatus.BUILDING}
)
IMPORTING_REVIEWS_TASK = "Importing reviews..."

_build_logger = logging.getLogger("site_builder.build")


class BuildConflictError(Exception):
    """Raised when a build for the site is already in flight."""

    def __init__(self, site_id: UUID, reason: str) -> None:
        self.site_id = site_id
        self.reason = reason
        super().__init__(f"Build for site {site_id} rejected: {reason}")


class AllBatchesFailedError(RuntimeError):
    """Raised when no generation batch of a run produced any artifact."""

    def __init__(self, failed_batches: int) -> None:
        self.failed_batches = failed_batches
        super().__init__(f"All {failed_batches} content generation batches failed")


class RunStatus(str, Enum):
    """Outcome recorded on a build_runs row."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


@dataclass(slots=True, frozen=True)
class PreparedBuild:
    """A run whose preconditions passed and whose progress is initialized."""

    site_id: UUID
    run_id: UUID
    source: TriggerSource
    was_already_active: bool
    plan: BuildPlan
    snapshot: SiteSnapshot

    @property
    def total_tasks(self) -> int:
        return self.plan.total_tasks


@dataclass(slots=True, frozen=True)
class BuildOutcome:
    """Final summary of an executed run."""

    site_id: UUID
    run_id: UUID
    run_status: RunStatus
    site_status: SiteStatus | None
    completed_tasks: int
    total_tasks: int
    failed_batches: int
    error_message: str | None = None


def build_is_stale(
    status: SiteStatus,
    status_updated_at: datetime | None,
    *,
    threshold_seconds: float,
    now: datetime | None = None,
) -> bool:
    """Return whether a ``building`` site has not moved for too long."""

    if status is not SiteStatus.BUILDING:
        return False
    if status_updated_at is None:
        return True
    if status_updated_at.tzinfo is None:
        status_updated_at = status_updated_at.replace(tzinfo=UTC)
    reference = now or datetime.now(UTC)
    return reference - status_updated_at > timedelta(seconds=threshold_seconds)


def failure_message(error: BaseException) -> str:
    message = str(error).strip()
    return message or error.__class__.__name__


class BuildOrchestrator:
    """Run the build pipeline for one site at a time per call.

    ``prepare`` covers the synchronous part of a trigger: loading the site,
    admission, planning and progress initialization. ``execute`` performs
    generation and always finalizes the site, never raising except for
    cancellation.
    """

    def __init__(
        self,
        *,
        generator: ContentGeneratorPort,
        reviews: ReviewsPort | None = None,
        planner: TaskPlanner | None = None,
        tracker: ProgressTracker | None = None,
        store: ArtifactStore | None = None,
        session_factory: SessionScopeFactory | None = None,
        max_retries: int = 1,
        retry_delay_seconds: float = 2.0,
        stale_threshold_seconds: float = 300.0,
    ) -> None:
        if session_factory is None:
            from site_builder.database import session_scope

            session_factory = session_scope

        self._session_factory = session_factory
        self._generator = generator
        self._reviews = reviews
        self._planner = planner or TaskPlanner()
        self._tracker = tracker or ProgressTracker(session_factory=session_factory)
        self._store = store or ArtifactStore(session_factory=session_factory)
        self._max_retries = max_retries
        self._retry_delay_seconds = retry_delay_seconds
        self._stale_threshold_seconds = stale_threshold_seconds

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        generator: ContentGeneratorPort,
        reviews: ReviewsPort | None = None,
        session_factory: SessionScopeFactory | None = None,
    ) -> BuildOrchestrator:
        return cls(
            generator=generator,
            reviews=reviews,
            planner=TaskPlanner(
                service_batch_size=settings.SERVICE_BATCH_SIZE,
                service_area_batch_size=settings.SERVICE_AREA_BATCH_SIZE,
            ),
            session_factory=session_factory,
            max_retries=settings.GENERATION_MAX_RETRIES,
            retry_delay_seconds=settings.GENERATION_RETRY_DELAY_SECONDS,
            stale_threshold_seconds=settings.STALE_BUILD_THRESHOLD_SECONDS,
        )

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    async def prepare(
        self,
        site_id: UUID,
        *,
        source: TriggerSource,
        retry: bool = False,
    ) -> PreparedBuild:
        """Admit, plan and initialize a run; raise before any progress exists."""

        async with self._session_factory() as session:
            site = await session.get(Site, site_id)
            if site is None:
                raise SiteNotFoundError(site_id)

            stale = False
            if retry:
                if site.status not in RETRYABLE_SITE_STATUSES:
                    raise InvalidStatusTransitionError(
                        site.status,
                        SiteStatus.BUILDING,
                        allowed=RETRYABLE_SITE_STATUSES,
                    )
                stale = build_is_stale(
                    site.status,
                    site.status_updated_at,
                    threshold_seconds=self._stale_threshold_seconds,
                )

            if not can_start_build(site.status, source, stale=stale):
                raise BuildConflictError(site_id, "build already in progress")

            snapshot = await load_site_snapshot(session, site)

        plan = self._planner.plan(snapshot)
        was_already_active = snapshot.was_already_active
        await self._tracker.init(
            site_id,
            plan.total_tasks,
            was_already_active=was_already_active,
        )

        async with self._session_factory() as session:
            run = BuildRun(
                site_id=site_id,
                trigger_source=source.value,
                was_already_active=was_already_active,
                status=RunStatus.RUNNING.value,
                started_at=datetime.now(UTC),
                total_tasks=plan.total_tasks,
            )
            session.add(run)
            await session.flush()
            run_id = run.id

        _build_logger.info(
            "build_run_prepared",
            extra={
                "site_id": str(site_id),
                "run_id": str(run_id),
                "trigger_source": source.value,
                "was_already_active": was_already_active,
                "total_tasks": plan.total_tasks,
                "batch_count": len(plan.batches),
            },
        )
        return PreparedBuild(
            site_id=site_id,
            run_id=run_id,
            source=source,
            was_already_active=was_already_active,
            plan=plan,
            snapshot=snapshot,
        )

    async def run(self, site_id: UUID, *, source: TriggerSource) -> BuildOutcome:
        prepared = await self.prepare(site_id, source=source)
        return await self.execute(prepared)

    async def execute(self, prepared: PreparedBuild) -> BuildOutcome:
        """Generate every planned artifact, then finalize the site."""

        site_id = prepared.site_id
        completed = 0
        produced = 0
        failed_batches = 0
        try:
            context = await self._business_context(prepared)

            for batch in prepared.plan:
                await self._tracker.advance(site_id, completed, batch.describe())
                batch_start = completed
                try:
                    artifacts = await self._generate(batch, context)
                    for task, artifact in zip(batch.tasks, artifacts, strict=True):
                        await self._persist(site_id, task, artifact)
                        completed += 1
                        produced += 1
                        await self._tracker.advance(
                            site_id, completed, completed_label(task)
                        )
                except (
                    GeneratorConfigurationError,
                    SiteNotFoundError,
                    ProgressNotInitializedError,
                ):
                    raise
                except Exception as error:
                    failed_batches += 1
                    completed = batch_start + batch.size
                    _build_logger.error(
                        "build_batch_failed",
                        extra={
                            "site_id": str(site_id),
                            "run_id": str(prepared.run_id),
                            "batch_key": batch.batch_key,
                            "kind": batch.kind.value,
                            "batch_size": batch.size,
                            "error_type": error.__class__.__name__,
                            "error_message": str(error),
                        },
                    )
                    await self._tracker.advance(
                        site_id, completed, batch.describe_skipped()
                    )

            if produced == 0 and failed_batches > 0:
                raise AllBatchesFailedError(failed_batches)

            state = await self._tracker.apply(site_id, finalize_success)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            message = failure_message(error)
            _build_logger.error(
                "build_run_failed",
                extra={
                    "site_id": str(site_id),
                    "run_id": str(prepared.run_id),
                    "was_already_active": prepared.was_already_active,
                    "completed_tasks": completed,
                    "total_tasks": prepared.total_tasks,
                    "error_type": error.__class__.__name__,
                    "error_message": message,
                },
            )
            return await self.finalize_failure(
                prepared,
                message,
                completed_tasks=completed,
                failed_batches=failed_batches,
            )

        run_status = RunStatus.DEGRADED if failed_batches else RunStatus.SUCCEEDED
        await self._record_run(
            prepared.run_id,
            status=run_status,
            completed_tasks=completed,
            failed_batches=failed_batches,
            error_message=None,
        )
        _build_logger.info(
            "build_run_completed",
            extra={
                "site_id": str(site_id),
                "run_id": str(prepared.run_id),
                "status": state.status.value,
                "run_status": run_status.value,
                "completed_tasks": completed,
                "total_tasks": prepared.total_tasks,
                "failed_batches": failed_batches,
            },
        )
        return BuildOutcome(
            site_id=site_id,
            run_id=prepared.run_id,
            run_status=run_status,
            site_status=state.status,
            completed_tasks=completed,
            total_tasks=prepared.total_tasks,
            failed_batches=failed_batches,
        )

    async def finalize_failure(
        self,
        prepared: PreparedBuild,
        message: str,
        *,
        completed_tasks: int | None = None,
        failed_batches: int = 0,
        run_status: RunStatus = RunStatus.FAILED,
    ) -> BuildOutcome:
        """Apply the fatal or non-fatal finalization for a failed run."""

        if completed_tasks is None:
            completed_tasks = await self._read_progress_safely(prepared.site_id)
        site_status = await finalize_site_failure(
            self._tracker,
            prepared.site_id,
            was_already_active=prepared.was_already_active,
            message=message,
        )
        await self._record_run(
            prepared.run_id,
            status=run_status,
            completed_tasks=completed_tasks,
            failed_batches=failed_batches,
            error_message=message,
        )
        return BuildOutcome(
            site_id=prepared.site_id,
            run_id=prepared.run_id,
            run_status=run_status,
            site_status=site_status,
            completed_tasks=completed_tasks,
            total_tasks=prepared.total_tasks,
            failed_batches=failed_batches,
            error_message=message,
        )

    async def _business_context(self, prepared: PreparedBuild) -> BusinessContext:
        snapshot = prepared.snapshot
        location = snapshot.primary_location
        category = snapshot.primary_category
        if location is None or category is None:
            missing = [
                label
                for label, value in (
                    ("location", location),
                    ("primary category", category),
                )
                if value is None
            ]
            raise MissingRequiredDataError(prepared.site_id, missing)

        average_rating: float | None = None
        review_count: int | None = None
        source = snapshot.review_source
        if self._reviews is not None and source is not None:
            await self._tracker.advance(prepared.site_id, 0, IMPORTING_REVIEWS_TASK)
            try:
                summary = await self._reviews.fetch(
                    source.account_name,
                    source.location_name,
                    access_token=source.access_token,
                )
                await self._store.save_reviews(prepared.site_id, summary)
                average_rating = summary.average_rating
                review_count = summary.total_count
            except Exception as error:
                _build_logger.warning(
                    "reviews_fetch_skipped",
                    extra={
                        "site_id": str(prepared.site_id),
                        "run_id": str(prepared.run_id),
                        "error_type": error.__class__.__name__,
                        "error_message": str(error),
                    },
                )

        return BusinessContext(
            business_name=snapshot.name,
            city=location.city,
            state=location.state,
            primary_category=category.display_name or FALLBACK_CATEGORY_NAME,
            website_type=snapshot.website_type,
            average_rating=average_rating,
            review_count=review_count,
        )

    async def _generate(
        self,
        batch: TaskBatch,
        context: BusinessContext,
    ) -> tuple[GeneratedContent, ...]:
        payload = GenerationPayload(
            context=context,
            tasks=batch.tasks,
            category_name=batch.category_name,
        )
        artifacts = await with_retry(
            lambda: self._generator.generate(batch.kind, payload),
            max_retries=self._max_retries,
            delay_seconds=self._retry_delay_seconds,
            operation_name=batch.batch_key,
        )
        return tuple(artifacts)

    async def _persist(
        self,
        site_id: UUID,
        task: GenerationTask,
        artifact: GeneratedContent,
    ) -> None:
        if task.kind is TaskKind.CORE_PAGE:
            await self._store.save_core_page(
                site_id,
                task.page_type or PageType(task.slug),
                cast(PageContent, artifact),
            )
        elif task.kind is TaskKind.CATEGORY_PAGE:
            await self._store.save_category_page(
                site_id,
                site_category_id=task.target_id(),
                category_name=task.name,
                content=cast(PageContent, artifact),
            )
        elif task.kind is TaskKind.SERVICE_PAGE:
            await self._store.save_service_content(
                task.target_id(), cast(LongFormPageContent, artifact)
            )
        else:
            await self._store.save_service_area_content(
                task.target_id(), cast(LongFormPageContent, artifact)
            )

    async def _read_progress_safely(self, site_id: UUID) -> int:
        try:
            progress = await self._tracker.read(site_id)
        except SiteNotFoundError:
            return 0
        return progress.completed_tasks if progress is not None else 0

    async def _record_run(
        self,
        run_id: UUID,
        *,
        status: RunStatus,
        completed_tasks: int,
        failed_batches: int,
        error_message: str | None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                run = await session.get(BuildRun, run_id)
                if run is None:
                    return
                run.status = status.value
                run.finished_at = datetime.now(UTC)
                run.completed_tasks = completed_tasks
                run.failed_batches = failed_batches
                run.error_message = error_message
        except Exception:
            _build_logger.exception(
                "build_run_record_failed",
                extra={"run_id": str(run_id), "run_status": status.value},
            )


async def finalize_site_failure(
    tracker: ProgressTracker,
    site_id: UUID,
    *,
    was_already_active: bool,
    message: str,
) -> SiteStatus | None:
    """Finalize a failed run without ever raising; return the final status."""

    def transition(state: SiteLifecycleState) -> SiteLifecycleState:
        if was_already_active:
            return finalize_non_fatal_on_active(state, message)
        return finalize_fatal(state, message)

    try:
        state = await tracker.apply(site_id, transition)
    except SiteNotFoundError:
        _build_logger.warning(
            "build_finalize_site_missing",
            extra={"site_id": str(site_id)},
        )
        return None
    except InvalidStatusTransitionError as error:
        _build_logger.error(
            "build_finalize_rejected",
            extra={
                "site_id": str(site_id),
                "status": error.current.value,
                "target_status": error.target.value,
            },
        )
        return error.current
    except Exception:
        _build_logger.exception(
            "build_finalize_failed",
            extra={"site_id": str(site_id)},
        )
        return None
    return state.status


__all__ = [
    "AllBatchesFailedError",
    "BuildConflictError",
    "BuildOrchestrator",
    "BuildOutcome",
    "PreparedBuild",
    "RETRYABLE_SITE_STATUSES",
    "RunStatus",
    "build_is_stale",
    "failure_message",
    "finalize_site_failure",
]
