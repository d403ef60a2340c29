"""Tests for the build run state machine driver."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select

from site_builder.models import (
    BuildRun,
    Service,
    Site,
    SitePage,
    SiteReview,
    SiteStatus,
)
from site_builder.schemas.content import (
    CategoryPageContent,
    CorePageContent,
    ServiceAreaPageContent,
    ServicePageContent,
)
from site_builder.services.build_orchestrator import (
    BuildConflictError,
    BuildOrchestrator,
    RunStatus,
    build_is_stale,
)
from site_builder.services.content_generator import (
    GeneratedContent,
    GenerationPayload,
)
from site_builder.services.generation_errors import (
    ContentGenerationHTTPError,
    GeneratorConfigurationError,
)
from site_builder.services.progress_tracker import ProgressTracker, SiteNotFoundError
from site_builder.services.reviews_client import (
    ReviewRecord,
    ReviewsFetchError,
    ReviewSummary,
)
from site_builder.services.status_machine import (
    COMPLETE_TASK_DESCRIPTION,
    BuildProgress,
    InvalidStatusTransitionError,
    TriggerSource,
)
from site_builder.services.task_planner import (
    GenerationTask,
    MissingRequiredDataError,
    TaskKind,
    UnboundTaskError,
)


def _long_form(task: GenerationTask) -> dict[str, object]:
    return {
        "name": task.name,
        "meta_title": f"{task.name} | Acme Plumbing",
        "meta_description": f"{task.name} in Austin.",
        "h1": task.name,
        "intro_copy": "Intro.",
        "body_copy": "Body.",
        "problems": [{"title": "P", "description": "D"}] * 3,
        "detailed_sections": [{"heading": "H", "content": "C"}] * 3,
        "faqs": [{"question": "Q?", "answer": "A."}] * 3,
    }


def _artifact(kind: TaskKind, task: GenerationTask) -> GeneratedContent:
    page = {
        "meta_title": f"{task.name} | Acme Plumbing",
        "meta_description": "Call today.",
        "h1": task.name.title(),
        "body_copy": f"Copy for {task.name}.",
    }
    if kind is TaskKind.CORE_PAGE:
        return CorePageContent.model_validate(page)
    if kind is TaskKind.CATEGORY_PAGE:
        return CategoryPageContent.model_validate(page)
    if kind is TaskKind.SERVICE_PAGE:
        return ServicePageContent.model_validate(_long_form(task))
    return ServiceAreaPageContent.model_validate(_long_form(task))


class FakeContentGenerator:
    def __init__(
        self,
        *,
        failing_kinds: frozenset[TaskKind] = frozenset(),
        error: Exception | None = None,
    ) -> None:
        self._failing_kinds = failing_kinds
        self._error = error
        self.calls: list[tuple[TaskKind, tuple[str, ...]]] = []
        self.payloads: list[GenerationPayload] = []

    async def generate(
        self,
        kind: TaskKind,
        payload: GenerationPayload,
    ) -> Sequence[GeneratedContent]:
        self.calls.append((kind, tuple(task.name for task in payload.tasks)))
        self.payloads.append(payload)
        if self._error is not None:
            raise self._error
        if kind in self._failing_kinds:
            raise ContentGenerationHTTPError("overloaded", status_code=529)
        return tuple(_artifact(kind, task) for task in payload.tasks)


class FakeReviews:
    def __init__(
        self,
        *,
        summary: ReviewSummary | None = None,
        error: Exception | None = None,
    ) -> None:
        self._summary = summary
        self._error = error
        self.calls: list[tuple[str, str, str]] = []

    async def fetch(
        self,
        account_ref: str,
        location_ref: str,
        *,
        access_token: str,
    ) -> ReviewSummary:
        self.calls.append((account_ref, location_ref, access_token))
        if self._error is not None:
            raise self._error
        assert self._summary is not None
        return self._summary


class RecordingTracker(ProgressTracker):
    """Tracker that remembers every progress snapshot and the status beside it."""

    def __init__(self, *, session_factory) -> None:
        super().__init__(session_factory=session_factory)
        self.snapshots: list[BuildProgress] = []
        self.statuses: list[SiteStatus] = []

    async def advance(
        self,
        site_id: UUID,
        completed_tasks: int,
        current_task: str,
    ) -> BuildProgress:
        progress = await super().advance(site_id, completed_tasks, current_task)
        self.snapshots.append(progress)
        self.statuses.append((await self.read_state(site_id)).status)
        return progress


def _orchestrator(
    scoped_session,
    generator: FakeContentGenerator,
    *,
    reviews: FakeReviews | None = None,
    tracker: ProgressTracker | None = None,
) -> BuildOrchestrator:
    return BuildOrchestrator(
        generator=generator,
        reviews=reviews,
        tracker=tracker,
        session_factory=scoped_session,
        max_retries=1,
        retry_delay_seconds=0.0,
    )


async def _load_site(scoped_session, site_id: UUID) -> Site:
    async with scoped_session() as session:
        site = await session.get(Site, site_id)
        assert site is not None
        return site


async def _build_runs(scoped_session, site_id: UUID) -> list[BuildRun]:
    async with scoped_session() as session:
        return list(
            (
                await session.execute(
                    select(BuildRun)
                    .where(BuildRun.site_id == site_id)
                    .order_by(BuildRun.started_at.asc())
                )
            )
            .scalars()
            .all()
        )


@pytest.mark.asyncio
async def test_successful_run_generates_every_artifact_and_activates_site(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(
        services=("Drain Cleaning", "Leak Detection", "Water Heater Repair")
    )
    generator = FakeContentGenerator()
    orchestrator = _orchestrator(scoped_session, generator)

    outcome = await orchestrator.run(site_id, source=TriggerSource.SYSTEM)

    assert outcome.run_status is RunStatus.SUCCEEDED
    assert outcome.total_tasks == 7
    assert outcome.completed_tasks == 7
    site = await _load_site(scoped_session, site_id)
    assert site.status is SiteStatus.ACTIVE
    assert site.status_message is None
    assert site.build_progress is not None
    assert site.build_progress["total_tasks"] == 7
    assert site.build_progress["completed_tasks"] == 7
    assert site.build_progress["current_task"] == COMPLETE_TASK_DESCRIPTION

    assert [call[0] for call in generator.calls] == [
        TaskKind.CORE_PAGE,
        TaskKind.CORE_PAGE,
        TaskKind.CORE_PAGE,
        TaskKind.CATEGORY_PAGE,
        TaskKind.SERVICE_PAGE,
    ]
    assert generator.calls[-1][1] == (
        "Drain Cleaning",
        "Leak Detection",
        "Water Heater Repair",
    )

    async with scoped_session() as session:
        slugs = set(
            (
                await session.execute(
                    select(SitePage.slug).where(SitePage.site_id == site_id)
                )
            )
            .scalars()
            .all()
        )
        services = (
            (await session.execute(select(Service).where(Service.site_id == site_id)))
            .scalars()
            .all()
        )
    assert slugs == {"home", "about", "contact", "plumber"}
    assert all(service.content_generated_at is not None for service in services)
    assert all(len(service.faqs or []) == 3 for service in services)

    runs = await _build_runs(scoped_session, site_id)
    assert len(runs) == 1
    assert runs[0].status == RunStatus.SUCCEEDED.value
    assert runs[0].trigger_source == "system"
    assert runs[0].completed_tasks == 7
    assert runs[0].finished_at is not None


@pytest.mark.asyncio
async def test_failed_regeneration_keeps_live_site_active(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(
        status=SiteStatus.ACTIVE,
        services=("Drain Cleaning", "Leak Detection"),
    )
    generator = FakeContentGenerator(
        error=ContentGenerationHTTPError("overloaded", status_code=529)
    )
    tracker = RecordingTracker(session_factory=scoped_session)
    orchestrator = _orchestrator(scoped_session, generator, tracker=tracker)

    outcome = await orchestrator.run(site_id, source=TriggerSource.USER)

    assert outcome.run_status is RunStatus.FAILED
    assert outcome.site_status is SiteStatus.ACTIVE
    site = await _load_site(scoped_session, site_id)
    assert site.status is SiteStatus.ACTIVE
    assert site.build_progress is None
    assert site.status_message is not None
    assert site.status_message.startswith("Content regeneration failed")
    assert set(tracker.statuses) == {SiteStatus.ACTIVE}
    # Five batches, each attempted twice.
    assert len(generator.calls) == 10


@pytest.mark.asyncio
async def test_fatal_error_on_new_site_marks_it_failed(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(services=("Drain Cleaning",))
    generator = FakeContentGenerator(
        error=GeneratorConfigurationError("API key not configured")
    )
    orchestrator = _orchestrator(scoped_session, generator)

    outcome = await orchestrator.run(site_id, source=TriggerSource.SYSTEM)

    assert outcome.run_status is RunStatus.FAILED
    site = await _load_site(scoped_session, site_id)
    assert site.status is SiteStatus.FAILED
    assert site.status_message == "API key not configured"
    assert len(generator.calls) == 1
    runs = await _build_runs(scoped_session, site_id)
    assert runs[0].status == RunStatus.FAILED.value
    assert runs[0].error_message == "API key not configured"


@pytest.mark.asyncio
async def test_failed_batch_is_isolated_and_progress_still_completes(
    scoped_session, seed_site, caplog: pytest.LogCaptureFixture
) -> None:
    site_id = await seed_site(
        services=("Drain Cleaning", "Leak Detection"),
        service_areas=("Round Rock", "Cedar Park"),
    )
    generator = FakeContentGenerator(failing_kinds=frozenset({TaskKind.SERVICE_PAGE}))
    tracker = RecordingTracker(session_factory=scoped_session)
    orchestrator = _orchestrator(scoped_session, generator, tracker=tracker)
    caplog.set_level("ERROR", logger="site_builder.build")

    outcome = await orchestrator.run(site_id, source=TriggerSource.SYSTEM)

    assert outcome.run_status is RunStatus.DEGRADED
    assert outcome.failed_batches == 1
    assert outcome.completed_tasks == outcome.total_tasks == 8
    site = await _load_site(scoped_session, site_id)
    assert site.status is SiteStatus.ACTIVE
    assert generator.calls[-1][0] is TaskKind.SERVICE_AREA_PAGE
    assert any(
        snapshot.current_task == "Skipped 2 service pages starting with Drain Cleaning"
        for snapshot in tracker.snapshots
    )
    failures = [
        record for record in caplog.records if record.msg == "build_batch_failed"
    ]
    assert len(failures) == 1
    assert getattr(failures[0], "batch_size", None) == 2

    async with scoped_session() as session:
        services = (
            (await session.execute(select(Service).where(Service.site_id == site_id)))
            .scalars()
            .all()
        )
    assert all(service.content_generated_at is None for service in services)
    runs = await _build_runs(scoped_session, site_id)
    assert runs[0].status == RunStatus.DEGRADED.value
    assert runs[0].failed_batches == 1


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_bounded(scoped_session, seed_site) -> None:
    site_id = await seed_site(
        secondary_categories=("Water Heater Installation",),
        services=tuple(f"Service {index}" for index in range(7)),
        service_areas=tuple(f"City {index}" for index in range(12)),
    )
    tracker = RecordingTracker(session_factory=scoped_session)
    orchestrator = _orchestrator(
        scoped_session,
        FakeContentGenerator(failing_kinds=frozenset({TaskKind.CATEGORY_PAGE})),
        tracker=tracker,
    )

    await orchestrator.run(site_id, source=TriggerSource.SYSTEM)

    assert tracker.snapshots
    totals = {snapshot.total_tasks for snapshot in tracker.snapshots}
    assert totals == {3 + 2 + 7 + 12}
    completed = [snapshot.completed_tasks for snapshot in tracker.snapshots]
    assert completed == sorted(completed)
    assert all(0 <= value <= 24 for value in completed)
    assert completed[-1] == 24
    assert tracker.snapshots[0].current_task == "Generating home page..."


@pytest.mark.asyncio
async def test_rerunning_a_build_overwrites_instead_of_duplicating(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(services=("Drain Cleaning",))
    orchestrator = _orchestrator(scoped_session, FakeContentGenerator())

    await orchestrator.run(site_id, source=TriggerSource.SYSTEM)
    second = await orchestrator.run(site_id, source=TriggerSource.USER)

    assert second.run_status is RunStatus.SUCCEEDED
    async with scoped_session() as session:
        page_count = await session.scalar(
            select(func.count(SitePage.id)).where(SitePage.site_id == site_id)
        )
        service_count = await session.scalar(
            select(func.count(Service.id)).where(Service.site_id == site_id)
        )
    assert page_count == 4
    assert service_count == 1
    assert len(await _build_runs(scoped_session, site_id)) == 2


@pytest.mark.asyncio
async def test_task_without_target_record_fails_only_its_batch(
    scoped_session, seed_site, caplog: pytest.LogCaptureFixture
) -> None:
    site_id = await seed_site(services=("Drain Cleaning",))
    generator = FakeContentGenerator()
    orchestrator = _orchestrator(scoped_session, generator)
    caplog.set_level("ERROR", logger="site_builder.build")

    prepared = await orchestrator.prepare(site_id, source=TriggerSource.SYSTEM)
    batches = tuple(
        replace(
            batch,
            tasks=tuple(replace(task, subject_id=None) for task in batch.tasks),
        )
        if batch.kind is TaskKind.SERVICE_PAGE
        else batch
        for batch in prepared.plan
    )
    outcome = await orchestrator.execute(
        replace(prepared, plan=replace(prepared.plan, batches=batches))
    )

    assert outcome.run_status is RunStatus.DEGRADED
    assert outcome.failed_batches == 1
    failures = [
        record for record in caplog.records if record.msg == "build_batch_failed"
    ]
    assert len(failures) == 1
    assert getattr(failures[0], "error_type", None) == UnboundTaskError.__name__
    assert "Drain Cleaning" in getattr(failures[0], "error_message", "")
    async with scoped_session() as session:
        service = (
            await session.execute(select(Service).where(Service.site_id == site_id))
        ).scalar_one()
    assert service.content_generated_at is None


@pytest.mark.asyncio
async def test_location_removed_after_prepare_fails_the_run(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site()
    generator = FakeContentGenerator()
    orchestrator = _orchestrator(scoped_session, generator)

    prepared = await orchestrator.prepare(site_id, source=TriggerSource.SYSTEM)
    outcome = await orchestrator.execute(
        replace(prepared, snapshot=replace(prepared.snapshot, locations=()))
    )

    assert outcome.run_status is RunStatus.FAILED
    assert generator.calls == []
    site = await _load_site(scoped_session, site_id)
    assert site.status is SiteStatus.FAILED
    assert site.status_message is not None
    assert "missing required data: location" in site.status_message


@pytest.mark.asyncio
async def test_paused_site_stays_paused_after_refresh(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(status=SiteStatus.PAUSED)
    orchestrator = _orchestrator(scoped_session, FakeContentGenerator())

    outcome = await orchestrator.run(site_id, source=TriggerSource.USER)

    assert outcome.site_status is SiteStatus.PAUSED
    site = await _load_site(scoped_session, site_id)
    assert site.status is SiteStatus.PAUSED


@pytest.mark.asyncio
async def test_missing_required_data_fails_before_progress_exists(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(primary_category=None, secondary_categories=("Plumber",))
    orchestrator = _orchestrator(scoped_session, FakeContentGenerator())

    with pytest.raises(MissingRequiredDataError) as exc_info:
        await orchestrator.prepare(site_id, source=TriggerSource.SYSTEM)

    assert exc_info.value.missing == ("primary category",)
    site = await _load_site(scoped_session, site_id)
    assert site.build_progress is None
    assert site.status is SiteStatus.PENDING
    assert await _build_runs(scoped_session, site_id) == []


@pytest.mark.asyncio
async def test_prepare_raises_for_unknown_site(scoped_session) -> None:
    orchestrator = _orchestrator(scoped_session, FakeContentGenerator())

    with pytest.raises(SiteNotFoundError):
        await orchestrator.prepare(uuid4(), source=TriggerSource.USER)


@pytest.mark.asyncio
async def test_user_trigger_conflicts_with_building_site_but_system_trigger_runs(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(status=SiteStatus.BUILDING)
    orchestrator = _orchestrator(scoped_session, FakeContentGenerator())

    with pytest.raises(BuildConflictError):
        await orchestrator.prepare(site_id, source=TriggerSource.USER)

    prepared = await orchestrator.prepare(site_id, source=TriggerSource.SYSTEM)
    assert prepared.was_already_active is False
    assert prepared.total_tasks == 4


@pytest.mark.asyncio
async def test_retry_admission_rules(scoped_session, seed_site) -> None:
    orchestrator = _orchestrator(scoped_session, FakeContentGenerator())
    pending_id = await seed_site(status=SiteStatus.PENDING)
    fresh_building_id = await seed_site(status=SiteStatus.BUILDING)
    stale_building_id = await seed_site(
        status=SiteStatus.BUILDING,
        status_updated_at=datetime.now(UTC) - timedelta(hours=1),
    )
    failed_id = await seed_site(status=SiteStatus.FAILED)

    with pytest.raises(InvalidStatusTransitionError):
        await orchestrator.prepare(pending_id, source=TriggerSource.USER, retry=True)
    with pytest.raises(BuildConflictError):
        await orchestrator.prepare(
            fresh_building_id, source=TriggerSource.USER, retry=True
        )

    stale = await orchestrator.prepare(
        stale_building_id, source=TriggerSource.USER, retry=True
    )
    failed = await orchestrator.prepare(
        failed_id, source=TriggerSource.USER, retry=True
    )
    assert stale.total_tasks == failed.total_tasks == 4
    site = await _load_site(scoped_session, failed_id)
    assert site.status is SiteStatus.BUILDING


@pytest.mark.asyncio
async def test_reviews_are_imported_and_embedded_in_generation_context(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(with_review_source=True)
    reviews = FakeReviews(
        summary=ReviewSummary(
            reviews=(
                ReviewRecord(
                    review_id="r-1",
                    reviewer_name="Dana",
                    rating=5,
                    comment="Great",
                    review_date=None,
                ),
            ),
            average_rating=4.9,
            total_count=87,
        )
    )
    generator = FakeContentGenerator()
    orchestrator = _orchestrator(scoped_session, generator, reviews=reviews)

    await orchestrator.run(site_id, source=TriggerSource.SYSTEM)
    await orchestrator.run(site_id, source=TriggerSource.USER)

    assert reviews.calls[0] == ("accounts/123", "locations/456", "gbp-access-token")
    assert generator.payloads[0].context.average_rating == 4.9
    assert generator.payloads[0].context.review_count == 87
    async with scoped_session() as session:
        stored = (
            (
                await session.execute(
                    select(SiteReview).where(SiteReview.site_id == site_id)
                )
            )
            .scalars()
            .all()
        )
    assert [review.review_id for review in stored] == ["r-1"]


@pytest.mark.asyncio
async def test_reviews_failure_never_aborts_the_run(
    scoped_session, seed_site, caplog: pytest.LogCaptureFixture
) -> None:
    site_id = await seed_site(with_review_source=True)
    generator = FakeContentGenerator()
    orchestrator = _orchestrator(
        scoped_session,
        generator,
        reviews=FakeReviews(error=ReviewsFetchError("GBP API error: 401")),
    )
    caplog.set_level("WARNING", logger="site_builder.build")

    outcome = await orchestrator.run(site_id, source=TriggerSource.SYSTEM)

    assert outcome.run_status is RunStatus.SUCCEEDED
    assert generator.payloads[0].context.average_rating is None
    assert any(record.msg == "reviews_fetch_skipped" for record in caplog.records)


def test_build_is_stale_only_for_old_building_sites() -> None:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    assert build_is_stale(
        SiteStatus.BUILDING,
        datetime(2026, 3, 1, 11, 0),
        threshold_seconds=300,
        now=now,
    )
    assert not build_is_stale(
        SiteStatus.BUILDING,
        now - timedelta(seconds=30),
        threshold_seconds=300,
        now=now,
    )
    assert not build_is_stale(
        SiteStatus.FAILED,
        None,
        threshold_seconds=300,
        now=now,
    )
