"""Tests for persisted build progress and lifecycle writes."""

from __future__ import annotations

from uuid import uuid4

import pytest

from site_builder.models import Site, SiteStatus
from site_builder.services.progress_tracker import (
    ProgressNotInitializedError,
    ProgressTracker,
    SiteNotFoundError,
)
from site_builder.services.status_machine import (
    INITIAL_TASK_DESCRIPTION,
    apply_user_status_change,
)


@pytest.mark.asyncio
async def test_init_creates_fresh_progress_and_enters_building(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site(status=SiteStatus.FAILED, status_message="old failure")
    tracker = ProgressTracker(session_factory=scoped_session)

    progress = await tracker.init(site_id, 6)

    assert progress.total_tasks == 6
    async with scoped_session() as session:
        site = await session.get(Site, site_id)
        assert site is not None
        assert site.status is SiteStatus.BUILDING
        assert site.status_message is None
        assert site.build_progress is not None
        assert site.build_progress["completed_tasks"] == 0
        assert site.build_progress["current_task"] == INITIAL_TASK_DESCRIPTION


@pytest.mark.asyncio
async def test_init_on_live_site_keeps_status(scoped_session, seed_site) -> None:
    site_id = await seed_site(status=SiteStatus.ACTIVE)
    tracker = ProgressTracker(session_factory=scoped_session)

    await tracker.init(site_id, 4, was_already_active=True)

    state = await tracker.read_state(site_id)
    assert state.status is SiteStatus.ACTIVE
    assert state.build_progress is not None
    assert state.build_progress.total_tasks == 4


@pytest.mark.asyncio
async def test_advance_never_decreases_and_never_passes_total(
    scoped_session, seed_site, caplog: pytest.LogCaptureFixture
) -> None:
    site_id = await seed_site()
    tracker = ProgressTracker(session_factory=scoped_session)
    await tracker.init(site_id, 3)
    caplog.set_level("DEBUG", logger="site_builder.progress")

    await tracker.advance(site_id, 2, "Generated about page")
    regressed = await tracker.advance(site_id, 1, "Generating contact page...")
    overflowed = await tracker.advance(site_id, 8, "Generated contact page")

    assert regressed.completed_tasks == 2
    assert regressed.current_task == "Generating contact page..."
    assert overflowed.completed_tasks == 3
    stored = await tracker.read(site_id)
    assert stored is not None
    assert stored.completed_tasks == 3
    assert stored.current_task == "Generated contact page"
    assert any(
        record.msg == "build_progress_overflow_clamped" for record in caplog.records
    )


@pytest.mark.asyncio
async def test_advance_without_progress_raises(scoped_session, seed_site) -> None:
    site_id = await seed_site()
    tracker = ProgressTracker(session_factory=scoped_session)

    with pytest.raises(ProgressNotInitializedError):
        await tracker.advance(site_id, 1, "Generating home page...")


@pytest.mark.asyncio
async def test_read_returns_none_without_progress_and_raises_for_missing_site(
    scoped_session, seed_site
) -> None:
    site_id = await seed_site()
    tracker = ProgressTracker(session_factory=scoped_session)

    assert await tracker.read(site_id) is None
    with pytest.raises(SiteNotFoundError):
        await tracker.read(uuid4())


@pytest.mark.asyncio
async def test_apply_logs_status_changes(
    scoped_session, seed_site, caplog: pytest.LogCaptureFixture
) -> None:
    site_id = await seed_site(status=SiteStatus.ACTIVE)
    tracker = ProgressTracker(session_factory=scoped_session)
    caplog.set_level("INFO", logger="site_builder.progress")

    state = await tracker.apply(
        site_id,
        lambda current: apply_user_status_change(current, SiteStatus.PAUSED),
    )

    assert state.status is SiteStatus.PAUSED
    records = [
        record for record in caplog.records if record.msg == "site_status_changed"
    ]
    assert len(records) == 1
    assert getattr(records[0], "previous_status", None) == "active"
    assert getattr(records[0], "status", None) == "paused"
