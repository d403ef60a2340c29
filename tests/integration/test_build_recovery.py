"""Crash and stall recovery tests for build runs."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import pytest
from sqlalchemy import select

from site_builder import main
from site_builder.models import BuildRun, Site, SiteStatus
from site_builder.services.build_orchestrator import RunStatus
from site_builder.services.build_recovery_service import (
    RESTART_INTERRUPTION_MESSAGE,
    SHUTDOWN_INTERRUPTION_MESSAGE,
    STALLED_BUILD_MESSAGE,
    BuildRecoveryService,
)


def _progress(completed: int, total: int) -> dict[str, Any]:
    return {
        "total_tasks": total,
        "completed_tasks": completed,
        "current_task": "Generating about page...",
        "started_at": "2026-03-01T12:00:00+00:00",
    }


async def _add_run(
    scoped_session,
    site_id: UUID,
    *,
    status: RunStatus = RunStatus.RUNNING,
    was_already_active: bool = False,
    total_tasks: int = 7,
) -> UUID:
    async with scoped_session() as session:
        run = BuildRun(
            site_id=site_id,
            trigger_source="system",
            was_already_active=was_already_active,
            status=status.value,
            started_at=datetime.now(UTC),
            total_tasks=total_tasks,
        )
        session.add(run)
        await session.flush()
        return run.id


async def _load(scoped_session, site_id: UUID, run_id: UUID) -> tuple[Site, BuildRun]:
    async with scoped_session() as session:
        site = await session.get(Site, site_id)
        run = await session.get(BuildRun, run_id)
    assert site is not None and run is not None
    return site, run


@pytest.mark.asyncio
async def test_startup_recovery_finalizes_interrupted_builds_and_logs_summary(
    scoped_session,
    seed_site,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    new_site_id = await seed_site(
        status=SiteStatus.BUILDING, build_progress=_progress(2, 7)
    )
    live_site_id = await seed_site(
        status=SiteStatus.ACTIVE, build_progress=_progress(1, 7)
    )
    done_site_id = await seed_site(status=SiteStatus.ACTIVE)
    new_run_id = await _add_run(scoped_session, new_site_id)
    live_run_id = await _add_run(scoped_session, live_site_id, was_already_active=True)
    done_run_id = await _add_run(
        scoped_session, done_site_id, status=RunStatus.SUCCEEDED
    )

    recovery_service = BuildRecoveryService(session_factory=scoped_session)
    result = await recovery_service.handle_startup_recovery()

    assert result.detected_count == 2
    assert {record.run_id for record in result.detected_runs} == {
        new_run_id,
        live_run_id,
    }
    assert result.sites_finalized == 2

    new_site, new_run = await _load(scoped_session, new_site_id, new_run_id)
    assert new_site.status is SiteStatus.FAILED
    assert new_site.status_message == RESTART_INTERRUPTION_MESSAGE
    assert new_run.status == RunStatus.INTERRUPTED.value
    assert new_run.completed_tasks == 2
    assert new_run.finished_at is not None

    live_site, live_run = await _load(scoped_session, live_site_id, live_run_id)
    assert live_site.status is SiteStatus.ACTIVE
    assert live_site.build_progress is None
    assert live_site.status_message == (
        f"Content regeneration failed: {RESTART_INTERRUPTION_MESSAGE}"
    )
    assert live_run.status == RunStatus.INTERRUPTED.value

    _, done_run = await _load(scoped_session, done_site_id, done_run_id)
    assert done_run.status == RunStatus.SUCCEEDED.value

    monkeypatch.setattr(main, "session_scope", scoped_session)
    caplog.set_level("INFO", logger="site_builder.lifecycle")

    await main._log_startup_recovery_summary(
        interrupted_builds_detected=result.detected_count,
        sites_finalized=result.sites_finalized,
    )

    startup_records = [
        record
        for record in caplog.records
        if record.name == "site_builder.lifecycle"
        and record.msg == "startup_recovery_summary"
    ]
    assert len(startup_records) == 1
    summary = startup_records[0]
    assert getattr(summary, "interrupted_builds_detected", None) == 2
    assert getattr(summary, "sites_finalized", None) == 2
    site_status_counts = getattr(summary, "site_status_counts", {})
    assert site_status_counts == {"active": 2, "failed": 1}


@pytest.mark.asyncio
async def test_startup_recovery_without_running_builds_is_a_no_op(
    scoped_session, seed_site, caplog: pytest.LogCaptureFixture
) -> None:
    await seed_site(status=SiteStatus.ACTIVE)
    caplog.set_level("INFO", logger="site_builder.recovery")

    result = await BuildRecoveryService(
        session_factory=scoped_session
    ).handle_startup_recovery()

    assert result.detected_count == 0
    assert result.sites_finalized == 0
    assert any(
        record.msg == "startup_interrupted_builds_not_found"
        for record in caplog.records
    )


@pytest.mark.asyncio
async def test_shutdown_checkpoints_interrupt_running_builds(
    scoped_session, seed_site
) -> None:
    session_started_at = datetime.now(UTC) - timedelta(minutes=5)
    site_id = await seed_site(
        status=SiteStatus.BUILDING, build_progress=_progress(0, 4)
    )
    run_id = await _add_run(scoped_session, site_id, total_tasks=4)
    finished_site_id = await seed_site(status=SiteStatus.ACTIVE)
    await _add_run(scoped_session, finished_site_id, status=RunStatus.DEGRADED)
    recovery_service = BuildRecoveryService(session_factory=scoped_session)

    interrupted = await recovery_service.persist_shutdown_checkpoints()
    summary = await recovery_service.summarize_session(
        session_started_at=session_started_at
    )

    assert interrupted == 1
    site, run = await _load(scoped_session, site_id, run_id)
    assert site.status is SiteStatus.FAILED
    assert site.status_message == SHUTDOWN_INTERRUPTION_MESSAGE
    assert run.status == RunStatus.INTERRUPTED.value
    assert summary.runs_interrupted == 1
    assert summary.runs_degraded == 1
    assert summary.runs_succeeded == 0
    assert summary.runs_failed == 0


@pytest.mark.asyncio
async def test_stale_sweep_skips_fresh_and_live_builds(
    scoped_session, seed_site
) -> None:
    stale_at = datetime.now(UTC) - timedelta(minutes=30)
    stale_site_id = await seed_site(
        status=SiteStatus.BUILDING,
        build_progress=_progress(3, 7),
        status_updated_at=stale_at,
    )
    owned_site_id = await seed_site(
        status=SiteStatus.BUILDING,
        build_progress=_progress(3, 7),
        status_updated_at=stale_at,
    )
    fresh_site_id = await seed_site(
        status=SiteStatus.BUILDING, build_progress=_progress(1, 7)
    )
    stale_run_id = await _add_run(scoped_session, stale_site_id)
    owned_run_id = await _add_run(scoped_session, owned_site_id)
    fresh_run_id = await _add_run(scoped_session, fresh_site_id)

    recovery_service = BuildRecoveryService(
        session_factory=scoped_session, stale_threshold_seconds=300
    )
    finalized = await recovery_service.sweep_stale_builds(
        is_running=lambda site_id: site_id == owned_site_id
    )

    assert finalized == 1
    stale_site, stale_run = await _load(scoped_session, stale_site_id, stale_run_id)
    assert stale_site.status is SiteStatus.FAILED
    assert stale_site.status_message == STALLED_BUILD_MESSAGE
    assert stale_run.status == RunStatus.INTERRUPTED.value
    assert stale_run.completed_tasks == 3

    owned_site, owned_run = await _load(scoped_session, owned_site_id, owned_run_id)
    assert owned_site.status is SiteStatus.BUILDING
    assert owned_run.status == RunStatus.RUNNING.value
    fresh_site, fresh_run = await _load(scoped_session, fresh_site_id, fresh_run_id)
    assert fresh_site.status is SiteStatus.BUILDING
    assert fresh_run.status == RunStatus.RUNNING.value

    async with scoped_session() as session:
        running = (
            (
                await session.execute(
                    select(BuildRun).where(
                        BuildRun.status == RunStatus.RUNNING.value
                    )
                )
            )
            .scalars()
            .all()
        )
    assert len(running) == 2
