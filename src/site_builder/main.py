"""Application entry point for the site content builder."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
import logging
import signal
from typing import Any

from fastapi import FastAPI, Request
from sqlalchemy import func, select
from starlette.responses import Response
import uvicorn

from site_builder.api.content_generation import router as content_generation_router
from site_builder.api.site_status import router as site_status_router
from site_builder.config import get_settings
from site_builder.database import (
    close_database,
    initialize_database,
    run_startup_database_health_check,
    session_scope,
)
from site_builder.models import Site
from site_builder.services.build_orchestrator import BuildOrchestrator
from site_builder.services.build_recovery_service import BuildRecoveryService
from site_builder.services.build_runner import BuildRunner
from site_builder.services.content_generator import AnthropicContentGenerator
from site_builder.services.maintenance_jobs import (
    BuildMaintenanceService,
    set_build_maintenance_service,
)
from site_builder.services.reviews_client import GoogleBusinessReviewsClient
from site_builder.services.scheduler import MaintenanceScheduler
from site_builder.utils.logging import (
    add_request_logging_middleware,
    setup_logging,
)

__all__ = ["app", "create_app", "main"]

_lifecycle_logger = logging.getLogger("site_builder.lifecycle")


def _initialize_lifecycle_state(app: FastAPI) -> None:
    app.state.inflight_requests = 0
    app.state.requests_drained = asyncio.Event()
    app.state.requests_drained.set()
    app.state.shutdown_requested = asyncio.Event()
    app.state.shutdown_signal = None
    app.state.session_started_at = datetime.now(UTC)


def _handle_shutdown_signal(app: FastAPI, signum: int) -> None:
    if app.state.shutdown_requested.is_set():
        return

    app.state.shutdown_signal = signal.Signals(signum).name
    app.state.shutdown_requested.set()
    _lifecycle_logger.warning(
        "shutdown_signal_received",
        extra={"signal": app.state.shutdown_signal},
    )


async def _log_startup_recovery_summary(
    *,
    interrupted_builds_detected: int,
    sites_finalized: int,
) -> None:
    async with session_scope() as session:
        status_rows = (
            await session.execute(
                select(Site.status, func.count(Site.id))
                .group_by(Site.status)
                .order_by(Site.status.asc())
            )
        ).all()
        site_status_counts = {
            getattr(row[0], "value", str(row[0])): int(row[1]) for row in status_rows
        }

    _lifecycle_logger.info(
        "startup_recovery_summary",
        extra={
            "site_status_counts": site_status_counts,
            "interrupted_builds_detected": interrupted_builds_detected,
            "sites_finalized": sites_finalized,
        },
    )


async def _wait_for_inflight_requests(app: FastAPI, *, timeout_seconds: int) -> bool:
    if app.state.inflight_requests <= 0:
        return True

    try:
        await asyncio.wait_for(
            app.state.requests_drained.wait(), timeout=timeout_seconds
        )
    except TimeoutError:
        return False

    return True


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    _initialize_lifecycle_state(app)

    maintenance_scheduler = MaintenanceScheduler.from_settings(settings)
    recovery_service = BuildRecoveryService(
        stale_threshold_seconds=settings.STALE_BUILD_THRESHOLD_SECONDS
    )
    orchestrator = BuildOrchestrator.from_settings(
        settings,
        generator=AnthropicContentGenerator.from_settings(settings),
        reviews=GoogleBusinessReviewsClient.from_settings(settings),
    )
    build_runner = BuildRunner(
        orchestrator,
        run_timeout_seconds=settings.BUILD_RUN_TIMEOUT_SECONDS,
    )
    maintenance_service = BuildMaintenanceService(
        scheduler=maintenance_scheduler,
        settings=settings,
        runner=build_runner,
        recovery_service=recovery_service,
    )
    set_build_maintenance_service(maintenance_service)
    app.state.maintenance_scheduler = maintenance_scheduler
    app.state.recovery_service = recovery_service
    app.state.build_runner = build_runner
    app.state.maintenance_service = maintenance_service

    previous_handlers: dict[signal.Signals, Any] = {}
    for handled_signal in (signal.SIGTERM, signal.SIGINT):
        previous_handlers[handled_signal] = signal.getsignal(handled_signal)

        def _signal_handler(signum: int, frame: object | None) -> None:
            _handle_shutdown_signal(app, signum)
            previous_handler = previous_handlers[signal.Signals(signum)]
            if callable(previous_handler):
                previous_handler(signum, frame)

        signal.signal(handled_signal, _signal_handler)

    await initialize_database()
    await run_startup_database_health_check()
    startup_recovery_result = await recovery_service.handle_startup_recovery()
    await _log_startup_recovery_summary(
        interrupted_builds_detected=startup_recovery_result.detected_count,
        sites_finalized=startup_recovery_result.sites_finalized,
    )
    maintenance_service.register_jobs()
    await maintenance_scheduler.start()

    try:
        yield
    finally:
        graceful_shutdown = await _wait_for_inflight_requests(
            app,
            timeout_seconds=settings.SHUTDOWN_GRACE_PERIOD_SECONDS,
        )
        await maintenance_scheduler.shutdown()
        cancelled_runs = await build_runner.shutdown(
            grace_period_seconds=settings.SHUTDOWN_GRACE_PERIOD_SECONDS
        )
        runs_marked_interrupted = await recovery_service.persist_shutdown_checkpoints()
        shutdown_summary = await recovery_service.summarize_session(
            session_started_at=app.state.session_started_at
        )
        _lifecycle_logger.info(
            "shutdown_summary",
            extra={
                "runs_succeeded": shutdown_summary.runs_succeeded,
                "runs_degraded": shutdown_summary.runs_degraded,
                "runs_failed": shutdown_summary.runs_failed,
                "runs_interrupted": shutdown_summary.runs_interrupted,
                "cancelled_runs": cancelled_runs,
                "runs_marked_interrupted": runs_marked_interrupted,
                "graceful_shutdown": graceful_shutdown,
                "forced_timeout": not graceful_shutdown,
                "inflight_requests": app.state.inflight_requests,
                "signal": app.state.shutdown_signal,
            },
        )
        set_build_maintenance_service(None)
        for handled_signal, previous_handler in previous_handlers.items():
            signal.signal(handled_signal, previous_handler)
        await close_database()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings)

    app = FastAPI(title="Site Content Builder", lifespan=lifespan)
    _initialize_lifecycle_state(app)

    @app.middleware("http")
    async def track_inflight_requests(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        app.state.inflight_requests = (
            int(getattr(app.state, "inflight_requests", 0)) + 1
        )
        requests_drained = getattr(app.state, "requests_drained", None)
        if requests_drained is None:
            requests_drained = asyncio.Event()
            app.state.requests_drained = requests_drained
        requests_drained.clear()
        try:
            response = await call_next(request)
        finally:
            app.state.inflight_requests = max(0, app.state.inflight_requests - 1)
            if app.state.inflight_requests == 0:
                requests_drained.set()
        return response

    app.state.settings = settings
    add_request_logging_middleware(app)
    app.include_router(content_generation_router)
    app.include_router(site_status_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "site_builder.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=False,
    )
