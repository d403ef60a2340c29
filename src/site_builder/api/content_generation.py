"""Content build trigger API routes."""

from __future__ import annotations

from secrets import compare_digest
from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from site_builder.config import get_settings
from site_builder.schemas import BuildAccepted
from site_builder.services.build_orchestrator import BuildConflictError
from site_builder.services.build_runner import BuildRunner
from site_builder.services.progress_tracker import SiteNotFoundError
from site_builder.services.status_machine import (
    InvalidStatusTransitionError,
    TriggerSource,
)
from site_builder.services.task_planner import MissingRequiredDataError

router = APIRouter(prefix="/api/sites", tags=["content-generation"])


def _get_internal_api_key() -> str | None:
    secret = get_settings().INTERNAL_API_KEY
    return secret.get_secret_value() if secret is not None else None


def _get_build_runner(request: Request) -> BuildRunner:
    runner = getattr(request.app.state, "build_runner", None)
    if isinstance(runner, BuildRunner):
        return runner

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Build runner is unavailable",
    )


def _resolve_trigger_source(
    x_internal_key: str | None = Header(default=None),
    expected_key: str | None = Depends(_get_internal_api_key),
) -> TriggerSource:
    if x_internal_key and expected_key and compare_digest(x_internal_key, expected_key):
        return TriggerSource.SYSTEM
    return TriggerSource.USER


def _raise_build_error(error: Exception) -> NoReturn:
    if isinstance(error, SiteNotFoundError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Site not found",
        ) from error
    if isinstance(error, MissingRequiredDataError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required data: {', '.join(error.missing)}",
        ) from error
    if isinstance(error, BuildConflictError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Site is already being built",
        ) from error
    if isinstance(error, InvalidStatusTransitionError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot rebuild a site with status '{error.current.value}'",
        ) from error
    raise error


@router.post(
    "/{site_id}/generate-content",
    response_model=BuildAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_content(
    site_id: UUID,
    source: TriggerSource = Depends(_resolve_trigger_source),
    runner: BuildRunner = Depends(_get_build_runner),
) -> BuildAccepted:
    try:
        submitted = await runner.submit(site_id, source=source)
    except (
        SiteNotFoundError,
        MissingRequiredDataError,
        BuildConflictError,
        InvalidStatusTransitionError,
    ) as error:
        _raise_build_error(error)

    return BuildAccepted(total_tasks=submitted.total_tasks, run_id=submitted.run_id)


@router.post(
    "/{site_id}/retry-build",
    response_model=BuildAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def retry_build(
    site_id: UUID,
    runner: BuildRunner = Depends(_get_build_runner),
) -> BuildAccepted:
    try:
        submitted = await runner.submit(
            site_id,
            source=TriggerSource.USER,
            retry=True,
        )
    except (
        SiteNotFoundError,
        MissingRequiredDataError,
        BuildConflictError,
        InvalidStatusTransitionError,
    ) as error:
        _raise_build_error(error)

    return BuildAccepted(total_tasks=submitted.total_tasks, run_id=submitted.run_id)


__all__ = ["router"]
