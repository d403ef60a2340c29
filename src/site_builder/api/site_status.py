"""Site status polling and pause/resume API routes."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from site_builder.database import get_db_session
from site_builder.models import Site
from site_builder.schemas import BuildProgressRead, SiteStatusRead, SiteStatusUpdate
from site_builder.services.progress_tracker import ProgressTracker, SiteNotFoundError
from site_builder.services.status_machine import (
    InvalidStatusTransitionError,
    allowed_user_transitions,
    apply_user_status_change,
)

router = APIRouter(prefix="/api/sites", tags=["site-status"])


def _get_progress_tracker() -> ProgressTracker:
    return ProgressTracker()


def _serialize_status(site: Site) -> SiteStatusRead:
    progress: dict[str, Any] | None = site.build_progress
    return SiteStatusRead(
        id=site.id,
        status=site.status,
        build_progress=(
            BuildProgressRead.model_validate(progress) if progress is not None else None
        ),
        status_message=site.status_message,
        status_updated_at=site.status_updated_at,
    )


async def _get_site_or_404(*, site_id: UUID, session: AsyncSession) -> Site:
    site = await session.get(Site, site_id)
    if site is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Site not found",
        )
    return site


@router.get(
    "/{site_id}/status", response_model=SiteStatusRead, status_code=status.HTTP_200_OK
)
async def get_site_status(
    site_id: UUID,
    session: AsyncSession = Depends(get_db_session),
) -> SiteStatusRead:
    site = await _get_site_or_404(site_id=site_id, session=session)
    return _serialize_status(site)


@router.patch(
    "/{site_id}/status", response_model=SiteStatusRead, status_code=status.HTTP_200_OK
)
async def update_site_status(
    site_id: UUID,
    payload: SiteStatusUpdate,
    tracker: ProgressTracker = Depends(_get_progress_tracker),
    session: AsyncSession = Depends(get_db_session),
) -> SiteStatusRead:
    try:
        await tracker.apply(
            site_id,
            lambda state: apply_user_status_change(state, payload.status),
        )
    except SiteNotFoundError as error:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Site not found",
        ) from error
    except InvalidStatusTransitionError as error:
        allowed = sorted(
            target.value for target in allowed_user_transitions(error.current)
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": (
                    f"Cannot transition from '{error.current.value}' "
                    f"to '{error.target.value}'"
                ),
                "allowed_transitions": allowed,
            },
        ) from error

    site = await _get_site_or_404(site_id=site_id, session=session)
    await session.refresh(site)
    return _serialize_status(site)


__all__ = ["router"]
