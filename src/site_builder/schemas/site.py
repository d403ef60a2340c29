"""Pydantic schemas for site build and status endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from site_builder.models import SiteStatus


class BuildProgressRead(BaseModel):
    """Serialized progress of the build in flight."""

    total_tasks: int = Field(ge=0)
    completed_tasks: int = Field(ge=0)
    current_task: str
    started_at: datetime


class SiteStatusRead(BaseModel):
    """Lifecycle fields polled by dashboards."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: SiteStatus
    build_progress: BuildProgressRead | None = None
    status_message: str | None = None
    status_updated_at: datetime


class SiteStatusUpdate(BaseModel):
    """Payload used to pause or resume a live site."""

    status: SiteStatus


class BuildAccepted(BaseModel):
    """Acknowledgement returned once a build run has been scheduled."""

    status: Literal["started"] = "started"
    total_tasks: int = Field(ge=0)
    run_id: UUID


__all__ = [
    "BuildAccepted",
    "BuildProgressRead",
    "SiteStatusRead",
    "SiteStatusUpdate",
]
