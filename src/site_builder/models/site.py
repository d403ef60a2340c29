"""Site ORM model holding lifecycle status and build progress."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SqlEnum,
    Index,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from site_builder.models.base import Base

if TYPE_CHECKING:
    from site_builder.models.build_run import BuildRun
    from site_builder.models.category import SiteCategory
    from site_builder.models.location import Location
    from site_builder.models.service import Service
    from site_builder.models.service_area import ServiceArea
    from site_builder.models.site_page import SitePage
    from site_builder.models.site_review import SiteReview


class SiteStatus(str, Enum):
    """Lifecycle states of a generated site."""

    PENDING = "pending"
    BUILDING = "building"
    ACTIVE = "active"
    PAUSED = "paused"
    FAILED = "failed"


class WebsiteType(str, Enum):
    """Whether the business operates one location or several."""

    SINGLE_LOCATION = "single_location"
    MULTI_LOCATION = "multi_location"


class Site(Base):
    """Generated marketing site for one business."""

    __tablename__ = "sites"
    __table_args__ = (
        Index("ix_sites_status_status_updated_at", "status", "status_updated_at"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    website_type: Mapped[WebsiteType] = mapped_column(
        SqlEnum(
            WebsiteType,
            name="website_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=WebsiteType.SINGLE_LOCATION,
        server_default=WebsiteType.SINGLE_LOCATION.value,
    )
    status: Mapped[SiteStatus] = mapped_column(
        SqlEnum(
            SiteStatus,
            name="site_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=SiteStatus.PENDING,
        server_default=SiteStatus.PENDING.value,
    )
    build_progress: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    status_message: Mapped[str | None] = mapped_column(String(2048))
    status_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    gbp_account_name: Mapped[str | None] = mapped_column(String(255))
    gbp_location_name: Mapped[str | None] = mapped_column(String(255))
    gbp_access_token: Mapped[str | None] = mapped_column(String(2048))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    locations: Mapped[list[Location]] = relationship(
        back_populates="site",
        cascade="all, delete-orphan",
    )
    categories: Mapped[list[SiteCategory]] = relationship(
        back_populates="site",
        cascade="all, delete-orphan",
    )
    services: Mapped[list[Service]] = relationship(
        back_populates="site",
        cascade="all, delete-orphan",
    )
    service_areas: Mapped[list[ServiceArea]] = relationship(
        back_populates="site",
        cascade="all, delete-orphan",
    )
    pages: Mapped[list[SitePage]] = relationship(
        back_populates="site",
        cascade="all, delete-orphan",
    )
    reviews: Mapped[list[SiteReview]] = relationship(
        back_populates="site",
        cascade="all, delete-orphan",
    )
    build_runs: Mapped[list[BuildRun]] = relationship(
        back_populates="site",
        cascade="all, delete-orphan",
    )


__all__ = ["Site", "SiteStatus", "WebsiteType"]
