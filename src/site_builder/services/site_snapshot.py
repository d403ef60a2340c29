"""Detached, read-only view of the site data a build run plans from."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from site_builder.models import (
    Location,
    Service,
    ServiceArea,
    Site,
    SiteCategory,
    SiteStatus,
    WebsiteType,
)


@dataclass(slots=True, frozen=True)
class LocationSnapshot:
    id: UUID
    city: str
    state: str
    is_primary: bool


@dataclass(slots=True, frozen=True)
class CategorySnapshot:
    id: UUID
    gcid: str
    display_name: str
    is_primary: bool
    sort_order: int


@dataclass(slots=True, frozen=True)
class ServiceSnapshot:
    id: UUID
    name: str
    slug: str
    description: str | None
    site_category_id: UUID | None


@dataclass(slots=True, frozen=True)
class ServiceAreaSnapshot:
    id: UUID
    name: str
    state: str | None
    slug: str


@dataclass(slots=True, frozen=True)
class ReviewSourceCredentials:
    """Business profile identifiers and token used to import reviews."""

    account_name: str
    location_name: str
    access_token: str


@dataclass(slots=True, frozen=True)
class SiteSnapshot:
    """Everything a build run needs to know about a site, captured at entry."""

    site_id: UUID
    name: str
    status: SiteStatus
    website_type: WebsiteType
    locations: tuple[LocationSnapshot, ...]
    categories: tuple[CategorySnapshot, ...]
    services: tuple[ServiceSnapshot, ...]
    service_areas: tuple[ServiceAreaSnapshot, ...]
    review_source: ReviewSourceCredentials | None = None

    @property
    def primary_location(self) -> LocationSnapshot | None:
        for location in self.locations:
            if location.is_primary:
                return location
        return self.locations[0] if self.locations else None

    @property
    def primary_category(self) -> CategorySnapshot | None:
        for category in self.categories:
            if category.is_primary:
                return category
        return None

    @property
    def was_already_active(self) -> bool:
        """Live sites keep serving content while a build runs underneath."""

        return self.status in (SiteStatus.ACTIVE, SiteStatus.PAUSED)


async def load_site_snapshot(session: AsyncSession, site: Site) -> SiteSnapshot:
    """Load ordered child records of ``site`` into a detached snapshot."""

    locations = (
        (
            await session.execute(
                select(Location)
                .where(Location.site_id == site.id)
                .order_by(Location.is_primary.desc(), Location.created_at.asc())
            )
        )
        .scalars()
        .all()
    )
    categories = (
        (
            await session.execute(
                select(SiteCategory)
                .where(SiteCategory.site_id == site.id)
                .order_by(SiteCategory.sort_order.asc(), SiteCategory.created_at.asc())
            )
        )
        .scalars()
        .all()
    )
    services = (
        (
            await session.execute(
                select(Service)
                .where(Service.site_id == site.id)
                .order_by(Service.sort_order.asc(), Service.created_at.asc())
            )
        )
        .scalars()
        .all()
    )
    service_areas = (
        (
            await session.execute(
                select(ServiceArea)
                .where(ServiceArea.site_id == site.id)
                .order_by(ServiceArea.sort_order.asc(), ServiceArea.created_at.asc())
            )
        )
        .scalars()
        .all()
    )

    review_source = None
    if site.gbp_account_name and site.gbp_location_name and site.gbp_access_token:
        review_source = ReviewSourceCredentials(
            account_name=site.gbp_account_name,
            location_name=site.gbp_location_name,
            access_token=site.gbp_access_token,
        )

    return SiteSnapshot(
        site_id=site.id,
        name=site.name,
        status=site.status,
        website_type=site.website_type,
        locations=tuple(
            LocationSnapshot(
                id=location.id,
                city=location.city,
                state=location.state,
                is_primary=location.is_primary,
            )
            for location in locations
        ),
        categories=tuple(
            CategorySnapshot(
                id=category.id,
                gcid=category.gbp_category_id,
                display_name=category.display_name,
                is_primary=category.is_primary,
                sort_order=category.sort_order,
            )
            for category in categories
        ),
        services=tuple(
            ServiceSnapshot(
                id=service.id,
                name=service.name,
                slug=service.slug,
                description=service.description,
                site_category_id=service.site_category_id,
            )
            for service in services
        ),
        service_areas=tuple(
            ServiceAreaSnapshot(
                id=area.id,
                name=area.name,
                state=area.state,
                slug=area.slug,
            )
            for area in service_areas
        ),
        review_source=review_source,
    )


__all__ = [
    "CategorySnapshot",
    "LocationSnapshot",
    "ReviewSourceCredentials",
    "ServiceAreaSnapshot",
    "ServiceSnapshot",
    "SiteSnapshot",
    "load_site_snapshot",
]
