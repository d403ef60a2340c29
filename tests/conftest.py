"""Shared database fixtures for site builder tests."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.sqlite")

from site_builder.models import (
    Base,
    GbpCategory,
    Location,
    Service,
    ServiceArea,
    Site,
    SiteCategory,
    SiteStatus,
    WebsiteType,
)
from site_builder.services.task_planner import slugify

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]
SiteSeeder = Callable[..., Awaitable[UUID]]


@pytest_asyncio.fixture
async def scoped_session(tmp_path: Path) -> AsyncIterator[SessionScope]:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'site-builder.sqlite'}"
    engine = create_async_engine(database_url)
    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )

    @asynccontextmanager
    async def _scoped_session() -> AsyncIterator[AsyncSession]:
        session = session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    yield _scoped_session

    await engine.dispose()


@pytest.fixture
def seed_site(scoped_session: SessionScope) -> SiteSeeder:
    """Return a coroutine that inserts a site with the requested child rows."""

    async def _seed(
        *,
        name: str = "Acme Plumbing",
        status: SiteStatus = SiteStatus.PENDING,
        website_type: WebsiteType = WebsiteType.SINGLE_LOCATION,
        with_location: bool = True,
        primary_category: str | None = "Plumber",
        secondary_categories: Sequence[str] = (),
        services: Sequence[str] = (),
        uncategorized_services: Sequence[str] = (),
        service_areas: Sequence[str] = (),
        build_progress: dict[str, Any] | None = None,
        status_message: str | None = None,
        status_updated_at: datetime | None = None,
        with_review_source: bool = False,
    ) -> UUID:
        async with scoped_session() as session:
            site = Site(
                name=name,
                slug=f"{slugify(name)}-{uuid4().hex[:8]}",
                website_type=website_type,
                status=status,
                build_progress=build_progress,
                status_message=status_message,
            )
            if status_updated_at is not None:
                site.status_updated_at = status_updated_at
            if with_review_source:
                site.gbp_account_name = "accounts/123"
                site.gbp_location_name = "locations/456"
                site.gbp_access_token = "gbp-access-token"
            session.add(site)
            await session.flush()

            if with_location:
                session.add(
                    Location(
                        site_id=site.id,
                        city="Austin",
                        state="TX",
                        is_primary=True,
                    )
                )

            category_names: list[tuple[str, bool]] = []
            if primary_category is not None:
                category_names.append((primary_category, True))
            category_names.extend(
                (category, False) for category in secondary_categories
            )

            first_category_id: UUID | None = None
            for sort_order, (category_name, is_primary) in enumerate(category_names):
                gcid = f"gcid:{slugify(category_name)}"
                if await session.get(GbpCategory, gcid) is None:
                    session.add(GbpCategory(gcid=gcid, display_name=category_name))
                    await session.flush()
                site_category = SiteCategory(
                    site_id=site.id,
                    gbp_category_id=gcid,
                    is_primary=is_primary,
                    sort_order=sort_order,
                )
                session.add(site_category)
                await session.flush()
                if first_category_id is None:
                    first_category_id = site_category.id

            for sort_order, service_name in enumerate(services):
                session.add(
                    Service(
                        site_id=site.id,
                        site_category_id=first_category_id,
                        name=service_name,
                        slug=slugify(service_name),
                        description=f"{service_name} for homes and businesses",
                        sort_order=sort_order,
                    )
                )
            for sort_order, service_name in enumerate(
                uncategorized_services, start=len(services)
            ):
                session.add(
                    Service(
                        site_id=site.id,
                        site_category_id=None,
                        name=service_name,
                        slug=slugify(service_name),
                        sort_order=sort_order,
                    )
                )
            for sort_order, area_name in enumerate(service_areas):
                session.add(
                    ServiceArea(
                        site_id=site.id,
                        name=area_name,
                        state="TX",
                        slug=slugify(area_name),
                        sort_order=sort_order,
                    )
                )
            return site.id

    return _seed
