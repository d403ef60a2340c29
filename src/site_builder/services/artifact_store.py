"""Idempotent persistence of generated artifacts and imported reviews."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from site_builder.models import PageType, Service, ServiceArea, SitePage, SiteReview
from site_builder.schemas.content import LongFormPageContent, PageContent
from site_builder.services.reviews_client import ReviewSummary
from site_builder.services.task_planner import slugify

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_logger = logging.getLogger("site_builder.build")


class ArtifactSubjectNotFoundError(LookupError):
    """Raised when the service or service area owning an artifact is gone."""


class ArtifactStore:
    """Upsert generated content keyed by natural keys, never appending."""

    def __init__(self, *, session_factory: SessionScopeFactory | None = None) -> None:
        if session_factory is None:
            from site_builder.database import session_scope

            session_factory = session_scope

        self._session_factory = session_factory

    async def save_core_page(
        self,
        site_id: UUID,
        page_type: PageType,
        content: PageContent,
    ) -> None:
        await self._upsert_page(
            site_id,
            slug=page_type.value,
            page_type=page_type,
            site_category_id=None,
            content=content,
        )

    async def save_category_page(
        self,
        site_id: UUID,
        *,
        site_category_id: UUID,
        category_name: str,
        content: PageContent,
    ) -> None:
        await self._upsert_page(
            site_id,
            slug=slugify(category_name),
            page_type=PageType.CATEGORY,
            site_category_id=site_category_id,
            content=content,
        )

    async def save_service_content(
        self,
        service_id: UUID,
        content: LongFormPageContent,
    ) -> None:
        async with self._session_factory() as session:
            service = await session.get(Service, service_id)
            if service is None:
                raise ArtifactSubjectNotFoundError(f"Service {service_id} not found")
            _apply_long_form(service, content)

    async def save_service_area_content(
        self,
        service_area_id: UUID,
        content: LongFormPageContent,
    ) -> None:
        async with self._session_factory() as session:
            area = await session.get(ServiceArea, service_area_id)
            if area is None:
                raise ArtifactSubjectNotFoundError(
                    f"Service area {service_area_id} not found"
                )
            _apply_long_form(area, content)

    async def save_reviews(self, site_id: UUID, summary: ReviewSummary) -> int:
        """Upsert reviews keyed by ``(site_id, review_id)``."""

        if not summary.reviews:
            return 0

        review_ids = [review.review_id for review in summary.reviews]
        async with self._session_factory() as session:
            existing_rows = (
                (
                    await session.execute(
                        select(SiteReview).where(
                            SiteReview.site_id == site_id,
                            SiteReview.review_id.in_(review_ids),
                        )
                    )
                )
                .scalars()
                .all()
            )
            existing = {row.review_id: row for row in existing_rows}
            imported_at = datetime.now(UTC)
            for review in summary.reviews:
                row = existing.get(review.review_id)
                if row is None:
                    row = SiteReview(site_id=site_id, review_id=review.review_id)
                    session.add(row)
                    existing[review.review_id] = row
                row.reviewer_name = review.reviewer_name
                row.rating = review.rating
                row.comment = review.comment
                row.review_date = review.review_date
                row.imported_at = imported_at

        _logger.info(
            "reviews_saved",
            extra={"site_id": str(site_id), "review_count": len(summary.reviews)},
        )
        return len(summary.reviews)

    async def _upsert_page(
        self,
        site_id: UUID,
        *,
        slug: str,
        page_type: PageType,
        site_category_id: UUID | None,
        content: PageContent,
    ) -> None:
        async with self._session_factory() as session:
            page = await session.scalar(
                select(SitePage).where(
                    SitePage.site_id == site_id,
                    SitePage.slug == slug,
                )
            )
            if page is None:
                page = SitePage(site_id=site_id, slug=slug)
                session.add(page)

            page.page_type = page_type
            page.site_category_id = site_category_id
            page.meta_title = content.meta_title
            page.meta_description = content.meta_description
            page.h1 = content.h1
            page.h2 = content.h2
            page.hero_description = content.hero_description
            page.body_copy = content.body_copy
            page.body_copy_2 = content.body_copy_2
            page.is_active = True


def _apply_long_form(row: Service | ServiceArea, content: LongFormPageContent) -> None:
    row.meta_title = content.meta_title
    row.meta_description = content.meta_description
    row.h1 = content.h1
    row.h2 = content.h2
    row.intro_copy = content.intro_copy
    row.body_copy = content.body_copy
    row.problems = [problem.model_dump() for problem in content.problems]
    row.detailed_sections = [
        section.model_dump() for section in content.detailed_sections
    ]
    row.faqs = [faq.model_dump() for faq in content.faqs]
    row.content_generated_at = datetime.now(UTC)


__all__ = ["ArtifactStore", "ArtifactSubjectNotFoundError"]
