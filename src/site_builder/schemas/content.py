"""Strict artifact shapes decoded from generator responses."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

NonEmptyText = Annotated[str, Field(min_length=1)]


class _ArtifactModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class PageContent(_ArtifactModel):
    """Copy for a core page or category page."""

    meta_title: NonEmptyText = Field(max_length=255)
    meta_description: NonEmptyText = Field(max_length=512)
    h1: NonEmptyText = Field(max_length=255)
    h2: str | None = Field(default=None, max_length=255)
    hero_description: str | None = None
    body_copy: NonEmptyText
    body_copy_2: str | None = None


class CorePageContent(PageContent):
    """Home, about or contact page copy."""


class CategoryPageContent(PageContent):
    """Landing page copy for one business category."""


class Problem(_ArtifactModel):
    title: NonEmptyText
    description: NonEmptyText


class DetailedSection(_ArtifactModel):
    heading: NonEmptyText
    content: NonEmptyText


class FAQ(_ArtifactModel):
    question: NonEmptyText
    answer: NonEmptyText


class LongFormPageContent(_ArtifactModel):
    """Copy shared by service and service area pages."""

    name: NonEmptyText
    meta_title: NonEmptyText = Field(max_length=255)
    meta_description: NonEmptyText = Field(max_length=512)
    h1: NonEmptyText = Field(max_length=255)
    h2: str | None = Field(default=None, max_length=255)
    intro_copy: NonEmptyText
    body_copy: NonEmptyText
    problems: list[Problem] = Field(min_length=3, max_length=3)
    detailed_sections: list[DetailedSection] = Field(min_length=3, max_length=3)
    faqs: list[FAQ] = Field(min_length=3, max_length=5)


class ServicePageContent(LongFormPageContent):
    """Generated copy for one service."""


class ServiceAreaPageContent(LongFormPageContent):
    """Generated copy for one served city."""


class ServicePagesBatch(_ArtifactModel):
    services: list[ServicePageContent] = Field(min_length=1)


class ServiceAreaPagesBatch(_ArtifactModel):
    service_areas: list[ServiceAreaPageContent] = Field(min_length=1)


__all__ = [
    "CategoryPageContent",
    "CorePageContent",
    "DetailedSection",
    "FAQ",
    "LongFormPageContent",
    "PageContent",
    "Problem",
    "ServiceAreaPageContent",
    "ServiceAreaPagesBatch",
    "ServicePageContent",
    "ServicePagesBatch",
]
