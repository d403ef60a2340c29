"""Prompt builders for each generated artifact kind."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Final

from site_builder.models import PageType, WebsiteType
from site_builder.services.task_planner import GenerationTask, TaskKind

MAX_TOKENS_BY_KIND: Final[dict[TaskKind, int]] = {
    TaskKind.CORE_PAGE: 2048,
    TaskKind.CATEGORY_PAGE: 2048,
    TaskKind.SERVICE_PAGE: 8192,
    TaskKind.SERVICE_AREA_PAGE: 8192,
}

_PAGE_GUIDANCE: Final[dict[PageType, str]] = {
    PageType.HOME: (
        "2-3 paragraphs introducing the business and primary services "
        "(300-500 words)"
    ),
    PageType.ABOUT: "Company story, values, and why choose us (300-500 words)",
    PageType.CONTACT: (
        "Brief intro encouraging contact with mention of service area "
        "(100-200 words)"
    ),
}

_PAGE_SHAPE: Final[dict[str, str]] = {
    "meta_title": "...",
    "meta_description": "...",
    "h1": "...",
    "h2": "...",
    "hero_description": "...",
    "body_copy": "...",
    "body_copy_2": "...",
}

_LONG_FORM_SHAPE: Final[dict[str, object]] = {
    "name": "...",
    "meta_title": "...",
    "meta_description": "...",
    "h1": "...",
    "h2": "...",
    "intro_copy": "...",
    "body_copy": "...",
    "problems": [{"title": "...", "description": "..."}],
    "detailed_sections": [{"heading": "...", "content": "..."}],
    "faqs": [{"question": "...", "answer": "..."}],
}

_LONG_FORM_FIELDS: Final[str] = """1. name: exactly as listed above
2. meta_title: SEO-optimized title (max 60 chars)
3. meta_description: Compelling description with call-to-action (max 155 chars)
4. h1: Main heading that includes the subject and location naturally
5. h2: Supporting subheading
6. intro_copy: One short introductory paragraph
7. body_copy: 2-3 paragraphs of helpful, SEO-friendly content
8. problems: exactly 3 customer problems this solves, each with title and description
9. detailed_sections: exactly 3 sections, each with heading and content
10. faqs: 3-5 common questions with detailed answers"""


@dataclass(slots=True, frozen=True)
class BusinessContext:
    """Business facts embedded into every prompt of one build run."""

    business_name: str
    city: str
    state: str
    primary_category: str
    website_type: WebsiteType
    average_rating: float | None = None
    review_count: int | None = None


def _business_header(context: BusinessContext, *, location_label: str) -> str:
    lines = [
        f"Business: {context.business_name}",
        f"{location_label}: {context.city}, {context.state}",
        f"Primary Category: {context.primary_category}",
    ]
    if context.average_rating is not None and context.review_count:
        lines.append(
            f"Customer Rating: {context.average_rating:.1f} out of 5 "
            f"from {context.review_count} reviews"
        )
    return "\n".join(lines)


def _json_instruction(shape: object) -> str:
    return (
        "Format your response as JSON:\n"
        f"{json.dumps(shape, indent=2)}\n\n"
        "Return ONLY valid JSON."
    )


def home_page_focus(context: BusinessContext) -> str:
    if context.website_type is WebsiteType.SINGLE_LOCATION:
        return (
            f'The home page should focus on "{context.primary_category}" in '
            f"{context.city}, {context.state} since this is a single-location "
            "business."
        )
    return (
        f"The home page should be brand-focused for {context.business_name} "
        "since this is a multi-location business."
    )


def core_page_prompt(context: BusinessContext, task: GenerationTask) -> str:
    page_type = task.page_type or PageType.HOME
    sections = [
        "You are an SEO expert generating core page content for a local "
        "service business website.",
        _business_header(context, location_label="Location")
        + f"\nWebsite Type: {context.website_type.value}",
    ]
    if page_type is PageType.HOME:
        sections.append(home_page_focus(context))
    sections.append(
        f"Generate content for the {page_type.value} page:\n"
        "1. meta_title: SEO-optimized title (max 60 chars)\n"
        "2. meta_description: Compelling description with CTA (max 155 chars)\n"
        "3. h1: Main heading\n"
        "4. h2: Supporting subheading\n"
        "5. hero_description: One or two sentences for the page hero\n"
        f"6. body_copy: {_PAGE_GUIDANCE[page_type]}\n"
        "7. body_copy_2: A closing paragraph with a call to action"
    )
    sections.append(_json_instruction(_PAGE_SHAPE))
    return "\n\n".join(sections)


def category_page_prompt(context: BusinessContext, task: GenerationTask) -> str:
    primary_marker = " (Primary)" if task.is_primary else ""
    sections = [
        "You are an SEO expert generating a category page for a local service "
        "business.",
        _business_header(context, location_label="Location")
        + f"\nCategory: {task.name}{primary_marker}",
        "Generate content for this category page:\n"
        '1. meta_title: "[Category Name] in [City], [State] | [Business Name]" '
        "(max 60 chars)\n"
        "2. meta_description: Overview of services in this category with CTA "
        "(max 155 chars)\n"
        "3. h1: Main heading for the category page\n"
        "4. h2: Supporting subheading\n"
        "5. hero_description: One or two sentences for the page hero\n"
        "6. body_copy: 2-3 paragraphs introducing this category of services "
        "(200-400 words)\n"
        "7. body_copy_2: A closing paragraph with a call to action",
        _json_instruction(_PAGE_SHAPE),
    ]
    return "\n\n".join(sections)


def service_pages_prompt(
    context: BusinessContext,
    tasks: tuple[GenerationTask, ...],
    *,
    category_name: str,
) -> str:
    service_list = "\n".join(
        f"- {task.name}: {task.description or 'No description'}" for task in tasks
    )
    sections = [
        "You are an SEO expert generating content for a local service business "
        "website.",
        _business_header(context, location_label="Location")
        + f"\nCategory: {category_name}",
        f"Generate SEO-optimized content for these {len(tasks)} services, "
        f"in the same order:\n{service_list}",
        f"For EACH service, provide:\n{_LONG_FORM_FIELDS}",
        _json_instruction({"services": [_LONG_FORM_SHAPE]}),
    ]
    return "\n\n".join(sections)


def service_area_pages_prompt(
    context: BusinessContext,
    tasks: tuple[GenerationTask, ...],
) -> str:
    area_list = "\n".join(
        f"- {task.name}, {task.state or context.state}" for task in tasks
    )
    sections = [
        "You are an SEO expert generating service area page content for a "
        "local service business.",
        _business_header(context, location_label="Primary Location"),
        "Generate content for these service area pages (nearby cities we "
        f"serve), {len(tasks)} in total and in the same order:\n{area_list}",
        f"For EACH service area, explain that {context.business_name} proudly "
        "serves the city, the services available to its residents, and end "
        f"with a call to action. Provide:\n{_LONG_FORM_FIELDS}",
        _json_instruction({"service_areas": [_LONG_FORM_SHAPE]}),
    ]
    return "\n\n".join(sections)


__all__ = [
    "BusinessContext",
    "MAX_TOKENS_BY_KIND",
    "category_page_prompt",
    "core_page_prompt",
    "home_page_focus",
    "service_area_pages_prompt",
    "service_pages_prompt",
]
