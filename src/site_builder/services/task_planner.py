"""Ordered, batched plan of generation work for one site build."""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar
from uuid import UUID

from site_builder.models import PageType
from site_builder.services.site_snapshot import (
    CategorySnapshot,
    ServiceAreaSnapshot,
    ServiceSnapshot,
    SiteSnapshot,
)

CORE_PAGE_TYPES: tuple[PageType, ...] = (
    PageType.HOME,
    PageType.ABOUT,
    PageType.CONTACT,
)
DEFAULT_SERVICE_BATCH_SIZE = 5
DEFAULT_SERVICE_AREA_BATCH_SIZE = 10
UNCATEGORIZED_BATCH_KEY = "uncategorized"
FALLBACK_CATEGORY_NAME = "Services"

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")

T = TypeVar("T")


class TaskKind(str, Enum):
    """Artifact shapes the generator can produce."""

    CORE_PAGE = "core_page"
    CATEGORY_PAGE = "category_page"
    SERVICE_PAGE = "service_page"
    SERVICE_AREA_PAGE = "service_area_page"


_KIND_NOUNS: dict[TaskKind, str] = {
    TaskKind.CORE_PAGE: "page",
    TaskKind.CATEGORY_PAGE: "category page",
    TaskKind.SERVICE_PAGE: "service page",
    TaskKind.SERVICE_AREA_PAGE: "service area page",
}


class MissingRequiredDataError(ValueError):
    """Raised when a site lacks the data every build depends on."""

    def __init__(self, site_id: UUID, missing: Sequence[str]) -> None:
        self.site_id = site_id
        self.missing = tuple(missing)
        super().__init__(
            f"Site {site_id} is missing required data: {', '.join(self.missing)}"
        )


class UnboundTaskError(ValueError):
    """Raised when a task has no stored record to attach its artifact to."""

    def __init__(self, task: GenerationTask) -> None:
        self.task = task
        super().__init__(
            f"{task.kind.value} task '{task.name or task.label}' "
            "has no target record"
        )


@dataclass(slots=True, frozen=True)
class GenerationTask:
    """One artifact to generate and persist."""

    kind: TaskKind
    label: str
    subject_id: UUID | None = None
    name: str = ""
    slug: str = ""
    description: str | None = None
    state: str | None = None
    page_type: PageType | None = None
    site_category_id: UUID | None = None
    is_primary: bool = False

    def target_id(self) -> UUID:
        """Id of the row this task's artifact is saved against."""

        if self.kind is TaskKind.CATEGORY_PAGE:
            target = self.site_category_id
        else:
            target = self.subject_id
        if target is None:
            raise UnboundTaskError(self)
        return target


@dataclass(slots=True, frozen=True)
class TaskBatch:
    """Tasks of one kind sent to the generator in a single call."""

    kind: TaskKind
    batch_key: str
    tasks: tuple[GenerationTask, ...]
    category_name: str | None = None

    @property
    def size(self) -> int:
        return len(self.tasks)

    def describe(self) -> str:
        """Human-readable description of the batch about to run."""

        first = self.tasks[0]
        if self.kind is TaskKind.CORE_PAGE:
            return f"Generating {first.label} page..."
        if self.kind is TaskKind.CATEGORY_PAGE:
            return f"Generating {first.name} category page..."
        if self.kind is TaskKind.SERVICE_PAGE:
            if self.size == 1:
                return f"Generating {first.name} service page..."
            return f"Generating {first.name} and {self.size - 1} more services..."
        if self.size == 1:
            return f"Generating {first.name} service area page..."
        return f"Generating {first.name} and {self.size - 1} more service areas..."

    def describe_skipped(self) -> str:
        noun = _KIND_NOUNS[self.kind]
        if self.size == 1:
            return f"Skipped {self.tasks[0].name} {noun}"
        return f"Skipped {self.size} {noun}s starting with {self.tasks[0].name}"


@dataclass(slots=True, frozen=True)
class BuildPlan:
    """Fixed execution order of batches and the per-item task count."""

    batches: tuple[TaskBatch, ...]
    total_tasks: int

    def __iter__(self) -> Iterator[TaskBatch]:
        return iter(self.batches)


def slugify(value: str) -> str:
    """Lowercase ``value`` and collapse non-alphanumerics into single dashes."""

    return _NON_ALPHANUMERIC.sub("-", value.lower()).strip("-")


def chunked(items: Sequence[T], size: int) -> Iterator[tuple[T, ...]]:
    if size <= 0:
        raise ValueError("size must be greater than zero")
    for start in range(0, len(items), size):
        yield tuple(items[start : start + size])


def completed_label(task: GenerationTask) -> str:
    """Human-readable description of a finished task."""

    if task.kind is TaskKind.CORE_PAGE:
        return f"Generated {task.label} page"
    if task.kind is TaskKind.CATEGORY_PAGE:
        return f"Generated {task.name} category page"
    if task.kind is TaskKind.SERVICE_PAGE:
        return f"Generated {task.name} service page"
    return f"Generated {task.name} service area page"


class TaskPlanner:
    """Turn a site snapshot into an ordered build plan."""

    def __init__(
        self,
        *,
        service_batch_size: int = DEFAULT_SERVICE_BATCH_SIZE,
        service_area_batch_size: int = DEFAULT_SERVICE_AREA_BATCH_SIZE,
    ) -> None:
        if service_batch_size <= 0:
            raise ValueError("service_batch_size must be greater than zero")
        if service_area_batch_size <= 0:
            raise ValueError("service_area_batch_size must be greater than zero")
        self._service_batch_size = service_batch_size
        self._service_area_batch_size = service_area_batch_size

    def validate(self, snapshot: SiteSnapshot) -> None:
        missing: list[str] = []
        if not snapshot.locations:
            missing.append("location")
        if snapshot.primary_category is None:
            missing.append("primary category")
        if missing:
            raise MissingRequiredDataError(snapshot.site_id, missing)

    def plan(self, snapshot: SiteSnapshot) -> BuildPlan:
        """Return core, category, service, then service area batches."""

        self.validate(snapshot)

        batches: list[TaskBatch] = []
        batches.extend(self._core_page_batches())
        batches.extend(self._category_batches(snapshot.categories))
        batches.extend(
            self._service_batches(snapshot.categories, snapshot.services)
        )
        batches.extend(self._service_area_batches(snapshot.service_areas))

        total_tasks = (
            len(CORE_PAGE_TYPES)
            + len(snapshot.categories)
            + len(snapshot.services)
            + len(snapshot.service_areas)
        )
        return BuildPlan(batches=tuple(batches), total_tasks=total_tasks)

    def _core_page_batches(self) -> list[TaskBatch]:
        return [
            TaskBatch(
                kind=TaskKind.CORE_PAGE,
                batch_key=page_type.value,
                tasks=(
                    GenerationTask(
                        kind=TaskKind.CORE_PAGE,
                        label=page_type.value,
                        name=page_type.value,
                        slug=page_type.value,
                        page_type=page_type,
                    ),
                ),
            )
            for page_type in CORE_PAGE_TYPES
        ]

    def _category_batches(
        self, categories: Sequence[CategorySnapshot]
    ) -> list[TaskBatch]:
        batches: list[TaskBatch] = []
        for category in categories:
            name = category.display_name or FALLBACK_CATEGORY_NAME
            batches.append(
                TaskBatch(
                    kind=TaskKind.CATEGORY_PAGE,
                    batch_key=f"category:{category.id}",
                    category_name=name,
                    tasks=(
                        GenerationTask(
                            kind=TaskKind.CATEGORY_PAGE,
                            label=name,
                            subject_id=category.id,
                            name=name,
                            slug=slugify(name),
                            page_type=PageType.CATEGORY,
                            site_category_id=category.id,
                            is_primary=category.is_primary,
                        ),
                    ),
                )
            )
        return batches

    def _service_batches(
        self,
        categories: Sequence[CategorySnapshot],
        services: Sequence[ServiceSnapshot],
    ) -> list[TaskBatch]:
        category_names = {
            category.id: category.display_name or FALLBACK_CATEGORY_NAME
            for category in categories
        }
        groups: dict[UUID | None, list[ServiceSnapshot]] = {
            category.id: [] for category in categories
        }
        for service in services:
            key = service.site_category_id
            if key not in category_names:
                key = None
            groups.setdefault(key, []).append(service)

        # Uncategorized services run after every category group.
        ordered_keys = [category.id for category in categories]
        if None in groups:
            ordered_keys.append(None)

        batches: list[TaskBatch] = []
        for key in ordered_keys:
            group = groups.get(key, [])
            group_name = (
                category_names[key] if key is not None else FALLBACK_CATEGORY_NAME
            )
            group_key = str(key) if key is not None else UNCATEGORIZED_BATCH_KEY
            for index, chunk in enumerate(chunked(group, self._service_batch_size)):
                batches.append(
                    TaskBatch(
                        kind=TaskKind.SERVICE_PAGE,
                        batch_key=f"services:{group_key}:{index}",
                        category_name=group_name,
                        tasks=tuple(
                            GenerationTask(
                                kind=TaskKind.SERVICE_PAGE,
                                label=service.name,
                                subject_id=service.id,
                                name=service.name,
                                slug=service.slug,
                                description=service.description,
                                site_category_id=service.site_category_id,
                            )
                            for service in chunk
                        ),
                    )
                )
        return batches

    def _service_area_batches(
        self, service_areas: Sequence[ServiceAreaSnapshot]
    ) -> list[TaskBatch]:
        return [
            TaskBatch(
                kind=TaskKind.SERVICE_AREA_PAGE,
                batch_key=f"service_areas:{index}",
                tasks=tuple(
                    GenerationTask(
                        kind=TaskKind.SERVICE_AREA_PAGE,
                        label=area.name,
                        subject_id=area.id,
                        name=area.name,
                        slug=area.slug,
                        state=area.state,
                    )
                    for area in chunk
                ),
            )
            for index, chunk in enumerate(
                chunked(service_areas, self._service_area_batch_size)
            )
        ]


__all__ = [
    "BuildPlan",
    "CORE_PAGE_TYPES",
    "GenerationTask",
    "MissingRequiredDataError",
    "TaskBatch",
    "TaskKind",
    "TaskPlanner",
    "UnboundTaskError",
    "chunked",
    "completed_label",
    "slugify",
]
