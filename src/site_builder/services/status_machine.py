"""Site lifecycle transitions and build progress value objects.

Every status change made by the build pipeline is expressed here as a pure
function from one ``SiteLifecycleState`` to the next. Persistence happens
elsewhere (see ``progress_tracker``); nothing in this module performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from site_builder.models.site import SiteStatus

INITIAL_TASK_DESCRIPTION = "Initializing..."
COMPLETE_TASK_DESCRIPTION = "Complete"
PAUSED_BY_USER_MESSAGE = "Paused by user"
REGENERATION_FAILED_PREFIX = "Content regeneration failed"

ALLOWED_TRANSITIONS: dict[SiteStatus, frozenset[SiteStatus]] = {
    SiteStatus.PENDING: frozenset({SiteStatus.BUILDING}),
    SiteStatus.BUILDING: frozenset(
        {SiteStatus.BUILDING, SiteStatus.ACTIVE, SiteStatus.FAILED}
    ),
    SiteStatus.ACTIVE: frozenset({SiteStatus.BUILDING, SiteStatus.PAUSED}),
    SiteStatus.PAUSED: frozenset({SiteStatus.ACTIVE, SiteStatus.BUILDING}),
    SiteStatus.FAILED: frozenset({SiteStatus.BUILDING}),
}

USER_TOGGLE_TRANSITIONS: dict[SiteStatus, frozenset[SiteStatus]] = {
    SiteStatus.ACTIVE: frozenset({SiteStatus.PAUSED}),
    SiteStatus.PAUSED: frozenset({SiteStatus.ACTIVE}),
}


class TriggerSource(str, Enum):
    """Who asked for a build run."""

    USER = "user"
    SYSTEM = "system"


class InvalidStatusTransitionError(Exception):
    """Raised when a requested lifecycle transition is not allowed."""

    def __init__(
        self,
        current: SiteStatus,
        target: SiteStatus,
        *,
        allowed: frozenset[SiteStatus] = frozenset(),
    ) -> None:
        self.current = current
        self.target = target
        self.allowed = allowed
        super().__init__(
            f"Cannot transition from '{current.value}' to '{target.value}'"
        )


@dataclass(slots=True, frozen=True)
class BuildProgress:
    """Progress snapshot of one build run, persisted as a JSON record."""

    total_tasks: int
    completed_tasks: int
    current_task: str
    started_at: datetime

    def __post_init__(self) -> None:
        if self.total_tasks < 0:
            raise ValueError("total_tasks must be zero or greater")
        if not 0 <= self.completed_tasks <= self.total_tasks:
            raise ValueError("completed_tasks must be between 0 and total_tasks")

    @classmethod
    def start(
        cls,
        total_tasks: int,
        *,
        current_task: str = INITIAL_TASK_DESCRIPTION,
        started_at: datetime | None = None,
    ) -> BuildProgress:
        return cls(
            total_tasks=total_tasks,
            completed_tasks=0,
            current_task=current_task,
            started_at=started_at or datetime.now(UTC),
        )

    def advanced_to(self, completed_tasks: int, current_task: str) -> BuildProgress:
        """Return a copy moved forward; never moves backwards or past total."""

        bounded = min(max(completed_tasks, self.completed_tasks), self.total_tasks)
        return replace(self, completed_tasks=bounded, current_task=current_task)

    def to_record(self) -> dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "current_task": self.current_task,
            "started_at": self.started_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> BuildProgress:
        started_at = datetime.fromisoformat(str(record["started_at"]))
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=UTC)
        return cls(
            total_tasks=int(record["total_tasks"]),
            completed_tasks=int(record["completed_tasks"]),
            current_task=str(record["current_task"]),
            started_at=started_at,
        )


@dataclass(slots=True, frozen=True)
class SiteLifecycleState:
    """The mutable lifecycle fields of a site row."""

    status: SiteStatus
    build_progress: BuildProgress | None
    status_message: str | None


def can_transition(current: SiteStatus, target: SiteStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def can_start_build(
    current: SiteStatus,
    source: TriggerSource,
    *,
    stale: bool = False,
) -> bool:
    """Return whether a build run may start from ``current``.

    A system trigger may re-enter a site already marked ``building`` because
    site creation leaves the record there before content generation starts.
    A user trigger is rejected unless the in-flight build has gone stale.
    """

    if current is not SiteStatus.BUILDING:
        return True
    return source is TriggerSource.SYSTEM or stale


def begin(
    state: SiteLifecycleState,
    *,
    progress: BuildProgress,
    was_already_active: bool,
) -> SiteLifecycleState:
    """Attach fresh progress; move to ``building`` unless the site is live."""

    if was_already_active:
        return replace(state, build_progress=progress)

    _require_transition(state.status, SiteStatus.BUILDING)
    return SiteLifecycleState(
        status=SiteStatus.BUILDING,
        build_progress=progress,
        status_message=None,
    )


def finalize_success(state: SiteLifecycleState) -> SiteLifecycleState:
    """Mark the site live and leave a final ``Complete`` progress record.

    A site the owner paused while the run was in flight stays paused.
    """

    target = SiteStatus.ACTIVE
    if state.status is SiteStatus.PAUSED:
        target = SiteStatus.PAUSED
    elif state.status is not SiteStatus.ACTIVE:
        _require_transition(state.status, SiteStatus.ACTIVE)

    final_progress = None
    if state.build_progress is not None:
        final_progress = state.build_progress.advanced_to(
            state.build_progress.completed_tasks, COMPLETE_TASK_DESCRIPTION
        )

    return SiteLifecycleState(
        status=target,
        build_progress=final_progress,
        status_message=None,
    )


def finalize_fatal(state: SiteLifecycleState, message: str) -> SiteLifecycleState:
    """Mark a site that was not live before the run as failed."""

    if state.status is SiteStatus.ACTIVE:
        raise InvalidStatusTransitionError(state.status, SiteStatus.FAILED)

    _require_transition(state.status, SiteStatus.FAILED)
    return replace(
        state,
        status=SiteStatus.FAILED,
        status_message=message or "Content generation failed",
    )


def finalize_non_fatal_on_active(
    state: SiteLifecycleState, message: str
) -> SiteLifecycleState:
    """Keep a live site serving its last content after a failed regeneration."""

    notice = REGENERATION_FAILED_PREFIX
    if message:
        notice = f"{REGENERATION_FAILED_PREFIX}: {message}"

    status = SiteStatus.ACTIVE
    if state.status is SiteStatus.PAUSED:
        status = SiteStatus.PAUSED
    return SiteLifecycleState(
        status=status,
        build_progress=None,
        status_message=notice,
    )


def apply_user_status_change(
    state: SiteLifecycleState, target: SiteStatus
) -> SiteLifecycleState:
    """Apply a dashboard toggle between ``active`` and ``paused``."""

    allowed = USER_TOGGLE_TRANSITIONS.get(state.status, frozenset())
    if target not in allowed:
        raise InvalidStatusTransitionError(state.status, target, allowed=allowed)

    message = PAUSED_BY_USER_MESSAGE if target is SiteStatus.PAUSED else None
    return replace(state, status=target, status_message=message)


def allowed_user_transitions(current: SiteStatus) -> frozenset[SiteStatus]:
    return USER_TOGGLE_TRANSITIONS.get(current, frozenset())


def _require_transition(current: SiteStatus, target: SiteStatus) -> None:
    if can_transition(current, target):
        return
    raise InvalidStatusTransitionError(
        current,
        target,
        allowed=ALLOWED_TRANSITIONS.get(current, frozenset()),
    )


__all__ = [
    "ALLOWED_TRANSITIONS",
    "BuildProgress",
    "COMPLETE_TASK_DESCRIPTION",
    "INITIAL_TASK_DESCRIPTION",
    "InvalidStatusTransitionError",
    "PAUSED_BY_USER_MESSAGE",
    "REGENERATION_FAILED_PREFIX",
    "SiteLifecycleState",
    "TriggerSource",
    "allowed_user_transitions",
    "apply_user_status_change",
    "begin",
    "can_start_build",
    "can_transition",
    "finalize_fatal",
    "finalize_non_fatal_on_active",
    "finalize_success",
]
