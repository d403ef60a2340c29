"""Service layer for the content build pipeline."""

from site_builder import __version__
from site_builder.services.artifact_store import (
    ArtifactStore,
    ArtifactSubjectNotFoundError,
)
from site_builder.services.build_orchestrator import (
    AllBatchesFailedError,
    BuildConflictError,
    BuildOrchestrator,
    BuildOutcome,
    PreparedBuild,
    RunStatus,
    build_is_stale,
)
from site_builder.services.build_recovery_service import (
    BuildRecoveryService,
    ShutdownBuildSummary,
    StartupRecoveryResult,
)
from site_builder.services.build_runner import BuildRunner, SubmittedBuild
from site_builder.services.content_generator import (
    AnthropicContentGenerator,
    ContentGeneratorPort,
    GenerationPayload,
)
from site_builder.services.content_prompts import BusinessContext
from site_builder.services.generation_errors import (
    ContentDecodeError,
    ContentGenerationError,
    ContentGenerationHTTPError,
    ContentGenerationTimeoutError,
    GeneratorConfigurationError,
)
from site_builder.services.maintenance_jobs import (
    STALE_BUILD_SWEEP_JOB_ID,
    BuildMaintenanceService,
)
from site_builder.services.progress_tracker import (
    ProgressNotInitializedError,
    ProgressTracker,
    SiteNotFoundError,
)
from site_builder.services.retry_policy import with_retry
from site_builder.services.reviews_client import (
    GoogleBusinessReviewsClient,
    ReviewsFetchError,
    ReviewsPort,
    ReviewSummary,
)
from site_builder.services.scheduler import MaintenanceScheduler
from site_builder.services.site_snapshot import SiteSnapshot, load_site_snapshot
from site_builder.services.status_machine import (
    BuildProgress,
    InvalidStatusTransitionError,
    SiteLifecycleState,
    TriggerSource,
)
from site_builder.services.task_planner import (
    BuildPlan,
    GenerationTask,
    MissingRequiredDataError,
    TaskBatch,
    TaskKind,
    TaskPlanner,
    UnboundTaskError,
)

__all__ = [
    "AllBatchesFailedError",
    "AnthropicContentGenerator",
    "ArtifactStore",
    "ArtifactSubjectNotFoundError",
    "BuildConflictError",
    "BuildMaintenanceService",
    "BuildOrchestrator",
    "BuildOutcome",
    "BuildPlan",
    "BuildProgress",
    "BuildRecoveryService",
    "BuildRunner",
    "BusinessContext",
    "ContentDecodeError",
    "ContentGenerationError",
    "ContentGenerationHTTPError",
    "ContentGenerationTimeoutError",
    "ContentGeneratorPort",
    "GenerationPayload",
    "GenerationTask",
    "GeneratorConfigurationError",
    "GoogleBusinessReviewsClient",
    "InvalidStatusTransitionError",
    "MaintenanceScheduler",
    "MissingRequiredDataError",
    "PreparedBuild",
    "ProgressNotInitializedError",
    "ProgressTracker",
    "ReviewSummary",
    "ReviewsFetchError",
    "ReviewsPort",
    "RunStatus",
    "STALE_BUILD_SWEEP_JOB_ID",
    "ShutdownBuildSummary",
    "SiteLifecycleState",
    "SiteNotFoundError",
    "SiteSnapshot",
    "StartupRecoveryResult",
    "SubmittedBuild",
    "TaskBatch",
    "TaskKind",
    "TaskPlanner",
    "TriggerSource",
    "UnboundTaskError",
    "__version__",
    "build_is_stale",
    "load_site_snapshot",
    "with_retry",
]
