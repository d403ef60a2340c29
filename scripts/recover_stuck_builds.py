"""Finalize sites stuck in ``building`` while the service is offline."""

from __future__ import annotations

import argparse
import asyncio
from datetime import UTC, datetime

from site_builder.config import get_settings
from site_builder.database import close_database, session_scope
from site_builder.services.build_recovery_service import BuildRecoveryService


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--threshold-seconds",
        type=int,
        default=None,
        help="Progress age after which a building site counts as stuck.",
    )
    return parser.parse_args()


async def main() -> None:
    arguments = _parse_args()
    settings = get_settings()
    threshold_seconds = (
        arguments.threshold_seconds
        if arguments.threshold_seconds is not None
        else settings.STALE_BUILD_THRESHOLD_SECONDS
    )
    recovery_service = BuildRecoveryService(
        session_factory=session_scope,
        stale_threshold_seconds=threshold_seconds,
    )

    started_at = datetime.now(UTC)
    # No build can be live in this process.
    finalized_count = await recovery_service.sweep_stale_builds(
        is_running=lambda _site_id: False
    )
    duration_ms = round((datetime.now(UTC) - started_at).total_seconds() * 1000, 2)
    print(
        (
            "Stuck build recovery completed "
            f"(database={settings.DATABASE_URL!s}, finalized={finalized_count}, "
            f"threshold_seconds={threshold_seconds}, duration_ms={duration_ms})"
        )
    )
    await close_database()


if __name__ == "__main__":
    asyncio.run(main())
