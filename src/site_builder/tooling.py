"""CLI entry points for local code quality and database tooling."""

from __future__ import annotations

import subprocess
import sys


def _run_tool(command: list[str]) -> None:
    completed_process = subprocess.run(command, check=False)
    if completed_process.returncode != 0:
        raise SystemExit(completed_process.returncode)


def lint() -> None:
    _run_tool(["ruff", "check", "src", "tests", "scripts"])


def format() -> None:
    _run_tool(["black", "src", "tests", "scripts"])


def typecheck() -> None:
    _run_tool(["mypy", "src", "tests"])


def migrate() -> None:
    revision = sys.argv[1] if len(sys.argv) > 1 else "head"
    _run_tool(["alembic", "upgrade", revision])


__all__ = ["format", "lint", "migrate", "typecheck"]
