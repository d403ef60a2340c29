"""Tests for the flat-delay retry helper."""

from __future__ import annotations

import pytest

from site_builder.services import retry_policy
from site_builder.services.generation_errors import (
    ContentDecodeError,
    ContentGenerationHTTPError,
    ContentGenerationTimeoutError,
    GeneratorConfigurationError,
    is_retryable_generation_error,
)
from site_builder.services.retry_policy import with_retry


@pytest.fixture
def recorded_sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    monkeypatch.setattr(retry_policy.asyncio, "sleep", fake_sleep)
    return sleeps


@pytest.mark.asyncio
async def test_with_retry_retries_once_with_flat_delay(
    recorded_sleeps: list[float],
) -> None:
    calls = 0

    async def flaky() -> str:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ContentGenerationTimeoutError("timed out")
        return "ok"

    result = await with_retry(flaky, max_retries=1, delay_seconds=2.0)

    assert result == "ok"
    assert calls == 2
    assert recorded_sleeps == [2.0]


@pytest.mark.asyncio
async def test_with_retry_reraises_last_error_after_exhausting_attempts(
    recorded_sleeps: list[float],
    caplog: pytest.LogCaptureFixture,
) -> None:
    calls = 0
    caplog.set_level("WARNING", logger="site_builder.generator")

    async def always_failing() -> None:
        nonlocal calls
        calls += 1
        raise ContentDecodeError(f"bad json {calls}")

    with pytest.raises(ContentDecodeError, match="bad json 3"):
        await with_retry(
            always_failing,
            max_retries=2,
            delay_seconds=0.5,
            operation_name="services:x:0",
        )

    assert calls == 3
    assert recorded_sleeps == [0.5, 0.5]
    retry_records = [
        record for record in caplog.records if record.msg == "generation_retrying"
    ]
    assert [getattr(record, "attempt", None) for record in retry_records] == [1, 2]
    assert getattr(retry_records[0], "operation", None) == "services:x:0"


@pytest.mark.asyncio
async def test_with_retry_does_not_retry_configuration_errors(
    recorded_sleeps: list[float],
) -> None:
    calls = 0

    async def misconfigured() -> None:
        nonlocal calls
        calls += 1
        raise GeneratorConfigurationError("API key not configured")

    with pytest.raises(GeneratorConfigurationError):
        await with_retry(misconfigured, max_retries=3, delay_seconds=1.0)

    assert calls == 1
    assert recorded_sleeps == []


@pytest.mark.asyncio
async def test_with_retry_rejects_negative_arguments() -> None:
    async def noop() -> None:
        return None

    with pytest.raises(ValueError):
        await with_retry(noop, max_retries=-1)
    with pytest.raises(ValueError):
        await with_retry(noop, delay_seconds=-0.1)


@pytest.mark.asyncio
async def test_with_retry_uses_custom_predicate(
    recorded_sleeps: list[float],
) -> None:
    calls = 0

    async def lookup() -> str:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise KeyError("home")
        if calls == 2:
            raise ValueError("not retried")
        return "HOME"

    with pytest.raises(ValueError, match="not retried"):
        await with_retry(
            lookup,
            max_retries=3,
            delay_seconds=0.0,
            should_retry=lambda error: isinstance(error, KeyError),
        )

    assert calls == 2
    assert recorded_sleeps == [0.0]


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ContentGenerationHTTPError("busy", status_code=529), True),
        (ContentGenerationHTTPError("bad request", status_code=400), False),
        (ContentGenerationTimeoutError("slow"), True),
        (ContentDecodeError("garbled"), True),
        (GeneratorConfigurationError("no key"), False),
        (RuntimeError("unexpected"), True),
    ],
)
def test_is_retryable_generation_error(error: Exception, expected: bool) -> None:
    assert is_retryable_generation_error(error) is expected
