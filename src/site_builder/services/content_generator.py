"""Structured page content generation through the Anthropic Messages API."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Final, Protocol

import httpx
from pydantic import ValidationError

from site_builder.config import Settings
from site_builder.schemas.content import (
    CategoryPageContent,
    CorePageContent,
    LongFormPageContent,
    PageContent,
    ServiceAreaPagesBatch,
    ServicePagesBatch,
)
from site_builder.services.content_prompts import (
    MAX_TOKENS_BY_KIND,
    BusinessContext,
    category_page_prompt,
    core_page_prompt,
    service_area_pages_prompt,
    service_pages_prompt,
)
from site_builder.services.generation_errors import (
    AUTHENTICATION_HTTP_STATUS_CODES,
    ContentDecodeError,
    ContentGenerationError,
    ContentGenerationHTTPError,
    ContentGenerationTimeoutError,
    GeneratorConfigurationError,
)
from site_builder.services.task_planner import GenerationTask, TaskKind

ANTHROPIC_VERSION: Final[str] = "2023-06-01"
MESSAGES_PATH: Final[str] = "/v1/messages"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

_logger = logging.getLogger("site_builder.generator")

GeneratedContent = PageContent | LongFormPageContent


@dataclass(slots=True, frozen=True)
class GenerationPayload:
    """Inputs for one generator call: business facts plus the batch items."""

    context: BusinessContext
    tasks: tuple[GenerationTask, ...]
    category_name: str | None = None


class ContentGeneratorPort(Protocol):
    async def generate(
        self,
        kind: TaskKind,
        payload: GenerationPayload,
    ) -> Sequence[GeneratedContent]:
        """Return one validated artifact per payload task, in task order."""


def extract_json_object(text: str) -> Any:
    """Return the outermost JSON object embedded in a model reply."""

    match = _JSON_OBJECT.search(text.strip())
    if match is None:
        raise ContentDecodeError("Generator response contained no JSON object")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ContentDecodeError(
            f"Generator response was not valid JSON: {exc.msg}"
        ) from exc


def _names_match(returned: str, task: GenerationTask) -> bool:
    # Service areas are listed as "City, ST" in the prompt.
    returned_name = returned.strip().casefold()
    expected = task.name.strip().casefold()
    return returned_name == expected or returned_name.startswith(f"{expected},")


def decode_artifacts(
    kind: TaskKind,
    document: Any,
    *,
    tasks: Sequence[GenerationTask],
) -> tuple[GeneratedContent, ...]:
    """Validate a decoded reply into artifact models for ``kind``.

    Long-form items must come back in task order and repeat each task's name.
    """

    try:
        artifacts: tuple[GeneratedContent, ...]
        if kind is TaskKind.CORE_PAGE:
            artifacts = (CorePageContent.model_validate(document),)
        elif kind is TaskKind.CATEGORY_PAGE:
            artifacts = (CategoryPageContent.model_validate(document),)
        elif kind is TaskKind.SERVICE_PAGE:
            artifacts = tuple(ServicePagesBatch.model_validate(document).services)
        else:
            artifacts = tuple(
                ServiceAreaPagesBatch.model_validate(document).service_areas
            )
    except ValidationError as exc:
        raise ContentDecodeError(
            f"Generator response did not match the {kind.value} shape: "
            f"{exc.error_count()} validation errors",
            kind=kind.value,
        ) from exc

    if len(artifacts) != len(tasks):
        raise ContentDecodeError(
            f"Generator returned {len(artifacts)} {kind.value} items, "
            f"expected {len(tasks)}",
            kind=kind.value,
        )
    for position, (task, artifact) in enumerate(zip(tasks, artifacts, strict=True)):
        if not isinstance(artifact, LongFormPageContent):
            continue
        if not _names_match(artifact.name, task):
            raise ContentDecodeError(
                f"Generator returned '{artifact.name}' at position {position}, "
                f"expected '{task.name}'",
                kind=kind.value,
            )
    return artifacts


def build_prompt(kind: TaskKind, payload: GenerationPayload) -> str:
    if not payload.tasks:
        raise ValueError("payload must contain at least one task")
    if kind is TaskKind.CORE_PAGE:
        return core_page_prompt(payload.context, payload.tasks[0])
    if kind is TaskKind.CATEGORY_PAGE:
        return category_page_prompt(payload.context, payload.tasks[0])
    if kind is TaskKind.SERVICE_PAGE:
        return service_pages_prompt(
            payload.context,
            payload.tasks,
            category_name=payload.category_name or payload.context.primary_category,
        )
    return service_area_pages_prompt(payload.context, payload.tasks)


def _response_text(body: Any) -> str:
    if not isinstance(body, dict):
        raise ContentDecodeError("Generator response body was not an object")
    blocks = body.get("content")
    if not isinstance(blocks, list):
        raise ContentDecodeError("Generator response had no content blocks")
    for block in blocks:
        if isinstance(block, dict) and block.get("type") == "text":
            return str(block.get("text", ""))
    raise ContentDecodeError("Generator response had no text block")


class AnthropicContentGenerator:
    """ContentGeneratorPort backed by the Anthropic Messages REST API."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str = "https://api.anthropic.com",
        timeout_seconds: float = 120.0,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")

        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> AnthropicContentGenerator:
        api_key = (
            settings.ANTHROPIC_API_KEY.get_secret_value()
            if settings.ANTHROPIC_API_KEY is not None
            else None
        )
        return cls(
            api_key=api_key,
            model=settings.ANTHROPIC_MODEL,
            base_url=settings.ANTHROPIC_BASE_URL,
            timeout_seconds=settings.GENERATOR_TIMEOUT_SECONDS,
        )

    async def generate(
        self,
        kind: TaskKind,
        payload: GenerationPayload,
    ) -> tuple[GeneratedContent, ...]:
        if not self._api_key:
            raise GeneratorConfigurationError("API key not configured", kind=kind.value)

        prompt = build_prompt(kind, payload)
        request_body = {
            "model": self._model,
            "max_tokens": MAX_TOKENS_BY_KIND[kind],
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout_seconds),
            ) as client:
                response = await client.post(
                    MESSAGES_PATH,
                    json=request_body,
                    headers=headers,
                )
        except httpx.TimeoutException as exc:
            raise ContentGenerationTimeoutError(
                f"Generator call timed out after {self._timeout_seconds}s",
                kind=kind.value,
            ) from exc
        except httpx.HTTPError as exc:
            raise ContentGenerationError(
                f"Generator request failed: {exc}",
                kind=kind.value,
            ) from exc

        if response.status_code in AUTHENTICATION_HTTP_STATUS_CODES:
            raise GeneratorConfigurationError(
                f"Generator rejected credentials with HTTP {response.status_code}",
                kind=kind.value,
            )
        if response.status_code >= 400:
            raise ContentGenerationHTTPError(
                f"Generator answered HTTP {response.status_code}",
                status_code=response.status_code,
                kind=kind.value,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ContentDecodeError(
                "Generator response body was not JSON",
                kind=kind.value,
            ) from exc

        artifacts = decode_artifacts(
            kind,
            extract_json_object(_response_text(body)),
            tasks=payload.tasks,
        )
        _logger.debug(
            "content_generated",
            extra={
                "kind": kind.value,
                "item_count": len(artifacts),
                "model": self._model,
            },
        )
        return artifacts


__all__ = [
    "ANTHROPIC_VERSION",
    "AnthropicContentGenerator",
    "ContentGeneratorPort",
    "GeneratedContent",
    "GenerationPayload",
    "build_prompt",
    "decode_artifacts",
    "extract_json_object",
]
