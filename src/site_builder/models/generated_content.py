"""Column set shared by rows that carry generated long-form page content."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column


class GeneratedContentMixin:
    """Generated SEO copy stored on a service or service area row."""

    meta_title: Mapped[str | None] = mapped_column(String(255))
    meta_description: Mapped[str | None] = mapped_column(String(512))
    h1: Mapped[str | None] = mapped_column(String(255))
    h2: Mapped[str | None] = mapped_column(String(255))
    intro_copy: Mapped[str | None] = mapped_column(Text)
    body_copy: Mapped[str | None] = mapped_column(Text)
    problems: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    detailed_sections: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    faqs: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    content_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )


__all__ = ["GeneratedContentMixin"]
