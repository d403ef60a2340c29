"""Generated site page ORM model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from site_builder.models.base import Base

if TYPE_CHECKING:
    from site_builder.models.site import Site


class PageType(str, Enum):
    """Kinds of standalone pages stored in site_pages."""

    HOME = "home"
    ABOUT = "about"
    CONTACT = "contact"
    CATEGORY = "category"


class SitePage(Base):
    """Core or category page content keyed by site and slug."""

    __tablename__ = "site_pages"
    __table_args__ = (
        UniqueConstraint("site_id", "slug", name="uq_site_pages_site_id_slug"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    site_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
    )
    site_category_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("site_categories.id", ondelete="SET NULL"),
    )
    page_type: Mapped[PageType] = mapped_column(
        SqlEnum(
            PageType,
            name="page_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    meta_title: Mapped[str] = mapped_column(String(255), nullable=False)
    meta_description: Mapped[str] = mapped_column(String(512), nullable=False)
    h1: Mapped[str] = mapped_column(String(255), nullable=False)
    h2: Mapped[str | None] = mapped_column(String(255))
    hero_description: Mapped[str | None] = mapped_column(Text)
    body_copy: Mapped[str] = mapped_column(Text, nullable=False)
    body_copy_2: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("1"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    site: Mapped[Site] = relationship(back_populates="pages")


__all__ = ["PageType", "SitePage"]
