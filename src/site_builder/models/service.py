"""Service ORM model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from site_builder.models.base import Base
from site_builder.models.generated_content import GeneratedContentMixin

if TYPE_CHECKING:
    from site_builder.models.category import SiteCategory
    from site_builder.models.site import Site


class Service(GeneratedContentMixin, Base):
    """Service offered by the business, rendered as its own page."""

    __tablename__ = "services"
    __table_args__ = (
        UniqueConstraint("site_id", "slug", name="uq_services_site_id_slug"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    site_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sites.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    site_category_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("site_categories.id", ondelete="SET NULL"),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    site: Mapped[Site] = relationship(back_populates="services")
    site_category: Mapped[SiteCategory | None] = relationship(
        back_populates="services"
    )


__all__ = ["Service"]
