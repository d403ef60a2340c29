"""Google Business Profile category taxonomy and site category links."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from site_builder.models.base import Base

if TYPE_CHECKING:
    from site_builder.models.service import Service
    from site_builder.models.site import Site


class GbpCategory(Base):
    """Category entry from the Google Business Profile taxonomy."""

    __tablename__ = "gbp_categories"

    gcid: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)


class SiteCategory(Base):
    """Business category selected for a site."""

    __tablename__ = "site_categories"
    __table_args__ = (
        UniqueConstraint(
            "site_id", "gbp_category_id", name="uq_site_categories_site_gbp"
        ),
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
    gbp_category_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("gbp_categories.gcid", ondelete="RESTRICT"),
        nullable=False,
    )
    is_primary: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("0"),
    )
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

    site: Mapped[Site] = relationship(back_populates="categories")
    gbp_category: Mapped[GbpCategory] = relationship(lazy="joined")
    services: Mapped[list[Service]] = relationship(back_populates="site_category")

    @property
    def display_name(self) -> str:
        return self.gbp_category.display_name


__all__ = ["GbpCategory", "SiteCategory"]
