"""create site tables

Revision ID: 20260301_0001
Revises:
Create Date: 2026-03-01 09:00:00

"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "20260301_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

SITE_STATUS_VALUES = ("pending", "building", "active", "paused", "failed")
WEBSITE_TYPE_VALUES = ("single_location", "multi_location")
PAGE_TYPE_VALUES = ("home", "about", "contact", "category")


def _generated_content_columns() -> list[sa.Column[object]]:
    return [
        sa.Column("meta_title", sa.String(length=255), nullable=True),
        sa.Column("meta_description", sa.String(length=512), nullable=True),
        sa.Column("h1", sa.String(length=255), nullable=True),
        sa.Column("h2", sa.String(length=255), nullable=True),
        sa.Column("intro_copy", sa.Text(), nullable=True),
        sa.Column("body_copy", sa.Text(), nullable=True),
        sa.Column("problems", sa.JSON(), nullable=True),
        sa.Column("detailed_sections", sa.JSON(), nullable=True),
        sa.Column("faqs", sa.JSON(), nullable=True),
        sa.Column(
            "content_generated_at", sa.DateTime(timezone=True), nullable=True
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "sites",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column(
            "website_type",
            sa.Enum(*WEBSITE_TYPE_VALUES, name="website_type"),
            nullable=False,
            server_default="single_location",
        ),
        sa.Column(
            "status",
            sa.Enum(*SITE_STATUS_VALUES, name="site_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("build_progress", sa.JSON(), nullable=True),
        sa.Column("status_message", sa.String(length=2048), nullable=True),
        sa.Column(
            "status_updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("gbp_account_name", sa.String(length=255), nullable=True),
        sa.Column("gbp_location_name", sa.String(length=255), nullable=True),
        sa.Column("gbp_access_token", sa.String(length=2048), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_sites_slug", "sites", ["slug"], unique=True)
    op.create_index(
        "ix_sites_status_status_updated_at",
        "sites",
        ["status", "status_updated_at"],
    )

    op.create_table(
        "gbp_categories",
        sa.Column("gcid", sa.String(length=255), primary_key=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
    )

    op.create_table(
        "locations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "site_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("city", sa.String(length=255), nullable=False),
        sa.Column("state", sa.String(length=64), nullable=False),
        sa.Column(
            "is_primary", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_locations_site_id", "locations", ["site_id"])

    op.create_table(
        "site_categories",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "site_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "gbp_category_id",
            sa.String(length=255),
            sa.ForeignKey("gbp_categories.gcid", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "is_primary", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "site_id", "gbp_category_id", name="uq_site_categories_site_gbp"
        ),
    )
    op.create_index("ix_site_categories_site_id", "site_categories", ["site_id"])

    op.create_table(
        "services",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "site_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "site_category_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("site_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        *_generated_content_columns(),
        sa.UniqueConstraint("site_id", "slug", name="uq_services_site_id_slug"),
    )
    op.create_index("ix_services_site_id", "services", ["site_id"])

    op.create_table(
        "service_areas",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "site_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("state", sa.String(length=64), nullable=True),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column(
            "sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        *_generated_content_columns(),
        sa.UniqueConstraint("site_id", "slug", name="uq_service_areas_site_id_slug"),
    )
    op.create_index("ix_service_areas_site_id", "service_areas", ["site_id"])

    op.create_table(
        "site_pages",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "site_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "site_category_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("site_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "page_type",
            sa.Enum(*PAGE_TYPE_VALUES, name="page_type"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("meta_title", sa.String(length=255), nullable=False),
        sa.Column("meta_description", sa.String(length=512), nullable=False),
        sa.Column("h1", sa.String(length=255), nullable=False),
        sa.Column("h2", sa.String(length=255), nullable=True),
        sa.Column("hero_description", sa.Text(), nullable=True),
        sa.Column("body_copy", sa.Text(), nullable=False),
        sa.Column("body_copy_2", sa.Text(), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("site_id", "slug", name="uq_site_pages_site_id_slug"),
    )

    op.create_table(
        "site_reviews",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "site_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("review_id", sa.String(length=255), nullable=False),
        sa.Column("reviewer_name", sa.String(length=255), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("review_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_visible", sa.Boolean(), nullable=False, server_default=sa.text("1")
        ),
        sa.Column(
            "imported_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("site_id", "review_id", name="uq_site_reviews_site_review"),
    )
    op.create_index(
        "ix_site_reviews_site_id_rating", "site_reviews", ["site_id", "rating"]
    )


def downgrade() -> None:
    op.drop_index("ix_site_reviews_site_id_rating", table_name="site_reviews")
    op.drop_table("site_reviews")
    op.drop_table("site_pages")
    op.drop_index("ix_service_areas_site_id", table_name="service_areas")
    op.drop_table("service_areas")
    op.drop_index("ix_services_site_id", table_name="services")
    op.drop_table("services")
    op.drop_index("ix_site_categories_site_id", table_name="site_categories")
    op.drop_table("site_categories")
    op.drop_index("ix_locations_site_id", table_name="locations")
    op.drop_table("locations")
    op.drop_table("gbp_categories")
    op.drop_index("ix_sites_status_status_updated_at", table_name="sites")
    op.drop_index("ix_sites_slug", table_name="sites")
    op.drop_table("sites")
