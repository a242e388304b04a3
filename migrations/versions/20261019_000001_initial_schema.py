from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    platform_enum = sa.Enum("youtube", "meta", "tiktok", "user_upload", "auto_ingested", "user_url", name="platform")
    source_type_enum = sa.Enum("auto_ingested", "user_upload", "user_url", name="sourcetype")
    job_type_enum = sa.Enum("REPOST", "REFRESH", name="adjobtype")

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
    )

    op.create_table(
        "ads",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("platform", platform_enum, nullable=False),
        sa.Column("industry", sa.String(length=128), nullable=True),
        sa.Column("hook_type", sa.String(length=128), nullable=True),
        sa.Column("cta_type", sa.String(length=128), nullable=True),
        sa.Column("source_url", sa.String(length=2048), nullable=False),
        sa.Column("source_type", source_type_enum, nullable=False),
        sa.Column("original_owner", sa.String(length=128), nullable=True),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("thumbnail", sa.String(length=2048), nullable=True),
        sa.Column("duration_sec", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ads_source_url", "ads", ["source_url"])
    op.create_index("ix_ads_published_created_at", "ads", ["published", "created_at"])

    op.create_table(
        "ad_tags",
        sa.Column("ad_id", sa.String(length=32), sa.ForeignKey("ads.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.Integer(), sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "ad_uploads",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("storage_path", sa.String(length=2048), nullable=False),
        sa.Column("filename", sa.String(length=512), nullable=True),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("duration_sec", sa.Integer(), nullable=True),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("remote", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ad_uploads_processed_created_at", "ad_uploads", ["processed", "created_at"])

    op.create_table(
        "ad_jobs",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("ad_id", sa.String(length=32), sa.ForeignKey("ads.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", job_type_enum, nullable=False),
        sa.Column("interval_min", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ad_jobs_ad_id_type", "ad_jobs", ["ad_id", "type"])


def downgrade() -> None:
    op.drop_index("ix_ad_jobs_ad_id_type", table_name="ad_jobs")
    op.drop_table("ad_jobs")
    op.drop_index("ix_ad_uploads_processed_created_at", table_name="ad_uploads")
    op.drop_table("ad_uploads")
    op.drop_table("ad_tags")
    op.drop_index("ix_ads_published_created_at", table_name="ads")
    op.drop_index("ix_ads_source_url", table_name="ads")
    op.drop_table("ads")
    op.drop_table("tags")

    sa.Enum(name="adjobtype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="sourcetype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="platform").drop(op.get_bind(), checkfirst=True)
