"""crawler_settings, crawl_runs, movies

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "crawler_settings",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("host", sa.String(2048), nullable=False),
        sa.Column("img_host", sa.String(2048), nullable=True),
        sa.Column("cron_schedule", sa.String(255), nullable=False, server_default="0 0 * * *"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("force_update", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("rate_limit_delay", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("max_concurrent_requests", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("max_continuous_skips", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("max_retries >= 0", name="ck_crawler_settings_max_retries"),
        sa.CheckConstraint("rate_limit_delay >= 0", name="ck_crawler_settings_rate_limit_delay"),
        sa.CheckConstraint(
            "max_concurrent_requests >= 1", name="ck_crawler_settings_max_concurrent_requests"
        ),
        sa.CheckConstraint(
            "max_continuous_skips >= 0", name="ck_crawler_settings_max_continuous_skips"
        ),
    )
    op.create_index("ix_crawler_settings_name", "crawler_settings", ["name"], unique=True)
    op.create_index(
        "ix_crawler_settings_updated_at_id", "crawler_settings", ["updated_at", "id"], unique=False
    )

    op.create_table(
        "crawl_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("crawler_name", sa.String(255), nullable=False),
        sa.Column("celery_task_id", sa.String(255), nullable=False),
        sa.Column("mode", sa.String(16), nullable=False, server_default="full"),
        sa.Column("slug", sa.String(512), nullable=True),
        sa.Column("trigger_source", sa.String(16), nullable=False, server_default="manual"),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("queued_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("items_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("celery_task_id", name="uq_crawl_runs_celery_task_id"),
    )
    op.create_index("ix_crawl_runs_crawler_name", "crawl_runs", ["crawler_name"], unique=False)
    op.create_index("ix_crawl_runs_queued_at", "crawl_runs", ["queued_at"], unique=False)

    op.create_table(
        "movies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("slug", sa.String(512), nullable=False),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("origin_name", sa.String(512), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("thumb_url", sa.String(2048), nullable=True),
        sa.Column("poster_url", sa.String(2048), nullable=True),
        sa.Column("source", sa.String(255), nullable=False),
        sa.Column("source_modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_movies_slug", "movies", ["slug"], unique=True)
    op.create_index("ix_movies_source", "movies", ["source"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_movies_source", table_name="movies")
    op.drop_index("ix_movies_slug", table_name="movies")
    op.drop_table("movies")
    op.drop_index("ix_crawl_runs_queued_at", table_name="crawl_runs")
    op.drop_index("ix_crawl_runs_crawler_name", table_name="crawl_runs")
    op.drop_table("crawl_runs")
    op.drop_index("ix_crawler_settings_updated_at_id", table_name="crawler_settings")
    op.drop_index("ix_crawler_settings_name", table_name="crawler_settings")
    op.drop_table("crawler_settings")
