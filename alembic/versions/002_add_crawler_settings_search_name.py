"""add search_name to crawler_settings

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

search_name: accent-folded lowercase name, matched by the list `search` filter.
Existing rows are backfilled from name.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from cinecrawl.core.text import fold_diacritics

revision: str = "002"
down_revision: Union[str, Sequence[str], None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "crawler_settings",
        sa.Column("search_name", sa.String(255), nullable=False, server_default=""),
    )
    conn = op.get_bind()
    table = sa.table(
        "crawler_settings",
        sa.column("id", sa.String),
        sa.column("name", sa.String),
        sa.column("search_name", sa.String),
    )
    for row_id, name in conn.execute(sa.select(table.c.id, table.c.name)).all():
        folded = fold_diacritics(name)[:255]
        conn.execute(table.update().where(table.c.id == row_id).values(search_name=folded))
    op.alter_column("crawler_settings", "search_name", server_default=None)


def downgrade() -> None:
    op.drop_column("crawler_settings", "search_name")
