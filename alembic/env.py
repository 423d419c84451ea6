"""Migration runner. Always the sync psycopg (v3) driver, whatever driver DATABASE_URL names."""

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from cinecrawl.core.config import settings
from cinecrawl.core.database_sync import sync_database_url
from cinecrawl.models import Base

# Server messages decoded as UTF-8 regardless of the host locale.
os.environ.setdefault("PGCLIENTENCODING", "UTF8")

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def migration_url() -> str:
    if not settings.database_url:
        raise ValueError("DATABASE_URL not set. Set it in .env or the environment.")
    return sync_database_url(settings.database_url)


def run_migrations_offline() -> None:
    """Emit SQL without connecting."""
    context.configure(
        url=migration_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(migration_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, target_metadata=target_metadata)
            with context.begin_transaction():
                context.run_migrations()
    except Exception as e:
        # An exported DATABASE_URL wins over .env; the message shows which host was tried.
        url = engine.url.render_as_string(hide_password=True)
        sys.stderr.write(f"[alembic] migration against {url} failed: {type(e).__name__}: {e}\n")
        raise
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
