"""Alembic environment for the badge store.

The database URL comes from DATABASE_URL (via env_config) so credentials
never live in alembic.ini.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from env_config import get_database_url

DATABASE_URL = get_database_url()

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Tables are plain JSONB key/value spaces; there are no ORM models to diff
target_metadata = None


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations against DATABASE_URL."""
    connectable = engine_from_config(
        {"sqlalchemy.url": DATABASE_URL},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
