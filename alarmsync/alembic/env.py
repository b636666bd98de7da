import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# add project root directory to Python path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# import all models so autogenerate sees them
from alarmsync.models import Base  # noqa: E402

target_metadata = Base.metadata


def get_database_url():
    """Target (complaint) database URL, from DATABASE_URL or alembic.ini."""
    url = os.getenv('DATABASE_URL') or config.get_main_option("sqlalchemy.url")
    if not url:
        raise ValueError("Missing required environment variable: DATABASE_URL")
    return url


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
