# alembic/env.py
import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# project root on sys.path so `pdfpipe` imports when alembic runs from anywhere
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from pdfpipe.config import settings  # noqa: E402
from pdfpipe.models import Base  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def sync_url(url: str) -> str:
    """Alembic runs on blocking drivers: asyncpg -> psycopg2, aiosqlite -> pysqlite."""
    return url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


# DATABASE_URL (environment or .env) wins over alembic.ini
config.set_main_option("sqlalchemy.url", sync_url(settings.database_url or config.get_main_option("sqlalchemy.url")))


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_offline() -> None:
    """Render the migration SQL without a database connection (`alembic upgrade --sql`)."""
    _configure(url=config.get_main_option("sqlalchemy.url"), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        # sqlite needs batch mode to alter tables
        _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
