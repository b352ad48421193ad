# ruff: noqa: I001
"""
Alembic environment for the ``ledger_db`` schema.

``DATABASE_URL`` (optionally from the nearest ``.env``) wins over
``sqlalchemy.url`` in ``alembic.ini``. SQLite runs in batch mode so later
migrations can alter tables.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from dotenv import find_dotenv, load_dotenv

import ledger_db
from ledger_db.client import resolve_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# usecwd=True finds the workspace .env from the repo root or from libs/ledger_db
dotenv_path = find_dotenv(usecwd=True)
if dotenv_path:
    load_dotenv(dotenv_path=dotenv_path, override=False)

try:
    db_url = resolve_database_url()
except RuntimeError:
    db_url = config.get_main_option("sqlalchemy.url") or ""
    if not db_url:
        raise
config.set_section_option(config.config_ini_section, "sqlalchemy.url", db_url)

target_metadata = ledger_db.metadata


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit SQL for ``db_url`` without connecting."""
    _configure(url=db_url, literal_binds=True)


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(
            connection=connection,
            render_as_batch=connection.dialect.name == "sqlite",
        )


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
