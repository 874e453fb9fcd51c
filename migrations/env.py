import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from buildledger import models  # noqa: F401  registers sku, bom_component, inventory_entry
from buildledger.extensions import db
from config import Config

alembic_config = context.config

if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

target_metadata = db.Model.metadata


def _ledger_database_url() -> str:
    """Resolve the URL the ledger tables live in.

    ``sqlalchemy.url = env://NAME`` in alembic.ini reads ``NAME`` from the
    environment; anything else is used verbatim. Without either, fall back to
    the application's own ``SQLALCHEMY_DATABASE_URI``.
    """

    configured = alembic_config.get_main_option("sqlalchemy.url") or ""
    if configured and not configured.startswith("env://"):
        return configured
    env_name = configured.removeprefix("env://") or "DB_URL"
    return os.getenv(env_name) or Config.SQLALCHEMY_DATABASE_URI


def _configure_kwargs(url: str) -> dict:
    # SQLite cannot ALTER constraints in place; batch mode rebuilds the table.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    url = _ledger_database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = _ledger_database_url()
    engine = engine_from_config(
        {"sqlalchemy.url": url},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
