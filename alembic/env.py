"""Alembic environment.

Migrates the credentials store by default. Run with ``-x store=billing``
to migrate a separately hosted billing store (BILLING_DATABASE_URL).
"""

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from akadeo import models  # noqa: F401
from akadeo.config import get_settings
from akadeo.database import Base, tables_for_store
from alembic import context

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = get_settings()
store = context.get_x_argument(as_dictionary=True).get("store", "credentials")
owned_tables = tables_for_store(settings, store)

if store == "billing":
    config.set_main_option("sqlalchemy.url", settings.resolved_billing_database_url)
else:
    config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = Base.metadata


def include_object(obj, name, type_, reflected, compare_to):
    if type_ == "table":
        return name in owned_tables
    return True


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
