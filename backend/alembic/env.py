import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from app import models  # noqa: F401
from app.core.config import get_settings
from app.db.base import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")
target_metadata = Base.metadata


def _resolve_sqlalchemy_url() -> tuple[str, str]:
    explicit_url = config.attributes.get("connection_url")
    if explicit_url:
        return str(explicit_url), "config.attributes.connection_url"
    configured = config.get_main_option("sqlalchemy.url")
    if configured:
        return configured, "alembic.ini sqlalchemy.url"
    env_dsn = os.getenv("POSTGRES_DSN", "").strip()
    if env_dsn:
        return env_dsn, "env.POSTGRES_DSN"
    return get_settings().postgres_dsn, "settings.postgres_dsn"


def _configure_options(url: str) -> dict:
    # SQLite needs batch mode for ALTER TABLE in later revisions.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
    }


resolved_url, url_source = _resolve_sqlalchemy_url()
config.set_main_option("sqlalchemy.url", resolved_url)
logger.info("okr catalog migrations url source=%s backend=%s", url_source, make_url(resolved_url).get_backend_name())


def run_migrations_offline() -> None:
    context.configure(url=resolved_url, literal_binds=True, **_configure_options(resolved_url))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_options(resolved_url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
