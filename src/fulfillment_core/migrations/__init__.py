"""
Schema migrations.

Revisions live in versions/ and are applied in revision order, each in its
own transaction, recorded in the schema_migrations table.
"""

import logging

from alembic import command
from alembic.config import Config

from kitchen_base.settings import get_settings

logger = logging.getLogger(__name__)

SCRIPT_LOCATION = "fulfillment_core:migrations"


def alembic_config(database_url: str | None = None) -> Config:
    config = Config()
    config.set_main_option("script_location", SCRIPT_LOCATION)
    url = database_url or get_settings().DATABASE_URL
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def run_migrations(database_url: str | None = None, revision: str = "head") -> None:
    """Upgrade the database to the given revision (default: latest)."""
    logger.info(f"Applying migrations up to {revision}")
    command.upgrade(alembic_config(database_url), revision)
    logger.info("Migrations applied")
