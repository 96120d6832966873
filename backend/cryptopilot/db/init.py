"""Database schema initialization helpers."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from cryptopilot.db.session import Database

logger = logging.getLogger(__name__)


async def init_database(database: Database) -> None:
    """Ensure all database tables exist for the running application."""

    try:
        await database.create_all()
    except SQLAlchemyError:
        logger.exception("Failed to initialise database schema")
        raise
    logger.info("Database schema ready (%s)", database.dialect)


__all__ = ["init_database"]
