"""
Database initialization and lifecycle for SQLite.

The Database class coordinates the long-lived connection held by
:data:`casekeeper.database.db_connection.db_connection` with schema setup:

- connection: a single aiosqlite connection with WAL pragmas
- schema: table/index creation and version tracking

Lifecycle:
    1. ``await database.initialize()`` at program startup
    2. repositories run through ``db_connection.read()`` / ``transaction()``
    3. ``await database.shutdown()`` at program end
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from casekeeper.configuration.app_configuration import app_config
from casekeeper.database.db_connection import ConnectionManager, db_connection
from casekeeper.database.db_schema import SchemaManager
from casekeeper.util.logger import get_logger

logger = get_logger("database")


class Database:
    """Central coordinator for opening, migrating and closing the store."""

    def __init__(self, connection: ConnectionManager = db_connection, db_path: Optional[Path] = None):
        """
        Args:
            connection: Connection manager shared by every repository.
            db_path: Path to the SQLite file; defaults to ``database.path`` from the app config.
        """
        self.connection = connection
        self.db_path = db_path
        self._initialized = False

    async def initialize(self) -> bool:
        """
        Open the connection and create the schema.

        Returns:
            True if initialization succeeded, False otherwise
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return True

        path = self.db_path or app_config.database_path
        try:
            await self.connection.open(path)
            await SchemaManager.initialize_schema(self.connection.connection)
        except Exception as e:
            logger.error("[DATABASE] Database initialization failed: %s", e)
            await self.connection.close()
            return False

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", path)
        return True

    async def shutdown(self) -> None:
        """Close the connection if it was opened by :meth:`initialize`."""
        if not self._initialized:
            return

        await self.connection.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")


# Global Database instance
database = Database()


def get_db() -> Database:
    """Return the global Database instance."""
    return database
