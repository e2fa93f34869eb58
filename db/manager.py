"""SQLite connections for the category database."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import List

from config import Config, get_migrations_dir
from db.schema import Migration, apply_migrations

# Seconds a writer waits on a locked database before StoreUnavailableError
BUSY_TIMEOUT = 5.0


class DatabaseManager:
    """Opens connections to the category database named by the config.

    Every connection is short-lived: services open one per operation, so
    coordinators in different threads never share a connection.

    Args:
        config: Application configuration object.
    """

    def __init__(self, config: Config):
        self.config = config

    @contextmanager
    def connect(self):
        """Open a connection, closing it when the block exits.

        Yields:
            sqlite3.Connection: Database connection.
        """
        self.config.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.config.db_path, timeout=BUSY_TIMEOUT)
        try:
            yield conn
        finally:
            conn.close()

    def get_db_path(self) -> Path:
        return self.config.db_path

    def get_migrations_dir(self) -> Path:
        return get_migrations_dir()

    def initialize(self) -> List[Migration]:
        """Create or upgrade the schema to the latest version.

        Returns:
            The migrations applied, empty if the database was current.
        """
        with self.connect() as conn:
            return apply_migrations(conn, self.get_migrations_dir())
