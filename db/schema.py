"""Schema versioning for the category database.

Migrations are numbered SQL files in db/migrations, such as
``001_create_categories.sql``. The number of the last file applied is kept
in SQLite's ``user_version`` pragma, so the schema version travels with the
database file and needs no bookkeeping table.
"""

import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from logger import get_logger

logger = get_logger("schema")

_MIGRATION_NAME = re.compile(r"^(\d+)_(\w+)\.sql$")


@dataclass(frozen=True)
class Migration:
    """One numbered schema change."""

    version: int
    name: str
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name


def list_migrations(migrations_dir: Path) -> List[Migration]:
    """Return the migrations found in migrations_dir, oldest first.

    Args:
        migrations_dir: Directory holding ``NNN_name.sql`` files.

    Returns:
        Migrations ordered by version. Empty if the directory is missing.

    Raises:
        ValueError: If a file has no version prefix or two files share one.
    """
    if not migrations_dir.exists():
        return []

    migrations = []
    for path in migrations_dir.glob("*.sql"):
        match = _MIGRATION_NAME.match(path.name)
        if match is None:
            raise ValueError(f"Migration file without a version prefix: {path.name}")
        migrations.append(Migration(int(match.group(1)), match.group(2), path))

    migrations.sort(key=lambda migration: migration.version)
    for previous, current in zip(migrations, migrations[1:]):
        if previous.version == current.version:
            raise ValueError(
                f"Migrations {previous.filename} and {current.filename} "
                f"share version {current.version}"
            )
    return migrations


def schema_version(conn: sqlite3.Connection) -> int:
    """Version of the last migration applied to this database (0 if none)."""
    return conn.execute("PRAGMA user_version").fetchone()[0]


def pending_migrations(conn: sqlite3.Connection, migrations_dir: Path) -> List[Migration]:
    current = schema_version(conn)
    return [m for m in list_migrations(migrations_dir) if m.version > current]


def apply_migrations(
    conn: sqlite3.Connection, migrations_dir: Path, target: Optional[int] = None
) -> List[Migration]:
    """Apply pending migrations, up to and including target.

    Each file runs in one transaction together with its version bump, so a
    failing migration leaves the database at the previous version.

    Args:
        conn: Connection to migrate.
        migrations_dir: Directory holding the migration files.
        target: Highest version to apply. None applies everything.

    Returns:
        The migrations that were applied.
    """
    applied = []
    for migration in pending_migrations(conn, migrations_dir):
        if target is not None and migration.version > target:
            break

        sql = migration.path.read_text()
        try:
            conn.executescript(
                f"BEGIN;\n{sql}\nPRAGMA user_version = {migration.version};\nCOMMIT;"
            )
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            logger.error(f"Migration {migration.filename} failed: {e}")
            raise

        logger.info(f"Applied migration {migration.filename}")
        applied.append(migration)
    return applied
