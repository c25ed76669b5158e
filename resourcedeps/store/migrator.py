"""Database Migration System

Detects and applies pending migration files.
File naming: schema_vNN_<name>.sql (NN is a two-digit version number)

Properties:
1. Pending migrations are detected automatically
2. Applied in version order
3. Idempotent DDL (IF NOT EXISTS)
4. One transaction per migration file
5. Versions tracked in the schema_version table
"""

import logging
import re
import sqlite3
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

MIGRATION_PATTERN = re.compile(r"schema_v(\d+)(?:_[a-z0-9_]+)?\.sql")


class MigrationError(Exception):
    """Raised when a migration fails to apply"""
    pass


class Migrator:
    """Schema migration manager"""

    def __init__(self, db_path: Path, migrations_dir: Path):
        """
        Args:
            db_path: SQLite database file
            migrations_dir: Directory holding schema_vNN_*.sql files
        """
        self.db_path = Path(db_path)
        self.migrations_dir = Path(migrations_dir)

    def _ensure_version_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()

    def get_current_version(self, conn: sqlite3.Connection) -> int:
        """Highest applied version, 0 for a fresh database"""
        try:
            row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        except sqlite3.OperationalError:
            return 0
        return row[0] or 0

    def get_available_migrations(self) -> List[Tuple[int, Path]]:
        """All migration files as (version, path), sorted by version"""
        migrations = []
        for sql_file in self.migrations_dir.glob("schema_v*.sql"):
            match = MIGRATION_PATTERN.fullmatch(sql_file.name)
            if match:
                migrations.append((int(match.group(1)), sql_file))
        migrations.sort(key=lambda x: x[0])
        return migrations

    def get_pending_migrations(self, conn: sqlite3.Connection) -> List[Tuple[int, Path]]:
        current_version = self.get_current_version(conn)
        all_migrations = self.get_available_migrations()
        pending = [(v, p) for v, p in all_migrations if v > current_version]

        logger.debug(
            f"Current version: v{current_version:02d}, "
            f"available: {len(all_migrations)}, pending: {len(pending)}"
        )
        return pending

    def execute_migration(self, conn: sqlite3.Connection, version: int, migration_file: Path) -> None:
        """Apply one migration file and record its version

        Raises:
            MigrationError: The script failed; the database is rolled back
        """
        logger.info(f"Executing migration v{version:02d}: {migration_file.name}")

        migration_sql = migration_file.read_text(encoding="utf-8")
        try:
            conn.executescript(f"BEGIN;\n{migration_sql}\n")
            conn.execute(
                "INSERT INTO schema_version (version, name) VALUES (?, ?)",
                (version, migration_file.stem),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            error_msg = f"Migration v{version:02d} failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise MigrationError(error_msg) from e

        logger.info(f"Migration v{version:02d} completed")

    def migrate(self) -> int:
        """Apply all pending migrations

        Returns:
            Number of migrations applied
        """
        if not self.db_path.exists():
            raise MigrationError(f"Database not found: {self.db_path}. Run init_db() first.")

        conn = sqlite3.connect(str(self.db_path))
        try:
            self._ensure_version_table(conn)
            pending = self.get_pending_migrations(conn)
            if not pending:
                return 0

            for version, migration_file in pending:
                self.execute_migration(conn, version, migration_file)

            logger.info(f"Applied {len(pending)} migrations")
            return len(pending)
        finally:
            conn.close()

    def status(self) -> dict:
        """Migration status summary"""
        if not self.db_path.exists():
            return {
                "current_version": 0,
                "latest_version": 0,
                "pending_count": 0,
                "applied_migrations": [],
                "pending_migrations": [],
                "error": "Database not found",
            }

        conn = sqlite3.connect(str(self.db_path))
        try:
            self._ensure_version_table(conn)
            current_version = self.get_current_version(conn)
            all_migrations = self.get_available_migrations()
            pending = self.get_pending_migrations(conn)

            return {
                "current_version": current_version,
                "latest_version": all_migrations[-1][0] if all_migrations else 0,
                "pending_count": len(pending),
                "applied_migrations": [f"v{v:02d}" for v, _ in all_migrations if v <= current_version],
                "pending_migrations": [f"v{v:02d}" for v, _ in pending],
            }
        finally:
            conn.close()


MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def auto_migrate(db_path: Path) -> int:
    """Apply pending migrations from the bundled migrations directory"""
    return Migrator(db_path, MIGRATIONS_DIR).migrate()


def get_migration_status(db_path: Path) -> dict:
    return Migrator(db_path, MIGRATIONS_DIR).status()
