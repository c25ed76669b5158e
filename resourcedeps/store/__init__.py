"""Store module - SQLite database management"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from .migrator import MigrationError, auto_migrate, get_migration_status

logger = logging.getLogger(__name__)

__all__ = [
    "get_db",
    "get_db_path",
    "connect",
    "init_db",
    "ensure_migrations",
    "get_migration_status",
    "write_transaction",
    "MigrationError",
]


def get_db_path() -> Path:
    """Database path from settings (RESOURCEDEPS_DB_PATH wins)"""
    from resourcedeps.config import load_settings

    return Path(load_settings().db_path)


def connect(db_path: Union[str, Path], busy_timeout_ms: int = 5000) -> sqlite3.Connection:
    """
    Open a connection configured for resourcedeps

    The connection is in autocommit mode: writes go through
    write_transaction(), which opens explicit transactions.
    """
    conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    # Enable foreign keys for CASCADE support
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    # Wait for the write lock instead of failing immediately
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")

    return conn


def get_db(db_path: Optional[Union[str, Path]] = None, busy_timeout_ms: Optional[int] = None) -> sqlite3.Connection:
    """
    Get database connection

    Applies pending migrations first so the schema is always current.

    Raises:
        FileNotFoundError: Database not initialized
    """
    from resourcedeps.config import load_settings

    settings = load_settings()
    path = Path(db_path) if db_path else Path(settings.db_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Database not initialized. Run 'resourcedeps init' first. Expected: {path}"
        )

    ensure_migrations(path)
    timeout = busy_timeout_ms if busy_timeout_ms is not None else settings.busy_timeout_ms
    return connect(path, busy_timeout_ms=timeout)


def init_db(db_path: Optional[Union[str, Path]] = None) -> Path:
    """
    Initialize database and apply all migrations

    Safe to call on an existing database: only pending migrations run.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists():
        logger.info(f"Database already exists: {path}")
    else:
        logger.info(f"Creating new database: {path}")
        conn = sqlite3.connect(str(path))
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.commit()
        finally:
            conn.close()

    migrated = ensure_migrations(path)
    if migrated > 0:
        logger.info(f"Applied {migrated} migrations, database is ready")
    return path


def ensure_migrations(db_path: Optional[Path] = None) -> int:
    """
    Apply pending migrations

    Returns:
        Number of migrations applied

    Raises:
        MigrationError: A migration failed
    """
    if db_path is None:
        db_path = get_db_path()

    if not Path(db_path).exists():
        logger.warning(f"Database not found: {db_path}, skipping migrations")
        return 0

    try:
        return auto_migrate(Path(db_path))
    except MigrationError:
        logger.error(f"Migration failed for {db_path}", exc_info=True)
        raise


@contextmanager
def write_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run a block inside BEGIN IMMEDIATE ... COMMIT

    BEGIN IMMEDIATE takes the database write lock up front, so reads done
    inside the block (validation, cycle checks) cannot be invalidated by a
    concurrent writer before the block commits. Any exception rolls back.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()
