"""Tests for the schema migrator and the write transaction helper"""

import sqlite3

import pytest

from resourcedeps.store import connect, get_db, get_migration_status, init_db, write_transaction
from resourcedeps.store.migrator import MigrationError, Migrator


def test_init_applies_all_migrations(tmp_path):
    path = init_db(tmp_path / "fresh.sqlite")

    status = get_migration_status(path)
    assert status["current_version"] == status["latest_version"] == 2
    assert status["pending_count"] == 0
    assert status["applied_migrations"] == ["v01", "v02"]


def test_init_twice_is_a_noop(tmp_path):
    path = init_db(tmp_path / "fresh.sqlite")
    init_db(path)
    assert get_migration_status(path)["current_version"] == 2


def test_pending_migration_applied_in_order(tmp_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "schema_v02_second.sql").write_text("CREATE TABLE second (id TEXT);\n")
    (migrations / "schema_v01_first.sql").write_text("CREATE TABLE first (id TEXT);\n")
    (migrations / "notes.sql").write_text("not a migration")
    db_file = tmp_path / "custom.sqlite"
    sqlite3.connect(str(db_file)).close()

    migrator = Migrator(db_file, migrations)
    assert [v for v, _ in migrator.get_available_migrations()] == [1, 2]
    assert migrator.migrate() == 2
    assert migrator.migrate() == 0


def test_failed_migration_rolls_back(tmp_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "schema_v01_broken.sql").write_text(
        "CREATE TABLE ok_table (id TEXT);\nTHIS IS NOT SQL;\n"
    )
    db_file = tmp_path / "broken.sqlite"
    sqlite3.connect(str(db_file)).close()

    with pytest.raises(MigrationError):
        Migrator(db_file, migrations).migrate()

    conn = sqlite3.connect(str(db_file))
    try:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()
    assert "ok_table" not in tables


def test_missing_database_rejected(tmp_path):
    with pytest.raises(MigrationError):
        Migrator(tmp_path / "absent.sqlite", tmp_path).migrate()
    with pytest.raises(FileNotFoundError):
        get_db(tmp_path / "absent.sqlite")


def test_connection_pragmas(db_path):
    conn = connect(db_path)
    try:
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
    finally:
        conn.close()


def test_write_transaction_rolls_back_on_error(conn):
    with pytest.raises(RuntimeError):
        with write_transaction(conn):
            conn.execute(
                "INSERT INTO resources (id, name, slug, owner_user_id, created_at) "
                "VALUES ('r1', 'R', 'r', 'u', '2026-01-01T00:00:00Z')"
            )
            raise RuntimeError("boom")

    assert conn.execute("SELECT COUNT(*) FROM resources").fetchone()[0] == 0
    assert not conn.in_transaction
