"""Tests for the database module."""

import sqlite3
from pathlib import Path

import pytest

from ticketport.db import Database, SCHEMA_VERSION
from ticketport.db.schema import get_migration_sql


class TestDatabase:
    """Tests for Database class."""

    def test_database_creation(self, tmp_path: Path):
        """Test database is created with every transfer table."""
        db_path = tmp_path / "test.db"
        db = Database(db_path)

        assert db_path.exists()

        with db.connection() as conn:
            tables = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
            ).fetchall()
            table_names = [t["name"] for t in tables]

        for name in (
            "projects",
            "epics",
            "tickets",
            "ticket_comments",
            "review_findings",
            "demo_scripts",
            "ticket_workflow_state",
            "epic_workflow_state",
            "schema_version",
        ):
            assert name in table_names

    def test_schema_version_tracking(self, tmp_path: Path):
        db = Database(tmp_path / "test.db")
        assert db.get_version() == SCHEMA_VERSION

    def test_reopen_does_not_remigrate(self, tmp_path: Path):
        db_path = tmp_path / "test.db"
        Database(db_path)
        db = Database(db_path)

        with db.connection() as conn:
            versions = [r[0] for r in conn.execute("SELECT version FROM schema_version ORDER BY version")]
        assert versions == list(range(1, SCHEMA_VERSION + 1))

    def test_transaction_commit(self, tmp_path: Path):
        """Test transaction commits on success."""
        db = Database(tmp_path / "test.db")

        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO projects (id, name, path) VALUES (?, ?, ?)",
                ("test-id", "Test Project", "/test/path"),
            )

        with db.connection() as conn:
            row = conn.execute(
                "SELECT name FROM projects WHERE id = ?", ("test-id",)
            ).fetchone()
            assert row["name"] == "Test Project"

    def test_transaction_rollback_on_error(self, tmp_path: Path):
        """Test transaction rolls back on exception."""
        db = Database(tmp_path / "test.db")

        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO projects (id, name, path) VALUES (?, ?, ?)",
                ("existing-id", "Existing", "/existing/path"),
            )

        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction() as conn:
                conn.execute(
                    "UPDATE projects SET name = ? WHERE id = ?",
                    ("Renamed", "existing-id"),
                )
                conn.execute(
                    "INSERT INTO projects (id, name, path) VALUES (?, ?, ?)",
                    ("existing-id", "Duplicate", "/duplicate/path"),
                )

        with db.connection() as conn:
            row = conn.execute(
                "SELECT name FROM projects WHERE id = ?", ("existing-id",)
            ).fetchone()
            assert row["name"] == "Existing"

    def test_directory_creation(self, tmp_path: Path):
        """Test database directory is created if it doesn't exist."""
        nested_path = tmp_path / "nested" / "dir" / "test.db"
        Database(nested_path)

        assert nested_path.parent.exists()
        assert nested_path.exists()

    def test_foreign_keys_cascade_ticket_dependents(self, tmp_path: Path):
        db = Database(tmp_path / "test.db")

        with db.transaction() as conn:
            conn.execute("INSERT INTO projects (id, name, path) VALUES ('p', 'P', '/p')")
            conn.execute("INSERT INTO tickets (id, title, project_id) VALUES ('t', 'T', 'p')")
            conn.execute(
                "INSERT INTO ticket_comments (id, ticket_id, content) VALUES ('c', 't', 'hi')"
            )

        with db.transaction() as conn:
            conn.execute("DELETE FROM tickets WHERE id = 't'")

        with db.connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM ticket_comments").fetchone()[0]
        assert count == 0

    def test_immediate_transaction_holds_write_lock(self, tmp_path: Path):
        db = Database(tmp_path / "test.db")

        with db.transaction(immediate=True) as conn:
            conn.execute("INSERT INTO projects (id, name, path) VALUES ('p', 'P', '/p')")
            other = sqlite3.connect(str(db.db_path), timeout=0)
            try:
                with pytest.raises(sqlite3.OperationalError, match="locked"):
                    other.execute("BEGIN IMMEDIATE")
            finally:
                other.close()

        with db.connection() as conn:
            assert conn.execute("SELECT COUNT(*) FROM projects").fetchone()[0] == 1

    def test_immediate_transaction_rolls_back(self, tmp_path: Path):
        db = Database(tmp_path / "test.db")

        with pytest.raises(RuntimeError):
            with db.transaction(immediate=True) as conn:
                conn.execute("INSERT INTO projects (id, name, path) VALUES ('p', 'P', '/p')")
                raise RuntimeError("abort")

        with db.connection() as conn:
            assert conn.execute("SELECT COUNT(*) FROM projects").fetchone()[0] == 0

    def test_upgrades_v1_store(self, tmp_path: Path):
        db_path = tmp_path / "old.db"
        conn = sqlite3.connect(str(db_path))
        conn.execute("CREATE TABLE schema_version (version INTEGER PRIMARY KEY, applied_at TEXT)")
        conn.executescript(get_migration_sql(0, 1)[0])
        conn.execute("INSERT INTO schema_version (version) VALUES (1)")
        conn.commit()
        conn.close()

        db = Database(db_path)

        assert db.get_version() == SCHEMA_VERSION
        with db.connection() as conn:
            names = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert "review_findings" in names


class TestMigrations:
    def test_fresh_install_runs_all_scripts(self):
        assert len(get_migration_sql(0, SCHEMA_VERSION)) == SCHEMA_VERSION

    def test_up_to_date_runs_nothing(self):
        assert get_migration_sql(SCHEMA_VERSION, SCHEMA_VERSION) == []

    def test_v1_to_v2_adds_workflow_tables(self):
        scripts = get_migration_sql(1, 2)
        assert len(scripts) == 1
        assert "review_findings" in scripts[0]
