"""Tests for database schema creation and migration."""

import sqlite3

import pytest

from larder.db.schema import _SCHEMA_VERSION, ensure_schema


def test_ensure_schema_creates_tables(tmp_path):
    """Schema creates every table."""
    db_path = tmp_path / "test.db"
    conn = ensure_schema(db_path)

    tables = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    ).fetchall()
    table_names = {row["name"] for row in tables}

    assert {
        "inventory_items",
        "receipts",
        "receipt_items",
        "user_staples",
        "analysis_runs",
        "undo_entries",
        "undo_entry_items",
        "schema_version",
    }.issubset(table_names)

    conn.close()


def test_ensure_schema_creates_parent_dirs(tmp_path):
    """Schema creates parent directories if they don't exist."""
    db_path = tmp_path / "sub" / "dir" / "test.db"
    conn = ensure_schema(db_path)
    assert db_path.exists()
    conn.close()


def test_ensure_schema_sets_version(tmp_path):
    """Schema version is set after creation."""
    conn = ensure_schema(tmp_path / "test.db")
    row = conn.execute("SELECT version FROM schema_version").fetchone()
    assert row["version"] == _SCHEMA_VERSION
    conn.close()


def test_ensure_schema_idempotent(tmp_path):
    """Calling ensure_schema twice doesn't error."""
    db_path = tmp_path / "test.db"
    conn1 = ensure_schema(db_path)
    conn1.close()

    conn2 = ensure_schema(db_path)
    row = conn2.execute("SELECT version FROM schema_version").fetchone()
    assert row["version"] == _SCHEMA_VERSION
    conn2.close()


def test_ensure_schema_wal_mode(tmp_path):
    """Schema sets WAL journal mode."""
    conn = ensure_schema(tmp_path / "test.db")
    mode = conn.execute("PRAGMA journal_mode").fetchone()
    assert mode[0] == "wal"
    conn.close()


def test_inventory_items_columns(tmp_path):
    """inventory_items table has expected columns."""
    conn = ensure_schema(tmp_path / "test.db")

    info = conn.execute("PRAGMA table_info(inventory_items)").fetchall()
    col_names = {row["name"] for row in info}

    expected = {
        "id", "owner_id", "location", "name", "storage_category",
        "nutritional_type", "quantity", "unit", "purchase_date", "expiry_date",
        "freshness", "confidence", "source_import_id", "consumed_at",
        "waste_reason", "created_at", "updated_at",
    }
    assert expected.issubset(col_names)

    conn.close()


def test_user_staples_unique_per_owner(tmp_path):
    """The same normalized name may exist once per owner."""
    conn = ensure_schema(tmp_path / "test.db")
    insert = "INSERT INTO user_staples (owner_id, normalized_name, name) VALUES (?, ?, ?)"
    conn.execute(insert, ("a", "egg", "Eggs"))
    conn.execute(insert, ("b", "egg", "Eggs"))
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(insert, ("a", "egg", "eggs"))
    conn.close()


def test_user_staples_preference_columns(tmp_path):
    """user_staples carries the user's own preference columns."""
    conn = ensure_schema(tmp_path / "test.db")
    info = conn.execute("PRAGMA table_info(user_staples)").fetchall()
    assert {"never_suggest_alternative", "notes"}.issubset({r["name"] for r in info})
    conn.close()


def test_version_one_database_is_migrated(tmp_path):
    """A database from before the preference columns gains them on open."""
    db_path = tmp_path / "test.db"
    old = sqlite3.connect(str(db_path))
    old.executescript(
        """
        CREATE TABLE user_staples (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            normalized_name TEXT NOT NULL,
            name TEXT NOT NULL,
            UNIQUE (owner_id, normalized_name)
        );
        INSERT INTO user_staples (owner_id, normalized_name, name)
            VALUES ('a', 'egg', 'Eggs');
        CREATE TABLE schema_version (version INTEGER NOT NULL);
        INSERT INTO schema_version (version) VALUES (1);
        """
    )
    old.close()

    conn = ensure_schema(db_path)
    row = conn.execute("SELECT * FROM user_staples").fetchone()
    assert (row["name"], row["never_suggest_alternative"], row["notes"]) == (
        "Eggs",
        0,
        None,
    )
    conn.close()
