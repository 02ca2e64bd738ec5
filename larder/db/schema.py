"""Database schema definitions and migration helpers."""

from __future__ import annotations

import sqlite3
from pathlib import Path

_SCHEMA_VERSION = 2

_DDL = """
CREATE TABLE IF NOT EXISTS inventory_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    location TEXT NOT NULL CHECK (location IN ('fridge', 'freezer', 'pantry')),
    name TEXT NOT NULL,
    storage_category TEXT NOT NULL DEFAULT 'pantry',
    nutritional_type TEXT NOT NULL DEFAULT 'other',
    quantity REAL NOT NULL DEFAULT 1.0 CHECK (quantity >= 0),
    unit TEXT NOT NULL DEFAULT 'piece',
    purchase_date TEXT,
    expiry_date TEXT,
    freshness TEXT NOT NULL DEFAULT 'fresh',
    confidence REAL NOT NULL DEFAULT 1.0,
    source_import_id TEXT,
    consumed_at TEXT,
    waste_reason TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_inventory_owner_location
    ON inventory_items(owner_id, location);
CREATE INDEX IF NOT EXISTS idx_inventory_import ON inventory_items(source_import_id);

CREATE TABLE IF NOT EXISTS receipts (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    receipt_date TEXT NOT NULL,
    store_name TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS receipt_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    receipt_id TEXT NOT NULL REFERENCES receipts(id) ON DELETE CASCADE,
    owner_id TEXT NOT NULL,
    item_name TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'other',
    quantity REAL NOT NULL DEFAULT 1.0,
    unit TEXT NOT NULL DEFAULT 'piece',
    price REAL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_receipt_items_owner ON receipt_items(owner_id);

CREATE TABLE IF NOT EXISTS user_staples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    normalized_name TEXT NOT NULL,
    name TEXT NOT NULL,
    category TEXT,
    purchase_count INTEGER NOT NULL DEFAULT 0,
    first_purchased_at TEXT,
    last_purchased_at TEXT,
    avg_purchase_frequency_days INTEGER,
    is_staple INTEGER NOT NULL DEFAULT 0,
    is_occasional INTEGER NOT NULL DEFAULT 0,
    manual_override INTEGER NOT NULL DEFAULT 0,
    never_suggest_alternative INTEGER NOT NULL DEFAULT 0,
    notes TEXT,
    created_run TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (owner_id, normalized_name),
    CHECK (NOT (is_staple AND is_occasional))
);

CREATE TABLE IF NOT EXISTS analysis_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL UNIQUE,
    owner_id TEXT NOT NULL,
    receipts_analyzed INTEGER NOT NULL DEFAULT 0,
    items_found INTEGER NOT NULL DEFAULT 0,
    staples_identified INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS undo_entries (
    import_id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS undo_entry_items (
    import_id TEXT NOT NULL REFERENCES undo_entries(import_id) ON DELETE CASCADE,
    item_id INTEGER NOT NULL,
    PRIMARY KEY (import_id, item_id)
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);
"""

# Steps for databases created at an older version, keyed by target version
_MIGRATIONS: dict[int, str] = {
    2: """
ALTER TABLE user_staples
    ADD COLUMN never_suggest_alternative INTEGER NOT NULL DEFAULT 0;
ALTER TABLE user_staples ADD COLUMN notes TEXT;
""",
}


def ensure_schema(db_path: str | Path) -> sqlite3.Connection:
    """Open (or create) the database and ensure the schema is up to date.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open sqlite3.Connection with the schema applied.
    """
    db_path = Path(db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    try:
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        current_version = row["version"] if row else 0
    except sqlite3.OperationalError:
        current_version = 0

    if current_version < _SCHEMA_VERSION:
        if current_version:
            for version in range(current_version + 1, _SCHEMA_VERSION + 1):
                conn.executescript(_MIGRATIONS[version])
        conn.executescript(_DDL)
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )
        conn.commit()

    return conn
