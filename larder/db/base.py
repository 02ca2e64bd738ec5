"""Shared connection handling for the table repositories."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from ..config import DEFAULT_DB_PATH
from .schema import ensure_schema


class Repository:
    """Lazily opens the database, or reuses a connection handed in.

    Repositories built on a shared connection do not close it; the owner of
    the connection does.
    """

    def __init__(
        self,
        db_path: str | Path = DEFAULT_DB_PATH,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        self._db_path = db_path
        self._conn = conn
        self._owns_conn = conn is None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None and self._owns_conn:
            self._conn.close()
            self._conn = None
