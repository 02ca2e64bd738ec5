"""Undo ledger storage for bulk imports."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from ..models import UndoEntry
from .base import Repository


class UndoDB(Repository):
    """Manages the undo_entries and undo_entry_items tables."""

    def get_entry(self, import_id: str) -> UndoEntry | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM undo_entries WHERE import_id = ?", (import_id,)
        ).fetchone()
        if row is None:
            return None
        ids = conn.execute(
            """SELECT item_id FROM undo_entry_items
               WHERE import_id = ? ORDER BY item_id""",
            (import_id,),
        ).fetchall()
        return UndoEntry(
            import_id=row["import_id"],
            owner_id=row["owner_id"],
            inserted_ids=[r["item_id"] for r in ids],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def save_entry(
        self,
        import_id: str,
        owner_id: str,
        item_ids: Iterable[int],
        created_at: datetime,
    ) -> None:
        """Create the entry if needed and attach the item IDs to it.

        An existing entry keeps its original timestamp.
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                """INSERT INTO undo_entries (import_id, owner_id, created_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(import_id) DO NOTHING""",
                (import_id, owner_id, created_at.isoformat()),
            )
            conn.executemany(
                """INSERT OR IGNORE INTO undo_entry_items (import_id, item_id)
                   VALUES (?, ?)""",
                [(import_id, item_id) for item_id in item_ids],
            )

    def get_entries(self, owner_id: str) -> list[UndoEntry]:
        conn = self._get_conn()
        rows = conn.execute(
            """SELECT import_id FROM undo_entries
               WHERE owner_id = ? ORDER BY created_at DESC""",
            (owner_id,),
        ).fetchall()
        entries = []
        for row in rows:
            entry = self.get_entry(row["import_id"])
            if entry is not None:
                entries.append(entry)
        return entries
