"""Bounded bulk reversal of import operations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from .db import InventoryDB, UndoDB
from .errors import NotFound, Stale, Unauthorized, ValidationError
from .models import ImportStatus, UndoEntry, UndoResult

logger = logging.getLogger(__name__)

UNDO_WINDOW = timedelta(hours=24)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UndoLedger:
    """Records the rows created by an import and reverts them as a unit.

    An entry is actionable only while ``now - created_at < window``. Undo
    deletes only the recorded rows that are still active, so running it a
    second time deletes nothing.
    """

    def __init__(
        self,
        store: UndoDB,
        inventory: InventoryDB,
        *,
        window: timedelta = UNDO_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._inventory = inventory
        self._window = window
        self._clock = clock

    @property
    def window(self) -> timedelta:
        return self._window

    def check_owner(self, import_id: str, owner_id: str) -> None:
        """Raise Unauthorized if ``import_id`` is recorded for someone else."""
        entry = self._store.get_entry(import_id)
        if entry is not None and entry.owner_id != owner_id:
            raise Unauthorized(f"import {import_id!r} belongs to another owner")

    def record(
        self,
        import_id: str,
        owner_id: str,
        inserted_ids: list[int],
        now: datetime | None = None,
    ) -> UndoEntry:
        """Remember the rows inserted by one import.

        Recording the same import again adds the new rows to the existing
        entry without moving its timestamp.
        """
        if not import_id:
            raise ValidationError("import_id is required")
        if not inserted_ids:
            raise ValidationError("nothing to record: no rows were inserted")
        self.check_owner(import_id, owner_id)

        self._store.save_entry(
            import_id, owner_id, inserted_ids, now or self._clock()
        )
        entry = self._store.get_entry(import_id)
        logger.info(
            "Recorded undo entry %s (%d rows)", import_id, len(entry.inserted_ids)
        )
        return entry

    def get(self, import_id: str, owner_id: str) -> UndoEntry:
        entry = self._store.get_entry(import_id)
        if entry is None:
            raise NotFound(f"no import recorded with id {import_id!r}")
        if entry.owner_id != owner_id:
            raise Unauthorized(f"import {import_id!r} belongs to another owner")
        return entry

    def can_undo(self, entry: UndoEntry, now: datetime | None = None) -> bool:
        now = now or self._clock()
        return now - entry.created_at < self._window

    def undo(self, entry: UndoEntry, now: datetime | None = None) -> UndoResult:
        """Delete the still-active rows of ``entry``.

        Raises:
            Stale: If the undo window has passed. Nothing is deleted.
        """
        if not self.can_undo(entry, now):
            raise Stale(
                f"import {entry.import_id!r} is older than the "
                f"{self._window.total_seconds() / 3600:g}h undo window"
            )

        deleted = self._inventory.delete_active_by_ids(
            entry.owner_id, entry.inserted_ids
        )
        missing = len(entry.inserted_ids) - len(deleted)
        if missing:
            logger.info(
                "Undo %s: %d of %d rows already gone",
                entry.import_id,
                missing,
                len(entry.inserted_ids),
            )
        logger.info("Undo %s: deleted %d rows", entry.import_id, len(deleted))
        return UndoResult(
            import_id=entry.import_id,
            deleted_count=len(deleted),
            deleted_names=[item.name for item in deleted],
        )

    def status(self, owner_id: str, now: datetime | None = None) -> list[ImportStatus]:
        """Summarize the owner's imports, newest first."""
        now = now or self._clock()
        result = []
        for entry in self._store.get_entries(owner_id):
            remaining = self._inventory.get_active_by_ids(owner_id, entry.inserted_ids)
            result.append(
                ImportStatus(
                    import_id=entry.import_id,
                    remaining=len(remaining),
                    created_at=entry.created_at,
                    can_undo=self.can_undo(entry, now),
                )
            )
        return result
