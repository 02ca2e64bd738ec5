"""Inventory CRUD operations."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from ..models import (
    Freshness,
    InventoryItem,
    Location,
    RemovalReason,
    ReviewItem,
)
from .base import Repository


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


class InventoryDB(Repository):
    """Manages the inventory_items table.

    Every query is scoped by owner; an id belonging to another owner behaves
    exactly like a missing id.
    """

    def add_item(
        self,
        owner_id: str,
        item: ReviewItem,
        *,
        source_import_id: str | None = None,
    ) -> int:
        """Insert one reviewed item and return its row ID."""
        conn = self._get_conn()
        cur = conn.execute(
            """INSERT INTO inventory_items
               (owner_id, location, name, storage_category, nutritional_type,
                quantity, unit, purchase_date, expiry_date, freshness,
                confidence, source_import_id)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                owner_id,
                item.location.value,
                item.name,
                item.storage_category.value,
                item.nutritional_type.value,
                item.quantity,
                item.unit,
                _iso(item.purchase_date),
                _iso(item.expiry_date),
                item.freshness.value,
                item.confidence,
                source_import_id,
            ),
        )
        conn.commit()
        return cur.lastrowid

    def get_item(self, item_id: int, owner_id: str) -> InventoryItem | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM inventory_items WHERE id = ? AND owner_id = ?",
            (item_id, owner_id),
        ).fetchone()
        return InventoryItem.from_row(row) if row else None

    def get_active_inventory(
        self, owner_id: str, location: Location | None = None
    ) -> list[InventoryItem]:
        """Return items not yet consumed, optionally for one location."""
        conn = self._get_conn()
        if location is None:
            rows = conn.execute(
                """SELECT * FROM inventory_items
                   WHERE owner_id = ? AND consumed_at IS NULL
                   ORDER BY expiry_date IS NULL, expiry_date, id""",
                (owner_id,),
            ).fetchall()
        else:
            rows = conn.execute(
                """SELECT * FROM inventory_items
                   WHERE owner_id = ? AND location = ? AND consumed_at IS NULL
                   ORDER BY expiry_date IS NULL, expiry_date, id""",
                (owner_id, location.value),
            ).fetchall()
        return [InventoryItem.from_row(r) for r in rows]

    def update_item(
        self,
        item_id: int,
        owner_id: str,
        *,
        quantity: float,
        expiry_date: date | None = None,
        freshness: Freshness | None = None,
    ) -> bool:
        """Overwrite quantity (and expiry/freshness when given).

        Returns:
            False if no active row with that ID exists for the owner.
        """
        conn = self._get_conn()
        cur = conn.execute(
            """UPDATE inventory_items
               SET quantity = ?,
                   expiry_date = COALESCE(?, expiry_date),
                   freshness = COALESCE(?, freshness),
                   updated_at = datetime('now')
               WHERE id = ? AND owner_id = ? AND consumed_at IS NULL""",
            (
                quantity,
                _iso(expiry_date),
                freshness.value if freshness else None,
                item_id,
                owner_id,
            ),
        )
        conn.commit()
        return cur.rowcount > 0

    def delete_item(self, item_id: int, owner_id: str) -> bool:
        """Delete an inventory item by ID."""
        conn = self._get_conn()
        cur = conn.execute(
            "DELETE FROM inventory_items WHERE id = ? AND owner_id = ?",
            (item_id, owner_id),
        )
        conn.commit()
        return cur.rowcount > 0

    def remove_item(
        self, item_id: int, owner_id: str, reason: RemovalReason
    ) -> bool:
        """Take an item out of the active inventory.

        Eaten and spoiled items are kept as consumed history; a mistaken
        entry is deleted outright.
        """
        if reason is RemovalReason.MISTAKE:
            return self.delete_item(item_id, owner_id)

        waste_reason = "spoiled" if reason is RemovalReason.SPOILED else None
        conn = self._get_conn()
        cur = conn.execute(
            """UPDATE inventory_items
               SET consumed_at = datetime('now'),
                   waste_reason = ?,
                   updated_at = datetime('now')
               WHERE id = ? AND owner_id = ? AND consumed_at IS NULL""",
            (waste_reason, item_id, owner_id),
        )
        conn.commit()
        return cur.rowcount > 0

    def get_active_by_ids(
        self, owner_id: str, item_ids: Iterable[int]
    ) -> list[InventoryItem]:
        """Return the active rows among ``item_ids``."""
        ids = list(item_ids)
        if not ids:
            return []
        conn = self._get_conn()
        placeholders = ", ".join("?" for _ in ids)
        rows = conn.execute(
            f"""SELECT * FROM inventory_items
                WHERE owner_id = ? AND consumed_at IS NULL
                  AND id IN ({placeholders})
                ORDER BY id""",
            (owner_id, *ids),
        ).fetchall()
        return [InventoryItem.from_row(r) for r in rows]

    def delete_active_by_ids(
        self, owner_id: str, item_ids: Iterable[int]
    ) -> list[InventoryItem]:
        """Delete the active rows among ``item_ids`` in one transaction.

        Returns:
            The rows that were actually deleted.
        """
        ids = list(item_ids)
        if not ids:
            return []
        conn = self._get_conn()
        placeholders = ", ".join("?" for _ in ids)
        with conn:
            rows = conn.execute(
                f"""SELECT * FROM inventory_items
                    WHERE owner_id = ? AND consumed_at IS NULL
                      AND id IN ({placeholders})
                    ORDER BY id""",
                (owner_id, *ids),
            ).fetchall()
            found = [r["id"] for r in rows]
            if found:
                marks = ", ".join("?" for _ in found)
                conn.execute(
                    f"DELETE FROM inventory_items WHERE id IN ({marks})",
                    found,
                )
        return [InventoryItem.from_row(r) for r in rows]
