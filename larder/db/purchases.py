"""Receipt and purchase history storage."""

from __future__ import annotations

from datetime import date

from ..models import PurchaseEvent, ReceiptLine
from .base import Repository


class PurchaseHistoryDB(Repository):
    """Manages the receipts and receipt_items tables."""

    def save_receipt(
        self,
        owner_id: str,
        receipt_id: str,
        receipt_date: date,
        lines: list[ReceiptLine],
        *,
        store_name: str = "",
    ) -> int:
        """Store a receipt and its line items.

        Saving a receipt ID again replaces its previous lines.

        Returns:
            Number of line items stored.
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                """INSERT INTO receipts (id, owner_id, receipt_date, store_name)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                     receipt_date=excluded.receipt_date,
                     store_name=excluded.store_name""",
                (receipt_id, owner_id, receipt_date.isoformat(), store_name),
            )
            conn.execute(
                "DELETE FROM receipt_items WHERE receipt_id = ?", (receipt_id,)
            )
            conn.executemany(
                """INSERT INTO receipt_items
                   (receipt_id, owner_id, item_name, category, quantity, unit, price)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        receipt_id,
                        owner_id,
                        line.name,
                        line.category.value,
                        line.quantity,
                        line.unit,
                        line.price,
                    )
                    for line in lines
                ],
            )
        return len(lines)

    def get_receipt_owner(self, receipt_id: str) -> str | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT owner_id FROM receipts WHERE id = ?", (receipt_id,)
        ).fetchone()
        return row["owner_id"] if row else None

    def get_purchase_events(self, owner_id: str) -> list[PurchaseEvent]:
        """Return every purchase of the owner in recording order.

        The purchase date is the receipt date, falling back to the day the
        line was recorded.
        """
        conn = self._get_conn()
        rows = conn.execute(
            """SELECT ri.item_name, ri.category, ri.quantity, ri.receipt_id,
                      COALESCE(r.receipt_date, substr(ri.created_at, 1, 10))
                          AS purchased_on
               FROM receipt_items ri
               LEFT JOIN receipts r ON r.id = ri.receipt_id
               WHERE ri.owner_id = ?
               ORDER BY ri.created_at, ri.id""",
            (owner_id,),
        ).fetchall()
        return [
            PurchaseEvent(
                name=row["item_name"],
                purchased_on=date.fromisoformat(row["purchased_on"]),
                category=row["category"],
                quantity=row["quantity"],
                receipt_id=row["receipt_id"],
            )
            for row in rows
        ]

    def count_receipts(self, owner_id: str) -> int:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM receipts WHERE owner_id = ?", (owner_id,)
        ).fetchone()
        return row["n"]
