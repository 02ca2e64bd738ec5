"""Staple record storage."""

from __future__ import annotations

from ..models import PurchaseAggregate, StapleFilter, StapleRecord
from .base import Repository

_UPSERT = """
INSERT INTO user_staples
    (owner_id, normalized_name, name, category, purchase_count,
     first_purchased_at, last_purchased_at, avg_purchase_frequency_days,
     is_staple, is_occasional, manual_override, created_run)
VALUES
    (:owner_id, :normalized_name, :name, :category, :purchase_count,
     :first_purchased_at, :last_purchased_at, :avg_frequency,
     :is_staple, 0, 0, :run_id)
ON CONFLICT(owner_id, normalized_name) DO UPDATE SET
    purchase_count = excluded.purchase_count,
    first_purchased_at = excluded.first_purchased_at,
    last_purchased_at = excluded.last_purchased_at,
    avg_purchase_frequency_days = excluded.avg_purchase_frequency_days,
    is_staple = CASE
        WHEN :sticky AND user_staples.manual_override THEN user_staples.is_staple
        ELSE excluded.is_staple
    END,
    is_occasional = CASE
        WHEN :sticky AND user_staples.manual_override THEN user_staples.is_occasional
        WHEN excluded.is_staple THEN 0
        ELSE user_staples.is_occasional
    END,
    manual_override = CASE
        WHEN :sticky THEN user_staples.manual_override
        ELSE 0
    END,
    updated_at = datetime('now')
RETURNING id, created_run
"""


class StapleDB(Repository):
    """Manages the user_staples and analysis_runs tables."""

    def upsert(
        self,
        owner_id: str,
        aggregate: PurchaseAggregate,
        *,
        is_staple: bool,
        run_id: str,
        sticky_overrides: bool = False,
    ) -> tuple[int, bool]:
        """Insert or update the record for one normalized name atomically.

        Returns:
            (row ID, True if the row was created by this call).
        """
        conn = self._get_conn()
        cur = conn.execute(
            _UPSERT,
            {
                "owner_id": owner_id,
                "normalized_name": aggregate.normalized_name,
                "name": aggregate.name,
                "category": aggregate.category,
                "purchase_count": aggregate.purchase_count,
                "first_purchased_at": aggregate.first_purchased_at.isoformat(),
                "last_purchased_at": aggregate.last_purchased_at.isoformat(),
                "avg_frequency": aggregate.avg_purchase_frequency_days,
                "is_staple": int(is_staple),
                "run_id": run_id,
                "sticky": int(sticky_overrides),
            },
        )
        row = cur.fetchone()
        conn.commit()
        return row["id"], row["created_run"] == run_id

    def get(self, staple_id: int, owner_id: str) -> StapleRecord | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM user_staples WHERE id = ? AND owner_id = ?",
            (staple_id, owner_id),
        ).fetchone()
        return StapleRecord.from_row(row) if row else None

    def get_by_name(self, owner_id: str, normalized_name: str) -> StapleRecord | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM user_staples WHERE owner_id = ? AND normalized_name = ?",
            (owner_id, normalized_name),
        ).fetchone()
        return StapleRecord.from_row(row) if row else None

    def get_all(
        self, owner_id: str, staple_filter: StapleFilter = StapleFilter.ALL
    ) -> list[StapleRecord]:
        """Return the owner's records, most purchased first."""
        conn = self._get_conn()
        where = "owner_id = ?"
        if staple_filter is StapleFilter.STAPLES:
            where += " AND is_staple = 1"
        elif staple_filter is StapleFilter.OCCASIONAL:
            where += " AND is_occasional = 1"
        rows = conn.execute(
            f"""SELECT * FROM user_staples WHERE {where}
                ORDER BY purchase_count DESC, name""",
            (owner_id,),
        ).fetchall()
        return [StapleRecord.from_row(r) for r in rows]

    def set_classification(
        self,
        staple_id: int,
        owner_id: str,
        *,
        is_staple: bool | None = None,
        is_occasional: bool | None = None,
        never_suggest_alternative: bool | None = None,
        notes: str | None = None,
    ) -> StapleRecord | None:
        """Apply the user's edits to one record; ``None`` leaves a field as is.

        Marking an item as staple unmarks it as occasional and vice versa.
        Changing the classification flags the record as overridden; editing
        only the preferences does not. Analysis never writes the preferences.
        """
        record = self.get(staple_id, owner_id)
        if record is None:
            return None

        new_staple = record.is_staple if is_staple is None else is_staple
        new_occasional = (
            record.is_occasional if is_occasional is None else is_occasional
        )
        if is_staple is True:
            new_occasional = False
        if is_occasional is True:
            new_staple = False
        overridden = record.manual_override or (
            is_staple is not None or is_occasional is not None
        )
        never_suggest = (
            record.never_suggest_alternative
            if never_suggest_alternative is None
            else never_suggest_alternative
        )

        conn = self._get_conn()
        conn.execute(
            """UPDATE user_staples
               SET is_staple = ?, is_occasional = ?, manual_override = ?,
                   never_suggest_alternative = ?, notes = ?,
                   updated_at = datetime('now')
               WHERE id = ? AND owner_id = ?""",
            (
                int(new_staple),
                int(new_occasional),
                int(overridden),
                int(never_suggest),
                record.notes if notes is None else notes,
                staple_id,
                owner_id,
            ),
        )
        conn.commit()
        return self.get(staple_id, owner_id)

    def clear(self, owner_id: str) -> int:
        """Delete every record of the owner, manual overrides included."""
        conn = self._get_conn()
        cur = conn.execute("DELETE FROM user_staples WHERE owner_id = ?", (owner_id,))
        conn.commit()
        return cur.rowcount

    def log_run(
        self,
        owner_id: str,
        run_id: str,
        *,
        receipts_analyzed: int,
        items_found: int,
        staples_identified: int,
    ) -> int:
        conn = self._get_conn()
        cur = conn.execute(
            """INSERT INTO analysis_runs
               (run_id, owner_id, receipts_analyzed, items_found, staples_identified)
               VALUES (?, ?, ?, ?, ?)""",
            (run_id, owner_id, receipts_analyzed, items_found, staples_identified),
        )
        conn.commit()
        return cur.lastrowid
