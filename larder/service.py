"""Entry points of the reconciliation and staples engine."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import date, datetime, timedelta

from .config import LarderConfig
from .db import InventoryDB, PurchaseHistoryDB, StapleDB, UndoDB, ensure_schema
from .errors import NotFound, Unauthorized, ValidationError
from .models import (
    AnalysisResult,
    CommitResult,
    ImportStatus,
    InventoryItem,
    Location,
    MergeMode,
    ObservedItem,
    ReceiptLine,
    RemovalReason,
    ReviewList,
    StapleFilter,
    StapleRecord,
    StapleSummary,
    UndoResult,
)
from .receipts import receipt_observations, validate_lines
from .reconcile import ObservationReconciler
from .staples import StapleClassifier
from .undo import UndoLedger, utcnow

logger = logging.getLogger(__name__)


def _location(value: Location | str) -> Location:
    try:
        return Location(value)
    except ValueError:
        choices = ", ".join(loc.value for loc in Location)
        raise ValidationError(
            f"invalid location {value!r} (choose from {choices})"
        ) from None


class PantryService:
    """Wires the engine components to one SQLite database.

    All calls are synchronous and scoped by ``owner_id``; nothing is shared
    between owners.
    """

    def __init__(
        self,
        config: LarderConfig | None = None,
        *,
        conn: sqlite3.Connection | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or LarderConfig()
        self._owns_conn = conn is None
        self._conn = conn or ensure_schema(self.config.database.path)
        self._clock = clock

        self.inventory_db = InventoryDB(conn=self._conn)
        self.purchases_db = PurchaseHistoryDB(conn=self._conn)
        self.staples_db = StapleDB(conn=self._conn)
        self.undo_db = UndoDB(conn=self._conn)

        rc = self.config.reconcile
        self.reconciler = ObservationReconciler(
            confidence_threshold=rc.confidence_threshold,
            duplicates=rc.duplicates,
            merge_mode=rc.merge_mode,
        )
        self.ledger = UndoLedger(
            self.undo_db,
            self.inventory_db,
            window=timedelta(hours=self.config.undo.window_hours),
            clock=clock,
        )
        sc = self.config.staples
        self.classifier = StapleClassifier(
            self.staples_db,
            min_purchases=sc.min_purchases,
            sticky_overrides=sc.sticky_overrides,
            top_staples_limit=sc.top_staples_limit,
            occasional_limit=sc.occasional_limit,
        )

    def close(self) -> None:
        if self._owns_conn:
            self._conn.close()

    def __enter__(self) -> PantryService:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -- inventory ---------------------------------------------------------

    def inventory(
        self, owner_id: str, location: Location | str | None = None
    ) -> list[InventoryItem]:
        loc = _location(location) if location is not None else None
        return self.inventory_db.get_active_inventory(owner_id, loc)

    def remove_item(
        self, item_id: int, owner_id: str, reason: RemovalReason | str
    ) -> None:
        """Remove one item by hand (eaten, spoiled or added by mistake)."""
        try:
            reason = RemovalReason(reason)
        except ValueError:
            raise ValidationError(f"invalid removal reason {reason!r}") from None
        if not self.inventory_db.remove_item(item_id, owner_id, reason):
            raise NotFound(f"inventory item {item_id} not found")
        logger.info("Removed item %d for %s (%s)", item_id, owner_id, reason.value)

    # -- reconciliation ----------------------------------------------------

    def reconcile(
        self,
        observation: list[ObservedItem],
        location: Location | str,
        owner_id: str,
    ) -> ReviewList:
        """Build the review list for a scan of one location. Writes nothing."""
        loc = _location(location)
        existing = self.inventory_db.get_active_inventory(owner_id, loc)
        return self.reconciler.reconcile(observation, existing, loc)

    def commit(
        self,
        review: ReviewList,
        owner_id: str,
        import_id: str | None = None,
    ) -> CommitResult:
        """Apply the selected rows; records an undo entry for inserts."""
        return self.reconciler.commit(
            review,
            owner_id,
            self.inventory_db,
            import_id=import_id,
            ledger=self.ledger,
        )

    # -- receipts ----------------------------------------------------------

    def record_receipt(
        self,
        owner_id: str,
        receipt_id: str,
        receipt_date: date,
        lines: list[ReceiptLine],
        *,
        store_name: str = "",
    ) -> int:
        """Store the purchases on a receipt for staple analysis."""
        if not receipt_id:
            raise ValidationError("receipt_id is required")
        validate_lines(lines)

        current_owner = self.purchases_db.get_receipt_owner(receipt_id)
        if current_owner is not None and current_owner != owner_id:
            raise Unauthorized(f"receipt {receipt_id!r} belongs to another owner")

        count = self.purchases_db.save_receipt(
            owner_id, receipt_id, receipt_date, lines, store_name=store_name
        )
        logger.info("Recorded receipt %s with %d lines", receipt_id, count)
        return count

    def import_receipt(
        self,
        owner_id: str,
        receipt_id: str,
        receipt_date: date,
        lines: list[ReceiptLine],
        *,
        store_name: str = "",
    ) -> ReviewList:
        """Record a receipt and build its review list.

        Receipt imports only add to the inventory, so the review list has no
        carry-over rows and matched items have the purchased quantity added
        to them. It may span several locations; commit it with
        ``import_id=receipt_id`` to make the import undoable.
        """
        self.record_receipt(
            owner_id, receipt_id, receipt_date, lines, store_name=store_name
        )
        review = ReviewList(location=None, merge_mode=MergeMode.ADD)
        for loc, observed in receipt_observations(lines, receipt_date).items():
            existing = self.inventory_db.get_active_inventory(owner_id, loc)
            part = self.reconciler.reconcile(
                observed, existing, loc, carry_over=False
            )
            review.items.extend(part.items)
        return review

    # -- undo --------------------------------------------------------------

    def undo_import(self, import_id: str, owner_id: str) -> UndoResult:
        entry = self.ledger.get(import_id, owner_id)
        return self.ledger.undo(entry)

    def import_status(self, owner_id: str) -> list[ImportStatus]:
        return self.ledger.status(owner_id)

    # -- staples -----------------------------------------------------------

    def analyze_staples(self, owner_id: str) -> AnalysisResult:
        """Recompute staple records from the owner's whole purchase history."""
        events = self.purchases_db.get_purchase_events(owner_id)
        return self.classifier.classify(
            owner_id,
            events,
            receipts_analyzed=self.purchases_db.count_receipts(owner_id),
        )

    def clear_staples(self, owner_id: str) -> int:
        """Delete all staple records of the owner, overrides included."""
        count = self.staples_db.clear(owner_id)
        logger.info("Cleared %d staple records for %s", count, owner_id)
        return count

    def classify_override(
        self,
        staple_id: int,
        owner_id: str,
        *,
        is_staple: bool | None = None,
        is_occasional: bool | None = None,
        never_suggest_alternative: bool | None = None,
        notes: str | None = None,
    ) -> StapleRecord:
        """Record the user's classification or preferences for one item."""
        if is_staple and is_occasional:
            raise ValidationError("an item cannot be both staple and occasional")
        record = self.staples_db.set_classification(
            staple_id,
            owner_id,
            is_staple=is_staple,
            is_occasional=is_occasional,
            never_suggest_alternative=never_suggest_alternative,
            notes=notes,
        )
        if record is None:
            raise NotFound(f"staple {staple_id} not found")
        return record

    def list_staples(
        self, owner_id: str, staple_filter: StapleFilter | str = StapleFilter.ALL
    ) -> StapleSummary:
        try:
            staple_filter = StapleFilter(staple_filter)
        except ValueError:
            choices = ", ".join(f.value for f in StapleFilter)
            raise ValidationError(
                f"invalid staple filter {staple_filter!r} (choose from {choices})"
            ) from None
        records = self.staples_db.get_all(owner_id, staple_filter)
        return StapleSummary(
            staples=records,
            total=len(records),
            staple_count=sum(1 for r in records if r.is_staple),
            occasional_count=sum(1 for r in records if r.is_occasional),
            unclassified_count=sum(
                1 for r in records if not r.is_staple and not r.is_occasional
            ),
        )
