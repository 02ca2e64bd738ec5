"""Reconciliation of a fresh observation against stored inventory.

An observation (the items seen by a shelf scan, or the lines of a receipt)
is matched to the existing inventory of one location by normalized name.
The result is a review list: detected items first, each either pointing at
the existing row it will update or marked as new, followed by *carry-over*
rows for tracked items that were not seen this time. Carry-over rows have
their quantity forced to 0 and are selected by default, so that confirming
the review removes them explicitly instead of the engine deleting inventory
on its own.

Committing applies only the selected rows:

============  ===========  ==========
quantity      existing id  operation
============  ===========  ==========
> 0           no           insert
> 0           yes          update
0             yes          delete
0             no           no-op
============  ===========  ==========

In ``add`` merge mode a detected row with quantity 0 adds nothing to the
row it matched and is skipped; carry-over rows still delete.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from collections import defaultdict
from dataclasses import replace

from .db import InventoryDB
from .errors import ItemError, LarderError, NotFound, ValidationError
from .models import (
    CommitResult,
    DuplicatePolicy,
    InventoryItem,
    Location,
    MergeMode,
    ObservedItem,
    ReviewItem,
    ReviewList,
)
from .normalize import normalize
from .undo import UndoLedger

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.7


def validate_observation(observed: list[ObservedItem]) -> None:
    """Raise ValidationError describing every malformed observed item."""
    problems: list[str] = []
    for idx, item in enumerate(observed):
        label = f"item {idx} ({item.name!r})"
        if not item.name or not item.name.strip():
            problems.append(f"item {idx}: name is empty")
        if math.isnan(item.quantity) or item.quantity < 0:
            problems.append(f"{label}: quantity must be >= 0, got {item.quantity}")
        if math.isnan(item.confidence) or not 0.0 <= item.confidence <= 1.0:
            problems.append(
                f"{label}: confidence must be within 0..1, got {item.confidence}"
            )
    if problems:
        raise ValidationError("; ".join(problems))


def merge_duplicates(observed: list[ObservedItem]) -> list[ObservedItem]:
    """Fold items sharing a normalized name into the first occurrence.

    Quantities are summed and the highest confidence is kept.
    """
    merged: dict[str, ObservedItem] = {}
    for item in observed:
        key = normalize(item.name)
        if key not in merged:
            merged[key] = replace(item)
            continue
        first = merged[key]
        first.quantity += item.quantity
        first.confidence = max(first.confidence, item.confidence)
        if first.matched_id is None:
            first.matched_id = item.matched_id
    return list(merged.values())


class ObservationReconciler:
    """Builds review lists and commits the confirmed subset."""

    def __init__(
        self,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        duplicates: DuplicatePolicy = DuplicatePolicy.KEEP,
        merge_mode: MergeMode = MergeMode.REPLACE,
    ) -> None:
        self.confidence_threshold = confidence_threshold
        self.duplicates = duplicates
        self.merge_mode = merge_mode

    def reconcile(
        self,
        observed: list[ObservedItem],
        existing: list[InventoryItem],
        location: Location,
        *,
        carry_over: bool = True,
    ) -> ReviewList:
        """Match ``observed`` against ``existing`` for one location.

        Every existing item ends up in the review list exactly once: either
        claimed by an observed item or as a carry-over row. Observed items
        sharing a key with no unclaimed existing row left reuse the first
        match, so duplicates stay visible as separate candidates.

        With ``carry_over=False`` (additive imports such as receipts) unseen
        existing items are left out of the list.
        """
        validate_observation(observed)
        if self.duplicates is DuplicatePolicy.MERGE:
            observed = merge_duplicates(observed)

        by_key: dict[str, list[InventoryItem]] = defaultdict(list)
        by_id: dict[int, InventoryItem] = {}
        for item in existing:
            by_key[normalize(item.name)].append(item)
            by_id[item.id] = item

        claimed: set[int] = set()
        rows: list[ReviewItem] = []
        for obs in observed:
            match = self._find_match(obs, by_key, by_id, claimed)
            if match is not None:
                claimed.add(match.id)
            rows.append(
                ReviewItem(
                    name=obs.name,
                    location=location,
                    quantity=obs.quantity,
                    unit=obs.unit,
                    confidence=obs.confidence,
                    storage_category=obs.storage_category,
                    nutritional_type=obs.nutritional_type,
                    expiry_date=obs.expiry_date,
                    freshness=obs.freshness,
                    purchase_date=obs.purchase_date,
                    item_id=match.id if match else None,
                    selected=obs.confidence >= self.confidence_threshold,
                )
            )

        if carry_over:
            for item in existing:
                if item.id in claimed:
                    continue
                rows.append(
                    ReviewItem(
                        name=item.name,
                        location=item.location,
                        quantity=0,
                        unit=item.unit,
                        confidence=0.0,
                        storage_category=item.storage_category,
                        nutritional_type=item.nutritional_type,
                        expiry_date=item.expiry_date,
                        freshness=item.freshness,
                        purchase_date=item.purchase_date,
                        item_id=item.id,
                        selected=True,
                        not_detected=True,
                    )
                )

        review = ReviewList(location=location, items=rows)
        logger.debug(
            "Reconciled %d observed against %d existing in %s: %d carry-over",
            len(observed),
            len(existing),
            location.value,
            len(review.carried_over),
        )
        return review

    @staticmethod
    def _find_match(
        obs: ObservedItem,
        by_key: dict[str, list[InventoryItem]],
        by_id: dict[int, InventoryItem],
        claimed: set[int],
    ) -> InventoryItem | None:
        if obs.matched_id is not None and obs.matched_id in by_id:
            return by_id[obs.matched_id]
        candidates = by_key.get(normalize(obs.name))
        if not candidates:
            return None
        for candidate in candidates:
            if candidate.id not in claimed:
                return candidate
        return candidates[0]

    def commit(
        self,
        review: ReviewList,
        owner_id: str,
        inventory: InventoryDB,
        *,
        import_id: str | None = None,
        ledger: UndoLedger | None = None,
    ) -> CommitResult:
        """Apply the selected rows of ``review`` one by one.

        Item-level failures are collected in ``CommitResult.errors`` and do
        not stop the remaining items. Rows already written stay written; an
        import can be reverted through the ledger.

        Raises:
            Unauthorized: If ``import_id`` is already recorded for another
                owner. Checked before anything is written.
        """
        if import_id and ledger is not None:
            ledger.check_owner(import_id, owner_id)

        mode = review.merge_mode or self.merge_mode
        result = CommitResult()
        for item in review.selected:
            try:
                self._apply(item, owner_id, inventory, import_id, mode, result)
            except (LarderError, sqlite3.Error) as e:
                logger.warning("Commit of %r failed: %s", item.name, e)
                result.errors.append(
                    ItemError.from_exception(item.name, e, item_id=item.item_id)
                )

        if result.inserted_ids and import_id and ledger is not None:
            result.undo_entry = ledger.record(import_id, owner_id, result.inserted_ids)

        logger.info(
            "Commit for %s: inserted=%d updated=%d deleted=%d skipped=%d failed=%d",
            owner_id,
            result.inserted,
            result.updated,
            result.deleted,
            result.skipped,
            result.failed,
        )
        return result

    def _apply(
        self,
        item: ReviewItem,
        owner_id: str,
        inventory: InventoryDB,
        import_id: str | None,
        mode: MergeMode,
        result: CommitResult,
    ) -> None:
        if math.isnan(item.quantity) or item.quantity < 0:
            raise ValidationError(
                f"quantity must be >= 0, got {item.quantity} for {item.name!r}"
            )

        if item.quantity == 0:
            # adding nothing leaves stock alone; only carry-over rows remove it
            if item.item_id is None or (
                mode is MergeMode.ADD and not item.not_detected
            ):
                result.skipped += 1
                return
            if not inventory.delete_item(item.item_id, owner_id):
                raise NotFound(f"inventory item {item.item_id} not found")
            result.deleted += 1
            result.deleted_ids.append(item.item_id)
            return

        if item.item_id is None:
            new_id = inventory.add_item(owner_id, item, source_import_id=import_id)
            result.inserted += 1
            result.inserted_ids.append(new_id)
            return

        if mode is MergeMode.SKIP:
            result.skipped += 1
            return

        quantity = item.quantity
        if mode is MergeMode.ADD:
            current = inventory.get_item(item.item_id, owner_id)
            if current is None or current.consumed_at is not None:
                raise NotFound(f"inventory item {item.item_id} not found")
            quantity += current.quantity

        updated = inventory.update_item(
            item.item_id,
            owner_id,
            quantity=quantity,
            expiry_date=item.expiry_date,
            freshness=item.freshness,
        )
        if not updated:
            raise NotFound(f"inventory item {item.item_id} not found")
        result.updated += 1
        result.updated_ids.append(item.item_id)
