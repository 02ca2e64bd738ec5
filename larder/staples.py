"""Staple classification and persistence of staple records."""

from __future__ import annotations

import logging
import sqlite3
import uuid

from .db import StapleDB
from .errors import ItemError
from .history import PurchaseHistoryAggregator
from .models import AnalysisResult, PurchaseAggregate, PurchaseEvent

logger = logging.getLogger(__name__)

STAPLE_MIN_PURCHASES = 3


def is_staple(aggregate: PurchaseAggregate, min_purchases: int = STAPLE_MIN_PURCHASES) -> bool:
    """Hard threshold: bought ``min_purchases`` times or more."""
    return aggregate.purchase_count >= min_purchases


class StapleClassifier:
    """Classifies aggregated purchase history and upserts staple records.

    A run always recomputes purchase counts, frequency and the automatic
    staple flag. With ``sticky_overrides`` enabled, records the user has
    classified by hand keep their classification; otherwise the automatic
    result wins and the override flag is cleared.
    """

    def __init__(
        self,
        store: StapleDB,
        *,
        min_purchases: int = STAPLE_MIN_PURCHASES,
        sticky_overrides: bool = False,
        top_staples_limit: int = 20,
        occasional_limit: int = 10,
        aggregator: PurchaseHistoryAggregator | None = None,
    ) -> None:
        self._store = store
        self.min_purchases = min_purchases
        self.sticky_overrides = sticky_overrides
        self.top_staples_limit = top_staples_limit
        self.occasional_limit = occasional_limit
        self._aggregator = aggregator or PurchaseHistoryAggregator()

    def classify(
        self, owner_id: str, events: list[PurchaseEvent], *, receipts_analyzed: int = 0
    ) -> AnalysisResult:
        """Aggregate ``events`` and persist one record per normalized name.

        A failure to persist one record is collected in the result and the
        run continues with the next group.
        """
        aggregates = self._aggregator.aggregate(events)
        result = AnalysisResult(
            items_found=len(aggregates),
            skipped=len(self._aggregator.skipped),
            receipts_analyzed=receipts_analyzed,
        )
        if not aggregates:
            logger.info("No purchase history to analyze for %s", owner_id)
            return result

        run_id = uuid.uuid4().hex
        staples: list[PurchaseAggregate] = []
        occasional: list[PurchaseAggregate] = []

        for aggregate in aggregates:
            auto_staple = is_staple(aggregate, self.min_purchases)
            if auto_staple:
                staples.append(aggregate)
            elif aggregate.purchase_count >= 2:
                occasional.append(aggregate)

            try:
                _, created = self._store.upsert(
                    owner_id,
                    aggregate,
                    is_staple=auto_staple,
                    run_id=run_id,
                    sticky_overrides=self.sticky_overrides,
                )
            except sqlite3.Error as e:
                logger.warning("Could not save staple %r: %s", aggregate.name, e)
                result.errors.append(ItemError.from_exception(aggregate.name, e))
                continue

            if created:
                result.inserted += 1
            else:
                result.updated += 1

        result.staples_identified = len(staples)
        result.top_staples = sorted(
            staples, key=lambda a: a.purchase_count, reverse=True
        )[: self.top_staples_limit]
        result.frequent_occasional = sorted(
            occasional, key=lambda a: a.purchase_count, reverse=True
        )[: self.occasional_limit]

        try:
            self._store.log_run(
                owner_id,
                run_id,
                receipts_analyzed=receipts_analyzed,
                items_found=result.items_found,
                staples_identified=result.staples_identified,
            )
        except sqlite3.Error as e:
            # the records are saved; only the run log entry is missing
            logger.warning("Could not log analysis run %s: %s", run_id, e)
            result.errors.append(ItemError.from_exception(f"analysis run {run_id}", e))
        logger.info(
            "Staple analysis for %s: found=%d staples=%d inserted=%d updated=%d failed=%d",
            owner_id,
            result.items_found,
            result.staples_identified,
            result.inserted,
            result.updated,
            len(result.errors),
        )
        return result
