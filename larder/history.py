"""Purchase history aggregation per normalized item name."""

from __future__ import annotations

import math
from datetime import date

from .models import PurchaseAggregate, PurchaseEvent
from .normalize import normalize


def average_gap_days(dates: list[date]) -> int | None:
    """Mean interval between successive purchases, rounded half-up.

    Returns None for fewer than two dates; a single purchase says nothing
    about frequency.
    """
    if len(dates) < 2:
        return None
    ordered = sorted(dates)
    gaps = [(b - a).days for a, b in zip(ordered, ordered[1:])]
    return math.floor(sum(gaps) / len(gaps) + 0.5)


class PurchaseHistoryAggregator:
    """Groups purchase events by normalized name.

    Events are processed in chronological order (ties keep input order);
    the display name and category of a group come from the first event
    processed for it.
    """

    def __init__(self) -> None:
        self.skipped: list[PurchaseEvent] = []

    def aggregate(self, events: list[PurchaseEvent]) -> list[PurchaseAggregate]:
        self.skipped = []
        groups: dict[str, PurchaseAggregate] = {}

        for event in sorted(events, key=lambda e: e.purchased_on):
            key = normalize(event.name)
            if not key:
                self.skipped.append(event)
                continue

            group = groups.get(key)
            if group is None:
                groups[key] = PurchaseAggregate(
                    normalized_name=key,
                    name=event.name.strip(),
                    category=event.category,
                    purchase_count=1,
                    first_purchased_at=event.purchased_on,
                    last_purchased_at=event.purchased_on,
                    purchase_dates=[event.purchased_on],
                )
                continue

            group.purchase_count += 1
            group.purchase_dates.append(event.purchased_on)
            group.first_purchased_at = min(group.first_purchased_at, event.purchased_on)
            group.last_purchased_at = max(group.last_purchased_at, event.purchased_on)

        for group in groups.values():
            group.purchase_dates.sort()
            group.avg_purchase_frequency_days = average_gap_days(group.purchase_dates)

        return list(groups.values())
