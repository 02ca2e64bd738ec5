"""Turning parsed receipt lines into purchase events and observations."""

from __future__ import annotations

import math
from datetime import date, timedelta

from .errors import ValidationError
from .models import (
    Freshness,
    Location,
    NutritionalType,
    ObservedItem,
    PurchaseEvent,
    ReceiptCategory,
    ReceiptLine,
    StorageCategory,
)
from .reconcile import merge_duplicates

# Receipt category → (storage category, nutritional type)
CATEGORY_MAPPING: dict[ReceiptCategory, tuple[StorageCategory, NutritionalType]] = {
    ReceiptCategory.PRODUCE: (StorageCategory.PRODUCE, NutritionalType.VEGETABLES),
    ReceiptCategory.DAIRY: (StorageCategory.DAIRY, NutritionalType.OTHER),
    ReceiptCategory.PROTEIN: (StorageCategory.PROTEIN, NutritionalType.PROTEIN),
    ReceiptCategory.PANTRY: (StorageCategory.PANTRY, NutritionalType.CARBS),
    ReceiptCategory.BEVERAGE: (StorageCategory.BEVERAGE, NutritionalType.OTHER),
    ReceiptCategory.FROZEN: (StorageCategory.FROZEN, NutritionalType.OTHER),
    ReceiptCategory.SNACKS: (StorageCategory.PANTRY, NutritionalType.CARBS),
    ReceiptCategory.BAKERY: (StorageCategory.PANTRY, NutritionalType.CARBS),
    ReceiptCategory.OTHER: (StorageCategory.PANTRY, NutritionalType.OTHER),
}

# Where an item goes when nobody says otherwise
_DEFAULT_LOCATION: dict[StorageCategory, Location] = {
    StorageCategory.PRODUCE: Location.FRIDGE,
    StorageCategory.DAIRY: Location.FRIDGE,
    StorageCategory.PROTEIN: Location.FRIDGE,
    StorageCategory.CONDIMENT: Location.FRIDGE,
    StorageCategory.FROZEN: Location.FREEZER,
    StorageCategory.PANTRY: Location.PANTRY,
    StorageCategory.BEVERAGE: Location.PANTRY,
}

# Category-based expiry estimates (days from purchase)
_EXPIRY_DAYS: dict[StorageCategory, int] = {
    StorageCategory.PRODUCE: 7,
    StorageCategory.DAIRY: 10,
    StorageCategory.PROTEIN: 3,
    StorageCategory.CONDIMENT: 180,
    StorageCategory.FROZEN: 90,
    StorageCategory.PANTRY: 180,
    StorageCategory.BEVERAGE: 30,
}


def validate_lines(lines: list[ReceiptLine]) -> None:
    problems = []
    for idx, line in enumerate(lines):
        if not line.name or not line.name.strip():
            problems.append(f"line {idx}: name is empty")
        if math.isnan(line.quantity) or line.quantity < 0:
            problems.append(
                f"line {idx} ({line.name!r}): quantity must be >= 0, got {line.quantity}"
            )
        if line.price is not None and line.price < 0:
            problems.append(f"line {idx} ({line.name!r}): negative price")
    if problems:
        raise ValidationError("; ".join(problems))


def purchase_events(
    lines: list[ReceiptLine], receipt_date: date, receipt_id: str = ""
) -> list[PurchaseEvent]:
    """One purchase event per receipt line, dated with the receipt."""
    validate_lines(lines)
    return [
        PurchaseEvent(
            name=line.name,
            purchased_on=receipt_date,
            category=line.category.value,
            quantity=line.quantity,
            receipt_id=receipt_id,
        )
        for line in lines
    ]


def default_location(storage_category: StorageCategory) -> Location:
    return _DEFAULT_LOCATION.get(storage_category, Location.FRIDGE)


def estimate_expiry(storage_category: StorageCategory, purchase_date: date) -> date:
    """Conservative expiry estimate; actual shelf life may be longer."""
    return purchase_date + timedelta(days=_EXPIRY_DAYS.get(storage_category, 7))


def receipt_observations(
    lines: list[ReceiptLine], receipt_date: date
) -> dict[Location, list[ObservedItem]]:
    """Convert receipt lines to observations grouped by storage location.

    Lines naming the same item are folded together with their quantities
    summed, since one receipt never lists two different items under the
    same name.
    """
    validate_lines(lines)
    by_location: dict[Location, list[ObservedItem]] = {}
    for line in lines:
        storage, nutrition = CATEGORY_MAPPING[line.category]
        location = default_location(storage)
        by_location.setdefault(location, []).append(
            ObservedItem(
                name=line.name.strip(),
                quantity=line.quantity,
                unit=line.unit,
                confidence=1.0,
                storage_category=storage,
                nutritional_type=nutrition,
                expiry_date=estimate_expiry(storage, receipt_date),
                freshness=Freshness.FRESH,
                purchase_date=receipt_date,
            )
        )
    return {loc: merge_duplicates(items) for loc, items in by_location.items()}


def parse_receipt_lines(raw_lines: list[dict]) -> list[ReceiptLine]:
    """Build receipt lines from the JSON emitted by the receipt parser."""
    lines = []
    for raw in raw_lines:
        price = raw.get("price")
        lines.append(
            ReceiptLine(
                name=str(raw.get("name", "")),
                quantity=float(raw.get("quantity", 1)),
                unit=str(raw.get("unit") or "piece"),
                category=ReceiptCategory.parse(raw.get("category")),
                price=float(price) if price is not None else None,
            )
        )
    validate_lines(lines)
    return lines
