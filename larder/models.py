"""Data models for inventory, observations, purchases and staples."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from .errors import ItemError, PartialFailure


class Location(str, Enum):
    FRIDGE = "fridge"
    FREEZER = "freezer"
    PANTRY = "pantry"


class StorageCategory(str, Enum):
    PRODUCE = "produce"
    DAIRY = "dairy"
    PROTEIN = "protein"
    PANTRY = "pantry"
    BEVERAGE = "beverage"
    CONDIMENT = "condiment"
    FROZEN = "frozen"


class NutritionalType(str, Enum):
    VEGETABLES = "vegetables"
    PROTEIN = "protein"
    CARBS = "carbs"
    VITAMINS = "vitamins"
    FATS = "fats"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> NutritionalType:
        """Accept the vocabulary used by vision models as well."""
        if not value:
            return cls.OTHER
        value = value.strip().lower()
        if value in ("fibre", "fiber"):
            return cls.VEGETABLES
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class Freshness(str, Enum):
    FRESH = "fresh"
    USE_SOON = "use_soon"
    EXPIRED = "expired"


class RemovalReason(str, Enum):
    EATEN = "eaten"
    SPOILED = "spoiled"
    MISTAKE = "mistake"


class ReceiptCategory(str, Enum):
    PRODUCE = "produce"
    DAIRY = "dairy"
    PROTEIN = "protein"
    PANTRY = "pantry"
    BEVERAGE = "beverage"
    FROZEN = "frozen"
    SNACKS = "snacks"
    BAKERY = "bakery"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> ReceiptCategory:
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class MergeMode(str, Enum):
    """How a matched observation is applied to the existing row."""

    REPLACE = "replace"
    ADD = "add"
    SKIP = "skip"


class DuplicatePolicy(str, Enum):
    """What to do with several observed items sharing a normalized key."""

    KEEP = "keep"
    MERGE = "merge"


class StapleFilter(str, Enum):
    ALL = "all"
    STAPLES = "staples"
    OCCASIONAL = "occasional"


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value[:10]) if value else None


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class InventoryItem:
    """A stored inventory row."""

    id: int
    owner_id: str
    location: Location
    name: str
    quantity: float = 1.0
    unit: str = "piece"
    storage_category: StorageCategory = StorageCategory.PANTRY
    nutritional_type: NutritionalType = NutritionalType.OTHER
    expiry_date: date | None = None
    freshness: Freshness = Freshness.FRESH
    confidence: float = 1.0
    purchase_date: date | None = None
    source_import_id: str | None = None
    consumed_at: datetime | None = None
    waste_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> InventoryItem:
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            location=Location(row["location"]),
            name=row["name"],
            quantity=row["quantity"],
            unit=row["unit"],
            storage_category=StorageCategory(row["storage_category"]),
            nutritional_type=NutritionalType(row["nutritional_type"]),
            expiry_date=_parse_date(row["expiry_date"]),
            freshness=Freshness(row["freshness"]),
            confidence=row["confidence"],
            purchase_date=_parse_date(row["purchase_date"]),
            source_import_id=row["source_import_id"],
            consumed_at=_parse_datetime(row["consumed_at"]),
            waste_reason=row["waste_reason"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )


@dataclass
class ObservedItem:
    """An item seen in the current scan or receipt. Never stored directly."""

    name: str
    quantity: float = 1.0
    unit: str = "piece"
    confidence: float = 1.0
    storage_category: StorageCategory = StorageCategory.PANTRY
    nutritional_type: NutritionalType = NutritionalType.OTHER
    expiry_date: date | None = None
    freshness: Freshness = Freshness.FRESH
    purchase_date: date | None = None
    matched_id: int | None = None


@dataclass
class ReviewItem:
    """One row of the review list presented before committing."""

    name: str
    location: Location
    quantity: float
    unit: str = "piece"
    confidence: float = 1.0
    storage_category: StorageCategory = StorageCategory.PANTRY
    nutritional_type: NutritionalType = NutritionalType.OTHER
    expiry_date: date | None = None
    freshness: Freshness = Freshness.FRESH
    purchase_date: date | None = None
    item_id: int | None = None  # matched existing row, None for new items
    selected: bool = True
    not_detected: bool = False


@dataclass
class ReviewList:
    location: Location | None
    items: list[ReviewItem] = field(default_factory=list)
    # overrides the reconciler's merge mode for this list when set
    merge_mode: MergeMode | None = None

    @property
    def detected(self) -> list[ReviewItem]:
        return [i for i in self.items if not i.not_detected]

    @property
    def carried_over(self) -> list[ReviewItem]:
        return [i for i in self.items if i.not_detected]

    @property
    def selected(self) -> list[ReviewItem]:
        return [i for i in self.items if i.selected]

    def removals(self) -> list[ReviewItem]:
        """Selected rows that will delete an existing item."""
        return [
            i for i in self.items
            if i.selected and i.quantity == 0 and i.item_id is not None
        ]


@dataclass
class CommitResult:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    inserted_ids: list[int] = field(default_factory=list)
    updated_ids: list[int] = field(default_factory=list)
    deleted_ids: list[int] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)
    undo_entry: UndoEntry | None = None

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.deleted + self.skipped + self.failed

    def raise_for_errors(self) -> None:
        if self.errors:
            raise PartialFailure(self, self.errors)


@dataclass
class PurchaseEvent:
    """One line item of one receipt."""

    name: str
    purchased_on: date
    category: str = "other"
    quantity: float = 1.0
    receipt_id: str = ""


@dataclass
class ReceiptLine:
    """A parsed receipt line as delivered by the OCR collaborator."""

    name: str
    quantity: float = 1.0
    unit: str = "piece"
    category: ReceiptCategory = ReceiptCategory.OTHER
    price: float | None = None


@dataclass
class PurchaseAggregate:
    """Purchase history of one normalized item name."""

    normalized_name: str
    name: str
    category: str
    purchase_count: int
    first_purchased_at: date
    last_purchased_at: date
    purchase_dates: list[date] = field(default_factory=list)
    avg_purchase_frequency_days: int | None = None


@dataclass
class StapleRecord:
    id: int
    owner_id: str
    normalized_name: str
    name: str
    category: str | None
    purchase_count: int
    first_purchased_at: date | None
    last_purchased_at: date | None
    avg_purchase_frequency_days: int | None
    is_staple: bool
    is_occasional: bool
    manual_override: bool = False
    never_suggest_alternative: bool = False
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def classification(self) -> str:
        if self.is_staple:
            return "staple"
        if self.is_occasional:
            return "occasional"
        return "unclassified"

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> StapleRecord:
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            normalized_name=row["normalized_name"],
            name=row["name"],
            category=row["category"],
            purchase_count=row["purchase_count"],
            first_purchased_at=_parse_date(row["first_purchased_at"]),
            last_purchased_at=_parse_date(row["last_purchased_at"]),
            avg_purchase_frequency_days=row["avg_purchase_frequency_days"],
            is_staple=bool(row["is_staple"]),
            is_occasional=bool(row["is_occasional"]),
            manual_override=bool(row["manual_override"]),
            never_suggest_alternative=bool(row["never_suggest_alternative"]),
            notes=row["notes"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )


@dataclass
class AnalysisResult:
    items_found: int = 0
    staples_identified: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    receipts_analyzed: int = 0
    top_staples: list[PurchaseAggregate] = field(default_factory=list)
    frequent_occasional: list[PurchaseAggregate] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if self.errors:
            raise PartialFailure(self, self.errors)


@dataclass
class StapleSummary:
    staples: list[StapleRecord]
    total: int = 0
    staple_count: int = 0
    occasional_count: int = 0
    unclassified_count: int = 0


@dataclass
class UndoEntry:
    import_id: str
    owner_id: str
    inserted_ids: list[int]
    created_at: datetime


@dataclass
class UndoResult:
    import_id: str
    deleted_count: int
    deleted_names: list[str] = field(default_factory=list)


@dataclass
class ImportStatus:
    import_id: str
    remaining: int
    created_at: datetime
    can_undo: bool
