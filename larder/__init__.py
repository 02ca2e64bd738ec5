"""Household food tracking: inventory reconciliation, undo and staples."""

from .config import LarderConfig, load_config
from .errors import (
    ItemError,
    LarderError,
    NotFound,
    PartialFailure,
    Stale,
    StorageError,
    Unauthorized,
    ValidationError,
)
from .history import PurchaseHistoryAggregator, average_gap_days
from .models import (
    AnalysisResult,
    CommitResult,
    DuplicatePolicy,
    InventoryItem,
    Location,
    MergeMode,
    ObservedItem,
    PurchaseEvent,
    ReceiptLine,
    RemovalReason,
    ReviewItem,
    ReviewList,
    StapleFilter,
    StapleRecord,
    UndoEntry,
    UndoResult,
)
from .normalize import normalize, same_item
from .reconcile import ObservationReconciler
from .service import PantryService
from .staples import StapleClassifier, is_staple
from .undo import UndoLedger

__all__ = [
    "PantryService",
    "ObservationReconciler",
    "UndoLedger",
    "StapleClassifier",
    "PurchaseHistoryAggregator",
    "normalize",
    "same_item",
    "average_gap_days",
    "is_staple",
    "Location",
    "MergeMode",
    "DuplicatePolicy",
    "RemovalReason",
    "StapleFilter",
    "InventoryItem",
    "ObservedItem",
    "ReviewItem",
    "ReviewList",
    "CommitResult",
    "PurchaseEvent",
    "ReceiptLine",
    "StapleRecord",
    "AnalysisResult",
    "UndoEntry",
    "UndoResult",
    "LarderError",
    "ValidationError",
    "NotFound",
    "Stale",
    "Unauthorized",
    "StorageError",
    "PartialFailure",
    "ItemError",
    "LarderConfig",
    "load_config",
]
