"""SQLite database module for inventory, purchase history and staples."""

from .base import Repository
from .inventory import InventoryDB
from .purchases import PurchaseHistoryDB
from .schema import ensure_schema
from .staples import StapleDB
from .undo import UndoDB

__all__ = [
    "InventoryDB",
    "PurchaseHistoryDB",
    "Repository",
    "StapleDB",
    "UndoDB",
    "ensure_schema",
]
