"""Error taxonomy shared by the reconciliation and staples engines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class LarderError(Exception):
    """Base class for all errors surfaced to callers.

    Every subclass carries a ``kind`` tag so that an outer layer can map the
    failure without inspecting the message.
    """

    kind = "error"


class ValidationError(LarderError, ValueError):
    """Malformed observation or purchase input."""

    kind = "validation"


class NotFound(LarderError, LookupError):
    """Referenced record does not exist or is not visible to the caller."""

    kind = "not_found"


class Stale(LarderError):
    """The undo window of an import has expired."""

    kind = "stale"


class Unauthorized(LarderError, PermissionError):
    """Cross-owner access attempt."""

    kind = "unauthorized"


class StorageError(LarderError):
    """A persistence call failed for a single record."""

    kind = "storage"


@dataclass
class ItemError:
    """One failed item inside a batch operation."""

    name: str
    kind: str
    message: str
    item_id: int | None = None

    @classmethod
    def from_exception(
        cls, name: str, exc: Exception, item_id: int | None = None
    ) -> ItemError:
        kind = exc.kind if isinstance(exc, LarderError) else StorageError.kind
        return cls(name=name, kind=kind, message=str(exc), item_id=item_id)


class PartialFailure(LarderError):
    """Some items of a batch failed while others were applied.

    ``result`` is the batch result object (with its success counts) and
    ``errors`` the per-item failures.
    """

    kind = "partial_failure"

    def __init__(self, result: Any, errors: list[ItemError]) -> None:
        self.result = result
        self.errors = errors
        super().__init__(f"{len(errors)} item(s) failed")
