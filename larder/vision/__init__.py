"""Vision backend base class, response parsing, and factory."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import TYPE_CHECKING

from ..errors import ValidationError
from ..models import Freshness, NutritionalType, ObservedItem, StorageCategory

if TYPE_CHECKING:
    from ..config import LarderConfig

PROMPT = """\
You are a food inventory assistant. Analyze the provided image(s) of a \
refrigerator/freezer/pantry and identify all visible food items.

For each item you can clearly identify, provide:
1. name: Be specific (e.g., "2% milk" not just "milk")
2. storage_category: One of: produce, dairy, protein, pantry, beverage, condiment, frozen
3. nutritional_type: One of: protein, carbs, fibre, misc
4. quantity: Estimated number/amount (use 1 if unsure)
5. unit: One of: piece, pack, bottle, carton, lb, oz, gallon, bunch, bag, container, can, jar
6. estimated_expiry_days: Days until typical expiry based on the item type
7. confidence: 0.0-1.0 score of how certain you are about the identification
8. freshness: One of: fresh, use_soon, expired

If you see the same item several times, list each clearly distinct one separately.

Return ONLY a valid JSON object:
{"items": [{"name": "string", "storage_category": "string", \
"nutritional_type": "string", "quantity": number, "unit": "string", \
"estimated_expiry_days": number, "confidence": number, "freshness": "string"}]}
"""


class VisionBackend(ABC):
    """Abstract base for food item detection from shelf images."""

    @abstractmethod
    async def detect_items(self, image_paths: list[str]) -> list[ObservedItem]:
        """Detect food items in one or more images.

        Items are returned as seen; duplicates are left to reconciliation.
        """
        ...


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned


def _enum_or(enum_cls, value, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def parse_response(text: str, today: date | None = None) -> list[ObservedItem]:
    """Parse a model response into observed items.

    Accepts either ``{"items": [...]}`` or a bare array, optionally wrapped
    in markdown fences.

    Raises:
        ValidationError: If the text is not the expected JSON.
    """
    today = today or date.today()
    try:
        data = json.loads(_strip_fences(text))
    except json.JSONDecodeError as e:
        raise ValidationError(f"vision response is not valid JSON: {e}") from e

    raw_items = data.get("items", []) if isinstance(data, dict) else data
    if not isinstance(raw_items, list):
        raise ValidationError("vision response has no item list")

    items: list[ObservedItem] = []
    for raw in raw_items:
        name = str(raw.get("name", "")).strip()
        if not name:
            continue
        confidence = min(max(float(raw.get("confidence", 0.0)), 0.0), 1.0)
        quantity = max(float(raw.get("quantity", 1) or 1), 0.0)
        expiry_days = raw.get("estimated_expiry_days")
        items.append(
            ObservedItem(
                name=name,
                quantity=quantity,
                unit=str(raw.get("unit") or "piece"),
                confidence=confidence,
                storage_category=_enum_or(
                    StorageCategory, raw.get("storage_category"), StorageCategory.PANTRY
                ),
                nutritional_type=NutritionalType.parse(raw.get("nutritional_type")),
                expiry_date=(
                    today + timedelta(days=int(expiry_days))
                    if expiry_days is not None
                    else None
                ),
                freshness=_enum_or(Freshness, raw.get("freshness"), Freshness.FRESH),
                purchase_date=today,
            )
        )
    return items


def create_backend(config: LarderConfig) -> VisionBackend:
    """Create a vision backend based on configuration."""
    backend_name = config.vision.backend

    match backend_name:
        case "claude":
            from .claude import ClaudeVisionBackend

            return ClaudeVisionBackend(
                api_key=config.vision.claude.api_key,
                model=config.vision.claude.model,
            )
        case "gemini":
            from .gemini import GeminiVisionBackend

            return GeminiVisionBackend(
                api_key=config.vision.gemini.api_key,
                model=config.vision.gemini.model,
            )
        case _:
            raise ValueError(
                f"unknown vision backend: {backend_name!r} "
                f"(choose claude or gemini)"
            )
