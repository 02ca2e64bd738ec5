"""TOML configuration loader for larder."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .models import DuplicatePolicy, MergeMode

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

DEFAULT_DB_PATH = "~/.config/larder/larder.db"


@dataclass
class DatabaseConfig:
    path: str = DEFAULT_DB_PATH


@dataclass
class HouseholdConfig:
    owner_id: str = "default"


@dataclass
class ReconcileConfig:
    confidence_threshold: float = 0.7
    duplicates: DuplicatePolicy = DuplicatePolicy.KEEP
    merge_mode: MergeMode = MergeMode.REPLACE


@dataclass
class UndoConfig:
    window_hours: float = 24.0


@dataclass
class StaplesConfig:
    min_purchases: int = 3
    sticky_overrides: bool = False
    top_staples_limit: int = 20
    occasional_limit: int = 10


@dataclass
class ClaudeVisionConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class GeminiVisionConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class VisionConfig:
    backend: str = "gemini"
    min_confidence: float = 0.0
    claude: ClaudeVisionConfig = field(default_factory=ClaudeVisionConfig)
    gemini: GeminiVisionConfig = field(default_factory=GeminiVisionConfig)


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class LarderConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    household: HouseholdConfig = field(default_factory=HouseholdConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    undo: UndoConfig = field(default_factory=UndoConfig)
    staples: StaplesConfig = field(default_factory=StaplesConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _enum_value(enum_cls, raw, default):
    if raw is None:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        choices = " / ".join(m.value for m in enum_cls)
        raise ValueError(
            f"invalid {enum_cls.__name__} value: {raw!r} (choose from {choices})"
        ) from None


def load_config(path: str | Path | None = None) -> LarderConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys and the database path can be overridden via environment
    variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    dbs = raw.get("database", {})
    hh = raw.get("household", {})
    rec = raw.get("reconcile", {})
    und = raw.get("undo", {})
    stp = raw.get("staples", {})
    vis = raw.get("vision", {})
    lg = raw.get("logging", {})

    claude_cfg = vis.get("claude", {})
    gemini_cfg = vis.get("gemini", {})

    # Resolve API keys: config file → environment variable
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )

    # Environment variable → config file → default
    db_path = os.environ.get("LARDER_DB_PATH") or dbs.get("path", DEFAULT_DB_PATH)

    threshold = float(rec.get("confidence_threshold", 0.7))
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"confidence_threshold must be within 0..1: {threshold}")

    return LarderConfig(
        database=DatabaseConfig(path=db_path),
        household=HouseholdConfig(owner_id=hh.get("owner_id", "default")),
        reconcile=ReconcileConfig(
            confidence_threshold=threshold,
            duplicates=_enum_value(
                DuplicatePolicy, rec.get("duplicates"), DuplicatePolicy.KEEP
            ),
            merge_mode=_enum_value(
                MergeMode, rec.get("merge_mode"), MergeMode.REPLACE
            ),
        ),
        undo=UndoConfig(window_hours=float(und.get("window_hours", 24.0))),
        staples=StaplesConfig(
            min_purchases=int(stp.get("min_purchases", 3)),
            sticky_overrides=bool(stp.get("sticky_overrides", False)),
            top_staples_limit=int(stp.get("top_staples_limit", 20)),
            occasional_limit=int(stp.get("occasional_limit", 10)),
        ),
        vision=VisionConfig(
            backend=vis.get("backend", "gemini"),
            min_confidence=vis.get("min_confidence", 0.0),
            claude=ClaudeVisionConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
            gemini=GeminiVisionConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
            ),
        ),
        logging=LoggingConfig(level=str(lg.get("level", "WARNING")).upper()),
    )
