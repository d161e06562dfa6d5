"""Configuration management for the budget analytics engine.

This module centralizes all configuration values including paths,
numeric policy defaults, and environment variable overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

# Base project root - assumes this file is in budget_analytics/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directory
DATA_DIR = Path(os.getenv("BUDGET_DATA_DIR", _PROJECT_ROOT / "data"))

# Durable key/value store (the localStorage equivalent)
STORE_PATH = Path(
    os.getenv("BUDGET_STORE_PATH", DATA_DIR / "budget_store.json")
).resolve()

# Optional JSON taxonomy overriding the built-in category mapping
_taxonomy_env = os.getenv("BUDGET_TAXONOMY_PATH")
TAXONOMY_PATH: Optional[Path] = Path(_taxonomy_env).resolve() if _taxonomy_env else None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Maximum relative change of a suggested cap against the prior cap
GUARDRAIL_PCT = _env_float("BUDGET_GUARDRAIL_PCT", 0.2)

# Net income assumed for display helpers when a month has no income rows
DEFAULT_NET = _env_int("BUDGET_DEFAULT_NET", 0)

# Number of prior months averaged into a cap suggestion baseline
TRAILING_MONTHS = _env_int("BUDGET_TRAILING_MONTHS", 3)


def get_data_dir() -> Path:
    """Get the data directory (``BUDGET_DATA_DIR`` is re-read on each call)."""
    override = os.getenv("BUDGET_DATA_DIR")
    return Path(override) if override else DATA_DIR


def ensure_data_directories() -> None:
    """Create the data directory and the store's parent if they don't exist."""
    for directory in [get_data_dir(), Path(get_store_path()).parent]:
        directory.mkdir(parents=True, exist_ok=True)


def get_store_path() -> str:
    """Get the store path as a string (``BUDGET_STORE_PATH`` is re-read on each call)."""
    override = os.getenv("BUDGET_STORE_PATH")
    return str(Path(override).resolve()) if override else str(STORE_PATH)
