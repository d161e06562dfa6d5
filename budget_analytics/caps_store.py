"""Persisted monthly budget caps.

Caps are kept as ``month -> {category -> cap}`` and written through to the
injected storage on every change, under a versioned snapshot key.
"""

from __future__ import annotations

import io
from copy import deepcopy
from typing import Dict, List, Mapping, Optional

import pandas as pd

from .logging_setup import get_logger
from .parsing import normalise_header, parse_amount
from .storage import KeyValueStorage, SnapshotReadError, read_snapshot, write_snapshot

_logger = get_logger("budget_analytics.caps_store")

CAPS_KEY = "capsByMonth"

CSV_COLUMNS = ["month", "categoryChild", "capAmount"]

_CATEGORY_ALIASES = {normalise_header(name) for name in ("categoryChild", "Category", "child", "Nhóm")}
_AMOUNT_ALIASES = {normalise_header(name) for name in ("capAmount", "Cap", "amount", "Budget", "Hạn mức")}


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CapsStore:
    """Budget caps by month backed by a key/value storage.

    Args:
        storage: Storage backend (``JsonFileStorage`` or ``MemoryStorage``).
        key: Storage key for the snapshot.
    """

    def __init__(self, storage: KeyValueStorage, key: str = CAPS_KEY):
        self._storage = storage
        self._key = key
        self._caps: Dict[str, Dict[str, float]] = self._load()

    def _load(self) -> Dict[str, Dict[str, float]]:
        try:
            state = read_snapshot(self._storage, self._key)
        except SnapshotReadError as exc:
            _logger.warning("Starting with empty caps; stored snapshot unreadable: %s", exc)
            return {}
        if state is None:
            return {}

        raw = state.get("capsByMonth", {})
        if not isinstance(raw, dict):
            _logger.warning("Starting with empty caps; 'capsByMonth' is not an object")
            return {}
        caps: Dict[str, Dict[str, float]] = {}
        for month, entries in raw.items():
            if not isinstance(entries, dict):
                continue
            caps[str(month)] = {str(name): value for name, value in entries.items() if _is_number(value)}
        return caps

    def _persist(self) -> None:
        write_snapshot(self._storage, self._key, {"capsByMonth": self._caps})

    # Mutations -------------------------------------------------------------

    def set_cap(self, month: str, category: str, amount: float) -> None:
        """Record ``amount`` as the cap of ``category`` in ``month``."""
        self._caps.setdefault(month, {})[category] = amount
        self._persist()

    def set_caps(self, month: str, caps: Mapping[str, float]) -> None:
        """Merge several caps into ``month`` with a single write."""
        if not caps:
            return
        self._caps.setdefault(month, {}).update(caps)
        self._persist()

    # Queries ---------------------------------------------------------------

    def caps_for(self, month: str) -> Dict[str, float]:
        return dict(self._caps.get(month, {}))

    def get_cap(self, month: str, category: str) -> Optional[float]:
        return self._caps.get(month, {}).get(category)

    @property
    def caps_by_month(self) -> Dict[str, Dict[str, float]]:
        return deepcopy(self._caps)

    def months(self) -> List[str]:
        return sorted(self._caps)

    # CSV exchange ----------------------------------------------------------

    def export_csv(self, month: str) -> str:
        """Serialize ``month``'s caps as ``month,categoryChild,capAmount`` CSV."""
        rows = [
            (month, str(name).replace(",", " "), max(0, int(round(float(value)))))
            for name, value in self._caps.get(month, {}).items()
        ]
        frame = pd.DataFrame(rows, columns=CSV_COLUMNS)
        return frame.to_csv(index=False, lineterminator="\n")

    def import_csv(self, month: str, text: str) -> Dict[str, float]:
        """Load caps for ``month`` from CSV text and merge them into the store.

        Any month column in the file is ignored; every row lands in ``month``.
        Rows with a blank name or an unparseable amount are skipped.

        Returns:
            The caps that were applied.

        Raises:
            ValueError: When the header has no category or no amount column.
        """
        frame = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False, skipinitialspace=True)
        headers = {normalise_header(col): col for col in frame.columns}
        category_col = next((headers[h] for h in headers if h in _CATEGORY_ALIASES), None)
        amount_col = next((headers[h] for h in headers if h in _AMOUNT_ALIASES), None)
        if category_col is None or amount_col is None:
            raise ValueError(f"Caps CSV needs a category and an amount column, got {list(frame.columns)}")

        parsed: Dict[str, float] = {}
        for index, row in frame.iterrows():
            name = str(row[category_col]).strip()
            if not name:
                continue
            try:
                amount = parse_amount(row[amount_col])
            except ValueError as exc:
                _logger.warning("Skipping cap row %s: %s", index, exc)
                continue
            parsed[name] = max(0, amount)

        self.set_caps(month, parsed)
        return parsed
