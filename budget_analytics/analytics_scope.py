"""Which categories count towards analytics, globally or per month.

State changes are pure functions over :class:`AnalyticsScopeState`;
:class:`AnalyticsScopeStore` owns the current state, persists it after every
change and performs the one-time migration of the legacy exclusion list.
Exclusions are tracked by child category name only.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .logging_setup import get_logger
from .models import Tx
from .storage import KeyValueStorage, SnapshotReadError, read_snapshot, write_snapshot
from .taxonomy import DEFAULT_TAXONOMY, Taxonomy

_logger = get_logger("budget_analytics.analytics_scope")

SCOPE_KEY = "analyticsScopeV2"
LEGACY_KEY = "excludedChildren"

MODE_GLOBAL = "global"
MODE_PER_MONTH = "per-month"
MODES = (MODE_GLOBAL, MODE_PER_MONTH)


class MigrationReadFailure(ValueError):
    """The legacy exclusion list exists but is not a JSON list of strings."""


def _unique(names: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(names))


@dataclass(frozen=True)
class AnalyticsScopeState:
    mode: str = MODE_GLOBAL
    global_excluded: Tuple[str, ...] = ()
    by_month: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "global": list(self.global_excluded),
            "byMonth": {month: list(names) for month, names in self.by_month.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalyticsScopeState":
        """Build a state from its persisted form; raises ``ValueError`` if malformed."""
        mode = data.get("mode", MODE_GLOBAL)
        if mode not in MODES:
            raise ValueError(f"unknown scope mode {mode!r}")
        global_raw = data.get("global", [])
        by_month_raw = data.get("byMonth", {})
        if not _is_name_list(global_raw) or not isinstance(by_month_raw, dict):
            raise ValueError("scope state has malformed 'global' or 'byMonth'")
        by_month: Dict[str, Tuple[str, ...]] = {}
        for month, names in by_month_raw.items():
            if not _is_name_list(names):
                raise ValueError(f"scope state has malformed exclusions for {month!r}")
            by_month[str(month)] = _unique(names)
        return cls(mode=mode, global_excluded=_unique(global_raw), by_month=by_month)


def _is_name_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


# Reducers ------------------------------------------------------------------


def excluded_for(state: AnalyticsScopeState, month: Optional[str] = None) -> Tuple[str, ...]:
    """Children excluded in the active namespace.

    ``month`` is ignored in global mode and required in per-month mode.
    """
    if state.mode == MODE_GLOBAL:
        return state.global_excluded
    if not month:
        raise ValueError("a month is required in per-month mode")
    return state.by_month.get(month, ())


def _with_excluded(state: AnalyticsScopeState, month: Optional[str], names: Sequence[str]) -> AnalyticsScopeState:
    if state.mode == MODE_GLOBAL:
        return replace(state, global_excluded=_unique(names))
    if not month:
        raise ValueError("a month is required in per-month mode")
    by_month = dict(state.by_month)
    if names:
        by_month[month] = _unique(names)
    else:
        by_month.pop(month, None)
    return replace(state, by_month=by_month)


def set_mode(state: AnalyticsScopeState, mode: str) -> AnalyticsScopeState:
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
    return replace(state, mode=mode)


def toggle_child(state: AnalyticsScopeState, child: str, month: Optional[str] = None) -> AnalyticsScopeState:
    current = excluded_for(state, month)
    if child in current:
        return _with_excluded(state, month, [name for name in current if name != child])
    return _with_excluded(state, month, [*current, child])


def include_all(state: AnalyticsScopeState, month: Optional[str] = None) -> AnalyticsScopeState:
    excluded_for(state, month)
    return _with_excluded(state, month, [])


def exclude_all(state: AnalyticsScopeState, all_children: Iterable[str], month: Optional[str] = None) -> AnalyticsScopeState:
    excluded_for(state, month)
    return _with_excluded(state, month, list(all_children))


def include_children(state: AnalyticsScopeState, children: Iterable[str], month: Optional[str] = None) -> AnalyticsScopeState:
    drop = set(children)
    return _with_excluded(state, month, [name for name in excluded_for(state, month) if name not in drop])


def exclude_children(state: AnalyticsScopeState, children: Iterable[str], month: Optional[str] = None) -> AnalyticsScopeState:
    return _with_excluded(state, month, [*excluded_for(state, month), *children])


# Legacy migration ----------------------------------------------------------


def parse_legacy_exclusions(raw: str) -> List[str]:
    """Parse the legacy ``excludedChildren`` value (a JSON list of names)."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MigrationReadFailure(f"legacy exclusions are not JSON: {exc}") from exc
    if not _is_name_list(value):
        raise MigrationReadFailure("legacy exclusions must be a list of strings")
    return list(_unique(value))


def migrate_legacy_exclusions(storage: KeyValueStorage, legacy_key: str = LEGACY_KEY) -> Optional[List[str]]:
    """Return the legacy exclusion list, or ``None`` when absent or unreadable.

    A malformed value is logged and left in storage untouched.
    """
    raw = storage.get_item(legacy_key)
    if raw is None:
        return None
    try:
        return parse_legacy_exclusions(raw)
    except MigrationReadFailure as exc:
        _logger.warning("Skipping migration of %r: %s", legacy_key, exc)
        return None


# Store ---------------------------------------------------------------------


class AnalyticsScopeStore:
    """Persisted analytics scope with legacy migration at construction.

    Args:
        storage: Key/value storage backend.
        taxonomy: Taxonomy used to expand parents into children.
        key: Snapshot key.
        legacy_key: Key of the pre-V2 global exclusion list.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        taxonomy: Optional[Taxonomy] = None,
        key: str = SCOPE_KEY,
        legacy_key: str = LEGACY_KEY,
    ):
        self._storage = storage
        self._taxonomy = taxonomy or DEFAULT_TAXONOMY
        self._key = key
        self._legacy_key = legacy_key
        self._state = self._initialise()

    def _load_snapshot(self) -> Optional[AnalyticsScopeState]:
        try:
            data = read_snapshot(self._storage, self._key)
            return None if data is None else AnalyticsScopeState.from_dict(data)
        except (SnapshotReadError, ValueError) as exc:
            _logger.warning("Ignoring unreadable scope snapshot %r: %s", self._key, exc)
            return None

    def _initialise(self) -> AnalyticsScopeState:
        state = self._load_snapshot()
        legacy = migrate_legacy_exclusions(self._storage, self._legacy_key)
        if legacy is None:
            return state or AnalyticsScopeState()

        if state is None:
            state = AnalyticsScopeState(global_excluded=tuple(legacy))
            write_snapshot(self._storage, self._key, state.to_dict())
            _logger.info("Migrated %d legacy exclusions into %r", len(legacy), self._key)
        self._storage.remove_item(self._legacy_key)
        return state

    def _apply(self, state: AnalyticsScopeState) -> None:
        self._state = state
        write_snapshot(self._storage, self._key, state.to_dict())

    def _children_of(self, parent: str) -> Tuple[str, ...]:
        children = self._taxonomy.children_of(parent)
        if not children:
            raise ValueError(f"Unknown parent category {parent!r}")
        return children

    # Accessors -------------------------------------------------------------

    @property
    def state(self) -> AnalyticsScopeState:
        return self._state

    @property
    def mode(self) -> str:
        return self._state.mode

    @property
    def global_excluded(self) -> List[str]:
        return list(self._state.global_excluded)

    @property
    def by_month(self) -> Dict[str, List[str]]:
        return {month: list(names) for month, names in self._state.by_month.items()}

    def get_excluded_set(self, month: Optional[str] = None) -> Set[str]:
        return set(excluded_for(self._state, month))

    def get_included_count(self, month: Optional[str], all_children: Iterable[str]) -> int:
        excluded = self.get_excluded_set(month)
        return sum(1 for child in all_children if child not in excluded)

    def filter_transactions(self, transactions: Iterable[Tx]) -> List[Tx]:
        """Drop transactions whose child is excluded for their own month."""
        if self._state.mode == MODE_GLOBAL:
            excluded = set(self._state.global_excluded)
            return [tx for tx in transactions if tx.category_child not in excluded]
        return [tx for tx in transactions if tx.category_child not in self._state.by_month.get(tx.month, ())]

    # Mutations -------------------------------------------------------------

    def set_mode(self, mode: str) -> None:
        self._apply(set_mode(self._state, mode))

    def toggle_child(self, child: str, month: Optional[str] = None) -> None:
        self._apply(toggle_child(self._state, child, month))

    def include_all(self, month: Optional[str] = None) -> None:
        self._apply(include_all(self._state, month))

    def exclude_all(self, all_children: Iterable[str], month: Optional[str] = None) -> None:
        """Exclude every name in ``all_children``; the caller owns the full list."""
        self._apply(exclude_all(self._state, all_children, month))

    def reset(self, month: Optional[str] = None) -> None:
        self.include_all(month)

    def include_parent(self, parent: str, month: Optional[str] = None) -> None:
        self._apply(include_children(self._state, self._children_of(parent), month))

    def exclude_parent(self, parent: str, month: Optional[str] = None) -> None:
        self._apply(exclude_children(self._state, self._children_of(parent), month))
