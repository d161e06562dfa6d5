"""Durable string key/value storage used by the stores.

The interface mirrors browser ``localStorage``: string keys map to string
values (the stores serialize their own JSON envelopes). ``JsonFileStorage``
keeps every key in a single JSON document on disk; ``MemoryStorage`` is the
in-process equivalent used by tests and throwaway sessions.
"""

from __future__ import annotations

import contextlib
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Protocol, Union

from .logging_setup import get_logger

_logger = get_logger("budget_analytics.storage")


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MemoryStorage:
    """Dictionary backed storage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._items))

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


class JsonFileStorage:
    """Store all keys in one JSON object on disk.

    The file is re-read on every access so several processes (or store
    objects) sharing a path see each other's writes; the last writer wins.
    Writes go to a ``.tmp`` sibling first and are moved into place with
    ``os.replace``.

    Args:
        path: Location of the JSON document. Parent directories are created
            on first write.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            _logger.warning("Ignoring unreadable store file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            _logger.warning("Ignoring store file %s: expected a JSON object", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, items: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(items, ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self.path)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = str(value)
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._save(items)

    def keys(self) -> Iterator[str]:
        return iter(list(self._load()))

    def __contains__(self, key: object) -> bool:
        return key in self._load()


def default_storage() -> JsonFileStorage:
    """Storage at ``config.get_store_path()``."""
    from . import config

    return JsonFileStorage(config.get_store_path())


# Versioned snapshots -------------------------------------------------------

SNAPSHOT_VERSION = 1


class SnapshotReadError(ValueError):
    """A persisted snapshot exists but is not a readable envelope."""


def read_snapshot(storage: KeyValueStorage, key: str) -> Optional[Dict[str, Any]]:
    """Return the ``state`` object persisted under ``key`` or ``None`` if absent.

    Raises:
        SnapshotReadError: The value is not JSON or not a
            ``{"state": {...}, "version": n}`` envelope.
    """
    raw = storage.get_item(key)
    if raw is None:
        return None
    try:
        envelope = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SnapshotReadError(f"{key}: invalid JSON ({exc})") from exc
    if not isinstance(envelope, dict) or not isinstance(envelope.get("state"), dict):
        raise SnapshotReadError(f"{key}: expected an object with a 'state' object")
    return envelope["state"]


def write_snapshot(storage: KeyValueStorage, key: str, state: Dict[str, Any], version: int = SNAPSHOT_VERSION) -> None:
    storage.set_item(key, json.dumps({"state": state, "version": version}, ensure_ascii=False))
