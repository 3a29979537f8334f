"""
Tiny key-value store kept in a single JSON file.

Keys are tuples of strings such as ("articles", "<id>"). Listing a prefix
returns entries ordered by their key components, so secondary indexes can be
laid out as ("articles_by_tag", tag, id) and scanned with a prefix.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import config

logger = logging.getLogger(__name__)

Key = Tuple[str, ...]


class _FileState:
    """Lock and pending batch shared by every store opened on one file."""

    def __init__(self):
        self.lock = threading.RLock()
        self.batch: Optional[Dict[Key, Any]] = None


_states: Dict[Path, _FileState] = {}
_states_guard = threading.Lock()


def _state_for(path: Path) -> _FileState:
    with _states_guard:
        return _states.setdefault(path, _FileState())


def _as_key(key: Sequence[str]) -> Key:
    if isinstance(key, str) or not key:
        raise ValueError(f"Invalid key: {key!r}")
    parts = tuple(key)
    for part in parts:
        if not isinstance(part, str):
            raise ValueError(f"Key parts must be strings: {key!r}")
    return parts


class KvStore:
    def __init__(self, path: Path):
        self.path = Path(path).resolve()
        self._state = _state_for(self.path)

    def _load(self) -> Dict[Key, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
        return {tuple(item["key"]): item["value"] for item in raw.get("entries", [])}

    def _save(self, entries: Dict[Key, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "entries": [
                {"key": list(key), "value": entries[key]} for key in sorted(entries)
            ]
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def _entries(self) -> Dict[Key, Any]:
        batch = self._state.batch
        return batch if batch is not None else self._load()

    def get(self, key: Sequence[str]) -> Any:
        key = _as_key(key)
        with self._state.lock:
            return copy.deepcopy(self._entries().get(key))

    def set(self, key: Sequence[str], value: Any) -> None:
        key = _as_key(key)
        with self._state.lock:
            batch = self._state.batch
            if batch is not None:
                batch[key] = copy.deepcopy(value)
                return
            entries = self._load()
            entries[key] = value
            self._save(entries)

    def delete(self, key: Sequence[str]) -> None:
        key = _as_key(key)
        with self._state.lock:
            batch = self._state.batch
            if batch is not None:
                batch.pop(key, None)
                return
            entries = self._load()
            if key in entries:
                del entries[key]
                self._save(entries)

    def list(
        self, prefix: Sequence[str] = (), limit: Optional[int] = None
    ) -> List[Tuple[Key, Any]]:
        prefix = tuple(prefix)
        size = len(prefix)
        with self._state.lock:
            entries = self._entries()
            matched = [
                (key, copy.deepcopy(entries[key]))
                for key in sorted(entries)
                if key[:size] == prefix and len(key) > size
            ]
        if limit is not None:
            matched = matched[:limit]
        return matched

    def count(self, prefix: Sequence[str] = ()) -> int:
        return len(self.list(prefix))

    @contextmanager
    def atomic(self) -> Iterator["KvStore"]:
        """Group writes so they hit the file once, or not at all on error."""
        state = self._state
        with state.lock:
            if state.batch is not None:
                # joins the outer batch
                yield self
                return
            state.batch = self._load()
            try:
                yield self
                batch = state.batch
            finally:
                state.batch = None
            self._save(batch)
            logger.debug("Committed %d entries to %s", len(batch), self.path)


def get_kv() -> KvStore:
    return KvStore(config.KV_PATH)
