"""
Persisted key-value state.

Small string-keyed store backed by one JSON file, used to seed the widget
after a restart (presence list, visit counters, stream date, display mode).
Values are stored JSON-encoded; plain strings that are not valid JSON are
returned as-is.

Writes are atomic (temp file + fsync + replace). Last writer wins when more
than one session shares the file.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from shared.logging.logger import get_logger
from shared.storage.state_publisher import SnapshotPublisher

log = get_logger("shared.kv_store")

_MISSING = object()


class KeyValueStore:
    DEFAULT_PATH = Path("shared/state/widget_store.json")

    def __init__(self, path: Path | str | None = None):
        self._path = Path(path) if path else self.DEFAULT_PATH
        self._values: Dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except Exception as e:
            log.warning(f"Failed to read {self._path}; starting empty: {e}")
            return {}

        if not isinstance(data, dict):
            log.warning(f"{self._path} is not a JSON object; starting empty")
            return {}

        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    # ------------------------------------------------------------------
    # Atomic writer
    # ------------------------------------------------------------------

    def _write_atomic(self) -> bool:
        try:
            SnapshotPublisher.write_atomic(self._path, self._values)
        except Exception as e:
            log.error(f"Failed to write {self._path}: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def has(self, key: str) -> bool:
        return key in self._values

    def get_raw(self, key: str) -> Any:
        return self._values.get(key)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._values.get(key, _MISSING)
        if raw is _MISSING:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    def set(self, key: str, value: Any) -> bool:
        """Store value JSON-encoded; plain strings are stored verbatim."""
        self._values[key] = value if isinstance(value, str) else json.dumps(value)
        return self._write_atomic()

    def remove(self, key: str) -> bool:
        if key not in self._values:
            return True
        del self._values[key]
        return self._write_atomic()

    def keys(self):
        return list(self._values.keys())


__all__ = ["KeyValueStore"]
