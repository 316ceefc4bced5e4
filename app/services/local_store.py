"""Small string key/value store with a byte quota.

Behaves like browser local storage: values are strings, writes past the quota
raise StorageQuotaExceeded. Optionally mirrored to a JSON file (atomic writes).
"""
from __future__ import annotations
import json
import os
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from app.scripts.logging_config import get_logger

logger = get_logger("ai_gateway")


class StorageQuotaExceeded(Exception):
    pass


def _atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding)
    os.replace(tmp, path)


class LocalStore:
    def __init__(self, max_bytes: int, path: Optional[str] = None):
        self.max_bytes = max_bytes
        self.path = Path(path) if path else None
        self._data: Dict[str, str] = {}
        self._used = 0
        self._lock = threading.RLock()
        if self.path and self.path.exists():
            try:
                loaded = json.loads(self.path.read_text("utf-8"))
                if isinstance(loaded, dict):
                    self._data = {str(k): str(v) for k, v in loaded.items()}
            except (OSError, ValueError) as e:
                logger.warning("local_store load failed path=%s err=%s", self.path, e)
        self._used = sum(self._entry_size(k, v) for k, v in self._data.items())

    @staticmethod
    def _entry_size(key: str, value: str) -> int:
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def used_bytes(self) -> int:
        with self._lock:
            return self._used

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            old = self._entry_size(key, self._data[key]) if key in self._data else 0
            new = self._entry_size(key, value)
            if self._used - old + new > self.max_bytes:
                raise StorageQuotaExceeded(f"quota {self.max_bytes} bytes exceeded writing {key}")
            self._data[key] = value
            self._used += new - old
            self._flush()

    def remove_item(self, key: str) -> None:
        self.remove_items([key])

    def remove_items(self, keys: Iterable[str]) -> int:
        """Drop several keys with a single flush."""
        removed = 0
        with self._lock:
            for key in keys:
                value = self._data.pop(key, None)
                if value is not None:
                    self._used -= self._entry_size(key, value)
                    removed += 1
            if removed:
                self._flush()
        return removed

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def _flush(self) -> None:
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write_text(self.path, json.dumps(self._data, ensure_ascii=False))
        except OSError as e:
            logger.warning("local_store flush failed path=%s err=%s", self.path, e)
