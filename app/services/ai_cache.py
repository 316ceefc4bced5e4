"""Content-addressed, time-expiring cache of AI results.

Keys are sha256 digests of a canonical JSON payload (operation + normalized
inputs). Entries live in a LocalStore under CACHE_PREFIX as
``{"value": ..., "expires_at": epoch_seconds}``.
"""
from __future__ import annotations
import hashlib
import json
import math
import threading
import time
from typing import Any, Callable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.scripts.logging_config import get_logger
from .local_store import LocalStore, StorageQuotaExceeded

CACHE_PREFIX = "ai_cache:"

logger = get_logger("ai_gateway")

T = TypeVar("T", bound=BaseModel)


def _canonical(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def make_key(operation: str, payload: Any) -> str:
    digest = hashlib.sha256(_canonical({"op": operation, "payload": payload}).encode("utf-8")).hexdigest()
    return f"{CACHE_PREFIX}{digest}"


def make_symmetric_key(operation: str, a: Any, b: Any) -> str:
    """Same key for (a, b) and (b, a)."""
    pair = sorted([_canonical(a), _canonical(b)])
    return make_key(operation, pair)


class AICache:
    def __init__(self, store: LocalStore, ttl_seconds: float,
                 prune_fraction: float = 0.3, clock: Callable[[], float] = time.time):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.prune_fraction = prune_fraction
        self.clock = clock
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None

    def _read_entry(self, key: str) -> Optional[dict]:
        raw = self.store.get_item(key)
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(entry, dict) or "expires_at" not in entry:
            return None
        return entry

    def get(self, key: str, model: Optional[Type[T]] = None):
        with self._lock:
            entry = self._read_entry(key)
            if entry is None:
                if self.store.get_item(key) is not None:
                    self.store.remove_item(key)
                return None
            if float(entry["expires_at"]) <= self.clock():
                self.store.remove_item(key)
                return None
            value = entry.get("value")
        if model is None:
            return value
        try:
            return model.model_validate(value)
        except ValidationError:
            logger.warning("cache entry failed validation key=%s model=%s", key[-12:], model.__name__)
            self.store.remove_item(key)
            return None

    def set(self, key: str, value: Any) -> bool:
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        raw = json.dumps({"value": value, "expires_at": self.clock() + self.ttl_seconds}, ensure_ascii=False)
        with self._lock:
            try:
                self.store.set_item(key, raw)
                return True
            except StorageQuotaExceeded:
                removed = self.prune(force_free_space=True)
                logger.info("cache quota hit, pruned=%d", removed)
            try:
                self.store.set_item(key, raw)
                return True
            except StorageQuotaExceeded:
                logger.warning("cache write dropped after prune key=%s bytes=%d", key[-12:], len(raw))
                return False

    def prune(self, force_free_space: bool = False) -> int:
        now = self.clock()
        with self._lock:
            doomed: List[str] = []
            live = []
            for key in self.store.keys():
                if not key.startswith(CACHE_PREFIX):
                    continue
                entry = self._read_entry(key)
                if entry is None or float(entry["expires_at"]) <= now:
                    doomed.append(key)
                    continue
                live.append((float(entry["expires_at"]), key))
            if force_free_space and live:
                live.sort()
                doomed.extend(key for _, key in live[:math.ceil(len(live) * self.prune_fraction)])
            removed = self.store.remove_items(doomed)
        if removed:
            logger.info("cache prune removed=%d force=%s", removed, force_free_space)
        return removed

    def clear(self) -> int:
        with self._lock:
            return self.store.remove_items([k for k in self.store.keys() if k.startswith(CACHE_PREFIX)])

    def schedule_prune(self, delay_seconds: float) -> threading.Timer:
        """Prune once in the background, shortly after startup."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = threading.Timer(delay_seconds, self.prune)
        self._timer.daemon = True
        self._timer.start()
        return self._timer

    def cancel_scheduled_prune(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
