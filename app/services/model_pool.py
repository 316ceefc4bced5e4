"""Ordered model registry with session bans and rate-limit cooldowns.

Bans last for the process lifetime (a restart clears them). Cooldowns expire
after ``cooldown_seconds``. If filtering would leave nothing, the full registry is
returned so callers always have a model to try.
"""
from __future__ import annotations
import threading
import time
from typing import Callable, Dict, List, Set

from app.scripts.logging_config import get_logger, log_ai_event

logger = get_logger("ai_gateway")


class ModelPool:
    def __init__(self, models: List[str], cooldown_seconds: float = 60.0,
                 clock: Callable[[], float] = time.time):
        seen: Set[str] = set()
        self.models: List[str] = [m for m in models if not (m in seen or seen.add(m))]
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self._banned: Set[str] = set()
        self._cooldown_until: Dict[str, float] = {}
        self._lock = threading.RLock()

    def get_available_models(self) -> List[str]:
        now = self.clock()
        with self._lock:
            available = [
                m for m in self.models
                if m not in self._banned and self._cooldown_until.get(m, 0.0) <= now
            ]
            if not available:
                if self.models:
                    logger.warning("model pool fully excluded, degrading to full list size=%d", len(self.models))
                return list(self.models)
            return available

    def ban_model(self, model: str) -> None:
        with self._lock:
            if model not in self._banned:
                self._banned.add(model)
                log_ai_event("model_banned", {"model": model, "scope": "session"}, logger=logger)

    def mark_model_busy(self, model: str) -> None:
        with self._lock:
            until = self.clock() + self.cooldown_seconds
            self._cooldown_until[model] = until
        log_ai_event("model_cooldown", {"model": model, "seconds": self.cooldown_seconds}, logger=logger)

    def is_banned(self, model: str) -> bool:
        with self._lock:
            return model in self._banned

    def cooldown_remaining(self, model: str) -> float:
        with self._lock:
            return max(0.0, self._cooldown_until.get(model, 0.0) - self.clock())

    def reset(self) -> None:
        with self._lock:
            self._banned.clear()
            self._cooldown_until.clear()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "models": list(self.models),
                "available": self.get_available_models(),
                "banned": sorted(self._banned),
                "cooling_down": {m: round(self.cooldown_remaining(m), 1)
                                 for m in self.models if self.cooldown_remaining(m) > 0},
            }
