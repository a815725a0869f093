"""In-process storage counters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Any


logger = logging.getLogger("results_aggregator.storage.observability")

_REQUIRED_COUNTERS: tuple[str, ...] = (
    "written_reports",
    "stale_rejected_cache",
    "stale_rejected_database",
    "consumer_errors",
)


@dataclass
class StorageMetrics:
    counters: dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        for key in _REQUIRED_COUNTERS:
            self.counters.setdefault(key, 0)

    def bump(self, key: str, delta: int = 1) -> None:
        if key not in self.counters:
            raise ValueError(f"unsupported metric counter: {key}")
        with self._lock:
            self.counters[key] = int(self.counters.get(key, 0)) + int(delta)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(self.counters)
        return {
            "generated_at_utc": datetime.now(tz=timezone.utc).isoformat(),
            "metrics": counters,
        }

    def log_snapshot(self) -> None:
        logger.info("Storage metrics %s", self.snapshot()["metrics"])
