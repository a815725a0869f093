"""Logging helpers for the results aggregator."""

from __future__ import annotations

import logging
from pathlib import Path


def configure_logging(level: int = logging.INFO, log_paths: list[str] | None = None, log_queries: bool = False) -> None:
    """Configure default logging if no handlers are present."""
    root = logging.getLogger()
    if not root.handlers:
        handlers: list[logging.Handler] = [logging.StreamHandler()]
        for entry in log_paths or []:
            path = Path(entry)
            path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(path, encoding="utf-8"))
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=handlers,
        )
    if log_queries:
        logging.getLogger("results_aggregator.storage.sql").setLevel(logging.DEBUG)
