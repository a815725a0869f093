"""Postgres connection reuse for the storage backends.

Connections live in one registry keyed by (thread, DSN and connect options),
so each thread keeps reusing its own connection and `close_all_postgres_connections`
can release every thread's connection at shutdown.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
import json
import logging
import threading
import time
from typing import Any, Mapping

import psycopg


logger = logging.getLogger("results_aggregator.postgres_runtime")

CONNECT_RETRIES = 3
CONNECT_BACKOFF_SECONDS = 0.05

_RegistryKey = tuple[int, str]

_REGISTRY_LOCK = threading.Lock()
_REGISTRY: dict[_RegistryKey, psycopg.Connection[Any]] = {}


class _SharedConnection(AbstractContextManager[psycopg.Connection[Any]]):
    def __init__(self, dsn: str, connect_kwargs: Mapping[str, Any]) -> None:
        self._dsn = str(dsn or "").strip()
        self._connect_kwargs = dict(connect_kwargs)
        self._key: _RegistryKey = (threading.get_ident(), _options_key(self._dsn, self._connect_kwargs))
        self._connection: psycopg.Connection[Any] | None = None

    def __enter__(self) -> psycopg.Connection[Any]:
        self._connection = _checkout(self._key, self._dsn, self._connect_kwargs)
        return self._connection

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        connection, self._connection = self._connection, None
        if connection is None:
            return False
        if exc_type is not None:
            try:
                connection.rollback()
            except psycopg.Error:
                _discard(self._key)
                return False
        elif not connection.autocommit:
            try:
                connection.commit()
            except psycopg.Error:
                _discard(self._key)
                raise
        if connection.closed or connection.broken:
            _discard(self._key)
        return False


def shared_postgres_connection(dsn: str, **connect_kwargs: Any) -> AbstractContextManager[psycopg.Connection[Any]]:
    """Context manager yielding the calling thread's connection for `dsn`, connecting on first use.

    Leaving the block rolls back on error; without autocommit it commits.
    """
    return _SharedConnection(dsn, connect_kwargs)


def close_all_postgres_connections() -> int:
    """Close every registered connection; returns how many were open."""
    with _REGISTRY_LOCK:
        connections = list(_REGISTRY.values())
        _REGISTRY.clear()
    for connection in connections:
        try:
            connection.close()
        except psycopg.Error:
            logger.warning("Unable to close Postgres connection", exc_info=True)
    return len(connections)


def _options_key(dsn: str, connect_kwargs: Mapping[str, Any]) -> str:
    return json.dumps({"dsn": dsn, "kwargs": connect_kwargs}, sort_keys=True, separators=(",", ":"), default=str)


def _checkout(key: _RegistryKey, dsn: str, connect_kwargs: Mapping[str, Any]) -> psycopg.Connection[Any]:
    with _REGISTRY_LOCK:
        cached = _REGISTRY.get(key)
    if cached is not None:
        if not (cached.closed or cached.broken):
            return cached
        _discard(key)

    for attempt in range(CONNECT_RETRIES):
        try:
            connection = psycopg.connect(dsn, **dict(connect_kwargs))
        except psycopg.OperationalError:
            if attempt == CONNECT_RETRIES - 1:
                raise
            logger.warning("Postgres connect attempt %d failed, retrying", attempt + 1)
            time.sleep(CONNECT_BACKOFF_SECONDS * (2**attempt))
            continue
        with _REGISTRY_LOCK:
            _REGISTRY[key] = connection
        return connection
    raise psycopg.OperationalError("postgres connection attempt failed")


def _discard(key: _RegistryKey) -> None:
    with _REGISTRY_LOCK:
        connection = _REGISTRY.pop(key, None)
    if connection is None:
        return
    try:
        connection.close()
    except psycopg.Error:
        logger.debug("Ignoring error while closing a discarded Postgres connection", exc_info=True)
