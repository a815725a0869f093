from __future__ import annotations

import threading
from typing import Any

import psycopg
import pytest

import results_aggregator.postgres_runtime as runtime


class _FakePgConnection:
    def __init__(self, dsn: str, **kwargs: Any) -> None:
        self.dsn = dsn
        self.autocommit = bool(kwargs.get("autocommit", False))
        self.closed = False
        self.broken = False
        self.commits = 0
        self.rollbacks = 0

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def opened(monkeypatch: pytest.MonkeyPatch) -> list[_FakePgConnection]:
    connections: list[_FakePgConnection] = []

    def _connect(dsn: str, **kwargs: Any) -> _FakePgConnection:
        conn = _FakePgConnection(dsn, **kwargs)
        connections.append(conn)
        return conn

    monkeypatch.setattr(runtime.psycopg, "connect", _connect)
    runtime.close_all_postgres_connections()
    yield connections
    runtime.close_all_postgres_connections()


def test_connection_reused_within_thread_and_closed_at_shutdown(opened) -> None:
    with runtime.shared_postgres_connection("postgresql://db/results", autocommit=True) as first:
        pass
    with runtime.shared_postgres_connection("postgresql://db/results", autocommit=True) as second:
        pass

    other: list[Any] = []

    def _worker() -> None:
        with runtime.shared_postgres_connection("postgresql://db/results", autocommit=True) as conn:
            other.append(conn)

    thread = threading.Thread(target=_worker)
    thread.start()
    thread.join()

    assert first is second
    assert other[0] is not first
    assert len(opened) == 2
    assert runtime.close_all_postgres_connections() == 2
    assert all(conn.closed for conn in opened)


def test_exit_commits_or_rolls_back_without_autocommit(opened) -> None:
    with runtime.shared_postgres_connection("postgresql://db/results") as conn:
        pass
    with pytest.raises(RuntimeError):
        with runtime.shared_postgres_connection("postgresql://db/results"):
            raise RuntimeError("boom")

    assert conn.commits == 1
    assert conn.rollbacks == 1


def test_closed_connection_is_replaced(opened) -> None:
    with runtime.shared_postgres_connection("postgresql://db/results", autocommit=True) as conn:
        conn.closed = True
    with runtime.shared_postgres_connection("postgresql://db/results", autocommit=True) as fresh:
        pass

    assert fresh is not conn
    assert len(opened) == 2


def test_connect_retries_then_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: list[str] = []

    def _failing(dsn: str, **kwargs: Any) -> Any:
        attempts.append(dsn)
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr(runtime.psycopg, "connect", _failing)
    monkeypatch.setattr(runtime, "CONNECT_BACKOFF_SECONDS", 0.0)

    with pytest.raises(psycopg.OperationalError):
        with runtime.shared_postgres_connection("postgresql://down/results"):
            pass
    assert len(attempts) == runtime.CONNECT_RETRIES
