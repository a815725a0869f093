"""SQL dialect strategies for the supported storage backends.

Statements are written once with positional `{pN}` placeholders and rendered
for the selected backend: `?` for SQLite, `%s` for PostgreSQL. A placeholder
may appear several times in one statement; parameters are reordered to match.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Sequence, TYPE_CHECKING

from .errors import UnsupportedBackendError

if TYPE_CHECKING:
    from .config import StorageConfig


BACKEND_SQLITE = "sqlite"
BACKEND_POSTGRES = "postgres"
SUPPORTED_BACKENDS: tuple[str, ...] = (BACKEND_SQLITE, BACKEND_POSTGRES)

_PLACEHOLDER_PATTERN = re.compile(r"\{p(\d+)\}")

_TOGGLE_UPSERT = """
    INSERT INTO cluster_rule_toggle (
        cluster_id, rule_id, error_key, disabled, disabled_at, enabled_at, updated_at
    ) VALUES ({p1}, {p2}, {p3}, {p4}, {p5}, {p6}, {p7})
    ON CONFLICT (cluster_id, rule_id, error_key) DO UPDATE SET
        disabled = excluded.disabled,
        disabled_at = COALESCE(excluded.disabled_at, cluster_rule_toggle.disabled_at),
        enabled_at = COALESCE(excluded.enabled_at, cluster_rule_toggle.enabled_at),
        updated_at = excluded.updated_at
"""


@dataclass(frozen=True)
class Dialect:
    name: str
    placeholder: str

    def render(self, sql: str) -> str:
        return _PLACEHOLDER_PATTERN.sub(self.placeholder, sql)

    def bind(self, sql: str, params: Sequence[Any] = ()) -> tuple[str, tuple[Any, ...]]:
        return self.render(sql), _ordered_params(sql, tuple(params))

    def connection_string(self, config: "StorageConfig") -> str:
        raise NotImplementedError

    def upsert_report_statement(self) -> str:
        raise NotImplementedError

    def upsert_rule_hit_statement(self) -> str:
        raise NotImplementedError

    def upsert_toggle_statement(self) -> str:
        return _TOGGLE_UPSERT

    def cluster_lock_statement(self) -> str | None:
        """Statement serializing writers of one cluster inside a transaction, if any."""
        return None

    def begin_statement(self) -> str | None:
        """Explicit transaction start, for drivers running in autocommit mode."""
        return None


@dataclass(frozen=True)
class SqliteDialect(Dialect):
    name: str = BACKEND_SQLITE
    placeholder: str = "?"

    def connection_string(self, config: "StorageConfig") -> str:
        return sqlite_path(config.data_source)

    def upsert_report_statement(self) -> str:
        return """
            INSERT OR REPLACE INTO report (
                org_id, cluster, report, reported_at, last_checked_at, kafka_offset
            ) VALUES ({p1}, {p2}, {p3}, {p4}, {p5}, {p6})
        """

    def upsert_rule_hit_statement(self) -> str:
        return """
            INSERT OR REPLACE INTO rule_hit (
                org_id, cluster_id, rule_fqdn, error_key, template_data
            ) VALUES ({p1}, {p2}, {p3}, {p4}, {p5})
        """

    def begin_statement(self) -> str | None:
        # Takes the database write lock up front so the staleness re-check
        # and the upsert run without another writer in between.
        return "BEGIN IMMEDIATE"


@dataclass(frozen=True)
class PostgresDialect(Dialect):
    name: str = BACKEND_POSTGRES
    placeholder: str = "%s"

    def connection_string(self, config: "StorageConfig") -> str:
        if config.data_source:
            return config.data_source
        return (
            f"postgresql://{config.pg_username}:{config.pg_password}"
            f"@{config.pg_host}:{config.pg_port}/{config.pg_db_name}?{config.pg_params}"
        )

    def upsert_report_statement(self) -> str:
        return """
            INSERT INTO report (
                org_id, cluster, report, reported_at, last_checked_at, kafka_offset
            ) VALUES ({p1}, {p2}, {p3}, {p4}, {p5}, {p6})
            ON CONFLICT (cluster) DO UPDATE SET
                org_id = excluded.org_id,
                report = excluded.report,
                reported_at = excluded.reported_at,
                last_checked_at = excluded.last_checked_at,
                kafka_offset = excluded.kafka_offset
        """

    def upsert_rule_hit_statement(self) -> str:
        return """
            INSERT INTO rule_hit (
                org_id, cluster_id, rule_fqdn, error_key, template_data
            ) VALUES ({p1}, {p2}, {p3}, {p4}, {p5})
            ON CONFLICT (org_id, cluster_id, rule_fqdn, error_key) DO UPDATE SET
                template_data = excluded.template_data
        """

    def cluster_lock_statement(self) -> str | None:
        return "SELECT pg_advisory_xact_lock(hashtext(CAST({p1} AS TEXT)))"


def dialect_for(backend: str | None) -> Dialect:
    name = str(backend or "").strip().lower()
    if name in {"sqlite", "sqlite3"}:
        return SqliteDialect()
    if name in {"postgres", "postgresql"}:
        return PostgresDialect()
    raise UnsupportedBackendError(backend)


def in_clause(start: int, count: int) -> str:
    """Placeholder list `{pS}, {pS+1}, ...` for a batch predicate of `count` values."""
    if count < 1:
        raise ValueError("in clause requires at least one value")
    return ", ".join(f"{{p{idx}}}" for idx in range(start, start + count))


def is_postgres_dsn(value: str | None) -> bool:
    if not value:
        return False
    return value.startswith("postgres://") or value.startswith("postgresql://")


def sqlite_path(locator: str) -> str:
    text = str(locator or "").strip()
    if text.startswith("sqlite:///"):
        return text[len("sqlite:///") :]
    if text.startswith("sqlite://"):
        return text[len("sqlite://") :]
    return text


def _ordered_params(sql: str, params: tuple[Any, ...]) -> tuple[Any, ...]:
    if not params:
        return tuple()
    ordered: list[Any] = []
    for token in _PLACEHOLDER_PATTERN.findall(sql):
        idx = int(token) - 1
        if idx < 0 or idx >= len(params):
            raise ValueError(f"placeholder index out of range: p{token}")
        ordered.append(params[idx])
    return tuple(ordered)
