"""Schema migrations for the results storage.

Each migration is a (version, statements) tuple with monotonic versions. The
statements are plain DDL accepted by both SQLite and PostgreSQL. Only
migrations newer than the stored `results_schema.version` are executed.
"""

from __future__ import annotations

import logging

from .connection import ConnectionManager


logger = logging.getLogger("results_aggregator.storage.schema")

MIGRATION_LOCK_KEY = "results_schema_migration"

MIGRATIONS: list[tuple[int, list[str]]] = [
    (1, [
        """CREATE TABLE IF NOT EXISTS report (
            org_id          BIGINT NOT NULL,
            cluster         VARCHAR(64) NOT NULL,
            report          TEXT NOT NULL,
            reported_at     TEXT NOT NULL,
            last_checked_at TEXT NOT NULL,
            kafka_offset    BIGINT NOT NULL DEFAULT 0,
            PRIMARY KEY (org_id, cluster),
            UNIQUE (cluster)
        )""",
        "CREATE INDEX IF NOT EXISTS ix_report_org_id ON report (org_id)",
        """CREATE TABLE IF NOT EXISTS rule_hit (
            org_id          BIGINT NOT NULL,
            cluster_id      VARCHAR(64) NOT NULL,
            rule_fqdn       TEXT NOT NULL,
            error_key       TEXT NOT NULL,
            template_data   TEXT NOT NULL,
            PRIMARY KEY (org_id, cluster_id, rule_fqdn, error_key)
        )""",
        "CREATE INDEX IF NOT EXISTS ix_rule_hit_org_cluster ON rule_hit (org_id, cluster_id)",
        """CREATE TABLE IF NOT EXISTS cluster_rule_toggle (
            cluster_id      VARCHAR(64) NOT NULL,
            rule_id         TEXT NOT NULL,
            error_key       TEXT NOT NULL,
            disabled        SMALLINT NOT NULL,
            disabled_at     TEXT,
            enabled_at      TEXT,
            updated_at      TEXT,
            PRIMARY KEY (cluster_id, rule_id, error_key)
        )""",
    ]),
    (2, [
        """CREATE TABLE IF NOT EXISTS consumer_error (
            topic           TEXT NOT NULL,
            partition       INTEGER NOT NULL,
            topic_offset    BIGINT NOT NULL,
            key             TEXT,
            produced_at     TEXT,
            consumed_at     TEXT NOT NULL,
            message         TEXT,
            error           TEXT NOT NULL,
            PRIMARY KEY (topic, partition, topic_offset)
        )""",
    ]),
]

SCHEMA_VERSION = max(version for version, _ in MIGRATIONS)


def migrate_to_latest(manager: ConnectionManager) -> int:
    """Bring the schema to SCHEMA_VERSION; returns the version now stored."""
    with manager.transaction(lock_key=MIGRATION_LOCK_KEY) as conn:
        manager.execute(
            conn,
            """CREATE TABLE IF NOT EXISTS results_schema (
                id      INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL DEFAULT 0
            )""",
        )
        row = manager.fetch_one(conn, "SELECT version FROM results_schema WHERE id = 1")
        if row is None:
            manager.execute(conn, "INSERT INTO results_schema (id, version) VALUES (1, 0)")
            current = 0
        else:
            current = int(row[0] or 0)
        if current >= SCHEMA_VERSION:
            return current
        for version, statements in MIGRATIONS:
            if version <= current:
                continue
            logger.info("Migration: applying v%d (%d statements)", version, len(statements))
            for statement in statements:
                manager.execute(conn, statement)
        manager.execute(conn, "UPDATE results_schema SET version = {p1} WHERE id = 1", (SCHEMA_VERSION,))
    logger.info("Migration: schema now at v%d", SCHEMA_VERSION)
    return SCHEMA_VERSION


def current_version(manager: ConnectionManager) -> int:
    with manager.connection() as conn:
        row = manager.fetch_one(conn, "SELECT version FROM results_schema WHERE id = 1")
    return int(row[0] or 0) if row is not None else 0
