"""Read paths over stored reports and rule hits."""

from __future__ import annotations

from datetime import datetime
import json
import logging
from typing import Any, Sequence

from .connection import ConnectionManager
from .contracts import RuleOnReport, format_timestamp, parse_timestamp
from .dialects import in_clause
from .errors import NotFoundError


logger = logging.getLogger("results_aggregator.storage.queries")


def decode_template_data(raw: bytes | str | None) -> Any:
    """Parse template data as JSON, falling back to the raw bytes when it is not."""
    if raw is None:
        return b""
    data = raw.encode("utf-8") if isinstance(raw, str) else bytes(raw)
    try:
        return json.loads(data)
    except ValueError as exc:
        logger.warning("unable to parse template data as json: %s", exc)
        return data


class QueryEngine:
    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager

    def list_orgs(self) -> list[int]:
        with self.manager.connection() as conn:
            rows = self.manager.fetch_all(conn, "SELECT DISTINCT org_id FROM report ORDER BY org_id")
        return [int(row[0]) for row in rows]

    def list_clusters_for_org(self, org_id: int, since: datetime) -> list[str]:
        with self.manager.connection() as conn:
            rows = self.manager.fetch_all(
                conn,
                """
                SELECT cluster
                FROM report
                WHERE org_id = {p1} AND reported_at >= {p2}
                ORDER BY cluster
                """,
                (org_id, format_timestamp(since)),
            )
        return [str(row[0]) for row in rows]

    def read_report(self, org_id: int, cluster: str) -> tuple[list[RuleOnReport], datetime]:
        with self.manager.connection() as conn:
            row = self.manager.fetch_one(
                conn,
                "SELECT last_checked_at FROM report WHERE org_id = {p1} AND cluster = {p2}",
                (org_id, cluster),
            )
            if row is None:
                raise NotFoundError((org_id, cluster))
            rows = self.manager.fetch_all(
                conn,
                """
                SELECT template_data, rule_fqdn, error_key
                FROM rule_hit
                WHERE org_id = {p1} AND cluster_id = {p2}
                ORDER BY rule_fqdn, error_key
                """,
                (org_id, cluster),
            )
        return _rule_rows(rows), parse_timestamp(row[0])

    def read_report_by_cluster(self, cluster: str) -> tuple[list[RuleOnReport], datetime]:
        with self.manager.connection() as conn:
            row = self.manager.fetch_one(
                conn,
                "SELECT last_checked_at FROM report WHERE cluster = {p1}",
                (cluster,),
            )
            if row is None:
                raise NotFoundError(cluster)
            rows = self.manager.fetch_all(
                conn,
                """
                SELECT template_data, rule_fqdn, error_key
                FROM rule_hit
                WHERE cluster_id = {p1}
                ORDER BY rule_fqdn, error_key
                """,
                (cluster,),
            )
        return _rule_rows(rows), parse_timestamp(row[0])

    def read_single_rule_template_data(self, org_id: int, cluster: str, rule_fqdn: str, error_key: str) -> Any:
        with self.manager.connection() as conn:
            row = self.manager.fetch_one(
                conn,
                """
                SELECT template_data
                FROM rule_hit
                WHERE org_id = {p1} AND cluster_id = {p2} AND rule_fqdn = {p3} AND error_key = {p4}
                """,
                (org_id, cluster, rule_fqdn, error_key),
            )
        if row is None:
            raise NotFoundError((org_id, cluster, rule_fqdn, error_key))
        return decode_template_data(row[0])

    def read_reports_for_clusters(self, clusters: Sequence[str]) -> dict[str, str]:
        names = _unique(clusters)
        if not names:
            return {}
        with self.manager.connection() as conn:
            rows = self.manager.fetch_all(
                conn,
                f"SELECT cluster, report FROM report WHERE cluster IN ({in_clause(1, len(names))})",
                names,
            )
        return {str(row[0]): str(row[1]) for row in rows}

    def read_org_ids_for_clusters(self, clusters: Sequence[str]) -> list[int]:
        names = _unique(clusters)
        if not names:
            return []
        with self.manager.connection() as conn:
            rows = self.manager.fetch_all(
                conn,
                f"SELECT DISTINCT org_id FROM report WHERE cluster IN ({in_clause(1, len(names))}) ORDER BY org_id",
                names,
            )
        return [int(row[0]) for row in rows]

    def read_latest_offset(self) -> int:
        with self.manager.connection() as conn:
            row = self.manager.fetch_one(conn, "SELECT COALESCE(MAX(kafka_offset), 0) FROM report")
        return int(row[0] or 0) if row is not None else 0

    def reports_count(self) -> int:
        with self.manager.connection() as conn:
            row = self.manager.fetch_one(conn, "SELECT COUNT(*) FROM report")
        return int(row[0])

    def get_org_id_by_cluster(self, cluster: str) -> int:
        with self.manager.connection() as conn:
            row = self.manager.fetch_one(
                conn,
                "SELECT org_id FROM report WHERE cluster = {p1} ORDER BY org_id",
                (cluster,),
            )
        if row is None:
            raise NotFoundError(cluster)
        return int(row[0])

    def does_cluster_exist(self, cluster: str) -> bool:
        with self.manager.connection() as conn:
            row = self.manager.fetch_one(conn, "SELECT cluster FROM report WHERE cluster = {p1}", (cluster,))
        return row is not None

    def scan_last_checked(self) -> list[tuple[str, str]]:
        with self.manager.connection() as conn:
            rows = self.manager.fetch_all(conn, "SELECT cluster, last_checked_at FROM report")
        return [(str(row[0]), str(row[1])) for row in rows]


def _rule_rows(rows: Sequence[Any]) -> list[RuleOnReport]:
    return [
        RuleOnReport(
            module=str(row[1]),
            error_key=str(row[2]),
            template_data=decode_template_data(row[0]),
        )
        for row in rows
    ]


def _unique(values: Sequence[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(str(value), None)
    return list(seen)
