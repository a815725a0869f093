"""Transactional report write path.

A report write replaces the cluster's rule hits wholesale and upserts the
report row in one transaction. Cluster names are unique across orgs, so both
the replacement and the staleness re-check are keyed by cluster alone. Writes
that are not strictly newer than the stored report for the cluster raise
`StaleReportError`, whether the cached timestamp or the in-transaction
re-check catches them; a rejected write never mutates stored state. Report
and template text must be UTF-8.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Iterable, Sequence

from .connection import ConnectionManager
from .contracts import RuleHit, as_text, format_timestamp, parse_timestamp, utc_now
from .dialects import SUPPORTED_BACKENDS
from .errors import StaleReportError, StorageError, UnsupportedBackendError
from .observability import StorageMetrics
from .staleness import StalenessCache


logger = logging.getLogger("results_aggregator.storage.reports")


class ReportWriter:
    def __init__(
        self,
        manager: ConnectionManager,
        cache: StalenessCache,
        metrics: StorageMetrics | None = None,
    ) -> None:
        self.manager = manager
        self.cache = cache
        self.metrics = metrics or StorageMetrics()

    def write_report(
        self,
        org_id: int,
        cluster: str,
        report: str | bytes,
        rule_hits: Sequence[RuleHit],
        checked_at: datetime,
        kafka_offset: int = 0,
    ) -> None:
        if not self.cache.check(cluster, checked_at):
            self.metrics.bump("stale_rejected_cache")
            raise StaleReportError(
                cluster=cluster,
                checked_at=checked_at,
                stored_checked_at=self.cache.get(cluster),
                source="cache",
            )
        if self.manager.backend not in SUPPORTED_BACKENDS:
            raise UnsupportedBackendError(self.manager.backend)

        checked_at_text = format_timestamp(checked_at)
        try:
            report_text = as_text(report)
        except UnicodeDecodeError as exc:
            raise ValueError(f"report for cluster {cluster} is not valid UTF-8") from exc
        hit_rows = [(hit.rule_fqdn, hit.error_key, hit.template_text()) for hit in rule_hits]
        with self.manager.transaction(lock_key=cluster) as conn:
            row = self.manager.fetch_one(
                conn,
                """
                SELECT last_checked_at
                FROM report
                WHERE cluster = {p1} AND last_checked_at >= {p2}
                """,
                (cluster, checked_at_text),
            )
            if row is not None:
                stored = parse_timestamp(row[0])
                logger.warning(
                    "Database already contains report for cluster name %s not older than %s (org: %s)",
                    cluster,
                    checked_at_text,
                    org_id,
                )
                self.metrics.bump("stale_rejected_database")
                raise StaleReportError(
                    cluster=cluster,
                    checked_at=checked_at,
                    stored_checked_at=stored,
                    source="database",
                )
            self._replace_report(conn, org_id, cluster, report_text, hit_rows, checked_at_text, kafka_offset)

        self.cache.record(cluster, checked_at)
        self.metrics.bump("written_reports")

    def delete_reports_for_org(self, org_id: int) -> list[str]:
        with self.manager.transaction() as conn:
            rows = self.manager.fetch_all(conn, "SELECT cluster FROM report WHERE org_id = {p1}", (org_id,))
            clusters = [str(row[0]) for row in rows]
            self.manager.execute(
                conn,
                "DELETE FROM rule_hit WHERE cluster_id IN (SELECT cluster FROM report WHERE org_id = {p1})",
                (org_id,),
            )
            self.manager.execute(conn, "DELETE FROM report WHERE org_id = {p1}", (org_id,))
        self.cache.forget(clusters)
        return clusters

    def delete_reports_for_cluster(self, cluster: str) -> None:
        with self.manager.transaction() as conn:
            self.manager.execute(conn, "DELETE FROM rule_hit WHERE cluster_id = {p1}", (cluster,))
            self.manager.execute(conn, "DELETE FROM report WHERE cluster = {p1}", (cluster,))
        self.cache.forget([cluster])

    def _replace_report(
        self,
        conn: Any,
        org_id: int,
        cluster: str,
        report_text: str,
        hit_rows: Iterable[tuple[str, str, str]],
        checked_at_text: str,
        kafka_offset: int,
    ) -> None:
        try:
            self.manager.execute(conn, "DELETE FROM rule_hit WHERE cluster_id = {p1}", (cluster,))
        except StorageError:
            logger.error("Unable to remove previous cluster reports (org: %s, cluster: %s)", org_id, cluster)
            raise

        rule_sql = self.manager.dialect.upsert_rule_hit_statement()
        for rule_fqdn, error_key, template_text in hit_rows:
            try:
                self.manager.execute(
                    conn,
                    rule_sql,
                    (org_id, cluster, rule_fqdn, error_key, template_text),
                )
            except StorageError:
                logger.error(
                    "Unable to upsert the cluster report rules (org: %s, cluster: %s, rule: %s|%s)",
                    org_id,
                    cluster,
                    rule_fqdn,
                    error_key,
                )
                raise

        try:
            self.manager.execute(
                conn,
                self.manager.dialect.upsert_report_statement(),
                (
                    org_id,
                    cluster,
                    report_text,
                    format_timestamp(utc_now()),
                    checked_at_text,
                    int(kafka_offset),
                ),
            )
        except StorageError:
            logger.error("Unable to upsert the cluster report (org: %s, cluster: %s)", org_id, cluster)
            raise
