"""Results storage facade consumed by the HTTP layer and the transport consumer.

`new_storage` builds a storage for one configuration; the schema must be at
its latest version (see `migrate_to_latest`) before `init()` warms the
staleness cache from the stored reports.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Iterable, Sequence

from .config import StorageConfig
from .connection import ConnectionManager
from .consumer_errors import ConsumerErrorRecorder
from .contracts import ClusterRuleToggle, ConsumerMessage, RuleHit, RuleOnReport, RuleToggle
from .observability import StorageMetrics
from .queries import QueryEngine
from .reports import ReportWriter
from .schema import migrate_to_latest
from .staleness import StalenessCache
from .toggles import RuleToggleStore


logger = logging.getLogger("results_aggregator.storage.service")


class ResultsStorage:
    def __init__(self, manager: ConnectionManager, cache: StalenessCache | None = None) -> None:
        self.manager = manager
        self.cache = cache or StalenessCache()
        self.metrics = StorageMetrics()
        self.queries = QueryEngine(manager)
        self.writer = ReportWriter(manager, self.cache, self.metrics)
        self.toggles = RuleToggleStore(manager)
        self.consumer_errors = ConsumerErrorRecorder(manager)

    @property
    def backend(self) -> str:
        return self.manager.backend

    def migrate_to_latest(self) -> int:
        return migrate_to_latest(self.manager)

    def init(self) -> None:
        loaded = self.cache.warm(self.queries.scan_last_checked())
        logger.info("Staleness cache warmed with %d clusters", loaded)

    def close(self) -> None:
        self.metrics.log_snapshot()
        self.manager.close()

    # ── reports ───────────────────────────────────────────────────────────

    def write_report(
        self,
        org_id: int,
        cluster: str,
        report: str | bytes,
        rule_hits: Sequence[RuleHit],
        checked_at: datetime,
        kafka_offset: int = 0,
    ) -> None:
        self.writer.write_report(org_id, cluster, report, rule_hits, checked_at, kafka_offset)

    def delete_reports_for_org(self, org_id: int) -> list[str]:
        return self.writer.delete_reports_for_org(org_id)

    def delete_reports_for_cluster(self, cluster: str) -> None:
        self.writer.delete_reports_for_cluster(cluster)

    def list_orgs(self) -> list[int]:
        return self.queries.list_orgs()

    def list_clusters_for_org(self, org_id: int, since: datetime) -> list[str]:
        return self.queries.list_clusters_for_org(org_id, since)

    def read_report(self, org_id: int, cluster: str) -> tuple[list[RuleOnReport], datetime]:
        return self.queries.read_report(org_id, cluster)

    def read_report_by_cluster(self, cluster: str) -> tuple[list[RuleOnReport], datetime]:
        return self.queries.read_report_by_cluster(cluster)

    def read_single_rule_template_data(self, org_id: int, cluster: str, rule_fqdn: str, error_key: str) -> Any:
        return self.queries.read_single_rule_template_data(org_id, cluster, rule_fqdn, error_key)

    def read_reports_for_clusters(self, clusters: Sequence[str]) -> dict[str, str]:
        return self.queries.read_reports_for_clusters(clusters)

    def read_org_ids_for_clusters(self, clusters: Sequence[str]) -> list[int]:
        return self.queries.read_org_ids_for_clusters(clusters)

    def read_latest_offset(self) -> int:
        return self.queries.read_latest_offset()

    def reports_count(self) -> int:
        return self.queries.reports_count()

    def get_org_id_by_cluster(self, cluster: str) -> int:
        return self.queries.get_org_id_by_cluster(cluster)

    def does_cluster_exist(self, cluster: str) -> bool:
        return self.queries.does_cluster_exist(cluster)

    # ── rule toggles ──────────────────────────────────────────────────────

    def set_toggle(self, cluster: str, rule_id: str, error_key: str, toggle: RuleToggle | bool) -> None:
        self.toggles.set_toggle(cluster, rule_id, error_key, toggle)

    def get_toggle(self, cluster: str, rule_id: str) -> ClusterRuleToggle:
        return self.toggles.get_toggle(cluster, rule_id)

    def get_toggles_for_rules(self, cluster: str, rules: Iterable[str | RuleOnReport]) -> dict[str, bool]:
        return self.toggles.get_toggles_for_rules(cluster, rules)

    def delete_toggle(self, cluster: str, rule_id: str) -> None:
        self.toggles.delete_toggle(cluster, rule_id)

    # ── consumer errors ───────────────────────────────────────────────────

    def record_error(
        self,
        topic: str,
        partition: int,
        offset: int,
        key: bytes | str | None,
        produced_at: datetime | None,
        consumed_at: datetime | None,
        payload: bytes | str | None,
        error_text: str,
    ) -> None:
        self.consumer_errors.record_error(
            topic, partition, offset, key, produced_at, consumed_at, payload, error_text
        )
        self.metrics.bump("consumer_errors")

    def record_consumer_error(self, message: ConsumerMessage, error: BaseException) -> None:
        self.consumer_errors.record_consumer_error(message, error)
        self.metrics.bump("consumer_errors")


def new_storage(config: StorageConfig) -> ResultsStorage:
    """Build a storage for `config`; unsupported backends raise UnsupportedBackendError."""
    return ResultsStorage(ConnectionManager(config))
