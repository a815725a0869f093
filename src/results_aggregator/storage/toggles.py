"""Per-cluster rule enable/disable records (last writer wins)."""

from __future__ import annotations

import logging
from typing import Iterable

from .connection import ConnectionManager
from .contracts import ClusterRuleToggle, RuleOnReport, RuleToggle, format_timestamp, parse_timestamp, utc_now
from .dialects import in_clause
from .errors import NotFoundError


logger = logging.getLogger("results_aggregator.storage.toggles")


class RuleToggleStore:
    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager

    def set_toggle(self, cluster: str, rule_id: str, error_key: str, toggle: RuleToggle | bool) -> None:
        state = _as_toggle(toggle)
        now = utc_now()
        disabled_at = now if state is RuleToggle.DISABLE else None
        enabled_at = now if state is RuleToggle.ENABLE else None
        with self.manager.connection() as conn:
            self.manager.execute(
                conn,
                self.manager.dialect.upsert_toggle_statement(),
                (
                    cluster,
                    rule_id,
                    error_key,
                    int(state),
                    format_timestamp(disabled_at) if disabled_at else None,
                    format_timestamp(enabled_at) if enabled_at else None,
                    format_timestamp(now),
                ),
            )
        logger.debug("Rule toggle cluster=%s rule=%s error_key=%s state=%s", cluster, rule_id, error_key, state.name)

    def get_toggle(self, cluster: str, rule_id: str) -> ClusterRuleToggle:
        # Older schemas kept one row per user, so take the latest update.
        with self.manager.connection() as conn:
            row = self.manager.fetch_one(
                conn,
                """
                SELECT cluster_id, rule_id, error_key, disabled, disabled_at, enabled_at, updated_at
                FROM cluster_rule_toggle
                WHERE cluster_id = {p1} AND rule_id = {p2}
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                (cluster, rule_id),
            )
        if row is None:
            raise NotFoundError(rule_id)
        return ClusterRuleToggle(
            cluster_id=str(row[0]),
            rule_id=str(row[1]),
            error_key=str(row[2]),
            disabled=RuleToggle(int(row[3])),
            disabled_at=parse_timestamp(row[4]),
            enabled_at=parse_timestamp(row[5]),
            updated_at=parse_timestamp(row[6]),
        )

    def get_toggles_for_rules(self, cluster: str, rule_ids: Iterable[str | RuleOnReport]) -> dict[str, bool]:
        rules = list(dict.fromkeys(_rule_id(rule) for rule in rule_ids))
        if not rules:
            return {}
        with self.manager.connection() as conn:
            rows = self.manager.fetch_all(
                conn,
                f"""
                SELECT rule_id, disabled, updated_at
                FROM cluster_rule_toggle
                WHERE cluster_id = {{p1}} AND rule_id IN ({in_clause(2, len(rules))})
                ORDER BY updated_at
                """,
                (cluster, *rules),
            )
        toggles: dict[str, bool] = {}
        for row in rows:
            toggles[str(row[0])] = bool(int(row[1]))
        return toggles

    def delete_toggle(self, cluster: str, rule_id: str) -> None:
        with self.manager.connection() as conn:
            self.manager.execute(
                conn,
                "DELETE FROM cluster_rule_toggle WHERE cluster_id = {p1} AND rule_id = {p2}",
                (cluster, rule_id),
            )


def _as_toggle(value: RuleToggle | bool) -> RuleToggle:
    if isinstance(value, RuleToggle):
        return value
    if isinstance(value, bool):
        return RuleToggle.DISABLE if value else RuleToggle.ENABLE
    raise ValueError(f"Unexpected rule toggle value: {value!r}")


def _rule_id(rule: str | RuleOnReport) -> str:
    if isinstance(rule, RuleOnReport):
        return rule.module
    return str(rule)
