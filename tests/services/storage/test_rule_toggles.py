from __future__ import annotations

from pathlib import Path

import pytest

from results_aggregator.storage import (
    NotFoundError,
    ResultsStorage,
    RuleOnReport,
    RuleToggle,
    StorageConfig,
    new_storage,
)


def _storage(tmp_path: Path) -> ResultsStorage:
    storage = new_storage(StorageConfig(backend="sqlite", data_source=str(tmp_path / "toggles.sqlite")))
    storage.migrate_to_latest()
    return storage


def test_disable_then_enable_keeps_disabled_at(tmp_path: Path) -> None:
    storage = _storage(tmp_path)

    storage.set_toggle("c1", "rule.a", "ERR", RuleToggle.DISABLE)
    disabled = storage.get_toggle("c1", "rule.a")
    assert disabled.disabled is RuleToggle.DISABLE
    assert disabled.disabled_at is not None
    assert disabled.enabled_at is None

    storage.set_toggle("c1", "rule.a", "ERR", False)
    enabled = storage.get_toggle("c1", "rule.a")
    assert enabled.disabled is RuleToggle.ENABLE
    assert enabled.enabled_at is not None
    assert enabled.disabled_at == disabled.disabled_at
    assert enabled.updated_at >= disabled.updated_at


def test_get_toggle_missing_raises_not_found(tmp_path: Path) -> None:
    storage = _storage(tmp_path)

    with pytest.raises(NotFoundError) as excinfo:
        storage.get_toggle("c1", "rule.missing")
    assert excinfo.value.item_id == "rule.missing"


def test_get_toggles_for_rules_returns_only_known_rules(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage.set_toggle("c1", "rule.a", "ERR", True)
    storage.set_toggle("c1", "rule.b", "ERR", False)
    storage.set_toggle("c2", "rule.c", "ERR", True)

    toggles = storage.get_toggles_for_rules(
        "c1",
        [RuleOnReport(module="rule.a", error_key="ERR", template_data={}), "rule.b", "rule.c"],
    )

    assert toggles == {"rule.a": True, "rule.b": False}


def test_get_toggles_for_rules_binds_rule_ids(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage.set_toggle("c1", "rule.a", "ERR", True)

    toggles = storage.get_toggles_for_rules("c1", ["x') OR ('1'='1", "rule.a"])

    assert toggles == {"rule.a": True}


def test_delete_toggle(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage.set_toggle("c1", "rule.a", "ERR", True)

    storage.delete_toggle("c1", "rule.a")

    with pytest.raises(NotFoundError):
        storage.get_toggle("c1", "rule.a")


def test_set_toggle_rejects_unknown_state(tmp_path: Path) -> None:
    storage = _storage(tmp_path)

    with pytest.raises(ValueError):
        storage.set_toggle("c1", "rule.a", "ERR", "sometimes")
