from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from results_aggregator.storage import (
    NotFoundError,
    ResultsStorage,
    RuleHit,
    StorageConfig,
    decode_template_data,
    new_storage,
)


BASE_TIME = datetime(2026, 2, 10, 12, 0, 0, tzinfo=timezone.utc)


def _storage(tmp_path: Path) -> ResultsStorage:
    storage = new_storage(StorageConfig(backend="sqlite", data_source=str(tmp_path / "results.sqlite")))
    storage.migrate_to_latest()
    storage.init()
    return storage


def _seed(storage: ResultsStorage) -> None:
    storage.write_report(1, "c1", '{"r": 1}', [RuleHit("mod.a", "E1", '{"x": 1}')], BASE_TIME, kafka_offset=10)
    storage.write_report(1, "c2", '{"r": 2}', [], BASE_TIME, kafka_offset=30)
    storage.write_report(2, "c3", '{"r": 3}', [RuleHit("mod.b", "E2", b"not-json")], BASE_TIME, kafka_offset=20)


def test_decode_template_data_falls_back_to_raw_bytes() -> None:
    assert decode_template_data('{"a": [1, 2]}') == {"a": [1, 2]}
    assert decode_template_data(b'"text"') == "text"
    assert decode_template_data(b"not-json") == b"not-json"
    assert decode_template_data(None) == b""


def test_empty_storage_reads(tmp_path: Path) -> None:
    storage = _storage(tmp_path)

    assert storage.list_orgs() == []
    assert storage.read_latest_offset() == 0
    assert storage.reports_count() == 0
    assert storage.does_cluster_exist("c1") is False
    with pytest.raises(NotFoundError):
        storage.read_report(1, "c1")
    with pytest.raises(NotFoundError):
        storage.read_report_by_cluster("c1")


def test_list_orgs_and_clusters(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    _seed(storage)

    assert storage.list_orgs() == [1, 2]
    assert storage.list_clusters_for_org(1, BASE_TIME - timedelta(days=1)) == ["c1", "c2"]
    assert storage.list_clusters_for_org(1, datetime.now(tz=timezone.utc) + timedelta(days=1)) == []
    assert storage.list_clusters_for_org(99, BASE_TIME - timedelta(days=1)) == []


def test_batch_reads(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    _seed(storage)

    assert storage.read_reports_for_clusters(["c1", "c3", "c1", "missing"]) == {
        "c1": '{"r": 1}',
        "c3": '{"r": 3}',
    }
    assert storage.read_org_ids_for_clusters(["c3", "c1", "c2"]) == [1, 2]
    assert storage.read_latest_offset() == 30
    assert storage.reports_count() == 3
    assert storage.get_org_id_by_cluster("c3") == 2


def test_batch_reads_with_no_clusters_skip_the_database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    storage = _storage(tmp_path)

    @contextmanager
    def _no_connection():
        raise AssertionError("no query expected for an empty batch")
        yield

    monkeypatch.setattr(storage.manager, "connection", _no_connection)

    assert storage.read_reports_for_clusters([]) == {}
    assert storage.read_org_ids_for_clusters([]) == []
    assert storage.get_toggles_for_rules("c1", []) == {}


def test_rule_template_data_is_decoded(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    _seed(storage)

    rules, _ = storage.read_report(2, "c3")
    assert rules[0].module == "mod.b"
    assert rules[0].template_data == b"not-json"
    assert storage.read_single_rule_template_data(1, "c1", "mod.a", "E1") == {"x": 1}
    with pytest.raises(NotFoundError):
        storage.read_single_rule_template_data(1, "c1", "mod.a", "OTHER")
