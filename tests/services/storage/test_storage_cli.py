from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path

from results_aggregator.storage import StorageConfig, new_storage
from results_aggregator.storage.cli import main


def _profile(tmp_path: Path) -> tuple[Path, Path]:
    db_path = tmp_path / "cli.sqlite"
    profile = tmp_path / "storage.yaml"
    profile.write_text(f"storage:\n  backend: sqlite\n  data_source: {db_path}\n", encoding="utf-8")
    return profile, db_path


def test_cli_migrate_then_query(tmp_path: Path, capsys) -> None:
    profile, db_path = _profile(tmp_path)

    assert main(["--profile", str(profile), "migrate"]) == 0
    assert json.loads(capsys.readouterr().out) == {"schema_version": 2}

    storage = new_storage(StorageConfig(backend="sqlite", data_source=str(db_path)))
    storage.write_report(9, "c9", "{}", [], datetime(2026, 2, 10, tzinfo=timezone.utc), kafka_offset=77)

    assert main(["--profile", str(profile), "offset"]) == 0
    assert json.loads(capsys.readouterr().out) == {"kafka_offset": 77}
    assert main(["--profile", str(profile), "count"]) == 0
    assert json.loads(capsys.readouterr().out) == {"reports": 1}
    assert main(["--profile", str(profile), "orgs"]) == 0
    assert json.loads(capsys.readouterr().out) == {"orgs": [9]}
    assert main(["--profile", str(profile), "clusters", "--org", "9", "--since", "2026-01-01T00:00:00Z"]) == 0
    assert json.loads(capsys.readouterr().out) == {"clusters": ["c9"], "org_id": 9}


def test_cli_reports_storage_failure(tmp_path: Path, capsys) -> None:
    profile, _ = _profile(tmp_path)

    assert main(["--profile", str(profile), "count"]) == 1
    assert capsys.readouterr().out == ""
