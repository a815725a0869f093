"""Storage configuration loader (YAML profiles)."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import re
from typing import Any, Mapping

import yaml

from .dialects import BACKEND_POSTGRES, BACKEND_SQLITE, is_postgres_dsn
from .errors import StorageConfigError


_ENV_PATTERN = re.compile(r"^\$\{([^}:]+)(?::-([^}]*))?\}$")


@dataclass(frozen=True)
class StorageConfig:
    backend: str = BACKEND_SQLITE
    data_source: str = ""
    log_queries: bool = False
    pg_username: str = ""
    pg_password: str = ""
    pg_host: str = "localhost"
    pg_port: int = 5432
    pg_db_name: str = ""
    pg_params: str = ""

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "StorageConfig":
        data_source = str(_env(payload.get("data_source") or payload.get("dsn") or "")).strip()
        backend_raw = _none_if_blank(_env(payload.get("backend") or payload.get("db_driver")))
        if backend_raw is None:
            backend_raw = BACKEND_POSTGRES if is_postgres_dsn(data_source) else BACKEND_SQLITE
        return cls(
            backend=backend_raw.lower(),
            data_source=data_source,
            log_queries=_as_bool(_env(payload.get("log_queries", False))),
            pg_username=str(_env(payload.get("pg_username") or "")).strip(),
            pg_password=str(_env(payload.get("pg_password") or "")),
            pg_host=str(_env(payload.get("pg_host") or "localhost")).strip(),
            pg_port=int(_env(payload.get("pg_port") or 5432)),
            pg_db_name=str(_env(payload.get("pg_db_name") or "")).strip(),
            pg_params=str(_env(payload.get("pg_params") or "")).strip(),
        )


def load_storage_config(profile_path: Path | str) -> StorageConfig:
    path = Path(profile_path)
    if not path.exists():
        raise StorageConfigError(detail=f"profile not found: {path}")
    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(payload, Mapping):
        raise StorageConfigError(detail="profile must be a mapping")
    storage = payload.get("storage")
    if not isinstance(storage, Mapping):
        raise StorageConfigError(detail="profile has no storage section")
    try:
        return StorageConfig.from_mapping(storage)
    except (TypeError, ValueError) as exc:
        raise StorageConfigError(detail=str(exc)) from exc


def _env(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    match = _ENV_PATTERN.fullmatch(value.strip())
    if not match:
        return value
    return os.getenv(match.group(1), match.group(2) or "")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _none_if_blank(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
