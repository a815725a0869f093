"""Storage error taxonomy and driver error conversion."""

from __future__ import annotations

from datetime import datetime
import sqlite3
from typing import Any

import psycopg


class StorageError(RuntimeError):
    """Stable storage failure surfaced with a reason code."""

    code = "STORAGE_FAILURE"

    def __init__(self, code: str | None = None, detail: str | None = None) -> None:
        self.code = code or type(self).code
        self.detail = detail
        message = f"{self.code}:{detail}" if detail else self.code
        super().__init__(message)


class NotFoundError(StorageError):
    code = "ITEM_NOT_FOUND"

    def __init__(self, item_id: Any) -> None:
        self.item_id = item_id
        super().__init__(detail=f"Item with ID {_render_item_id(item_id)} was not found in the storage")


class StaleReportError(StorageError):
    """Candidate report is not newer than the stored one for its cluster."""

    code = "STALE_REPORT"

    def __init__(
        self,
        *,
        cluster: str,
        checked_at: datetime,
        stored_checked_at: datetime | None,
        source: str,
    ) -> None:
        self.cluster = cluster
        self.checked_at = checked_at
        self.stored_checked_at = stored_checked_at
        self.source = source
        super().__init__(
            detail=(
                f"cluster={cluster} checked_at={checked_at.isoformat()} "
                f"stored={stored_checked_at.isoformat() if stored_checked_at else None} source={source}"
            )
        )


class UnsupportedBackendError(StorageError):
    code = "UNSUPPORTED_BACKEND"

    def __init__(self, backend: Any) -> None:
        self.backend = backend
        super().__init__(detail=f"backend {backend!r} is not supported")


class ConstraintViolationError(StorageError):
    code = "CONSTRAINT_VIOLATION"


class StorageConfigError(StorageError):
    code = "STORAGE_CONFIG_INVALID"


def convert_db_error(exc: BaseException) -> StorageError:
    """Map a driver exception onto the storage taxonomy."""
    if isinstance(exc, StorageError):
        return exc
    if isinstance(exc, (sqlite3.IntegrityError, psycopg.IntegrityError)):
        converted: StorageError = ConstraintViolationError(detail=str(exc).strip()[:512])
    else:
        converted = StorageError(detail=f"{exc.__class__.__name__}: {str(exc).strip()[:512]}")
    converted.__cause__ = exc
    return converted


def _render_item_id(item_id: Any) -> str:
    if isinstance(item_id, (list, tuple)):
        return "/".join(str(part) for part in item_id)
    return str(item_id)
