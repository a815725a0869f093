"""Value types shared by the storage read and write paths."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class RuleToggle(IntEnum):
    ENABLE = 0
    DISABLE = 1


@dataclass(frozen=True)
class RuleHit:
    """One triggered rule as written with a report."""

    rule_fqdn: str
    error_key: str
    template_data: str | bytes = "{}"

    def template_text(self) -> str:
        try:
            return as_text(self.template_data)
        except UnicodeDecodeError as exc:
            raise ValueError(
                f"template data for {self.rule_fqdn}|{self.error_key} is not valid UTF-8"
            ) from exc


@dataclass(frozen=True)
class RuleOnReport:
    """One triggered rule as read back, with decoded template data."""

    module: str
    error_key: str
    template_data: Any


@dataclass(frozen=True)
class ClusterRuleToggle:
    cluster_id: str
    rule_id: str
    error_key: str
    disabled: RuleToggle
    disabled_at: datetime | None
    enabled_at: datetime | None
    updated_at: datetime | None


@dataclass(frozen=True)
class ConsumerMessage:
    """Transport message as handed over by the consumer loop."""

    topic: str
    partition: int
    offset: int
    key: bytes | str | None
    value: bytes | str | None
    timestamp: datetime | None = None


def format_timestamp(value: datetime) -> str:
    """Render a datetime as fixed-width UTC text; naive values are taken as UTC."""
    if not isinstance(value, datetime):
        raise TypeError(f"datetime expected, got {type(value).__name__}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_text(value: str | bytes | None, errors: str = "strict") -> str:
    """Text column value; bytes must be UTF-8 unless a lenient `errors` handler is given."""
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors=errors)
    return str(value)
