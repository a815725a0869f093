"""Latest cluster report storage, rule toggles and consumer error audit."""

from .config import StorageConfig, load_storage_config
from .contracts import (
    ClusterRuleToggle,
    ConsumerMessage,
    RuleHit,
    RuleOnReport,
    RuleToggle,
    format_timestamp,
    parse_timestamp,
)
from .dialects import (
    BACKEND_POSTGRES,
    BACKEND_SQLITE,
    SUPPORTED_BACKENDS,
    Dialect,
    PostgresDialect,
    SqliteDialect,
    dialect_for,
)
from .errors import (
    ConstraintViolationError,
    NotFoundError,
    StaleReportError,
    StorageConfigError,
    StorageError,
    UnsupportedBackendError,
)
from .queries import decode_template_data
from .service import ResultsStorage, new_storage
from .staleness import StalenessCache

__all__ = [
    "BACKEND_POSTGRES",
    "BACKEND_SQLITE",
    "SUPPORTED_BACKENDS",
    "ClusterRuleToggle",
    "ConstraintViolationError",
    "ConsumerMessage",
    "Dialect",
    "NotFoundError",
    "PostgresDialect",
    "ResultsStorage",
    "RuleHit",
    "RuleOnReport",
    "RuleToggle",
    "SqliteDialect",
    "StaleReportError",
    "StalenessCache",
    "StorageConfig",
    "StorageConfigError",
    "StorageError",
    "UnsupportedBackendError",
    "decode_template_data",
    "dialect_for",
    "format_timestamp",
    "load_storage_config",
    "new_storage",
    "parse_timestamp",
]
