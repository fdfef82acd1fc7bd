# LocalSafe: Core Module - Shared Utilities
#
# Core module provides functionality shared by the CLI and embedders:
# - Audit logging
# - Configuration

from .audit_log import (
    AuditEvent,
    AuditLogger,
    get_audit_logger,
    set_audit_logger,
)
from .config import (
    ConfigError,
    LocalSafeConfig,
    load_config,
)

__all__ = [
    # Audit Logging
    "AuditEvent",
    "AuditLogger",
    "get_audit_logger",
    "set_audit_logger",
    # Configuration
    "ConfigError",
    "LocalSafeConfig",
    "load_config",
]
