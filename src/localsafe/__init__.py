# LocalSafe - Main Package
#
# Local, file-backed credential vault:
# - one JSON document on disk, secrets encrypted per entry (AES-256-GCM)
# - passphrase-derived keys (PBKDF2-HMAC-SHA512), no key material stored
# - soft/hard delete into trash, restore, retention purges, integrity digests

__version__ = "0.3.0"
__author__ = "LocalSafe Team"
__description__ = "Local file-backed credential vault"

from .core import (
    AuditEvent,
    get_audit_logger,
    load_config,
)
from .vault import (
    EncryptionService,
    ErrorCode,
    FileVaultStore,
    InMemoryVaultStore,
    OperationResult,
    Selector,
    VaultManager,
)

__all__ = [
    "__version__",
    "AuditEvent",
    "get_audit_logger",
    "load_config",
    "EncryptionService",
    "ErrorCode",
    "FileVaultStore",
    "InMemoryVaultStore",
    "OperationResult",
    "Selector",
    "VaultManager",
]
