# LocalSafe: Vault Module - File-backed credential vault
#
# Passphrase-derived AES-256-GCM encryption per entry
# Integrity digests, soft/hard delete to trash, retention purges

from .encryption import EncryptionService
from .errors import ErrorCode, VaultError
from .models import Entry, EncryptedPayload, TrashAction, TrashRecord, VaultDocument
from .params import OperationResult
from .selectors import Selector
from .store import FileVaultStore, InMemoryVaultStore
from .vault_manager import VaultManager

__all__ = [
    "EncryptionService",
    "ErrorCode",
    "VaultError",
    "Entry",
    "EncryptedPayload",
    "TrashAction",
    "TrashRecord",
    "VaultDocument",
    "OperationResult",
    "Selector",
    "FileVaultStore",
    "InMemoryVaultStore",
    "VaultManager",
]
