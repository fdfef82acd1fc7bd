# LocalSafe: Vault - Error Taxonomy
#
# Error codes reported by lifecycle operations, plus the exception classes
# raised inside the vault core. Exceptions never cross an operation boundary:
# VaultManager converts them into OperationResult failures.

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Failure categories carried by OperationResult.error."""

    VAULT_NOT_INITIALIZED = "vault_not_initialized"
    VALIDATION_ERROR = "validation_error"
    ENTRY_NOT_FOUND = "entry_not_found"
    DECRYPTION_FAILURE = "decryption_failure"
    CONFIRMATION_REQUIRED = "confirmation_required"
    INVALID_DATE_FORMAT = "invalid_date_format"
    INVALID_DURATION_FORMAT = "invalid_duration_format"
    UNSUPPORTED_FORMAT = "unsupported_format"

    # Persistence layer
    CONCURRENT_MODIFICATION = "concurrent_modification"
    STORAGE_ERROR = "storage_error"


class VaultError(Exception):
    """Base class for vault core failures."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str = "", code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""
        if code is not None:
            self.code = code


class DecryptionFailure(VaultError):
    """Unable to decrypt payload. Wrong passphrase or tampered data."""

    code = ErrorCode.DECRYPTION_FAILURE


class InvalidDateFormat(VaultError):
    """Date could not be parsed. Use ISO format (e.g., 2024-01-01)."""

    code = ErrorCode.INVALID_DATE_FORMAT


class InvalidDurationFormat(VaultError):
    """Duration could not be parsed. Use formats like 7d or 12h."""

    code = ErrorCode.INVALID_DURATION_FORMAT


class VaultStoreError(VaultError):
    """Vault document could not be read or written."""

    code = ErrorCode.STORAGE_ERROR


class ConcurrentModificationError(VaultStoreError):
    """Vault file changed on disk since it was read."""

    code = ErrorCode.CONCURRENT_MODIFICATION
