# LocalSafe: Vault - Persistence
#
# Whole-document JSON store. Every write replaces the file atomically
# (unique temp file + os.replace). An optional optimistic check rejects a write
# when another process changed the file after our last read.

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from .errors import ConcurrentModificationError, VaultStoreError
from .models import VaultDocument

logger = logging.getLogger(__name__)

_ABSENT = "absent"


class VaultStore:
    """Persistence contract consumed by VaultManager."""

    path: Union[Path, str] = ""

    def read(self) -> Optional[VaultDocument]:
        raise NotImplementedError

    def write(self, document: VaultDocument) -> Union[Path, str]:
        raise NotImplementedError


class FileVaultStore(VaultStore):
    """
    JSON file on local disk.

    Args:
        path: Vault file location. Parent directories are created on write.
        optimistic: Reject writes when the file changed since the last read.
                    False keeps plain last-writer-wins semantics.
    """

    def __init__(self, path: Union[Path, str], optimistic: bool = True):
        self.path = Path(path).expanduser().resolve()
        self.optimistic = optimistic
        self._fingerprint: Optional[str] = None

    def _read_raw(self) -> Optional[bytes]:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise VaultStoreError(f"Unable to read vault at {self.path}: {exc}") from exc

    @staticmethod
    def _fingerprint_of(raw: Optional[bytes]) -> str:
        if raw is None or not raw.strip():
            return _ABSENT
        return hashlib.sha256(raw).hexdigest()

    def read(self) -> Optional[VaultDocument]:
        """Load the document. Missing or blank files mean an uninitialized vault."""
        raw = self._read_raw()
        self._fingerprint = self._fingerprint_of(raw)
        if self._fingerprint == _ABSENT:
            return None

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise VaultStoreError(f"Vault at {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise VaultStoreError(f"Vault at {self.path} is not a JSON object")
        return VaultDocument.from_dict(data)

    def write(self, document: VaultDocument) -> Path:
        """Atomically replace the vault file with ``document``."""
        if self.optimistic and self._fingerprint is not None:
            current = self._fingerprint_of(self._read_raw())
            if current != self._fingerprint:
                raise ConcurrentModificationError(
                    f"Vault at {self.path} was modified by another process. Re-run the command."
                )

        payload = json.dumps(document.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
        tmp_path: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Same directory as the vault; mkstemp names are unique and 0600
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
            raise VaultStoreError(f"Unable to write vault at {self.path}: {exc}") from exc

        self._fingerprint = self._fingerprint_of(payload)
        logger.debug("Vault written to %s", self.path)
        return self.path


class InMemoryVaultStore(VaultStore):
    """Store that keeps the document in memory. Used by embedders and tests."""

    def __init__(self, document: Optional[VaultDocument] = None, path: str = "<memory>"):
        self.document = document
        self.path = path
        self.writes = 0

    def read(self) -> Optional[VaultDocument]:
        return self.document

    def write(self, document: VaultDocument) -> str:
        self.document = document
        self.writes += 1
        return self.path
