"""Vault document model.

The persisted vault is a single JSON document::

    {
      "version": 1,
      "createdAt": "...",
      "updatedAt": "...",
      "entries": [Entry, ...],
      "trash": [TrashRecord, ...]
    }

All dataclasses here are frozen. Lifecycle operations never mutate a
document in place; they build a new one with ``dataclasses.replace`` and
hand it to the store as a whole.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

DOCUMENT_VERSION = 1


# ── Timestamps ──────────────────────────────────────────────────────


def format_timestamp(moment: datetime) -> str:
    """Render an aware datetime as UTC ISO-8601 with milliseconds and ``Z``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp. Returns None for missing or garbled values."""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


# ── Entry model ─────────────────────────────────────────────────────


class TrashAction(str, Enum):
    """Why an entry snapshot was archived into the trash."""

    SOFT_DELETE = "soft-delete"
    DELETE = "delete"
    UPDATE = "update"


@dataclass(frozen=True)
class EncryptedPayload:
    """Authenticated-encryption output. Opaque outside the encryption suite.

    ``iterations`` is the PBKDF2 count the key was derived with; payloads
    that predate it leave it unset.
    """

    algorithm: str
    salt: str
    iv: str
    auth_tag: str
    ciphertext: str
    iterations: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "algorithm": self.algorithm,
            "salt": self.salt,
            "iv": self.iv,
            "authTag": self.auth_tag,
            "ciphertext": self.ciphertext,
        }
        if self.iterations is not None:
            data["iterations"] = self.iterations
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedPayload":
        return cls(
            algorithm=str(data.get("algorithm", "")),
            salt=str(data.get("salt", "")),
            iv=str(data.get("iv", "")),
            auth_tag=str(data.get("authTag", "")),
            ciphertext=str(data.get("ciphertext", "")),
            iterations=_optional_int(data.get("iterations")),
        )


@dataclass(frozen=True)
class EntryMeta:
    integrity: Optional[str] = None
    uses: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"uses": self.uses}
        if self.integrity is not None:
            data["integrity"] = self.integrity
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EntryMeta":
        data = data or {}
        try:
            uses = int(data.get("uses", 0) or 0)
        except (TypeError, ValueError):
            uses = 0
        return cls(integrity=data.get("integrity"), uses=uses)


@dataclass(frozen=True)
class Entry:
    """One stored credential.

    ``id`` is the only stable identifier; ``name`` is a convenience label
    that is not required to be unique.
    """

    id: str
    name: str = ""
    username: str = ""
    url: str = ""
    tags: Tuple[str, ...] = ()
    secret: Optional[EncryptedPayload] = None
    created_at: str = ""
    updated_at: str = ""
    meta: EntryMeta = field(default_factory=EntryMeta)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "url": self.url,
            "tags": list(self.tags),
            "secret": self.secret.to_dict() if self.secret else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "meta": self.meta.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Entry":
        secret = data.get("secret")
        tags = data.get("tags")
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "",
            username=data.get("username") or "",
            url=data.get("url") or "",
            tags=tuple(str(t) for t in tags) if isinstance(tags, list) else (),
            secret=EncryptedPayload.from_dict(secret) if isinstance(secret, dict) else None,
            created_at=data.get("createdAt") or "",
            updated_at=data.get("updatedAt") or "",
            meta=EntryMeta.from_dict(data.get("meta")),
        )


@dataclass(frozen=True)
class TrashRecord:
    """Immutable point-in-time copy of an entry."""

    action: TrashAction
    timestamp: str
    entry: Entry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "timestamp": self.timestamp,
            "entry": self.entry.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrashRecord":
        try:
            action = TrashAction(data.get("action"))
        except ValueError:
            action = TrashAction.DELETE
        return cls(
            action=action,
            timestamp=data.get("timestamp") or "",
            entry=Entry.from_dict(data.get("entry") or {}),
        )


# ── Document ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class VaultDocument:
    version: int = DOCUMENT_VERSION
    created_at: str = ""
    updated_at: str = ""
    entries: Tuple[Entry, ...] = ()
    trash: Tuple[TrashRecord, ...] = ()

    @classmethod
    def new(cls, now: datetime) -> "VaultDocument":
        """Empty vault template."""
        stamp = format_timestamp(now)
        return cls(version=DOCUMENT_VERSION, created_at=stamp, updated_at=stamp)

    def touched(self, stamp: str, **changes) -> "VaultDocument":
        """Copy with ``updatedAt`` set to ``stamp`` and any other field changes."""
        return replace(self, updated_at=stamp, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "entries": [entry.to_dict() for entry in self.entries],
            "trash": [record.to_dict() for record in self.trash],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultDocument":
        entries: List[Entry] = [
            Entry.from_dict(item) for item in data.get("entries") or [] if isinstance(item, dict)
        ]
        trash: List[TrashRecord] = [
            TrashRecord.from_dict(item) for item in data.get("trash") or [] if isinstance(item, dict)
        ]
        try:
            version = int(data.get("version") or DOCUMENT_VERSION)
        except (TypeError, ValueError):
            version = DOCUMENT_VERSION
        return cls(
            version=version,
            created_at=data.get("createdAt") or "",
            updated_at=data.get("updatedAt") or "",
            entries=tuple(entries),
            trash=tuple(trash),
        )
