# LocalSafe: Vault Manager - Lifecycle Operations
#
# Every operation follows the same shape:
#   read document → validate → build a new document → write it whole
# Nothing is written when an operation fails or is waiting for confirmation.
# Vault errors raised underneath (decryption, storage, cutoff parsing) are
# converted into OperationResult failures at the operation boundary.

import functools
import json
import logging
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from . import integrity
from .encryption import EncryptionService
from .errors import DecryptionFailure, ErrorCode, VaultError, VaultStoreError
from .models import Entry, EntryMeta, TrashAction, TrashRecord, VaultDocument, format_timestamp, parse_timestamp
from .params import (
    CONFIRM_DELETE,
    CONFIRM_PURGE,
    CONFIRM_RESTORE,
    DEFAULT_ENTRY_NAME,
    AddParams,
    DeleteParams,
    ExportParams,
    ListParams,
    OperationResult,
    PurgeParams,
    RestoreParams,
    TagParams,
    TrashListParams,
    UpdateParams,
    VerifyParams,
    ViewParams,
)
from .retention import Clock, SystemClock, resolve_cutoff
from .selectors import display_domain, parse_tags
from .store import VaultStore

logger = logging.getLogger(__name__)

NOT_INITIALIZED_MESSAGE = "Vault not initialized. Run `localsafe init` first."
ENTRY_NOT_FOUND_MESSAGE = "Entry not found. Check the identifier and try again."
SUPPORTED_EXPORT_FORMATS = ("json",)


def _plural(count: int) -> str:
    return "entry" if count == 1 else "entries"


def _operation(method):
    """Convert vault errors raised inside an operation into a failure result."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs) -> OperationResult:
        try:
            return method(self, *args, **kwargs)
        except VaultError as exc:
            logger.warning("%s failed (%s): %s", method.__name__, exc.code.value, exc.message)
            return OperationResult(ok=False, message=exc.message, error=exc.code)

    return wrapper


@dataclass(frozen=True)
class EntrySummary:
    """Metadata-only listing row. Never carries secret material."""

    index: int
    id: str
    name: str
    username: str
    url: str
    domain: str
    tags: Tuple[str, ...]
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "url": self.url,
            "domain": self.domain,
            "tags": ",".join(self.tags),
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class DeleteOutcome:
    entries: Tuple[Entry, ...]
    soft_delete: bool


@dataclass(frozen=True)
class ExportOutcome:
    destination: str
    format: str
    content: Optional[str] = None


class VaultManager:
    """
    Lifecycle operations over a vault document.

    Args:
        store: Persistence collaborator (read/write of the whole document)
        crypto: Encryption suite; defaults to AES-256-GCM with 210k PBKDF2 rounds
        clock: Time source for timestamps and purge cutoffs

    The manager keeps no document state between calls; each operation reads
    the current document from the store.
    """

    def __init__(
        self,
        store: VaultStore,
        crypto: Optional[EncryptionService] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.crypto = crypto or EncryptionService()
        self.clock = clock or SystemClock()

    # ── Helpers ──────────────────────────────────────────────────

    @property
    def path(self) -> str:
        return str(self.store.path)

    def _now(self) -> str:
        return format_timestamp(self.clock.now())

    def _not_initialized(self) -> OperationResult:
        return OperationResult(ok=False, message=NOT_INITIALIZED_MESSAGE, error=ErrorCode.VAULT_NOT_INITIALIZED)

    @staticmethod
    def _fail(code: ErrorCode, message: str) -> OperationResult:
        return OperationResult(ok=False, message=message, error=code)

    @staticmethod
    def _pending(count: int, noun: str, token: str) -> OperationResult:
        return OperationResult(
            ok=False,
            message=f"Pending {noun} for {count} {_plural(count)}. Re-run with --confirm {token} to proceed.",
            error=ErrorCode.CONFIRMATION_REQUIRED,
            pending=count,
        )

    def _new_id(self, document: VaultDocument) -> str:
        taken = {entry.id for entry in document.entries}
        while True:
            candidate = str(uuid.uuid4())
            if candidate not in taken:
                return candidate

    @staticmethod
    def _seal_plaintext(secret: str, note: str) -> str:
        return json.dumps({"secret": secret, "note": note}, separators=(",", ":"), ensure_ascii=False)

    def _open_secret(self, passphrase: str, entry: Entry) -> Dict[str, str]:
        """Decrypt an entry's payload into ``{"secret", "note"}``."""
        plaintext = self.crypto.decrypt(passphrase, entry.secret)
        try:
            data = json.loads(plaintext)
        except json.JSONDecodeError as exc:
            raise DecryptionFailure("Decrypted payload is corrupt") from exc
        if not isinstance(data, dict):
            raise DecryptionFailure("Decrypted payload is corrupt")
        return {"secret": str(data.get("secret") or ""), "note": str(data.get("note") or "")}

    # ── Read-only views ──────────────────────────────────────────

    @_operation
    def initialize(self) -> OperationResult:
        """Create an empty vault document unless one already exists."""
        existing = self.store.read()
        if existing is not None:
            return OperationResult(ok=True, message=f"Vault already exists at {self.path}", value=existing)

        document = VaultDocument.new(self.clock.now())
        location = self.store.write(document)
        return OperationResult(ok=True, message=f"Created new vault at {location}", value=document)

    @_operation
    def status(self) -> OperationResult:
        document = self.store.read()
        if document is None:
            return OperationResult(
                ok=True,
                message="Vault missing • initialize with `localsafe init`",
                value={"initialized": False, "path": self.path, "entries": 0, "trash": 0},
            )

        count = len(document.entries)
        trash = len(document.trash)
        return OperationResult(
            ok=True,
            message=(
                f"Vault ready • {count} {_plural(count)} stored • path: {self.path}\n"
                f"Trash contains {trash} item{'' if trash == 1 else 's'}"
            ),
            value={"initialized": True, "path": self.path, "entries": count, "trash": trash},
        )

    @_operation
    def list_entries(self, params: Optional[ListParams] = None) -> OperationResult:
        """Metadata rows, optionally filtered by tag and domain. Never decrypts."""
        params = params or ListParams()
        document = self.store.read()
        if document is None:
            return self._not_initialized()
        if not document.entries:
            return OperationResult(ok=True, message="Vault empty. Add credentials with `localsafe add`.", value=[])

        tag = params.tag.lower() if params.tag else None
        domain = params.domain.lower() if params.domain else None

        rows: List[EntrySummary] = []
        for entry in document.entries:
            if tag and not any(t.lower() == tag for t in entry.tags):
                continue
            entry_domain = display_domain(entry.url)
            if domain and entry_domain != domain:
                continue
            rows.append(EntrySummary(
                index=len(rows) + 1,
                id=entry.id,
                name=entry.name,
                username=entry.username,
                url=entry.url,
                domain=entry_domain,
                tags=entry.tags,
                updated_at=entry.updated_at,
            ))

        if not rows:
            return OperationResult(ok=True, message="No entries matched the provided filters.", value=[])
        return OperationResult(ok=True, message=f"{len(rows)} {_plural(len(rows))} listed.", value=rows)

    @_operation
    def view(self, params: ViewParams) -> OperationResult:
        """Decrypt one entry. Never writes."""
        document = self.store.read()
        if document is None:
            return self._not_initialized()
        if not params.passphrase:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Passphrase required. Provide with `--passphrase <value>`.")
        if not params.selector.is_single:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Provide --id or --name to select an entry.")

        index = params.selector.find_index(document.entries)
        if index == -1:
            return self._fail(ErrorCode.ENTRY_NOT_FOUND, ENTRY_NOT_FOUND_MESSAGE)

        entry = document.entries[index]
        opened = self._open_secret(params.passphrase, entry)
        view = {
            "id": entry.id,
            "name": entry.name,
            "username": entry.username,
            "url": entry.url,
            "tags": list(entry.tags),
            "secret": opened["secret"],
            "note": opened["note"],
            "createdAt": entry.created_at,
            "updatedAt": entry.updated_at,
        }
        return OperationResult(ok=True, message=f"Decrypted '{entry.name}' ({entry.id})", value=view)

    @_operation
    def list_trash(self, params: Optional[TrashListParams] = None) -> OperationResult:
        params = params or TrashListParams()
        document = self.store.read()
        if document is None:
            return self._not_initialized()
        if not document.trash:
            return OperationResult(ok=True, message="Trash empty. No archived entries available.", value=[])

        name = params.name.lower() if params.name else None
        records = [
            record for record in document.trash
            if (params.action is None or record.action == params.action)
            and (name is None or record.entry.name.lower() == name)
        ]
        if not records:
            return OperationResult(ok=True, message="No trash entries matched the supplied filters.", value=[])
        return OperationResult(ok=True, message=f"{len(records)} trash {_plural(len(records))}.", value=records)

    @_operation
    def export(self, params: Optional[ExportParams] = None) -> OperationResult:
        """Serialize the document (secrets stay encrypted) to a file or a string."""
        params = params or ExportParams()
        document = self.store.read()
        if document is None:
            return self._not_initialized()

        fmt = (params.format or "json").lower()
        if fmt not in SUPPORTED_EXPORT_FORMATS:
            return self._fail(
                ErrorCode.UNSUPPORTED_FORMAT,
                f"Unsupported export format '{params.format}'. Only json is available.",
            )

        if params.pretty:
            content = json.dumps(document.to_dict(), indent=2, ensure_ascii=False)
        else:
            content = json.dumps(document.to_dict(), separators=(",", ":"), ensure_ascii=False)

        if not params.dest:
            return OperationResult(
                ok=True,
                message="Vault exported to stdout",
                value=ExportOutcome(destination="stdout", format=fmt, content=content),
            )

        destination = Path(params.dest).expanduser().resolve()
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text(content + "\n", encoding="utf-8")
        except OSError as exc:
            raise VaultStoreError(f"Unable to write export to {destination}: {exc}") from exc

        return OperationResult(
            ok=True,
            message=f"Vault written to {destination}",
            value=ExportOutcome(destination=str(destination), format=fmt),
        )

    # ── Mutations ────────────────────────────────────────────────

    @_operation
    def add(self, params: AddParams) -> OperationResult:
        """Encrypt a new secret and append it as a stamped entry."""
        document = self.store.read()
        if document is None:
            return self._not_initialized()
        if not params.passphrase:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Passphrase required. Provide with `--passphrase <value>`.")
        if not params.secret:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Secret required. Provide with `--secret <value>`.")

        stamp = self._now()
        payload = self.crypto.encrypt(params.passphrase, self._seal_plaintext(params.secret, params.note or ""))
        entry = integrity.stamp(Entry(
            id=self._new_id(document),
            name=params.name or DEFAULT_ENTRY_NAME,
            username=params.username or "",
            url=params.url or "",
            tags=tuple(parse_tags(params.tags)),
            secret=payload,
            created_at=stamp,
            updated_at=stamp,
            meta=EntryMeta(uses=0),
        ))

        self.store.write(document.touched(stamp, entries=document.entries + (entry,)))
        logger.info("Added entry %s", entry.id)
        return OperationResult(ok=True, message=f"Added credential '{entry.name}' ({entry.id})", value=entry)

    @_operation
    def tag(self, params: TagParams) -> OperationResult:
        """Replace (not merge) an entry's tags; the previous version is archived as ``update``."""
        document = self.store.read()
        if document is None:
            return self._not_initialized()
        if not params.selector.is_single:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Provide --id or --name to choose an entry.")

        tags = parse_tags(params.tags)
        if not tags:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Provide at least one tag via --tags or --tag.")

        index = params.selector.find_index(document.entries)
        if index == -1:
            return self._fail(ErrorCode.ENTRY_NOT_FOUND, ENTRY_NOT_FOUND_MESSAGE)

        stamp = self._now()
        entry = document.entries[index]
        updated = integrity.stamp(replace(entry, tags=tuple(tags), updated_at=stamp))
        archived = TrashRecord(action=TrashAction.UPDATE, timestamp=stamp, entry=entry)
        entries = document.entries[:index] + (updated,) + document.entries[index + 1:]

        self.store.write(document.touched(stamp, entries=entries, trash=document.trash + (archived,)))
        return OperationResult(ok=True, message=f"Updated tags for '{updated.name}' ({updated.id})", value=updated)

    @_operation
    def update(self, params: UpdateParams) -> OperationResult:
        """
        Change metadata and/or the encrypted secret of one entry.

        Metadata changes need no passphrase. Secret or note changes need the
        current passphrase; rotation needs both the current and the new one
        and may be combined with a secret/note change. The pre-update entry
        is archived into the trash with action ``update``.
        """
        document = self.store.read()
        if document is None:
            return self._not_initialized()
        if not params.selector.is_single:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Provide --id or --name to choose an entry.")

        index = params.selector.find_index(document.entries)
        if index == -1:
            return self._fail(ErrorCode.ENTRY_NOT_FOUND, ENTRY_NOT_FOUND_MESSAGE)

        if params.wants_rotation and not params.passphrase:
            return self._fail(
                ErrorCode.VALIDATION_ERROR,
                "Passphrase rotation requires --passphrase and --new-passphrase.",
            )
        if params.wants_secret_change and not params.passphrase:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Passphrase required to update secret or note.")
        if params.new_name is not None and not params.new_name.strip():
            return self._fail(ErrorCode.VALIDATION_ERROR, "Entry name cannot be blank.")
        if params.secret is not None and not params.secret:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Secret cannot be empty.")

        entry = document.entries[index]
        changes: Dict[str, Any] = {}

        if params.new_name is not None and params.new_name != entry.name:
            changes["name"] = params.new_name
        if params.username is not None and params.username != entry.username:
            changes["username"] = params.username
        if params.url is not None and params.url != entry.url:
            changes["url"] = params.url
        if params.tags is not None:
            tags = tuple(parse_tags(params.tags))
            if tags != entry.tags:
                changes["tags"] = tags

        if params.wants_secret_change or params.wants_rotation:
            current = self._open_secret(params.passphrase, entry)
            wanted = {
                "secret": params.secret if params.secret is not None else current["secret"],
                "note": params.note if params.note is not None else current["note"],
            }
            if wanted != current or params.wants_rotation:
                target = params.new_passphrase if params.wants_rotation else params.passphrase
                changes["secret"] = self.crypto.encrypt(target, self._seal_plaintext(wanted["secret"], wanted["note"]))

        if not changes:
            return OperationResult(
                ok=False,
                message="No changes supplied. Provide fields like --new-name, --username, --url, --tags, --secret, or --note.",
            )

        stamp = self._now()
        updated = integrity.stamp(replace(entry, updated_at=stamp, **changes))
        archived = TrashRecord(action=TrashAction.UPDATE, timestamp=stamp, entry=entry)
        entries = document.entries[:index] + (updated,) + document.entries[index + 1:]

        self.store.write(document.touched(stamp, entries=entries, trash=document.trash + (archived,)))
        logger.info("Updated entry %s (%s)", updated.id, ", ".join(sorted(changes)))
        return OperationResult(ok=True, message=f"Updated credential '{updated.name}' ({updated.id})", value=updated)

    @_operation
    def delete(self, params: DeleteParams) -> OperationResult:
        """
        Move matching entries into the trash.

        Soft and hard deletes both remove the entries from ``entries``; the
        trash record's action tells them apart. Hard deletes need the
        ``delete`` confirmation token, otherwise a pending count is returned.
        """
        document = self.store.read()
        if document is None:
            return self._not_initialized()
        if params.selector.is_empty:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Provide --id, --name, --tag or --domain to choose entries.")

        targets = params.selector.select(document.entries)
        if not targets:
            return self._fail(ErrorCode.ENTRY_NOT_FOUND, "No entries matched the provided delete selector.")

        if not params.soft and params.confirm != CONFIRM_DELETE:
            return self._pending(len(targets), "deletion", CONFIRM_DELETE)

        stamp = self._now()
        action = TrashAction.SOFT_DELETE if params.soft else TrashAction.DELETE
        doomed = {id(entry) for entry in targets}
        survivors = tuple(entry for entry in document.entries if id(entry) not in doomed)
        records = tuple(TrashRecord(action=action, timestamp=stamp, entry=entry) for entry in targets)

        self.store.write(document.touched(stamp, entries=survivors, trash=document.trash + records))

        count = len(targets)
        if params.soft:
            message = f"Soft-deleted {count} {_plural(count)}. Restore using 'localsafe trash restore --id <entryId>'."
        else:
            message = f"Removed {count} {_plural(count)}."
        return OperationResult(ok=True, message=message, value=DeleteOutcome(entries=tuple(targets), soft_delete=params.soft))

    @_operation
    def restore(self, params: RestoreParams) -> OperationResult:
        """
        Move a trash snapshot back into ``entries``.

        When an entry with the same id is still live (an ``update`` snapshot),
        the live version is replaced in place and itself archived, so ids stay
        unique and the rollback can be undone.
        """
        document = self.store.read()
        if document is None:
            return self._not_initialized()
        if not document.trash:
            return self._fail(ErrorCode.ENTRY_NOT_FOUND, "Trash is empty.")
        if not params.selector.is_single:
            return self._fail(ErrorCode.VALIDATION_ERROR, "Provide --id or --name to choose a trash entry.")

        snapshots = [record.entry for record in document.trash]
        index = params.selector.find_index(snapshots)
        if index == -1:
            return self._fail(ErrorCode.ENTRY_NOT_FOUND, "Trash entry not found.")

        if params.confirm != CONFIRM_RESTORE:
            return self._pending(1, "restore", CONFIRM_RESTORE)

        stamp = self._now()
        record = document.trash[index]
        restored = replace(record.entry, updated_at=stamp)
        trash = document.trash[:index] + document.trash[index + 1:]

        live = next((i for i, entry in enumerate(document.entries) if entry.id == restored.id), -1)
        if live == -1:
            entries = document.entries + (restored,)
        else:
            displaced = TrashRecord(action=TrashAction.UPDATE, timestamp=stamp, entry=document.entries[live])
            entries = document.entries[:live] + (restored,) + document.entries[live + 1:]
            trash = trash + (displaced,)

        self.store.write(document.touched(stamp, entries=entries, trash=trash))
        return OperationResult(ok=True, message=f"Restored '{restored.name}' ({restored.id}) from trash.", value=restored)

    @_operation
    def purge(self, params: PurgeParams) -> OperationResult:
        """Permanently drop trash records at or before the cutoff (all when no cutoff)."""
        document = self.store.read()
        if document is None:
            return self._not_initialized()

        cutoff = resolve_cutoff(params.before, params.older_than, self.clock)
        if not document.trash:
            return OperationResult(ok=True, message="Trash already empty.", value=[])

        if cutoff is None:
            candidates = list(document.trash)
        else:
            candidates = []
            for record in document.trash:
                archived_at = parse_timestamp(record.timestamp)
                if archived_at is not None and archived_at <= cutoff:
                    candidates.append(record)

        if not candidates:
            return OperationResult(ok=True, message="No trash entries matched the purge filters.", value=[])

        if params.confirm != CONFIRM_PURGE:
            return self._pending(len(candidates), "purge", CONFIRM_PURGE)

        doomed = {id(record) for record in candidates}
        remainder = tuple(record for record in document.trash if id(record) not in doomed)
        self.store.write(document.touched(self._now(), trash=remainder))

        count = len(candidates)
        return OperationResult(ok=True, message=f"Purged {count} trash {_plural(count)}.", value=candidates)

    @_operation
    def verify(self, params: Optional[VerifyParams] = None) -> OperationResult:
        """Check every entry's integrity digest; optionally re-stamp and persist."""
        params = params or VerifyParams()
        document = self.store.read()
        if document is None:
            return self._not_initialized()

        report, entries = integrity.verify_entries(document.entries, fix=params.fix)
        if report.fixed:
            self.store.write(document.touched(self._now(), entries=tuple(entries)))

        lines = []
        if report.fixed:
            count = len(report.mismatches)
            lines.append(f"Applied integrity fixes to {count} {_plural(count)}.")
        if report.ok:
            lines.append(f"Integrity OK • {report.checked} {_plural(report.checked)} verified.")
        else:
            count = len(report.mismatches)
            lines.append(f"Integrity FAIL • {count} {_plural(count)} mismatched.")
            lines.extend(f" - {m.id} ({m.name}) • {m.reason.value}" for m in report.mismatches)

        return OperationResult(ok=True, message="\n".join(lines), value=report)
