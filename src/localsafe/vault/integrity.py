"""Integrity digests for vault entries.

The digest is SHA-256 over a canonical JSON rendering of the identity
fields ``{id, name, username, url, tags, secret}``. ``meta`` and the
timestamps are excluded, so touching ``updatedAt`` alone never invalidates
a stored digest. The rendering matches compact ``JSON.stringify`` output so
digests stamped by earlier LocalSafe builds still verify.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Tuple

from .models import Entry

logger = logging.getLogger(__name__)


class MismatchReason(str, Enum):
    MISSING = "missing"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class IntegrityMismatch:
    id: str
    name: str
    reason: MismatchReason

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "reason": self.reason.value}


@dataclass
class VerificationReport:
    checked: int = 0
    mismatches: List[IntegrityMismatch] = field(default_factory=list)
    fixed: bool = False

    @property
    def ok(self) -> bool:
        return not self.mismatches

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "checked": self.checked,
            "fixed": self.fixed,
            "mismatches": [m.to_dict() for m in self.mismatches],
        }


def _canonical(entry: Entry) -> str:
    normal = {
        "id": entry.id,
        "name": entry.name or "",
        "username": entry.username or "",
        "url": entry.url or "",
        "tags": list(entry.tags),
        "secret": entry.secret.to_dict() if entry.secret else None,
    }
    return json.dumps(normal, separators=(",", ":"), ensure_ascii=False)


def compute_digest(entry: Entry) -> str:
    """Hex SHA-256 digest of the entry's identity fields."""
    return hashlib.sha256(_canonical(entry).encode("utf-8")).hexdigest()


def stamp(entry: Entry) -> Entry:
    """Copy of ``entry`` with ``meta.integrity`` set to its current digest."""
    return replace(entry, meta=replace(entry.meta, integrity=compute_digest(entry)))


def verify_entries(entries: Iterable[Entry], fix: bool = False) -> Tuple[VerificationReport, List[Entry]]:
    """
    Check every entry's stored digest.

    Always scans all entries; a problem with one entry never stops the scan.

    Returns:
        (report, entries) where ``entries`` has mismatching items re-stamped
        when ``fix`` is set, and is the input unchanged otherwise
    """
    report = VerificationReport()
    result: List[Entry] = []

    for entry in entries:
        report.checked += 1
        stored = entry.meta.integrity
        if stored and stored == compute_digest(entry):
            result.append(entry)
            continue

        reason = MismatchReason.MISMATCH if stored else MismatchReason.MISSING
        report.mismatches.append(IntegrityMismatch(id=entry.id, name=entry.name, reason=reason))
        logger.debug("Integrity %s for entry %s", reason.value, entry.id)
        result.append(stamp(entry) if fix else entry)

    report.fixed = bool(fix and report.mismatches)
    return report, result
