"""Entry selectors, tag parsing and hostname extraction."""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union
from urllib.parse import urlsplit

from .models import Entry

_SCHEMELESS_HOST = re.compile(r"^(?:https?://)?([^/]+)", re.IGNORECASE)


def parse_tags(value: Union[None, str, Iterable[str]]) -> List[str]:
    """Normalize a comma-separated string or a list into lower-case tags.

    Blank items are dropped; duplicates are kept.
    """
    if not value:
        return []
    if isinstance(value, str):
        items: Iterable[str] = value.split(",")
    else:
        items = value
    return [str(item).strip().lower() for item in items if str(item).strip()]


def extract_hostname(url: Optional[str]) -> Optional[str]:
    """Hostname of an absolute URL, or None when the URL is malformed."""
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None
    return hostname.lower()


def display_domain(url: Optional[str]) -> str:
    """Best-effort domain for listings; accepts scheme-less ``host/path``."""
    hostname = extract_hostname(url)
    if hostname:
        return hostname
    match = _SCHEMELESS_HOST.match((url or "").strip())
    return match.group(1).lower() if match else ""


@dataclass(frozen=True)
class Selector:
    """Criteria used to locate entries.

    ``id`` wins over everything else when present. ``name`` is a
    case-insensitive exact match; ``tag`` and ``domain`` match
    case-insensitively and are meant for bulk selection.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    tag: Optional[str] = None
    domain: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.id or self.name or self.tag or self.domain)

    @property
    def is_single(self) -> bool:
        """True when the selector names one entry (by id or name)."""
        return bool(self.id or self.name)

    def matches(self, entry: Entry) -> bool:
        if self.id:
            return entry.id == self.id
        if self.name and (entry.name or "").lower() != self.name.lower():
            return False
        if self.tag:
            wanted = self.tag.lower()
            if not any(tag.lower() == wanted for tag in entry.tags):
                return False
        if self.domain:
            hostname = extract_hostname(entry.url)
            if hostname is None or hostname != self.domain.lower():
                return False
        return True

    def find_index(self, entries: Sequence[Entry]) -> int:
        """Index of the first matching entry, or -1."""
        for index, entry in enumerate(entries):
            if self.matches(entry):
                return index
        return -1

    def select(self, entries: Sequence[Entry]) -> List[Entry]:
        """All matches for bulk selectors; at most the first for id/name."""
        found = [entry for entry in entries if self.matches(entry)]
        return found[:1] if self.is_single else found
