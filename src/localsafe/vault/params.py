# LocalSafe: Vault - Operation Parameters
#
# One typed struct per lifecycle operation. Callers resolve prompts before
# building these; the vault core never asks for input itself.

from dataclasses import dataclass
from typing import List, Optional, Union

from .errors import ErrorCode
from .models import TrashAction
from .selectors import Selector

# Exact literals a caller must pass to authorize destructive operations
CONFIRM_DELETE = "delete"
CONFIRM_RESTORE = "restore"
CONFIRM_PURGE = "purge"
CONFIRM_EXPORT = "export"

DEFAULT_ENTRY_NAME = "Untitled entry"

TagInput = Union[None, str, List[str]]


@dataclass
class AddParams:
    passphrase: Optional[str]
    secret: Optional[str]
    name: Optional[str] = None
    username: str = ""
    url: str = ""
    note: str = ""
    tags: TagInput = None


@dataclass
class ViewParams:
    selector: Selector
    passphrase: Optional[str]


@dataclass
class ListParams:
    tag: Optional[str] = None
    domain: Optional[str] = None


@dataclass
class TagParams:
    selector: Selector
    tags: TagInput


@dataclass
class UpdateParams:
    """Fields left as None are not changed."""

    selector: Selector
    new_name: Optional[str] = None
    username: Optional[str] = None
    url: Optional[str] = None
    tags: TagInput = None
    secret: Optional[str] = None
    note: Optional[str] = None
    passphrase: Optional[str] = None
    new_passphrase: Optional[str] = None

    @property
    def wants_secret_change(self) -> bool:
        return self.secret is not None or self.note is not None

    @property
    def wants_rotation(self) -> bool:
        return bool(self.new_passphrase)


@dataclass
class DeleteParams:
    selector: Selector
    soft: bool = False
    confirm: Optional[str] = None


@dataclass
class TrashListParams:
    action: Optional[TrashAction] = None
    name: Optional[str] = None


@dataclass
class RestoreParams:
    selector: Selector
    confirm: Optional[str] = None


@dataclass
class PurgeParams:
    before: Optional[str] = None
    older_than: Optional[str] = None
    confirm: Optional[str] = None


@dataclass
class ExportParams:
    format: str = "json"
    pretty: bool = False
    dest: Optional[str] = None


@dataclass
class VerifyParams:
    fix: bool = False


@dataclass
class OperationResult:
    """
    Outcome of a lifecycle operation.

    ``ok`` False means nothing was written. ``pending`` is set when a
    destructive operation is waiting for its confirmation token and holds
    the number of items it would affect.
    """

    ok: bool
    message: str
    value: object = None
    error: Optional[ErrorCode] = None
    pending: Optional[int] = None
