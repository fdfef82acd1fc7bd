# LocalSafe: Audit Logging
#
# Append-only JSON-lines activity log for vault operations.
# Each successful mutation or secret access is recorded with a timestamp.
# Recording is fire-and-forget: a failing audit write never undoes a vault
# change and never surfaces as an operation failure.

import hashlib
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LOG = Path("./logs/activity.log")


class AuditEvent(str, Enum):
    """Events written to the activity log."""

    ADD_ENTRY = "add_entry"
    VIEW_ENTRY = "view_entry"
    UPDATE_TAGS = "update_tags"
    UPDATE_ENTRY = "update_entry"
    DELETE_ENTRY = "delete_entry"
    TRASH_LIST = "trash_list"
    TRASH_RESTORE = "trash_restore"
    TRASH_PURGE = "trash_purge"
    EXPORT_VAULT = "export_vault"
    VERIFY_VAULT = "verify_vault"


class AuditLogger:
    """
    Append-only audit sink.

    Lines are rendered by structlog as JSON objects:
        {"event": "add_entry", "id": "...", "level": "info", "timestamp": "..."}

    Never pass secrets, notes or passphrases in the payload.
    """

    def __init__(self, log_path: Optional[Union[Path, str]] = None):
        self.log_path = Path(log_path or DEFAULT_AUDIT_LOG).expanduser().resolve()

        # One stdlib logger per file so two sinks never share a handler
        suffix = hashlib.sha256(str(self.log_path).encode("utf-8")).hexdigest()[:12]
        self._stdlib_logger = logging.getLogger(f"localsafe.audit.{suffix}")
        self._stdlib_logger.setLevel(logging.INFO)
        self._stdlib_logger.propagate = False
        self._handler: Optional[logging.Handler] = None

        self.logger = structlog.wrap_logger(
            self._stdlib_logger,
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
        )

    def _ensure_handler(self) -> None:
        if self._handler is not None:
            return
        for existing in self._stdlib_logger.handlers:
            if isinstance(existing, logging.FileHandler):
                self._handler = existing
                return
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(self.log_path, mode="a", encoding="utf-8", delay=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
        self._stdlib_logger.addHandler(handler)
        self._handler = handler

    def record(self, event: Union[AuditEvent, str], payload: Optional[Dict[str, Any]] = None) -> bool:
        """
        Append one event. Returns False (after logging a warning) on failure.
        """
        name = event.value if isinstance(event, AuditEvent) else str(event)
        try:
            self._ensure_handler()
            self.logger.info(name, **(payload or {}))
            return True
        except Exception as exc:
            logger.warning("Audit log error (%s): %s", self.log_path, exc)
            return False

    def recent(self, limit: int = 5) -> Tuple[int, List[Dict[str, Any]]]:
        """Total line count and the last ``limit`` events, oldest first."""
        if not self.log_path.exists():
            return 0, []
        lines = [line for line in self.log_path.read_text(encoding="utf-8").splitlines() if line.strip()]
        events = []
        for line in lines[-limit:] if limit > 0 else []:
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                events.append({"raw": line})
        return len(lines), events

    def close(self) -> None:
        if self._handler is not None:
            self._stdlib_logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger(log_path: Optional[Union[Path, str]] = None) -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger(log_path)
    return _audit_logger


def set_audit_logger(instance: Optional[AuditLogger]) -> None:
    """Replace the singleton (for testing and for config-driven startup)."""
    global _audit_logger
    if _audit_logger is not None and _audit_logger is not instance:
        _audit_logger.close()
    _audit_logger = instance
