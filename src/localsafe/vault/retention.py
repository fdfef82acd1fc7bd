# LocalSafe: Vault - Retention Policy
#
# Cutoff resolution for trash purges (absolute date or relative duration)
# and the unattended purge pass run at startup.

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from .errors import ErrorCode, InvalidDateFormat, InvalidDurationFormat

if TYPE_CHECKING:
    from .vault_manager import VaultManager

logger = logging.getLogger(__name__)

_DURATION = re.compile(r"^(\d+)([dh])$", re.IGNORECASE)


class Clock:
    """Source of the current time. Injected so purges are testable."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at ``moment``; ``advance`` moves it forward."""

    def __init__(self, moment: datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, delta: timedelta) -> None:
        self.moment = self.moment + delta


def parse_duration(value: str) -> timedelta:
    """
    Parse ``<n>d`` or ``<n>h`` into a timedelta.

    Raises:
        InvalidDurationFormat: Malformed or zero-length duration
    """
    match = _DURATION.match(str(value or "").strip())
    if not match:
        raise InvalidDurationFormat(f"Invalid duration '{value}'. Use formats like 7d or 12h.")
    amount = int(match.group(1))
    if amount == 0:
        raise InvalidDurationFormat(f"Invalid duration '{value}'. Duration must be positive.")
    if match.group(2).lower() == "d":
        return timedelta(days=amount)
    return timedelta(hours=amount)


def parse_date(value: str) -> datetime:
    """
    Parse an ISO-8601 date or date-time. Naive values are taken as UTC.

    Raises:
        InvalidDateFormat: Value is not ISO-8601
    """
    text = str(value or "").strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            day = date.fromisoformat(text)
        except ValueError:
            raise InvalidDateFormat(
                f"Invalid date '{value}'. Use ISO format (e.g., 2024-01-01)."
            ) from None
        parsed = datetime(day.year, day.month, day.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_cutoff(before: Optional[str], older_than: Optional[str], clock: Clock) -> Optional[datetime]:
    """Absolute ``before`` wins over relative ``older_than``; None means no cutoff."""
    if before:
        return parse_date(before)
    if older_than:
        return clock.now() - parse_duration(older_than)
    return None


def run_startup_retention(manager: "VaultManager", older_than: Optional[str]) -> None:
    """
    Purge trash records older than ``older_than`` without prompting.

    Failures are logged and swallowed: retention must never stop startup.
    """
    if not older_than:
        return

    from .params import CONFIRM_PURGE, PurgeParams

    try:
        result = manager.purge(PurgeParams(older_than=older_than, confirm=CONFIRM_PURGE))
    except Exception:
        logger.exception("Retention purge failed")
        return

    if result.ok:
        purged = len(result.value or [])
        if purged:
            logger.info("Retention purge removed %d trash item(s) older than %s", purged, older_than)
    elif result.error == ErrorCode.VAULT_NOT_INITIALIZED:
        logger.debug("Retention purge skipped: vault not initialized")
    else:
        logger.warning("Retention purge failed: %s", result.message)
