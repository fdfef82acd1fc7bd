"""
Shared pytest fixtures for the LocalSafe test suite.

Autouse fixtures below isolate tests from real user data:
  - Audit logger  -> temp directory  (prevents test events in ./logs/activity.log)
  - Environment   -> LOCALSAFE_* variables cleared, cwd moved to tmp_path
"""

from datetime import datetime, timezone

import pytest

PASSPHRASE = "correct horse battery staple"


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or through the CLI) calls
    ``get_audit_logger()`` appends events to the real activity log.
    """
    import localsafe.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None
    monkeypatch.setattr(audit_mod, "DEFAULT_AUDIT_LOG", tmp_path / "logs" / "activity.log")

    yield

    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path, monkeypatch):
    """Clear LOCALSAFE_* variables and run each test from its own directory."""
    for name in (
        "LOCALSAFE_CONFIG",
        "LOCALSAFE_VAULT_PATH",
        "LOCALSAFE_AUDIT_LOG",
        "LOCALSAFE_KDF_ITERATIONS",
        "LOCALSAFE_TRASH_OLDER_THAN",
        "LOCALSAFE_OPTIMISTIC_LOCKING",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def crypto():
    """Encryption suite with a low PBKDF2 work factor to keep tests fast."""
    from localsafe.vault.encryption import EncryptionService

    return EncryptionService(iterations=1000)


@pytest.fixture
def clock():
    from localsafe.vault.retention import FixedClock

    return FixedClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    from localsafe.vault.store import InMemoryVaultStore

    return InMemoryVaultStore()


@pytest.fixture
def manager(store, crypto, clock):
    """Initialized manager over an in-memory store."""
    from localsafe.vault.vault_manager import VaultManager

    vault = VaultManager(store, crypto=crypto, clock=clock)
    assert vault.initialize().ok
    return vault


@pytest.fixture
def passphrase():
    return PASSPHRASE
