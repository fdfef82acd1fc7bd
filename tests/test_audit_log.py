"""Tests for the structlog-backed activity log."""

import json

import pytest


class TestAuditLogger:

    def test_record_writes_json_line(self, tmp_path):
        from localsafe.core.audit_log import AuditEvent, AuditLogger

        audit = AuditLogger(tmp_path / "activity.log")
        assert audit.record(AuditEvent.ADD_ENTRY, {"id": "e1", "name": "Mail", "tags": ["work"]})
        audit.close()

        lines = (tmp_path / "activity.log").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        event = json.loads(lines[0])
        assert event["event"] == "add_entry"
        assert event["id"] == "e1"
        assert event["tags"] == ["work"]
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_appends_and_reports_recent(self, tmp_path):
        from localsafe.core.audit_log import AuditEvent, AuditLogger

        audit = AuditLogger(tmp_path / "logs" / "activity.log")
        for count in range(4):
            audit.record(AuditEvent.TRASH_PURGE, {"count": count})

        total, events = audit.recent(limit=2)
        audit.close()

        assert total == 4
        assert [e["count"] for e in events] == [2, 3]

    def test_recent_on_missing_log(self, tmp_path):
        from localsafe.core.audit_log import AuditLogger

        assert AuditLogger(tmp_path / "never.log").recent() == (0, [])

    def test_recent_tolerates_foreign_lines(self, tmp_path):
        from localsafe.core.audit_log import AuditLogger

        path = tmp_path / "activity.log"
        path.write_text('plain text\n{"event": "view_entry"}\n', encoding="utf-8")
        total, events = AuditLogger(path).recent()
        assert total == 2
        assert events == [{"raw": "plain text"}, {"event": "view_entry"}]

    def test_plain_string_event(self, tmp_path):
        from localsafe.core.audit_log import AuditLogger

        audit = AuditLogger(tmp_path / "activity.log")
        audit.record("custom_event")
        _, events = audit.recent()
        audit.close()
        assert events[0]["event"] == "custom_event"

    def test_failures_never_raise(self, tmp_path, monkeypatch, caplog):
        from localsafe.core.audit_log import AuditEvent, AuditLogger

        audit = AuditLogger(tmp_path / "activity.log")

        def broken():
            raise OSError("read-only filesystem")

        monkeypatch.setattr(audit, "_ensure_handler", broken)
        assert audit.record(AuditEvent.VIEW_ENTRY, {"id": "x"}) is False
        assert any("Audit log error" in r.getMessage() for r in caplog.records)

    def test_separate_paths_do_not_share_handlers(self, tmp_path):
        from localsafe.core.audit_log import AuditLogger

        first = AuditLogger(tmp_path / "a.log")
        second = AuditLogger(tmp_path / "b.log")
        first.record("one")
        second.record("two")
        first.close()
        second.close()

        assert json.loads((tmp_path / "a.log").read_text(encoding="utf-8"))["event"] == "one"
        assert json.loads((tmp_path / "b.log").read_text(encoding="utf-8"))["event"] == "two"


class TestSingleton:

    def test_get_returns_same_instance(self, tmp_path):
        from localsafe.core.audit_log import get_audit_logger

        first = get_audit_logger()
        assert get_audit_logger() is first
        assert first.log_path == (tmp_path / "logs" / "activity.log").resolve()

    def test_set_replaces_instance(self, tmp_path):
        from localsafe.core.audit_log import AuditLogger, get_audit_logger, set_audit_logger

        replacement = AuditLogger(tmp_path / "other.log")
        set_audit_logger(replacement)
        assert get_audit_logger() is replacement
