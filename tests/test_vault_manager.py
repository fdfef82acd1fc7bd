"""Tests for VaultManager lifecycle operations.

Covers: initialize/status, add, list, view, tag, update, delete, restore,
purge, verify, export, and the failure paths each operation reports.
"""

import json
from dataclasses import replace
from datetime import timedelta

import pytest

from localsafe.vault.errors import ConcurrentModificationError, ErrorCode
from localsafe.vault.models import TrashAction, TrashRecord, VaultDocument
from localsafe.vault.params import (
    AddParams,
    DeleteParams,
    ExportParams,
    ListParams,
    PurgeParams,
    RestoreParams,
    TagParams,
    TrashListParams,
    UpdateParams,
    VerifyParams,
    ViewParams,
)
from localsafe.vault.selectors import Selector
from localsafe.vault.store import InMemoryVaultStore
from localsafe.vault.vault_manager import VaultManager


def _add(manager, passphrase="pw", secret="s3cret", **fields):
    result = manager.add(AddParams(passphrase=passphrase, secret=secret, **fields))
    assert result.ok, result.message
    return result.value


def _view(manager, passphrase="pw", **selector):
    return manager.view(ViewParams(selector=Selector(**selector), passphrase=passphrase))


def _doc(store) -> VaultDocument:
    return store.document


# ── Initialization ──────────────────────────────────────────────────


class TestInitialize:

    def test_creates_empty_document(self, store, crypto, clock):
        manager = VaultManager(store, crypto=crypto, clock=clock)
        result = manager.initialize()

        assert result.ok
        assert "Created new vault" in result.message
        assert _doc(store).entries == ()
        assert _doc(store).trash == ()
        assert _doc(store).created_at == "2024-06-01T12:00:00.000Z"

    def test_second_initialize_does_not_write(self, manager, store):
        result = manager.initialize()
        assert result.ok
        assert "already exists" in result.message
        assert store.writes == 1

    @pytest.mark.parametrize("call", [
        lambda m: m.add(AddParams(passphrase="pw", secret="x")),
        lambda m: m.list_entries(ListParams()),
        lambda m: m.view(ViewParams(selector=Selector(id="x"), passphrase="pw")),
        lambda m: m.tag(TagParams(selector=Selector(id="x"), tags="a")),
        lambda m: m.update(UpdateParams(selector=Selector(id="x"), username="u")),
        lambda m: m.delete(DeleteParams(selector=Selector(id="x"), soft=True)),
        lambda m: m.restore(RestoreParams(selector=Selector(id="x"), confirm="restore")),
        lambda m: m.purge(PurgeParams(confirm="purge")),
        lambda m: m.verify(VerifyParams()),
        lambda m: m.export(ExportParams()),
        lambda m: m.list_trash(TrashListParams()),
    ])
    def test_operations_require_initialized_vault(self, crypto, clock, call):
        store = InMemoryVaultStore()
        result = call(VaultManager(store, crypto=crypto, clock=clock))

        assert not result.ok
        assert result.error == ErrorCode.VAULT_NOT_INITIALIZED
        assert store.writes == 0

    def test_status(self, crypto, clock):
        store = InMemoryVaultStore()
        manager = VaultManager(store, crypto=crypto, clock=clock)

        missing = manager.status()
        assert missing.ok
        assert missing.value["initialized"] is False

        manager.initialize()
        _add(manager)
        ready = manager.status()
        assert ready.value == {"initialized": True, "path": "<memory>", "entries": 1, "trash": 0}
        assert "1 entry stored" in ready.message


# ── Add ─────────────────────────────────────────────────────────────


class TestAdd:

    def test_scenario_add_then_view(self, manager):
        entry = _add(manager, name="Email", secret="hunter2", passphrase="pw")

        viewed = _view(manager, id=entry.id, passphrase="pw")
        assert viewed.ok
        assert viewed.value["secret"] == "hunter2"

        wrong = _view(manager, id=entry.id, passphrase="wrong")
        assert not wrong.ok
        assert wrong.error == ErrorCode.DECRYPTION_FAILURE

    def test_entry_fields(self, manager, store):
        from localsafe.vault.integrity import compute_digest

        entry = _add(manager, name="GitHub", username="octo", url="https://github.com", tags="Dev, WORK,,x")

        assert entry.tags == ("dev", "work", "x")
        assert entry.created_at == entry.updated_at == "2024-06-01T12:00:00.000Z"
        assert entry.meta.uses == 0
        assert entry.meta.integrity == compute_digest(entry)
        assert _doc(store).entries == (entry,)
        assert _doc(store).updated_at == entry.created_at

    def test_default_name(self, manager):
        assert _add(manager).name == "Untitled entry"

    def test_secret_and_note_never_stored_in_plaintext(self, manager, store):
        _add(manager, secret="hunter2", note="backup codes 1234")
        dumped = json.dumps(_doc(store).to_dict())
        assert "hunter2" not in dumped
        assert "backup codes" not in dumped

    def test_ids_are_unique(self, manager):
        ids = {_add(manager).id for _ in range(5)}
        assert len(ids) == 5

    @pytest.mark.parametrize("passphrase, secret", [("", "x"), (None, "x"), ("pw", ""), ("pw", None)])
    def test_requires_passphrase_and_secret(self, manager, store, passphrase, secret):
        result = manager.add(AddParams(passphrase=passphrase, secret=secret))
        assert not result.ok
        assert result.error == ErrorCode.VALIDATION_ERROR
        assert store.writes == 1


# ── List ────────────────────────────────────────────────────────────


class TestList:

    def test_empty_vault(self, manager):
        result = manager.list_entries()
        assert result.ok
        assert result.value == []
        assert "Vault empty" in result.message

    def test_rows_carry_metadata_only(self, manager):
        _add(manager, name="Mail", url="https://mail.example.com", tags="work")
        rows = manager.list_entries().value

        assert len(rows) == 1
        row = rows[0].to_dict()
        assert row["index"] == 1
        assert row["domain"] == "mail.example.com"
        assert row["tags"] == "work"
        assert "secret" not in row

    def test_filters(self, manager):
        _add(manager, name="A", url="https://a.example.com", tags="work")
        _add(manager, name="B", url="b.example.com/login", tags="home")
        _add(manager, name="C", url="https://a.example.com", tags="home")

        by_tag = manager.list_entries(ListParams(tag="HOME")).value
        assert [r.name for r in by_tag] == ["B", "C"]
        assert [r.index for r in by_tag] == [1, 2]

        by_domain = manager.list_entries(ListParams(domain="b.example.com")).value
        assert [r.name for r in by_domain] == ["B"]

        both = manager.list_entries(ListParams(tag="home", domain="a.example.com")).value
        assert [r.name for r in both] == ["C"]

    def test_no_matches(self, manager):
        _add(manager, tags="work")
        result = manager.list_entries(ListParams(tag="nope"))
        assert result.ok
        assert result.value == []
        assert "No entries matched" in result.message


# ── View ────────────────────────────────────────────────────────────


class TestView:

    def test_view_by_name_returns_note(self, manager):
        entry = _add(manager, name="Bank", secret="1234", note="pin for card")
        result = _view(manager, name="bank")

        assert result.ok
        assert result.value["id"] == entry.id
        assert result.value["note"] == "pin for card"
        assert result.value["tags"] == []

    def test_view_never_writes(self, manager, store):
        entry = _add(manager)
        writes = store.writes
        _view(manager, id=entry.id)
        _view(manager, id=entry.id, passphrase="wrong")
        assert store.writes == writes
        assert _doc(store).entries[0].meta.uses == 0

    def test_opens_entries_after_kdf_setting_changes(self, manager, store, clock):
        from localsafe.vault.encryption import EncryptionService

        entry = _add(manager, secret="sealed-early")
        reconfigured = VaultManager(store, crypto=EncryptionService(iterations=3000), clock=clock)

        assert _view(reconfigured, id=entry.id).value["secret"] == "sealed-early"
        later = _add(reconfigured, secret="sealed-later")
        assert later.secret.iterations == 3000
        assert _view(manager, id=later.id).value["secret"] == "sealed-later"

    def test_requires_selector(self, manager):
        _add(manager)
        result = _view(manager)
        assert result.error == ErrorCode.VALIDATION_ERROR

    def test_requires_passphrase(self, manager):
        entry = _add(manager)
        result = _view(manager, id=entry.id, passphrase="")
        assert result.error == ErrorCode.VALIDATION_ERROR

    def test_not_found(self, manager):
        _add(manager)
        result = _view(manager, id="does-not-exist")
        assert result.error == ErrorCode.ENTRY_NOT_FOUND

    def test_corrupt_payload(self, manager, store):
        entry = _add(manager)
        broken = replace(entry, secret=replace(entry.secret, ciphertext="%%%"))
        store.document = _doc(store).touched("x", entries=(broken,))

        result = _view(manager, id=entry.id)
        assert result.error == ErrorCode.DECRYPTION_FAILURE


# ── Tag ─────────────────────────────────────────────────────────────


class TestTag:

    def test_replace_semantics(self, manager):
        entry = _add(manager, tags="seed")
        manager.tag(TagParams(selector=Selector(id=entry.id), tags=["a"]))
        result = manager.tag(TagParams(selector=Selector(id=entry.id), tags=["b"]))

        assert result.ok
        assert result.value.tags == ("b",)

    def test_restamps_and_touches(self, manager, store, clock):
        from localsafe.vault.integrity import compute_digest

        entry = _add(manager)
        clock.advance(timedelta(hours=1))
        updated = manager.tag(TagParams(selector=Selector(name=entry.name), tags="X,y")).value

        assert updated.tags == ("x", "y")
        assert updated.updated_at == "2024-06-01T13:00:00.000Z"
        assert updated.meta.integrity == compute_digest(updated)
        assert manager.verify().value.ok

    def test_archives_previous_version(self, manager, store, clock):
        entry = _add(manager, tags="a")
        clock.advance(timedelta(minutes=5))
        manager.tag(TagParams(selector=Selector(id=entry.id), tags=["b"]))

        trash = _doc(store).trash
        assert len(trash) == 1
        assert trash[0].action == TrashAction.UPDATE
        assert trash[0].timestamp == "2024-06-01T12:05:00.000Z"
        assert trash[0].entry == entry
        assert trash[0].entry.tags == ("a",)

    def test_requires_tags(self, manager, store):
        entry = _add(manager)
        writes = store.writes
        result = manager.tag(TagParams(selector=Selector(id=entry.id), tags=" , "))
        assert result.error == ErrorCode.VALIDATION_ERROR
        assert store.writes == writes

    def test_not_found(self, manager):
        result = manager.tag(TagParams(selector=Selector(id="nope"), tags="a"))
        assert result.error == ErrorCode.ENTRY_NOT_FOUND


# ── Update ──────────────────────────────────────────────────────────


class TestUpdate:

    def test_scenario_username_only(self, manager, store):
        entry = _add(manager, username="old")
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), username="new"))

        assert result.ok
        assert result.value.username == "new"
        assert result.value.secret == entry.secret
        trash = _doc(store).trash
        assert len(trash) == 1
        assert trash[0].action == TrashAction.UPDATE
        assert trash[0].entry == entry

    def test_metadata_changes_restamp(self, manager):
        from localsafe.vault.integrity import compute_digest

        entry = _add(manager, name="Old")
        updated = manager.update(UpdateParams(
            selector=Selector(id=entry.id), new_name="New", url="https://new.example", tags="a,b",
        )).value

        assert (updated.name, updated.url, updated.tags) == ("New", "https://new.example", ("a", "b"))
        assert updated.meta.integrity == compute_digest(updated)

    def test_secret_change(self, manager):
        entry = _add(manager, secret="old", note="keep me")
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), secret="new", passphrase="pw"))

        assert result.ok
        viewed = _view(manager, id=entry.id).value
        assert viewed["secret"] == "new"
        assert viewed["note"] == "keep me"

    def test_note_change_keeps_secret(self, manager):
        entry = _add(manager, secret="keep", note="old")
        manager.update(UpdateParams(selector=Selector(id=entry.id), note="new note", passphrase="pw"))

        viewed = _view(manager, id=entry.id).value
        assert viewed["secret"] == "keep"
        assert viewed["note"] == "new note"

    def test_secret_change_requires_passphrase(self, manager, store):
        entry = _add(manager)
        writes = store.writes
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), secret="new"))
        assert result.error == ErrorCode.VALIDATION_ERROR
        assert store.writes == writes

    def test_secret_change_with_wrong_passphrase(self, manager, store):
        entry = _add(manager)
        writes = store.writes
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), secret="new", passphrase="wrong"))
        assert result.error == ErrorCode.DECRYPTION_FAILURE
        assert store.writes == writes

    def test_rotation(self, manager):
        entry = _add(manager, secret="s", passphrase="old-pw")
        result = manager.update(UpdateParams(
            selector=Selector(id=entry.id), passphrase="old-pw", new_passphrase="new-pw",
        ))

        assert result.ok
        assert _view(manager, id=entry.id, passphrase="new-pw").value["secret"] == "s"
        assert _view(manager, id=entry.id, passphrase="old-pw").error == ErrorCode.DECRYPTION_FAILURE

    def test_rotation_with_secret_change(self, manager):
        entry = _add(manager, secret="s", passphrase="old-pw")
        manager.update(UpdateParams(
            selector=Selector(id=entry.id), secret="s2", passphrase="old-pw", new_passphrase="new-pw",
        ))
        assert _view(manager, id=entry.id, passphrase="new-pw").value["secret"] == "s2"

    def test_rotation_requires_current_passphrase(self, manager):
        entry = _add(manager)
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), new_passphrase="new-pw"))
        assert result.error == ErrorCode.VALIDATION_ERROR

    def test_no_effective_change_is_noop(self, manager, store):
        entry = _add(manager, name="Same", username="u", tags="a", secret="s")
        writes = store.writes
        result = manager.update(UpdateParams(
            selector=Selector(id=entry.id), new_name="Same", username="u", tags=["A"], secret="s", passphrase="pw",
        ))

        assert not result.ok
        assert result.error is None
        assert "No changes" in result.message
        assert store.writes == writes
        assert _doc(store).trash == ()

    def test_blank_name_rejected(self, manager):
        entry = _add(manager)
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), new_name="  "))
        assert result.error == ErrorCode.VALIDATION_ERROR

    def test_empty_secret_rejected(self, manager, store):
        entry = _add(manager, secret="keep")
        writes = store.writes
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), secret="", passphrase="pw"))

        assert result.error == ErrorCode.VALIDATION_ERROR
        assert store.writes == writes
        assert _view(manager, id=entry.id).value["secret"] == "keep"

    def test_empty_note_clears_note(self, manager):
        entry = _add(manager, secret="keep", note="old")
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), note="", passphrase="pw"))

        assert result.ok
        viewed = _view(manager, id=entry.id).value
        assert viewed["secret"] == "keep"
        assert viewed["note"] == ""

    def test_empty_tags_clear(self, manager):
        entry = _add(manager, tags="a,b")
        result = manager.update(UpdateParams(selector=Selector(id=entry.id), tags=""))
        assert result.ok
        assert result.value.tags == ()

    def test_selector_required(self, manager):
        result = manager.update(UpdateParams(selector=Selector(tag="a"), username="x"))
        assert result.error == ErrorCode.VALIDATION_ERROR


# ── Delete ──────────────────────────────────────────────────────────


class TestDelete:

    def test_hard_delete_requires_token(self, manager, store):
        _add(manager, tags="old")
        _add(manager, tags="old")
        writes = store.writes

        result = manager.delete(DeleteParams(selector=Selector(tag="old")))
        assert not result.ok
        assert result.error == ErrorCode.CONFIRMATION_REQUIRED
        assert result.pending == 2
        assert "Pending deletion for 2 entries" in result.message
        assert store.writes == writes
        assert len(_doc(store).entries) == 2

    def test_wrong_token_is_pending(self, manager):
        entry = _add(manager)
        result = manager.delete(DeleteParams(selector=Selector(id=entry.id), confirm="DELETE"))
        assert result.error == ErrorCode.CONFIRMATION_REQUIRED
        assert result.pending == 1

    def test_hard_delete_moves_to_trash(self, manager, store):
        keep = _add(manager, name="keep")
        doomed = _add(manager, name="doomed")

        result = manager.delete(DeleteParams(selector=Selector(id=doomed.id), confirm="delete"))

        assert result.ok
        assert result.value.soft_delete is False
        assert result.value.entries == (doomed,)
        assert _doc(store).entries == (keep,)
        record = _doc(store).trash[0]
        assert (record.action, record.entry, record.timestamp) == (
            TrashAction.DELETE, doomed, "2024-06-01T12:00:00.000Z",
        )

    def test_soft_delete_needs_no_token(self, manager, store):
        entry = _add(manager)
        result = manager.delete(DeleteParams(selector=Selector(id=entry.id), soft=True))

        assert result.ok
        assert result.value.soft_delete is True
        assert _doc(store).entries == ()
        assert _doc(store).trash[0].action == TrashAction.SOFT_DELETE

    def test_name_targets_first_match_only(self, manager, store):
        first = _add(manager, name="dup")
        second = _add(manager, name="DUP")
        manager.delete(DeleteParams(selector=Selector(name="dup"), confirm="delete"))
        assert _doc(store).entries == (second,)
        assert _doc(store).trash[0].entry == first

    def test_domain_bulk_ignores_malformed_urls(self, manager, store):
        _add(manager, url="https://shop.example.com/a")
        _add(manager, url="https://SHOP.example.com/b")
        loose = _add(manager, url="shop.example.com/c")

        result = manager.delete(DeleteParams(selector=Selector(domain="shop.example.com"), confirm="delete"))
        assert len(result.value.entries) == 2
        assert _doc(store).entries == (loose,)

    def test_empty_selector(self, manager):
        _add(manager)
        result = manager.delete(DeleteParams(selector=Selector(), confirm="delete"))
        assert result.error == ErrorCode.VALIDATION_ERROR

    def test_no_matches(self, manager):
        _add(manager, tags="a")
        result = manager.delete(DeleteParams(selector=Selector(tag="zzz"), confirm="delete"))
        assert result.error == ErrorCode.ENTRY_NOT_FOUND


# ── Trash: list / restore ───────────────────────────────────────────


class TestTrash:

    def test_list_filters(self, manager):
        a = _add(manager, name="Alpha")
        b = _add(manager, name="Beta")
        manager.delete(DeleteParams(selector=Selector(id=a.id), soft=True))
        manager.delete(DeleteParams(selector=Selector(id=b.id), confirm="delete"))

        assert len(manager.list_trash().value) == 2
        soft = manager.list_trash(TrashListParams(action=TrashAction.SOFT_DELETE)).value
        assert [r.entry.name for r in soft] == ["Alpha"]
        named = manager.list_trash(TrashListParams(name="beta")).value
        assert [r.action for r in named] == [TrashAction.DELETE]
        none = manager.list_trash(TrashListParams(name="gamma"))
        assert none.ok and none.value == []

    def test_empty_trash(self, manager):
        result = manager.list_trash()
        assert result.ok
        assert "Trash empty" in result.message

    @pytest.mark.parametrize("soft", [True, False])
    def test_restore_round_trip(self, manager, store, clock, soft):
        entry = _add(manager, name="Mail", secret="hunter2")
        manager.delete(DeleteParams(selector=Selector(id=entry.id), soft=soft, confirm="delete"))
        clock.advance(timedelta(days=1))

        result = manager.restore(RestoreParams(selector=Selector(id=entry.id), confirm="restore"))

        assert result.ok
        restored = _doc(store).entries[0]
        assert (restored.id, restored.name, restored.secret) == (entry.id, entry.name, entry.secret)
        assert restored.updated_at == "2024-06-02T12:00:00.000Z"
        assert _doc(store).trash == ()
        assert _view(manager, id=entry.id).value["secret"] == "hunter2"
        assert manager.verify().value.ok

    def test_restore_requires_token(self, manager, store):
        entry = _add(manager)
        manager.delete(DeleteParams(selector=Selector(id=entry.id), soft=True))
        writes = store.writes

        result = manager.restore(RestoreParams(selector=Selector(id=entry.id)))
        assert result.error == ErrorCode.CONFIRMATION_REQUIRED
        assert result.pending == 1
        assert store.writes == writes

    def test_restore_update_snapshot_replaces_live_entry(self, manager, store):
        entry = _add(manager, username="before")
        manager.update(UpdateParams(selector=Selector(id=entry.id), username="after"))

        result = manager.restore(RestoreParams(selector=Selector(id=entry.id), confirm="restore"))

        assert result.ok
        doc = _doc(store)
        assert len(doc.entries) == 1
        assert doc.entries[0].username == "before"
        assert [(r.action, r.entry.username) for r in doc.trash] == [(TrashAction.UPDATE, "after")]

    def test_restore_empty_trash(self, manager):
        result = manager.restore(RestoreParams(selector=Selector(id="x"), confirm="restore"))
        assert result.error == ErrorCode.ENTRY_NOT_FOUND

    def test_restore_no_match(self, manager):
        entry = _add(manager)
        manager.delete(DeleteParams(selector=Selector(id=entry.id), soft=True))
        result = manager.restore(RestoreParams(selector=Selector(name="other"), confirm="restore"))
        assert result.error == ErrorCode.ENTRY_NOT_FOUND


# ── Purge ───────────────────────────────────────────────────────────


class TestPurge:

    @staticmethod
    def _trash_at(manager, clock, *ages_in_days):
        """Soft-delete one entry per age, ``age`` days before the final clock."""
        ids = []
        for age in sorted(ages_in_days, reverse=True):
            entry = _add(manager, name=f"aged-{age}")
            ids.append(entry.id)
        start = clock.now()
        for age, entry_id in zip(sorted(ages_in_days, reverse=True), ids):
            clock.moment = start - timedelta(days=age)
            manager.delete(DeleteParams(selector=Selector(id=entry_id), soft=True))
        clock.moment = start

    def test_older_than_cutoff(self, manager, store, clock):
        self._trash_at(manager, clock, 10, 1)
        result = manager.purge(PurgeParams(older_than="7d", confirm="purge"))

        assert result.ok
        assert [r.entry.name for r in result.value] == ["aged-10"]
        assert [r.entry.name for r in _doc(store).trash] == ["aged-1"]

    def test_cutoff_is_inclusive(self, manager, store, clock):
        self._trash_at(manager, clock, 7)
        result = manager.purge(PurgeParams(older_than="168h", confirm="purge"))
        assert len(result.value) == 1
        assert _doc(store).trash == ()

    def test_before_wins_over_older_than(self, manager, store, clock):
        self._trash_at(manager, clock, 10, 1)
        result = manager.purge(PurgeParams(before="2024-05-01", older_than="1h", confirm="purge"))
        assert result.ok
        assert result.value == []
        assert len(_doc(store).trash) == 2

    def test_no_cutoff_purges_everything(self, manager, store, clock):
        self._trash_at(manager, clock, 3, 2)
        result = manager.purge(PurgeParams(confirm="purge"))
        assert len(result.value) == 2
        assert _doc(store).trash == ()

    def test_requires_token(self, manager, store, clock):
        self._trash_at(manager, clock, 3)
        writes = store.writes
        result = manager.purge(PurgeParams())
        assert result.error == ErrorCode.CONFIRMATION_REQUIRED
        assert result.pending == 1
        assert store.writes == writes

    def test_invalid_cutoffs(self, manager):
        bad_date = manager.purge(PurgeParams(before="last tuesday", confirm="purge"))
        assert bad_date.error == ErrorCode.INVALID_DATE_FORMAT

        for value in ("7", "7w", "d", "0d"):
            bad_duration = manager.purge(PurgeParams(older_than=value, confirm="purge"))
            assert bad_duration.error == ErrorCode.INVALID_DURATION_FORMAT

    def test_empty_trash(self, manager):
        result = manager.purge(PurgeParams(older_than="7d", confirm="purge"))
        assert result.ok
        assert "already empty" in result.message

    def test_unparseable_timestamps_survive_cutoff_purge(self, manager, store):
        entry = _add(manager)
        garbled = TrashRecord(action=TrashAction.DELETE, timestamp="not-a-date", entry=entry)
        store.document = _doc(store).touched("x", trash=(garbled,))

        result = manager.purge(PurgeParams(older_than="1h", confirm="purge"))
        assert result.value == []
        assert _doc(store).trash == (garbled,)


# ── Verify ──────────────────────────────────────────────────────────


class TestVerify:

    def test_clean_vault(self, manager, store):
        _add(manager)
        _add(manager)
        writes = store.writes

        result = manager.verify()
        assert result.ok
        assert result.value.ok
        assert result.value.checked == 2
        assert "Integrity OK • 2 entries verified." in result.message
        assert store.writes == writes

    def test_detects_tampering_without_writing(self, manager, store):
        good = _add(manager, name="good")
        bad = _add(manager, name="bad")
        tampered = replace(bad, username="mallory")
        store.document = _doc(store).touched("x", entries=(good, tampered))
        writes = store.writes

        result = manager.verify()
        assert result.ok
        assert not result.value.ok
        assert [m.id for m in result.value.mismatches] == [bad.id]
        assert "Integrity FAIL" in result.message
        assert store.writes == writes

    def test_fix_is_idempotent(self, manager, store):
        entry = _add(manager)
        unstamped = replace(entry, meta=replace(entry.meta, integrity=None))
        store.document = _doc(store).touched("x", entries=(unstamped,))

        first = manager.verify(VerifyParams(fix=True))
        assert first.value.fixed
        assert "Applied integrity fixes to 1 entry." in first.message

        second = manager.verify(VerifyParams(fix=True))
        assert second.value.ok
        assert not second.value.fixed


# ── Export ──────────────────────────────────────────────────────────


class TestExport:

    def test_stdout_compact(self, manager, store):
        _add(manager, secret="hunter2")
        result = manager.export()

        outcome = result.value
        assert outcome.destination == "stdout"
        assert "\n" not in outcome.content
        assert json.loads(outcome.content) == _doc(store).to_dict()
        assert "hunter2" not in outcome.content

    def test_pretty(self, manager):
        result = manager.export(ExportParams(pretty=True))
        assert "\n  " in result.value.content

    def test_file_destination(self, manager, store, tmp_path):
        dest = tmp_path / "out" / "backup.json"
        result = manager.export(ExportParams(dest=str(dest)))

        assert result.ok
        assert result.value.content is None
        assert json.loads(dest.read_text(encoding="utf-8")) == _doc(store).to_dict()

    def test_unsupported_format(self, manager):
        result = manager.export(ExportParams(format="csv"))
        assert result.error == ErrorCode.UNSUPPORTED_FORMAT


# ── Storage failures ────────────────────────────────────────────────


class _ConflictingStore(InMemoryVaultStore):
    def write(self, document):
        raise ConcurrentModificationError("Vault changed on disk")


class TestStorageFailures:

    def test_concurrent_modification_is_reported(self, crypto, clock):
        store = _ConflictingStore(VaultDocument.new(clock.now()))
        manager = VaultManager(store, crypto=crypto, clock=clock)

        result = manager.add(AddParams(passphrase="pw", secret="x"))
        assert not result.ok
        assert result.error == ErrorCode.CONCURRENT_MODIFICATION
        assert store.document.entries == ()

    def test_file_store_integration(self, tmp_path, crypto, clock):
        from localsafe.vault.store import FileVaultStore

        path = tmp_path / "vault.json"
        manager = VaultManager(FileVaultStore(path), crypto=crypto, clock=clock)
        manager.initialize()
        entry = _add(manager, name="Disk")

        reopened = VaultManager(FileVaultStore(path), crypto=crypto, clock=clock)
        assert _view(reopened, id=entry.id).value["secret"] == "s3cret"
