"""
Tests for lexgate.audit -- Append-only, hash-chained policy audit log.

Covers: append + chain verification, tamper detection, recent/by-actor
reads, query filtering, tenant isolation, export format, JSON-lines
mirroring, reload, and write failures.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from lexgate.audit import (
    AuditAction,
    AuditEntityType,
    AuditLog,
    AuditWriteError,
    PolicyAuditEntry,
)


def _make_entry(
    tenant_id: str = "north",
    actor_id: str = "admin-1",
    action: AuditAction = AuditAction.CREATE_ROLE,
    entity_id: str = "role-1",
    after: dict | None = None,
    **kw,
) -> PolicyAuditEntry:
    return PolicyAuditEntry(
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        entity_type=kw.pop("entity_type", AuditEntityType.ROLE),
        entity_id=entity_id,
        after=after if after is not None else {"name": "Clerk"},
        **kw,
    )


# ---------------------------------------------------------------------------
# 1. Append and chain verification
# ---------------------------------------------------------------------------

class TestAppendAndChain:
    def test_first_entry_has_empty_previous_hash(self):
        log = AuditLog()
        entry = log.append(_make_entry())
        assert entry.previous_hash == ""
        assert len(log) == 1

    def test_entries_are_linked(self):
        log = AuditLog()
        first = log.append(_make_entry())
        second = log.append(_make_entry(entity_id="role-2"))
        assert second.previous_hash == first.compute_hash()

    def test_valid_chain(self):
        log = AuditLog()
        for i in range(5):
            log.append(_make_entry(entity_id=f"role-{i}"))
        assert log.verify_chain() == (True, None)

    def test_empty_log_is_valid(self):
        assert AuditLog().verify_chain() == (True, None)
        assert len(AuditLog()) == 0

    def test_modified_entry_breaks_chain(self):
        log = AuditLog()
        for i in range(3):
            log.append(_make_entry(entity_id=f"role-{i}"))
        log._entries[1].after = {"name": "Tampered"}
        valid, broken_at = log.verify_chain()
        assert valid is False
        assert broken_at in (1, 2)

    def test_modified_first_entry_detected(self):
        log = AuditLog()
        log.append(_make_entry())
        log.append(_make_entry())
        log._entries[0].actor_id = "intruder"
        valid, _ = log.verify_chain()
        assert valid is False


# ---------------------------------------------------------------------------
# 2. Reads
# ---------------------------------------------------------------------------

class TestReads:
    def test_recent_newest_first_and_limited(self):
        log = AuditLog()
        for i in range(5):
            log.append(_make_entry(entity_id=f"role-{i}"))
        recent = log.recent(limit=2)
        assert [e.entity_id for e in recent] == ["role-4", "role-3"]

    def test_recent_returns_copies(self):
        log = AuditLog()
        log.append(_make_entry())
        log.recent()[0].actor_id = "changed"
        assert log.recent()[0].actor_id == "admin-1"
        assert log.verify_chain() == (True, None)

    def test_by_actor(self):
        log = AuditLog()
        log.append(_make_entry(actor_id="a"))
        log.append(_make_entry(actor_id="b"))
        log.append(_make_entry(actor_id="a", entity_id="role-9"))
        assert [e.entity_id for e in log.by_actor("a")] == ["role-1", "role-9"]


# ---------------------------------------------------------------------------
# 3. Query filtering and tenant isolation
# ---------------------------------------------------------------------------

class TestQuery:
    def test_query_by_action(self):
        log = AuditLog()
        log.append(_make_entry())
        log.append(_make_entry(action=AuditAction.ASSIGN_ROLE, entity_type=AuditEntityType.USER_ROLE))
        results = log.query("north", action=AuditAction.ASSIGN_ROLE)
        assert len(results) == 1
        assert results[0].entity_type == AuditEntityType.USER_ROLE

    def test_query_by_entity_and_actor(self):
        log = AuditLog()
        log.append(_make_entry(entity_id="r1", actor_id="x"))
        log.append(_make_entry(entity_id="r1", actor_id="y"))
        log.append(_make_entry(entity_id="r2", actor_id="x"))
        assert len(log.query("north", entity_id="r1")) == 2
        assert len(log.query("north", entity_id="r1", actor_id="x")) == 1

    def test_query_by_time_range(self):
        log = AuditLog()
        base = datetime(2026, 3, 1, tzinfo=timezone.utc)
        for hours in (0, 1, 2):
            log.append(_make_entry(timestamp=base + timedelta(hours=hours)))
        results = log.query(
            "north",
            time_start=base + timedelta(minutes=30),
            time_end=base + timedelta(hours=2),
        )
        assert len(results) == 2

    def test_other_tenant_entries_hidden(self):
        log = AuditLog()
        log.append(_make_entry(tenant_id="north"))
        log.append(_make_entry(tenant_id="south"))
        assert [e.tenant_id for e in log.query("north")] == ["north"]


# ---------------------------------------------------------------------------
# 4. Export
# ---------------------------------------------------------------------------

class TestExport:
    def test_export_contains_metadata_and_entries(self):
        log = AuditLog()
        log.append(_make_entry())
        log.append(_make_entry(tenant_id="south"))
        bundle = log.export_for_review("north")
        meta = bundle["export_metadata"]
        assert meta["tenant_id"] == "north"
        assert meta["entry_count"] == 1
        assert meta["chain_integrity"] == "VALID"
        assert "best-effort" in meta["completeness_note"]
        assert bundle["entries"][0]["action"] == "create_role"

    def test_export_reports_broken_chain(self):
        log = AuditLog()
        log.append(_make_entry())
        log.append(_make_entry())
        log._entries[0].entity_id = "swapped"
        assert log.export_for_review("north")["export_metadata"]["chain_integrity"].startswith("BROKEN")


# ---------------------------------------------------------------------------
# 5. JSON-lines mirror
# ---------------------------------------------------------------------------

class TestMirror:
    def test_entries_written_and_reloaded(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        log = AuditLog(path)
        log.append(_make_entry(entity_id="r1"))
        log.append(_make_entry(entity_id="r2"))
        assert len(path.read_text().splitlines()) == 2

        reloaded = AuditLog.load(path)
        assert len(reloaded) == 2
        assert reloaded.verify_chain() == (True, None)

        reloaded.append(_make_entry(entity_id="r3"))
        assert len(path.read_text().splitlines()) == 3
        assert reloaded.verify_chain() == (True, None)

    def test_load_missing_file_is_empty(self, tmp_path):
        log = AuditLog.load(tmp_path / "none.jsonl")
        assert len(log) == 0

    def test_tampered_file_detected_on_reload(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        log = AuditLog(path)
        log.append(_make_entry(actor_id="honest"))
        log.append(_make_entry(actor_id="honest"))
        path.write_text(path.read_text().replace("honest", "forger", 1))
        valid, _ = AuditLog.load(path).verify_chain()
        assert valid is False

    def test_write_failure_raises_and_keeps_log_unchanged(self, tmp_path):
        log = AuditLog(tmp_path)
        with pytest.raises(AuditWriteError):
            log.append(_make_entry())
        assert len(log) == 0
