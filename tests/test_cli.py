"""
Tests for lexgate.cli -- Administrative command line.
"""

from __future__ import annotations

import json

import pytest
import yaml
from loguru import logger

from lexgate.cli import main
from lexgate.store import InMemoryRbacStore


@pytest.fixture(autouse=True)
def _drop_cli_log_handler():
    # main() installs a handler bound to the captured stderr
    yield
    logger.remove()


@pytest.fixture
def state(tmp_path):
    return str(tmp_path / "rbac.yaml")


@pytest.fixture
def snapshot(tmp_path):
    path = tmp_path / "org.yaml"
    path.write_text(yaml.safe_dump({
        "employees": [
            {"id": "p1", "name": "Asha", "role": "Partner"},
            {"id": "s1", "name": "Ira", "manager_id": "p1", "data_scope": "Own Cases"},
        ],
        "cases": [{"id": "c1", "assigned_to_id": "s1"}, {"id": "c2", "assigned_to_id": "p1"}],
    }))
    return str(path)


def _run(capsys, *argv) -> tuple[int, object]:
    code = main(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else None


def _role_id(state: str, name: str) -> str:
    return InMemoryRbacStore.load_yaml(state).find_roles_by_name(name)[0].id


class TestCommands:
    def test_seed_persists_state(self, capsys, state):
        code, result = _run(capsys, "--state", state, "seed")
        assert code == 0
        assert result["seeded"] is True
        assert InMemoryRbacStore.load_yaml(state).count_roles() == 5

    def test_create_assign_and_check(self, capsys, state):
        _run(capsys, "--state", state, "seed")
        code, role = _run(capsys, "--state", state, "--actor", "admin-1", "create-role", "Clerk",
                          "--description", "Filing clerk")
        assert code == 0 and role["created_by"] == "admin-1"

        code, _ = _run(capsys, "--state", state, "assign", "u1", _role_id(state, "Staff"))
        assert code == 0

        code, perms = _run(capsys, "--state", state, "permissions", "u1",
                           "--check", "cases.read", "--check", "rbac.admin")
        assert perms["checks"] == {"cases.read": True, "rbac.admin": False}

    def test_update_and_delete_role(self, capsys, state):
        _run(capsys, "--state", state, "seed")
        _, role = _run(capsys, "--state", state, "create-role", "Clerk")
        code, updated = _run(capsys, "--state", state, "update-role", role["id"], "--active", "false")
        assert code == 0 and updated["is_active"] is False
        code, _ = _run(capsys, "--state", state, "delete-role", role["id"])
        assert code == 0
        assert InMemoryRbacStore.load_yaml(state).get_role(role["id"]) is None

    def test_revoke(self, capsys, state):
        _run(capsys, "--state", state, "seed")
        staff = _role_id(state, "Staff")
        _run(capsys, "--state", state, "assign", "u1", staff)
        code, revoked = _run(capsys, "--state", state, "revoke", "u1", staff)
        assert code == 0 and revoked[0]["is_active"] is False

    def test_create_permission(self, capsys, state):
        code, perm = _run(capsys, "--state", state, "create-permission", "cases.read.deny",
                          "--category", "Cases", "--resource", "cases", "--action", "read",
                          "--effect", "deny")
        assert code == 0 and perm["effect"] == "deny"

    def test_roles_and_analytics(self, capsys, state):
        _run(capsys, "--state", state, "seed")
        _, roles = _run(capsys, "--state", state, "roles")
        assert len(roles) == 5
        _, analytics = _run(capsys, "--state", state, "analytics")
        assert analytics["system_roles"] == 5

    def test_visibility_and_hierarchy(self, capsys, state, snapshot):
        code, report = _run(capsys, "--state", state, "--snapshot", snapshot, "visibility", "s1")
        assert code == 0
        assert [c["id"] for c in report["visibility"]["visible_cases"]] == ["c1"]
        _, tree = _run(capsys, "--state", state, "--snapshot", snapshot, "hierarchy")
        assert tree["statistics"]["total_employees"] == 2

    def test_audit_with_log_file(self, capsys, state, tmp_path):
        audit = str(tmp_path / "audit.jsonl")
        _run(capsys, "--state", state, "--audit-log", audit, "seed")
        _, entries = _run(capsys, "--state", state, "--audit-log", audit, "audit", "--limit", "3")
        assert len(entries) == 3
        _, verdict = _run(capsys, "--state", state, "--audit-log", audit, "audit", "--verify")
        assert verdict == {"valid": True, "broken_at": None}


class TestErrors:
    def test_duplicate_role_exits_1(self, capsys, state):
        _run(capsys, "--state", state, "seed")
        code = main(["--state", state, "create-role", "Admin"])
        err = capsys.readouterr().err
        assert code == 1
        assert "already exists" in err

    def test_duplicate_assignment_exits_1(self, capsys, state):
        _run(capsys, "--state", state, "seed")
        staff = _role_id(state, "Staff")
        main(["--state", state, "assign", "u1", staff])
        capsys.readouterr()
        assert main(["--state", state, "assign", "u1", staff]) == 1

    def test_visibility_needs_snapshot(self, capsys, state):
        assert main(["--state", state, "visibility", "s1"]) == 1
        assert "--snapshot" in capsys.readouterr().err

    def test_failed_command_does_not_write_state(self, capsys, state):
        assert main(["--state", state, "delete-role", "missing"]) == 1
        assert InMemoryRbacStore.load_yaml(state).count_roles() == 0

    def test_blank_role_name_rejected_and_state_stays_loadable(self, capsys, state):
        _, role = _run(capsys, "--state", state, "create-role", "Clerk")
        assert main(["--state", state, "update-role", role["id"], "--name", ""]) == 1
        capsys.readouterr()
        code, roles = _run(capsys, "--state", state, "roles")
        assert code == 0
        assert [r["name"] for r in roles] == ["Clerk"]

    def test_unknown_log_level_exits_1(self, capsys, state):
        assert main(["--state", state, "--log-level", "bogus", "roles"]) == 1
        assert capsys.readouterr().err.startswith("error:")

    def test_unwritable_state_exits_1(self, capsys, tmp_path):
        state = str(tmp_path / "missing-dir" / "rbac.yaml")
        assert main(["--state", state, "seed"]) == 1
        assert "error:" in capsys.readouterr().err


class TestTenantSettings:
    @pytest.fixture
    def settings_file(self, tmp_path):
        path = tmp_path / "tenants.yaml"
        path.write_text(yaml.safe_dump({
            "tenants": [{"tenant_id": "north"}, {"tenant_id": "south"}],
        }))
        return str(path)

    def _exported_tenant(self, capsys, state, *argv) -> str:
        code, bundle = _run(capsys, "--state", state, *argv, "audit", "--export")
        assert code == 0
        return bundle["export_metadata"]["tenant_id"]

    def test_first_tenant_is_default(self, capsys, state, settings_file):
        assert self._exported_tenant(capsys, state, "--settings", settings_file) == "north"

    def test_tenant_selected_by_id(self, capsys, state, settings_file):
        tenant = self._exported_tenant(capsys, state, "--settings", settings_file, "--tenant", "south")
        assert tenant == "south"

    def test_unknown_tenant_exits_1(self, capsys, state, settings_file):
        assert main(["--state", state, "--settings", settings_file, "--tenant", "west", "roles"]) == 1
        err = capsys.readouterr().err
        assert "west" in err and "north, south" in err

    def test_repeated_tenant_exits_1(self, capsys, state, tmp_path):
        path = tmp_path / "dupes.yaml"
        path.write_text(yaml.safe_dump({"tenants": [{"tenant_id": "north"}, {"tenant_id": "north"}]}))
        assert main(["--state", state, "--settings", str(path), "roles"]) == 1
        assert "more than once" in capsys.readouterr().err
