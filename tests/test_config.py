"""
Tests for lexgate.config -- Per-tenant engine settings and YAML loaders.

Covers: default settings, field validation, registry isolation and
deep copies, settings YAML loading, and organizational snapshot loading.
"""

from pathlib import Path

import pytest
import yaml

from lexgate.config import (
    DEFAULT_SETTINGS,
    EngineSettings,
    SettingsRegistry,
    load_settings_from_yaml,
    load_snapshot_from_yaml,
)


def _write_yaml(tmp_path: Path, data, name: str = "data.yaml") -> Path:
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


# ---------------------------------------------------------------------------
# 1. Default settings
# ---------------------------------------------------------------------------

class TestDefaultSettings:
    def test_defaults(self):
        assert DEFAULT_SETTINGS.tenant_id == "default"
        assert DEFAULT_SETTINGS.scope_override_roles == ["Partner", "Admin"]
        assert DEFAULT_SETTINGS.root_role_priority == ["Partner", "CA", "Manager"]
        assert DEFAULT_SETTINGS.max_hierarchy_depth == 50
        assert DEFAULT_SETTINGS.permission_cache_ttl_seconds == 300
        assert DEFAULT_SETTINGS.seed_on_startup is True
        assert DEFAULT_SETTINGS.audit_log_path is None


# ---------------------------------------------------------------------------
# 2. Validation
# ---------------------------------------------------------------------------

class TestEngineSettingsValidation:
    def test_empty_tenant_id_rejected(self):
        with pytest.raises(Exception):
            EngineSettings(tenant_id="")

    def test_depth_must_be_positive(self):
        with pytest.raises(Exception):
            EngineSettings(tenant_id="t", max_hierarchy_depth=0)

    def test_depth_upper_bound(self):
        with pytest.raises(Exception):
            EngineSettings(tenant_id="t", max_hierarchy_depth=10_000)

    def test_negative_ttl_rejected(self):
        with pytest.raises(Exception):
            EngineSettings(tenant_id="t", permission_cache_ttl_seconds=-1)

    def test_blank_role_label_rejected(self):
        with pytest.raises(Exception):
            EngineSettings(tenant_id="t", scope_override_roles=["Partner", "  "])

    def test_role_labels_are_stripped(self):
        settings = EngineSettings(tenant_id="t", root_role_priority=[" Partner ", "CA"])
        assert settings.root_role_priority == ["Partner", "CA"]


# ---------------------------------------------------------------------------
# 3. Settings registry -- multi-tenant isolation
# ---------------------------------------------------------------------------

class TestSettingsRegistry:
    def test_register_and_select(self):
        registry = SettingsRegistry()
        registry.register(EngineSettings(tenant_id="north", tenant_name="North Chambers"))
        assert registry.select("north").tenant_name == "North Chambers"
        assert "north" in registry
        assert len(registry) == 1

    def test_repeated_tenant_rejected(self):
        registry = SettingsRegistry([EngineSettings(tenant_id="north")])
        with pytest.raises(ValueError, match="more than once"):
            registry.register(EngineSettings(tenant_id="north"))

    def test_replace_existing(self):
        registry = SettingsRegistry([EngineSettings(tenant_id="a")])
        registry.register(EngineSettings(tenant_id="a", permission_cache_ttl_seconds=60), replace=True)
        assert registry.select("a").permission_cache_ttl_seconds == 60
        assert len(registry) == 1

    def test_first_tenant_is_default(self):
        registry = SettingsRegistry(EngineSettings(tenant_id=tid) for tid in ["south", "east"])
        assert registry.select().tenant_id == "south"
        assert registry.tenant_ids == ["south", "east"]

    def test_unknown_tenant_lists_known_ones(self):
        registry = SettingsRegistry([EngineSettings(tenant_id="a"), EngineSettings(tenant_id="b")])
        with pytest.raises(KeyError, match="known: a, b"):
            registry.select("nowhere")

    def test_empty_registry_has_no_default(self):
        with pytest.raises(KeyError):
            SettingsRegistry().select()

    def test_tenants_are_isolated(self):
        registry = SettingsRegistry([
            EngineSettings(tenant_id="a", max_hierarchy_depth=10),
            EngineSettings(tenant_id="b", max_hierarchy_depth=20),
        ])
        assert registry.select("a").max_hierarchy_depth == 10
        assert registry.select("b").max_hierarchy_depth == 20

    def test_selection_returns_deep_copies(self):
        original = EngineSettings(tenant_id="a")
        registry = SettingsRegistry([original])
        original.scope_override_roles.append("CA")
        registry.select("a").scope_override_roles.append("Manager")
        assert registry.select("a").scope_override_roles == ["Partner", "Admin"]

    def test_from_yaml(self, tmp_path):
        path = _write_yaml(tmp_path, {"tenants": [{"tenant_id": "north"}, {"tenant_id": "south"}]})
        registry = SettingsRegistry.from_yaml(path)
        assert registry.tenant_ids == ["north", "south"]

    def test_from_yaml_without_tenants(self, tmp_path):
        path = _write_yaml(tmp_path, {"tenants": []})
        with pytest.raises(ValueError, match="No tenants"):
            SettingsRegistry.from_yaml(path)


# ---------------------------------------------------------------------------
# 4. Settings YAML
# ---------------------------------------------------------------------------

class TestLoadSettingsFromYaml:
    def test_loads_tenants(self, tmp_path):
        path = _write_yaml(tmp_path, {
            "tenants": [
                {"tenant_id": "north", "tenant_name": "North", "scope_override_roles": ["Partner"]},
                {"tenant_id": "south", "max_hierarchy_depth": 25},
            ]
        })
        loaded = load_settings_from_yaml(path)
        assert [s.tenant_id for s in loaded] == ["north", "south"]
        assert loaded[0].scope_override_roles == ["Partner"]
        assert loaded[1].max_hierarchy_depth == 25

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings_from_yaml(tmp_path / "absent.yaml")

    def test_missing_tenants_key(self, tmp_path):
        path = _write_yaml(tmp_path, {"practices": []})
        with pytest.raises(ValueError, match="tenants"):
            load_settings_from_yaml(path)

    def test_tenants_not_a_list(self, tmp_path):
        path = _write_yaml(tmp_path, {"tenants": {"tenant_id": "x"}})
        with pytest.raises(ValueError):
            load_settings_from_yaml(path)

    def test_top_level_not_a_mapping(self, tmp_path):
        path = _write_yaml(tmp_path, ["a", "b"])
        with pytest.raises(ValueError):
            load_settings_from_yaml(path)

    def test_invalid_entry_rejected(self, tmp_path):
        path = _write_yaml(tmp_path, {"tenants": [{"tenant_id": "x", "max_hierarchy_depth": 0}]})
        with pytest.raises(Exception):
            load_settings_from_yaml(path)


# ---------------------------------------------------------------------------
# 5. Snapshot YAML
# ---------------------------------------------------------------------------

class TestLoadSnapshotFromYaml:
    def test_loads_all_sections(self, tmp_path):
        path = _write_yaml(tmp_path, {
            "employees": [
                {"id": "p1", "name": "Asha Rao", "role": "Partner"},
                {"id": "m1", "name": "Dev Mehta", "role": "Manager", "manager_id": "p1",
                 "data_scope": "Team Cases"},
            ],
            "cases": [{"id": "c1", "title": "GST appeal", "assigned_to_id": "m1", "client_id": "k1"}],
            "clients": [{"id": "k1", "name": "Acme Traders"}],
            "tasks": [{"id": "t1", "title": "Draft reply", "case_id": "c1"}],
        })
        snapshot = load_snapshot_from_yaml(path)
        assert [e.id for e in snapshot.employees] == ["p1", "m1"]
        assert snapshot.find_employee("m1").manager_id == "p1"
        assert snapshot.cases[0].client_id == "k1"
        assert snapshot.clients[0].name == "Acme Traders"
        assert snapshot.tasks[0].case_id == "c1"

    def test_sections_optional(self, tmp_path):
        snapshot = load_snapshot_from_yaml(_write_yaml(tmp_path, {"employees": [{"id": "e1"}]}))
        assert snapshot.cases == [] and snapshot.clients == [] and snapshot.tasks == []

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_snapshot_from_yaml(path).employees == []

    def test_section_must_be_list(self, tmp_path):
        with pytest.raises(ValueError):
            load_snapshot_from_yaml(_write_yaml(tmp_path, {"cases": {"id": "c1"}}))

    def test_record_must_be_mapping(self, tmp_path):
        with pytest.raises(ValueError):
            load_snapshot_from_yaml(_write_yaml(tmp_path, {"cases": ["c1"]}))
