"""
Engine Settings -- Per-Tenant Configuration for lexgate.

Every practice (tenant) runs its own access-control engine instance.  The
knobs that differ between practices -- which role labels always see the
whole organization, how organizational heads are ordered, how deep a
manager chain may be walked, how long resolved permissions are cached --
are captured here as validated ``EngineSettings`` objects.

Settings are plain data.  ``lexgate.engine.AccessControlEngine`` is the
composition root that turns one ``EngineSettings`` into a running set of
services.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from lexgate.models import Case, Client, Employee, OrgSnapshot, Task

DEFAULT_SCOPE_OVERRIDE_ROLES = ("Partner", "Admin")
DEFAULT_ROOT_ROLE_PRIORITY = ("Partner", "CA", "Manager")
DEFAULT_MAX_HIERARCHY_DEPTH = 50


# ---------------------------------------------------------------------------
# Engine settings model
# ---------------------------------------------------------------------------

class EngineSettings(BaseModel):
    """Complete engine configuration for a single tenant."""

    tenant_id: str = Field(
        ...,
        min_length=1,
        description=(
            "Identifier of the practice.  Scopes audit entries and is the "
            "key in ``SettingsRegistry``."
        ),
    )
    tenant_name: str = Field(
        default="",
        description="Human-readable name of the practice.",
    )
    system_actor_id: str = Field(
        default="system",
        min_length=1,
        description=(
            "Actor recorded on audit entries when no explicit actor is "
            "supplied (seeding, CLI runs without --actor)."
        ),
    )
    scope_override_roles: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SCOPE_OVERRIDE_ROLES),
        description=(
            "Role labels whose holders always resolve with the All data "
            "scope, whatever their configured data scope says.  Matched "
            "case-insensitively."
        ),
    )
    root_role_priority: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ROOT_ROLE_PRIORITY),
        description=(
            "Ordering of hierarchy roots by role label.  Labels not listed "
            "sort after all listed ones, then alphabetically by name."
        ),
    )
    max_hierarchy_depth: int = Field(
        default=DEFAULT_MAX_HIERARCHY_DEPTH,
        ge=1,
        le=500,
        description=(
            "Upper bound on the number of steps taken by any manager-chain "
            "or subordinate walk.  Protects against corrupt reporting data."
        ),
    )
    permission_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="Lifetime of cached effective permissions.  0 disables caching.",
    )
    seed_on_startup: bool = Field(
        default=True,
        description="Seed the default catalog and system roles when the store is empty.",
    )
    audit_log_path: Optional[str] = Field(
        default=None,
        description="Optional JSON-lines file mirroring every audit entry.",
    )

    @field_validator("scope_override_roles", "root_role_priority")
    @classmethod
    def labels_not_blank(cls, v: list[str]) -> list[str]:
        cleaned = [label.strip() for label in v]
        if any(not label for label in cleaned):
            raise ValueError("role labels must be non-empty strings")
        return cleaned


# ---------------------------------------------------------------------------
# Default settings
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS = EngineSettings(
    tenant_id="default",
    tenant_name="Default Practice",
)
"""Built-in settings used when no tenant-specific configuration is given."""


# ---------------------------------------------------------------------------
# Settings registry (one entry per tenant)
# ---------------------------------------------------------------------------

class SettingsRegistry:
    """Engine settings for every tenant known to a deployment.

    Tenants keep their registration order and the first one is the
    default selection.  Settings go in and come out as deep model copies,
    so editing a returned object never reaches another engine.
    """

    def __init__(self, tenants: Iterable[EngineSettings] = ()) -> None:
        self._by_tenant: dict[str, EngineSettings] = {}
        for settings in tenants:
            self.register(settings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> SettingsRegistry:
        """Registry of every tenant in a settings YAML file.

        Raises:
            ValueError: If the file defines no tenants or repeats a tenant id.
        """
        registry = cls(load_settings_from_yaml(path))
        if not registry:
            raise ValueError(f"No tenants defined in {path}")
        return registry

    def register(self, settings: EngineSettings, replace: bool = False) -> None:
        """Add a tenant, or overwrite one when ``replace`` is set.

        Raises:
            ValueError: If the tenant is already known and ``replace`` is False.
        """
        if settings.tenant_id in self._by_tenant and not replace:
            raise ValueError(f"Tenant '{settings.tenant_id}' is defined more than once")
        self._by_tenant[settings.tenant_id] = settings.model_copy(deep=True)

    def select(self, tenant_id: Optional[str] = None) -> EngineSettings:
        """Settings for ``tenant_id``, or for the first tenant when omitted.

        Raises:
            KeyError: If the tenant is unknown or nothing is registered.
        """
        if not self._by_tenant:
            raise KeyError("No tenants registered")
        if tenant_id is None:
            tenant_id = self.tenant_ids[0]
        if tenant_id not in self._by_tenant:
            raise KeyError(
                f"Unknown tenant '{tenant_id}' (known: {', '.join(self.tenant_ids)})"
            )
        return self._by_tenant[tenant_id].model_copy(deep=True)

    @property
    def tenant_ids(self) -> list[str]:
        return list(self._by_tenant)

    def __len__(self) -> int:
        return len(self._by_tenant)

    def __contains__(self, tenant_id: str) -> bool:
        return tenant_id in self._by_tenant


# ---------------------------------------------------------------------------
# YAML loaders
# ---------------------------------------------------------------------------

def _read_yaml_mapping(path: str | Path, what: str) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} file not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"{what} file must contain a YAML mapping at the top level.")
    return raw


def load_settings_from_yaml(path: str | Path) -> list[EngineSettings]:
    """Load tenant settings from a YAML file.

    Example YAML structure::

        tenants:
          - tenant_id: "chambers_north"
            tenant_name: "North Chambers LLP"
            scope_override_roles: ["Partner", "Admin"]
            max_hierarchy_depth: 25

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If any entry fails validation.
    """
    raw = _read_yaml_mapping(path, "Settings")
    if "tenants" not in raw:
        raise ValueError(
            "YAML file must contain a top-level 'tenants' key with a list of settings objects."
        )

    entries = raw["tenants"]
    if not isinstance(entries, list):
        raise ValueError("'tenants' must be a list of settings objects.")

    settings: list[EngineSettings] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Settings entry at index {idx} must be a mapping.")
        settings.append(EngineSettings(**entry))

    return settings


def load_snapshot_from_yaml(path: str | Path) -> OrgSnapshot:
    """Load an organizational snapshot (employees, cases, clients, tasks).

    Each top-level key is optional and holds a list of mappings::

        employees:
          - {id: p1, name: "Asha Rao", role: Partner}
          - {id: m1, name: "Dev Mehta", role: Manager, manager_id: p1, data_scope: "Team Cases"}
        cases:
          - {id: c1, title: "GST appeal", assigned_to_id: m1, client_id: cl1}

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a section is not a list of mappings.
        pydantic.ValidationError: If any record fails validation.
    """
    raw = _read_yaml_mapping(path, "Snapshot")

    sections = {
        "employees": Employee,
        "cases": Case,
        "clients": Client,
        "tasks": Task,
    }
    data: dict[str, list] = {}
    for key, model in sections.items():
        entries = raw.get(key) or []
        if not isinstance(entries, list):
            raise ValueError(f"'{key}' must be a list of mappings.")
        records = []
        for idx, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ValueError(f"'{key}' entry at index {idx} must be a mapping.")
            records.append(model(**entry))
        data[key] = records

    return OrgSnapshot(**data)
