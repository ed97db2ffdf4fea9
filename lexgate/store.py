"""
Backing store for roles, permissions and role assignments.

``RbacStore`` is the interface ``RbacService`` and ``PermissionsResolver``
depend on; ``InMemoryRbacStore`` is the implementation used by tests, the
CLI and single-process deployments.  Every read returns copies, so callers
can never mutate stored rows behind the store's back.

The store enforces no business rules -- uniqueness, system-role
protection and auditing live in ``lexgate.rbac``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Protocol

import yaml
from pydantic import BaseModel, Field

from lexgate.models import Permission, Role, UserRoleAssignment


class RbacSnapshot(BaseModel):
    """A consistent copy of all three tables taken in one read."""

    roles: list[Role] = Field(default_factory=list)
    permissions: list[Permission] = Field(default_factory=list)
    assignments: list[UserRoleAssignment] = Field(default_factory=list)


class RbacStore(Protocol):
    # roles
    def add_role(self, role: Role) -> Role: ...
    def get_role(self, role_id: str) -> Optional[Role]: ...
    def find_roles_by_name(self, name: str) -> list[Role]: ...
    def list_roles(self) -> list[Role]: ...
    def save_role(self, role: Role) -> Role: ...
    def remove_role(self, role_id: str) -> None: ...
    def count_roles(self) -> int: ...

    # permissions
    def add_permission(self, permission: Permission) -> Permission: ...
    def get_permission(self, permission_id: str) -> Optional[Permission]: ...
    def list_permissions(self) -> list[Permission]: ...

    # assignments
    def add_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment: ...
    def save_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment: ...
    def list_assignments(
        self,
        user_id: Optional[str] = None,
        role_id: Optional[str] = None,
        active_only: bool = False,
    ) -> list[UserRoleAssignment]: ...

    def snapshot(self) -> RbacSnapshot: ...


class InMemoryRbacStore:
    """Dict-backed ``RbacStore``.  Insertion order is preserved."""

    def __init__(self) -> None:
        self._roles: dict[str, Role] = {}
        self._permissions: dict[str, Permission] = {}
        self._assignments: dict[str, UserRoleAssignment] = {}

    # -- roles --

    def add_role(self, role: Role) -> Role:
        if role.id in self._roles:
            raise KeyError(f"Role id '{role.id}' already stored")
        self._roles[role.id] = role.model_copy(deep=True)
        return role.model_copy(deep=True)

    def get_role(self, role_id: str) -> Optional[Role]:
        role = self._roles.get(role_id)
        return role.model_copy(deep=True) if role else None

    def find_roles_by_name(self, name: str) -> list[Role]:
        return [r.model_copy(deep=True) for r in self._roles.values() if r.name == name]

    def list_roles(self) -> list[Role]:
        return [r.model_copy(deep=True) for r in self._roles.values()]

    def save_role(self, role: Role) -> Role:
        if role.id not in self._roles:
            raise KeyError(f"Role id '{role.id}' not stored")
        self._roles[role.id] = role.model_copy(deep=True)
        return role.model_copy(deep=True)

    def remove_role(self, role_id: str) -> None:
        if role_id not in self._roles:
            raise KeyError(f"Role id '{role_id}' not stored")
        del self._roles[role_id]

    def count_roles(self) -> int:
        return len(self._roles)

    # -- permissions --

    def add_permission(self, permission: Permission) -> Permission:
        if permission.id in self._permissions:
            raise KeyError(f"Permission id '{permission.id}' already stored")
        self._permissions[permission.id] = permission.model_copy(deep=True)
        return permission.model_copy(deep=True)

    def get_permission(self, permission_id: str) -> Optional[Permission]:
        perm = self._permissions.get(permission_id)
        return perm.model_copy(deep=True) if perm else None

    def list_permissions(self) -> list[Permission]:
        return [p.model_copy(deep=True) for p in self._permissions.values()]

    # -- assignments --

    def add_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        if assignment.id in self._assignments:
            raise KeyError(f"Assignment id '{assignment.id}' already stored")
        self._assignments[assignment.id] = assignment.model_copy(deep=True)
        return assignment.model_copy(deep=True)

    def save_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        if assignment.id not in self._assignments:
            raise KeyError(f"Assignment id '{assignment.id}' not stored")
        self._assignments[assignment.id] = assignment.model_copy(deep=True)
        return assignment.model_copy(deep=True)

    def list_assignments(
        self,
        user_id: Optional[str] = None,
        role_id: Optional[str] = None,
        active_only: bool = False,
    ) -> list[UserRoleAssignment]:
        results = []
        for assignment in self._assignments.values():
            if user_id is not None and assignment.user_id != user_id:
                continue
            if role_id is not None and assignment.role_id != role_id:
                continue
            if active_only and not assignment.is_active:
                continue
            results.append(assignment.model_copy(deep=True))
        return results

    # -- snapshots --

    def snapshot(self) -> RbacSnapshot:
        return RbacSnapshot(
            roles=self.list_roles(),
            permissions=self.list_permissions(),
            assignments=self.list_assignments(),
        )

    def dump_state(self) -> dict[str, Any]:
        """JSON-compatible dump of all tables."""
        return self.snapshot().model_dump(mode="json")

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> InMemoryRbacStore:
        snap = RbacSnapshot.model_validate(state or {})
        store = cls()
        for perm in snap.permissions:
            store.add_permission(perm)
        for role in snap.roles:
            store.add_role(role)
        for assignment in snap.assignments:
            store.add_assignment(assignment)
        return store

    # -- YAML persistence --

    def save_yaml(self, path: str | Path) -> None:
        with open(Path(path), "w") as f:
            yaml.safe_dump(self.dump_state(), f, sort_keys=False)

    @classmethod
    def load_yaml(cls, path: str | Path) -> InMemoryRbacStore:
        """Load a store saved with ``save_yaml``; a missing file yields an
        empty store."""
        path = Path(path)
        if not path.exists():
            return cls()
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
        if raw is not None and not isinstance(raw, dict):
            raise ValueError("RBAC state file must contain a YAML mapping at the top level.")
        return cls.from_state(raw or {})
