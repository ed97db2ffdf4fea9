"""
Default permission catalog and system role definitions.

The catalog is seeded into an empty store by ``RbacService.seed_defaults``.
Permission names follow ``<resource>.<action>.<scope>``; the three
system-level permissions use ``system.<name>``.

System roles are defined by predicates over the seeded permissions rather
than by hard-coded id lists, because ids are generated at seed time.
"""

from __future__ import annotations

from typing import Callable, Iterable, NamedTuple

from lexgate.models import Action, Permission, PermissionScope, Resource


class PermissionSpec(NamedTuple):
    name: str
    category: str
    description: str
    resource: Resource
    action: Action
    scope: PermissionScope


def _spec(resource: Resource, action: Action, scope: PermissionScope, description: str) -> PermissionSpec:
    return PermissionSpec(
        name=f"{resource.value}.{action.value}.{scope.value}",
        category=resource.value.capitalize(),
        description=description,
        resource=resource,
        action=action,
        scope=scope,
    )


_R, _A, _S = Resource, Action, PermissionScope

DEFAULT_PERMISSIONS: tuple[PermissionSpec, ...] = (
    # Cases
    _spec(_R.CASES, _A.READ, _S.OWN, "View own cases"),
    _spec(_R.CASES, _A.READ, _S.TEAM, "View team cases"),
    _spec(_R.CASES, _A.READ, _S.ORG, "View all cases"),
    _spec(_R.CASES, _A.WRITE, _S.OWN, "Edit own cases"),
    _spec(_R.CASES, _A.WRITE, _S.TEAM, "Edit team cases"),
    _spec(_R.CASES, _A.WRITE, _S.ORG, "Edit all cases"),
    _spec(_R.CASES, _A.DELETE, _S.TEAM, "Delete team cases"),
    _spec(_R.CASES, _A.ADMIN, _S.ORG, "Full case administration"),
    # Clients
    _spec(_R.CLIENTS, _A.READ, _S.OWN, "View own clients"),
    _spec(_R.CLIENTS, _A.READ, _S.TEAM, "View team clients"),
    _spec(_R.CLIENTS, _A.READ, _S.ORG, "View all clients"),
    _spec(_R.CLIENTS, _A.WRITE, _S.OWN, "Edit own clients"),
    _spec(_R.CLIENTS, _A.WRITE, _S.TEAM, "Edit team clients"),
    _spec(_R.CLIENTS, _A.WRITE, _S.ORG, "Edit all clients"),
    _spec(_R.CLIENTS, _A.ADMIN, _S.ORG, "Full client administration"),
    # Documents
    _spec(_R.DOCUMENTS, _A.READ, _S.OWN, "View own documents"),
    _spec(_R.DOCUMENTS, _A.READ, _S.TEAM, "View team documents"),
    _spec(_R.DOCUMENTS, _A.READ, _S.ORG, "View all documents"),
    _spec(_R.DOCUMENTS, _A.WRITE, _S.OWN, "Upload own documents"),
    _spec(_R.DOCUMENTS, _A.WRITE, _S.TEAM, "Upload team documents"),
    _spec(_R.DOCUMENTS, _A.ADMIN, _S.ORG, "Full document administration"),
    # Tasks
    _spec(_R.TASKS, _A.READ, _S.OWN, "View own tasks"),
    _spec(_R.TASKS, _A.READ, _S.TEAM, "View team tasks"),
    _spec(_R.TASKS, _A.READ, _S.ORG, "View all tasks"),
    _spec(_R.TASKS, _A.WRITE, _S.OWN, "Edit own tasks"),
    _spec(_R.TASKS, _A.WRITE, _S.TEAM, "Edit team tasks"),
    _spec(_R.TASKS, _A.WRITE, _S.ORG, "Edit all tasks"),
    _spec(_R.TASKS, _A.ADMIN, _S.ORG, "Full task administration"),
    # Hearings
    _spec(_R.HEARINGS, _A.READ, _S.OWN, "View own hearings"),
    _spec(_R.HEARINGS, _A.READ, _S.TEAM, "View team hearings"),
    _spec(_R.HEARINGS, _A.READ, _S.ORG, "View all hearings"),
    _spec(_R.HEARINGS, _A.WRITE, _S.TEAM, "Schedule team hearings"),
    _spec(_R.HEARINGS, _A.WRITE, _S.ORG, "Schedule all hearings"),
    _spec(_R.HEARINGS, _A.ADMIN, _S.ORG, "Full hearing administration"),
    # Reports
    _spec(_R.REPORTS, _A.READ, _S.OWN, "View own reports"),
    _spec(_R.REPORTS, _A.READ, _S.ORG, "View all reports"),
    _spec(_R.REPORTS, _A.WRITE, _S.ORG, "Generate reports"),
    _spec(_R.REPORTS, _A.ADMIN, _S.ORG, "Manage report templates"),
    # Dashboard
    _spec(_R.DASHBOARD, _A.READ, _S.OWN, "View own dashboard"),
    _spec(_R.DASHBOARD, _A.READ, _S.ORG, "View all dashboards"),
    _spec(_R.DASHBOARD, _A.ADMIN, _S.ORG, "Customize dashboards"),
    # Analytics
    _spec(_R.ANALYTICS, _A.READ, _S.OWN, "View own analytics"),
    _spec(_R.ANALYTICS, _A.READ, _S.ORG, "View all analytics"),
    _spec(_R.ANALYTICS, _A.ADMIN, _S.ORG, "Configure analytics"),
    # System
    PermissionSpec("system.settings", "System", "Manage system settings", _R.SYSTEM, _A.ADMIN, _S.ORG),
    PermissionSpec("system.rbac", "System", "Manage roles and permissions", _R.RBAC, _A.ADMIN, _S.ORG),
    PermissionSpec("system.audit", "System", "View audit logs", _R.AUDIT, _A.READ, _S.ORG),
)

RBAC_ADMIN_PERMISSION = "system.rbac"


# ---------------------------------------------------------------------------
# System roles
# ---------------------------------------------------------------------------

class SystemRoleSpec(NamedTuple):
    name: str
    description: str
    grants: Callable[[Permission], bool]


def _admin_grants(p: Permission) -> bool:
    if p.name == RBAC_ADMIN_PERMISSION:
        return False
    if p.scope == PermissionScope.ORG:
        return True
    # team scope, but never team-scope delete
    return p.scope == PermissionScope.TEAM and p.action in (Action.READ, Action.WRITE, Action.ADMIN)


_MANAGER_TEAM_RESOURCES = (Resource.CASES, Resource.CLIENTS, Resource.DOCUMENTS, Resource.HEARINGS)


def _manager_grants(p: Permission) -> bool:
    if p.resource in _MANAGER_TEAM_RESOURCES and p.scope == PermissionScope.TEAM:
        return True
    return p.resource == Resource.TASKS and p.scope == PermissionScope.ORG and p.action == Action.READ


def _staff_grants(p: Permission) -> bool:
    if p.scope == PermissionScope.OWN and p.action in (Action.READ, Action.WRITE):
        return True
    return (
        p.resource == Resource.DOCUMENTS
        and p.scope == PermissionScope.TEAM
        and p.action == Action.READ
    )


SYSTEM_ROLES: tuple[SystemRoleSpec, ...] = (
    SystemRoleSpec(
        "SuperAdmin",
        "Full system access with organizational scope",
        lambda p: True,
    ),
    SystemRoleSpec(
        "Admin",
        "Administrative access with organizational scope for most resources",
        _admin_grants,
    ),
    SystemRoleSpec(
        "Manager",
        "Team lead with team scope for cases, clients, and documents",
        _manager_grants,
    ),
    SystemRoleSpec(
        "Staff",
        "Legal staff with own scope for assigned work",
        _staff_grants,
    ),
    SystemRoleSpec(
        "ReadOnly",
        "Read-only access with own scope",
        lambda p: p.action == Action.READ and p.scope == PermissionScope.OWN,
    ),
)

SYSTEM_ROLE_NAMES = tuple(spec.name for spec in SYSTEM_ROLES)


def permissions_for_category(permissions: Iterable[Permission], category: str) -> list[Permission]:
    """Category lookup, case-insensitive."""
    wanted = category.strip().lower()
    return [p for p in permissions if p.category.lower() == wanted]


def permission_ids_for_role(spec: SystemRoleSpec, permissions: Iterable[Permission]) -> list[str]:
    return [p.id for p in permissions if spec.grants(p)]
