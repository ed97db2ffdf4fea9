"""
Role, Permission and Assignment Management.

``RbacService`` owns the lifecycle of roles, permissions and user-role
assignments for one tenant.  It is constructed explicitly with its
backing store and audit log; there is no module-level instance.

**Rules enforced on every mutating call:**

* Role names are unique (exact, case-sensitive match).
* System roles cannot be renamed, re-permissioned or deleted.  Their
  description and active flag stay editable.
* A role with active assignments cannot be deleted.
* A user cannot hold the same role twice at the same time.
* Revocation is a soft update (``is_active=False``); assignment rows are
  never deleted.

**Auditing:**  each successful mutation appends a ``PolicyAuditEntry``
*after* the store write.  Audit failures are logged and swallowed -- they
never surface to the caller and never undo the mutation, so the audit
trail is best-effort.  Failed validations write nothing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from loguru import logger
from pydantic import BaseModel, Field

from lexgate.audit import AuditAction, AuditEntityType, AuditLog, PolicyAuditEntry
from lexgate.catalog import (
    DEFAULT_PERMISSIONS,
    SYSTEM_ROLES,
    permission_ids_for_role,
    permissions_for_category,
)
from lexgate.config import DEFAULT_SETTINGS, EngineSettings
from lexgate.models import (
    Action,
    Effect,
    Permission,
    PermissionCondition,
    PermissionScope,
    Resource,
    Role,
    UserRoleAssignment,
)
from lexgate.store import RbacStore


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class RbacError(Exception):
    """Base class for rejected access-control mutations."""
    pass


class NotFoundError(RbacError):
    """Raised when a role, permission or assignment id does not exist."""
    pass


class DuplicateNameError(RbacError):
    """Raised when a role name is already taken."""
    pass


class AlreadyAssignedError(RbacError):
    """Raised when a user already holds the role being assigned."""
    pass


class ImmutableSystemRoleError(RbacError):
    """Raised on an attempt to rename, re-permission or delete a system role."""
    pass


class RoleInUseError(RbacError):
    """Raised when deleting a role that still has active assignments."""

    def __init__(self, message: str, assignment_count: int) -> None:
        super().__init__(message)
        self.assignment_count = assignment_count


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class RoleUsage(BaseModel):
    role: Role
    count: int


class RoleAnalytics(BaseModel):
    total_roles: int = 0
    active_roles: int = 0
    system_roles: int = 0
    total_assignments: int = Field(default=0, description="Active assignments only.")
    most_assigned_role: Optional[RoleUsage] = None


class SeedResult(BaseModel):
    seeded: bool
    permissions_created: int = 0
    roles_created: int = 0


def _snapshot(model: Optional[BaseModel]) -> Optional[dict[str, Any]]:
    return model.model_dump(mode="json") if model is not None else None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class RbacService:
    """Role / permission / assignment store for a single tenant."""

    def __init__(
        self,
        store: RbacStore,
        audit_log: AuditLog,
        settings: Optional[EngineSettings] = None,
        actor_id: Optional[str] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._store = store
        self._audit_log = audit_log
        self._settings = settings or DEFAULT_SETTINGS
        self._actor_id = actor_id or self._settings.system_actor_id
        self._on_change = on_change

    @property
    def actor_id(self) -> str:
        return self._actor_id

    def with_actor(self, actor_id: str) -> RbacService:
        """Same store and audit log, different actor on audit entries."""
        return RbacService(self._store, self._audit_log, self._settings, actor_id, self._on_change)

    # -- helpers --

    def _audit(
        self,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id: str,
        before: Optional[BaseModel],
        after: Optional[BaseModel],
    ) -> None:
        """Best-effort audit write, then change notification.

        Called once per successful mutation.  Audit failures never raise.
        """
        if self._on_change is not None:
            self._on_change()
        try:
            self._audit_log.append(PolicyAuditEntry(
                tenant_id=self._settings.tenant_id,
                actor_id=self._actor_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                before=_snapshot(before),
                after=_snapshot(after),
            ))
        except Exception:
            logger.exception(
                "Failed to write audit entry {} for {} {}; mutation kept",
                action.value,
                entity_type.value,
                entity_id,
            )

    def _require_role(self, role_id: str) -> Role:
        role = self._store.get_role(role_id)
        if role is None:
            raise NotFoundError(f"Role '{role_id}' not found")
        return role

    def _require_unique_name(self, name: str) -> None:
        if self._store.find_roles_by_name(name):
            raise DuplicateNameError(f"Role '{name}' already exists")

    def _require_permissions(self, permission_ids: Iterable[str]) -> list[str]:
        ids = list(dict.fromkeys(permission_ids))
        missing = [pid for pid in ids if self._store.get_permission(pid) is None]
        if missing:
            raise NotFoundError(f"Unknown permission id(s): {', '.join(missing)}")
        return ids

    # -- roles --

    def create_role(
        self,
        name: str,
        description: str = "",
        permission_ids: Iterable[str] = (),
        is_active: bool = True,
    ) -> Role:
        """Create a custom role.

        Raises:
            DuplicateNameError: If a role with ``name`` exists.
            NotFoundError: If a permission id is unknown.
        """
        return self._create_role(name, description, permission_ids, is_active, system=False)

    def _create_role(
        self,
        name: str,
        description: str,
        permission_ids: Iterable[str],
        is_active: bool,
        system: bool,
    ) -> Role:
        self._require_unique_name(name)
        ids = self._require_permissions(permission_ids)

        now = datetime.now(timezone.utc)
        role = self._store.add_role(Role(
            name=name,
            description=description,
            permissions=ids,
            is_active=is_active,
            is_system_role=system,
            created_at=now,
            updated_at=now,
            created_by=self._actor_id,
        ))
        logger.info("Created role {} ({})", role.name, role.id)
        self._audit(AuditAction.CREATE_ROLE, AuditEntityType.ROLE, role.id, None, role)
        return role

    def update_role(
        self,
        role_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permission_ids: Optional[Iterable[str]] = None,
        is_active: Optional[bool] = None,
    ) -> Role:
        """Apply a partial update.  ``None`` leaves a field unchanged.

        Raises:
            NotFoundError: If the role or a permission id is unknown.
            ImmutableSystemRoleError: If a system role's name or permission
                set would change.
            DuplicateNameError: If renaming onto an existing name.
            pydantic.ValidationError: If the updated role is invalid, e.g. a
                blank name.
        """
        existing = self._require_role(role_id)
        new_ids = list(dict.fromkeys(permission_ids)) if permission_ids is not None else None

        renaming = name is not None and name != existing.name
        repermissioning = new_ids is not None and new_ids != existing.permissions
        if existing.is_system_role and (renaming or repermissioning):
            raise ImmutableSystemRoleError(
                f"Cannot modify name or permissions of system role '{existing.name}'"
            )

        changes: dict[str, Any] = {"updated_at": datetime.now(timezone.utc)}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if new_ids is not None:
            changes["permissions"] = new_ids
        if is_active is not None:
            changes["is_active"] = is_active
        # runs the Role field validators on the merged row
        updated = Role.model_validate({**existing.model_dump(), **changes})

        if renaming:
            self._require_unique_name(name)
        if new_ids is not None:
            self._require_permissions(new_ids)

        saved = self._store.save_role(updated)
        logger.info("Updated role {} ({})", saved.name, saved.id)
        self._audit(AuditAction.UPDATE_ROLE, AuditEntityType.ROLE, role_id, existing, saved)
        return saved

    def delete_role(self, role_id: str) -> None:
        """Hard-delete a custom role with no active assignments.

        Raises:
            NotFoundError: If the role is unknown.
            ImmutableSystemRoleError: If the role is a system role.
            RoleInUseError: If active assignments reference the role.
        """
        existing = self._require_role(role_id)
        if existing.is_system_role:
            raise ImmutableSystemRoleError(f"Cannot delete system role '{existing.name}'")

        in_use = len(self._store.list_assignments(role_id=role_id, active_only=True))
        if in_use:
            raise RoleInUseError(
                f"Cannot delete role '{existing.name}' - assigned to {in_use} users",
                assignment_count=in_use,
            )

        self._store.remove_role(role_id)
        logger.info("Deleted role {} ({})", existing.name, role_id)
        self._audit(AuditAction.DELETE_ROLE, AuditEntityType.ROLE, role_id, existing, None)

    def get_role(self, role_id: str) -> Optional[Role]:
        return self._store.get_role(role_id)

    def get_role_by_name(self, name: str) -> Optional[Role]:
        matches = self._store.find_roles_by_name(name)
        return matches[0] if matches else None

    def list_roles(self) -> list[Role]:
        return self._store.list_roles()

    # -- permissions --

    def create_permission(
        self,
        name: str,
        category: str,
        description: str,
        resource: Resource | str,
        action: Action | str,
        effect: Effect | str = Effect.ALLOW,
        scope: PermissionScope | str = PermissionScope.OWN,
        conditions: Optional[list[PermissionCondition | dict]] = None,
    ) -> Permission:
        """Create a custom permission.

        String forms of ``resource``, ``action``, ``effect`` and ``scope``
        are converted to their enums; unknown values raise ``ValueError``.
        """
        return self._create_permission(
            name, category, description, resource, action, effect, scope, conditions, system=False
        )

    def _create_permission(
        self,
        name: str,
        category: str,
        description: str,
        resource: Resource | str,
        action: Action | str,
        effect: Effect | str,
        scope: PermissionScope | str,
        conditions: Optional[list[PermissionCondition | dict]],
        system: bool,
    ) -> Permission:
        now = datetime.now(timezone.utc)
        permission = self._store.add_permission(Permission(
            name=name,
            category=category,
            description=description,
            resource=Resource(resource),
            action=Action(action),
            effect=Effect(effect),
            scope=PermissionScope(scope),
            conditions=[
                c if isinstance(c, PermissionCondition) else PermissionCondition(**c)
                for c in (conditions or [])
            ],
            is_system_permission=system,
            created_at=now,
            updated_at=now,
        ))
        self._audit(
            AuditAction.CREATE_PERMISSION, AuditEntityType.PERMISSION, permission.id, None, permission
        )
        return permission

    def get_permission(self, permission_id: str) -> Optional[Permission]:
        return self._store.get_permission(permission_id)

    def list_permissions(self) -> list[Permission]:
        return self._store.list_permissions()

    def get_permissions_by_category(self, category: str) -> list[Permission]:
        return permissions_for_category(self._store.list_permissions(), category)

    # -- assignments --

    def assign_role(
        self,
        user_id: str,
        role_id: str,
        expires_at: Optional[datetime] = None,
    ) -> UserRoleAssignment:
        """Give ``user_id`` the role ``role_id``.

        Raises:
            NotFoundError: If the role is unknown.
            AlreadyAssignedError: If the user already actively holds the role.
        """
        role = self._require_role(role_id)
        if self._store.list_assignments(user_id=user_id, role_id=role_id, active_only=True):
            raise AlreadyAssignedError(f"User '{user_id}' already has role '{role.name}' assigned")

        assignment = self._store.add_assignment(UserRoleAssignment(
            user_id=user_id,
            role_id=role_id,
            assigned_by=self._actor_id,
            expires_at=expires_at,
        ))
        logger.info("Assigned role {} to user {}", role.name, user_id)
        self._audit(AuditAction.ASSIGN_ROLE, AuditEntityType.USER_ROLE, assignment.id, None, assignment)
        return assignment

    def revoke_role(self, user_id: str, role_id: str) -> list[UserRoleAssignment]:
        """Deactivate every active (user, role) assignment.

        Normally there is exactly one; duplicates left by older data are
        all deactivated.  Revoking a role the user does not hold is a
        no-op returning an empty list.
        """
        revoked = []
        for assignment in self._store.list_assignments(user_id=user_id, role_id=role_id, active_only=True):
            updated = assignment.model_copy(update={"is_active": False})
            saved = self._store.save_assignment(updated)
            revoked.append(saved)
            self._audit(AuditAction.REVOKE_ROLE, AuditEntityType.USER_ROLE, saved.id, assignment, saved)
        if revoked:
            logger.info("Revoked role {} from user {} ({} assignment(s))", role_id, user_id, len(revoked))
        return revoked

    def get_user_roles(self, user_id: str) -> list[Role]:
        """Roles the user actively holds that are themselves active."""
        roles: list[Role] = []
        seen: set[str] = set()
        for assignment in self._store.list_assignments(user_id=user_id, active_only=True):
            if assignment.role_id in seen:
                continue
            seen.add(assignment.role_id)
            role = self._store.get_role(assignment.role_id)
            if role is not None and role.is_active:
                roles.append(role)
        return roles

    def get_role_users(self, role_id: str) -> list[UserRoleAssignment]:
        return self._store.list_assignments(role_id=role_id)

    # -- audit & analytics --

    def get_audit_log(self, limit: int = 100) -> list[PolicyAuditEntry]:
        return self._audit_log.recent(limit)

    def get_audit_by_actor(self, actor_id: str) -> list[PolicyAuditEntry]:
        return self._audit_log.by_actor(actor_id)

    def get_role_analytics(self) -> RoleAnalytics:
        roles = self._store.list_roles()
        active_assignments = self._store.list_assignments(active_only=True)

        counts: dict[str, int] = {}
        for assignment in active_assignments:
            counts[assignment.role_id] = counts.get(assignment.role_id, 0) + 1

        roles_by_id = {role.id: role for role in roles}
        most: Optional[RoleUsage] = None
        for role_id, count in counts.items():
            role = roles_by_id.get(role_id)
            if role is not None and (most is None or count > most.count):
                most = RoleUsage(role=role, count=count)

        return RoleAnalytics(
            total_roles=len(roles),
            active_roles=sum(1 for r in roles if r.is_active),
            system_roles=sum(1 for r in roles if r.is_system_role),
            total_assignments=len(active_assignments),
            most_assigned_role=most,
        )

    # -- seeding --

    def seed_defaults(self) -> SeedResult:
        """Seed the default permission catalog and the system roles.

        Runs only against a store with zero roles; otherwise nothing is
        written.  Safe to call on every start-up.
        """
        if self._store.count_roles() > 0:
            logger.debug("RBAC store already has roles; skipping seed")
            return SeedResult(seeded=False)

        logger.info("Seeding default RBAC catalog for tenant {}", self._settings.tenant_id)
        permissions = [
            self._create_permission(
                spec.name,
                spec.category,
                spec.description,
                spec.resource,
                spec.action,
                Effect.ALLOW,
                spec.scope,
                None,
                system=True,
            )
            for spec in DEFAULT_PERMISSIONS
        ]
        for spec in SYSTEM_ROLES:
            self._create_role(
                spec.name,
                spec.description,
                permission_ids_for_role(spec, permissions),
                is_active=True,
                system=True,
            )

        logger.info(
            "Seeded {} permissions and {} system roles", len(permissions), len(SYSTEM_ROLES)
        )
        return SeedResult(
            seeded=True,
            permissions_created=len(permissions),
            roles_created=len(SYSTEM_ROLES),
        )
