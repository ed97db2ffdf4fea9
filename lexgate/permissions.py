"""
Effective-Permission Resolver.

Merges every role a user effectively holds into one permission set.

* A role contributes when its assignment is active and not expired and
  the role itself exists and is active.
* The result is the de-duplicated union of the permissions those roles
  reference, in order of first reference.
* **Deny wins.**  If any contributing permission for a (resource, action)
  pair has ``effect = deny``, every entry for that pair is marked
  ``allowed = False`` -- whatever its scope and whichever role granted it.
* Scopes are never merged.  A user holding ``cases.read.own`` and
  ``cases.read.team`` keeps both entries; ``broadest_scope`` picks the
  widest allowed one when a caller needs it.

``EffectivePermissions`` answers ``can`` / ``can_multiple`` from the
resolved set without touching the store again, so resolve once per
request and reuse the object.  An allowed higher action implies the
lower ones (``admin`` > ``delete`` > ``write`` > ``read``) unless the
lower pair is itself denied.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from loguru import logger
from pydantic import BaseModel, Field

from lexgate.config import DEFAULT_SETTINGS, EngineSettings
from lexgate.models import Action, Effect, Permission, PermissionScope, Resource, Role
from lexgate.store import RbacSnapshot, RbacStore


class ResolvedPermission(BaseModel):
    """One contributing permission and the merged verdict for its pair."""

    permission: Permission
    allowed: bool
    role_ids: list[str] = Field(
        default_factory=list,
        description="Roles (in resolution order) that reference this permission.",
    )

    @property
    def resource(self) -> Resource:
        return self.permission.resource

    @property
    def action(self) -> Action:
        return self.permission.action

    @property
    def scope(self) -> PermissionScope:
        return self.permission.scope


def _check_key(resource: Resource | str, action: Action | str) -> str:
    return f"{Resource(resource).value}.{Action(action).value}"


class EffectivePermissions(BaseModel):
    user_id: str
    roles: list[Role] = Field(default_factory=list)
    permissions: list[ResolvedPermission] = Field(default_factory=list)
    resolved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    valid_until: Optional[datetime] = Field(
        default=None,
        description="Earliest expiry among the contributing assignments.",
    )

    def denied_pairs(self) -> set[tuple[Resource, Action]]:
        return {(rp.resource, rp.action) for rp in self.permissions if not rp.allowed}

    def is_denied(self, resource: Resource | str, action: Action | str) -> bool:
        return (Resource(resource), Action(action)) in self.denied_pairs()

    def can(self, resource: Resource | str, action: Action | str) -> bool:
        """Whether ``action`` on ``resource`` is allowed at any scope."""
        resource, action = Resource(resource), Action(action)
        if self.is_denied(resource, action):
            return False
        return any(
            rp.allowed and rp.resource == resource and rp.action.rank >= action.rank
            for rp in self.permissions
        )

    def can_multiple(
        self, checks: Iterable[tuple[Resource | str, Action | str]]
    ) -> dict[str, bool]:
        """Batch ``can``; keys are ``"<resource>.<action>"``."""
        return {_check_key(resource, action): self.can(resource, action) for resource, action in checks}

    def broadest_scope(
        self, resource: Resource | str, action: Action | str
    ) -> Optional[PermissionScope]:
        """Widest scope at which the exact (resource, action) pair is allowed."""
        resource, action = Resource(resource), Action(action)
        scopes = [
            rp.scope
            for rp in self.permissions
            if rp.allowed and rp.resource == resource and rp.action == action
        ]
        return max(scopes, key=lambda s: s.rank) if scopes else None

    def allowed_resources(self) -> list[Resource]:
        seen: dict[Resource, None] = {}
        for rp in self.permissions:
            if rp.allowed:
                seen.setdefault(rp.resource, None)
        return list(seen)


def merge_permissions(
    user_id: str,
    snapshot: RbacSnapshot,
    at: Optional[datetime] = None,
) -> EffectivePermissions:
    """Resolve ``user_id``'s effective permissions from one snapshot."""
    at = at or datetime.now(timezone.utc)
    roles_by_id = {role.id: role for role in snapshot.roles}
    perms_by_id = {perm.id: perm for perm in snapshot.permissions}

    roles: list[Role] = []
    seen_roles: set[str] = set()
    valid_until: Optional[datetime] = None
    for assignment in snapshot.assignments:
        if assignment.user_id != user_id or not assignment.is_effective(at):
            continue
        role = roles_by_id.get(assignment.role_id)
        if role is None or not role.is_active:
            continue
        if assignment.expires_at is not None:
            if valid_until is None or assignment.expires_at < valid_until:
                valid_until = assignment.expires_at
        if role.id in seen_roles:
            continue
        seen_roles.add(role.id)
        roles.append(role)

    contributing: dict[str, ResolvedPermission] = {}
    for role in roles:
        for perm_id in role.permissions:
            perm = perms_by_id.get(perm_id)
            if perm is None:
                logger.warning("Role {} references missing permission {}", role.id, perm_id)
                continue
            entry = contributing.get(perm_id)
            if entry is None:
                contributing[perm_id] = ResolvedPermission(
                    permission=perm, allowed=True, role_ids=[role.id]
                )
            elif role.id not in entry.role_ids:
                entry.role_ids.append(role.id)

    denied = {
        (rp.resource, rp.action)
        for rp in contributing.values()
        if rp.permission.effect == Effect.DENY
    }
    for rp in contributing.values():
        rp.allowed = (rp.resource, rp.action) not in denied

    return EffectivePermissions(
        user_id=user_id,
        roles=roles,
        permissions=list(contributing.values()),
        resolved_at=at,
        valid_until=valid_until,
    )


class PermissionsResolver:
    """Resolves and caches effective permissions per user.

    The cache is keyed by user id.  An entry lives for
    ``permission_cache_ttl_seconds`` or until the earliest expiry of the
    assignments it was built from, whichever comes first.  Call
    ``clear_user_cache`` (or ``clear_cache``) after changing a user's
    roles; the engine does this automatically for mutations made through
    it.  Callers always receive their own copy of a cached result.
    """

    def __init__(
        self,
        store: RbacStore,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._ttl = (settings or DEFAULT_SETTINGS).permission_cache_ttl_seconds
        self._clock = clock
        self._now = now
        self._cache: dict[str, tuple[EffectivePermissions, float]] = {}

    def _is_fresh(self, entry: tuple[EffectivePermissions, float]) -> bool:
        resolved, deadline = entry
        if self._clock() >= deadline:
            return False
        return resolved.valid_until is None or self._now() < resolved.valid_until

    def resolve_user_permissions(
        self, user_id: str, at: Optional[datetime] = None
    ) -> EffectivePermissions:
        """Effective permissions for ``user_id``.

        Passing ``at`` resolves expiry against that instant and bypasses
        the cache.
        """
        use_cache = at is None and self._ttl > 0
        if use_cache:
            cached = self._cache.get(user_id)
            if cached is not None and self._is_fresh(cached):
                return cached[0].model_copy(deep=True)

        resolved = merge_permissions(user_id, self._store.snapshot(), at or self._now())

        if use_cache:
            self._cache[user_id] = (resolved, self._clock() + self._ttl)
            return resolved.model_copy(deep=True)
        return resolved

    def can(self, user_id: str, resource: Resource | str, action: Action | str) -> bool:
        return self.resolve_user_permissions(user_id).can(resource, action)

    def can_multiple(
        self, user_id: str, checks: Iterable[tuple[Resource | str, Action | str]]
    ) -> dict[str, bool]:
        return self.resolve_user_permissions(user_id).can_multiple(checks)

    def get_allowed_resources(self, user_id: str) -> list[Resource]:
        return self.resolve_user_permissions(user_id).allowed_resources()

    def clear_user_cache(self, user_id: str) -> None:
        self._cache.pop(user_id, None)

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)
