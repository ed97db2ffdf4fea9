"""
Per-tenant composition root.

``AccessControlEngine`` wires one tenant's settings, RBAC store, audit log
and resolvers together.  Applications create one engine per tenant at
start-up and pass it (or its services) to request handlers; nothing in
lexgate keeps global state.

    engine = AccessControlEngine(settings)
    engine.rbac.assign_role("emp-17", engine.rbac.get_role_by_name("Staff").id)
    perms = engine.resolve_permissions("emp-17")
    perms.can("cases", "read")
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from lexgate.access_report import AccessChainReport, generate_access_report
from lexgate.audit import AuditLog
from lexgate.config import DEFAULT_SETTINGS, EngineSettings
from lexgate.hierarchy import HierarchyNode, TeamStatistics
from lexgate.models import Action, OrgSnapshot, Resource
from lexgate.permissions import EffectivePermissions, PermissionsResolver
from lexgate.rbac import RbacService, SeedResult
from lexgate.store import InMemoryRbacStore, RbacStore
from lexgate.visibility import EmployeeVisibility, calculate_visibility, org_chart_for


class AccessControlEngine:
    """All access-control services for one tenant."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        store: Optional[RbacStore] = None,
        audit_log: Optional[AuditLog] = None,
    ) -> None:
        self.settings = settings or DEFAULT_SETTINGS
        self.store = store if store is not None else InMemoryRbacStore()
        if audit_log is None:
            if self.settings.audit_log_path:
                audit_log = AuditLog.load(self.settings.audit_log_path)
            else:
                audit_log = AuditLog()
        self.audit_log = audit_log

        self.permissions = PermissionsResolver(self.store, self.settings)
        self.rbac = RbacService(
            self.store,
            self.audit_log,
            self.settings,
            on_change=self.permissions.clear_cache,
        )

        logger.debug("Access-control engine ready for tenant {}", self.settings.tenant_id)
        if self.settings.seed_on_startup:
            self.seed()

    @property
    def tenant_id(self) -> str:
        return self.settings.tenant_id

    def admin(self, actor_id: str) -> RbacService:
        """RBAC service that records ``actor_id`` on audit entries."""
        return self.rbac.with_actor(actor_id)

    def seed(self) -> SeedResult:
        """Seed the default catalog; a no-op once any role exists."""
        return self.rbac.seed_defaults()

    # -- read paths --

    def resolve_permissions(self, user_id: str) -> EffectivePermissions:
        return self.permissions.resolve_user_permissions(user_id)

    def can(self, user_id: str, resource: Resource | str, action: Action | str) -> bool:
        return self.permissions.can(user_id, resource, action)

    def visibility(self, employee_id: str, snapshot: OrgSnapshot) -> EmployeeVisibility:
        """Resolve visibility for ``employee_id`` over ``snapshot``.

        Raises:
            KeyError: If the employee is not in the snapshot.
        """
        employee = snapshot.find_employee(employee_id)
        if employee is None:
            raise KeyError(f"Employee '{employee_id}' not found")
        return calculate_visibility(
            employee,
            snapshot.employees,
            snapshot.cases,
            snapshot.clients,
            snapshot.tasks,
            settings=self.settings,
        )

    def access_report(self, employee_id: str, snapshot: OrgSnapshot) -> AccessChainReport:
        return generate_access_report(
            employee_id,
            snapshot,
            roles=self.rbac.get_user_roles(employee_id),
            settings=self.settings,
        )

    def hierarchy(self, snapshot: OrgSnapshot) -> list[HierarchyNode]:
        return org_chart_for(snapshot.employees, self.settings).build()

    def team_statistics(self, snapshot: OrgSnapshot) -> TeamStatistics:
        return org_chart_for(snapshot.employees, self.settings).statistics()
