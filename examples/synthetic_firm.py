"""
Synthetic Scenario: Access Control at a Small Practice
======================================================

Walks through lexgate end to end with an entirely synthetic practice.

Steps demonstrated:
  1. Build a per-tenant engine (seeds the default catalog)
  2. Load the organizational snapshot and print the org chart
  3. Resolve what several employees can see, and why
  4. Create a custom role, assign roles and check permissions
  5. Show that a deny permission overrides an allow
  6. Try a few rejected mutations
  7. Export the audit trail for review

Usage:
    python examples/synthetic_firm.py
"""

from __future__ import annotations

import json
from pathlib import Path

from lexgate.config import EngineSettings, SettingsRegistry, load_snapshot_from_yaml
from lexgate.engine import AccessControlEngine
from lexgate.hierarchy import HierarchyNode
from lexgate.log import configure_logging
from lexgate.rbac import RbacError


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def _print_tree(node: HierarchyNode) -> None:
    for n in node.walk():
        print(f"{'  ' * n.level}- {n.employee.name} ({n.employee.role}), {n.total_reports} reports")


def main() -> None:
    configure_logging("WARNING")

    # ------------------------------------------------------------------
    # Step 1: Engine
    # ------------------------------------------------------------------
    _banner("Step 1: Create the Practice Engine")

    registry = SettingsRegistry([
        EngineSettings(tenant_id="rao_associates", tenant_name="Rao & Associates"),
    ])
    settings = registry.select("rao_associates")
    engine = AccessControlEngine(settings)
    print(f"Tenant: {settings.tenant_name} ({settings.tenant_id})")
    print(f"Seeded roles: {[r.name for r in engine.rbac.list_roles()]}")
    print(f"Seeded permissions: {len(engine.rbac.list_permissions())}")

    # ------------------------------------------------------------------
    # Step 2: Org chart
    # ------------------------------------------------------------------
    _banner("Step 2: Org Chart")

    snapshot = load_snapshot_from_yaml(Path(__file__).parent / "firm_snapshot.yaml")
    for root in engine.hierarchy(snapshot):
        _print_tree(root)
    stats = engine.team_statistics(snapshot)
    print(f"\n{stats.total_employees} active employees, {stats.managers_count} managers, "
          f"{stats.max_levels} levels, average team size {stats.avg_team_size}")

    # ------------------------------------------------------------------
    # Step 3: Visibility
    # ------------------------------------------------------------------
    _banner("Step 3: Who Sees What")

    for employee_id in ("s1", "s2", "m1", "p1"):
        vis = engine.visibility(employee_id, snapshot)
        employee = snapshot.find_employee(employee_id)
        print(f"{employee.name} [{vis.effective_scope.value}]: "
              f"{len(vis.visible_cases)}/{vis.total_cases} cases")
        for entity in vis.visible_cases:
            path = entity.access_path
            via = f" via {path.through}" if path.through else ""
            print(f"    {entity.name}: {path.type.value}{via} ({path.description})")

    # ------------------------------------------------------------------
    # Step 4: Roles and permissions
    # ------------------------------------------------------------------
    _banner("Step 4: Roles and Permissions")

    admin = engine.admin("p1")
    by_name = {p.name: p.id for p in admin.list_permissions()}
    advocate = admin.create_role(
        "Advocate",
        "Appears in hearings for assigned matters",
        [by_name["cases.read.own"], by_name["cases.write.own"], by_name["hearings.read.team"]],
    )
    admin.assign_role("s1", advocate.id)
    admin.assign_role("m1", admin.get_role_by_name("Manager").id)
    for user_id in ("s1", "m1"):
        checks = engine.permissions.can_multiple(
            user_id, [("cases", "read"), ("hearings", "write"), ("rbac", "admin")]
        )
        print(f"{user_id}: {checks}")

    # ------------------------------------------------------------------
    # Step 5: Deny wins
    # ------------------------------------------------------------------
    _banner("Step 5: Deny Overrides Allow")

    deny = admin.create_permission(
        "hearings.write.deny", "Hearings", "Freeze hearing scheduling", "hearings", "write",
        effect="deny", scope="org",
    )
    freeze = admin.create_role("Scheduling Freeze", "Temporary block", [deny.id])
    admin.assign_role("m1", freeze.id)
    print(f"m1 can write hearings: {engine.can('m1', 'hearings', 'write')}")
    print(f"m1 can read hearings:  {engine.can('m1', 'hearings', 'read')}")

    # ------------------------------------------------------------------
    # Step 6: Rejected mutations
    # ------------------------------------------------------------------
    _banner("Step 6: Rejected Mutations")

    attempts = [
        ("duplicate role name", lambda: admin.create_role("Admin")),
        ("rename system role", lambda: admin.update_role(
            admin.get_role_by_name("Staff").id, name="Associates")),
        ("delete role in use", lambda: admin.delete_role(advocate.id)),
        ("assign twice", lambda: admin.assign_role("s1", advocate.id)),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except RbacError as exc:
            print(f"{label}: {type(exc).__name__}: {exc}")

    # ------------------------------------------------------------------
    # Step 7: Access report and audit
    # ------------------------------------------------------------------
    _banner("Step 7: Access Report and Audit Export")

    print(json.dumps(engine.access_report("s1", snapshot).to_dict()["summary"], indent=2))
    export = engine.audit_log.export_for_review(settings.tenant_id)
    print(json.dumps(export["export_metadata"], indent=2))
    print(f"\nEntries by p1: {len(admin.get_audit_by_actor('p1'))}")


if __name__ == "__main__":
    main()
