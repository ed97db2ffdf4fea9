"""
Access Chain Report Generator.

Explains one employee's access in a single structured document: which
RBAC roles they hold, who they report to, who reports to them, and what
they can see with the reason for each record.  Used by the admin
inspector screens and by the ``lexgate visibility`` command.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from lexgate.config import EngineSettings
from lexgate.models import Employee, OrgSnapshot, Role
from lexgate.visibility import EmployeeVisibility, calculate_visibility, org_chart_for


def _person(employee: Employee) -> dict[str, str]:
    return {"id": employee.id, "name": employee.name, "role": employee.role}


class AccessChainReport:
    """A structured access chain for one employee."""

    def __init__(
        self,
        employee: Employee,
        roles: list[str],
        reports_to: Optional[dict[str, str]],
        manager_chain: list[dict[str, str]],
        direct_reports: list[dict[str, str]],
        all_subordinates: list[dict[str, Any]],
        visibility: EmployeeVisibility,
        generated_at: str,
    ) -> None:
        self.employee = employee
        self.roles = roles
        self.reports_to = reports_to
        self.manager_chain = manager_chain
        self.direct_reports = direct_reports
        self.all_subordinates = all_subordinates
        self.visibility = visibility
        self.generated_at = generated_at

    def summary(self) -> dict[str, int]:
        v = self.visibility
        return {
            "visible_cases": len(v.visible_cases),
            "total_cases": v.total_cases,
            "visible_clients": len(v.visible_clients),
            "total_clients": v.total_clients,
            "visible_tasks": len(v.visible_tasks),
            "total_tasks": v.total_tasks,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_type": "Access Chain Report",
            "employee_id": self.employee.id,
            "employee_name": self.employee.name,
            "role_label": self.employee.role,
            "roles": self.roles,
            "effective_scope": self.visibility.effective_scope.value,
            "reports_to": self.reports_to,
            "manager_chain": self.manager_chain,
            "direct_reports": self.direct_reports,
            "all_subordinates": self.all_subordinates,
            "summary": self.summary(),
            "visibility": self.visibility.model_dump(mode="json"),
            "generated_at": self.generated_at,
        }

    def __repr__(self) -> str:
        return (
            f"AccessChainReport(employee_id={self.employee.id}, "
            f"scope={self.visibility.effective_scope.value}, "
            f"cases={len(self.visibility.visible_cases)})"
        )


def generate_access_report(
    employee_id: str,
    snapshot: OrgSnapshot,
    roles: Optional[list[Role]] = None,
    settings: Optional[EngineSettings] = None,
) -> AccessChainReport:
    """Build the access chain for ``employee_id``.

    Args:
        employee_id: The employee to explain.
        snapshot: Employees, cases, clients and tasks.
        roles: RBAC roles the employee holds (names are listed).
        settings: Engine settings; defaults apply when omitted.

    Raises:
        KeyError: If ``employee_id`` is not in the snapshot.
    """
    employee = snapshot.find_employee(employee_id)
    if employee is None:
        raise KeyError(f"Employee '{employee_id}' not found")

    chart = org_chart_for(snapshot.employees, settings)
    chain = chart.manager_chain(employee_id)

    visibility = calculate_visibility(
        employee,
        snapshot.employees,
        snapshot.cases,
        snapshot.clients,
        snapshot.tasks,
        settings=settings,
        chart=chart,
    )

    return AccessChainReport(
        employee=employee,
        roles=[role.name for role in roles or []],
        reports_to=_person(chain[0]) if chain else None,
        manager_chain=[_person(m) for m in chain],
        direct_reports=[_person(e) for e in chart.direct_reports(employee_id)],
        all_subordinates=[
            dict(_person(sub.employee), level=sub.level)
            for sub in chart.subordinates(employee_id)
        ],
        visibility=visibility,
        generated_at=datetime.now(timezone.utc).isoformat(),
    )
