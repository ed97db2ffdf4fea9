"""
Visibility Resolver.

Decides which cases, clients and tasks an employee can see and records
*why* each one is visible.  The answer depends on three things:

1. The employee's **effective data scope**.  Holders of an override role
   (Partner, Admin by default) always resolve as ``All``; everyone else
   uses their configured ``data_scope``, normalized from whatever legacy
   encoding the employee store holds.
2. The **org chart** -- subordinates, the manager chain and same-manager
   peers, all taken from a single ``OrgChart`` snapshot.
3. A fixed, ordered list of rules per entity type.  The first rule that
   matches decides the ``AccessPath``; later rules are not consulted.
   Reordering the rules changes the explanations shown to users and
   written to audit reports.

Records that match no rule are simply absent from the result.

Rule order
----------

Cases
    All:  assigned to self -> direct; anything else -> hierarchy.
    Team: assigned to / owned by self -> direct; assigned to a subordinate
    -> hierarchy; assigned to / owned by the manager chain -> manager;
    assigned to / owned by a same-manager peer -> team.
    Own:  assigned to self -> direct.

Clients
    referenced by a visible case -> hierarchy; owned by self -> ownership;
    Team: owner in manager chain -> manager; owner in team -> team;
    All: hierarchy.

Tasks
    assigned to self -> direct; created by self -> ownership; on a visible
    case -> hierarchy; All: hierarchy; Team: assignee in manager chain ->
    manager; assignee a subordinate -> hierarchy; assignee a peer -> team.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field

from lexgate.config import DEFAULT_SCOPE_OVERRIDE_ROLES, EngineSettings
from lexgate.hierarchy import OrgChart
from lexgate.models import AccessPathType, Case, Client, DataScope, Employee, Task


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class AccessPath(BaseModel):
    """Explanation attached to a visible record.  Never persisted."""

    type: AccessPathType
    through: Optional[str] = Field(
        default=None,
        description="Employee id the access flows through, where applicable.",
    )
    description: str = Field(default="")


class VisibleEntity(BaseModel):
    id: str
    name: str
    access_path: AccessPath


class EmployeeVisibility(BaseModel):
    """Everything one employee can see in one snapshot."""

    employee_id: str
    effective_scope: DataScope
    visible_cases: list[VisibleEntity] = Field(default_factory=list)
    visible_clients: list[VisibleEntity] = Field(default_factory=list)
    visible_tasks: list[VisibleEntity] = Field(default_factory=list)
    total_cases: int = 0
    total_clients: int = 0
    total_tasks: int = 0

    def case_ids(self) -> list[str]:
        return [entity.id for entity in self.visible_cases]

    def client_ids(self) -> list[str]:
        return [entity.id for entity in self.visible_clients]

    def task_ids(self) -> list[str]:
        return [entity.id for entity in self.visible_tasks]


# ---------------------------------------------------------------------------
# Data scope
# ---------------------------------------------------------------------------

_SCOPE_ALIASES: dict[str, DataScope] = {
    "own": DataScope.OWN,
    "self": DataScope.OWN,
    "team": DataScope.TEAM,
    "all": DataScope.ALL,
    "org": DataScope.ALL,
    "organization": DataScope.ALL,
}

_SEPARATORS = re.compile(r"[\s_\-]+")


def normalize_data_scope(raw: Optional[object]) -> DataScope:
    """Map any stored data-scope encoding onto ``DataScope``.

    Accepts ``DataScope`` members and strings such as ``"Own Cases"``,
    ``"team_cases"``, ``"ALL"`` or ``"all-cases"``.  Anything unrecognized,
    including ``None``, maps to ``DataScope.OWN``.
    """
    if isinstance(raw, DataScope):
        return raw
    if not isinstance(raw, str):
        return DataScope.OWN

    words = _SEPARATORS.sub(" ", raw).strip().lower().split(" ")
    if len(words) == 2 and words[1] == "cases":
        words = words[:1]
    if len(words) != 1:
        return DataScope.OWN
    return _SCOPE_ALIASES.get(words[0], DataScope.OWN)


def resolve_effective_scope(
    employee: Employee,
    override_roles: Sequence[str] = DEFAULT_SCOPE_OVERRIDE_ROLES,
) -> DataScope:
    """Data scope after role overrides.

    Override roles always win over the configured ``data_scope``.
    """
    overrides = {label.strip().lower() for label in override_roles}
    if employee.role.strip().lower() in overrides:
        return DataScope.ALL
    return normalize_data_scope(employee.data_scope)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

_ORG_WIDE = "Organization-wide visibility"

T = TypeVar("T")
Rule = Callable[[T], Optional[AccessPath]]


def _path(type_: AccessPathType, description: str, through: Optional[str] = None) -> AccessPath:
    return AccessPath(type=type_, through=through, description=description)


def _first_in(ids: set[str], *candidates: Optional[str]) -> Optional[str]:
    for candidate in candidates:
        if candidate and candidate in ids:
            return candidate
    return None


def _apply_rules(
    items: Iterable[T],
    rules: Sequence[Rule],
    name_of: Callable[[T], str],
) -> list[VisibleEntity]:
    visible: list[VisibleEntity] = []
    seen: set[str] = set()
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        for rule in rules:
            path = rule(item)
            if path is not None:
                visible.append(VisibleEntity(id=item.id, name=name_of(item), access_path=path))
                break
    return visible


class _Resolver:
    """Holds the per-employee sets that the rules close over."""

    def __init__(self, employee: Employee, chart: OrgChart, scope: DataScope) -> None:
        self.me = employee.id
        self.scope = scope
        self.subordinates = {sub.employee.id for sub in chart.subordinates(employee.id)}
        self.chain = {mgr.id for mgr in chart.manager_chain(employee.id)}
        self.peers = chart.same_manager_ids(employee.id)
        self.team = self.subordinates | self.chain | self.peers | {self.me}

    # -- cases --

    def case_rules(self) -> list[Rule[Case]]:
        if self.scope == DataScope.ALL:
            return [self._case_assigned_to_me, self._org_wide]
        if self.scope == DataScope.TEAM:
            return [
                self._case_mine,
                self._case_of_subordinate,
                self._case_of_manager_chain,
                self._case_of_peer,
            ]
        return [self._case_assigned_to_me]

    def _case_assigned_to_me(self, case: Case) -> Optional[AccessPath]:
        if case.assigned_to_id == self.me:
            return _path(AccessPathType.DIRECT, "Directly assigned")
        return None

    def _case_mine(self, case: Case) -> Optional[AccessPath]:
        if case.assigned_to_id == self.me:
            return _path(AccessPathType.DIRECT, "Directly assigned")
        if case.owner_id == self.me:
            return _path(AccessPathType.DIRECT, "Case owner")
        return None

    def _case_of_subordinate(self, case: Case) -> Optional[AccessPath]:
        through = _first_in(self.subordinates, case.assigned_to_id)
        if through:
            return _path(AccessPathType.HIERARCHY, "Assigned to a subordinate", through)
        return None

    def _case_of_manager_chain(self, case: Case) -> Optional[AccessPath]:
        through = _first_in(self.chain, case.assigned_to_id, case.owner_id)
        if through:
            return _path(AccessPathType.MANAGER, "Routed through your manager chain", through)
        return None

    def _case_of_peer(self, case: Case) -> Optional[AccessPath]:
        through = _first_in(self.peers, case.assigned_to_id, case.owner_id)
        if through:
            return _path(AccessPathType.TEAM, "Same team (same manager)", through)
        return None

    # -- clients --

    def client_rules(self, visible_cases: dict[str, str]) -> list[Rule[Client]]:
        def inherited(client: Client) -> Optional[AccessPath]:
            case_name = visible_cases.get(client.id)
            if case_name is not None:
                return _path(AccessPathType.HIERARCHY, f"Inherited from visible case '{case_name}'")
            return None

        rules: list[Rule[Client]] = [inherited, self._client_owned]
        if self.scope == DataScope.TEAM:
            rules += [self._client_of_manager_chain, self._client_of_team]
        elif self.scope == DataScope.ALL:
            rules.append(self._org_wide)
        return rules

    def _client_owned(self, client: Client) -> Optional[AccessPath]:
        if client.owner_id == self.me:
            return _path(AccessPathType.OWNERSHIP, "Owner of this client")
        return None

    def _client_of_manager_chain(self, client: Client) -> Optional[AccessPath]:
        through = _first_in(self.chain, client.owner_id)
        if through:
            return _path(AccessPathType.MANAGER, "Owned by your manager chain", through)
        return None

    def _client_of_team(self, client: Client) -> Optional[AccessPath]:
        through = _first_in(self.team, client.owner_id)
        if through:
            return _path(AccessPathType.TEAM, "Owned by a team member", through)
        return None

    # -- tasks --

    def task_rules(self, visible_case_ids: set[str]) -> list[Rule[Task]]:
        def inherited(task: Task) -> Optional[AccessPath]:
            if task.case_id and task.case_id in visible_case_ids:
                return _path(AccessPathType.HIERARCHY, "Inherited from visible case")
            return None

        rules: list[Rule[Task]] = [self._task_assigned_to_me, self._task_created_by_me, inherited]
        if self.scope == DataScope.ALL:
            rules.append(self._org_wide)
        elif self.scope == DataScope.TEAM:
            rules += [self._task_of_manager_chain, self._task_of_subordinate, self._task_of_peer]
        return rules

    def _task_assigned_to_me(self, task: Task) -> Optional[AccessPath]:
        if task.assigned_to_id == self.me:
            return _path(AccessPathType.DIRECT, "Directly assigned")
        return None

    def _task_created_by_me(self, task: Task) -> Optional[AccessPath]:
        if task.assigned_by_id == self.me:
            return _path(AccessPathType.OWNERSHIP, "Created by you")
        return None

    def _task_of_manager_chain(self, task: Task) -> Optional[AccessPath]:
        through = _first_in(self.chain, task.assigned_to_id)
        if through:
            return _path(AccessPathType.MANAGER, "Assigned to your manager chain", through)
        return None

    def _task_of_subordinate(self, task: Task) -> Optional[AccessPath]:
        through = _first_in(self.subordinates, task.assigned_to_id)
        if through:
            return _path(AccessPathType.HIERARCHY, "Assigned to a subordinate", through)
        return None

    def _task_of_peer(self, task: Task) -> Optional[AccessPath]:
        through = _first_in(self.peers, task.assigned_to_id)
        if through:
            return _path(AccessPathType.TEAM, "Same team (same manager)", through)
        return None

    @staticmethod
    def _org_wide(_item) -> AccessPath:
        return _path(AccessPathType.HIERARCHY, _ORG_WIDE)


def org_chart_for(
    employees: Iterable[Employee], settings: Optional[EngineSettings] = None
) -> OrgChart:
    """Build an ``OrgChart`` honoring the tenant's hierarchy settings."""
    if settings is None:
        return OrgChart(employees)
    return OrgChart(
        employees,
        root_role_priority=settings.root_role_priority,
        max_depth=settings.max_hierarchy_depth,
    )


def calculate_visibility(
    employee: Employee,
    employees: Iterable[Employee],
    cases: Sequence[Case],
    clients: Sequence[Client],
    tasks: Sequence[Task],
    settings: Optional[EngineSettings] = None,
    chart: Optional[OrgChart] = None,
) -> EmployeeVisibility:
    """Resolve what ``employee`` can see.

    The function is pure: inputs are not modified, and the same snapshot
    always yields the same result in the same order.

    Args:
        employee: The employee to resolve for.
        employees: All employees (inactive ones are ignored).
        cases: All cases.
        clients: All clients.
        tasks: All tasks.
        settings: Engine settings; defaults apply when omitted.
        chart: A prebuilt ``OrgChart`` over ``employees`` to reuse across
            several employees.

    Returns:
        An ``EmployeeVisibility`` with one ``VisibleEntity`` per visible
        record, in input order.
    """
    if chart is None:
        chart = org_chart_for(employees, settings)
    override_roles = settings.scope_override_roles if settings else DEFAULT_SCOPE_OVERRIDE_ROLES

    scope = resolve_effective_scope(employee, override_roles)
    resolver = _Resolver(employee, chart, scope)

    visible_cases = _apply_rules(cases, resolver.case_rules(), lambda c: c.display_name)

    visible_case_ids = {entity.id for entity in visible_cases}
    client_cases: dict[str, str] = {}
    for case in cases:
        if case.id in visible_case_ids and case.client_id and case.client_id not in client_cases:
            client_cases[case.client_id] = case.display_name

    visible_clients = _apply_rules(
        clients, resolver.client_rules(client_cases), lambda c: c.display_name
    )
    visible_tasks = _apply_rules(
        tasks, resolver.task_rules(visible_case_ids), lambda t: t.display_name
    )

    return EmployeeVisibility(
        employee_id=employee.id,
        effective_scope=scope,
        visible_cases=visible_cases,
        visible_clients=visible_clients,
        visible_tasks=visible_tasks,
        total_cases=len(cases),
        total_clients=len(clients),
        total_tasks=len(tasks),
    )
