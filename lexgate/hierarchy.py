"""
Organizational Hierarchy Builder.

Turns the flat employee list (one ``manager_id`` edge per employee) into
a reporting forest and answers the structural questions the visibility
resolver needs:

* ``build_hierarchy``       -- the forest itself, with per-node depth and
  transitive report counts.
* ``get_manager_chain``     -- ancestors, nearest first.
* ``get_all_subordinates``  -- every transitive report with its relative
  level.
* ``get_same_manager_ids``  -- peers sharing the employee's manager.
* ``get_team_statistics``   -- headline numbers for the org chart.

Only active employees take part.  Reporting data is externally owned and
is not always clean, so nothing in this module raises on malformed input:

* a ``manager_id`` pointing at an unknown or inactive employee orphans the
  employee as a root;
* employees caught in a manager cycle are promoted to roots once the
  acyclic part of the forest has been built;
* every walk is bounded by a visited set and by ``max_depth``.

Each of these degradations is logged at WARNING.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field

from lexgate.config import DEFAULT_MAX_HIERARCHY_DEPTH, DEFAULT_ROOT_ROLE_PRIORITY
from lexgate.models import Employee


# ---------------------------------------------------------------------------
# Derived structures
# ---------------------------------------------------------------------------

class HierarchyNode(BaseModel):
    """One employee in the reporting forest.  Rebuilt on demand, never
    persisted."""

    employee: Employee
    direct_reports: list[HierarchyNode] = Field(default_factory=list)
    level: int = Field(default=0, description="Distance from the root (root = 0).")
    total_reports: int = Field(default=0, description="Transitive descendant count.")

    def walk(self) -> Iterable[HierarchyNode]:
        """Yield this node and every descendant, depth first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.direct_reports))


HierarchyNode.model_rebuild()


class Subordinate(BaseModel):
    """A transitive report of some employee."""

    employee: Employee
    level: int = Field(..., ge=1, description="1 for a direct report, 2 for a report's report, ...")


class TeamStatistics(BaseModel):
    total_employees: int = 0
    managers_count: int = 0
    max_levels: int = 0
    avg_team_size: float = 0.0
    role_distribution: dict[str, int] = Field(default_factory=dict)


def _name_key(employee: Employee) -> tuple[str, str]:
    return (employee.name.lower(), employee.id)


# ---------------------------------------------------------------------------
# Org chart
# ---------------------------------------------------------------------------

class OrgChart:
    """Indexed view over one snapshot of active employees.

    All hierarchy questions for a single resolution should be answered by
    the same ``OrgChart`` so they agree with one another.
    """

    def __init__(
        self,
        employees: Iterable[Employee],
        root_role_priority: Optional[Sequence[str]] = None,
        max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH,
    ) -> None:
        priority = root_role_priority if root_role_priority is not None else DEFAULT_ROOT_ROLE_PRIORITY
        self._priority = {label.lower(): idx for idx, label in enumerate(priority)}
        self._max_depth = max_depth

        self._by_id: dict[str, Employee] = {}
        for emp in employees:
            if not emp.is_active:
                continue
            if emp.id in self._by_id:
                logger.warning("Duplicate employee id {}; keeping the first record", emp.id)
                continue
            self._by_id[emp.id] = emp

        self._parent: dict[str, Optional[str]] = {}
        self._children: dict[str, list[Employee]] = {}
        for emp in self._by_id.values():
            parent = emp.manager_id
            if parent == emp.id:
                logger.warning("Employee {} is recorded as their own manager", emp.id)
                parent = None
            elif parent is not None and parent not in self._by_id:
                logger.warning(
                    "Employee {} reports to unknown or inactive manager {}; treating as root",
                    emp.id,
                    parent,
                )
                parent = None
            self._parent[emp.id] = parent
            if parent is not None:
                self._children.setdefault(parent, []).append(emp)

        for reports in self._children.values():
            reports.sort(key=_name_key)

    # -- lookups --

    @property
    def employees(self) -> list[Employee]:
        return list(self._by_id.values())

    def get(self, employee_id: str) -> Optional[Employee]:
        return self._by_id.get(employee_id)

    def __contains__(self, employee_id: str) -> bool:
        return employee_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def direct_reports(self, employee_id: str) -> list[Employee]:
        return list(self._children.get(employee_id, []))

    def _root_key(self, employee: Employee) -> tuple[int, str, str]:
        rank = self._priority.get(employee.role.strip().lower(), len(self._priority))
        return (rank,) + _name_key(employee)

    def root_employees(self) -> list[Employee]:
        """Employees with no (resolvable) manager, organizational head first."""
        roots = [emp for emp in self._by_id.values() if self._parent[emp.id] is None]
        return sorted(roots, key=self._root_key)

    # -- tree --

    def build(self) -> list[HierarchyNode]:
        """Build the reporting forest.

        Every active employee appears exactly once.  Employees that cannot
        be reached from a root are appended as extra roots.
        """
        visited: set[str] = set()
        forest = [self._build_node(emp, 0, visited) for emp in self.root_employees()]

        stranded = [emp for emp in self._by_id.values() if emp.id not in visited]
        for emp in sorted(stranded, key=_name_key):
            if emp.id in visited:
                continue
            logger.warning(
                "Employee {} is unreachable from any root (manager cycle?); promoting to root",
                emp.id,
            )
            forest.append(self._build_node(emp, 0, visited))

        return forest

    def _build_node(self, employee: Employee, level: int, visited: set[str]) -> HierarchyNode:
        visited.add(employee.id)
        reports: list[HierarchyNode] = []
        if level < self._max_depth:
            for child in self._children.get(employee.id, []):
                if child.id in visited:
                    continue
                reports.append(self._build_node(child, level + 1, visited))
        total = sum(1 + node.total_reports for node in reports)
        return HierarchyNode(
            employee=employee,
            direct_reports=reports,
            level=level,
            total_reports=total,
        )

    # -- walks --

    def manager_chain(self, employee_id: str) -> list[Employee]:
        """Ancestors of ``employee_id``, nearest first.

        Stops at a missing manager, at the first repeated id, or after
        ``max_depth`` steps.
        """
        current = self._by_id.get(employee_id)
        if current is None:
            return []

        chain: list[Employee] = []
        seen = {employee_id}
        while len(chain) < self._max_depth:
            manager_id = current.manager_id
            if not manager_id:
                break
            if manager_id in seen:
                logger.warning(
                    "Manager cycle detected above employee {} at {}", employee_id, manager_id
                )
                break
            manager = self._by_id.get(manager_id)
            if manager is None:
                break
            chain.append(manager)
            seen.add(manager_id)
            current = manager
        return chain

    def subordinates(self, employee_id: str) -> list[Subordinate]:
        """Every transitive report of ``employee_id`` in depth-first order."""
        result: list[Subordinate] = []
        seen = {employee_id}

        def descend(parent_id: str, level: int) -> None:
            if level > self._max_depth:
                return
            for child in self._children.get(parent_id, []):
                if child.id in seen:
                    continue
                seen.add(child.id)
                result.append(Subordinate(employee=child, level=level))
                descend(child.id, level + 1)

        descend(employee_id, 1)
        return result

    def same_manager_ids(self, employee_id: str) -> set[str]:
        """Ids of active peers that share ``employee_id``'s direct manager."""
        manager_id = self._parent.get(employee_id)
        if manager_id is None:
            return set()
        return {emp.id for emp in self._children.get(manager_id, []) if emp.id != employee_id}

    # -- statistics --

    def statistics(self, hierarchy: Optional[list[HierarchyNode]] = None) -> TeamStatistics:
        forest = hierarchy if hierarchy is not None else self.build()

        max_levels = 0
        for root in forest:
            deepest = max(node.level for node in root.walk())
            max_levels = max(max_levels, deepest + 1)

        team_sizes = [len(reports) for reports in self._children.values() if reports]
        avg = round(sum(team_sizes) / len(team_sizes), 1) if team_sizes else 0.0

        return TeamStatistics(
            total_employees=len(self._by_id),
            managers_count=len(team_sizes),
            max_levels=max_levels,
            avg_team_size=avg,
            role_distribution=dict(Counter(emp.role for emp in self._by_id.values())),
        )


# ---------------------------------------------------------------------------
# Functional API
# ---------------------------------------------------------------------------

def build_hierarchy(
    employees: Iterable[Employee],
    root_role_priority: Optional[Sequence[str]] = None,
    max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH,
) -> list[HierarchyNode]:
    """Build the reporting forest from a flat employee list.

    Args:
        employees: All employees; inactive ones are ignored.
        root_role_priority: Role labels ordering the roots.
        max_depth: Deepest level that will be expanded.

    Returns:
        Root nodes, organizational head first.
    """
    return OrgChart(employees, root_role_priority, max_depth).build()


def get_manager_chain(
    employee_id: str,
    employees: Iterable[Employee],
    max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH,
) -> list[Employee]:
    return OrgChart(employees, max_depth=max_depth).manager_chain(employee_id)


def get_all_subordinates(
    employee_id: str,
    employees: Iterable[Employee],
    max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH,
) -> list[Subordinate]:
    return OrgChart(employees, max_depth=max_depth).subordinates(employee_id)


def get_direct_reports(employee_id: str, employees: Iterable[Employee]) -> list[Employee]:
    return OrgChart(employees).direct_reports(employee_id)


def get_same_manager_ids(employee_id: str, employees: Iterable[Employee]) -> set[str]:
    return OrgChart(employees).same_manager_ids(employee_id)


def get_team_statistics(
    employees: Iterable[Employee],
    hierarchy: Optional[list[HierarchyNode]] = None,
) -> TeamStatistics:
    """Headline numbers: head count, managers, depth, average team size
    and role distribution over active employees."""
    return OrgChart(employees).statistics(hierarchy)
