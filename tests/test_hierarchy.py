"""
Tests for lexgate.hierarchy -- Org chart construction and walks.

Covers: forest construction and ordering, transitive report counts, manager
chains, subordinates with relative levels, same-manager peers, inactive
employees, dangling managers, manager cycles, depth cap and team
statistics.
"""

from __future__ import annotations

from lexgate.hierarchy import (
    OrgChart,
    build_hierarchy,
    get_all_subordinates,
    get_direct_reports,
    get_manager_chain,
    get_same_manager_ids,
    get_team_statistics,
)
from lexgate.models import Employee


def _emp(id: str, manager_id: str | None = None, role: str = "Staff", **kw) -> Employee:
    return Employee(id=id, name=kw.pop("name", id.upper()), role=role, manager_id=manager_id, **kw)


def _firm() -> list[Employee]:
    """p1 (Partner) -> m1 (Manager) -> s1, s2 (Staff); p1 -> m2 -> s3."""
    return [
        _emp("s1", "m1"),
        _emp("m1", "p1", role="Manager"),
        _emp("p1", role="Partner"),
        _emp("s2", "m1"),
        _emp("m2", "p1", role="Manager"),
        _emp("s3", "m2"),
    ]


# ---------------------------------------------------------------------------
# 1. Forest construction
# ---------------------------------------------------------------------------

class TestBuildHierarchy:
    def test_single_root_with_nested_reports(self):
        forest = build_hierarchy(_firm())
        assert [n.employee.id for n in forest] == ["p1"]
        root = forest[0]
        assert [n.employee.id for n in root.direct_reports] == ["m1", "m2"]
        assert root.level == 0
        assert root.direct_reports[0].level == 1
        assert root.direct_reports[0].direct_reports[0].level == 2

    def test_total_reports_is_transitive(self):
        root = build_hierarchy(_firm())[0]
        assert root.total_reports == 5
        m1 = root.direct_reports[0]
        assert m1.total_reports == 2
        assert m1.direct_reports[0].total_reports == 0

    def test_every_active_employee_appears_once(self):
        forest = build_hierarchy(_firm())
        ids = [node.employee.id for root in forest for node in root.walk()]
        assert sorted(ids) == sorted(e.id for e in _firm())

    def test_roots_ordered_by_role_priority_then_name(self):
        employees = [
            _emp("x", role="Staff", name="Aaron"),
            _emp("m", role="Manager", name="Zed"),
            _emp("ca", role="CA", name="Yuki"),
            _emp("p", role="Partner", name="Wanda"),
        ]
        forest = build_hierarchy(employees)
        assert [n.employee.id for n in forest] == ["p", "ca", "m", "x"]

    def test_children_sorted_by_name(self):
        employees = [
            _emp("root", role="Partner"),
            _emp("b", "root", name="bob"),
            _emp("a", "root", name="Alice"),
        ]
        root = build_hierarchy(employees)[0]
        assert [n.employee.name for n in root.direct_reports] == ["Alice", "bob"]

    def test_inactive_employees_are_excluded(self):
        employees = _firm() + [_emp("gone", "m1", status="Inactive")]
        forest = build_hierarchy(employees)
        ids = {node.employee.id for root in forest for node in root.walk()}
        assert "gone" not in ids

    def test_dangling_manager_becomes_root(self, log_messages):
        employees = [_emp("p1", role="Partner"), _emp("orphan", "nobody")]
        forest = build_hierarchy(employees)
        assert {n.employee.id for n in forest} == {"p1", "orphan"}
        assert any(level == "WARNING" and "orphan" in msg for level, msg in log_messages)

    def test_inactive_manager_orphans_reports(self):
        employees = [_emp("boss", role="Partner", status="Inactive"), _emp("s", "boss")]
        forest = build_hierarchy(employees)
        assert [n.employee.id for n in forest] == ["s"]

    def test_blank_manager_id_is_root(self):
        forest = build_hierarchy([_emp("a", "  ")])
        assert forest[0].employee.id == "a"


# ---------------------------------------------------------------------------
# 2. Malformed hierarchies
# ---------------------------------------------------------------------------

class TestCycles:
    def test_two_node_cycle_terminates(self, log_messages):
        employees = [_emp("a", "b"), _emp("b", "a")]
        forest = build_hierarchy(employees)
        ids = [node.employee.id for root in forest for node in root.walk()]
        assert sorted(ids) == ["a", "b"]
        assert any(level == "WARNING" for level, _ in log_messages)

    def test_self_managed_employee_is_root(self):
        forest = build_hierarchy([_emp("loop", "loop")])
        assert forest[0].employee.id == "loop"
        assert forest[0].direct_reports == []

    def test_manager_chain_stops_at_cycle(self):
        employees = [_emp("a", "b"), _emp("b", "c"), _emp("c", "a")]
        chain = get_manager_chain("a", employees)
        assert [e.id for e in chain] == ["b", "c"]

    def test_subordinates_stop_at_cycle(self):
        employees = [_emp("a", "b"), _emp("b", "a")]
        subs = get_all_subordinates("a", employees)
        assert [s.employee.id for s in subs] == ["b"]

    def test_depth_cap_limits_expansion(self):
        employees = [_emp("e0", role="Partner")] + [
            _emp(f"e{i}", f"e{i - 1}") for i in range(1, 10)
        ]
        root = OrgChart(employees, max_depth=3).build()[0]
        assert max(node.level for node in root.walk()) == 3
        assert len(get_manager_chain("e9", employees, max_depth=4)) == 4


# ---------------------------------------------------------------------------
# 3. Walks
# ---------------------------------------------------------------------------

class TestWalks:
    def test_manager_chain_nearest_first(self):
        chain = get_manager_chain("s1", _firm())
        assert [e.id for e in chain] == ["m1", "p1"]

    def test_manager_chain_of_root_is_empty(self):
        assert get_manager_chain("p1", _firm()) == []

    def test_manager_chain_unknown_employee(self):
        assert get_manager_chain("ghost", _firm()) == []

    def test_subordinates_have_relative_levels(self):
        subs = get_all_subordinates("p1", _firm())
        levels = {s.employee.id: s.level for s in subs}
        assert levels == {"m1": 1, "s1": 2, "s2": 2, "m2": 1, "s3": 2}

    def test_subordinates_depth_first(self):
        subs = get_all_subordinates("p1", _firm())
        assert [s.employee.id for s in subs] == ["m1", "s1", "s2", "m2", "s3"]

    def test_direct_reports(self):
        assert [e.id for e in get_direct_reports("m1", _firm())] == ["s1", "s2"]

    def test_same_manager_ids(self):
        assert get_same_manager_ids("s1", _firm()) == {"s2"}
        assert get_same_manager_ids("m1", _firm()) == {"m2"}

    def test_root_has_no_peers(self):
        employees = _firm() + [_emp("p2", role="Partner")]
        assert get_same_manager_ids("p1", employees) == set()


# ---------------------------------------------------------------------------
# 4. Statistics
# ---------------------------------------------------------------------------

class TestTeamStatistics:
    def test_headline_numbers(self):
        stats = get_team_statistics(_firm())
        assert stats.total_employees == 6
        assert stats.managers_count == 3
        assert stats.max_levels == 3
        assert stats.avg_team_size == 1.7
        assert stats.role_distribution == {"Staff": 3, "Manager": 2, "Partner": 1}

    def test_empty_org(self):
        stats = get_team_statistics([])
        assert stats.total_employees == 0
        assert stats.managers_count == 0
        assert stats.max_levels == 0
        assert stats.avg_team_size == 0.0
