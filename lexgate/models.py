"""
Core data models for the lexgate access-control engine.

Two families of models live here:

* **Organizational records** -- ``Employee``, ``Case``, ``Client`` and
  ``Task``.  These are owned by the practice-management stores; the
  engine only reads them to build hierarchies and resolve visibility.
* **Access-control records** -- ``Permission``, ``Role`` and
  ``UserRoleAssignment``.  These are owned and lifecycle-managed by the
  engine itself (see ``lexgate.rbac``).

Resources, actions, effects and scopes are closed enumerations.  Persisted
string forms are converted through the enum constructors, so a typo such
as ``"raed"`` fails validation instead of silently never matching.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class EmployeeStatus(str, enum.Enum):
    """Employment status.  Only ``Active`` employees take part in the
    hierarchy and in visibility resolution."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"


class DataScope(str, enum.Enum):
    """Per-employee breadth of default record visibility.

    * ``OWN``  -- only records assigned to the employee.
    * ``TEAM`` -- records of subordinates, the manager chain and peers.
    * ``ALL``  -- every record in the organization.
    """

    OWN = "Own"
    TEAM = "Team"
    ALL = "All"


class Resource(str, enum.Enum):
    """Protected resource families."""

    CASES = "cases"
    CLIENTS = "clients"
    DOCUMENTS = "documents"
    TASKS = "tasks"
    HEARINGS = "hearings"
    REPORTS = "reports"
    DASHBOARD = "dashboard"
    ANALYTICS = "analytics"
    SYSTEM = "system"
    RBAC = "rbac"
    AUDIT = "audit"


class Action(str, enum.Enum):
    """Permission actions, declared weakest first."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ACTION_ORDER.index(self)


_ACTION_ORDER = [Action.READ, Action.WRITE, Action.DELETE, Action.ADMIN]


class Effect(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


class PermissionScope(str, enum.Enum):
    """Breadth of a permission grant, declared narrowest first."""

    OWN = "own"
    TEAM = "team"
    ORG = "org"

    @property
    def rank(self) -> int:
        return _SCOPE_ORDER.index(self)


_SCOPE_ORDER = [PermissionScope.OWN, PermissionScope.TEAM, PermissionScope.ORG]


class AccessPathType(str, enum.Enum):
    """Why a record is visible to an employee.

    * ``DIRECT``    -- assigned to (or, for cases, owned by) the employee.
    * ``OWNERSHIP`` -- the employee owns or created the record.
    * ``TEAM``      -- held by a peer sharing the same manager.
    * ``HIERARCHY`` -- held by a subordinate, inherited from a visible
      case, or visible organization-wide.
    * ``MANAGER``   -- held by someone in the employee's manager chain.
    """

    DIRECT = "direct"
    OWNERSHIP = "ownership"
    TEAM = "team"
    HIERARCHY = "hierarchy"
    MANAGER = "manager"


# ---------------------------------------------------------------------------
# Organizational records (read-only inputs)
# ---------------------------------------------------------------------------

class Employee(BaseModel):
    """An employee record as exposed by the employee store.

    ``status`` and ``data_scope`` are kept as raw strings because the
    store carries several historical encodings of both.  Use
    ``is_active`` and ``lexgate.visibility.normalize_data_scope`` rather
    than comparing them directly.
    """

    id: str = Field(..., min_length=1, description="Unique employee identifier.")
    name: str = Field(default="", description="Full display name.")
    role: str = Field(
        default="Staff",
        description="Role label, e.g. Partner, CA, Admin, Manager, Advocate, Staff.",
    )
    status: str = Field(
        default=EmployeeStatus.ACTIVE.value,
        description="Employment status; matched case-insensitively against 'Active'.",
    )
    manager_id: Optional[str] = Field(
        default=None,
        description="The single upward reporting edge.  None marks a root.",
    )
    data_scope: Optional[str] = Field(
        default=None,
        description="Configured data scope in any legacy encoding ('Own Cases', 'team', ...).",
    )
    email: str = Field(default="")

    @field_validator("manager_id")
    @classmethod
    def blank_manager_is_root(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def is_active(self) -> bool:
        return (self.status or "").strip().lower() == EmployeeStatus.ACTIVE.value.lower()


class Case(BaseModel):
    """A litigation or advisory matter."""

    id: str = Field(..., min_length=1)
    title: str = Field(default="")
    case_number: str = Field(default="")
    client_id: Optional[str] = Field(default=None, description="The client this case belongs to.")
    assigned_to_id: Optional[str] = Field(default=None, description="Employee the case is assigned to.")
    owner_id: Optional[str] = Field(default=None, description="Employee who owns the case.")

    @property
    def display_name(self) -> str:
        return self.title or self.case_number or self.id


class Client(BaseModel):
    """A client of the practice."""

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    owner_id: Optional[str] = Field(default=None, description="Employee who owns the client relationship.")

    @property
    def display_name(self) -> str:
        return self.name or "Unknown"


class Task(BaseModel):
    """A unit of work, usually attached to a case."""

    id: str = Field(..., min_length=1)
    title: str = Field(default="")
    case_id: Optional[str] = Field(default=None)
    assigned_to_id: Optional[str] = Field(default=None, description="Employee the task is assigned to.")
    assigned_by_id: Optional[str] = Field(default=None, description="Employee who created the task.")

    @property
    def display_name(self) -> str:
        return self.title or self.id


class OrgSnapshot(BaseModel):
    """A consistent, point-in-time read of the organizational stores.

    Resolvers take a whole snapshot rather than re-reading stores part
    way through a computation.
    """

    employees: list[Employee] = Field(default_factory=list)
    cases: list[Case] = Field(default_factory=list)
    clients: list[Client] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)

    def find_employee(self, employee_id: str) -> Optional[Employee]:
        for emp in self.employees:
            if emp.id == employee_id:
                return emp
        return None


# ---------------------------------------------------------------------------
# Access-control records (owned by the engine)
# ---------------------------------------------------------------------------

class PermissionCondition(BaseModel):
    """A single condition attached to a permission.

    Conditions are stored and returned verbatim; the engine does not
    evaluate them.
    """

    field: str
    op: str
    value: Any = None
    ctx: Optional[str] = None


class Permission(BaseModel):
    """A single grant (or denial) of an action on a resource at a scope."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., min_length=1, description="Dotted name, e.g. 'cases.read.team'.")
    category: str = Field(default="", description="Catalog grouping, e.g. 'Cases'.")
    description: str = Field(default="")
    resource: Resource
    action: Action
    effect: Effect = Field(default=Effect.ALLOW)
    scope: PermissionScope = Field(default=PermissionScope.OWN)
    conditions: list[PermissionCondition] = Field(default_factory=list)
    is_system_permission: bool = Field(
        default=False,
        description="Seeded permissions are immutable in content and may only be assigned.",
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> str:
        return f"{self.resource.value}.{self.action.value}"


class Role(BaseModel):
    """A named bundle of permission references."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., min_length=1, description="Unique, case-sensitive role name.")
    description: str = Field(default="")
    permissions: list[str] = Field(
        default_factory=list,
        description="Ordered permission ids; duplicates are dropped.",
    )
    is_active: bool = Field(default=True)
    is_system_role: bool = Field(
        default=False,
        description="System roles cannot be renamed, re-permissioned or deleted.",
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    created_by: str = Field(default="system")

    @field_validator("permissions")
    @classmethod
    def dedupe_permissions(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class UserRoleAssignment(BaseModel):
    """Links a user to a role.  Revocation flips ``is_active``; rows are
    never deleted."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., min_length=1)
    role_id: str = Field(..., min_length=1)
    assigned_at: datetime = Field(default_factory=_utcnow)
    assigned_by: str = Field(default="system")
    expires_at: Optional[datetime] = Field(default=None)
    is_active: bool = Field(default=True)

    @field_validator("expires_at")
    @classmethod
    def naive_expiry_is_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_expired(self, at: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (at or _utcnow())

    def is_effective(self, at: Optional[datetime] = None) -> bool:
        """Active and not yet expired."""
        return self.is_active and not self.is_expired(at)
