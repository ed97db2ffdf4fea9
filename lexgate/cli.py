"""
Administrative command line.

Operates on an RBAC state file (YAML, see ``InMemoryRbacStore.save_yaml``)
that is loaded at start and written back after every mutating command.
Visibility and hierarchy commands read an organizational snapshot YAML
(see ``load_snapshot_from_yaml``).  Results are printed as JSON.

Usage:
    lexgate --state rbac.yaml seed
    lexgate --state rbac.yaml create-role "Senior Associate" -p <perm-id> -p <perm-id>
    lexgate --state rbac.yaml assign emp-17 <role-id> --expires 2027-01-01T00:00:00
    lexgate --state rbac.yaml permissions emp-17 --check cases.read
    lexgate --state rbac.yaml --snapshot org.yaml visibility emp-17
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel

from lexgate.audit import AuditLog
from lexgate.config import DEFAULT_SETTINGS, EngineSettings, SettingsRegistry, load_snapshot_from_yaml
from lexgate.engine import AccessControlEngine
from lexgate.log import configure_logging
from lexgate.models import OrgSnapshot
from lexgate.rbac import RbacError
from lexgate.store import InMemoryRbacStore

MUTATING_COMMANDS = frozenset({
    "seed",
    "create-role",
    "update-role",
    "delete-role",
    "create-permission",
    "assign",
    "revoke",
})


def _emit(payload: Any) -> None:
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    elif isinstance(payload, list):
        payload = [p.model_dump(mode="json") if isinstance(p, BaseModel) else p for p in payload]
    print(json.dumps(payload, indent=2, default=str))


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "1", "on"):
        return True
    if lowered in ("false", "no", "0", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lexgate",
        description="Manage roles, permissions and data visibility for a practice.",
    )
    parser.add_argument("--state", default="rbac_state.yaml", help="RBAC state YAML file")
    parser.add_argument("--snapshot", help="Organizational snapshot YAML file")
    parser.add_argument("--settings", help="Tenant settings YAML file")
    parser.add_argument("--tenant", help="Tenant id to select from --settings")
    parser.add_argument("--actor", help="Actor id recorded on audit entries")
    parser.add_argument("--audit-log", help="JSON-lines audit log file")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="Seed default permissions and system roles")
    sub.add_parser("roles", help="List roles")

    p = sub.add_parser("create-role", help="Create a custom role")
    p.add_argument("name")
    p.add_argument("--description", default="")
    p.add_argument("-p", "--permission", dest="permissions", action="append", default=[],
                   help="Permission id (repeatable)")
    p.add_argument("--inactive", action="store_true")

    p = sub.add_parser("update-role", help="Update a role")
    p.add_argument("role_id")
    p.add_argument("--name")
    p.add_argument("--description")
    p.add_argument("-p", "--permission", dest="permissions", action="append",
                   help="Replacement permission id (repeatable)")
    p.add_argument("--active", type=_parse_bool)

    p = sub.add_parser("delete-role", help="Delete a custom role")
    p.add_argument("role_id")

    p = sub.add_parser("create-permission", help="Create a custom permission")
    p.add_argument("name")
    p.add_argument("--category", required=True)
    p.add_argument("--description", default="")
    p.add_argument("--resource", required=True)
    p.add_argument("--action", required=True)
    p.add_argument("--effect", default="allow")
    p.add_argument("--scope", default="own")

    p = sub.add_parser("assign", help="Assign a role to a user")
    p.add_argument("user_id")
    p.add_argument("role_id")
    p.add_argument("--expires", type=datetime.fromisoformat, help="ISO-8601 expiry")

    p = sub.add_parser("revoke", help="Revoke a role from a user")
    p.add_argument("user_id")
    p.add_argument("role_id")

    p = sub.add_parser("permissions", help="Effective permissions of a user")
    p.add_argument("user_id")
    p.add_argument("--check", action="append", default=[],
                   help="<resource>.<action> to evaluate (repeatable)")
    p.add_argument("--category", help="List catalog permissions of a category instead")

    p = sub.add_parser("visibility", help="Access chain report for an employee")
    p.add_argument("employee_id")

    sub.add_parser("hierarchy", help="Org chart and team statistics")

    p = sub.add_parser("audit", help="Recent audit entries")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--by-actor")
    p.add_argument("--export", action="store_true", help="Compliance export bundle")
    p.add_argument("--verify", action="store_true", help="Verify the hash chain")

    sub.add_parser("analytics", help="Role usage statistics")

    return parser


def _load_settings(args: argparse.Namespace) -> EngineSettings:
    if args.settings:
        settings = SettingsRegistry.from_yaml(args.settings).select(args.tenant)
    else:
        settings = DEFAULT_SETTINGS
    # the CLI seeds only on request
    return settings.model_copy(update={"seed_on_startup": False})


def _require_snapshot(args: argparse.Namespace) -> OrgSnapshot:
    if not args.snapshot:
        raise ValueError(f"'{args.command}' needs --snapshot")
    return load_snapshot_from_yaml(args.snapshot)


def _run(engine: AccessControlEngine, args: argparse.Namespace) -> None:
    admin = engine.admin(args.actor) if args.actor else engine.rbac
    cmd = args.command

    if cmd == "seed":
        _emit(engine.seed())
    elif cmd == "roles":
        _emit(admin.list_roles())
    elif cmd == "create-role":
        _emit(admin.create_role(
            args.name, args.description, args.permissions, is_active=not args.inactive
        ))
    elif cmd == "update-role":
        _emit(admin.update_role(
            args.role_id,
            name=args.name,
            description=args.description,
            permission_ids=args.permissions,
            is_active=args.active,
        ))
    elif cmd == "delete-role":
        admin.delete_role(args.role_id)
        _emit({"deleted": args.role_id})
    elif cmd == "create-permission":
        _emit(admin.create_permission(
            args.name,
            args.category,
            args.description,
            args.resource,
            args.action,
            effect=args.effect,
            scope=args.scope,
        ))
    elif cmd == "assign":
        _emit(admin.assign_role(args.user_id, args.role_id, expires_at=args.expires))
    elif cmd == "revoke":
        _emit(admin.revoke_role(args.user_id, args.role_id))
    elif cmd == "permissions":
        if args.category:
            _emit(admin.get_permissions_by_category(args.category))
            return
        resolved = engine.resolve_permissions(args.user_id)
        payload = resolved.model_dump(mode="json")
        if args.check:
            payload["checks"] = resolved.can_multiple(
                tuple(check.split(".", 1)) for check in args.check
            )
        _emit(payload)
    elif cmd == "visibility":
        _emit(engine.access_report(args.employee_id, _require_snapshot(args)).to_dict())
    elif cmd == "hierarchy":
        snapshot = _require_snapshot(args)
        _emit({
            "hierarchy": [node.model_dump(mode="json") for node in engine.hierarchy(snapshot)],
            "statistics": engine.team_statistics(snapshot).model_dump(mode="json"),
        })
    elif cmd == "audit":
        if args.verify:
            valid, broken_at = engine.audit_log.verify_chain()
            _emit({"valid": valid, "broken_at": broken_at})
        elif args.export:
            _emit(engine.audit_log.export_for_review(engine.tenant_id))
        elif args.by_actor:
            _emit(admin.get_audit_by_actor(args.by_actor))
        else:
            _emit(admin.get_audit_log(args.limit))
    elif cmd == "analytics":
        _emit(admin.get_role_analytics())


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        configure_logging(args.log_level)
        settings = _load_settings(args)
        store = InMemoryRbacStore.load_yaml(args.state)
        audit_path = args.audit_log or settings.audit_log_path
        audit_log = AuditLog.load(audit_path) if audit_path else AuditLog()
        engine = AccessControlEngine(settings, store=store, audit_log=audit_log)

        _run(engine, args)

        if args.command in MUTATING_COMMANDS:
            store.save_yaml(Path(args.state))
            logger.debug("Wrote RBAC state to {}", args.state)
    except (RbacError, KeyError, ValueError, OSError) as exc:
        message = exc.args[0] if isinstance(exc, KeyError) and exc.args else exc
        print(f"error: {message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
