"""
Append-Only Policy Audit Log (Hash-Chained).

Every mutation of the access-control model -- role creation, update and
deletion, permission creation, role assignment and revocation -- is
recorded as a ``PolicyAuditEntry`` holding the actor, the affected entity
and before/after snapshots.

Entries are linked by a SHA-256 hash chain: each entry stores the hash of
its predecessor, so editing any entry after the fact is detected by
``verify_chain()``.  The log exposes no update or delete operation.

An ``AuditLog`` can optionally mirror each entry to a JSON-lines file.
When the mirror cannot be written, ``append`` raises ``AuditWriteError``
and the entry is not added in memory either.  Callers in ``lexgate.rbac``
treat audit writes as best-effort: the failure is logged, the primary
mutation stands.
"""

from __future__ import annotations

import enum
import hashlib
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Audit vocabulary
# ---------------------------------------------------------------------------

class AuditAction(str, enum.Enum):
    """Administrative mutations that are always audited."""

    CREATE_ROLE = "create_role"
    UPDATE_ROLE = "update_role"
    DELETE_ROLE = "delete_role"
    CREATE_PERMISSION = "create_permission"
    ASSIGN_ROLE = "assign_role"
    REVOKE_ROLE = "revoke_role"


class AuditEntityType(str, enum.Enum):
    ROLE = "role"
    PERMISSION = "permission"
    USER_ROLE = "user_role"


class AuditWriteError(Exception):
    """Raised when an audit entry cannot be persisted."""
    pass


# ---------------------------------------------------------------------------
# Audit entry model
# ---------------------------------------------------------------------------

class PolicyAuditEntry(BaseModel):
    """A single, immutable record of one administrative mutation."""

    entry_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for this audit entry (UUID).",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp of the mutation.",
    )
    tenant_id: str = Field(
        ...,
        description="Practice the mutation belongs to.",
    )
    actor_id: str = Field(
        ...,
        description="Who performed the mutation.",
    )
    action: AuditAction
    entity_type: AuditEntityType
    entity_id: str = Field(
        ...,
        description="Identifier of the role, permission or assignment affected.",
    )
    before: Optional[dict[str, Any]] = Field(
        default=None,
        description="Snapshot of the entity before the mutation (None on create).",
    )
    after: Optional[dict[str, Any]] = Field(
        default=None,
        description="Snapshot of the entity after the mutation (None on delete).",
    )
    previous_hash: str = Field(
        default="",
        description=(
            "SHA-256 hash of the previous entry's canonical representation. "
            "Empty string for the first entry in the chain."
        ),
    )

    def canonical_bytes(self) -> bytes:
        """Deterministic byte representation used for hashing."""
        data = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "tenant_id": self.tenant_id,
            "actor_id": self.actor_id,
            "action": self.action.value,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "before": self.before,
            "after": self.after,
            "previous_hash": self.previous_hash,
        }
        return json.dumps(data, sort_keys=True, default=str).encode("utf-8")

    def compute_hash(self) -> str:
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class AuditLog:
    """Append-only, hash-chained policy audit log.

    * **Append-only writes** -- there are no ``update()`` or ``delete()``
      methods.
    * **Hash chain verification** -- ``verify_chain()`` walks the log and
      reports the first broken link.
    * **Tenant-scoped queries** -- ``query()`` and ``export_for_review()``
      only return entries of the requested tenant.
    * **Optional JSON-lines mirror** -- when ``path`` is given, each entry
      is written to the file before it is accepted.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._entries: list[PolicyAuditEntry] = []
        self._hashes: list[str] = []
        self._path = Path(path) if path is not None else None

    def append(self, entry: PolicyAuditEntry) -> PolicyAuditEntry:
        """Link ``entry`` into the chain and store it.

        Raises:
            AuditWriteError: If the JSON-lines mirror cannot be written.
        """
        entry.previous_hash = self._hashes[-1] if self._hashes else ""

        if self._path is not None:
            try:
                with open(self._path, "a", encoding="utf-8") as f:
                    f.write(entry.model_dump_json() + "\n")
            except OSError as exc:
                raise AuditWriteError(
                    f"Could not write audit entry {entry.entry_id} to {self._path}: {exc}"
                ) from exc

        self._entries.append(entry)
        self._hashes.append(entry.compute_hash())
        return entry

    def verify_chain(self) -> tuple[bool, Optional[int]]:
        """Walk the log and validate every hash link.

        Returns:
            ``(valid, broken_at)``; ``broken_at`` is the index of the first
            broken link, or None when the chain is intact.
        """
        for i, entry in enumerate(self._entries):
            if i == 0:
                if entry.previous_hash != "":
                    return (False, 0)
            else:
                if entry.previous_hash != self._entries[i - 1].compute_hash():
                    return (False, i)

            if self._hashes[i] != entry.compute_hash():
                return (False, i)

        return (True, None)

    def recent(self, limit: int = 100) -> list[PolicyAuditEntry]:
        """The ``limit`` most recent entries, newest first."""
        ordered = sorted(
            enumerate(self._entries),
            key=lambda pair: (pair[1].timestamp, pair[0]),
            reverse=True,
        )
        return [entry.model_copy(deep=True) for _, entry in ordered[:max(limit, 0)]]

    def by_actor(self, actor_id: str) -> list[PolicyAuditEntry]:
        """All entries written by ``actor_id``, oldest first."""
        return [e.model_copy(deep=True) for e in self._entries if e.actor_id == actor_id]

    def query(
        self,
        tenant_id: str,
        action: Optional[AuditAction] = None,
        entity_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> list[PolicyAuditEntry]:
        """Filter entries of one tenant.  All bounds are inclusive.

        Returns:
            Copies of the matching entries, oldest first.
        """
        results = []
        for entry in self._entries:
            if entry.tenant_id != tenant_id:
                continue
            if action is not None and entry.action != action:
                continue
            if entity_id is not None and entry.entity_id != entity_id:
                continue
            if actor_id is not None and entry.actor_id != actor_id:
                continue
            if time_start is not None and entry.timestamp < time_start:
                continue
            if time_end is not None and entry.timestamp > time_end:
                continue
            results.append(entry.model_copy(deep=True))
        return results

    def export_for_review(
        self,
        tenant_id: str,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """JSON-serializable bundle of a tenant's entries for compliance review.

        The bundle states that the trail is best-effort: entries whose
        write failed are missing rather than marked.
        """
        entries = self.query(tenant_id, time_start=time_start, time_end=time_end)
        chain_valid, broken_at = self.verify_chain()

        return {
            "export_metadata": {
                "tenant_id": tenant_id,
                "exported_at": datetime.now(timezone.utc).isoformat(),
                "entry_count": len(entries),
                "chain_integrity": "VALID" if chain_valid else f"BROKEN_AT_INDEX_{broken_at}",
                "completeness_note": (
                    "Audit writes are best-effort and never block the audited "
                    "mutation; treat this trail as eventually complete."
                ),
            },
            "entries": [entry.model_dump(mode="json") for entry in entries],
        }

    @classmethod
    def load(cls, path: str | Path) -> AuditLog:
        """Rebuild a log from its JSON-lines mirror and keep mirroring to it.

        Stored ``previous_hash`` values are kept as written, so tampering
        with the file shows up in ``verify_chain()``.
        """
        log = cls()
        path = Path(path)
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    entry = PolicyAuditEntry.model_validate_json(line)
                    log._entries.append(entry)
                    log._hashes.append(entry.compute_hash())
        log._path = path
        return log

    def __len__(self) -> int:
        return len(self._entries)
