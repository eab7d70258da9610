"""
Ledger Entry Record — the immutable, storage-independent view of one entry.

Rows read from ``audit_log``, ``audit_log_archive`` or a UNION of both are
converted to :class:`AuditEntry` before they reach the verifier or the
export renderers.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from audit_ledger.utils.hashing import canonical_timestamp, normalize_timestamp


@dataclass(frozen=True)
class AuditEntry:
    id: str
    tenant_id: str
    action: str
    entity_type: str
    timestamp: datetime
    hash_chain: str
    sequence_number: Optional[int]
    previous_hash: Optional[str] = None
    entity_id: Optional[str] = None
    actor_id: Optional[str] = None
    previous_state: Any = None
    new_state: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "AuditEntry":
        """Build from an ORM instance or a labelled result row."""
        if hasattr(row, "_mapping"):
            data = dict(row._mapping)
            metadata = data.get("entry_metadata")
        else:
            data = {name: getattr(row, name, None) for name in _ROW_FIELDS}
            metadata = getattr(row, "entry_metadata", None)
        return cls(
            id=str(data["id"]),
            tenant_id=data["tenant_id"],
            action=data["action"],
            entity_type=data["entity_type"],
            timestamp=normalize_timestamp(data["timestamp"]),
            hash_chain=data["hash_chain"],
            sequence_number=data["sequence_number"],
            previous_hash=data.get("previous_hash"),
            entity_id=data.get("entity_id"),
            actor_id=data.get("actor_id"),
            previous_state=data.get("previous_state"),
            new_state=data.get("new_state"),
            metadata=metadata or {},
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """camelCase field shape used by the JSON export and the list API."""
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "actorId": self.actor_id,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "previousState": self.previous_state,
            "newState": self.new_state,
            "metadata": self.metadata,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "timestamp": canonical_timestamp(self.timestamp),
            "hashChain": self.hash_chain,
            "previousHash": self.previous_hash,
            "sequenceNumber": self.sequence_number,
        }


_ROW_FIELDS = (
    "id", "tenant_id", "actor_id", "action", "entity_type", "entity_id",
    "previous_state", "new_state", "ip_address", "user_agent", "timestamp",
    "hash_chain", "previous_hash", "sequence_number",
)
