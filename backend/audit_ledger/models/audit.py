"""
Audit Log Models — Immutable, tamper-evident audit trail.
Every row is SHA-256 chained to its predecessor within the same tenant.
Maps to the 'audit_log' and 'audit_log_archive' tables.
"""
import uuid

from sqlalchemy import Column, String, Text, BigInteger, DateTime, JSON, Index, UniqueConstraint, text

from audit_ledger.database import Base
from audit_ledger.utils.hashing import PENDING_HASH


SEQUENCE_CONSTRAINT = "audit_tenant_seq_uq"


def _new_id() -> str:
    return str(uuid.uuid4())


class _AuditColumns:
    """Column set shared by the live table and the archive."""

    tenant_id = Column(String(64), nullable=False)
    actor_id = Column(String(64))           # null for system actions

    action = Column(String(100), nullable=False)        # e.g. purchase_order.approved
    entity_type = Column(String(100), nullable=False)   # e.g. work_order
    entity_id = Column(String(100))

    previous_state = Column(JSON)   # snapshot before change
    new_state = Column(JSON)        # snapshot after change
    entry_metadata = Column("metadata", JSON, default=dict)

    ip_address = Column(String(45))
    user_agent = Column(Text)

    timestamp = Column(DateTime(timezone=True), nullable=False)

    # Hash chain
    hash_chain = Column(String(64), nullable=False, default=PENDING_HASH)
    previous_hash = Column(String(64))
    sequence_number = Column(BigInteger)   # NULL only while hash_chain is PENDING


class AuditLog(_AuditColumns, Base):
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True, default=_new_id)

    __table_args__ = (
        UniqueConstraint("tenant_id", "sequence_number", name=SEQUENCE_CONSTRAINT),
        Index("audit_tenant_time_idx", "tenant_id", "timestamp"),
        Index("audit_entity_idx", "entity_type", "entity_id"),
        Index("audit_actor_idx", "actor_id"),
        Index("audit_action_idx", "action"),
        Index(
            "audit_hash_idx", "hash_chain", unique=True,
            postgresql_where=text("hash_chain <> 'PENDING'"),
            sqlite_where=text("hash_chain <> 'PENDING'"),
        ),
    )


class AuditLogArchive(_AuditColumns, Base):
    """Rows moved out of audit_log after retention; sequence and hash preserved."""

    __tablename__ = "audit_log_archive"

    id = Column(String(36), primary_key=True)

    __table_args__ = (
        Index("archive_tenant_time_idx", "tenant_id", "timestamp"),
        Index("archive_tenant_seq_idx", "tenant_id", "sequence_number"),
    )
