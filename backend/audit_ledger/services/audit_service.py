"""
Audit Service — Writes the immutable, hash-chained audit trail.

Every write runs inside the caller's transaction (the SQLAlchemy ``Session``
passed in). The service flushes but never commits, and never retries: if the
enclosing transaction aborts, no entry exists.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit_ledger.errors import AuditValidationError, ChainConflictError
from audit_ledger.models.audit import SEQUENCE_CONSTRAINT, AuditLog
from audit_ledger.utils.hashing import (
    PENDING_HASH, compute_entry_hash, normalize_timestamp, tenant_lock_keys,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntryResult:
    id: str
    hash_chain: str
    sequence_number: int


@dataclass(frozen=True)
class ChainTip:
    sequence_number: int
    hash_chain: str


class AuditService:
    """Sole owner of sequence assignment and ledger inserts."""

    @staticmethod
    def write_entry(
        db: Session,
        tenant_id: str,
        action: str,
        entity_type: str,
        *,
        actor_id: Optional[str] = None,
        entity_id: Optional[str] = None,
        previous_state: Any = None,
        new_state: Any = None,
        metadata: Optional[Dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditEntryResult:
        """Append one entry to the tenant's chain.

        Args:
            db: The caller's session; its transaction is the unit of work.
            tenant_id: Owning tenant; scopes the chain.
            action: Dotted verb, e.g. ``purchase_order.approved``.
            entity_type: Subject type, e.g. ``work_order``.
            actor_id: Acting identity, ``None`` for system actors.
            entity_id: Subject id, ``None`` for tenant-wide actions.
            previous_state: Snapshot before the change.
            new_state: Snapshot after the change.
            metadata: Free-form context (source, correlation ids, ...).
            ip_address: Request IP.
            user_agent: Request user agent.
            timestamp: Entry time; defaults to now (UTC, millisecond precision).

        Returns:
            AuditEntryResult with the row id, digest and sequence number.

        Raises:
            AuditValidationError: a required field is blank; nothing is written.
            ChainConflictError: another transaction took the same sequence slot.
            sqlalchemy.exc.IntegrityError: any other constraint failure, unchanged.
        """
        _require(tenant_id, "tenant_id")
        _require(action, "action")
        _require(entity_type, "entity_type")

        AuditService._lock_tenant(db, tenant_id)
        tip = AuditService.latest_tip(db, tenant_id, for_update=True)

        return AuditService._insert_next(
            db, tenant_id, tip,
            action=action,
            entity_type=entity_type,
            actor_id=actor_id,
            entity_id=entity_id,
            previous_state=previous_state,
            new_state=new_state,
            metadata=metadata,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=timestamp,
        )

    @staticmethod
    def write_entries(db: Session, tenant_id: str, entries: List[Dict[str, Any]]) -> List[AuditEntryResult]:
        """Append several entries for one tenant under a single lock.

        Each item takes the keyword arguments of :meth:`write_entry` (minus
        ``tenant_id``); entries are chained in input order.
        """
        if not entries:
            return []
        _require(tenant_id, "tenant_id")
        batch = []
        for item in entries:
            fields = dict(item)
            fields.pop("tenant_id", None)
            _require(fields.get("action"), "action")
            _require(fields.get("entity_type"), "entity_type")
            batch.append(fields)

        AuditService._lock_tenant(db, tenant_id)
        tip = AuditService.latest_tip(db, tenant_id, for_update=True)

        results = []
        for fields in batch:
            result = AuditService._insert_next(db, tenant_id, tip, **fields)
            tip = ChainTip(result.sequence_number, result.hash_chain)
            results.append(result)
        return results

    @staticmethod
    def latest_tip(db: Session, tenant_id: str, for_update: bool = False) -> Optional[ChainTip]:
        """Highest finalized entry for the tenant, derived from storage."""
        stmt = (
            select(AuditLog.sequence_number, AuditLog.hash_chain)
            .where(
                AuditLog.tenant_id == tenant_id,
                AuditLog.hash_chain != PENDING_HASH,
                AuditLog.sequence_number.isnot(None),
            )
            .order_by(AuditLog.sequence_number.desc())
            .limit(1)
        )
        if for_update:
            # SQLite has no row locks; its compiler drops the clause.
            stmt = stmt.with_for_update()
        row = db.execute(stmt).first()
        if row is None:
            return None
        return ChainTip(sequence_number=row.sequence_number, hash_chain=row.hash_chain)

    @staticmethod
    def backfill_pending(db: Session, tenant_id: str) -> List[AuditEntryResult]:
        """Finalize legacy rows still carrying the PENDING hash sentinel.

        Pending rows are appended to the current chain tip in
        (timestamp, id) order. Finalized rows are never touched.
        """
        AuditService._lock_tenant(db, tenant_id)
        tip = AuditService.latest_tip(db, tenant_id, for_update=True)

        pending = (
            db.query(AuditLog)
            .filter(AuditLog.tenant_id == tenant_id, AuditLog.hash_chain == PENDING_HASH)
            .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
            .all()
        )

        results = []
        for row in pending:
            ts = normalize_timestamp(row.timestamp)
            previous_hash = tip.hash_chain if tip else None
            next_sequence = tip.sequence_number + 1 if tip else 1

            row.timestamp = ts
            row.previous_hash = previous_hash
            row.sequence_number = next_sequence
            row.hash_chain = compute_entry_hash(
                tenant_id, next_sequence, row.action, row.entity_type,
                row.entity_id, ts, previous_hash,
            )
            tip = ChainTip(next_sequence, row.hash_chain)
            results.append(AuditEntryResult(row.id, row.hash_chain, next_sequence))

        if results:
            _flush(db, tenant_id, results[0].sequence_number)
            logger.info("Backfilled %d pending entries for tenant %s", len(results), tenant_id)
        return results

    # ─── Internals ───────────────────────────────────────────────────

    @staticmethod
    def _lock_tenant(db: Session, tenant_id: str) -> None:
        """Serialize chain writers for one tenant until the transaction ends.

        PostgreSQL gets a transaction-scoped advisory lock. Other backends
        rely on the (tenant_id, sequence_number) unique constraint, which turns
        a lost race into a ChainConflictError.

        The caller's pending work is flushed first, so its own constraint
        failures surface unchanged instead of as sequence conflicts.
        """
        db.flush()
        if _dialect(db) == "postgresql":
            hi, lo = tenant_lock_keys(tenant_id)
            db.execute(text("SELECT pg_advisory_xact_lock(:hi, :lo)"), {"hi": hi, "lo": lo})

    @staticmethod
    def _insert_next(
        db: Session,
        tenant_id: str,
        tip: Optional[ChainTip],
        *,
        action: str,
        entity_type: str,
        actor_id: Optional[str] = None,
        entity_id: Optional[str] = None,
        previous_state: Any = None,
        new_state: Any = None,
        metadata: Optional[Dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditEntryResult:
        ts = normalize_timestamp(timestamp)
        previous_hash = tip.hash_chain if tip else None
        next_sequence = tip.sequence_number + 1 if tip else 1

        hash_chain = compute_entry_hash(
            tenant_id, next_sequence, action, entity_type, entity_id, ts, previous_hash,
        )

        entry = AuditLog(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            previous_state=previous_state,
            new_state=new_state,
            entry_metadata=metadata or {},
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=ts,
            hash_chain=hash_chain,
            previous_hash=previous_hash,
            sequence_number=next_sequence,
        )
        db.add(entry)
        _flush(db, tenant_id, next_sequence)

        logger.debug("audit: tenant=%s seq=%d action=%s hash=%s", tenant_id, next_sequence, action, hash_chain[:12])
        return AuditEntryResult(id=entry.id, hash_chain=hash_chain, sequence_number=next_sequence)


def _flush(db: Session, tenant_id: str, sequence_number: int) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        if not _is_sequence_conflict(exc):
            raise
        logger.warning("audit: sequence conflict tenant=%s seq=%d", tenant_id, sequence_number)
        raise ChainConflictError(tenant_id, sequence_number, cause=exc) from exc


def _is_sequence_conflict(exc: IntegrityError) -> bool:
    """True when the violated constraint is UNIQUE(tenant_id, sequence_number)."""
    diag = getattr(exc.orig, "diag", None)
    if getattr(diag, "constraint_name", None) == SEQUENCE_CONSTRAINT:
        return True
    # SQLite names the columns rather than the constraint.
    message = str(exc.orig)
    return SEQUENCE_CONSTRAINT in message or "audit_log.tenant_id, audit_log.sequence_number" in message


def _dialect(db: Session) -> str:
    return db.get_bind().dialect.name


def _require(value: Optional[str], name: str) -> None:
    if not value or not str(value).strip():
        raise AuditValidationError(f"AuditService: {name} must be a non-empty string")
