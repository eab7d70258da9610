"""
Integrity Service — Read-only verification of the audit hash chain.

Three classes of corruption are detected and itemised:

- ``hash_mismatch``  stored ``hash_chain`` differs from the recomputed digest
- ``chain_break``    ``previous_hash`` does not point at the predecessor
- ``sequence_gap``   consecutive sequence numbers differ by something other than 1

Findings are returned as data and never raised. Rows carrying the PENDING
sentinel are counted and skipped; they reset the link and sequence
expectations for the entry that follows them.

Verifying a filtered window checks the window's internal consistency only.
Continuity back to sequence 1 is what :func:`check_tenant_chain` checks.
"""
import logging
from dataclasses import dataclass, field
from itertools import groupby
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from audit_ledger.config import get_settings
from audit_ledger.models.audit import AuditLog
from audit_ledger.schemas.entry import AuditEntry
from audit_ledger.utils.hashing import PENDING_HASH, digest_entry

logger = logging.getLogger(__name__)

HASH_MISMATCH = "hash_mismatch"
CHAIN_BREAK = "chain_break"
SEQUENCE_GAP = "sequence_gap"


@dataclass(frozen=True)
class IntegrityViolation:
    type: str
    entry_id: str
    tenant_id: str
    sequence_number: Optional[int]
    expected: Optional[str] = None
    actual: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "entryId": self.entry_id,
            "tenantId": self.tenant_id,
            "sequenceNumber": self.sequence_number,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass
class IntegrityResult:
    total_checked: int = 0
    pending_count: int = 0
    violations: List[IntegrityViolation] = field(default_factory=list)

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    @property
    def valid(self) -> bool:
        return self.violation_count == 0

    def to_dict(self, violation_limit: Optional[int] = None) -> dict:
        shown = self.violations if violation_limit is None else self.violations[:violation_limit]
        return {
            "totalChecked": self.total_checked,
            "violationCount": self.violation_count,
            "valid": self.valid,
            "pendingCount": self.pending_count,
            "violations": [v.to_dict() for v in shown],
        }


class _ChainWalker:
    """Walks one tenant's entries in sequence order, accumulating findings."""

    def __init__(self, result: IntegrityResult):
        self.result = result
        self.last_sequence: Optional[int] = None
        self.last_hash: Optional[str] = None
        self.started = False

    def visit(self, entry) -> None:
        self.result.total_checked += 1

        if entry.hash_chain == PENDING_HASH:
            self.result.pending_count += 1
            self.last_sequence = entry.sequence_number
            self.last_hash = None
            self.started = True
            return

        seq = entry.sequence_number

        if seq is None:
            # A finalized row without a sequence number cannot be digested.
            expected = None if self.last_sequence is None else str(self.last_sequence + 1)
            self._flag(SEQUENCE_GAP, entry, expected, None)
            self.last_hash = entry.hash_chain
            self.started = True
            return

        if self.last_sequence is not None and seq != self.last_sequence + 1:
            self._flag(SEQUENCE_GAP, entry, str(self.last_sequence + 1), str(seq))

        if self.last_hash is not None:
            if entry.previous_hash != self.last_hash:
                self._flag(CHAIN_BREAK, entry, self.last_hash, entry.previous_hash)
        elif not self.started and seq == 1 and entry.previous_hash is not None:
            # Genesis entry must not link anywhere.
            self._flag(CHAIN_BREAK, entry, None, entry.previous_hash)

        expected = digest_entry(entry)
        if entry.hash_chain != expected:
            self._flag(HASH_MISMATCH, entry, expected, entry.hash_chain)

        self.last_sequence = seq
        self.last_hash = entry.hash_chain
        self.started = True

    def _flag(self, kind: str, entry, expected: Optional[str], actual: Optional[str]) -> None:
        self.result.violations.append(IntegrityViolation(
            type=kind,
            entry_id=str(entry.id),
            tenant_id=entry.tenant_id,
            sequence_number=entry.sequence_number,
            expected=expected,
            actual=actual,
        ))


def _chain_order(entry):
    # PENDING rows may have no sequence number yet; keep them after their
    # finalized neighbours in timestamp order.
    seq = entry.sequence_number
    return (seq is None, seq or 0, entry.timestamp, str(entry.id))


def verify_integrity(entries: Iterable) -> IntegrityResult:
    """Verify any slice of entries, grouped per tenant and walked in sequence order.

    Accepts ``AuditEntry`` records or ORM rows. Empty input is valid.
    """
    result = IntegrityResult()
    ordered = sorted(entries, key=lambda e: (e.tenant_id, _chain_order(e)))
    for _tenant, group in groupby(ordered, key=lambda e: e.tenant_id):
        walker = _ChainWalker(result)
        for entry in group:
            walker.visit(entry)

    if not result.valid:
        logger.warning(
            "Integrity check found %d violation(s) across %d entries",
            result.violation_count, result.total_checked,
        )
    return result


def check_tenant_chain(db: Session, tenant_id: str, batch_size: Optional[int] = None) -> IntegrityResult:
    """Full-ledger audit of one tenant's live chain, read in bounded batches.

    Unlike a windowed check, the first entry must be the genesis entry.
    """
    batch_size = batch_size or get_settings().INTEGRITY_BATCH_SIZE
    result = IntegrityResult()
    walker = _ChainWalker(result)

    offset = 0
    while True:
        batch = (
            db.query(AuditLog)
            .filter(AuditLog.tenant_id == tenant_id)
            .order_by(
                AuditLog.sequence_number.is_(None),
                AuditLog.sequence_number.asc(),
                AuditLog.timestamp.asc(),
                AuditLog.id.asc(),
            )
            .offset(offset)
            .limit(batch_size)
            .all()
        )
        if not batch:
            break

        for row in batch:
            entry = AuditEntry.from_row(row)
            if result.total_checked == 0 and entry.hash_chain != PENDING_HASH and entry.sequence_number != 1:
                walker.last_sequence = 0
            walker.visit(entry)

        offset += batch_size
        if len(batch) < batch_size:
            break

    logger.info(
        "Tenant %s chain check: %d checked, %d violation(s), %d pending",
        tenant_id, result.total_checked, result.violation_count, result.pending_count,
    )
    return result
