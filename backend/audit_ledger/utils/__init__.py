from audit_ledger.utils.hashing import (
    GENESIS_SENTINEL, PENDING_HASH,
    canonical_timestamp, compute_checksum, compute_entry_hash, digest_entry,
)

__all__ = [
    "GENESIS_SENTINEL", "PENDING_HASH",
    "canonical_timestamp", "compute_checksum", "compute_entry_hash", "digest_entry",
]
