"""
Cryptographic Hashing Utilities — SHA-256 chain digests and export checksums.

Digest input format (shared by the writer, the verifier and the backfill):

    tenant_id|sequence_number|action|entity_type|entity_id|timestamp|previous_hash

- A missing ``entity_id`` is hashed as the empty string.
- A missing ``previous_hash`` (first entry of a tenant) is hashed as ``GENESIS``.
- ``timestamp`` is rendered by :func:`canonical_timestamp`.
"""
import hashlib
from datetime import datetime, timezone
from typing import Optional, Union

GENESIS_SENTINEL = "GENESIS"
PENDING_HASH = "PENDING"
FIELD_SEPARATOR = "|"


def normalize_timestamp(ts: Optional[datetime] = None) -> datetime:
    """Return ``ts`` (or now) as an aware UTC datetime truncated to milliseconds.

    Naive datetimes are taken to already be UTC, which is how SQLite hands
    them back.
    """
    if ts is None:
        ts = datetime.now(timezone.utc)
    elif ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    else:
        ts = ts.astimezone(timezone.utc)
    return ts.replace(microsecond=(ts.microsecond // 1000) * 1000)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return normalize_timestamp(datetime.fromisoformat(text))


def canonical_timestamp(ts: Union[datetime, str]) -> str:
    """Render a timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC.

    This is the only timestamp form that ever enters a digest, so a value
    read back from storage hashes byte-for-byte like the value that was
    written.
    """
    if isinstance(ts, str):
        ts = parse_timestamp(ts)
    ts = normalize_timestamp(ts)
    return ts.strftime("%Y-%m-%dT%H:%M:%S") + f".{ts.microsecond // 1000:03d}Z"


def compute_entry_hash(
    tenant_id: str,
    sequence_number: int,
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    timestamp: Union[datetime, str],
    previous_hash: Optional[str],
) -> str:
    """Compute the 64-char lowercase hex SHA-256 digest of one ledger entry."""
    payload = FIELD_SEPARATOR.join([
        str(tenant_id),
        str(int(sequence_number)),
        action,
        entity_type,
        "" if entity_id is None else str(entity_id),
        canonical_timestamp(timestamp),
        previous_hash if previous_hash is not None else GENESIS_SENTINEL,
    ])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def digest_entry(entry) -> str:
    """Digest any entry-shaped object (ORM row, ``AuditEntry``, result row)."""
    return compute_entry_hash(
        tenant_id=entry.tenant_id,
        sequence_number=entry.sequence_number,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        timestamp=entry.timestamp,
        previous_hash=entry.previous_hash,
    )


def compute_checksum(data: Union[bytes, str]) -> str:
    """SHA-256 hex digest of a rendered export body."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def tenant_lock_keys(tenant_id: str) -> tuple[int, int]:
    """Derive the two signed 32-bit keys for ``pg_advisory_xact_lock(int, int)``.

    UUID tenant ids use their first 16 hex digits; any other id is first
    passed through SHA-256 so every tenant maps to a stable key pair.
    """
    hex_id = str(tenant_id).replace("-", "").lower()
    if len(hex_id) < 16 or any(c not in "0123456789abcdef" for c in hex_id[:16]):
        hex_id = hashlib.sha256(str(tenant_id).encode("utf-8")).hexdigest()

    def _signed32(chunk: str) -> int:
        value = int(chunk, 16)
        return value - (1 << 32) if value >= (1 << 31) else value

    return _signed32(hex_id[0:8]), _signed32(hex_id[8:16])
