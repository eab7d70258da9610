from audit_ledger.schemas.entry import AuditEntry
from audit_ledger.schemas.schemas import AuditFilters

__all__ = ["AuditEntry", "AuditFilters"]
