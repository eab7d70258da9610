from audit_ledger.models.audit import AuditLog, AuditLogArchive
from audit_ledger.models.user import User

__all__ = ["AuditLog", "AuditLogArchive", "User"]
