from audit_ledger.services.audit_service import AuditService, AuditEntryResult
from audit_ledger.services.integrity_service import verify_integrity, check_tenant_chain, IntegrityResult
from audit_ledger.services.export_service import export_audit_entries, ExportContext, ExportFormat
from audit_ledger.services.query_service import AuditQueryService

__all__ = [
    "AuditService", "AuditEntryResult",
    "verify_integrity", "check_tenant_chain", "IntegrityResult",
    "export_audit_entries", "ExportContext", "ExportFormat",
    "AuditQueryService",
]
