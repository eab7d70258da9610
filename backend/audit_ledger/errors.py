"""
Ledger Errors — Typed exception hierarchy for the audit ledger.

Validation failures are raised before any query or rendering work starts.
Integrity findings are never raised; they are returned as data by the
integrity service. Storage failures (``sqlalchemy.exc.SQLAlchemyError``) are
not wrapped and propagate to the caller unchanged.
"""
from typing import Optional


class AuditLedgerError(Exception):
    """Base exception for audit ledger failures."""


class AuditValidationError(AuditLedgerError, ValueError):
    """Caller input was rejected before any work was performed."""


class UnsupportedExportFormatError(AuditValidationError):
    """Export format identifier is not one of the supported renderers."""

    def __init__(self, fmt: str, supported: tuple[str, ...]):
        super().__init__(
            f"Unsupported export format: {fmt!r}. Supported formats: {', '.join(supported)}"
        )
        self.format = fmt
        self.supported = supported


class InvalidFilterError(AuditValidationError):
    """A query filter is malformed (bad date, inverted range, ...)."""


class ChainConflictError(AuditLedgerError):
    """Another writer claimed the same sequence slot for this tenant.

    The enclosing transaction must be rolled back. Retrying is the caller's
    decision and must happen above the chain-assignment boundary.
    """

    def __init__(self, tenant_id: str, sequence_number: int, cause: Optional[Exception] = None):
        super().__init__(
            f"Sequence conflict for tenant {tenant_id!r} at sequence {sequence_number}"
        )
        self.tenant_id = tenant_id
        self.sequence_number = sequence_number
        self.cause = cause


class ExportRenderError(AuditLedgerError):
    """A renderer failed to produce an export artifact."""

    def __init__(self, fmt: str, cause: Exception):
        super().__init__(f"Export failed while rendering {fmt}: {cause}")
        self.format = fmt
        self.cause = cause
