from audit_ledger.routes.audit import router as audit_router

__all__ = ["audit_router"]
