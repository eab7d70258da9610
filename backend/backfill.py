"""
Audit Ledger — PENDING hash backfill

Finalizes legacy audit rows that were inserted with the PENDING hash sentinel,
chaining them onto each tenant's current tip. Runs one transaction per tenant.

Usage:
    python backfill.py --tenant <tenant-id>
    python backfill.py --all
"""
import argparse
import sys

from audit_ledger.database import SessionLocal, init_db
from audit_ledger.models.audit import AuditLog
from audit_ledger.services.audit_service import AuditService
from audit_ledger.services.integrity_service import check_tenant_chain
from audit_ledger.utils.hashing import PENDING_HASH
from audit_ledger.utils.log import configure_logging


def pending_tenants(db) -> list[str]:
    rows = db.query(AuditLog.tenant_id).filter(AuditLog.hash_chain == PENDING_HASH).distinct().all()
    return sorted(r.tenant_id for r in rows)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Finalize PENDING audit ledger rows")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--tenant", help="Backfill a single tenant")
    target.add_argument("--all", action="store_true", help="Backfill every tenant with pending rows")
    parser.add_argument("--verify", action="store_true", help="Run a full chain check afterwards")
    args = parser.parse_args(argv)

    configure_logging()
    init_db()

    db = SessionLocal()
    try:
        tenants = [args.tenant] if args.tenant else pending_tenants(db)
        exit_code = 0
        for tenant_id in tenants:
            results = AuditService.backfill_pending(db, tenant_id)
            db.commit()
            print(f"  {tenant_id}: finalized {len(results)} entr{'y' if len(results) == 1 else 'ies'}")

            if args.verify:
                check = check_tenant_chain(db, tenant_id)
                status = "VALID" if check.valid else f"INVALID ({check.violation_count} violations)"
                print(f"  {tenant_id}: chain {status}")
                if not check.valid:
                    exit_code = 1
        return exit_code
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
