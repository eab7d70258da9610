"""Tests for the PENDING backfill command."""
import pytest

import backfill
from audit_ledger.models.audit import AuditLog
from audit_ledger.services.audit_service import AuditService
from audit_ledger.utils.hashing import PENDING_HASH
from tests.factories import at, pending_row


@pytest.fixture
def cli_db(session_factory, monkeypatch):
    """Point the command at the test database."""
    monkeypatch.setattr(backfill, "SessionLocal", session_factory)
    monkeypatch.setattr(backfill, "init_db", lambda: None)
    monkeypatch.setattr(backfill, "configure_logging", lambda: None)
    return session_factory


@pytest.fixture
def legacy_rows(db_session):
    AuditService.write_entry(db_session, "T1", "order.created", "work_order", timestamp=at(0))
    db_session.add_all([
        pending_row("T1", "legacy-1", 10),
        pending_row("T2", "legacy-2", 20),
    ])
    db_session.commit()
    return db_session


def test_backfills_single_tenant(cli_db, legacy_rows, capsys):
    assert backfill.main(["--tenant", "T1"]) == 0

    assert "T1: finalized 1 entry" in capsys.readouterr().out
    legacy_rows.expire_all()
    assert legacy_rows.get(AuditLog, "legacy-1").sequence_number == 2
    assert legacy_rows.get(AuditLog, "legacy-2").hash_chain == PENDING_HASH


def test_backfills_all_tenants_and_verifies(cli_db, legacy_rows, capsys):
    assert backfill.main(["--all", "--verify"]) == 0

    out = capsys.readouterr().out
    assert "T1: chain VALID" in out
    assert "T2: chain VALID" in out
    legacy_rows.expire_all()
    assert legacy_rows.query(AuditLog).filter(AuditLog.hash_chain == PENDING_HASH).count() == 0


def test_verify_failure_sets_exit_code(cli_db, legacy_rows):
    row = legacy_rows.query(AuditLog).filter_by(tenant_id="T1", sequence_number=1).one()
    row.action = "order.deleted"
    legacy_rows.commit()

    assert backfill.main(["--tenant", "T1", "--verify"]) == 1


def test_requires_a_target():
    with pytest.raises(SystemExit):
        backfill.main([])
