"""Tests for filtered reads, pagination, archive inclusion and filter validation."""
import pytest
from pydantic import ValidationError

from audit_ledger.models.audit import AuditLogArchive
from audit_ledger.schemas.schemas import AuditFilters
from audit_ledger.services.audit_service import AuditService
from audit_ledger.services.integrity_service import verify_integrity
from audit_ledger.services.query_service import AuditQueryService
from audit_ledger.utils.hashing import compute_entry_hash
from tests.factories import at


def _actions(page):
    return [e["action"] for e in page["data"]]


def _list(db, tenant_id="T1", page=1, limit=50, **filters):
    return AuditQueryService.list_entries(db, tenant_id, AuditFilters(**filters), page, limit)


class TestListEntries:

    def test_newest_first_for_tenant(self, seeded_ledger):
        page = _list(seeded_ledger)
        assert _actions(page) == ["purchase_order.approved", "order.updated", "order.created"]
        assert page["pagination"] == {"page": 1, "limit": 50, "total": 3, "pages": 1}

    def test_entries_are_camel_case(self, seeded_ledger):
        entry = _list(seeded_ledger)["data"][-1]
        assert entry["tenantId"] == "T1"
        assert entry["entityType"] == "work_order"
        assert entry["sequenceNumber"] == 1
        assert entry["timestamp"] == "2026-01-15T10:00:00.000Z"
        assert entry["metadata"]["entityName"] == "Widget run"

    def test_tenants_are_isolated(self, seeded_ledger):
        page = _list(seeded_ledger, tenant_id="T2")
        assert page["pagination"]["total"] == 1
        assert page["data"][0]["actorId"] == "user-3"

    def test_pagination(self, seeded_ledger):
        page = _list(seeded_ledger, page=2, limit=2)
        assert _actions(page) == ["order.created"]
        assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    def test_filter_by_action(self, seeded_ledger):
        assert _actions(_list(seeded_ledger, action="order.updated")) == ["order.updated"]

    def test_filter_by_entity(self, seeded_ledger):
        page = _list(seeded_ledger, entity_type="work_order", entity_id="wo-1")
        assert _actions(page) == ["order.updated", "order.created"]

    def test_filter_by_user(self, seeded_ledger):
        page = _list(seeded_ledger, user_id="user-1")
        assert _actions(page) == ["purchase_order.approved", "order.created"]

    def test_filter_by_date_range(self, seeded_ledger):
        page = _list(seeded_ledger, date_from="2026-01-15T10:00:30Z", date_to="2026-01-15T10:01:30Z")
        assert _actions(page) == ["order.updated"]

    def test_filter_by_actor_name(self, seeded_ledger):
        assert _actions(_list(seeded_ledger, actor_name="grace")) == ["order.updated"]
        assert len(_list(seeded_ledger, actor_name="Lovelace")["data"]) == 2

    def test_filter_by_entity_name(self, seeded_ledger):
        assert _actions(_list(seeded_ledger, entity_name="widget")) == ["order.created"]

    def test_search_matches_action_and_metadata(self, seeded_ledger):
        assert _actions(_list(seeded_ledger, search="purchase")) == ["purchase_order.approved"]
        assert _actions(_list(seeded_ledger, search="procurement")) == ["purchase_order.approved"]

    def test_search_wildcards_are_literal(self, seeded_ledger):
        AuditService.write_entry(
            seeded_ledger, "T1", "price.changed", "item", metadata={"note": "discount 50%"}, timestamp=at(200),
        )
        AuditService.write_entry(
            seeded_ledger, "T1", "stock.counted", "item", metadata={"note": "5000 units"}, timestamp=at(210),
        )
        seeded_ledger.commit()

        assert _actions(_list(seeded_ledger, search="50%")) == ["price.changed"]
        # "_" would otherwise match the "." in every order.* action
        assert _list(seeded_ledger, search="order_")["data"] == []

    def test_actor_name_wildcards_are_literal(self, seeded_ledger):
        assert _list(seeded_ledger, actor_name="%")["data"] == []
        assert _list(seeded_ledger, entity_name="Widget_run")["data"] == []

    def test_no_matches(self, seeded_ledger):
        page = _list(seeded_ledger, action="order.deleted")
        assert page["data"] == []
        assert page["pagination"]["total"] == 0
        assert page["pagination"]["pages"] == 0


class TestArchive:

    @pytest.fixture
    def archived(self, seeded_ledger):
        ts = at(-3600)
        seeded_ledger.add(AuditLogArchive(
            id="arch-1",
            tenant_id="T1",
            action="order.archived",
            entity_type="work_order",
            entity_id="wo-0",
            entry_metadata={},
            timestamp=ts,
            hash_chain=compute_entry_hash("T1", 1, "order.archived", "work_order", "wo-0", ts, None),
            previous_hash=None,
            sequence_number=1,
        ))
        seeded_ledger.commit()
        return seeded_ledger

    def test_archive_excluded_by_default(self, archived):
        assert "order.archived" not in _actions(_list(archived))

    def test_archive_included_on_request(self, archived):
        page = _list(archived, include_archived=True)
        assert page["pagination"]["total"] == 4
        assert _actions(page)[-1] == "order.archived"

    def test_archive_respects_filters(self, archived):
        page = _list(archived, include_archived=True, entity_id="wo-0")
        assert _actions(page) == ["order.archived"]


class TestFetchEntries:

    def test_oldest_first(self, seeded_ledger):
        entries = AuditQueryService.fetch_entries(seeded_ledger, "T1", AuditFilters())
        assert [e.sequence_number for e in entries] == [1, 2, 3]

    def test_fetched_entries_verify(self, seeded_ledger):
        entries = AuditQueryService.fetch_entries(seeded_ledger, "T1", AuditFilters())
        assert verify_integrity(entries).valid

    def test_filtered_window_verifies(self, seeded_ledger):
        entries = AuditQueryService.fetch_entries(seeded_ledger, "T1", AuditFilters(user_id="user-2"))
        assert len(entries) == 1
        assert verify_integrity(entries).valid


class TestEntityHistoryAndActors:

    def test_entity_history(self, seeded_ledger):
        page = AuditQueryService.entity_history(seeded_ledger, "T1", "work_order", "wo-1")
        assert _actions(page) == ["order.updated", "order.created"]

    def test_actor_names_from_directory(self, seeded_ledger):
        names = AuditQueryService.actor_names(seeded_ledger, ["user-1", "user-2", "user-404", None])
        assert names == {"user-1": "Ada Lovelace", "user-2": "Grace Hopper"}

    def test_actor_names_without_ids(self, seeded_ledger):
        assert AuditQueryService.actor_names(seeded_ledger, [None]) == {}


class TestFilterOptions:

    def test_distinct_actions_are_sorted_and_tenant_scoped(self, seeded_ledger):
        assert AuditQueryService.distinct_actions(seeded_ledger, "T1") == [
            "order.created", "order.updated", "purchase_order.approved",
        ]
        assert AuditQueryService.distinct_actions(seeded_ledger, "T2") == ["order.created"]

    def test_distinct_entity_types(self, seeded_ledger):
        assert AuditQueryService.distinct_entity_types(seeded_ledger, "T1") == ["purchase_order", "work_order"]

    def test_unknown_tenant_has_no_options(self, seeded_ledger):
        assert AuditQueryService.distinct_actions(seeded_ledger, "nobody") == []
        assert AuditQueryService.distinct_entity_types(seeded_ledger, "nobody") == []


class TestAuditFilters:

    def test_accepts_camel_case_aliases(self):
        filters = AuditFilters(entityType="work_order", dateFrom="2026-01-15T10:00:00Z", includeArchived=True)
        assert filters.entity_type == "work_order"
        assert filters.include_archived is True

    def test_rejects_malformed_date(self):
        with pytest.raises(ValidationError):
            AuditFilters(date_from="yesterday")

    def test_rejects_inverted_range(self):
        with pytest.raises(ValidationError):
            AuditFilters(date_from="2026-02-01T00:00:00Z", date_to="2026-01-01T00:00:00Z")

    def test_echo_keeps_caller_values(self):
        filters = AuditFilters(action="order.created", date_from="2026-01-15T10:00:00Z")
        assert filters.echo() == {
            "action": "order.created",
            "dateFrom": "2026-01-15T10:00:00Z",
            "includeArchived": False,
        }
