"""
Audit Query Service — Filtered, paginated reads over the live ledger and,
on request, the archive table.
"""
import math
from typing import Dict, Iterable, List, Optional

from sqlalchemy import String, and_, cast, func, or_, select, union_all
from sqlalchemy.orm import Session

from audit_ledger.models.audit import AuditLog, AuditLogArchive
from audit_ledger.models.user import User
from audit_ledger.schemas.entry import AuditEntry
from audit_ledger.schemas.schemas import AuditFilters

LIKE_ESCAPE = "\\"


def _contains(term: str) -> str:
    """Substring LIKE pattern with the caller's wildcards taken literally."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def _entry_columns(model):
    return [
        model.id.label("id"),
        model.tenant_id.label("tenant_id"),
        model.actor_id.label("actor_id"),
        model.action.label("action"),
        model.entity_type.label("entity_type"),
        model.entity_id.label("entity_id"),
        model.previous_state.label("previous_state"),
        model.new_state.label("new_state"),
        model.entry_metadata.label("entry_metadata"),
        model.ip_address.label("ip_address"),
        model.user_agent.label("user_agent"),
        model.timestamp.label("timestamp"),
        model.hash_chain.label("hash_chain"),
        model.previous_hash.label("previous_hash"),
        model.sequence_number.label("sequence_number"),
    ]


class AuditQueryService:
    """Read side of the ledger. Places no locks."""

    @staticmethod
    def build_conditions(model, tenant_id: str, filters: AuditFilters) -> list:
        conditions = [model.tenant_id == tenant_id]

        if filters.action:
            conditions.append(model.action == filters.action)
        if filters.entity_type:
            conditions.append(model.entity_type == filters.entity_type)
        if filters.entity_id:
            conditions.append(model.entity_id == filters.entity_id)
        if filters.user_id:
            conditions.append(model.actor_id == filters.user_id)

        date_from, date_to = filters.date_range()
        if date_from:
            conditions.append(model.timestamp >= date_from)
        if date_to:
            conditions.append(model.timestamp <= date_to)

        if filters.actor_name:
            full_name = User.first_name + " " + User.last_name
            matching_actors = select(User.id).where(
                User.tenant_id == tenant_id,
                full_name.ilike(_contains(filters.actor_name), escape=LIKE_ESCAPE),
            )
            conditions.append(model.actor_id.in_(matching_actors))

        metadata_text = cast(model.entry_metadata, String)
        if filters.entity_name:
            conditions.append(metadata_text.ilike(_contains(filters.entity_name), escape=LIKE_ESCAPE))
        if filters.search:
            term = _contains(filters.search)
            conditions.append(or_(
                model.action.ilike(term, escape=LIKE_ESCAPE),
                model.entity_type.ilike(term, escape=LIKE_ESCAPE),
                metadata_text.ilike(term, escape=LIKE_ESCAPE),
            ))

        return conditions

    @staticmethod
    def _source(tenant_id: str, filters: AuditFilters):
        """Selectable of matching rows; UNION ALL with the archive when asked."""
        live = select(*_entry_columns(AuditLog)).where(
            and_(*AuditQueryService.build_conditions(AuditLog, tenant_id, filters))
        )
        if not filters.include_archived:
            return live.subquery("entries")
        archived = select(*_entry_columns(AuditLogArchive)).where(
            and_(*AuditQueryService.build_conditions(AuditLogArchive, tenant_id, filters))
        )
        return union_all(live, archived).subquery("entries")

    @staticmethod
    def list_entries(db: Session, tenant_id: str, filters: AuditFilters, page: int = 1, limit: int = 50) -> dict:
        """Newest-first page of entries plus pagination info."""
        source = AuditQueryService._source(tenant_id, filters)
        total = db.execute(select(func.count()).select_from(source)).scalar() or 0

        rows = db.execute(
            select(source)
            .order_by(source.c.timestamp.desc(), source.c.sequence_number.desc(), source.c.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).all()

        return {
            "data": [AuditEntry.from_row(r).to_dict() for r in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0,
            },
        }

    @staticmethod
    def fetch_entries(db: Session, tenant_id: str, filters: AuditFilters) -> List[AuditEntry]:
        """Every matching entry, oldest first (timestamp, then sequence, then id)."""
        source = AuditQueryService._source(tenant_id, filters)
        rows = db.execute(
            select(source).order_by(
                source.c.timestamp.asc(), source.c.sequence_number.asc(), source.c.id.asc(),
            )
        ).all()
        return [AuditEntry.from_row(r) for r in rows]

    @staticmethod
    def entity_history(
        db: Session,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        page: int = 1,
        limit: int = 50,
        include_archived: bool = False,
    ) -> dict:
        filters = AuditFilters(
            entity_type=entity_type, entity_id=entity_id, include_archived=include_archived,
        )
        return AuditQueryService.list_entries(db, tenant_id, filters, page, limit)

    @staticmethod
    def distinct_actions(db: Session, tenant_id: str) -> List[str]:
        """Sorted action values recorded for the tenant (filter bar options)."""
        rows = db.execute(
            select(AuditLog.action).where(AuditLog.tenant_id == tenant_id).distinct().order_by(AuditLog.action.asc())
        ).scalars().all()
        return list(rows)

    @staticmethod
    def distinct_entity_types(db: Session, tenant_id: str) -> List[str]:
        rows = db.execute(
            select(AuditLog.entity_type)
            .where(AuditLog.tenant_id == tenant_id)
            .distinct()
            .order_by(AuditLog.entity_type.asc())
        ).scalars().all()
        return list(rows)

    @staticmethod
    def actor_names(db: Session, actor_ids: Iterable[Optional[str]]) -> Dict[str, str]:
        """Map actor id → display name for ids present in the user directory."""
        ids = {a for a in actor_ids if a}
        if not ids:
            return {}
        users = db.query(User).filter(User.id.in_(ids)).all()
        return {u.id: u.full_name for u in users if u.full_name}
