"""
Audit Routes — Ledger listing, entity history, integrity checks and exports.

Authentication is handled upstream; the tenant arrives as ``tenantId`` and the
acting identity as the ``user-id`` header.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from audit_ledger.config import get_settings
from audit_ledger.database import get_db
from audit_ledger.errors import InvalidFilterError
from audit_ledger.schemas.schemas import (
    AuditFilters, AuditListResponse, IntegrityCheckResponse, ValueListResponse,
)
from audit_ledger.services.export_service import ExportContext, ExportFormat, export_audit_entries
from audit_ledger.services.integrity_service import check_tenant_chain, verify_integrity
from audit_ledger.services.query_service import AuditQueryService

router = APIRouter(prefix="/audit", tags=["Audit"])

settings = get_settings()


def audit_filters(
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    actor_name: Optional[str] = Query(None, alias="actorName"),
    entity_name: Optional[str] = Query(None, alias="entityName"),
    search: Optional[str] = Query(None),
    include_archived: bool = Query(False, alias="includeArchived"),
) -> AuditFilters:
    """Dependency: collect and validate the shared filter query params."""
    try:
        return AuditFilters(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            date_from=date_from,
            date_to=date_to,
            actor_name=actor_name,
            entity_name=entity_name,
            search=search,
            include_archived=include_archived,
        )
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'filters'}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidFilterError(f"Invalid audit filters: {problems}")


@router.get("", response_model=AuditListResponse)
def list_audit_entries(
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.AUDIT_PAGE_LIMIT_DEFAULT, ge=1, le=settings.AUDIT_PAGE_LIMIT_MAX),
    filters: AuditFilters = Depends(audit_filters),
    db: Session = Depends(get_db),
):
    """Paginated, newest-first list of audit entries for a tenant."""
    return AuditQueryService.list_entries(db, tenant_id, filters, page, limit)


@router.get("/actions", response_model=ValueListResponse)
def list_actions(
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    db: Session = Depends(get_db),
):
    """Distinct action values recorded for the tenant."""
    return {"data": AuditQueryService.distinct_actions(db, tenant_id)}


@router.get("/entity-types", response_model=ValueListResponse)
def list_entity_types(
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    db: Session = Depends(get_db),
):
    """Distinct entity types recorded for the tenant."""
    return {"data": AuditQueryService.distinct_entity_types(db, tenant_id)}


@router.get("/entity/{entity_type}/{entity_id}", response_model=AuditListResponse)
def get_entity_history(
    entity_type: str,
    entity_id: str,
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.AUDIT_PAGE_LIMIT_DEFAULT, ge=1, le=settings.AUDIT_PAGE_LIMIT_MAX),
    include_archived: bool = Query(False, alias="includeArchived"),
    db: Session = Depends(get_db),
):
    """Audit history of a single entity."""
    return AuditQueryService.entity_history(
        db, tenant_id, entity_type, entity_id, page, limit, include_archived,
    )


@router.get("/integrity-check", response_model=IntegrityCheckResponse)
def check_full_chain(
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    db: Session = Depends(get_db),
):
    """Verify the tenant's entire live chain from the genesis entry."""
    result = check_tenant_chain(db, tenant_id)
    return result.to_dict(settings.INTEGRITY_VIOLATION_LIMIT)


@router.post("/integrity-check", response_model=IntegrityCheckResponse)
def check_filtered_window(
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    filters: AuditFilters = Depends(audit_filters),
    db: Session = Depends(get_db),
):
    """Verify the relative consistency of the filtered window only."""
    entries = AuditQueryService.fetch_entries(db, tenant_id, filters)
    result = verify_integrity(entries)
    return result.to_dict(settings.INTEGRITY_VIOLATION_LIMIT)


@router.get("/export")
def export_audit_log(
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    format: str = Query("csv"),
    user_id: Optional[str] = Header(None, alias="user-id"),
    filters: AuditFilters = Depends(audit_filters),
    db: Session = Depends(get_db),
):
    """Download a checksummed CSV, JSON or PDF export of the filtered entries."""
    export_format = ExportFormat.parse(format)   # reject before querying

    entries = AuditQueryService.fetch_entries(db, tenant_id, filters)
    context = ExportContext(
        tenant_id=tenant_id,
        exported_by=user_id or "system",
        filters=filters.echo(),
        actor_names=AuditQueryService.actor_names(db, (e.actor_id for e in entries)),
    )
    result = export_audit_entries(export_format, entries, context)

    return Response(
        content=result.body,
        media_type=result.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Export-Checksum": result.checksum,
            "X-Export-Row-Count": str(result.row_count),
            "X-Hash-Chain-Valid": "true" if result.integrity.valid else "false",
        },
    )
