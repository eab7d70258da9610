"""
Pydantic Schemas — Request & Response models for API validation.
"""
from datetime import datetime
from typing import Optional, Dict, List, Any
from pydantic import BaseModel, Field, field_validator, model_validator

from audit_ledger.utils.hashing import parse_timestamp


# ──────────────── Filters ────────────────

class AuditFilters(BaseModel):
    """Filter criteria shared by listing, export and windowed integrity checks.

    Dates stay as the caller's original strings so that exports can echo the
    criteria back verbatim; :meth:`date_range` gives the parsed UTC values.
    """
    action: Optional[str] = Field(None, max_length=100)
    entity_type: Optional[str] = Field(None, alias="entityType", max_length=100)
    entity_id: Optional[str] = Field(None, alias="entityId", max_length=100)
    user_id: Optional[str] = Field(None, alias="userId", max_length=64)
    date_from: Optional[str] = Field(None, alias="dateFrom")
    date_to: Optional[str] = Field(None, alias="dateTo")
    actor_name: Optional[str] = Field(None, alias="actorName", max_length=200)
    entity_name: Optional[str] = Field(None, alias="entityName", max_length=200)
    search: Optional[str] = Field(None, max_length=200)
    include_archived: bool = Field(False, alias="includeArchived")

    class Config:
        populate_by_name = True

    @field_validator("date_from", "date_to")
    @classmethod
    def _check_iso_datetime(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            parse_timestamp(value)
        except ValueError:
            raise ValueError(f"not an ISO-8601 datetime: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_range(self):
        start, end = self.date_range()
        if start and end and start > end:
            raise ValueError("dateFrom must not be later than dateTo")
        return self

    def date_range(self) -> tuple[Optional[datetime], Optional[datetime]]:
        start = parse_timestamp(self.date_from) if self.date_from else None
        end = parse_timestamp(self.date_to) if self.date_to else None
        return start, end

    def echo(self) -> Dict[str, Any]:
        """Criteria as supplied, camelCase, unset fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ──────────────── Audit list ────────────────

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class AuditListResponse(BaseModel):
    data: List[Dict[str, Any]]
    pagination: Pagination


class ValueListResponse(BaseModel):
    data: List[str]


# ──────────────── Integrity ────────────────

class IntegrityViolationOut(BaseModel):
    type: str
    entryId: str
    tenantId: str
    sequenceNumber: Optional[int] = None
    expected: Optional[str] = None
    actual: Optional[str] = None


class IntegrityCheckResponse(BaseModel):
    totalChecked: int
    violationCount: int
    valid: bool
    pendingCount: int = 0
    violations: List[IntegrityViolationOut] = []


# ──────────────── Generic ────────────────

class HealthResponse(BaseModel):
    status: str
    database: str
    version: str
    uptime_seconds: float


class ErrorResponse(BaseModel):
    detail: str
    error_code: Optional[str] = None
