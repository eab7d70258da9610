"""
Export Service — Renders a ledger slice as CSV, JSON or PDF with a checksum.

Every renderer follows one contract, ``render(entries, context) ->
RenderedExport``. :func:`export_audit_entries` validates the format, stamps
the context with a verifier run over exactly the exported entries, renders,
and then checksums the rendered bytes with the same SHA-256 used for the
chain so a recipient can check the artifact independently.
"""
import csv
import io
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from audit_ledger.errors import ExportRenderError, UnsupportedExportFormatError
from audit_ledger.schemas.entry import AuditEntry
from audit_ledger.services.integrity_service import IntegrityResult, verify_integrity
from audit_ledger.utils.hashing import canonical_timestamp, compute_checksum

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"
    PDF = "pdf"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ExportFormat":
        """Resolve a format identifier or raise before any work starts."""
        supported = tuple(f.value for f in cls)
        normalized = (value or "").strip().lower()
        if normalized not in supported:
            raise UnsupportedExportFormatError(str(value), supported)
        return cls(normalized)


CONTENT_TYPES = {
    ExportFormat.CSV: "text/csv; charset=utf-8",
    ExportFormat.JSON: "application/json; charset=utf-8",
    ExportFormat.PDF: "application/pdf",
}

CSV_COLUMNS = (
    "timestamp",
    "action",
    "entityType",
    "entityId",
    "actorId",
    "actorName",
    "previousState",
    "newState",
    "metadata",
    "hashChain",
    "previousHash",
    "sequenceNumber",
)


@dataclass(frozen=True)
class ExportContext:
    tenant_id: str
    exported_by: str
    filters: Dict[str, Any] = field(default_factory=dict)
    actor_names: Dict[str, str] = field(default_factory=dict)
    exported_at: Optional[datetime] = None
    integrity: Optional[IntegrityResult] = None


@dataclass(frozen=True)
class RenderedExport:
    body: bytes
    content_type: str
    filename: str


@dataclass(frozen=True)
class ExportResult:
    body: bytes
    content_type: str
    filename: str
    checksum: str
    row_count: int
    integrity: IntegrityResult


# ─── Shared helpers ─────────────────────────────────────────────────

def _exported_at(context: ExportContext) -> datetime:
    return context.exported_at or datetime.now(timezone.utc)


def export_filename(fmt: ExportFormat, exported_at: datetime) -> str:
    stamp = canonical_timestamp(exported_at).replace(":", "-").replace(".", "-")
    return f"audit-export-{stamp}.{fmt.value}"


def _json_text(value: Any) -> str:
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def resolve_actor_name(entry: AuditEntry, actor_names: Optional[Dict[str, str]] = None) -> str:
    """Actor display name: metadata hint, then directory name, then actor id."""
    meta = entry.metadata if isinstance(entry.metadata, dict) else {}
    for key in ("actorName", "userName", "actor_name"):
        if isinstance(meta.get(key), str):
            return meta[key]
    if entry.actor_id and actor_names and entry.actor_id in actor_names:
        return actor_names[entry.actor_id]
    return entry.actor_id or ""


def _integrity(context: ExportContext, entries: List[AuditEntry]) -> IntegrityResult:
    return context.integrity if context.integrity is not None else verify_integrity(entries)


# ─── CSV ────────────────────────────────────────────────────────────

def render_csv(entries: List[AuditEntry], context: ExportContext) -> RenderedExport:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for entry in entries:
        writer.writerow([
            canonical_timestamp(entry.timestamp),
            entry.action,
            entry.entity_type,
            entry.entity_id or "",
            entry.actor_id or "",
            resolve_actor_name(entry, context.actor_names),
            _json_text(entry.previous_state),
            _json_text(entry.new_state),
            _json_text(entry.metadata),
            entry.hash_chain,
            entry.previous_hash or "",
            "" if entry.sequence_number is None else entry.sequence_number,
        ])

    return RenderedExport(
        body=buffer.getvalue().encode("utf-8"),
        content_type=CONTENT_TYPES[ExportFormat.CSV],
        filename=export_filename(ExportFormat.CSV, _exported_at(context)),
    )


# ─── JSON ───────────────────────────────────────────────────────────

def render_json(entries: List[AuditEntry], context: ExportContext) -> RenderedExport:
    exported_at = _exported_at(context)
    envelope = {
        "exportedAt": canonical_timestamp(exported_at),
        "exportedBy": context.exported_by,
        "tenantId": context.tenant_id,
        "filters": context.filters,
        "hashChainValid": _integrity(context, entries).valid,
        "entryCount": len(entries),
        "entries": [e.to_dict() for e in entries],
    }
    body = json.dumps(envelope, indent=2, ensure_ascii=False, default=str)

    return RenderedExport(
        body=body.encode("utf-8"),
        content_type=CONTENT_TYPES[ExportFormat.JSON],
        filename=export_filename(ExportFormat.JSON, exported_at),
    )


# ─── PDF ────────────────────────────────────────────────────────────

_PDF_MARGIN = 40
_PDF_ROW_HEIGHT = 11
_PDF_COL_GAP = 5
_PDF_COLUMNS = (
    ("Timestamp", 130),
    ("Action", 110),
    ("Entity Type", 85),
    ("Entity ID", 110),
    ("Actor", 100),
    ("Hash Chain", 200),
)


def _fit(text: str, font: str, size: float, width: float) -> str:
    """Clip ``text`` with an ellipsis so it fits ``width`` points."""
    if stringWidth(text, font, size) <= width:
        return text
    while text and stringWidth(text + "...", font, size) > width:
        text = text[:-1]
    return text + "..."


def _pdf_table_header(pdf: canvas.Canvas, y: float, table_width: float) -> float:
    pdf.setFont("Helvetica-Bold", 8)
    x = _PDF_MARGIN
    for title, width in _PDF_COLUMNS:
        pdf.drawString(x, y, title)
        x += width + _PDF_COL_GAP
    y -= 4
    pdf.line(_PDF_MARGIN, y, _PDF_MARGIN + table_width, y)
    return y - _PDF_ROW_HEIGHT


def render_pdf(entries: List[AuditEntry], context: ExportContext) -> RenderedExport:
    exported_at = _exported_at(context)
    integrity = _integrity(context, entries)
    page_width, page_height = landscape(A4)
    table_width = sum(w for _, w in _PDF_COLUMNS) + _PDF_COL_GAP * (len(_PDF_COLUMNS) - 1)

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(page_width, page_height))
    pdf.setTitle("Audit Trail Export")
    pdf.setAuthor(context.exported_by)

    # ── Header ──
    y = page_height - _PDF_MARGIN - 10
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawCentredString(page_width / 2, y, "Audit Trail Export")
    y -= 26

    pdf.setFont("Helvetica", 10)
    header_lines = [
        f"Tenant: {context.tenant_id}",
        f"Exported: {canonical_timestamp(exported_at)} by {context.exported_by}",
    ]
    active_filters = ", ".join(
        f"{k}: {v}" for k, v in context.filters.items() if v is not None and v is not False
    )
    if active_filters:
        header_lines.append(f"Filters: {active_filters}")
    header_lines.append(f"Total entries: {len(entries)}")
    header_lines.append(f"Hash chain: {'VALID' if integrity.valid else 'INVALID'}")
    for line in header_lines:
        pdf.drawString(_PDF_MARGIN, y, _fit(line, "Helvetica", 10, page_width - 2 * _PDF_MARGIN))
        y -= 14
    y -= 8

    # ── Table ──
    y = _pdf_table_header(pdf, y, table_width)
    for entry in entries:
        if y < _PDF_MARGIN:
            pdf.showPage()
            y = _pdf_table_header(pdf, page_height - _PDF_MARGIN, table_width)

        pdf.setFont("Helvetica", 7)
        values = (
            canonical_timestamp(entry.timestamp),
            entry.action,
            entry.entity_type,
            entry.entity_id or "",
            resolve_actor_name(entry, context.actor_names),
            entry.hash_chain,
        )
        x = _PDF_MARGIN
        for value, (_, width) in zip(values, _PDF_COLUMNS):
            pdf.drawString(x, y, _fit(str(value), "Helvetica", 7, width))
            x += width + _PDF_COL_GAP
        y -= _PDF_ROW_HEIGHT

    # ── Final page: verification summary ──
    pdf.showPage()
    y = page_height - _PDF_MARGIN - 10
    pdf.setFont("Helvetica-Bold", 14)
    pdf.drawCentredString(page_width / 2, y, "Hash-Chain Verification Summary")
    y -= 30

    pdf.setFont("Helvetica", 11)
    pdf.drawString(_PDF_MARGIN, y, f"Total entries checked: {integrity.total_checked}")
    y -= 16
    pdf.drawString(_PDF_MARGIN, y, f"Violations found: {integrity.violation_count}")
    y -= 16
    if integrity.pending_count:
        pdf.drawString(_PDF_MARGIN, y, f"Pending (unfinalized) entries: {integrity.pending_count}")
        y -= 16
    y -= 14

    pdf.setFont("Helvetica-Bold", 14)
    if integrity.valid:
        pdf.setFillColor(colors.green)
        pdf.drawCentredString(page_width / 2, y, "HASH CHAIN VALID")
    else:
        pdf.setFillColor(colors.red)
        pdf.drawCentredString(page_width / 2, y, "HASH CHAIN INVALID")
        pdf.setFont("Helvetica", 10)
        pdf.drawCentredString(
            page_width / 2, y - 18,
            f"{integrity.violation_count} violation(s) detected. Run the integrity check for details.",
        )
    pdf.setFillColor(colors.black)
    pdf.showPage()
    pdf.save()

    return RenderedExport(
        body=buffer.getvalue(),
        content_type=CONTENT_TYPES[ExportFormat.PDF],
        filename=export_filename(ExportFormat.PDF, exported_at),
    )


RENDERERS: Dict[ExportFormat, Callable[[List[AuditEntry], ExportContext], RenderedExport]] = {
    ExportFormat.CSV: render_csv,
    ExportFormat.JSON: render_json,
    ExportFormat.PDF: render_pdf,
}


# ─── Main export function ───────────────────────────────────────────

def export_audit_entries(fmt, entries: List[AuditEntry], context: ExportContext) -> ExportResult:
    """Verify, render and checksum an export.

    Raises:
        UnsupportedExportFormatError: ``fmt`` is not csv, json or pdf.
        ExportRenderError: the renderer failed; no artifact is produced.
    """
    export_format = fmt if isinstance(fmt, ExportFormat) else ExportFormat.parse(fmt)
    entries = list(entries)

    integrity = verify_integrity(entries)
    context = replace(
        context,
        integrity=integrity,
        exported_at=context.exported_at or datetime.now(timezone.utc),
    )
    logger.info(
        "Generating %s audit export: tenant=%s entries=%d chain_valid=%s",
        export_format.value, context.tenant_id, len(entries), integrity.valid,
    )

    try:
        rendered = RENDERERS[export_format](entries, context)
    except Exception as exc:
        logger.error("Audit export failed: format=%s tenant=%s", export_format.value, context.tenant_id, exc_info=True)
        raise ExportRenderError(export_format.value, exc) from exc

    return ExportResult(
        body=rendered.body,
        content_type=rendered.content_type,
        filename=rendered.filename,
        checksum=compute_checksum(rendered.body),
        row_count=len(entries),
        integrity=integrity,
    )
