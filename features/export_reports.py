#CSV, Excel, PDF and JSON reports
"""
Export and Report Generation Service for the Payment Portal

This module orchestrates every export:
- Coerces API-shaped dicts into records
- Filters by period (day/week/month/year/all) or by active status
- Aggregates per status (or department, payment type)
- Renders CSV, XLSX, PDF or JSON with consistent figures
- Names the artifact <ReportName>_<period|status>.<ext>
- Delivers it to the file system (atomic write) or to memory

Exports are saved to: reports/exports/ (see config/config.ini)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple, Union, Sequence, Iterable, Mapping, Callable
import logging
import os
import re
import tempfile

from core.config import ExportConfig, load_export_config
from core.exceptions import (
    ExportError,
    ExportValidationError,
    UnsupportedFormatError,
    InvalidPeriodError,
    ExportDeliveryError,
)
from core.utils import AmountParser, DateParser
from features.aggregate import Aggregate, aggregate, by_department, CLASSIFIERS
from features.assets import LogoResolver, resolver_from_config
from features.csv_export import render_csv, render_csv_with_summary
from features.json_export import render_json
from features.pdf_export import render_document
from features.periods import (
    Period,
    resolve_period,
    filter_by_period,
    filter_by_active,
    period_label,
    period_slug,
    ACTIVE_STATES,
)
from features.spreadsheet_export import render_spreadsheet
from features.styles import StatusPalette, BrandStyle, DEFAULT_PALETTE
from models.records import (
    Record,
    RecordKind,
    ExportColumn,
    CellFormatter,
    RECORD_TYPES,
    records_from_dicts,
    default_columns,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ExportService",
    "ExportArtifact",
    "ExportMetadata",
    "FileSystemSink",
    "MemorySink",
    "ExportError",
    "ExportValidationError",
    "UnsupportedFormatError",
    "InvalidPeriodError",
    "ExportDeliveryError",
    "validate_records",
    "recommended_format",
    "estimate_file_size",
    "available_formats",
]

RecordInput = Union[Record, Mapping[str, Any]]
Clock = Callable[[], datetime]


# ================================================================
# Formats
# ================================================================

FORMATS: Dict[str, str] = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
    "json": "application/json",
}

# KB per record, used by estimate_file_size
SIZE_PER_RECORD_KB: Dict[str, float] = {
    "csv": 0.5,
    "xlsx": 1.2,
    "pdf": 2.0,
    "json": 0.8,
}

REPORT_TITLES: Dict[RecordKind, Tuple[str, str, str]] = {
    # kind: (report name, title, caption noun)
    RecordKind.PAYMENT_REQUEST: ("Solicitudes", "Reporte de Solicitudes", "Solicitudes"),
    RecordKind.RECURRING_TEMPLATE: ("Recurrentes", "Reporte de Plantillas Recurrentes", "Plantillas"),
    RecordKind.TRAVEL_EXPENSE: ("Viaticos", "Reporte de Viáticos", "Viáticos"),
    RecordKind.PROCESSED_PAYMENT: ("PagosProcesados", "Reporte de Pagos Procesados", "Pagos"),
}


def normalize_format(format: str) -> str:
    """Lower-case format key; anything outside FORMATS raises UnsupportedFormatError."""
    key = str(format or "").strip().lower().lstrip(".")
    if key not in FORMATS:
        raise UnsupportedFormatError(str(format), tuple(FORMATS))
    return key


# ================================================================
# Export Artifacts & Metadata
# ================================================================

@dataclass(frozen=True)
class ExportArtifact:
    """One finished export, ready to be delivered."""
    filename: str
    content: bytes
    mime_type: str
    format: str
    record_count: int
    period_label: str
    generated_at: datetime
    filters_applied: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass
class ExportMetadata:
    """Metadata for generated exports."""
    filename: str
    filepath: str
    format: str  # 'csv', 'xlsx', 'pdf' or 'json'
    generated_at: datetime
    record_count: int
    date_range: str
    filters_applied: Dict[str, Any]
    file_size_bytes: int


# ================================================================
# Download Sinks
# ================================================================

class FileSystemSink:
    """Writes artifacts under output_dir; a partially written file never appears."""

    def __init__(self, output_dir: str):
        self.output_dir = output_dir

    def _ensure_output_dir(self):
        """Create output directory if it doesn't exist."""
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)

    def deliver(self, artifact: ExportArtifact) -> str:
        """
        Write the artifact and return its path.

        Raises:
            ExportDeliveryError: If the directory or file cannot be written
        """
        tmp_path = None
        try:
            self._ensure_output_dir()
            filepath = os.path.join(self.output_dir, artifact.filename)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".export-", suffix=".tmp", dir=self.output_dir
            )
            with os.fdopen(fd, "wb") as handle:
                handle.write(artifact.content)
            os.replace(tmp_path, filepath)
            tmp_path = None
            return filepath
        except OSError as e:
            raise ExportDeliveryError(
                f"Could not write {artifact.filename} to {self.output_dir}: {e}"
            ) from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)


class MemorySink:
    """Keeps delivered artifacts in memory, keyed by filename."""

    def __init__(self):
        self.artifacts: Dict[str, ExportArtifact] = {}

    def deliver(self, artifact: ExportArtifact) -> str:
        self.artifacts[artifact.filename] = artifact
        return f"memory://{artifact.filename}"

    def get(self, filename: str) -> Optional[ExportArtifact]:
        return self.artifacts.get(filename)


# ================================================================
# Main Export Service
# ================================================================

class ExportService:
    """
    Centralized export and report generation service.

    Provides one pipeline (filter -> aggregate -> render -> deliver) for
    payment requests, recurring templates, travel expenses and processed
    payments in CSV, XLSX, PDF and JSON.
    """

    def __init__(
        self,
        config: Optional[ExportConfig] = None,
        clock: Clock = datetime.now,
        sink: Optional[Any] = None,
        palette: StatusPalette = DEFAULT_PALETTE,
        logo_resolver: Optional[LogoResolver] = None
    ):
        #configuration
        self.config = config or load_export_config()
        self.clock = clock
        self.sink = sink or FileSystemSink(self.config.output_dir)
        self.palette = palette
        self.brand = BrandStyle(
            name=self.config.brand_name,
            primary=self.config.brand_color,
            header_text=self.config.header_text_color,
        )
        self.logo_resolver = logo_resolver or resolver_from_config(
            self.config.logo_path, self.config.logo_url, self.config.logo_timeout
        )
        self.formatter = CellFormatter(locale=self.config.locale, currency=self.config.currency)

    # ================================================================
    # PUBLIC PIPELINE
    # ================================================================

    def build_artifact(
        self,
        records: Iterable[RecordInput],
        period: Union[Period, str] = Period.ALL,
        format: str = "xlsx",
        kind: Union[RecordKind, str] = RecordKind.PAYMENT_REQUEST,
        columns: Optional[Sequence[ExportColumn]] = None,
        title: Optional[str] = None,
        report_name: Optional[str] = None,
        status: Optional[str] = None,
        group_by: str = "status",
        include_summary: Optional[bool] = None,
        include_chart: Optional[bool] = None,
        include_stats: Optional[bool] = None
    ) -> ExportArtifact:
        """
        Run filter, aggregate and render without delivering.

        Args:
            records: Records or API dicts
            period: Period member or alias (ignored when status is given)
            format: 'csv', 'xlsx', 'pdf' or 'json' (case-insensitive)
            kind: Record variant the dicts are coerced into
            columns: Column layout (defaults to the kind's default columns)
            title: Report title (defaults per kind)
            report_name: Filename stem (defaults per kind)
            status: 'activo', 'inactivo' or 'todos' to filter recurring
                templates by their active flag instead of by period
            group_by: Summary grouping: status, department, active, payment_type
            include_summary: Override config.include_summary (XLSX and PDF)
            include_chart: Override config.include_charts (PDF only)
            include_stats: Override config.include_stats (CSV report preamble)

        Returns:
            ExportArtifact

        Raises:
            UnsupportedFormatError: Unknown format
            InvalidPeriodError: Unknown period
            ExportValidationError: Unknown kind, status or grouping
            ExportError: Any rendering failure
        """
        fmt = normalize_format(format)

        try:
            kind = RecordKind.resolve(kind)
        except ValueError as e:
            raise ExportValidationError(str(e)) from e
        classify = CLASSIFIERS.get(group_by)
        if classify is None:
            raise ExportValidationError(
                f"Unknown group_by value: '{group_by}'. Valid options: {', '.join(CLASSIFIERS)}"
            )

        default_name, default_title, noun = REPORT_TITLES[kind]
        report_name = report_name or default_name
        title = title or default_title
        columns = list(columns) if columns else default_columns(kind)
        include_summary = self.config.include_summary if include_summary is None else include_summary
        include_chart = self.config.include_charts if include_chart is None else include_chart
        include_stats = self.config.include_stats if include_stats is None else include_stats

        generated_at = self.clock()
        items = list(records)
        try:
            all_records = records_from_dicts(items, kind)
        except TypeError as e:
            raise ExportValidationError(str(e)) from e
        self._log_coercion_issues(items, kind)

        if status is not None:
            state = str(status).strip().lower()
            if state not in ACTIVE_STATES:
                raise ExportValidationError(
                    f"Invalid status '{status}'. Valid options: {', '.join(ACTIVE_STATES)}"
                )
            filtered = filter_by_active(all_records, state)
            key = state
            caption = f"{noun} ({state})" if state != "todos" else f"{noun} (todas)"
            filters = {"status": state}
        else:
            period = resolve_period(period)
            filtered = filter_by_period(all_records, period, now=generated_at)
            key = period_slug(period)
            caption = period_label(period, noun)
            filters = {"period": period.value}
        filters["group_by"] = group_by

        summary = aggregate(filtered, classify)
        group_label = {
            "status": "Estado", "department": "Departamento",
            "active": "Activo", "payment_type": "Tipo de Pago",
        }[group_by]

        try:
            content = self._render(
                fmt, filtered, summary, columns, title, caption, generated_at,
                include_summary, include_chart, include_stats, group_label
            )
        except ExportError:
            raise
        except Exception as e:
            raise ExportError(f"{fmt.upper()} export failed: {e}") from e

        artifact = ExportArtifact(
            filename=self._generate_filename(report_name, key, fmt),
            content=content,
            mime_type=FORMATS[fmt],
            format=fmt,
            record_count=len(filtered),
            period_label=caption,
            generated_at=generated_at,
            filters_applied=filters,
        )
        logger.debug(
            "Built %s (%d of %d records, %d bytes)",
            artifact.filename, artifact.record_count, len(all_records), artifact.size_bytes
        )
        return artifact

    def export_report(
        self,
        records: Iterable[RecordInput],
        period: Union[Period, str] = Period.ALL,
        format: str = "xlsx",
        columns: Optional[Sequence[ExportColumn]] = None,
        title: Optional[str] = None,
        report_name: Optional[str] = None,
        kind: Union[RecordKind, str] = RecordKind.PAYMENT_REQUEST,
        **options: Any
    ) -> ExportMetadata:
        """
        Build an artifact and hand it to the configured sink.

        Accepts the same options as build_artifact.

        Returns:
            ExportMetadata with file information
        """
        artifact = self.build_artifact(
            records, period=period, format=format, kind=kind, columns=columns,
            title=title, report_name=report_name, **options
        )
        filepath = self.sink.deliver(artifact)
        logger.info(
            "Exported %s (%s, %d records, %d bytes)",
            artifact.filename, artifact.format, artifact.record_count, artifact.size_bytes
        )
        return self._create_metadata(artifact, filepath)

    # ================================================================
    # PER-REPORT EXPORTS
    # ================================================================

    def export_payment_requests(
        self,
        records: Iterable[RecordInput],
        period: Union[Period, str] = Period.ALL,
        format: str = "xlsx",
        **options: Any
    ) -> ExportMetadata:
        """Export payment requests (solicitudes) grouped by status."""
        return self.export_report(records, period, format, kind=RecordKind.PAYMENT_REQUEST, **options)

    def export_recurring_templates(
        self,
        records: Iterable[RecordInput],
        status: str = "todos",
        format: str = "xlsx",
        **options: Any
    ) -> ExportMetadata:
        """Export recurring templates filtered by active flag; the filename carries the status."""
        return self.export_report(
            records, Period.ALL, format, kind=RecordKind.RECURRING_TEMPLATE, status=status, **options
        )

    def export_travel_expenses(
        self,
        records: Iterable[RecordInput],
        period: Union[Period, str] = Period.ALL,
        format: str = "pdf",
        **options: Any
    ) -> ExportMetadata:
        """Export travel expenses (viáticos); PDFs get the department chart page."""
        options.setdefault("include_chart", True)
        return self.export_report(records, period, format, kind=RecordKind.TRAVEL_EXPENSE, **options)

    def export_processed_payments(
        self,
        records: Iterable[RecordInput],
        period: Union[Period, str] = Period.ALL,
        format: str = "xlsx",
        **options: Any
    ) -> ExportMetadata:
        """Export processed payments, dated by payment date."""
        return self.export_report(records, period, format, kind=RecordKind.PROCESSED_PAYMENT, **options)

    # ================================================================
    # HELPER METHODS
    # ================================================================

    def _render(
        self,
        fmt: str,
        records: List[Record],
        summary: Aggregate,
        columns: List[ExportColumn],
        title: str,
        caption: str,
        generated_at: datetime,
        include_summary: bool,
        include_chart: bool,
        include_stats: bool,
        group_label: str
    ) -> bytes:
        encoding = self.config.csv_encoding

        if fmt == "csv":
            if include_stats:
                text = render_csv_with_summary(
                    records, columns, summary, title, generated_at, self.formatter
                )
            else:
                text = render_csv(records, columns, self.formatter)
            return text.encode(encoding)

        if fmt == "xlsx":
            return render_spreadsheet(
                records, summary, columns,
                title=title,
                subtitle=caption,
                generated_at=generated_at,
                palette=self.palette,
                brand=self.brand,
                formatter=self.formatter,
                include_summary=include_summary,
                group_label=group_label,
            )

        if fmt == "pdf":
            return render_document(
                records, summary, columns,
                title=title,
                subtitle=caption,
                generated_at=generated_at,
                palette=self.palette,
                brand=self.brand,
                formatter=self.formatter,
                logo=self.logo_resolver,
                notice=self.config.confidentiality_notice,
                include_summary=include_summary,
                chart=aggregate(records, by_department) if include_chart else None,
                pagesize=self.config.pdf_pagesize,
                max_rows=self.config.pdf_max_rows,
                group_label=group_label,
            )

        return render_json(
            records, summary, columns, title, generated_at,
            period=caption, formatter=self.formatter,
        ).encode("utf-8")

    def _generate_filename(self, report_name: str, key: str, extension: str) -> str:
        """Generate descriptive filename for export."""
        parts = [self.config.filename_prefix] if self.config.filename_prefix else []
        parts.append(report_name)
        parts.append(key)
        safe = [re.sub(r"[^\w\-]", "_", part) for part in parts if part]
        return "_".join(safe) + f".{extension}"

    def _create_metadata(self, artifact: ExportArtifact, filepath: str) -> ExportMetadata:
        """Create export metadata object."""
        return ExportMetadata(
            filename=artifact.filename,
            filepath=filepath,
            format=artifact.format,
            generated_at=artifact.generated_at,
            record_count=artifact.record_count,
            date_range=artifact.period_label,
            filters_applied=dict(artifact.filters_applied),
            file_size_bytes=artifact.size_bytes,
        )

    def _log_coercion_issues(self, items: List[RecordInput], kind: RecordKind):
        valid, errors = validate_records(items, kind)
        if not valid and items:
            logger.warning("Export input has coercion issues: %s", "; ".join(errors))


# ================================================================
# Supporting helpers
# ================================================================

def validate_records(
    items: Sequence[RecordInput],
    kind: Union[RecordKind, str] = RecordKind.PAYMENT_REQUEST
) -> Tuple[bool, List[str]]:
    """
    Check an export input before rendering.

    Flags an empty input, amounts that are missing, unparsable or not
    positive, and timestamps that cannot be parsed.

    Returns:
        (is_valid, errors) with errors as human-readable Spanish messages
    """
    errors: List[str] = []
    if not isinstance(items, (list, tuple)):
        return False, ["Los datos deben ser una lista"]
    if not items:
        return False, ["No hay datos para exportar"]

    record_type = RecordKind.resolve(kind)
    timestamp_field = RECORD_TYPES[record_type].TIMESTAMP_FIELD
    bad_amounts = 0
    bad_dates = 0

    for index, item in enumerate(items):
        if isinstance(item, Record):
            amount_ok = item.amount > 0
            date_ok = item.timestamp is not None
        else:
            raw_amount = item.get("monto")
            amount_ok = AmountParser.is_parsable(raw_amount) and AmountParser.coerce(raw_amount) > 0
            date_ok = DateParser.parse_timestamp(item.get(timestamp_field)) is not None
            if not amount_ok:
                logger.debug("Item %d: amount %r coerced to %s", index, raw_amount, AmountParser.coerce(raw_amount))
            if not date_ok:
                logger.debug("Item %d: unparsable %s %r", index, timestamp_field, item.get(timestamp_field))
        bad_amounts += not amount_ok
        bad_dates += not date_ok

    if bad_amounts:
        errors.append(f"{bad_amounts} registros tienen montos inválidos")
    if bad_dates:
        errors.append(f"{bad_dates} registros tienen fechas inválidas")
    return not errors, errors


def available_formats() -> List[str]:
    return list(FORMATS)


def recommended_format(record_count: int, include_stats: bool = False) -> str:
    """
    Suggest a format for the data volume.

    Examples:
        >>> recommended_format(20000)
        'csv'
        >>> recommended_format(50)
        'pdf'
    """
    if record_count > 10000:
        return "csv"
    if include_stats:
        return "xlsx"
    if record_count < 100:
        return "pdf"
    return "xlsx"


def estimate_file_size(record_count: int, format: str) -> str:
    """Rough artifact size: '~N KB' below 1 MB, '~N.N MB' above."""
    per_record = SIZE_PER_RECORD_KB.get(str(format).lower(), 1.0)
    estimated_kb = per_record * max(record_count, 0)
    if estimated_kb < 1024:
        return f"~{int(estimated_kb + 0.5)} KB"
    return f"~{estimated_kb / 1024:.1f} MB"
