"""
Styled single-sheet workbook rendering (openpyxl).

Sheet layout, top to bottom:
- title band merged across the table width, subtitle with the period
- "Resumen" block: one row per group, bold Total row with a double bottom border
- "Indicadores" block: record count, total, average, max/min, departments, records per day
- two blank rows
- detail header (brand fill, white bold text), frozen
- detail rows: alternating shading, numeric currency cells, status fills
- footer row with the export timestamp, right-aligned
"""

from __future__ import annotations
from datetime import datetime, timezone
from io import BytesIO
from typing import Optional, Dict, Sequence, Tuple, Any
import re
import zipfile

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.xml.constants import ARC_CORE
from openpyxl.xml.functions import tostring

from core.utils import AmountParser, FormatHelper, CURRENCY_SYMBOLS
from features.aggregate import Aggregate, STATISTIC_ROWS, summary_statistics
from features.styles import (
    StatusPalette,
    BrandStyle,
    DEFAULT_PALETTE,
    ROW_ALT,
    ROW_NORMAL,
    GRID,
    MUTED_TEXT,
)
from models.records import Record, ExportColumn, CellFormatter

ID_COLUMN_WIDTH = 10
MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 60
SUMMARY_WIDTH = 3
NO_DATA_TEXT = "Sin datos para el período seleccionado"
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")


def currency_number_format(currency: str = "MXN") -> str:
    """Cell number format for amounts ('"$"#,##0.00;[Red]-"$"#,##0.00')."""
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), currency.upper() + " ")
    return f'"{symbol}"#,##0.00;[Red]-"{symbol}"#,##0.00'


def sheet_title(name: str) -> str:
    """Excel sheet names: no []:*?/\\ and at most 31 characters."""
    cleaned = _INVALID_SHEET_CHARS.sub(" ", name).strip() or "Reporte"
    return cleaned[:31]


def _fill(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


def _naive(moment: datetime) -> datetime:
    """openpyxl cannot store tz-aware datetimes."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _zip_stamp(moment: datetime) -> Tuple[int, int, int, int, int, int]:
    """Archive member timestamp; zip cannot store dates before 1980."""
    if moment.year < 1980:
        return ZIP_EPOCH
    return (moment.year, moment.month, moment.day, moment.hour, moment.minute, moment.second)


class SpreadsheetWriter:
    """Writes one report sheet; tracks the widest text per column while writing."""

    def __init__(
        self,
        columns: Sequence[ExportColumn],
        palette: StatusPalette,
        brand: BrandStyle,
        formatter: CellFormatter
    ):
        self.columns = list(columns)
        self.palette = palette
        self.brand = brand
        self.formatter = formatter
        self.width = max(len(self.columns), SUMMARY_WIDTH)
        self.last_letter = get_column_letter(self.width)
        self.number_format = currency_number_format(formatter.currency)

        thin = Side(style="thin", color=GRID)
        self.border = Border(left=thin, right=thin, top=thin, bottom=thin)
        self.total_border = Border(
            left=thin, right=thin, top=Side(style="thin", color=GRID),
            bottom=Side(style="double", color="000000")
        )
        self.header_font = Font(bold=True, color=brand.header_text, size=11)
        self.header_fill = _fill(brand.primary)

        self.wb = Workbook()
        self.ws = self.wb.active
        self.row = 1
        self._lengths: Dict[int, int] = {}
        self._summary_lengths: Dict[int, int] = {}

    # ------------
    # Internal Helpers
    # ------------

    def _track(self, col_idx: int, text: Any):
        if text is None:
            return
        length = max((len(line) for line in str(text).splitlines()), default=0)
        self._lengths[col_idx] = max(self._lengths.get(col_idx, 0), length)

    def _track_summary(self, col_idx: int, text: Any):
        length = len(str(text))
        self._summary_lengths[col_idx] = max(self._summary_lengths.get(col_idx, 0), length)

    def _merged(self, text: str, font: Font, alignment: Alignment, fill: Optional[PatternFill] = None,
                last_column: Optional[int] = None, height: Optional[float] = None):
        last = get_column_letter(last_column) if last_column else self.last_letter
        cell = self.ws.cell(row=self.row, column=1, value=text)
        cell.font = font
        cell.alignment = alignment
        if fill is not None:
            for col_idx in range(1, (last_column or self.width) + 1):
                self.ws.cell(row=self.row, column=col_idx).fill = fill
        self.ws.merge_cells(f"A{self.row}:{last}{self.row}")
        if height:
            self.ws.row_dimensions[self.row].height = height
        self.row += 1

    def _header_row(self, labels: Sequence[str]):
        for c_idx, label in enumerate(labels, 1):
            cell = self.ws.cell(row=self.row, column=c_idx, value=label)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.border = self.border
            cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
            self._track(c_idx, label)
        self.ws.row_dimensions[self.row].height = 22
        self.row += 1

    # ------------
    # Sections
    # ------------

    def write_title(self, title: str, subtitle: Optional[str]):
        self._merged(
            title,
            Font(size=16, bold=True, color=self.brand.header_text),
            Alignment(horizontal="center", vertical="center"),
            fill=self.header_fill,
            height=32,
        )
        if subtitle:
            self._merged(
                subtitle,
                Font(size=11, italic=True, color=MUTED_TEXT),
                Alignment(horizontal="center", vertical="center"),
            )
        self.row += 1

    def write_summary(self, summary: Aggregate, heading: str, group_label: str,
                      stats: Optional[Dict[str, Any]] = None):
        self._merged(
            heading,
            Font(size=13, bold=True, color=self.brand.primary),
            Alignment(horizontal="left", vertical="center"),
            last_column=SUMMARY_WIDTH,
            height=24,
        )
        header = [group_label, "Cantidad", "Total"]
        for c_idx, text in enumerate(header, 1):
            self._track_summary(c_idx, text)
        self._header_row(header)

        rows = summary.labeled_rows(include_total=True)
        for index, (label, count, total) in enumerate(rows):
            is_total = index == len(rows) - 1
            values = [label, count, float(total)]
            for c_idx, value in enumerate(values, 1):
                cell = self.ws.cell(row=self.row, column=c_idx, value=value)
                cell.border = self.total_border if is_total else self.border
                cell.font = Font(bold=is_total)
                if c_idx == 1:
                    cell.alignment = Alignment(horizontal="left", vertical="center")
                    if not is_total:
                        cell.fill = _fill(self.palette.fill_for(label))
                elif c_idx == 2:
                    cell.alignment = Alignment(horizontal="center", vertical="center")
                else:
                    cell.number_format = self.number_format
                    cell.alignment = Alignment(horizontal="right", vertical="center")
            money = FormatHelper.format_currency(total, self.formatter.locale, self.formatter.currency)
            for c_idx, text in enumerate((label, count, money), 1):
                self._track(c_idx, text)
                self._track_summary(c_idx, text)
            self.row += 1

        if stats is not None:
            self.row += 1
            self.write_indicators(stats)
        self.row += 2

    def write_indicators(self, stats: Dict[str, Any]):
        """Executive summary figures, one label/value row each, under the group table."""
        self._merged(
            "Indicadores",
            Font(size=12, bold=True, color=self.brand.primary),
            Alignment(horizontal="left", vertical="center"),
            last_column=SUMMARY_WIDTH,
            height=20,
        )
        for label, key, kind in STATISTIC_ROWS:
            value = stats[key]
            label_cell = self.ws.cell(row=self.row, column=1, value=label)
            label_cell.font = Font(bold=True)
            label_cell.border = self.border

            if kind == "currency":
                text = FormatHelper.format_currency(value, self.formatter.locale, self.formatter.currency)
                value_cell = self.ws.cell(row=self.row, column=2, value=float(value))
                value_cell.number_format = self.number_format
            elif kind == "rate":
                text = f"{value:.2f}"
                value_cell = self.ws.cell(row=self.row, column=2, value=float(value))
                value_cell.number_format = "0.00"
            else:
                text = str(value)
                value_cell = self.ws.cell(row=self.row, column=2, value=value)
            value_cell.border = self.border
            value_cell.alignment = Alignment(horizontal="right", vertical="center")

            for c_idx, tracked in ((1, label), (2, text)):
                self._track(c_idx, tracked)
                self._track_summary(c_idx, tracked)
            self.row += 1

    def _cell_value(self, column: ExportColumn, record: Record) -> Any:
        if column.kind == "currency":
            return float(AmountParser.coerce(column.value(record)))
        if column.kind == "id":
            value = column.value(record)
            return value if isinstance(value, int) and not isinstance(value, bool) else self.formatter(column, record)
        return self.formatter(column, record)

    def write_details(self, records: Sequence[Record]):
        self._header_row([column.label for column in self.columns])
        self.ws.freeze_panes = f"A{self.row}"

        if not records:
            self._merged(
                NO_DATA_TEXT,
                Font(italic=True, color=MUTED_TEXT),
                Alignment(horizontal="center", vertical="center"),
            )
            return

        for i, record in enumerate(records):
            bg = _fill(ROW_ALT if i % 2 == 1 else ROW_NORMAL)
            for c_idx, column in enumerate(self.columns, 1):
                value = self._cell_value(column, record)
                cell = self.ws.cell(row=self.row, column=c_idx, value=value)
                cell.border = self.border
                cell.fill = bg
                cell.alignment = Alignment(horizontal=column.align, vertical="center")

                if column.kind == "currency":
                    cell.number_format = self.number_format
                    self._track(c_idx, self.formatter(column, record))
                else:
                    self._track(c_idx, value)

                if column.kind == "status":
                    cell.fill = _fill(self.palette.fill_for(record.get(column.key)))
                    cell.font = Font(bold=True)
            self.row += 1

    def write_footer(self, generated_at: datetime):
        self.row += 1
        self._merged(
            f"Exportado el {FormatHelper.format_date_long(generated_at)}",
            Font(size=9, italic=True, color=MUTED_TEXT),
            Alignment(horizontal="right", vertical="center"),
        )

    def apply_widths(self):
        for c_idx in range(1, self.width + 1):
            letter = get_column_letter(c_idx)
            column = self.columns[c_idx - 1] if c_idx <= len(self.columns) else None
            if column is not None and column.kind == "id":
                # summary labels share the first column with the ids
                width = max(ID_COLUMN_WIDTH, min(self._summary_lengths.get(c_idx, 0) + 4, MAX_COLUMN_WIDTH))
            else:
                width = min(max(self._lengths.get(c_idx, 0) + 4, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)
            self.ws.column_dimensions[letter].width = width

    def to_bytes(self, generated_at: datetime) -> bytes:
        """
        Workbook bytes that depend only on the content and generated_at.

        openpyxl stamps the archive members and the core properties'
        modified date with the wall clock, so both are rewritten here.
        """
        moment = _naive(generated_at)
        buffer = BytesIO()
        self.wb.save(buffer)

        props = self.wb.properties
        props.created = moment
        props.modified = moment
        stamp = _zip_stamp(moment)

        output = BytesIO()
        with zipfile.ZipFile(BytesIO(buffer.getvalue())) as source, \
                zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as target:
            for info in source.infolist():
                data = source.read(info.filename)
                if info.filename == ARC_CORE:
                    data = tostring(props.to_tree())
                member = zipfile.ZipInfo(info.filename, date_time=stamp)
                member.compress_type = zipfile.ZIP_DEFLATED
                member.external_attr = info.external_attr
                target.writestr(member, data)
        return output.getvalue()


def render_spreadsheet(
    records: Sequence[Record],
    summary: Aggregate,
    columns: Sequence[ExportColumn],
    title: str = "Reporte",
    subtitle: Optional[str] = None,
    generated_at: Optional[datetime] = None,
    palette: StatusPalette = DEFAULT_PALETTE,
    brand: Optional[BrandStyle] = None,
    formatter: Optional[CellFormatter] = None,
    include_summary: bool = True,
    summary_heading: str = "Resumen",
    group_label: str = "Estado",
    sheet_name: Optional[str] = None
) -> bytes:
    """
    Render records and their aggregate as an .xlsx workbook.

    Args:
        records: Filtered records, in output order
        summary: Aggregate of the same records
        columns: Detail table layout
        title: Title band text
        subtitle: Period caption under the title
        generated_at: Export instant (footer and workbook properties)
        palette: Status fills for status cells and summary labels
        brand: Header colors
        formatter: Cell text formatter (locale, currency)
        include_summary: Write the "Resumen" block and its "Indicadores" figures
        summary_heading: Heading of the summary block
        group_label: Header of the summary key column
        sheet_name: Worksheet name (defaults to the title)

    Returns:
        Workbook bytes
    """
    generated_at = generated_at or datetime.now()
    brand = brand or BrandStyle()
    formatter = formatter or CellFormatter()

    writer = SpreadsheetWriter(columns, palette, brand, formatter)
    writer.ws.title = sheet_title(sheet_name or title)

    props = writer.wb.properties
    props.title = title
    props.creator = brand.name

    writer.write_title(title, subtitle)
    if include_summary:
        writer.write_summary(summary, summary_heading, group_label, summary_statistics(records))
    writer.write_details(records)
    writer.write_footer(generated_at)
    writer.apply_widths()

    return writer.to_bytes(generated_at)
