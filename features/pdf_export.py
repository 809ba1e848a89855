"""
Paginated PDF rendering (reportlab platypus).

Document layout:
- header band: logo (or text brand mark), title, period caption
- confidentiality notice
- metric cards: record count, total, average, departments
- summary table (same rows as the spreadsheet "Resumen" block)
- detail table: widths scaled to the printable width, header repeated on
  every page, status fills, closing TOTAL GENERAL row
- optional bar chart page (amount per category)
- footer on every page: generation timestamp and "Página X de Y"

Output is built with invariant=True, so identical inputs and clock give
identical bytes.
"""

from __future__ import annotations
from datetime import datetime
from io import BytesIO
from typing import Optional, Dict, List, Sequence, Tuple, Any
from xml.sax.saxutils import escape
import logging

from reportlab.graphics.shapes import Drawing, Rect, String, Line
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT, TA_LEFT
from reportlab.lib.pagesizes import letter, A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, PageBreak, Flowable, KeepTogether
)

from core.utils import FormatHelper
from features.aggregate import Aggregate, STATISTIC_ROWS, summary_statistics
from features.assets import LogoResolver, no_logo
from features.styles import (
    StatusPalette,
    BrandStyle,
    DEFAULT_PALETTE,
    CHART_PALETTE,
    ROW_ALT,
    GRID,
    NOTICE_BG,
    NOTICE_BORDER,
    MUTED_TEXT,
)
from models.records import Record, ExportColumn, CellFormatter

logger = logging.getLogger(__name__)

PAGE_SIZES = {"letter": letter, "a4": A4}
MARGIN = 0.5 * inch
FOOTER_Y = 0.35 * inch
DEFAULT_COLUMN_BUDGET = 20
# detail table width as a share of the frame
TABLE_WIDTH_SHARE = 0.99
CARD_KEYS = ("record_count", "total_amount", "average_amount", "departments")
NO_DATA_TEXT = "No hay registros para el período seleccionado."
TOTAL_ROW_LABEL = "TOTAL GENERAL"


def _hex(color: str) -> colors.Color:
    return colors.HexColor(f"#{color.lstrip('#')}")


# ================================================================
# Page furniture
# ================================================================

def numbered_canvas(footer_text: str, line_color: str) -> type:
    """
    Canvas class that defers footers until every page is laid out, so each
    page can print 'Página X de Y'.
    """
    class NumberedCanvas(canvas.Canvas):
        def __init__(self, *args, **kwargs):
            canvas.Canvas.__init__(self, *args, **kwargs)
            self._saved_page_states = []

        def showPage(self):
            self._saved_page_states.append(dict(self.__dict__))
            self._startPage()

        def save(self):
            page_count = len(self._saved_page_states)
            for state in self._saved_page_states:
                self.__dict__.update(state)
                self.draw_footer(page_count)
                canvas.Canvas.showPage(self)
            canvas.Canvas.save(self)

        def draw_footer(self, page_count: int):
            width, _ = self._pagesize
            self.saveState()
            self.setStrokeColor(_hex(line_color))
            self.setLineWidth(0.6)
            self.line(MARGIN, FOOTER_Y + 12, width - MARGIN, FOOTER_Y + 12)
            self.setFont("Helvetica", 8)
            self.setFillColor(_hex(MUTED_TEXT))
            self.drawString(MARGIN, FOOTER_Y, footer_text)
            self.drawRightString(width - MARGIN, FOOTER_Y, f"Página {self._pageNumber} de {page_count}")
            self.restoreState()

    return NumberedCanvas


def load_logo(resolver: LogoResolver) -> Optional[ImageReader]:
    """Resolve and decode the logo; any failure means the text mark is used."""
    try:
        data = resolver()
    except Exception as e:
        logger.warning("Logo resolver failed, using text mark: %s", e)
        return None
    if not data:
        return None
    try:
        reader = ImageReader(BytesIO(data))
        reader.getSize()
        return reader
    except Exception as e:
        logger.warning("Logo could not be decoded, using text mark: %s", e)
        return None


class HeaderBand(Flowable):
    """Full-width brand band with the logo box on the left and the title on the right."""

    def __init__(self, title: str, subtitle: Optional[str], brand: BrandStyle,
                 logo: Optional[ImageReader] = None, height: float = 0.95 * inch):
        Flowable.__init__(self)
        self.title = title
        self.subtitle = subtitle
        self.brand = brand
        self.logo = logo
        self.height = height
        self.width = 0

    def wrap(self, availWidth, availHeight):
        self.width = availWidth
        return self.width, self.height

    def _draw_text_mark(self, x: float, y: float, size: float):
        c = self.canv
        c.setFillColor(colors.white)
        c.roundRect(x, y, size, size, 6, stroke=0, fill=1)
        font_size = 10
        while font_size > 5 and stringWidth(self.brand.name, "Helvetica-Bold", font_size) > size - 6:
            font_size -= 0.5
        c.setFillColor(_hex(self.brand.primary))
        c.setFont("Helvetica-Bold", font_size)
        c.drawCentredString(x + size / 2, y + size / 2 - font_size / 3, self.brand.name)

    def draw(self):
        c = self.canv
        c.saveState()
        c.setFillColor(_hex(self.brand.primary))
        c.roundRect(0, 0, self.width, self.height, 8, stroke=0, fill=1)

        box = self.height - 16
        if self.logo is not None:
            try:
                c.setFillColor(colors.white)
                c.roundRect(8, 8, box, box, 6, stroke=0, fill=1)
                c.drawImage(self.logo, 10, 10, width=box - 4, height=box - 4,
                            preserveAspectRatio=True, anchor="c", mask="auto")
            except Exception as e:
                logger.warning("Logo could not be drawn, using text mark: %s", e)
                self._draw_text_mark(8, 8, box)
        else:
            self._draw_text_mark(8, 8, box)

        text_x = box + 24
        c.setFillColor(_hex(self.brand.header_text))
        c.setFont("Helvetica-Bold", 16)
        c.drawString(text_x, self.height - 32, self.title)
        if self.subtitle:
            c.setFont("Helvetica", 10)
            c.drawString(text_x, self.height - 50, self.subtitle)
        c.restoreState()


# ================================================================
# Document Renderer
# ================================================================

class DocumentBuilder:
    """Assembles the platypus story for one report."""

    def __init__(
        self,
        columns: Sequence[ExportColumn],
        palette: StatusPalette,
        brand: BrandStyle,
        formatter: CellFormatter,
        available_width: float
    ):
        self.columns = list(columns)
        self.palette = palette
        self.brand = brand
        self.formatter = formatter
        self.available_width = available_width

        styles = getSampleStyleSheet()
        self.heading_style = ParagraphStyle(
            "SectionHeading", parent=styles["Heading2"],
            textColor=_hex(brand.primary), fontSize=13, spaceBefore=10, spaceAfter=6
        )
        self.notice_style = ParagraphStyle(
            "Notice", parent=styles["Normal"], fontSize=8, leading=10,
            textColor=colors.HexColor("#7A5A12")
        )
        self.note_style = ParagraphStyle(
            "Note", parent=styles["Normal"], fontSize=8, textColor=_hex(MUTED_TEXT)
        )
        self.empty_style = ParagraphStyle(
            "Empty", parent=styles["Normal"], fontSize=11, alignment=TA_CENTER,
            textColor=_hex(MUTED_TEXT), spaceBefore=24
        )
        self.card_label_style = ParagraphStyle(
            "CardLabel", parent=styles["Normal"], fontSize=8, leading=10, textColor=_hex(MUTED_TEXT)
        )
        self.card_value_style = ParagraphStyle(
            "CardValue", parent=styles["Normal"], fontName="Helvetica-Bold", fontSize=14,
            leading=17, textColor=_hex(brand.primary)
        )
        self.header_cell_style = ParagraphStyle(
            "HeaderCell", parent=styles["Normal"], fontName="Helvetica-Bold",
            fontSize=8, leading=10, textColor=_hex(brand.header_text), alignment=TA_CENTER
        )
        alignments = {"left": TA_LEFT, "center": TA_CENTER, "right": TA_RIGHT}
        self.cell_styles = {
            align: ParagraphStyle(
                f"Cell-{align}", parent=styles["Normal"], fontSize=7.5, leading=9,
                alignment=value
            )
            for align, value in alignments.items()
        }

    def money(self, amount: Any, compact: bool = False) -> str:
        return FormatHelper.format_currency(
            amount, self.formatter.locale, self.formatter.currency, compact
        )

    # ------------
    # Sections
    # ------------

    def notice(self, text: str) -> Table:
        box = Table([[Paragraph(escape(text), self.notice_style)]], colWidths=[self.available_width])
        box.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), _hex(NOTICE_BG)),
            ("BOX", (0, 0), (-1, -1), 0.8, _hex(NOTICE_BORDER)),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ("LEFTPADDING", (0, 0), (-1, -1), 8),
        ]))
        return box

    def metric_cards(self, stats: Dict[str, Any]) -> Table:
        """Headline figures as a row of cards: muted label over a large value."""
        kinds = {key: (label, kind) for label, key, kind in STATISTIC_ROWS}
        cards = []
        for key in CARD_KEYS:
            label, kind = kinds[key]
            value = stats[key]
            text = self.money(value) if kind == "currency" else str(value)
            cards.append([
                Paragraph(escape(label), self.card_label_style),
                Paragraph(escape(text), self.card_value_style),
            ])

        commands = [
            ("BACKGROUND", (0, 0), (-1, -1), _hex(ROW_ALT)),
            ("LINEAFTER", (0, 0), (-2, -1), 6, colors.white),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ("LEFTPADDING", (0, 0), (-1, -1), 10),
        ]
        for i in range(len(cards)):
            commands.append(("LINEBEFORE", (i, 0), (i, 0), 3, _hex(self.brand.primary)))

        width = self.available_width * TABLE_WIDTH_SHARE / len(cards)
        table = Table([cards], colWidths=[width] * len(cards))
        table.setStyle(TableStyle(commands))
        return table

    def summary_table(self, summary: Aggregate, group_label: str) -> Table:
        data: List[List[Any]] = [[group_label, "Cantidad", "Total"]]
        commands = [
            ("BACKGROUND", (0, 0), (-1, 0), _hex(self.brand.primary)),
            ("TEXTCOLOR", (0, 0), (-1, 0), _hex(self.brand.header_text)),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("ALIGN", (1, 0), (1, -1), "CENTER"),
            ("ALIGN", (2, 0), (2, -1), "RIGHT"),
            ("GRID", (0, 0), (-1, -1), 0.4, _hex(GRID)),
            ("TOPPADDING", (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ]

        rows = summary.labeled_rows(include_total=True)
        for row_idx, (label, count, total) in enumerate(rows, 1):
            data.append([label, str(count), self.money(total)])
            if row_idx == len(rows):
                commands.extend([
                    ("FONTNAME", (0, row_idx), (-1, row_idx), "Helvetica-Bold"),
                    ("LINEABOVE", (0, row_idx), (-1, row_idx), 1.2, _hex(self.brand.primary)),
                ])
            else:
                commands.append(("BACKGROUND", (0, row_idx), (0, row_idx), _hex(self.palette.fill_for(label))))

        widths = [2.6 * inch, 1.1 * inch, 1.8 * inch]
        table = Table(data, colWidths=widths, hAlign="LEFT")
        table.setStyle(TableStyle(commands))
        return table

    def column_widths(self) -> List[float]:
        """Per-column budgets scaled to just under the printable width."""
        budgets = [float(column.width or DEFAULT_COLUMN_BUDGET) for column in self.columns]
        scale = self.available_width * TABLE_WIDTH_SHARE / sum(budgets)
        return [budget * scale for budget in budgets]

    def detail_table(self, records: Sequence[Record], grand_total) -> Table:
        header = [Paragraph(escape(column.label), self.header_cell_style) for column in self.columns]
        data: List[List[Any]] = [header]
        commands = [
            ("BACKGROUND", (0, 0), (-1, 0), _hex(self.brand.primary)),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("GRID", (0, 0), (-1, -1), 0.4, _hex(GRID)),
            ("TOPPADDING", (0, 0), (-1, -1), 3),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ("LEFTPADDING", (0, 0), (-1, -1), 3),
            ("RIGHTPADDING", (0, 0), (-1, -1), 3),
        ]

        for row_idx, record in enumerate(records, 1):
            row = []
            for col_idx, column in enumerate(self.columns):
                text = escape(self.formatter(column, record))
                row.append(Paragraph(text, self.cell_styles[column.align]))
                if column.kind == "status":
                    fill = self.palette.fill_for(record.get(column.key))
                    commands.append(("BACKGROUND", (col_idx, row_idx), (col_idx, row_idx), _hex(fill)))
            data.append(row)
            if row_idx % 2 == 0:
                commands.insert(0, ("BACKGROUND", (0, row_idx), (-1, row_idx), _hex(ROW_ALT)))

        amount_idx = next(
            (i for i, column in enumerate(self.columns) if column.kind == "currency"), None
        )
        if amount_idx is not None:
            total_row = [""] * len(self.columns)
            total_row[0] = Paragraph(f"<b>{TOTAL_ROW_LABEL}</b>", self.cell_styles["left"])
            total_row[amount_idx] = Paragraph(
                f"<b>{escape(self.money(grand_total))}</b>", self.cell_styles["right"]
            )
            data.append(total_row)
            last = len(data) - 1
            commands.extend([
                ("BACKGROUND", (0, last), (-1, last), colors.HexColor("#E8EEF9")),
                ("LINEABOVE", (0, last), (-1, last), 1.2, _hex(self.brand.primary)),
            ])
            if amount_idx > 1:
                commands.append(("SPAN", (0, last), (amount_idx - 1, last)))

        table = Table(data, colWidths=self.column_widths(), repeatRows=1)
        table.setStyle(TableStyle(commands))
        return table

    def chart(self, chart: Aggregate, title: str) -> List[Flowable]:
        """Bar chart page; bars are scaled against the largest amount."""
        story: List[Flowable] = [PageBreak(), Paragraph(escape(title), self.heading_style)]
        items: List[Tuple[str, float]] = [
            (FormatHelper.title_case(key), float(total))
            for key, _count, total in chart.rows(include_total=False)
        ]
        width = self.available_width
        height = 4.2 * inch
        drawing = Drawing(width, height)

        peak = max((amount for _label, amount in items), default=0.0)
        if not items or peak <= 0:
            drawing.add(Rect(0, 0, width, height, fillColor=colors.HexColor("#F8F9FA"),
                             strokeColor=_hex(GRID)))
            drawing.add(String(width / 2, height / 2, "Sin datos para graficar",
                               fontName="Helvetica", fontSize=11, fillColor=_hex(MUTED_TEXT),
                               textAnchor="middle"))
            story.append(drawing)
            return story

        bottom, top_pad = 40, 30
        plot_height = height - bottom - top_pad
        slot = width / len(items)
        bar_width = min(slot * 0.6, 70)
        drawing.add(Line(0, bottom, width, bottom, strokeColor=_hex(GRID), strokeWidth=1))

        for i, (label, amount) in enumerate(items):
            bar_height = max(amount, 0) / peak * plot_height
            x = i * slot + (slot - bar_width) / 2
            color = _hex(CHART_PALETTE[i % len(CHART_PALETTE)])
            drawing.add(Rect(x, bottom, bar_width, bar_height, fillColor=color, strokeColor=None))
            drawing.add(String(x + bar_width / 2, bottom + bar_height + 6, self.money(amount, compact=True),
                               fontName="Helvetica-Bold", fontSize=8, textAnchor="middle"))
            short = label if len(label) <= 16 else label[:15] + "…"
            drawing.add(String(x + bar_width / 2, bottom - 14, short,
                               fontName="Helvetica", fontSize=7.5, textAnchor="middle"))

        story.append(drawing)
        return story


def _pagesize(name: str):
    return landscape(PAGE_SIZES.get(str(name).lower(), letter))


def render_document(
    records: Sequence[Record],
    summary: Aggregate,
    columns: Sequence[ExportColumn],
    title: str = "Reporte",
    subtitle: Optional[str] = None,
    generated_at: Optional[datetime] = None,
    palette: StatusPalette = DEFAULT_PALETTE,
    brand: Optional[BrandStyle] = None,
    formatter: Optional[CellFormatter] = None,
    logo: LogoResolver = no_logo,
    notice: Optional[str] = None,
    include_summary: bool = True,
    chart: Optional[Aggregate] = None,
    chart_title: str = "Montos por Departamento",
    pagesize: str = "letter",
    max_rows: int = 0,
    summary_heading: str = "Resumen",
    group_label: str = "Estado"
) -> bytes:
    """
    Render records and their aggregate as a PDF document.

    Args:
        records: Filtered records, in output order
        summary: Aggregate of the same records
        columns: Detail table layout (column.width is the relative budget)
        title: Header band title
        subtitle: Period caption
        generated_at: Export instant printed in every footer
        palette: Status fills
        brand: Brand name and colors
        formatter: Cell text formatter (locale, currency)
        logo: Resolver returning the logo bytes; None or bad data gives the text mark
        notice: Confidentiality text under the header (skipped when empty)
        include_summary: Add the metric cards and the summary table
        chart: Aggregate plotted on a trailing bar chart page
        chart_title: Heading of the chart page
        pagesize: 'letter' or 'A4' (always landscape)
        max_rows: Cap on printed detail rows (0 prints all); totals still cover every record
        summary_heading: Heading above the summary table
        group_label: Header of the summary key column

    Returns:
        PDF bytes
    """
    generated_at = generated_at or datetime.now()
    brand = brand or BrandStyle()
    formatter = formatter or CellFormatter()

    buffer = BytesIO()
    page = _pagesize(pagesize)
    doc = SimpleDocTemplate(
        buffer,
        pagesize=page,
        rightMargin=MARGIN,
        leftMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=0.8 * inch,
        title=title,
        author=brand.name,
        creator=brand.name,
        invariant=1,
    )
    builder = DocumentBuilder(columns, palette, brand, formatter, doc.width)

    story: List[Flowable] = [
        HeaderBand(title, subtitle, brand, load_logo(logo)),
        Spacer(1, 0.15 * inch),
    ]
    if notice:
        story.append(builder.notice(notice))
        story.append(Spacer(1, 0.15 * inch))

    if include_summary:
        story.append(builder.metric_cards(summary_statistics(records)))
        story.append(Spacer(1, 0.15 * inch))

    if include_summary or not records:
        story.append(KeepTogether([
            Paragraph(escape(summary_heading), builder.heading_style),
            builder.summary_table(summary, group_label),
        ]))
        story.append(Spacer(1, 0.2 * inch))

    if not records:
        story.append(Paragraph(NO_DATA_TEXT, builder.empty_style))
    else:
        story.append(Paragraph("Detalle", builder.heading_style))
        shown = list(records[:max_rows]) if max_rows and max_rows > 0 else list(records)
        if len(shown) < len(records):
            story.append(Paragraph(
                f"Mostrando los primeros {len(shown):,} de {len(records):,} registros",
                builder.note_style
            ))
            story.append(Spacer(1, 0.08 * inch))
        story.append(builder.detail_table(shown, summary.total.total))

        if chart is not None:
            try:
                story.extend(builder.chart(chart, chart_title))
            except Exception as e:
                logger.warning("Chart page skipped: %s", e)

    footer = f"{brand.name} · Generado el {FormatHelper.format_date_long(generated_at)}"
    doc.build(story, canvasmaker=numbered_canvas(footer, brand.primary))
    return buffer.getvalue()
