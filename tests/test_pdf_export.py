import re
from datetime import timedelta
from io import BytesIO

import pytest
from pypdf import PdfReader

from features.aggregate import aggregate, by_department, summary_statistics
from features.assets import static_logo, file_logo
from features.pdf_export import render_document, load_logo, DocumentBuilder
from features.styles import DEFAULT_PALETTE, BrandStyle
from models.records import RecordKind, CellFormatter, default_columns, records_from_dicts

PAGE_PATTERN = re.compile(rb"/Type\s*/Page(?!s)")


def _pages(data: bytes) -> int:
    return len(PAGE_PATTERN.findall(data))


def _render(records, now, **kwargs):
    columns = kwargs.pop("columns", default_columns(RecordKind.PAYMENT_REQUEST))
    return render_document(
        records, aggregate(records), columns,
        title="Reporte de Solicitudes",
        subtitle="Solicitudes de la última semana",
        generated_at=now,
        **kwargs,
    )


def _many_requests(now, count):
    return records_from_dicts([
        {
            "id_solicitud": i, "folio": f"SOL-{i:04d}", "departamento": "ti",
            "monto": 10 + i, "estado": "pendiente" if i % 2 else "pagada",
            "concepto": f"Compra {i}", "fecha_creacion": (now - timedelta(hours=i)).isoformat(),
        }
        for i in range(1, count + 1)
    ])


def test_renders_a_pdf(solicitud_records, now):
    data = _render(solicitud_records, now)
    assert data.startswith(b"%PDF")
    assert _pages(data) == 1


def test_same_input_and_clock_give_same_bytes(solicitud_records, now):
    assert _render(solicitud_records, now) == _render(solicitud_records, now)


def test_empty_input_is_a_single_page(now):
    data = _render([], now)
    assert data.startswith(b"%PDF")
    assert _pages(data) == 1


def test_bad_logo_falls_back_to_text_mark(solicitud_records, now):
    assert load_logo(static_logo(b"definitely not an image")) is None
    data = _render(solicitud_records, now, logo=static_logo(b"definitely not an image"))
    assert data == _render(solicitud_records, now)


def test_missing_logo_file(tmp_path):
    assert load_logo(file_logo(str(tmp_path / "missing.png"))) is None


def test_failing_resolver_is_contained():
    def broken():
        raise RuntimeError("boom")
    assert load_logo(broken) is None


def test_chart_adds_a_page(viaticos, now):
    records = records_from_dicts(viaticos, RecordKind.TRAVEL_EXPENSE)
    columns = default_columns(RecordKind.TRAVEL_EXPENSE)
    plain = _render(records, now, columns=columns)
    charted = _render(records, now, columns=columns, chart=aggregate(records, by_department))
    assert _pages(charted) == _pages(plain) + 1


def test_long_tables_span_pages_and_respect_max_rows(now):
    records = _many_requests(now, 120)
    full = _render(records, now, max_rows=0)
    truncated = _render(records, now, max_rows=5)
    assert _pages(full) > 1
    assert _pages(truncated) == 1


def _page_texts(data: bytes):
    return [page.extract_text() for page in PdfReader(BytesIO(data)).pages]


def test_footer_numbers_every_page(now):
    texts = _page_texts(_render(_many_requests(now, 120), now))
    assert len(texts) > 1
    last = texts[-1]
    assert re.search(r"gina (\d+) de (\d+)", last).groups() == (str(len(texts)), str(len(texts)))
    assert "Generado el 15 de marzo de 2024" in last


def test_detail_header_repeats_on_following_pages(now):
    texts = _page_texts(_render(_many_requests(now, 120), now))
    assert "ID" in texts[1]
    assert "Monto" in texts[1]


def test_a4_pagesize(solicitud_records, now):
    data = _render(solicitud_records, now, pagesize="A4")
    # landscape A4 media box is 841.89 points wide
    assert re.search(rb"/MediaBox\s*\[\s*0 0 841\.", data)


class TestDocumentBuilder:
    @pytest.fixture
    def builder(self):
        return DocumentBuilder(
            default_columns(RecordKind.PAYMENT_REQUEST), DEFAULT_PALETTE, BrandStyle(),
            CellFormatter(), available_width=720
        )

    def test_column_widths_stay_inside_the_frame(self, builder):
        widths = builder.column_widths()
        assert len(widths) == len(builder.columns)
        assert sum(widths) < 720
        assert sum(widths) == pytest.approx(720 * 0.99)

    def test_detail_table_has_total_row(self, builder, solicitud_records):
        table = builder.detail_table(solicitud_records, aggregate(solicitud_records).total.total)
        # header + records + total
        assert len(table._cellvalues) == len(solicitud_records) + 2
        assert table.repeatRows == 1

    def test_summary_table_rows(self, builder, solicitud_records):
        table = builder.summary_table(aggregate(solicitud_records), "Estado")
        assert table._cellvalues[0] == ["Estado", "Cantidad", "Total"]
        assert table._cellvalues[-1] == ["Total", "4", "$350.00"]

    def test_empty_chart_is_placeholder(self, builder):
        story = builder.chart(aggregate([]), "Montos")
        assert len(story) == 3

    def test_metric_cards(self, builder, solicitud_records):
        table = builder.metric_cards(summary_statistics(solicitud_records))
        cards = table._cellvalues[0]
        assert len(cards) == 4
        assert [card[0].getPlainText() for card in cards] == [
            "Total de registros", "Monto total", "Promedio por registro", "Departamentos",
        ]
        assert [card[1].getPlainText() for card in cards] == ["4", "$350.00", "$87.50", "3"]

    def test_group_named_total_is_not_styled_as_total(self, builder, now):
        records = records_from_dicts([
            {"id_solicitud": 1, "monto": 10, "estado": "total", "fecha_creacion": "2024-03-14"},
            {"id_solicitud": 2, "monto": 5, "estado": "pendiente", "fecha_creacion": "2024-03-14"},
        ])
        table = builder.summary_table(aggregate(records), "Estado")
        labels = [row[0] for row in table._cellvalues]
        assert labels == ["Estado", "Total", "Pendiente", "Total"]
        assert table._cellStyles[1][0].fontname == "Helvetica"
        assert table._cellStyles[-1][0].fontname == "Helvetica-Bold"
        assert table._cellvalues[-1] == ["Total", "2", "$15.00"]
