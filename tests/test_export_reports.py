import csv
import io
import json
import os
from datetime import timedelta
from io import BytesIO

import pytest
from openpyxl import load_workbook
from pypdf import PdfReader

from core.exceptions import (
    ExportError,
    ExportValidationError,
    UnsupportedFormatError,
    InvalidPeriodError,
    ExportDeliveryError,
)
from features.assets import no_logo
from features.export_reports import (
    ExportService,
    ExportArtifact,
    FileSystemSink,
    FORMATS,
    normalize_format,
    validate_records,
    available_formats,
    recommended_format,
    estimate_file_size,
)


class TestFormats:
    def test_normalize(self):
        assert normalize_format("XLSX") == "xlsx"
        assert normalize_format(".pdf") == "pdf"

    def test_unknown_format(self, service, solicitudes):
        with pytest.raises(UnsupportedFormatError) as excinfo:
            service.build_artifact(solicitudes, format="xml")
        assert excinfo.value.requested == "xml"
        assert "csv" in excinfo.value.supported

    def test_available_formats(self):
        assert available_formats() == ["csv", "xlsx", "pdf", "json"]


class TestBuildArtifact:
    def test_weekly_spreadsheet(self, service, solicitudes, now):
        artifact = service.build_artifact(solicitudes, period="semana", format="xlsx")

        assert artifact.filename == "Solicitudes_semana.xlsx"
        assert artifact.mime_type == FORMATS["xlsx"]
        assert artifact.record_count == 4
        assert artifact.generated_at == now
        assert artifact.filters_applied == {"period": "week", "group_by": "status"}

        ws = load_workbook(BytesIO(artifact.content)).active
        values = [ws.cell(row=r, column=1).value for r in range(1, ws.max_row + 1)]
        assert "Total" in values

    def test_period_filter_applies_clock(self, service, viaticos):
        artifact = service.build_artifact(viaticos, period="semana", format="json", kind="viatico")
        doc = json.loads(artifact.content.decode("utf-8"))
        assert artifact.record_count == 1
        assert [row["ID"] for row in doc["datos"]] == [20]
        assert artifact.filename == "Viaticos_semana.json"

    def test_csv_preamble_is_opt_in(self, service, solicitudes):
        artifact = service.build_artifact(solicitudes, period="mes", format="csv", include_stats=True)
        text = artifact.content.decode("utf-8")
        assert text.startswith("REPORTE DE SOLICITUDES\n")
        assert artifact.filename == "Solicitudes_mes.csv"

    def test_default_csv_is_header_and_rows(self, service, solicitudes):
        artifact = service.build_artifact(solicitudes, period="total", format="csv")
        text = artifact.content.decode("utf-8")
        rows = list(csv.reader(io.StringIO(text)))
        assert text.startswith("ID,Folio,")
        assert len(rows) == 5
        assert [row[0] for row in rows[1:]] == ["1", "2", "3", "4"]
        assert artifact.filename == "Solicitudes_total.csv"

    def test_recurring_by_status(self, service, recurrentes):
        artifact = service.build_artifact(
            recurrentes, kind="recurrente", status="activo", format="csv"
        )
        rows = list(csv.reader(io.StringIO(artifact.content.decode("utf-8"))))
        assert artifact.filename == "Recurrentes_activo.csv"
        assert [row[0] for row in rows[1:]] == ["10", "12"]
        assert artifact.filters_applied["status"] == "activo"

    def test_group_by_department(self, service, solicitudes):
        artifact = service.build_artifact(solicitudes, format="json", group_by="department")
        groups = [row["grupo"] for row in json.loads(artifact.content)["resumen"]]
        assert groups == ["TI", "Nómina", "Facturación", "Total"]

    @pytest.mark.parametrize("fmt", ["csv", "xlsx", "pdf", "json"])
    def test_empty_input_still_renders(self, service, fmt):
        artifact = service.build_artifact([], period="dia", format=fmt)
        assert artifact.record_count == 0
        assert artifact.size_bytes > 0
        assert artifact.filename == f"Solicitudes_dia.{fmt}"

    @pytest.mark.parametrize("fmt", ["csv", "xlsx", "pdf", "json"])
    def test_same_input_same_bytes(self, service, solicitudes, fmt):
        first = service.build_artifact(solicitudes, period="semana", format=fmt)
        second = service.build_artifact(solicitudes, period="semana", format=fmt)
        assert first.content == second.content

    def test_pdf_prints_every_row_by_default(self, service, now):
        requests = [
            {"id_solicitud": i, "folio": f"SOL-{i:04d}", "departamento": "ti", "monto": i,
             "estado": "pendiente", "fecha_creacion": (now - timedelta(minutes=i)).isoformat()}
            for i in range(1, 1051)
        ]
        artifact = service.build_artifact(requests, period="dia", format="pdf")
        reader = PdfReader(BytesIO(artifact.content))
        text = "\n".join(page.extract_text() for page in reader.pages)
        assert artifact.record_count == 1050
        assert "SOL-0001" in text
        assert "SOL-1050" in text
        assert "Mostrando los primeros" not in text

    def test_input_is_not_mutated(self, service, solicitudes):
        snapshot = [dict(item) for item in solicitudes]
        service.build_artifact(solicitudes, period="dia", format="csv")
        assert solicitudes == snapshot

    def test_filename_prefix(self, config, clock, memory_sink, solicitudes):
        service = ExportService(
            config=config.with_overrides(filename_prefix="acme corp"),
            clock=clock, sink=memory_sink, logo_resolver=no_logo
        )
        artifact = service.build_artifact(solicitudes, period="mes", format="pdf")
        assert artifact.filename == "acme_corp_Solicitudes_mes.pdf"


class TestValidationErrors:
    def test_invalid_period(self, service, solicitudes):
        with pytest.raises(InvalidPeriodError):
            service.build_artifact(solicitudes, period="quarter")

    def test_invalid_status(self, service, recurrentes):
        with pytest.raises(ExportValidationError):
            service.build_artifact(recurrentes, kind="recurrente", status="maybe")

    def test_invalid_group_by(self, service, solicitudes):
        with pytest.raises(ExportValidationError):
            service.build_artifact(solicitudes, group_by="color")

    def test_invalid_kind(self, service, solicitudes):
        with pytest.raises(ExportValidationError):
            service.build_artifact(solicitudes, kind="factura")

    def test_non_mapping_item(self, service):
        with pytest.raises(ExportValidationError):
            service.build_artifact([42], format="csv")

    def test_errors_share_a_base(self):
        for error in (ExportValidationError, UnsupportedFormatError, InvalidPeriodError, ExportDeliveryError):
            assert issubclass(error, ExportError)


class TestDelivery:
    def test_memory_sink(self, service, memory_sink, solicitudes, now):
        metadata = service.export_payment_requests(solicitudes, period="semana", format="json")
        assert metadata.filepath == "memory://Solicitudes_semana.json"
        assert metadata.record_count == 4
        assert metadata.generated_at == now
        assert metadata.file_size_bytes == memory_sink.get("Solicitudes_semana.json").size_bytes

    def test_file_system_sink(self, config, clock, solicitudes):
        service = ExportService(config=config, clock=clock, logo_resolver=no_logo)
        metadata = service.export_payment_requests(solicitudes, period="mes", format="csv")

        assert metadata.filepath == os.path.join(config.output_dir, "Solicitudes_mes.csv")
        with open(metadata.filepath, "rb") as handle:
            assert len(handle.read()) == metadata.file_size_bytes
        # no temporary files left behind
        assert os.listdir(config.output_dir) == ["Solicitudes_mes.csv"]

    def test_file_system_sink_overwrites(self, tmp_path, now):
        sink = FileSystemSink(str(tmp_path))
        for content in (b"first", b"second"):
            sink.deliver(ExportArtifact("report.csv", content, "text/csv", "csv", 0, "Todos", now))
        assert (tmp_path / "report.csv").read_bytes() == b"second"

    def test_unwritable_directory(self, tmp_path, now):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        sink = FileSystemSink(str(blocker / "exports"))
        artifact = ExportArtifact("report.csv", b"x", "text/csv", "csv", 0, "Todos", now)
        with pytest.raises(ExportDeliveryError):
            sink.deliver(artifact)

    def test_recurring_export(self, service, recurrentes):
        metadata = service.export_recurring_templates(recurrentes, status="inactivo", format="json")
        assert metadata.filename == "Recurrentes_inactivo.json"
        assert metadata.record_count == 1

    def test_travel_expenses_default_to_pdf(self, service, viaticos):
        metadata = service.export_travel_expenses(viaticos)
        assert metadata.filename == "Viaticos_total.pdf"
        assert metadata.format == "pdf"

    def test_processed_payments(self, service):
        pagos = [
            {"id_pago": 1, "monto": 500, "estado": "pagada", "fecha_pago": "2024-03-10T10:00:00",
             "solicitante": "Ana López", "departamento": "ti", "metodo_pago": "transferencia"},
        ]
        metadata = service.export_processed_payments(pagos, period="mes", format="xlsx")
        assert metadata.filename == "PagosProcesados_mes.xlsx"
        assert metadata.record_count == 1


class TestHelpers:
    def test_validate_records(self, solicitudes):
        valid, errors = validate_records(solicitudes)
        assert not valid
        assert errors == ["1 registros tienen montos inválidos"]

    def test_validate_clean_input(self, viaticos):
        assert validate_records(viaticos, "viatico") == (True, [])

    def test_validate_empty(self):
        assert validate_records([]) == (False, ["No hay datos para exportar"])

    def test_validate_bad_dates(self):
        valid, errors = validate_records([{"monto": 10, "fecha_creacion": "ayer"}])
        assert not valid
        assert errors == ["1 registros tienen fechas inválidas"]

    def test_recommended_format(self):
        assert recommended_format(20000) == "csv"
        assert recommended_format(50) == "pdf"
        assert recommended_format(50, include_stats=True) == "xlsx"
        assert recommended_format(500) == "xlsx"

    def test_estimate_file_size(self):
        assert estimate_file_size(100, "csv") == "~50 KB"
        assert estimate_file_size(1000, "pdf") == "~2.0 MB"
        assert estimate_file_size(0, "json") == "~0 KB"
