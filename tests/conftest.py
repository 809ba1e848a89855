"""Shared fixtures: a frozen clock, sample portal records and an export service
that writes to a per-test directory."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from core.config import ExportConfig
from features.assets import no_logo
from features.export_reports import ExportService, MemorySink
from models.records import RecordKind, records_from_dicts

NOW = datetime(2024, 3, 15, 12, 0, 0)


def _iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def solicitudes() -> list:
    """Four payment requests: two pending, one authorized, one rejected."""
    return [
        {
            "id_solicitud": 1, "folio": "SOL-001", "departamento": "ti",
            "monto": 100, "estado": "pendiente", "concepto": "Licencias",
            "fecha_creacion": _iso(NOW - timedelta(days=1)), "usuario_nombre": "Ana López",
            "tipo_pago": "transferencia", "banco_destino": "BBVA", "tipo_cuenta_destino": "clabe",
        },
        {
            "id_solicitud": 2, "folio": "SOL-002", "departamento": "nomina",
            "monto": "200", "estado": "Pendiente", "concepto": "Bono, trimestral",
            "fecha_creacion": _iso(NOW - timedelta(days=2)), "usuario_nombre": "Luis Pérez",
            "tipo_pago": "transferencia", "banco_destino": "Banorte", "tipo_cuenta_destino": "clabe",
        },
        {
            "id_solicitud": 3, "folio": "SOL-003", "departamento": "facturacion",
            "monto": 50, "estado": "autorizada", "concepto": 'Papelería "urgente"',
            "fecha_creacion": _iso(NOW - timedelta(days=3)), "usuario_nombre": "Eva Ruiz",
            "tipo_pago": "tarjeta", "banco_destino": "Santander", "tipo_cuenta_destino": "tarjeta",
        },
        {
            "id_solicitud": 4, "folio": "SOL-004", "departamento": "ti",
            "monto": "abc", "estado": "rechazada", "concepto": "Servidor\nrack",
            "fecha_creacion": _iso(NOW - timedelta(days=4)), "usuario_nombre": "Ana López",
            "tipo_pago": "transferencia", "banco_destino": "BBVA", "tipo_cuenta_destino": "clabe",
        },
    ]


@pytest.fixture
def solicitud_records(solicitudes):
    return records_from_dicts(solicitudes, RecordKind.PAYMENT_REQUEST)


@pytest.fixture
def recurrentes() -> list:
    return [
        {
            "id_recurrente": 10, "folio": "REC-010", "departamento": "contabilidad",
            "monto": 1500, "concepto": "Renta", "tipo_pago": "transferencia",
            "frecuencia": "mensual", "siguiente_fecha": "2024-04-01", "estado": "autorizada",
            "created_at": "2024-01-05T09:00:00", "nombre_usuario": "Mario Díaz", "activo": 1,
        },
        {
            "id_recurrente": 11, "folio": "REC-011", "departamento": "comercial",
            "monto": "2,000.50", "concepto": "Publicidad", "tipo_pago": "tarjeta",
            "frecuencia": "quincenal", "siguiente_fecha": "2024-03-20", "estado": "pendiente",
            "created_at": "2024-02-10T09:00:00", "nombre_usuario": "Sofía Gil", "activo": False,
        },
        {
            "id_recurrente": 12, "folio": "REC-012", "departamento": "tesoreria",
            "monto": 300, "concepto": "Comisiones", "tipo_pago": "transferencia",
            "frecuencia": "mensual", "siguiente_fecha": None, "estado": "autorizada",
            "created_at": "2023-06-01T09:00:00", "nombre_usuario": "Mario Díaz", "activo": "true",
        },
    ]


@pytest.fixture
def viaticos() -> list:
    return [
        {
            "id_viatico": 20, "folio": "VIA-020", "departamento": "cobranza",
            "monto": 850.75, "estado": "pagada", "concepto": "Hospedaje",
            "tipo_pago": "viaticos", "fecha_limite_pago": _iso(NOW - timedelta(days=2)),
            "cuenta_destino": "0123456789", "banco_destino": "HSBC",
        },
        {
            "id_viatico": 21, "folio": "VIA-021", "departamento": "vinculacion",
            "monto": 1200, "estado": "pendiente", "concepto": "Vuelo",
            "tipo_pago": "viaticos", "fecha_limite_pago": _iso(NOW - timedelta(days=20)),
            "cuenta_destino": "9876543210", "banco_destino": "BBVA",
        },
    ]


@pytest.fixture
def config(tmp_path) -> ExportConfig:
    return ExportConfig(output_dir=str(tmp_path / "exports"))


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def service(config, clock, memory_sink) -> ExportService:
    return ExportService(config=config, clock=clock, sink=memory_sink, logo_resolver=no_logo)
