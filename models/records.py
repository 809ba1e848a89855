#record model and export column definitions
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Optional, List, Dict, Any, Tuple, Mapping, Iterable, ClassVar, Type, Union

from core.utils import (
    AmountParser,
    DateParser,
    FormatHelper,
    strip_accents,
)


# ==========================
# Record kinds
# ==========================

class RecordKind(str, Enum):
    PAYMENT_REQUEST = "solicitud"
    RECURRING_TEMPLATE = "recurrente"
    TRAVEL_EXPENSE = "viatico"
    PROCESSED_PAYMENT = "pago"

    @classmethod
    def resolve(cls, value: Union["RecordKind", str]) -> "RecordKind":
        """Accept the enum, its value or its name ('viatico', 'TRAVEL_EXPENSE')."""
        if isinstance(value, cls):
            return value
        key = strip_accents(str(value).strip())
        for kind in cls:
            if key in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"Unknown record kind: '{value}'")


_TRUTHY = {"1", "true", "si", "activo", "yes", "y", "t"}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if value is None:
        return False
    return strip_accents(str(value).strip()) in _TRUTHY


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


# ==========================
# Dataclass: Record
# ==========================

@dataclass(frozen=True)
class Record:
    """
    Shared projection of every exportable row.

    Renderers only touch these fields; variant-specific data is reached
    through ExportColumn keys, which fall back to the raw mapping.
    """
    record_id: Any
    amount: Decimal
    status: str
    timestamp: Optional[datetime]
    department: str = ""
    concept: str = ""
    requester: str = ""
    folio: str = ""
    payment_type: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    KIND: ClassVar[Optional[RecordKind]] = None
    ID_FIELD: ClassVar[str] = "id"
    TIMESTAMP_FIELD: ClassVar[str] = "fecha_creacion"
    REQUESTER_FIELDS: ClassVar[Tuple[str, ...]] = ("usuario_nombre", "nombre_usuario", "solicitante")
    PAYMENT_TYPE_FIELDS: ClassVar[Tuple[str, ...]] = ("tipo_pago",)

    @classmethod
    def _first(cls, data: Mapping[str, Any], names: Iterable[str]) -> str:
        for name in names:
            text = _text(data.get(name))
            if text:
                return text
        return ""

    @classmethod
    def _common_fields(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "record_id": data.get(cls.ID_FIELD, data.get("id")),
            "amount": AmountParser.coerce(data.get("monto")),
            "status": _text(data.get("estado")).lower(),
            "timestamp": DateParser.parse_timestamp(data.get(cls.TIMESTAMP_FIELD)),
            "department": _text(data.get("departamento")),
            "concept": _text(data.get("concepto")),
            "requester": cls._first(data, cls.REQUESTER_FIELDS),
            "folio": _text(data.get("folio")),
            "payment_type": cls._first(data, cls.PAYMENT_TYPE_FIELDS),
            "raw": MappingProxyType(dict(data)),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        """Build a record from an API-shaped dict. Never raises on bad values."""
        return cls(**cls._common_fields(data))

    def get(self, key: str, default: Any = None) -> Any:
        """Projected field by name, otherwise the raw value under that key."""
        if key in _PROJECTED_FIELDS and hasattr(self, key):
            return getattr(self, key)
        return self.raw.get(key, default)

    @property
    def kind(self) -> Optional[RecordKind]:
        return self.KIND


@dataclass(frozen=True)
class PaymentRequest(Record):
    KIND: ClassVar[RecordKind] = RecordKind.PAYMENT_REQUEST
    ID_FIELD: ClassVar[str] = "id_solicitud"
    TIMESTAMP_FIELD: ClassVar[str] = "fecha_creacion"


@dataclass(frozen=True)
class RecurringTemplate(Record):
    active: bool = True

    KIND: ClassVar[RecordKind] = RecordKind.RECURRING_TEMPLATE
    ID_FIELD: ClassVar[str] = "id_recurrente"
    TIMESTAMP_FIELD: ClassVar[str] = "created_at"
    REQUESTER_FIELDS: ClassVar[Tuple[str, ...]] = ("nombre_usuario", "usuario_nombre")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RecurringTemplate":
        return cls(**cls._common_fields(data), active=_to_bool(data.get("activo")))


@dataclass(frozen=True)
class TravelExpense(Record):
    KIND: ClassVar[RecordKind] = RecordKind.TRAVEL_EXPENSE
    ID_FIELD: ClassVar[str] = "id_viatico"
    TIMESTAMP_FIELD: ClassVar[str] = "fecha_limite_pago"


@dataclass(frozen=True)
class ProcessedPayment(Record):
    KIND: ClassVar[RecordKind] = RecordKind.PROCESSED_PAYMENT
    ID_FIELD: ClassVar[str] = "id_pago"
    TIMESTAMP_FIELD: ClassVar[str] = "fecha_pago"
    REQUESTER_FIELDS: ClassVar[Tuple[str, ...]] = ("solicitante", "usuario_nombre")
    PAYMENT_TYPE_FIELDS: ClassVar[Tuple[str, ...]] = ("metodo_pago", "tipo_pago")


_PROJECTED_FIELDS = frozenset({
    "record_id", "amount", "status", "timestamp", "department",
    "concept", "requester", "folio", "payment_type", "active",
})

RECORD_TYPES: Dict[RecordKind, Type[Record]] = {
    RecordKind.PAYMENT_REQUEST: PaymentRequest,
    RecordKind.RECURRING_TEMPLATE: RecurringTemplate,
    RecordKind.TRAVEL_EXPENSE: TravelExpense,
    RecordKind.PROCESSED_PAYMENT: ProcessedPayment,
}


def record_from_dict(
    data: Union[Record, Mapping[str, Any]],
    kind: Union[RecordKind, str] = RecordKind.PAYMENT_REQUEST
) -> Record:
    """
    Coerce one API dict into its record variant.

    Args:
        data: Mapping as returned by the portal API (or an existing Record)
        kind: Variant to build

    Returns:
        Record instance (passed through unchanged if already a Record)

    Raises:
        TypeError: If data is neither a mapping nor a Record
    """
    if isinstance(data, Record):
        return data
    if not isinstance(data, Mapping):
        raise TypeError(f"Expected a mapping, got {type(data).__name__}")
    return RECORD_TYPES[RecordKind.resolve(kind)].from_dict(data)


def records_from_dicts(
    items: Iterable[Union[Record, Mapping[str, Any]]],
    kind: Union[RecordKind, str] = RecordKind.PAYMENT_REQUEST
) -> List[Record]:
    """Coerce a collection, preserving input order."""
    return [record_from_dict(item, kind) for item in items]


# ==========================
# Dataclass: ExportColumn
# ==========================

COLUMN_KINDS = ("text", "id", "currency", "date", "status", "boolean")
ALIGNMENTS = ("left", "center", "right")


@dataclass(frozen=True)
class ExportColumn:
    """One output column: record key, header label and rendering hints."""
    key: str
    label: str
    kind: str = "text"
    width: Optional[float] = None
    align: str = "left"

    def __post_init__(self):
        if self.kind not in COLUMN_KINDS:
            raise ValueError(f"Invalid column kind '{self.kind}'. Valid: {', '.join(COLUMN_KINDS)}")
        if self.align not in ALIGNMENTS:
            raise ValueError(f"Invalid alignment '{self.align}'. Valid: {', '.join(ALIGNMENTS)}")

    def value(self, record: Record) -> Any:
        return record.get(self.key)


@dataclass(frozen=True)
class CellFormatter:
    """Turns a (column, record) pair into display text."""
    locale: str = "es-MX"
    currency: str = "MXN"
    compact: bool = False

    def __call__(self, column: ExportColumn, record: Record) -> str:
        return self.format_value(column, column.value(record))

    def format_value(self, column: ExportColumn, value: Any) -> str:
        if column.kind == "currency":
            return FormatHelper.format_currency(value, self.locale, self.currency, self.compact)
        if column.kind == "date":
            return FormatHelper.format_date_short(value) if value not in (None, "") else ""
        if column.kind == "status":
            return FormatHelper.capitalize(value)
        if column.kind == "boolean":
            return "Sí" if _to_bool(value) else "No"
        return "" if value is None else str(value)


# ==========================
# Default column sets
# ==========================

DEFAULT_COLUMNS: Dict[RecordKind, Tuple[ExportColumn, ...]] = {
    RecordKind.PAYMENT_REQUEST: (
        ExportColumn("record_id", "ID", "id", 15, "center"),
        ExportColumn("folio", "Folio", "text", 25),
        ExportColumn("requester", "Solicitante", "text", 40),
        ExportColumn("department", "Departamento", "text", 35),
        ExportColumn("concept", "Concepto", "text", 45),
        ExportColumn("tipo_cuenta_destino", "Tipo Cuenta", "text", 30),
        ExportColumn("banco_destino", "Banco", "text", 30),
        ExportColumn("amount", "Monto", "currency", 25, "right"),
        ExportColumn("status", "Estado", "status", 25, "center"),
        ExportColumn("timestamp", "Fecha", "date", 35, "center"),
    ),
    RecordKind.RECURRING_TEMPLATE: (
        ExportColumn("record_id", "ID", "id", 15, "center"),
        ExportColumn("folio", "Folio", "text", 25),
        ExportColumn("requester", "Usuario", "text", 35),
        ExportColumn("department", "Departamento", "text", 35),
        ExportColumn("amount", "Monto", "currency", 25, "right"),
        ExportColumn("concept", "Concepto", "text", 45),
        ExportColumn("payment_type", "Tipo Pago", "text", 25),
        ExportColumn("frecuencia", "Frecuencia", "text", 25),
        ExportColumn("status", "Estado", "status", 20, "center"),
        ExportColumn("active", "Activo", "boolean", 15, "center"),
        ExportColumn("siguiente_fecha", "Siguiente Fecha", "date", 25, "center"),
    ),
    RecordKind.TRAVEL_EXPENSE: (
        ExportColumn("record_id", "ID", "id", 15, "center"),
        ExportColumn("folio", "Folio", "text", 25),
        ExportColumn("concept", "Concepto", "text", 45),
        ExportColumn("amount", "Monto", "currency", 25, "right"),
        ExportColumn("department", "Departamento", "text", 35),
        ExportColumn("status", "Estado", "status", 20, "center"),
        ExportColumn("timestamp", "Fecha Límite", "date", 25, "center"),
        ExportColumn("payment_type", "Tipo de Pago", "text", 25),
        ExportColumn("cuenta_destino", "Cuenta Destino", "text", 30),
        ExportColumn("banco_destino", "Banco", "text", 25),
    ),
    RecordKind.PROCESSED_PAYMENT: (
        ExportColumn("record_id", "ID", "id", 15, "center"),
        ExportColumn("requester", "Solicitante", "text", 40),
        ExportColumn("department", "Departamento", "text", 35),
        ExportColumn("concept", "Concepto", "text", 45),
        ExportColumn("amount", "Monto", "currency", 25, "right"),
        ExportColumn("timestamp", "Fecha Pago", "date", 25, "center"),
        ExportColumn("status", "Estado", "status", 20, "center"),
        ExportColumn("payment_type", "Método", "text", 25),
        ExportColumn("banco_destino", "Banco", "text", 25),
    ),
}


def default_columns(kind: Union[RecordKind, str]) -> List[ExportColumn]:
    return list(DEFAULT_COLUMNS[RecordKind.resolve(kind)])
