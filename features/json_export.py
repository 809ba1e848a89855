"""JSON rendering: metadata block, summary rows and detail rows keyed by column label."""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List, Sequence
import json

from core.utils import AmountParser, CENTS
from features.aggregate import Aggregate
from models.records import Record, ExportColumn, CellFormatter


def _money(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def _json_value(column: ExportColumn, record: Record, formatter: CellFormatter) -> Any:
    value = column.value(record)
    if column.kind == "currency":
        return _money(AmountParser.coerce(value))
    if column.kind == "date":
        return value.isoformat() if isinstance(value, datetime) else (value or None)
    if column.kind == "boolean":
        return formatter(column, record) == "Sí"
    if column.kind == "id":
        return value
    return formatter(column, record)


def render_json(
    records: Sequence[Record],
    summary: Aggregate,
    columns: Sequence[ExportColumn],
    title: str,
    generated_at: datetime,
    period: Optional[str] = None,
    formatter: Optional[CellFormatter] = None,
    extra_metadata: Optional[Dict[str, Any]] = None,
    indent: int = 2
) -> str:
    """
    Render records as a JSON document.

    Shape:
        {"metadata": {...}, "resumen": [{"grupo", "cantidad", "total"}], "datos": [{label: value}]}

    Amounts are numbers rounded to two decimals; dates are ISO 8601 strings.
    """
    formatter = formatter or CellFormatter()

    metadata: Dict[str, Any] = {
        "titulo": title,
        "generado": generated_at.isoformat(),
        "periodo": period,
        "total_registros": summary.total.count,
        "monto_total": _money(summary.total.total),
        "moneda": formatter.currency,
        "columnas": [column.label for column in columns],
    }
    if extra_metadata:
        metadata.update(extra_metadata)

    resumen: List[Dict[str, Any]] = [
        {"grupo": label, "cantidad": count, "total": _money(total)}
        for label, count, total in summary.labeled_rows(include_total=True)
    ]
    datos = [
        {column.label: _json_value(column, record, formatter) for column in columns}
        for record in records
    ]

    return json.dumps(
        {"metadata": metadata, "resumen": resumen, "datos": datos},
        ensure_ascii=False,
        indent=indent,
        default=str,
    )
