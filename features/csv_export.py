"""
Delimited-text rendering.

One header line with the column labels, then one line per record in input
order. Quoting follows RFC 4180: quotes are doubled and any field holding
the delimiter, a quote or a line break is wrapped in quotes.
"""

from __future__ import annotations
from datetime import datetime
from typing import Optional, List, Sequence, Iterable, Callable, Any
import csv

import pandas as pd

from core.utils import FormatHelper
from features.aggregate import Aggregate
from models.records import Record, ExportColumn, CellFormatter

Formatter = Callable[[ExportColumn, Record], str]

LINE_TERMINATOR = "\n"


def _frame(records: Iterable[Record], columns: Sequence[ExportColumn], formatter: Formatter) -> pd.DataFrame:
    rows = [[formatter(column, record) for column in columns] for record in records]
    return pd.DataFrame(rows, columns=[column.label for column in columns], dtype=object)


def render_csv(
    records: Iterable[Record],
    columns: Sequence[ExportColumn],
    formatter: Optional[Formatter] = None,
    delimiter: str = ","
) -> str:
    """
    Render records as CSV text.

    Args:
        records: Records to write, in output order
        columns: Column layout (labels become the header line)
        formatter: (column, record) -> str; defaults to CellFormatter()
        delimiter: Field separator

    Returns:
        CSV text, every line terminated by '\\n'
    """
    formatter = formatter or CellFormatter()
    df = _frame(records, columns, formatter)
    return df.to_csv(
        index=False,
        sep=delimiter,
        quoting=csv.QUOTE_MINIMAL,
        quotechar='"',
        doublequote=True,
        lineterminator=LINE_TERMINATOR,
        na_rep="",
    )


def _preamble_line(*fields: Any, delimiter: str = ",") -> str:
    """One preamble line quoted with the same rules as the table."""
    frame = pd.DataFrame([[str(f) for f in fields]], dtype=object)
    return frame.to_csv(
        index=False,
        header=False,
        sep=delimiter,
        quoting=csv.QUOTE_MINIMAL,
        lineterminator=LINE_TERMINATOR,
    )


def render_csv_with_summary(
    records: Sequence[Record],
    columns: Sequence[ExportColumn],
    summary: Aggregate,
    title: str,
    generated_at: datetime,
    formatter: Optional[CellFormatter] = None,
    delimiter: str = ","
) -> str:
    """
    CSV preceded by a report preamble.

    Layout:
        <TITLE IN UPPER CASE>
        Generado,<long date>
        Total de registros,<n>
        Monto total,<amount>
        Promedio por registro,<amount>
        <blank>
        RESUMEN
        <group>,<count>,<amount>   (one per group)
        <blank>
        <header line + detail rows as render_csv>
    """
    formatter = formatter or CellFormatter()
    count = summary.total.count
    average = summary.total.total / count if count else 0

    def money(value: Any) -> str:
        return FormatHelper.format_currency(value, formatter.locale, formatter.currency)

    lines: List[str] = [
        _preamble_line(title.upper(), delimiter=delimiter),
        _preamble_line("Generado", FormatHelper.format_date_long(generated_at), delimiter=delimiter),
        _preamble_line("Total de registros", count, delimiter=delimiter),
        _preamble_line("Monto total", money(summary.total.total), delimiter=delimiter),
        _preamble_line("Promedio por registro", money(average), delimiter=delimiter),
        LINE_TERMINATOR,
        _preamble_line("RESUMEN", delimiter=delimiter),
    ]
    for label, group_count, group_total in summary.labeled_rows(include_total=False):
        lines.append(_preamble_line(label, group_count, money(group_total), delimiter=delimiter))
    lines.append(LINE_TERMINATOR)
    lines.append(render_csv(records, columns, formatter, delimiter))
    return "".join(lines)
