"""
Group totals for exportable records.

An Aggregate is an ordered mapping key -> GroupTotals(count, total) in
first-seen order, followed by a materialized 'Total' row. For every
aggregate: sum(count) == len(records) and sum(total) == sum(amounts).
"""

from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any, List, Tuple, Iterable, Callable, Iterator

import pandas as pd

from core.utils import FormatHelper, ZERO
from models.records import Record, RecurringTemplate

TOTAL_LABEL = "Total"
NO_STATUS = "sin estado"
NO_DEPARTMENT = "sin departamento"
NO_PAYMENT_TYPE = "sin tipo"

Classifier = Callable[[Record], str]


# ================================================================
# Classifiers
# ================================================================

def by_status(record: Record) -> str:
    return record.status or NO_STATUS


def by_department(record: Record) -> str:
    return FormatHelper.title_case(record.department) or NO_DEPARTMENT


def by_active(record: Record) -> str:
    if isinstance(record, RecurringTemplate):
        return "activo" if record.active else "inactivo"
    return NO_STATUS


def by_payment_type(record: Record) -> str:
    return record.payment_type.lower() or NO_PAYMENT_TYPE


CLASSIFIERS: Dict[str, Classifier] = {
    "status": by_status,
    "department": by_department,
    "active": by_active,
    "payment_type": by_payment_type,
}


# ================================================================
# Aggregate
# ================================================================

@dataclass(frozen=True)
class GroupTotals:
    count: int = 0
    total: Decimal = ZERO

    def add(self, amount: Decimal) -> "GroupTotals":
        return GroupTotals(self.count + 1, self.total + amount)


@dataclass(frozen=True)
class Aggregate:
    groups: "OrderedDict[str, GroupTotals]"
    total: GroupTotals

    def __iter__(self) -> Iterator[str]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)

    def __getitem__(self, key: str) -> GroupTotals:
        if key == TOTAL_LABEL and key not in self.groups:
            return self.total
        return self.groups[key]

    @property
    def is_empty(self) -> bool:
        return self.total.count == 0

    def rows(self, include_total: bool = True) -> List[Tuple[str, int, Decimal]]:
        """(key, count, total) rows in first-seen order, then the Total row."""
        rows = [(key, group.count, group.total) for key, group in self.groups.items()]
        if include_total:
            rows.append((TOTAL_LABEL, self.total.count, self.total.total))
        return rows

    def labeled_rows(self, include_total: bool = True) -> List[Tuple[str, int, Decimal]]:
        """Same as rows() with the first letter of each key upper-cased for display."""
        return [
            (key[:1].upper() + key[1:], count, total)
            for key, count, total in self.rows(include_total)
        ]


def aggregate(records: Iterable[Record], classify: Classifier = by_status) -> Aggregate:
    """
    Group records and sum their amounts.

    Args:
        records: Records to group
        classify: Function mapping a record to its group key (default: status)

    Returns:
        Aggregate; empty input yields only the Total row {0, 0}
    """
    groups: "OrderedDict[str, GroupTotals]" = OrderedDict()
    total = GroupTotals()

    for record in records:
        key = classify(record)
        groups[key] = groups.get(key, GroupTotals()).add(record.amount)
        total = total.add(record.amount)

    return Aggregate(groups=groups, total=total)


# ================================================================
# Executive summary
# ================================================================

# (label, key, kind) rows of the executive summary; kind is count, currency or rate
STATISTIC_ROWS: Tuple[Tuple[str, str, str], ...] = (
    ("Total de registros", "record_count", "count"),
    ("Monto total", "total_amount", "currency"),
    ("Promedio por registro", "average_amount", "currency"),
    ("Monto máximo", "max_amount", "currency"),
    ("Monto mínimo", "min_amount", "currency"),
    ("Departamentos", "departments", "count"),
    ("Registros por día", "records_per_day", "rate"),
)

def summary_statistics(records: Iterable[Record]) -> Dict[str, Any]:
    """
    Headline figures for the executive summary.

    Returns:
        Dict with record_count, total_amount, average_amount, max_amount,
        min_amount, departments (distinct count), records_per_day and the
        first/last timestamps.
    """
    records = list(records)
    if not records:
        return {
            "record_count": 0,
            "total_amount": ZERO,
            "average_amount": ZERO,
            "max_amount": ZERO,
            "min_amount": ZERO,
            "departments": 0,
            "records_per_day": 0.0,
            "first_timestamp": None,
            "last_timestamp": None,
        }

    amounts = [record.amount for record in records]
    total = sum(amounts, ZERO)
    departments = {record.department.lower() for record in records if record.department}

    df = pd.DataFrame({"timestamp": [record.timestamp for record in records]})
    stamps = pd.to_datetime(df["timestamp"], errors="coerce", utc=True).dropna()
    if stamps.empty:
        first = last = None
        per_day = 0.0
    else:
        first, last = stamps.min(), stamps.max()
        days = max((last - first).days + 1, 1)
        per_day = round(len(stamps) / days, 2)
        first, last = first.to_pydatetime(), last.to_pydatetime()

    return {
        "record_count": len(records),
        "total_amount": total,
        "average_amount": (total / len(records)).quantize(Decimal("0.01")),
        "max_amount": max(amounts),
        "min_amount": min(amounts),
        "departments": len(departments),
        "records_per_day": per_day,
        "first_timestamp": first,
        "last_timestamp": last,
    }
