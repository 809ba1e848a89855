"""
Time-range and status filters for exportable records.

A period is resolved against the wall-clock instant of the call:
- day:   rolling 24 hours
- week:  rolling 7 days
- month: one calendar month back (day clamped to the month end)
- year:  one calendar year back
- all:   no lower bound

Only a lower bound is applied, so records dated in the future are kept.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, List, Iterable, Union
import logging

import pandas as pd

from core.exceptions import InvalidPeriodError
from core.utils import strip_accents
from models.records import Record, RecurringTemplate

logger = logging.getLogger(__name__)


class Period(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


# Keys are accent-free and lower-case
PERIOD_ALIASES = {
    "day": Period.DAY, "dia": Period.DAY, "hoy": Period.DAY,
    "week": Period.WEEK, "semana": Period.WEEK,
    "month": Period.MONTH, "mes": Period.MONTH,
    "year": Period.YEAR, "ano": Period.YEAR,
    "all": Period.ALL, "total": Period.ALL, "todos": Period.ALL, "todo": Period.ALL,
}

# Short Spanish key used in filenames (mis_viaticos_semana.csv)
PERIOD_SLUGS = {
    Period.DAY: "dia",
    Period.WEEK: "semana",
    Period.MONTH: "mes",
    Period.YEAR: "año",
    Period.ALL: "total",
}

PERIOD_LABELS = {
    Period.DAY: "del día",
    Period.WEEK: "de la última semana",
    Period.MONTH: "del último mes",
    Period.YEAR: "del último año",
    Period.ALL: "de todo el historial",
}

ACTIVE_STATES = ("activo", "inactivo", "todos")


def resolve_period(value: Union[Period, str, None]) -> Period:
    """
    Resolve an enum member or alias into a Period.

    Examples:
        >>> resolve_period("Año")
        <Period.YEAR: 'year'>

    Raises:
        InvalidPeriodError: If the key is not a known period or alias
    """
    if isinstance(value, Period):
        return value
    if value is None:
        raise InvalidPeriodError("Period is required")

    key = strip_accents(str(value).strip())
    period = PERIOD_ALIASES.get(key)
    if period is None:
        raise InvalidPeriodError(
            f"Unknown period: '{value}'. Valid options: day, week, month, year, all"
        )
    return period


def period_window(period: Union[Period, str], now: datetime) -> Optional[datetime]:
    """Lower bound for the period relative to now (None for 'all')."""
    period = resolve_period(period)

    if period is Period.DAY:
        return now - timedelta(hours=24)
    if period is Period.WEEK:
        return now - timedelta(days=7)
    if period is Period.MONTH:
        return (pd.Timestamp(now) - pd.DateOffset(months=1)).to_pydatetime()
    if period is Period.YEAR:
        return (pd.Timestamp(now) - pd.DateOffset(years=1)).to_pydatetime()
    return None


def _comparable(timestamp: datetime, now: datetime) -> datetime:
    """Naive timestamps are read in now's timezone; aware ones are converted to it."""
    if now.tzinfo is None:
        if timestamp.tzinfo is not None:
            return timestamp.astimezone().replace(tzinfo=None)
        return timestamp
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=now.tzinfo)
    return timestamp.astimezone(now.tzinfo)


def filter_by_period(
    records: Iterable[Record],
    period: Union[Period, str],
    now: Optional[datetime] = None
) -> List[Record]:
    """
    Keep the records whose timestamp falls inside the period.

    Args:
        records: Records to filter (not modified)
        period: Period member or alias
        now: Reference instant (defaults to the current wall clock)

    Returns:
        New list, input order preserved. Records without a usable timestamp
        are dropped unless the period is 'all'.
    """
    period = resolve_period(period)
    records = list(records)

    if period is Period.ALL:
        return records

    now = now or datetime.now()
    since = period_window(period, now)

    kept = [
        record for record in records
        if record.timestamp is not None and _comparable(record.timestamp, now) >= since
    ]
    logger.debug("Period %s since %s kept %d of %d records", period.value, since, len(kept), len(records))
    return kept


def period_label(period: Union[Period, str], noun: str = "Registros") -> str:
    """Human-readable caption ('Registros de la última semana')."""
    return f"{noun} {PERIOD_LABELS[resolve_period(period)]}"


def period_slug(period: Union[Period, str]) -> str:
    return PERIOD_SLUGS[resolve_period(period)]


def filter_by_active(records: Iterable[Record], state: str = "todos") -> List[Record]:
    """
    Filter recurring templates by their active flag.

    Args:
        records: Records to filter; non-template records carry no flag and
            are only kept for 'todos'
        state: 'activo', 'inactivo' or 'todos'

    Raises:
        ValueError: If state is not one of ACTIVE_STATES
    """
    key = strip_accents(str(state).strip())
    if key not in ACTIVE_STATES:
        raise ValueError(f"Invalid state '{state}'. Valid options: {', '.join(ACTIVE_STATES)}")

    records = list(records)
    if key == "todos":
        return records

    wanted = key == "activo"
    return [
        record for record in records
        if isinstance(record, RecurringTemplate) and record.active is wanted
    ]
