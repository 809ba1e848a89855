"""
Common Helper Functions for the Report Export Engine

This module provides reusable utility functions for:
- Amount coercion (numbers, formatted strings, garbage) into Decimal
- Timestamp parsing from the loose shapes the API layer sends
- Currency formatting with a fixed locale table (optionally compact)
- Long/short human-readable dates with a fixed Spanish month table
- Label capitalization with reserved domain terms

None of the helpers here raise on bad input: every coercion failure is
recovered locally with a safe default (0, None, "-").
"""

from __future__ import annotations
from typing import Optional, Dict, Any, Union, NamedTuple
from datetime import datetime, date, time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import math
import re
import unicodedata

Number = Union[int, float, Decimal]

ZERO = Decimal("0")
CENTS = Decimal("0.01")
DASH = "-"


# ============================================================================
# Amount Utilities
# ============================================================================

class AmountParser:
    """Coerces loosely typed monetary values into Decimal."""

    # Same stripping rule the portal applies to formatted amounts ("$1,234.50")
    _NON_NUMERIC = re.compile(r"[^\d.\-]")
    _CURRENCY_CODE = re.compile(r"^(?:MXN|USD|COP|EUR|US)(?![A-Za-z])|(?<![A-Za-z])(?:MXN|USD|COP|EUR)$", re.IGNORECASE)
    _NUMERIC = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)$")

    @staticmethod
    def _numeric_text(text: str) -> Optional[str]:
        """
        Plain numeric core of a formatted amount, or None.

        A leading or trailing currency code and the $ / € marks are allowed;
        any other letter rejects the input ("abc123" is not 123). When both
        separators appear and the comma comes last, the comma is the decimal
        mark ("1.234,50" is 1234.50); otherwise commas are grouping.
        """
        text = AmountParser._CURRENCY_CODE.sub("", text.strip()).strip()
        if any(ch.isalpha() for ch in text):
            return None
        if "," in text and "." in text and text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        cleaned = AmountParser._NON_NUMERIC.sub("", text)
        return cleaned if AmountParser._NUMERIC.match(cleaned) else None

    @staticmethod
    def coerce(amount_input: Any) -> Decimal:
        """
        Coerce any input into a Decimal amount.

        Args:
            amount_input: number, Decimal, numeric-looking string or anything else

        Returns:
            Decimal value, Decimal('0') when the input cannot be parsed

        Examples:
            >>> AmountParser.coerce("$1,234.50")
            Decimal('1234.50')

            >>> AmountParser.coerce("n/a")
            Decimal('0')
        """
        if amount_input is None or isinstance(amount_input, bool):
            return ZERO

        if isinstance(amount_input, Decimal):
            return amount_input if amount_input.is_finite() else ZERO

        if isinstance(amount_input, int):
            return Decimal(amount_input)

        if isinstance(amount_input, float):
            if math.isnan(amount_input) or math.isinf(amount_input):
                return ZERO
            return Decimal(str(amount_input))

        if isinstance(amount_input, str):
            cleaned = AmountParser._numeric_text(amount_input)
            if cleaned is None:
                return ZERO
            try:
                return Decimal(cleaned)
            except InvalidOperation:
                return ZERO

        return ZERO

    @staticmethod
    def is_parsable(amount_input: Any) -> bool:
        """True when the input carries a real amount (zero included)."""
        if amount_input is None or isinstance(amount_input, bool):
            return False
        if isinstance(amount_input, (int, Decimal)):
            return not isinstance(amount_input, Decimal) or amount_input.is_finite()
        if isinstance(amount_input, float):
            return not (math.isnan(amount_input) or math.isinf(amount_input))
        if isinstance(amount_input, str):
            return AmountParser._numeric_text(amount_input) is not None
        return False


# ============================================================================
# Date Utilities
# ============================================================================

class DateParser:
    """Parses timestamps in the formats the API layer produces."""

    _FALLBACK_FORMATS = (
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d %H:%M",
        "%d/%m/%Y %H:%M:%S",
        "%d/%m/%Y %H:%M",
        "%d/%m/%Y",
        "%d-%m-%Y",
    )

    @staticmethod
    def parse_timestamp(date_input: Any) -> Optional[datetime]:
        """
        Parse various date formats into a datetime object.

        Supported formats:
        - ISO 8601 date or datetime, with 'Z' or an explicit offset
        - YYYY-MM-DD HH:MM[:SS]
        - DD/MM/YYYY [HH:MM[:SS]]
        - date object (midnight)
        - datetime object

        Args:
            date_input: Date in various formats

        Returns:
            datetime object or None if invalid

        Examples:
            >>> DateParser.parse_timestamp("2024-02-04")
            datetime.datetime(2024, 2, 4, 0, 0)

            >>> DateParser.parse_timestamp("04/02/2024")
            datetime.datetime(2024, 2, 4, 0, 0)
        """
        if date_input is None or isinstance(date_input, bool):
            return None

        if isinstance(date_input, datetime):
            return date_input

        if isinstance(date_input, date):
            return datetime.combine(date_input, time())

        if not isinstance(date_input, str):
            return None

        text = date_input.strip()
        if not text:
            return None

        iso_text = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
        try:
            return datetime.fromisoformat(iso_text)
        except ValueError:
            pass

        for fmt in DateParser._FALLBACK_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue

        return None


# ============================================================================
# Format Helpers
# ============================================================================

class CurrencyConvention(NamedTuple):
    group_separator: str
    decimal_separator: str
    symbol_spacing: str


# Fixed table so artifacts look the same on every machine
LOCALE_CONVENTIONS: Dict[str, CurrencyConvention] = {
    "es-MX": CurrencyConvention(",", ".", ""),
    "en-US": CurrencyConvention(",", ".", ""),
    "es-CO": CurrencyConvention(".", ",", " "),
    "es-ES": CurrencyConvention(".", ",", " "),
}

CURRENCY_SYMBOLS: Dict[str, str] = {
    "MXN": "$",
    "COP": "$",
    "USD": "US$",
    "EUR": "€",
}

COMPACT_SUFFIXES = ("", "K", "M", "B")

MONTH_NAMES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)

# Keys are compared without accents and case
RESERVED_LABELS: Dict[str, str] = {
    "ti": "TI",
    "contabilidad": "Contabilidad",
    "facturacion": "Facturación",
    "cobranza": "Cobranza",
    "vinculacion": "Vinculación",
    "administracion": "Administración",
    "automatizaciones": "Automatizaciones",
    "comercial": "Comercial",
    "atencion a clientes": "Atención a Clientes",
    "tesoreria": "Tesorería",
    "nomina": "Nómina",
    "rh": "RH",
    "spei": "SPEI",
}


def strip_accents(text: str) -> str:
    """Lower-case and remove combining marks ("Nómina" -> "nomina")."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


class FormatHelper:
    """Format data for display."""

    @staticmethod
    def _convention(locale: str) -> CurrencyConvention:
        return LOCALE_CONVENTIONS.get(locale, LOCALE_CONVENTIONS["es-MX"])

    @staticmethod
    def _symbol(currency: str) -> str:
        return CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")

    @staticmethod
    def _localize(number_text: str, convention: CurrencyConvention) -> str:
        """Swap the ',' / '.' produced by format() for the locale separators."""
        if convention.group_separator == "," and convention.decimal_separator == ".":
            return number_text
        return (
            number_text.replace(",", "\x00")
            .replace(".", convention.decimal_separator)
            .replace("\x00", convention.group_separator)
        )

    @staticmethod
    def format_currency(
        amount: Any,
        locale: str = "es-MX",
        currency: str = "MXN",
        compact: bool = False
    ) -> str:
        """
        Format amount as currency.

        Args:
            amount: Number or numeric-looking string; anything else counts as 0
            locale: Key into LOCALE_CONVENTIONS (unknown locales use es-MX)
            currency: ISO currency code
            compact: Abbreviate thousands/millions/billions for dense tables

        Returns:
            Formatted currency string

        Examples:
            >>> FormatHelper.format_currency(1234.5)
            '$1,234.50'

            >>> FormatHelper.format_currency(1500000, compact=True)
            '$1.5M'
        """
        value = AmountParser.coerce(amount)
        convention = FormatHelper._convention(locale)
        symbol = FormatHelper._symbol(currency)
        sign = "-" if value < 0 else ""
        magnitude = abs(value)

        if compact and magnitude >= 1000:
            scale = 0
            scaled = magnitude
            while scaled >= 1000 and scale < len(COMPACT_SUFFIXES) - 1:
                scaled = scaled / 1000
                scale += 1
            scaled = scaled.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
            # 999.95K rounds up to 1000.0K; promote so ordering stays monotonic
            if scaled >= 1000 and scale < len(COMPACT_SUFFIXES) - 1:
                scaled = (scaled / 1000).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
                scale += 1
            number_text = format(scaled, ",.1f")
            if number_text.endswith(".0"):
                number_text = number_text[:-2]
            number_text = FormatHelper._localize(number_text, convention) + COMPACT_SUFFIXES[scale]
        else:
            quantized = magnitude.quantize(CENTS, rounding=ROUND_HALF_UP)
            number_text = FormatHelper._localize(format(quantized, ",.2f"), convention)

        return f"{sign}{symbol}{convention.symbol_spacing}{number_text}"

    @staticmethod
    def format_date_long(timestamp: Any) -> str:
        """
        Format a timestamp as '<day> de <month> de <year>, <h>:<mm> <AM|PM>'.

        Examples:
            >>> FormatHelper.format_date_long("2024-03-05T15:07:00")
            '5 de marzo de 2024, 3:07 PM'
        """
        moment = DateParser.parse_timestamp(timestamp)
        if moment is None:
            return DASH

        hour = moment.hour % 12 or 12
        meridiem = "PM" if moment.hour >= 12 else "AM"
        return (
            f"{moment.day} de {MONTH_NAMES[moment.month - 1]} de {moment.year}, "
            f"{hour}:{moment.minute:02d} {meridiem}"
        )

    @staticmethod
    def format_date_short(timestamp: Any) -> str:
        """Format a timestamp as DD/MM/YYYY, '-' when invalid."""
        moment = DateParser.parse_timestamp(timestamp)
        if moment is None:
            return DASH
        return f"{moment.day:02d}/{moment.month:02d}/{moment.year}"

    @staticmethod
    def capitalize(label: Any) -> str:
        """Capitalize the first letter and lower-case the rest."""
        if label is None:
            return ""
        text = str(label)
        return text[:1].upper() + text[1:].lower() if text else ""

    @staticmethod
    def title_case(label: Any) -> str:
        """
        Capitalize every word, honouring RESERVED_LABELS.

        Examples:
            >>> FormatHelper.title_case("TI")
            'TI'

            >>> FormatHelper.title_case("atención A CLIENTES")
            'Atención a Clientes'

            >>> FormatHelper.title_case("cuentas por pagar")
            'Cuentas Por Pagar'
        """
        if label is None:
            return ""
        text = str(label).strip()
        if not text:
            return ""

        reserved = RESERVED_LABELS.get(strip_accents(" ".join(text.split())))
        if reserved:
            return reserved

        return " ".join(FormatHelper.capitalize(word) for word in text.split(" "))


# ============================================================================
# Module-level shortcuts
# ============================================================================

coerce_amount = AmountParser.coerce
parse_timestamp = DateParser.parse_timestamp
format_currency = FormatHelper.format_currency
format_date_long = FormatHelper.format_date_long
format_date_short = FormatHelper.format_date_short
title_case = FormatHelper.title_case
capitalize = FormatHelper.capitalize
