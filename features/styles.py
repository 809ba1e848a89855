"""
Brand colors and the status -> fill palette shared by the spreadsheet and
document renderers. Colors are 6-digit hex strings without '#'.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

BRAND_BLUE = "123D8C"
HEADER_TEXT = "FFFFFF"
ROW_ALT = "F5F7FA"
ROW_NORMAL = "FFFFFF"
GRID = "D0D7E2"
NEUTRAL_STATUS = "E5E7EB"
NOTICE_BG = "FDF6E3"
NOTICE_BORDER = "E0B252"
MUTED_TEXT = "64748B"

# Bar colors for the department chart
CHART_PALETTE = (
    "264653", "2A9D8F", "E9C46A", "F4A261", "E76F51", "606C38", "283618",
)

_DEFAULT_STATUS_FILLS = {
    "pendiente": "FFE8A3",
    "autorizada": "A8E6CF",
    "aprobada": "A8E6CF",
    "rechazada": "FFB7B2",
    "pagada": "B7E4F9",
    "activo": "A8E6CF",
    "inactivo": "FFB7B2",
}


def _normalize_hex(color: str) -> str:
    value = color.strip().lstrip("#").upper()
    if len(value) != 6 or any(ch not in "0123456789ABCDEF" for ch in value):
        raise ValueError(f"Invalid hex color: '{color}'")
    return value


@dataclass(frozen=True)
class StatusPalette:
    """
    Immutable status -> hex fill mapping.

    Lookups are case-insensitive; unknown statuses get the neutral fill.
    """
    fills: Mapping[str, str] = field(default_factory=lambda: dict(_DEFAULT_STATUS_FILLS))
    neutral: str = NEUTRAL_STATUS

    def __post_init__(self):
        normalized = {
            str(status).strip().lower(): _normalize_hex(color)
            for status, color in self.fills.items()
        }
        object.__setattr__(self, "fills", MappingProxyType(normalized))
        object.__setattr__(self, "neutral", _normalize_hex(self.neutral))

    def fill_for(self, status: Optional[str]) -> str:
        if not status:
            return self.neutral
        return self.fills.get(str(status).strip().lower(), self.neutral)

    def with_fills(self, **overrides: str) -> "StatusPalette":
        """New palette with some statuses recolored."""
        merged = dict(self.fills)
        merged.update(overrides)
        return StatusPalette(fills=merged, neutral=self.neutral)


DEFAULT_PALETTE = StatusPalette()


@dataclass(frozen=True)
class BrandStyle:
    name: str = "BECHAPRA"
    primary: str = BRAND_BLUE
    header_text: str = HEADER_TEXT

    def __post_init__(self):
        object.__setattr__(self, "primary", _normalize_hex(self.primary))
        object.__setattr__(self, "header_text", _normalize_hex(self.header_text))

    @property
    def primary_hex(self) -> str:
        """'#123D8C' form for reportlab's colors.HexColor."""
        return f"#{self.primary}"
