#export configuration setup
"""
Export configuration for the report engine.

Values live in the [export] section of config/config.ini. Missing file or
missing keys fall back to the ExportConfig defaults, so the engine runs with
no configuration at all.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
from typing import Optional, Dict, Any
import configparser
import logging
import os

logger = logging.getLogger(__name__)

#connect config path with the repo root
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_CONFIG_PATH = os.path.join(BASE_DIR, "config", "config.ini")

SECTION = "export"


@dataclass(frozen=True)
class ExportConfig:
    """Configuration for export operations."""
    output_dir: str = "reports/exports"
    csv_encoding: str = "utf-8"
    pdf_pagesize: str = "letter"  # 'letter' or 'A4'
    locale: str = "es-MX"
    currency: str = "MXN"
    brand_name: str = "BECHAPRA"
    brand_color: str = "123D8C"
    header_text_color: str = "FFFFFF"
    confidentiality_notice: str = (
        "CONFIDENCIAL: Este documento es propiedad de BECHAPRA y contiene "
        "información confidencial. Su uso está restringido al personal autorizado."
    )
    include_summary: bool = True  # XLSX/PDF summary blocks
    include_stats: bool = False  # CSV report preamble
    include_charts: bool = False
    filename_prefix: str = ""
    pdf_max_rows: int = 0  # 0 prints every detail row
    logo_path: str = ""
    logo_url: str = ""
    logo_timeout: float = 5.0

    def with_overrides(self, **overrides: Any) -> "ExportConfig":
        """Copy with some fields replaced (None values are ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _read_value(parser: configparser.ConfigParser, name: str, default: Any) -> Any:
    """Read one key typed after its default."""
    if isinstance(default, bool):
        return parser.getboolean(SECTION, name)
    if isinstance(default, int):
        return parser.getint(SECTION, name)
    if isinstance(default, float):
        return parser.getfloat(SECTION, name)
    return parser.get(SECTION, name)


def load_export_config(path: Optional[str] = None) -> ExportConfig:
    """
    Read export settings from config/config.ini.

    Args:
        path: Alternate ini file (defaults to config/config.ini at the repo root)

    Returns:
        ExportConfig with file values layered over the defaults

    Raises:
        ValueError: If a key holds a value of the wrong type
    """
    config_path = path or DEFAULT_CONFIG_PATH
    defaults = ExportConfig()

    if not os.path.exists(config_path):
        logger.debug("Config file not found: %s, using defaults", config_path)
        return defaults

    parser = configparser.ConfigParser(interpolation=None)
    parser.read(config_path, encoding="utf-8")

    if not parser.has_section(SECTION):
        logger.debug("No [%s] section in %s, using defaults", SECTION, config_path)
        return defaults

    values: Dict[str, Any] = {}
    for field in fields(ExportConfig):
        if not parser.has_option(SECTION, field.name):
            continue
        default = getattr(defaults, field.name)
        try:
            values[field.name] = _read_value(parser, field.name, default)
        except ValueError as e:
            raise ValueError(
                f"Invalid value for '{field.name}' in {config_path}: {e}"
            ) from e

    return replace(defaults, **values)
