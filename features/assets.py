"""
Logo resolvers for the document header.

A resolver is any zero-argument callable returning the logo bytes or None.
Resolvers never raise: a missing file or an unreachable URL is logged and
the document falls back to the text brand mark.
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional, Callable
import logging

import requests

logger = logging.getLogger(__name__)

LogoResolver = Callable[[], Optional[bytes]]


def no_logo() -> Optional[bytes]:
    return None


def file_logo(path: str) -> LogoResolver:
    """Resolver reading the logo from a local file."""
    def resolve() -> Optional[bytes]:
        logo_path = Path(path)
        try:
            return logo_path.read_bytes()
        except OSError as e:
            logger.warning("Logo file unavailable (%s): %s", logo_path, e)
            return None
    return resolve


def url_logo(url: str, timeout: float = 5.0, session: Optional[requests.Session] = None) -> LogoResolver:
    """Resolver fetching the logo over HTTP(S)."""
    def resolve() -> Optional[bytes]:
        client = session or requests
        try:
            response = client.get(url, timeout=timeout)
            if response.status_code != 200:
                logger.warning("Logo request returned HTTP %s: %s", response.status_code, url)
                return None
            return response.content or None
        except requests.RequestException as e:
            logger.warning("Logo request failed (%s): %s", url, e)
            return None
    return resolve


def static_logo(content: Optional[bytes]) -> LogoResolver:
    """Resolver returning bytes already in memory."""
    def resolve() -> Optional[bytes]:
        return content
    return resolve


def resolver_from_config(logo_path: str = "", logo_url: str = "", timeout: float = 5.0) -> LogoResolver:
    """Pick the resolver matching the configured source (file wins over URL)."""
    if logo_path:
        return file_logo(logo_path)
    if logo_url:
        return url_logo(logo_url, timeout=timeout)
    return no_logo
