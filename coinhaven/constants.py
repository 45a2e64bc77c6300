"""
coinhaven.constants — Shared Constants & Helpers
=================================================

Single source of truth for presentation constants, currency formatting
and user-typed amount parsing.  Import from here instead of duplicating
in cogs and services.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

# ---------------------------------------------------------------------------
# Embed colours
# ---------------------------------------------------------------------------
COLOR_SUCCESS = 0x00FF00
COLOR_ERROR = 0xFF0000
COLOR_INFO = 0x4569CC
COLOR_RED = 0xFF0000
COLOR_YELLOW = 0xFFFF00

# Reply shown whenever a stored row is missing or unreadable.
CONTACT_DEVELOPERS = "Contact developers."


# ---------------------------------------------------------------------------
# Currency formatting
# ---------------------------------------------------------------------------
def format_number(value: int) -> str:
    """``1234567`` → ``"1,234,567"``."""
    return f"{value:,}"


def format_currency(value: int, symbol: str = "$") -> str:
    """``-1500`` → ``"-$1,500"``."""
    if value < 0:
        return f"-{symbol}{format_number(-value)}"
    return f"{symbol}{format_number(value)}"


# ---------------------------------------------------------------------------
# Amount parsing — "50k", "1.5m", "2b", "1,000"
# ---------------------------------------------------------------------------
_AMOUNT_RE = re.compile(r"^(\d+(?:\.\d+)?)([kmb]?)$")
_SUFFIXES: dict[str, int] = {"": 1, "k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


def parse_amount(raw: str | int | None) -> int | None:
    """Parse a user-typed amount into a non-negative integer.

    Thousands separators (``,`` and ``_``) and whitespace are ignored.
    A ``k``/``m``/``b`` suffix scales the number.  Returns ``None`` when
    the text is not a whole, non-negative amount after scaling.
    """
    if raw is None:
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None

    text = re.sub(r"[\s,_]", "", raw).lower()
    match = _AMOUNT_RE.match(text)
    if match is None:
        return None

    try:
        value = Decimal(match.group(1)) * _SUFFIXES[match.group(2)]
    except InvalidOperation:
        return None
    if value != value.to_integral_value():
        return None
    return int(value)


def js_round(value: float) -> int:
    """Round half towards positive infinity (JavaScript ``Math.round``)."""
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def discord_timestamp(dt: datetime, style: str = "R") -> str:
    """``<t:1700000000:R>``, rendered client-side as "in 5 minutes"."""
    return f"<t:{int(ensure_utc(dt).timestamp())}:{style}>"
