"""
Cell coercion: raw spreadsheet values to typed values.  Pure, never raises.

xlsx cells arrive as str, int, float, datetime or None; csv cells are always
str.  Every function here returns None for a value it cannot interpret so
that one odd cell degrades a field instead of failing the row.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from openpyxl.utils.datetime import from_excel

_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y",
)

# Serial day numbers outside this window are not plausible order dates
_MIN_SERIAL = 1
_MAX_SERIAL = 2_958_465  # 9999-12-31


def clean_string(value: Any) -> str | None:
    """Trimmed text; empty becomes None.  Whole-number floats lose their '.0'."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = str(value).strip()
    return s or None


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        # str() first so 0.9 stays 0.9 and not its binary expansion
        return Decimal(str(value))
    s = str(value).strip().replace(",", "")
    if not s:
        return None
    try:
        result = Decimal(s)
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def parse_int(value: Any) -> int | None:
    d = parse_decimal(value)
    if d is None or d != d.to_integral_value():
        return None
    return int(d)


def parse_rate(value: Any) -> Decimal | None:
    """Discount cell: 0.9, '0.9' or '90%'."""
    if isinstance(value, str) and value.strip().endswith("%"):
        d = parse_decimal(value.strip()[:-1])
        return d / 100 if d is not None else None
    return parse_decimal(value)


def parse_datetime(value: Any) -> datetime | None:
    """
    Naive datetime from a date cell, a spreadsheet serial number, or text.

    Timezone-aware input is converted to its wall-clock time and made naive,
    matching how payment times are stored.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, (int, float, Decimal)):
        return _from_serial(float(value))

    s = str(value).strip()
    if not s:
        return None
    try:
        return _from_serial(float(s))
    except ValueError:
        pass
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


def _from_serial(serial: float) -> datetime | None:
    if not _MIN_SERIAL <= serial <= _MAX_SERIAL:
        return None
    result = from_excel(serial)
    if isinstance(result, datetime):
        return result.replace(microsecond=0)
    if isinstance(result, date):
        return datetime.combine(result, time.min)
    return None
