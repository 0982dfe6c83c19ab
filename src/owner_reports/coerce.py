"""Cell coercion and display formatting — pure functions, no side effects."""

from __future__ import annotations

import calendar
import math
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

import pandas as pd

from owner_reports.schema import DATE_STYLES, FIELD_KINDS, FieldKind, FieldValue, OwnerField

NumberLocale = Literal["auto", "us", "eu"]

_THOUSANDS_COMMA_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+$")
_THOUSANDS_DOT_RE = re.compile(r"^[+-]?\d{1,3}(\.\d{3})+$")
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_US_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")
_DATE_LIKE_RE = re.compile(r"[A-Za-z]{3,}|\d{1,4}[/.-]\d{1,2}")
_FILENAME_DATE_RE = re.compile(
    r"(20\d{2})[-_.]?(0[1-9]|1[0-2])[-_.]?(0[1-9]|[12]\d|3[01])"
)
_MONTH_NAMES = {name.lower(): idx for idx, name in enumerate(calendar.month_name) if name}
_MONTH_ABBRS = {name.lower(): idx for idx, name in enumerate(calendar.month_abbr) if name}
_EXCEL_EPOCH = datetime(1899, 12, 30)


# ── Numbers ─────────────────────────────────────────────────────


def normalize_numeric_token(token: str, *, locale: NumberLocale = "auto") -> str:
    """Strip currency, percent and grouping noise so ``float()`` can parse *token*."""
    token = token.strip()
    token = re.sub(r"^\((.*)\)$", r"-\1", token)
    token = token.replace("%", "")
    token = re.sub(r"[\$€£]", "", token)
    token = re.sub(r"(?<=\d)\s+(?=\d)", "", token)
    token = token.replace("'", "").replace("_", "").strip()
    token = re.sub(r"^-\s+", "-", token)
    if token.startswith("+"):
        token = token[1:]

    has_comma = "," in token
    has_dot = "." in token

    if locale == "eu":
        if has_comma and has_dot:
            return token.replace(".", "").replace(",", ".")
        if has_comma and token.count(",") == 1:
            return token.replace(",", ".")
        if has_dot and _THOUSANDS_DOT_RE.fullmatch(token):
            return token.replace(".", "")
        return token

    if has_comma and has_dot:
        if locale == "auto" and token.rfind(",") > token.rfind("."):
            return token.replace(".", "").replace(",", ".")
        return token.replace(",", "")
    if has_comma:
        if _THOUSANDS_COMMA_RE.fullmatch(token):
            return token.replace(",", "")
        if locale == "auto" and token.count(",") == 1:
            whole, frac = token.split(",", 1)
            if len(frac) in (1, 2):
                return f"{whole}.{frac}"
    return token


def parse_number(value: object, *, locale: NumberLocale = "auto") -> int | float | None:
    """Return *value* as a number, or ``None`` when it is not numeric.

    ``"$12,345.00"`` → ``12345``; ``"(1,200)"`` → ``-1200``.
    """
    if value is None or isinstance(value, (bool, date, datetime)):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        token = normalize_numeric_token(value, locale=locale)
        if not _NUMBER_RE.fullmatch(token):
            return None
        number = float(token)
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    if number.is_integer():
        return int(number)
    return number


# ── Dates ───────────────────────────────────────────────────────


def excel_serial_to_date(serial: float) -> date | None:
    if not 20000 < serial < 80000:
        return None
    return (_EXCEL_EPOCH + timedelta(days=float(serial))).date()


def parse_date(value: object) -> date | None:
    """Best-effort date parse for cells and labels; ``None`` when not date-like."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return excel_serial_to_date(float(value))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or not _DATE_LIKE_RE.search(text):
        return None
    iso = _ISO_DATE_RE.match(text)
    if iso:
        try:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        except ValueError:
            return None
    us = _US_DATE_RE.match(text)
    if us:
        year = int(us.group(3))
        if year < 100:
            year += 2000
        try:
            return date(year, int(us.group(1)), int(us.group(2)))
        except ValueError:
            return None
    parsed = pd.to_datetime(text, errors="coerce", format="mixed")
    if pd.isna(parsed):
        return None
    return parsed.date()


def date_from_filename(filename: str) -> date | None:
    """Pull a ``YYYY-MM-DD`` style date out of an export filename."""
    match = _FILENAME_DATE_RE.search(filename or "")
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def format_month_year(value: object) -> str:
    parsed = parse_date(value)
    if parsed is None:
        return ""
    return f"{calendar.month_name[parsed.month]} {parsed.year}"


def month_label(value: object) -> str:
    """Month name only: ``"March 2025"`` → ``"March"``."""
    if isinstance(value, str):
        word = value.strip().split(" ")[0].rstrip(".,").lower()
        idx = _MONTH_NAMES.get(word) or _MONTH_ABBRS.get(word)
        if idx:
            return calendar.month_name[idx]
    parsed = parse_date(value)
    if parsed is None:
        return ""
    return calendar.month_name[parsed.month]


# ── Field coercion ──────────────────────────────────────────────


def _plain_text(value: object) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def coerce_text(field: OwnerField, value: object) -> str | None:
    """Coerce *value* for a text field; ``None`` when it cannot be used."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    style = DATE_STYLES.get(field)
    if style == "month_year":
        return format_month_year(value) or None
    if style == "month":
        return month_label(value) or None
    if style == "iso_date":
        parsed = parse_date(value)
        if parsed is not None:
            return parsed.isoformat()
    return _plain_text(value) or None


def coerce_value(
    field: OwnerField, value: object, *, locale: NumberLocale = "auto"
) -> FieldValue | None:
    """Coerce a raw cell to the declared type of *field*.

    Percent fields keep the raw number; scaling happens at display time.
    """
    if FIELD_KINDS[field] is FieldKind.TEXT:
        return coerce_text(field, value)
    return parse_number(value, locale=locale)


# ── Display ─────────────────────────────────────────────────────


def _round_half_up(value: float, places: int) -> Decimal:
    quantum = Decimal(1).scaleb(-places)
    return Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP)


def format_count(value: float) -> str:
    """Thousands separators, up to three decimals: ``1234.5`` → ``"1,234.5"``."""
    rounded = _round_half_up(value, 3)
    if rounded == 0:
        return "0"
    if rounded == rounded.to_integral_value():
        return f"{int(rounded):,}"
    return f"{rounded:,.3f}".rstrip("0").rstrip(".")


def format_currency(value: float) -> str:
    rounded = int(_round_half_up(value, 0))
    if rounded < 0:
        return f"-${-rounded:,}"
    return f"${rounded:,}"


def format_percent(value: float, *, with_sign: bool = True) -> str:
    """One decimal percent; fractions (``|v| <= 1``) are scaled by 100."""
    scaled = value * 100 if abs(value) <= 1 else value
    rounded = _round_half_up(scaled, 1)
    if rounded == 0:
        rounded = Decimal("0.0")
    text = f"{rounded:.1f}"
    return f"{text}%" if with_sign else text


def format_display_value(
    field: OwnerField, value: FieldValue, *, trailing_percent: bool = False
) -> str:
    """Template-ready string for *value*.

    *trailing_percent* means the template already prints ``%`` after the
    placeholder, so percent fields render without their own sign.
    """
    kind = FIELD_KINDS[field]
    if kind is FieldKind.TEXT:
        return str(value)
    number = float(value)
    if kind is FieldKind.PERCENT:
        return format_percent(number, with_sign=not trailing_percent)
    if kind is FieldKind.CURRENCY:
        return format_currency(number)
    return format_count(number)
