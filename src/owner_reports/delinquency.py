"""Delinquency aging table → nine delinquency fields.

Management summaries carry a "Delinquency by Days" block: one row per aging
bucket (``0-10`` … ``361+``) with dollars, unit count and usually a percent
column.  Buckets are summed into the 1-30 / 31-60 / 61+ groups the owner
report shows.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal

from owner_reports.coerce import NumberLocale, parse_number
from owner_reports.io import CellValue, Sheet, Workbook, cell_ref
from owner_reports.models import TokenProvenance
from owner_reports.schema import FieldValue, OwnerField

logger = logging.getLogger(__name__)

HeaderRole = Literal["money", "count", "percent"]
PercentSource = Literal["percent_column", "denominator", "none"]

ANCHOR_LABELS = (
    "delinquency by days",
    "delinquency aging",
    "accounts receivable aging",
    "delinquent rent",
    "delinquency",
)
DENOMINATOR_LABELS = (
    "gross occupied revenue",
    "gross occupied rent",
    "occupied revenue",
    "occupied rent",
)
HEADER_SEARCH_ROWS = 5

BUCKET_PATTERNS: Mapping[str, re.Pattern[str]] = MappingProxyType(
    {
        "0_10": re.compile(r"^0-10$"),
        "11_30": re.compile(r"^11-30$"),
        "31_60": re.compile(r"^31-60$"),
        "61_90": re.compile(r"^61-90$"),
        "91_120": re.compile(r"^91-120$"),
        "121_180": re.compile(r"^121-180$"),
        "181_360": re.compile(r"^181-360$"),
        "361_PLUS": re.compile(r"^361\+$"),
    }
)

# (bucket keys, dollars field, units field, percent field)
GROUPS: tuple[tuple[tuple[str, ...], OwnerField, OwnerField, OwnerField], ...] = (
    (("0_10", "11_30"), OwnerField.DELINDOL30, OwnerField.DELINUNIT30, OwnerField.DELINPER30),
    (("31_60",), OwnerField.DELINDOL60, OwnerField.DELINUNIT60, OwnerField.DELINPER60),
    (
        ("61_90", "91_120", "121_180", "181_360", "361_PLUS"),
        OwnerField.DELINDOL61,
        OwnerField.DELINUNIT61,
        OwnerField.DELINPER61,
    ),
)

_STOP_LABELS = {"total", "greaterthan30days"}
_DASH_RE = re.compile(r"[\u2012\u2013\u2014\u2212]")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class AgingRow:
    bucket: str
    row: int
    dollars: float
    units: float
    percent: float | None


@dataclass(frozen=True)
class DelinquencyResult:
    """Delinquency fields read from one aging table, with their source cells."""

    sheet: str
    values: Mapping[OwnerField, FieldValue]
    provenance: Mapping[OwnerField, TokenProvenance]
    percent_source: PercentSource = "none"
    denominator: float | None = None
    rows: tuple[AgingRow, ...] = field(default=())


@dataclass(frozen=True)
class _Header:
    row: int
    money_col: int
    count_col: int
    percent_col: int | None


# ── Text helpers ────────────────────────────────────────────────


def _anchor_text(value: CellValue) -> str:
    text = str(value).replace("\u00a0", " ").lower()
    return _SPACE_RE.sub(" ", _NON_WORD_RE.sub(" ", text)).strip()


def bucket_key(label: str) -> str | None:
    """``"0 – 10"`` → ``"0_10"``; ``"361 plus"`` → ``"361_PLUS"``."""
    text = _DASH_RE.sub("-", label.replace("\u00a0", " ").lower())
    text = re.sub(r"361\s*plus", "361+", text)
    text = _SPACE_RE.sub("", text)
    for key, pattern in BUCKET_PATTERNS.items():
        if pattern.match(text):
            return key
    return None


def classify_header(text: str) -> HeaderRole | None:
    lower = text.lower()
    if "$" in text:
        return "money"
    if "%" in text:
        return "percent"
    if re.search(r"amount|balance|dollars", lower):
        return "money"
    if re.search(r"count|units", lower):
        return "count"
    if "percent" in lower:
        return "percent"
    return None


def _is_blank_row(values: tuple[CellValue, ...]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def _first_label(values: tuple[CellValue, ...]) -> str | None:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


# ── Table detection ─────────────────────────────────────────────


def _find_anchor_row(sheet: Sheet) -> int | None:
    anchors = set(ANCHOR_LABELS)
    for r, _c, value in sheet.iter_cells():
        if isinstance(value, str) and _anchor_text(value) in anchors:
            return r
    return None


def _detect_header(sheet: Sheet, anchor_row: int) -> _Header | None:
    last_row = min(len(sheet.rows) - 1, anchor_row + HEADER_SEARCH_ROWS)
    for r in range(anchor_row, last_row + 1):
        previous: str | None = None
        roles: dict[HeaderRole, int] = {}
        for c, value in enumerate(sheet.rows[r]):
            # Merged header cells only hold text in their first column.
            text = value if isinstance(value, str) and value.strip() else previous
            if not text:
                continue
            previous = text
            role = classify_header(text)
            if role is not None and role not in roles:
                roles[role] = c
        if "money" in roles and "count" in roles:
            return _Header(
                row=r,
                money_col=roles["money"],
                count_col=roles["count"],
                percent_col=roles.get("percent"),
            )
    return None


def _collect_rows(sheet: Sheet, header: _Header, locale: NumberLocale) -> list[AgingRow]:
    rows: list[AgingRow] = []
    seen: set[str] = set()
    for r in range(header.row + 1, len(sheet.rows)):
        values = sheet.rows[r]
        label = None if _is_blank_row(values) else _first_label(values)
        if label is None:
            if rows:
                break
            continue
        key = bucket_key(label)
        if key is None:
            if rows and re.sub(r"[^a-z]", "", label.lower()) in _STOP_LABELS:
                break
            continue
        if key in seen:
            continue
        seen.add(key)

        percent = None
        if header.percent_col is not None:
            parsed = parse_number(sheet.cell(r, header.percent_col), locale=locale)
            percent = None if parsed is None else float(parsed)
        row = AgingRow(
            bucket=key,
            row=r,
            dollars=float(parse_number(sheet.cell(r, header.money_col), locale=locale) or 0),
            units=float(parse_number(sheet.cell(r, header.count_col), locale=locale) or 0),
            percent=percent,
        )
        logger.debug(
            "aging row %s: dollars=%s units=%s percent=%s", key, row.dollars, row.units, row.percent
        )
        rows.append(row)
    return rows


def find_denominator(sheet: Sheet, *, locale: NumberLocale = "auto") -> tuple[float, str] | None:
    """Gross occupied revenue value and its cell reference, if the sheet has one."""
    labels = set(DENOMINATOR_LABELS)
    for r, c, value in sheet.iter_cells():
        if not isinstance(value, str) or _anchor_text(value) not in labels:
            continue
        for dr, dc in ((0, 1), (1, 0)):
            number = parse_number(sheet.cell(r + dr, c + dc), locale=locale)
            if number:
                return float(number), cell_ref(r + dr, c + dc)
    return None


def _as_field_value(number: float) -> FieldValue:
    return int(number) if float(number).is_integer() else number


# ── Public API ──────────────────────────────────────────────────


def extract_delinquency_sheet(sheet: Sheet, *, locale: NumberLocale = "auto") -> DelinquencyResult | None:
    anchor_row = _find_anchor_row(sheet)
    if anchor_row is None:
        return None
    header = _detect_header(sheet, anchor_row)
    if header is None:
        logger.debug("sheet %r: delinquency anchor without money/count headers", sheet.name)
        return None
    rows = _collect_rows(sheet, header, locale)
    if not rows:
        logger.debug("sheet %r: no aging rows beneath delinquency headers", sheet.name)
        return None

    by_bucket = {row.bucket: row for row in rows}
    percent_available = header.percent_col is not None and all(
        row.percent is not None for row in rows
    )
    denominator = None if percent_available else find_denominator(sheet, locale=locale)
    if percent_available:
        percent_source: PercentSource = "percent_column"
    elif denominator is not None:
        percent_source = "denominator"
    else:
        percent_source = "none"

    values: dict[OwnerField, FieldValue] = {}
    provenance: dict[OwnerField, TokenProvenance] = {}
    for buckets, dollars_field, units_field, percent_field in GROUPS:
        group = [by_bucket[b] for b in buckets if b in by_bucket]
        dollars = sum(row.dollars for row in group)
        units = sum(row.units for row in group)
        money_cells = tuple(cell_ref(row.row, header.money_col) for row in group)

        values[dollars_field] = _as_field_value(dollars)
        values[units_field] = _as_field_value(units)
        provenance[dollars_field] = TokenProvenance(sheet.name, money_cells)
        provenance[units_field] = TokenProvenance(
            sheet.name, tuple(cell_ref(row.row, header.count_col) for row in group)
        )

        if percent_source == "percent_column" and header.percent_col is not None:
            # Column holds percentage points.
            values[percent_field] = sum(row.percent or 0.0 for row in group) / 100
            provenance[percent_field] = TokenProvenance(
                sheet.name, tuple(cell_ref(row.row, header.percent_col) for row in group)
            )
        elif denominator is not None:
            values[percent_field] = dollars / denominator[0]
            provenance[percent_field] = TokenProvenance(sheet.name, money_cells + (denominator[1],))
        else:
            values[percent_field] = 0

    logger.info(
        "delinquency aging on sheet %r: %d bucket rows, percent from %s",
        sheet.name,
        len(rows),
        percent_source,
    )
    return DelinquencyResult(
        sheet=sheet.name,
        values=MappingProxyType(values),
        provenance=MappingProxyType(provenance),
        percent_source=percent_source,
        denominator=None if denominator is None else denominator[0],
        rows=tuple(rows),
    )


def extract_delinquency(workbook: Workbook, *, locale: NumberLocale = "auto") -> DelinquencyResult | None:
    """Read the first aging table found, scanning sheets in workbook order.

    Returns ``None`` when no sheet holds an aging table.
    """
    for sheet in workbook.sheets:
        result = extract_delinquency_sheet(sheet, locale=locale)
        if result is not None:
            return result
    return None
