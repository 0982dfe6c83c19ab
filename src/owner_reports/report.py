"""Excel audit writer — produces Owner_Report_Audit.xlsx."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, cast

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from owner_reports.audit import DASH
from owner_reports.coerce import format_display_value
from owner_reports.models import AuditRow, CoverageReport, FieldRecord, ProvenanceRecord
from owner_reports.schema import FIELD_KINDS, FieldKind, OwnerField

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")

NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
KPI_FILL = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")

AUDIT_FILENAME = "Owner_Report_Audit.xlsx"

_KIND_FORMATS: dict[FieldKind, str] = {
    FieldKind.NUMBER: "#,##0.###",
    FieldKind.CURRENCY: '"$"#,##0',
}

# Headline fields shown on the Summary sheet.
SUMMARY_FIELDS: tuple[OwnerField, ...] = (
    OwnerField.CURRENTDATE,
    OwnerField.ADDRESS,
    OwnerField.TOTALUNITS,
    OwnerField.OCCUPANCYBYUNITS,
    OwnerField.OCCUPIEDAREAPERCENT,
    OwnerField.TOTALINCOME,
    OwnerField.NETINCOME,
)

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            cell = row[0]
            width = max(width, len(str(cell.value or "")))
        width += 4
        ws.column_dimensions[letter].width = min(width, 40)


def _sanitize_table_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", name)
    if not cleaned:
        cleaned = "Table"
    if not re.match(r"^[A-Za-z_]", cleaned):
        cleaned = f"_{cleaned}"
    return cleaned[:255]


def _unique_table_name(ws: Worksheet, base_name: str) -> str:
    parent = ws.parent
    if parent is None:
        return base_name

    existing: set[str] = set()
    for sheet in parent.worksheets:
        existing.update(cast(Iterable[str], sheet.tables.keys()))
    if base_name not in existing:
        return base_name

    suffix = 1
    while True:
        suffix_str = f"_{suffix}"
        candidate = f"{base_name[: 255 - len(suffix_str)]}{suffix_str}"
        if candidate not in existing:
            return candidate
        suffix += 1


def _add_excel_table(ws: Worksheet, name: str, ncols: int, nrows: int) -> None:
    """Turn the data range into a proper Excel Table object."""
    if nrows < 1 or ncols < 1:
        return
    end_col = get_column_letter(ncols)
    ref = f"A1:{end_col}{nrows + 1}"  # +1 for header
    table_name = _unique_table_name(ws, _sanitize_table_name(name))
    table = Table(displayName=table_name, ref=ref)
    table.tableStyleInfo = TableStyleInfo(
        name="TableStyleMedium9", showFirstColumn=False,
        showLastColumn=False, showRowStripes=True, showColumnStripes=False,
    )
    ws.add_table(table)


def _excel_value(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"
    return val


def _df_to_sheet(wb: Workbook, name: str, df: pd.DataFrame) -> Worksheet:
    ws = wb.create_sheet(title=name)
    col_names = list(df.columns)

    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
    _style_header(ws, len(col_names))
    ws.freeze_panes = "A2"
    _auto_width(ws)
    _add_excel_table(ws, name, len(col_names), len(df))
    return ws


def _fill_row(ws: Worksheet, row: int, fill: PatternFill, ncols: int = 4) -> None:
    for c in range(1, ncols + 1):
        ws.cell(row=row, column=c).fill = fill


# ── Sheets ───────────────────────────────────────────────────────


def _write_summary(wb: Workbook, record: FieldRecord, coverage: CoverageReport, source: str) -> None:
    ws = wb.create_sheet(title="Summary")

    ws.cell(row=1, column=1, value="owner-reports — Extraction Audit").font = TITLE_FONT
    ws.merge_cells("A1:D1")
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    subtitle = f"Generated {generated}" + (f" from {source}" if source else "")
    ws.cell(row=2, column=1, value=subtitle).font = SUBTITLE_FONT
    ws.merge_cells("A2:D2")

    # ── Notes block (from coverage) ──────────────────────────────
    row = 4
    ws.cell(row=row, column=1, value="Notes").font = LABEL_FONT
    ws.merge_cells(f"A{row}:D{row}")
    _fill_row(ws, row, NOTE_FILL)
    row += 1
    ws.cell(row=row, column=1, value=f"Fields found: {len(coverage.found)}")
    ws.cell(row=row, column=2, value=f"Missing: {len(coverage.missing)}")
    ws.cell(row=row, column=3, value=f"Unmatched labels: {len(coverage.unmatched_labels)}")
    _fill_row(ws, row, NOTE_FILL)
    row += 1
    notes = [f"Missing: {', '.join(coverage.missing)}"] if coverage.missing else []
    notes.extend(coverage.warnings)
    if notes:
        for note in notes:
            ws.cell(row=row, column=1, value=f"⚠ {note}").font = WARN_FONT
            _fill_row(ws, row, NOTE_FILL)
            row += 1
    else:
        ws.cell(row=row, column=1, value="No warnings").font = VALUE_FONT
        _fill_row(ws, row, NOTE_FILL)
        row += 1

    # ── Headline fields ──────────────────────────────────────────
    row += 1
    ws.cell(row=row, column=1, value="Key Fields").font = LABEL_FONT
    ws.merge_cells(f"A{row}:D{row}")
    _fill_row(ws, row, KPI_FILL)
    row += 1
    for field in SUMMARY_FIELDS:
        lbl_cell = ws.cell(row=row, column=1, value=field.value)
        lbl_cell.font = LABEL_FONT
        lbl_cell.fill = KPI_FILL
        val_cell = ws.cell(row=row, column=2, value=format_display_value(field, record[field]))
        val_cell.font = VALUE_FONT
        val_cell.fill = KPI_FILL
        if FIELD_KINDS[field] is not FieldKind.TEXT:
            val_cell.alignment = Alignment(horizontal="right")
        row += 1

    ws.column_dimensions["A"].width = 24
    ws.column_dimensions["B"].width = 28
    ws.column_dimensions["C"].width = 22
    ws.column_dimensions["D"].width = 18


def _fields_frame(record: FieldRecord, provenance: ProvenanceRecord, coverage: CoverageReport) -> pd.DataFrame:
    found = set(coverage.found)
    rows = []
    for field in OwnerField:
        source = provenance.get(field)
        rows.append(
            {
                "Field": field.value,
                "Kind": FIELD_KINDS[field].value,
                "Value": record[field],
                "Display": format_display_value(field, record[field]),
                "Found": "yes" if field.value in found else "no",
                "Sheet": source.sheet if source else DASH,
                "Cells": ", ".join(source.cells) if source and source.cells else DASH,
            }
        )
    return pd.DataFrame(rows, columns=["Field", "Kind", "Value", "Display", "Found", "Sheet", "Cells"])


def _audit_frame(rows: Sequence[AuditRow]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Token": row.token,
                "Value": row.value,
                "Sheet": row.sheet,
                "Cell(s)": " + ".join(row.cells) if row.cells else DASH,
            }
            for row in rows
        ],
        columns=["Token", "Value", "Sheet", "Cell(s)"],
    )


# ── Public API ───────────────────────────────────────────────────


def write_audit_workbook(
    out_dir: Path,
    record: FieldRecord,
    provenance: ProvenanceRecord,
    rows: Sequence[AuditRow],
    coverage: CoverageReport | None = None,
    *,
    source: str = "",
) -> Path:
    """Write ``Owner_Report_Audit.xlsx`` and return the path."""
    if coverage is None:
        coverage = CoverageReport.from_found(provenance)

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / AUDIT_FILENAME

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet

    _write_summary(wb, record, coverage, source)

    fields_ws = _df_to_sheet(wb, "Fields", _fields_frame(record, provenance, coverage))
    for r_idx, field in enumerate(OwnerField, 2):
        fmt = _KIND_FORMATS.get(FIELD_KINDS[field])
        if fmt:
            fields_ws.cell(row=r_idx, column=3).number_format = fmt

    _df_to_sheet(wb, "Delinquency_Audit", _audit_frame(rows))

    tmp_path = out_dir / "Owner_Report_Audit.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
