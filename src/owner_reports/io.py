"""I/O helpers — decode uploaded workbooks into cell grids, write artifacts."""

from __future__ import annotations

import io
import json
import math
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Union, cast

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.cell import coordinate_from_string, column_index_from_string
from openpyxl.utils.exceptions import InvalidFileException

from owner_reports.errors import WorkbookDecodeError

CellValue = Union[str, int, float, bool, datetime, date, None]

XLSX_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
_ZIP_MAGIC = b"PK\x03\x04"


# ── Workbook model ──────────────────────────────────────────────


@dataclass(frozen=True)
class Sheet:
    """A named grid of typed cells; ``rows[r][c]`` is cell ``(r, c)``, 0-based."""

    name: str
    rows: tuple[tuple[CellValue, ...], ...] = ()

    def cell(self, row: int, col: int) -> CellValue:
        if row < 0 or col < 0 or row >= len(self.rows):
            return None
        values = self.rows[row]
        return values[col] if col < len(values) else None

    def iter_cells(self) -> Iterator[tuple[int, int, CellValue]]:
        for r, values in enumerate(self.rows):
            for c, value in enumerate(values):
                yield r, c, value


@dataclass(frozen=True)
class Workbook:
    filename: str
    sheets: tuple[Sheet, ...] = ()


def cell_ref(row: int, col: int) -> str:
    """A1-style reference for 0-based ``(row, col)``."""
    return f"{get_column_letter(col + 1)}{row + 1}"


def parse_cell_ref(ref: str) -> tuple[int, int]:
    """0-based ``(row, col)`` for an A1-style reference."""
    letters, row = coordinate_from_string(ref.strip().upper())
    return row - 1, column_index_from_string(letters) - 1


def _cell_value(value: Any) -> CellValue:
    if value is None:
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if value is pd.NA or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    item = getattr(value, "item", None)
    if callable(item) and not isinstance(value, (int, float, bool)):
        value = item()
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, (int, float, bool, datetime, date)):
        return value
    return str(value)


def _sheet_from_rows(name: str, rows: Any) -> Sheet:
    grid = tuple(tuple(_cell_value(v) for v in row) for row in rows)
    while grid and all(v is None for v in grid[-1]):
        grid = grid[:-1]
    return Sheet(name=name, rows=grid)


# ── Loading ─────────────────────────────────────────────────────


def _read_xlsx(data: bytes, filename: str) -> Workbook:
    try:
        wb = load_workbook(io.BytesIO(data), data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
        raise WorkbookDecodeError(filename, str(exc) or type(exc).__name__) from exc
    sheets = []
    for ws in wb.worksheets:
        rows = ws.iter_rows(
            min_row=1,
            min_col=1,
            max_row=ws.max_row,
            max_col=ws.max_column,
            values_only=True,
        )
        sheets.append(_sheet_from_rows(ws.title, rows))
    wb.close()
    return Workbook(filename=filename, sheets=tuple(sheets))


def _read_csv(data: bytes, filename: str, delimiter: str) -> Workbook:
    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
            continue
        # Exports are ragged; size the frame by the widest line.
        width = max((line.count(delimiter) for line in text.splitlines()), default=0) + 1
        try:
            frame = pd.read_csv(
                io.StringIO(text),
                header=None,
                names=list(range(width)),
                sep=delimiter,
                dtype="string",
                na_filter=False,
                keep_default_na=False,
                skip_blank_lines=False,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            last_exc = exc
            continue
        rows = frame.astype(object).itertuples(index=False, name=None)
        stem = Path(filename).stem or "Sheet1"
        return Workbook(filename=filename, sheets=(_sheet_from_rows(stem, rows),))
    raise WorkbookDecodeError(filename, "decode or parse failed") from last_exc


def _read_xls(data: bytes, filename: str) -> Workbook:
    read_excel = cast(Callable[..., Any], getattr(pd, "read_excel"))
    try:
        frames = read_excel(io.BytesIO(data), sheet_name=None, header=None, engine="xlrd")
    except ImportError as exc:
        raise WorkbookDecodeError(
            filename,
            "legacy .xls input needs 'xlrd' (pip install xlrd) or convert to .xlsx",
        ) from exc
    except Exception as exc:
        raise WorkbookDecodeError(filename, str(exc) or type(exc).__name__) from exc
    sheets = tuple(
        _sheet_from_rows(str(name), frame.astype(object).itertuples(index=False, name=None))
        for name, frame in frames.items()
    )
    return Workbook(filename=filename, sheets=sheets)


def load_workbook_bytes(data: bytes, filename: str = "report.xlsx", *, delimiter: str = ",") -> Workbook:
    """Decode uploaded spreadsheet bytes into a :class:`Workbook`.

    Raises
    ------
    WorkbookDecodeError
        If the bytes are empty, corrupt, or not a supported format.
    """
    if not data:
        raise WorkbookDecodeError(filename, "file is empty")
    suffix = Path(filename).suffix.lower()
    if not suffix and data.startswith(_ZIP_MAGIC):
        suffix = ".xlsx"

    if suffix in XLSX_SUFFIXES:
        return _read_xlsx(data, filename)
    if suffix == ".csv":
        return _read_csv(data, filename, delimiter)
    if suffix == ".xls":
        return _read_xls(data, filename)
    raise WorkbookDecodeError(
        filename, f"unsupported file type {suffix or '(none)'!r}; use .xlsx, .csv, or .xls"
    )


def read_input_bytes(path: Path) -> bytes:
    """Read an input file, with friendly errors for missing paths and directories."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input path is a directory, not a file: {path}")
    return path.read_bytes()


def load_workbook_path(path: Path, *, delimiter: str = ",") -> Workbook:
    path = Path(path)
    return load_workbook_bytes(read_input_bytes(path), path.name, delimiter=delimiter)


# ── Writing ─────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_bytes(path: Path, payload: bytes) -> Path:
    """Write *payload* to *path* atomically via a sibling temp file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_bytes(payload)
    tmp_path.replace(path)
    return path


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    return write_bytes(path, payload.encode("utf-8"))
