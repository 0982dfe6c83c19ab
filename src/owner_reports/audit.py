"""Delinquency audit rows — where each reported delinquency value came from."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from owner_reports import REQUIRED_DELINQUENCY_TOKENS
from owner_reports.coerce import format_display_value
from owner_reports.models import AuditRow, FieldRecord, TokenProvenance
from owner_reports.schema import OwnerField

DASH = "\u2013"


def _unique_cells(cells: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for cell in cells:
        if cell and cell not in seen:
            seen[cell] = None
    return tuple(seen)


def build_audit_rows(
    record: FieldRecord,
    provenance: Mapping[OwnerField, TokenProvenance],
    required_tokens: Iterable[str] = REQUIRED_DELINQUENCY_TOKENS,
    *,
    placeholder: str = DASH,
) -> list[AuditRow]:
    """One row per required token, in the given order.

    Tokens without a recorded source show *placeholder* as their sheet and
    no cells.
    """
    rows: list[AuditRow] = []
    for token in required_tokens:
        field = OwnerField.parse(token)
        source = provenance.get(field)
        sheet = source.sheet.strip() if source is not None else ""
        rows.append(
            AuditRow(
                token=field.value,
                value=format_display_value(field, record[field]),
                sheet=sheet or placeholder,
                cells=_unique_cells(source.cells) if source is not None else (),
            )
        )
    return rows
