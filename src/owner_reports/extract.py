"""Field extraction — workbook cells → a complete :class:`FieldRecord`."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from owner_reports import REQUIRED_DELINQUENCY_TOKENS
from owner_reports.coerce import (
    NumberLocale,
    coerce_value,
    date_from_filename,
    format_month_year,
    month_label,
    parse_number,
)
from owner_reports.config import CELL_FALLBACKS, ExtractionConfig
from owner_reports.delinquency import DelinquencyResult, bucket_key, extract_delinquency
from owner_reports.io import CellValue, Sheet, Workbook, cell_ref, load_workbook_bytes, parse_cell_ref
from owner_reports.matching import LabelMatch, LabelMatcher
from owner_reports.models import CoverageReport, FieldRecord, ProvenanceRecord, TokenProvenance
from owner_reports.schema import DEFAULT_VALUES, FieldValue, OwnerField

logger = logging.getLogger(__name__)

_METHOD_RANK = {"exact": 0, "partial": 1, "fuzzy": 2}


@dataclass(frozen=True)
class ExtractionResult:
    record: FieldRecord
    provenance: ProvenanceRecord
    coverage: CoverageReport
    delinquency: DelinquencyResult | None = None


def is_label_like(value: CellValue, *, locale: NumberLocale = "auto") -> bool:
    """Non-empty text that does not parse as a number."""
    return isinstance(value, str) and bool(value.strip()) and parse_number(value, locale=locale) is None


class _Extraction:
    """Mutable state of one extraction run."""

    def __init__(self, workbook: Workbook, filename: str, config: ExtractionConfig) -> None:
        self.workbook = workbook
        self.filename = filename
        self.config = config
        self.matcher = LabelMatcher(config.label_table, min_similarity=config.min_similarity)
        self.values: dict[OwnerField, FieldValue] = {}
        self.provenance: dict[OwnerField, TokenProvenance] = {}
        self.unmatched: list[str] = []
        self.warnings: list[str] = []

    @property
    def locale(self) -> NumberLocale:
        return self.config.number_locale

    def needs(self, field: OwnerField) -> bool:
        return self.values.get(field, DEFAULT_VALUES[field]) == DEFAULT_VALUES[field]

    def set(self, field: OwnerField, value: FieldValue, sheet: str | None, cells: Iterable[str] = ()) -> None:
        refs = tuple(cells)
        self.values[field] = value
        if sheet is not None:
            self.provenance[field] = TokenProvenance(sheet, refs)
        logger.debug("%s = %r (%s %s)", field.value, value, sheet, ",".join(refs))

    # ── Label scan ──────────────────────────────────────────────

    def _is_label(self, value: CellValue) -> bool:
        if not is_label_like(value, locale=self.locale):
            return False
        match = self.matcher.match(value)
        return match is not None and match.method == "exact"

    def _take_neighbor(self, sheet: Sheet, field: OwnerField, r: int, c: int) -> bool:
        for adjacency in self.config.adjacency:
            dr, dc = adjacency.offset
            neighbor = sheet.cell(r + dr, c + dc)
            if neighbor is None or self._is_label(neighbor):
                continue
            value = coerce_value(field, neighbor, locale=self.locale)
            if value is None:
                continue
            self.set(field, value, sheet.name, (cell_ref(r + dr, c + dc),))
            return True
        return False

    def _note_unmatched(self, sheet: Sheet, label: str, r: int, c: int) -> None:
        text = label.strip()
        if text in self.unmatched or bucket_key(text) is not None:
            return
        for adjacency in self.config.adjacency:
            dr, dc = adjacency.offset
            if parse_number(sheet.cell(r + dr, c + dc), locale=self.locale) is not None:
                self.unmatched.append(text)
                return

    def scan_labels(self) -> None:
        """Take each matched label's neighbour, strongest match first.

        Exact matches claim their field before partial ones, and partial
        before fuzzy; within a tier the first label in sheet order wins.
        """
        candidates: list[tuple[int, int, Sheet, int, int, str, LabelMatch]] = []
        for sheet in self.workbook.sheets:
            for r, c, value in sheet.iter_cells():
                if not isinstance(value, str) or not is_label_like(value, locale=self.locale):
                    continue
                match = self.matcher.match(value)
                if match is None:
                    self._note_unmatched(sheet, value, r, c)
                    continue
                candidates.append((_METHOD_RANK[match.method], len(candidates), sheet, r, c, value, match))

        candidates.sort(key=lambda candidate: candidate[:2])
        for _, _, sheet, r, c, value, match in candidates:
            if match.field in self.values:
                continue
            if self._take_neighbor(sheet, match.field, r, c):
                logger.debug(
                    "label %r -> %s (%s, %.1f)", value, match.field.value, match.method, match.score
                )

    # ── Fallbacks ───────────────────────────────────────────────

    def filename_date(self) -> None:
        if not self.needs(OwnerField.CURRENTDATE):
            return
        found = date_from_filename(self.filename)
        if found is None:
            return
        self.set(OwnerField.CURRENTDATE, format_month_year(found), None)
        self.warnings.append(f"CURRENTDATE taken from filename {self.filename!r}")

    def cell_fallbacks(self) -> None:
        if not self.workbook.sheets:
            return
        first = self.workbook.sheets[0]
        used: list[str] = []
        for field, ref in CELL_FALLBACKS.items():
            if not self.needs(field):
                continue
            raw = first.cell(*parse_cell_ref(ref))
            if raw is None:
                continue
            value = coerce_value(field, raw, locale=self.locale)
            if value is None or value == DEFAULT_VALUES[field]:
                continue
            self.set(field, value, first.name, (ref,))
            used.append(f"{field.value}<-{ref}")
        if used:
            self.warnings.append(f"Fixed-cell fallbacks used: {', '.join(used)}")

    def derive_month(self) -> None:
        if not self.needs(OwnerField.CURRENTMONTH) or self.needs(OwnerField.CURRENTDATE):
            return
        month = month_label(self.values[OwnerField.CURRENTDATE])
        if not month:
            return
        source = self.provenance.get(OwnerField.CURRENTDATE)
        self.set(
            OwnerField.CURRENTMONTH,
            month,
            source.sheet if source else None,
            source.cells if source else (),
        )

    def total_row_units(self) -> None:
        if not self.needs(OwnerField.TOTALUNITS) or not self.workbook.sheets:
            return
        first = self.workbook.sheets[0]
        for r, row in enumerate(first.rows):
            if not any(isinstance(v, str) and v.strip().lower() == "total" for v in row):
                continue
            for c, value in enumerate(row):
                number = parse_number(value, locale=self.locale)
                if number is not None and number > 0:
                    self.set(OwnerField.TOTALUNITS, number, first.name, (cell_ref(r, c),))
                    return

    # ── Run ─────────────────────────────────────────────────────

    def run(self) -> ExtractionResult:
        delinquency = extract_delinquency(self.workbook, locale=self.locale)
        if delinquency is not None:
            for field, value in delinquency.values.items():
                self.values[field] = value
            self.provenance.update(delinquency.provenance)
            if delinquency.percent_source == "none":
                self.warnings.append("Delinquency percentages unavailable (no percent column or denominator)")

        self.scan_labels()
        if self.config.use_filename_date:
            self.filename_date()
        if self.config.use_cell_fallbacks:
            self.cell_fallbacks()
            self.derive_month()
            self.total_row_units()

        coverage = CoverageReport.from_found(
            self.values, unmatched_labels=self.unmatched, warnings=self.warnings
        )
        logger.info(
            "%s: %d fields found, %d missing",
            self.filename,
            len(coverage.found),
            len(coverage.missing),
        )
        return ExtractionResult(
            record=FieldRecord.from_values(self.values),
            provenance=ProvenanceRecord(self.provenance),
            coverage=coverage,
            delinquency=delinquency,
        )


# ── Public API ──────────────────────────────────────────────────


def extract_workbook(
    workbook: Workbook,
    filename: str | None = None,
    *,
    config: ExtractionConfig | None = None,
) -> ExtractionResult:
    """Extract every schema field from an already decoded workbook.

    Missing fields keep their defaults and are listed in
    ``result.coverage.missing``; this never raises for absent data.
    """
    return _Extraction(workbook, filename or workbook.filename, config or ExtractionConfig()).run()


def extract_fields(data: bytes, filename: str, *, config: ExtractionConfig | None = None) -> FieldRecord:
    """Decode *data* and return the complete field record.

    Raises
    ------
    WorkbookDecodeError
        If the bytes cannot be decoded as a workbook.
    """
    return extract_workbook(load_workbook_bytes(data, filename), filename, config=config).record


def extract_fields_with_provenance(
    data: bytes,
    filename: str,
    *,
    tokens: Iterable[str] = REQUIRED_DELINQUENCY_TOKENS,
    config: ExtractionConfig | None = None,
) -> tuple[FieldRecord, ProvenanceRecord]:
    """Like :func:`extract_fields`, plus provenance restricted to *tokens*."""
    result = extract_workbook(load_workbook_bytes(data, filename), filename, config=config)
    return result.record, result.provenance.subset(tokens)
