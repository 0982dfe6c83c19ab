from __future__ import annotations

import pytest

from owner_reports.matching import (
    LabelMatcher,
    build_label_table,
    compact_label,
    match_label,
    spaced_label,
)
from owner_reports.schema import FIELD_LABELS, OwnerField


def test_spaced_label_spells_out_symbols_and_joins_inner_hyphens() -> None:
    assert spaced_label("  Move-Ins  (MTD) ") == "moveins mtd"
    assert spaced_label("Occupancy %") == "occupancy percent"
    assert spaced_label("Delinquent 61+") == "delinquent 61 plus"


def test_compact_label_ignores_separators() -> None:
    assert compact_label("Move Ins - MTD") == compact_label("move-ins_mtd") == "moveinsmtd"


@pytest.mark.parametrize(
    ("label", "field"),
    [
        ("Total Units", OwnerField.TOTALUNITS),
        ("TOTAL  UNITS:", OwnerField.TOTALUNITS),
        ("Move Ins - MTD", OwnerField.MOVEINS_MTD),
        ("Occupancy %", OwnerField.OCCUPIEDAREAPERCENT),
        ("Net Operating Income", OwnerField.NETINCOME),
        ("Delinquent Units 31-60", OwnerField.DELINUNIT60),
    ],
)
def test_exact_matches(label: str, field: OwnerField) -> None:
    match = match_label(label)
    assert match is not None
    assert match.field is field
    assert match.method == "exact"
    assert match.score == 100.0


def test_partial_match_prefers_longest_variant() -> None:
    match = match_label("Property Address Line")
    assert match is not None
    assert match.field is OwnerField.ADDRESS
    assert match.method == "partial"
    assert match.variant == "property address"


def test_fuzzy_match_tolerates_typos() -> None:
    match = match_label("Total Unitss")
    assert match is not None
    assert match.field is OwnerField.TOTALUNITS
    assert match.method == "fuzzy"
    assert match.score >= 90


def test_fuzzy_match_never_crosses_bucket_numbers() -> None:
    assert match_label("Delinquent Units 1-60") is None


def test_unrelated_label_does_not_match() -> None:
    assert match_label("Completely unrelated") is None
    assert match_label("") is None
    assert match_label(123) is None


def test_every_built_in_variant_matches_its_own_field() -> None:
    for field, variants in FIELD_LABELS.items():
        for variant in variants:
            match = match_label(variant)
            assert match is not None, variant
            assert match.field is field, variant


def test_min_similarity_is_validated() -> None:
    with pytest.raises(ValueError):
        LabelMatcher(min_similarity=120)


def test_stricter_threshold_rejects_fuzzy_match() -> None:
    assert match_label("Total Unitss", min_similarity=99) is None


def test_build_label_table_appends_extra_variants() -> None:
    table = build_label_table({OwnerField.TOTALUNITS: ["Bldg Units", "total units"]})
    assert table[OwnerField.TOTALUNITS][-1] == "Bldg Units"
    assert table[OwnerField.TOTALUNITS].count("total units") == 1

    match = match_label("bldg units", table)
    assert match is not None
    assert match.field is OwnerField.TOTALUNITS
