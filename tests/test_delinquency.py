from __future__ import annotations

import pytest

from owner_reports.coerce import format_display_value
from owner_reports.delinquency import (
    bucket_key,
    classify_header,
    extract_delinquency,
    extract_delinquency_sheet,
    find_denominator,
)
from owner_reports.io import Sheet, Workbook
from owner_reports.models import TokenProvenance
from owner_reports.schema import DELINQUENCY_FIELDS, OwnerField


def _aging_sheet(name: str = "Aging") -> Sheet:
    return Sheet(
        name,
        (
            ("Management Summary", None, None, None),
            ("Delinquency by Days", None, None, None),
            ("Days", "Amount", "Units", "% of Rent"),
            ("0-10", 1000, 2, 1.5),
            ("11-30", "$500.00", 1, "0.5%"),
            ("31-60", 750, 1, 1.0),
            ("61-90", 200, 1, 0.2),
            ("361+", 300, 1, 0.3),
            ("Total", 2750, 6, 3.5),
        ),
    )


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("0-10", "0_10"),
        ("0 \u2013 10", "0_10"),
        ("11 - 30", "11_30"),
        ("181-360", "181_360"),
        ("361+", "361_PLUS"),
        ("361 plus", "361_PLUS"),
        ("Total", None),
        ("0-100", None),
    ],
)
def test_bucket_key(label: str, expected: str | None) -> None:
    assert bucket_key(label) == expected


@pytest.mark.parametrize(
    ("text", "role"),
    [
        ("Amount ($)", "money"),
        ("Balance", "money"),
        ("% of total", "percent"),
        ("Percent", "percent"),
        ("Unit Count", "count"),
        ("Tenant", None),
    ],
)
def test_classify_header(text: str, role: str | None) -> None:
    assert classify_header(text) == role


def test_percent_column_is_summed_per_group() -> None:
    result = extract_delinquency_sheet(_aging_sheet())

    assert result is not None
    assert result.percent_source == "percent_column"
    assert [row.bucket for row in result.rows] == ["0_10", "11_30", "31_60", "61_90", "361_PLUS"]
    values = result.values
    assert values[OwnerField.DELINDOL30] == 1500
    assert values[OwnerField.DELINUNIT30] == 3
    assert values[OwnerField.DELINPER30] == pytest.approx(0.02)
    assert values[OwnerField.DELINDOL60] == 750
    assert values[OwnerField.DELINUNIT60] == 1
    assert values[OwnerField.DELINDOL61] == 500
    assert values[OwnerField.DELINUNIT61] == 2
    assert values[OwnerField.DELINPER61] == pytest.approx(0.005)
    assert set(values) == set(DELINQUENCY_FIELDS)


def test_percent_column_points_display_unscaled() -> None:
    result = extract_delinquency_sheet(_aging_sheet())

    assert result is not None
    shown = {f: format_display_value(f, result.values[f]) for f in DELINQUENCY_FIELDS if f.value.startswith("DELINPER")}
    assert shown == {
        OwnerField.DELINPER30: "2.0%",
        OwnerField.DELINPER60: "1.0%",
        OwnerField.DELINPER61: "0.5%",
    }


def test_provenance_points_at_bucket_cells() -> None:
    result = extract_delinquency_sheet(_aging_sheet())

    assert result is not None
    assert result.provenance[OwnerField.DELINDOL30] == TokenProvenance("Aging", ("B4", "B5"))
    assert result.provenance[OwnerField.DELINUNIT60] == TokenProvenance("Aging", ("C6",))
    assert result.provenance[OwnerField.DELINPER61] == TokenProvenance("Aging", ("D7", "D8"))


def test_missing_percent_uses_denominator_as_fraction() -> None:
    sheet = Sheet(
        "Summary",
        (
            ("Gross Occupied Revenue", 10000, None),
            (None, None, None),
            ("Delinquency Aging", None, None),
            ("Bucket", "Balance", "Count"),
            ("0-10", 1000, 2),
            ("11-30", 500, 1),
            ("31-60", 250, 1),
            (None, None, None),
            ("91-120", 999, 9),
        ),
    )

    result = extract_delinquency_sheet(sheet)

    assert result is not None
    assert result.percent_source == "denominator"
    assert result.denominator == 10000
    assert result.values[OwnerField.DELINPER30] == pytest.approx(0.15)
    assert result.values[OwnerField.DELINPER60] == pytest.approx(0.025)
    assert result.values[OwnerField.DELINDOL61] == 0
    assert result.provenance[OwnerField.DELINPER30].cells == ("B5", "B6", "B1")


def test_without_percent_or_denominator_percentages_are_zero() -> None:
    sheet = Sheet(
        "Aging",
        (
            ("Delinquency", None, None),
            ("Days", "Dollars", "Units"),
            ("61-90", 400, 1),
        ),
    )

    result = extract_delinquency_sheet(sheet)

    assert result is not None
    assert result.percent_source == "none"
    assert result.values[OwnerField.DELINPER61] == 0
    assert result.values[OwnerField.DELINDOL61] == 400
    assert OwnerField.DELINPER61 not in result.provenance
    assert result.provenance[OwnerField.DELINDOL30] == TokenProvenance("Aging", ())


def test_find_denominator_looks_right_then_below() -> None:
    right = Sheet("S", (("Occupied Rent", "$8,000"),))
    below = Sheet("S", (("Gross Occupied Rent", None), (4000, None)))

    assert find_denominator(right) == (8000.0, "B1")
    assert find_denominator(below) == (4000.0, "A2")
    assert find_denominator(Sheet("S", (("Nothing", 1),))) is None


def test_sheet_without_table_returns_none() -> None:
    assert extract_delinquency_sheet(Sheet("S", (("Address", "1 Elm St"),))) is None
    headerless = Sheet("S", (("Delinquency by Days",), ("0-10",)))
    assert extract_delinquency_sheet(headerless) is None


def test_workbook_scan_uses_first_sheet_with_table() -> None:
    workbook = Workbook(
        "owner.xlsx",
        (Sheet("Cover", (("Address", "1 Elm St"),)), _aging_sheet("Aging A"), _aging_sheet("Aging B")),
    )

    result = extract_delinquency(workbook)

    assert result is not None
    assert result.sheet == "Aging A"
    assert extract_delinquency(Workbook("empty.xlsx", ())) is None
