"""Canonical owner-report schema: field names, kinds, defaults and label variants.

Everything in this module is read-only data built once at import time.
Declaration order of :class:`OwnerField` is the tie-break authority for
label matching and the order used in every report.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Union

from owner_reports.tokens import normalize_token

FieldValue = Union[str, int, float]


class OwnerField(str, Enum):
    CURRENTDATE = "CURRENTDATE"
    ADDRESS = "ADDRESS"
    OWNERGROUP = "OWNERGROUP"
    ACQUIREDDATE = "ACQUIREDDATE"
    TOTALUNITS = "TOTALUNITS"
    RENTABLESQFT = "RENTABLESQFT"
    CURRENTMONTH = "CURRENTMONTH"
    TOTALRENTALINCOME = "TOTALRENTALINCOME"
    TOTALINCOME = "TOTALINCOME"
    TOTALEXPENSES = "TOTALEXPENSES"
    NETINCOME = "NETINCOME"
    OCCUPIEDAREASQFT = "OCCUPIEDAREASQFT"
    OCCUPANCYBYUNITS = "OCCUPANCYBYUNITS"
    OCCUPIEDAREAPERCENT = "OCCUPIEDAREAPERCENT"
    MOVEINS_TODAY = "MOVEINS_TODAY"
    MOVEINS_MTD = "MOVEINS_MTD"
    MOVEINS_YTD = "MOVEINS_YTD"
    MOVEOUTS_TODAY = "MOVEOUTS_TODAY"
    MOVEOUTS_MTD = "MOVEOUTS_MTD"
    MOVEOUTS_YTD = "MOVEOUTS_YTD"
    NET_TODAY = "NET_TODAY"
    NET_MTD = "NET_MTD"
    NET_YTD = "NET_YTD"
    MOVEINS_SQFT_MTD = "MOVEINS_SQFT_MTD"
    MOVEOUTS_SQFT_MTD = "MOVEOUTS_SQFT_MTD"
    NET_SQFT_MTD = "NET_SQFT_MTD"
    DELINPER30 = "DELINPER30"
    DELINUNIT30 = "DELINUNIT30"
    DELINDOL30 = "DELINDOL30"
    DELINPER60 = "DELINPER60"
    DELINUNIT60 = "DELINUNIT60"
    DELINDOL60 = "DELINDOL60"
    DELINPER61 = "DELINPER61"
    DELINUNIT61 = "DELINUNIT61"
    DELINDOL61 = "DELINDOL61"

    @classmethod
    def parse(cls, text: object) -> OwnerField:
        """Resolve a display string or template token to its field.

        Raises ``KeyError`` for anything outside the schema.
        """
        if isinstance(text, cls):
            return text
        key = normalize_token(text) if isinstance(text, str) else None
        if key is None or key not in cls.__members__:
            raise KeyError(f"Unknown owner-report field: {text!r}")
        return cls[key]

    def __str__(self) -> str:
        return self.value


class FieldKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    CURRENCY = "currency"
    PERCENT = "percent"


_TEXT_FIELDS = {
    OwnerField.CURRENTDATE,
    OwnerField.ADDRESS,
    OwnerField.OWNERGROUP,
    OwnerField.ACQUIREDDATE,
    OwnerField.CURRENTMONTH,
}
_PERCENT_FIELDS = {
    OwnerField.OCCUPIEDAREAPERCENT,
    OwnerField.DELINPER30,
    OwnerField.DELINPER60,
    OwnerField.DELINPER61,
}
_CURRENCY_FIELDS = {
    OwnerField.DELINDOL30,
    OwnerField.DELINDOL60,
    OwnerField.DELINDOL61,
}


def _kind_for(field: OwnerField) -> FieldKind:
    if field in _TEXT_FIELDS:
        return FieldKind.TEXT
    if field in _PERCENT_FIELDS:
        return FieldKind.PERCENT
    if field in _CURRENCY_FIELDS:
        return FieldKind.CURRENCY
    return FieldKind.NUMBER


FIELD_KINDS: Mapping[OwnerField, FieldKind] = MappingProxyType(
    {field: _kind_for(field) for field in OwnerField}
)

DEFAULT_VALUES: Mapping[OwnerField, FieldValue] = MappingProxyType(
    {field: ("" if kind is FieldKind.TEXT else 0) for field, kind in FIELD_KINDS.items()}
)

# How date-like text fields are rendered once a value is found.
DATE_STYLES: Mapping[OwnerField, str] = MappingProxyType(
    {
        OwnerField.CURRENTDATE: "month_year",
        OwnerField.CURRENTMONTH: "month",
        OwnerField.ACQUIREDDATE: "iso_date",
    }
)

FIELD_LABELS: Mapping[OwnerField, tuple[str, ...]] = MappingProxyType(
    {
        OwnerField.CURRENTDATE: ("current date", "as of", "report date", "date"),
        OwnerField.ADDRESS: ("address", "property address", "site address"),
        OwnerField.OWNERGROUP: ("owners", "owner group", "ownership", "owner"),
        OwnerField.ACQUIREDDATE: (
            "management acquired date",
            "acquired date",
            "acquisition date",
        ),
        OwnerField.TOTALUNITS: ("total units", "units total", "unit count"),
        OwnerField.RENTABLESQFT: (
            "rentable square feet",
            "rentable sqft",
            "rentable sq ft",
            "total rentable area",
        ),
        OwnerField.CURRENTMONTH: ("current month", "report month", "month", "period month"),
        OwnerField.TOTALRENTALINCOME: (
            "total rental income",
            "rental income total",
            "total rental revenue",
            "rent income",
        ),
        OwnerField.TOTALINCOME: ("total income", "gross income", "total revenue"),
        OwnerField.TOTALEXPENSES: (
            "total expenses",
            "operating expenses total",
            "total expense",
        ),
        OwnerField.NETINCOME: ("net income", "noi", "net operating income"),
        OwnerField.OCCUPIEDAREASQFT: (
            "occupied area sqft",
            "occupied square feet",
            "occupied area",
            "occupied sf",
        ),
        OwnerField.OCCUPANCYBYUNITS: ("occupancy by units", "occupied units", "units occupied"),
        OwnerField.OCCUPIEDAREAPERCENT: (
            "occupied area percent",
            "occupancy percent",
            "occupancy %",
            "occupied %",
        ),
        OwnerField.MOVEINS_TODAY: ("move-ins today", "moveins today", "move-ins (today)"),
        OwnerField.MOVEINS_MTD: ("move-ins mtd", "moveins mtd", "move-ins month to date"),
        OwnerField.MOVEINS_YTD: ("move-ins ytd", "moveins ytd", "move-ins year to date"),
        OwnerField.MOVEOUTS_TODAY: ("move-outs today", "moveouts today", "move-outs (today)"),
        OwnerField.MOVEOUTS_MTD: ("move-outs mtd", "moveouts mtd", "move-outs month to date"),
        OwnerField.MOVEOUTS_YTD: ("move-outs ytd", "moveouts ytd", "move-outs year to date"),
        OwnerField.NET_TODAY: ("net today", "net move today"),
        OwnerField.NET_MTD: ("net mtd", "net month to date"),
        OwnerField.NET_YTD: ("net ytd", "net year to date"),
        OwnerField.MOVEINS_SQFT_MTD: (
            "move-ins sqft mtd",
            "moveins sqft mtd",
            "move-ins square feet mtd",
        ),
        OwnerField.MOVEOUTS_SQFT_MTD: (
            "move-outs sqft mtd",
            "moveouts sqft mtd",
            "move-outs square feet mtd",
        ),
        OwnerField.NET_SQFT_MTD: ("net sqft mtd", "net square feet mtd"),
        OwnerField.DELINPER30: ("delinquent percent 1-30", "delinquency % 0-30 days"),
        OwnerField.DELINUNIT30: ("delinquent units 1-30", "delinquency units 0-30 days"),
        OwnerField.DELINDOL30: ("delinquent dollars 1-30", "delinquency dollars 0-30 days"),
        OwnerField.DELINPER60: ("delinquent percent 31-60", "delinquency % 31-60 days"),
        OwnerField.DELINUNIT60: ("delinquent units 31-60", "delinquency units 31-60 days"),
        OwnerField.DELINDOL60: ("delinquent dollars 31-60", "delinquency dollars 31-60 days"),
        OwnerField.DELINPER61: ("delinquent percent 61+", "delinquency % over 60 days"),
        OwnerField.DELINUNIT61: ("delinquent units 61+", "delinquency units over 60 days"),
        OwnerField.DELINDOL61: ("delinquent dollars 61+", "delinquency dollars over 60 days"),
    }
)

# Legacy template tokens that render an existing field.
TOKEN_ALIASES: Mapping[str, OwnerField] = MappingProxyType(
    {"SFTOC": OwnerField.OCCUPIEDAREAPERCENT}
)

DELINQUENCY_FIELDS: tuple[OwnerField, ...] = (
    OwnerField.DELINPER30,
    OwnerField.DELINUNIT30,
    OwnerField.DELINDOL30,
    OwnerField.DELINPER60,
    OwnerField.DELINUNIT60,
    OwnerField.DELINDOL60,
    OwnerField.DELINPER61,
    OwnerField.DELINUNIT61,
    OwnerField.DELINDOL61,
)
