"""Extraction settings and label profiles."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from owner_reports.coerce import NumberLocale
from owner_reports.matching import DEFAULT_MIN_SIMILARITY, build_label_table
from owner_reports.schema import FIELD_LABELS, OwnerField


class Adjacency(str, Enum):
    """Where a value cell sits relative to its label cell."""

    RIGHT = "right"
    BELOW = "below"
    RIGHT2 = "right2"

    @property
    def offset(self) -> tuple[int, int]:
        return _OFFSETS[self]


_OFFSETS = {
    Adjacency.RIGHT: (0, 1),
    Adjacency.BELOW: (1, 0),
    Adjacency.RIGHT2: (0, 2),
}

DEFAULT_ADJACENCY: tuple[Adjacency, ...] = (Adjacency.RIGHT, Adjacency.BELOW, Adjacency.RIGHT2)

# Fixed positions on the first sheet of the standard management summary export.
CELL_FALLBACKS: Mapping[OwnerField, str] = MappingProxyType(
    {
        OwnerField.CURRENTDATE: "A3",
        OwnerField.CURRENTMONTH: "A3",
        OwnerField.ADDRESS: "K2",
        OwnerField.TOTALUNITS: "K22",
        OwnerField.RENTABLESQFT: "M22",
        OwnerField.TOTALRENTALINCOME: "E31",
        OwnerField.TOTALINCOME: "E49",
        OwnerField.OCCUPIEDAREASQFT: "M19",
        OwnerField.OCCUPANCYBYUNITS: "L19",
        OwnerField.OCCUPIEDAREAPERCENT: "N19",
        OwnerField.MOVEINS_TODAY: "I7",
        OwnerField.MOVEINS_MTD: "J7",
        OwnerField.MOVEINS_YTD: "K7",
        OwnerField.MOVEOUTS_TODAY: "I8",
        OwnerField.MOVEOUTS_MTD: "J8",
        OwnerField.MOVEOUTS_YTD: "K8",
        OwnerField.NET_TODAY: "I9",
        OwnerField.NET_MTD: "J9",
        OwnerField.NET_YTD: "K9",
        OwnerField.MOVEINS_SQFT_MTD: "L12",
        OwnerField.MOVEOUTS_SQFT_MTD: "L13",
        OwnerField.NET_SQFT_MTD: "L14",
    }
)


@dataclass(frozen=True)
class ExtractionConfig:
    adjacency: tuple[Adjacency, ...] = DEFAULT_ADJACENCY
    min_similarity: float = DEFAULT_MIN_SIMILARITY
    number_locale: NumberLocale = "auto"
    use_filename_date: bool = True
    use_cell_fallbacks: bool = True
    label_table: Mapping[OwnerField, Sequence[str]] = field(
        default_factory=lambda: FIELD_LABELS, compare=False
    )

    def __post_init__(self) -> None:
        adjacency = tuple(Adjacency(a) for a in self.adjacency)
        if not adjacency:
            raise ValueError("adjacency must name at least one direction")
        if len(set(adjacency)) != len(adjacency):
            raise ValueError("adjacency must not repeat a direction")
        object.__setattr__(self, "adjacency", adjacency)
        if not 0 <= self.min_similarity <= 100:
            raise ValueError("min_similarity must be between 0 and 100")
        if self.number_locale not in ("auto", "us", "eu"):
            raise ValueError("number_locale must be 'auto', 'us' or 'eu'")


def parse_adjacency(values: Sequence[str] | None) -> tuple[Adjacency, ...]:
    """Parse ``--adjacency`` values; comma-separated lists are accepted too."""
    if not values:
        return DEFAULT_ADJACENCY
    parsed: list[Adjacency] = []
    for raw in values:
        for part in raw.split(","):
            name = part.strip().lower()
            if not name:
                continue
            try:
                parsed.append(Adjacency(name))
            except ValueError:
                choices = ", ".join(a.value for a in Adjacency)
                raise ValueError(f"Invalid adjacency: {part!r} (choose from {choices})") from None
    return tuple(parsed)


def parse_label_lines(lines: Sequence[str]) -> dict[OwnerField, list[str]]:
    """Parse ``FIELD=label variant`` lines into extra label variants per field."""
    extra: dict[OwnerField, list[str]] = {}
    for line in lines:
        if "=" not in line:
            raise ValueError(f"Invalid profile line: {line!r}  (expected FIELD=label)")
        name, label = line.split("=", 1)
        label = label.strip()
        try:
            key = OwnerField.parse(name)
        except KeyError:
            raise ValueError(f"Unknown field in profile: {name.strip()!r}") from None
        if not label:
            raise ValueError(f"Profile entry for {key.value} has an empty label")
        extra.setdefault(key, []).append(label)
    return extra


def load_profile_lines(profile: Path | None) -> list[str]:
    """Return the meaningful lines of a profile file (comments and blanks dropped)."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like ADDRESS=Site Address)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def load_profile(profile: Path | None) -> Mapping[OwnerField, tuple[str, ...]]:
    """Label table with the profile's variants appended to the built-in ones."""
    return build_label_table(parse_label_lines(load_profile_lines(profile)))
