"""Label matcher — map loosely-labelled spreadsheet cells onto canonical fields."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal

from rapidfuzz import fuzz

from owner_reports.schema import FIELD_LABELS, OwnerField
from owner_reports.tokens import strip_hidden_characters

MatchMethod = Literal["exact", "partial", "fuzzy"]

DEFAULT_MIN_SIMILARITY = 90.0

_INNER_HYPHEN_RE = re.compile(r"(?<=[a-z])[-\u2010\u2011\u2013](?=[a-z])")
_SEPARATOR_RE = re.compile(r"[^a-z0-9]+")
_DIGITS_RE = re.compile(r"\d+")


# ── Label normalisation ─────────────────────────────────────────


def spaced_label(text: str) -> str:
    """Lower-case *text* and reduce every separator run to one space.

    ``move-ins`` and ``moveins`` collapse to the same word; ``%`` and ``+``
    are spelled out so ``occupancy %`` reads ``occupancy percent``.
    """
    text = strip_hidden_characters(str(text)).lower()
    text = text.replace("%", " percent ").replace("+", " plus ").replace("&", " and ")
    text = _INNER_HYPHEN_RE.sub("", text)
    return _SEPARATOR_RE.sub(" ", text).strip()


def compact_label(text: str) -> str:
    """Separator-free form: hyphens, spaces and punctuation are all equivalent."""
    return spaced_label(text).replace(" ", "")


# ── Matcher ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class LabelMatch:
    field: OwnerField
    variant: str
    method: MatchMethod
    score: float


@dataclass(frozen=True)
class _Variant:
    field: OwnerField
    text: str
    spaced: str
    compact: str
    digits: tuple[str, ...]


class LabelMatcher:
    """Match labels against a field label table.

    Strategies run in order and the first one that produces a candidate
    wins: exact (separator-insensitive equality), partial (a variant occurs
    word-bounded inside the label) and fuzzy (rapidfuzz ratio at or above
    ``min_similarity``).  Within a strategy the longest variant wins and the
    first-declared field breaks remaining ties.
    """

    def __init__(
        self,
        table: Mapping[OwnerField, Sequence[str]] = FIELD_LABELS,
        *,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> None:
        if not 0 <= min_similarity <= 100:
            raise ValueError("min_similarity must be between 0 and 100")
        self.min_similarity = float(min_similarity)
        self._variants: list[_Variant] = []
        for field in OwnerField:
            for text in table.get(field, ()):
                spaced = spaced_label(text)
                if not spaced:
                    continue
                self._variants.append(
                    _Variant(
                        field=field,
                        text=text,
                        spaced=spaced,
                        compact=spaced.replace(" ", ""),
                        digits=tuple(_DIGITS_RE.findall(spaced)),
                    )
                )

    def match(self, label: object) -> LabelMatch | None:
        if not isinstance(label, str):
            return None
        spaced = spaced_label(label)
        if not spaced:
            return None
        compact = spaced.replace(" ", "")

        best: _Variant | None = None
        for variant in self._variants:
            if variant.compact == compact and (
                best is None or len(variant.compact) > len(best.compact)
            ):
                best = variant
        if best is not None:
            return LabelMatch(best.field, best.text, "exact", 100.0)

        padded = f" {spaced} "
        for variant in self._variants:
            if f" {variant.spaced} " in padded and (
                best is None or len(variant.compact) > len(best.compact)
            ):
                best = variant
        if best is not None:
            score = 100.0 * len(best.compact) / len(compact)
            return LabelMatch(best.field, best.text, "partial", round(score, 2))

        digits = tuple(_DIGITS_RE.findall(spaced))
        best_score = -1.0
        for variant in self._variants:
            if variant.digits != digits:
                continue
            score = fuzz.ratio(spaced, variant.spaced, score_cutoff=self.min_similarity)
            if score > best_score and score >= self.min_similarity:
                best, best_score = variant, score
        if best is not None:
            return LabelMatch(best.field, best.text, "fuzzy", round(best_score, 2))
        return None


_DEFAULT_MATCHER = LabelMatcher()


def match_label(
    label: object,
    table: Mapping[OwnerField, Sequence[str]] | None = None,
    *,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
) -> LabelMatch | None:
    """Return the best canonical field for *label*, or ``None`` for no match."""
    if table is None and min_similarity == DEFAULT_MIN_SIMILARITY:
        return _DEFAULT_MATCHER.match(label)
    return LabelMatcher(
        FIELD_LABELS if table is None else table, min_similarity=min_similarity
    ).match(label)


def build_label_table(
    extra: Mapping[OwnerField, Iterable[str]] | None = None,
    base: Mapping[OwnerField, Sequence[str]] = FIELD_LABELS,
) -> Mapping[OwnerField, tuple[str, ...]]:
    """Return a new read-only table with *extra* variants appended per field."""
    merged: dict[OwnerField, tuple[str, ...]] = {}
    for field in OwnerField:
        variants = list(base.get(field, ()))
        for text in (extra or {}).get(field, ()):
            if text not in variants:
                variants.append(text)
        merged[field] = tuple(variants)
    return MappingProxyType(merged)
