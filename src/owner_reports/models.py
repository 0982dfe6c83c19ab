"""Data models shared across the package."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral, Real
from types import MappingProxyType
from typing import Any

from owner_reports.schema import (
    DEFAULT_VALUES,
    FIELD_KINDS,
    FieldKind,
    FieldValue,
    OwnerField,
)


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def _check_value(key: OwnerField, value: Any) -> FieldValue:
    if FIELD_KINDS[key] is FieldKind.TEXT:
        if not isinstance(value, str):
            raise TypeError(f"{key.value} must be a string")
        return value
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{key.value} must be a number")
    return value  # type: ignore[return-value]


# ── Field record ────────────────────────────────────────────────


class FieldRecord(Mapping[OwnerField, FieldValue]):
    """Immutable mapping holding exactly one value per canonical field.

    Lookups accept either an :class:`OwnerField` or its display string.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[Any, Any] | None = None) -> None:
        merged: dict[OwnerField, FieldValue] = dict(DEFAULT_VALUES)
        for raw_key, value in (values or {}).items():
            key = OwnerField.parse(raw_key)
            merged[key] = _check_value(key, value)
        self._values = MappingProxyType(merged)

    @classmethod
    def defaults(cls) -> FieldRecord:
        return cls()

    @classmethod
    def from_values(cls, values: Mapping[Any, Any]) -> FieldRecord:
        return cls(values)

    def replace(self, overrides: Mapping[Any, Any]) -> FieldRecord:
        """Return a new record with *overrides* applied."""
        updates = {OwnerField.parse(k): v for k, v in overrides.items()}
        return FieldRecord({**self._values, **updates})

    def __getitem__(self, key: object) -> FieldValue:
        return self._values[OwnerField.parse(key)]

    def __contains__(self, key: object) -> bool:
        try:
            OwnerField.parse(key)
        except KeyError:
            return False
        return True

    def __iter__(self) -> Iterator[OwnerField]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FieldRecord):
            return dict(self._values) == dict(other._values)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._values.items()))

    def __repr__(self) -> str:
        changed = {k.value: v for k, v in self._values.items() if v != DEFAULT_VALUES[k]}
        return f"FieldRecord({changed!r})"

    def to_dict(self) -> dict[str, FieldValue]:
        return {key.value: value for key, value in self._values.items()}


# ── Provenance ──────────────────────────────────────────────────


@dataclass(frozen=True)
class TokenProvenance:
    """Where a field value came from: sheet name plus A1 cell references."""

    sheet: str = ""
    cells: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.sheet, str):
            raise TypeError("sheet must be a string")
        object.__setattr__(self, "cells", tuple(_to_string_list(self.cells, "cells")))

    def to_dict(self) -> dict[str, Any]:
        return {"sheet": self.sheet, "cells": list(self.cells)}


class ProvenanceRecord(Mapping[OwnerField, TokenProvenance]):
    """Read-only provenance per field; fields without a known source are absent."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[Any, TokenProvenance] | None = None) -> None:
        self._entries = MappingProxyType(
            {OwnerField.parse(k): v for k, v in (entries or {}).items()}
        )

    def __getitem__(self, key: object) -> TokenProvenance:
        return self._entries[OwnerField.parse(key)]

    def __iter__(self) -> Iterator[OwnerField]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        entries = {k.value: v for k, v in self._entries.items()}
        return f"ProvenanceRecord({entries!r})"

    def subset(self, keys: Iterable[Any]) -> ProvenanceRecord:
        wanted = [OwnerField.parse(k) for k in keys]
        return ProvenanceRecord({k: self._entries[k] for k in wanted if k in self._entries})

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {key.value: entry.to_dict() for key, entry in self._entries.items()}


# ── Reports ─────────────────────────────────────────────────────


@dataclass
class CoverageReport:
    """Which schema fields an input workbook covered.

    Contract invariant: ``found`` and ``missing`` partition the schema.
    """

    found: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    unmatched_labels: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.found = _to_string_list(self.found, "found")
        self.missing = _to_string_list(self.missing, "missing")
        self.unmatched_labels = _to_string_list(self.unmatched_labels, "unmatched_labels")
        self.warnings = _to_string_list(self.warnings, "warnings")
        overlap = set(self.found) & set(self.missing)
        if overlap:
            raise ValueError(f"fields cannot be both found and missing: {sorted(overlap)}")

    @classmethod
    def from_found(
        cls,
        found: Iterable[OwnerField],
        *,
        unmatched_labels: Iterable[str] = (),
        warnings: Iterable[str] = (),
    ) -> CoverageReport:
        found_set = set(found)
        return cls(
            found=[f.value for f in OwnerField if f in found_set],
            missing=[f.value for f in OwnerField if f not in found_set],
            unmatched_labels=list(unmatched_labels),
            warnings=list(warnings),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "found": list(self.found),
            "missing": list(self.missing),
            "unmatched_labels": list(self.unmatched_labels),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class TemplateTokenFile:
    path: str
    tokens: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "tokens": list(self.tokens)}


@dataclass(frozen=True)
class TemplateScan:
    """Placeholder inventory of one template package."""

    sha256: str
    files: tuple[TemplateTokenFile, ...] = ()
    tokens: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha256": self.sha256,
            "files": [f.to_dict() for f in self.files],
            "tokens": list(self.tokens),
        }


@dataclass(frozen=True)
class AuditRow:
    token: str
    value: str
    sheet: str
    cells: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "value": self.value,
            "sheet": self.sheet,
            "cells": list(self.cells),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "owner-reports"
    command: str = ""
    version: str = ""
    input_path: str = ""
    template_path: str = ""
    output_path: str = ""
    created_at_utc: str = ""
    sha256: str = ""
    template_sha256: str = ""
    fields_found: int = 0
    fields_missing: int = 0
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.fields_found = _to_non_negative_int(self.fields_found, "fields_found")
        self.fields_missing = _to_non_negative_int(self.fields_missing, "fields_missing")
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")
        if self.error_code is not None:
            self.error_code = _to_non_negative_int(self.error_code, "error_code")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "command": self.command,
            "version": self.version,
            "input_path": self.input_path,
            "template_path": self.template_path,
            "output_path": self.output_path,
            "created_at_utc": self.created_at_utc,
            "sha256": self.sha256,
            "template_sha256": self.template_sha256,
            "fields_found": self.fields_found,
            "fields_missing": self.fields_missing,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
