"""Exception types raised by the extraction and rendering core."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


class OwnerReportError(Exception):
    """Base class for every error raised by owner-reports."""


class WorkbookDecodeError(OwnerReportError, ValueError):
    """Input bytes are not a readable/supported spreadsheet."""

    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"Could not read workbook {filename!r}: {reason}")


class TemplateDecodeError(OwnerReportError, ValueError):
    """Template bytes are not a readable Office package."""

    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"Could not read template {filename!r}: {reason}")


class TemplateCoverageError(OwnerReportError):
    """A template lacks placeholders the report needs."""

    def __init__(self, missing: Iterable[str], *, template: str = "template") -> None:
        self.missing = tuple(missing)
        self.template = template
        super().__init__(
            f"{template} is missing required placeholders: {', '.join(self.missing)}"
        )


@dataclass(frozen=True)
class PlaceholderIssue:
    """One placeholder span the renderer could not resolve."""

    path: str
    placeholder: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "placeholder": self.placeholder, "reason": self.reason}


class RenderError(OwnerReportError):
    """The substitution pass could not complete; no output is produced."""

    def __init__(self, issues: Iterable[PlaceholderIssue]) -> None:
        self.issues = tuple(issues)
        preview = "; ".join(
            f"{issue.path}: {issue.placeholder!r} ({issue.reason})" for issue in self.issues[:5]
        )
        more = len(self.issues) - 5
        suffix = f" (+{more} more)" if more > 0 else ""
        super().__init__(
            f"{len(self.issues)} placeholder(s) could not be rendered: {preview}{suffix}"
        )
