"""Template rendering — substitute field values into ``{{TOKEN}}`` placeholders."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from collections.abc import Mapping, Sequence
from numbers import Real
from xml.sax.saxutils import escape

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.exc import PackageNotFoundError
from pptx.presentation import Presentation as PresentationType
from pptx.slide import Slide
from pptx.table import _Cell
from pptx.util import Emu, Pt

from owner_reports.audit import DASH
from owner_reports.coerce import format_count, format_display_value
from owner_reports.errors import PlaceholderIssue, RenderError, TemplateDecodeError
from owner_reports.models import AuditRow, FieldRecord
from owner_reports.schema import TOKEN_ALIASES, OwnerField
from owner_reports.template import TemplatePackage
from owner_reports.tokens import flatten_markup, normalize_token, strip_hidden_characters
from owner_reports.utils import safe_filename_part

logger = logging.getLogger(__name__)

# Braces may themselves be split across runs: ``{</a:t></a:r><a:r><a:t>{``.
SPAN_RE = re.compile(r"\{(?:<[^>]*>)*\{(.*?)\}(?:<[^>]*>)*\}", re.DOTALL)
CANONICAL_RE = re.compile(r"\{\{([A-Z0-9_]+)\}\}")
_TRAILING_PERCENT_RE = re.compile(r"(?:<[^>]*>)*%")


# ── Values ──────────────────────────────────────────────────────


def _extra_text(value: object) -> str:
    if isinstance(value, bool) or not isinstance(value, Real):
        return "" if value is None else str(value)
    return format_count(float(value))


def _normalize_extras(extra_values: Mapping[str, object] | None) -> dict[str, str]:
    extras: dict[str, str] = {}
    for key, value in (extra_values or {}).items():
        token = normalize_token(key)
        if token:
            extras[token] = _extra_text(value)
    return extras


def display_values(
    record: FieldRecord,
    *,
    extra_values: Mapping[str, object] | None = None,
    trailing_percent: bool = False,
) -> dict[str, str]:
    """Token → display string for every field, alias and extra value.

    With *trailing_percent* percent fields render without their own ``%``,
    for placeholders the template already follows with one.
    """
    values = {
        field.value: format_display_value(field, record[field], trailing_percent=trailing_percent)
        for field in OwnerField
    }
    for alias, field in TOKEN_ALIASES.items():
        values[alias] = values[field.value]
    values.update(_normalize_extras(extra_values))
    return values


def report_filename(record: FieldRecord) -> str:
    """``Owner-Report-<CURRENTDATE>.pptx``; ``report`` stands in for an empty date."""
    return f"Owner-Report-{safe_filename_part(str(record[OwnerField.CURRENTDATE]))}.pptx"


# ── Placeholder passes ──────────────────────────────────────────


def canonicalize_placeholders(path: str, xml: str) -> tuple[str, list[str], list[PlaceholderIssue]]:
    """Rewrite every placeholder span to ``{{CANONICAL}}``.

    Markup inside a span (run boundaries, proofing tags) is dropped.  Spans
    that cannot be resolved are left untouched and reported as issues.
    """
    tokens: list[str] = []
    issues: list[PlaceholderIssue] = []

    def _rewrite(match: re.Match[str]) -> str:
        body = match.group(1)
        visible = flatten_markup(match.group(0))
        inner = flatten_markup(body)
        if "{" in inner or "}" in inner:
            issues.append(PlaceholderIssue(path, visible, "nested braces"))
            return match.group(0)
        token = normalize_token(body)
        if token is None:
            issues.append(PlaceholderIssue(path, visible, "placeholder has no token name"))
            return match.group(0)
        tokens.append(token)
        return f"{{{{{token}}}}}"

    rewritten = SPAN_RE.sub(_rewrite, xml)
    leftover = CANONICAL_RE.sub("", flatten_markup(rewritten))
    if not issues and "{{" in leftover:
        start = leftover.index("{{")
        issues.append(
            PlaceholderIssue(path, leftover[start : start + 40], "unterminated placeholder")
        )
    return rewritten, tokens, issues


def substitute_placeholders(
    xml: str,
    values: Mapping[str, str],
    unknown: set[str] | None = None,
    *,
    percent_values: Mapping[str, str] | None = None,
) -> str:
    """Replace each ``{{CANONICAL}}`` with its XML-escaped display value.

    Where a ``%`` follows the placeholder the value is taken from
    *percent_values* instead, when given.
    """

    def _substitute(match: re.Match[str]) -> str:
        token = match.group(1)
        mapping = values
        if percent_values is not None and _TRAILING_PERCENT_RE.match(xml, match.end()):
            mapping = percent_values
        value = mapping.get(token)
        if value is None:
            if unknown is not None:
                unknown.add(token)
            value = ""
        logger.debug("{{%s}} -> %r", token, value)
        return escape(value)

    return CANONICAL_RE.sub(_substitute, xml)


def render_template(
    template_bytes: bytes,
    record: FieldRecord,
    *,
    extra_values: Mapping[str, object] | None = None,
    filename: str = "template.pptx",
) -> bytes:
    """Render *record* into a template and return the new package bytes.

    Raises
    ------
    TemplateDecodeError
        If *template_bytes* is not a zip package.
    RenderError
        If any placeholder cannot be resolved; no bytes are produced.
    """
    package = TemplatePackage.from_bytes(template_bytes, filename)
    values = display_values(record, extra_values=extra_values)
    percent_values = display_values(record, extra_values=extra_values, trailing_percent=True)
    issues: list[PlaceholderIssue] = []
    rendered: dict[str, str] = {}
    unknown: set[str] = set()
    count = 0

    for path in package.token_parts():
        xml = strip_hidden_characters(package.read_text(path))
        xml, tokens, part_issues = canonicalize_placeholders(path, xml)
        if part_issues:
            issues.extend(part_issues)
            continue
        count += len(tokens)
        rendered[path] = substitute_placeholders(xml, values, unknown, percent_values=percent_values)

    if issues:
        raise RenderError(issues)
    for path, xml in rendered.items():
        package.replace_text(path, xml)
    if unknown:
        logger.warning("tokens with no value rendered blank: %s", ", ".join(sorted(unknown)))
    logger.info("rendered %d placeholders across %d parts", count, len(rendered))
    return package.to_bytes()


# ── Audit slide ─────────────────────────────────────────────────

AUDIT_SLIDE_MARKER = "Delinquent Rent"
AUDIT_TITLE = "Delinquency Audit"
AUDIT_HEADERS = ("Token", "Value", "Sheet", "Cell(s)")
AUDIT_COLUMN_WEIGHTS = (22, 52, 28, 66)

AUDIT_FONT = "Avenir"
HEADER_FILL = RGBColor(0x3B, 0x52, 0xA1)
HEADER_TEXT = RGBColor(0xFF, 0xFF, 0xFF)
BODY_TEXT = RGBColor(0x2D, 0x2D, 0x2D)
TITLE_TEXT = RGBColor(0x0B, 0x11, 0x20)

_MARGIN = Emu(685800)
_DEFAULT_SLIDE_WIDTH = Emu(18288000)
_CELL_MARGIN = Emu(45720)


def _slide_text(slide: Slide) -> str:
    parts: list[str] = []
    for shape in slide.shapes:
        if shape.has_text_frame:
            parts.append(shape.text_frame.text)
        elif shape.has_table:
            parts.extend(cell.text for row in shape.table.rows for cell in row.cells)
    return "\n".join(parts)


def _audit_table(rows: Sequence[AuditRow]) -> list[tuple[str, str, str, str]]:
    return [AUDIT_HEADERS] + [
        (
            row.token,
            row.value or DASH,
            row.sheet or DASH,
            " + ".join(row.cells) if row.cells else DASH,
        )
        for row in rows
    ]


def _write_cell(cell: _Cell, text: str, *, header: bool) -> None:
    cell.text = ""
    cell.vertical_anchor = MSO_ANCHOR.TOP
    cell.margin_left = cell.margin_right = _CELL_MARGIN
    cell.margin_top = cell.margin_bottom = _CELL_MARGIN
    if header:
        cell.fill.solid()
        cell.fill.fore_color.rgb = HEADER_FILL
    p = cell.text_frame.paragraphs[0]
    p.alignment = PP_ALIGN.CENTER if header else PP_ALIGN.LEFT
    r = p.add_run()
    r.text = text
    r.font.name = AUDIT_FONT
    r.font.size = Pt(20 if header else 16)
    r.font.bold = header
    r.font.color.rgb = HEADER_TEXT if header else BODY_TEXT


def _write_title(slide: Slide, width: int, title: str) -> None:
    placeholder = slide.shapes.title
    if placeholder is not None:
        placeholder.text = title
        return
    tf = slide.shapes.add_textbox(_MARGIN, Emu(457200), width, Emu(762000)).text_frame
    tf.vertical_anchor = MSO_ANCHOR.MIDDLE
    r = tf.paragraphs[0].add_run()
    r.text = title
    r.font.name = AUDIT_FONT
    r.font.size = Pt(32)
    r.font.bold = True
    r.font.color.rgb = TITLE_TEXT


def add_audit_slide(
    prs: PresentationType, rows: Sequence[AuditRow], *, after: int, title: str = AUDIT_TITLE
) -> Slide:
    """Add a token/value/sheet/cells table slide directly after slide *after*."""
    anchor = prs.slides[after]
    slide = prs.slides.add_slide(anchor.slide_layout)
    width = Emu((prs.slide_width or _DEFAULT_SLIDE_WIDTH) - 2 * _MARGIN)
    _write_title(slide, width, title)

    table_rows = _audit_table(rows)
    table = slide.shapes.add_table(
        len(table_rows), len(AUDIT_HEADERS), _MARGIN, Emu(1524000), width, Emu(6400800)
    ).table
    total = sum(AUDIT_COLUMN_WEIGHTS)
    for idx, weight in enumerate(AUDIT_COLUMN_WEIGHTS):
        table.columns[idx].width = Emu(width * weight // total)
    for r_idx, cells in enumerate(table_rows):
        table.rows[r_idx].height = Emu(650000 if r_idx == 0 else 520000)
        for c_idx, text in enumerate(cells):
            _write_cell(table.cell(r_idx, c_idx), text, header=r_idx == 0)

    # add_slide appends; move the new entry to sit after the anchor.
    id_list = prs.slides._sldIdLst
    entry = id_list[-1]
    id_list.remove(entry)
    id_list.insert(after + 1, entry)
    return slide


def append_audit_slide(
    deck_bytes: bytes, rows: Sequence[AuditRow], *, filename: str = "report.pptx"
) -> bytes:
    """Insert a "Delinquency Audit" table slide after the Delinquent Rent slide.

    Returns *deck_bytes* unchanged when there are no rows or the deck has
    no such slide.

    Raises
    ------
    TemplateDecodeError
        If *deck_bytes* is not a presentation python-pptx can open.
    """
    if not rows:
        return deck_bytes
    try:
        prs = Presentation(io.BytesIO(deck_bytes))
    except (PackageNotFoundError, KeyError, ValueError, zipfile.BadZipFile) as exc:
        raise TemplateDecodeError(filename, str(exc) or type(exc).__name__) from exc

    anchor = next(
        (idx for idx, slide in enumerate(prs.slides) if AUDIT_SLIDE_MARKER in _slide_text(slide)),
        None,
    )
    if anchor is None:
        logger.warning("no %r slide found; audit slide skipped", AUDIT_SLIDE_MARKER)
        return deck_bytes

    slide = add_audit_slide(prs, rows, after=anchor)
    buf = io.BytesIO()
    prs.save(buf)
    logger.info("added audit slide %s after slide %d", slide.part.partname, anchor + 1)
    return buf.getvalue()
