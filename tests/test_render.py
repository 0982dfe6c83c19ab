from __future__ import annotations

import io
import logging
import zipfile

import pytest
from pptx import Presentation
from pptx.slide import Slide
from pptx.util import Inches

from owner_reports.audit import DASH, build_audit_rows
from owner_reports.errors import RenderError, TemplateDecodeError
from owner_reports.models import FieldRecord, TokenProvenance
from owner_reports.render import (
    append_audit_slide,
    canonicalize_placeholders,
    display_values,
    render_template,
    report_filename,
    substitute_placeholders,
)
from owner_reports.schema import OwnerField
from owner_reports.template import TemplatePackage, default_template_bytes
from owner_reports.tokens import flatten_markup


def _package(parts: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for path, text in parts.items():
            zf.writestr(path, text)
    return buf.getvalue()


def _slide(text: str) -> str:
    return f'<p:sld><a:p><a:r><a:t>{text}</a:t></a:r></a:p></p:sld>'


def _text(data: bytes, path: str) -> str:
    return flatten_markup(TemplatePackage.from_bytes(data).read_text(path))


def _deck(texts: tuple[str, ...], *, layout: int = 6) -> bytes:
    prs = Presentation()
    for text in texts:
        slide = prs.slides.add_slide(prs.slide_layouts[layout])
        slide.shapes.add_textbox(Inches(1), Inches(2), Inches(6), Inches(1)).text_frame.text = text
    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()


def _slide_text(slide: Slide) -> str:
    texts = [shape.text_frame.text for shape in slide.shapes if shape.has_text_frame]
    return "\n".join(text for text in texts if text)


RECORD = FieldRecord(
    {
        "CURRENTDATE": "March 2025",
        "ADDRESS": "1 Elm St & Annex",
        "TOTALUNITS": 120,
        "OCCUPIEDAREAPERCENT": 0.95,
        "DELINDOL30": 12345,
        "DELINUNIT30": 3,
        "DELINPER30": 0.873,
        "DELINDOL60": 750,
    }
)


def test_display_values_cover_fields_and_aliases() -> None:
    values = display_values(RECORD, extra_values={"custom note": "hi", "BONUS": 1500})

    assert values["DELINDOL30"] == "$12,345"
    assert values["DELINPER30"] == "87.3%"
    assert values["SFTOC"] == values["OCCUPIEDAREAPERCENT"] == "95.0%"
    assert values["CUSTOMNOTE"] == "hi"
    assert values["BONUS"] == "1,500"


def test_display_values_drop_percent_sign_before_a_literal_percent() -> None:
    values = display_values(RECORD, extra_values={"DELINPER60": "n/a"}, trailing_percent=True)

    assert values["DELINPER30"] == "87.3"
    assert values["SFTOC"] == "95.0"
    assert values["TOTALUNITS"] == "120"
    assert values["DELINPER60"] == "n/a"


def test_substitute_placeholders_uses_the_display_mapping() -> None:
    unknown: set[str] = set()
    xml = "<a:t>{{A}} {{B}}% {{C}}</a:t>"

    out = substitute_placeholders(xml, {"A": "x & y", "B": "5%"}, unknown, percent_values={"B": "5"})

    assert out == "<a:t>x &amp; y 5% </a:t>"
    assert unknown == {"C"}


def test_render_extra_values_override_fields_before_a_percent_sign() -> None:
    template = _package({"ppt/slides/slide1.xml": _slide("{{DELINPER30}}% {{DELINPER30}}")})

    rendered = render_template(template, RECORD, extra_values={"delinper30": "TBD"})

    assert _text(rendered, "ppt/slides/slide1.xml") == "TBD% TBD"



def test_report_filename() -> None:
    assert report_filename(RECORD) == "Owner-Report-March-2025.pptx"
    assert report_filename(FieldRecord()) == "Owner-Report-report.pptx"


def test_canonicalize_joins_split_runs_and_braces() -> None:
    xml = (
        "<a:t>{{DELIN</a:t></a:r><a:r><a:t>DOL30}}</a:t>"
        "<a:t>{</a:t></a:r><a:r><a:t>{ total units }}</a:t>"
    )

    rewritten, tokens, issues = canonicalize_placeholders("ppt/slides/slide1.xml", xml)

    assert issues == []
    assert tokens == ["DELINDOL30", "TOTALUNITS"]
    assert "{{DELINDOL30}}" in rewritten
    assert "{{TOTALUNITS}}" in rewritten


@pytest.mark.parametrize(
    ("text", "reason"),
    [
        ("{{ }}", "placeholder has no token name"),
        ("{{A {{B}}", "nested braces"),
        ("Hi {{ADDRESS", "unterminated placeholder"),
    ],
)
def test_canonicalize_reports_broken_placeholders(text: str, reason: str) -> None:
    _, _, issues = canonicalize_placeholders("p.xml", _slide(text))

    assert [issue.reason for issue in issues] == [reason]
    assert issues[0].path == "p.xml"


def test_render_shipped_template_substitutes_every_placeholder() -> None:
    rendered = render_template(default_template_bytes(), RECORD)

    for n in (1, 2, 3):
        text = _text(rendered, f"ppt/slides/slide{n}.xml")
        assert "{" not in text and "}" not in text
    cover = _text(rendered, "ppt/slides/slide1.xml")
    assert "Property: 1 Elm St &amp; Annex" in cover
    assert "Total units: 120" in cover
    assert "March" in cover

    summary = _text(rendered, "ppt/slides/slide2.xml")
    assert "Occupied area: 95.0%" in summary
    assert "95.0%%" not in summary

    delinquent = _text(rendered, "ppt/slides/slide3.xml")
    assert "0-30 days: 87.3% / 3 / $12,345" in delinquent
    assert "$750" in delinquent


def test_render_escapes_xml_special_characters() -> None:
    rendered = render_template(default_template_bytes(), RECORD)

    raw = TemplatePackage.from_bytes(rendered).read_text("ppt/slides/slide1.xml")
    assert "1 Elm St &amp; Annex" in raw


def test_render_leaves_non_token_parts_untouched() -> None:
    template = default_template_bytes()
    rendered = render_template(template, RECORD)

    before = TemplatePackage.from_bytes(template)
    after = TemplatePackage.from_bytes(rendered)
    assert after.paths() == before.paths()
    assert after.read_bytes("ppt/presentation.xml") == before.read_bytes("ppt/presentation.xml")


def test_unknown_tokens_render_blank_and_warn(caplog: pytest.LogCaptureFixture) -> None:
    template = _package({"ppt/slides/slide1.xml": _slide("[{{FOO}}] [{{BAR}}]")})

    with caplog.at_level(logging.WARNING, logger="owner_reports.render"):
        rendered = render_template(template, RECORD, extra_values={"bar": "x"})

    assert _text(rendered, "ppt/slides/slide1.xml") == "[] [x]"
    assert "FOO" in caplog.text


def test_trailing_percent_is_per_occurrence() -> None:
    template = _package(
        {"ppt/slides/slide1.xml": _slide("{{DELINPER30}}% and {{DELINPER30}} and {{SFTOC}}")}
    )

    rendered = render_template(template, RECORD)

    assert _text(rendered, "ppt/slides/slide1.xml") == "87.3% and 87.3% and 95.0%"


def test_render_error_produces_no_output() -> None:
    template = _package(
        {
            "ppt/slides/slide1.xml": _slide("{{ADDRESS}}"),
            "ppt/slides/slide2.xml": _slide("{{ }}"),
        }
    )

    with pytest.raises(RenderError) as excinfo:
        render_template(template, RECORD)

    assert len(excinfo.value.issues) == 1
    assert excinfo.value.issues[0].path == "ppt/slides/slide2.xml"


def test_append_audit_slide_follows_delinquent_rent_slide() -> None:
    deck = render_template(default_template_bytes(), RECORD)
    rows = build_audit_rows(RECORD, {OwnerField.DELINDOL30: TokenProvenance("Aging", ("B3", "B4"))})

    updated = append_audit_slide(deck, rows)
    slides = list(Presentation(io.BytesIO(updated)).slides)

    assert len(slides) == 4
    assert "Delinquent Rent" in _slide_text(slides[2])
    assert "Delinquency Audit" in _slide_text(slides[3])
    table = next(shape.table for shape in slides[3].shapes if shape.has_table)
    cells = [[cell.text for cell in row.cells] for row in table.rows]
    assert cells[0] == ["Token", "Value", "Sheet", "Cell(s)"]
    assert [row[0] for row in cells[1:]] == [row.token for row in rows]
    by_token = {row[0]: row for row in cells[1:]}
    assert by_token["DELINDOL30"] == ["DELINDOL30", "$12,345", "Aging", "B3 + B4"]
    assert by_token["DELINUNIT61"][2:] == [DASH, DASH]
    assert "ppt/slides/slide4.xml" in TemplatePackage.from_bytes(updated)


def test_audit_slide_is_inserted_mid_deck_with_the_anchor_layout() -> None:
    deck = _deck(("Cover", "Delinquent Rent", "Closing"), layout=5)
    rows = build_audit_rows(RECORD, {})

    slides = list(Presentation(io.BytesIO(append_audit_slide(deck, rows))).slides)

    assert [_slide_text(slide) for slide in slides][:2] == ["Cover", "Delinquent Rent"]
    assert slides[2].shapes.title is not None
    assert slides[2].shapes.title.text == "Delinquency Audit"
    assert slides[2].slide_layout.name == slides[1].slide_layout.name
    assert _slide_text(slides[3]) == "Closing"


def test_append_audit_slide_without_marker_is_a_no_op(caplog: pytest.LogCaptureFixture) -> None:
    deck = _deck(("Cover",))
    rows = build_audit_rows(RECORD, {})

    with caplog.at_level(logging.WARNING, logger="owner_reports.render"):
        assert append_audit_slide(deck, rows) == deck
    assert "Delinquent Rent" in caplog.text
    assert append_audit_slide(deck, []) == deck


def test_append_audit_slide_rejects_a_bare_zip() -> None:
    deck = _package({"ppt/slides/slide1.xml": _slide("Delinquent Rent")})

    with pytest.raises(TemplateDecodeError):
        append_audit_slide(deck, build_audit_rows(RECORD, {}), filename="bare.pptx")
