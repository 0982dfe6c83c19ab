from __future__ import annotations

import io
import zipfile

import pytest

from owner_reports import REQUIRED_DELINQUENCY_TOKENS
from owner_reports.errors import TemplateCoverageError, TemplateDecodeError
from owner_reports.schema import OwnerField
from owner_reports.template import (
    TemplatePackage,
    default_template_bytes,
    missing_required_tokens,
    require_template_tokens,
    scan_template_tokens,
)


def _package(parts: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for path, text in parts.items():
            zf.writestr(path, text)
    return buf.getvalue()


def test_shipped_template_covers_every_field() -> None:
    scan = scan_template_tokens(default_template_bytes())

    assert set(scan.tokens) == {f.value for f in OwnerField}
    assert missing_required_tokens(scan) == []
    assert len(scan.sha256) == 64


def test_shipped_template_lists_parts_without_tokens() -> None:
    scan = scan_template_tokens(default_template_bytes())
    paths = [part.path for part in scan.files]

    assert paths == sorted(paths)
    assert "ppt/slideMasters/slideMaster1.xml" in paths
    layout = next(p for p in scan.files if p.path == "ppt/slideLayouts/slideLayout1.xml")
    assert layout.tokens == ()
    delinquent = next(p for p in scan.files if p.path == "ppt/slides/slide3.xml")
    assert set(delinquent.tokens) == set(REQUIRED_DELINQUENCY_TOKENS)


def test_scan_reads_word_parts_and_ignores_other_entries() -> None:
    data = _package(
        {
            "word/document.xml": "<w:t>{{ADDRESS}}</w:t><w:t>{{ total</w:t><w:t>units }}</w:t>",
            "word/footer1.xml": "<w:t>{{CURRENTDATE}}</w:t>",
            "docProps/core.xml": "<dc:title>{{NOT_SCANNED}}</dc:title>",
        }
    )

    scan = scan_template_tokens(data, "letter.docx")

    assert scan.tokens == ("ADDRESS", "CURRENTDATE", "TOTALUNITS")
    assert [f.path for f in scan.files] == ["word/document.xml", "word/footer1.xml"]
    assert scan.to_dict()["files"][0] == {
        "path": "word/document.xml",
        "tokens": ["ADDRESS", "TOTALUNITS"],
    }


def test_missing_tokens_keep_required_order() -> None:
    data = _package({"ppt/slides/slide1.xml": "<a:t>{{DELINDOL30}} {{DELINPER30}}</a:t>"})

    scan = scan_template_tokens(data)
    missing = missing_required_tokens(scan)

    assert missing == [t for t in REQUIRED_DELINQUENCY_TOKENS if t not in ("DELINDOL30", "DELINPER30")]
    with pytest.raises(TemplateCoverageError) as excinfo:
        require_template_tokens(data, filename="deck.pptx")
    assert excinfo.value.missing == tuple(missing)
    assert "deck.pptx" in str(excinfo.value)


def test_require_template_tokens_passes_for_shipped_template() -> None:
    scan = require_template_tokens(default_template_bytes())

    assert set(REQUIRED_DELINQUENCY_TOKENS) <= set(scan.tokens)


@pytest.mark.parametrize("data", [b"", b"plain text, not a zip"])
def test_bad_template_bytes_raise_decode_error(data: bytes) -> None:
    with pytest.raises(TemplateDecodeError, match="broken.pptx"):
        scan_template_tokens(data, "broken.pptx")


def test_package_preserves_order_and_appends_new_entries() -> None:
    data = _package({"b.xml": "<b/>", "a.xml": "<a/>"})
    package = TemplatePackage.from_bytes(data)

    package.replace_text("a.xml", "<a>changed</a>")
    package.write_bytes("c.xml", b"<c/>")

    assert package.paths() == ["b.xml", "a.xml", "c.xml"]
    assert "c.xml" in package
    reopened = TemplatePackage.from_bytes(package.to_bytes())
    assert reopened.paths() == ["b.xml", "a.xml", "c.xml"]
    assert reopened.read_text("a.xml") == "<a>changed</a>"
    assert reopened.read_bytes("c.xml") == b"<c/>"
