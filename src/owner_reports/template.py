"""Template packages — the zip container behind .pptx / .docx files."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from collections.abc import Iterable
from importlib import resources

from owner_reports import REQUIRED_DELINQUENCY_TOKENS
from owner_reports.errors import TemplateCoverageError, TemplateDecodeError
from owner_reports.models import TemplateScan, TemplateTokenFile
from owner_reports.tokens import find_placeholder_tokens
from owner_reports.utils import sha256_bytes

logger = logging.getLogger(__name__)

TOKEN_PART_RE = re.compile(
    r"^(ppt/(slides|slideMasters|slideLayouts)/[^/]+\.xml"
    r"|word/(document|header\d*|footer\d*)\.xml)$"
)
DEFAULT_TEMPLATE = "owner_report_template.pptx"


class TemplatePackage:
    """In-memory zip package with ordered, editable entries."""

    def __init__(self, entries: Iterable[tuple[zipfile.ZipInfo, bytes]], filename: str = "template.pptx") -> None:
        self.filename = filename
        self._infos: dict[str, zipfile.ZipInfo] = {}
        self._data: dict[str, bytes] = {}
        for info, payload in entries:
            self._infos[info.filename] = info
            self._data[info.filename] = payload

    @classmethod
    def from_bytes(cls, data: bytes, filename: str = "template.pptx") -> TemplatePackage:
        """Open a package; corrupt or non-zip bytes raise :class:`TemplateDecodeError`."""
        if not data:
            raise TemplateDecodeError(filename, "file is empty")
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                entries = [(info, zf.read(info)) for info in zf.infolist() if not info.is_dir()]
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as exc:
            raise TemplateDecodeError(filename, str(exc) or type(exc).__name__) from exc
        return cls(entries, filename)

    def paths(self) -> list[str]:
        return list(self._data)

    def __contains__(self, path: object) -> bool:
        return path in self._data

    def read_bytes(self, path: str) -> bytes:
        return self._data[path]

    def read_text(self, path: str) -> str:
        return self._data[path].decode("utf-8")

    def write_bytes(self, path: str, payload: bytes) -> None:
        """Replace an entry, or append a new one at the end."""
        if path not in self._infos:
            self._infos[path] = zipfile.ZipInfo(path, date_time=(1980, 1, 1, 0, 0, 0))
            self._infos[path].compress_type = zipfile.ZIP_DEFLATED
        self._data[path] = payload

    def replace_text(self, path: str, text: str) -> None:
        self.write_bytes(path, text.encode("utf-8"))

    def token_parts(self) -> list[str]:
        """Slide, layout, master and Word body parts, sorted by path."""
        return sorted(p for p in self._data if TOKEN_PART_RE.match(p))

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            for path, payload in self._data.items():
                zf.writestr(self._infos[path], payload)
        return buf.getvalue()


def default_template_bytes() -> bytes:
    """Bytes of the template deck shipped with the package."""
    return resources.files("owner_reports").joinpath("templates", DEFAULT_TEMPLATE).read_bytes()


# ── Scanning ────────────────────────────────────────────────────


def scan_template_tokens(template_bytes: bytes, filename: str = "template.pptx") -> TemplateScan:
    """Inventory the ``{{TOKEN}}`` placeholders of a template."""
    package = TemplatePackage.from_bytes(template_bytes, filename)
    files: list[TemplateTokenFile] = []
    all_tokens: set[str] = set()
    for path in package.token_parts():
        tokens = sorted(set(find_placeholder_tokens(package.read_text(path))))
        files.append(TemplateTokenFile(path=path, tokens=tuple(tokens)))
        all_tokens.update(tokens)
    scan = TemplateScan(sha256=sha256_bytes(template_bytes), files=tuple(files), tokens=tuple(sorted(all_tokens)))
    logger.info("template %s sha256 %s: %d tokens", filename, scan.sha256[:12], len(scan.tokens))
    return scan


def missing_required_tokens(
    scan: TemplateScan, required: Iterable[str] = REQUIRED_DELINQUENCY_TOKENS
) -> list[str]:
    """Required tokens absent from *scan*, in *required* order."""
    present = set(scan.tokens)
    return [token for token in required if token not in present]


def require_template_tokens(
    template_bytes: bytes,
    required: Iterable[str] = REQUIRED_DELINQUENCY_TOKENS,
    *,
    filename: str = "template.pptx",
) -> TemplateScan:
    """Scan *template_bytes* and raise when a required token is missing."""
    scan = scan_template_tokens(template_bytes, filename)
    missing = missing_required_tokens(scan, required)
    if missing:
        raise TemplateCoverageError(missing, template=filename)
    return scan
