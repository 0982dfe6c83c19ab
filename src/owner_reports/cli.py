"""CLI entry point for owner-reports."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from owner_reports import REQUIRED_DELINQUENCY_TOKENS, __version__
from owner_reports.audit import build_audit_rows
from owner_reports.coerce import coerce_value
from owner_reports.config import ExtractionConfig, load_profile, parse_adjacency
from owner_reports.coverage import write_coverage_report
from owner_reports.errors import OwnerReportError, RenderError
from owner_reports.extract import ExtractionResult, extract_workbook
from owner_reports.io import load_workbook_path, write_bytes, write_json
from owner_reports.models import CoverageReport, FieldRecord, RunManifest, TokenProvenance
from owner_reports.render import append_audit_slide, render_template, report_filename
from owner_reports.report import write_audit_workbook
from owner_reports.schema import FIELD_KINDS, FieldKind, FieldValue, OwnerField
from owner_reports.template import default_template_bytes, missing_required_tokens, scan_template_tokens
from owner_reports.utils import sha256_bytes, sha256_file, utcnow_iso

app = typer.Typer(
    name="oreports",
    help="owner-reports — Turn property-management exports into owner report decks.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


class NumberLocaleOption(str, Enum):
    auto = "auto"
    us = "us"
    eu = "eu"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"owner-reports v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_config(
    profile: Path | None,
    adjacency: list[str] | None,
    min_similarity: float,
    number_locale: NumberLocaleOption,
    *,
    filename_date: bool = True,
    cell_fallbacks: bool = True,
) -> ExtractionConfig:
    return ExtractionConfig(
        adjacency=parse_adjacency(adjacency),
        min_similarity=min_similarity,
        number_locale=number_locale.value,
        use_filename_date=filename_date,
        use_cell_fallbacks=cell_fallbacks,
        label_table=load_profile(profile),
    )


def _write_manifest(
    out_dir: Path,
    command: str,
    created_at: str,
    *,
    input_file: Path | None = None,
    template_file: Path | None = None,
    output_path: Path | None = None,
    coverage: CoverageReport | None = None,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    def _digest(path: Path | None) -> str:
        if path is None:
            return ""
        try:
            return sha256_file(path)
        except OSError:
            return ""

    template_sha = _digest(template_file)
    if template_file is None and command in ("render", "scan-template"):
        template_sha = sha256_bytes(default_template_bytes())

    manifest = RunManifest(
        command=command,
        version=__version__,
        input_path=str(input_file.resolve()) if input_file else "",
        template_path=str(template_file.resolve()) if template_file else "",
        output_path=str((output_path or out_dir).resolve()),
        created_at_utc=created_at,
        sha256=_digest(input_file),
        template_sha256=template_sha,
        fields_found=len(coverage.found) if coverage else 0,
        fields_missing=len(coverage.missing) if coverage else 0,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    command: str,
    created_at: str,
    message: str,
    *,
    input_file: Path | None = None,
    template_file: Path | None = None,
    coverage: CoverageReport | None = None,
    error_code: int = 2,
) -> typer.Exit:
    manifest_path = _write_manifest(
        out_dir,
        command,
        created_at,
        input_file=input_file,
        template_file=template_file,
        coverage=coverage,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  Manifest -> {manifest_path}")
    return typer.Exit(code=error_code)


def _extract(input_file: Path, config: ExtractionConfig) -> ExtractionResult:
    workbook = load_workbook_path(input_file)
    return extract_workbook(workbook, input_file.name, config=config)


def _parse_override(field: OwnerField, value: Any) -> FieldValue:
    if FIELD_KINDS[field] is FieldKind.TEXT and isinstance(value, str) and not value.strip():
        return ""
    parsed = coerce_value(field, value)
    if parsed is None:
        raise ValueError(f"Invalid override for {field.value}: {value!r}")
    return parsed


def _load_overrides(path: Path | None) -> tuple[dict[OwnerField, FieldValue], dict[str, Any]]:
    """Split an overrides JSON object into typed field values and extra tokens."""
    if path is None:
        return {}, {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read overrides {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Overrides must be a JSON object: {path}")

    fields: dict[OwnerField, FieldValue] = {}
    extras: dict[str, Any] = {}
    for key, value in payload.items():
        try:
            field = OwnerField.parse(key)
        except KeyError:
            extras[str(key)] = value
            continue
        fields[field] = _parse_override(field, value)
    return fields, extras


def _print_start(title: str, lines: list[str], style: str) -> None:
    console.print(Panel(
        f"[bold]owner-reports[/bold] v{__version__}\n" + "\n".join(lines),
        title=title, border_style=style,
    ))


def _fields_table(record: FieldRecord, result: ExtractionResult) -> RichTable:
    tbl = RichTable(title="Extracted Fields", show_lines=False)
    tbl.add_column("Field", style="bold")
    tbl.add_column("Value")
    tbl.add_column("Source")
    for field in OwnerField:
        if field.value not in result.coverage.found:
            continue
        source = result.provenance.get(field)
        where = f"{source.sheet}!{','.join(source.cells)}" if source and source.cells else "-"
        tbl.add_row(field.value, str(record[field]), where)
    return tbl


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Debug logging (per-field matches, per-token values).",
    ),
) -> None:
    """owner-reports CLI."""
    _configure_logging(verbose)


# ── extract command ──────────────────────────────────────────────


@app.command()
def extract(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to XLSX, CSV or XLS export.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for fields + coverage + manifest.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file with extra label variants (FIELD=label lines).",
    ),
    adjacency: list[str] | None = typer.Option(
        None, "--adjacency", "-a",
        help="Value cell search order: right, below, right2 (repeat or comma-separate).",
    ),
    min_similarity: float = typer.Option(
        90.0, "--min-similarity",
        help="Fuzzy label match threshold, 0-100.",
    ),
    number_locale: NumberLocaleOption = typer.Option(
        NumberLocaleOption.auto,
        "--number-locale",
        help="Numeric parsing mode: auto, us, or eu.",
    ),
    filename_date: bool = typer.Option(
        True, "--filename-date/--no-filename-date",
        help="Fall back to a YYYY-MM-DD date in the file name for CURRENTDATE.",
    ),
    cell_fallbacks: bool = typer.Option(
        True, "--cell-fallbacks/--no-cell-fallbacks",
        help="Fall back to fixed cell positions of the standard export.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Extract owner-report fields from a spreadsheet export.

    Writes fields.json + coverage_report.json + run_manifest.json.
    Exit 0 = OK (missing fields are reported, not fatal), exit 2 = unreadable input.
    """
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        config = _build_config(
            profile, adjacency, min_similarity, number_locale,
            filename_date=filename_date, cell_fallbacks=cell_fallbacks,
        )
    except ValueError as exc:
        raise _fail(out_dir, "extract", created_at, str(exc), input_file=input_file)

    if not quiet:
        _print_start("Extract", [f"Input:  {input_file}", f"Output: {out_dir}"], "blue")
        if profile:
            console.print(f"  Using profile: {profile}")

    echo("[blue]>[/blue] Reading workbook …")
    try:
        result = _extract(input_file, config)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, "extract", created_at, str(exc), input_file=input_file)

    try:
        fields_path = write_json(
            out_dir / "fields.json",
            {
                "source": input_file.name,
                "fields": result.record.to_dict(),
                "provenance": result.provenance.to_dict(),
            },
        )
        coverage_path = write_coverage_report(out_dir, result.coverage)
        manifest_path = _write_manifest(
            out_dir, "extract", created_at, input_file=input_file, coverage=result.coverage
        )
    except Exception as exc:
        raise _fail(
            out_dir, "extract", created_at, f"Unexpected internal error: {exc}",
            input_file=input_file, error_code=1,
        )

    if not quiet:
        console.print(_fields_table(result.record, result))
        for warning in result.coverage.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
        if result.coverage.missing:
            console.print(f"  [yellow]![/yellow] Missing: {', '.join(result.coverage.missing)}")
    echo(f"  Fields   -> {fields_path}")
    echo(f"  Coverage -> {coverage_path}")
    echo(f"  Manifest -> {manifest_path}")


# ── scan-template command ────────────────────────────────────────


@app.command("scan-template")
def scan_template(
    template: Path | None = typer.Option(
        None, "--template", "-t",
        help="Template .pptx/.docx (default: the bundled owner report deck).",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for template_tokens.json + manifest.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output.",
    ),
) -> None:
    """List the placeholders of a template and check delinquency coverage.

    Exit 0 = all delinquency tokens present, exit 2 = missing tokens or unreadable template.
    """
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        data = template.read_bytes() if template else default_template_bytes()
        scan = scan_template_tokens(data, template.name if template else "template.pptx")
    except (OSError, OwnerReportError) as exc:
        raise _fail(out_dir, "scan-template", created_at, str(exc), template_file=template)

    missing = missing_required_tokens(scan)
    tokens_path = write_json(
        out_dir / "template_tokens.json", {**scan.to_dict(), "missing_required": missing}
    )

    if not quiet:
        tbl = RichTable(title="Template Tokens", show_lines=True)
        tbl.add_column("Part", style="bold")
        tbl.add_column("Tokens")
        for part in scan.files:
            tbl.add_row(part.path, ", ".join(part.tokens) or "-")
        tbl.add_row("SHA-256", scan.sha256)
        status = "[red]FAIL[/red]" if missing else "[green]PASS[/green]"
        tbl.add_row("Delinquency tokens", status)
        console.print(tbl)
    console.print(f"  Tokens   -> {tokens_path}")

    if missing:
        raise _fail(
            out_dir, "scan-template", created_at,
            f"Template is missing delinquency placeholders: {', '.join(missing)}",
            template_file=template,
        )
    manifest_path = _write_manifest(out_dir, "scan-template", created_at, template_file=template)
    console.print(f"  Manifest -> {manifest_path}")


# ── render command ───────────────────────────────────────────────


@app.command()
def render(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to XLSX, CSV or XLS export.",
        exists=True, readable=True,
    ),
    template: Path | None = typer.Option(
        None, "--template", "-t",
        help="Template .pptx (default: the bundled owner report deck).",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the report + manifest.",
    ),
    overrides: Path | None = typer.Option(
        None, "--overrides",
        help="JSON object of FIELD/TOKEN -> value applied over extracted values.",
        exists=True, readable=True,
    ),
    audit_slide: bool = typer.Option(
        False, "--audit-slide",
        help="Append a Delinquency Audit slide after the Delinquent Rent slide.",
    ),
    check_tokens: bool = typer.Option(
        True, "--check-tokens/--no-check-tokens",
        help="Fail when the template lacks the delinquency placeholders.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file with extra label variants (FIELD=label lines).",
    ),
    adjacency: list[str] | None = typer.Option(
        None, "--adjacency", "-a",
        help="Value cell search order: right, below, right2.",
    ),
    min_similarity: float = typer.Option(
        90.0, "--min-similarity",
        help="Fuzzy label match threshold, 0-100.",
    ),
    number_locale: NumberLocaleOption = typer.Option(
        NumberLocaleOption.auto,
        "--number-locale",
        help="Numeric parsing mode: auto, us, or eu.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Extract fields and render them into an owner report deck."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    def fail(message: str, coverage: CoverageReport | None = None, code: int = 2) -> typer.Exit:
        return _fail(
            out_dir, "render", created_at, message,
            input_file=input_file, template_file=template, coverage=coverage, error_code=code,
        )

    try:
        config = _build_config(profile, adjacency, min_similarity, number_locale)
        field_overrides, extra_values = _load_overrides(overrides)
    except ValueError as exc:
        raise fail(str(exc))

    if not quiet:
        _print_start(
            "Render",
            [
                f"Input:    {input_file}",
                f"Template: {template or 'bundled owner_report_template.pptx'}",
                f"Output:   {out_dir}",
            ],
            "blue",
        )

    try:
        template_bytes = template.read_bytes() if template else default_template_bytes()
    except OSError as exc:
        raise fail(str(exc))

    # ── Extract ──────────────────────────────────────────────────
    echo("[blue]>[/blue] Extracting fields …")
    try:
        result = _extract(input_file, config)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise fail(str(exc))
    coverage = result.coverage
    echo(f"  {len(coverage.found)} fields found, {len(coverage.missing)} missing")

    try:
        # ── Template coverage ────────────────────────────────────
        if check_tokens:
            scan = scan_template_tokens(template_bytes, template.name if template else "template.pptx")
            missing = missing_required_tokens(scan)
            if missing:
                raise fail(
                    f"Template is missing delinquency placeholders: {', '.join(missing)}", coverage
                )

        # ── Render ───────────────────────────────────────────────
        record = result.record.replace(field_overrides)
        echo("[blue]>[/blue] Rendering template …")
        rendered = render_template(template_bytes, record, extra_values=extra_values)
        if audit_slide:
            provenance = dict(result.provenance)
            for field in field_overrides:
                provenance[field] = TokenProvenance("manual override", ())
            rendered = append_audit_slide(
                rendered, build_audit_rows(record, provenance), filename=report_filename(record)
            )

        report_path = write_bytes(out_dir / report_filename(record), rendered)
        coverage_path = write_coverage_report(out_dir, coverage)
        manifest_path = _write_manifest(
            out_dir, "render", created_at,
            input_file=input_file, template_file=template,
            output_path=report_path, coverage=coverage,
        )
    except typer.Exit:
        raise
    except RenderError as exc:
        for issue in exc.issues:
            console.print(f"  [red]-[/red] {issue.path}: {issue.placeholder!r} ({issue.reason})")
        raise fail(str(exc), coverage)
    except OwnerReportError as exc:
        raise fail(str(exc), coverage)
    except Exception as exc:
        raise fail(f"Unexpected internal error: {exc}", coverage, code=1)

    echo(f"  Coverage -> {coverage_path}")
    echo(f"  Manifest -> {manifest_path}")
    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {len(coverage.found)} fields -> {report_path}",
            title="Render Complete", border_style="green",
        ))
    else:
        console.print(f"  Report -> {report_path}")


# ── audit command ────────────────────────────────────────────────


@app.command()
def audit(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to XLSX, CSV or XLS export.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the audit workbook + JSON.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file with extra label variants (FIELD=label lines).",
    ),
    number_locale: NumberLocaleOption = typer.Option(
        NumberLocaleOption.auto,
        "--number-locale",
        help="Numeric parsing mode: auto, us, or eu.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress the audit table; still writes all artifacts.",
    ),
) -> None:
    """Show where every delinquency value came from.

    Writes delinquency_audit.json + Owner_Report_Audit.xlsx + run_manifest.json.
    """
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        config = _build_config(profile, None, 90.0, number_locale)
        result = _extract(input_file, config)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, "audit", created_at, str(exc), input_file=input_file)

    rows = build_audit_rows(result.record, result.provenance, REQUIRED_DELINQUENCY_TOKENS)
    try:
        json_path = write_json(out_dir / "delinquency_audit.json", [row.to_dict() for row in rows])
        workbook_path = write_audit_workbook(
            out_dir, result.record, result.provenance, rows, result.coverage,
            source=input_file.name,
        )
        manifest_path = _write_manifest(
            out_dir, "audit", created_at,
            input_file=input_file, output_path=workbook_path, coverage=result.coverage,
        )
    except Exception as exc:
        raise _fail(
            out_dir, "audit", created_at, f"Unexpected internal error: {exc}",
            input_file=input_file, coverage=result.coverage, error_code=1,
        )

    if not quiet:
        tbl = RichTable(title="Delinquency Audit", show_lines=True)
        tbl.add_column("Token", style="bold")
        tbl.add_column("Value", justify="right")
        tbl.add_column("Sheet")
        tbl.add_column("Cell(s)")
        for row in rows:
            tbl.add_row(row.token, row.value, row.sheet, " + ".join(row.cells) or "-")
        console.print(tbl)
    echo(f"  Audit JSON -> {json_path}")
    echo(f"  Workbook   -> {workbook_path}")
    echo(f"  Manifest   -> {manifest_path}")
