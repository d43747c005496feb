from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer

from . import config
from .errors import CertmakerError, DecodeError, TemplateError
from .models import reset_engine
from .pipeline.compose import MarkupMode, compose
from .pipeline.images import DefaultImageResolver
from .pipeline.ingest import field_values_from_row, load_rows, unknown_columns
from .pipeline.qa import ensure_valid, unbound_tokens, validate_template
from .pipeline.run import generate_certificate, run_batch, write_certificate
from .pipeline.scaling import rebase_on_background
from .storage import save_source_file
from .template import GenerationRequest, Template, dump_template, load_template

app = typer.Typer(help="Certificate template rendering and PDF generation")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline progress")) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _use_out_dir(out: Optional[Path]) -> None:
    if out:
        config.set_out_dir(out)
        reset_engine()


def _load(template_path: Path) -> Template:
    try:
        return load_template(template_path)
    except (FileNotFoundError, TemplateError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)


def _field_values(template: Template, pairs: Optional[List[str]]) -> Dict[str, str]:
    row: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected name=value, got {pair!r}", param_hint="--field")
        row[key.strip()] = value
    unknown = unknown_columns(template, list(row))
    if unknown:
        typer.echo(f"Ignoring unknown fields: {', '.join(unknown)}", err=True)
    return field_values_from_row(template, row)


def _markup(literal: bool) -> MarkupMode:
    return MarkupMode.LITERAL if literal else MarkupMode.STRIP


@app.command()
def validate(template_path: Path = typer.Argument(..., help="Template metadata.json")) -> None:
    template = _load(template_path)
    for element_id, tokens in unbound_tokens(template).items():
        typer.echo(f"WARNING: {element_id} has unbound placeholders: {', '.join(tokens)}")
    errors = validate_template(template)
    if errors:
        for error in errors:
            typer.echo(f"ERROR: {error}")
        raise typer.Exit(code=1)
    typer.echo("OK")


@app.command()
def preview(
    template_path: Path = typer.Argument(..., help="Template metadata.json"),
    field: Optional[List[str]] = typer.Option(None, "--field", "-f", help="Field value as name=value"),
    out: Path = typer.Option(Path("preview.png"), "--out", help="PNG output path"),
    literal_markup: bool = typer.Option(False, "--literal-markup", help="Draw markup in text as-is"),
) -> None:
    template = _load(template_path)
    try:
        ensure_valid(template)
    except TemplateError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    result = compose(template, _field_values(template, field), markup=_markup(literal_markup))
    out.parent.mkdir(parents=True, exist_ok=True)
    result.image.save(out)
    for failure in result.failures:
        typer.echo(f"WARNING: {failure.target}: {failure.reason}")
    typer.echo(f"Preview written to {out}")


@app.command()
def generate(
    template_path: Path = typer.Argument(..., help="Template metadata.json"),
    field: Optional[List[str]] = typer.Option(None, "--field", "-f", help="Field value as name=value"),
    code: Optional[str] = typer.Option(None, "--code", help="Certificate code (generated if omitted)"),
    metadata: bool = typer.Option(False, "--metadata", help="Append the source file manifest page"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
    literal_markup: bool = typer.Option(False, "--literal-markup", help="Draw markup in text as-is"),
) -> None:
    _use_out_dir(out)
    template = _load(template_path)
    request = GenerationRequest(
        template=template,
        field_values=_field_values(template, field),
        include_metadata=metadata,
    )
    try:
        result = generate_certificate(request, code=code, markup=_markup(literal_markup))
        path = write_certificate(result, template)
    except CertmakerError as exc:
        typer.echo(f"FAILED: {exc}", err=True)
        raise typer.Exit(code=1)
    for failure in result.failures:
        typer.echo(f"WARNING: {failure.target}: {failure.reason}")
    typer.echo(f"READY: {result.code} ({result.filename}) -> {path}")


@app.command()
def batch(
    template_path: Path = typer.Argument(..., help="Template metadata.json"),
    csv: Path = typer.Option(..., "--csv", help="CSV with one row per certificate, columns named after fields"),
    metadata: bool = typer.Option(False, "--metadata", help="Append the source file manifest page"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
) -> None:
    _use_out_dir(out)
    template = _load(template_path)
    try:
        rows = load_rows(csv)
        results = run_batch(template, rows, include_metadata=metadata)
    except (FileNotFoundError, ValueError, TemplateError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    unknown = unknown_columns(template, list(rows[0]))
    if unknown:
        typer.echo(f"Ignored columns: {', '.join(unknown)}")
    typer.echo(f"READY: {len(results['READY'])}")
    typer.echo(f"FAILED: {len(results['FAILED'])}")
    for code in results["FAILED"]:
        typer.echo(f"FAILED: {code}")


@app.command()
def attach(
    code: str = typer.Argument(..., help="Certificate code"),
    file: Path = typer.Argument(..., help="Source file to associate"),
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory"),
) -> None:
    _use_out_dir(out)
    if not file.is_file():
        typer.echo(f"File not found: {file}", err=True)
        raise typer.Exit(code=1)
    try:
        path = save_source_file(code, file.name, file.read_bytes())
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Stored {path}")


@app.command()
def rebase(
    template_path: Path = typer.Argument(..., help="Template metadata.json"),
    background: Path = typer.Argument(..., help="New background image"),
    out: Optional[Path] = typer.Option(None, "--out", help="Where to write the updated template"),
) -> None:
    template = _load(template_path)
    try:
        image = DefaultImageResolver().resolve(str(background))
    except DecodeError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    updated = rebase_on_background(template, str(background.resolve()), image.size)
    target = dump_template(updated, out or template_path)
    dims = updated.canvas_dimensions
    typer.echo(f"Canvas {dims.width:.0f}x{dims.height:.0f}, template written to {target}")


if __name__ == "__main__":
    app()
