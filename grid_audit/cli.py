"""Command-line interface for the grid audit pipeline."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Any, List, Optional

import typer

from .logging import get_logger
from .normalizer import normalize_all
from .pipeline import audit_page, canonicalize_document, load_json
from .regression import run_golden_set
from .runtime import build_runtime

logger = get_logger(__name__)

app = typer.Typer(add_completion=False, help="Benefits grid audit and option canonicalizer")


@app.command("audit")
def audit_command(
    map_path: Path = typer.Option(..., "--map", help="Spatial map JSON document"),
    assignments_path: Path = typer.Option(..., "--assignments", help="Draft assignments JSON document"),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the audit package here instead of stdout"),
    source: str = typer.Option("", "--source", help="Source document name recorded in metadata"),
    page: int = typer.Option(0, "--page", help="Page number recorded in metadata"),
    promote: bool = typer.Option(False, "--promote", help="Allow header-band promotion of echo pointers"),
) -> None:
    runtime = build_runtime()
    policy = runtime.config.header_band_policy
    if promote:
        policy = replace(policy, allow_row_band_promotion=True)

    package = audit_page(
        _read(map_path),
        _read(assignments_path),
        source_document=source or map_path.name,
        page=page,
        header_band_policy=policy,
        config=runtime.config,
    )
    _emit(package.to_dict(), out)
    if out is not None:
        typer.echo(f"Audit package written to {out} ({package.overall_status})")


@app.command("canonize")
def canonize_command(
    blocks_path: Path = typer.Option(..., "--blocks", help="Row blocks JSON document"),
    options_path: Path = typer.Option(..., "--options", help="Per-row option graphs JSON document"),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the canonical rows here instead of stdout"),
) -> None:
    runtime = build_runtime()
    result = canonicalize_document(_read(blocks_path), _read(options_path), runtime.vocabulary)
    _emit(result, out)
    if out is not None:
        summary = result["summary"]
        typer.echo(f"{summary['rows']} row(s) canonicalized, {summary['violations']} violation(s)")


@app.command("normalize")
def normalize_command(
    texts: List[str] = typer.Argument(..., help="Raw cell tokens to parse"),
) -> None:
    build_runtime()
    result = normalize_all(texts)
    typer.echo(json.dumps({
        "atoms": [a.to_dict() for a in result.atoms],
        "warnings": [w.to_dict() for w in result.warnings],
    }, ensure_ascii=False))


@app.command("regress")
def regress_command(
    golden: Path = typer.Option(..., "--golden", help="Golden set directory containing index.json"),
    actual: Path = typer.Option(..., "--actual", help="Directory of <id>.json audit packages"),
) -> None:
    build_runtime()
    if not golden.is_dir():
        raise typer.BadParameter(f"{golden} is not a directory", param_hint="--golden")
    try:
        report = run_golden_set(golden, actual)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(json.dumps(report.to_dict(), ensure_ascii=False))
    if not report.ok:
        raise typer.Exit(code=1)


@app.command("service")
def service_command(
    host: str = typer.Option("0.0.0.0", "--host", help="Service bind host"),
    port: int = typer.Option(8000, "--port", help="Service port"),
) -> None:
    import uvicorn

    uvicorn.run(
        "grid_audit.app:create_app",
        host=host,
        port=port,
        factory=True,
        log_level="info",
    )


def _read(path: Path) -> Any:
    try:
        return load_json(path)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _emit(document: Any, out: Optional[Path]) -> None:
    text = json.dumps(document, ensure_ascii=False, indent=2)
    if out is None:
        typer.echo(text)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text + "\n", encoding="utf-8")
    logger.info("output_written", path=str(out))


def main():
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
