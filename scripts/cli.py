from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich import print

# If not installed in editable mode, add repo root to PYTHONPATH
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from seri.config import get_settings
from seri.errors import SeriError
from seri.importer import (
    default_fetcher,
    load_catalog,
    load_measurements,
    run_import,
    write_jsonl,
    write_report,
)
from seri.profiles import DocumentProfile, get_profile, load_profiles
from seri.schema import DocumentReport, MergedHorseRecord, export_json_schema
from seri.sources.pdftext import create_text_extractor
from seri.utils.logs import setup_logging

app = typer.Typer(add_completion=False, help="Horse sale catalog + measurement import")


def _profile(name: Optional[str]) -> DocumentProfile:
    cfg = get_settings()
    return get_profile(name or cfg.profile, cfg.profiles_path)


def _fail(e: SeriError) -> None:
    typer.secho(str(e), fg="red")
    raise typer.Exit(1)


def _print_doc(rep: DocumentReport) -> None:
    mark = "[green]✓[/green]" if not rep.issues else "[yellow]![/yellow]"
    extra = f", {len(rep.skipped)} skipped" if rep.skipped else ""
    if rep.missing:
        extra += f", {rep.missing} without data"
    if rep.issues:
        extra += f" ({', '.join(rep.issues)})"
    print(f"{mark} {rep.kind}: {rep.source} → {rep.extracted} rows{extra}")


@app.callback()
def main(
    log_level: str = typer.Option(None, "--log-level", help="Defaults to SERI_LOG_LEVEL"),
):
    setup_logging(log_level or get_settings().log_level)


@app.command()
def catalog(
    src: str = typer.Argument(..., help="Catalog URL or HTML file"),
    profile: str = typer.Option(None, "--profile", help="Document profile name"),
    out: Path = typer.Option(
        None, help="Output JSONL (defaults to <output_dir>/records/catalog.jsonl)"
    ),
):
    """Extract catalog rows only."""
    cfg = get_settings()
    prof = _profile(profile)
    try:
        res = load_catalog(src, fetcher=default_fetcher(), profile=prof)
    except SeriError as e:
        _fail(e)
    out = out or cfg.output_dir_records / "catalog.jsonl"
    write_jsonl(res.entries, out)
    print(
        f"[green]✓[/green] {len(res.entries)} catalog rows "
        f"({len(res.skipped)} skipped) → {out}"
    )


@app.command()
def measure(
    srcs: List[str] = typer.Argument(..., help="Measurement PDFs (or .txt dumps)"),
    profile: str = typer.Option(None, "--profile", help="Document profile name"),
    mode: str = typer.Option(None, "--mode", help="stream | layout (overrides profile)"),
    expected_lots: int = typer.Option(
        None, "--expected-lots", help="Lot count hint for the stream-mode run boundary"
    ),
    out: Path = typer.Option(
        None, help="Output JSONL (defaults to <output_dir>/records/measurements.jsonl)"
    ),
    strict: bool = typer.Option(False, "--strict", help="Fail when no header is found"),
):
    """Extract measurements from one or more sheets."""
    cfg = get_settings()
    prof = _profile(profile)
    fetcher = default_fetcher()
    extractor = create_text_extractor(cfg.text_extractor)

    entries = []
    for src in srcs:
        try:
            res = load_measurements(
                src,
                fetcher=fetcher,
                text_extractor=extractor,
                profile=prof,
                strict=strict,
                mode=mode,
                expected_lots=expected_lots,
            )
        except SeriError as e:
            _fail(e)
        entries.extend(res.entries)
        _print_doc(
            DocumentReport(
                source=src,
                kind="measurements",
                extracted=len(res.entries),
                skipped=res.skipped,
                missing=res.missing,
                issues=res.issues,
            )
        )

    out = out or cfg.output_dir_records / "measurements.jsonl"
    write_jsonl(entries, out)
    print(f"[green]✓[/green] wrote {out}")


@app.command()
def run(
    catalog_src: str = typer.Argument(..., help="Catalog URL or HTML file"),
    pdfs: List[str] = typer.Argument(..., help="Measurement PDFs, in priority order"),
    sale_id: int = typer.Option(..., "--sale-id", help="Sale the records belong to"),
    profile: str = typer.Option(None, "--profile", help="Document profile name"),
    out: Path = typer.Option(
        None, help="Output JSONL (defaults to <output_dir>/records/<sale_id>.horses.jsonl)"
    ),
    report_out: Path = typer.Option(None, "--report", help="Optional JSON report path"),
    strict: bool = typer.Option(False, "--strict", help="Fail when no header is found"),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
):
    """
    Full import: catalog + measurement sheets -> merged records.
    Later PDFs win when lot ranges overlap.
    """
    cfg = get_settings()
    try:
        result = run_import(
            catalog_src,
            pdfs,
            sale_id=sale_id,
            profile=_profile(profile),
            strict=strict,
            show_progress=progress,
            on_document=_print_doc,
        )
    except SeriError as e:
        _fail(e)

    out = out or cfg.output_dir_records / f"{sale_id}.horses.jsonl"
    write_jsonl(result.records, out, sale_id=sale_id)
    rep = result.report
    print(
        f"[green]✓[/green] {rep.catalog_count} catalog rows, "
        f"{rep.measurement_count} measured lots ({rep.absent_count} absent), "
        f"{rep.merged_count} records → {out}"
    )
    reasons = rep.skip_reasons
    if reasons:
        print("\n--- Skipped (first 50) ---")
        for r in reasons[:50]:
            print(r)
    if report_out:
        write_report(rep, report_out)
        print(f"[green]✓[/green] wrote {report_out}")


@app.command("validate")
def validate_file(jsonl_path: Path):
    """Validate a records JSONL against the merged record schema."""
    n = 0
    for line in jsonl_path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        data = json.loads(line)
        data.pop("sale_id", None)
        MergedHorseRecord(**data)
        n += 1
    print(f"[green]OK[/green] {n} records")


@app.command("schema")
def schema(
    out: Path = typer.Option(
        None, help="Defaults to <output_dir>/schema/merged_horse_record.schema.json"
    ),
):
    """Write the JSON Schema of the merged record."""
    out = out or get_settings().output_dir / "schema" / "merged_horse_record.schema.json"
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(
        json.dumps(export_json_schema(), indent=2, ensure_ascii=False), encoding="utf-8"
    )
    print(f"[green]✓[/green] wrote {out}")


@app.command("profiles")
def list_profiles():
    """List the known document profiles."""
    cfg = get_settings()
    for name, prof in sorted(load_profiles(cfg.profiles_path).items()):
        marker = "*" if name == cfg.profile else " "
        print(
            f"{marker} [bold]{name}[/bold] ({prof.mode}, {prof.source_encoding}) "
            f"{prof.description or ''}"
        )


@app.command("cache-info")
def cache_info():
    """Show cached downloads."""
    rows = default_fetcher().cache_info()
    if not rows:
        print("[yellow]cache is empty[/yellow]")
        return
    total = 0
    for r in rows:
        total += r["size"]
        print(f"{r['type']:>4} {r['size']:>10} B {r['age_s'] / 3600:6.1f} h  {r['url']}")
    print(f"{len(rows)} files, {total} bytes")


@app.command("cache-clear")
def cache_clear():
    """Delete all cached downloads."""
    cleared, freed = default_fetcher().clear_cache()
    print(f"[green]✓[/green] cleared {cleared} files, {freed} bytes freed")


if __name__ == "__main__":
    app()
