from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from urllib.parse import urlparse

from pydantic import BaseModel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)

from seri.catalog.extractor import CatalogExtraction, extract_catalog_with_profile
from seri.config import get_settings
from seri.errors import HeaderNotFoundError
from seri.measure.extractor import MeasurementExtraction, parse_measurements_with_profile
from seri.merge import merge_with_stats
from seri.profiles import DocumentProfile, get_profile
from seri.schema import DocumentReport, ImportReport, MergedHorseRecord
from seri.sources.fetcher import DocumentFetcher, HttpFetcher
from seri.sources.pdftext import TextLayoutExtractor, create_text_extractor

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    records: List[MergedHorseRecord]
    report: ImportReport


def default_fetcher() -> HttpFetcher:
    cfg = get_settings()
    return HttpFetcher(
        timeout_s=cfg.fetch_timeout_s,
        enable_cache=cfg.enable_cache,
        cache_dir=cfg.cache_dir,
        cache_ttl_s=cfg.cache_ttl_s,
    )


def default_profile() -> DocumentProfile:
    cfg = get_settings()
    return get_profile(cfg.profile, cfg.profiles_path)


def _is_text_source(url: str) -> bool:
    return urlparse(url).path.lower().endswith(".txt")


# ---------- per document ----------


def load_catalog(
    catalog_url: str, *, fetcher: DocumentFetcher, profile: DocumentProfile
) -> CatalogExtraction:
    html = fetcher.fetch(catalog_url)
    base_url = catalog_url if urlparse(catalog_url).scheme in ("http", "https") else None
    return extract_catalog_with_profile(html, profile, base_url=base_url)


def load_measurement_text(
    url: str,
    *,
    fetcher: DocumentFetcher,
    text_extractor: TextLayoutExtractor,
    layout: bool,
) -> str:
    data = fetcher.fetch(url)
    if _is_text_source(url):
        # already converted (e.g. a saved pdftotext dump)
        return data.decode("utf-8", errors="replace")
    return text_extractor.extract(data, layout=layout)


def load_measurements(
    url: str,
    *,
    fetcher: DocumentFetcher,
    text_extractor: TextLayoutExtractor,
    profile: DocumentProfile,
    strict: bool = False,
    **overrides,
) -> MeasurementExtraction:
    mode = overrides.get("mode") or profile.mode
    text = load_measurement_text(
        url, fetcher=fetcher, text_extractor=text_extractor, layout=mode == "layout"
    )
    res = parse_measurements_with_profile(text, profile, **overrides)
    if strict and not res.header_found:
        raise HeaderNotFoundError(profile.header_markers)
    return res


def _catalog_report(src: str, res: CatalogExtraction) -> DocumentReport:
    return DocumentReport(
        source=src, kind="catalog", extracted=len(res.entries), skipped=res.skipped
    )


def _measurement_report(src: str, res: MeasurementExtraction) -> DocumentReport:
    return DocumentReport(
        source=src,
        kind="measurements",
        extracted=len(res.entries),
        skipped=res.skipped,
        missing=res.missing,
        issues=res.issues,
    )


# ---------- orchestration ----------


def run_import(
    catalog_url: str,
    pdf_urls: Sequence[str],
    *,
    sale_id: int,
    fetcher: Optional[DocumentFetcher] = None,
    text_extractor: Optional[TextLayoutExtractor] = None,
    profile: Optional[DocumentProfile] = None,
    strict: bool = False,
    show_progress: bool = False,
    on_document: Optional[Callable[[DocumentReport], None]] = None,
) -> ImportResult:
    """
    Catalog + measurement sheets -> merged horse records and an import report.

    Measurement documents are processed in the order given; on overlapping lot
    numbers the later document wins. Structural and tool failures propagate.
    """
    fetcher = fetcher or default_fetcher()
    text_extractor = text_extractor or create_text_extractor(get_settings().text_extractor)
    profile = profile or default_profile()

    documents: List[DocumentReport] = []

    def _record(rep: DocumentReport) -> None:
        documents.append(rep)
        if on_document is not None:
            on_document(rep)

    catalog = load_catalog(catalog_url, fetcher=fetcher, profile=profile)
    _record(_catalog_report(catalog_url, catalog))

    measurement_docs = []

    def process(url: str) -> None:
        res = load_measurements(
            url,
            fetcher=fetcher,
            text_extractor=text_extractor,
            profile=profile,
            strict=strict,
        )
        measurement_docs.append(res.entries)
        _record(_measurement_report(url, res))

    if show_progress:
        with Progress(
            TextColumn("[bold]Measurements[/bold]"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            transient=False,
        ) as progress:
            task = progress.add_task("pdfs", total=len(pdf_urls))
            for url in pdf_urls:
                process(url)
                progress.update(task, advance=1)
    else:
        for url in pdf_urls:
            process(url)

    records, stats = merge_with_stats(catalog.entries, measurement_docs)
    report = ImportReport(
        sale_id=sale_id,
        catalog_count=stats.catalog,
        measurement_count=stats.measurements,
        merged_count=len(records),
        matched_count=stats.matched,
        absent_count=stats.absent,
        documents=documents,
    )
    logger.info(
        "sale %d: %d catalog rows, %d measured lots, %d merged records",
        sale_id,
        report.catalog_count,
        report.measurement_count,
        report.merged_count,
    )
    return ImportResult(records=records, report=report)


# ---------- output ----------


def write_jsonl(
    rows: Sequence[BaseModel], out_path: Path, *, sale_id: Optional[int] = None
) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", encoding="utf-8") as f:
        for r in rows:
            payload = r.model_dump(mode="json")
            if sale_id is not None:
                payload = {"sale_id": sale_id, **payload}
            f.write(json.dumps(payload, ensure_ascii=False) + "\n")


def write_report(report: ImportReport, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(
        json.dumps(report.model_dump(mode="json"), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
