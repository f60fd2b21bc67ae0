"""
extractor.py

Catalog HTML -> CatalogEntry records.

The catalog is one big <table>; the first row(s) are headers, every following
row with enough <td> cells is one horse. Which column holds which field drifts
between catalog revisions, so the mapping comes from a ColumnMap (see
seri.profiles) instead of being fixed here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from seri.errors import TableNotFoundError
from seri.profiles import DEFAULT_SEX_TOKENS, ColumnMap, DocumentProfile
from seri.schema import CatalogEntry, Sex, SkipRecord
from seri.utils.textnorm import (
    dedupe_repeated_token,
    digits_only,
    normalize_cell,
    parse_int,
)

logger = logging.getLogger(__name__)


@dataclass
class CatalogExtraction:
    entries: List[CatalogEntry] = field(default_factory=list)
    skipped: List[SkipRecord] = field(default_factory=list)
    row_count: int = 0  # data rows looked at (header rows excluded)


def decode_html(html_bytes: bytes, source_encoding: str) -> str:
    # Undecodable bytes become U+FFFD; one bad byte must not lose the document.
    return html_bytes.decode(source_encoding, errors="replace")


def _find_table(soup: BeautifulSoup, table_selector: Optional[str]) -> Optional[Tag]:
    if table_selector:
        return soup.select_one(table_selector)
    return soup.find("table")


def _cell_text(cells: List[Tag], idx: Optional[int]) -> str:
    if idx is None or idx >= len(cells):
        return ""
    return normalize_cell(cells[idx].get_text(" "))


def _parse_sex(raw: str, tokens: Dict[str, Sex]) -> Optional[Sex]:
    if not raw:
        return None
    if raw in tokens:
        return tokens[raw]
    first = raw.split()[0]
    return tokens.get(first)


def _photo_url(cells: List[Tag], idx: Optional[int], base_url: Optional[str]) -> Optional[str]:
    if idx is None or idx >= len(cells):
        return None
    link = cells[idx].select_one("a[data-lightbox]") or cells[idx].find("a", href=True)
    if link is None or not link.get("href"):
        return None
    href = str(link["href"]).strip()
    return urljoin(base_url, href) if base_url else href


def _row_to_entry(
    cells: List[Tag],
    columns: ColumnMap,
    sex_tokens: Dict[str, Sex],
    base_url: Optional[str],
) -> Optional[CatalogEntry]:
    lot = parse_int(_cell_text(cells, columns.lot_number))
    if lot is None or lot <= 0:
        return None

    values: Dict[str, Optional[str]] = {}
    for name, idx in columns.text_fields().items():
        values[name] = dedupe_repeated_token(_cell_text(cells, idx)) or None

    price = None
    if columns.price_estimate is not None:
        price = digits_only(_cell_text(cells, columns.price_estimate))

    return CatalogEntry(
        lot_number=lot,
        sex=_parse_sex(_cell_text(cells, columns.sex), sex_tokens),
        price_estimate=price,
        photo_url=_photo_url(cells, columns.photo, base_url),
        **values,
    )


def extract_catalog(
    html_bytes: bytes,
    source_encoding: str = "cp932",
    *,
    columns: Optional[ColumnMap] = None,
    base_url: Optional[str] = None,
    min_cells: int = 15,
    header_rows: int = 1,
    table_selector: Optional[str] = None,
    sex_tokens: Optional[Dict[str, Sex]] = None,
) -> CatalogExtraction:
    """
    Parse catalog HTML bytes into CatalogEntry records (document order).

    Raises TableNotFoundError when the document has no table at all.
    Short rows and rows whose lot cell is not a positive integer are skipped
    and listed in CatalogExtraction.skipped.
    """
    columns = columns or ColumnMap()
    sex_tokens = sex_tokens if sex_tokens is not None else DEFAULT_SEX_TOKENS

    soup = BeautifulSoup(decode_html(html_bytes, source_encoding), "html.parser")
    table = _find_table(soup, table_selector)
    if table is None:
        raise TableNotFoundError(table_selector or "table")

    result = CatalogExtraction()
    # direct rows only; tables nested inside a cell are not catalog rows
    rows = table.select(
        ":scope > tr, :scope > thead > tr, :scope > tbody > tr, :scope > tfoot > tr"
    )
    for row_index, row in enumerate(rows):
        if row_index < header_rows:
            continue
        result.row_count += 1
        cells = row.find_all("td", recursive=False)
        if len(cells) < min_cells:
            result.skipped.append(
                SkipRecord(
                    reason="too_few_cells",
                    row_index=row_index,
                    detail=f"{len(cells)} < {min_cells}",
                )
            )
            continue

        entry = _row_to_entry(cells, columns, sex_tokens, base_url)
        if entry is None:
            result.skipped.append(
                SkipRecord(
                    reason="bad_lot_number",
                    row_index=row_index,
                    detail=_cell_text(cells, columns.lot_number)[:40] or None,
                )
            )
            continue
        result.entries.append(entry)

    logger.info(
        "catalog: %d entries from %d rows (%d skipped)",
        len(result.entries),
        result.row_count,
        len(result.skipped),
    )
    return result


def extract_catalog_with_profile(
    html_bytes: bytes, profile: DocumentProfile, *, base_url: Optional[str] = None
) -> CatalogExtraction:
    return extract_catalog(
        html_bytes,
        profile.source_encoding,
        columns=profile.columns,
        base_url=base_url,
        min_cells=profile.min_cells,
        header_rows=profile.header_rows,
        table_selector=profile.table_selector,
        sex_tokens=profile.sex_tokens,
    )


def extract_catalog_entries(
    html_bytes: bytes, source_encoding: str = "cp932", **kwargs
) -> List[CatalogEntry]:
    return extract_catalog(html_bytes, source_encoding, **kwargs).entries
