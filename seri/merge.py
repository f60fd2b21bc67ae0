from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from seri.schema import CatalogEntry, MeasurementEntry, MergedHorseRecord

logger = logging.getLogger(__name__)


@dataclass
class MergeStats:
    catalog: int = 0
    measurements: int = 0  # distinct lots after folding all documents
    matched: int = 0
    absent: int = 0
    unmatched_catalog: int = 0
    orphan_measurements: int = 0  # measured lots the catalog does not list


def fold_measurements(
    documents: Iterable[Sequence[MeasurementEntry]],
) -> Dict[int, MeasurementEntry]:
    """Lot number -> entry over all documents; later documents win on collision."""
    by_lot: Dict[int, MeasurementEntry] = {}
    for doc in documents:
        for m in doc:
            by_lot[m.lot_number] = m
    return by_lot


def _merge_one(entry: CatalogEntry, m: MeasurementEntry | None) -> MergedHorseRecord:
    data = entry.model_dump()
    if m is not None:
        data.update(
            height=m.height,
            girth=m.girth,
            cannon=m.cannon,
            measurement_status=m.status,
        )
    return MergedHorseRecord(**data)


def merge_with_stats(
    catalog_entries: Sequence[CatalogEntry],
    measurement_documents: Iterable[Sequence[MeasurementEntry]],
) -> tuple[List[MergedHorseRecord], MergeStats]:
    by_lot = fold_measurements(measurement_documents)
    stats = MergeStats(catalog=len(catalog_entries), measurements=len(by_lot))

    out: List[MergedHorseRecord] = []
    seen = set()
    for entry in catalog_entries:
        m = by_lot.get(entry.lot_number)
        if m is None:
            stats.unmatched_catalog += 1
        elif m.status == "absent":
            stats.absent += 1
        else:
            stats.matched += 1
        seen.add(entry.lot_number)
        out.append(_merge_one(entry, m))

    stats.orphan_measurements = sum(1 for lot in by_lot if lot not in seen)
    if stats.orphan_measurements:
        logger.info(
            "%d measured lots are not in the catalog and were ignored",
            stats.orphan_measurements,
        )
    return out, stats


def merge(
    catalog_entries: Sequence[CatalogEntry],
    measurement_documents: Iterable[Sequence[MeasurementEntry]],
) -> List[MergedHorseRecord]:
    """
    Left-join catalog entries with measurements on lot number.
    One record per catalog entry, in catalog order; the catalog decides which
    lots exist, the measurements only fill height/girth/cannon.
    """
    records, _ = merge_with_stats(catalog_entries, measurement_documents)
    return records
