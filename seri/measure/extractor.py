"""
extractor.py

PDF measurement sheet text -> MeasurementEntry records.

The sheet is a table (lot number, 体高, 胸囲, 管囲) but the text we get back
from the PDF has no delimiters. Two renderings are supported:

stream
    Reading-order dump (pdftotext without -layout). The lot-number column
    comes out first as one number per line, followed by all measurement
    values, again one per line:

        番号
        1
        2
        3
        156
        157
        151
        欠場
        ...

    The end of the lot-number column is only detectable because the run of
    lot numbers is strictly consecutive; the first value that does not
    continue it is taken as the first measurement.

layout
    Column-preserving dump (pdftotext -layout). Every table row is one line:
    "  1   156   157   20.5" or "  2   欠場".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from pydantic import TypeAdapter

from seri.profiles import (
    DEFAULT_ABSENT_MARKER,
    DEFAULT_HEADER_MARKERS,
    DEFAULT_TERMINATORS,
    DocumentProfile,
    MeasurementMode,
)
from seri.schema import AbsentEntry, MeasuredEntry, MeasurementEntry, SkipRecord
from seri.utils.textnorm import is_numeric_line, parse_decimal, parse_int

logger = logging.getLogger(__name__)

_ENTRY_LIST = TypeAdapter(List[MeasurementEntry])


@dataclass(frozen=True)
class MeasurementOptions:
    header_markers: Tuple[str, ...] = DEFAULT_HEADER_MARKERS
    terminators: Tuple[str, ...] = DEFAULT_TERMINATORS
    absent_marker: str = DEFAULT_ABSENT_MARKER
    expected_lots: Optional[int] = None  # caps the stream-mode lot run


@dataclass
class MeasurementExtraction:
    entries: List[MeasurementEntry] = field(default_factory=list)
    lot_numbers: List[int] = field(default_factory=list)
    skipped: List[SkipRecord] = field(default_factory=list)
    missing: int = 0  # lots for which the data lines ran out
    header_found: bool = False
    issues: List[str] = field(default_factory=list)

    def to_jsonable(self) -> list:
        return _ENTRY_LIST.dump_python(self.entries, mode="json")


# ---------- shared helpers ----------


def _find_header(lines: Sequence[str], markers: Sequence[str]) -> int:
    for i, line in enumerate(lines):
        if any(m in line for m in markers):
            return i
    return -1


def _is_terminator(line: str, terminators: Sequence[str]) -> bool:
    return any(t in line for t in terminators)


# ---------- tokenizers ----------


class LineTokenizer:
    """
    Interface: implement .parse(lines, options) -> MeasurementExtraction
    """

    mode: MeasurementMode

    def parse(
        self, lines: Sequence[str], options: MeasurementOptions
    ) -> MeasurementExtraction:
        raise NotImplementedError


class StreamTokenizer(LineTokenizer):
    """One value per line; lot-number column first, then all values."""

    mode: MeasurementMode = "stream"

    def parse(
        self, lines: Sequence[str], options: MeasurementOptions
    ) -> MeasurementExtraction:
        result = MeasurementExtraction()

        # 1) header
        header_idx = _find_header(lines, options.header_markers)
        if header_idx < 0:
            logger.warning("No header line (%s) found", "/".join(options.header_markers))
            result.issues.append("header_not_found")
            return result
        result.header_found = True

        # 2) first purely numeric line after the header starts the lot run
        start = header_idx + 1
        while start < len(lines) and not is_numeric_line(lines[start]):
            start += 1
        if start >= len(lines):
            logger.warning("No lot numbers found after header line %d", header_idx)
            result.issues.append("lot_run_not_found")
            return result

        # 3) consecutive lot numbers; blank lines do not break the run
        lots, i = self._collect_lot_run(lines, start, options.expected_lots)
        result.lot_numbers = lots

        # 4) data lines up to the price/appendix section
        data = self._collect_data_lines(lines, i, options.terminators)

        self._associate(lots, data, options.absent_marker, result)
        return result

    @staticmethod
    def _collect_lot_run(
        lines: Sequence[str], start: int, expected_lots: Optional[int]
    ) -> Tuple[List[int], int]:
        lots: List[int] = []
        expected = int(lines[start].strip())
        i = start
        while i < len(lines):
            line = lines[i].strip()
            if line == "":
                i += 1
                continue
            if not is_numeric_line(line) or int(line) != expected:
                break
            if expected_lots is not None and len(lots) >= expected_lots:
                break
            lots.append(expected)
            expected += 1
            i += 1
        return lots, i

    @staticmethod
    def _collect_data_lines(
        lines: Sequence[str], i: int, terminators: Sequence[str]
    ) -> List[str]:
        while i < len(lines) and lines[i].strip() == "":
            i += 1
        data: List[str] = []
        for raw in lines[i:]:
            line = raw.strip()
            if _is_terminator(line, terminators):
                break
            if line:
                data.append(line)
        return data

    @staticmethod
    def _associate(
        lots: Sequence[int],
        data: Sequence[str],
        absent_marker: str,
        result: MeasurementExtraction,
    ) -> None:
        # A line that starts neither an absent marker nor a full triple is
        # dropped and the same lot is retried on the next line.
        cursor = 0
        n = 0
        while n < len(lots):
            lot = lots[n]
            if cursor >= len(data):
                result.missing = len(lots) - n
                break

            first = data[cursor]
            entry = None
            width = 0
            if first == absent_marker:
                width = 1
                if lot > 0:
                    entry = AbsentEntry(lot_number=lot)
            else:
                height = parse_int(first)
                girth = parse_int(data[cursor + 1]) if cursor + 1 < len(data) else None
                cannon = (
                    parse_decimal(data[cursor + 2]) if cursor + 2 < len(data) else None
                )
                if height is not None and girth is not None and cannon is not None:
                    width = 3
                    if lot > 0:
                        entry = MeasuredEntry(
                            lot_number=lot, height=height, girth=girth, cannon=cannon
                        )

            if width:
                # lot 0 still owns its data lines; only the record is dropped
                if entry is None:
                    result.skipped.append(
                        SkipRecord(
                            reason="bad_lot_number",
                            row_index=cursor,
                            lot_number=lot,
                            detail=" ".join(data[cursor : cursor + width]),
                        )
                    )
                else:
                    result.entries.append(entry)
                cursor += width
                n += 1
                continue

            logger.debug("lot %d: no valid triple at data line %d (%r)", lot, cursor, first)
            result.skipped.append(
                SkipRecord(
                    reason="broken_triple",
                    row_index=cursor,
                    lot_number=lot,
                    detail=" ".join(data[cursor : cursor + 3]),
                )
            )
            cursor += 1


class LayoutTokenizer(LineTokenizer):
    """One table row per line: "<lot> <height> <girth> <cannon>" or "<lot> <absent>"."""

    mode: MeasurementMode = "layout"

    # a line that starts like a table row but did not match row_pattern
    _ROW_START = re.compile(r"^\s*(\d+)\s+\S")

    @staticmethod
    def row_pattern(absent_marker: str) -> re.Pattern:
        return re.compile(
            r"^\s*(\d+)\s+(?:(?P<absent>"
            + re.escape(absent_marker)
            + r")|(?P<height>\d+)\s+(?P<girth>\d+)\s+(?P<cannon>\d+(?:\.\d+)?))"
        )

    def parse(
        self, lines: Sequence[str], options: MeasurementOptions
    ) -> MeasurementExtraction:
        result = MeasurementExtraction()
        pattern = self.row_pattern(options.absent_marker)

        header_idx = _find_header(lines, options.header_markers)
        if header_idx < 0:
            # rows carry their own lot number, so scan from the top
            logger.warning(
                "No header line (%s) found; scanning whole text",
                "/".join(options.header_markers),
            )
            result.issues.append("header_not_found")
        else:
            result.header_found = True

        for raw in lines[header_idx + 1 :]:
            m = pattern.match(raw)
            if m is None:
                if _is_terminator(raw, options.terminators):
                    break
                partial = self._ROW_START.match(raw)
                if partial is not None:
                    result.skipped.append(
                        SkipRecord(
                            reason="broken_triple",
                            lot_number=int(partial.group(1)),
                            detail=raw.strip()[:40],
                        )
                    )
                continue
            lot = int(m.group(1))
            if lot <= 0:
                result.skipped.append(
                    SkipRecord(reason="bad_lot_number", detail=raw.strip()[:40])
                )
                continue
            result.lot_numbers.append(lot)
            if m.group("absent") is not None:
                result.entries.append(AbsentEntry(lot_number=lot))
            else:
                result.entries.append(
                    MeasuredEntry(
                        lot_number=lot,
                        height=int(m.group("height")),
                        girth=int(m.group("girth")),
                        cannon=float(m.group("cannon")),
                    )
                )
        return result


_TOKENIZERS = {
    "stream": StreamTokenizer,
    "layout": LayoutTokenizer,
}


def get_tokenizer(mode: str) -> LineTokenizer:
    try:
        return _TOKENIZERS[mode]()
    except KeyError:
        raise ValueError(f"Unknown measurement mode: {mode}. Use 'stream' or 'layout'.")


# ---------- entry points ----------


def parse_measurements(
    text: str,
    *,
    mode: MeasurementMode = "stream",
    header_markers: Sequence[str] = DEFAULT_HEADER_MARKERS,
    terminators: Sequence[str] = DEFAULT_TERMINATORS,
    absent_marker: str = DEFAULT_ABSENT_MARKER,
    expected_lots: Optional[int] = None,
) -> MeasurementExtraction:
    """
    Parse measurement-sheet text into entries plus diagnostics.
    Never raises for degenerate input; a missing header is reported through
    `header_found` / `issues` and yields no entries in stream mode.
    """
    options = MeasurementOptions(
        header_markers=tuple(header_markers),
        terminators=tuple(terminators),
        absent_marker=absent_marker,
        expected_lots=expected_lots,
    )
    result = get_tokenizer(mode).parse((text or "").splitlines(), options)
    logger.info(
        "measurements (%s): %d entries for %d lots, %d skipped, %d missing",
        mode,
        len(result.entries),
        len(result.lot_numbers),
        len(result.skipped),
        result.missing,
    )
    return result


def parse_measurements_with_profile(
    text: str, profile: DocumentProfile, **overrides
) -> MeasurementExtraction:
    opts = profile.measurement_options()
    opts.update({k: v for k, v in overrides.items() if v is not None})
    return parse_measurements(text, **opts)


def extract_measurements(text: str, **kwargs) -> List[MeasurementEntry]:
    return parse_measurements(text, **kwargs).entries
