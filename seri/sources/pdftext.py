"""
pdftext.py

PDF bytes -> plain text, in one of two renderings:

* stream  (layout=False): reading order, one text run per line
* layout  (layout=True):  table rows kept on one line, columns separated by spaces

Two backends: the poppler `pdftotext` binary (what the measurement sheets were
tuned against) and PyMuPDF, which needs no external binary.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Sequence

import fitz  # PyMuPDF

from seri.errors import ExtractionToolError

logger = logging.getLogger(__name__)


class TextLayoutExtractor:
    """
    Interface: implement .extract(pdf_bytes, layout=...) -> str (UTF-8 text)
    Raise ExtractionToolError when the tool fails.
    """

    name: str = "base"

    def extract(self, pdf_bytes: bytes, *, layout: bool = False) -> str:
        raise NotImplementedError


@dataclass
class PdftotextExtractor(TextLayoutExtractor):
    binary: str = "pdftotext"
    timeout_s: float = 120.0
    name: str = "pdftotext"

    def command(self, pdf_path: Path, txt_path: Path, *, layout: bool) -> List[str]:
        cmd = [self.binary, "-enc", "UTF-8"]
        if layout:
            cmd.append("-layout")
        cmd += [str(pdf_path), str(txt_path)]
        return cmd

    def extract(self, pdf_bytes: bytes, *, layout: bool = False) -> str:
        # temp files live only inside this block, whatever happens
        with tempfile.TemporaryDirectory(prefix="seri-pdf-") as tmp:
            pdf_path = Path(tmp) / "in.pdf"
            txt_path = Path(tmp) / "out.txt"
            pdf_path.write_bytes(pdf_bytes)

            cmd = self.command(pdf_path, txt_path, layout=layout)
            logger.debug("running %s", " ".join(cmd))
            try:
                proc = subprocess.run(
                    cmd, capture_output=True, text=True, timeout=self.timeout_s
                )
            except FileNotFoundError as e:
                raise ExtractionToolError(self.binary, f"executable not found ({e})") from e
            except subprocess.TimeoutExpired as e:
                raise ExtractionToolError(
                    self.binary, f"timed out after {self.timeout_s:.0f}s"
                ) from e

            if proc.returncode != 0:
                raise ExtractionToolError(self.binary, proc.stderr or "", proc.returncode)
            if not txt_path.exists():
                raise ExtractionToolError(self.binary, "no output file written", proc.returncode)
            return txt_path.read_text(encoding="utf-8", errors="replace")


def rows_from_words(words: Sequence[Any], *, y_tolerance: float = 3.0) -> List[str]:
    """
    Group positioned words into visual rows: words whose top edges are within
    y_tolerance share a row, ordered left to right, joined by two spaces.
    """
    ordered = sorted(words, key=lambda w: (w[1], w[0]))
    rows: List[List[Any]] = []
    row_top = None
    for w in ordered:
        if row_top is None or abs(w[1] - row_top) > y_tolerance:
            rows.append([w])
            row_top = w[1]
        else:
            rows[-1].append(w)
    return ["  ".join(str(w[4]) for w in sorted(r, key=lambda w: w[0])) for r in rows]


@dataclass
class PyMuPDFExtractor(TextLayoutExtractor):
    y_tolerance: float = 3.0
    name: str = "pymupdf"

    def extract(self, pdf_bytes: bytes, *, layout: bool = False) -> str:
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise ExtractionToolError(self.name, str(e)) from e
        try:
            pages: List[str] = []
            for i in range(doc.page_count):
                page = doc.load_page(i)
                if layout:
                    rows = rows_from_words(
                        page.get_text("words"), y_tolerance=self.y_tolerance
                    )
                    pages.append("\n".join(rows))
                else:
                    pages.append(page.get_text("text"))
            return "\n".join(pages)
        finally:
            doc.close()


def create_text_extractor(provider: str, **kwargs: Any) -> TextLayoutExtractor:
    if provider == "pdftotext":
        return PdftotextExtractor(**kwargs)
    if provider == "pymupdf":
        return PyMuPDFExtractor(**kwargs)
    raise ValueError(
        f"Unknown text extractor: {provider}. Use 'pdftotext' or 'pymupdf'."
    )
