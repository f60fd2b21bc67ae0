import re
from typing import Optional

_NBSP = "\u00a0"
_THIN = "\u2009"
_NNBSP = "\u202f"
_IDEOGRAPHIC_SPACE = "\u3000"

_RE_SPECIAL_SPACES = re.compile(
    "[{}]".format(re.escape(_NBSP + _THIN + _NNBSP + _IDEOGRAPHIC_SPACE))
)

# Printable ASCII, CJK punctuation, kana, CJK ideographs (incl. ext. A) and
# half/full-width forms. Everything else in a catalog cell is markup debris.
_RE_OUTSIDE_ALLOW_LIST = re.compile(
    "[^\\s\x20-\x7e\u3000-\u303f\u3040-\u309f\u30a0-\u30ff"
    "\u3400-\u4dbf\u4e00-\u9fff\uff00-\uffef]"
)
_RE_ANY_WHITESPACE = re.compile(r"\s+")

_RE_DIGITS = re.compile(r"^[0-9]+$")
_RE_DECIMAL = re.compile(r"^[0-9]+(?:\.[0-9]+)?$")


def normalize_cell(text: Optional[str]) -> str:
    """
    Normalize the visible text of one HTML table cell:
    exotic spaces become plain spaces, characters outside the allow-list are
    dropped, whitespace runs (incl. newlines) collapse to one space.
    """
    if not text:
        return ""
    s = _RE_SPECIAL_SPACES.sub(" ", text)
    s = _RE_OUTSIDE_ALLOW_LIST.sub("", s)
    s = _RE_ANY_WHITESPACE.sub(" ", s)
    return s.strip()


def dedupe_repeated_token(text: Optional[str]) -> str:
    # "コパノリッキー コパノリッキー" -> "コパノリッキー" (label + hidden duplicate)
    if not text:
        return text or ""
    parts = text.split()
    if len(parts) >= 2 and parts[0] == parts[1]:
        return " ".join([parts[0]] + parts[2:])
    return text


def is_numeric_line(line: str) -> bool:
    return bool(_RE_DIGITS.match(line.strip()))


def parse_int(token: Optional[str]) -> Optional[int]:
    """Strict non-negative integer; None for anything else."""
    if token is None:
        return None
    t = token.strip()
    if not _RE_DIGITS.match(t):
        return None
    return int(t)


def parse_decimal(token: Optional[str]) -> Optional[float]:
    """Strict non-negative decimal ("20.5", "151"); None for anything else."""
    if token is None:
        return None
    t = token.strip()
    if not _RE_DECIMAL.match(t):
        return None
    return float(t)


def digits_only(text: Optional[str]) -> Optional[int]:
    # price cells look like "1,500万円"; keep the digits
    if not text:
        return None
    d = re.sub(r"[^0-9]", "", text)
    return int(d) if d else None
