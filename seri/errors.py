"""
Exceptions raised by the seri import pipeline.

Only document-level failures are exceptions. Row and record level problems
(short rows, broken measurement triples, non-numeric lot numbers) are
collected as SkipRecord entries and reported, never raised.
"""

from __future__ import annotations

from typing import Any, Optional


class SeriError(Exception):
    """Base exception for all seri errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# -----------------------------
# Structural preconditions
# -----------------------------


class StructuralError(SeriError):
    """The document does not have the shape the extractor needs at all."""


class TableNotFoundError(StructuralError):
    def __init__(self, selector: str) -> None:
        super().__init__(
            f"No table element found in catalog (selector: {selector!r})",
            {"selector": selector},
        )


class HeaderNotFoundError(StructuralError):
    def __init__(self, markers: tuple[str, ...] | list[str]) -> None:
        super().__init__(
            "No measurement header line found",
            {"markers": list(markers)},
        )


# -----------------------------
# Collaborator failures
# -----------------------------


class ExtractionToolError(SeriError):
    """Text-layout extraction failed (tool missing, non-zero exit, bad PDF)."""

    def __init__(self, tool: str, diagnostic: str, returncode: Optional[int] = None) -> None:
        super().__init__(
            f"{tool} failed: {diagnostic.strip() or 'no diagnostic output'}",
            {"tool": tool, "returncode": returncode},
        )
        self.tool = tool
        self.diagnostic = diagnostic
        self.returncode = returncode


class FetchError(SeriError):
    def __init__(self, url: str, reason: str, status_code: Optional[int] = None) -> None:
        super().__init__(
            f"Could not fetch {url}: {reason}",
            {"url": url, "status_code": status_code},
        )
        self.url = url
        self.status_code = status_code
