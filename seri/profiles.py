from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from seri.schema import Sex

DEFAULT_PROFILES_PATH = Path(__file__).with_name("profiles.yaml")

MeasurementMode = Literal["stream", "layout"]

DEFAULT_HEADER_MARKERS: Tuple[str, ...] = ("番号",)
DEFAULT_TERMINATORS: Tuple[str, ...] = ("販売希望", "価格", "レポジトリー")
DEFAULT_ABSENT_MARKER = "欠場"
DEFAULT_SEX_TOKENS: Dict[str, Sex] = {
    "牡": Sex.male,
    "牝": Sex.female,
    "セン": Sex.gelding,
    "騸": Sex.gelding,
}


class ColumnMap(BaseModel):
    """0-based <td> index for each catalog field; None = not in this layout."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    lot_number: int = Field(0, ge=0)
    sex: Optional[int] = Field(4, ge=0)
    color: Optional[int] = Field(5, ge=0)
    birth_date: Optional[int] = Field(6, ge=0)
    sire_name: Optional[int] = Field(7, ge=0)
    dam_name: Optional[int] = Field(8, ge=0)
    consignor_name: Optional[int] = Field(10, ge=0)
    breeder_name: Optional[int] = Field(11, ge=0)
    horse_name: Optional[int] = Field(None, ge=0)
    price_estimate: Optional[int] = Field(None, ge=0)
    photo: Optional[int] = Field(None, ge=0)

    def text_fields(self) -> Dict[str, int]:
        """Free-text fields that go through normalize + de-duplicate."""
        names = (
            "color",
            "birth_date",
            "sire_name",
            "dam_name",
            "consignor_name",
            "breeder_name",
            "horse_name",
        )
        return {n: getattr(self, n) for n in names if getattr(self, n) is not None}


class DocumentProfile(BaseModel):
    """Everything that drifts between revisions of the catalog/measurement documents."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = "custom"
    description: Optional[str] = None

    # catalog
    source_encoding: str = "cp932"
    table_selector: Optional[str] = Field(
        default=None, description="CSS selector of the table; None = first <table>"
    )
    min_cells: int = Field(15, ge=1)
    header_rows: int = Field(1, ge=0)
    columns: ColumnMap = Field(default_factory=ColumnMap)
    sex_tokens: Dict[str, Sex] = Field(default_factory=lambda: dict(DEFAULT_SEX_TOKENS))

    # measurements
    mode: MeasurementMode = "stream"
    header_markers: Tuple[str, ...] = DEFAULT_HEADER_MARKERS
    terminators: Tuple[str, ...] = DEFAULT_TERMINATORS
    absent_marker: str = DEFAULT_ABSENT_MARKER
    expected_lots: Optional[int] = Field(
        default=None, gt=0, description="Lot-count hint for the stream-mode run boundary"
    )

    @model_validator(mode="after")
    def _non_empty_markers(self) -> "DocumentProfile":
        if not self.header_markers:
            raise ValueError("at least one header marker is required")
        if not self.absent_marker.strip():
            raise ValueError("absent_marker must not be blank")
        return self

    def measurement_options(self) -> dict:
        return {
            "mode": self.mode,
            "header_markers": self.header_markers,
            "terminators": self.terminators,
            "absent_marker": self.absent_marker,
            "expected_lots": self.expected_lots,
        }


def load_profiles(path: Optional[Path] = None) -> Dict[str, DocumentProfile]:
    p = path or DEFAULT_PROFILES_PATH
    rows = yaml.safe_load(p.read_text(encoding="utf-8")) or []
    out: Dict[str, DocumentProfile] = {}
    for r in rows:
        prof = DocumentProfile(**r)
        if prof.name in out:
            raise ValueError(f"Duplicate profile name in {p}: {prof.name}")
        out[prof.name] = prof
    return out


def get_profile(name: str, path: Optional[Path] = None) -> DocumentProfile:
    profiles = load_profiles(path)
    if name not in profiles:
        known = ", ".join(sorted(profiles))
        raise ValueError(f"Unknown profile: {name}. Known profiles: {known}")
    return profiles[name]


def profile_names(path: Optional[Path] = None) -> List[str]:
    return sorted(load_profiles(path))
