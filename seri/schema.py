from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

LotNumber = Annotated[int, Field(gt=0, description="Listing number within one sale")]


class Sex(str, Enum):
    male = "male"  # 牡
    female = "female"  # 牝
    gelding = "gelding"  # セン


# -----------------------------
# Catalog
# -----------------------------
class CatalogEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    lot_number: LotNumber
    sex: Optional[Sex] = None
    color: Optional[str] = None
    birth_date: Optional[str] = Field(
        default=None, description="As printed in the catalog, e.g. 2024/04/12"
    )
    sire_name: Optional[str] = None
    dam_name: Optional[str] = None
    consignor_name: Optional[str] = None
    breeder_name: Optional[str] = None

    horse_name: Optional[str] = None
    price_estimate: Optional[int] = Field(
        default=None, ge=0, description="Seller's asking price in 万円"
    )
    photo_url: Optional[str] = None

    @field_validator(
        "color",
        "birth_date",
        "sire_name",
        "dam_name",
        "consignor_name",
        "breeder_name",
        "horse_name",
        "photo_url",
    )
    @classmethod
    def _empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None


# -----------------------------
# Measurements (tagged variants)
# -----------------------------
class MeasuredEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    status: Literal["measured"] = "measured"
    lot_number: LotNumber
    height: int = Field(..., ge=0, description="体高 (cm)")
    girth: int = Field(..., ge=0, description="胸囲 (cm)")
    cannon: float = Field(..., ge=0, description="管囲 (cm)")


class AbsentEntry(BaseModel):
    """Horse did not present for measurement (欠場)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    status: Literal["absent"] = "absent"
    lot_number: LotNumber

    @property
    def height(self) -> None:
        return None

    @property
    def girth(self) -> None:
        return None

    @property
    def cannon(self) -> None:
        return None


MeasurementEntry = Annotated[
    Union[MeasuredEntry, AbsentEntry], Field(discriminator="status")
]
MeasurementStatus = Literal["measured", "absent"]


# -----------------------------
# Merged output
# -----------------------------
class MergedHorseRecord(CatalogEntry):
    height: Optional[int] = None
    girth: Optional[int] = None
    cannon: Optional[float] = None
    measurement_status: Optional[MeasurementStatus] = None


# -----------------------------
# Reporting
# -----------------------------
SkipReason = Literal[
    "too_few_cells",
    "bad_lot_number",
    "broken_triple",
]


class SkipRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    reason: SkipReason
    row_index: Optional[int] = Field(
        default=None, description="Table row (catalog) or data-line cursor (measurements)"
    )
    lot_number: Optional[int] = None
    detail: Optional[str] = None


class DocumentReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str
    kind: Literal["catalog", "measurements"]
    extracted: int = Field(..., ge=0)
    skipped: List[SkipRecord] = Field(default_factory=list)
    missing: int = Field(0, ge=0, description="Lots left without a data line")
    issues: List[str] = Field(default_factory=list)


class ImportReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sale_id: int
    catalog_count: int = Field(..., ge=0)
    measurement_count: int = Field(..., ge=0, description="Distinct lots after folding")
    merged_count: int = Field(..., ge=0)
    matched_count: int = Field(0, ge=0)
    absent_count: int = Field(0, ge=0)
    documents: List[DocumentReport] = Field(default_factory=list)

    @property
    def skip_reasons(self) -> List[str]:
        out: List[str] = []
        for d in self.documents:
            for s in d.skipped:
                where = d.source
                if s.lot_number is not None:
                    where = f"{where} lot {s.lot_number}"
                out.append(f"{where}: {s.reason}")
        return out


def export_json_schema() -> dict:
    """Export the JSON Schema of the merged record (Pydantic v2)."""
    return MergedHorseRecord.model_json_schema()
