from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for paths, collaborators and the default document profile.
    Every field can be set from the environment with the SERI_ prefix
    (e.g. SERI_OUTPUT_DIR, SERI_PROFILE, SERI_TEXT_EXTRACTOR).
    """

    model_config = SettingsConfigDict(
        env_prefix="SERI_",
        extra="ignore",
    )

    project_root: Path = Field(
        default_factory=lambda: Path(__file__).resolve().parents[1]
    )

    output_dir: Path = Field(default=Path("artifacts"))
    cache_dir: Path = Field(default=Path(".cache"))
    enable_cache: bool = True
    cache_ttl_s: float = Field(default=24 * 60 * 60, ge=0)
    fetch_timeout_s: float = Field(default=30.0, gt=0)

    text_extractor: Literal["pdftotext", "pymupdf"] = "pdftotext"
    profile: str = "hba-2025"
    profiles_path: Optional[Path] = None

    log_level: str = "INFO"

    @field_validator("output_dir", "cache_dir", "profiles_path", mode="before")
    @classmethod
    def _coerce_path(cls, v):
        # Accept strings from env and coerce; allow Path passthrough.
        if v is None:
            return v
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return None
            return Path(s).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"

    @computed_field(return_type=Path)
    def output_dir_records(self) -> Path:
        dir_records = self.output_dir / "records"
        dir_records.mkdir(parents=True, exist_ok=True)
        return dir_records

    def model_post_init(self, __context) -> None:
        # Resolve relative paths against project_root
        if not self.output_dir.is_absolute():
            self.output_dir = (self.project_root / self.output_dir).resolve()
        if not self.cache_dir.is_absolute():
            self.cache_dir = (self.project_root / self.cache_dir).resolve()
        if self.profiles_path is not None and not self.profiles_path.is_absolute():
            self.profiles_path = (self.project_root / self.profiles_path).resolve()


# Lazy singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached Settings so the next get_settings() re-reads the env."""
    global _settings
    _settings = None
