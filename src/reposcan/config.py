"""Runtime settings read from the environment."""

import os
from pathlib import Path

from pydantic import BaseModel, Field

from reposcan.models.schemas import (
    BUNDLED_LEGITIMACY_WEIGHTS,
    DEPLOYED_LEGITIMACY_WEIGHTS,
    ConfidenceFormula,
    ScoringConfig,
)

LEGITIMACY_PRESETS = {
    "deployed": DEPLOYED_LEGITIMACY_WEIGHTS,
    "bundled": BUNDLED_LEGITIMACY_WEIGHTS,
}


class Settings(BaseModel):
    """Settings for a scanner process."""

    github_token: str | None = None
    data_dir: Path = Path("data")
    http_timeout: float = Field(default=30.0, gt=0)
    fetch_timeout: float = Field(default=20.0, gt=0)
    max_files: int = Field(default=20, ge=0)
    max_quality_files: int = Field(default=30, ge=0)
    max_content_bytes: int = Field(default=500_000, gt=0)
    legitimacy_preset: str = "deployed"
    confidence_formula: ConfidenceFormula = ConfidenceFormula.DATA_COMPLETENESS

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from GITHUB_TOKEN and REPOSCAN_* variables."""
        env = os.environ
        values: dict = {"github_token": env.get("GITHUB_TOKEN") or None}

        mapping = {
            "REPOSCAN_DATA_DIR": "data_dir",
            "REPOSCAN_HTTP_TIMEOUT": "http_timeout",
            "REPOSCAN_FETCH_TIMEOUT": "fetch_timeout",
            "REPOSCAN_MAX_FILES": "max_files",
            "REPOSCAN_MAX_QUALITY_FILES": "max_quality_files",
            "REPOSCAN_MAX_CONTENT_BYTES": "max_content_bytes",
            "REPOSCAN_LEGITIMACY_PRESET": "legitimacy_preset",
            "REPOSCAN_CONFIDENCE_FORMULA": "confidence_formula",
        }
        for var, field in mapping.items():
            if env.get(var):
                values[field] = env[var]

        return cls(**values)

    def scoring_config(self) -> ScoringConfig:
        """Build the scoring configuration these settings select.

        Raises:
            ValueError: If the legitimacy preset name is unknown.
        """
        weights = LEGITIMACY_PRESETS.get(self.legitimacy_preset.lower())
        if weights is None:
            supported = ", ".join(LEGITIMACY_PRESETS)
            raise ValueError(
                f"Unknown legitimacy preset: {self.legitimacy_preset}. Supported: {supported}"
            )
        return ScoringConfig(
            legitimacy_weights=weights,
            confidence_formula=self.confidence_formula,
        )
