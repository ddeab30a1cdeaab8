# src/minefilings/extraction/models.py
import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from minefilings.extraction.normalize import Commodity, ProjectStage
from minefilings.extraction.units import parse_number

METRIC_FIELDS: tuple[str, ...] = (
    "capex_usd_m",
    "sustaining_capex_usd_m",
    "post_tax_npv_usd_m",
    "pre_tax_npv_usd_m",
    "irr_percent",
    "payback_years",
    "mine_life_years",
    "annual_production_tonnes",
    "total_resource_tonnes",
    "reserve_tonnes",
    "resource_grade",
    "opex_usd_per_tonne",
    "aisc_usd_per_tonne",
    "recovery_rate_percent",
)


class ExtractedMetrics(BaseModel):
    """Numeric facts found in one document. ``None`` means not found, never zero."""

    capex_usd_m: float | None = None
    sustaining_capex_usd_m: float | None = None
    post_tax_npv_usd_m: float | None = None
    pre_tax_npv_usd_m: float | None = None
    irr_percent: float | None = None
    payback_years: float | None = None
    mine_life_years: float | None = None
    annual_production_tonnes: float | None = None
    total_resource_tonnes: float | None = None
    reserve_tonnes: float | None = None
    resource_grade: float | None = None
    resource_grade_unit: str | None = None  # "%", "g/t", "oz/t", "ppm"
    opex_usd_per_tonne: float | None = None
    aisc_usd_per_tonne: float | None = None
    recovery_rate_percent: float | None = None

    def present(self) -> dict[str, float]:
        return {
            name: getattr(self, name)
            for name in METRIC_FIELDS
            if getattr(self, name) is not None
        }


class ProjectFacts(BaseModel):
    """Descriptive fields, before enum normalization."""

    project_name: str | None = None
    country: str | None = None
    jurisdiction: str | None = None
    primary_commodity: str | None = None
    stage: str | None = None
    project_description: str | None = None


class AiExtraction(BaseModel):
    """JSON object returned by the language model. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    project_name: str | None = None
    country: str | None = None
    jurisdiction: str | None = None
    primary_commodity: str | None = None
    stage: str | None = None
    project_description: str | None = None

    capex_usd_m: float | None = None
    sustaining_capex_usd_m: float | None = None
    post_tax_npv_usd_m: float | None = None
    pre_tax_npv_usd_m: float | None = None
    irr_percent: float | None = None
    payback_years: float | None = None
    mine_life_years: float | None = None
    annual_production_tonnes: float | None = None
    total_resource_tonnes: float | None = None
    reserve_tonnes: float | None = None
    resource_grade: float | None = None
    resource_grade_unit: str | None = None
    opex_usd_per_tonne: float | None = None
    aisc_usd_per_tonne: float | None = None
    recovery_rate_percent: float | None = None

    @field_validator(*METRIC_FIELDS, mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Any:
        # Models often answer "1,070" or "" instead of a bare number
        if isinstance(value, str):
            stripped = value.strip().rstrip("%").strip()
            if not stripped or stripped.lower() in {"null", "none", "n/a"}:
                return None
            return parse_number(stripped)
        return value


class ProjectRecord(BaseModel):
    project_name: str
    company_name: str
    country: str | None = None
    jurisdiction: str | None = None
    # None when the filing does not state it; the store falls back on insert only
    primary_commodity: Commodity | None = None
    stage: ProjectStage | None = None
    project_description: str | None = None
    metrics: ExtractedMetrics = Field(default_factory=ExtractedMetrics)

    # Provenance
    technical_report_url: str | None = None
    technical_report_date: datetime.date | None = None
    data_source: str | None = None  # "EDGAR_EX96", "QuoteMedia"
    extraction_confidence: float = 0.0
    processing_status: str = "extracted"
    last_scraped_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.project_name, self.company_name)

    def data_values(self) -> dict[str, Any]:
        """Descriptive and metric columns; ``None`` means leave the stored value alone."""
        values: dict[str, Any] = {
            "country": self.country,
            "jurisdiction": self.jurisdiction,
            "primary_commodity": (
                self.primary_commodity.value if self.primary_commodity else None
            ),
            "stage": self.stage.value if self.stage else None,
            "project_description": self.project_description,
        }
        values.update(self.metrics.model_dump())
        return values

    def provenance_values(self) -> dict[str, Any]:
        return {
            "technical_report_url": self.technical_report_url,
            "technical_report_date": self.technical_report_date,
            "data_source": self.data_source,
            "extraction_confidence": self.extraction_confidence,
            "processing_status": self.processing_status,
            "last_scraped_at": self.last_scraped_at,
        }
