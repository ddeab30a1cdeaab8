# src/minefilings/ingestion/models.py
import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class FilingReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    registry: str  # "edgar" or "quotemedia"
    registry_id: str  # CIK or ticker symbol
    company_name: str
    accession_number: str  # accession / filing id, unique per registry
    form_type: str
    filing_date: datetime.date | None = None
    document_url: str
    file_size: int | None = None
    country: str | None = None
    description: str | None = None

    @property
    def filing_id(self) -> str:
        return self.accession_number


class DocumentText(BaseModel):
    reference: FilingReference
    text: str  # cleaned plain text, bounded by MAX_DOCUMENT_CHARS
    content_type: str  # "text/html", "application/pdf", "text/plain"
    truncated: bool = False
    fetched_at: datetime.datetime = Field(default_factory=datetime.datetime.now)


class DiscoveryQuery(BaseModel):
    keywords: list[str] = Field(default_factory=list)  # full-text search phrases
    date_from: datetime.date | None = None
    date_to: datetime.date | None = None
    ciks: list[str] = Field(default_factory=list)
    symbols: list[str] = Field(default_factory=list)
    form_types: list[str] = Field(default_factory=list)
    limit: int | None = None


class Status(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


class Category(str, Enum):
    NETWORK = "network"
    UNPARSEABLE = "unparseable"
    BELOW_THRESHOLD = "below_threshold"
    PERSISTENCE = "persistence"
    AI_PARSE = "ai_parse"
    REGISTRY = "registry"


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of one pipeline stage for one filing."""

    status: Status
    value: T | None = None
    category: Category | None = None
    detail: str | None = None

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(status=Status.OK, value=value)

    @classmethod
    def skip(cls, category: Category, detail: str) -> "StageResult[T]":
        return cls(status=Status.SKIPPED, category=category, detail=detail)

    @classmethod
    def fail(cls, category: Category, detail: str) -> "StageResult[T]":
        return cls(status=Status.FAILED, category=category, detail=detail)

    @property
    def is_ok(self) -> bool:
        return self.status is Status.OK


@dataclass(frozen=True)
class ProgressEvent:
    stage: str  # "discover", "fetch", "extract", "persist"
    filing_id: str | None
    status: Status
    message: str = ""
