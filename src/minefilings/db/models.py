import datetime
import functools

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.sql import func

from minefilings.config import settings

Base = declarative_base()


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("project_name", "company_name", name="uq_projects_name_company"),
    )
    id: Column[int] = Column(Integer, primary_key=True, index=True)
    project_name: Column[str] = Column(String(255), nullable=False)
    company_name: Column[str] = Column(String(255), nullable=False, index=True)

    country: Column[str | None] = Column(String(100))
    jurisdiction: Column[str | None] = Column(String(255))
    primary_commodity: Column[str | None] = Column(String(50), index=True)
    stage: Column[str | None] = Column(String(50))
    project_description: Column[str | None] = Column(Text)

    # Money in USD millions, mass in tonnes
    capex_usd_m: Column[float | None] = Column(Float)
    sustaining_capex_usd_m: Column[float | None] = Column(Float)
    post_tax_npv_usd_m: Column[float | None] = Column(Float)
    pre_tax_npv_usd_m: Column[float | None] = Column(Float)
    irr_percent: Column[float | None] = Column(Float)
    payback_years: Column[float | None] = Column(Float)
    mine_life_years: Column[float | None] = Column(Float)
    annual_production_tonnes: Column[float | None] = Column(Float)
    total_resource_tonnes: Column[float | None] = Column(Float)
    reserve_tonnes: Column[float | None] = Column(Float)
    resource_grade: Column[float | None] = Column(Float)
    resource_grade_unit: Column[str | None] = Column(String(10))
    opex_usd_per_tonne: Column[float | None] = Column(Float)
    aisc_usd_per_tonne: Column[float | None] = Column(Float)
    recovery_rate_percent: Column[float | None] = Column(Float)

    # Provenance of the current metric values
    technical_report_url: Column[str | None] = Column(String(1024))
    technical_report_date: Column[datetime.date | None] = Column(Date)
    data_source: Column[str | None] = Column(String(50))  # "EDGAR_EX96", "QuoteMedia"
    extraction_confidence: Column[float | None] = Column(Float)
    processing_status: Column[str | None] = Column(String(50))
    last_scraped_at: Column[datetime.datetime | None] = Column(DateTime(timezone=True))

    created_at: Column[datetime.datetime] = Column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Column[datetime.datetime] = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class IngestedFiling(Base):  # Ledger of processed filings, drives resume
    __tablename__ = "ingested_filings"
    id: Column[int] = Column(Integer, primary_key=True, index=True)
    accession_number: Column[str] = Column(
        String(64), unique=True, index=True, nullable=False
    )
    registry: Column[str] = Column(String(32))  # "edgar", "quotemedia"
    document_url: Column[str | None] = Column(String(1024))
    outcome: Column[str] = Column(String(32))  # "persisted", "below_threshold", ...
    processed_at: Column[datetime.datetime] = Column(
        DateTime(timezone=True), server_default=func.now()
    )


@functools.cache
def get_engine(url: str | None = None) -> Engine:
    """Engine for ``url`` (default ``settings.DATABASE_URL``), created on first use."""
    return create_engine(url or str(settings.DATABASE_URL))


SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)


def create_db_and_tables(engine: Engine | None = None) -> None:
    Base.metadata.create_all(bind=engine or get_engine())
