import datetime

import pytest
from sqlalchemy import create_engine

from minefilings.db.models import Base, SessionLocal
from minefilings.ingestion.models import FilingReference

REPORT_TEXT = """
Technical Report Summary
Thacker Basin Lithium Project, Humboldt County, Nevada

The Thacker Basin Project is located in Humboldt County, Nevada, USA. This feasibility study
supersedes earlier work on the Thacker Basin Project.

Economic highlights: post-tax NPV of $2,300 million and an IRR 25.1% post-tax.
The initial CAPEX of $1,070 million covers the processing plant.
Mine life 40 years based on current mineral reserves.
Annual production of 80,000 tonnes lithium carbonate is expected at steady state.
The deposit has an average grade 0.23% Li.
"""


@pytest.fixture
def report_text() -> str:
    return REPORT_TEXT


@pytest.fixture
def reference() -> FilingReference:
    return FilingReference(
        registry="edgar",
        registry_id="1966983",
        company_name="Basin Lithium Corp.",
        accession_number="0001213900-24-012345",
        form_type="10-K",
        filing_date=datetime.date(2024, 3, 28),
        document_url=(
            "https://www.sec.gov/Archives/edgar/data/1966983/"
            "000121390024012345/ex96-1_thacker.htm"
        ),
    )


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = SessionLocal(bind=engine)
    try:
        yield session
    finally:
        session.close()
