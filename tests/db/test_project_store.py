from __future__ import annotations

import datetime
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from minefilings.db.models import IngestedFiling, Project
from minefilings.db.project_store import FilingLedger, ProjectStore, UpsertOutcome
from minefilings.extraction.models import ExtractedMetrics, ProjectRecord
from minefilings.extraction.normalize import Commodity, ProjectStage
from minefilings.ingestion.models import Category, Status


def _record(confidence: float = 4.29, **metrics) -> ProjectRecord:
    return ProjectRecord(
        project_name="Thacker Basin Project",
        company_name="Basin Lithium Corp.",
        country="USA",
        jurisdiction="Nevada",
        primary_commodity=Commodity.LITHIUM,
        stage=ProjectStage.FEASIBILITY,
        metrics=ExtractedMetrics(**metrics),
        technical_report_url="https://www.sec.gov/Archives/edgar/data/1/2/ex96.htm",
        technical_report_date=datetime.date(2024, 3, 28),
        data_source="EDGAR_EX96",
        extraction_confidence=confidence,
    )


def _count(db) -> int:
    return db.scalar(select(func.count()).select_from(Project))


def test_upsert_inserts_then_updates_same_row(db) -> None:
    store = ProjectStore()

    first = store.upsert(_record(capex_usd_m=1070), db)
    second = store.upsert(_record(capex_usd_m=1070), db)

    assert first.value is UpsertOutcome.INSERTED
    assert second.value is UpsertOutcome.UPDATED
    assert _count(db) == 1
    row = store.get("Thacker Basin Project", "Basin Lithium Corp.", db)
    assert row is not None
    assert row.capex_usd_m == 1070
    assert row.primary_commodity == "Lithium"
    assert row.stage == "Feasibility"


def test_missing_values_do_not_erase_stored_ones(db) -> None:
    store = ProjectStore()
    store.upsert(_record(capex_usd_m=1070, irr_percent=25.1), db)
    store.upsert(_record(capex_usd_m=1100, mine_life_years=40), db)

    row = store.get("Thacker Basin Project", "Basin Lithium Corp.", db)
    assert row is not None
    assert row.capex_usd_m == 1100
    assert row.irr_percent == 25.1
    assert row.mine_life_years == 40


def test_provenance_always_reflects_latest_extraction(db) -> None:
    store = ProjectStore()
    store.upsert(_record(confidence=7.0, capex_usd_m=1070), db)

    newer = _record(confidence=3.57, capex_usd_m=1100)
    newer.technical_report_url = "https://example.test/new.htm"
    store.upsert(newer, db)

    row = store.get("Thacker Basin Project", "Basin Lithium Corp.", db)
    assert row is not None
    assert row.extraction_confidence == 3.57
    assert row.technical_report_url == "https://example.test/new.htm"


def test_protected_rows_keep_higher_confidence(db) -> None:
    store = ProjectStore(protect_higher_confidence=True)
    store.upsert(_record(confidence=7.0, capex_usd_m=1070), db)
    result = store.upsert(_record(confidence=3.57, capex_usd_m=1100), db)

    assert result.status is Status.SKIPPED
    assert result.category is Category.PERSISTENCE
    row = store.get("Thacker Basin Project", "Basin Lithium Corp.", db)
    assert row is not None
    assert row.capex_usd_m == 1070
    assert row.extraction_confidence == 7.0


def test_insert_race_is_retried_as_update(db) -> None:
    store = ProjectStore()
    store.upsert(_record(capex_usd_m=1070), db)

    real_upsert_once = store._upsert_once
    calls = []

    def racing_upsert(record, session):
        calls.append(record)
        if len(calls) == 1:
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))
        return real_upsert_once(record, session)

    with patch.object(store, "_upsert_once", side_effect=racing_upsert):
        result = store.upsert(_record(capex_usd_m=1100), db)

    assert len(calls) == 2
    assert result.value is UpsertOutcome.UPDATED
    assert _count(db) == 1


def test_database_error_is_a_persistence_failure(db) -> None:
    store = ProjectStore()
    with patch.object(
        store, "_upsert_once", side_effect=OperationalError("SELECT", {}, Exception("gone"))
    ):
        result = store.upsert(_record(capex_usd_m=1070), db)

    assert result.status is Status.FAILED
    assert result.category is Category.PERSISTENCE
    assert "Thacker Basin Project / Basin Lithium Corp." in (result.detail or "")


def test_ledger_records_and_reloads_ids(db, reference) -> None:
    ledger = FilingLedger()
    assert ledger.load_seen_ids(db) == set()

    assert ledger.record(reference, "below_threshold", db)
    assert ledger.record(reference, "persisted", db)

    assert ledger.load_seen_ids(db) == {reference.accession_number}
    entries = db.scalars(select(IngestedFiling)).all()
    assert len(entries) == 1
    assert entries[0].outcome == "persisted"
    assert entries[0].registry == "edgar"


def test_unstated_commodity_and_stage_keep_stored_values(db) -> None:
    store = ProjectStore()
    store.upsert(_record(capex_usd_m=1070), db)

    later = _record(capex_usd_m=1100)
    later.primary_commodity = None
    later.stage = None
    store.upsert(later, db)

    row = store.get("Thacker Basin Project", "Basin Lithium Corp.", db)
    assert row is not None
    assert row.primary_commodity == "Lithium"
    assert row.stage == "Feasibility"
    assert row.capex_usd_m == 1100


def test_unstated_commodity_and_stage_fall_back_on_insert(db) -> None:
    record = _record(capex_usd_m=1070)
    record.primary_commodity = None
    record.stage = None
    ProjectStore().upsert(record, db)

    row = ProjectStore().get("Thacker Basin Project", "Basin Lithium Corp.", db)
    assert row is not None
    assert row.primary_commodity == "Other"
    assert row.stage == "Exploration"
