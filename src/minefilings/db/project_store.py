import datetime
import logging
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from minefilings.config import settings
from minefilings.db.models import IngestedFiling, Project
from minefilings.extraction.models import ProjectRecord
from minefilings.extraction.normalize import Commodity, ProjectStage
from minefilings.ingestion.models import Category, FilingReference, StageResult

logger = logging.getLogger(__name__)


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"


class ProjectStore:
    """Idempotent insert-or-update of ``projects`` rows keyed by (project_name, company_name).

    Existing values are only replaced by non-null new values; provenance
    columns always describe the latest extraction.
    """

    def __init__(
        self, protect_higher_confidence: bool = settings.PROTECT_HIGHER_CONFIDENCE
    ):
        self.protect_higher_confidence = protect_higher_confidence

    def upsert(self, record: ProjectRecord, db: Session) -> StageResult[UpsertOutcome]:
        try:
            result = self._upsert_once(record, db)
            db.commit()
            return result
        except IntegrityError:
            # Another writer inserted the same key between our select and insert
            db.rollback()
            logger.info("Insert race on %s, retrying as update", record.natural_key)
        except SQLAlchemyError as e:
            db.rollback()
            return self._failed(record, e)

        try:
            result = self._upsert_once(record, db)
            db.commit()
            return result
        except SQLAlchemyError as e:
            db.rollback()
            return self._failed(record, e)

    def get(self, project_name: str, company_name: str, db: Session) -> Project | None:
        return db.scalars(
            select(Project).where(
                Project.project_name == project_name,
                Project.company_name == company_name,
            )
        ).first()

    def _upsert_once(
        self, record: ProjectRecord, db: Session
    ) -> StageResult[UpsertOutcome]:
        existing = self.get(record.project_name, record.company_name, db)
        provenance = record.provenance_values()

        if existing is None:
            values = {k: v for k, v in record.data_values().items() if v is not None}
            values.setdefault("primary_commodity", Commodity.OTHER.value)
            values.setdefault("stage", ProjectStage.EXPLORATION.value)
            db.add(
                Project(
                    project_name=record.project_name,
                    company_name=record.company_name,
                    **values,
                    **provenance,
                )
            )
            db.flush()
            logger.info("Inserted project %s / %s", *record.natural_key)
            return StageResult.ok(UpsertOutcome.INSERTED)

        stored = existing.extraction_confidence
        if (
            self.protect_higher_confidence
            and stored is not None
            and stored > record.extraction_confidence
        ):
            logger.info(
                "Keeping %s / %s: stored confidence %s > %s",
                record.project_name,
                record.company_name,
                stored,
                record.extraction_confidence,
            )
            return StageResult.skip(Category.PERSISTENCE, "lower confidence")

        for name, value in record.data_values().items():
            if value is not None:
                setattr(existing, name, value)
        for name, value in provenance.items():
            setattr(existing, name, value)
        db.flush()
        logger.info("Updated project %s / %s", *record.natural_key)
        return StageResult.ok(UpsertOutcome.UPDATED)

    @staticmethod
    def _failed(record: ProjectRecord, error: Exception) -> StageResult[UpsertOutcome]:
        logger.error("Could not persist %s / %s: %s", *record.natural_key, error)
        return StageResult.fail(
            Category.PERSISTENCE,
            f"{record.project_name} / {record.company_name}: {error}",
        )


class FilingLedger:
    """Accession ids already handled, so a restarted run skips them."""

    def load_seen_ids(self, db: Session) -> set[str]:
        return set(db.scalars(select(IngestedFiling.accession_number)))

    def record(self, reference: FilingReference, outcome: str, db: Session) -> bool:
        try:
            entry = db.scalars(
                select(IngestedFiling).where(
                    IngestedFiling.accession_number == reference.filing_id
                )
            ).first()
            if entry is None:
                entry = IngestedFiling(accession_number=reference.filing_id)
                db.add(entry)
            entry.registry = reference.registry
            entry.document_url = reference.document_url
            entry.outcome = outcome
            entry.processed_at = datetime.datetime.now(datetime.timezone.utc)
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Could not record %s in ledger: %s", reference.filing_id, e)
            return False
