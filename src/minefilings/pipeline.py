# src/minefilings/pipeline.py
"""Discover -> fetch -> extract -> score -> persist, for one batch run.

Fetching and extraction run on a bounded thread pool; persistence and the
filing ledger are written from the calling thread only.
"""

from __future__ import annotations

import datetime
import logging
from collections import Counter
from collections.abc import Callable, Iterator
from concurrent.futures import (
    FIRST_COMPLETED,
    Future,
    ThreadPoolExecutor,
    as_completed,
    wait,
)
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from minefilings.config import Settings, settings
from minefilings.db.project_store import FilingLedger, ProjectStore
from minefilings.extraction.ai import AiExtractor, merge_extractions
from minefilings.extraction.models import ExtractedMetrics, ProjectFacts, ProjectRecord
from minefilings.extraction.normalize import (
    Commodity,
    normalize_commodity,
    normalize_stage,
)
from minefilings.extraction.patterns import (
    PatternExtractor,
    detect_commodity,
    detect_stage,
    extract_location,
    extract_project_name,
    fallback_project_name,
)
from minefilings.extraction.scoring import ConfidenceScorer, Score
from minefilings.ingestion.discovery import BaseDiscoverer, build_discoverers
from minefilings.ingestion.fetcher import ContentFetcher
from minefilings.ingestion.http import HttpClient
from minefilings.ingestion.models import (
    Category,
    DiscoveryQuery,
    DocumentText,
    FilingReference,
    ProgressEvent,
    StageResult,
    Status,
)
from minefilings.llm.llm_engine import build_engine

logger = logging.getLogger(__name__)

DATA_SOURCES = {"edgar": "EDGAR_EX96", "quotemedia": "QuoteMedia"}


@dataclass
class RunReport:
    started_at: datetime.datetime = field(default_factory=datetime.datetime.now)
    completed_at: datetime.datetime | None = None
    discovered: int = 0
    fetched: int = 0
    accepted: int = 0
    rejected: int = 0  # below the confidence threshold
    persisted: int = 0
    failures: list[StageResult] = field(default_factory=list)

    def failures_by_category(self) -> dict[str, int]:
        counts = Counter(
            f.category.value if f.category else "unknown" for f in self.failures
        )
        return dict(sorted(counts.items()))

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> str:
        lines = [
            f"Run finished in {self.duration_seconds:.1f}s",
            f"  discovered: {self.discovered}",
            f"  fetched:    {self.fetched}",
            f"  accepted:   {self.accepted}",
            f"  rejected:   {self.rejected}",
            f"  persisted:  {self.persisted}",
        ]
        for category, count in self.failures_by_category().items():
            lines.append(f"  {category}: {count}")
        return "\n".join(lines)


@dataclass
class ProcessedFiling:
    """Worker output for one filing; carries everything the writer needs."""

    reference: FilingReference
    fetch_issue: StageResult | None = None  # set when the document never arrived
    record: ProjectRecord | None = None
    score: Score | None = None
    ai_issue: StageResult | None = None


def regex_facts(document: DocumentText) -> ProjectFacts:
    text = document.text
    location = extract_location(text)
    commodity = detect_commodity(text)
    stage = detect_stage(text)
    return ProjectFacts(
        project_name=extract_project_name(text),
        country=document.reference.country or (location.country if location else None),
        jurisdiction=location.jurisdiction if location else None,
        primary_commodity=None if commodity is Commodity.OTHER else commodity.value,
        stage=stage.value if stage else None,
        project_description=document.reference.description,
    )


def build_record(
    document: DocumentText,
    metrics: ExtractedMetrics,
    facts: ProjectFacts,
    score: Score,
) -> ProjectRecord:
    reference = document.reference
    return ProjectRecord(
        project_name=facts.project_name or fallback_project_name(reference.company_name),
        company_name=reference.company_name,
        country=facts.country,
        jurisdiction=facts.jurisdiction,
        primary_commodity=(
            normalize_commodity(facts.primary_commodity) if facts.primary_commodity else None
        ),
        stage=normalize_stage(facts.stage) if facts.stage else None,
        project_description=facts.project_description,
        metrics=metrics,
        technical_report_url=reference.document_url,
        technical_report_date=reference.filing_date,
        data_source=DATA_SOURCES.get(reference.registry, reference.registry),
        extraction_confidence=score.confidence,
        processing_status="extracted",
    )


class ExtractionPipeline:
    def __init__(
        self,
        discoverers: list[BaseDiscoverer],
        fetcher: ContentFetcher,
        extractor: PatternExtractor | None = None,
        scorer: ConfidenceScorer | None = None,
        store: ProjectStore | None = None,
        ledger: FilingLedger | None = None,
        ai_extractor: AiExtractor | None = None,
        max_concurrency: int = settings.MAX_CONCURRENCY,
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ):
        self.discoverers = discoverers
        self.fetcher = fetcher
        self.extractor = extractor or PatternExtractor()
        self.scorer = scorer or ConfidenceScorer()
        self.store = store or ProjectStore()
        self.ledger = ledger or FilingLedger()
        self.ai_extractor = ai_extractor
        self.max_concurrency = max(1, max_concurrency)
        self.on_progress = on_progress

    @classmethod
    def from_settings(
        cls,
        config: Settings = settings,
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ) -> ExtractionPipeline:
        """Wire every component from configuration. Raises ``ConfigurationError``."""
        http = HttpClient(
            user_agent=config.SEC_USER_AGENT,
            timeout=config.HTTP_TIMEOUT_S,
            min_interval_s=config.MIN_REQUEST_INTERVAL_S,
            max_attempts=config.HTTP_MAX_ATTEMPTS,
        )
        ai_extractor = None
        if config.AI_ENABLED:
            ai_extractor = AiExtractor(
                build_engine(config),
                excerpt_chars=config.AI_EXCERPT_CHARS,
                temperature=config.LLM_TEMPERATURE,
                max_tokens=config.LLM_MAX_TOKENS,
            )
        return cls(
            discoverers=build_discoverers(http, config),
            fetcher=ContentFetcher(http, max_chars=config.MAX_DOCUMENT_CHARS),
            scorer=ConfidenceScorer(config.MIN_CHECKLIST_RATIO),
            store=ProjectStore(config.PROTECT_HIGHER_CONFIDENCE),
            ai_extractor=ai_extractor,
            max_concurrency=config.MAX_CONCURRENCY,
            on_progress=on_progress,
        )

    def run(self, query: DiscoveryQuery, db: Session) -> RunReport:
        report = RunReport()
        seen_ids = self.ledger.load_seen_ids(db)
        logger.info("Starting run; %s filings already processed", len(seen_ids))

        # At most this many filings are in flight at once; each is written as it finishes
        window = self.max_concurrency * 2
        with ThreadPoolExecutor(max_workers=self.max_concurrency) as pool:
            pending: set[Future[ProcessedFiling]] = set()
            try:
                for reference in self._discover(query, seen_ids, report):
                    pending.add(pool.submit(self.process_filing, reference))
                    if len(pending) >= window:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        for future in done:
                            self._write(future.result(), db, report)
            finally:
                for future in as_completed(pending):
                    self._write(future.result(), db, report)

        report.completed_at = datetime.datetime.now()
        logger.info(
            "Run complete: %s discovered, %s persisted, %s rejected, %s failures",
            report.discovered,
            report.persisted,
            report.rejected,
            len(report.failures),
        )
        return report

    def process_filing(self, reference: FilingReference) -> ProcessedFiling:
        """Fetch, extract and score one filing. Safe to call from worker threads."""
        fetched = self.fetcher.fetch(reference)
        if not fetched.is_ok or fetched.value is None:
            return ProcessedFiling(reference=reference, fetch_issue=fetched)

        document = fetched.value
        result = self.extractor.extract(document.text)
        metrics, facts = result.metrics, regex_facts(document)

        ai_issue = None
        if self.ai_extractor is not None:
            ai_result = self.ai_extractor.extract(document.text, reference.company_name)
            if ai_result.is_ok:
                metrics, facts = merge_extractions(metrics, facts, ai_result.value)
            else:
                ai_issue = ai_result

        score = self.scorer.score(metrics)
        return ProcessedFiling(
            reference=reference,
            record=build_record(document, metrics, facts, score),
            score=score,
            ai_issue=ai_issue,
        )

    def _discover(
        self, query: DiscoveryQuery, seen_ids: set[str], report: RunReport
    ) -> Iterator[FilingReference]:
        total = 0
        for discoverer in self.discoverers:
            try:
                for reference in discoverer.discover(query, seen_ids):
                    total += 1
                    report.discovered += 1
                    self._emit("discover", reference.filing_id, Status.OK, reference.document_url)
                    yield reference
                    if query.limit is not None and total >= query.limit:
                        return
            finally:
                report.failures.extend(discoverer.failures)

    def _write(self, processed: ProcessedFiling, db: Session, report: RunReport) -> None:
        reference = processed.reference
        filing_id = reference.filing_id

        issue = processed.fetch_issue
        if issue is not None:
            report.failures.append(issue)
            self._emit("fetch", filing_id, issue.status, issue.detail or "")
            # Network trouble is retried on the next run; unreadable documents are not
            if issue.category is Category.UNPARSEABLE:
                self.ledger.record(reference, Category.UNPARSEABLE.value, db)
            return

        report.fetched += 1
        if processed.ai_issue is not None:
            report.failures.append(processed.ai_issue)

        record, score = processed.record, processed.score
        if record is None or score is None:
            return
        if not score.accepted:
            report.rejected += 1
            logger.info(
                "Rejected %s (%s): %s of the checklist fields found",
                filing_id,
                reference.company_name,
                score.found,
            )
            self._emit("extract", filing_id, Status.SKIPPED, Category.BELOW_THRESHOLD.value)
            self.ledger.record(reference, Category.BELOW_THRESHOLD.value, db)
            return

        report.accepted += 1
        result = self.store.upsert(record, db)
        if result.is_ok:
            report.persisted += 1
            self.ledger.record(reference, "persisted", db)
        else:
            report.failures.append(result)
            if result.status is Status.SKIPPED:
                self.ledger.record(reference, "kept_existing", db)
        self._emit("persist", filing_id, result.status, result.detail or record.project_name)

    def _emit(self, stage: str, filing_id: str | None, status: Status, message: str) -> None:
        if self.on_progress is not None:
            self.on_progress(
                ProgressEvent(stage=stage, filing_id=filing_id, status=status, message=message)
            )
