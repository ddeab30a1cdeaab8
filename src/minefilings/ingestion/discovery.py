# src/minefilings/ingestion/discovery.py
import datetime
import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

import requests

from minefilings.config import ConfigurationError, Settings, settings
from minefilings.ingestion.http import HttpClient, RegistryError
from minefilings.ingestion.models import (
    Category,
    DiscoveryQuery,
    FilingReference,
    StageResult,
)
from minefilings.ingestion.quotemedia import QuoteMediaClient

logger = logging.getLogger(__name__)

# A full-text hit is kept when its indexed metadata mentions any of these
DOMAIN_KEYWORDS = (
    "lithium",
    "copper",
    "gold",
    "silver",
    "nickel",
    "cobalt",
    "zinc",
    "uranium",
    "rare earth",
    "graphite",
    "mining",
    "minerals",
    "mineral resource",
    "mineral reserve",
    "43-101",
    "s-k 1300",
    "technical report summary",
    "feasibility study",
    "preliminary economic assessment",
    "ex-96",
)

TECHNICAL_KEYWORDS = (
    "43-101",
    "technical report",
    "mineral resource",
    "mineral reserve",
    "feasibility",
    "preliminary economic assessment",
    "resource estimate",
    "reserve estimate",
)

# Form types that carry S-K 1300 / NI 43-101 technical exhibits
EXHIBIT_FORMS = (
    "10-K",
    "10-K/A",
    "20-F",
    "40-F",
    "S-1",
    "S-1/A",
    "F-1",
    "F-1/A",
    "8-K",
)

_EXHIBIT_NAME = {
    "96": re.compile(r"ex[-_]?96", re.IGNORECASE),
    "95": re.compile(r"ex[-_]?95", re.IGNORECASE),
}
_DOCUMENT_SUFFIXES = (".htm", ".html", ".txt", ".pdf")


def _parse_date(value: Any) -> datetime.date | None:
    if not value:
        return None
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _in_range(
    filing_date: datetime.date | None, query: DiscoveryQuery
) -> bool:
    if filing_date is None:
        return True
    if query.date_from and filing_date < query.date_from:
        return False
    if query.date_to and filing_date > query.date_to:
        return False
    return True


def _as_object(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise RegistryError(f"{what} is not a JSON object: {type(data).__name__}")
    return data


class BaseDiscoverer(ABC):
    """Yields filing references not yet in ``seen_ids``.

    Every yielded id is added to ``seen_ids``. A failed registry call for one
    query, company or symbol is recorded in ``failures`` and discovery moves on.
    """

    registry: str = ""

    def __init__(self, http: HttpClient):
        self.http = http
        self.failures: list[StageResult[None]] = []

    @abstractmethod
    def discover(
        self, query: DiscoveryQuery, seen_ids: set[str]
    ) -> Iterator[FilingReference]:
        pass

    def _record_failure(self, what: str, error: Exception) -> None:
        logger.warning("%s lookup failed for %s: %s", self.registry, what, error)
        self.failures.append(
            StageResult.fail(Category.REGISTRY, f"{self.registry} {what}: {error}")
        )


class EdgarFullTextDiscoverer(BaseDiscoverer):
    registry = "edgar"

    def __init__(
        self,
        http: HttpClient,
        search_url: str = settings.EDGAR_SEARCH_URL,
        archives_url: str = settings.EDGAR_ARCHIVES_URL,
        default_queries: list[str] | None = None,
        page_size: int = settings.EDGAR_PAGE_SIZE,
        max_pages: int = settings.EDGAR_MAX_PAGES,
    ):
        super().__init__(http)
        self.search_url = search_url
        self.archives_url = archives_url.rstrip("/")
        self.default_queries = default_queries or list(settings.EDGAR_SEARCH_QUERIES)
        self.page_size = page_size
        self.max_pages = max_pages

    def discover(
        self, query: DiscoveryQuery, seen_ids: set[str]
    ) -> Iterator[FilingReference]:
        self.failures = []
        yielded = 0
        for phrase in query.keywords or self.default_queries:
            for page in range(self.max_pages):
                try:
                    data = _as_object(
                        self.http.get_json(
                            self.search_url, params=self._params(phrase, page, query)
                        ),
                        "search response",
                    )
                    hits = _as_object(data.get("hits") or {}, "search hits").get("hits") or []
                except (requests.RequestException, ValueError, RegistryError) as e:
                    self._record_failure(f"search {phrase!r} page {page}", e)
                    break
                if not isinstance(hits, list):
                    hits = []
                hits = [hit for hit in hits if isinstance(hit, dict)]
                # Exhibits first, so a filing is represented by its technical report
                for hit in sorted(hits, key=lambda h: not self._is_exhibit(h)):
                    reference = self._to_reference(hit)
                    if reference is None or reference.filing_id in seen_ids:
                        continue
                    if not self._is_relevant(hit.get("_source") or {}):
                        continue
                    seen_ids.add(reference.filing_id)
                    yield reference
                    yielded += 1
                    if query.limit is not None and yielded >= query.limit:
                        return

                if len(hits) < self.page_size:
                    break

    def _params(self, phrase: str, page: int, query: DiscoveryQuery) -> dict[str, Any]:
        params: dict[str, Any] = {
            "q": phrase,
            "from": page * self.page_size,
            "size": self.page_size,
        }
        if query.date_from or query.date_to:
            params["dateRange"] = "custom"
            if query.date_from:
                params["startdt"] = query.date_from.isoformat()
            if query.date_to:
                params["enddt"] = query.date_to.isoformat()
        if query.form_types:
            params["forms"] = ",".join(query.form_types)
        if query.ciks:
            params["ciks"] = ",".join(cik.zfill(10) for cik in query.ciks)
        return params

    @staticmethod
    def _is_exhibit(hit: dict[str, Any]) -> bool:
        file_type = str((hit.get("_source") or {}).get("file_type") or "")
        return file_type.upper().startswith(("EX-96", "EX-95"))

    @staticmethod
    def _is_relevant(source: dict[str, Any]) -> bool:
        haystack = json.dumps(source).lower()
        return any(keyword in haystack for keyword in DOMAIN_KEYWORDS)

    def _to_reference(self, hit: dict[str, Any]) -> FilingReference | None:
        source = hit.get("_source") or {}
        accession, _, filename = str(hit.get("_id") or "").partition(":")
        accession = source.get("adsh") or accession
        ciks = source.get("ciks") or []
        if not accession or not filename or not ciks:
            return None
        cik = str(ciks[0]).lstrip("0")

        display_names = source.get("display_names") or []
        company = display_names[0].split("(")[0].strip() if display_names else ""
        return FilingReference(
            registry=self.registry,
            registry_id=cik,
            company_name=company or f"CIK {cik}",
            accession_number=accession,
            form_type=str(source.get("form") or source.get("root_form") or ""),
            filing_date=_parse_date(source.get("file_date") or source.get("filing_date")),
            document_url=(
                f"{self.archives_url}/{cik}/{accession.replace('-', '')}/{filename}"
            ),
            description=source.get("file_description"),
        )


class EdgarCompanyDiscoverer(BaseDiscoverer):
    registry = "edgar"

    def __init__(
        self,
        http: HttpClient,
        submissions_url: str = settings.EDGAR_SUBMISSIONS_URL,
        archives_url: str = settings.EDGAR_ARCHIVES_URL,
        default_ciks: list[str] | None = None,
        recent_limit: int = settings.EDGAR_RECENT_FILINGS,
    ):
        super().__init__(http)
        self.submissions_url = submissions_url.rstrip("/")
        self.archives_url = archives_url.rstrip("/")
        self.default_ciks = default_ciks or list(settings.EDGAR_COMPANY_CIKS)
        self.recent_limit = recent_limit

    def discover(
        self, query: DiscoveryQuery, seen_ids: set[str]
    ) -> Iterator[FilingReference]:
        self.failures = []
        yielded = 0
        forms = set(query.form_types or EXHIBIT_FORMS)
        # Ticker-only queries target QuoteMedia; the submissions API needs a CIK
        ciks = query.ciks or ([] if query.symbols else self.default_ciks)
        for cik in ciks:
            cik = cik.lstrip("0")
            try:
                data = _as_object(
                    self.http.get_json(f"{self.submissions_url}/CIK{cik.zfill(10)}.json"),
                    "submissions listing",
                )
            except (requests.RequestException, ValueError, RegistryError) as e:
                self._record_failure(f"CIK {cik}", e)
                continue

            company = data.get("name") or f"CIK {cik}"
            tickers = data.get("tickers") or []
            ticker = tickers[0].lower() if tickers else None
            filings = data.get("filings")
            recent = (filings.get("recent") if isinstance(filings, dict) else None) or {}
            if not isinstance(recent, dict):
                recent = {}
            rows = zip(
                recent.get("form") or [],
                recent.get("filingDate") or [],
                recent.get("accessionNumber") or [],
            )
            for form, filed, accession in list(rows)[: self.recent_limit]:
                filing_date = _parse_date(filed)
                if form not in forms or not _in_range(filing_date, query):
                    continue
                if accession in seen_ids:
                    continue
                try:
                    url = self._find_exhibit(cik, accession, ticker)
                except (requests.RequestException, RegistryError) as e:
                    self._record_failure(f"exhibit lookup {accession}", e)
                    continue
                if url is None:
                    logger.debug("No technical exhibit in %s %s", company, accession)
                    continue

                seen_ids.add(accession)
                yield FilingReference(
                    registry=self.registry,
                    registry_id=cik,
                    company_name=company,
                    accession_number=accession,
                    form_type=form,
                    filing_date=filing_date,
                    document_url=url,
                )
                yielded += 1
                if query.limit is not None and yielded >= query.limit:
                    return

    def _find_exhibit(self, cik: str, accession: str, ticker: str | None) -> str | None:
        """Locate the EX-96 (else EX-95) document inside one filing folder."""
        folder = f"{self.archives_url}/{cik}/{accession.replace('-', '')}"
        resp = self.http.get(f"{folder}/index.json")
        if resp.status_code == 200:
            try:
                listing = _as_object(resp.json(), "index.json")
            except ValueError:
                listing = {}
            directory = _as_object(listing.get("directory") or {}, "index.json directory")
            items = directory.get("item")
            if not isinstance(items, list):
                items = []
            names = [str(item.get("name") or "") for item in items if isinstance(item, dict)]
            for pattern in _EXHIBIT_NAME.values():
                for name in names:
                    if pattern.search(name) and name.lower().endswith(_DOCUMENT_SUFFIXES):
                        return f"{folder}/{name}"
            if names:
                return None

        candidates = ["ex961.htm", "ex96-1.htm", "ex-96.htm", "exhibit961.htm"]
        if ticker:
            candidates += [f"{ticker}_ex961.htm", f"{ticker}ex961.htm"]
        for name in candidates:
            if self.http.head(f"{folder}/{name}").status_code == 200:
                return f"{folder}/{name}"
        return None


class QuoteMediaDiscoverer(BaseDiscoverer):
    registry = "quotemedia"

    def __init__(
        self,
        http: HttpClient,
        client: QuoteMediaClient,
        default_symbols: list[str] | None = None,
    ):
        super().__init__(http)
        self.client = client
        self.default_symbols = default_symbols or list(settings.QUOTEMEDIA_SYMBOLS)

    def discover(
        self, query: DiscoveryQuery, seen_ids: set[str]
    ) -> Iterator[FilingReference]:
        self.failures = []
        yielded = 0
        for symbol in query.symbols or self.default_symbols:
            try:
                filings = self.client.company_filings(
                    symbol,
                    start_date=query.date_from,
                    end_date=query.date_to,
                    limit=query.limit or 100,
                )
            except (requests.RequestException, ValueError, RegistryError) as e:
                self._record_failure(f"symbol {symbol}", e)
                continue

            for filing in filings:
                reference = self._to_reference(symbol, filing)
                if reference is None or reference.filing_id in seen_ids:
                    continue
                if not self.is_technical(filing):
                    continue
                seen_ids.add(reference.filing_id)
                yield reference
                yielded += 1
                if query.limit is not None and yielded >= query.limit:
                    return

    @staticmethod
    def is_technical(filing: dict[str, Any]) -> bool:
        text = f"{filing.get('formtype') or ''} {filing.get('formdescription') or ''}".lower()
        return any(keyword in text for keyword in TECHNICAL_KEYWORDS)

    def _to_reference(self, symbol: str, filing: dict[str, Any]) -> FilingReference | None:
        # The EDGAR accession, when present, dedups against EDGAR discovery
        filing_id = str(filing.get("acc") or filing.get("filingId") or "")
        url = filing.get("htmllink") or filing.get("pdflink")
        if not filing_id or not url:
            return None
        equity = filing.get("equityinfo") or {}
        size = filing.get("size")
        return FilingReference(
            registry=self.registry,
            registry_id=symbol,
            company_name=equity.get("longname") or equity.get("shortname") or symbol,
            accession_number=filing_id,
            form_type=str(filing.get("formtype") or ""),
            filing_date=_parse_date(filing.get("datefiled")),
            document_url=url,
            file_size=int(size) if str(size or "").isdigit() else None,
            description=filing.get("formdescription"),
        )


def build_discoverers(http: HttpClient, config: Settings = settings) -> list[BaseDiscoverer]:
    """Discoverers for every source named in ``DISCOVERY_SOURCES``."""
    discoverers: list[BaseDiscoverer] = []
    for source in config.DISCOVERY_SOURCES:
        if source == "edgar_search":
            discoverers.append(
                EdgarFullTextDiscoverer(
                    http,
                    search_url=config.EDGAR_SEARCH_URL,
                    archives_url=config.EDGAR_ARCHIVES_URL,
                    default_queries=config.EDGAR_SEARCH_QUERIES,
                    page_size=config.EDGAR_PAGE_SIZE,
                    max_pages=config.EDGAR_MAX_PAGES,
                )
            )
        elif source == "edgar_company":
            discoverers.append(
                EdgarCompanyDiscoverer(
                    http,
                    submissions_url=config.EDGAR_SUBMISSIONS_URL,
                    archives_url=config.EDGAR_ARCHIVES_URL,
                    default_ciks=config.EDGAR_COMPANY_CIKS,
                    recent_limit=config.EDGAR_RECENT_FILINGS,
                )
            )
        elif source == "quotemedia":
            if config.QUOTEMEDIA_PASSWORD is None:
                raise ConfigurationError(
                    "QUOTEMEDIA_PASSWORD is required when the quotemedia source is enabled"
                )
            client = QuoteMediaClient(
                http,
                password=config.QUOTEMEDIA_PASSWORD.get_secret_value(),
                wmid=config.QUOTEMEDIA_WMID,
                base_url=config.QUOTEMEDIA_BASE_URL,
                token_ttl_s=config.QUOTEMEDIA_TOKEN_TTL_S,
            )
            discoverers.append(
                QuoteMediaDiscoverer(
                    http, client, default_symbols=config.QUOTEMEDIA_SYMBOLS
                )
            )
        else:
            raise ConfigurationError(f"Unknown discovery source: {source!r}")
    return discoverers
