import logging

import requests

from minefilings.config import settings
from minefilings.ingestion.http import HttpClient
from minefilings.ingestion.models import (
    Category,
    DocumentText,
    FilingReference,
    StageResult,
)
from minefilings.ingestion.parser import DocumentParser, UnparseableDocumentError

logger = logging.getLogger(__name__)


class ContentFetcher:
    """GET a filing document and reduce it to bounded plain text.

    Has no side effects beyond the request, so callers may retry freely.
    """

    def __init__(
        self,
        http: HttpClient,
        parser: DocumentParser | None = None,
        max_chars: int = settings.MAX_DOCUMENT_CHARS,
    ):
        self.http = http
        self.parser = parser or DocumentParser()
        self.max_chars = max_chars

    def fetch(self, reference: FilingReference) -> StageResult[DocumentText]:
        url = reference.document_url
        try:
            resp = self.http.get(url)
        except requests.RequestException as e:
            logger.warning("Failed to fetch %s: %s", url, e)
            return StageResult.skip(Category.NETWORK, f"{type(e).__name__}: {e}")

        if not 200 <= resp.status_code < 300:
            logger.warning("Failed to fetch %s: HTTP %s", url, resp.status_code)
            return StageResult.skip(Category.NETWORK, f"HTTP {resp.status_code}")

        content_type = resp.headers.get("content-type", "text/html")
        try:
            text = self.parser.parse(resp.content, content_type)
        except UnparseableDocumentError as e:
            logger.warning("Could not parse %s: %s", url, e)
            return StageResult.skip(Category.UNPARSEABLE, str(e))

        if not text:
            logger.info("No text extracted from %s", url)
            return StageResult.skip(Category.UNPARSEABLE, "document has no text")

        truncated = len(text) > self.max_chars
        if truncated:
            logger.debug("Truncating %s from %s chars", url, len(text))
            text = text[: self.max_chars]

        return StageResult.ok(
            DocumentText(
                reference=reference,
                text=text,
                content_type=content_type.split(";")[0].strip().lower(),
                truncated=truncated,
            )
        )
