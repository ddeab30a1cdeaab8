# src/minefilings/ingestion/parser.py
import logging
import re

import fitz  # PyMuPDF
from bs4 import BeautifulSoup
from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
# Non-content tags; "ix:header" holds hidden inline-XBRL facts in EDGAR filings
_DROP_TAGS = ["script", "style", "noscript", "head", "ix:header"]


class UnparseableDocumentError(ValueError):
    pass


def _decode(body: bytes, content_type: str) -> str:
    if "charset=" in content_type:
        charset = content_type.split("charset=")[-1].split(";")[0].strip().strip('"')
        try:
            return body.decode(charset)
        except (LookupError, UnicodeDecodeError):
            pass
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        best = from_bytes(body).best()
        if best is None:
            return body.decode("latin-1")
        return str(best)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


class DocumentParser:
    def parse(self, body: bytes, content_type: str) -> str:
        """Convert a fetched body to plain text with collapsed whitespace."""
        kind = content_type.split(";")[0].strip().lower()
        if kind == "application/pdf" or body[:5] == b"%PDF-":
            return self._pdf_to_text(body)
        if kind == "text/plain" and b"<html" not in body[:2048].lower():
            return collapse_whitespace(_decode(body, content_type))
        return self._html_to_text(_decode(body, content_type))

    def _html_to_text(self, html_content: str) -> str:
        soup = BeautifulSoup(html_content, "lxml")
        for tag in soup(_DROP_TAGS):
            tag.decompose()
        return collapse_whitespace(soup.get_text(separator=" "))

    def _pdf_to_text(self, pdf_bytes: bytes) -> str:
        pages: list[str] = []
        try:
            with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
                for page in doc:
                    page_text = page.get_text("text", sort=True)
                    if page_text:
                        pages.append(page_text)
        except (RuntimeError, ValueError) as e:
            raise UnparseableDocumentError(f"Could not read PDF: {e}") from e
        return collapse_whitespace(" ".join(pages))
