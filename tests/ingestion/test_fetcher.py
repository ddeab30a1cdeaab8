from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import requests

from minefilings.ingestion.fetcher import ContentFetcher
from minefilings.ingestion.models import Category, Status


def _response(status: int = 200, body: bytes = b"", content_type: str = "text/html"):
    return SimpleNamespace(
        status_code=status, content=body, headers={"content-type": content_type}
    )


def test_fetch_returns_clean_text(reference) -> None:
    http = MagicMock()
    http.get.return_value = _response(
        body=b"<html><body><p>Mine life 40 years</p></body></html>",
        content_type="text/html; charset=utf-8",
    )
    result = ContentFetcher(http).fetch(reference)

    assert result.is_ok
    assert result.value is not None
    assert result.value.text == "Mine life 40 years"
    assert result.value.content_type == "text/html"
    assert result.value.reference == reference
    assert not result.value.truncated
    http.get.assert_called_once_with(reference.document_url)


def test_http_error_status_is_a_network_skip(reference) -> None:
    http = MagicMock()
    http.get.return_value = _response(status=404)
    result = ContentFetcher(http).fetch(reference)

    assert result.status is Status.SKIPPED
    assert result.category is Category.NETWORK
    assert result.detail == "HTTP 404"


def test_connection_error_is_a_network_skip(reference) -> None:
    http = MagicMock()
    http.get.side_effect = requests.ConnectionError("connection reset")
    result = ContentFetcher(http).fetch(reference)

    assert result.category is Category.NETWORK
    assert "connection reset" in (result.detail or "")


def test_empty_document_is_unparseable(reference) -> None:
    http = MagicMock()
    http.get.return_value = _response(body=b"<html><body><script>x()</script></body></html>")
    result = ContentFetcher(http).fetch(reference)

    assert result.category is Category.UNPARSEABLE


def test_long_documents_are_truncated(reference) -> None:
    http = MagicMock()
    http.get.return_value = _response(body=b"word " * 100, content_type="text/plain")
    result = ContentFetcher(http, max_chars=20).fetch(reference)

    assert result.value is not None
    assert len(result.value.text) == 20
    assert result.value.truncated
