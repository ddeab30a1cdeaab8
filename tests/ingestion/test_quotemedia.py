from __future__ import annotations

import datetime
from unittest.mock import MagicMock

import pytest

from minefilings.ingestion.http import RegistryError
from minefilings.ingestion.quotemedia import QuoteMediaClient

BASE = "https://app.quotemedia.com"


def _json_response(payload: dict | list, status: int = 200) -> MagicMock:
    resp = MagicMock(status_code=status)
    resp.json.return_value = payload
    return resp


def _filings(filing) -> dict:
    return {"results": {"filings": {"filing": filing}}}


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def http() -> MagicMock:
    http = MagicMock()
    http.post.return_value = _json_response({"data": {"token": "tok-1"}})
    return http


def test_token_is_cached_until_expiry(http: MagicMock) -> None:
    clock = FakeClock()
    client = QuoteMediaClient(http, password="pw", wmid=42, token_ttl_s=60, clock=clock)

    assert client.token() == "tok-1"
    assert client.token() == "tok-1"
    assert http.post.call_count == 1
    http.post.assert_called_once_with(
        f"{BASE}/auth/v0/enterprise/token",
        json={"wmId": 42, "webservicePassword": "pw"},
    )

    clock.now = 61
    http.post.return_value = _json_response({"token": "tok-2"})
    assert client.token() == "tok-2"
    assert http.post.call_count == 2


def test_missing_token_is_a_registry_error(http: MagicMock) -> None:
    http.post.return_value = _json_response({"status": "denied"})
    client = QuoteMediaClient(http, password="pw")

    with pytest.raises(RegistryError):
        client.token()


def test_token_response_that_is_not_an_object_is_a_registry_error(http: MagicMock) -> None:
    http.post.return_value = _json_response(["tok-1"])
    client = QuoteMediaClient(http, password="pw")

    with pytest.raises(RegistryError):
        client.token()


def test_company_filings_sends_bearer_token(http: MagicMock) -> None:
    http.get.return_value = _json_response(_filings([{"filingId": "1"}, {"filingId": "2"}]))
    client = QuoteMediaClient(http, password="pw", wmid=42)

    filings = client.company_filings(
        "BLC", start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 6, 30), limit=10
    )

    assert [f["filingId"] for f in filings] == ["1", "2"]
    args, kwargs = http.get.call_args
    assert args == (f"{BASE}/data/getCompanyFilings.json",)
    assert kwargs["headers"] == {"Authorization": "Bearer tok-1"}
    assert kwargs["params"] == {
        "webmasterId": 42,
        "symbol": "BLC",
        "limit": 10,
        "startDate": "2024-01-01",
        "endDate": "2024-06-30",
    }


def test_rejected_token_is_refreshed_once(http: MagicMock) -> None:
    http.post.side_effect = [
        _json_response({"data": {"token": "stale"}}),
        _json_response({"data": {"token": "fresh"}}),
    ]
    http.get.side_effect = [
        _json_response({}, status=401),
        _json_response(_filings([{"filingId": "1"}])),
    ]
    client = QuoteMediaClient(http, password="pw")

    assert client.company_filings("BLC") == [{"filingId": "1"}]
    assert http.post.call_count == 2
    assert http.get.call_args.kwargs["headers"] == {"Authorization": "Bearer fresh"}


def test_single_filing_object_is_wrapped_in_a_list(http: MagicMock) -> None:
    http.get.return_value = _json_response(_filings({"filingId": "only"}))
    client = QuoteMediaClient(http, password="pw")

    assert client.company_filings("BLC") == [{"filingId": "only"}]


def test_no_filings_is_an_empty_list(http: MagicMock) -> None:
    http.get.return_value = _json_response({"results": {}})
    client = QuoteMediaClient(http, password="pw")

    assert client.company_filings("BLC") == []


@pytest.mark.parametrize("payload", [[], {"results": {"filings": {"filing": "none"}}}])
def test_filings_response_of_the_wrong_shape_is_a_registry_error(
    http: MagicMock, payload
) -> None:
    http.get.return_value = _json_response(payload)
    client = QuoteMediaClient(http, password="pw")

    with pytest.raises(RegistryError):
        client.company_filings("BLC")
