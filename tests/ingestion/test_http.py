from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from minefilings.config import ConfigurationError
from minefilings.ingestion.http import HttpClient, RateLimiter


def _session(*responses) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.request.side_effect = list(responses)
    return session


def _response(status: int) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    return resp


def test_user_agent_is_sent_on_every_request() -> None:
    session = _session(_response(200))
    client = HttpClient(
        user_agent="Acme Research ops@acme.test", min_interval_s=0, session=session
    )
    client.get("https://data.sec.gov/submissions/CIK0000000001.json")

    assert session.headers["User-Agent"] == "Acme Research ops@acme.test"
    _, kwargs = session.request.call_args
    assert kwargs["timeout"] == client.timeout


def test_empty_user_agent_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        HttpClient(user_agent="  ")


@patch("time.sleep", return_value=None)
def test_retryable_status_is_retried(_sleep) -> None:
    session = _session(_response(503), _response(200))
    client = HttpClient(
        user_agent="Acme ops@acme.test", min_interval_s=0, max_attempts=3, session=session
    )
    resp = client.get("https://efts.sec.gov/LATEST/search-index")

    assert resp.status_code == 200
    assert session.request.call_count == 2


@patch("time.sleep", return_value=None)
def test_last_response_is_returned_when_attempts_run_out(_sleep) -> None:
    session = _session(_response(503), _response(503))
    client = HttpClient(
        user_agent="Acme ops@acme.test", min_interval_s=0, max_attempts=2, session=session
    )

    assert client.get("https://efts.sec.gov/LATEST/search-index").status_code == 503
    assert session.request.call_count == 2


def test_single_attempt_does_not_retry() -> None:
    session = _session(requests.ConnectionError("down"))
    client = HttpClient(user_agent="Acme ops@acme.test", min_interval_s=0, session=session)

    with pytest.raises(requests.ConnectionError):
        client.get("https://www.sec.gov/")
    assert session.request.call_count == 1


def test_rate_limiter_spaces_requests() -> None:
    limiter = RateLimiter(0.5)
    with patch("minefilings.ingestion.http.time") as clock:
        clock.monotonic.side_effect = [100.0, 100.0, 100.2, 100.5]
        limiter.wait()
        limiter.wait()

    clock.sleep.assert_called_once()
    assert clock.sleep.call_args.args[0] == pytest.approx(0.3)
