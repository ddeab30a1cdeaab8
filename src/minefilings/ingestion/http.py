from __future__ import annotations

import logging
import threading
import time
from typing import Any

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from minefilings.config import ConfigurationError, settings

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


class RegistryError(RuntimeError):
    """A registry answered, but not with anything usable."""


class RateLimiter:
    """Minimum spacing between requests, shared by every worker thread."""

    def __init__(self, min_interval_s: float) -> None:
        self.min_interval = min_interval_s
        self.last_time = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            wait_for = self.min_interval - (now - self.last_time)
            if wait_for > 0:
                time.sleep(wait_for)
            self.last_time = time.monotonic()


def _is_retryable(resp: requests.Response) -> bool:
    return resp.status_code in _RETRYABLE_STATUS


class HttpClient:
    """``requests.Session`` with a descriptive User-Agent, timeout and rate limit.

    With ``max_attempts > 1`` transport errors and retryable statuses are
    retried with exponential backoff; the last response is returned as is.
    """

    def __init__(
        self,
        user_agent: str = settings.SEC_USER_AGENT,
        timeout: float = settings.HTTP_TIMEOUT_S,
        min_interval_s: float = settings.MIN_REQUEST_INTERVAL_S,
        max_attempts: int = settings.HTTP_MAX_ATTEMPTS,
        session: requests.Session | None = None,
    ) -> None:
        if not user_agent or not user_agent.strip():
            raise ConfigurationError("SEC_USER_AGENT must name the requester")
        self.timeout = timeout
        self.rate_limiter = RateLimiter(min_interval_s)
        self.session = session or requests.Session()
        self.session.headers.update(
            {"User-Agent": user_agent, "Accept-Encoding": "gzip, deflate"}
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(max(1, max_attempts)),
            wait=wait_exponential(multiplier=0.5, max=8),
            retry=(
                retry_if_exception_type((requests.ConnectionError, requests.Timeout))
                | retry_if_result(_is_retryable)
            ),
            retry_error_callback=lambda state: state.outcome.result(),
            reraise=True,
        )

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.rate_limiter.wait()
        logger.debug("%s %s", method, url)
        return self.session.request(method, url, **kwargs)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        return self._retrying.copy()(self._send, method, url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def head(self, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("allow_redirects", True)
        return self.request("HEAD", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def get_json(self, url: str, **kwargs: Any) -> Any:
        resp = self.get(url, **kwargs)
        resp.raise_for_status()
        return resp.json()
