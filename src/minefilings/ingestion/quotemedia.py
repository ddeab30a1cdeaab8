from __future__ import annotations

import datetime
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from minefilings.config import settings
from minefilings.ingestion.http import HttpClient, RegistryError

logger = logging.getLogger(__name__)


class QuoteMediaClient:
    """Enterprise-token client for the QuoteMedia company filings API.

    The token is requested lazily, cached for ``token_ttl_s`` and requested
    again once expired or when the API answers 401.
    """

    def __init__(
        self,
        http: HttpClient,
        password: str,
        wmid: int = settings.QUOTEMEDIA_WMID,
        base_url: str = settings.QUOTEMEDIA_BASE_URL,
        token_ttl_s: int = settings.QUOTEMEDIA_TOKEN_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http = http
        self.password = password
        self.wmid = wmid
        self.base_url = base_url.rstrip("/")
        self.token_ttl_s = token_ttl_s
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def token(self) -> str:
        with self._lock:
            if self._token is None or self._clock() >= self._expires_at:
                self._token = self._authenticate()
                self._expires_at = self._clock() + self.token_ttl_s
            return self._token

    def invalidate_token(self) -> None:
        with self._lock:
            self._token = None

    def _authenticate(self) -> str:
        logger.debug("Requesting QuoteMedia enterprise token")
        resp = self.http.post(
            f"{self.base_url}/auth/v0/enterprise/token",
            json={"wmId": int(self.wmid), "webservicePassword": self.password},
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise RegistryError("QuoteMedia token response is not a JSON object")
        token = (
            _field(data.get("data"), "token")
            or data.get("token")
            or data.get("access_token")
            or data.get("accessToken")
        )
        if not token:
            raise RegistryError("QuoteMedia token response carried no token")
        return str(token)

    def company_filings(
        self,
        symbol: str,
        start_date: datetime.date | None = None,
        end_date: datetime.date | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Filing entries for ``symbol``; the API returns a bare object for one hit."""
        params: dict[str, Any] = {
            "webmasterId": self.wmid,
            "symbol": symbol,
            "limit": limit,
        }
        if start_date:
            params["startDate"] = start_date.isoformat()
        if end_date:
            params["endDate"] = end_date.isoformat()

        url = f"{self.base_url}/data/getCompanyFilings.json"
        resp = self.http.get(url, params=params, headers=self._auth_header())
        if resp.status_code == 401:
            logger.info("QuoteMedia token rejected, requesting a new one")
            self.invalidate_token()
            resp = self.http.get(url, params=params, headers=self._auth_header())
        resp.raise_for_status()

        data = resp.json()
        if not isinstance(data, dict):
            raise RegistryError(f"QuoteMedia filings for {symbol} is not a JSON object")
        filings = _field(_field(data.get("results"), "filings"), "filing") or []
        if isinstance(filings, dict):
            filings = [filings]
        if not isinstance(filings, list):
            raise RegistryError(f"QuoteMedia filings for {symbol} has an unexpected shape")
        return [filing for filing in filings if isinstance(filing, dict)]

    def _auth_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token()}"}


def _field(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None
