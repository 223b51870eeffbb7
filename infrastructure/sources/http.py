import logging
import random
import time
from typing import Any, Dict, Optional

import requests

from application.messages import Cancelled, CancelToken

from .rate_limiter import RateLimiter

logger = logging.getLogger("hoard.sources")

USER_AGENT = "hoard-cli"


class HttpClientError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class HttpRateLimitError(HttpClientError):
    pass


class HttpClient:
    """``requests`` wrapper: timeout, back-off retries, rate limiting and cancel checks."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 15.0,
        max_attempts: int = 3,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.headers = {"User-Agent": USER_AGENT}
        self.headers.update(headers or {})

    def get(self, url: str, token: Optional[CancelToken] = None, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        merged = dict(self.headers)
        merged.update(headers or {})
        attempt = 0
        delay = 0.5
        while True:
            attempt += 1
            if token is not None:
                token.raise_if_cancelled()
            cancelled = (lambda: token.cancelled) if token is not None else None
            if not self.rate_limiter.acquire(cancelled):
                raise Cancelled("cancelled")
            try:
                response = self.session.get(url, params=params, headers=merged, timeout=self.timeout)
            except requests.RequestException as exc:
                if attempt >= self.max_attempts:
                    raise HttpClientError(f"network error: {exc}") from exc
                logger.debug("GET %s failed (%s), retrying", url, exc)
                self._sleep(delay, token)
                delay *= 2
                continue
            self.rate_limiter.update(response.headers)
            status = response.status_code
            if status == 429 or (status == 403 and response.headers.get("X-RateLimit-Remaining") == "0"):
                if attempt < self.max_attempts and self.rate_limiter.wait_time() < 5:
                    self._sleep(delay, token)
                    delay *= 2
                    continue
                raise HttpRateLimitError("rate limited", status)
            if status >= 500 and attempt < self.max_attempts:
                self._sleep(delay, token)
                delay *= 2
                continue
            if status >= 400:
                raise HttpClientError(f"HTTP {status}", status)
            return response

    def get_json(self, url: str, token: Optional[CancelToken] = None, **kwargs: Any) -> Any:
        response = self.get(url, token, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise HttpClientError(f"invalid JSON from {url}") from exc

    def get_text(self, url: str, token: Optional[CancelToken] = None, **kwargs: Any) -> str:
        return self.get(url, token, **kwargs).text

    def _sleep(self, base_delay: float, token: Optional[CancelToken]) -> None:
        time.sleep(base_delay + random.uniform(0, base_delay))
        if token is not None:
            token.raise_if_cancelled()
