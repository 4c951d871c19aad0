"""JSON API client with rate limiting, bounded timeouts and retry."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from .errors import UpstreamError, UpstreamTimeout
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def _error_text(resp: requests.Response | None) -> str:
    """Best-effort extraction of an API error message from a response."""
    if resp is None:
        return ""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("msg") or body.get("error") or body)[:200]
    return str(body)[:200]


class HTTPClient:
    """HTTP client wrapping a requests Session for remote JSON APIs.

    Features:
    - Rate limiting shared by every call made through the client
    - Explicit timeout on every request
    - Retries with exponential backoff for idempotent methods only
      (POST is sent once; a retried create could duplicate remote items)
    - requests exceptions translated into UpstreamError / UpstreamTimeout
    """

    MAX_RETRIES = 3
    BACKOFF_BASE = 2.0
    RETRY_METHODS = frozenset({"GET", "PUT", "PATCH", "DELETE"})

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        requests_per_minute: int = 60,
        max_retries: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries or self.MAX_RETRIES
        self._rate_limiter = RateLimiter(requests_per_minute)
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if headers:
            self._session.headers.update(headers)

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        step: str | None = None,
    ) -> requests.Response:
        """Send a request, retrying transient failures on idempotent methods.

        Raises:
            UpstreamTimeout: The request timed out on every attempt.
            UpstreamError: Any other HTTP or connection failure.
        """
        method = method.upper()
        url = self._url(path)
        attempts = max(1, self.max_retries) if method in self.RETRY_METHODS else 1

        last_exc: UpstreamError | None = None
        for attempt in range(attempts):
            self._rate_limiter.wait()
            try:
                resp = self._session.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                return resp

            except requests.Timeout as exc:
                last_exc = UpstreamTimeout(
                    f"{method} {url} timed out after {self.timeout:.0f}s",
                    step=step,
                )
                last_exc.__cause__ = exc

            except requests.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else None
                last_exc = UpstreamError(
                    f"{method} {url} failed with HTTP {status}: {_error_text(exc.response)}",
                    status_code=status,
                    step=step,
                )
                last_exc.__cause__ = exc
                # 4xx other than 429 is permanent
                if status is not None and 400 <= status < 500 and status != 429:
                    logger.warning("Request failed (%s, no retry): %s %s", status, method, url)
                    raise last_exc

            except requests.RequestException as exc:
                last_exc = UpstreamError(f"{method} {url} failed: {exc}", step=step)
                last_exc.__cause__ = exc

            if attempt + 1 < attempts:
                wait_time = self.BACKOFF_BASE ** attempt
                logger.warning(
                    "Request failed (attempt %d/%d): %s - retrying in %.1fs",
                    attempt + 1,
                    attempts,
                    last_exc,
                    wait_time,
                )
                time.sleep(wait_time)

        raise last_exc

    def get(self, path: str, params: dict[str, Any] | None = None, step: str | None = None) -> requests.Response:
        return self.request("GET", path, params=params, step=step)

    def post(self, path: str, json: dict[str, Any] | None = None, step: str | None = None) -> requests.Response:
        return self.request("POST", path, json=json, step=step)

    def patch(self, path: str, json: dict[str, Any] | None = None, step: str | None = None) -> requests.Response:
        return self.request("PATCH", path, json=json, step=step)

    def delete(self, path: str, step: str | None = None) -> requests.Response:
        return self.request("DELETE", path, step=step)

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()

    def __enter__(self) -> HTTPClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
