"""HTTP caller for ``api_call`` steps.

Wraps a ``requests.Session``. Requests are blocking, so each call runs in a
worker thread and the event loop stays free for other executions.
"""

import asyncio
import logging
from typing import Optional

import requests

from ..errors import StepExecutionError, StepTimeoutError
from .interfaces import HttpResponse

logger = logging.getLogger(__name__)


class RequestsHttpCaller:
    """HttpCaller backed by ``requests``.

    The caller never retries on its own; step executors decide whether a
    request may be re-issued.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        """Initialize HTTP caller.

        Args:
            session: Pre-configured session (e.g. with auth or proxies).
                A fresh one is created when omitted.
        """
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[str],
        timeout_ms: int,
    ) -> HttpResponse:
        """Perform one HTTP request.

        Args:
            method: HTTP method (GET, POST, etc.).
            url: Request URL.
            headers: Request headers.
            body: Raw request body, or None.
            timeout_ms: Request timeout in milliseconds.

        Returns:
            HttpResponse with status, headers and text body. 4xx/5xx are
            returned, not raised.

        Raises:
            StepTimeoutError: If the request times out.
            StepExecutionError: On connection or protocol errors.
        """
        return await asyncio.to_thread(
            self._request_sync, method, url, headers, body, timeout_ms
        )

    def _request_sync(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[str],
        timeout_ms: int,
    ) -> HttpResponse:
        timeout = timeout_ms / 1000.0
        request_headers = dict(headers)
        if body and not any(name.lower() == "content-type" for name in request_headers):
            request_headers["Content-Type"] = "application/json"

        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(
                method,
                url,
                headers=request_headers,
                data=body.encode("utf-8") if body else None,
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise StepTimeoutError(f"{method} {url}", timeout) from e
        except requests.RequestException as e:
            raise StepExecutionError(f"{method} {url} failed: {e}") from e

        return HttpResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.text,
        )

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
