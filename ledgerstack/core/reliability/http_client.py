"""
JSON HTTP client for node, connector and admin APIs.

2xx responses are decoded as JSON (204 → None).  Anything else raises
HTTPContractError carrying the status code and body.  Transport
failures (refused connections, timeouts) raise HTTPRequestError.  With
``retry=True`` both are retried on the fixed interval from Settings.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import requests

from ledgerstack.core.errors import HTTPContractError, HTTPRequestError
from ledgerstack.core.reliability.retry import retry as retry_call

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


class JsonHttpClient:
    """Thin wrapper over a requests.Session."""

    def __init__(
        self,
        retries: int = 30,
        period: float = 1.0,
        session: requests.Session | None = None,
    ):
        self.retries = retries
        self.period = period
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        url: str,
        body: Any = None,
        *,
        headers: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
        form: dict[str, str] | None = None,
        retry: bool = False,
        retries: int | None = None,
    ) -> Any:
        """Send one request and decode the JSON answer.

        Args:
            body: JSON-serializable payload (ignored when ``files``/``form``).
            files: Multipart file parts (``requests`` format).
            form: Multipart / form fields.
            retry: Retry any failure on the client's fixed interval.
            retries: Override the retry budget for this call.
        """

        def once() -> Any:
            return self._send(method, url, body, headers, files, form)

        if not retry:
            return once()
        return retry_call(
            once,
            self.retries if retries is None else retries,
            self.period,
            description=f"{method} {url}",
            retry_on=(HTTPContractError, HTTPRequestError),
        )

    def get(self, url: str, **kwargs: Any) -> Any:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, body: Any = None, **kwargs: Any) -> Any:
        return self.request("POST", url, body, **kwargs)

    def put(self, url: str, body: Any = None, **kwargs: Any) -> Any:
        return self.request("PUT", url, body, **kwargs)

    def _send(
        self,
        method: str,
        url: str,
        body: Any,
        headers: dict[str, str] | None,
        files: dict[str, Any] | None,
        form: dict[str, str] | None,
    ) -> Any:
        kwargs: dict[str, Any] = {"headers": headers or {}, "timeout": REQUEST_TIMEOUT}
        if files is not None or form is not None:
            kwargs["files"] = files
            kwargs["data"] = form
        elif body is not None:
            kwargs["json"] = body

        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise HTTPRequestError(method, url, str(e)) from e

        if response.status_code < 200 or response.status_code >= 300:
            raise HTTPContractError(method, url, response.status_code, response.text)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise HTTPContractError(
                method, url, response.status_code, f"invalid JSON: {e}"
            ) from e
