from __future__ import annotations

import json
import logging
from typing import Any

import requests

from .auth import TokenManager
from .errors import HttpError, ResponseDecodeError, TransportError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10
READ_TIMEOUT = 30


def decode_response(response: requests.Response) -> Any:
    """JSON bodies are decoded, anything else is returned as text.

    A body labelled JSON that fails to parse raises ``ResponseDecodeError``.
    """
    content_type = response.headers.get("content-type", "") or ""
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError as e:
            raise ResponseDecodeError(response.status_code, response.text) from e
    return response.text


def raise_for_status(response: requests.Response) -> None:
    if 200 <= response.status_code < 300:
        return
    try:
        body = response.text
    except (requests.exceptions.RequestException, UnicodeDecodeError):
        body = ""
    raise HttpError(response.status_code, body, reason=response.reason or "")


class ApiClient:
    """Authenticated JSON requests against the backend.

    Every request calls ``TokenManager.ensure_token()`` first. Headers are
    merged last-write-wins: ``Content-Type`` and ``Authorization`` are set
    first, so a caller-supplied header with the same name replaces them.
    No retries happen here.
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenManager,
        session: requests.Session | None = None,
        connect_timeout: float = CONNECT_TIMEOUT,
        read_timeout: float = READ_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.tokens = tokens
        self._session = session or requests.Session()
        self._timeout = (connect_timeout, read_timeout)

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        credential = self.tokens.ensure_token()
        merged = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential.value}",
        }
        merged.update(headers or {})

        logger.debug("%s %s", method, path)
        try:
            response = self._session.request(
                method,
                f"{self.base_url}{path}",
                data=json.dumps(body) if body is not None else None,
                headers=merged,
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        raise_for_status(response)
        return decode_response(response)

    def get(self, path: str, headers: dict[str, str] | None = None) -> Any:
        return self.request(path, "GET", headers=headers)

    def post(self, path: str, body: Any = None, headers: dict[str, str] | None = None) -> Any:
        return self.request(path, "POST", body=body, headers=headers)
