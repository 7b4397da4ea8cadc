"""Unauthenticated site endpoints (health, predict, contact, order)."""

from __future__ import annotations

import json
import logging
from typing import Any

import requests

from .api import CONNECT_TIMEOUT, READ_TIMEOUT, decode_response, raise_for_status
from .errors import ClientError, TransportError

logger = logging.getLogger(__name__)

HEALTH_DOWN = "DOWN"


class PublicApi:
    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        connect_timeout: float = CONNECT_TIMEOUT,
        read_timeout: float = READ_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = (connect_timeout, read_timeout)

    def request(self, path: str, method: str = "GET", body: Any = None) -> Any:
        try:
            response = self._session.request(
                method,
                f"{self.base_url}{path}",
                data=json.dumps(body) if body is not None else None,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        raise_for_status(response)
        return decode_response(response)

    def health(self) -> Any:
        """Backend health payload, or ``"DOWN"`` when it cannot be reached."""
        try:
            return self.request("/health")
        except ClientError as e:
            logger.info("Health check failed: %s", e)
            return HEALTH_DOWN

    def predict(self, input: Any) -> Any:
        return self.request("/api/v1/predict", "POST", {"input": input})

    def contact(self, payload: dict[str, Any]) -> Any:
        return self.request("/api/v1/contact", "POST", payload)

    def order(self, payload: dict[str, Any]) -> Any:
        return self.request("/api/v1/order", "POST", payload)
