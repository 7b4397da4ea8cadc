from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import requests

from ..errors import AuthError
from .credential import Credential

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = 5.0
TOKEN_PATH = "/auth/token"


class TokenManager:
    """Acquires and caches one anonymous bearer credential.

    Expiry is checked against an explicit timestamp on every ``ensure_token()``
    call, so a credential is never handed out past ``expires_in - safety_margin``.
    Acquisition is serialised: threads that wait on the lock re-check the cache
    before issuing their own request.
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        mode: str = "anon",
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        timeout: float | tuple[float, float] = (10, 30),
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip("/")
        self.mode = mode
        self.safety_margin = safety_margin
        self._session = session or requests.Session()
        self._timeout = timeout
        self._clock = clock
        self._credential: Credential | None = None
        self._lock = threading.Lock()

    def cached(self) -> Credential | None:
        """Return the live credential without touching the network, or None."""
        credential = self._credential
        if credential is None or credential.is_expired_at(self._clock()):
            return None
        return credential

    def invalidate(self) -> None:
        self._credential = None

    def ensure_token(self) -> Credential:
        credential = self.cached()
        if credential is not None:
            return credential

        with self._lock:
            credential = self.cached()
            if credential is not None:
                return credential
            self._credential = None
            credential = self._acquire()
            self._credential = credential
            return credential

    def _acquire(self) -> Credential:
        url = f"{self.base_url}{TOKEN_PATH}"
        try:
            response = self._session.post(
                url,
                json={"mode": self.mode},
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AuthError(f"Auth failed: token endpoint unreachable ({e})", error_class="connection") from e

        if not 200 <= response.status_code < 300:
            logger.warning("Token request rejected with HTTP %s", response.status_code)
            raise AuthError(f"Auth failed: HTTP {response.status_code}")

        try:
            data: Any = response.json()
        except ValueError as e:
            raise AuthError("Auth failed: token response is not JSON") from e

        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthError("Auth failed: token response has no token")

        expires_at = 0.0
        expires_in = data.get("expires_in")
        if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool) and expires_in > 0:
            expires_at = self._clock() + max(1.0, expires_in - self.safety_margin)
            logger.debug("Token acquired, valid for %.0fs", expires_at - self._clock())
        else:
            logger.debug("Token acquired without announced lifetime")

        return Credential(value=token, expires_at=expires_at)
