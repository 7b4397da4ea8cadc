"""Live task events over a one-way server-sent-events channel.

The token travels in the query string (``?task=<id>&token=<token>``), unlike
the header-based auth of ``ApiClient``. Proxies and access logs may record
it; keep credential lifetimes short.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any
from urllib.parse import urlencode

import requests
from resilient_circuit import ExponentialDelay

from .api import raise_for_status
from .auth import TokenManager
from .errors import ClientError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10
READ_TIMEOUT = 300

_SSE_FIELDS = frozenset({"data", "event", "id", "retry"})
_STREAM_ERRORS = (requests.exceptions.RequestException, ClientError, OSError)

MessageHandler = Callable[[Any], None]


class StreamHandle:
    """Owner's handle on one subscription. ``cancel()`` is idempotent."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        self.error: BaseException | None = None
        self.messages_received = 0
        self._cancelled = threading.Event()
        self._closed = threading.Event()
        self._response: requests.Response | None = None
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def cancel(self) -> None:
        self._cancelled.set()
        self._close_response()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the channel is closed. Returns False on timeout."""
        return self._closed.wait(timeout)

    def _attach(self, response: requests.Response) -> bool:
        with self._lock:
            if self._cancelled.is_set():
                response.close()
                return False
            self._response = response
            return True

    def _close_response(self) -> None:
        with self._lock:
            response, self._response = self._response, None
        if response is not None:
            response.close()


class EventSubscriber:
    """Opens event streams for tasks using the currently cached credential.

    By default the channel closes on the first transport error.
    ``reconnect_attempts > 0`` enables reconnection with jittered exponential
    backoff, using whatever credential is cached at reconnect time.
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenManager,
        session: requests.Session | None = None,
        connect_timeout: float = CONNECT_TIMEOUT,
        read_timeout: float = READ_TIMEOUT,
        reconnect_attempts: int = 0,
        reconnect_min_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.tokens = tokens
        self._session = session or requests.Session()
        self._timeout = (connect_timeout, read_timeout)
        self.reconnect_attempts = reconnect_attempts
        self._backoff = ExponentialDelay(
            min_delay=timedelta(seconds=reconnect_min_delay),
            max_delay=timedelta(seconds=reconnect_max_delay),
            factor=2,
            jitter=0.3,
        )

    def stream_url(self, task_id: str, token: str) -> str:
        return f"{self.base_url}/events/stream?{urlencode({'task': task_id, 'token': token})}"

    def subscribe(self, task_id: str, on_message: MessageHandler) -> StreamHandle | None:
        """Start streaming events for *task_id*; None when no credential is cached."""
        if self.tokens.cached() is None:
            logger.debug("No cached credential, not subscribing to task %s", task_id)
            return None

        handle = StreamHandle(task_id)
        thread = threading.Thread(
            target=self._run,
            args=(handle, on_message),
            name=f"event-stream-{task_id}",
            daemon=True,
        )
        handle._thread = thread
        thread.start()
        return handle

    def _run(self, handle: StreamHandle, on_message: MessageHandler) -> None:
        attempt = 0
        try:
            while not handle.cancelled:
                credential = self.tokens.cached()
                if credential is None:
                    logger.info("Credential expired, closing event stream for task %s", handle.task_id)
                    break
                try:
                    self._consume(handle, credential.value, on_message)
                    break
                except _STREAM_ERRORS as e:
                    if handle.cancelled:
                        break
                    handle.error = e
                    if attempt >= self.reconnect_attempts:
                        logger.warning("Event stream for task %s closed: %s", handle.task_id, e)
                        break
                    attempt += 1
                    delay = self._backoff.for_attempt(attempt)
                    logger.info(
                        "Event stream for task %s failed (%s), reconnect %d/%d in %.1fs",
                        handle.task_id,
                        e,
                        attempt,
                        self.reconnect_attempts,
                        delay,
                    )
                    if handle._cancelled.wait(delay):
                        break
        except Exception as e:
            # Closing the response from cancel() can surface as arbitrary
            # errors inside the HTTP stack; only unexpected ones are reported.
            if not handle.cancelled:
                handle.error = e
                logger.exception("Event stream for task %s crashed", handle.task_id)
        finally:
            handle._close_response()
            handle._closed.set()

    def _consume(self, handle: StreamHandle, token: str, on_message: MessageHandler) -> None:
        response = self._session.get(
            self.stream_url(handle.task_id, token),
            headers={"Accept": "text/event-stream"},
            stream=True,
            timeout=self._timeout,
        )
        if not handle._attach(response):
            return
        raise_for_status(response)
        logger.debug("Event stream opened for task %s", handle.task_id)

        # Event streams are UTF-8 regardless of the declared content-type charset.
        response.encoding = "utf-8"
        data_lines: list[str] = []
        for raw_line in response.iter_lines(decode_unicode=True):
            if handle.cancelled:
                return
            if raw_line is None:
                continue
            if not raw_line:
                if data_lines:
                    self._dispatch(handle, "\n".join(data_lines), on_message)
                    data_lines = []
                continue
            if raw_line.startswith(":"):
                continue  # keep-alive comment
            name, sep, value = raw_line.partition(":")
            if sep and name in _SSE_FIELDS:
                if name == "data":
                    data_lines.append(value[1:] if value.startswith(" ") else value)
                continue
            # Plain newline-delimited JSON framing
            self._dispatch(handle, raw_line, on_message)

        if data_lines and not handle.cancelled:
            self._dispatch(handle, "\n".join(data_lines), on_message)
        logger.debug("Event stream for task %s ended by server", handle.task_id)

    @staticmethod
    def _dispatch(handle: StreamHandle, payload: str, on_message: MessageHandler) -> None:
        try:
            message = json.loads(payload)
        except (json.JSONDecodeError, ValueError):
            logger.warning("Dropping undecodable event for task %s: %.200s", handle.task_id, payload)
            return
        handle.messages_received += 1
        try:
            on_message(message)
        except Exception:
            logger.exception("Event handler failed for task %s", handle.task_id)
