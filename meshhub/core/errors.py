"""Client error types."""

from __future__ import annotations


class ClientError(Exception):
    """Backend interaction failure with a classification for callers' retry logic.

    error_class values:
      "connection"  -- network unreachable, DNS failure, connect/read timeout
      "auth"        -- token acquisition failed (nothing cached, next call retries)
      "server"      -- 5xx from the backend
      "rate_limit"  -- 429 from the backend
      "permanent"   -- other non-2xx responses, undecodable JSON bodies (no retry)
      "task"        -- backend reported a terminal task failure
      "timeout"     -- polling budget exhausted (caller may resubmit)
      "quota"       -- local quota gate tripped before any network call
    """

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        error_class: str = "permanent",
    ):
        super().__init__(message)
        self.retryable = retryable
        self.error_class = error_class

    @property
    def is_network_error(self) -> bool:
        """True when the failure is infrastructure-related (not a logic error)."""
        return self.error_class in ("connection", "server", "rate_limit")


class TransportError(ClientError):
    def __init__(self, message: str):
        super().__init__(message, retryable=True, error_class="connection")


class AuthError(ClientError):
    def __init__(self, message: str = "Auth failed", error_class: str = "auth"):
        super().__init__(message, retryable=True, error_class=error_class)


class HttpError(ClientError):
    """Non-2xx application response. ``body`` holds the raw response text."""

    def __init__(self, status: int, body: str, reason: str = ""):
        text = f"{status} {reason}".rstrip()
        super().__init__(
            f"{text} :: {body}",
            retryable=status == 429 or status >= 500,
            error_class=_classify_status(status),
        )
        self.status = status
        self.body = body
        self.reason = reason


class ResponseDecodeError(ClientError):
    """2xx response whose body does not match its declared JSON content-type."""

    def __init__(self, status: int, body: str):
        super().__init__(f"{status} invalid JSON :: {body[:200]}", retryable=False, error_class="permanent")
        self.status = status
        self.body = body


class TaskError(ClientError):
    def __init__(self, message: str):
        super().__init__(message, retryable=False, error_class="task")


class TaskTimeoutError(ClientError, TimeoutError):
    def __init__(self, task_id: str, attempts: int):
        super().__init__(
            f"Timeout: task {task_id} not finished after {attempts} polls",
            retryable=True,
            error_class="timeout",
        )
        self.task_id = task_id
        self.attempts = attempts


class QuotaExceeded(ClientError):
    """Local daily quota exhausted. Never sent to the backend."""

    UPGRADE_HINT = "Upgrade your plan to keep asking questions today."

    def __init__(self, limit: int, message: str = "Free limit reached"):
        super().__init__(message, retryable=False, error_class="quota")
        self.limit = limit
        self.upgrade_hint = self.UPGRADE_HINT


def _classify_status(status: int) -> str:
    if status == 429:
        return "rate_limit"
    if status >= 500:
        return "server"
    return "permanent"
