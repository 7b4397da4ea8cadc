from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass(frozen=True)
class Credential:
    """Short-lived bearer token. Lives in process memory only.

    ``expires_at`` is an epoch timestamp; ``0`` means the backend announced
    no lifetime and the credential stays valid until replaced or invalidated.
    """

    value: str
    expires_at: float = 0.0

    def is_expired_at(self, now: float) -> bool:
        if self.expires_at <= 0:
            return False
        return now >= self.expires_at

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at(time.time())

    @property
    def expires_in_seconds(self) -> float:
        if self.expires_at <= 0:
            return float("inf")
        return max(0.0, self.expires_at - time.time())

    def __repr__(self) -> str:
        return f"Credential(value='***', expires_at={self.expires_at!r})"
