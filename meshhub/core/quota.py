"""Advisory daily quota and chat thread tracking in client storage.

The counter only drives the UX ("2 free questions left today"). The backend
enforces the real limit; never treat this as a security control.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .storage import KeyValueStore

logger = logging.getLogger(__name__)

FREE_LIMIT = 3
QUOTA_KEY = "cgpt_free_quota_v1"
THREAD_KEY = "cgpt_thread_id"


def utc_day_key(now: datetime | None = None) -> str:
    d = now or datetime.now(UTC)
    return f"{d.year}-{d.month}-{d.day}"


@dataclass
class QuotaRecord:
    day: str
    used: int = 0


class QuotaTracker:
    """Per-installation usage counter plus the optional conversation thread id.

    Every quota read goes through the day-boundary check, so a tracker left
    idle across UTC midnight resets itself on its next access. ``consume()``
    always increments; callers decide whether to honour ``remaining()``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = FREE_LIMIT,
        quota_key: str = QUOTA_KEY,
        thread_key: str = THREAD_KEY,
        today: Callable[[], str] = utc_day_key,
    ):
        self.store = store
        self.limit = limit
        self.quota_key = quota_key
        self.thread_key = thread_key
        self._today = today

    def record(self) -> QuotaRecord:
        today = self._today()
        stored = self._load()
        if stored is None or stored.day != today:
            stored = QuotaRecord(day=today, used=0)
            self._save(stored)
        return stored

    def used(self) -> int:
        return self.record().used

    def remaining(self) -> int:
        return max(0, self.limit - self.used())

    def consume(self) -> int:
        current = self.record()
        current.used += 1
        self._save(current)
        logger.debug("Quota used %d/%d on %s", current.used, self.limit, current.day)
        return current.used

    def counter_text(self) -> str:
        left = self.remaining()
        return f"{left} free question{'' if left == 1 else 's'} left today."

    # ── Thread id ────────────────────────────────────────────────────────

    def set_thread(self, thread_id: str) -> None:
        self.store.set(self.thread_key, thread_id)

    def get_thread(self) -> str | None:
        return self.store.get(self.thread_key) or None

    def clear_thread(self) -> None:
        self.store.delete(self.thread_key)

    # ── Storage ──────────────────────────────────────────────────────────

    def _load(self) -> QuotaRecord | None:
        raw = self.store.get(self.quota_key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            used = int(data.get("used") or 0)
            return QuotaRecord(day=str(data["day"]), used=max(0, used))
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Corrupted quota record %r, resetting", raw)
            return None

    def _save(self, record: QuotaRecord) -> None:
        self.store.set(self.quota_key, json.dumps(asdict(record)))
