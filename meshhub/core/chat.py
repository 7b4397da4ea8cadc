from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .api import ApiClient
from .errors import QuotaExceeded
from .quota import QuotaTracker

logger = logging.getLogger(__name__)

CHAT_ENDPOINT = "/chat/compliance"


@dataclass
class ChatReply:
    reply: str
    thread_id: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)


class ChatSession:
    """Metered compliance chat: local quota gate, backend round-trip, thread continuity."""

    def __init__(self, api: ApiClient, quota: QuotaTracker, endpoint: str = CHAT_ENDPOINT):
        self.api = api
        self.quota = quota
        self.endpoint = endpoint

    def ask(self, message: str) -> ChatReply:
        # Re-read on every call; another call may have consumed quota meanwhile.
        if self.quota.remaining() <= 0:
            raise QuotaExceeded(self.quota.limit)

        body: dict[str, Any] = {"message": message}
        thread_id = self.quota.get_thread()
        if thread_id:
            body["thread_id"] = thread_id

        response = self.api.post(self.endpoint, body)
        data: dict[str, Any] = response if isinstance(response, dict) else {"reply": str(response)}

        returned_thread = data.get("thread_id")
        if returned_thread:
            thread_id = str(returned_thread)
            self.quota.set_thread(thread_id)
        used = self.quota.consume()
        logger.info("Chat answered (quota %d/%d)", used, self.quota.limit)

        usage = data.get("usage")
        return ChatReply(
            reply=str(data.get("reply") or ""),
            thread_id=thread_id,
            usage=usage if isinstance(usage, dict) else {},
        )

    def clear(self) -> None:
        """Forget the conversation thread. The quota counter is untouched."""
        self.quota.clear_thread()
