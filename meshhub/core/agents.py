from __future__ import annotations

import logging
from typing import Any

from .api import ApiClient
from .errors import ClientError

logger = logging.getLogger(__name__)

DEMO_AGENT = "proto-kernel-lite"
UNAVAILABLE = "Service temporarily unavailable. Please try again."


class AgentInvoker:
    def __init__(self, api: ApiClient):
        self.api = api

    def invoke(self, agent: str, payload: Any) -> Any:
        """POST /agents/invoke. Result shape: ``{taskId, result?, status}``."""
        return self.api.post("/agents/invoke", {"agent": agent, "input": payload})

    def run_demo(self, payload: Any) -> dict[str, Any]:
        """Invoke the demo agent; failures become a displayable ``{"error": ...}``."""
        try:
            result = self.invoke(DEMO_AGENT, payload)
        except ClientError as e:
            logger.error("Agent %s invocation failed: %s", DEMO_AGENT, e)
            return {"error": UNAVAILABLE}
        if isinstance(result, dict):
            return result
        return {"result": result}
