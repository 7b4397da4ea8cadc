"""Wiring for the MeshHub client components.

Builds one shared HTTP session, the token manager, and every component that
depends on them, from a resolved ``MeshHubConfig``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from . import __version__
from .core.agents import AgentInvoker
from .core.api import ApiClient
from .core.auth import TokenManager
from .core.chat import ChatSession
from .core.config import MeshHubConfig
from .core.events import EventSubscriber
from .core.public import PublicApi
from .core.quota import QuotaTracker
from .core.storage import JsonFileStore, KeyValueStore
from .core.tasks import TaskPoller

logger = logging.getLogger(__name__)


@dataclass
class MeshHub:
    config: MeshHubConfig
    tokens: TokenManager
    api: ApiClient
    tasks: TaskPoller
    events: EventSubscriber
    quota: QuotaTracker
    chat: ChatSession
    agents: AgentInvoker
    public: PublicApi


def _new_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": f"meshhub-client/{__version__}"})
    return session


def build_client(
    config: MeshHubConfig,
    store: KeyValueStore | None = None,
    session: requests.Session | None = None,
) -> MeshHub:
    session = session or _new_session()
    store = store or JsonFileStore(config.storage.path)
    base_url = config.api.base_url
    timeouts = (config.api.connect_timeout, config.api.read_timeout)

    tokens = TokenManager(
        base_url,
        session=session,
        mode=config.auth.mode,
        safety_margin=config.auth.safety_margin,
        timeout=timeouts,
    )
    api = ApiClient(
        base_url,
        tokens,
        session=session,
        connect_timeout=config.api.connect_timeout,
        read_timeout=config.api.read_timeout,
    )
    quota = QuotaTracker(
        store,
        limit=config.chat.free_limit,
        quota_key=config.chat.quota_key,
        thread_key=config.chat.thread_key,
    )
    logger.debug("MeshHub client wired for %s", base_url)
    return MeshHub(
        config=config,
        tokens=tokens,
        api=api,
        tasks=TaskPoller(api, max_attempts=config.tasks.max_attempts, interval=config.tasks.interval),
        events=EventSubscriber(
            base_url,
            tokens,
            session=session,
            connect_timeout=config.api.connect_timeout,
            read_timeout=config.stream.read_timeout,
            reconnect_attempts=config.stream.reconnect_attempts,
            reconnect_min_delay=config.stream.reconnect_min_delay,
            reconnect_max_delay=config.stream.reconnect_max_delay,
        ),
        quota=quota,
        chat=ChatSession(api, quota, endpoint=config.chat.endpoint),
        agents=AgentInvoker(api),
        public=PublicApi(
            base_url,
            session=session,
            connect_timeout=config.api.connect_timeout,
            read_timeout=config.api.read_timeout,
        ),
    )
