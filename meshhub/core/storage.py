"""Durable client-side key-value storage.

The browser client keeps its quota counter and chat thread id in
localStorage; here the same role is played by a ``KeyValueStore``.
Values are plain strings, one namespace per installation.
"""

from __future__ import annotations

import json
import logging
import stat
import threading
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...


class MemoryStore(KeyValueStore):
    """Process-local store, mainly for tests and one-shot scripts."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Single JSON object on disk, readable and writable by the owner only."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load_all().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load_all()
            data[key] = value
            self._save_all(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load_all()
            if key not in data:
                return
            del data[key]
            self._save_all(data)

    def _load_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Corrupted storage file %s, starting fresh", self._path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Unexpected storage layout in %s, starting fresh", self._path)
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def _save_all(self, data: dict[str, str]) -> None:
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        self._path.chmod(stat.S_IRUSR | stat.S_IWUSR)
