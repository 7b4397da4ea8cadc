"""MeshHub client configuration with layered precedence.

Precedence (highest wins):
  1. Environment variables (MESHHUB_<SECTION>_<KEY>, e.g. MESHHUB_TASKS_MAX_ATTEMPTS=60)
  2. Site config JSON     (``API_BASE`` key, the file the static site ships)
  3. Global config        (~/.meshhub/config.yaml)
  4. Pydantic defaults    (hardcoded in this module)
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

_log = logging.getLogger(__name__)

CONFIG_DIR = os.path.join(Path.home(), ".meshhub")
CONFIG_PATH = os.path.join(CONFIG_DIR, "config.yaml")
SITE_CONFIG_ENV = "MESHHUB_SITE_CONFIG"

_ENV_PREFIX = "MESHHUB_"


# ── Sections ─────────────────────────────────────────────────────────────────


class ApiConfig(BaseModel):
    """Backend location and HTTP timeouts in seconds."""

    base_url: str = "http://localhost:8080"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class AuthConfig(BaseModel):
    mode: str = "anon"
    safety_margin: float = 5.0  # seconds shaved off expires_in

    @field_validator("safety_margin")
    @classmethod
    def _validate_safety_margin(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"safety_margin must be >= 0, got {v}")
        return v


class TasksConfig(BaseModel):
    max_attempts: int = 30
    interval: float = 2.0  # seconds between polls

    @field_validator("max_attempts")
    @classmethod
    def _validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempts must be >= 1, got {v}")
        return v

    @field_validator("interval")
    @classmethod
    def _validate_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"interval must be >= 0, got {v}")
        return v


class StreamConfig(BaseModel):
    """Event stream settings. reconnect_attempts=0 closes on the first error."""

    read_timeout: float = 300.0
    reconnect_attempts: int = 0
    reconnect_min_delay: float = 1.0
    reconnect_max_delay: float = 30.0

    @field_validator("reconnect_attempts")
    @classmethod
    def _validate_reconnect_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"reconnect_attempts must be >= 0, got {v}")
        return v


class ChatConfig(BaseModel):
    endpoint: str = "/chat/compliance"
    free_limit: int = 3  # daily free questions (advisory; the backend enforces)
    quota_key: str = "cgpt_free_quota_v1"
    thread_key: str = "cgpt_thread_id"

    @field_validator("free_limit")
    @classmethod
    def _validate_free_limit(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"free_limit must be >= 0, got {v}")
        return v


class StorageConfig(BaseModel):
    path: str = os.path.join(CONFIG_DIR, "storage.json")


class MeshHubConfig(BaseModel):
    """Top-level client configuration.

    Written to ``~/.meshhub/config.yaml`` by ``ensure_config()``.
    """

    api: ApiConfig = Field(default_factory=ApiConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


# ── Singleton: the resolved config ───────────────────────────────────────────

_config: MeshHubConfig | None = None
_config_lock: threading.Lock = threading.Lock()


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base* (override wins)."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply MESHHUB_<SECTION>_<KEY>=<value> environment variables.

    For example:
        MESHHUB_API_BASE_URL=https://api.example.com → data["api"]["base_url"]
        MESHHUB_TASKS_INTERVAL=0.5                   → data["tasks"]["interval"] = 0.5
    """
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(_ENV_PREFIX):
            continue
        parts = env_key[len(_ENV_PREFIX) :].lower().split("_", 1)
        if len(parts) != 2:
            continue
        section, field = parts
        if section not in MeshHubConfig.model_fields:
            continue
        if section not in data:
            data[section] = {}
        if not isinstance(data[section], dict):
            continue
        coerced: Any
        try:
            coerced = int(env_val)
        except ValueError:
            try:
                coerced = float(env_val)
            except ValueError:
                coerced = env_val
        data[section][field] = coerced
    return data


def load_site_config(path: str) -> dict[str, Any]:
    """Read the static site's JSON config and map ``API_BASE`` onto ``api.base_url``.

    A missing or unreadable file only logs a warning; the caller keeps its defaults.
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        _log.warning("Config load failed: %s", exc)
        return {}
    if not isinstance(raw, dict):
        _log.warning("Config load failed: %s is not a JSON object", path)
        return {}
    api_base = raw.get("API_BASE")
    if not api_base:
        return {}
    return {"api": {"base_url": str(api_base)}}


def _read_yaml(path: str) -> dict[str, Any]:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            file_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        _log.warning("Failed to read config %s: %s", path, exc)
        return {}
    if not isinstance(file_data, dict):
        return {}
    return file_data


def load_config(
    force_reload: bool = False,
    config_path: str | None = None,
    site_config: str | None = None,
) -> MeshHubConfig:
    """Load and cache the config with layered precedence (see module docstring)."""
    global _config
    with _config_lock:
        if _config is not None and not force_reload:
            return _config

        data = _read_yaml(config_path or CONFIG_PATH)
        site_path = site_config or os.environ.get(SITE_CONFIG_ENV)
        if site_path:
            data = _deep_merge(data, load_site_config(site_path))
        data = _apply_env_overrides(data)
        try:
            _config = MeshHubConfig(**data)
        except (ValueError, TypeError) as exc:
            _log.warning("Invalid config, using defaults: %s", exc)
            _config = MeshHubConfig()
        return _config


def ensure_config(config_path: str | None = None) -> None:
    """Write the default config to ``~/.meshhub/config.yaml`` if it doesn't exist."""
    path = config_path or CONFIG_PATH
    if os.path.exists(path):
        return

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    data = MeshHubConfig().model_dump()

    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write("# MeshHub client configuration\n")
            f.write("# Environment variables: MESHHUB_<SECTION>_<KEY>=<value>\n\n")
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        _log.info("Wrote default config to %s", path)
    except OSError as exc:
        _log.warning("Failed to write config to %s: %s", path, exc)
