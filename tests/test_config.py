"""Tests for meshhub.core.config module."""

import json
import os

import pytest
import yaml

from meshhub.core.config import (
    ApiConfig,
    AuthConfig,
    MeshHubConfig,
    StreamConfig,
    TasksConfig,
    ensure_config,
    load_config,
    load_site_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("MESHHUB_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "config.yaml"


# ---------------------------------------------------------------------------
# Pydantic model defaults
# ---------------------------------------------------------------------------


def test_default_config():
    cfg = MeshHubConfig()
    assert cfg.api.base_url == "http://localhost:8080"
    assert cfg.api.connect_timeout == 10.0
    assert cfg.auth.mode == "anon"
    assert cfg.auth.safety_margin == 5.0
    assert cfg.tasks.max_attempts == 30
    assert cfg.tasks.interval == 2.0
    assert cfg.stream.reconnect_attempts == 0
    assert cfg.chat.free_limit == 3
    assert cfg.chat.quota_key == "cgpt_free_quota_v1"
    assert cfg.chat.thread_key == "cgpt_thread_id"
    assert cfg.storage.path.endswith("storage.json")


def test_base_url_trailing_slash_stripped():
    assert ApiConfig(base_url="https://api.example.com///").base_url == "https://api.example.com"


@pytest.mark.parametrize(
    ("model", "kwargs"),
    [
        (AuthConfig, {"safety_margin": -1}),
        (TasksConfig, {"max_attempts": 0}),
        (TasksConfig, {"interval": -0.5}),
        (StreamConfig, {"reconnect_attempts": -1}),
    ],
)
def test_invalid_section_values_rejected(model, kwargs):
    with pytest.raises(ValueError):
        model(**kwargs)


# ---------------------------------------------------------------------------
# load_config precedence
# ---------------------------------------------------------------------------


def test_missing_file_yields_defaults(config_file):
    cfg = load_config(force_reload=True, config_path=str(config_file))
    assert cfg == MeshHubConfig()


def test_yaml_values_loaded(config_file):
    config_file.write_text(yaml.dump({"api": {"base_url": "https://yaml.example"}, "tasks": {"interval": 0.5}}))
    cfg = load_config(force_reload=True, config_path=str(config_file))
    assert cfg.api.base_url == "https://yaml.example"
    assert cfg.tasks.interval == 0.5
    assert cfg.tasks.max_attempts == 30


def test_site_config_overrides_yaml(config_file, tmp_path):
    config_file.write_text(yaml.dump({"api": {"base_url": "https://yaml.example", "read_timeout": 12}}))
    site = tmp_path / "config.json"
    site.write_text(json.dumps({"API_BASE": "https://site.example/"}))

    cfg = load_config(force_reload=True, config_path=str(config_file), site_config=str(site))

    assert cfg.api.base_url == "https://site.example"
    assert cfg.api.read_timeout == 12


def test_site_config_from_environment(config_file, tmp_path, monkeypatch):
    site = tmp_path / "config.json"
    site.write_text(json.dumps({"API_BASE": "https://env-site.example"}))
    monkeypatch.setenv("MESHHUB_SITE_CONFIG", str(site))

    cfg = load_config(force_reload=True, config_path=str(config_file))

    assert cfg.api.base_url == "https://env-site.example"


def test_env_overrides_everything(config_file, tmp_path, monkeypatch):
    config_file.write_text(yaml.dump({"tasks": {"max_attempts": 5}}))
    site = tmp_path / "config.json"
    site.write_text(json.dumps({"API_BASE": "https://site.example"}))
    monkeypatch.setenv("MESHHUB_TASKS_MAX_ATTEMPTS", "60")
    monkeypatch.setenv("MESHHUB_API_BASE_URL", "https://env.example")
    monkeypatch.setenv("MESHHUB_TASKS_INTERVAL", "0.25")

    cfg = load_config(force_reload=True, config_path=str(config_file), site_config=str(site))

    assert cfg.tasks.max_attempts == 60
    assert cfg.tasks.interval == 0.25
    assert cfg.api.base_url == "https://env.example"


def test_unknown_env_section_ignored(config_file, monkeypatch):
    monkeypatch.setenv("MESHHUB_BOGUS_KEY", "1")
    cfg = load_config(force_reload=True, config_path=str(config_file))
    assert not hasattr(cfg, "bogus")


def test_invalid_values_fall_back_to_defaults(config_file):
    config_file.write_text(yaml.dump({"tasks": {"max_attempts": 0}}))
    cfg = load_config(force_reload=True, config_path=str(config_file))
    assert cfg.tasks.max_attempts == 30


def test_malformed_yaml_yields_defaults(config_file):
    config_file.write_text("api: [unclosed")
    cfg = load_config(force_reload=True, config_path=str(config_file))
    assert cfg.api.base_url == "http://localhost:8080"


def test_config_is_cached_until_forced(config_file, monkeypatch):
    first = load_config(force_reload=True, config_path=str(config_file))
    monkeypatch.setenv("MESHHUB_TASKS_INTERVAL", "9")
    assert load_config() is first
    assert load_config(force_reload=True, config_path=str(config_file)).tasks.interval == 9


# ---------------------------------------------------------------------------
# load_site_config
# ---------------------------------------------------------------------------


def test_site_config_missing_file_warns(tmp_path, caplog):
    with caplog.at_level("WARNING"):
        assert load_site_config(str(tmp_path / "nope.json")) == {}
    assert "Config load failed" in caplog.text


def test_site_config_without_api_base(tmp_path):
    site = tmp_path / "config.json"
    site.write_text(json.dumps({"OTHER": 1}))
    assert load_site_config(str(site)) == {}


def test_site_config_non_object(tmp_path, caplog):
    site = tmp_path / "config.json"
    site.write_text("[1]")
    with caplog.at_level("WARNING"):
        assert load_site_config(str(site)) == {}
    assert "Config load failed" in caplog.text


# ---------------------------------------------------------------------------
# ensure_config
# ---------------------------------------------------------------------------


def test_ensure_config_writes_defaults(tmp_path):
    path = tmp_path / "sub" / "config.yaml"
    ensure_config(str(path))

    text = path.read_text()
    assert text.startswith("# MeshHub client configuration")
    data = yaml.safe_load(text)
    assert data["tasks"]["max_attempts"] == 30
    assert data["chat"]["free_limit"] == 3


def test_ensure_config_keeps_existing_file(config_file):
    config_file.write_text("api:\n  base_url: https://keep.example\n")
    ensure_config(str(config_file))
    assert "keep.example" in config_file.read_text()
