import pytest
from pydantic import ValidationError

from relay_core.config.settings import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("HISTORY_LIMIT", raising=False)
    cfg = Settings(_env_file=None)
    assert cfg.retry_max_attempts == 5
    assert cfg.retry_base_delay == 1.0
    assert cfg.max_message_length == 2000
    assert cfg.assistant_name == "Kurosawa"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env-0123456789")
    monkeypatch.setenv("HISTORY_LIMIT", "0")
    cfg = Settings(_env_file=None)
    assert cfg.openai_api_key == "sk-env-0123456789"
    assert cfg.history_limit == 0


def test_yaml_config_file(monkeypatch, tmp_path):
    path = tmp_path / "relay.yaml"
    path.write_text("assistant_name: Akira\nmax_workers: 3\n", encoding="utf-8")
    monkeypatch.setenv("RELAY_CONFIG_FILE", str(path))
    monkeypatch.delenv("ASSISTANT_NAME", raising=False)
    cfg = Settings(_env_file=None)
    assert cfg.assistant_name == "Akira"
    assert cfg.max_workers == 3


def test_short_api_key_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, mistral_api_key="short")
