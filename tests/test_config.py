"""Tests for Config loading and validation."""

from pathlib import Path
from unittest.mock import patch

import pytest

from slashbot.config import Config
from slashbot.exceptions import ConfigurationError

_ENV_KEYS = (
    "DISCORD_BOT_TOKEN",
    "DISCORD_APPLICATION_ID",
    "DISCORD_DEFAULT_GUILD_ID",
    "DISCORD_DEFAULT_CHANNEL_ID",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also removes values load_dotenv adds
    for key in _ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def _make_config(settings):
    with patch.object(Config, "__init__", lambda self, **kw: None):
        config = Config.__new__(Config)
        config.config_dir = Path("/tmp/test_config")
        config.settings = settings
    return config


def test_defaults():
    config = _make_config({})
    assert config.bot_token == ""
    assert config.application_id is None
    assert config.api_base_url == "https://discord.com/api/v10"
    assert config.message_handler == "log"
    assert config.shutdown_drain_timeout == 10.0
    assert config.consent_file.name == "consent.json"
    assert config.logging_level == "INFO"
    assert config.logging_backup_count == 5


def test_env_overrides_yaml(monkeypatch):
    config = _make_config({"discord": {"token": "yaml-token", "application_id": "111111111111111111"}})
    assert config.bot_token == "yaml-token"
    assert config.application_id == 111111111111111111

    monkeypatch.setenv("DISCORD_BOT_TOKEN", "env-token")
    monkeypatch.setenv("DISCORD_APPLICATION_ID", "222222222222222222")
    assert config.bot_token == "env-token"
    assert config.application_id == 222222222222222222


def test_validate_requires_token():
    with pytest.raises(ConfigurationError) as excinfo:
        _make_config({}).validate()
    assert excinfo.value.setting_name == "discord.token"


def test_validate_tolerates_bad_ids():
    config = _make_config({"discord": {"token": "t", "default_guild_id": "not-a-number"}})
    config.validate()
    assert config.default_guild_id is None


def test_loads_yaml_and_dotenv(tmp_path, monkeypatch):
    (tmp_path / "settings.yaml").write_text(
        "discord:\n"
        "  default_channel_id: 333333333333333333\n"
        "shutdown_drain_timeout: 2.5\n"
        "consent_file: /var/lib/slashbot/consent.json\n"
    )
    (tmp_path / ".env").write_text("DISCORD_BOT_TOKEN=from-dotenv\n")
    config = Config(config_dir=tmp_path)
    assert config.bot_token == "from-dotenv"
    assert config.default_channel_id == 333333333333333333
    assert config.shutdown_drain_timeout == 2.5
    assert config.consent_file == Path("/var/lib/slashbot/consent.json")


def test_non_mapping_yaml_rejected(tmp_path):
    (tmp_path / "settings.yaml").write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        Config(config_dir=tmp_path)
