"""Configuration management for slashbot.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a Config object. Property getters provide safe access with
sensible defaults. Configuration is read once at process start and
never hot-reloaded.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
import re
from pathlib import Path
from typing import Optional

import structlog
import yaml
from dotenv import load_dotenv

from .discord_api import DEFAULT_API_BASE_URL
from .exceptions import ConfigurationError

logger = structlog.get_logger("slashbot.bot")

_SNOWFLAKE = re.compile(r"^\d{15,21}$")


def _as_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class Config:
    """Central configuration manager for slashbot.

    Loads settings.yaml and .env from the config directory. Env vars
    take precedence over YAML for the credential and ids.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"{filename} must contain a mapping", setting_name=filename
                )
            return data
        return {}

    @property
    def _discord(self) -> dict:
        section = self.settings.get("discord", {})
        return section if isinstance(section, dict) else {}

    def validate(self):
        """Validate critical settings at startup.

        A missing token is fatal. Malformed ids are logged and ignored.

        Raises:
            ConfigurationError: If no bot token is configured.
        """
        if not self.bot_token:
            raise ConfigurationError(
                "No bot token configured (DISCORD_BOT_TOKEN or discord.token)",
                setting_name="discord.token",
            )

        for key in ("application_id", "default_guild_id", "default_channel_id"):
            raw = self._raw_id(key)
            if raw and not _SNOWFLAKE.match(str(raw)):
                logger.warning("config_invalid_value", key=f"discord.{key}", value=str(raw))

        if self.message_handler not in ("log", "null"):
            logger.warning(
                "config_invalid_value",
                key="message_handler",
                value=self.message_handler,
                valid="log|null",
            )

    def _raw_id(self, key: str):
        return os.environ.get(f"DISCORD_{key.upper()}") or self._discord.get(key)

    @property
    def bot_token(self) -> str:
        """Bot token. Env var DISCORD_BOT_TOKEN takes precedence."""
        return os.environ.get("DISCORD_BOT_TOKEN") or str(self._discord.get("token", "") or "")

    @property
    def application_id(self) -> Optional[int]:
        """Application (client) id used for command registration."""
        return _as_int(self._raw_id("application_id"))

    @property
    def default_guild_id(self) -> Optional[int]:
        return _as_int(self._raw_id("default_guild_id"))

    @property
    def default_channel_id(self) -> Optional[int]:
        return _as_int(self._raw_id("default_channel_id"))

    @property
    def api_base_url(self) -> str:
        return self._discord.get("api_base_url", DEFAULT_API_BASE_URL)

    @property
    def message_handler(self) -> str:
        """Which handler receives plain chat messages: "log" or "null"."""
        return str(self.settings.get("message_handler", "log")).lower()

    @property
    def shutdown_drain_timeout(self) -> float:
        """Seconds to wait for in-flight events on shutdown (default 10)."""
        return float(self.settings.get("shutdown_drain_timeout", 10.0))

    @property
    def data_dir(self) -> Path:
        configured = self.settings.get("data_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "data"

    @property
    def consent_file(self) -> Path:
        """Consent store location (default <data_dir>/consent.json)."""
        configured = self.settings.get("consent_file")
        if configured:
            return Path(configured).expanduser()
        return self.data_dir / "consent.json"

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"platform": "WARNING"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
