"""Configuration management for rtc-chat.

This module handles loading configuration from multiple sources with the following priority:
1. CLI arguments (handled by caller)
2. Environment variables (RTC_CHAT_SIGNALING_WS, RTC_CHAT_ICE_SERVERS)
3. TOML configuration file
4. Default values

Configuration files are loaded from:
- rtc-chat.toml in current working directory
- ~/.rtc-chat/config.toml

Environment selection via RTC_CHAT_ENV (development, staging, production).
Defaults to production if not set.

Example config file::

    [environments.production]
    signaling_websocket = "wss://relay.example.org"
    ice_servers = ["stun:stun.l.google.com:19302"]
    channel_label = "chat"
"""

import os
import tomllib
from pathlib import Path
from typing import List, Optional

from loguru import logger

# Default signaling relay and STUN server
DEFAULT_SIGNALING_WEBSOCKET = "ws://localhost:8080"
DEFAULT_ICE_SERVERS = ["stun:stun.l.google.com:19302"]
DEFAULT_CHANNEL_LABEL = "chat"

# Valid environment names
VALID_ENVIRONMENTS = {"development", "staging", "production"}


class Config:
    """Configuration manager for rtc-chat."""

    def __init__(self):
        """Initialize configuration with defaults."""
        self.signaling_websocket: str = DEFAULT_SIGNALING_WEBSOCKET
        self.ice_servers: List[str] = list(DEFAULT_ICE_SERVERS)
        self.channel_label: str = DEFAULT_CHANNEL_LABEL
        self.environment: str = "production"
        self._config_data: dict = {}

    def load(self) -> None:
        """Load configuration from all sources.

        Priority order:
        1. Environment variables (RTC_CHAT_SIGNALING_WS, RTC_CHAT_ICE_SERVERS)
        2. TOML configuration file
        3. Default values
        """
        self.environment = self._get_environment()

        config_file = self._find_config_file()
        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _get_environment(self) -> str:
        """Get the current environment from RTC_CHAT_ENV.

        Returns:
            Environment name (development, staging, or production).
            Defaults to production if not set or invalid.
        """
        env = os.getenv("RTC_CHAT_ENV", "production").lower()
        if env not in VALID_ENVIRONMENTS:
            logger.warning(
                f"Invalid RTC_CHAT_ENV value '{env}'. "
                f"Valid values are: {', '.join(sorted(VALID_ENVIRONMENTS))}. "
                f"Defaulting to 'production'."
            )
            env = "production"
        return env

    def _find_config_file(self) -> Optional[Path]:
        """Find the configuration file.

        Searches in order:
        1. rtc-chat.toml in current working directory
        2. ~/.rtc-chat/config.toml

        Returns:
            Path to config file if found, None otherwise.
        """
        cwd_config = Path.cwd() / "rtc-chat.toml"
        if cwd_config.exists():
            logger.info(f"Loading config from {cwd_config}")
            return cwd_config

        home_config = Path.home() / ".rtc-chat" / "config.toml"
        if home_config.exists():
            logger.info(f"Loading config from {home_config}")
            return home_config

        logger.debug("No config file found, using defaults")
        return None

    def _load_config_file(self, config_file: Path) -> None:
        """Load configuration from TOML file.

        Args:
            config_file: Path to the TOML configuration file.
        """
        try:
            with open(config_file, "rb") as f:
                self._config_data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(
                f"Failed to load config file {config_file}: {e}. Using defaults."
            )
            return

        environments = self._config_data.get("environments", {})
        env_config = environments.get(self.environment, {})

        if not env_config:
            logger.debug(
                f"No configuration found for environment '{self.environment}' "
                f"in {config_file}, using defaults"
            )
            return

        if "signaling_websocket" in env_config:
            self.signaling_websocket = str(env_config["signaling_websocket"])
            logger.debug(
                f"Loaded signaling_websocket from config: {self.signaling_websocket}"
            )

        if "ice_servers" in env_config:
            servers = env_config["ice_servers"]
            if isinstance(servers, list) and all(isinstance(s, str) for s in servers):
                self.ice_servers = servers
                logger.debug(f"Loaded ice_servers from config: {self.ice_servers}")
            else:
                logger.warning(
                    f"Ignoring ice_servers in {config_file}: expected a list of URLs"
                )

        if "channel_label" in env_config:
            self.channel_label = str(env_config["channel_label"])

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides.

        Environment variables take precedence over config file settings
        but are overridden by CLI arguments (handled by caller).
        """
        ws_override = os.getenv("RTC_CHAT_SIGNALING_WS")
        if ws_override:
            self.signaling_websocket = ws_override
            logger.info(
                f"Overriding signaling_websocket from env: {self.signaling_websocket}"
            )

        ice_override = os.getenv("RTC_CHAT_ICE_SERVERS")
        if ice_override is not None:
            self.ice_servers = [s.strip() for s in ice_override.split(",") if s.strip()]
            logger.info(f"Overriding ice_servers from env: {self.ice_servers}")


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Loads configuration on first call.

    Returns:
        Global Config instance.
    """
    global _config
    if _config is None:
        _config = Config()
        _config.load()
    return _config


def reload_config() -> Config:
    """Reload configuration from sources.

    Useful for testing or runtime reconfiguration.

    Returns:
        Reloaded Config instance.
    """
    global _config
    _config = Config()
    _config.load()
    return _config
