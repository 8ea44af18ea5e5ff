"""Configuration management for release-bot."""

from __future__ import annotations

from release_bot.config.loader import (
    build_config,
    load_config_file,
    load_repository_config,
    parse_config_text,
)
from release_bot.config.models import (
    CONFIG_PATH,
    BotSettings,
    ReleaseBotConfig,
    load_settings,
)

__all__ = [
    "CONFIG_PATH",
    "BotSettings",
    "ReleaseBotConfig",
    "build_config",
    "load_config_file",
    "load_repository_config",
    "load_settings",
    "parse_config_text",
]
