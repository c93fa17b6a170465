"""Centralized configuration for the reconciler, the evictor and storage."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from ..util import int_set_env


def _int_env(var: str, default: int) -> int:
    """Return int value from environment variable or default."""
    value = os.getenv(var)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class RoleSyncConfig:
    """Configuration for the timezone role reconciliation loop."""

    interval_minutes: int = 15
    # UTC hour after which the member cache is wiped once per day
    cache_clear_hour: int = 18
    # roles Discord reports inconsistently; never deleted automatically
    ghost_role_ids: frozenset[int] = frozenset()

    @classmethod
    def from_env(cls) -> "RoleSyncConfig":
        """Create config from environment variables."""
        interval = _int_env("ROLE_SYNC_INTERVAL_MINUTES", 15)
        if interval <= 0 or 60 % interval:
            interval = 15
        return cls(
            interval_minutes=interval,
            cache_clear_hour=_int_env("MEMBER_CACHE_CLEAR_HOUR", 18) % 24,
            ghost_role_ids=int_set_env("GHOST_ROLE_IDS"),
        )


@dataclass(frozen=True)
class EvictionConfig:
    """Configuration for leaving dead guilds near the membership cap."""

    guild_cap: int = 100
    usage_window_days: int = 30
    run_hour: int = 3

    @classmethod
    def from_env(cls) -> "EvictionConfig":
        """Create config from environment variables."""
        return cls(
            guild_cap=_int_env("GUILD_CAP", 100),
            usage_window_days=_int_env("USAGE_WINDOW_DAYS", 30),
            run_hour=_int_env("EVICTION_HOUR", 3) % 24,
        )


@dataclass(frozen=True)
class StorageConfig:
    """Where the persisted mapping and the logs live."""

    data_dir: Path = Path(".")
    log_dir: Path = Path("logs")
    timezones_file: str = "user_timezones.csv"
    servers_with_time_file: str = "servers_with_time.txt"

    @property
    def timezones_path(self) -> Path:
        return self.data_dir / self.timezones_file

    @property
    def servers_with_time_path(self) -> Path:
        return self.data_dir / self.servers_with_time_file

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Create config from environment variables."""
        return cls(
            data_dir=Path(os.getenv("TZBOT_DATA_DIR", ".")),
            log_dir=Path(os.getenv("TZBOT_LOG_DIR", "logs")),
        )


@dataclass
class BotConfig:
    """Container for all configuration sections.

    Built once at startup and handed to the bot, so tests can swap in
    their own values without touching the environment.
    """

    role_sync: RoleSyncConfig = field(default_factory=RoleSyncConfig.from_env)
    eviction: EvictionConfig = field(default_factory=EvictionConfig.from_env)
    storage: StorageConfig = field(default_factory=StorageConfig.from_env)

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Create all configs from environment variables."""
        return cls(
            role_sync=RoleSyncConfig.from_env(),
            eviction=EvictionConfig.from_env(),
            storage=StorageConfig.from_env(),
        )


# Global default configuration instance
_default_config: BotConfig | None = None


def get_config() -> BotConfig:
    """Return the global configuration instance.

    Creates the configuration on first access. This allows for lazy
    loading of environment variables.
    """
    global _default_config
    if _default_config is None:
        _default_config = BotConfig.from_env()
    return _default_config


def set_config(config: BotConfig) -> None:
    """Set the global configuration instance."""
    global _default_config
    _default_config = config


def reset_config() -> None:
    """Reset the global configuration to reload from environment."""
    global _default_config
    _default_config = None
