"""Infrastructure utilities for the timezone bot."""
from .alerts import alert_task_failure, send_alert
from .cog_base import log_errors
from .config import (
    BotConfig,
    EvictionConfig,
    RoleSyncConfig,
    StorageConfig,
    get_config,
    reset_config,
    set_config,
)
from .logging import configure_logging, get_logger, structured_log

__all__ = [
    # Alerts
    "alert_task_failure",
    "send_alert",
    # Decorators
    "log_errors",
    # Configuration
    "BotConfig",
    "EvictionConfig",
    "RoleSyncConfig",
    "StorageConfig",
    "get_config",
    "reset_config",
    "set_config",
    # Logging
    "configure_logging",
    "get_logger",
    "structured_log",
]
