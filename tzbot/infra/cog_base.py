"""Decorators shared by the bot's cogs and scheduled jobs."""
from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


def log_errors(message: str = "Operation failed") -> Callable[[F], F]:
    """Decorator that logs exceptions with consistent formatting and returns None.

    Example::

        @log_errors("Daily eviction failed")
        async def _run_eviction(self):
            ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception:
                func_log = logging.getLogger(f"tzbot.{func.__module__}")
                func_log.exception("%s in %s", message, func.__name__)
                return None

        return wrapper  # type: ignore[return-value]

    return decorator
