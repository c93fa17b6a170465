"""Shared async HTTP session management.

Usage:
    from tzbot.infra.http import get_async_session
    async with get_async_session() as session:
        webhook = discord.Webhook.from_url(url, session=session)
        await webhook.send("hello")
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiohttp

# Default configuration
DEFAULT_TIMEOUT = 10  # seconds
DEFAULT_USER_AGENT = "tzbot/1.0"


@asynccontextmanager
async def get_async_session(
    timeout: int = DEFAULT_TIMEOUT,
) -> AsyncIterator[aiohttp.ClientSession]:
    """Get an async HTTP session for use within an async context.

    Async sessions are created per-context due to event loop requirements.
    The session is automatically closed when the context exits.
    """
    timeout_config = aiohttp.ClientTimeout(total=timeout)

    connector = aiohttp.TCPConnector(
        limit=20,  # Max simultaneous connections
        limit_per_host=10,  # Max connections per host
    )

    async with aiohttp.ClientSession(
        timeout=timeout_config,
        connector=connector,
        headers={"User-Agent": DEFAULT_USER_AGENT},
    ) as session:
        yield session
