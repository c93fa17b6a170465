"""Role sync loop.

Runs a reconciliation pass at every quarter hour of the wall clock, or right
away when a command asks for it, and keeps the bot's presence up to date.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import discord
from discord.ext import commands, tasks

from ..infra.alerts import alert_task_failure
from ..tasks.role_sync import (
    UPDATING_PRESENCE,
    RoleReconciler,
    presence_text,
    seconds_until_next_boundary,
)

log = logging.getLogger(f"tzbot.{__name__}")


class RoleSyncCog(commands.Cog):
    """Drives :class:`RoleReconciler` from a background loop."""

    def __init__(self, bot: commands.Bot, reconciler: RoleReconciler) -> None:
        self.bot = bot
        self.reconciler = reconciler

    async def cog_load(self) -> None:
        self.sync_loop.start()

    async def cog_unload(self) -> None:
        self.sync_loop.cancel()

    async def run_once(self) -> None:
        """One pass plus the presence update; failures are logged and reported."""
        if len(self.reconciler.cache) == 0:
            # an empty cache means every member gets fetched; this takes a while
            await self._set_presence(UPDATING_PRESENCE)
        try:
            await self.reconciler.run_pass(self.bot.guilds)
        except Exception as exc:
            log.exception("Refresh roles failed")
            await alert_task_failure(self.bot, "role_sync", exc)
            return
        await self._set_presence(presence_text(self.bot.guilds, self.reconciler.store))

    async def wait_for_next_tick(self) -> None:
        """Sleep until the next boundary or until a sync is requested."""
        delay = seconds_until_next_boundary(
            datetime.now(timezone.utc), self.reconciler.config.interval_minutes
        )
        log.debug("Sleeping %.0f seconds until next role sync", delay)
        try:
            await asyncio.wait_for(self.reconciler.sync_requested.wait(), timeout=delay)
            log.debug("Role sync requested")
        except asyncio.TimeoutError:
            pass
        self.reconciler.sync_requested.clear()

    @tasks.loop()
    async def sync_loop(self) -> None:
        await self.run_once()
        await self.wait_for_next_tick()

    @sync_loop.before_loop
    async def before_sync_loop(self) -> None:
        await self.bot.wait_until_ready()

    async def _set_presence(self, text: str) -> None:
        try:
            await self.bot.change_presence(activity=discord.Game(name=text))
        except (discord.HTTPException, ConnectionError) as exc:
            log.warning("Failed to update presence: %s", exc)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(RoleSyncCog(bot, bot.reconciler))
