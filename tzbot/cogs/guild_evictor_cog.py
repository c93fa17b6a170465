"""Daily job leaving a dead guild when the bot is at its guild cap."""
from __future__ import annotations

import asyncio
import logging

import discord
import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from discord.ext import commands

from ..infra.alerts import send_alert
from ..infra.cog_base import log_errors
from ..infra.config import BotConfig, get_config
from ..store import TimezoneStore
from ..tasks.guild_evictor import evict_one_if_over_capacity, eviction_message
from ..usage_log import read_recent_guild_usage

log = logging.getLogger(f"tzbot.{__name__}")


class GuildEvictorCog(commands.Cog):
    """Once a day, leave the least active unprotected guild if at the cap."""

    def __init__(self, bot: commands.Bot, config: BotConfig | None = None) -> None:
        self.bot = bot
        self.config = config or get_config()
        self.scheduler: AsyncIOScheduler | None = None

    async def cog_load(self) -> None:
        self.scheduler = AsyncIOScheduler(timezone=pytz.utc)
        trigger = CronTrigger(hour=self.config.eviction.run_hour, minute=0, timezone=pytz.utc)
        self.scheduler.add_job(self.run_eviction, trigger)
        self.scheduler.start()
        log.info("Guild evictor scheduled daily at %02d:00 UTC", self.config.eviction.run_hour)

    async def cog_unload(self) -> None:
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None

    async def _notify(self, guild: discord.Guild) -> None:
        await send_alert(self.bot, "Left a dead server", eviction_message(guild), severity="info")

    @log_errors("Daily guild eviction failed")
    async def run_eviction(self) -> discord.Guild | None:
        eviction = self.config.eviction
        storage = self.config.storage
        guilds = list(self.bot.guilds)
        if len(guilds) < eviction.guild_cap:
            log.debug("In %d servers; nothing to evict", len(guilds))
            return None

        protected = await asyncio.to_thread(TimezoneStore.read_server_ids, storage.timezones_path)
        used = await asyncio.to_thread(
            read_recent_guild_usage, storage.log_dir, days=eviction.usage_window_days
        )
        log.info(
            "Checking %d servers for eviction (%d with timezones, %d recently used)",
            len(guilds),
            len(protected),
            len(used),
        )
        return await evict_one_if_over_capacity(
            guilds,
            protected_ids=protected,
            used_ids=used,
            cap=eviction.guild_cap,
            notify=self._notify,
        )


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(GuildEvictorCog(bot, getattr(bot, "config", None)))
