"""The timezone bot: owns the store, the member cache and the reconciler."""
from __future__ import annotations

import logging
from pathlib import Path

import discord
from discord.ext import commands

from .infra.config import BotConfig, get_config
from .member_cache import MemberCache
from .store import TimezoneStore
from .tasks.role_sync import RoleReconciler

logger = logging.getLogger("tzbot")


def build_intents() -> discord.Intents:
    # members are fetched one by one, so the privileged members intent is not needed
    intents = discord.Intents.none()
    intents.guilds = True
    # keeps TextChannel.last_message_id current for the guild evictor
    intents.guild_messages = True
    return intents


class TimezoneBot(commands.Bot):
    """Bot whose state lives from startup to shutdown.

    The store is read from disk when the bot is built and written back in
    :meth:`close`, so nothing the loop or the commands did is lost on a
    clean shutdown.
    """

    def __init__(self, config: BotConfig | None = None, **kwargs) -> None:
        kwargs.setdefault("command_prefix", commands.when_mentioned)
        kwargs.setdefault("intents", build_intents())
        kwargs.setdefault("activity", discord.Game(name="Starting up..."))
        super().__init__(**kwargs)
        self.config = config or get_config()
        storage = self.config.storage
        self.store = TimezoneStore.load(storage.timezones_path, storage.servers_with_time_path)
        self.member_cache = MemberCache()
        self.reconciler = RoleReconciler(self.store, self.member_cache, self.config.role_sync)
        self._synced = False

        self.tree.error(self.on_app_command_error)

    async def setup_hook(self) -> None:
        # Load cogs bundled with the package
        cog_dir = Path(__file__).resolve().parent / "cogs"
        for file in sorted(cog_dir.glob("*_cog.py")):
            await self.load_extension(f"tzbot.cogs.{file.stem}")

    async def on_ready(self) -> None:
        logger.info("%s is now online in %d servers", self.user, len(self.guilds))
        if not self._synced:
            try:
                cmds = await self.tree.sync()
                logger.info("Synced %d commands.", len(cmds))
                self._synced = True
            except Exception as e:
                logger.exception("Failed to sync commands: %s", e)
        # we may have been kicked from servers while offline
        async with self.store.lock:
            if self.store.prune_servers_with_time(g.id for g in self.guilds):
                logger.warning("Removed servers the bot left from the live time list")
                self.store.save_servers_with_time()
        logger.debug(
            "Users by timezone = %d, servers = %d", len(self.store), len(self.guilds)
        )

    async def on_error(self, event: str, *args, **kwargs) -> None:
        logger.exception("Unhandled exception in event %s", event)

    async def on_app_command_error(
        self,
        interaction: discord.Interaction,
        exc: discord.app_commands.AppCommandError,
    ) -> None:
        cmd_name = getattr(interaction.command, "name", "unknown")
        if isinstance(exc, discord.app_commands.MissingPermissions):
            message = ":x: You need the **Manage Server** permission to do this."
        else:
            logger.exception("Error in slash command '%s'", cmd_name, exc_info=exc)
            message = ":x: A technical error occurred."
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    async def close(self) -> None:
        async with self.store.lock:
            self.store.save()
            self.store.save_servers_with_time()
        logger.info("Flushed timezone store to disk")
        await super().close()
