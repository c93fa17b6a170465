"""
timezone_cog.py – Slash commands to manage your timezone role
=============================================================
/timezone        – save your timezone for this server
/remove-timezone – drop your timezone role and forget your timezone
/toggle-times    – (Manage Server) show the current hour in role names
/time-for        – current time of another member

Commands only touch the store and ask the role sync loop to run; roles are
granted by the loop itself, except for /remove-timezone which takes them off
right away.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

import discord
from discord import app_commands
from discord.ext import commands

from ..infra.alerts import send_alert
from ..infra.logging import COMMAND_LOGGER_NAME, get_logger
from ..offsets import (
    InvalidTimezone,
    current_offset_minutes,
    describe_offset_difference,
    local_time,
    normalize_timezone_name,
    resolve_offset_roles,
)
from ..tasks.role_sync import RoleReconciler, can_manage_offset_roles
from ..util import guild_name, user_tag

log = logging.getLogger(f"tzbot.{__name__}")
# read back by the guild evictor, keep the format stable
command_log = get_logger(COMMAND_LOGGER_NAME)

TIME_FORMAT = "%b %d, %H:%M"
TECHNICAL_ERROR = ":x: A technical error occurred."
NOT_IN_GUILD = "This bot is not usable in DMs!"


def role_update_warning(
    guild: discord.Guild, caller: discord.Member | None, failure: str
) -> str:
    """Explain what an admin has to fix before roles can be managed, or ``""``."""
    is_admin = bool(
        caller is not None and getattr(caller, "guild_permissions", None)
        and caller.guild_permissions.administrator
    )
    who = "" if is_admin else "tell an admin to "
    me = guild.me
    if me is None or not me.guild_permissions.manage_roles:
        return (
            f"\n:warning: Please {who}grant the **Manage Roles** permission to the bot, "
            f"so that it can create and assign timezone roles. {failure}"
        )
    if not can_manage_offset_roles(guild, resolve_offset_roles(guild.roles).role_ids()):
        return (
            f"\n:warning: Please {who}ensure that the Timezone Bot is higher in the role "
            "list than all timezone roles, so that it has the permission to manage and "
            f"assign them. {failure}"
        )
    return ""


class TimezoneCog(commands.Cog):
    """User facing commands backed by the timezone store."""

    def __init__(self, bot: commands.Bot, reconciler: RoleReconciler) -> None:
        self.bot = bot
        self.reconciler = reconciler
        self.store = reconciler.store
        self.cache = reconciler.cache

    @staticmethod
    def _log_command(name: str, interaction: discord.Interaction) -> None:
        command_log.info(
            "New command: /%s by member %s guild_id=%s",
            name,
            user_tag(interaction.user),
            interaction.guild_id,
        )

    @staticmethod
    async def _reply(interaction: discord.Interaction, text: str) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(text, ephemeral=True)
        else:
            await interaction.response.send_message(text, ephemeral=True)

    @app_commands.command(name="timezone", description="Set your timezone for this server")
    @app_commands.describe(tz_name="A timezone name like Europe/Paris, or an offset like UTC+02:00")
    async def set_timezone(self, interaction: discord.Interaction, tz_name: str):
        """Save the caller's timezone and schedule a role update."""
        if interaction.guild is None:
            await self._reply(interaction, NOT_IN_GUILD)
            return
        self._log_command("timezone", interaction)

        try:
            tz_canonical = normalize_timezone_name(tz_name)
        except InvalidTimezone:
            log.warning("Could not parse timezone %r", tz_name)
            await self._reply(
                interaction,
                ":x: The given timezone was not recognized.\n"
                "Use a tz database name like `Europe/Paris` or an offset like `UTC+02:00`.",
            )
            return

        guild = interaction.guild
        # the lock may be held by a whole reconciliation pass
        await interaction.response.defer(ephemeral=True)
        async with self.store.lock:
            self.store.set(guild.id, interaction.user.id, tz_canonical)
            self.cache.invalidate(guild.id, interaction.user.id)
            saved = self.store.save()
        log.info("User %s now has timezone %s", interaction.user.id, tz_canonical)
        self.reconciler.request_sync()

        if not saved:
            await self._reply(interaction, TECHNICAL_ERROR)
            return

        now_local = local_time(tz_canonical)
        await self._reply(
            interaction,
            f":white_check_mark: Your timezone was saved as **{tz_canonical}**.\n"
            f"The current time in this timezone is **{now_local.strftime(TIME_FORMAT)}**. "
            "If this does not match your local time, try another timezone name.\n"
            + role_update_warning(
                guild,
                interaction.user,
                "Your role will be assigned within 15 minutes once this is done.",
            ),
        )

    @app_commands.command(name="remove-timezone", description="Remove your timezone role")
    async def remove_timezone(self, interaction: discord.Interaction):
        """Take the caller's offset roles off now and forget their timezone."""
        if interaction.guild is None:
            await self._reply(interaction, NOT_IN_GUILD)
            return
        self._log_command("remove-timezone", interaction)

        guild = interaction.guild
        member = interaction.user
        if self.store.get(guild.id, member.id) is None:
            await self._reply(interaction, ":x: You don't currently have a timezone role!")
            return

        warning = role_update_warning(
            guild, member, "You will be able to remove your timezone role once this is done."
        )
        if warning:
            # the roles have to come off right now, which needs the permission
            await self._reply(interaction, warning.replace(":warning:", ":x:"))
            return

        await interaction.response.defer(ephemeral=True)
        offset_role_ids = resolve_offset_roles(guild.roles).role_ids()
        held = [role for role in member.roles if role.id in offset_role_ids]
        if held:
            log.info("Removing %d timezone roles from %s", len(held), user_tag(member))
            await member.remove_roles(*held, reason="User used /remove-timezone")

        async with self.store.lock:
            self.store.remove(guild.id, member.id)
            self.cache.invalidate(guild.id, member.id)
            saved = self.store.save()

        await self._reply(
            interaction,
            ":white_check_mark: Your timezone role has been removed." if saved else TECHNICAL_ERROR,
        )

    @app_commands.command(
        name="toggle-times",
        description="Toggle the current time showing in timezone roles",
    )
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.default_permissions(manage_guild=True)
    async def toggle_times(self, interaction: discord.Interaction):
        """Flip the live hour suffix for every offset role of this server."""
        if interaction.guild is None:
            await self._reply(interaction, NOT_IN_GUILD)
            return
        self._log_command("toggle-times", interaction)

        guild = interaction.guild
        await interaction.response.defer(ephemeral=True)
        async with self.store.lock:
            enabled = self.store.toggle_time_display(guild.id)
            saved = self.store.save_servers_with_time()
        log.info("Live time display in %s is now %s", guild_name(guild), enabled)
        self.reconciler.request_sync()

        if not saved:
            await self._reply(interaction, TECHNICAL_ERROR)
            return

        status = (
            "The timezone roles will now show the time it is in the timezone."
            if enabled
            else "The timezone roles won't show the time it is in the timezone anymore."
        )
        await self._reply(
            interaction,
            f":white_check_mark: {status}\n"
            + role_update_warning(
                guild,
                interaction.user,
                "The roles will be updated within 15 minutes once this is done.",
            ),
        )

    @app_commands.command(name="time-for", description="Get the current time for another member")
    @app_commands.describe(member="The member you want the time of")
    async def time_for(self, interaction: discord.Interaction, member: discord.Member):
        if interaction.guild is None:
            await self._reply(interaction, NOT_IN_GUILD)
            return
        self._log_command("time-for", interaction)

        guild_id = interaction.guild.id
        target = self.store.get(guild_id, member.id)
        if target is None:
            await self._reply(interaction, f":x: <@{member.id}> does not have a timezone role.")
            return

        now = datetime.now(timezone.utc)
        caller = self.store.get(guild_id, interaction.user.id)
        try:
            offset = current_offset_minutes(target.timezone_name, now)
            caller_offset = (
                current_offset_minutes(caller.timezone_name, now) if caller else None
            )
        except InvalidTimezone:
            log.warning("Stored timezone of %s cannot be resolved", member.id)
            await self._reply(interaction, TECHNICAL_ERROR)
            return

        now_local = local_time(target.timezone_name, now)
        await self._reply(
            interaction,
            f"The current time for <@{member.id}> is **{now_local.strftime(TIME_FORMAT)}** "
            f"({describe_offset_difference(offset, caller_offset)}).",
        )

    # ── Guild membership ──────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild):
        log.info("Just joined guild %s", guild_name(guild))
        await send_alert(
            self.bot,
            "Joined a server",
            f"I just joined a new server! I am now in **{len(self.bot.guilds)}** servers.",
            severity="info",
            context={"server": guild_name(guild)},
        )

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild):
        log.info("Cleaning servers with time list after leaving guild %s", guild_name(guild))
        await send_alert(
            self.bot,
            "Left a server",
            f"I was just kicked from a server. I am now in **{len(self.bot.guilds)}** servers.",
            severity="info",
            context={"server": guild_name(guild)},
        )
        async with self.store.lock:
            if self.store.prune_servers_with_time(g.id for g in self.bot.guilds):
                self.store.save_servers_with_time()
        # the next pass forgets the users we had on that server
        self.reconciler.request_sync()


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(TimezoneCog(bot, bot.reconciler))
