"""Leave the least active guild when the bot reaches its guild cap.

Unverified bots cannot join more than 100 guilds, so once a day the bot drops
the "most dead" guild it is in, provided nobody there configured a timezone
and nobody used a command there recently.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable

import discord

from ..util import guild_name

log = logging.getLogger(f"tzbot.{__name__}")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Notifier = Callable[[discord.Guild], Awaitable[object]]


def eviction_message(guild: discord.Guild) -> str:
    return (
        f"I left server **{guild.name}** (`{guild.id}`) "
        "to get back below 100 servers."
    )


def activity_timestamp(guild: discord.Guild) -> datetime:
    """Latest of the bot's join time and the newest message it can see."""
    latest_message_id = max(
        (channel.last_message_id or 0 for channel in guild.text_channels),
        default=0,
    )
    latest_message = (
        discord.utils.snowflake_time(latest_message_id) if latest_message_id else EPOCH
    )

    me = guild.me
    joined = getattr(me, "joined_at", None) if me is not None else None
    if joined is None:
        joined = discord.utils.snowflake_time(guild.id)

    activity = max(latest_message, joined)
    log.debug(
        "Latest message on %s happened on %s, bot joined on %s => activity date is %s",
        guild_name(guild),
        latest_message,
        joined,
        activity,
    )
    return activity


def pick_deadest_guild(
    guilds: Iterable[discord.Guild], immune_ids: set[int] | frozenset[int]
) -> discord.Guild | None:
    """Non-immune guild with the oldest activity timestamp, if any."""
    deadest: discord.Guild | None = None
    deadest_at: datetime | None = None
    for guild in guilds:
        if guild.id in immune_ids:
            log.debug("Server %s is spared", guild_name(guild))
            continue
        activity = activity_timestamp(guild)
        if deadest_at is None or activity < deadest_at:
            deadest, deadest_at = guild, activity
    return deadest


async def evict_one_if_over_capacity(
    guilds: Iterable[discord.Guild],
    *,
    protected_ids: Iterable[int],
    used_ids: Iterable[int],
    cap: int = 100,
    notify: Notifier | None = None,
) -> discord.Guild | None:
    """Leave one guild if the bot sits at or above ``cap`` guilds.

    ``protected_ids`` are servers with stored timezones and ``used_ids`` the
    servers that ran a command recently. Both are immune. Returns the guild
    that was left, or None.
    """
    guilds = list(guilds)
    if len(guilds) < cap:
        log.debug("In %d servers, below the cap of %d", len(guilds), cap)
        return None

    immune = set(protected_ids) | set(used_ids)
    deadest = pick_deadest_guild(guilds, immune)
    if deadest is None:
        log.warning("Found no dead server!")
        return None

    log.info("Leaving guild %s", guild_name(deadest))
    await deadest.leave()
    if notify is not None:
        await notify(deadest)
    return deadest
