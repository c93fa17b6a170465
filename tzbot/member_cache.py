"""Memory-only cache of the offset roles each member holds.

Fetching members from Discord on every reconciliation tick is slow and rate
limited, so the reconciler keeps a snapshot per (guild, member). The store
stays the system of record: entries are dropped after every grant/revoke and
the whole cache is cleared once a day.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

import discord

from .util import user_tag

log = logging.getLogger(f"tzbot.{__name__}")


@dataclass(frozen=True)
class CachedMember:
    guild_id: int
    member_id: int
    display_tag: str
    nickname: str | None
    role_ids: frozenset[int]


class MemberCache:
    def __init__(self) -> None:
        self._members: dict[tuple[int, int], CachedMember] = {}

    async def get_member(
        self,
        guild: discord.Guild,
        member_id: int,
        offset_role_ids: Iterable[int],
    ) -> CachedMember | None:
        """Return the cached snapshot, fetching the member on a miss.

        ``None`` means the member is no longer in the guild. Any other
        Discord error propagates.
        """
        key = (guild.id, member_id)
        cached = self._members.get(key)
        if cached is not None:
            return cached

        member = await self.fetch_live_member(guild, member_id)
        if member is None:
            return None

        wanted = set(offset_role_ids)
        cached = CachedMember(
            guild_id=guild.id,
            member_id=member_id,
            display_tag=user_tag(member),
            nickname=getattr(member, "nick", None),
            role_ids=frozenset(role.id for role in member.roles if role.id in wanted),
        )
        self._members[key] = cached
        return cached

    async def fetch_live_member(
        self, guild: discord.Guild, member_id: int
    ) -> discord.Member | None:
        try:
            return await guild.fetch_member(member_id)
        except discord.NotFound:
            log.debug("Member %s is no longer in guild %s", member_id, guild.id)
            return None

    def invalidate(self, guild_id: int, member_id: int) -> None:
        self._members.pop((guild_id, member_id), None)

    def prune(self, keep: Callable[[CachedMember], bool]) -> int:
        """Drop every entry for which ``keep`` is false; returns the count."""
        stale = [key for key, member in self._members.items() if not keep(member)]
        for key in stale:
            del self._members[key]
        return len(stale)

    def clear(self) -> None:
        count = len(self._members)
        self._members.clear()
        log.info("Cleared member cache (%d entries)", count)

    def __contains__(self, key: object) -> bool:
        return key in self._members

    def __len__(self) -> int:
        return len(self._members)
