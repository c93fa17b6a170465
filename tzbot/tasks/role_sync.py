"""Timezone role reconciliation.

Every pass walks the guilds one by one and makes Discord match the store:

* each stored user holds exactly the offset role of their zone's current UTC
  offset, created on demand;
* offset roles nobody needs anymore, and duplicates, are deleted;
* remaining roles are renamed when their displayed name changed (live hour).

Nothing here remembers what a previous pass did. A failed call is simply
retried by the next pass, which converges to the same state.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

import discord

from ..infra.config import RoleSyncConfig
from ..infra.logging import structured_log
from ..member_cache import CachedMember, MemberCache
from ..offsets import (
    InvalidTimezone,
    OffsetRoleMap,
    current_offset_minutes,
    format_offset,
    offset_role_name,
    resolve_offset_roles,
)
from ..store import TimezoneStore
from ..util import guild_name

log = logging.getLogger(f"tzbot.{__name__}")

UPDATING_PRESENCE = "Updating timezone roles..."


class RoleSyncError(RuntimeError):
    """A role the reconciler relies on vanished in the middle of a pass."""


def seconds_until_next_boundary(now: datetime, interval_minutes: int = 15) -> float:
    """Seconds from ``now`` to the next ``minute % interval == 0`` mark."""
    floor = now.replace(second=0, microsecond=0)
    floor -= timedelta(minutes=floor.minute % interval_minutes)
    nxt = floor + timedelta(minutes=interval_minutes)
    return max((nxt - now).total_seconds(), 0.0)


def can_manage_offset_roles(guild: discord.Guild, role_ids: Iterable[int]) -> bool:
    """Whether the bot may create, grant and delete every offset role here."""
    me = guild.me
    if me is None or not me.guild_permissions.manage_roles:
        return False
    if guild.owner_id == me.id:
        return True
    for role_id in role_ids:
        role = guild.get_role(role_id)
        if role is not None and me.top_role <= role:
            return False
    return True


def presence_text(guilds: Iterable[discord.Guild], store: TimezoneStore) -> str:
    guilds = list(guilds)
    roles = sum(len(resolve_offset_roles(g.roles).by_offset) for g in guilds)
    return (
        f"/timezone | {roles} roles | {store.user_count()} users | "
        f"{len(guilds)} servers"
    )


class RoleReconciler:
    """Owns the reconciliation state for the lifetime of the bot."""

    def __init__(
        self,
        store: TimezoneStore,
        cache: MemberCache,
        config: RoleSyncConfig | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.config = config or RoleSyncConfig()
        self.sync_requested = asyncio.Event()
        self.last_cache_clear: date | None = None
        self.last_pass_at: datetime | None = None

    def request_sync(self) -> None:
        """Ask the loop to run a pass now instead of at the next boundary."""
        self.sync_requested.set()

    # ── One guild ─────────────────────────────────────────────────────────

    async def reconcile_guild(
        self, guild: discord.Guild, now: datetime | None = None
    ) -> bool:
        """Bring the offset roles of ``guild`` in line with the store.

        Returns True if users who left the guild were removed from the store.
        Callers hold ``store.lock``.
        """
        now = now or datetime.now(timezone.utc)
        role_map = resolve_offset_roles(guild.roles)

        if not can_manage_offset_roles(guild, role_map.role_ids()):
            log.debug(
                "Cannot manage timezone roles in %s; only checking for gone members",
                guild_name(guild),
            )
            return await self.prune_departed_users(guild, role_map)

        log.debug("Refreshing timezone roles in %s", guild_name(guild))
        created: dict[int, discord.Role] = {}
        obsolete_offsets = set(role_map.by_offset)
        obsolete_users: list[int] = []

        for entry in self.store.for_guild(guild.id):
            member = await self.cache.get_member(guild, entry.user_id, role_map.role_ids())
            if member is None:
                obsolete_users.append(entry.user_id)
                continue

            try:
                offset = current_offset_minutes(entry.timezone_name, now)
            except InvalidTimezone:
                log.warning(
                    "Skipping user %s in %s: unknown timezone %r",
                    entry.user_id,
                    guild_name(guild),
                    entry.timezone_name,
                )
                continue
            obsolete_offsets.discard(offset)

            if offset not in role_map.by_offset:
                role = await guild.create_role(
                    name=f"timezone role for {format_offset(offset)}",
                    permissions=discord.Permissions.none(),
                    reason=f"User has non currently existing timezone {format_offset(offset)}",
                )
                log.info("Created role %s in %s", role.id, guild_name(guild))
                created[role.id] = role
                role_map.register(offset, role.id)

            if await self._apply_member_roles(guild, member, role_map, offset, created):
                self.cache.invalidate(guild.id, entry.user_id)

        for user_id in obsolete_users:
            log.info("Removing user %s who left %s", user_id, guild_name(guild))
            self.store.remove(guild.id, user_id)
            self.cache.invalidate(guild.id, user_id)

        for offset in obsolete_offsets:
            role_id = role_map.by_offset.pop(offset)
            await self._delete_role(guild, role_id, created)
        for role_id in role_map.duplicates:
            await self._delete_role(guild, role_id, created)

        show_time = self.store.shows_time(guild.id)
        for offset, role_id in sorted(role_map.by_offset.items()):
            role = self._lookup_role(guild, role_id, created)
            if role is None:
                raise RoleSyncError(
                    f"Managed role for {format_offset(offset)} somehow disappeared, send help"
                )
            wanted = offset_role_name(offset, show_time, now)
            if role.name != wanted:
                log.debug("Renaming %s to %s", role.name, wanted)
                await role.edit(name=wanted, reason="Time passed")

        return bool(obsolete_users)

    async def _apply_member_roles(
        self,
        guild: discord.Guild,
        member: CachedMember,
        role_map: OffsetRoleMap,
        offset: int,
        created: dict[int, discord.Role],
    ) -> bool:
        """Revoke stray offset roles and grant the target one. True if changed."""
        target_id = role_map.by_offset[offset]
        stray_ids = member.role_ids - {target_id}
        needs_grant = target_id not in member.role_ids
        if not stray_ids and not needs_grant:
            return False

        live = await self.cache.fetch_live_member(guild, member.member_id)
        if live is None:
            return True
        reason = f"Timezone of user changed to {format_offset(offset)}"

        stray_roles = [
            role
            for role in (self._lookup_role(guild, rid, created) for rid in stray_ids)
            if role is not None
        ]
        if stray_roles:
            log.debug("Revoking %d roles from %s", len(stray_roles), member.display_tag)
            await live.remove_roles(*stray_roles, reason=reason)

        if needs_grant:
            target = self._lookup_role(guild, target_id, created)
            if target is None:
                raise RoleSyncError(
                    f"Managed role for {format_offset(offset)} somehow disappeared, send help"
                )
            log.debug("Granting %s to %s", format_offset(offset), member.display_tag)
            await live.add_roles(target, reason=reason)
        return True

    async def _delete_role(
        self,
        guild: discord.Guild,
        role_id: int,
        created: dict[int, discord.Role],
    ) -> None:
        if role_id in self.config.ghost_role_ids:
            log.debug("Not deleting ghost role %s", role_id)
            return
        role = self._lookup_role(guild, role_id, created)
        if role is None:
            raise RoleSyncError(f"Role {role_id} to delete somehow disappeared, send help")
        log.info("Deleting unused role %s in %s", role.name, guild_name(guild))
        await role.delete(reason="Nobody has this role anymore")

    @staticmethod
    def _lookup_role(
        guild: discord.Guild, role_id: int, created: dict[int, discord.Role]
    ) -> discord.Role | None:
        # freshly created roles may not be in the guild cache yet
        return created.get(role_id) or guild.get_role(role_id)

    async def prune_departed_users(
        self, guild: discord.Guild, role_map: OffsetRoleMap | None = None
    ) -> bool:
        """Forget users who left ``guild`` without touching any role."""
        if role_map is None:
            role_map = resolve_offset_roles(guild.roles)
        removed = False
        for entry in self.store.for_guild(guild.id):
            member = await self.cache.get_member(guild, entry.user_id, role_map.role_ids())
            if member is None:
                log.info("Removing user %s who left %s", entry.user_id, guild_name(guild))
                self.store.remove(guild.id, entry.user_id)
                removed = True
        return removed

    # ── Whole pass ────────────────────────────────────────────────────────

    async def run_pass(
        self, guilds: Iterable[discord.Guild], now: datetime | None = None
    ) -> bool:
        """Reconcile every guild in turn, then housekeep.

        A Discord error aborts the current guild only. ``RoleSyncError``
        aborts the whole pass.
        """
        now = now or datetime.now(timezone.utc)
        guilds = list(guilds)
        users_removed = False
        failed = 0

        for guild in guilds:
            async with self.store.lock:
                try:
                    if await self.reconcile_guild(guild, now):
                        users_removed = True
                except discord.HTTPException as exc:
                    failed += 1
                    log.warning(
                        "Role sync for %s aborted by Discord error: %s",
                        guild_name(guild),
                        exc,
                    )

        async with self.store.lock:
            await self.housekeep([g.id for g in guilds], users_removed, now)

        self.last_pass_at = now
        structured_log(
            log,
            logging.INFO,
            "Role sync pass done",
            guilds=len(guilds),
            failed=failed,
            users_removed=users_removed,
            cached_members=len(self.cache),
        )
        return users_removed

    async def housekeep(
        self, guild_ids: Iterable[int], users_removed: bool, now: datetime
    ) -> None:
        """Drop data of vanished guilds and users; clear the cache once a day."""
        guild_ids = set(guild_ids)

        if self.store.remove_unknown_guilds(guild_ids):
            users_removed = True

        if self.store.prune_servers_with_time(guild_ids):
            log.info("Removed live time option of servers the bot left")
            self.store.save_servers_with_time()

        dropped = self.cache.prune(
            lambda m: m.guild_id in guild_ids
            and self.store.get(m.guild_id, m.member_id) is not None
        )
        if dropped:
            log.debug("Dropped %d stale member cache entries", dropped)

        if users_removed:
            log.info("Saving timezones after removing users")
            self.store.save()

        today = now.astimezone(timezone.utc).date()
        if now.astimezone(timezone.utc).hour >= self.config.cache_clear_hour and (
            self.last_cache_clear != today
        ):
            self.cache.clear()
            self.last_cache_clear = today
