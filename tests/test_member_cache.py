import asyncio

import pytest

from fakes import FakeGuild, server_error
from tzbot.member_cache import MemberCache


def test_miss_fetches_and_keeps_only_offset_roles():
    async def run_test():
        guild = FakeGuild(1)
        tz_role = guild.add_role("Timezone UTC+01:00")
        other = guild.add_role("Moderator")
        guild.add_member(10, tz_role, other)
        cache = MemberCache()

        member = await cache.get_member(guild, 10, {tz_role.id})
        assert member.role_ids == frozenset({tz_role.id})
        assert member.display_tag == "user10"
        assert guild.fetches == 1

        again = await cache.get_member(guild, 10, {tz_role.id})
        assert again is member
        assert guild.fetches == 1
        assert len(cache) == 1

    asyncio.run(run_test())


def test_unknown_member_is_none_and_not_cached():
    async def run_test():
        guild = FakeGuild(1)
        cache = MemberCache()
        assert await cache.get_member(guild, 42, set()) is None
        assert len(cache) == 0

    asyncio.run(run_test())


def test_other_errors_propagate():
    async def run_test():
        guild = FakeGuild(1)

        async def broken_fetch(member_id):
            raise server_error()

        guild.fetch_member = broken_fetch
        with pytest.raises(Exception) as excinfo:
            await MemberCache().get_member(guild, 10, set())
        assert excinfo.value.status == 500

    asyncio.run(run_test())


def test_invalidate_prune_and_clear():
    async def run_test():
        guild_a, guild_b = FakeGuild(1), FakeGuild(2)
        for guild in (guild_a, guild_b):
            guild.add_member(10)
            guild.add_member(11)
        cache = MemberCache()
        for guild in (guild_a, guild_b):
            for member_id in (10, 11):
                await cache.get_member(guild, member_id, set())
        assert len(cache) == 4

        cache.invalidate(1, 10)
        assert (1, 10) not in cache
        cache.invalidate(1, 10)

        dropped = cache.prune(lambda m: m.guild_id == 1)
        assert dropped == 2
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0

    asyncio.run(run_test())
