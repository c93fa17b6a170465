import os
import logging
import discord


def user_tag(user: discord.abc.User) -> str:
    """Return ``name`` for migrated usernames, ``name#1234`` for legacy ones."""
    name = getattr(user, "name", None) or str(getattr(user, "id", "unknown"))
    discriminator = getattr(user, "discriminator", "0") or "0"
    if discriminator in {"0", "0000"}:
        return name
    return f"{name}#{discriminator}"


def guild_name(guild: discord.abc.Snowflake | int | None) -> str:
    """Return a guild's name or fallback to ID."""
    if guild is None:
        return "unknown"
    if isinstance(guild, int):
        return str(guild)
    name = getattr(guild, "name", None)
    if name:
        return f"{name} ({guild.id})" if getattr(guild, "id", None) else name
    gid = getattr(guild, "id", None)
    return str(gid) if gid is not None else "unknown"


def int_env(var: str, default: int = 0) -> int:
    """Return int value from ENV or default if unset or invalid."""
    value = os.getenv(var)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logging.getLogger(__name__).warning(
            "Invalid integer for %s: %s; using %s", var, value, default
        )
        return default


def int_set_env(var: str) -> frozenset[int]:
    """Return a set of ints from a comma-separated ENV value, skipping junk."""
    value = os.getenv(var, "")
    result: set[int] = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if part.isdigit():
            result.add(int(part))
        else:
            logging.getLogger(__name__).warning(
                "Ignoring non-numeric id %r in %s", part, var
            )
    return frozenset(result)
