"""UTC offset roles: name parsing, formatting and timezone lookups.

Offset roles are named ``Timezone UTC+05:30`` and, in guilds that opted into
live time display, carry the current local hour as a suffix:
``Timezone UTC+05:30 (3pm)``.

Everything here is pure; nothing talks to Discord.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterable, Union

import pytz
import discord

ROLE_NAME_PREFIX = "Timezone "
ROLE_NAME_PATTERN = re.compile(
    r"^Timezone UTC([+-])([0-9][0-9]):([0-9][0-9])(?: \([0-2]?[0-9][ap]m\))?$"
)
USER_OFFSET_PATTERN = re.compile(
    r"^UTC(?:([+-])([0-9]{1,2})(?::?([0-9]{2}))?)?$", re.IGNORECASE
)

# case-insensitive lookup of every zone pytz knows about
_ZONES_BY_LOWER = {name.lower(): name for name in pytz.all_timezones}


class InvalidTimezone(ValueError):
    """Raised when a timezone name is neither an IANA zone nor a UTC offset."""


# ── Formatting ───────────────────────────────────────────────────────────────

def format_offset(minutes: int) -> str:
    """Return ``UTC+05:30`` style text for an offset in minutes."""
    sign = "-" if minutes < 0 else "+"
    hours, mins = divmod(abs(minutes), 60)
    return f"UTC{sign}{hours:02d}:{mins:02d}"


def format_hour(moment: datetime) -> str:
    """Return the hour of ``moment`` on a 12-hour clock, e.g. ``3pm``."""
    suffix = "am" if moment.hour < 12 else "pm"
    return f"{moment.hour % 12 or 12}{suffix}"


def offset_role_name(offset: int, show_time: bool, now: datetime) -> str:
    """Name an offset role should carry at ``now``."""
    name = f"{ROLE_NAME_PREFIX}{format_offset(offset)}"
    if show_time:
        local = now.astimezone(timezone.utc) + timedelta(minutes=offset)
        name += f" ({format_hour(local)})"
    return name


def parse_offset_role_name(name: str) -> int | None:
    """Return the offset in minutes encoded in a role name, or None."""
    match = ROLE_NAME_PATTERN.match(name)
    if not match:
        return None
    sign, hours, minutes = match.groups()
    offset = int(hours) * 60 + int(minutes)
    return -offset if sign == "-" else offset


# ── Resolution of a guild's roles ────────────────────────────────────────────

@dataclass(frozen=True)
class Primary:
    """The role that represents its offset in a guild."""

    offset: int
    role_id: int


@dataclass(frozen=True)
class Duplicate:
    """A second role for an offset that already has a primary one."""

    offset: int
    role_id: int


ResolvedRole = Union[Primary, Duplicate]


@dataclass
class OffsetRoleMap:
    """Offset roles found in one guild.

    ``by_offset`` holds the primary role id per offset and is extended in
    place when a reconciliation pass creates a role. ``duplicates`` lists
    role ids that collide with a primary role and have to go.
    """

    by_offset: dict[int, int] = field(default_factory=dict)
    duplicates: list[int] = field(default_factory=list)

    def role_ids(self) -> set[int]:
        return set(self.by_offset.values()) | set(self.duplicates)

    def register(self, offset: int, role_id: int) -> None:
        self.by_offset[offset] = role_id


def classify_roles(roles: Iterable[discord.Role]) -> list[ResolvedRole]:
    """Tag every offset role as Primary or Duplicate, first come first kept."""
    seen: set[int] = set()
    resolved: list[ResolvedRole] = []
    for role in roles:
        offset = parse_offset_role_name(role.name)
        if offset is None:
            continue
        if offset in seen:
            resolved.append(Duplicate(offset, role.id))
        else:
            seen.add(offset)
            resolved.append(Primary(offset, role.id))
    return resolved


def resolve_offset_roles(roles: Iterable[discord.Role]) -> OffsetRoleMap:
    """Build the offset role map of a guild from its role list."""
    role_map = OffsetRoleMap()
    for entry in classify_roles(roles):
        if isinstance(entry, Primary):
            role_map.by_offset[entry.offset] = entry.role_id
        else:
            role_map.duplicates.append(entry.role_id)
    return role_map


# ── Timezones ────────────────────────────────────────────────────────────────

def normalize_timezone_name(text: str) -> str:
    """Return the canonical form of a user supplied timezone.

    Accepts IANA names in any case (``europe/paris``) and UTC offsets such as
    ``UTC``, ``UTC+8``, ``UTC-0530`` or ``UTC+05:30``. Offsets come back as
    ``UTC+08:00``.

    Raises:
        InvalidTimezone: if the text is neither.
    """
    cleaned = text.strip()
    match = USER_OFFSET_PATTERN.match(cleaned)
    if match:
        sign, hours, minutes = match.groups()
        if sign is None:
            return "UTC+00:00"
        hours_i = int(hours)
        minutes_i = int(minutes or 0)
        if hours_i > 14 or minutes_i >= 60:
            raise InvalidTimezone(cleaned)
        total = hours_i * 60 + minutes_i
        return format_offset(-total if sign == "-" else total)

    canonical = _ZONES_BY_LOWER.get(cleaned.lower())
    if canonical is None:
        raise InvalidTimezone(cleaned)
    return canonical


def resolve_zone(name: str) -> tzinfo:
    """Return a tzinfo for a stored timezone name."""
    match = USER_OFFSET_PATTERN.match(name)
    if match:
        sign, hours, minutes = match.groups()
        if sign is None:
            return pytz.utc
        total = int(hours) * 60 + int(minutes or 0)
        return pytz.FixedOffset(-total if sign == "-" else total)
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise InvalidTimezone(name) from exc


def current_offset_minutes(name: str, now: datetime | None = None) -> int:
    """Live UTC offset of ``name`` at ``now`` in minutes.

    Never cached, so a daylight saving change shows up on the next call.
    """
    now = now or datetime.now(timezone.utc)
    local = now.astimezone(resolve_zone(name))
    delta = local.utcoffset() or timedelta(0)
    return int(delta.total_seconds() // 60)


def local_time(name: str, now: datetime | None = None) -> datetime:
    """Current wall-clock time in the given stored timezone."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(resolve_zone(name))


def describe_offset_difference(offset: int, caller_offset: int | None) -> str:
    """``UTC+02:00, 1 hour ahead of you`` style text for ``/time-for``."""
    text = format_offset(offset)
    if caller_offset is None:
        return text
    difference = offset - caller_offset
    if difference == 0:
        return f"{text}, same time as you"
    hours, minutes = divmod(abs(difference), 60)
    if minutes == 0:
        amount = f"{hours} hour{'' if hours == 1 else 's'}"
    else:
        amount = f"{hours}:{minutes:02d}"
    direction = "behind" if difference < 0 else "ahead of"
    return f"{text}, {amount} {direction} you"
