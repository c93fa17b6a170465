"""Persisted (server, user) -> timezone mapping and the live time opt-ins.

On disk::

    user_timezones.csv      serverId;userId;timezoneName
    servers_with_time.txt   one serverId per line

The store is the single source of truth for timezone roles. Every mutation
from the reconciliation loop or a command handler happens while holding
``store.lock``.
"""
from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

log = logging.getLogger(f"tzbot.{__name__}")


@dataclass(frozen=True)
class UserTimezone:
    server_id: int
    user_id: int
    timezone_name: str

    def to_line(self) -> str:
        return f"{self.server_id};{self.user_id};{self.timezone_name}"

    @classmethod
    def from_line(cls, line: str) -> "UserTimezone":
        server_id, user_id, tz_name = line.split(";", 2)
        if not tz_name:
            raise ValueError("empty timezone name")
        return cls(int(server_id), int(user_id), tz_name)


def _atomic_write(path: Path, lines: Iterable[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            for line in lines:
                fh.write(line + "\n")
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class TimezoneStore:
    """In-memory view of the persisted timezone data."""

    def __init__(self, timezones_path: Path, servers_with_time_path: Path) -> None:
        self.timezones_path = Path(timezones_path)
        self.servers_with_time_path = Path(servers_with_time_path)
        self.lock = asyncio.Lock()
        self._entries: dict[tuple[int, int], UserTimezone] = {}
        self._servers_with_time: set[int] = set()

    # ── Loading ───────────────────────────────────────────────────────────

    @classmethod
    def load(cls, timezones_path: Path, servers_with_time_path: Path) -> "TimezoneStore":
        """Read both files; missing files mean an empty store."""
        store = cls(timezones_path, servers_with_time_path)
        for number, line in _read_lines(store.timezones_path):
            try:
                entry = UserTimezone.from_line(line)
            except ValueError:
                log.warning(
                    "Skipping malformed line %d in %s: %r",
                    number,
                    store.timezones_path,
                    line,
                )
                continue
            store._entries[(entry.server_id, entry.user_id)] = entry
        store._servers_with_time = set(cls.read_server_ids_file(store.servers_with_time_path))
        log.info(
            "Loaded %d timezones and %d live time servers",
            len(store._entries),
            len(store._servers_with_time),
        )
        return store

    @staticmethod
    def read_server_ids(path: Path) -> set[int]:
        """Server ids present in a persisted ``user_timezones.csv``.

        Reads the file only, so it is safe to call without the lock.
        """
        ids: set[int] = set()
        for _, line in _read_lines(Path(path)):
            head = line.split(";", 1)[0]
            if head.isdigit():
                ids.add(int(head))
        return ids

    @staticmethod
    def read_server_ids_file(path: Path) -> list[int]:
        ids: list[int] = []
        for number, line in _read_lines(Path(path)):
            if line.isdigit():
                ids.append(int(line))
            else:
                log.warning("Skipping malformed line %d in %s: %r", number, path, line)
        return ids

    # ── Timezone entries ──────────────────────────────────────────────────

    def get(self, server_id: int, user_id: int) -> UserTimezone | None:
        return self._entries.get((server_id, user_id))

    def set(self, server_id: int, user_id: int, timezone_name: str) -> UserTimezone:
        """Replace any previous entry of the user in this server."""
        entry = UserTimezone(server_id, user_id, timezone_name)
        self._entries[(server_id, user_id)] = entry
        return entry

    def remove(self, server_id: int, user_id: int) -> bool:
        return self._entries.pop((server_id, user_id), None) is not None

    def for_guild(self, server_id: int) -> list[UserTimezone]:
        return [e for e in self._entries.values() if e.server_id == server_id]

    def server_ids(self) -> set[int]:
        return {server_id for server_id, _ in self._entries}

    def user_count(self) -> int:
        return len({user_id for _, user_id in self._entries})

    def remove_unknown_guilds(self, guild_ids: Iterable[int]) -> int:
        """Forget every entry of a server the bot no longer belongs to."""
        known = set(guild_ids)
        stale = [key for key in self._entries if key[0] not in known]
        for key in stale:
            del self._entries[key]
        if stale:
            log.info("Removed %d timezones of servers the bot left", len(stale))
        return len(stale)

    def __iter__(self) -> Iterator[UserTimezone]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ── Live time display ─────────────────────────────────────────────────

    def shows_time(self, server_id: int) -> bool:
        return server_id in self._servers_with_time

    def toggle_time_display(self, server_id: int) -> bool:
        """Flip the live time option; returns the new state."""
        if server_id in self._servers_with_time:
            self._servers_with_time.discard(server_id)
            return False
        self._servers_with_time.add(server_id)
        return True

    def prune_servers_with_time(self, guild_ids: Iterable[int]) -> bool:
        known = set(guild_ids)
        before = len(self._servers_with_time)
        self._servers_with_time &= known
        return len(self._servers_with_time) != before

    # ── Persistence ───────────────────────────────────────────────────────

    def save(self) -> bool:
        """Write the timezone mapping. Returns False if the write failed."""
        lines = [entry.to_line() for entry in self._entries.values()]
        try:
            _atomic_write(self.timezones_path, lines)
        except OSError:
            log.exception("Failed to save timezones to %s", self.timezones_path)
            return False
        log.debug("Saved %d timezones", len(lines))
        return True

    def save_servers_with_time(self) -> bool:
        lines = [str(server_id) for server_id in sorted(self._servers_with_time)]
        try:
            _atomic_write(self.servers_with_time_path, lines)
        except OSError:
            log.exception(
                "Failed to save live time servers to %s", self.servers_with_time_path
            )
            return False
        return True


def _read_lines(path: Path) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, stripped_line)`` for non-blank lines of a file."""
    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as fh:
        for number, raw in enumerate(fh, start=1):
            line = raw.strip()
            if line:
                yield number, line
