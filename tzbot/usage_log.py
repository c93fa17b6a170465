"""Find guilds that used the bot recently by scanning its own logs.

Command handlers log ``New command: /<name> by member <who> guild_id=<id>``
and the rotating file handler keeps 90 days of ``bot.log*`` files, which is
all the evictor needs to tell a live guild from a dead one.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from pathlib import Path

from .infra.logging import LOG_FILE_NAME

log = logging.getLogger(f"tzbot.{__name__}")

COMMAND_LOG_PATTERN = re.compile(r"New command: /\S+ by member .* guild_id=(\d+)")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _line_time(line: str) -> datetime | None:
    try:
        return datetime.strptime(line[:19], TIMESTAMP_FORMAT)
    except ValueError:
        return None


def read_recent_guild_usage(
    log_dir: Path, days: int = 30, now: datetime | None = None
) -> set[int]:
    """Ids of guilds with a logged command in the last ``days`` days.

    Log timestamps are local wall-clock time, so ``now`` is naive local time.
    """
    now = now or datetime.now()
    cutoff = now - timedelta(days=days)
    used: set[int] = set()

    log_dir = Path(log_dir)
    if not log_dir.is_dir():
        log.warning("Log directory %s does not exist; no recent usage known", log_dir)
        return used

    for path in sorted(log_dir.glob(f"{LOG_FILE_NAME}*")):
        log.debug("Searching for bot usages in %s", path.name)
        try:
            with path.open("r", encoding="utf-8", errors="replace") as fh:
                for line in fh:
                    match = COMMAND_LOG_PATTERN.search(line)
                    if not match:
                        continue
                    stamp = _line_time(line)
                    if stamp is None or stamp < cutoff:
                        continue
                    used.add(int(match.group(1)))
        except OSError:
            log.warning("Could not read log file %s", path, exc_info=True)

    log.debug("Servers that used the bot: %s", used)
    return used
