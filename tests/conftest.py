from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent
for path in (ROOT, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from tzbot.infra.config import reset_config  # noqa: E402
from tzbot.member_cache import MemberCache  # noqa: E402
from tzbot.store import TimezoneStore  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture()
def store(tmp_path):
    return TimezoneStore(tmp_path / "user_timezones.csv", tmp_path / "servers_with_time.txt")


@pytest.fixture()
def cache():
    return MemberCache()
