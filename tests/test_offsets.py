from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from tzbot.offsets import (
    Duplicate,
    InvalidTimezone,
    Primary,
    classify_roles,
    current_offset_minutes,
    describe_offset_difference,
    format_hour,
    format_offset,
    normalize_timezone_name,
    offset_role_name,
    parse_offset_role_name,
    resolve_offset_roles,
)


def _role(role_id, name):
    return SimpleNamespace(id=role_id, name=name)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Timezone UTC+05:30", 330),
        ("Timezone UTC-05:00", -300),
        ("Timezone UTC+00:00", 0),
        ("Timezone UTC-00:30", -30),
        ("Timezone UTC-03:30 (11am)", -210),
        ("Timezone UTC+14:00 (12pm)", 840),
    ],
)
def test_parse_offset_role_name(name, expected):
    assert parse_offset_role_name(name) == expected


@pytest.mark.parametrize(
    "name",
    ["Timezone UTC+5:30", "timezone UTC+05:30", "Timezone UTC+05:30 (3 pm)", "Moderator", "Timezone UTC+05:30 "],
)
def test_parse_offset_role_name_rejects_other_names(name):
    assert parse_offset_role_name(name) is None


def test_format_offset():
    assert format_offset(330) == "UTC+05:30"
    assert format_offset(-300) == "UTC-05:00"
    assert format_offset(0) == "UTC+00:00"
    assert format_offset(-30) == "UTC-00:30"


def test_format_hour():
    assert format_hour(datetime(2024, 1, 1, 0, 5)) == "12am"
    assert format_hour(datetime(2024, 1, 1, 9, 59)) == "9am"
    assert format_hour(datetime(2024, 1, 1, 12, 0)) == "12pm"
    assert format_hour(datetime(2024, 1, 1, 15, 0)) == "3pm"


def test_offset_role_name_with_and_without_time():
    now = datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc)
    assert offset_role_name(60, False, now) == "Timezone UTC+01:00"
    assert offset_role_name(60, True, now) == "Timezone UTC+01:00 (4pm)"
    assert offset_role_name(-300, True, now) == "Timezone UTC-05:00 (10am)"
    # round trip through the parser, suffix included
    assert parse_offset_role_name(offset_role_name(-570, True, now)) == -570


def test_resolve_offset_roles_keeps_first_role_per_offset():
    roles = [
        _role(1, "@everyone"),
        _role(2, "Timezone UTC+01:00"),
        _role(3, "Timezone UTC+01:00 (4pm)"),
        _role(4, "Timezone UTC-05:00"),
        _role(5, "Timezone UTC+01:00"),
    ]
    role_map = resolve_offset_roles(roles)
    assert role_map.by_offset == {60: 2, -300: 4}
    assert role_map.duplicates == [3, 5]
    assert role_map.role_ids() == {2, 3, 4, 5}


def test_classify_roles_tags_outcomes():
    roles = [_role(2, "Timezone UTC+01:00"), _role(3, "Timezone UTC+01:00")]
    assert classify_roles(roles) == [Primary(60, 2), Duplicate(60, 3)]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Europe/Paris", "Europe/Paris"),
        ("  europe/paris ", "Europe/Paris"),
        ("AMERICA/NEW_YORK", "America/New_York"),
        ("UTC", "UTC+00:00"),
        ("utc+8", "UTC+08:00"),
        ("UTC-0530", "UTC-05:30"),
        ("UTC+05:30", "UTC+05:30"),
        ("UTC-00:30", "UTC-00:30"),
    ],
)
def test_normalize_timezone_name(text, expected):
    assert normalize_timezone_name(text) == expected


@pytest.mark.parametrize("text", ["Mars/Olympus", "UTC+25", "UTC+05:75", "", "EST5EDT6"])
def test_normalize_timezone_name_rejects(text):
    with pytest.raises(InvalidTimezone):
        normalize_timezone_name(text)


def test_current_offset_follows_daylight_saving():
    winter = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    summer = datetime(2024, 7, 15, 12, 0, tzinfo=timezone.utc)
    assert current_offset_minutes("America/New_York", winter) == -300
    assert current_offset_minutes("America/New_York", summer) == -240
    assert current_offset_minutes("Europe/Paris", winter) == 60
    assert current_offset_minutes("Europe/Paris", summer) == 120


def test_current_offset_of_fixed_zones():
    now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    assert current_offset_minutes("UTC+05:30", now) == 330
    assert current_offset_minutes("UTC-00:30", now) == -30
    assert current_offset_minutes("UTC+00:00", now) == 0


def test_current_offset_of_unknown_zone():
    with pytest.raises(InvalidTimezone):
        current_offset_minutes("Nowhere/Land")


def test_describe_offset_difference():
    assert describe_offset_difference(60, None) == "UTC+01:00"
    assert describe_offset_difference(60, 60) == "UTC+01:00, same time as you"
    assert describe_offset_difference(120, 60) == "UTC+02:00, 1 hour ahead of you"
    assert describe_offset_difference(-300, 60) == "UTC-05:00, 6 hours behind you"
    assert describe_offset_difference(330, 0) == "UTC+05:30, 5:30 ahead of you"
