import asyncio
import logging

from tzbot.store import TimezoneStore, UserTimezone


def test_load_skips_malformed_lines(tmp_path, caplog):
    tz_file = tmp_path / "user_timezones.csv"
    tz_file.write_text(
        "1;10;Europe/Paris\n"
        "not a line\n"
        "\n"
        "1;11;UTC+05:30\n"
        "2;10;America/New_York\n"
        "x;12;Europe/Paris\n"
        "3;13;\n"
    )
    time_file = tmp_path / "servers_with_time.txt"
    time_file.write_text("1\nabc\n2\n")

    with caplog.at_level(logging.WARNING):
        store = TimezoneStore.load(tz_file, time_file)

    assert len(store) == 3
    assert store.get(1, 10) == UserTimezone(1, 10, "Europe/Paris")
    assert store.get(1, 11).timezone_name == "UTC+05:30"
    assert store.shows_time(1) and store.shows_time(2)
    assert "Skipping malformed line 2" in caplog.text


def test_load_missing_files_gives_empty_store(tmp_path):
    store = TimezoneStore.load(tmp_path / "nope.csv", tmp_path / "nope.txt")
    assert len(store) == 0
    assert store.server_ids() == set()


def test_set_replaces_previous_entry(store):
    store.set(1, 10, "Europe/Paris")
    store.set(1, 10, "America/New_York")
    store.set(2, 10, "Asia/Tokyo")
    assert len(store) == 2
    assert store.get(1, 10).timezone_name == "America/New_York"
    assert [e.user_id for e in store.for_guild(1)] == [10]
    assert store.user_count() == 1
    assert store.server_ids() == {1, 2}


def test_remove_and_remove_unknown_guilds(store):
    store.set(1, 10, "Europe/Paris")
    store.set(2, 11, "Europe/Paris")
    store.set(3, 12, "Europe/Paris")
    assert store.remove(1, 10) is True
    assert store.remove(1, 10) is False
    assert store.remove_unknown_guilds([2]) == 1
    assert store.server_ids() == {2}


def test_save_round_trip(store):
    store.set(1, 10, "Europe/Paris")
    store.set(1, 11, "UTC-03:30")
    assert store.save() is True

    reloaded = TimezoneStore.load(store.timezones_path, store.servers_with_time_path)
    assert reloaded.get(1, 10).timezone_name == "Europe/Paris"
    assert reloaded.get(1, 11).timezone_name == "UTC-03:30"
    # no temp file left behind
    assert [p.name for p in store.timezones_path.parent.iterdir()] == ["user_timezones.csv"]


def test_save_failure_is_reported_not_raised(tmp_path, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = TimezoneStore(blocker / "user_timezones.csv", blocker / "servers_with_time.txt")
    store.set(1, 10, "Europe/Paris")

    with caplog.at_level(logging.ERROR):
        assert store.save() is False
        assert store.save_servers_with_time() is False
    assert "Failed to save timezones" in caplog.text
    # the in-memory data is untouched
    assert store.get(1, 10) is not None


def test_toggle_and_prune_servers_with_time(store):
    assert store.toggle_time_display(1) is True
    assert store.toggle_time_display(2) is True
    assert store.toggle_time_display(2) is False
    store.toggle_time_display(3)
    assert store.prune_servers_with_time([1]) is True
    assert store.prune_servers_with_time([1]) is False
    assert store.shows_time(1) and not store.shows_time(3)

    assert store.save_servers_with_time() is True
    assert store.servers_with_time_path.read_text() == "1\n"


def test_read_server_ids_reads_file_only(store):
    store.set(5, 10, "Europe/Paris")
    store.set(6, 10, "Europe/Paris")
    store.save()
    store.set(7, 10, "Europe/Paris")
    assert TimezoneStore.read_server_ids(store.timezones_path) == {5, 6}


def test_lock_is_shared(store):
    async def run_test():
        order = []

        async def writer(name):
            async with store.lock:
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(writer("a"), writer("b"))
        return order

    assert asyncio.run(run_test()) == ["a-in", "a-out", "b-in", "b-out"]
