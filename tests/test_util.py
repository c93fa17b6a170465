from types import SimpleNamespace

from tzbot.util import guild_name, int_env, int_set_env, user_tag


def test_user_tag_handles_migrated_usernames():
    assert user_tag(SimpleNamespace(id=1, name="alice", discriminator="0")) == "alice"
    assert user_tag(SimpleNamespace(id=1, name="alice", discriminator="0000")) == "alice"
    assert user_tag(SimpleNamespace(id=1, name="bob", discriminator="1234")) == "bob#1234"


def test_names_fall_back_to_ids():
    assert guild_name(SimpleNamespace(id=9, name="Cozy")) == "Cozy (9)"
    assert guild_name(SimpleNamespace(id=9, name=None)) == "9"


def test_int_env(monkeypatch):
    monkeypatch.setenv("SOME_ID", "42")
    assert int_env("SOME_ID") == 42
    monkeypatch.setenv("SOME_ID", "forty-two")
    assert int_env("SOME_ID", 7) == 7
    monkeypatch.delenv("SOME_ID")
    assert int_env("SOME_ID", 3) == 3


def test_int_set_env(monkeypatch):
    monkeypatch.setenv("IDS", "1, 2,,abc,3")
    assert int_set_env("IDS") == frozenset({1, 2, 3})
    monkeypatch.delenv("IDS")
    assert int_set_env("IDS") == frozenset()
