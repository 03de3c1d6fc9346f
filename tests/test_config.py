from __future__ import annotations

import pytest

from bot.config import DEFAULT_LOTTO_THREAD_URL, BotConfig, env_bool, env_int, load_config


def test_env_bool(monkeypatch):
    monkeypatch.setenv("FLAG", " Yes ")
    assert env_bool("FLAG") is True
    monkeypatch.setenv("FLAG", "0")
    assert env_bool("FLAG", default=True) is False
    monkeypatch.delenv("FLAG")
    assert env_bool("FLAG", default=True) is True


def test_env_int(monkeypatch):
    monkeypatch.setenv("NUM", "  ")
    assert env_int("NUM", default=7) == 7
    monkeypatch.setenv("NUM", "12")
    assert env_int("NUM", default=7) == 12
    monkeypatch.setenv("NUM", "twelve")
    with pytest.raises(ValueError, match="NUM"):
        env_int("NUM", default=7)


def test_load_config_reads_environment(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "abc")
    monkeypatch.setenv("DATABASE_URL", " postgresql+asyncpg://u:p@localhost/db ")
    monkeypatch.setenv("COMMAND_SYNC_GUILD_ID", "42")
    monkeypatch.setenv("DISCORD_LOG_LEVEL", "warning")
    monkeypatch.delenv("LOTTO_DEFAULT_THREAD_URL", raising=False)

    config = load_config()

    assert config.discord_token == "abc"
    assert config.database_url == "postgresql+asyncpg://u:p@localhost/db"
    assert config.command_sync_guild_id == 42
    assert config.discord_log_level == "WARNING"
    assert config.lotto_default_thread_url == DEFAULT_LOTTO_THREAD_URL
    assert not config.uses_memory_store


def test_memory_store_flag():
    assert BotConfig(discord_token="", database_url="memory://").uses_memory_store


@pytest.mark.parametrize(
    ("overrides", "variable"),
    [
        ({"database_url": ""}, "DATABASE_URL"),
        ({"command_sync_guild_id": -1}, "COMMAND_SYNC_GUILD_ID"),
        ({"dependency_retry_initial_seconds": 0}, "DEPENDENCY_RETRY_INITIAL_SECONDS"),
        ({"dependency_retry_max_seconds": 1}, "DEPENDENCY_RETRY_MAX_SECONDS"),
        ({"dependency_retry_max_attempts": 0}, "DEPENDENCY_RETRY_MAX_ATTEMPTS"),
        ({"discord_log_level": "LOUD"}, "DISCORD_LOG_LEVEL"),
    ],
)
def test_validate_names_the_bad_variable(overrides, variable):
    values = {"discord_token": "t", "database_url": "memory://"}
    values.update(overrides)
    with pytest.raises(ValueError, match=variable):
        BotConfig(**values).validate()
