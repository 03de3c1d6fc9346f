from __future__ import annotations

from dataclasses import dataclass
import os


TRUTHY_VALUES = {"1", "true", "yes", "on"}
VALID_DISCORD_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
MEMORY_DATABASE_URL = "memory://"
DEFAULT_LOTTO_THREAD_URL = "https://forums.tppc.info/showthread.php?t=641631"


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY_VALUES


def env_int(name: str, *, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    text = raw.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError as exc:
        raise ValueError(f"Invalid integer env {name}={raw!r}") from exc


@dataclass(frozen=True)
class BotConfig:
    discord_token: str
    database_url: str
    db_echo: bool = False
    enable_message_content_intent: bool = True
    discord_log_level: str = "INFO"
    command_sync_guild_id: int = 0
    dependency_retry_initial_seconds: int = 5
    dependency_retry_max_seconds: int = 120
    dependency_retry_max_attempts: int = 10
    lotto_default_thread_url: str = DEFAULT_LOTTO_THREAD_URL

    @property
    def uses_memory_store(self) -> bool:
        return self.database_url == MEMORY_DATABASE_URL

    def validate(self) -> None:
        if not self.database_url:
            raise ValueError("DATABASE_URL must be set")
        if self.command_sync_guild_id < 0:
            raise ValueError("COMMAND_SYNC_GUILD_ID must be >= 0")
        if self.dependency_retry_initial_seconds < 1:
            raise ValueError("DEPENDENCY_RETRY_INITIAL_SECONDS must be >= 1")
        if self.dependency_retry_max_seconds < self.dependency_retry_initial_seconds:
            raise ValueError("DEPENDENCY_RETRY_MAX_SECONDS must be >= DEPENDENCY_RETRY_INITIAL_SECONDS")
        if self.dependency_retry_max_attempts < 1:
            raise ValueError("DEPENDENCY_RETRY_MAX_ATTEMPTS must be >= 1")
        if self.discord_log_level not in VALID_DISCORD_LOG_LEVELS:
            valid = ", ".join(sorted(VALID_DISCORD_LOG_LEVELS))
            raise ValueError(f"DISCORD_LOG_LEVEL must be one of: {valid}")


def load_config() -> BotConfig:
    cfg = BotConfig(
        discord_token=os.getenv("DISCORD_TOKEN", ""),
        database_url=os.getenv("DATABASE_URL", "").strip(),
        db_echo=env_bool("DB_ECHO", default=False),
        enable_message_content_intent=env_bool("ENABLE_MESSAGE_CONTENT_INTENT", default=True),
        discord_log_level=os.getenv("DISCORD_LOG_LEVEL", "INFO").strip().upper(),
        command_sync_guild_id=env_int("COMMAND_SYNC_GUILD_ID", default=0),
        dependency_retry_initial_seconds=env_int("DEPENDENCY_RETRY_INITIAL_SECONDS", default=5),
        dependency_retry_max_seconds=env_int("DEPENDENCY_RETRY_MAX_SECONDS", default=120),
        dependency_retry_max_attempts=env_int("DEPENDENCY_RETRY_MAX_ATTEMPTS", default=10),
        lotto_default_thread_url=os.getenv("LOTTO_DEFAULT_THREAD_URL", DEFAULT_LOTTO_THREAD_URL).strip(),
    )
    cfg.validate()
    return cfg
