from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping


DEFAULT_BLOCKED_TEXT = "🚫 That command is not allowed in this channel."


class ExposureMode(str, Enum):
    BANG = "bang"
    QUESTION = "q"
    OFF = "off"

    @property
    def prefix(self) -> str | None:
        if self is ExposureMode.BANG:
            return "!"
        if self is ExposureMode.QUESTION:
            return "?"
        return None


@dataclass(frozen=True, slots=True)
class ChannelPolicy:
    allow: frozenset[int] | None = None
    deny: frozenset[int] = frozenset()
    silent: bool = False
    notify: str | None = None

    def permits(self, channel_id: int | None) -> bool:
        if self.allow is not None and channel_id not in self.allow:
            return False
        return channel_id not in self.deny


@dataclass(frozen=True, slots=True)
class GuildExposure:
    modes: Mapping[str, ExposureMode] = field(default_factory=dict)
    channel_policies: Mapping[str, ChannelPolicy] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ExposureSettings:
    default_mode: ExposureMode = ExposureMode.BANG
    guilds: Mapping[int, GuildExposure] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ExposureDecision:
    mode: ExposureMode
    channel_allowed: bool = True
    silent_deny: bool = False
    notify_text: str | None = None

    def blocked_text(self) -> str | None:
        if self.channel_allowed or self.silent_deny:
            return None
        return self.notify_text or DEFAULT_BLOCKED_TEXT


class ExposurePolicy:
    """Resolves how a logical command is reachable in a guild channel.

    Channel policy beats the guild override, which beats the default mode.
    """

    def __init__(self, settings: ExposureSettings | None = None) -> None:
        self.settings = settings or ExposureSettings()

    def mode_for(self, guild_id: int | None, logical_id: str) -> ExposureMode:
        guild = self.settings.guilds.get(guild_id) if guild_id is not None else None
        if guild is not None:
            mode = guild.modes.get(logical_id)
            if mode is not None:
                return mode
        return self.settings.default_mode

    def channel_policy(self, guild_id: int | None, logical_id: str) -> ChannelPolicy | None:
        if guild_id is None:
            return None
        guild = self.settings.guilds.get(guild_id)
        if guild is None:
            return None
        return guild.channel_policies.get(logical_id)

    def decide(self, guild_id: int | None, logical_id: str, channel_id: int | None) -> ExposureDecision:
        mode = self.mode_for(guild_id, logical_id)
        policy = self.channel_policy(guild_id, logical_id)
        if policy is None:
            return ExposureDecision(mode=mode)
        return ExposureDecision(
            mode=mode,
            channel_allowed=policy.permits(channel_id),
            silent_deny=policy.silent,
            notify_text=policy.notify,
        )
