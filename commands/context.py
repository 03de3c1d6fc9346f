from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import discord

from platform_io.safety import safe_defer, safe_followup, safe_reply, safe_send, safe_send_initial, safe_send_modal

if TYPE_CHECKING:
    from commands.registry import CommandRegistry


@dataclass(frozen=True, slots=True)
class ActorContext:
    """Who is acting, where, and with which privileges.

    Built once at the platform boundary and passed inward unchanged.
    """

    guild_id: int | None
    user_id: int
    channel_id: int | None
    is_guild_admin: bool = False
    is_privileged: bool = False

    @property
    def is_admin_or_privileged(self) -> bool:
        return self.is_guild_admin or self.is_privileged

    @property
    def in_guild(self) -> bool:
        return self.guild_id is not None


@dataclass(slots=True)
class CommandContext:
    message: Any
    rest: str
    cmd: str
    actor: ActorContext
    registry: "CommandRegistry | None" = None

    @property
    def prefix(self) -> str:
        return self.cmd[:1]

    @property
    def channel(self) -> Any:
        return getattr(self.message, "channel", None)

    async def reply(self, content: str, **kwargs: Any) -> Any | None:
        kwargs.setdefault("allowed_mentions", discord.AllowedMentions.none())
        return await safe_reply(self.message, content, **kwargs)

    async def send(self, content: str | None = None, **kwargs: Any) -> Any | None:
        kwargs.setdefault("allowed_mentions", discord.AllowedMentions.none())
        return await safe_send(self.channel, content, **kwargs)


@dataclass(slots=True)
class SlashContext:
    interaction: Any
    actor: ActorContext
    options: dict[str, Any] = field(default_factory=dict)
    subcommand: str | None = None
    registry: "CommandRegistry | None" = None

    @property
    def channel(self) -> Any:
        return getattr(self.interaction, "channel", None)

    def option(self, name: str, default: Any = None) -> Any:
        return self.options.get(name, default)

    async def reply(self, content: str, *, ephemeral: bool = False, **kwargs: Any) -> bool:
        kwargs.setdefault("allowed_mentions", discord.AllowedMentions.none())
        return await safe_send_initial(self.interaction, content, ephemeral=ephemeral, **kwargs)

    async def followup(self, content: str, *, ephemeral: bool = False, **kwargs: Any) -> bool:
        kwargs.setdefault("allowed_mentions", discord.AllowedMentions.none())
        return await safe_followup(self.interaction, content, ephemeral=ephemeral, **kwargs)

    async def defer(self, *, ephemeral: bool = False) -> bool:
        return await safe_defer(self.interaction, ephemeral=ephemeral)

    async def send_modal(self, modal: Any) -> bool:
        return await safe_send_modal(self.interaction, modal)


def _component_payload(interaction: Any) -> dict[str, Any]:
    data = getattr(interaction, "data", None)
    return data if isinstance(data, dict) else {}


def _modal_fields(data: dict[str, Any]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for row in data.get("components") or []:
        for child in row.get("components") or []:
            custom_id = child.get("custom_id")
            if custom_id:
                fields[str(custom_id)] = str(child.get("value") or "")
    return fields


@dataclass(slots=True)
class ComponentContext:
    interaction: Any
    actor: ActorContext
    custom_id: str
    values: list[str] = field(default_factory=list)
    fields: dict[str, str] = field(default_factory=dict)
    registry: "CommandRegistry | None" = None

    @classmethod
    def from_interaction(cls, interaction: Any, actor: ActorContext, registry: "CommandRegistry | None" = None) -> "ComponentContext":
        data = _component_payload(interaction)
        return cls(
            interaction=interaction,
            actor=actor,
            custom_id=str(data.get("custom_id") or ""),
            values=[str(value) for value in data.get("values") or []],
            fields=_modal_fields(data),
            registry=registry,
        )

    @property
    def message(self) -> Any:
        return getattr(self.interaction, "message", None)

    def text_field(self, name: str) -> str:
        return self.fields.get(name, "").strip()

    async def reply(self, content: str, *, ephemeral: bool = True, **kwargs: Any) -> bool:
        kwargs.setdefault("allowed_mentions", discord.AllowedMentions.none())
        return await safe_send_initial(self.interaction, content, ephemeral=ephemeral, **kwargs)

    async def followup(self, content: str, *, ephemeral: bool = True, **kwargs: Any) -> bool:
        kwargs.setdefault("allowed_mentions", discord.AllowedMentions.none())
        return await safe_followup(self.interaction, content, ephemeral=ephemeral, **kwargs)

    async def defer(self, *, ephemeral: bool = True) -> bool:
        return await safe_defer(self.interaction, ephemeral=ephemeral)

    async def send_modal(self, modal: Any) -> bool:
        return await safe_send_modal(self.interaction, modal)
