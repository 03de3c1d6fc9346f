from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from commands.context import ActorContext


PRIVILEGED_USERS: dict[int, frozenset[int]] = {
    # TPPC Discord
    329934860388925442: frozenset(
        {
            1008064043757600919,
            855412889308233780,
            282116159686574081,
            184299283049218049,
            240964979459751937,
        }
    ),
}


@dataclass(frozen=True, slots=True)
class PrivilegedUsers:
    by_guild: Mapping[int, frozenset[int]] = field(default_factory=lambda: dict(PRIVILEGED_USERS))

    def is_privileged(self, guild_id: int | None, user_id: int | None) -> bool:
        if guild_id is None or user_id is None:
            return False
        return int(user_id) in self.by_guild.get(int(guild_id), frozenset())


def member_is_admin(member: Any) -> bool:
    """Administrator or Manage Server."""
    perms = getattr(member, "guild_permissions", None)
    if perms is None:
        return False
    return bool(getattr(perms, "administrator", False) or getattr(perms, "manage_guild", False))


def _int_or_none(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def actor_from_message(message: Any, privileged: PrivilegedUsers | None = None) -> ActorContext:
    privileged = privileged or PrivilegedUsers()
    guild = getattr(message, "guild", None)
    author = getattr(message, "author", None)
    guild_id = _int_or_none(getattr(guild, "id", None))
    user_id = int(getattr(author, "id", 0) or 0)
    return ActorContext(
        guild_id=guild_id,
        user_id=user_id,
        channel_id=_int_or_none(getattr(getattr(message, "channel", None), "id", None)),
        is_guild_admin=guild_id is not None and member_is_admin(author),
        is_privileged=privileged.is_privileged(guild_id, user_id),
    )


def actor_from_interaction(interaction: Any, privileged: PrivilegedUsers | None = None) -> ActorContext:
    privileged = privileged or PrivilegedUsers()
    guild_id = _int_or_none(getattr(interaction, "guild_id", None))
    user = getattr(interaction, "user", None)
    user_id = int(getattr(user, "id", 0) or 0)
    return ActorContext(
        guild_id=guild_id,
        user_id=user_id,
        channel_id=_int_or_none(getattr(interaction, "channel_id", None)),
        is_guild_admin=guild_id is not None and member_is_admin(user),
        is_privileged=privileged.is_privileged(guild_id, user_id),
    )


def actor_for_member(guild_id: int, channel_id: int, member: Any, privileged: PrivilegedUsers | None = None) -> ActorContext:
    """Actor for work done on a member's behalf outside of a live event."""
    privileged = privileged or PrivilegedUsers()
    user_id = int(getattr(member, "id", 0) or 0)
    return ActorContext(
        guild_id=guild_id,
        user_id=user_id,
        channel_id=channel_id,
        is_guild_admin=member_is_admin(member),
        is_privileged=privileged.is_privileged(guild_id, user_id),
    )
