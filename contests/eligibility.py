from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bot.permissions import member_is_admin


# guild id -> role ids that count as verified
VERIFIED_ROLE_IDS_BY_GUILD: dict[int, frozenset[int]] = {}


def _role_ids(member: Any) -> set[int]:
    return {int(role.id) for role in getattr(member, "roles", None) or []}


@dataclass(frozen=True, slots=True)
class VerifiedRolePolicy:
    """Who may win a contest that requires the verified role."""

    by_guild: Mapping[int, frozenset[int]] = field(default_factory=lambda: VERIFIED_ROLE_IDS_BY_GUILD)

    def role_ids(self, guild_id: int | None) -> frozenset[int]:
        if guild_id is None:
            return frozenset()
        return self.by_guild.get(int(guild_id), frozenset())

    def is_eligible(self, guild_id: int, member: Any, *, is_privileged: bool = False) -> bool:
        if member is None:
            return False
        if is_privileged or member_is_admin(member):
            return True
        return bool(self.role_ids(guild_id) & _role_ids(member))


def eligibility_dm(guild_name: str | None) -> str:
    header = (
        f"You're not eligible for this contest in **{guild_name}** yet."
        if guild_name
        else "You're not eligible for this contest yet."
    )
    return f"{header}\n❌ Verified role\nOnce you fix this, you'll be eligible at draw time."
