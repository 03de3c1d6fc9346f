from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import discord

from platform_io.safety import safe_dm


log = logging.getLogger("spectreon.platform")


@dataclass(slots=True)
class PollAnswerSnapshot:
    answer_id: int
    label: str
    voter_ids: list[int] = field(default_factory=list)


@dataclass(slots=True)
class PollSnapshot:
    question: str
    answers: list[PollAnswerSnapshot]
    finalized: bool = False


class PlatformGateway:
    """The slice of the discord client that durable features need.

    Every lookup returns None instead of raising when the platform says no.
    """

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    def is_ready(self) -> bool:
        return bool(self.client.is_ready())

    @property
    def bot_user_id(self) -> int | None:
        user = self.client.user
        return int(user.id) if user else None

    async def fetch_channel(self, channel_id: int | None) -> Any | None:
        if not channel_id:
            return None
        channel = self.client.get_channel(int(channel_id))
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(int(channel_id))
        except discord.HTTPException as exc:
            log.debug("fetch_channel(%s) failed: %s", channel_id, exc.__class__.__name__)
            return None

    async def fetch_message(self, channel: Any, message_id: int | None) -> Any | None:
        if channel is None or not message_id:
            return None
        try:
            return await channel.fetch_message(int(message_id))
        except discord.HTTPException as exc:
            log.debug("fetch_message(%s) failed: %s", message_id, exc.__class__.__name__)
            return None

    async def fetch_member(self, guild_id: int, user_id: int) -> Any | None:
        guild = self.client.get_guild(int(guild_id))
        if guild is None:
            return None
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.HTTPException:
            return None

    def has_guild(self, guild_id: int) -> bool:
        return self.client.get_guild(int(guild_id)) is not None

    async def fetch_user(self, user_id: int) -> Any | None:
        user = self.client.get_user(int(user_id))
        if user is not None:
            return user
        try:
            return await self.client.fetch_user(int(user_id))
        except discord.HTTPException:
            return None

    async def send_dm(self, user_id: int, content: str) -> bool:
        user = await self.fetch_user(user_id)
        if user is None:
            return False
        return await safe_dm(user, content, allowed_mentions=discord.AllowedMentions.none())

    async def collect_reaction_users(
        self,
        message: Any,
        emoji: str,
        timeout: float,
        *,
        max_users: int | None = None,
    ) -> list[int]:
        """Users who react with ``emoji`` within ``timeout`` seconds, in join order."""
        try:
            await message.add_reaction(emoji)
        except discord.HTTPException:
            log.debug("Could not add join reaction to message %s", getattr(message, "id", None))

        bot_id = self.bot_user_id
        joined: list[int] = []

        def check(reaction: discord.Reaction, user: discord.abc.User) -> bool:
            return (
                reaction.message.id == message.id
                and str(reaction.emoji) == emoji
                and not user.bot
                and user.id != bot_id
                and user.id not in joined
            )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(0.0, float(timeout))
        while max_users is None or len(joined) < max_users:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                _, user = await self.client.wait_for("reaction_add", check=check, timeout=remaining)
            except asyncio.TimeoutError:
                break
            joined.append(int(user.id))
        return joined

    async def fetch_poll_snapshot(self, channel_id: int, message_id: int) -> PollSnapshot | None:
        channel = await self.fetch_channel(channel_id)
        message = await self.fetch_message(channel, message_id)
        poll = getattr(message, "poll", None)
        if poll is None:
            return None
        answers: list[PollAnswerSnapshot] = []
        for answer in poll.answers:
            voter_ids: list[int] = []
            try:
                async for voter in answer.voters(limit=None):
                    if not getattr(voter, "bot", False):
                        voter_ids.append(int(voter.id))
            except discord.HTTPException as exc:
                log.warning("Could not read voters for poll %s: %s", message_id, exc.__class__.__name__)
            answers.append(PollAnswerSnapshot(answer_id=int(answer.id), label=str(answer.text or ""), voter_ids=voter_ids))
        question = poll.question if isinstance(poll.question, str) else str(getattr(poll.question, "text", poll.question))
        return PollSnapshot(question=question, answers=answers, finalized=bool(poll.is_finalised()))

    async def end_poll(self, channel_id: int, message_id: int) -> bool:
        channel = await self.fetch_channel(channel_id)
        message = await self.fetch_message(channel, message_id)
        if message is None or getattr(message, "poll", None) is None:
            return False
        try:
            await message.end_poll()
            return True
        except discord.HTTPException as exc:
            log.debug("end_poll(%s) failed: %s", message_id, exc.__class__.__name__)
            return False
