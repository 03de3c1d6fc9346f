from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

from commands.context import CommandContext
from platform_io.safety import safe_send
from services.game_sessions import GameManager, GameSession, require_can_manage, require_same_channel
from utils.text import mention, parse_mention_ids, parse_min_max_range, split_tokens


MIN_SECONDS = 5
MAX_SECONDS = 600
DEFAULT_RANGE = (30, 90)
SCARE_INTERVAL_SECONDS = 8
SCARE_CHANCE = 0.35
USAGE_LINE = "Usage: `!ev [min-max] @Player1 @Player2 [@Player3 ...]`"
NO_GAME_TEXT = "❌ There is no active Voltorb game."

SCARE_MESSAGES = (
    "⚡ The Voltorb crackles ominously...",
    "💣 You hear an unsettling *tick... tick...*",
    "😈 The bot whispers: *it’s totally safe* (it isn’t).",
    "👀 Everyone stares at the Voltorb.",
    "🧨 The fuse looks... shorter than before.",
)


@dataclass(frozen=True, slots=True)
class FuseRange:
    low: int = DEFAULT_RANGE[0]
    high: int = DEFAULT_RANGE[1]


def parse_fuse_range(token: str) -> tuple[FuseRange | None, str | None]:
    text = token.strip()
    if text.lower().endswith("s"):
        text = text[:-1]
    parsed = parse_min_max_range(text)
    if parsed is None:
        return None, "❌ Invalid range. Use `min-max` seconds (example: 10-20 or 10-20s)."
    low, high = parsed
    if low < MIN_SECONDS or high > MAX_SECONDS or low >= high:
        return None, f"❌ Range must be {MIN_SECONDS}–{MAX_SECONDS} seconds, min < max."
    return FuseRange(low, high), None


@dataclass(slots=True)
class VoltorbState:
    holder_id: int
    participants: list[int]
    fuse: FuseRange
    channel: Any = None
    explodes_after: int = 0


def _bot_ids(message: Any) -> set[int]:
    return {user.id for user in getattr(message, "mentions", None) or [] if getattr(user, "bot", False)}


class ExplodingVoltorbsGame:
    def __init__(self, manager: GameManager | None = None, *, rng: random.Random | None = None) -> None:
        self.manager = manager or GameManager("voltorb", "Exploding Voltorbs")
        self.rng = rng or random.Random()

    async def explode(self, session: GameSession) -> None:
        if not session.active:
            return
        state: VoltorbState = session.data
        self.manager.stop(session=session)
        await safe_send(state.channel, f"💥 **BOOM!** {mention(state.holder_id)} was holding the Voltorb and got blown up!")

    async def scare(self, session: GameSession) -> None:
        if not session.active or self.rng.random() >= SCARE_CHANCE:
            return
        state: VoltorbState = session.data
        line = self.rng.choice(SCARE_MESSAGES)
        await safe_send(state.channel, f"{line}\n👀 {mention(state.holder_id)} is holding the Voltorb.")

    async def start(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        tokens = split_tokens(ctx.rest)
        if not tokens:
            await ctx.reply(f"❌ You must provide a range and participants.\n{USAGE_LINE}")
            return
        fuse, error = parse_fuse_range(tokens[0])
        if error:
            await ctx.reply(f"{error}\n{USAGE_LINE}")
            return
        participants = parse_mention_ids(" ".join(tokens[1:]))
        if len(participants) < 2:
            await ctx.reply(f"❌ You need at least **2 participants** to start the game.\n{USAGE_LINE}")
            return
        if _bot_ids(ctx.message) & set(participants):
            await ctx.reply("❌ The bot can't hold the voltorb!")
            return
        if self.manager.is_active(ctx.actor):
            await ctx.reply("⚠️ A Voltorb game is already running!")
            return

        holder = self.rng.choice(participants)
        state = VoltorbState(
            holder_id=holder,
            participants=participants,
            fuse=fuse,
            channel=ctx.channel,
            explodes_after=self.rng.randint(fuse.low, fuse.high),
        )
        result = self.manager.try_start(ctx.actor, state)
        if not result.ok:
            await ctx.reply(result.error_text)
            return
        session = result.session
        session.timers.set_timeout(lambda: self.explode(session), state.explodes_after)
        session.timers.set_interval(lambda: self.scare(session), SCARE_INTERVAL_SECONDS)

        await ctx.send(
            "⚡ **Exploding Voltorbs started!**\n"
            f"💣 Participants: {', '.join(mention(uid) for uid in participants)}\n"
            f"💥 Initial holder: {mention(holder)}\n"
            f"⏱️ Explosion time: **{fuse.low}–{fuse.high} seconds**\n"
            "😈 The bot may lie."
        )

    async def pass_voltorb(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        session = self.manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply(NO_GAME_TEXT)
            return
        state: VoltorbState = session.data
        if state.holder_id != ctx.actor.user_id:
            return
        targets = parse_mention_ids(ctx.rest)
        if not targets:
            await ctx.reply("❌ Mention someone to pass it to!")
            return
        target = targets[0]
        if target not in state.participants or target in _bot_ids(ctx.message):
            await ctx.reply(f"❌ {mention(target)} is not a participant in this game.")
            return

        state.holder_id = target
        await ctx.send(f"🔁 {mention(ctx.actor.user_id)} passed the Voltorb to {mention(target)}!\n💣 The ticking continues...")

    async def end(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        session = self.manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply(NO_GAME_TEXT)
            return
        if not await require_same_channel(ctx, session, self.manager):
            return
        if not await require_can_manage(ctx, session, denied_text="Nope — only admins or the starter can end the game early."):
            return
        self.manager.stop(session=session)
        await ctx.send("🧯 Voltorb game ended early.")

    def register(self, register) -> None:
        register(
            "!ev",
            self.start,
            "!ev [min-max] [@Player1 @Player2 ...] — start Exploding Voltorbs",
            aliases=["!explodingvoltorbs", "!voltorb"],
            category="Games",
            help_tier="primary",
        )
        register(
            "!pass",
            self.pass_voltorb,
            "!passvoltorb @user — pass the Voltorb (only holder can pass)",
            aliases=["!passv", "!pv", "!passvoltorb"],
            category="Games",
        )
        register(
            "!endvoltorb",
            self.end,
            "!endvoltorb — force-end Exploding Voltorbs (admin or starter)",
            aliases=["!stopvoltorb"],
            category="Games",
        )
