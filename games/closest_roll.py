from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

from commands.context import CommandContext
from services.game_sessions import (
    GameManager,
    GameSession,
    make_game_qol,
    require_can_manage,
    require_same_channel,
)
from platform_io.safety import safe_send
from utils.text import channel_mention, mention, split_tokens
from utils.time_utils import format_time_left, parse_duration_seconds


MIN_TARGET = 0
MAX_TARGET = 101

HELP_TEXT = (
    "**ClosestRoll help**\n"
    "`!cr [target 0-101] [timeLimit]` — start\n"
    "Aliases: `!closestroll`, `!cr`\n"
    "Time formats: `30`, `30s`, `30sec`, `30seconds`, `5m`, `1h`\n"
    "`!awesome` — roll (only counts while active, in this channel)\n"
    "`!endclosest` — end early (admin/starter)\n"
    "`!cancelclosest` — cancel (admin/starter)"
)
DENIED_TEXT = "Nope — only admins or the contest starter can do that."


@dataclass(slots=True)
class BestRoll:
    user_id: int
    roll: int
    diff: int


@dataclass(slots=True)
class ClosestRollState:
    target: int
    channel: Any = None
    ends_at: float | None = None
    best: BestRoll | None = None


class ClosestRollGame:
    def __init__(self, manager: GameManager | None = None, *, rng: random.Random | None = None) -> None:
        self.manager = manager or GameManager("closestroll", "ClosestRoll")
        self.rng = rng or random.Random()

    def render_status(self, session: GameSession) -> str:
        state: ClosestRollState = session.data
        if state.ends_at:
            time_line = f"Time left: **{format_time_left(state.ends_at - self.manager.now())}**"
        else:
            time_line = "Time limit: *(none)*"
        if state.best:
            best_line = f"Best so far: {mention(state.best.user_id)} rolled **{state.best.roll}** (diff **{state.best.diff}**)"
        else:
            best_line = "Best so far: *(none)*"
        return (
            f"🎯 **ClosestRoll is running** in {channel_mention(session.channel_id)}\n"
            f"Target: **{state.target}**\n"
            f"{time_line}\n"
            f"{best_line}"
        )

    async def end_with_winner(self, session: GameSession, reason: str) -> None:
        self.manager.stop(session=session)
        state: ClosestRollState = session.data
        if state.best is None:
            text = (
                f"🏁 **ClosestRoll ended** ({reason}).\n"
                f"Target: **{state.target}**\n"
                "No valid `!awesome` rolls were recorded."
            )
        else:
            text = (
                f"🏁 **ClosestRoll ended** ({reason}).\n"
                f"Host: {mention(session.owner_id)}\n"
                f"Target: **{state.target}**\n"
                f"Winner: {mention(state.best.user_id)} with **{state.best.roll}** (diff **{state.best.diff}**)"
            )
        await safe_send(state.channel, text)

    async def cancel_no_winner(self, session: GameSession, reason: str) -> None:
        self.manager.stop(session=session)
        state: ClosestRollState = session.data
        await safe_send(
            state.channel,
            f"🛑 **ClosestRoll cancelled** ({reason}).\n"
            f"Host: {mention(session.owner_id)}\n"
            f"Target: **{state.target}**\n"
            "No winner will be announced.",
        )

    async def on_awesome_roll(self, ctx: CommandContext, roll: int) -> None:
        """Feeds an ``!awesome`` roll from the session channel into the contest."""
        session = self.manager.get_state(ctx.actor)
        if session is None or ctx.actor.channel_id != session.channel_id:
            return
        state: ClosestRollState = session.data
        if state.ends_at is not None and self.manager.now() >= state.ends_at:
            await self.end_with_winner(session, "time limit expired")
            return

        diff = abs(roll - state.target)
        if state.best is None or diff < state.best.diff:
            state.best = BestRoll(user_id=ctx.actor.user_id, roll=roll, diff=diff)
        if diff == 0:
            await self.end_with_winner(session, "exact hit")

    async def start(self, ctx: CommandContext) -> None:
        tokens = split_tokens(ctx.rest)
        sub = tokens[0].lower() if tokens else ""
        if sub == "help":
            await ctx.reply(HELP_TEXT)
            return
        if sub == "status":
            session = self.manager.get_state(ctx.actor)
            if session is None:
                await ctx.reply(self.manager.no_active_text())
                return
            if await require_same_channel(ctx, session, self.manager):
                await ctx.reply(self.render_status(session))
            return

        target: int | None = None
        if tokens:
            try:
                target = int(tokens[0])
            except ValueError:
                await ctx.reply(
                    "❌ Invalid target number.\n"
                    "Usage: `!closestroll [0-101] [timeLimit]` e.g. `!cr 42 5m` or `!cr` (no target).\n"
                    "Time limit formats: `30s`, `5m`, `1h`, or plain seconds like `120`."
                )
                return
        time_limit: int | None = None
        if len(tokens) > 1:
            time_limit = parse_duration_seconds(tokens[1])
            if time_limit is None:
                await ctx.reply("❌ Invalid time limit.\nUse `30s`, `5m`, `1h`, or plain seconds like `120`.")
                return
        if target is None:
            target = self.rng.randint(MIN_TARGET, MAX_TARGET)
        if not MIN_TARGET <= target <= MAX_TARGET:
            await ctx.reply(f"❌ Target must be between **{MIN_TARGET}** and **{MAX_TARGET}** (inclusive).")
            return

        now = self.manager.now()
        state = ClosestRollState(target=target, channel=ctx.channel, ends_at=now + time_limit if time_limit else None)
        result = self.manager.try_start(ctx.actor, state)
        if not result.ok:
            await ctx.reply(result.error_text)
            return
        session = result.session

        if time_limit:
            session.timers.set_timeout(lambda: self.end_with_winner(session, "time limit expired"), time_limit)
            time_line = f"Time limit: **{format_time_left(time_limit)}**"
        else:
            time_line = "Time limit: *(none)*"
        await ctx.send(
            "🎯 **ClosestRoll started!**\n"
            f"Target number: **{target}**\n"
            f"{time_line}\n"
            "Roll with `!awesome` — closest wins (exact ends instantly)."
        )

    async def _managed(self, ctx: CommandContext, verb: str) -> Any:
        session = self.manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply(f"No active ClosestRoll to {verb}.")
            return None
        if not self.manager.is_same_channel(ctx.actor, session):
            await ctx.reply(f"ClosestRoll is running in {channel_mention(session.channel_id)}. Started by {mention(session.owner_id)}.")
            return None
        if not await require_can_manage(ctx, session, denied_text=DENIED_TEXT):
            return None
        return session

    async def end_cmd(self, ctx: CommandContext) -> None:
        session = await self._managed(ctx, "end")
        if session is not None:
            await self.end_with_winner(session, "ended early")

    async def cancel_cmd(self, ctx: CommandContext) -> None:
        session = await self._managed(ctx, "cancel")
        if session is not None:
            await self.cancel_no_winner(session, "cancelled")

    def register(self, register) -> None:
        make_game_qol(
            register,
            self.manager,
            help_text=HELP_TEXT,
            render_status=self.render_status,
            cancel=lambda ctx, session: self.cancel_no_winner(session, "cancelled"),
            end=lambda ctx, session: self.end_with_winner(session, "ended early"),
        )
        register(
            "!closestroll",
            self.start,
            "!closestroll [0-101] [timeLimit] — starts ClosestRoll (alias: !cr)",
            aliases=["!cr"],
            category="Games",
            help_tier="primary",
        )
        register("!endclosest", self.end_cmd, "!endclosest — ends ClosestRoll early", category="Games", hide_from_help=True)
        register("!cancelclosest", self.cancel_cmd, "!cancelclosest — cancels ClosestRoll", category="Games", hide_from_help=True)
