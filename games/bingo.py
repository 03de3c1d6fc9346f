from __future__ import annotations

import random
import re
from dataclasses import dataclass, field

from commands.context import CommandContext
from services.game_sessions import GameManager, GameSession, Scope, can_manage
from utils.text import channel_mention, mention, parse_min_max_range, split_tokens


MAX_RANGE_SIZE = 50_000
_DRAW_LIST_SPLIT = re.compile(r"[,\s]+")

HELP_TEXT = (
    "**Bingo help**\n"
    "`!bingo <min-max> [optional drawnlist]` — start/resume\n"
    "Examples: `!bingo 1-151` | `!bingo 1-151 5,12,77`\n"
    "`!draw` — draw a new number\n"
    "`!getbingolist` — show drawn list\n"
    "`!cancelbingo` — cancel (admin/starter)"
)


@dataclass(slots=True)
class BingoState:
    low: int
    high: int
    drawn: list[int] = field(default_factory=list)

    @property
    def size(self) -> int:
        return self.high - self.low + 1

    def remaining(self) -> list[int]:
        taken = set(self.drawn)
        return [n for n in range(self.low, self.high + 1) if n not in taken]


def format_list(values: list[int]) -> str:
    return ", ".join(str(value) for value in values) if values else "(none yet)"


def location_line(session: GameSession) -> str:
    return f"Started by {mention(session.owner_id)} in {channel_mention(session.channel_id)}"


def parse_resume_list(raw: str, low: int, high: int) -> tuple[list[int] | None, str | None]:
    drawn: list[int] = []
    for token in (part for part in _DRAW_LIST_SPLIT.split(raw.strip()) if part):
        try:
            value = int(token)
        except ValueError:
            return None, "❌ Resume list contains a non-integer value."
        if value < low or value > high:
            return None, f"❌ Resume list value `{value}` is out of range ({low}-{high})."
        if value in drawn:
            return None, f"❌ Resume list contains a duplicate: `{value}`."
        drawn.append(value)
    return drawn, None


class BingoGame:
    """One bingo for the whole process."""

    def __init__(self, manager: GameManager | None = None, *, rng: random.Random | None = None) -> None:
        self.manager = manager or GameManager("bingo", "Bingo", scope=Scope.GLOBAL)
        self.rng = rng or random.Random()

    def _ended_text(self, state: BingoState, reason: str) -> str:
        return f"🏁 **Bingo ended** ({reason}).\nDrawn ({len(state.drawn)}/{state.size}): {format_list(state.drawn)}"

    async def _end(self, ctx: CommandContext, session: GameSession, reason: str) -> None:
        self.manager.stop(session=session)
        await ctx.send(self._ended_text(session.data, reason))

    async def _session_here(self, ctx: CommandContext, *, none_text: str) -> GameSession | None:
        session = self.manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply(none_text)
            return None
        if ctx.actor.guild_id != session.guild_id:
            await ctx.reply(f"A bingo game is running elsewhere. {location_line(session)}.")
            return None
        return session

    async def start(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        tokens = split_tokens(ctx.rest)
        if not tokens or tokens[0].lower() == "help":
            await ctx.reply(HELP_TEXT)
            return

        parsed = parse_min_max_range(tokens[0])
        if parsed is None:
            await ctx.reply("❌ Invalid range. Use `min-max` (example: `1-151`).")
            return
        low, high = parsed
        if low <= 0 or high <= 0:
            await ctx.reply("❌ Range values must be **positive integers**.")
            return
        if low >= high:
            await ctx.reply("❌ Invalid range. Must be `min < max` (example: `1-151`).")
            return
        size = high - low + 1
        if size > MAX_RANGE_SIZE:
            await ctx.reply("❌ Range too large (max 50,000 numbers).")
            return

        existing = self.manager.get_state(ctx.actor)
        if existing is not None:
            await ctx.reply(
                "⚠️ A bingo game is already running.\n"
                f"{location_line(existing)}\n"
                "Use `!draw`, `!getbingolist`, or `!cancelbingo`."
            )
            return

        drawn, error = parse_resume_list(" ".join(tokens[1:]), low, high)
        if error:
            await ctx.reply(error)
            return

        state = BingoState(low=low, high=high, drawn=drawn)
        if len(drawn) == size:
            await ctx.send(self._ended_text(state, "all numbers already drawn (resume complete)"))
            return

        result = self.manager.try_start(ctx.actor, state)
        if not result.ok:
            await ctx.reply(result.error_text)
            return

        resume_note = f" (resumed with {len(drawn)} already drawn)" if drawn else ""
        await ctx.send(
            f"✅ **Bingo started** — Range: **{low}-{high}** ({size} total){resume_note}\n"
            f"Remaining: **{size - len(drawn)}**\n"
            "Draw with `!draw`. View list with `!getbingolist`. Cancel with `!cancelbingo`."
        )

    async def draw(self, ctx: CommandContext) -> None:
        session = await self._session_here(ctx, none_text="No active bingo game. Start one with `!bingo 1-151`.")
        if session is None:
            return
        state: BingoState = session.data
        remaining = state.remaining()
        if not remaining:
            await self._end(ctx, session, "no numbers left to draw")
            return

        pick = self.rng.choice(remaining)
        state.drawn.append(pick)
        left = state.size - len(state.drawn)
        await ctx.send(
            f"🎲 **Draw:** **{pick}**\n"
            f"Drawn ({len(state.drawn)}/{state.size}): {format_list(state.drawn)}\n"
            f"Remaining: **{left}**"
        )
        if left <= 0:
            await self._end(ctx, session, "no numbers left to draw")

    async def get_list(self, ctx: CommandContext) -> None:
        session = await self._session_here(ctx, none_text="No active bingo game.")
        if session is None:
            return
        state: BingoState = session.data
        await ctx.reply(f"Drawn ({len(state.drawn)}/{state.size}): {format_list(state.drawn)}")

    async def cancel(self, ctx: CommandContext) -> None:
        session = await self._session_here(ctx, none_text="No active bingo game to cancel.")
        if session is None:
            return
        if not can_manage(ctx.actor, session):
            await ctx.reply("Nope — only admins or the bingo starter can use that.")
            return
        await self._end(ctx, session, "cancelled")

    def register(self, register) -> None:
        register(
            "!bingo",
            self.start,
            "!bingo <min-max> [drawnlist] — starts/resumes a bingo draw (example: `!bingo 1-151 5,12,77`)",
            category="Games",
            help_tier="primary",
        )
        register("!draw", self.draw, "!draw — draws a new number and prints the draw list", category="Games", hide_from_help=True)
        register("!getbingolist", self.get_list, "!getbingolist — prints the drawn numbers in order", category="Games", hide_from_help=True)
        register("!cancelbingo", self.cancel, "!cancelbingo — cancels the current bingo (admin or starter)", category="Games")
