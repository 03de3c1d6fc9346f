from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Any

from commands.context import CommandContext
from games.closest_roll import ClosestRollGame
from platform_io.safety import safe_send
from services.game_sessions import GameManager, GameSession, require_can_manage, require_same_channel
from utils.text import mention, parse_mention_ids, split_tokens


ROLL_PATTERN = re.compile(r"^(\d+)d(\d+)(?:\s+(norepeat|nr))?$", re.IGNORECASE)
ELIM_SECONDS_PATTERN = re.compile(r"^(\d+)\s*s$")
MAX_OUTPUT_CHARS = 1900
MAX_ROLL_COUNT = 1000
ELIM_MIN_SECONDS = 1
ELIM_MAX_SECONDS = 30
AWESOME_MAX = 101

SIDE_MESSAGES = (
    "🪙 landed on its side! Physics is confused.",
    "🪙 balanced perfectly on its edge. RNGesus is watching.",
    "🪙 landed on its side. Buy a lottery ticket.",
    "🪙 stands upright. Reality briefly glitches.",
)


@dataclass(frozen=True, slots=True)
class RollSpec:
    count: int
    sides: int
    no_repeat: bool = False


def parse_roll_args(rest: str) -> RollSpec | None:
    match = ROLL_PATTERN.match((rest or "").strip())
    if not match:
        return None
    count = int(match.group(1))
    if count < 1:
        return None
    return RollSpec(count=count, sides=int(match.group(2)), no_repeat=bool(match.group(3)))


def parse_elim_seconds(raw: str) -> tuple[int | None, str | None]:
    match = ELIM_SECONDS_PATTERN.match((raw or "").strip().lower())
    if not match:
        return None, "Delay must be specified in seconds, e.g. `2s` (1s–30s)."
    seconds = int(match.group(1))
    if seconds < ELIM_MIN_SECONDS:
        return None, "Delay must be at least 1 second."
    if seconds > ELIM_MAX_SECONDS:
        return None, "Delay cannot exceed 30 seconds."
    return seconds, None


def roll_values(spec: RollSpec, rng: random.Random) -> list[int]:
    if not spec.no_repeat:
        return [rng.randint(0, spec.sides) for _ in range(spec.count)]
    return rng.sample(range(spec.sides + 1), spec.count)


def target_user_id(ctx: CommandContext) -> int:
    mentioned = parse_mention_ids(ctx.rest)
    return mentioned[0] if mentioned else ctx.actor.user_id


@dataclass(slots=True)
class ElimState:
    remaining: list[str]
    delay: int
    channel: Any = None


class RngCommands:
    def __init__(
        self,
        closest_roll: ClosestRollGame | None = None,
        *,
        elim_manager: GameManager | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.rng = rng or random.Random()
        self.closest_roll = closest_roll
        self.elim = elim_manager or GameManager("elim", "Elimination")

    async def roll(self, ctx: CommandContext) -> None:
        spec = parse_roll_args(ctx.rest)
        if spec is None:
            await ctx.send("Invalid format. Please use a format like `1d100`")
            return
        if spec.no_repeat and spec.count > spec.sides + 1:
            await ctx.send(
                f"Impossible with norepeat: you asked for {spec.count} unique rolls but range is only "
                f"0..{spec.sides} ({spec.sides + 1} unique values)."
            )
            return

        uid = target_user_id(ctx)
        label = f"{spec.count}d{spec.sides}{' norepeat' if spec.no_repeat else ''}"
        if spec.count > MAX_ROLL_COUNT:
            await ctx.send(f"{mention(uid)} Rolled {label}. Output too long to display. Try a smaller N.")
            return
        rolls = roll_values(spec, self.rng)
        suffix = " (norepeat mode: ON)" if spec.no_repeat else ""
        out = f"{mention(uid)} {', '.join(str(value) for value in rolls)}{suffix}"
        if len(out) > MAX_OUTPUT_CHARS:
            await ctx.send(f"{mention(uid)} Rolled {label}. Output too long to display ({len(out)} chars). Try a smaller N.")
            return
        await ctx.send(out)

    async def choose(self, ctx: CommandContext) -> None:
        options = split_tokens(ctx.rest)
        if not options:
            await ctx.send(f"Usage: `{ctx.cmd} option1 option2 ...`")
            return
        await ctx.send(self.rng.choice(options))

    async def awesome(self, ctx: CommandContext) -> None:
        uid = target_user_id(ctx)
        value = self.rng.randint(0, AWESOME_MAX)
        await ctx.send(f"{mention(uid)} is {value}% awesome!")
        if self.closest_roll is not None:
            await self.closest_roll.on_awesome_roll(ctx, value)

    async def coinflip(self, ctx: CommandContext) -> None:
        uid = target_user_id(ctx)
        roll = self.rng.random()
        if roll < 0.005:
            result = self.rng.choice(SIDE_MESSAGES)
        elif roll < 0.5025:
            result = "Heads!"
        else:
            result = "Tails!"
        await ctx.send(f"{mention(uid)} {result}")

    async def elim_start(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        parts = split_tokens(ctx.rest)
        if len(parts) < 3:
            await ctx.reply(f"Usage: `{ctx.cmd} <seconds> <item1> <item2> [...]`")
            return
        seconds, error = parse_elim_seconds(parts[0])
        if error:
            await ctx.reply(error)
            return

        result = self.elim.try_start(ctx.actor, ElimState(remaining=parts[1:], delay=seconds, channel=ctx.channel))
        if not result.ok:
            await ctx.reply("An elimination is already running in this server.")
            return
        session = result.session
        await ctx.send(f"Setting up elimination with {seconds}s between rounds... are you ready?")
        session.timers.set_timeout(lambda: self._elim_round(session), seconds)

    async def _elim_round(self, session: GameSession) -> None:
        if not session.active:
            return
        state: ElimState = session.data
        if len(state.remaining) > 1:
            eliminated = state.remaining.pop(self.rng.randrange(len(state.remaining)))
            await safe_send(
                state.channel,
                f"{eliminated} has been eliminated! Remaining: {', '.join(state.remaining)}\n______________________",
            )
        if len(state.remaining) <= 1:
            self.elim.stop(session=session)
            if state.remaining:
                await safe_send(state.channel, f"{state.remaining[0]} wins!")
            else:
                await safe_send(state.channel, "Elimination ended with no winner.")
            return
        session.timers.set_timeout(lambda: self._elim_round(session), state.delay)

    async def elim_cancel(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        session = self.elim.get_state(ctx.actor)
        if session is None:
            await ctx.reply("No elimination is currently running.")
            return
        if not await require_same_channel(ctx, session, self.elim):
            return
        if not await require_can_manage(ctx, session, denied_text="Only the elimination starter or an admin can cancel it."):
            return
        self.elim.stop(session=session)
        await ctx.send("Elimination has been cancelled!")

    def register(self, register) -> None:
        register.expose(
            logical_id="rng.roll",
            name="roll",
            handler=self.roll,
            help="!roll NdM [norepeat] — rolls N numbers from 0..M (example: !roll 1d100)",
            category="RNG",
        )
        register.expose(
            logical_id="rng.choose",
            name="choose",
            handler=self.choose,
            help="!choose a b c — randomly chooses one option",
            category="RNG",
        )
        register.expose(
            logical_id="rng.elim",
            name="elim",
            handler=self.elim_start,
            help="!elim <1–30s> <items...> — randomly eliminates one item per round",
            category="RNG",
        )
        register.expose(
            logical_id="rng.awesome",
            name="awesome",
            handler=self.awesome,
            help="!awesome — tells you how awesome someone is (0–101%)",
            aliases=["a"],
            category="RNG",
        )
        register(
            "!cancelelim",
            self.elim_cancel,
            "!cancelelim — cancels the currently running elimination",
            aliases=["!stopelim", "!endelim", "?cancelelim", "?stopelim", "?endelim"],
            category="RNG",
        )
        register(
            "!coinflip",
            self.coinflip,
            "!coinflip — flips a coin (Heads/Tails)",
            aliases=["!flip", "!coin"],
            category="RNG",
        )
