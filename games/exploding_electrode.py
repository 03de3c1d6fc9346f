from __future__ import annotations

import random
import re
from dataclasses import dataclass, field, replace
from typing import Any

from commands.context import CommandContext
from platform_io.gateway import PlatformGateway
from platform_io.safety import safe_send
from services.game_sessions import GameManager, GameSession, require_can_manage, require_same_channel
from utils.text import mention, parse_mention_token, split_tokens


JOIN_EMOJI = "✅"
ELECTRODE = "E"
SAFE_BALL = "B"
NO_GAME_TEXT = "❌ There is no active Exploding Electrode game."
RUNNING_TEXT = "⚠️ An Exploding Electrode game is already running!"

_JOIN = re.compile(r"^join=(\d+)s?$")
_MAX = re.compile(r"^max=(\d+)$")
_BALLS = re.compile(r"^balls=(\d+)$")
_ELECTRODES = re.compile(r"^e=(\d+)$")
_TURN = re.compile(r"^turn=(\d+)/(\d+)$")
_MODE = re.compile(r"^mode=(last|survivors)$")

HELP_TEXT = "\n".join(
    [
        "**Exploding Electrode — help**",
        "",
        "Exploding Electrode is **Russian roulette** with a bag of Poké Balls.",
        "One (or more) contains an **Electrode**. On your turn, type `!pick`.",
        "",
        "**Start a game (taglist):**",
        "• `!ee @user1 @user2 ...`",
        "• `!ee [balls=NN] [e=K] [turn=W/S] [mode=last|survivors] @user1 @user2 ...`",
        "  – Example: `!ee balls=12 e=2 turn=10/20 @a @b @c @d`",
        "",
        "**Start a game (reaction join):**",
        "• `!ee` — opens a 15s join window (react to enter)",
        "• `!ee [join=NN] [max=NN] [balls=NN] [e=K] [turn=W/S] [mode=last|survivors]`",
        "  – Example: `!ee join=20 max=8 balls=14 e=1`",
        "",
        "**Options:**",
        "• `join=NN` — join window in seconds (5–120). **Reaction-join only**",
        "• `max=NN` — max players (2–50). Ends join early. **Reaction-join only**",
        "• `balls=NN` — total Poké Balls in the bag (default: players+2; min players; max players*3)",
        "• `e=K` — number of Electrodes in the bag (default: 1; max: min(5, players-1))",
        "• `turn=W/S` — warn after W seconds, skip after S seconds (default 15/30)",
        "• `mode=last` — last alive wins (default)",
        "• `mode=survivors` — if the bag empties, everyone still alive wins",
        "",
        "**During the game:**",
        "• `!pick` — take a Poké Ball (only the current player can pick)",
        "• `!endelectrode` — admins only; force end",
    ]
)


@dataclass(frozen=True, slots=True)
class ElectrodeOptions:
    join_seconds: int | None = None
    max_players: int | None = None
    balls: int | None = None
    electrodes: int | None = None
    turn_warn: int | None = None
    turn_skip: int | None = None
    mode: str | None = None


@dataclass(frozen=True, slots=True)
class ElectrodeConfig:
    balls: int
    electrodes: int
    turn_warn: int = 15
    turn_skip: int = 30
    mode: str = "last"


def parse_options(tokens: list[str]) -> tuple[ElectrodeOptions, list[int], list[str]]:
    """Splits ``!ee`` arguments into options, mentioned ids and unknown tokens."""
    options = ElectrodeOptions()
    mentions: list[int] = []
    unknown: list[str] = []
    for token in tokens:
        lowered = token.lower()
        user_id = parse_mention_token(token)
        if user_id is not None:
            if user_id not in mentions:
                mentions.append(user_id)
        elif match := _JOIN.match(lowered):
            options = replace(options, join_seconds=int(match.group(1)))
        elif match := _MAX.match(lowered):
            options = replace(options, max_players=int(match.group(1)))
        elif match := _BALLS.match(lowered):
            options = replace(options, balls=int(match.group(1)))
        elif match := _ELECTRODES.match(lowered):
            options = replace(options, electrodes=int(match.group(1)))
        elif match := _TURN.match(lowered):
            options = replace(options, turn_warn=int(match.group(1)), turn_skip=int(match.group(2)))
        elif match := _MODE.match(lowered):
            options = replace(options, mode=match.group(1))
        else:
            unknown.append(token)
    return options, mentions, unknown


def validate_join_options(options: ElectrodeOptions, *, has_mentions: bool) -> str | None:
    if has_mentions:
        if options.join_seconds is not None or options.max_players is not None:
            return "❌ `join=` and `max=` are only valid for reaction-join (no @mentions)."
        return None
    join_seconds = options.join_seconds if options.join_seconds is not None else 15
    if not 5 <= join_seconds <= 120:
        return "❌ `join=NN` must be between 5 and 120 seconds (example: `!ee join=20`)."
    if options.max_players is not None and not 2 <= options.max_players <= 50:
        return "❌ `max=NN` must be between 2 and 50 (example: `!ee max=8`)."
    if options.turn_warn is not None:
        if options.turn_warn < 5 or options.turn_skip <= options.turn_warn or options.turn_skip > 300:
            return "❌ `turn=W/S` must be like `turn=15/30` with 5<=W<S<=300."
    return None


def build_config(player_count: int, options: ElectrodeOptions) -> tuple[ElectrodeConfig | None, str | None]:
    electrodes = options.electrodes if options.electrodes and options.electrodes >= 1 else 1
    electrode_cap = min(5, max(1, player_count - 1))
    if electrodes > electrode_cap:
        return None, f"❌ `e=` is too high. Max for {player_count} players is {electrode_cap}."

    turn_warn = options.turn_warn if options.turn_warn is not None and options.turn_warn >= 5 else 15
    turn_skip = options.turn_skip
    if turn_skip is None or turn_skip <= turn_warn or turn_skip > 300:
        turn_skip = 30

    balls = options.balls if options.balls is not None else player_count + 2
    if balls < player_count:
        return None, f"❌ `balls=` must be at least the number of players ({player_count})."
    if balls > player_count * 3:
        return None, f"❌ `balls=` too large. Max for {player_count} players is {player_count * 3}."
    if electrodes >= balls:
        return None, "❌ Too many electrodes for the bag. Need `e < balls`."
    return ElectrodeConfig(balls=balls, electrodes=electrodes, turn_warn=turn_warn, turn_skip=turn_skip, mode=options.mode or "last"), None


def _balls(count: int) -> str:
    return f"{count} Poké Ball{'' if count == 1 else 's'}"


@dataclass(slots=True)
class ElectrodeState:
    channel: Any = None
    joining: bool = True
    config: ElectrodeConfig | None = None
    players: list[int] = field(default_factory=list)
    alive: set[int] = field(default_factory=set)
    bag: list[str] = field(default_factory=list)
    current: int = 0

    @property
    def current_player(self) -> int:
        return self.players[self.current]

    def next_alive_index(self) -> int | None:
        for step in range(1, len(self.players) + 1):
            index = (self.current + step) % len(self.players)
            if self.players[index] in self.alive:
                return index
        return None


class ExplodingElectrodeGame:
    def __init__(
        self,
        manager: GameManager | None = None,
        *,
        gateway: PlatformGateway | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.manager = manager or GameManager("electrode", "Exploding Electrode")
        self.gateway = gateway
        self.rng = rng or random.Random()

    def _finish(self, session: GameSession) -> None:
        self.manager.stop(session=session)

    async def _send(self, session: GameSession, content: str) -> None:
        await safe_send(session.data.channel, content)

    async def prompt_turn(self, session: GameSession) -> None:
        session.timers.clear_all()
        state: ElectrodeState = session.data
        player = state.current_player
        await self._send(
            session,
            f"🎒 **{_balls(len(state.bag))} remaining** • "
            f"👥 **{len(state.alive)}** player{'' if len(state.alive) == 1 else 's'} still standing\n"
            f"👉 {mention(player)}, pick a Poké Ball with `!pick`.",
        )
        session.timers.set_timeout(lambda: self._warn(session, player), state.config.turn_warn)
        session.timers.set_timeout(lambda: self._skip(session, player), state.config.turn_skip)

    async def _warn(self, session: GameSession, player: int) -> None:
        if session.active and session.data.current_player == player:
            await self._send(session, f"⏳ {mention(player)}… hurry! What if **Team Rocket** comes back? 🚀")

    async def _skip(self, session: GameSession, player: int) -> None:
        state: ElectrodeState = session.data
        if not session.active or state.current_player != player:
            return
        await self._send(session, f"😬 We can’t wait forever… We’ll have to continue **without {mention(player)}**.")
        await self._advance(session, "🏁 Game ended — no one left to pick.")

    async def _advance(self, session: GameSession, empty_text: str, announce: str | None = None) -> None:
        state: ElectrodeState = session.data
        next_index = state.next_alive_index()
        if next_index is None:
            self._finish(session)
            await self._send(session, empty_text)
            return
        state.current = next_index
        if announce:
            await self._send(session, announce.format(player=mention(state.current_player)))
        await self.prompt_turn(session)

    async def finalize_empty_bag(self, session: GameSession) -> None:
        state: ElectrodeState = session.data
        self._finish(session)
        alive = [uid for uid in state.players if uid in state.alive]
        if not alive:
            await self._send(session, "🏁 The bag is empty… and nobody is left standing. 💀")
        elif state.config.mode == "survivors":
            lines = "\n".join(f"🏆 {mention(uid)}" for uid in alive)
            await self._send(session, f"🎒 The bag is empty! Everyone still standing wins:\n{lines}")
        elif len(alive) == 1:
            await self._send(session, f"🏆 {mention(alive[0])} wins **Exploding Electrode**!")
        else:
            lines = "\n".join(f"✅ {mention(uid)}" for uid in alive)
            await self._send(session, f"🎒 The bag is empty! Nobody exploded at the end.\nSurvivors:\n{lines}")

    async def resolve_pick(self, session: GameSession, picker: int) -> None:
        state: ElectrodeState = session.data
        if picker not in state.alive:
            await self._send(session, f"❌ {mention(picker)} is already out.")
            return
        if state.current_player != picker:
            await self._send(session, f"❌ Not your turn, {mention(picker)}. Wait your turn!")
            return
        session.timers.clear_all()
        if not state.bag:
            await self._send(session, "🎒 The bag is empty! Nothing left to pick.")
            await self.finalize_empty_bag(session)
            return

        drawn = state.bag.pop()
        remaining = len(state.bag)
        await self._send(session, f"🫳 {mention(picker)} picked up a Poké Ball…")

        if drawn == ELECTRODE:
            await self._send(
                session,
                "🔴 …it’s an **Electrode**!\n"
                "💥 **Electrode used EXPLOSION!** 💥\n"
                "💥 **BLAMMO** 💥\n"
                f"☠️ {mention(picker)} **whited out!**",
            )
            state.alive.discard(picker)
            if len(state.alive) <= 1:
                self._finish(session)
                if state.alive:
                    winner = next(iter(state.alive))
                    await self._send(session, f"🏆 {mention(winner)} wins **Exploding Electrode**! The Poké Balls are returned safely. 🚀")
                else:
                    await self._send(session, "🏁 Everyone exploded… nobody wins. Team Rocket laughs in the distance. 🚀")
                return
            if remaining == 0:
                await self.finalize_empty_bag(session)
                return
            await self._advance(session, "🏁 Game ended — no one left.", f"🎒 **{_balls(remaining)} remaining.** Next up: {{player}}")
            return

        await self._send(session, f"🟢 …it’s empty. 😮‍💨\n🎒 **{_balls(remaining)} left.**")
        if remaining == 0:
            await self.finalize_empty_bag(session)
            return
        await self._advance(session, "🏁 Game ended — no one left.", "👉 Next up: {player}")

    async def begin(self, ctx: CommandContext, session: GameSession, players: list[int], options: ElectrodeOptions) -> None:
        if len(players) < 2:
            self._finish(session)
            await ctx.reply("❌ You need at least 2 players to start.")
            return
        config, error = build_config(len(players), options)
        if error:
            self._finish(session)
            await ctx.reply(error)
            return

        bag = [ELECTRODE] * config.electrodes + [SAFE_BALL] * (config.balls - config.electrodes)
        self.rng.shuffle(bag)
        state: ElectrodeState = session.data
        state.config = config
        state.players = players
        state.alive = set(players)
        state.bag = bag
        state.current = self.rng.randrange(len(players))
        state.joining = False

        await ctx.send(
            "⚡ **Exploding Electrode started!**\n"
            "🚀 Team Rocket is blasting off again! They dropped a heavy bag of Poké Balls…\n"
            f"🎒 Bag size: **{config.balls}** • Electrodes: **{config.electrodes}** • Mode: **{config.mode}**\n"
            f"⏳ Turn timers: warn **{config.turn_warn}s**, skip **{config.turn_skip}s**\n"
            f"👥 Players: {', '.join(mention(uid) for uid in players)}\n"
            f"\n👉 First up: {mention(state.current_player)} — type `!pick`"
        )
        await self.prompt_turn(session)

    async def start(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        if self.manager.is_active(ctx.actor):
            await ctx.reply(RUNNING_TEXT)
            return
        tokens = split_tokens(ctx.rest)
        if len(tokens) == 1 and tokens[0].lower() in {"help", "h", "?"}:
            await ctx.reply(HELP_TEXT)
            return

        options, mentioned, unknown = parse_options(tokens)
        error = validate_join_options(options, has_mentions=bool(mentioned))
        if error:
            await ctx.reply(error)
            return
        if unknown:
            listed = ", ".join(f"`{token}`" for token in unknown)
            await ctx.reply(f"❌ Unknown argument(s): {listed}. Try `!ee help`.")
            return

        result = self.manager.try_start(ctx.actor, ElectrodeState(channel=ctx.channel))
        if not result.ok:
            await ctx.reply(RUNNING_TEXT)
            return
        session = result.session

        if mentioned:
            bots = {user.id for user in getattr(ctx.message, "mentions", None) or [] if getattr(user, "bot", False)}
            await self.begin(ctx, session, [uid for uid in mentioned if uid not in bots], options)
            return

        join_seconds = options.join_seconds or 15
        limit = f", max {options.max_players}" if options.max_players else ""
        join_message = await ctx.send(
            f"⚡ **Exploding Electrode** — React to join! (join window: {join_seconds}s{limit})\n"
            "📌 When it’s your turn, type `!pick`."
        )
        entrants: list[int] = []
        if join_message is not None and self.gateway is not None:
            entrants = await self.gateway.collect_reaction_users(
                join_message, JOIN_EMOJI, join_seconds, max_users=options.max_players
            )
        if not session.active:
            return
        if len(entrants) < 2:
            self._finish(session)
            await ctx.send("❌ Not enough players joined (need at least 2).")
            return
        await self.begin(ctx, session, entrants, options)

    async def pick(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        session = self.manager.get_state(ctx.actor)
        if session is None or session.data.joining:
            await ctx.reply(NO_GAME_TEXT)
            return
        await self.resolve_pick(session, ctx.actor.user_id)

    async def end(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        session = self.manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply(NO_GAME_TEXT)
            return
        if not await require_same_channel(ctx, session, self.manager):
            return
        if not await require_can_manage(ctx, session, denied_text="Nope — only admins or the starter can end the Electrode game."):
            return
        self._finish(session)
        await ctx.send("🧯 Exploding Electrode game ended early.")

    def register(self, register) -> None:
        register(
            "!ee",
            self.start,
            "!ee [options...] [@players...] — start Exploding Electrode (taglist or reaction-join). Use `!ee help`.",
            aliases=["!explodingelectrode", "!electrode"],
            category="Games",
            help_tier="primary",
        )
        register("!pick", self.pick, "!pick — pick a Poké Ball (only on your turn)", aliases=["!p"], category="Games")
        register(
            "!endelectrode",
            self.end,
            "!endelectrode — force-end Exploding Electrode (admin)",
            aliases=["!stopelectrode"],
            category="Games",
        )
