from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any

from commands.context import CommandContext, ComponentContext
from platform_io.gateway import PlatformGateway
from platform_io.safety import safe_edit_message, safe_send
from platform_io.ui import ButtonSpec, ModalField, build_modal, build_view
from services.game_sessions import GameManager, GameSession, can_manage
from utils.text import channel_mention, mention, split_tokens
from utils.time_utils import parse_duration_seconds


JOIN_EMOJI = "✅"
DEFAULT_JOIN_SECONDS = 30
MIN_JOIN_SECONDS = 5
MAX_JOIN_SECONDS = 3600
DEFAULT_START_MONEY = 500

HELP_TEXT = "\n".join(
    [
        "**Auction — Help**",
        "",
        "**Start & Join:**",
        "• `!auction join [seconds] [max] [startMoney]`",
        "",
        "**Host Commands:**",
        "• `!auction start <item name> [roundSeconds]`",
        "• `!auction endround`",
        "• `!auction status`",
        "• `!auction cancel`",
        "• `!auction end`",
        "",
        "**Players:**",
        "• Click **Place Bid** to submit a private bid",
        "",
        "Type `!auction rules` to learn how to play.",
    ]
)
RULES_TEXT = "\n".join(
    [
        "**Auction — Rules**",
        "",
        "• The host opens an auction and players join.",
        "• Everyone gets virtual money for this session.",
        "• When an item starts, place a private bid using the button.",
        "• You may change your bid until the round ends.",
        "• Highest bid wins and pays that amount.",
        "• The host starts the next item and repeats.",
    ]
)


@dataclass(frozen=True, slots=True)
class JoinOptions:
    join_seconds: int = DEFAULT_JOIN_SECONDS
    max_players: int | None = None
    start_money: int = DEFAULT_START_MONEY


def parse_join_options(args: list[str]) -> tuple[JoinOptions | None, str | None]:
    join_seconds = DEFAULT_JOIN_SECONDS
    if args:
        join_seconds = parse_duration_seconds(args[0])
        if join_seconds is None or not MIN_JOIN_SECONDS <= join_seconds <= MAX_JOIN_SECONDS:
            return None, "❌ Invalid join duration."
    max_players = _positive_int(args[1]) if len(args) > 1 else None
    start_money = (_positive_int(args[2]) if len(args) > 2 else None) or DEFAULT_START_MONEY
    return JoinOptions(join_seconds=join_seconds, max_players=max_players, start_money=start_money), None


def _positive_int(raw: str) -> int | None:
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _round_time(seconds: int | None) -> str:
    return f"{seconds}s" if seconds else "NONE"


def bid_buttons(*, active: bool) -> list[ButtonSpec]:
    return [
        ButtonSpec("Place Bid", "auction:bid", style="primary", disabled=not active),
        ButtonSpec("My Bid", "auction:mybid", style="secondary", disabled=not active),
        ButtonSpec("Balance", "auction:balance", style="secondary"),
    ]


@dataclass(slots=True)
class Bid:
    amount: int
    seq: int


@dataclass(slots=True)
class AuctionState:
    channel: Any = None
    joining: bool = True
    balances: dict[int, int] = field(default_factory=dict)
    active_item: str | None = None
    bids: dict[int, Bid] = field(default_factory=dict)
    round_message: Any = None


class AuctionGame:
    def __init__(self, manager: GameManager | None = None, *, gateway: PlatformGateway | None = None) -> None:
        self.manager = manager or GameManager("auction", "Auction")
        self.gateway = gateway
        self._bid_seq = itertools.count(1)

    def render_status(self, session: GameSession) -> str:
        state: AuctionState = session.data
        players = "\n".join(f"• {mention(uid)} — {balance}" for uid, balance in state.balances.items())
        return (
            "🪙 **Auction Status**\n"
            f"Host: {mention(session.owner_id)}\n\n"
            f"Players:\n{players or '(none)'}\n\n"
            f"Item: {state.active_item or 'None'}\n"
            f"Bids: {len(state.bids)}/{len(state.balances)}"
        )

    async def join(self, ctx: CommandContext, args: list[str]) -> None:
        options, error = parse_join_options(args)
        if error:
            await ctx.reply(error)
            return
        existing = self.manager.get_state(ctx.actor)
        if existing is not None:
            await ctx.reply(f"⚠️ Auction already running in {channel_mention(existing.channel_id)}.")
            return
        result = self.manager.try_start(ctx.actor, AuctionState(channel=ctx.channel))
        if not result.ok:
            await ctx.reply(result.error_text)
            return
        session = result.session
        state: AuctionState = session.data

        join_message = await ctx.send(f"🪙 **Auction starting!**\nReact {JOIN_EMOJI} to join ({options.join_seconds}s)")
        players: list[int] = []
        if join_message is not None and self.gateway is not None:
            players = await self.gateway.collect_reaction_users(
                join_message, JOIN_EMOJI, options.join_seconds, max_users=options.max_players
            )
        if not session.active:
            return
        if not players:
            self.manager.stop(session=session)
            await ctx.send("❌ Auction cancelled — no players.")
            return

        full = options.max_players is not None and len(players) >= options.max_players
        closed = "🛑 **Auction entries are now closed (max players reached).**" if full else "🛑 **Auction entries are now closed.**"
        if join_message is not None:
            await safe_edit_message(join_message, content=closed)
        state.balances = {uid: options.start_money for uid in players}
        state.joining = False
        await ctx.send(f"✅ Auction created!\nPlayers: {', '.join(mention(uid) for uid in players)}")

    async def end_round(self, session: GameSession) -> None:
        state: AuctionState = session.data
        if state.active_item is None:
            return
        # no awaits until the round is settled
        session.timers.clear_all()
        item = state.active_item
        ranked = sorted(state.bids.items(), key=lambda entry: (-entry[1].amount, entry[1].seq))
        round_message = state.round_message
        state.active_item = None
        state.bids = {}
        state.round_message = None
        if ranked:
            winner_id, bid = ranked[0]
            state.balances[winner_id] -= bid.amount

        if round_message is not None:
            await safe_edit_message(round_message, view=build_view(bid_buttons(active=False)))
        if not ranked:
            await safe_send(state.channel, "⏹️ **Round ended — no bids were placed.**")
            return
        await safe_send(state.channel, f"🏆 **{item} sold!**\nWinner: {mention(winner_id)} — **{bid.amount}**")

    async def start_item(self, ctx: CommandContext, session: GameSession, args: list[str]) -> None:
        state: AuctionState = session.data
        if not can_manage(ctx.actor, session):
            await ctx.reply("Only the host can start an item.")
            return
        if state.active_item:
            await ctx.reply("A round is already active.")
            return
        round_seconds = parse_duration_seconds(args[-1]) if args else None
        item_tokens = args[:-1] if round_seconds is not None else args
        item = " ".join(item_tokens)
        if not item:
            await ctx.reply("Usage: `!auction start <item> [seconds]`")
            return

        state.active_item = item
        state.bids = {}
        state.round_message = await ctx.send(
            f"🔔 **Auction started!**\nItem: **{item}**\nRound time: **{_round_time(round_seconds)}**",
            view=build_view(bid_buttons(active=True)),
        )
        if round_seconds:
            session.timers.set_timeout(lambda: self.end_round(session), round_seconds)

    async def command(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        args = split_tokens(ctx.rest)
        sub = args.pop(0).lower() if args else ""
        if sub == "help":
            await ctx.reply(HELP_TEXT)
            return
        if sub == "rules":
            await ctx.reply(RULES_TEXT)
            return
        if sub == "join":
            await self.join(ctx, args)
            return

        session = self.manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply("No active auction.")
            return
        if not self.manager.is_same_channel(ctx.actor, session):
            await ctx.reply(f"Auction is running in {channel_mention(session.channel_id)}.")
            return
        state: AuctionState = session.data
        if state.joining:
            await ctx.reply("⏳ Auction is still collecting players.")
            return

        if sub == "status":
            await ctx.reply(self.render_status(session))
        elif sub == "start":
            await self.start_item(ctx, session, args)
        elif sub == "endround":
            if not can_manage(ctx.actor, session):
                await ctx.reply("Only the host can end the round.")
            elif not state.active_item:
                await ctx.reply("No active round.")
            else:
                await self.end_round(session)
        elif sub in {"end", "cancel"}:
            if not can_manage(ctx.actor, session):
                await ctx.reply("Only the host can end the auction.")
                return
            self.manager.stop(session=session)
            round_message, state.round_message = state.round_message, None
            if round_message is not None:
                await safe_edit_message(round_message, view=build_view(bid_buttons(active=False)))
            await ctx.send("🛑 **Auction ended.**")
        else:
            await ctx.reply("Unknown subcommand. Try `!auction help`.")

    def _round_session(self, ctx: ComponentContext) -> GameSession | None:
        session = self.manager.get_state(ctx.actor)
        if session is None or session.data.active_item is None:
            return None
        return session

    async def on_bid_button(self, ctx: ComponentContext) -> None:
        if self._round_session(ctx) is None:
            await ctx.reply("No active round.")
            return
        modal = build_modal(
            "Place Your Bid",
            "auction:bidmodal",
            [ModalField("amount", "Bid amount", placeholder="Enter a whole number")],
        )
        await ctx.send_modal(modal)

    async def on_bid_modal(self, ctx: ComponentContext) -> None:
        session = self._round_session(ctx)
        if session is None:
            await ctx.reply("No active round.")
            return
        state: AuctionState = session.data
        try:
            amount = int(ctx.text_field("amount"))
        except ValueError:
            amount = 0
        if amount < 1:
            await ctx.reply("Bid must be a whole number ≥ 1.")
            return
        balance = state.balances.get(ctx.actor.user_id)
        if balance is None or amount > balance:
            await ctx.reply("Invalid bid or insufficient balance.")
            return

        state.bids[ctx.actor.user_id] = Bid(amount=amount, seq=next(self._bid_seq))
        await ctx.reply(f"Bid set to **{amount}**.")
        if len(state.bids) == len(state.balances):
            await self.end_round(session)

    async def on_my_bid(self, ctx: ComponentContext) -> None:
        session = self._round_session(ctx)
        if session is None:
            await ctx.reply("No active round.")
            return
        bid = session.data.bids.get(ctx.actor.user_id)
        await ctx.reply(f"Your bid: **{bid.amount}**" if bid else "You have not bid yet.")

    async def on_balance(self, ctx: ComponentContext) -> None:
        session = self.manager.get_state(ctx.actor)
        balance = session.data.balances.get(ctx.actor.user_id) if session else None
        await ctx.reply(f"Balance: **{balance}**" if balance is not None else "Not in this auction.")

    def register(self, register) -> None:
        register("!auction", self.command, "!auction — run a private bidding auction", category="Games", help_tier="primary")
        register.component("auction:bid", self.on_bid_button)
        register.component("auction:bidmodal", self.on_bid_modal)
        register.component("auction:mybid", self.on_my_bid)
        register.component("auction:balance", self.on_balance)
