from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from commands.context import CommandContext, ComponentContext, SlashContext
from commands.slash import integer_option, slash_command, user_option
from platform_io.safety import safe_edit_message, safe_send
from platform_io.ui import ButtonSpec, ModalField, build_modal, build_view
from services.game_sessions import GUILD_ONLY_TEXT, GameManager, GameSession, make_game_qol, require_can_manage
from utils.text import channel_mention, mention


MIN_BOXES = 2
MAX_BOXES = 25
EMPTY_PRIZE = "(empty)"
DENIED_TEXT = "Nope — only admins/privileged or the host can do that."

HELP_TEXT = "\n".join(
    [
        "**Deal or No Deal — Commands**",
        "",
        "**Start:**",
        f"• `/dond boxes:<{MIN_BOXES}-{MAX_BOXES}> contestant:@user` → opens modal for prize list",
        "",
        "**Contestant:**",
        "• Picks a kept box using the board buttons",
        "",
        "**Host/Admin:**",
        "• `!dondopen N` — open a **discarded** box (cannot open kept box)",
        "• `!dondstatus` — show board state",
        "• `!dondswitch` — only when 2 unopened remain (kept + 1 other)",
        "• `!dondend [deal|nodeal]` — end game (deal hides kept prize until reveal)",
        "• `!dondreveal` — reveal all prizes from last game snapshot",
        "• `!dondcancel` — cancel current game",
        "• `!dondoffer <text...>` — announce banker offer (any freeform offer)",
    ]
)
PRIZE_PLACEHOLDER = "One prize per line (Box 1..N)\nBlank line or 'Empty' = empty box"


def normalize_prize(line: str | None) -> str:
    text = (line or "").strip()
    if not text or text.lower() == "empty":
        return EMPTY_PRIZE
    return text


def parse_prizes(raw: str | None, count: int) -> list[str]:
    """One prize per line; missing lines become empty boxes."""
    lines = (raw or "").splitlines()
    return [normalize_prize(lines[i] if i < len(lines) else None) for i in range(count)]


def parse_box_count(raw: Any) -> int | None:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if MIN_BOXES <= value <= MAX_BOXES else None


@dataclass(slots=True)
class Box:
    prize: str
    opened: bool = False


@dataclass(slots=True)
class DondState:
    host_id: int
    contestant_id: int
    boxes: list[Box]
    channel: Any = None
    kept_index: int | None = None
    phase: str = "choose_keep"
    deal_taken: bool = False
    board_message: Any = None

    @property
    def size(self) -> int:
        return len(self.boxes)

    def unopened(self) -> list[int]:
        return [i for i, box in enumerate(self.boxes) if not box.opened]

    def other_unopened(self) -> int | None:
        remaining = self.unopened()
        if len(remaining) != 2 or self.kept_index is None:
            return None
        return remaining[1] if remaining[0] == self.kept_index else remaining[0]


@dataclass(frozen=True, slots=True)
class DondSnapshot:
    host_id: int
    contestant_id: int
    kept_index: int | None
    deal_taken: bool
    prizes: tuple[str, ...]


def board_text(state: DondState) -> str:
    lines = [f"💼 **Deal or No Deal** — Host: {mention(state.host_id)} • Contestant: {mention(state.contestant_id)}"]
    if state.phase == "choose_keep":
        lines.append("🎯 Contestant: choose a box to **KEEP** (buttons below).")
    else:
        kept = f"**#{state.kept_index + 1}**" if state.kept_index is not None else "(not chosen yet)"
        lines.append(f"🔒 Kept box: {kept}")
        lines.append("🗑️ Host opens **discarded** boxes using `!dondopen N`.")
    lines.append(f"📦 Unopened boxes remaining (includes kept box): **{len(state.unopened())}/{state.size}**")
    if state.deal_taken:
        lines.append("🤝 Deal taken: **YES** (kept prize hidden unless revealed)")
    lines.append("")

    cells = []
    for index, box in enumerate(state.boxes):
        mark = "❌" if box.opened else "🔒" if state.kept_index == index else "🟦"
        cells.append(f"{mark}{index + 1:>2}")
    lines.append("  ".join(cells))
    lines.append("")
    lines.append("Help: `!dondhelp`")
    return "\n".join(lines)


def keep_buttons(state: DondState, *, disabled: bool = False) -> list[ButtonSpec]:
    return [
        ButtonSpec(
            str(index + 1),
            f"dond:keep:{index}",
            style="success" if state.kept_index == index else "secondary",
            disabled=disabled or box.opened or state.phase != "choose_keep",
        )
        for index, box in enumerate(state.boxes)
    ]


def reveal_text(snapshot: DondSnapshot) -> str:
    lines = [
        "🧾 **Deal or No Deal — Full Reveal**",
        f"Host: {mention(snapshot.host_id)} • Contestant: {mention(snapshot.contestant_id)}",
    ]
    if snapshot.kept_index is not None:
        lines.append(f"Kept box: **#{snapshot.kept_index + 1}**")
    lines.append(f"Deal taken: **{'YES' if snapshot.deal_taken else 'NO'}**")
    lines.append("")
    for index, prize in enumerate(snapshot.prizes):
        kept = " 🔒(kept)" if snapshot.kept_index == index else ""
        lines.append(f"• Box #{index + 1}{kept}: {prize}")
    return "\n".join(lines)


def _resolved_user_is_bot(interaction: Any, user_id: int) -> bool:
    data = getattr(interaction, "data", None) or {}
    users = (data.get("resolved") or {}).get("users") or {}
    return bool((users.get(str(user_id)) or {}).get("bot"))


class DealOrNoDealGame:
    def __init__(self, manager: GameManager | None = None) -> None:
        self.manager = manager or GameManager("dond", "Deal or No Deal")
        self.last_by_guild: dict[int, DondSnapshot] = {}

    def render_status(self, session: GameSession) -> str:
        return board_text(session.data)

    async def _refresh_board(self, state: DondState, *, disabled: bool = False, content: str | None = None) -> None:
        if state.board_message is None:
            return
        await safe_edit_message(
            state.board_message,
            content=content or board_text(state),
            view=build_view(keep_buttons(state, disabled=disabled)),
        )

    def _snapshot(self, session: GameSession) -> None:
        state: DondState = session.data
        self.last_by_guild[session.guild_id] = DondSnapshot(
            host_id=state.host_id,
            contestant_id=state.contestant_id,
            kept_index=state.kept_index,
            deal_taken=state.deal_taken,
            prizes=tuple(box.prize for box in state.boxes),
        )

    def _running_text(self, session: GameSession) -> str:
        return f"⚠️ Deal or No Deal is already running in {channel_mention(session.channel_id)}."

    async def start_slash(self, ctx: SlashContext) -> None:
        if not ctx.actor.in_guild:
            await ctx.reply(GUILD_ONLY_TEXT, ephemeral=True)
            return
        existing = self.manager.get_state(ctx.actor)
        if existing is not None:
            await ctx.reply(self._running_text(existing), ephemeral=True)
            return
        count = parse_box_count(ctx.option("boxes"))
        if count is None:
            await ctx.reply(f"❌ boxes must be an integer {MIN_BOXES}–{MAX_BOXES}.", ephemeral=True)
            return
        contestant_id = ctx.option("contestant")
        if not contestant_id or _resolved_user_is_bot(ctx.interaction, contestant_id):
            await ctx.reply("❌ Contestant must be a real user (not a bot).", ephemeral=True)
            return

        modal = build_modal(
            "Deal or No Deal — Prize List",
            f"dond_modal:{count}:{contestant_id}",
            [ModalField("prizes", "Prizes (one per line, Box 1..N)", paragraph=True, required=False, placeholder=PRIZE_PLACEHOLDER)],
        )
        await ctx.send_modal(modal)

    async def on_prize_modal(self, ctx: ComponentContext) -> None:
        if not ctx.actor.in_guild:
            return
        existing = self.manager.get_state(ctx.actor)
        if existing is not None:
            await ctx.reply(self._running_text(existing))
            return
        parts = ctx.custom_id.split(":")
        count = parse_box_count(parts[1]) if len(parts) == 3 else None
        if count is None or not parts[2].isdigit():
            await ctx.reply("❌ Invalid modal payload.")
            return
        channel = getattr(ctx.interaction, "channel", None)
        if channel is None:
            await ctx.reply("Could not access this channel.")
            return

        contestant_id = int(parts[2])
        state = DondState(
            host_id=ctx.actor.user_id,
            contestant_id=contestant_id,
            boxes=[Box(prize) for prize in parse_prizes(ctx.fields.get("prizes"), count)],
            channel=channel,
        )
        result = self.manager.try_start(ctx.actor, state)
        if not result.ok:
            await ctx.reply(result.error_text)
            return
        state.board_message = await safe_send(channel, board_text(state), view=build_view(keep_buttons(state)))
        await ctx.reply(
            f"✅ Started Deal or No Deal in {channel_mention(result.session.channel_id)} for {mention(contestant_id)} with **{count}** boxes.\n"
            "Contestant should pick a kept box using the buttons on the board."
        )

    async def on_keep(self, ctx: ComponentContext) -> None:
        session = self.manager.get_state(ctx.actor)
        if session is None:
            return
        state: DondState = session.data
        if not self.manager.is_same_channel(ctx.actor, session):
            await ctx.reply(f"This game is running in {channel_mention(session.channel_id)}.")
            return
        if ctx.actor.user_id != state.contestant_id:
            await ctx.reply("Only the contestant can pick the kept box.")
            return
        if state.phase != "choose_keep":
            await ctx.reply("Kept box has already been chosen.")
            return
        try:
            index = int(ctx.custom_id.rsplit(":", 1)[-1])
        except ValueError:
            index = -1
        if not 0 <= index < state.size:
            await ctx.reply("Invalid box.")
            return
        if state.boxes[index].opened:
            await ctx.reply("That box is already opened.")
            return

        state.kept_index = index
        state.phase = "running"
        await ctx.reply(f"✅ You are keeping **Box #{index + 1}**.")
        await self._refresh_board(state)
        await safe_send(
            state.channel,
            f"🔒 {mention(state.contestant_id)} is keeping **Box #{index + 1}**.\n"
            "Host: open **discarded** boxes with `!dondopen N` (kept box is locked).",
        )

    async def _host_session(self, ctx: CommandContext) -> GameSession | None:
        session = self.manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply("No active Deal or No Deal game.")
            return None
        if not self.manager.is_same_channel(ctx.actor, session):
            await ctx.reply(f"Running in {channel_mention(session.channel_id)}.")
            return None
        if not await require_can_manage(ctx, session, denied_text=DENIED_TEXT):
            return None
        return session

    async def offer(self, ctx: CommandContext) -> None:
        session = await self._host_session(ctx)
        if session is None:
            return
        offer = ctx.rest.strip()
        if not offer:
            await ctx.reply("Usage: `!dondoffer <banker offer text>`")
            return
        await ctx.send(f"📞 **BANKER OFFER:** {offer}")

    async def open_box(self, ctx: CommandContext) -> None:
        session = await self._host_session(ctx)
        if session is None:
            return
        state: DondState = session.data
        if state.kept_index is None:
            await ctx.reply("⚠️ Kept box not chosen yet. Contestant must pick a kept box first.")
            return
        try:
            number = int(ctx.rest.strip())
        except ValueError:
            number = 0
        if not 1 <= number <= state.size:
            await ctx.reply(f"Usage: `!dondopen <1-{state.size}>` (opens a discarded box)")
            return
        index = number - 1
        if index == state.kept_index:
            await ctx.reply(f"❌ Box #{number} is the contestant’s **kept** box. Open a **discarded** box instead.")
            return
        box = state.boxes[index]
        if box.opened:
            await ctx.reply("That box is already opened.")
            return

        box.opened = True
        await ctx.send(f"🗑️ Discarded **Box #{number}** opened → **{box.prize}**")
        if len(state.unopened()) == 2:
            state.phase = "final"
        await self._refresh_board(state)
        if state.phase == "final":
            other = state.other_unopened()
            await ctx.send(
                "🏁 **FINAL ROUND** — 2 unopened boxes left (**kept + 1 other**).\n"
                f"Kept: **#{state.kept_index + 1}** vs Other: **#{other + 1}**\n"
                "Host can use `!dondswitch` then `!dondend [deal|nodeal]`."
            )

    async def switch(self, ctx: CommandContext) -> None:
        session = await self._host_session(ctx)
        if session is None:
            return
        state: DondState = session.data
        if state.kept_index is None:
            await ctx.reply("Kept box not chosen yet.")
            return
        other = state.other_unopened()
        if other is None:
            await ctx.reply("❌ Switch is only allowed when exactly 2 unopened boxes remain (kept + 1 other).")
            return
        previous = state.kept_index
        state.kept_index = other
        await self._refresh_board(state)
        await ctx.send(f"🔁 Switched kept box from **#{previous + 1}** to **#{other + 1}**.")

    async def end(self, ctx: CommandContext) -> None:
        session = await self._host_session(ctx)
        if session is None:
            return
        state: DondState = session.data
        if state.kept_index is None:
            await ctx.reply("Kept box not chosen yet.")
            return
        state.deal_taken = ctx.rest.strip().lower() == "deal"
        state.phase = "ended"
        self._snapshot(session)
        self.manager.stop(session=session)
        await self._refresh_board(state, disabled=True)

        kept = state.kept_index + 1
        if state.deal_taken:
            await ctx.send(
                "🤝 **DEAL TAKEN!** Game ended.\n"
                f"Kept box **#{kept}** stays hidden.\n"
                "Use `!dondreveal` to show every box afterwards."
            )
        else:
            await ctx.send(
                f"🏁 **NO DEAL!** {mention(state.contestant_id)} kept **Box #{kept}** → **{state.boxes[state.kept_index].prize}**\n"
                "Use `!dondreveal` to show all boxes."
            )

    async def cancel_session(self, ctx: CommandContext, session: GameSession) -> None:
        state: DondState = session.data
        self._snapshot(session)
        self.manager.stop(session=session)
        state.phase = "ended"
        await self._refresh_board(
            state,
            disabled=True,
            content=f"🛑 **Deal or No Deal cancelled** by {mention(ctx.actor.user_id)}.\n\n" + board_text(state),
        )
        await ctx.send("🛑 Cancelled. You can still run `!dondreveal` to show the snapshot prizes.")

    async def cancel(self, ctx: CommandContext) -> None:
        session = await self._host_session(ctx)
        if session is not None:
            await self.cancel_session(ctx, session)

    async def reveal(self, ctx: CommandContext) -> None:
        snapshot = self.last_by_guild.get(ctx.actor.guild_id)
        if snapshot is None:
            await ctx.reply("No previous Deal or No Deal snapshot to reveal yet.")
            return
        await ctx.send(reveal_text(snapshot))

    def register(self, register) -> None:
        make_game_qol(
            register,
            self.manager,
            help_text=HELP_TEXT,
            render_status=self.render_status,
            cancel=self.cancel_session,
        )
        register.slash(
            slash_command(
                "dond",
                "Start Deal or No Deal (modal prize list; host opens discarded boxes)",
                [
                    integer_option("boxes", f"Number of boxes ({MIN_BOXES}–{MAX_BOXES})", required=True),
                    user_option("contestant", "Contestant who will play", required=True),
                ],
            ),
            self.start_slash,
        )
        register.component("dond_modal:", self.on_prize_modal)
        register.component("dond:keep:", self.on_keep)

        hidden = {"category": "Games", "hide_from_help": True}
        register("!dondopen", self.open_box, "!dondopen <box#> — open a discarded box", **hidden)
        register("!dondswitch", self.switch, "!dondswitch — swap kept box with the other final box", **hidden)
        register("!dondend", self.end, "!dondend [deal|nodeal] — end Deal or No Deal", **hidden)
        register("!dondcancel", self.cancel, "!dondcancel — cancel Deal or No Deal", **hidden)
        register("!dondoffer", self.offer, "!dondoffer <text> — announce banker offer", **hidden)
        register("!dondreveal", self.reveal, "!dondreveal — reveal prizes from the last Deal or No Deal game", **hidden)
