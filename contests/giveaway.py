from __future__ import annotations

import io
import logging
import random
from dataclasses import dataclass, field
from typing import Any

import discord

from bot.permissions import PrivilegedUsers
from commands.context import ActorContext, CommandContext, ComponentContext, SlashContext
from commands.slash import boolean_option, slash_command, string_option, subcommand
from contests.eligibility import VerifiedRolePolicy, eligibility_dm
from db.repository import GiveawayRecord, Repository
from platform_io.gateway import PlatformGateway
from platform_io.safety import safe_edit_message, safe_send
from platform_io.task_registry import DependencyRetry, RetryPolicy
from platform_io.ui import ButtonSpec, ModalField, build_modal, build_select, build_view
from services.game_sessions import GameManager, GameSession, Scope
from utils.text import mention, plural
from utils.time_utils import discord_timestamp, parse_duration_seconds


log = logging.getLogger("spectreon.giveaway")

MAX_DURATION_SECONDS = 3 * 24 * 60 * 60
MAX_WINNERS = 50
RECHECK_AFTER_GIVE_UP_SECONDS = 15 * 60
NO_PERMISSION_TEXT = "You do not have permission to run this command."
NOT_ACTIVE_TEXT = "That giveaway is not active or could not be found."
NO_VERIFIED_ROLES_TEXT = "❌ No verified roles are configured for this server."
HELP_TEXT = (
    "Use `/giveaway create` to start a giveaway (modal). "
    "Optional: set `require_verified` to require the verified role. "
    "Manage with `/giveaway list`, `/giveaway end message_id:<id>`, "
    "`/giveaway delete message_id:<id>`, or `/giveaway reroll message_id:<id>`."
)
REROLL_NOTES = {
    "not_found": "That giveaway could not be found.",
    "not_ended": "That giveaway has not ended yet.",
    "canceled": "That giveaway was cancelled.",
    "error": "💥 An error occurred when trying to reroll the giveaway.",
}


@dataclass(frozen=True, slots=True)
class GiveawayResult:
    ok: bool
    reason: str | None = None
    winners: tuple[int, ...] = ()


@dataclass(slots=True)
class GiveawayState:
    record: GiveawayRecord
    notified_ineligible: set[int] = field(default_factory=set)
    retry: DependencyRetry | None = None


def message_url(guild_id: int, channel_id: int, message_id: int) -> str:
    return f"https://discord.com/channels/{guild_id}/{channel_id}/{message_id}"


def format_remaining(seconds: float) -> str:
    total = max(0, int(seconds))
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts = [plural(value, unit) for value, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")) if value]
    if not parts or secs:
        parts.append(plural(secs, "second"))
    return ", ".join(parts)


def build_embed(record: GiveawayRecord, *, now_ms: int) -> discord.Embed:
    ended = record.ended_at_ms is not None and not record.canceled
    if record.canceled:
        label, when = "Cancelled", record.ended_at_ms or now_ms
    elif ended:
        label, when = "Ended", record.ended_at_ms
    else:
        label, when = "Ends", record.ends_at_ms

    if ended:
        winners_line = ", ".join(mention(uid) for uid in record.winners) or "No valid entries."
    else:
        winners_line = str(record.winners_count)
    lines = [
        f"{label}: {discord_timestamp(when, 'R')} ({discord_timestamp(when, 'F')})",
        f"Hosted by: {mention(record.host_id)}",
        f"Entries: {len(record.entrants)}",
        f"Winners: {winners_line}",
    ]
    if record.require_verified:
        lines.append("Eligibility: verified role required.")
    if record.canceled:
        lines.insert(1, "Status: Cancelled")

    details = "\n".join(lines)
    description = (record.description or "").strip()
    return discord.Embed(
        title=record.prize or "Giveaway",
        description=f"{description}\n\n{details}" if description else details,
        color=0xED4245 if record.canceled else 0x5865F2,
    )


def join_view(message_id: int) -> discord.ui.View:
    return build_view([ButtonSpec(None, f"giveaway:join:{message_id}", emoji="🎉")])


def leave_view(message_id: int) -> discord.ui.View:
    return build_view([ButtonSpec("Leave Giveaway", f"giveaway:leave:{message_id}", style="danger")])


def summary_view(record: GiveawayRecord) -> discord.ui.View | None:
    if not record.summary_message_id:
        return None
    url = message_url(record.guild_id, record.channel_id, record.summary_message_id)
    return build_view([ButtonSpec("Giveaway Summary", url=url)])


class GiveawayService:
    def __init__(
        self,
        repo: Repository,
        gateway: PlatformGateway,
        *,
        eligibility: VerifiedRolePolicy | None = None,
        privileged: PrivilegedUsers | None = None,
        retry_policy: RetryPolicy | None = None,
        manager: GameManager | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.repo = repo
        self.gateway = gateway
        self.eligibility = eligibility or VerifiedRolePolicy()
        self.privileged = privileged or PrivilegedUsers()
        self.retry_policy = retry_policy or RetryPolicy()
        self.manager = manager or GameManager("giveaway", "Giveaway", scope=Scope.RECORD)
        self.rng = rng or random.Random()

    def now_ms(self) -> int:
        return int(self.manager.now() * 1000)

    # scheduling

    def arm(self, record: GiveawayRecord) -> GameSession | None:
        actor = ActorContext(guild_id=record.guild_id, user_id=record.host_id, channel_id=record.channel_id)
        result = self.manager.try_start(actor, GiveawayState(record=record), record_id=record.message_id)
        if not result.ok:
            return None
        session = result.session
        self._arm_finalize(session, max(0, record.ends_at_ms - self.now_ms()) / 1000)
        return session

    def _arm_finalize(self, session: GameSession, delay: float) -> None:
        state: GiveawayState = session.data
        state.retry = DependencyRetry(
            self.retry_policy,
            session.timers,
            is_ready=self.gateway.is_ready,
            on_ready=lambda: self._finalize_session(session),
            on_give_up=lambda: self._recheck_later(session),
            name=f"giveaway:{state.record.message_id}",
        )
        session.timers.set_timeout(state.retry.run, delay)

    def _recheck_later(self, session: GameSession) -> None:
        if not session.active:
            return
        log.error(
            "Giveaway %s could not finalize; client still not ready. Rechecking in %ss",
            session.data.record.message_id,
            RECHECK_AFTER_GIVE_UP_SECONDS,
        )
        self._arm_finalize(session, RECHECK_AFTER_GIVE_UP_SECONDS)

    async def boot(self) -> int:
        try:
            records = await self.repo.list_open_giveaways()
        except Exception:
            log.exception("Failed to load open giveaways")
            return 0
        armed = sum(1 for record in records if self.arm(record) is not None)
        log.info("Giveaways restored: %s", armed)
        return armed

    # lifecycle

    async def _eligible(self, record: GiveawayRecord, entrants: list[int]) -> list[int]:
        if not record.require_verified:
            return list(entrants)
        eligible = []
        for user_id in entrants:
            member = await self.gateway.fetch_member(record.guild_id, user_id)
            privileged = self.privileged.is_privileged(record.guild_id, user_id)
            if self.eligibility.is_eligible(record.guild_id, member, is_privileged=privileged):
                eligible.append(user_id)
        return eligible

    def _pick(self, pool: list[int], count: int) -> list[int]:
        return self.rng.sample(pool, min(count, len(pool)))

    async def _summary(self, channel: Any, record: GiveawayRecord) -> Any | None:
        lines = [
            "Giveaway Summary",
            "",
            f"Prize: {record.prize}",
            f"Hosted by: {mention(record.host_id)}",
            f"Ended: {discord_timestamp(record.ended_at_ms, 'F')} ({discord_timestamp(record.ended_at_ms, 'R')})",
            f"Entries: {len(record.entrants)}",
            f"Winners: {', '.join(mention(uid) for uid in record.winners) or 'None'}",
            "",
            "Entrants:",
        ]
        if not record.entrants:
            lines.append("(none)")
        winners = set(record.winners)
        for user_id in record.entrants:
            member = await self.gateway.fetch_member(record.guild_id, user_id)
            name = getattr(member, "display_name", None) or str(user_id)
            lines.append(f"- {name} ({user_id}){' (winner)' if user_id in winners else ''}")
        payload = io.BytesIO("\n".join(lines).encode("utf-8"))
        return await safe_send(
            channel,
            f"Giveaway Summary: **{record.prize}**",
            file=discord.File(payload, filename="giveaway-summary.txt"),
        )

    async def _finalize_session(self, session: GameSession) -> GiveawayResult:
        record: GiveawayRecord = session.data.record
        self.manager.stop(session=session)

        channel = await self.gateway.fetch_channel(record.channel_id)
        board = await self.gateway.fetch_message(channel, record.message_id)
        if channel is None:
            log.warning("Giveaway %s: channel %s unavailable", record.message_id, record.channel_id)
            return GiveawayResult(False, "channel_unavailable")
        if board is None:
            log.warning("Giveaway %s: message gone; dropping record", record.message_id)
            await self.repo.delete_giveaway(record.message_id)
            return GiveawayResult(False, "message_missing")

        eligible = await self._eligible(record, record.entrants)
        record.winners = self._pick(eligible, record.winners_count)
        record.ended_at_ms = self.now_ms()

        summary = await self._summary(channel, record)
        record.summary_message_id = int(summary.id) if summary is not None else None
        await safe_edit_message(board, embed=build_embed(record, now_ms=record.ended_at_ms), view=summary_view(record))
        await self.repo.upsert_giveaway(record)

        if record.winners:
            await safe_send(channel, f"Congratulations {', '.join(mention(uid) for uid in record.winners)}! You won the **{record.prize}**!")
        elif record.require_verified:
            await safe_send(channel, f"No eligible entries for **{record.prize}**.")
        else:
            await safe_send(channel, f"No valid entries for **{record.prize}**.")
        log.info("Giveaway %s ended winners=%s entrants=%s", record.message_id, len(record.winners), len(record.entrants))
        return GiveawayResult(True, None, tuple(record.winners))

    async def finalize(self, message_id: int) -> GiveawayResult:
        session = self.manager.get_state(record_id=message_id)
        if session is None:
            return GiveawayResult(False, "not_found")
        return await self._finalize_session(session)

    async def cancel(self, message_id: int) -> GiveawayResult:
        session = self.manager.get_state(record_id=message_id)
        if session is None:
            return GiveawayResult(False, "not_found")
        record: GiveawayRecord = session.data.record
        self.manager.stop(session=session)
        record.canceled = True
        record.ended_at_ms = self.now_ms()
        await self.repo.upsert_giveaway(record)

        channel = await self.gateway.fetch_channel(record.channel_id)
        board = await self.gateway.fetch_message(channel, record.message_id)
        if board is not None:
            await safe_edit_message(board, embed=build_embed(record, now_ms=record.ended_at_ms), view=None)
        if channel is not None:
            await safe_send(channel, f"🛑 Giveaway {record.message_id} was cancelled.")
        return GiveawayResult(True)

    async def reroll(self, message_id: int) -> GiveawayResult:
        record = await self.repo.get_giveaway(message_id)
        if record is None:
            return GiveawayResult(False, "not_found")
        if record.canceled:
            return GiveawayResult(False, "canceled")
        if record.ended_at_ms is None:
            return GiveawayResult(False, "not_ended")
        channel = await self.gateway.fetch_channel(record.channel_id)
        if channel is None:
            return GiveawayResult(False, "error")

        eligible = await self._eligible(record, record.entrants)
        previous = set(record.winners)
        fresh = [uid for uid in eligible if uid not in previous]
        record.winners = self._pick(fresh or eligible, record.winners_count)
        await self.repo.upsert_giveaway(record)

        board = await self.gateway.fetch_message(channel, record.message_id)
        if board is not None:
            await safe_edit_message(board, embed=build_embed(record, now_ms=self.now_ms()), view=summary_view(record))
        if record.winners:
            winners = ", ".join(mention(uid) for uid in record.winners)
            await safe_send(channel, f"{mention(record.host_id)} rerolled the giveaway. Congratulations {winners}!")
        elif record.require_verified:
            await safe_send(channel, f"No eligible entries to reroll for **{record.prize}**.")
        else:
            await safe_send(channel, f"No valid entries to reroll for **{record.prize}**.")
        return GiveawayResult(True, None, tuple(record.winners))

    # entry buttons

    async def _refresh_board(self, ctx: ComponentContext, record: GiveawayRecord) -> None:
        board = ctx.message if getattr(ctx.message, "id", None) == record.message_id else None
        if board is None:
            channel = await self.gateway.fetch_channel(record.channel_id)
            board = await self.gateway.fetch_message(channel, record.message_id)
        if board is not None:
            await safe_edit_message(board, embed=build_embed(record, now_ms=self.now_ms()), view=join_view(record.message_id))

    def _button_state(self, ctx: ComponentContext) -> GiveawayState | None:
        raw = ctx.custom_id.rsplit(":", 1)[-1]
        if not raw.isdigit():
            return None
        session = self.manager.get_state(record_id=int(raw))
        return session.data if session is not None else None

    async def on_join(self, ctx: ComponentContext) -> None:
        state = self._button_state(ctx)
        if state is None:
            await ctx.reply("This giveaway is no longer active.")
            return
        record = state.record
        user_id = ctx.actor.user_id
        if user_id in record.entrants:
            await ctx.reply("You have already entered this giveaway!", view=leave_view(record.message_id))
            return

        record.entrants.append(user_id)
        if record.require_verified and user_id not in state.notified_ineligible:
            member = getattr(ctx.interaction, "user", None)
            if not self.eligibility.is_eligible(record.guild_id, member, is_privileged=ctx.actor.is_privileged):
                state.notified_ineligible.add(user_id)
                guild = getattr(ctx.interaction, "guild", None)
                await self.gateway.send_dm(user_id, eligibility_dm(getattr(guild, "name", None)))
        await self.repo.upsert_giveaway(record)
        await self._refresh_board(ctx, record)
        await ctx.reply("You have entered the giveaway!")

    async def on_leave(self, ctx: ComponentContext) -> None:
        state = self._button_state(ctx)
        if state is None:
            await ctx.reply("This giveaway is no longer active.")
            return
        record = state.record
        if ctx.actor.user_id not in record.entrants:
            await ctx.reply("You are not entered in this giveaway.")
            return
        record.entrants.remove(ctx.actor.user_id)
        await self.repo.upsert_giveaway(record)
        await self._refresh_board(ctx, record)
        await ctx.reply("You have left the giveaway.")

    # creation

    async def on_modal(self, ctx: ComponentContext) -> None:
        if not ctx.actor.in_guild:
            await ctx.reply("Giveaways must be created in a server channel.")
            return
        if not ctx.actor.is_admin_or_privileged:
            await ctx.reply(NO_PERMISSION_TEXT)
            return
        require_verified = ctx.custom_id.endswith(":verified")
        if require_verified and not self.eligibility.role_ids(ctx.actor.guild_id):
            await ctx.reply(NO_VERIFIED_ROLES_TEXT)
            return

        duration = parse_duration_seconds(ctx.text_field("duration"), allow_days=True)
        if duration is None:
            await ctx.reply("Please provide a valid duration (e.g. 10m, 2h, 1d).")
            return
        if duration > MAX_DURATION_SECONDS:
            await ctx.reply("Giveaway duration cannot exceed 3 days.")
            return
        winners_raw = ctx.text_field("winners")
        winners_count = int(winners_raw) if winners_raw.isdigit() else 0
        if not 1 <= winners_count <= MAX_WINNERS:
            await ctx.reply(f"Number of winners must be between 1 and {MAX_WINNERS}.")
            return
        prize = ctx.text_field("prize")
        if not prize:
            await ctx.reply("Please provide a prize.")
            return
        channel = getattr(ctx.interaction, "channel", None)
        if channel is None:
            await ctx.reply("Could not access this channel.")
            return

        record = GiveawayRecord(
            message_id=0,
            guild_id=ctx.actor.guild_id,
            channel_id=ctx.actor.channel_id,
            host_id=ctx.actor.user_id,
            prize=prize,
            description=ctx.text_field("description") or None,
            winners_count=winners_count,
            ends_at_ms=self.now_ms() + duration * 1000,
            require_verified=require_verified,
        )
        board = await safe_send(channel, embed=build_embed(record, now_ms=self.now_ms()))
        if board is None:
            await ctx.reply("Could not access this channel.")
            return
        record.message_id = int(board.id)
        await safe_edit_message(board, embed=build_embed(record, now_ms=self.now_ms()), view=join_view(record.message_id))
        await self.repo.upsert_giveaway(record)
        self.arm(record)
        log.info("Giveaway %s created guild=%s ends_at_ms=%s", record.message_id, record.guild_id, record.ends_at_ms)
        await ctx.reply(f"The giveaway was successfully created! ID: {record.message_id}")

    # /giveaway

    async def _picker(self, ctx: SlashContext, action: str, prompt: str) -> None:
        records = await self.repo.list_open_giveaways(ctx.actor.guild_id)
        if not records:
            await ctx.reply("No active giveaways found.", ephemeral=True)
            return
        options = [(record.prize or "Giveaway", str(record.message_id)) for record in records[:25]]
        await ctx.reply(prompt, ephemeral=True, view=build_select(f"giveaway:pick:{action}", options, placeholder="Select a giveaway..."))

    async def _list(self, ctx: SlashContext) -> None:
        records = await self.repo.list_open_giveaways(ctx.actor.guild_id)
        if not records:
            await ctx.reply("No active giveaways found.")
            return
        lines = []
        for record in records:
            channel = await self.gateway.fetch_channel(record.channel_id)
            channel_name = getattr(channel, "name", None) or "unknown"
            remaining = format_remaining((record.ends_at_ms - self.now_ms()) / 1000)
            link = f"[{record.message_id}]({message_url(record.guild_id, record.channel_id, record.message_id)})"
            lines.append(
                f"{link} | {channel_name} | {plural(record.winners_count, 'winner')} | Prize: {record.prize} | "
                f"Host: {mention(record.host_id)} | Ends in {remaining}"
            )
        await ctx.reply("\n".join(lines))

    async def command(self, ctx: SlashContext) -> None:
        if not ctx.actor.in_guild:
            await ctx.reply("Giveaways must be managed in a server channel.", ephemeral=True)
            return
        sub = ctx.subcommand or ""
        if sub == "list":
            await self._list(ctx)
            return
        if sub not in {"create", "end", "delete", "reroll"}:
            await ctx.reply("Unknown giveaway subcommand.", ephemeral=True)
            return
        if not ctx.actor.is_admin_or_privileged:
            await ctx.reply(NO_PERMISSION_TEXT, ephemeral=True)
            return

        raw_id = str(ctx.option("message_id") or "").strip()
        message_id = int(raw_id) if raw_id.isdigit() else None
        if sub == "create":
            require_verified = bool(ctx.option("require_verified"))
            if require_verified and not self.eligibility.role_ids(ctx.actor.guild_id):
                await ctx.reply(NO_VERIFIED_ROLES_TEXT, ephemeral=True)
                return
            suffix = ":verified" if require_verified else ""
            modal = build_modal(
                "Create a Giveaway",
                f"giveaway:modal:{getattr(ctx.interaction, 'id', 0)}{suffix}",
                [
                    ModalField("duration", "Duration", placeholder="Ex: 10 minutes"),
                    ModalField("winners", "Number of Winners", placeholder="1"),
                    ModalField("prize", "Prize"),
                    ModalField("description", "Description", paragraph=True, required=False),
                ],
            )
            await ctx.send_modal(modal)
        elif sub == "end":
            if message_id is None:
                await self._picker(ctx, "end", "Select a giveaway to end:")
            elif not self.manager.is_active(record_id=message_id):
                await ctx.reply(NOT_ACTIVE_TEXT, ephemeral=True)
            else:
                await ctx.reply(f"Ending giveaway {message_id}...", ephemeral=True)
                await self.finalize(message_id)
        elif sub == "delete":
            if message_id is None:
                await self._picker(ctx, "delete", "Select a giveaway to cancel:")
                return
            result = await self.cancel(message_id)
            await ctx.reply(f"Giveaway {message_id} cancelled." if result.ok else NOT_ACTIVE_TEXT, ephemeral=True)
        else:
            if message_id is None:
                await ctx.reply("Please provide a valid giveaway message ID.", ephemeral=True)
                return
            result = await self.reroll(message_id)
            if result.ok:
                await ctx.reply(f"Rerolled giveaway {message_id}.", ephemeral=True)
            else:
                await ctx.reply(REROLL_NOTES.get(result.reason, "That giveaway could not be rerolled."), ephemeral=True)

    async def autocomplete(self, ctx: SlashContext, focused: str, value: str) -> list[tuple[str, str]]:
        if not ctx.actor.in_guild or not ctx.actor.is_admin_or_privileged:
            return []
        if ctx.subcommand not in {"end", "delete", "reroll"}:
            return []
        needle = value.lower()
        records = await self.repo.list_open_giveaways(ctx.actor.guild_id)
        matches = [
            record for record in records
            if not needle or needle in (record.prize or "").lower() or needle in str(record.message_id)
        ]
        return [((record.prize or "Giveaway")[:100], str(record.message_id)) for record in matches[:25]]

    async def on_pick(self, ctx: ComponentContext) -> None:
        if not ctx.actor.is_admin_or_privileged:
            await ctx.reply(NO_PERMISSION_TEXT)
            return
        raw = ctx.values[0] if ctx.values else ""
        if not raw.isdigit():
            return
        message_id = int(raw)
        action = ctx.custom_id.rsplit(":", 1)[-1]
        if action == "end":
            if not self.manager.is_active(record_id=message_id):
                await ctx.reply(NOT_ACTIVE_TEXT)
                return
            await ctx.reply(f"Ending giveaway {message_id}...")
            await self.finalize(message_id)
        elif action == "delete":
            result = await self.cancel(message_id)
            await ctx.reply(f"Giveaway {message_id} cancelled." if result.ok else NOT_ACTIVE_TEXT)

    async def help_cmd(self, ctx: CommandContext) -> None:
        if ctx.rest.strip().lower() == "help":
            await ctx.reply(HELP_TEXT)

    def register(self, register) -> None:
        id_option = "Message ID of the giveaway"
        register.slash(
            slash_command(
                "giveaway",
                "Manage giveaways",
                [
                    subcommand("create", "Create a giveaway (modal)", [boolean_option("require_verified", "Require the verified role")]),
                    subcommand("list", "List active giveaways in this server"),
                    subcommand("end", "End a giveaway early", [string_option("message_id", id_option, autocomplete=True)]),
                    subcommand("delete", "Cancel a giveaway", [string_option("message_id", id_option, autocomplete=True)]),
                    subcommand("reroll", "Reroll winners for a giveaway", [string_option("message_id", id_option, required=True, autocomplete=True)]),
                ],
            ),
            self.command,
            autocomplete=self.autocomplete,
        )
        register.component("giveaway:join:", self.on_join)
        register.component("giveaway:leave:", self.on_leave)
        register.component("giveaway:pick:", self.on_pick)
        register.component("giveaway:modal:", self.on_modal)
        register("!giveaway", self.help_cmd, "!giveaway help — show /giveaway usage", category="Contests", hide_from_help=True)
