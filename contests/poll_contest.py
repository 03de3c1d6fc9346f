from __future__ import annotations

import datetime
import logging
import math
import random
import re
from dataclasses import dataclass

import discord

from commands.context import ActorContext, CommandContext, SlashContext
from commands.slash import boolean_option, slash_command, string_option, subcommand
from db.repository import PollContestRecord, Repository
from platform_io.gateway import PlatformGateway, PollAnswerSnapshot, PollSnapshot
from platform_io.safety import safe_send
from platform_io.task_registry import DependencyRetry, RetryPolicy
from services.game_sessions import GameManager, GameSession, Scope, can_manage
from utils.text import chunk_lines, mention, plural
from utils.time_utils import discord_timestamp, parse_duration_seconds


log = logging.getLogger("spectreon.poll")

MAX_DURATION_SECONDS = 24 * 60 * 60
MIN_OPTIONS = 2
MAX_OPTIONS = 10
FINALIZE_GRACE_SECONDS = 2
WATCH_INTERVAL_SECONDS = 10
RECHECK_AFTER_GIVE_UP_SECONDS = 15 * 60
OPTION_SPLIT = re.compile(r"[|;\n]")
NO_PERMISSION_TEXT = "You do not have permission to run this command."
HELP_TEXT = (
    "Use `/pollcontest create question:<text> options:<a | b | c> duration:<10m>` with "
    "`run_choose` and/or `get_lists` enabled. Manage with `/pollcontest list` or "
    "`/pollcontest cancel message_id:<id>`."
)
CANCEL_NOTES = {
    "not_found": "No active poll found for that message ID.",
    "not_owner": "You can only cancel polls you created.",
}


@dataclass(frozen=True, slots=True)
class PollResult:
    ok: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class PollSettings:
    question: str
    options: tuple[str, ...]
    duration_seconds: int
    run_choose: bool = False
    get_lists: bool = False
    winners_only: bool = False


@dataclass(slots=True)
class PollState:
    record: PollContestRecord
    retry: DependencyRetry | None = None


@dataclass(frozen=True, slots=True)
class TallyPlan:
    answers: tuple[PollAnswerSnapshot, ...]
    show_lists: bool
    run_choose: bool
    notes: tuple[str, ...] = ()


def parse_options(raw: str | None) -> list[str]:
    return [part.strip() for part in OPTION_SPLIT.split(raw or "") if part.strip()]


def parse_settings(
    question: str | None,
    options: str | None,
    duration: str | None,
    *,
    run_choose: bool = False,
    get_lists: bool = False,
    winners_only: bool = False,
) -> tuple[PollSettings | None, str | None]:
    text = (question or "").strip()
    if not text:
        return None, "Please provide a question."
    answers = parse_options(options)
    if len(answers) < MIN_OPTIONS:
        return None, "Please provide at least two poll options."
    if len(answers) > MAX_OPTIONS:
        return None, "Please provide no more than 10 poll options."
    seconds = parse_duration_seconds(duration)
    if seconds is None:
        return None, "Please provide a valid duration (e.g. 10m, 2h, 30s)."
    if seconds > MAX_DURATION_SECONDS:
        return None, "Poll duration cannot exceed 24 hours."
    if not run_choose and not get_lists:
        return None, "Enable run_choose or get_lists to create a poll contest."
    settings = PollSettings(
        question=text,
        options=tuple(answers),
        duration_seconds=seconds,
        run_choose=run_choose,
        get_lists=get_lists,
        # winners_only narrows the choose step and means nothing without it
        winners_only=winners_only and run_choose,
    )
    return settings, None


def plan_tally(record: PollContestRecord, answers: list[PollAnswerSnapshot]) -> TallyPlan:
    """Which answers to report, and whether to choose or list, given the vote counts."""
    if not record.winners_only or not answers:
        return TallyPlan(tuple(answers), record.get_lists, record.run_choose)
    top = max(len(answer.voter_ids) for answer in answers)
    leaders = [answer for answer in answers if len(answer.voter_ids) == top]
    if len(leaders) != 1:
        notes = (
            "⚠️ Tie for most votes; showing results for all options.",
            "⚠️ Falling back to voter lists so the host can decide.",
        )
        return TallyPlan(tuple(answers), True, False, notes)
    return TallyPlan(tuple(leaders), record.get_lists, record.run_choose)


def votes_line(answer: PollAnswerSnapshot, index: int) -> str:
    label = answer.label.strip() or f"Option {index + 1}"
    return f"**{label}** — {plural(len(answer.voter_ids), 'vote')}"


class PollContestService:
    def __init__(
        self,
        repo: Repository,
        gateway: PlatformGateway,
        *,
        retry_policy: RetryPolicy | None = None,
        manager: GameManager | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.repo = repo
        self.gateway = gateway
        self.retry_policy = retry_policy or RetryPolicy()
        self.manager = manager or GameManager("pollcontest", "Poll contest", scope=Scope.RECORD)
        self.rng = rng or random.Random()

    def now_ms(self) -> int:
        return int(self.manager.now() * 1000)

    def arm(self, record: PollContestRecord) -> GameSession | None:
        actor = ActorContext(guild_id=record.guild_id, user_id=record.owner_id, channel_id=record.channel_id)
        result = self.manager.try_start(actor, PollState(record=record), record_id=record.message_id)
        if not result.ok:
            return None
        session = result.session
        self._arm_completion(session, max(0, record.ends_at_ms - self.now_ms()) / 1000 + FINALIZE_GRACE_SECONDS)
        session.timers.set_interval(lambda: self.check_status(session), WATCH_INTERVAL_SECONDS)
        return session

    def _arm_completion(self, session: GameSession, delay: float) -> None:
        state: PollState = session.data
        state.retry = DependencyRetry(
            self.retry_policy,
            session.timers,
            is_ready=self.gateway.is_ready,
            on_ready=lambda: self.process(session),
            on_give_up=lambda: self._recheck_later(session),
            name=f"poll:{state.record.message_id}",
        )
        session.timers.set_timeout(state.retry.run, delay)

    def _recheck_later(self, session: GameSession) -> None:
        if not session.active:
            return
        log.error(
            "Poll contest %s could not complete; client still not ready. Rechecking in %ss",
            session.data.record.message_id,
            RECHECK_AFTER_GIVE_UP_SECONDS,
        )
        self._arm_completion(session, RECHECK_AFTER_GIVE_UP_SECONDS)

    async def boot(self) -> int:
        try:
            records = await self.repo.list_poll_contests()
        except Exception:
            log.exception("Failed to load poll contests")
            return 0
        armed = sum(1 for record in records if self.arm(record) is not None)
        log.info("Poll contests restored: %s", armed)
        return armed

    async def check_status(self, session: GameSession) -> None:
        if not session.active or not self.gateway.is_ready():
            return
        record: PollContestRecord = session.data.record
        snapshot = await self.gateway.fetch_poll_snapshot(record.channel_id, record.message_id)
        if snapshot is None or not session.active:
            return
        if snapshot.finalized or record.ends_at_ms <= self.now_ms():
            await self.process(session)

    async def _voter_name(self, guild_id: int, user_id: int) -> str:
        member = await self.gateway.fetch_member(guild_id, user_id)
        name = getattr(member, "display_name", None) or getattr(member, "name", None)
        return str(name) if name else str(user_id)

    async def _send_chunks(self, channel, header: str, lines: list[str]) -> None:
        for chunk in chunk_lines(header, lines):
            await safe_send(channel, chunk, allowed_mentions=discord.AllowedMentions.none())

    async def process(self, session: GameSession) -> PollResult:
        if not session.active:
            return PollResult(False, "not_found")
        record: PollContestRecord = session.data.record
        self.manager.stop(session=session)
        try:
            return await self._process(record)
        finally:
            await self.repo.delete_poll_contest(record.message_id)

    async def _process(self, record: PollContestRecord) -> PollResult:
        await self.gateway.end_poll(record.channel_id, record.message_id)
        channel = await self.gateway.fetch_channel(record.channel_id)
        snapshot: PollSnapshot | None = await self.gateway.fetch_poll_snapshot(record.channel_id, record.message_id)
        if channel is None or snapshot is None:
            log.warning("Poll %s: message or poll data missing; dropping record", record.message_id)
            return PollResult(False, "message_missing")

        plan = plan_tally(record, snapshot.answers)
        question = snapshot.question or "(untitled poll)"
        result_lines: list[str] = []
        list_lines: list[str] = []
        for answer in plan.answers:
            index = snapshot.answers.index(answer)
            result_lines.append(votes_line(answer, index))
            if plan.run_choose:
                if answer.voter_ids:
                    winner = self.rng.choice(answer.voter_ids)
                    result_lines.append(f"Winner: {mention(winner)} ({winner})")
                else:
                    result_lines.append("Winner: (no votes)")
            if plan.show_lists:
                list_lines.append(votes_line(answer, index))
                if answer.voter_ids:
                    names = [await self._voter_name(record.guild_id, uid) for uid in answer.voter_ids]
                    list_lines.append(", ".join(names))
                else:
                    list_lines.append("No votes.")
                list_lines.append("")
        if plan.notes:
            result_lines.append("")
            result_lines.extend(plan.notes)

        if list_lines and list_lines[-1] == "":
            list_lines.pop()
        if plan.show_lists:
            list_lines.insert(0, f"Poll started by: {mention(record.owner_id)}")
        lists_first = plan.show_lists and record.run_choose
        if lists_first:
            await self._send_chunks(channel, f"📋 Poll voter lists: {question}", list_lines)
        await self._send_chunks(channel, f"📊 Poll results: {question}", result_lines)
        if plan.show_lists and not lists_first:
            await self._send_chunks(channel, f"📋 Poll voter lists: {question}", list_lines)
        log.info("Poll %s processed answers=%s", record.message_id, len(snapshot.answers))
        return PollResult(True)

    async def create(self, ctx: SlashContext, settings: PollSettings) -> PollContestRecord | None:
        channel = ctx.channel
        poll = discord.Poll(
            question=settings.question,
            duration=datetime.timedelta(hours=max(1, math.ceil(settings.duration_seconds / 3600))),
            multiple=False,
        )
        for option in settings.options:
            poll.add_answer(text=option)
        message = await safe_send(channel, poll=poll)
        if message is None:
            return None
        record = PollContestRecord(
            message_id=int(message.id),
            guild_id=ctx.actor.guild_id,
            channel_id=ctx.actor.channel_id,
            owner_id=ctx.actor.user_id,
            ends_at_ms=self.now_ms() + settings.duration_seconds * 1000,
            run_choose=settings.run_choose,
            get_lists=settings.get_lists,
            winners_only=settings.winners_only,
        )
        await self.repo.upsert_poll_contest(record)
        self.arm(record)
        await safe_send(channel, f"⏰ Bot will end this poll at {discord_timestamp(record.ends_at_ms)}.")
        log.info("Poll contest %s created guild=%s", record.message_id, record.guild_id)
        return record

    async def cancel(self, message_id: int, actor: ActorContext) -> PollResult:
        session = self.manager.get_state(record_id=message_id)
        if session is None:
            return PollResult(False, "not_found")
        record: PollContestRecord = session.data.record
        if not can_manage(actor, session):
            return PollResult(False, "not_owner")
        self.manager.stop(session=session)
        await self.repo.delete_poll_contest(message_id)
        await self.gateway.end_poll(record.channel_id, record.message_id)
        channel = await self.gateway.fetch_channel(record.channel_id)
        if channel is not None:
            await safe_send(channel, f"🛑 Poll {message_id} was cancelled.")
        return PollResult(True)

    def list_lines(self, guild_id: int) -> list[str]:
        lines = []
        for session in self.manager.sessions():
            record: PollContestRecord = session.data.record
            if record.guild_id != guild_id:
                continue
            modes = [name for name, on in (("choose", record.run_choose), ("lists", record.get_lists), ("winners only", record.winners_only)) if on]
            lines.append(
                f"{record.message_id} | <#{record.channel_id}> | owner {mention(record.owner_id)} | "
                f"ends {discord_timestamp(record.ends_at_ms, 'R')} | {', '.join(modes)}"
            )
        return lines

    async def command(self, ctx: SlashContext) -> None:
        if not ctx.actor.in_guild:
            await ctx.reply("Poll contests must be created in a server channel.", ephemeral=True)
            return
        sub = ctx.subcommand or ""
        if sub == "create":
            if not ctx.actor.is_admin_or_privileged:
                await ctx.reply(NO_PERMISSION_TEXT, ephemeral=True)
                return
            settings, error = parse_settings(
                ctx.option("question"),
                ctx.option("options"),
                ctx.option("duration"),
                run_choose=bool(ctx.option("run_choose")),
                get_lists=bool(ctx.option("get_lists")),
                winners_only=bool(ctx.option("winners_only")),
            )
            if error:
                await ctx.reply(error, ephemeral=True)
                return
            record = await self.create(ctx, settings)
            if record is None:
                await ctx.reply("Failed to create the poll.", ephemeral=True)
                return
            await ctx.reply(f"✅ Poll started. Bot will end this poll at {discord_timestamp(record.ends_at_ms)}.", ephemeral=True)
        elif sub == "cancel":
            raw = str(ctx.option("message_id") or "").strip()
            if not raw.isdigit():
                await ctx.reply("Please provide a poll message ID.", ephemeral=True)
                return
            result = await self.cancel(int(raw), ctx.actor)
            await ctx.reply("✅ Poll cancelled." if result.ok else CANCEL_NOTES[result.reason], ephemeral=True)
        elif sub == "list":
            lines = self.list_lines(ctx.actor.guild_id)
            await ctx.reply("\n".join(lines) if lines else "No active poll contests.", ephemeral=True)
        else:
            await ctx.reply("Unknown pollcontest subcommand.", ephemeral=True)

    async def cancel_cmd(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild or not ctx.actor.is_admin_or_privileged:
            return
        raw = ctx.rest.strip()
        if not raw.isdigit():
            await ctx.reply("Usage: !cancelpoll <messageId>")
            return
        result = await self.cancel(int(raw), ctx.actor)
        await ctx.reply("✅ Poll cancelled." if result.ok else CANCEL_NOTES[result.reason])

    async def help_cmd(self, ctx: CommandContext) -> None:
        if ctx.rest.strip().lower() == "help":
            await ctx.reply(HELP_TEXT)

    def register(self, register) -> None:
        register.slash(
            slash_command(
                "pollcontest",
                "Create or manage poll contests",
                [
                    subcommand(
                        "create",
                        "Create a poll contest and process results",
                        [
                            string_option("question", "Poll question", required=True, max_length=300),
                            string_option("options", "Answers separated by | (2-10)", required=True),
                            string_option("duration", "Duration (e.g. 10m, 2h, 30s)", required=True),
                            boolean_option("run_choose", "Pick a random voter per answer"),
                            boolean_option("get_lists", "Post voter lists"),
                            boolean_option("winners_only", "Only choose from the winning answer"),
                        ],
                    ),
                    subcommand("cancel", "Cancel a poll contest by message ID", [string_option("message_id", "Message ID of the poll", required=True)]),
                    subcommand("list", "List active poll contests"),
                ],
            ),
            self.command,
        )
        register("!pollcontest", self.help_cmd, "!pollcontest help — show /pollcontest usage", category="Contests", hide_from_help=True)
        register("!cancelpoll", self.cancel_cmd, "!cancelpoll <messageId> — cancel a poll contest", category="Contests", hide_from_help=True)
