from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from bot.permissions import PrivilegedUsers, actor_for_member
from commands.context import ActorContext, SlashContext
from commands.registry import (
    CHANNEL_BLOCKED,
    EXPOSURE_OFF,
    HANDLER_ERROR,
    UNKNOWN_COMMAND,
    WRONG_PREFIX,
    CommandRegistry,
    DispatchResult,
)
from commands.slash import slash_command, string_option, subcommand
from contests.rng import parse_elim_seconds, parse_roll_args
from db.repository import Repository, ScheduledCommandRecord
from platform_io.gateway import PlatformGateway
from platform_io.safety import safe_send
from platform_io.task_registry import DependencyRetry, RetryPolicy
from services.game_sessions import GameManager, GameSession, Scope
from utils.text import channel_mention, mention, truncate
from utils.time_utils import discord_timestamp, parse_relative_delay


log = logging.getLogger("spectreon.scheduler")

MAX_SCHEDULE_SECONDS = 30 * 24 * 60 * 60
MAX_PREVIEW_JOBS = 25
MAX_CMD_PREVIEW = 72

ALLOWED_LOGICAL_IDS = frozenset({"rng.roll", "rng.choose", "rng.elim", "rng.awesome"})
ALLOWED_CANONICAL = frozenset({"!coinflip"})

HELP_TEXT = "\n".join(
    [
        "**/schedule help**",
        "",
        "**Subcommands:**",
        "• `/schedule create time:<10m|2h|3d> command:<!/...>`",
        "• `/schedule list`",
        "• `/schedule cancel schedule_id:<id>`",
        "",
        "**Rules:**",
        "• Admin/privileged only.",
        "• Time must be relative and <= 30 days.",
        "• Scheduled command must start with `!` or `?`.",
        "",
        "**Allowed commands:**",
        "• `!/?roll`, `!/?choose`, `!/?elim`, `!/?awesome`",
        "• `!coinflip`",
    ]
)


@dataclass(frozen=True, slots=True)
class SplitCommand:
    text: str
    cmd: str
    rest: str


def split_command_text(raw: str | None) -> tuple[SplitCommand | None, str | None]:
    text = (raw or "").strip()
    if not text:
        return None, "Please provide a command to schedule."
    if not text.startswith(("!", "?")):
        return None, "Scheduled commands must start with `!` or `?`."
    cmd, _, rest = text.partition(" ")
    return SplitCommand(text=text, cmd=cmd.lower(), rest=rest), None


def preflight_reason_text(result: DispatchResult | None) -> str:
    reason = result.reason if result is not None else None
    if reason == UNKNOWN_COMMAND:
        return "Command not found."
    if reason == WRONG_PREFIX:
        return "That prefix is not allowed for this command in this server."
    if reason == EXPOSURE_OFF:
        return "That command is disabled in this server."
    if reason == CHANNEL_BLOCKED:
        return result.notify_text or "That command is not allowed in this channel."
    if reason == HANDLER_ERROR:
        return "The command failed while running."
    return "Command preflight failed."


def is_allowed_target(result: DispatchResult) -> bool:
    if result.expose_logical_id in ALLOWED_LOGICAL_IDS:
        return True
    return (result.canonical_cmd or "").lower() in ALLOWED_CANONICAL


def validate_command_args(result: DispatchResult, rest: str) -> str | None:
    """Stricter argument checks than the commands themselves apply at run time."""
    logical_id = result.expose_logical_id
    if logical_id == "rng.roll":
        spec = parse_roll_args(rest)
        if spec is None or spec.sides < 1:
            return "Invalid roll format. Use `NdM` (example: `1d100`)."
        if spec.no_repeat and spec.count > spec.sides:
            return "Invalid roll: `norepeat` requires `N <= M`."
        return None
    if logical_id == "rng.choose":
        return None if rest.split() else "Invalid choose format. Include at least one option."
    if logical_id == "rng.elim":
        parts = rest.split()
        if len(parts) < 3:
            return "Invalid elim format. Use `?elim <1-30s> <item1> <item2> [...]`."
        _, error = parse_elim_seconds(parts[0])
        return error
    if logical_id == "rng.awesome" or (result.canonical_cmd or "").lower() in ALLOWED_CANONICAL:
        return None
    return "That command is not supported by `/schedule`."


@dataclass(slots=True)
class ScheduledMessage:
    """Stand-in for a chat message when a stored command is replayed."""

    content: str
    channel: Any
    author: Any
    guild: Any = None
    mentions: list[Any] = field(default_factory=list)

    async def reply(self, content: str | None = None, **kwargs: Any) -> Any | None:
        return await safe_send(self.channel, content, **kwargs)


@dataclass(slots=True)
class JobState:
    job: ScheduledCommandRecord
    retry: DependencyRetry | None = None


class ScheduledCommandService:
    def __init__(
        self,
        repo: Repository,
        gateway: PlatformGateway,
        registry: CommandRegistry,
        *,
        privileged: PrivilegedUsers | None = None,
        retry_policy: RetryPolicy | None = None,
        manager: GameManager | None = None,
    ) -> None:
        self.repo = repo
        self.gateway = gateway
        self.registry = registry
        self.privileged = privileged or PrivilegedUsers()
        self.retry_policy = retry_policy or RetryPolicy()
        self.manager = manager or GameManager("schedule", "Scheduled command", scope=Scope.RECORD)

    def now_ms(self) -> int:
        return int(self.manager.now() * 1000)

    # scheduling

    def arm(self, job: ScheduledCommandRecord) -> GameSession | None:
        actor = ActorContext(guild_id=job.guild_id, user_id=job.creator_user_id, channel_id=job.channel_id)
        result = self.manager.try_start(actor, JobState(job=job), record_id=job.id)
        if not result.ok:
            return None
        session = result.session
        state: JobState = session.data
        state.retry = DependencyRetry(
            self.retry_policy,
            session.timers,
            is_ready=self.gateway.is_ready,
            on_ready=lambda: self.finalize_job(session),
            on_give_up=lambda: self.give_up(session),
            name=f"schedule:{job.id}",
        )
        delay = max(0, job.execute_at_ms - self.now_ms()) / 1000
        session.timers.set_timeout(state.retry.run, delay)
        return session

    async def boot(self) -> int:
        try:
            jobs = await self.repo.list_scheduled_commands()
        except Exception:
            log.exception("Failed to load scheduled commands")
            return 0
        armed = sum(1 for job in jobs if self.arm(job) is not None)
        log.info("Scheduled commands restored: %s", armed)
        return armed

    def disarm(self, job_id: int) -> None:
        self.manager.stop(record_id=job_id)

    # execution

    async def notify_failure(self, job: ScheduledCommandRecord, reason: str) -> None:
        content = (
            f"⚠️ Scheduled command #{job.id} failed.\n"
            f"Command: `{job.command_text}`\n"
            f"When: {discord_timestamp(job.execute_at_ms, 'f')}\n"
            f"Channel: {channel_mention(job.channel_id)}\n"
            f"Reason: {reason}"
        )
        if not await self.gateway.send_dm(job.creator_user_id, content):
            log.warning("Could not DM creator of scheduled command #%s reason=%s", job.id, reason)

    async def execute(self, job: ScheduledCommandRecord) -> str | None:
        """Replays ``job``. Returns the failure reason, or None on success."""
        if not self.gateway.has_guild(job.guild_id):
            return "Server is unavailable."
        channel = await self.gateway.fetch_channel(job.channel_id)
        if channel is None or not hasattr(channel, "send"):
            return "Target channel is unavailable."
        member = await self.gateway.fetch_member(job.guild_id, job.creator_user_id)
        if member is None:
            return "Command creator is no longer in the server."
        actor = actor_for_member(job.guild_id, job.channel_id, member, self.privileged)
        if not actor.is_admin_or_privileged:
            return "Creator no longer has admin/privileged permission."

        split, error = split_command_text(job.command_text)
        if error:
            return error
        message = ScheduledMessage(content=split.text, channel=channel, author=member, guild=getattr(channel, "guild", None))
        preflight = await self.registry.dispatch_message(message, actor, dry_run=True)
        if not preflight.ok:
            return preflight_reason_text(preflight)
        if not is_allowed_target(preflight):
            return "That command is no longer allowed by the scheduler."
        error = validate_command_args(preflight, split.rest)
        if error:
            return error

        result = await self.registry.dispatch_message(message, actor)
        if not result.ok:
            return preflight_reason_text(result)
        return None

    async def finalize_job(self, session: GameSession) -> None:
        job = session.data.job
        try:
            reason = await self.execute(job)
        except Exception:
            log.exception("Scheduled command #%s failed unexpectedly", job.id)
            reason = "Unexpected scheduler error."
        try:
            if reason:
                await self.notify_failure(job, reason)
        finally:
            await self._delete(job)
            self.manager.stop(session=session)

    async def give_up(self, session: GameSession) -> None:
        job = session.data.job
        try:
            await self.notify_failure(job, "Bot client is not ready.")
        finally:
            await self._delete(job)
            self.manager.stop(session=session)

    async def _delete(self, job: ScheduledCommandRecord) -> None:
        try:
            await self.repo.delete_scheduled_command(job.id)
        except Exception:
            log.warning("Could not delete scheduled command #%s", job.id, exc_info=True)

    # /schedule

    async def create(self, ctx: SlashContext) -> None:
        seconds, error = parse_relative_delay(ctx.option("time"), max_seconds=MAX_SCHEDULE_SECONDS)
        if error:
            await ctx.reply(f"❌ {error}", ephemeral=True)
            return
        split, error = split_command_text(ctx.option("command"))
        if error:
            await ctx.reply(f"❌ {error}", ephemeral=True)
            return

        message = ScheduledMessage(content=split.text, channel=ctx.channel, author=getattr(ctx.interaction, "user", None))
        preflight = await self.registry.dispatch_message(message, ctx.actor, dry_run=True)
        if not preflight.ok:
            await ctx.reply(f"❌ {preflight_reason_text(preflight)}", ephemeral=True)
            return
        if not is_allowed_target(preflight):
            await ctx.reply("❌ That command is not allowed by `/schedule`.", ephemeral=True)
            return
        error = validate_command_args(preflight, split.rest)
        if error:
            await ctx.reply(f"❌ {error}", ephemeral=True)
            return

        now = self.now_ms()
        execute_at_ms = now + seconds * 1000
        try:
            job = await self.repo.create_scheduled_command(
                guild_id=ctx.actor.guild_id,
                channel_id=ctx.actor.channel_id,
                creator_user_id=ctx.actor.user_id,
                command_text=split.text,
                execute_at_ms=execute_at_ms,
                created_at_ms=now,
            )
        except Exception:
            log.exception("Failed to store scheduled command guild=%s", ctx.actor.guild_id)
            await ctx.reply("❌ Failed to create schedule.", ephemeral=True)
            return

        self.arm(job)
        await ctx.reply(
            f"✅ Scheduled command **#{job.id}** for {discord_timestamp(execute_at_ms, 'f')} ({discord_timestamp(execute_at_ms, 'R')}).\n"
            f"Command: `{split.text}`",
            ephemeral=True,
        )

    async def list_jobs(self, ctx: SlashContext) -> None:
        jobs = await self.repo.list_scheduled_commands(ctx.actor.guild_id)
        if not jobs:
            await ctx.reply("No scheduled commands found for this server.", ephemeral=True)
            return
        lines = [
            f"#{job.id} • {discord_timestamp(job.execute_at_ms, 'R')} • {channel_mention(job.channel_id)} • "
            f"{mention(job.creator_user_id)} • `{truncate(job.command_text, MAX_CMD_PREVIEW)}`"
            for job in jobs[:MAX_PREVIEW_JOBS]
        ]
        if len(jobs) > MAX_PREVIEW_JOBS:
            lines.append(f"...and {len(jobs) - MAX_PREVIEW_JOBS} more.")
        await ctx.reply(f"Scheduled commands ({len(jobs)}):\n" + "\n".join(lines), ephemeral=True)

    async def cancel(self, ctx: SlashContext) -> None:
        raw = str(ctx.option("schedule_id") or "").strip()
        job_id = int(raw) if raw.isdigit() and int(raw) > 0 else None
        if job_id is None:
            await ctx.reply("❌ Please provide a valid `schedule_id`.", ephemeral=True)
            return
        job = await self.repo.get_scheduled_command(job_id)
        if job is None or job.guild_id != ctx.actor.guild_id:
            await ctx.reply("No scheduled command found with that ID in this server.", ephemeral=True)
            return
        await self.repo.delete_scheduled_command(job_id)
        self.disarm(job_id)
        await ctx.reply(f"✅ Cancelled scheduled command #{job_id}.", ephemeral=True)

    async def command(self, ctx: SlashContext) -> None:
        if not ctx.actor.in_guild or ctx.actor.channel_id is None:
            await ctx.reply("This command must be used in a server channel.", ephemeral=True)
            return
        handlers = {"create": self.create, "list": self.list_jobs, "cancel": self.cancel}
        if ctx.subcommand == "help":
            await ctx.reply(HELP_TEXT, ephemeral=True)
            return
        handler = handlers.get(ctx.subcommand or "")
        if handler is None:
            await ctx.reply("Unknown subcommand.", ephemeral=True)
            return
        await handler(ctx)

    def register(self, register) -> None:
        register.slash(
            slash_command(
                "schedule",
                "Schedule approved contest commands",
                [
                    subcommand(
                        "create",
                        "Schedule a one-time command run",
                        [
                            string_option("time", "Relative delay (e.g. 10m, 2h, 3d)", required=True),
                            string_option("command", "Bang/q contest command to execute later", required=True),
                        ],
                    ),
                    subcommand("list", "List pending scheduled commands in this server"),
                    subcommand("cancel", "Cancel a scheduled command by ID", [string_option("schedule_id", "ID from /schedule list", required=True)]),
                    subcommand("help", "Show scheduler usage and allowed commands"),
                ],
            ),
            self.command,
            admin=True,
        )
