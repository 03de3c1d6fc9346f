from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from bot.config import DEFAULT_LOTTO_THREAD_URL
from commands.context import ActorContext, CommandContext
from db.repository import LottoTrackingRecord, Repository
from services.game_sessions import GameManager, Scope
from utils.text import split_tokens


log = logging.getLogger("spectreon.games")

THREAD_URL_PATTERN = re.compile(r"^https?://\S+$", re.IGNORECASE)
USAGE_TEXT = "❌ Usage: `!lottostart [thread_url] [postnumber]`"


@dataclass(frozen=True, slots=True)
class LottoStartArgs:
    thread_url: str
    start_post_id: int | None = None


def parse_start_args(rest: str, default_url: str) -> tuple[LottoStartArgs | None, str | None]:
    url = default_url
    post_id = None
    for token in split_tokens(rest):
        if THREAD_URL_PATTERN.match(token):
            url = token
        elif token.isdigit() and int(token) > 0 and post_id is None:
            post_id = int(token)
        else:
            return None, USAGE_TEXT
    return LottoStartArgs(thread_url=url, start_post_id=post_id), None


def describe(record: LottoTrackingRecord) -> str:
    start = f" from post #{record.start_post_id}" if record.start_post_id else ""
    return f"Tracking {record.thread_url}{start}."


class LottoTracker:
    """Per-guild lotto thread tracking state, persisted across restarts."""

    def __init__(
        self,
        repo: Repository,
        *,
        default_url: str = DEFAULT_LOTTO_THREAD_URL,
        manager: GameManager | None = None,
    ) -> None:
        self.repo = repo
        self.default_url = default_url
        self.manager = manager or GameManager("lotto", "Lotto tracking", scope=Scope.GUILD)

    async def boot(self) -> int:
        try:
            records = await self.repo.list_active_lotto()
        except Exception:
            log.exception("Failed to load lotto tracking")
            return 0
        restored = 0
        for record in records:
            actor = ActorContext(guild_id=record.guild_id, user_id=0, channel_id=None)
            if self.manager.try_start(actor, record).ok:
                restored += 1
        log.info("Lotto tracking restored: %s", restored)
        return restored

    def current(self, guild_id: int) -> LottoTrackingRecord | None:
        session = self.manager.get_state(ActorContext(guild_id=guild_id, user_id=0, channel_id=None))
        return session.data if session is not None else None

    async def start(self, actor: ActorContext, args: LottoStartArgs) -> LottoTrackingRecord:
        record = LottoTrackingRecord(
            guild_id=actor.guild_id,
            thread_url=args.thread_url,
            active=True,
            start_post_id=args.start_post_id,
        )
        await self.repo.upsert_lotto(record)
        # restarting replaces the tracked thread
        self.manager.stop(actor)
        self.manager.try_start(actor, record)
        log.info("Lotto tracking started guild=%s url=%s", actor.guild_id, args.thread_url)
        return record

    async def stop(self, actor: ActorContext) -> bool:
        session = self.manager.stop(actor)
        if session is None:
            return False
        record: LottoTrackingRecord = session.data
        record.active = False
        await self.repo.upsert_lotto(record)
        log.info("Lotto tracking stopped guild=%s", actor.guild_id)
        return True

    async def start_cmd(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild or not ctx.actor.is_admin_or_privileged:
            return
        args, error = parse_start_args(ctx.rest, self.default_url)
        if error:
            await ctx.reply(error)
            return
        try:
            record = await self.start(ctx.actor, args)
        except Exception:
            log.exception("Could not persist lotto tracking guild=%s", ctx.actor.guild_id)
            await ctx.reply("❌ Unable to save lotto tracking state. Try again later.")
            return
        await ctx.reply(f"✅ Lotto tracking enabled. {describe(record)}")

    async def stop_cmd(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild or not ctx.actor.is_admin_or_privileged:
            return
        try:
            stopped = await self.stop(ctx.actor)
        except Exception:
            log.exception("Could not clear lotto tracking guild=%s", ctx.actor.guild_id)
            await ctx.reply("❌ Unable to clear persisted lotto state. Try again later.")
            return
        if not stopped:
            await ctx.reply("❌ No active lotto tracking.")
            return
        await ctx.reply("✅ Lotto tracking stopped. Use `!lottostart` to begin again.")

    async def status_cmd(self, ctx: CommandContext) -> None:
        if not ctx.actor.in_guild:
            return
        record = self.current(ctx.actor.guild_id)
        if record is None:
            await ctx.reply("❌ No active lotto tracking. Use `!lottostart` to begin.")
            return
        await ctx.reply(f"🎟️ {describe(record)}")

    def register(self, register) -> None:
        register("!lottostart", self.start_cmd, "!lottostart [thread_url] [postnumber] — start lotto tracking", category="Contests", admin=True)
        register("!lottostop", self.stop_cmd, "!lottostop — stop lotto tracking", category="Contests", admin=True)
        register("!lottostatus", self.status_cmd, "!lottostatus — show lotto tracking", category="Contests")
