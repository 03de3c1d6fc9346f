from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from commands.context import ActorContext
from utils.text import channel_mention, mention


log = logging.getLogger("spectreon.sessions")

GLOBAL_KEY = "__global__"
GUILD_ONLY_TEXT = "This can only be used in a server."

TimerCallback = Callable[[], Any]


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Any:
        ...


class Scope(str, Enum):
    GUILD = "guild"
    GLOBAL = "global"
    RECORD = "record"


class TimerHandle:
    __slots__ = ("fn", "interval", "cancelled", "_loop_handle")

    def __init__(self, fn: TimerCallback, interval: float | None = None) -> None:
        self.fn = fn
        self.interval = interval
        self.cancelled = False
        self._loop_handle: Any = None

    def _cancel(self) -> None:
        self.cancelled = True
        if self._loop_handle is not None:
            self._loop_handle.cancel()
            self._loop_handle = None


class TimerBag:
    """Owns every delayed or periodic callback of one session.

    Cancelling goes through the event loop handle, so a cancelled timer never
    fires. Once closed, new registrations come back already cancelled.
    """

    def __init__(self, scheduler: Scheduler | None = None) -> None:
        self._scheduler = scheduler
        self._handles: set[TimerHandle] = set()
        self._tasks: set[asyncio.Future] = set()
        self.closed = False

    def __len__(self) -> int:
        return len(self._handles)

    def _loop(self) -> Scheduler:
        return self._scheduler or asyncio.get_running_loop()

    def set_timeout(self, fn: TimerCallback, delay: float) -> TimerHandle:
        return self._register(TimerHandle(fn), delay)

    def set_interval(self, fn: TimerCallback, interval: float) -> TimerHandle:
        interval = max(0.001, float(interval))
        return self._register(TimerHandle(fn, interval), interval)

    def _register(self, handle: TimerHandle, delay: float) -> TimerHandle:
        if self.closed:
            handle.cancelled = True
            return handle
        self._handles.add(handle)
        self._arm(handle, delay)
        return handle

    def _arm(self, handle: TimerHandle, delay: float) -> None:
        handle._loop_handle = self._loop().call_later(max(0.0, float(delay)), self._fire, handle)

    def _fire(self, handle: TimerHandle) -> None:
        if handle.cancelled:
            return
        if handle.interval is None:
            handle._loop_handle = None
            self._handles.discard(handle)
        else:
            self._arm(handle, handle.interval)
        self._invoke(handle.fn)

    def _invoke(self, fn: TimerCallback) -> None:
        try:
            result = fn()
        except Exception:
            log.exception("Timer callback failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Timer task failed", exc_info=exc)

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is None:
            return
        handle._cancel()
        self._handles.discard(handle)

    def clear_all(self) -> None:
        for handle in list(self._handles):
            handle._cancel()
        self._handles.clear()

    def close(self) -> None:
        self.clear_all()
        self.closed = True


@dataclass(slots=True)
class GameSession:
    game_id: str
    key: str
    guild_id: int | None
    channel_id: int | None
    owner_id: int
    timers: TimerBag
    data: Any = None
    created_at: float = 0.0
    active: bool = True


@dataclass(frozen=True, slots=True)
class StartResult:
    ok: bool
    session: GameSession | None = None
    error_text: str | None = None


class GameManager:
    """At most one session per scope key for a single game."""

    def __init__(
        self,
        game_id: str,
        pretty_name: str | None = None,
        *,
        scope: Scope = Scope.GUILD,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.game_id = game_id
        self.label = pretty_name or game_id
        self.scope = scope
        self._scheduler = scheduler
        self._clock = clock
        self._sessions: dict[str, GameSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def now(self) -> float:
        return self._clock()

    def scope_key(self, actor: ActorContext | None, *, record_id: Any = None) -> str | None:
        if self.scope is Scope.GLOBAL:
            return GLOBAL_KEY
        if self.scope is Scope.RECORD:
            return str(record_id) if record_id is not None else None
        if actor is None or actor.guild_id is None:
            return None
        return str(actor.guild_id)

    def try_start(self, actor: ActorContext, data: Any = None, *, record_id: Any = None) -> StartResult:
        # No awaits between the lookup and the insert.
        key = self.scope_key(actor, record_id=record_id)
        if key is None:
            return StartResult(False, None, GUILD_ONLY_TEXT)
        existing = self._sessions.get(key)
        if existing is not None:
            return StartResult(False, existing, self.already_running_text(existing))

        session = GameSession(
            game_id=self.game_id,
            key=key,
            guild_id=actor.guild_id,
            channel_id=actor.channel_id,
            owner_id=actor.user_id,
            timers=TimerBag(self._scheduler),
            data=data,
            created_at=self._clock(),
        )
        self._sessions[key] = session
        log.info("Session started game=%s key=%s channel=%s owner=%s", self.game_id, key, actor.channel_id, actor.user_id)
        return StartResult(True, session, None)

    def get_state(self, actor: ActorContext | None = None, *, record_id: Any = None) -> GameSession | None:
        key = self.scope_key(actor, record_id=record_id)
        if key is None:
            return None
        return self._sessions.get(key)

    def is_active(self, actor: ActorContext | None = None, *, record_id: Any = None) -> bool:
        return self.get_state(actor, record_id=record_id) is not None

    def stop(
        self,
        actor: ActorContext | None = None,
        *,
        record_id: Any = None,
        session: GameSession | None = None,
    ) -> GameSession | None:
        """Cancel the session's timers and free its scope key. Idempotent."""
        if session is not None:
            key = session.key
            if self._sessions.get(key) is not session:
                session.timers.close()
                session.active = False
                return None
        else:
            key = self.scope_key(actor, record_id=record_id)
            if key is None:
                return None
        current = self._sessions.get(key)
        if current is None:
            return None
        current.timers.close()
        current.active = False
        del self._sessions[key]
        log.info("Session stopped game=%s key=%s", self.game_id, key)
        return current

    def stop_all(self) -> int:
        sessions = list(self._sessions.values())
        for session in sessions:
            self.stop(session=session)
        return len(sessions)

    def sessions(self) -> list[GameSession]:
        return list(self._sessions.values())

    def is_same_channel(self, actor: ActorContext, session: GameSession | None) -> bool:
        if session is None or session.channel_id is None:
            return True
        return session.channel_id == actor.channel_id

    def already_running_text(self, session: GameSession | None) -> str:
        if session is None:
            return f"{self.label} is already running."
        where = f" in {channel_mention(session.channel_id)}" if session.channel_id else ""
        by = f" (started by {mention(session.owner_id)})" if session.owner_id else ""
        return f"⚠️ {self.label} is already running{where}{by}.\nTry `!{self.game_id}status` or `!{self.game_id}help`."

    def no_active_text(self) -> str:
        return f"No active {self.label}.\nTry `!{self.game_id}` to start or `!{self.game_id}help` for commands."


def can_manage(actor: ActorContext, session: GameSession | None) -> bool:
    if session is None:
        return False
    if session.owner_id and actor.user_id == session.owner_id:
        return True
    return actor.is_admin_or_privileged


async def require_can_manage(ctx: Any, session: GameSession, *, label: str = "game", denied_text: str | None = None) -> bool:
    if can_manage(ctx.actor, session):
        return True
    await ctx.reply(denied_text or f"🚫 Only the host/admin can manage this {label}.")
    return False


async def require_same_channel(ctx: Any, session: GameSession | None, manager: GameManager) -> bool:
    if session is None or manager.is_same_channel(ctx.actor, session):
        return True
    expected = channel_mention(session.channel_id) if session.channel_id else "the game channel"
    await ctx.reply(f"🚫 This game is running in {expected}. Please use commands there.")
    return False


async def require_active(ctx: Any, manager: GameManager) -> GameSession | None:
    session = manager.get_state(ctx.actor)
    if session is not None:
        return session
    await ctx.reply(manager.no_active_text())
    return None


SessionAction = Callable[[Any, GameSession], Awaitable[None]]


def make_game_qol(
    register: Any,
    manager: GameManager,
    *,
    help_text: str | None = None,
    render_status: Callable[[GameSession], str] | None = None,
    cancel: SessionAction | None = None,
    end: SessionAction | None = None,
    category: str = "Games",
) -> None:
    """Registers the ``help``/``status``/``cancel``/``end`` commands every game shares."""
    game_id = manager.game_id
    label = manager.label

    async def help_cmd(ctx) -> None:
        await ctx.reply(help_text or f"No help text available for {label}.")

    async def status_cmd(ctx) -> None:
        session = manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply(manager.no_active_text())
            return
        if not await require_same_channel(ctx, session, manager):
            return
        if render_status is not None:
            text = render_status(session)
        else:
            text = f"✅ {label} is running in {channel_mention(session.channel_id)}."
        await ctx.reply(text)

    async def managed(ctx, action: SessionAction | None) -> None:
        session = manager.get_state(ctx.actor)
        if session is None:
            await ctx.reply(manager.no_active_text())
            return
        if not await require_same_channel(ctx, session, manager):
            return
        if not await require_can_manage(ctx, session, label=label):
            return
        if action is not None:
            await action(ctx, session)
            return
        manager.stop(session=session)
        await ctx.reply(f"🛑 {label} cancelled.")

    async def cancel_cmd(ctx) -> None:
        await managed(ctx, cancel)

    async def end_cmd(ctx) -> None:
        await managed(ctx, end)

    register(f"!{game_id}help", help_cmd, f"!{game_id}help — show {label} help", category=category, help_tier="primary")
    register(f"!{game_id}status", status_cmd, f"!{game_id}status — show {label} status", category=category, help_tier="primary")
    register(f"!cancel{game_id}", cancel_cmd, f"!cancel{game_id} — cancel the current {label}", category=category, help_tier="primary")
    if end is not None:
        register(f"!end{game_id}", end_cmd, f"!end{game_id} — end the current {label}", category=category, hide_from_help=True)
