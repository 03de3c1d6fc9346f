from __future__ import annotations

import pytest

from services.game_sessions import GUILD_ONLY_TEXT, GameManager, Scope, TimerBag, can_manage, make_game_qol
from commands.registry import CommandRegistry
from fakes import FakeChannel, make_actor, make_text_message


def test_one_session_per_guild(clock):
    manager = GameManager("demo", "Demo", scheduler=clock, clock=clock.time)

    first = manager.try_start(make_actor(1), {"n": 1})
    second = manager.try_start(make_actor(2), {"n": 2})
    other_guild = manager.try_start(make_actor(3, guild_id=555))

    assert first.ok
    assert not second.ok
    assert second.session is first.session
    assert "already running" in second.error_text
    assert other_guild.ok
    assert len(manager) == 2


def test_dm_actor_cannot_start_guild_session(clock):
    manager = GameManager("demo", scheduler=clock, clock=clock.time)
    result = manager.try_start(make_actor(guild_id=None))

    assert not result.ok
    assert result.error_text == GUILD_ONLY_TEXT


def test_global_and_record_scopes(clock):
    bingo = GameManager("bingo", scope=Scope.GLOBAL, scheduler=clock, clock=clock.time)
    assert bingo.try_start(make_actor(guild_id=1)).ok
    assert not bingo.try_start(make_actor(guild_id=2)).ok

    records = GameManager("giveaway", scope=Scope.RECORD, scheduler=clock, clock=clock.time)
    assert records.try_start(make_actor(), record_id=11).ok
    assert records.try_start(make_actor(), record_id=12).ok
    assert not records.try_start(make_actor(), record_id=11).ok
    assert not records.try_start(make_actor()).ok


@pytest.mark.asyncio
async def test_stop_cancels_timers_and_is_idempotent(clock):
    manager = GameManager("demo", scheduler=clock, clock=clock.time)
    session = manager.try_start(make_actor()).session
    fired = []
    session.timers.set_timeout(lambda: fired.append("timeout"), 5)
    session.timers.set_interval(lambda: fired.append("tick"), 2)

    await clock.advance(4.5)
    assert fired == ["tick", "tick"]

    assert manager.stop(make_actor()) is session
    assert manager.stop(make_actor()) is None
    assert manager.stop(session=session) is None
    await clock.advance(30)

    assert fired == ["tick", "tick"]
    assert not session.active
    assert clock.pending == 0
    assert manager.try_start(make_actor()).ok


@pytest.mark.asyncio
async def test_stale_session_stop_does_not_touch_replacement(clock):
    manager = GameManager("demo", scheduler=clock, clock=clock.time)
    old = manager.try_start(make_actor()).session
    manager.stop(session=old)
    new = manager.try_start(make_actor()).session

    manager.stop(session=old)

    assert manager.get_state(make_actor()) is new
    assert new.active


@pytest.mark.asyncio
async def test_coroutine_callbacks_run_as_tasks(clock):
    bag = TimerBag(clock)
    seen = []

    async def later() -> None:
        seen.append("ran")

    bag.set_timeout(later, 1)
    await clock.advance(1)
    assert seen == ["ran"]

    bag.close()
    handle = bag.set_timeout(later, 1)
    assert handle.cancelled
    await clock.advance(5)
    assert seen == ["ran"]


@pytest.mark.asyncio
async def test_failing_timer_callback_does_not_break_the_bag(clock):
    bag = TimerBag(clock)
    seen = []

    def broken() -> None:
        raise RuntimeError("nope")

    bag.set_timeout(broken, 1)
    bag.set_timeout(lambda: seen.append("ok"), 2)
    await clock.advance(3)

    assert seen == ["ok"]


def test_can_manage_owner_or_admin(clock):
    manager = GameManager("demo", scheduler=clock, clock=clock.time)
    session = manager.try_start(make_actor(1)).session

    assert can_manage(make_actor(1), session)
    assert can_manage(make_actor(2, admin=True), session)
    assert can_manage(make_actor(3, privileged=True), session)
    assert not can_manage(make_actor(2), session)
    assert not can_manage(make_actor(1), None)


@pytest.mark.asyncio
async def test_qol_commands(clock):
    registry = CommandRegistry()
    manager = GameManager("demo", "Demo", scheduler=clock, clock=clock.time)
    make_game_qol(registry.register, manager, help_text="Demo help", render_status=lambda session: "Demo status")
    channel = FakeChannel()

    await registry.dispatch_message(make_text_message(channel, "!demohelp"), make_actor())
    await registry.dispatch_message(make_text_message(channel, "!demostatus"), make_actor())
    manager.try_start(make_actor(1))
    await registry.dispatch_message(make_text_message(channel, "!demostatus"), make_actor())
    await registry.dispatch_message(make_text_message(channel, "!canceldemo", user_id=2), make_actor(2))
    await registry.dispatch_message(make_text_message(channel, "!canceldemo"), make_actor(1))

    assert channel.texts[0] == "Demo help"
    assert channel.texts[1].startswith("No active Demo.")
    assert channel.texts[2] == "Demo status"
    assert channel.texts[3] == "🚫 Only the host/admin can manage this Demo."
    assert channel.texts[4] == "🛑 Demo cancelled."
    assert not manager.is_active(make_actor())


@pytest.mark.asyncio
async def test_qol_status_from_other_channel_is_redirected(clock):
    registry = CommandRegistry()
    manager = GameManager("demo", "Demo", scheduler=clock, clock=clock.time)
    make_game_qol(registry.register, manager)
    manager.try_start(make_actor(1))
    elsewhere = FakeChannel(channel_id=201)

    await registry.dispatch_message(make_text_message(elsewhere, "!demostatus"), make_actor(channel_id=201))

    assert elsewhere.texts == ["🚫 This game is running in <#200>. Please use commands there."]
