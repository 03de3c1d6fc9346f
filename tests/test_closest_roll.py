from __future__ import annotations

import random

import pytest

from games.closest_roll import DENIED_TEXT, ClosestRollGame
from services.game_sessions import GameManager
from fakes import FakeChannel, command_context


@pytest.fixture
def game(clock):
    return ClosestRollGame(GameManager("closestroll", "ClosestRoll", scheduler=clock, clock=clock.time), rng=random.Random(3))


@pytest.mark.asyncio
async def test_exact_hit_ends_immediately(game, channel):
    await game.start(command_context(channel, "!cr 42"))
    assert "Target number: **42**" in channel.texts[-1]

    await game.on_awesome_roll(command_context(channel, "!awesome", user_id=5), 40)
    await game.on_awesome_roll(command_context(channel, "!awesome", user_id=6), 42)

    assert "ended** (exact hit)" in channel.texts[-1]
    assert "Winner: <@6> with **42** (diff **0**)" in channel.texts[-1]
    assert not game.manager.sessions()


@pytest.mark.asyncio
async def test_time_limit_announces_closest_roll(game, channel, clock):
    await game.start(command_context(channel, "!cr 50 30s"))
    await game.on_awesome_roll(command_context(channel, "!awesome", user_id=5), 47)
    await game.on_awesome_roll(command_context(channel, "!awesome", user_id=6), 58)

    await clock.advance(30)

    assert "(time limit expired)" in channel.texts[-1]
    assert "Winner: <@5> with **47** (diff **3**)" in channel.texts[-1]


@pytest.mark.asyncio
async def test_rolls_from_other_channels_are_ignored(game, channel):
    other = FakeChannel(channel_id=201)
    await game.start(command_context(channel, "!cr 10"))

    await game.on_awesome_roll(command_context(other, "!awesome", user_id=5), 10)

    assert game.manager.sessions()[0].data.best is None


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("!cr abc", "❌ Invalid target number."),
        ("!cr 10 soon", "❌ Invalid time limit."),
        ("!cr 150", "❌ Target must be between **0** and **101** (inclusive)."),
    ],
)
@pytest.mark.asyncio
async def test_invalid_arguments(game, channel, content, expected):
    await game.start(command_context(channel, content))

    assert channel.texts[-1].startswith(expected)
    assert not game.manager.sessions()


@pytest.mark.asyncio
async def test_cancel_requires_host_or_admin(game, channel, clock):
    await game.start(command_context(channel, "!cr 20 5m", user_id=1))

    await game.cancel_cmd(command_context(channel, "!cancelclosest", user_id=2))
    assert channel.texts[-1] == DENIED_TEXT

    await game.cancel_cmd(command_context(channel, "!cancelclosest", user_id=1))
    assert channel.texts[-1].startswith("🛑 **ClosestRoll cancelled** (cancelled).")
    assert clock.pending == 0


@pytest.mark.asyncio
async def test_status_outside_game_channel_points_to_it(game, channel):
    await game.start(command_context(channel, "!cr 20"))

    other = FakeChannel(channel_id=201)
    await game.start(command_context(other, "!cr status"))

    assert other.texts[-1] == "🚫 This game is running in <#200>. Please use commands there."
