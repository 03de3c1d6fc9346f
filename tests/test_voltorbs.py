from __future__ import annotations

import random

import pytest

from games.exploding_voltorbs import FuseRange, ExplodingVoltorbsGame, parse_fuse_range
from services.game_sessions import GameManager
from fakes import FakeChannel, command_context


@pytest.fixture
def voltorbs(clock):
    return ExplodingVoltorbsGame(GameManager("voltorb", "Exploding Voltorbs", scheduler=clock, clock=clock.time), rng=random.Random(11))


def test_parse_fuse_range():
    assert parse_fuse_range("10-20s") == (FuseRange(10, 20), None)
    assert parse_fuse_range("1-20")[1] == "❌ Range must be 5–600 seconds, min < max."
    assert parse_fuse_range("soon")[1].startswith("❌ Invalid range.")


@pytest.mark.asyncio
async def test_holder_explodes_after_fuse(voltorbs, channel, clock):
    await voltorbs.start(command_context(channel, "!ev 5-6 <@2> <@3>", mentions=[2, 3]))
    assert channel.texts[-1].startswith("⚡ **Exploding Voltorbs started!**")
    holder = voltorbs.manager.sessions()[0].data.holder_id

    await clock.advance(6)

    assert channel.texts[-1] == f"💥 **BOOM!** <@{holder}> was holding the Voltorb and got blown up!"
    assert not voltorbs.manager.sessions()
    assert clock.pending == 0


@pytest.mark.asyncio
async def test_only_holder_can_pass_to_participant(voltorbs, channel):
    await voltorbs.start(command_context(channel, "!ev 30-40 <@2> <@3>", mentions=[2, 3]))
    state = voltorbs.manager.sessions()[0].data
    holder = state.holder_id
    other = 3 if holder == 2 else 2
    sent = len(channel.sent)

    await voltorbs.pass_voltorb(command_context(channel, f"!pass <@{holder}>", user_id=other, mentions=[holder]))
    assert len(channel.sent) == sent

    await voltorbs.pass_voltorb(command_context(channel, "!pass <@8>", user_id=holder, mentions=[8]))
    assert channel.texts[-1] == "❌ <@8> is not a participant in this game."

    await voltorbs.pass_voltorb(command_context(channel, f"!pass <@{other}>", user_id=holder, mentions=[other]))
    assert state.holder_id == other
    assert channel.texts[-1].startswith(f"🔁 <@{holder}> passed the Voltorb to <@{other}>!")


@pytest.mark.asyncio
async def test_start_needs_two_participants(voltorbs, channel):
    await voltorbs.start(command_context(channel, "!ev 10-20 <@2>", mentions=[2]))

    assert channel.texts[-1].startswith("❌ You need at least **2 participants** to start the game.")


@pytest.mark.asyncio
async def test_end_early_by_starter(voltorbs, channel, clock):
    await voltorbs.start(command_context(channel, "!ev 30-40 <@2> <@3>", user_id=1, mentions=[2, 3]))

    await voltorbs.end(command_context(channel, "!endvoltorb", user_id=2))
    assert channel.texts[-1] == "Nope — only admins or the starter can end the game early."

    await voltorbs.end(command_context(channel, "!endvoltorb", user_id=1))
    assert channel.texts[-1] == "🧯 Voltorb game ended early."
    assert clock.pending == 0


@pytest.mark.asyncio
async def test_end_from_another_channel_is_refused(voltorbs, channel):
    await voltorbs.start(command_context(channel, "!ev 30-40 <@2> <@3>", user_id=1, mentions=[2, 3]))
    other = FakeChannel(channel_id=201)

    await voltorbs.end(command_context(other, "!endvoltorb", user_id=1))

    assert other.texts[-1] == "🚫 This game is running in <#200>. Please use commands there."
    assert len(voltorbs.manager.sessions()) == 1
