from __future__ import annotations

import random

import pytest

from games.exploding_electrode import (
    ELECTRODE,
    NO_GAME_TEXT,
    SAFE_BALL,
    ElectrodeConfig,
    ElectrodeOptions,
    ExplodingElectrodeGame,
    build_config,
    parse_options,
    validate_join_options,
)
from services.game_sessions import GameManager
from fakes import FakeChannel, command_context


@pytest.fixture
def electrode(clock, gateway):
    return ExplodingElectrodeGame(
        GameManager("electrode", "Exploding Electrode", scheduler=clock, clock=clock.time),
        gateway=gateway,
        rng=random.Random(2),
    )


def test_option_parsing_splits_mentions_and_unknowns():
    options, mentions, unknown = parse_options(["balls=6", "e=2", "turn=10/20", "mode=survivors", "<@2>", "<@!3>", "<@2>", "huh"])

    assert options == ElectrodeOptions(balls=6, electrodes=2, turn_warn=10, turn_skip=20, mode="survivors")
    assert mentions == [2, 3]
    assert unknown == ["huh"]


def test_join_options_only_for_reaction_join():
    assert validate_join_options(ElectrodeOptions(join_seconds=20), has_mentions=True).startswith("❌ `join=` and `max=`")
    assert validate_join_options(ElectrodeOptions(join_seconds=200), has_mentions=False).startswith("❌ `join=NN`")
    assert validate_join_options(ElectrodeOptions(turn_warn=5, turn_skip=4), has_mentions=False).startswith("❌ `turn=W/S`")


def test_build_config_bounds():
    assert build_config(3, ElectrodeOptions()) == (ElectrodeConfig(balls=5, electrodes=1), None)
    assert build_config(3, ElectrodeOptions(electrodes=3))[1] == "❌ `e=` is too high. Max for 3 players is 2."
    assert build_config(3, ElectrodeOptions(balls=2))[1] == "❌ `balls=` must be at least the number of players (3)."
    assert build_config(3, ElectrodeOptions(balls=10))[1] == "❌ `balls=` too large. Max for 3 players is 9."


async def start_two_player_game(electrode, channel, bag):
    await electrode.start(command_context(channel, "!ee balls=2 <@2> <@3>", mentions=[2, 3]))
    state = electrode.manager.sessions()[0].data
    state.bag = list(bag)
    return state


@pytest.mark.asyncio
async def test_electrode_eliminates_picker_and_last_player_wins(electrode, channel):
    state = await start_two_player_game(electrode, channel, [ELECTRODE, SAFE_BALL])
    first = state.current_player
    second = 3 if first == 2 else 2

    await electrode.pick(command_context(channel, "!pick", user_id=second))
    assert channel.texts[-1] == f"❌ Not your turn, <@{second}>. Wait your turn!"

    await electrode.pick(command_context(channel, "!pick", user_id=first))
    assert f"👉 <@{second}>, pick a Poké Ball with `!pick`." in channel.texts[-1]

    await electrode.pick(command_context(channel, "!pick", user_id=second))
    assert channel.texts[-1] == f"🏆 <@{first}> wins **Exploding Electrode**! The Poké Balls are returned safely. 🚀"
    assert not electrode.manager.sessions()


@pytest.mark.asyncio
async def test_idle_player_is_warned_then_skipped(electrode, channel, clock):
    state = await start_two_player_game(electrode, channel, [SAFE_BALL, SAFE_BALL])
    idle = state.current_player

    await clock.advance(15)
    assert channel.texts[-1] == f"⏳ <@{idle}>… hurry! What if **Team Rocket** comes back? 🚀"

    await clock.advance(15)
    assert f"We’ll have to continue **without <@{idle}>**." in channel.texts[-2]
    assert state.current_player != idle


@pytest.mark.asyncio
async def test_reaction_join_needs_two_players(electrode, channel, gateway):
    gateway.reaction_users = [2]

    await electrode.start(command_context(channel, "!ee join=10"))

    assert channel.texts[-1] == "❌ Not enough players joined (need at least 2)."
    assert not electrode.manager.sessions()


@pytest.mark.asyncio
async def test_starter_or_admin_force_end(electrode, channel, clock):
    await start_two_player_game(electrode, channel, [SAFE_BALL, SAFE_BALL])

    await electrode.end(command_context(channel, "!endelectrode", user_id=2))
    assert channel.texts[-1] == "Nope — only admins or the starter can end the Electrode game."

    await electrode.end(command_context(channel, "!endelectrode", user_id=1))
    assert channel.texts[-1] == "🧯 Exploding Electrode game ended early."
    assert clock.pending == 0

    await electrode.pick(command_context(channel, "!pick", user_id=2))
    assert channel.texts[-1] == NO_GAME_TEXT


@pytest.mark.asyncio
async def test_admin_end_in_electrode_channel(electrode, channel):
    await start_two_player_game(electrode, channel, [SAFE_BALL, SAFE_BALL])

    await electrode.end(command_context(channel, "!endelectrode", user_id=9, admin=True))

    assert channel.texts[-1] == "🧯 Exploding Electrode game ended early."


@pytest.mark.asyncio
async def test_end_from_another_channel_is_refused(electrode, channel):
    await start_two_player_game(electrode, channel, [SAFE_BALL, SAFE_BALL])
    other = FakeChannel(channel_id=201)

    await electrode.end(command_context(other, "!endelectrode", user_id=9, admin=True))

    assert other.texts[-1] == "🚫 This game is running in <#200>. Please use commands there."
    assert len(electrode.manager.sessions()) == 1
