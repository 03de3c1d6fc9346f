from __future__ import annotations

import random
import re

import pytest

from contests.rng import RngCommands, RollSpec, parse_elim_seconds, parse_roll_args, roll_values
from services.game_sessions import GameManager
from fakes import FakeChannel, command_context


@pytest.fixture
def rng_commands(clock):
    return RngCommands(elim_manager=GameManager("elim", "Elimination", scheduler=clock, clock=clock.time), rng=random.Random(7))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1d100", RollSpec(1, 100)),
        ("3d6 norepeat", RollSpec(3, 6, True)),
        ("2D10 nr", RollSpec(2, 10, True)),
        ("0d6", None),
        ("d6", None),
        ("1d6 twice", None),
    ],
)
def test_parse_roll_args(raw, expected):
    assert parse_roll_args(raw) == expected


def test_norepeat_rolls_are_unique_and_in_range():
    values = roll_values(RollSpec(11, 10, True), random.Random(1))

    assert sorted(values) == list(range(11))


@pytest.mark.parametrize(
    ("raw", "seconds", "error"),
    [
        ("2s", 2, None),
        ("30S", 30, None),
        ("0s", None, "Delay must be at least 1 second."),
        ("31s", None, "Delay cannot exceed 30 seconds."),
        ("2", None, "Delay must be specified in seconds, e.g. `2s` (1s–30s)."),
    ],
)
def test_parse_elim_seconds(raw, seconds, error):
    assert parse_elim_seconds(raw) == (seconds, error)


@pytest.mark.asyncio
async def test_roll_mentions_caller_and_lists_values(rng_commands, channel):
    await rng_commands.roll(command_context(channel, "!roll 3d6", user_id=42))

    assert re.fullmatch(r"<@42> \d, \d, \d", channel.texts[-1])


@pytest.mark.asyncio
async def test_awesome_targets_mentioned_user(rng_commands, channel):
    await rng_commands.awesome(command_context(channel, "!awesome <@77>"))
    assert re.fullmatch(r"<@77> is \d+% awesome!", channel.texts[-1])


@pytest.mark.asyncio
async def test_roll_rejects_impossible_norepeat(rng_commands, channel):
    await rng_commands.roll(command_context(channel, "!roll 5d3 norepeat"))

    assert channel.texts[-1].startswith("Impossible with norepeat: you asked for 5 unique rolls but range is only 0..3")


@pytest.mark.asyncio
async def test_huge_roll_is_not_displayed(rng_commands, channel):
    await rng_commands.roll(command_context(channel, "!roll 5000d10"))

    assert channel.texts[-1] == "<@1> Rolled 5000d10. Output too long to display. Try a smaller N."


@pytest.mark.asyncio
async def test_choose_picks_one_option(rng_commands, channel):
    await rng_commands.choose(command_context(channel, "!choose red green blue"))
    assert channel.texts[-1] in {"red", "green", "blue"}

    await rng_commands.choose(command_context(channel, "!choose"))
    assert channel.texts[-1] == "Usage: `!choose option1 option2 ...`"


@pytest.mark.asyncio
async def test_coinflip_reports_a_side(rng_commands, channel):
    await rng_commands.coinflip(command_context(channel, "!coinflip"))

    assert channel.texts[-1].startswith("<@1> ")


@pytest.mark.asyncio
async def test_elim_runs_rounds_until_one_item_remains(rng_commands, channel, clock):
    await rng_commands.elim_start(command_context(channel, "!elim 2s alpha beta gamma"))
    assert channel.texts[-1] == "Setting up elimination with 2s between rounds... are you ready?"

    await clock.advance(2)
    assert "has been eliminated!" in channel.texts[-1]

    await clock.advance(2)
    assert channel.texts[-1].endswith(" wins!")
    assert not rng_commands.elim.is_active(command_context(channel, "!x").actor)


@pytest.mark.asyncio
async def test_second_elim_in_same_guild_is_refused(rng_commands, channel):
    await rng_commands.elim_start(command_context(channel, "!elim 2s a b"))
    await rng_commands.elim_start(command_context(channel, "!elim 2s c d"))

    assert channel.texts[-1] == "An elimination is already running in this server."


@pytest.mark.asyncio
async def test_only_starter_or_admin_cancels_elim(rng_commands, channel, clock):
    await rng_commands.elim_start(command_context(channel, "!elim 2s a b c", user_id=1))

    await rng_commands.elim_cancel(command_context(channel, "!cancelelim", user_id=2))
    assert channel.texts[-1] == "Only the elimination starter or an admin can cancel it."

    await rng_commands.elim_cancel(command_context(channel, "!cancelelim", user_id=3, admin=True))
    assert channel.texts[-1] == "Elimination has been cancelled!"
    assert clock.pending == 0

    await rng_commands.elim_cancel(command_context(channel, "!cancelelim"))
    assert channel.texts[-1] == "No elimination is currently running."


@pytest.mark.asyncio
async def test_cancelelim_only_from_elim_channel(rng_commands, channel, clock):
    await rng_commands.elim_start(command_context(channel, "!elim 2s a b c", user_id=1))
    other = FakeChannel(channel_id=201)

    await rng_commands.elim_cancel(command_context(other, "!cancelelim", user_id=1))

    assert other.texts[-1] == "🚫 This game is running in <#200>. Please use commands there."
    assert len(rng_commands.elim.sessions()) == 1
    assert clock.pending == 1
