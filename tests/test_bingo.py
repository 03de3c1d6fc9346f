from __future__ import annotations

import random
from types import SimpleNamespace

import pytest

from games.bingo import BingoGame, parse_resume_list
from services.game_sessions import GameManager, Scope
from fakes import FakeChannel, command_context


@pytest.fixture
def bingo(clock):
    return BingoGame(GameManager("bingo", "Bingo", scope=Scope.GLOBAL, scheduler=clock, clock=clock.time), rng=random.Random(5))


def test_resume_list_validation():
    assert parse_resume_list("5,12 77", 1, 151) == ([5, 12, 77], None)
    assert parse_resume_list("5,x", 1, 10) == (None, "❌ Resume list contains a non-integer value.")
    assert parse_resume_list("11", 1, 10) == (None, "❌ Resume list value `11` is out of range (1-10).")
    assert parse_resume_list("3 3", 1, 10) == (None, "❌ Resume list contains a duplicate: `3`.")


@pytest.mark.asyncio
async def test_draws_every_number_once_then_ends(bingo, channel):
    await bingo.start(command_context(channel, "!bingo 1-3"))
    assert channel.texts[-1].startswith("✅ **Bingo started**")

    for _ in range(3):
        await bingo.draw(command_context(channel, "!draw"))

    draws = [text.splitlines()[0] for text in channel.texts if text.startswith("🎲")]
    assert sorted(draws) == ["🎲 **Draw:** **1**", "🎲 **Draw:** **2**", "🎲 **Draw:** **3**"]
    assert channel.texts[-1].startswith("🏁 **Bingo ended** (no numbers left to draw).")
    assert not bingo.manager.sessions()


@pytest.mark.asyncio
async def test_resume_skips_already_drawn(bingo, channel):
    await bingo.start(command_context(channel, "!bingo 1-3 1,2"))
    assert "(resumed with 2 already drawn)" in channel.texts[-1]

    await bingo.draw(command_context(channel, "!draw"))

    assert channel.texts[-2].startswith("🎲 **Draw:** **3**")


@pytest.mark.asyncio
async def test_complete_resume_ends_without_session(bingo, channel):
    await bingo.start(command_context(channel, "!bingo 1-2 2 1"))

    assert channel.texts[-1].startswith("🏁 **Bingo ended** (all numbers already drawn (resume complete)).")
    assert not bingo.manager.sessions()


@pytest.mark.asyncio
async def test_one_bingo_across_all_guilds(bingo, channel):
    await bingo.start(command_context(channel, "!bingo 1-10"))
    elsewhere = FakeChannel(channel_id=900, guild=SimpleNamespace(id=555, name="Elsewhere"))

    await bingo.start(command_context(elsewhere, "!bingo 1-10"))
    assert elsewhere.texts[-1].startswith("⚠️ A bingo game is already running.")

    await bingo.draw(command_context(elsewhere, "!draw"))
    assert elsewhere.texts[-1] == "A bingo game is running elsewhere. Started by <@1> in <#200>."


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("!bingo 10-5", "❌ Invalid range. Must be `min < max` (example: `1-151`)."),
        ("!bingo 0-5", "❌ Range values must be **positive integers**."),
        ("!bingo 1-60000", "❌ Range too large (max 50,000 numbers)."),
        ("!bingo lots", "❌ Invalid range. Use `min-max` (example: `1-151`)."),
    ],
)
@pytest.mark.asyncio
async def test_invalid_ranges(bingo, channel, content, expected):
    await bingo.start(command_context(channel, content))

    assert channel.texts[-1] == expected


@pytest.mark.asyncio
async def test_cancel_by_non_starter_is_refused(bingo, channel):
    await bingo.start(command_context(channel, "!bingo 1-10", user_id=1))

    await bingo.cancel(command_context(channel, "!cancelbingo", user_id=2))
    assert channel.texts[-1] == "Nope — only admins or the bingo starter can use that."

    await bingo.cancel(command_context(channel, "!cancelbingo", user_id=2, admin=True))
    assert channel.texts[-1].startswith("🏁 **Bingo ended** (cancelled).")
