from __future__ import annotations

import pytest

from games.deal_or_no_deal import EMPTY_PRIZE, DealOrNoDealGame, parse_box_count, parse_prizes
from services.game_sessions import GameManager
from fakes import FakeInteraction, FakeMember, make_actor, make_text_message

CONTESTANT_ID = 7


@pytest.fixture
def dond(clock, registry):
    game = DealOrNoDealGame(GameManager("dond", "Deal or No Deal", scheduler=clock, clock=clock.time))
    game.register(registry.register)
    return game


def test_prize_parsing():
    assert parse_prizes("Car\n\nempty\nBike", 5) == ["Car", EMPTY_PRIZE, EMPTY_PRIZE, "Bike", EMPTY_PRIZE]
    assert parse_box_count("25") == 25
    assert parse_box_count(1) is None
    assert parse_box_count("lots") is None


async def start_game(registry, channel, prizes: str = "Car\n\nBike") -> None:
    slash = FakeInteraction(
        {
            "name": "dond",
            "options": [
                {"name": "boxes", "type": 4, "value": 3},
                {"name": "contestant", "type": 6, "value": str(CONTESTANT_ID)},
            ],
        },
        user=FakeMember(1),
        channel=channel,
    )
    await registry.dispatch_slash(slash, make_actor())
    assert slash.response.modals[0].custom_id == f"dond_modal:3:{CONTESTANT_ID}"

    modal = FakeInteraction(
        {
            "custom_id": f"dond_modal:3:{CONTESTANT_ID}",
            "components": [{"components": [{"custom_id": "prizes", "value": prizes}]}],
        },
        user=FakeMember(1),
        channel=channel,
    )
    await registry.dispatch_component(modal, make_actor())
    assert modal.replies[0].startswith("✅ Started Deal or No Deal in <#200> for <@7> with **3** boxes.")


async def press_keep(registry, channel, index: int, user_id: int = CONTESTANT_ID) -> FakeInteraction:
    interaction = FakeInteraction({"custom_id": f"dond:keep:{index}"}, user=FakeMember(user_id), channel=channel)
    await registry.dispatch_component(interaction, make_actor(user_id))
    return interaction


async def host_says(registry, channel, content: str, user_id: int = 1) -> None:
    await registry.dispatch_message(make_text_message(channel, content, user_id=user_id), make_actor(user_id))


@pytest.mark.asyncio
async def test_full_game_with_switch_and_no_deal(dond, registry, channel):
    await start_game(registry, channel)
    board = channel.sent[0]
    assert "choose a box to **KEEP**" in board.content

    assert (await press_keep(registry, channel, 0, user_id=1)).replies == ["Only the contestant can pick the kept box."]
    assert (await press_keep(registry, channel, 0)).replies == ["✅ You are keeping **Box #1**."]
    assert "🔒 Kept box: **#1**" in board.content

    await host_says(registry, channel, "!dondopen 1")
    assert channel.texts[-1].startswith("❌ Box #1 is the contestant’s **kept** box.")

    await host_says(registry, channel, "!dondopen 2")
    assert channel.texts[-2] == f"🗑️ Discarded **Box #2** opened → **{EMPTY_PRIZE}**"
    assert channel.texts[-1].startswith("🏁 **FINAL ROUND**")

    await host_says(registry, channel, "!dondswitch")
    assert channel.texts[-1] == "🔁 Switched kept box from **#1** to **#3**."

    await host_says(registry, channel, "!dondend nodeal")
    assert channel.texts[-1].startswith("🏁 **NO DEAL!** <@7> kept **Box #3** → **Bike**")
    assert not dond.manager.sessions()

    await host_says(registry, channel, "!dondreveal", user_id=4)
    assert "• Box #1: Car" in channel.texts[-1]
    assert "• Box #3 🔒(kept): Bike" in channel.texts[-1]


@pytest.mark.asyncio
async def test_deal_hides_kept_prize(dond, registry, channel):
    await start_game(registry, channel)
    await press_keep(registry, channel, 2)

    await host_says(registry, channel, "!dondend deal")

    assert channel.texts[-1].startswith("🤝 **DEAL TAKEN!** Game ended.\nKept box **#3** stays hidden.")
    assert "Bike" not in channel.texts[-1]


@pytest.mark.asyncio
async def test_switch_outside_final_round_is_refused(dond, registry, channel):
    await start_game(registry, channel)
    await press_keep(registry, channel, 0)

    await host_says(registry, channel, "!dondswitch")

    assert channel.texts[-1] == "❌ Switch is only allowed when exactly 2 unopened boxes remain (kept + 1 other)."


@pytest.mark.asyncio
async def test_second_game_in_guild_is_refused(dond, registry, channel):
    await start_game(registry, channel)
    slash = FakeInteraction(
        {"name": "dond", "options": [{"name": "boxes", "type": 4, "value": 3}, {"name": "contestant", "type": 6, "value": "8"}]},
        user=FakeMember(2),
        channel=channel,
    )

    await registry.dispatch_slash(slash, make_actor(2))

    assert slash.response.messages[0][0] == "⚠️ Deal or No Deal is already running in <#200>."
    assert slash.response.messages[0][1] is True


@pytest.mark.asyncio
async def test_cancel_keeps_snapshot_for_reveal(dond, registry, channel):
    await start_game(registry, channel, prizes="A\nB\nC")

    await host_says(registry, channel, "!dondcancel", user_id=5)
    assert channel.texts[-1] == "Nope — only admins/privileged or the host can do that."

    await host_says(registry, channel, "!dondcancel")
    assert channel.texts[-1] == "🛑 Cancelled. You can still run `!dondreveal` to show the snapshot prizes."
    assert channel.sent[0].content.startswith("🛑 **Deal or No Deal cancelled** by <@1>.")

    await host_says(registry, channel, "!dondreveal")
    assert "• Box #2: B" in channel.texts[-1]
