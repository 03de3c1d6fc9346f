from __future__ import annotations

from types import SimpleNamespace

import pytest

from db.models import REQUIRED_BOOT_TABLES
from db.repository import GiveawayRecord, LottoTrackingRecord, PollContestRecord
from db.schema_guard import missing_tables, narrow_integer_columns
from db.session import redact_sql_parameters
from services.persistence_service import dump_id_list, giveaway_from_row, giveaway_to_row, load_id_list


def giveaway(message_id: int, **overrides) -> GiveawayRecord:
    values = dict(message_id=message_id, guild_id=1, channel_id=2, host_id=3, prize="Shiny", ends_at_ms=1000 + message_id)
    values.update(overrides)
    return GiveawayRecord(**values)


@pytest.mark.asyncio
async def test_giveaways_are_copied_in_and_out(repo):
    record = giveaway(10, entrants=[1, 2])
    await repo.upsert_giveaway(record)
    record.entrants.append(3)

    stored = await repo.get_giveaway(10)
    stored.entrants.append(4)

    assert (await repo.get_giveaway(10)).entrants == [1, 2]


@pytest.mark.asyncio
async def test_open_giveaways_exclude_ended_and_canceled(repo):
    await repo.upsert_giveaway(giveaway(3))
    await repo.upsert_giveaway(giveaway(1))
    await repo.upsert_giveaway(giveaway(2, ended_at_ms=5))
    await repo.upsert_giveaway(giveaway(4, canceled=True))
    await repo.upsert_giveaway(giveaway(5, guild_id=99))

    assert [row.message_id for row in await repo.list_open_giveaways()] == [1, 3, 5]
    assert [row.message_id for row in await repo.list_open_giveaways(1)] == [1, 3]
    assert await repo.delete_giveaway(1)
    assert not await repo.delete_giveaway(1)


@pytest.mark.asyncio
async def test_scheduled_commands_get_increasing_ids(repo):
    first = await repo.create_scheduled_command(
        guild_id=1, channel_id=2, creator_user_id=3, command_text="!roll 1d6", execute_at_ms=50, created_at_ms=1
    )
    second = await repo.create_scheduled_command(
        guild_id=1, channel_id=2, creator_user_id=3, command_text="!coinflip", execute_at_ms=20, created_at_ms=1
    )

    assert second.id == first.id + 1
    assert [job.id for job in await repo.list_scheduled_commands(1)] == [second.id, first.id]
    assert await repo.delete_scheduled_command(first.id)
    assert await repo.get_scheduled_command(first.id) is None


@pytest.mark.asyncio
async def test_poll_and_lotto_rows(repo):
    await repo.upsert_poll_contest(PollContestRecord(message_id=7, guild_id=1, channel_id=2, owner_id=3, ends_at_ms=9, run_choose=True))
    await repo.upsert_lotto(LottoTrackingRecord(guild_id=1, thread_url="https://x", active=True))
    await repo.upsert_lotto(LottoTrackingRecord(guild_id=2, thread_url="https://y", active=False))

    assert (await repo.get_poll_contest(7)).run_choose
    assert [row.guild_id for row in await repo.list_active_lotto()] == [1]


def test_id_lists_round_trip_as_string_json():
    assert dump_id_list([1, 22]) == '["1", "22"]'
    assert load_id_list('["1", 22, "x"]') == [1, 22]
    assert load_id_list("not json") == []
    assert load_id_list(None) == []
    assert load_id_list('{"a": 1}') == []


def test_giveaway_row_mapping():
    record = giveaway(10, entrants=[5, 6], winners=[6], ended_at_ms=77, summary_message_id=88, require_verified=True)
    row = giveaway_to_row(record)

    assert row["entrants_json"] == '["5", "6"]'
    assert giveaway_from_row(SimpleNamespace(**row)) == record


def test_missing_tables_reports_unknown_schema():
    assert set(REQUIRED_BOOT_TABLES) == {"giveaways", "poll_contests", "scheduled_contest_commands", "lotto_tracking"}
    assert missing_tables({"giveaways", "poll_contests"}) == ["lotto_tracking", "scheduled_contest_commands"]
    assert missing_tables(REQUIRED_BOOT_TABLES) == []


def test_sql_parameters_are_redacted():
    redacted = redact_sql_parameters({"prize": "secret", "winners": 2, "ids": list(range(25)), "flag": True, "none": None})

    assert redacted["prize"] == "<redacted>"
    assert redacted["winners"] == "<int>"
    assert redacted["flag"] == "<bool>"
    assert redacted["none"] is None
    assert redacted["ids"][-1] == "... +5 more"
    assert len(redacted["ids"]) == 21


def test_narrow_integer_columns_flags_int4_ids():
    udt_names = {
        ("giveaways", "message_id"): "int4",
        ("giveaways", "ends_at_ms"): "int8",
        ("lotto_tracking", "guild_id"): "bigint",
    }

    assert narrow_integer_columns(udt_names) == ["giveaways.message_id"]
    assert narrow_integer_columns({}) == []
