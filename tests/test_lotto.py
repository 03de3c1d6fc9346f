from __future__ import annotations

import pytest

from contests.lotto import USAGE_TEXT, LottoStartArgs, LottoTracker, parse_start_args
from db.repository import LottoTrackingRecord
from fakes import GUILD_ID, command_context, make_actor

DEFAULT_URL = "https://forums.example.com/threads/lotto.1"


@pytest.fixture
def lotto(repo):
    return LottoTracker(repo, default_url=DEFAULT_URL)


@pytest.mark.parametrize(
    ("rest", "expected"),
    [
        ("", (LottoStartArgs(DEFAULT_URL), None)),
        ("120", (LottoStartArgs(DEFAULT_URL, 120), None)),
        ("https://x.test/t/2 55", (LottoStartArgs("https://x.test/t/2", 55), None)),
        ("nope", (None, USAGE_TEXT)),
        ("0", (None, USAGE_TEXT)),
        ("1 2", (None, USAGE_TEXT)),
    ],
)
def test_parse_start_args(rest, expected):
    assert parse_start_args(rest, DEFAULT_URL) == expected


@pytest.mark.asyncio
async def test_start_status_stop(lotto, channel, repo):
    await lotto.start_cmd(command_context(channel, "!lottostart 120", admin=True))
    assert channel.texts[-1] == f"✅ Lotto tracking enabled. Tracking {DEFAULT_URL} from post #120."

    await lotto.status_cmd(command_context(channel, "!lottostatus"))
    assert channel.texts[-1] == f"🎟️ Tracking {DEFAULT_URL} from post #120."

    await lotto.stop_cmd(command_context(channel, "!lottostop", admin=True))
    assert channel.texts[-1] == "✅ Lotto tracking stopped. Use `!lottostart` to begin again."
    assert not (await repo.get_lotto(GUILD_ID)).active

    await lotto.stop_cmd(command_context(channel, "!lottostop", admin=True))
    assert channel.texts[-1] == "❌ No active lotto tracking."
    await lotto.status_cmd(command_context(channel, "!lottostatus"))
    assert channel.texts[-1] == "❌ No active lotto tracking. Use `!lottostart` to begin."


@pytest.mark.asyncio
async def test_restart_replaces_tracked_thread(lotto):
    actor = make_actor(admin=True)
    await lotto.start(actor, LottoStartArgs("https://x.test/a"))
    await lotto.start(actor, LottoStartArgs("https://x.test/b", 3))

    assert lotto.current(GUILD_ID).thread_url == "https://x.test/b"
    assert len(lotto.manager.sessions()) == 1


@pytest.mark.asyncio
async def test_non_admin_start_is_ignored(lotto, channel):
    await lotto.start_cmd(command_context(channel, "!lottostart"))

    assert channel.sent == []
    assert lotto.current(GUILD_ID) is None


@pytest.mark.asyncio
async def test_boot_restores_active_rows_only(lotto, repo):
    await repo.upsert_lotto(LottoTrackingRecord(GUILD_ID, "https://x.test/a", active=True))
    await repo.upsert_lotto(LottoTrackingRecord(555, "https://x.test/b", active=False))

    assert await lotto.boot() == 1
    assert lotto.current(GUILD_ID).thread_url == "https://x.test/a"
    assert lotto.current(555) is None
