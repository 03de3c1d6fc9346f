from __future__ import annotations

import random

import pytest

from bot.permissions import PrivilegedUsers
from commands.context import SlashContext
from commands.exposure import ExposureMode, ExposurePolicy, ExposureSettings, GuildExposure
from commands.registry import CommandRegistry
from contests.rng import RngCommands
from contests.scheduled_commands import ScheduledCommandService, split_command_text
from games.bingo import BingoGame
from platform_io.task_registry import RetryPolicy
from services.game_sessions import GameManager, Scope
from fakes import ADMIN_ID, GUILD_ID, FakeInteraction, FakeMember, FakePermissions, make_actor


def exposure(**modes) -> ExposurePolicy:
    return ExposurePolicy(ExposureSettings(guilds={GUILD_ID: GuildExposure(modes=modes)}))


@pytest.fixture
def command_registry(clock):
    registry = CommandRegistry(exposure(**{"rng.roll": ExposureMode.QUESTION}))
    RngCommands(elim_manager=GameManager("elim", scheduler=clock, clock=clock.time), rng=random.Random(1)).register(registry.register)
    BingoGame().register(registry.register)
    return registry


@pytest.fixture
def scheduler(repo, gateway, clock, command_registry):
    gateway.add_member(GUILD_ID, FakeMember(ADMIN_ID, guild_permissions=FakePermissions(administrator=True)))
    return ScheduledCommandService(
        repo,
        gateway,
        command_registry,
        privileged=PrivilegedUsers(by_guild={}),
        retry_policy=RetryPolicy(initial_delay=1, max_delay=1, max_attempts=2),
        manager=GameManager("schedule", scope=Scope.RECORD, scheduler=clock, clock=clock.time),
    )


def slash(channel, subcommand: str, **options) -> SlashContext:
    interaction = FakeInteraction({}, user=FakeMember(ADMIN_ID), channel=channel)
    return SlashContext(interaction=interaction, actor=make_actor(ADMIN_ID, admin=True), options=options, subcommand=subcommand)


def test_split_command_text():
    split, error = split_command_text("  ?roll 1d6 nr ")
    assert error is None
    assert (split.cmd, split.rest) == ("?roll", "1d6 nr")
    assert split_command_text("roll") == (None, "Scheduled commands must start with `!` or `?`.")
    assert split_command_text("") == (None, "Please provide a command to schedule.")


@pytest.mark.asyncio
async def test_scheduled_roll_runs_in_channel_and_is_deleted(scheduler, channel, clock, repo):
    ctx = slash(channel, "create", time="10m", command="?roll 1d6")
    await scheduler.command(ctx)
    assert ctx.interaction.replies[0].startswith("✅ Scheduled command **#1** for <t:")

    await clock.advance(599)
    assert channel.sent == []

    await clock.advance(1)
    assert channel.texts[-1].startswith(f"<@{ADMIN_ID}> ")
    assert await repo.get_scheduled_command(1) is None
    assert not scheduler.manager.sessions()


@pytest.mark.parametrize(
    ("time", "command", "expected"),
    [
        ("10m", "!roll 1d6", "❌ That prefix is not allowed for this command in this server."),
        ("10m", "!bingo 1-10", "❌ That command is not allowed by `/schedule`."),
        ("10m", "?roll 0d6", "❌ Invalid roll format. Use `NdM` (example: `1d100`)."),
        ("10m", "?roll 5d4 norepeat", "❌ Invalid roll: `norepeat` requires `N <= M`."),
        ("10m", "!elim 2s onlyone", "❌ Invalid elim format. Use `?elim <1-30s> <item1> <item2> [...]`."),
        ("10m", "!nothing", "❌ Command not found."),
        ("10m", "roll 1d6", "❌ Scheduled commands must start with `!` or `?`."),
        ("10", "?roll 1d6", "❌ Invalid delay. Include a unit, e.g. `10m`, `2h`, or `3d`."),
        ("31d", "?roll 1d6", "❌ Delay cannot exceed 30 days."),
    ],
)
@pytest.mark.asyncio
async def test_create_rejects_bad_requests(scheduler, channel, repo, time, command, expected):
    ctx = slash(channel, "create", time=time, command=command)

    await scheduler.command(ctx)

    assert ctx.interaction.replies == [expected]
    assert await repo.list_scheduled_commands() == []


@pytest.mark.asyncio
async def test_coinflip_is_allowed(scheduler, channel, repo):
    ctx = slash(channel, "create", time="1h", command="!coinflip")

    await scheduler.command(ctx)

    assert len(await repo.list_scheduled_commands(GUILD_ID)) == 1


@pytest.mark.asyncio
async def test_disabled_command_at_run_time_dms_creator(scheduler, command_registry, channel, clock, gateway, repo):
    await scheduler.command(slash(channel, "create", time="5m", command="?roll 1d6"))
    command_registry.exposure = exposure(**{"rng.roll": ExposureMode.OFF})

    await clock.advance(300)

    assert channel.sent == []
    [(user_id, content)] = gateway.dms
    assert user_id == ADMIN_ID
    assert content.startswith("⚠️ Scheduled command #1 failed.\nCommand: `?roll 1d6`")
    assert content.endswith("Reason: That command is disabled in this server.")
    assert await repo.get_scheduled_command(1) is None


@pytest.mark.asyncio
async def test_creator_who_lost_admin_is_told(scheduler, channel, clock, gateway):
    await scheduler.command(slash(channel, "create", time="5m", command="?roll 1d6"))
    gateway.add_member(GUILD_ID, FakeMember(ADMIN_ID))

    await clock.advance(300)

    assert gateway.dms[0][1].endswith("Reason: Creator no longer has admin/privileged permission.")


@pytest.mark.asyncio
async def test_gives_up_when_gateway_never_ready(scheduler, channel, clock, gateway, repo):
    await scheduler.command(slash(channel, "create", time="5m", command="?roll 1d6"))
    gateway.ready = False

    await clock.advance(300)
    await clock.advance(1)
    assert gateway.dms == []
    assert await repo.get_scheduled_command(1) is not None

    await clock.advance(1)
    assert gateway.dms[0][1].endswith("Reason: Bot client is not ready.")
    assert await repo.get_scheduled_command(1) is None


@pytest.mark.asyncio
async def test_cancel_and_list(scheduler, channel, clock):
    await scheduler.command(slash(channel, "create", time="5m", command="?roll 1d6"))

    listed = slash(channel, "list")
    await scheduler.command(listed)
    assert listed.interaction.replies[0].startswith("Scheduled commands (1):\n#1 • <t:")

    bad = slash(channel, "cancel", schedule_id="abc")
    await scheduler.command(bad)
    assert bad.interaction.replies == ["❌ Please provide a valid `schedule_id`."]

    cancelled = slash(channel, "cancel", schedule_id="1")
    await scheduler.command(cancelled)
    assert cancelled.interaction.replies == ["✅ Cancelled scheduled command #1."]
    assert clock.pending == 0

    empty = slash(channel, "list")
    await scheduler.command(empty)
    assert empty.interaction.replies == ["No scheduled commands found for this server."]


@pytest.mark.asyncio
async def test_boot_rearms_stored_jobs(scheduler, repo, clock, channel):
    await repo.create_scheduled_command(
        guild_id=GUILD_ID,
        channel_id=channel.id,
        creator_user_id=ADMIN_ID,
        command_text="!coinflip",
        execute_at_ms=scheduler.now_ms() - 1000,
        created_at_ms=0,
    )

    assert await scheduler.boot() == 1
    await clock.advance(0)

    assert channel.texts[-1].startswith(f"<@{ADMIN_ID}> ")
