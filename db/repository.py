from __future__ import annotations

import itertools
from dataclasses import dataclass, field, replace
from typing import Protocol


@dataclass(slots=True)
class GiveawayRecord:
    message_id: int
    guild_id: int
    channel_id: int
    host_id: int
    prize: str
    ends_at_ms: int
    description: str | None = None
    winners_count: int = 1
    require_verified: bool = False
    entrants: list[int] = field(default_factory=list)
    winners: list[int] = field(default_factory=list)
    ended_at_ms: int | None = None
    summary_message_id: int | None = None
    canceled: bool = False

    @property
    def is_open(self) -> bool:
        return not self.canceled and self.ended_at_ms is None


@dataclass(slots=True)
class PollContestRecord:
    message_id: int
    guild_id: int
    channel_id: int
    owner_id: int
    ends_at_ms: int
    run_choose: bool = False
    get_lists: bool = False
    winners_only: bool = False


@dataclass(slots=True)
class ScheduledCommandRecord:
    id: int
    guild_id: int
    channel_id: int
    creator_user_id: int
    command_text: str
    execute_at_ms: int
    created_at_ms: int


@dataclass(slots=True)
class LottoTrackingRecord:
    guild_id: int
    thread_url: str
    active: bool = False
    start_post_id: int | None = None


class Repository(Protocol):
    async def upsert_giveaway(self, record: GiveawayRecord) -> None: ...
    async def get_giveaway(self, message_id: int) -> GiveawayRecord | None: ...
    async def list_open_giveaways(self, guild_id: int | None = None) -> list[GiveawayRecord]: ...
    async def list_giveaways(self, guild_id: int) -> list[GiveawayRecord]: ...
    async def delete_giveaway(self, message_id: int) -> bool: ...

    async def upsert_poll_contest(self, record: PollContestRecord) -> None: ...
    async def get_poll_contest(self, message_id: int) -> PollContestRecord | None: ...
    async def list_poll_contests(self, guild_id: int | None = None) -> list[PollContestRecord]: ...
    async def delete_poll_contest(self, message_id: int) -> bool: ...

    async def create_scheduled_command(
        self,
        *,
        guild_id: int,
        channel_id: int,
        creator_user_id: int,
        command_text: str,
        execute_at_ms: int,
        created_at_ms: int,
    ) -> ScheduledCommandRecord: ...
    async def get_scheduled_command(self, job_id: int) -> ScheduledCommandRecord | None: ...
    async def list_scheduled_commands(self, guild_id: int | None = None) -> list[ScheduledCommandRecord]: ...
    async def delete_scheduled_command(self, job_id: int) -> bool: ...

    async def upsert_lotto(self, record: LottoTrackingRecord) -> None: ...
    async def get_lotto(self, guild_id: int) -> LottoTrackingRecord | None: ...
    async def list_active_lotto(self) -> list[LottoTrackingRecord]: ...


class InMemoryRepository:
    """Row store with the same upsert semantics as the SQL repository.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self.giveaways: dict[int, GiveawayRecord] = {}
        self.poll_contests: dict[int, PollContestRecord] = {}
        self.scheduled_commands: dict[int, ScheduledCommandRecord] = {}
        self.lotto: dict[int, LottoTrackingRecord] = {}
        self._scheduled_ids = itertools.count(1)

    @staticmethod
    def _copy_giveaway(record: GiveawayRecord) -> GiveawayRecord:
        return replace(record, entrants=list(record.entrants), winners=list(record.winners))

    async def upsert_giveaway(self, record: GiveawayRecord) -> None:
        self.giveaways[int(record.message_id)] = self._copy_giveaway(record)

    async def get_giveaway(self, message_id: int) -> GiveawayRecord | None:
        row = self.giveaways.get(int(message_id))
        return self._copy_giveaway(row) if row else None

    async def list_open_giveaways(self, guild_id: int | None = None) -> list[GiveawayRecord]:
        rows = [
            row
            for row in self.giveaways.values()
            if row.is_open and (guild_id is None or row.guild_id == guild_id)
        ]
        return [self._copy_giveaway(row) for row in sorted(rows, key=lambda row: row.ends_at_ms)]

    async def list_giveaways(self, guild_id: int) -> list[GiveawayRecord]:
        rows = [row for row in self.giveaways.values() if row.guild_id == guild_id]
        return [self._copy_giveaway(row) for row in sorted(rows, key=lambda row: row.ends_at_ms, reverse=True)]

    async def delete_giveaway(self, message_id: int) -> bool:
        return self.giveaways.pop(int(message_id), None) is not None

    async def upsert_poll_contest(self, record: PollContestRecord) -> None:
        self.poll_contests[int(record.message_id)] = replace(record)

    async def get_poll_contest(self, message_id: int) -> PollContestRecord | None:
        row = self.poll_contests.get(int(message_id))
        return replace(row) if row else None

    async def list_poll_contests(self, guild_id: int | None = None) -> list[PollContestRecord]:
        rows = [row for row in self.poll_contests.values() if guild_id is None or row.guild_id == guild_id]
        return [replace(row) for row in sorted(rows, key=lambda row: row.ends_at_ms)]

    async def delete_poll_contest(self, message_id: int) -> bool:
        return self.poll_contests.pop(int(message_id), None) is not None

    async def create_scheduled_command(
        self,
        *,
        guild_id: int,
        channel_id: int,
        creator_user_id: int,
        command_text: str,
        execute_at_ms: int,
        created_at_ms: int,
    ) -> ScheduledCommandRecord:
        record = ScheduledCommandRecord(
            id=next(self._scheduled_ids),
            guild_id=guild_id,
            channel_id=channel_id,
            creator_user_id=creator_user_id,
            command_text=command_text,
            execute_at_ms=execute_at_ms,
            created_at_ms=created_at_ms,
        )
        self.scheduled_commands[record.id] = record
        return replace(record)

    async def get_scheduled_command(self, job_id: int) -> ScheduledCommandRecord | None:
        row = self.scheduled_commands.get(int(job_id))
        return replace(row) if row else None

    async def list_scheduled_commands(self, guild_id: int | None = None) -> list[ScheduledCommandRecord]:
        rows = [row for row in self.scheduled_commands.values() if guild_id is None or row.guild_id == guild_id]
        return [replace(row) for row in sorted(rows, key=lambda row: (row.execute_at_ms, row.id))]

    async def delete_scheduled_command(self, job_id: int) -> bool:
        return self.scheduled_commands.pop(int(job_id), None) is not None

    async def upsert_lotto(self, record: LottoTrackingRecord) -> None:
        self.lotto[int(record.guild_id)] = replace(record)

    async def get_lotto(self, guild_id: int) -> LottoTrackingRecord | None:
        row = self.lotto.get(int(guild_id))
        return replace(row) if row else None

    async def list_active_lotto(self) -> list[LottoTrackingRecord]:
        return [replace(row) for row in self.lotto.values() if row.active]
