from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from bot.config import BotConfig
from db.models import Giveaway, LottoTracking, PollContest, ScheduledContestCommand
from db.repository import (
    GiveawayRecord,
    LottoTrackingRecord,
    PollContestRecord,
    ScheduledCommandRecord,
)
from db.session import SessionManager


log = logging.getLogger("spectreon.db")


@dataclass(frozen=True)
class _TableSpec:
    name: str
    model: type[Any]
    pk_columns: tuple[str, ...]
    columns: tuple[str, ...]


_GIVEAWAYS = _TableSpec(
    "giveaways",
    Giveaway,
    ("message_id",),
    (
        "message_id",
        "guild_id",
        "channel_id",
        "host_id",
        "prize",
        "description",
        "winners_count",
        "ends_at_ms",
        "require_verified",
        "entrants_json",
        "winners_json",
        "ended_at_ms",
        "summary_message_id",
        "canceled",
    ),
)
_POLL_CONTESTS = _TableSpec(
    "poll_contests",
    PollContest,
    ("message_id",),
    ("message_id", "guild_id", "channel_id", "owner_id", "ends_at_ms", "run_choose", "get_lists", "winners_only"),
)
_LOTTO = _TableSpec("lotto_tracking", LottoTracking, ("guild_id",), ("guild_id", "active", "thread_url", "start_post_id"))


def dump_id_list(values: list[int]) -> str:
    """User id lists are stored as JSON arrays of strings."""
    return json.dumps([str(value) for value in values])


def load_id_list(raw: str | None) -> list[int]:
    if not raw:
        return []
    try:
        values = json.loads(raw)
    except (TypeError, ValueError):
        log.warning("Ignoring malformed id list: %r", raw[:80])
        return []
    if not isinstance(values, list):
        return []
    out: list[int] = []
    for value in values:
        try:
            out.append(int(value))
        except (TypeError, ValueError):
            continue
    return out


def giveaway_to_row(record: GiveawayRecord) -> dict[str, Any]:
    return {
        "message_id": record.message_id,
        "guild_id": record.guild_id,
        "channel_id": record.channel_id,
        "host_id": record.host_id,
        "prize": record.prize,
        "description": record.description,
        "winners_count": record.winners_count,
        "ends_at_ms": record.ends_at_ms,
        "require_verified": record.require_verified,
        "entrants_json": dump_id_list(record.entrants),
        "winners_json": dump_id_list(record.winners),
        "ended_at_ms": record.ended_at_ms,
        "summary_message_id": record.summary_message_id,
        "canceled": record.canceled,
    }


def giveaway_from_row(row: Giveaway) -> GiveawayRecord:
    return GiveawayRecord(
        message_id=int(row.message_id),
        guild_id=int(row.guild_id),
        channel_id=int(row.channel_id),
        host_id=int(row.host_id),
        prize=row.prize,
        description=row.description,
        winners_count=int(row.winners_count),
        ends_at_ms=int(row.ends_at_ms),
        require_verified=bool(row.require_verified),
        entrants=load_id_list(row.entrants_json),
        winners=load_id_list(row.winners_json),
        ended_at_ms=int(row.ended_at_ms) if row.ended_at_ms is not None else None,
        summary_message_id=int(row.summary_message_id) if row.summary_message_id is not None else None,
        canceled=bool(row.canceled),
    )


def _poll_from_row(row: PollContest) -> PollContestRecord:
    return PollContestRecord(
        message_id=int(row.message_id),
        guild_id=int(row.guild_id),
        channel_id=int(row.channel_id),
        owner_id=int(row.owner_id),
        ends_at_ms=int(row.ends_at_ms),
        run_choose=bool(row.run_choose),
        get_lists=bool(row.get_lists),
        winners_only=bool(row.winners_only),
    )


def _scheduled_from_row(row: ScheduledContestCommand) -> ScheduledCommandRecord:
    return ScheduledCommandRecord(
        id=int(row.id),
        guild_id=int(row.guild_id),
        channel_id=int(row.channel_id),
        creator_user_id=int(row.creator_user_id),
        command_text=row.command_text,
        execute_at_ms=int(row.execute_at_ms),
        created_at_ms=int(row.created_at_ms),
    )


def _lotto_from_row(row: LottoTracking) -> LottoTrackingRecord:
    return LottoTrackingRecord(
        guild_id=int(row.guild_id),
        thread_url=row.thread_url,
        active=bool(row.active),
        start_post_id=int(row.start_post_id) if row.start_post_id is not None else None,
    )


class SqlRepository:
    """Repository backed by PostgreSQL through SQLAlchemy's async ORM."""

    def __init__(self, config: BotConfig, *, session_manager: SessionManager | None = None) -> None:
        self.session_manager = session_manager or SessionManager.from_config(config)

    async def _upsert(self, spec: _TableSpec, values: dict[str, Any]) -> None:
        stmt = pg_insert(spec.model).values(**values)
        updates = {column: stmt.excluded[column] for column in spec.columns if column not in spec.pk_columns}
        stmt = stmt.on_conflict_do_update(index_elements=list(spec.pk_columns), set_=updates)
        async with self.session_manager.session_scope() as session:
            await session.execute(stmt)

    async def _delete(self, model: type[Any], condition: Any) -> bool:
        async with self.session_manager.session_scope() as session:
            result = await session.execute(delete(model).where(condition))
            return bool(result.rowcount)

    # giveaways

    async def upsert_giveaway(self, record: GiveawayRecord) -> None:
        await self._upsert(_GIVEAWAYS, giveaway_to_row(record))

    async def get_giveaway(self, message_id: int) -> GiveawayRecord | None:
        async with self.session_manager.read_scope() as session:
            row = await session.get(Giveaway, int(message_id))
            return giveaway_from_row(row) if row else None

    async def list_open_giveaways(self, guild_id: int | None = None) -> list[GiveawayRecord]:
        stmt = select(Giveaway).where(Giveaway.canceled.is_(False), Giveaway.ended_at_ms.is_(None))
        if guild_id is not None:
            stmt = stmt.where(Giveaway.guild_id == guild_id)
        async with self.session_manager.read_scope() as session:
            rows = (await session.execute(stmt.order_by(Giveaway.ends_at_ms))).scalars().all()
            return [giveaway_from_row(row) for row in rows]

    async def list_giveaways(self, guild_id: int) -> list[GiveawayRecord]:
        stmt = select(Giveaway).where(Giveaway.guild_id == guild_id).order_by(Giveaway.ends_at_ms.desc())
        async with self.session_manager.read_scope() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [giveaway_from_row(row) for row in rows]

    async def delete_giveaway(self, message_id: int) -> bool:
        return await self._delete(Giveaway, Giveaway.message_id == int(message_id))

    # poll contests

    async def upsert_poll_contest(self, record: PollContestRecord) -> None:
        await self._upsert(_POLL_CONTESTS, {column: getattr(record, column) for column in _POLL_CONTESTS.columns})

    async def get_poll_contest(self, message_id: int) -> PollContestRecord | None:
        async with self.session_manager.read_scope() as session:
            row = await session.get(PollContest, int(message_id))
            return _poll_from_row(row) if row else None

    async def list_poll_contests(self, guild_id: int | None = None) -> list[PollContestRecord]:
        stmt = select(PollContest).order_by(PollContest.ends_at_ms)
        if guild_id is not None:
            stmt = stmt.where(PollContest.guild_id == guild_id)
        async with self.session_manager.read_scope() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_poll_from_row(row) for row in rows]

    async def delete_poll_contest(self, message_id: int) -> bool:
        return await self._delete(PollContest, PollContest.message_id == int(message_id))

    # scheduled commands

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
        stmt = (
            insert(ScheduledContestCommand)
            .values(
                guild_id=guild_id,
                channel_id=channel_id,
                creator_user_id=creator_user_id,
                command_text=command_text,
                execute_at_ms=execute_at_ms,
                created_at_ms=created_at_ms,
            )
            .returning(ScheduledContestCommand.id)
        )
        async with self.session_manager.session_scope() as session:
            job_id = (await session.execute(stmt)).scalar_one()
        return ScheduledCommandRecord(
            id=int(job_id),
            guild_id=guild_id,
            channel_id=channel_id,
            creator_user_id=creator_user_id,
            command_text=command_text,
            execute_at_ms=execute_at_ms,
            created_at_ms=created_at_ms,
        )

    async def get_scheduled_command(self, job_id: int) -> ScheduledCommandRecord | None:
        async with self.session_manager.read_scope() as session:
            row = await session.get(ScheduledContestCommand, int(job_id))
            return _scheduled_from_row(row) if row else None

    async def list_scheduled_commands(self, guild_id: int | None = None) -> list[ScheduledCommandRecord]:
        stmt = select(ScheduledContestCommand).order_by(ScheduledContestCommand.execute_at_ms, ScheduledContestCommand.id)
        if guild_id is not None:
            stmt = stmt.where(ScheduledContestCommand.guild_id == guild_id)
        async with self.session_manager.read_scope() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_scheduled_from_row(row) for row in rows]

    async def delete_scheduled_command(self, job_id: int) -> bool:
        return await self._delete(ScheduledContestCommand, ScheduledContestCommand.id == int(job_id))

    # lotto

    async def upsert_lotto(self, record: LottoTrackingRecord) -> None:
        await self._upsert(_LOTTO, {column: getattr(record, column) for column in _LOTTO.columns})

    async def get_lotto(self, guild_id: int) -> LottoTrackingRecord | None:
        async with self.session_manager.read_scope() as session:
            row = await session.get(LottoTracking, int(guild_id))
            return _lotto_from_row(row) if row else None

    async def list_active_lotto(self) -> list[LottoTrackingRecord]:
        stmt = select(LottoTracking).where(LottoTracking.active.is_(True))
        async with self.session_manager.read_scope() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_lotto_from_row(row) for row in rows]
