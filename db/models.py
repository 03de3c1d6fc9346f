from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Giveaway(Base):
    __tablename__ = "giveaways"

    message_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    host_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    prize: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    winners_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    ends_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    require_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    entrants_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    winners_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    ended_at_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    summary_message_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    canceled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PollContest(Base):
    __tablename__ = "poll_contests"

    message_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ends_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    run_choose: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    get_lists: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    winners_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ScheduledContestCommand(Base):
    __tablename__ = "scheduled_contest_commands"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    creator_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    command_text: Mapped[str] = mapped_column(Text, nullable=False)
    execute_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)


class LottoTracking(Base):
    __tablename__ = "lotto_tracking"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    thread_url: Mapped[str] = mapped_column(String(512), nullable=False)
    start_post_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


def mapped_public_table_names() -> tuple[str, ...]:
    return tuple(table.name for table in Base.metadata.sorted_tables)


REQUIRED_BOOT_TABLES = mapped_public_table_names()
