from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import Table, text
from sqlalchemy.ext.asyncio import AsyncConnection

from db.models import Base, mapped_public_table_names


log = logging.getLogger("spectreon.db")

BIGINT_UDT_NAMES = frozenset({"int8", "bigint"})
# snowflake ids and epoch-ms timestamps overflow int4
REQUIRED_BIGINT_COLUMNS = (
    ("giveaways", "message_id"),
    ("giveaways", "ends_at_ms"),
    ("giveaways", "ended_at_ms"),
    ("poll_contests", "message_id"),
    ("poll_contests", "ends_at_ms"),
    ("scheduled_contest_commands", "guild_id"),
    ("scheduled_contest_commands", "execute_at_ms"),
    ("lotto_tracking", "guild_id"),
)


async def fetch_public_tables(connection: AsyncConnection) -> set[str]:
    result = await connection.execute(
        text("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public'")
    )
    return set(result.scalars().all())


async def fetch_column_udt_names(connection: AsyncConnection) -> dict[tuple[str, str], str]:
    result = await connection.execute(
        text(
            """
            SELECT table_name, column_name, udt_name
            FROM information_schema.columns
            WHERE table_schema = 'public'
            """
        )
    )
    return {(str(table), str(column)): str(udt or "").lower() for table, column, udt in result.fetchall()}


def narrow_integer_columns(udt_names: dict[tuple[str, str], str]) -> list[str]:
    """Required bigint columns that exist with a narrower type."""
    narrow = []
    for table, column in REQUIRED_BIGINT_COLUMNS:
        udt = udt_names.get((table, column))
        if udt is not None and udt not in BIGINT_UDT_NAMES:
            narrow.append(f"{table}.{column}")
    return narrow


def _model_table_map() -> dict[str, Table]:
    return {table.name: table for table in Base.metadata.sorted_tables}


def _resolve_required_tables(required_tables: Iterable[str] | None) -> list[str]:
    if required_tables is None:
        return list(mapped_public_table_names())
    return list(required_tables)


def missing_tables(existing: Iterable[str], required_tables: Iterable[str] | None = None) -> list[str]:
    known = set(existing)
    return sorted(table for table in _resolve_required_tables(required_tables) if table not in known)


async def ensure_required_schema(
    connection: AsyncConnection,
    required_tables: Iterable[str] | None = None,
) -> list[str]:
    """Creates missing mapped tables; returns ``create_table:<name>`` change markers."""
    required_list = _resolve_required_tables(required_tables)
    table_map = _model_table_map()
    unmapped = sorted(table for table in required_list if table not in table_map)
    if unmapped:
        raise RuntimeError(f"Schema guard references unmapped tables: {', '.join(unmapped)}")

    existing = await fetch_public_tables(connection)
    missing = [table for table in required_list if table not in existing]
    if not missing:
        return []

    create_tables: list[Table] = [table_map[name] for name in missing]

    def _sync_create(sync_connection):
        Base.metadata.create_all(sync_connection, tables=create_tables, checkfirst=True)

    await connection.run_sync(_sync_create)
    for name in missing:
        log.info("Created table %s", name)
    return [f"create_table:{name}" for name in missing]


async def validate_required_tables(connection: AsyncConnection, required_tables: Iterable[str] | None = None) -> None:
    absent = missing_tables(await fetch_public_tables(connection), required_tables)
    if absent:
        raise RuntimeError(f"Missing required DB tables: {', '.join(absent)}")
    narrow = narrow_integer_columns(await fetch_column_udt_names(connection))
    if narrow:
        raise RuntimeError(f"Columns must be BIGINT: {', '.join(narrow)}")
