from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime, time as datetime_time
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bot.config import BotConfig


log = logging.getLogger("spectreon.db")

MAX_REDACT_COLLECTION_ITEMS = 20
MAX_REDACT_DEPTH = 4
MAX_STATEMENT_PREVIEW = 400
SLOW_QUERY_MS = 250.0

# bool before int: bool is an int subclass
_PLACEHOLDERS: tuple[tuple[type | tuple[type, ...], str], ...] = (
    (bool, "<bool>"),
    (int, "<int>"),
    (float, "<float>"),
    ((str, bytes, bytearray, memoryview), "<redacted>"),
    (datetime, "<datetime>"),
    (date, "<date>"),
    (datetime_time, "<time>"),
)


def _placeholder(value: object) -> object:
    if value is None:
        return None
    for kinds, label in _PLACEHOLDERS:
        if isinstance(value, kinds):
            return label
    return f"<{type(value).__name__}>"


def _clip(items: list[Any], depth: int) -> list[object]:
    out = [redact_sql_parameters(item, _depth=depth + 1) for item in items[:MAX_REDACT_COLLECTION_ITEMS]]
    hidden = len(items) - MAX_REDACT_COLLECTION_ITEMS
    if hidden > 0:
        out.append(f"... +{hidden} more")
    return out


def redact_sql_parameters(parameters: object, *, _depth: int = 0) -> object:
    """Replace bound values with type placeholders; prizes and entrant lists never reach the log."""
    if _depth >= MAX_REDACT_DEPTH:
        return "<max-depth>"
    if isinstance(parameters, dict):
        keys = list(parameters)
        out: dict[str, object] = {
            str(key): redact_sql_parameters(parameters[key], _depth=_depth + 1)
            for key in keys[:MAX_REDACT_COLLECTION_ITEMS]
        }
        if len(keys) > MAX_REDACT_COLLECTION_ITEMS:
            out["..."] = f"+{len(keys) - MAX_REDACT_COLLECTION_ITEMS} more"
        return out
    if isinstance(parameters, tuple):
        return tuple(_clip(list(parameters), _depth))
    if isinstance(parameters, (list, set, frozenset)):
        return _clip(list(parameters), _depth)
    return _placeholder(parameters)


def _statement_preview(statement: str) -> str:
    flat = " ".join(statement.split())
    if len(flat) <= MAX_STATEMENT_PREVIEW:
        return flat
    return flat[: MAX_STATEMENT_PREVIEW - 3] + "..."


def install_sql_logging(sync_engine: Engine) -> None:
    """Attach DEBUG statement logging plus a slow-query warning to an engine."""

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _before(conn, cursor, statement, parameters, context, executemany):
        context._spectreon_started = time.perf_counter()
        if log.isEnabledFor(logging.DEBUG):
            log.debug("[to-db] %s params=%s", _statement_preview(statement), redact_sql_parameters(parameters))

    @event.listens_for(sync_engine, "after_cursor_execute")
    def _after(conn, cursor, statement, parameters, context, executemany):
        started = getattr(context, "_spectreon_started", None)
        if started is None:
            return
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms >= SLOW_QUERY_MS:
            log.warning("Slow query (%.0fms): %s", elapsed_ms, _statement_preview(statement))
        elif log.isEnabledFor(logging.DEBUG):
            log.debug("[from-db] rows=%s took=%.2fms", cursor.rowcount, elapsed_ms)

    @event.listens_for(sync_engine, "handle_error")
    def _failed(exception_context):
        statement = exception_context.statement or ""
        log.error(
            "[from-db] query failed: %s",
            _statement_preview(statement),
            exc_info=exception_context.original_exception,
        )


class SessionManager:
    """Owns the async engine behind the durable contest tables."""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self._engine: AsyncEngine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        install_sql_logging(self._engine.sync_engine)

    @classmethod
    def from_config(cls, config: BotConfig) -> "SessionManager":
        return cls(config.database_url, echo=config.db_echo)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def read_scope(self) -> AsyncIterator[AsyncSession]:
        # lookups never commit; the transaction is discarded on exit
        async with self._session_factory() as session:
            yield session

    async def dispose(self) -> None:
        await self._engine.dispose()
