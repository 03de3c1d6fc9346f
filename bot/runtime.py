from __future__ import annotations

import logging
import os

import discord

from bot.config import BotConfig, load_config
from bot.logging_setup import setup_logging
from bot.main import BotApplication
from db.repository import InMemoryRepository, Repository
from db.schema_guard import ensure_required_schema, validate_required_tables
from platform_io.gateway import PlatformGateway
from services.persistence_service import SqlRepository


log = logging.getLogger("spectreon.runtime")


def build_repository(config: BotConfig) -> Repository:
    if config.uses_memory_store:
        log.warning("DATABASE_URL=memory:// ; durable records will not survive a restart")
        return InMemoryRepository()
    return SqlRepository(config)


class SpectreonClient(discord.Client):
    def __init__(self, config: BotConfig, repo: Repository) -> None:
        intents = discord.Intents.default()
        intents.members = True
        intents.message_content = config.enable_message_content_intent
        super().__init__(intents=intents)

        self.config = config
        self.repo = repo
        self.app = BotApplication(config=config, repo=repo, gateway=PlatformGateway(self))
        self._schema_checked = False
        self._commands_synced = False

    async def setup_hook(self) -> None:
        if not self._schema_checked:
            await self._ensure_schema()
            self._schema_checked = True
        # timers armed here wait on is_ready() through DependencyRetry
        self.app.start_restore()

    async def _ensure_schema(self) -> None:
        if not isinstance(self.repo, SqlRepository):
            return
        async with self.repo.session_manager.engine.begin() as connection:
            changes = await ensure_required_schema(connection)
            await validate_required_tables(connection)
        if changes:
            log.info("Applied DB schema changes: %s", ", ".join(changes))

    async def on_ready(self) -> None:
        if not self._commands_synced:
            await self._sync_slash_commands()
            self._commands_synced = True
        log.info("Spectreon ready as %s in %s guilds", self.user, len(self.guilds))

    async def _sync_slash_commands(self) -> None:
        payload = self.app.registry.slash_definitions()
        guild_id = self.config.command_sync_guild_id
        try:
            if guild_id:
                await self.http.bulk_upsert_guild_commands(self.application_id, guild_id, payload)
            else:
                await self.http.bulk_upsert_global_commands(self.application_id, payload)
        except discord.HTTPException:
            log.exception("Slash command sync failed (guild=%s)", guild_id or "global")
            return
        log.info("Synced %s slash commands (guild=%s)", len(payload), guild_id or "global")

    async def on_message(self, message: discord.Message) -> None:
        await self.app.handle_message(message)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        await self.app.handle_interaction(interaction)

    async def close(self) -> None:
        await self.app.close()
        if isinstance(self.repo, SqlRepository):
            await self.repo.session_manager.dispose()
        await super().close()


def run() -> int:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = load_config()
    except ValueError as exc:
        log.error("Config error: %s", exc)
        return 1

    setup_logging(os.getenv("LOG_LEVEL", "INFO"), discord_level=config.discord_log_level)
    if not config.discord_token:
        log.error("DISCORD_TOKEN missing")
        return 1

    client = SpectreonClient(config, build_repository(config))
    try:
        client.run(config.discord_token, log_handler=None)
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
