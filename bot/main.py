from __future__ import annotations

import logging
from typing import Any

import discord

from bot.config import BotConfig
from bot.permissions import PrivilegedUsers, actor_from_interaction, actor_from_message
from commands.exposure import ExposurePolicy
from commands.exposure_config import load_exposure_settings
from commands.registry import CommandRegistry, DispatchResult
from contests import GiveawayService, LottoTracker, PollContestService, RngCommands, ScheduledCommandService
from contests.eligibility import VerifiedRolePolicy
from db.repository import Repository
from games import (
    AuctionGame,
    BingoGame,
    ClosestRollGame,
    DealOrNoDealGame,
    ExplodingElectrodeGame,
    ExplodingVoltorbsGame,
)
from platform_io.gateway import PlatformGateway
from platform_io.task_registry import RetryPolicy, SingletonTaskRegistry


log = logging.getLogger("spectreon.runtime")

RESTORE_TASK_NAME = "restore_durable_state"


def retry_policy_from_config(config: BotConfig) -> RetryPolicy:
    return RetryPolicy(
        initial_delay=float(config.dependency_retry_initial_seconds),
        max_delay=float(config.dependency_retry_max_seconds),
        max_attempts=config.dependency_retry_max_attempts,
    )


class BotApplication:
    """Everything the bot does, independent of the gateway connection."""

    def __init__(
        self,
        *,
        config: BotConfig,
        repo: Repository,
        gateway: PlatformGateway,
        exposure: ExposurePolicy | None = None,
        privileged: PrivilegedUsers | None = None,
        eligibility: VerifiedRolePolicy | None = None,
    ) -> None:
        self.config = config
        self.repo = repo
        self.gateway = gateway
        self.privileged = privileged or PrivilegedUsers()
        self.registry = CommandRegistry(exposure or ExposurePolicy(load_exposure_settings()))
        self.task_registry = SingletonTaskRegistry()
        retry_policy = retry_policy_from_config(config)

        self.closest_roll = ClosestRollGame()
        self.rng = RngCommands(self.closest_roll)
        self.bingo = BingoGame()
        self.auction = AuctionGame(gateway=gateway)
        self.dond = DealOrNoDealGame()
        self.voltorbs = ExplodingVoltorbsGame()
        self.electrode = ExplodingElectrodeGame(gateway=gateway)

        self.giveaways = GiveawayService(
            repo, gateway, eligibility=eligibility, privileged=self.privileged, retry_policy=retry_policy
        )
        self.polls = PollContestService(repo, gateway, retry_policy=retry_policy)
        self.scheduler = ScheduledCommandService(
            repo, gateway, self.registry, privileged=self.privileged, retry_policy=retry_policy
        )
        self.lotto = LottoTracker(repo, default_url=config.lotto_default_thread_url)

        for feature in self.features:
            feature.register(self.registry.register)
        log.info(
            "Registered %s text commands, %s slash commands, %s component prefixes",
            len(self.registry.commands()),
            len(self.registry.slash_names()),
            len(self.registry.component_prefixes()),
        )

    @property
    def features(self) -> list[Any]:
        return [
            self.rng,
            self.closest_roll,
            self.bingo,
            self.auction,
            self.dond,
            self.voltorbs,
            self.electrode,
            self.giveaways,
            self.polls,
            self.scheduler,
            self.lotto,
        ]

    @property
    def managers(self) -> list[Any]:
        return [
            self.closest_roll.manager,
            self.rng.elim,
            self.bingo.manager,
            self.auction.manager,
            self.dond.manager,
            self.voltorbs.manager,
            self.electrode.manager,
            self.giveaways.manager,
            self.polls.manager,
            self.scheduler.manager,
            self.lotto.manager,
        ]

    async def restore(self) -> dict[str, int]:
        """Re-arms durable records against their stored target times."""
        restored = {
            "giveaways": await self.giveaways.boot(),
            "polls": await self.polls.boot(),
            "scheduled": await self.scheduler.boot(),
            "lotto": await self.lotto.boot(),
        }
        log.info("Durable state restored: %s", restored)
        return restored

    def start_restore(self) -> Any:
        return self.task_registry.start_once(RESTORE_TASK_NAME, self.restore)

    async def handle_message(self, message: Any) -> DispatchResult | None:
        author = getattr(message, "author", None)
        if author is None or getattr(author, "bot", False):
            return None
        actor = actor_from_message(message, self.privileged)
        return await self.registry.dispatch_message(message, actor)

    async def handle_interaction(self, interaction: Any) -> Any:
        actor = actor_from_interaction(interaction, self.privileged)
        kind = getattr(interaction, "type", None)
        if kind == discord.InteractionType.application_command:
            return await self.registry.dispatch_slash(interaction, actor)
        if kind == discord.InteractionType.autocomplete:
            return await self.registry.dispatch_autocomplete(interaction, actor)
        if kind in (discord.InteractionType.component, discord.InteractionType.modal_submit):
            return await self.registry.dispatch_component(interaction, actor)
        return None

    async def close(self) -> None:
        await self.task_registry.cancel_all()
        stopped = sum(manager.stop_all() for manager in self.managers)
        log.info("Application closed; stopped %s sessions", stopped)
