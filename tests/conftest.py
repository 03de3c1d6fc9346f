from __future__ import annotations

import pytest

from bot.config import BotConfig
from commands.registry import CommandRegistry
from db.repository import InMemoryRepository
from fakes import FakeChannel, FakeClock, FakeGateway


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def gateway(channel: FakeChannel) -> FakeGateway:
    fake = FakeGateway()
    fake.add_channel(channel)
    return fake


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def registry() -> CommandRegistry:
    return CommandRegistry()


@pytest.fixture
def config() -> BotConfig:
    return BotConfig(
        discord_token="token",
        database_url="memory://",
        discord_log_level="DEBUG",
    )
