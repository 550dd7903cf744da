"""
Shared fixtures: a fresh SQLite database per test.
"""

import pytest

from ksmbot.commands import WatchlistService
from ksmbot.database import AsyncDatabaseManager, SubscriptionStore, ValidatorRegistry
from ksmbot.gate import SerializationGate
from ksmbot.models import Conversation, EndUser


@pytest.fixture
async def db_manager(tmp_path):
    manager = AsyncDatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'ksm_bot.db'}")
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def gate():
    return SerializationGate()


@pytest.fixture
def store(db_manager, gate):
    return SubscriptionStore(db_manager, gate=gate)


@pytest.fixture
def registry(db_manager):
    return ValidatorRegistry(db_manager)


@pytest.fixture
def service(store, registry):
    return WatchlistService(store, registry)


@pytest.fixture
def end_user():
    return EndUser(id=42, first_name="Ada", username="ada", language_code="en")


@pytest.fixture
def conversation():
    return Conversation(id=100, first_name="Ada", username="ada", type="private")
