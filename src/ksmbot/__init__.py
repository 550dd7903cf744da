from ksmbot.commands import CommandResult, CommandStatus, WatchlistService
from ksmbot.database import (
    AsyncDatabaseManager,
    SubscriptionStore,
    ValidatorRegistry,
    get_async_db_manager,
)
from ksmbot.gate import SerializationGate, get_gate

__version__ = "0.1.0"
__all__ = [
    "AsyncDatabaseManager",
    "CommandResult",
    "CommandStatus",
    "SerializationGate",
    "SubscriptionStore",
    "ValidatorRegistry",
    "WatchlistService",
    "get_async_db_manager",
    "get_gate",
    "__version__",
]
