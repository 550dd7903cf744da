"""
Database package for SQLAlchemy models and the registry stores.
"""

from .models import (
    Base,
    SubscriptionDB,
    ValidatorSnapshotDB,
    WatchedTelemetryNodeDB,
    WatchedValidatorDB,
)
from .async_session import AsyncDatabaseManager, get_async_db_manager
from .subscriptions import SubscriptionStore
from .validators import ValidatorRegistry

__all__ = [
    "Base",
    "SubscriptionDB",
    "ValidatorSnapshotDB",
    "WatchedTelemetryNodeDB",
    "WatchedValidatorDB",
    "AsyncDatabaseManager",
    "get_async_db_manager",
    "SubscriptionStore",
    "ValidatorRegistry",
]
