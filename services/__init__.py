"""Services: duplicate registry, extraction history, outcome routing."""

from services.consumer_registry import InMemoryConsumerRegistry, SqlConsumerRegistry
from services.database import create_db_engine
from services.history_store import InMemoryHistoryStore, SqlHistoryStore
from services.outcome_router import OutcomeRouter

__all__ = [
    "InMemoryConsumerRegistry",
    "SqlConsumerRegistry",
    "create_db_engine",
    "InMemoryHistoryStore",
    "SqlHistoryStore",
    "OutcomeRouter",
]
