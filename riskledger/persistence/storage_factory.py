from __future__ import annotations

from riskledger.persistence.memory_trade_store import InMemoryTradeStore
from riskledger.persistence.ports import TradeStore
from riskledger.persistence.sqlite_trade_store import SqliteTradeStore
from riskledger.utils.config import Settings
from riskledger.utils.exceptions import StorageError


def create_trade_store(settings: Settings) -> TradeStore:
    backend = settings.trade_store_backend.lower()
    if backend == "sqlite":
        return SqliteTradeStore(settings.trade_db_file)
    if backend == "memory":
        return InMemoryTradeStore()
    raise StorageError(f"Unknown trade store backend: {settings.trade_store_backend}")
