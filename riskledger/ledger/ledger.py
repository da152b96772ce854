"""
Trade ledger - ordered trade history over the trade-store port
===============================================================

The ledger keeps an in-memory cache of the store's trades:

  - populated lazily on first read (or ``refresh()``)
  - ``add`` appends the stored trade only after the write succeeded
  - every other mutation clears the cache; the next read rebuilds it

Aggregate readers are synchronous and work on the cache, so they require a
prior ``get_all()`` / ``refresh()``. Store failures come back as
``RepositoryError`` carrying the operation name.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from riskledger.ledger import statistics as stats
from riskledger.ledger.models import Trade
from riskledger.ledger.statistics import TradeStatistics
from riskledger.persistence.ports import TradeStore
from riskledger.utils.exceptions import RepositoryError, RiskLedgerError, ValidationError
from riskledger.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class TradeLedger:
    def __init__(self, store: TradeStore):
        self._store = store
        self._cache: Optional[List[Trade]] = None

    @property
    def is_loaded(self) -> bool:
        return self._cache is not None

    @property
    def trades(self) -> List[Trade]:
        return list(self._require_cache())

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        except RepositoryError:
            raise
        except (RiskLedgerError, OSError, TypeError, ValueError) as e:
            logger.error("ledger_operation_failed", operation=operation, error=str(e))
            raise RepositoryError(f"Failed to {operation}", operation=operation, original_error=e) from e

    def _invalidate(self) -> None:
        self._cache = None

    def _require_cache(self) -> List[Trade]:
        if self._cache is None:
            raise RepositoryError("Trade cache not loaded; call get_all() first", operation="read_cache")
        return self._cache

    # ── Reads ───────────────────────────────────────────────────

    async def get_all(self) -> List[Trade]:
        if self._cache is None:
            self._cache = await self._call("load trades", self._store.get_all_trades)
            logger.debug("ledger_cache_loaded", trade_count=len(self._cache))
        return list(self._cache)

    async def refresh(self) -> List[Trade]:
        self._invalidate()
        return await self.get_all()

    async def get_by_id(self, trade_id: int) -> Optional[Trade]:
        if self._cache is not None:
            for trade in self._cache:
                if trade.id == trade_id:
                    return trade
            return None
        return await self._call("get trade", lambda: self._store.get_trade_by_id(trade_id))

    async def get_by_date_range(self, start: datetime, end: datetime) -> List[Trade]:
        if start > end:
            raise ValidationError(
                f"Invalid date range: start {start.isoformat()} is after end {end.isoformat()}",
                code="INVALID_DATE_RANGE",
            )
        return await self._call(
            "get trades by date range",
            lambda: self._store.get_trades_by_date_range(start, end),
        )

    async def get_recent(self, limit: int = 10) -> List[Trade]:
        return await self._call("get recent trades", lambda: self._store.get_recent_trades(limit))

    async def count(self) -> int:
        if self._cache is not None:
            return len(self._cache)
        return await self._call("count trades", self._store.get_trades_count)

    # ── Mutations ───────────────────────────────────────────────

    async def add(self, trade: Trade) -> Trade:
        # identity comes from the store, whatever the caller passed
        saved = await self._call("add trade", lambda: self._store.save_trade(trade.copy_with(id=0)))
        if self._cache is not None:
            self._cache.append(saved)
        logger.info("trade_added", trade_id=saved.id, result=saved.result)
        return saved

    async def update(self, trade: Trade) -> Trade:
        self._invalidate()
        updated = await self._call("update trade", lambda: self._store.update_trade(trade))
        logger.info("trade_updated", trade_id=updated.id, result=updated.result)
        return updated

    async def delete(self, trade_id: int) -> None:
        self._invalidate()
        await self._call("delete trade", lambda: self._store.delete_trade(trade_id))
        logger.info("trade_deleted", trade_id=trade_id)

    async def clear_all(self) -> None:
        self._invalidate()
        await self._call("clear trades", self._store.clear_all_trades)
        logger.info("trades_cleared")

    async def export_trades(self) -> List[Dict[str, Any]]:
        return await self._call("export trades", self._store.export_trades)

    async def import_trades(self, records: List[Dict[str, Any]]) -> None:
        self._invalidate()
        await self._call("import trades", lambda: self._store.import_trades(records))
        logger.info("trades_imported", trade_count=len(records))

    async def replace_all(self, records: List[Dict[str, Any]]) -> None:
        """Swap the whole history for ``records`` in one store transaction."""
        self._invalidate()
        await self._call("replace trades", lambda: self._store.replace_all_trades(records))
        logger.info("trades_replaced", trade_count=len(records))

    async def close(self) -> None:
        self._invalidate()
        await self._call("close trade store", self._store.close)

    # ── Aggregates (cache only) ─────────────────────────────────

    def total_pnl(self) -> float:
        return stats.total_pnl(self._require_cache())

    def max_drawdown(self) -> float:
        return stats.max_drawdown(self._require_cache())

    def win_count(self) -> int:
        return stats.win_count(self._require_cache())

    def loss_count(self) -> int:
        return stats.loss_count(self._require_cache())

    def win_rate(self) -> float:
        return stats.win_rate(self._require_cache())

    def average_win(self) -> float:
        return stats.average_win(self._require_cache())

    def average_loss(self) -> float:
        return stats.average_loss(self._require_cache())

    def statistics(self) -> TradeStatistics:
        return stats.calculate_statistics(self._require_cache())
