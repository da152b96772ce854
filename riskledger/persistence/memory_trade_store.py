"""Process-local trade store; used when no durable backend is configured and in tests."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from riskledger.ledger.models import Trade
from riskledger.persistence.ports import TradeStore
from riskledger.utils.exceptions import StorageError


class InMemoryTradeStore(TradeStore):
    def __init__(self) -> None:
        self._trades: Dict[int, Trade] = {}
        self._next_id = 1
        self._initialized = False

    def _ordered(self) -> List[Trade]:
        return sorted(self._trades.values(), key=lambda t: (t.timestamp, t.id))

    async def initialize_database(self) -> None:
        self._initialized = True

    async def get_all_trades(self) -> List[Trade]:
        return self._ordered()

    async def save_trade(self, trade: Trade) -> Trade:
        saved = trade.copy_with(id=self._next_id)
        self._next_id += 1
        self._trades[saved.id] = saved
        return saved

    async def update_trade(self, trade: Trade) -> Trade:
        if trade.id not in self._trades:
            raise StorageError(f"Trade {trade.id} not found")
        self._trades[trade.id] = trade
        return trade

    async def delete_trade(self, trade_id: int) -> None:
        self._trades.pop(trade_id, None)

    async def get_trade_by_id(self, trade_id: int) -> Optional[Trade]:
        return self._trades.get(trade_id)

    async def clear_all_trades(self) -> None:
        self._trades.clear()

    async def get_trades_by_date_range(self, start: datetime, end: datetime) -> List[Trade]:
        return [t for t in self._ordered() if start <= t.timestamp <= end]

    async def get_trades_count(self) -> int:
        return len(self._trades)

    async def get_recent_trades(self, limit: int = 10) -> List[Trade]:
        return list(reversed(self._ordered()))[:limit]

    async def export_trades(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self._ordered()]

    @staticmethod
    def _parse_records(records: List[Dict[str, Any]]) -> List[Trade]:
        try:
            return [Trade.from_dict({**r, "id": 0}) for r in records]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError("Invalid trade record in import", original_error=e) from e

    async def import_trades(self, records: List[Dict[str, Any]]) -> None:
        for trade in self._parse_records(records):
            await self.save_trade(trade)

    async def replace_all_trades(self, records: List[Dict[str, Any]]) -> None:
        replaced: Dict[int, Trade] = {}
        next_id = self._next_id
        for trade in self._parse_records(records):
            replaced[next_id] = trade.copy_with(id=next_id)
            next_id += 1
        self._trades = replaced
        self._next_id = next_id

    async def close(self) -> None:
        self._initialized = False
