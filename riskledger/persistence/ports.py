"""
Storage ports consumed by the ledger, the coordinator and the backup manager.

Implementations raise ``StorageError`` when the backend fails; callers above
them wrap it with their own operation context.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from riskledger.ledger.models import Trade
from riskledger.risk.profile import RiskProfile


class KeyValueStore(ABC):
    """String keys, JSON-compatible values."""

    name: str = "kv"

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        ...

    @abstractmethod
    async def keys(self) -> List[str]:
        ...

    async def is_available(self) -> bool:
        """Write/read/remove a sentinel key; False if the store is unusable."""
        sentinel = "__availability_check__"
        try:
            await self.set(sentinel, "ok")
            ok = await self.get(sentinel) == "ok"
            await self.remove(sentinel)
            return ok
        except Exception:
            return False


class ConfigStore(ABC):
    @abstractmethod
    async def save_risk_settings(self, profile: RiskProfile) -> None:
        ...

    @abstractmethod
    async def load_risk_settings(self) -> Optional[RiskProfile]:
        ...

    @abstractmethod
    async def clear_risk_settings(self) -> None:
        ...

    @abstractmethod
    async def has_risk_settings(self) -> bool:
        ...


class TradeStore(ABC):
    @abstractmethod
    async def initialize_database(self) -> None:
        ...

    @abstractmethod
    async def get_all_trades(self) -> List[Trade]:
        ...

    @abstractmethod
    async def save_trade(self, trade: Trade) -> Trade:
        ...

    @abstractmethod
    async def update_trade(self, trade: Trade) -> Trade:
        ...

    @abstractmethod
    async def delete_trade(self, trade_id: int) -> None:
        ...

    @abstractmethod
    async def get_trade_by_id(self, trade_id: int) -> Optional[Trade]:
        ...

    @abstractmethod
    async def clear_all_trades(self) -> None:
        ...

    @abstractmethod
    async def get_trades_by_date_range(self, start: datetime, end: datetime) -> List[Trade]:
        ...

    @abstractmethod
    async def get_trades_count(self) -> int:
        ...

    @abstractmethod
    async def get_recent_trades(self, limit: int = 10) -> List[Trade]:
        ...

    @abstractmethod
    async def export_trades(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def import_trades(self, records: List[Dict[str, Any]]) -> None:
        ...

    @abstractmethod
    async def replace_all_trades(self, records: List[Dict[str, Any]]) -> None:
        """Delete every trade and insert ``records`` atomically; on failure nothing changes."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
