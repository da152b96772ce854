"""
Ledger data models
==================

Trades are immutable records. Identity is assigned by the trade store; a
trade that has not been persisted yet carries ``id == 0``.
Timestamps serialize as ISO-8601 strings in the persisted record.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional


def to_local_naive(ts: datetime) -> datetime:
    """Aware timestamps become naive local time; ledger timestamps are always naive."""
    return ts if ts.tzinfo is None else ts.astimezone().replace(tzinfo=None)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return to_local_naive(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_local_naive(datetime.fromisoformat(text))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


@dataclass(frozen=True)
class Trade:
    """A single closed trade result. Positive = profit, negative = loss."""
    id: int = 0
    result: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def new(cls, result: float, timestamp: Optional[datetime] = None) -> "Trade":
        return cls(id=0, result=float(result), timestamp=to_local_naive(timestamp or datetime.now()))

    @property
    def is_win(self) -> bool:
        return self.result > 0

    @property
    def is_loss(self) -> bool:
        return self.result < 0

    def copy_with(self, **changes: Any) -> "Trade":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "result": self.result,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Trade":
        return cls(
            id=int(d.get("id") or 0),
            result=float(d["result"]),
            timestamp=parse_timestamp(d["timestamp"]),
        )
