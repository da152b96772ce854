"""
SQLite trade store
==================

Tables:
  trades - one row per closed trade (id assigned by SQLite)

Indexes:
  By timestamp, by created_at

All methods with a leading underscore are synchronous (sqlite3 is blocking);
the public async methods run them in the default executor.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from riskledger.ledger.models import Trade, parse_timestamp
from riskledger.persistence.ports import TradeStore
from riskledger.utils.exceptions import StorageError

logger = logging.getLogger("trade_store")


class SqliteTradeStore(TradeStore):
    """
    SQLite-backed trade ledger storage.
    One shared connection guarded by a lock; trades come back in timestamp order.
    """

    def __init__(self, db_path: str = "data/risk_management.db"):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._db_path != ":memory:":
                os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
            self._conn = sqlite3.connect(self._db_path, timeout=10, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            if self._db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS trades (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                result      REAL NOT NULL,
                timestamp   TEXT NOT NULL,
                created_at  TEXT DEFAULT '',
                updated_at  TEXT DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS idx_trades_timestamp ON trades(timestamp);
            CREATE INDEX IF NOT EXISTS idx_trades_created_at ON trades(created_at);
        """)
        conn.commit()
        logger.info("Trade store initialized: %s", self._db_path)

    async def _run(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        def locked() -> Any:
            with self._lock:
                return fn(*args)

        try:
            return await asyncio.get_running_loop().run_in_executor(None, locked)
        except sqlite3.Error as e:
            logger.error("Trade store %s failed: %s", operation, e)
            raise StorageError(f"Trade store {operation} failed", original_error=e) from e

    @staticmethod
    def _row_to_trade(row: sqlite3.Row) -> Trade:
        return Trade(
            id=int(row["id"]),
            result=float(row["result"]),
            timestamp=parse_timestamp(row["timestamp"]),
        )

    # ─── SYNC IMPLEMENTATIONS ───────────────────────────────────

    def _get_all(self) -> List[Trade]:
        rows = self._get_conn().execute(
            "SELECT id, result, timestamp FROM trades ORDER BY timestamp ASC, id ASC"
        ).fetchall()
        return [self._row_to_trade(r) for r in rows]

    def _insert(self, trade: Trade) -> Trade:
        conn = self._get_conn()
        now = datetime.now().isoformat()
        cur = conn.execute(
            "INSERT INTO trades (result, timestamp, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (trade.result, trade.timestamp.isoformat(), now, now),
        )
        conn.commit()
        return trade.copy_with(id=int(cur.lastrowid))

    def _update(self, trade: Trade) -> Trade:
        conn = self._get_conn()
        cur = conn.execute(
            "UPDATE trades SET result = ?, timestamp = ?, updated_at = ? WHERE id = ?",
            (trade.result, trade.timestamp.isoformat(), datetime.now().isoformat(), trade.id),
        )
        conn.commit()
        if cur.rowcount == 0:
            raise StorageError(f"Trade {trade.id} not found")
        return trade

    def _delete(self, trade_id: int) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM trades WHERE id = ?", (trade_id,))
        conn.commit()

    def _get_by_id(self, trade_id: int) -> Optional[Trade]:
        row = self._get_conn().execute(
            "SELECT id, result, timestamp FROM trades WHERE id = ?", (trade_id,)
        ).fetchone()
        return self._row_to_trade(row) if row else None

    def _clear(self) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM trades")
        conn.commit()

    def _get_range(self, start: datetime, end: datetime) -> List[Trade]:
        rows = self._get_conn().execute(
            "SELECT id, result, timestamp FROM trades "
            "WHERE timestamp >= ? AND timestamp <= ? ORDER BY timestamp ASC, id ASC",
            (start.isoformat(), end.isoformat()),
        ).fetchall()
        return [self._row_to_trade(r) for r in rows]

    def _count(self) -> int:
        row = self._get_conn().execute("SELECT COUNT(*) AS n FROM trades").fetchone()
        return int(row["n"])

    def _recent(self, limit: int) -> List[Trade]:
        rows = self._get_conn().execute(
            "SELECT id, result, timestamp FROM trades ORDER BY timestamp DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_trade(r) for r in rows]

    def _import(self, trades: List[Trade]) -> None:
        conn = self._get_conn()
        now = datetime.now().isoformat()
        with conn:
            conn.executemany(
                "INSERT INTO trades (result, timestamp, created_at, updated_at) VALUES (?, ?, ?, ?)",
                [(t.result, t.timestamp.isoformat(), now, now) for t in trades],
            )

    def _replace(self, trades: List[Trade]) -> None:
        conn = self._get_conn()
        now = datetime.now().isoformat()
        with conn:
            conn.execute("DELETE FROM trades")
            conn.executemany(
                "INSERT INTO trades (result, timestamp, created_at, updated_at) VALUES (?, ?, ?, ?)",
                [(t.result, t.timestamp.isoformat(), now, now) for t in trades],
            )

    def _close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Trade store closed: %s", self._db_path)

    # ─── PORT ───────────────────────────────────────────────────

    async def initialize_database(self) -> None:
        await self._run("initialize", self._init_db)

    async def get_all_trades(self) -> List[Trade]:
        return await self._run("get_all_trades", self._get_all)

    async def save_trade(self, trade: Trade) -> Trade:
        return await self._run("save_trade", self._insert, trade)

    async def update_trade(self, trade: Trade) -> Trade:
        return await self._run("update_trade", self._update, trade)

    async def delete_trade(self, trade_id: int) -> None:
        await self._run("delete_trade", self._delete, trade_id)

    async def get_trade_by_id(self, trade_id: int) -> Optional[Trade]:
        return await self._run("get_trade_by_id", self._get_by_id, trade_id)

    async def clear_all_trades(self) -> None:
        await self._run("clear_all_trades", self._clear)

    async def get_trades_by_date_range(self, start: datetime, end: datetime) -> List[Trade]:
        return await self._run("get_trades_by_date_range", self._get_range, start, end)

    async def get_trades_count(self) -> int:
        return await self._run("get_trades_count", self._count)

    async def get_recent_trades(self, limit: int = 10) -> List[Trade]:
        return await self._run("get_recent_trades", self._recent, limit)

    async def export_trades(self) -> List[Dict[str, Any]]:
        trades = await self.get_all_trades()
        return [t.to_dict() for t in trades]

    @staticmethod
    def _parse_records(records: List[Dict[str, Any]]) -> List[Trade]:
        try:
            return [Trade.from_dict({**r, "id": 0}) for r in records]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError("Invalid trade record in import", original_error=e) from e

    async def import_trades(self, records: List[Dict[str, Any]]) -> None:
        trades = self._parse_records(records)
        await self._run("import_trades", self._import, trades)
        logger.info("Imported %d trades", len(trades))

    async def replace_all_trades(self, records: List[Dict[str, Any]]) -> None:
        trades = self._parse_records(records)
        await self._run("replace_all_trades", self._replace, trades)
        logger.info("Replaced trade history with %d trades", len(trades))

    async def close(self) -> None:
        await self._run("close", self._close)
