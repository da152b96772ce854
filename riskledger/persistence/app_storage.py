"""
Application storage - the primary stores, built once at startup
================================================================

Bundles the primary key-value store, the config store on top of it, the
trade store and the ledger over the trade store. One instance is created by
``build_app()`` and handed to the coordinator and the backup manager.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from riskledger.ledger.ledger import TradeLedger
from riskledger.persistence.config_store import KeyValueConfigStore
from riskledger.persistence.ports import KeyValueStore, TradeStore
from riskledger.persistence.snapshot import build_snapshot, parse_backup_data
from riskledger.risk.profile import RiskProfile
from riskledger.utils.config import Settings
from riskledger.utils.exceptions import RiskLedgerError, ServiceError
from riskledger.utils.logger import get_logger
from riskledger.utils.retry import initialize_with_timeout

logger = get_logger(__name__)


class AppStorage:
    def __init__(self, settings: Settings, preferences: KeyValueStore, trade_store: TradeStore):
        self.settings = settings
        self.preferences = preferences
        self.config_store = KeyValueConfigStore(preferences, app_version=settings.backup_version)
        self.trade_store = trade_store
        self.ledger = TradeLedger(trade_store)
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def _initialize(self) -> None:
        await self.trade_store.initialize_database()
        await self.config_store.migrate_if_needed()
        await self.ledger.refresh()

    async def initialize(self) -> None:
        if self._initialized:
            return
        outcome = await initialize_with_timeout(
            "storage", self._initialize, timeout=self.settings.storage_init_timeout
        )
        if not outcome.is_success:
            error = outcome.error
            if isinstance(error, ServiceError):
                raise error
            raise ServiceError(
                "Storage initialization failed", operation="initialize", original_error=error
            ) from error
        self._initialized = True

    async def close(self) -> None:
        await self.ledger.close()
        self._initialized = False
        logger.info("storage_closed")

    async def has_stored_data(self) -> bool:
        if await self.config_store.has_risk_settings():
            return True
        return await self.ledger.count() > 0

    async def clear_all_data(self) -> None:
        await self.ledger.clear_all()
        await self.config_store.clear_risk_settings()
        logger.info("primary_storage_cleared")

    async def get_storage_info(self) -> Dict[str, Any]:
        return {
            "tradeStoreBackend": self.settings.trade_store_backend,
            "tradeDatabase": self.settings.trade_db_file,
            "preferencesFile": self.settings.preferences_file,
            "initialized": self._initialized,
            "hasRiskSettings": await self.config_store.has_risk_settings(),
            "tradeCount": await self.ledger.count(),
            "appVersion": await self.config_store.get_app_version(),
        }

    async def export_all_data(self) -> Dict[str, Any]:
        """Snapshot of what the primary stores hold right now."""
        profile = await self.config_store.load_risk_settings() or RiskProfile.default()
        trades = await self.ledger.get_all()
        return build_snapshot(profile, trades, version=self.settings.backup_version)

    async def import_all_data(self, data: Dict[str, Any]) -> RiskProfile:
        """
        Apply a snapshot's settings, and its trades when it carries any.

        A settings-only snapshot leaves the trade history alone. Trades are
        swapped in one store transaction; if the settings write then fails,
        the previous trades are put back before the error propagates.
        """
        profile, _ = parse_backup_data(data)
        records = list(data["trades"])
        previous: Optional[List[Dict[str, Any]]] = None
        if records:
            previous = await self.ledger.export_trades()
            await self.ledger.replace_all(records)
        try:
            await self.config_store.save_risk_settings(profile)
        except (RiskLedgerError, OSError):
            if previous is not None:
                await self.ledger.replace_all(previous)
                logger.warning("import_trades_rolled_back", trade_count=len(previous))
            raise
        await self.ledger.refresh()
        logger.info("data_imported", trade_count=len(records))
        return profile
