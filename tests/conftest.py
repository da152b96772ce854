"""
Shared fixtures for the risk ledger tests.

Stores are either in memory or under ``tmp_path``; nothing touches the real
data directory. ``FlakyKeyValueStore`` simulates a backup tier that fails.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from riskledger.persistence.app_storage import AppStorage
from riskledger.persistence.backup import BackupRecoveryManager
from riskledger.persistence.file_service import FileService
from riskledger.persistence.memory_trade_store import InMemoryTradeStore
from riskledger.persistence.tiers import MirroredPersistence
from riskledger.risk.profile import RiskProfile
from riskledger.service.coordinator import PersistenceCoordinator
from riskledger.utils.config import Settings
from tests.factories import FlakyKeyValueStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        trade_db_file=str(tmp_path / "risk_management.db"),
        preferences_file=str(tmp_path / "preferences.json"),
        local_backup_file=str(tmp_path / "local_backup.json"),
        export_dir=str(tmp_path / "exports"),
        trade_store_backend="memory",
        platform_persistence="mirrored",
        max_retries=2,
        retry_delay=0.0,
        storage_init_timeout=5.0,
        log_file=str(tmp_path / "logs" / "riskledger.log"),
    )


@pytest.fixture
def profile() -> RiskProfile:
    """maxDD 1000, 5% per trade, $10,000 account."""
    return RiskProfile.create(max_drawdown=1000, loss_per_trade_percentage=5, account_balance=10000)


@pytest.fixture
def primary() -> FlakyKeyValueStore:
    return FlakyKeyValueStore(name="primary")


@pytest.fixture
def local_tier() -> FlakyKeyValueStore:
    return FlakyKeyValueStore(name="local")


@pytest.fixture
def session_tier() -> FlakyKeyValueStore:
    return FlakyKeyValueStore(name="session")


@pytest.fixture
def trade_store() -> InMemoryTradeStore:
    return InMemoryTradeStore()


@pytest.fixture
def platform(primary, local_tier, session_tier) -> MirroredPersistence:
    return MirroredPersistence(primary, local_tier, session_tier)


@pytest.fixture
def storage(settings, primary, trade_store) -> AppStorage:
    return AppStorage(settings, primary, trade_store)


@pytest.fixture
def backups(storage, platform) -> BackupRecoveryManager:
    return BackupRecoveryManager(storage, platform)


@pytest_asyncio.fixture
async def coordinator(settings, storage, backups):
    app = PersistenceCoordinator(storage, backups, FileService(settings.export_dir))
    await app.initialize()
    yield app
    await app.close()


@pytest_asyncio.fixture
async def configured(coordinator):
    """Coordinator with maxDD 500, 5% per trade, $10,000 account (static mode)."""
    await coordinator.update_max_drawdown(500, account_balance=10000, is_dynamic=False)
    await coordinator.update_loss_per_trade(5)
    return coordinator
