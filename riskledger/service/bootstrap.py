"""Wire the storage, backup manager and coordinator together once at startup."""

from __future__ import annotations

from typing import Optional

from riskledger.persistence.app_storage import AppStorage
from riskledger.persistence.backup import BackupRecoveryManager
from riskledger.persistence.file_service import FileService
from riskledger.persistence.kv_stores import JsonFileKeyValueStore
from riskledger.persistence.ports import KeyValueStore, TradeStore
from riskledger.persistence.storage_factory import create_trade_store
from riskledger.persistence.tiers import PlatformPersistence, select_platform_persistence
from riskledger.service.coordinator import PersistenceCoordinator
from riskledger.utils.config import Settings, get_settings


def build_app(
    settings: Optional[Settings] = None,
    preferences: Optional[KeyValueStore] = None,
    trade_store: Optional[TradeStore] = None,
    platform: Optional[PlatformPersistence] = None,
) -> PersistenceCoordinator:
    settings = settings or get_settings()
    preferences = preferences or JsonFileKeyValueStore(settings.preferences_file, name="primary")
    trade_store = trade_store or create_trade_store(settings)
    platform = platform or select_platform_persistence(settings, preferences)

    storage = AppStorage(settings, preferences, trade_store)
    backups = BackupRecoveryManager(storage, platform)
    return PersistenceCoordinator(storage, backups, FileService(settings.export_dir))
