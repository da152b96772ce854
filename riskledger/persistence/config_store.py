"""Risk settings persisted in the primary key-value store."""

from __future__ import annotations

from typing import Optional

from riskledger.persistence.ports import ConfigStore, KeyValueStore
from riskledger.risk.profile import RiskProfile
from riskledger.utils.exceptions import StorageError, ValidationError
from riskledger.utils.logger import get_logger

logger = get_logger(__name__)

RISK_SETTINGS_KEY = "risk_settings"
APP_VERSION_KEY = "app_version"


class KeyValueConfigStore(ConfigStore):
    def __init__(self, store: KeyValueStore, app_version: str = "1.0.0"):
        self._store = store
        self._app_version = app_version

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def save_risk_settings(self, profile: RiskProfile) -> None:
        await self._store.set(RISK_SETTINGS_KEY, profile.to_dict())
        logger.debug("risk_settings_saved", current_balance=profile.current_balance)

    async def load_risk_settings(self) -> Optional[RiskProfile]:
        raw = await self._store.get(RISK_SETTINGS_KEY)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise StorageError(f"Stored risk settings have unexpected type {type(raw).__name__}")
        try:
            return RiskProfile.from_dict(raw)
        except ValidationError as e:
            logger.error("risk_settings_invalid", error=e.message)
            raise StorageError("Stored risk settings are invalid", original_error=e) from e

    async def clear_risk_settings(self) -> None:
        await self._store.remove(RISK_SETTINGS_KEY)
        logger.info("risk_settings_cleared")

    async def has_risk_settings(self) -> bool:
        return await self._store.get(RISK_SETTINGS_KEY) is not None

    async def get_app_version(self) -> Optional[str]:
        return await self._store.get(APP_VERSION_KEY)

    async def migrate_if_needed(self) -> bool:
        """Stamp the current app version; returns True when a migration ran."""
        stored = await self.get_app_version()
        if stored == self._app_version:
            return False
        logger.info("settings_migration", from_version=stored, to_version=self._app_version)
        await self._store.set(APP_VERSION_KEY, self._app_version)
        return True
