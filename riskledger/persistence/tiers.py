"""
Backup tiers and the platform persistence strategy
===================================================

A tier is one independent key-value location that mirrors the risk state.
The strategy decides which tiers exist; it is chosen once at startup from
settings and injected into the backup manager.

  native    primary store only
  mirrored  primary store, local backup file, session memory
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

from riskledger.persistence.kv_stores import InMemoryKeyValueStore, JsonFileKeyValueStore
from riskledger.persistence.ports import KeyValueStore
from riskledger.utils.config import Settings
from riskledger.utils.exceptions import StorageError


@dataclass(frozen=True)
class BackupTier:
    name: str
    store: KeyValueStore
    durable: bool = True


class PlatformPersistence(ABC):
    name: str = ""

    @abstractmethod
    def tiers(self) -> List[BackupTier]:
        """Tiers in recovery priority order."""


class NativePersistence(PlatformPersistence):
    name = "native"

    def __init__(self, primary: KeyValueStore):
        self._tiers = [BackupTier("primary", primary)]

    def tiers(self) -> List[BackupTier]:
        return list(self._tiers)


class MirroredPersistence(PlatformPersistence):
    name = "mirrored"

    def __init__(self, primary: KeyValueStore, local: KeyValueStore, session: KeyValueStore):
        self._tiers = [
            BackupTier("primary", primary),
            BackupTier("local", local),
            BackupTier("session", session, durable=False),
        ]

    def tiers(self) -> List[BackupTier]:
        return list(self._tiers)


def select_platform_persistence(settings: Settings, primary: KeyValueStore) -> PlatformPersistence:
    mode = settings.platform_persistence.lower()
    if mode == "native":
        return NativePersistence(primary)
    if mode == "mirrored":
        return MirroredPersistence(
            primary,
            JsonFileKeyValueStore(settings.local_backup_file, name="local"),
            InMemoryKeyValueStore(name="session"),
        )
    raise StorageError(f"Unknown platform persistence mode: {settings.platform_persistence}")
