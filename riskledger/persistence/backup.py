"""
Backup & recovery across storage tiers
======================================

Every mutation mirrors a snapshot of the risk state into each tier of the
selected ``PlatformPersistence``:

  backup_data    full snapshot {version, timestamp, riskSettings, trades}
  risk_settings  settings-only record

Tier writes are independent; the backup succeeds when at least one tier
took it. Recovery returns the first usable full snapshot in tier priority order.
Only when no tier holds one does it fall back to settings-only data: a
minimal snapshot or a ``risk_settings`` record, again in tier order.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from riskledger.ledger.models import Trade
from riskledger.persistence.app_storage import AppStorage
from riskledger.persistence.config_store import RISK_SETTINGS_KEY
from riskledger.persistence.snapshot import (
    build_snapshot,
    create_minimal_backup,
    estimate_storage_size,
    format_storage_size,
    is_minimal_snapshot,
    is_usable_snapshot,
    merge_backup_data,
    snapshot_from_settings,
)
from riskledger.persistence.tiers import BackupTier, PlatformPersistence
from riskledger.risk.profile import RiskProfile
from riskledger.utils.exceptions import RiskLedgerError, StorageError
from riskledger.utils.logger import get_logger, summarize_snapshot
from riskledger.utils.result import OperationResult
from riskledger.utils.retry import retry_async

logger = get_logger(__name__)

BACKUP_KEY = "backup_data"
BACKUP_PREFIX = "backup_"


@dataclass(frozen=True)
class BackupReport:
    snapshot: Dict[str, Any]
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    minimal: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.succeeded) > 0


class BackupRecoveryManager:
    def __init__(self, storage: AppStorage, platform: PlatformPersistence):
        self._storage = storage
        self._platform = platform
        self._settings = storage.settings

    @property
    def platform(self) -> PlatformPersistence:
        return self._platform

    def _tiers(self) -> List[BackupTier]:
        return self._platform.tiers()

    async def _retrying(self, name: str, operation):
        return await retry_async(
            name,
            operation,
            max_retries=self._settings.max_retries,
            initial_delay=self._settings.retry_delay,
            retry_on=(StorageError, OSError),
        )

    # ── Save ────────────────────────────────────────────────────

    async def _write_tier(self, tier: BackupTier, snapshot: Dict[str, Any], settings: Dict[str, Any]) -> bool:
        """Returns True for a full write, False when only the minimal snapshot fit."""
        try:
            await self._retrying(f"backup:{tier.name}", lambda: tier.store.set(BACKUP_KEY, snapshot))
            full = True
        except (StorageError, OSError) as e:
            logger.warning(
                "backup_tier_full_write_failed",
                tier=tier.name,
                size=format_storage_size(estimate_storage_size(snapshot)),
                error=str(e),
            )
            minimal = create_minimal_backup(RiskProfile.from_dict(settings))
            await tier.store.set(BACKUP_KEY, minimal)
            full = False
        await tier.store.set(RISK_SETTINGS_KEY, settings)
        return full

    async def force_save_data(self, profile: RiskProfile, trades: Sequence[Trade]) -> BackupReport:
        snapshot = build_snapshot(profile, trades, version=self._settings.backup_version)
        settings = profile.to_dict()
        tiers = self._tiers()

        results = await asyncio.gather(
            *(self._write_tier(tier, snapshot, settings) for tier in tiers),
            return_exceptions=True,
        )

        succeeded: List[str] = []
        minimal: List[str] = []
        failed: Dict[str, str] = {}
        for tier, outcome in zip(tiers, results):
            if isinstance(outcome, BaseException):
                failed[tier.name] = str(outcome)
                continue
            succeeded.append(tier.name)
            if outcome is False:
                minimal.append(tier.name)

        report = BackupReport(snapshot=snapshot, succeeded=succeeded, failed=failed, minimal=minimal)
        if report.success:
            logger.info(
                "backup_saved",
                tiers=succeeded,
                failed=list(failed),
                snapshot=summarize_snapshot(snapshot),
            )
        else:
            logger.error("backup_failed_all_tiers", errors=failed)
        return report

    # ── Recover ─────────────────────────────────────────────────

    async def _read(self, tier: BackupTier, key: str) -> Optional[Any]:
        try:
            return await tier.store.get(key)
        except (StorageError, OSError) as e:
            logger.warning("backup_tier_read_failed", tier=tier.name, key=key, error=str(e))
            return None

    async def _tier_candidates(self, tier: BackupTier) -> Tuple[Optional[Any], List[Dict[str, Any]]]:
        """The tier's full snapshot, if any, and its settings-only candidates."""
        full = await self._read(tier, BACKUP_KEY)
        settings_only: List[Dict[str, Any]] = []
        if is_minimal_snapshot(full):
            settings_only.append(full)
            full = None
        settings = await self._read(tier, RISK_SETTINGS_KEY)
        if isinstance(settings, dict):
            settings_only.append(snapshot_from_settings(settings, version=self._settings.backup_version))
        return full, settings_only

    async def try_recover_data(self) -> Optional[Dict[str, Any]]:
        """
        First usable full snapshot in tier order; failing that, the first
        usable settings-only candidate. A minimal snapshot counts as settings-only.
        """
        fallbacks: List[Tuple[str, Dict[str, Any]]] = []
        for tier in self._tiers():
            full, settings_only = await self._tier_candidates(tier)
            if full is not None:
                if is_usable_snapshot(full):
                    logger.info("backup_found", tier=tier.name, snapshot=summarize_snapshot(full))
                    return full
                logger.warning("backup_invalid", tier=tier.name)
            fallbacks.extend((tier.name, candidate) for candidate in settings_only)

        for tier_name, candidate in fallbacks:
            if is_usable_snapshot(candidate):
                logger.info("settings_backup_found", tier=tier_name)
                return candidate
            logger.warning("settings_backup_invalid", tier=tier_name)
        logger.info("no_backup_found")
        return None

    async def collect_snapshots(self) -> List[Dict[str, Any]]:
        """Every usable full snapshot across all tiers."""
        snapshots = []
        for tier in self._tiers():
            full = await self._read(tier, BACKUP_KEY)
            if full is not None and not is_minimal_snapshot(full) and is_usable_snapshot(full):
                snapshots.append(full)
        return snapshots

    async def recover_merged(self) -> Optional[Dict[str, Any]]:
        return merge_backup_data(await self.collect_snapshots())

    async def restore_data(self, snapshot: Dict[str, Any]) -> OperationResult[RiskProfile]:
        try:
            profile = await self._storage.import_all_data(snapshot)
        except RiskLedgerError as e:
            logger.error("restore_failed", error=str(e))
            return OperationResult.failure(e)
        logger.info("restore_completed", snapshot=summarize_snapshot(snapshot))
        return OperationResult.success(profile)

    # ── Diagnostics ─────────────────────────────────────────────

    async def check_startup_data(self) -> Dict[str, Any]:
        """Per-tier availability and contents. Reads only."""
        tiers = []
        for tier in self._tiers():
            entry: Dict[str, Any] = {"name": tier.name, "durable": tier.durable}
            try:
                keys = await tier.store.keys()
            except (StorageError, OSError) as e:
                entry.update(available=False, keyCount=0, hasBackup=False, hasSettings=False,
                             hasData=False, error=str(e))
                tiers.append(entry)
                continue
            has_backup = BACKUP_KEY in keys
            has_settings = RISK_SETTINGS_KEY in keys
            entry.update(
                available=True,
                keyCount=len(keys),
                hasBackup=has_backup,
                hasSettings=has_settings,
                hasData=has_backup or has_settings,
            )
            tiers.append(entry)

        primary: Dict[str, Any] = {}
        try:
            primary["hasRiskSettings"] = await self._storage.config_store.has_risk_settings()
            primary["tradeCount"] = await self._storage.ledger.count()
        except RiskLedgerError as e:
            primary["error"] = str(e)

        return {
            "platform": self._platform.name,
            "checkedAt": datetime.now().isoformat(),
            "primary": primary,
            "tiers": tiers,
        }

    async def get_storage_status(self) -> str:
        report = await self.check_startup_data()
        lines = [f"Platform persistence: {report['platform']}"]
        primary = report["primary"]
        if "error" in primary:
            lines.append(f"Primary stores: unavailable ({primary['error']})")
        else:
            lines.append(
                f"Primary stores: settings={'yes' if primary['hasRiskSettings'] else 'no'}, "
                f"trades={primary['tradeCount']}"
            )
        for tier in report["tiers"]:
            if not tier["available"]:
                lines.append(f"  {tier['name']}: unavailable ({tier.get('error', '')})")
                continue
            lines.append(
                f"  {tier['name']}: {tier['keyCount']} keys, "
                f"backup={'yes' if tier['hasBackup'] else 'no'}, "
                f"settings={'yes' if tier['hasSettings'] else 'no'}"
            )
        if await self.is_private_mode():
            lines.append("Warning: no durable tier is writable; data will not survive a restart")
        return "\n".join(lines)

    async def is_private_mode(self) -> bool:
        durable = [t for t in self._tiers() if t.durable]
        for tier in durable:
            if await tier.store.is_available():
                return False
        return True

    async def clear_backups(self) -> int:
        """Remove backup keys from every tier; returns how many were removed."""
        removed = 0
        for tier in self._tiers():
            try:
                keys = await tier.store.keys()
                doomed = [k for k in keys if k == BACKUP_KEY or k.startswith(BACKUP_PREFIX)]
                # the primary tier's settings record belongs to the config store
                if tier.name != "primary" and RISK_SETTINGS_KEY in keys:
                    doomed.append(RISK_SETTINGS_KEY)
                for key in doomed:
                    await tier.store.remove(key)
                removed += len(doomed)
            except (StorageError, OSError) as e:
                logger.warning("backup_clear_failed", tier=tier.name, error=str(e))
        logger.info("backups_cleared", removed=removed)
        return removed
