"""
Persistence coordinator - every externally visible mutation goes through here
==============================================================================

Mutation sequence:

  1. validate input (TradeGate / validation rules)
  2. compute the candidate profile
  3. persist settings to the config store
  4. persist trade changes through the ledger
  5. commit in memory and publish the new RiskState
  6. mirror a snapshot into the backup tiers

Validation and risk-limit failures come back as a failed ``ActionOutcome``
with nothing mutated. Failures at steps 3-5 raise ``ServiceError``; the
in-memory state is left at the last persisted value and, when the ledger
step fails after settings were written, the previous settings are written
back. If that write-back also fails the state is flagged ``unsaved``.
Backup failures never undo a mutation; they only set ``backup_warning``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from riskledger.ledger.models import Trade
from riskledger.persistence.app_storage import AppStorage
from riskledger.persistence.backup import BackupRecoveryManager
from riskledger.persistence.file_service import FileService, ImportPreview
from riskledger.persistence.snapshot import build_snapshot
from riskledger.risk.drawdown import drawdown_chart_series, pnl_chart_series
from riskledger.risk.gate import TradeGate
from riskledger.risk.profile import RiskProfile, RiskStatus
from riskledger.risk.validation import (
    parse_number,
    validate_account_balance,
    validate_loss_percentage,
    validate_max_drawdown,
    validate_trade_result,
)
from riskledger.service.state import RecoveryStatus, RiskState, StateStore
from riskledger.utils.exceptions import (
    RiskLedgerError,
    RiskLimitExceededError,
    ServiceError,
    ValidationError,
    format_error_message,
)
from riskledger.utils.logger import get_logger
from riskledger.utils.retry import retry_async

logger = get_logger(__name__)

NO_RECOVERABLE_DATA = "No recoverable data found"


@dataclass(frozen=True)
class ActionOutcome:
    success: bool
    message: str = ""
    error: Optional[RiskLedgerError] = None
    value: Any = None

    @classmethod
    def ok(cls, message: str = "", value: Any = None) -> "ActionOutcome":
        return cls(success=True, message=message, value=value)

    @classmethod
    def rejected(cls, error: RiskLedgerError) -> "ActionOutcome":
        return cls(success=False, message=format_error_message(error), error=error)


class PersistenceCoordinator:
    def __init__(
        self,
        storage: AppStorage,
        backups: BackupRecoveryManager,
        file_service: Optional[FileService] = None,
        state: Optional[StateStore] = None,
    ):
        self._storage = storage
        self._ledger = storage.ledger
        self._config = storage.config_store
        self._backups = backups
        self._files = file_service or FileService(storage.settings.export_dir)
        self._state = state or StateStore()
        self._auto_recovery_attempted = False

    # ── Observation ─────────────────────────────────────────────

    @property
    def state(self) -> RiskState:
        return self._state.state

    @property
    def store(self) -> StateStore:
        return self._state

    @property
    def backups(self) -> BackupRecoveryManager:
        return self._backups

    @property
    def storage(self) -> AppStorage:
        return self._storage

    @property
    def profile(self) -> RiskProfile:
        return self._state.state.profile

    @property
    def trades(self) -> List[Trade]:
        return list(self._state.state.trades)

    def clear_error(self) -> None:
        self._state.update(error_message=None)

    async def _load_trades(self, operation: str, **extra: Any) -> List[Trade]:
        try:
            return await self._ledger.get_all()
        except RiskLedgerError as e:
            raise self._fail(operation, e, **extra) from e

    async def _publish(self, operation: str, profile: RiskProfile, **extra: Any) -> RiskState:
        trades = await self._load_trades(operation)
        return self._state.update(
            profile=profile,
            trades=tuple(trades),
            statistics=self._ledger.statistics(),
            risk_status=profile.risk_status(),
            **extra,
        )

    # ── Startup ─────────────────────────────────────────────────

    def _sync_balance(self, profile: RiskProfile) -> RiskProfile:
        """current_balance always follows the ledger."""
        balance = profile.account_balance + self._ledger.total_pnl()
        if balance == profile.current_balance:
            return profile
        return profile.copy_with(current_balance=balance)

    async def _load_settings(self) -> Optional[RiskProfile]:
        try:
            return await self._config.load_risk_settings()
        except RiskLedgerError as e:
            logger.error("risk_settings_load_failed", error=str(e))
            return None

    async def initialize(self) -> RiskState:
        self._state.update(is_loading=True)
        try:
            await self._storage.initialize()
        except ServiceError as e:
            self._state.update(is_loading=False, error_message=format_error_message(e))
            raise

        profile = await self._load_settings()
        trades = await self._load_trades("initialize", is_loading=False)
        recovery = RecoveryStatus.NOT_NEEDED
        error_message = None

        if profile is None and not trades and not self._auto_recovery_attempted:
            self._auto_recovery_attempted = True
            recovered, recovery, error_message = await self._auto_recover()
            profile = recovered

        profile = self._sync_balance(profile or RiskProfile.default())
        state = await self._publish(
            "initialize",
            profile,
            is_loading=False,
            initialized=True,
            recovery_status=recovery,
            error_message=error_message,
        )
        logger.info(
            "coordinator_initialized",
            trade_count=len(state.trades),
            recovery=recovery.value,
            current_balance=profile.current_balance,
        )
        return state

    async def _auto_recover(self) -> Tuple[Optional[RiskProfile], RecoveryStatus, Optional[str]]:
        logger.info("auto_recovery_started")
        snapshot = await self._backups.try_recover_data()
        if snapshot is None:
            logger.warning("auto_recovery_no_data")
            return None, RecoveryStatus.NOT_FOUND, NO_RECOVERABLE_DATA
        result = await self._backups.restore_data(snapshot)
        if not result.is_success:
            return None, RecoveryStatus.FAILED, format_error_message(result.error, "Recovery failed")
        logger.info("auto_recovery_completed")
        return result.value, RecoveryStatus.RECOVERED, None

    def _ensure_initialized(self) -> None:
        if not self._state.state.initialized:
            raise ServiceError("Coordinator not initialized", operation="ensure_initialized",
                               code="NOT_INITIALIZED")

    # ── Persistence sequence ────────────────────────────────────

    async def _save_settings(self, profile: RiskProfile) -> None:
        await retry_async(
            "save_risk_settings",
            lambda: self._config.save_risk_settings(profile),
            max_retries=self._storage.settings.max_retries,
            initial_delay=self._storage.settings.retry_delay,
            retry_on=(RiskLedgerError, OSError),
        )

    def _fail(self, operation: str, error: BaseException, **extra: Any) -> ServiceError:
        logger.error("mutation_failed", operation=operation, error=str(error))
        service_error = ServiceError(
            f"Failed to {operation.replace('_', ' ')}",
            operation=operation,
            original_error=error,
        )
        self._state.update(error_message=format_error_message(service_error), **extra)
        return service_error

    async def _persist(
        self,
        operation: str,
        candidate: RiskProfile,
        ledger_write: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> RiskState:
        previous = self.profile

        try:
            await self._save_settings(candidate)
        except (RiskLedgerError, OSError) as e:
            raise self._fail(operation, e) from e

        if ledger_write is not None:
            try:
                await ledger_write()
            except RiskLedgerError as e:
                unsaved = False
                try:
                    await self._save_settings(previous)
                except (RiskLedgerError, OSError) as rollback_error:
                    logger.error("settings_rollback_failed", operation=operation,
                                 error=str(rollback_error))
                    unsaved = True
                raise self._fail(operation, e, unsaved=unsaved) from e

        state = await self._publish(operation, candidate, error_message=None, unsaved=False)
        await self._mirror(candidate)
        return state

    async def _mirror(self, profile: RiskProfile) -> None:
        try:
            trades = await self._ledger.get_all()
        except RiskLedgerError as e:
            logger.error("backup_skipped", error=str(e))
            self._state.update(backup_warning="Backup skipped: trade history could not be read")
            return
        report = await self._backups.force_save_data(profile, trades)
        if report.success:
            warning = None
            if report.failed:
                warning = f"Backup incomplete: {', '.join(sorted(report.failed))} unavailable"
        else:
            warning = "Backup failed on every storage tier"
        self._state.update(backup_warning=warning)

    def _reject(self, operation: str, error: RiskLedgerError) -> ActionOutcome:
        logger.info("mutation_rejected", operation=operation, reason=error.message)
        outcome = ActionOutcome.rejected(error)
        self._state.update(error_message=outcome.message)
        return outcome

    # ── Mutations ───────────────────────────────────────────────

    async def add_trade(self, amount: Any, timestamp: Optional[datetime] = None) -> ActionOutcome:
        self._ensure_initialized()
        try:
            result = validate_trade_result(amount)
        except ValidationError as e:
            return self._reject("add_trade", e)

        profile = self.profile
        decision = TradeGate.evaluate(profile, result)
        if decision.rejected:
            error = RiskLimitExceededError(decision.message, reason=decision.reason, limit=decision.limit)
            return self._reject("add_trade", error)

        candidate = profile.update_balance(result).with_ratcheted_threshold(result)
        added: List[Trade] = []

        async def write() -> None:
            added.append(await self._ledger.add(Trade.new(result, timestamp)))

        await self._persist("add_trade", candidate, write)
        return ActionOutcome.ok("Trade added", value=added[0])

    async def update_max_drawdown(
        self,
        value: Any,
        account_balance: Any = None,
        is_dynamic: Optional[bool] = None,
    ) -> ActionOutcome:
        self._ensure_initialized()
        await self._load_trades("update_max_drawdown")
        profile = self.profile
        try:
            balance = (
                validate_account_balance(account_balance)
                if account_balance is not None else profile.account_balance
            )
            max_drawdown = validate_max_drawdown(value, balance)
            if max_drawdown <= 0:
                raise ValidationError("Max drawdown must be greater than 0", code="OUT_OF_RANGE")
            candidate = profile.copy_with(
                max_drawdown=max_drawdown,
                account_balance=balance,
                current_balance=balance + self._ledger.total_pnl(),
                current_drawdown_threshold=-max_drawdown,
                is_dynamic_max_drawdown=(
                    profile.is_dynamic_max_drawdown if is_dynamic is None else is_dynamic
                ),
            )
        except ValidationError as e:
            return self._reject("update_max_drawdown", e)

        await self._persist("update_max_drawdown", candidate)
        return ActionOutcome.ok("Max drawdown updated", value=candidate)

    async def update_loss_per_trade(self, value: Any) -> ActionOutcome:
        self._ensure_initialized()
        try:
            pct = validate_loss_percentage(value)
            candidate = self.profile.copy_with(loss_per_trade_percentage=pct)
        except ValidationError as e:
            return self._reject("update_loss_per_trade", e)

        await self._persist("update_loss_per_trade", candidate)
        return ActionOutcome.ok("Loss per trade updated", value=candidate)

    async def clear_all_trades(self) -> ActionOutcome:
        self._ensure_initialized()
        profile = self.profile
        candidate = profile.copy_with(
            current_balance=profile.account_balance,
            current_drawdown_threshold=-profile.max_drawdown,
        )
        await self._persist("clear_all_trades", candidate, self._ledger.clear_all)
        return ActionOutcome.ok("All trades cleared", value=candidate)

    async def reset_to_defaults(self) -> ActionOutcome:
        """Default settings; the trade history is kept."""
        self._ensure_initialized()
        await self._load_trades("reset_to_defaults")
        candidate = RiskProfile.default().copy_with(current_balance=self._ledger.total_pnl())
        await self._persist("reset_to_defaults", candidate)
        return ActionOutcome.ok("Settings reset to defaults", value=candidate)

    async def clear_all_data(self) -> ActionOutcome:
        """Trades, settings and every backup tier."""
        self._ensure_initialized()
        try:
            await self._storage.clear_all_data()
            await self._backups.clear_backups()
        except RiskLedgerError as e:
            raise self._fail("clear_all_data", e) from e
        await self._publish(
            "clear_all_data", RiskProfile.default(), error_message=None, backup_warning=None, unsaved=False
        )
        return ActionOutcome.ok("All data cleared")

    async def _apply_snapshot(self, operation: str, snapshot: Dict[str, Any]) -> RiskProfile:
        result = await self._backups.restore_data(snapshot)
        if not result.is_success:
            error = result.error
            if isinstance(error, ValidationError):
                raise error
            raise self._fail(operation, error)
        profile = self._sync_balance(result.value)
        await self._publish(operation, profile, error_message=None, unsaved=False)
        await self._mirror(profile)
        return profile

    async def recover(self, merge: bool = False) -> ActionOutcome:
        """Manual recovery from the backup tiers."""
        self._ensure_initialized()
        snapshot = (
            await self._backups.recover_merged() if merge
            else await self._backups.try_recover_data()
        )
        if snapshot is None:
            self._state.update(recovery_status=RecoveryStatus.NOT_FOUND, error_message=NO_RECOVERABLE_DATA)
            return ActionOutcome(success=False, message=NO_RECOVERABLE_DATA)
        try:
            profile = await self._apply_snapshot("recover", snapshot)
        except ValidationError as e:
            self._state.update(recovery_status=RecoveryStatus.FAILED)
            return self._reject("recover", e)
        self._state.update(recovery_status=RecoveryStatus.RECOVERED)
        return ActionOutcome.ok(f"Recovered {len(snapshot['trades'])} trades", value=profile)

    async def import_data(self, path: str) -> ActionOutcome:
        self._ensure_initialized()
        try:
            data = await self._files.read_import_file(path)
            profile = await self._apply_snapshot("import_data", data)
        except ValidationError as e:
            return self._reject("import_data", e)
        return ActionOutcome.ok(f"Imported {len(data['trades'])} trades", value=profile)

    async def preview_import(self, path: str) -> ImportPreview:
        """What importing ``path`` would bring in; reads the file only."""
        return await self._files.preview_file(path)

    async def export_data(self, path: Optional[str] = None) -> ActionOutcome:
        self._ensure_initialized()
        snapshot = build_snapshot(
            self.profile, await self._load_trades("export_data"), version=self._storage.settings.backup_version
        )
        try:
            written = await self._files.export_to_file(snapshot, path)
        except RiskLedgerError as e:
            raise self._fail("export_data", e) from e
        return ActionOutcome.ok(f"Exported to {written}", value=written)

    # ── Read-only views ─────────────────────────────────────────

    def get_trading_statistics(self) -> Dict[str, Any]:
        state = self.state
        profile = state.profile
        stats = state.statistics
        return {
            **stats.to_dict(),
            "current_balance": profile.current_balance,
            "account_balance": profile.account_balance,
            "effective_max_drawdown": profile.effective_max_drawdown,
            "remaining_risk_capacity": profile.remaining_risk_capacity,
            "max_loss_per_trade": profile.max_loss_per_trade,
            "required_win_rate": RiskProfile.required_win_rate(stats.average_win, stats.average_loss),
            "risk_status": profile.risk_status().value,
        }

    def check_risk_status(self) -> RiskStatus:
        return self.profile.risk_status()

    def calculate_position_size(self, entry_price: Any, stop_loss: Any) -> float:
        entry = parse_number("Entry price", entry_price)
        stop = parse_number("Stop loss", stop_loss)
        return self.profile.position_size(entry, stop)

    def drawdown_series(self) -> List[Tuple[int, float]]:
        profile = self.profile
        return drawdown_chart_series(
            self.trades, profile.account_balance, profile.max_drawdown, profile.is_dynamic_max_drawdown
        )

    def pnl_series(self) -> List[Tuple[int, float]]:
        return pnl_chart_series(self.trades)

    async def storage_status(self) -> str:
        return await self._backups.get_storage_status()

    async def close(self) -> None:
        await self._storage.close()
        self._state.update(initialized=False)
