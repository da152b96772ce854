"""
PersistenceCoordinator: mutation sequence, failure handling, startup recovery.
"""

import json
from datetime import datetime

import pytest

from riskledger.persistence.backup import BACKUP_KEY
from riskledger.persistence.config_store import RISK_SETTINGS_KEY
from riskledger.persistence.snapshot import build_snapshot, create_minimal_backup
from riskledger.risk.gate import RejectionReason
from riskledger.risk.profile import RiskProfile, RiskStatus
from riskledger.service.coordinator import NO_RECOVERABLE_DATA, PersistenceCoordinator
from riskledger.service.state import RecoveryStatus
from riskledger.utils.exceptions import (
    RepositoryError,
    RiskLimitExceededError,
    ServiceError,
    StorageError,
    ValidationError,
)
from tests.factories import make_trades


class TestStartup:

    @pytest.mark.asyncio
    async def test_empty_stores_report_not_found(self, coordinator, primary):
        state = coordinator.state
        assert state.initialized
        assert state.recovery_status == RecoveryStatus.NOT_FOUND
        assert state.error_message == NO_RECOVERABLE_DATA
        assert state.profile == RiskProfile.default()
        # defaults are not written during automatic recovery
        assert await primary.get(RISK_SETTINGS_KEY) is None

    @pytest.mark.asyncio
    async def test_auto_recovery_from_backup_tier(self, storage, backups, local_tier, profile):
        snapshot = build_snapshot(profile.update_balance(150), make_trades([-100, 300, -50]))
        await local_tier.set(BACKUP_KEY, snapshot)

        app = PersistenceCoordinator(storage, backups)
        state = await app.initialize()

        assert state.recovery_status == RecoveryStatus.RECOVERED
        assert [t.result for t in state.trades] == [-100, 300, -50]
        assert state.profile.current_balance == 10150
        assert await storage.config_store.load_risk_settings() is not None

    @pytest.mark.asyncio
    async def test_no_recovery_when_primary_has_settings(self, storage, backups, primary, local_tier, profile):
        await primary.set(RISK_SETTINGS_KEY, profile.to_dict())
        await local_tier.set(BACKUP_KEY, build_snapshot(profile, make_trades([1, 2, 3])))

        app = PersistenceCoordinator(storage, backups)
        state = await app.initialize()

        assert state.recovery_status == RecoveryStatus.NOT_NEEDED
        assert state.trades == ()
        assert state.profile == profile

    @pytest.mark.asyncio
    async def test_current_balance_follows_ledger(self, storage, backups, primary, trade_store, profile):
        await primary.set(RISK_SETTINGS_KEY, profile.to_dict())
        for trade in make_trades([-40, 15]):
            await trade_store.save_trade(trade)

        app = PersistenceCoordinator(storage, backups)
        state = await app.initialize()

        assert state.profile.current_balance == 9975

    @pytest.mark.asyncio
    async def test_mutation_before_initialize(self, storage, backups):
        app = PersistenceCoordinator(storage, backups)
        with pytest.raises(ServiceError) as exc:
            await app.add_trade(10)
        assert exc.value.code == "NOT_INITIALIZED"


class TestAddTrade:

    @pytest.mark.asyncio
    async def test_scenario_balances(self, configured):
        await configured.update_loss_per_trade(20)
        for amount, balance in [(-100, 9900), (300, 10200), (-50, 10150)]:
            outcome = await configured.add_trade(amount)
            assert outcome.success, outcome.message
            assert configured.profile.current_balance == balance
        assert len(configured.trades) == 3

    @pytest.mark.asyncio
    async def test_rejected_loss_mutates_nothing(self, configured, primary):
        stored_before = await primary.get(RISK_SETTINGS_KEY)
        outcome = await configured.add_trade(-100)

        assert not outcome.success
        assert isinstance(outcome.error, RiskLimitExceededError)
        assert outcome.error.reason == RejectionReason.LOSS_EXCEEDS_PER_TRADE_LIMIT
        assert outcome.error.limit == pytest.approx(25.0)
        assert configured.trades == []
        assert configured.profile.current_balance == 10000
        assert await primary.get(RISK_SETTINGS_KEY) == stored_before
        assert configured.state.error_message == outcome.message

    @pytest.mark.asyncio
    async def test_invalid_amount(self, configured):
        outcome = await configured.add_trade("twelve")
        assert not outcome.success
        assert isinstance(outcome.error, ValidationError)

    @pytest.mark.asyncio
    async def test_persists_settings_trade_and_backup(self, configured, primary, session_tier):
        outcome = await configured.add_trade(120, timestamp=datetime(2024, 4, 1, 12))
        assert outcome.value.id >= 1

        stored = await primary.get(RISK_SETTINGS_KEY)
        assert stored["currentBalance"] == 10120
        backup = await session_tier.get(BACKUP_KEY)
        assert backup["trades"][-1]["result"] == 120
        assert backup["riskSettings"]["currentBalance"] == 10120

    @pytest.mark.asyncio
    async def test_profit_ratchets_threshold(self, configured):
        await configured.add_trade(300)
        assert configured.profile.current_drawdown_threshold == -200

    @pytest.mark.asyncio
    async def test_ledger_failure_rolls_back_settings(self, configured, trade_store, primary, monkeypatch):
        stored_before = await primary.get(RISK_SETTINGS_KEY)

        async def broken_save(trade):
            raise StorageError("disk full")

        monkeypatch.setattr(trade_store, "save_trade", broken_save)
        with pytest.raises(ServiceError) as exc:
            await configured.add_trade(10)

        assert exc.value.operation == "add_trade"
        assert configured.profile.current_balance == 10000
        assert await primary.get(RISK_SETTINGS_KEY) == stored_before
        assert configured.state.error_message
        assert not configured.state.unsaved

    @pytest.mark.asyncio
    async def test_failed_rollback_flags_unsaved(self, configured, trade_store, primary, monkeypatch):
        async def broken_save(trade):
            primary.fail_writes = True
            raise StorageError("disk full")

        monkeypatch.setattr(trade_store, "save_trade", broken_save)
        with pytest.raises(ServiceError):
            await configured.add_trade(10)

        assert configured.state.unsaved
        assert configured.profile.current_balance == 10000

    @pytest.mark.asyncio
    async def test_settings_failure_raises_before_ledger(self, configured, primary):
        primary.fail_writes = True
        with pytest.raises(ServiceError):
            await configured.add_trade(10)
        primary.fail_writes = False
        assert configured.trades == []
        assert await configured.storage.ledger.count() == 0

    @pytest.mark.asyncio
    async def test_backup_failure_keeps_mutation(self, configured, local_tier, session_tier, primary):
        await configured.add_trade(10)
        local_tier.fail_writes = True
        session_tier.fail_writes = True
        # primary tier still takes the backup
        await configured.add_trade(20)
        assert configured.state.backup_warning == "Backup incomplete: local, session unavailable"

        primary_backup = await primary.get(BACKUP_KEY)
        assert len(primary_backup["trades"]) == 2
        assert configured.profile.current_balance == 10030


class TestSettingsMutations:

    @pytest.mark.asyncio
    async def test_update_max_drawdown_validation(self, configured):
        outcome = await configured.update_max_drawdown(20000)
        assert not outcome.success
        assert outcome.error.code == "DRAWDOWN_TOO_HIGH"
        assert configured.profile.max_drawdown == 500

    @pytest.mark.asyncio
    async def test_zero_max_drawdown_rejected(self, configured):
        outcome = await configured.update_max_drawdown(0)
        assert not outcome.success

    @pytest.mark.asyncio
    async def test_new_account_balance_rebases_current_balance(self, configured):
        await configured.update_loss_per_trade(20)
        await configured.add_trade(-100)
        await configured.update_max_drawdown(1000, account_balance=20000)
        profile = configured.profile
        assert profile.account_balance == 20000
        assert profile.current_balance == 19900
        assert profile.current_drawdown_threshold == -1000

    @pytest.mark.asyncio
    async def test_update_loss_per_trade(self, configured, primary):
        outcome = await configured.update_loss_per_trade("10")
        assert outcome.success
        assert configured.profile.max_loss_per_trade == pytest.approx(50.0)
        assert (await primary.get(RISK_SETTINGS_KEY))["lossPerTradePercentage"] == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [0, 150, "", None])
    async def test_update_loss_per_trade_rejects(self, configured, value):
        outcome = await configured.update_loss_per_trade(value)
        assert not outcome.success
        assert configured.profile.loss_per_trade_percentage == 5

    @pytest.mark.asyncio
    async def test_trade_reload_failure_becomes_service_error(self, configured, monkeypatch):
        async def unreadable():
            raise RepositoryError("Failed to load trades", operation="load trades")

        monkeypatch.setattr(configured.storage.ledger, "get_all", unreadable)
        with pytest.raises(ServiceError) as exc:
            await configured.update_max_drawdown(400)
        assert exc.value.operation == "update_max_drawdown"
        assert configured.state.error_message

        with pytest.raises(ServiceError) as exc:
            await configured.reset_to_defaults()
        assert exc.value.operation == "reset_to_defaults"

        # settings write succeeds, the reload before publishing does not
        with pytest.raises(ServiceError) as exc:
            await configured.update_loss_per_trade(7)
        assert exc.value.operation == "update_loss_per_trade"


class TestClearAndReset:

    @pytest.mark.asyncio
    async def test_clear_all_trades(self, configured):
        await configured.update_loss_per_trade(20)
        await configured.add_trade(-100)
        await configured.add_trade(50)
        await configured.clear_all_trades()

        assert configured.trades == []
        assert await configured.storage.ledger.get_all() == []
        assert configured.profile.current_balance == configured.profile.account_balance
        assert configured.profile.current_drawdown_threshold == -500

    @pytest.mark.asyncio
    async def test_reset_to_defaults_keeps_trades(self, configured):
        await configured.add_trade(40)
        await configured.reset_to_defaults()
        assert configured.profile.max_drawdown == 0
        assert configured.profile.account_balance == 0
        assert configured.profile.current_balance == 40
        assert len(configured.trades) == 1

    @pytest.mark.asyncio
    async def test_clear_all_data(self, configured, primary, local_tier):
        await configured.add_trade(40)
        await configured.clear_all_data()
        assert configured.trades == []
        assert configured.profile == RiskProfile.default()
        assert await primary.get(RISK_SETTINGS_KEY) is None
        assert await primary.get(BACKUP_KEY) is None
        assert await local_tier.get(BACKUP_KEY) is None


class TestManualRecovery:

    @pytest.mark.asyncio
    async def test_recover_after_primary_loss(self, configured, storage):
        await configured.add_trade(40)
        await configured.add_trade(-10)
        await storage.clear_all_data()

        outcome = await configured.recover()
        assert outcome.success
        assert [t.result for t in configured.trades] == [40, -10]
        assert configured.profile.current_balance == 10030
        assert configured.state.recovery_status == RecoveryStatus.RECOVERED

    @pytest.mark.asyncio
    async def test_settings_only_backups_never_delete_trades(self, configured, primary, local_tier, session_tier):
        for result in (10, 20, 30):
            await configured.add_trade(result)
        minimal = create_minimal_backup(configured.profile)
        for tier in (primary, local_tier, session_tier):
            await tier.set(BACKUP_KEY, minimal)

        outcome = await configured.recover()
        assert outcome.success
        assert [t.result for t in configured.trades] == [10, 20, 30]
        assert await configured.storage.ledger.count() == 3
        assert configured.profile.current_balance == 10060

    @pytest.mark.asyncio
    async def test_utc_import_then_local_trade(self, configured, tmp_path):
        snapshot = build_snapshot(configured.profile, [])
        snapshot["trades"] = [{"id": 1, "result": 15.0, "timestamp": "2024-01-01T10:00:00Z"}]
        path = tmp_path / "utc.json"
        path.write_text(json.dumps(snapshot), encoding="utf-8")

        assert (await configured.import_data(str(path))).success
        assert (await configured.add_trade(5)).success
        trades = await configured.storage.ledger.refresh()
        assert [t.result for t in trades] == [15.0, 5]
        assert all(t.timestamp.tzinfo is None for t in trades)

    @pytest.mark.asyncio
    async def test_recover_with_nothing(self, coordinator):
        outcome = await coordinator.recover()
        assert not outcome.success
        assert outcome.message == NO_RECOVERABLE_DATA


class TestReadViews:

    @pytest.mark.asyncio
    async def test_statistics_and_status(self, configured):
        await configured.update_loss_per_trade(20)
        for amount in (-100, 300, -50):
            await configured.add_trade(amount)
        stats = configured.get_trading_statistics()
        assert stats["total_trades"] == 3
        assert stats["total_pnl"] == 150
        assert stats["current_balance"] == 10150
        assert stats["risk_status"] == configured.check_risk_status().value
        assert configured.check_risk_status() == RiskStatus.LOW

    @pytest.mark.asyncio
    async def test_series(self, configured):
        await configured.update_loss_per_trade(20)
        for amount in (-100, 300, -50):
            await configured.add_trade(amount)
        assert configured.drawdown_series() == [(0, -500), (1, -500), (2, -300), (3, -300)]
        assert configured.pnl_series()[-1] == (3, 150)

    @pytest.mark.asyncio
    async def test_position_size(self, configured):
        assert configured.calculate_position_size("100", 95) == pytest.approx(5.0)
        with pytest.raises(ValidationError):
            configured.calculate_position_size("x", 95)


class TestObservation:

    @pytest.mark.asyncio
    async def test_listeners_see_each_committed_state(self, configured):
        seen = []
        unsubscribe = configured.store.subscribe(lambda s: seen.append(s.profile.current_balance))
        await configured.add_trade(10)
        unsubscribe()
        await configured.add_trade(10)
        assert 10010 in seen
        assert 10020 not in seen

    @pytest.mark.asyncio
    async def test_clear_error(self, configured):
        await configured.add_trade("bad")
        assert configured.state.error_message
        configured.clear_error()
        assert configured.state.error_message is None


class TestSqliteBackedApp:
    """Same coordinator over the sqlite store and JSON files"""

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, settings, tmp_path):
        from riskledger.service.bootstrap import build_app

        sqlite_settings = settings.model_copy(update={"trade_store_backend": "sqlite"})
        app = build_app(sqlite_settings)
        await app.initialize()
        await app.update_max_drawdown(500, account_balance=10000)
        await app.update_loss_per_trade(20)
        await app.add_trade(-100)
        await app.close()

        reopened = build_app(sqlite_settings)
        state = await reopened.initialize()
        assert state.recovery_status == RecoveryStatus.NOT_NEEDED
        assert [t.result for t in state.trades] == [-100]
        assert state.profile.current_balance == 9900
        await reopened.close()

    @pytest.mark.asyncio
    async def test_lost_primary_recovered_from_local_file(self, settings, tmp_path):
        from riskledger.service.bootstrap import build_app
        import os

        sqlite_settings = settings.model_copy(update={"trade_store_backend": "sqlite"})
        app = build_app(sqlite_settings)
        await app.initialize()
        await app.update_max_drawdown(500, account_balance=10000)
        await app.update_loss_per_trade(20)
        await app.add_trade(-100)
        await app.close()

        os.remove(sqlite_settings.preferences_file)
        os.remove(sqlite_settings.trade_db_file)

        reopened = build_app(sqlite_settings)
        state = await reopened.initialize()
        assert state.recovery_status == RecoveryStatus.RECOVERED
        assert [t.result for t in state.trades] == [-100]
        assert state.profile.current_balance == 9900
        await reopened.close()
