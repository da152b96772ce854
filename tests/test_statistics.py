"""
Ledger statistics over an ordered trade list.
"""

import pytest

from riskledger.ledger.statistics import (
    TradeStatistics,
    calculate_statistics,
    max_drawdown,
    win_rate,
)
from tests.factories import make_trades


class TestCalculateStatistics:

    def test_empty_ledger(self):
        assert calculate_statistics([]) == TradeStatistics()

    def test_mixed_results(self):
        stats = calculate_statistics(make_trades([-100, 300, -50]))
        assert stats.total_trades == 3
        assert stats.winning_trades == 1
        assert stats.losing_trades == 2
        assert stats.total_pnl == 150
        assert stats.win_rate == pytest.approx(100 / 3)
        assert stats.average_win == 300
        assert stats.average_loss == -75
        assert stats.best_win == 300
        assert stats.worst_loss == -100
        assert stats.max_drawdown == 100
        assert stats.profit_factor == pytest.approx(2.0)
        assert stats.risk_reward_ratio == pytest.approx(4.0)

    def test_break_even_trades_count_towards_total_only(self):
        stats = calculate_statistics(make_trades([0, 0, 10]))
        assert stats.total_trades == 3
        assert stats.winning_trades == 1
        assert stats.losing_trades == 0
        assert stats.profit_factor == 0
        assert stats.worst_loss == 0

    def test_all_losses(self):
        stats = calculate_statistics(make_trades([-10, -20]))
        assert stats.win_rate == 0
        assert stats.best_win == 0
        assert stats.risk_reward_ratio == 0


class TestPeakToTrough:

    def test_drawdown_from_running_peak(self):
        assert max_drawdown(make_trades([100, 200, -250, 50, -150])) == 350

    def test_initial_losses_measured_from_zero(self):
        assert max_drawdown(make_trades([-100, -50])) == 150

    def test_only_gains(self):
        assert max_drawdown(make_trades([10, 20, 30])) == 0


class TestHelpers:

    def test_win_rate_is_percentage(self):
        assert win_rate(make_trades([10, -10, 10, -10])) == 50
        assert win_rate([]) == 0

