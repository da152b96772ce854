"""
Ledger statistics - pure aggregates over an ordered trade list
===============================================================

  - Total P&L, win/loss counts, win rate (percentage)
  - Average win / average loss, best win / worst loss
  - Profit factor and risk/reward
  - Realized peak-to-trough drawdown on cumulative P&L

None of these suspend; the ledger calls them over its cache.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Sequence

from riskledger.ledger.models import Trade


@dataclass(frozen=True)
class TradeStatistics:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_pnl: float = 0.0
    win_rate: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    best_win: float = 0.0
    worst_loss: float = 0.0
    max_drawdown: float = 0.0
    profit_factor: float = 0.0
    risk_reward_ratio: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def total_pnl(trades: Sequence[Trade]) -> float:
    return sum(t.result for t in trades)


def win_count(trades: Sequence[Trade]) -> int:
    return sum(1 for t in trades if t.is_win)


def loss_count(trades: Sequence[Trade]) -> int:
    return sum(1 for t in trades if t.is_loss)


def win_rate(trades: Sequence[Trade]) -> float:
    """Winning trades as a percentage of all trades."""
    if not trades:
        return 0.0
    return win_count(trades) / len(trades) * 100


def average_win(trades: Sequence[Trade]) -> float:
    wins = [t.result for t in trades if t.is_win]
    return sum(wins) / len(wins) if wins else 0.0


def average_loss(trades: Sequence[Trade]) -> float:
    losses = [t.result for t in trades if t.is_loss]
    return sum(losses) / len(losses) if losses else 0.0


def max_drawdown(trades: Sequence[Trade]) -> float:
    """Largest fall from a running peak of cumulative P&L (peak starts at 0)."""
    peak = 0.0
    running = 0.0
    worst = 0.0
    for t in trades:
        running += t.result
        if running > peak:
            peak = running
        drawdown = peak - running
        if drawdown > worst:
            worst = drawdown
    return worst


def calculate_statistics(trades: Sequence[Trade]) -> TradeStatistics:
    if not trades:
        return TradeStatistics()

    wins = [t.result for t in trades if t.is_win]
    losses = [t.result for t in trades if t.is_loss]
    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))
    avg_win = gross_profit / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0

    return TradeStatistics(
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        total_pnl=total_pnl(trades),
        win_rate=len(wins) / len(trades) * 100,
        average_win=avg_win,
        average_loss=avg_loss,
        best_win=max(wins) if wins else 0.0,
        worst_loss=min(losses) if losses else 0.0,
        max_drawdown=max_drawdown(trades),
        profit_factor=gross_profit / gross_loss if gross_loss > 0 else 0.0,
        risk_reward_ratio=avg_win / abs(avg_loss) if avg_loss != 0 else 0.0,
    )
