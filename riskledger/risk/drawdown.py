"""
Trailing drawdown floor for the P&L chart
==========================================

The floor is a ratcheting stop drawn under cumulative P&L. It starts at
``-max_drawdown`` and only moves once a profit pushes P&L at least
``max_drawdown`` above it. Static mode never lets it rise past zero (break
even); dynamic mode does.

This is a display series. The gate works from ``RiskProfile`` derived values,
and the realized peak-to-trough figure lives in ``ledger.statistics``.
"""

from __future__ import annotations

from typing import Sequence

from riskledger.ledger.models import Trade


def ratchet_floor(cumulative_pnl: float, floor: float, max_drawdown: float, is_dynamic: bool) -> float:
    """Move the floor up after a profit, if the profit cleared the slack."""
    distance = cumulative_pnl - floor
    if distance < max_drawdown:
        return floor
    new_floor = cumulative_pnl - max_drawdown
    if not is_dynamic and new_floor > 0:
        new_floor = 0.0
    return new_floor


def calculate_drawdown_per_trade(
    trades: Sequence[Trade],
    initial_balance: float,
    max_drawdown: float,
    is_dynamic: bool,
) -> list[float]:
    """One trailing-floor value per trade, in ledger order."""
    if not trades:
        return []

    drawdowns: list[float] = []
    running_balance = initial_balance
    peak_balance = initial_balance
    floor = -max_drawdown

    for trade in trades:
        running_balance += trade.result
        if running_balance > peak_balance:
            peak_balance = running_balance

        if trade.result > 0:
            floor = ratchet_floor(running_balance - initial_balance, floor, max_drawdown, is_dynamic)
        elif trade.result == 0:
            potential = (
                running_balance - peak_balance if is_dynamic
                else running_balance - initial_balance
            )
            floor = max(potential, -max_drawdown)
        # losses leave the floor where it is

        if not (is_dynamic and floor > 0):
            floor = max(floor, -max_drawdown)

        drawdowns.append(floor)

    return drawdowns


def drawdown_chart_series(
    trades: Sequence[Trade],
    initial_balance: float,
    max_drawdown: float,
    is_dynamic: bool,
) -> list[tuple[int, float]]:
    """Chart points ``(x, floor)`` with the index-0 seed at ``-max_drawdown``."""
    values = calculate_drawdown_per_trade(trades, initial_balance, max_drawdown, is_dynamic)
    if not values:
        return []
    return [(0, -max_drawdown)] + [(i + 1, v) for i, v in enumerate(values)]


def pnl_chart_series(trades: Sequence[Trade]) -> list[tuple[int, float]]:
    """Cumulative P&L points ``(x, total)`` starting from ``(0, 0.0)``."""
    points = [(0, 0.0)]
    running_total = 0.0
    for i, trade in enumerate(trades):
        running_total += trade.result
        points.append((i + 1, running_total))
    return points
