"""
Risk engine
===========

  profile.py     - RiskProfile value, derived limits, risk status
  gate.py        - pre-trade TradeGate
  drawdown.py    - trailing drawdown floor series for the P&L chart
  validation.py  - user input rules
"""

from riskledger.risk.profile import RiskProfile, RiskStatus
from riskledger.risk.gate import GateDecision, RejectionReason, TradeGate
from riskledger.risk.drawdown import (
    calculate_drawdown_per_trade,
    drawdown_chart_series,
    pnl_chart_series,
)

__all__ = [
    "RiskProfile", "RiskStatus",
    "GateDecision", "RejectionReason", "TradeGate",
    "calculate_drawdown_per_trade", "drawdown_chart_series", "pnl_chart_series",
]
