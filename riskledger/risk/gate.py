"""
Trade gate - pre-trade risk check
==================================

Runs before anything is persisted. Only losses are checked; profits and
break-even trades are always accepted. The per-trade limit is checked first,
then the projected drawdown against the effective ceiling.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from riskledger.risk.profile import RiskProfile
from riskledger.utils.exceptions import RiskLimitExceededError


class RejectionReason(str, Enum):
    LOSS_EXCEEDS_PER_TRADE_LIMIT = "loss_exceeds_per_trade_limit"
    DRAWDOWN_EXCEEDED = "drawdown_exceeded"


@dataclass(frozen=True)
class GateDecision:
    accepted: bool
    reason: Optional[RejectionReason] = None
    message: str = ""
    limit: float = 0.0

    @classmethod
    def accept(cls) -> "GateDecision":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str, limit: float) -> "GateDecision":
        return cls(accepted=False, reason=reason, message=message, limit=limit)

    @property
    def rejected(self) -> bool:
        return not self.accepted

    def raise_for_rejection(self) -> None:
        if self.accepted:
            return
        raise RiskLimitExceededError(self.message, reason=self.reason, limit=self.limit)


class TradeGate:
    """Stateless; evaluates a proposed trade result against a profile."""

    @staticmethod
    def evaluate(profile: RiskProfile, amount: float) -> GateDecision:
        if amount >= 0:
            return GateDecision.accept()

        limit = profile.max_loss_per_trade
        if not profile.is_trade_within_risk_limits(amount):
            return GateDecision.reject(
                RejectionReason.LOSS_EXCEEDS_PER_TRADE_LIMIT,
                f"Trade loss of ${abs(amount):.2f} exceeds maximum loss per trade of ${limit:.2f}",
                limit,
            )

        if profile.would_exceed_max_drawdown(amount):
            ceiling = profile.effective_max_drawdown
            return GateDecision.reject(
                RejectionReason.DRAWDOWN_EXCEEDED,
                f"Trade would exceed maximum drawdown limit of ${ceiling:.2f}",
                ceiling,
            )

        return GateDecision.accept()
