"""
Risk profile - the trader's risk configuration and live balance
================================================================

The profile is a value: every change produces a new instance through
``copy_with`` / ``update_balance``. Derived figures are properties and are
never persisted.

    effective_max_drawdown   max_drawdown (+ profit above account_balance in dynamic mode)
    current_drawdown_amount  max(0, account_balance - current_balance)
    remaining_risk_capacity  max(0, effective_max_drawdown - current_drawdown_amount)
    max_loss_per_trade       remaining_risk_capacity * loss_per_trade_percentage / 100
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from riskledger.risk.drawdown import ratchet_floor
from riskledger.risk.validation import (
    validate_account_balance,
    validate_loss_percentage,
    validate_max_drawdown,
)
from riskledger.utils.exceptions import ValidationError


class RiskStatus(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class RiskProfile:
    max_drawdown: float = 0.0
    loss_per_trade_percentage: float = 0.0
    account_balance: float = 0.0
    current_balance: Optional[float] = None
    is_dynamic_max_drawdown: bool = False
    current_drawdown_threshold: Optional[float] = None

    def __post_init__(self) -> None:
        if self.current_balance is None:
            object.__setattr__(self, "current_balance", float(self.account_balance))
        if self.current_drawdown_threshold is None:
            object.__setattr__(self, "current_drawdown_threshold", -float(self.max_drawdown))

        if self.account_balance < 0:
            raise ValidationError("Account balance cannot be negative", code="NEGATIVE_BALANCE")
        if self.max_drawdown < 0:
            raise ValidationError("Max drawdown cannot be negative", code="NEGATIVE_DRAWDOWN")
        if self.max_drawdown > self.account_balance:
            raise ValidationError("Max drawdown cannot exceed account balance", code="DRAWDOWN_TOO_HIGH")
        if self.loss_per_trade_percentage < 0 or self.loss_per_trade_percentage > 100:
            raise ValidationError("Loss per trade must be between 0 and 100", code="OUT_OF_RANGE")

    # ── Construction ────────────────────────────────────────────

    @classmethod
    def default(cls) -> "RiskProfile":
        """All-zero profile used before the trader configures anything."""
        return cls(
            max_drawdown=0.0,
            loss_per_trade_percentage=0.0,
            account_balance=0.0,
            current_balance=0.0,
            is_dynamic_max_drawdown=False,
        )

    @classmethod
    def create(
        cls,
        max_drawdown: Any,
        loss_per_trade_percentage: Any,
        account_balance: Any,
        is_dynamic_max_drawdown: bool = False,
    ) -> "RiskProfile":
        """Build a configured profile from raw input, validating every field."""
        balance = validate_account_balance(account_balance)
        profile = cls(
            max_drawdown=validate_max_drawdown(max_drawdown, balance),
            loss_per_trade_percentage=validate_loss_percentage(loss_per_trade_percentage),
            account_balance=balance,
            is_dynamic_max_drawdown=is_dynamic_max_drawdown,
        )
        profile.validate()
        return profile

    def validate(self) -> None:
        """Configured-profile rules; stricter than what construction enforces."""
        if self.account_balance <= 0:
            raise ValidationError("Account balance must be greater than 0", code="OUT_OF_RANGE")
        if self.max_drawdown <= 0 or self.max_drawdown > self.account_balance:
            raise ValidationError(
                f"Max drawdown must be between $0 and ${self.account_balance:.2f}",
                code="DRAWDOWN_TOO_HIGH",
            )
        validate_loss_percentage(self.loss_per_trade_percentage)

    @property
    def is_configured(self) -> bool:
        return self.account_balance > 0 and self.max_drawdown > 0 and self.loss_per_trade_percentage > 0

    # ── Derived values ──────────────────────────────────────────

    @property
    def effective_max_drawdown(self) -> float:
        if self.is_dynamic_max_drawdown and self.current_balance > self.account_balance:
            return self.max_drawdown + (self.current_balance - self.account_balance)
        return self.max_drawdown

    @property
    def current_drawdown_amount(self) -> float:
        return max(0.0, self.account_balance - self.current_balance)

    @property
    def remaining_risk_capacity(self) -> float:
        return max(0.0, self.effective_max_drawdown - self.current_drawdown_amount)

    @property
    def max_loss_per_trade(self) -> float:
        return self.remaining_risk_capacity * self.loss_per_trade_percentage / 100

    @property
    def cumulative_pnl(self) -> float:
        return self.current_balance - self.account_balance

    # ── Risk checks ─────────────────────────────────────────────

    def is_trade_within_risk_limits(self, amount: float) -> bool:
        if amount > 0:
            return True
        return abs(amount) <= self.max_loss_per_trade

    def would_exceed_max_drawdown(self, amount: float) -> bool:
        if amount >= 0:
            return False
        projected_drawdown = self.account_balance - (self.current_balance + amount)
        return projected_drawdown > self.effective_max_drawdown

    def risk_status(self) -> RiskStatus:
        """How close cumulative P&L sits to the trailing drawdown floor."""
        if self.max_drawdown == 0:
            return RiskStatus.LOW
        ratio = (self.cumulative_pnl - self.current_drawdown_threshold) / self.max_drawdown
        if ratio <= 0:
            return RiskStatus.CRITICAL
        if ratio <= 0.2:
            return RiskStatus.HIGH
        if ratio <= 0.5:
            return RiskStatus.MEDIUM
        return RiskStatus.LOW

    # ── Sizing helpers ──────────────────────────────────────────

    @staticmethod
    def risk_reward_ratio(risk_amount: float, reward_amount: float) -> float:
        if risk_amount == 0:
            return 0.0
        return reward_amount / risk_amount

    @staticmethod
    def required_win_rate(average_win: float, average_loss: float) -> float:
        denominator = average_win + abs(average_loss)
        if denominator == 0:
            return 0.0
        return abs(average_loss) / denominator

    def position_size(self, entry_price: float, stop_loss: float) -> float:
        if entry_price == 0 or stop_loss == 0:
            return 0.0
        risk_per_unit = abs(entry_price - stop_loss)
        if risk_per_unit == 0:
            return 0.0
        return self.max_loss_per_trade / risk_per_unit

    # ── Transitions ─────────────────────────────────────────────

    def copy_with(self, **changes: Any) -> "RiskProfile":
        return replace(self, **changes)

    def update_balance(self, delta: float) -> "RiskProfile":
        return self.copy_with(current_balance=self.current_balance + delta)

    def with_ratcheted_threshold(self, result: float) -> "RiskProfile":
        """Re-evaluate the trailing floor after a trade of ``result`` was applied.

        Losses never move the floor.
        """
        if result < 0:
            return self
        floor = ratchet_floor(
            self.cumulative_pnl,
            self.current_drawdown_threshold,
            self.max_drawdown,
            self.is_dynamic_max_drawdown,
        )
        if floor == self.current_drawdown_threshold:
            return self
        return self.copy_with(current_drawdown_threshold=floor)

    # ── Serialization (persisted settings schema) ───────────────

    def to_dict(self) -> dict:
        return {
            "maxDrawdown": self.max_drawdown,
            "lossPerTradePercentage": self.loss_per_trade_percentage,
            "accountBalance": self.account_balance,
            "currentBalance": self.current_balance,
            "isDynamicMaxDrawdown": self.is_dynamic_max_drawdown,
            "currentDrawdownThreshold": self.current_drawdown_threshold,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RiskProfile":
        try:
            max_drawdown = float(d["maxDrawdown"])
            current_balance = d.get("currentBalance")
            threshold = d.get("currentDrawdownThreshold")
            return cls(
                max_drawdown=max_drawdown,
                loss_per_trade_percentage=float(d["lossPerTradePercentage"]),
                account_balance=float(d["accountBalance"]),
                current_balance=float(current_balance) if current_balance is not None else None,
                is_dynamic_max_drawdown=bool(d.get("isDynamicMaxDrawdown", False)),
                current_drawdown_threshold=float(threshold) if threshold is not None else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid risk settings record: {e}", code="INVALID_SETTINGS") from e

    def __str__(self) -> str:
        return (
            f"RiskProfile(max_drawdown=${self.max_drawdown:.2f}, "
            f"loss_per_trade={self.loss_per_trade_percentage:.2f}%, "
            f"account_balance=${self.account_balance:.2f}, "
            f"current_balance=${self.current_balance:.2f}, "
            f"dynamic={self.is_dynamic_max_drawdown})"
        )
