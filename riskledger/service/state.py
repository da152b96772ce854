"""Observed risk state and a small publish/subscribe store around it."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional

from riskledger.ledger.models import Trade
from riskledger.ledger.statistics import TradeStatistics
from riskledger.risk.profile import RiskProfile, RiskStatus
from riskledger.utils.logger import get_logger

logger = get_logger(__name__)


class RecoveryStatus(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    NOT_NEEDED = "not_needed"
    RECOVERED = "recovered"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class RiskState:
    profile: RiskProfile = field(default_factory=RiskProfile.default)
    trades: tuple[Trade, ...] = ()
    statistics: TradeStatistics = field(default_factory=TradeStatistics)
    risk_status: RiskStatus = RiskStatus.LOW
    is_loading: bool = False
    initialized: bool = False
    error_message: Optional[str] = None
    backup_warning: Optional[str] = None
    unsaved: bool = False
    recovery_status: RecoveryStatus = RecoveryStatus.NOT_ATTEMPTED

    def copy_with(self, **changes: Any) -> "RiskState":
        return replace(self, **changes)


StateListener = Callable[[RiskState], None]


class StateStore:
    def __init__(self, initial: Optional[RiskState] = None):
        self._state = initial or RiskState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> RiskState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; the returned callable removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes: Any) -> RiskState:
        self._state = self._state.copy_with(**changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                # a broken listener must not block the others or the mutation
                logger.error("state_listener_failed", error=str(e))
        return self._state
