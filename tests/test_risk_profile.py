"""
RiskProfile: derived limits, risk checks, construction rules, serialization.
"""

import pytest

from riskledger.risk.profile import RiskProfile, RiskStatus
from riskledger.utils.exceptions import ValidationError


class TestDerivedLimits:
    """Capacity and per-trade limit follow the drawdown budget"""

    def test_fresh_profile_limit(self, profile):
        assert profile.current_balance == 10000
        assert profile.current_drawdown_threshold == -1000
        assert profile.remaining_risk_capacity == 1000
        assert profile.max_loss_per_trade == pytest.approx(50.0)

    def test_limit_shrinks_after_loss(self, profile):
        after = profile.update_balance(-100)
        assert after.current_balance == 9900
        assert after.current_drawdown_amount == 100
        assert after.remaining_risk_capacity == 900
        assert after.max_loss_per_trade == pytest.approx(45.0)

    def test_capacity_never_negative(self, profile):
        blown = profile.copy_with(current_balance=8000)
        assert blown.current_drawdown_amount == 2000
        assert blown.remaining_risk_capacity == 0
        assert blown.max_loss_per_trade == 0

    @pytest.mark.parametrize("balance", [0, 5000, 9000, 9500, 10000, 12000])
    def test_limits_non_negative_for_any_balance(self, profile, balance):
        p = profile.copy_with(current_balance=balance)
        assert p.remaining_risk_capacity >= 0
        assert p.max_loss_per_trade >= 0

    def test_profit_does_not_raise_static_ceiling(self, profile):
        up = profile.update_balance(500)
        assert up.effective_max_drawdown == 1000
        assert up.current_drawdown_amount == 0


class TestDynamicMaxDrawdown:
    """Dynamic mode extends the ceiling by profit above the account balance"""

    @pytest.fixture
    def dynamic(self):
        return RiskProfile.create(1000, 5, 10000, is_dynamic_max_drawdown=True)

    def test_profit_extends_ceiling(self, dynamic):
        up = dynamic.update_balance(500)
        assert up.effective_max_drawdown == 1500
        assert up.max_drawdown == 1000

    def test_loss_back_to_start_keeps_configured_ceiling(self, dynamic):
        back = dynamic.update_balance(500).update_balance(-500)
        assert back.current_balance == 10000
        assert back.effective_max_drawdown == 1000
        assert back.max_drawdown == 1000

    def test_below_start_uses_configured_ceiling(self, dynamic):
        down = dynamic.update_balance(-200)
        assert down.effective_max_drawdown == 1000


class TestRiskChecks:

    def test_profits_always_within_limits(self, profile):
        assert profile.is_trade_within_risk_limits(1_000_000)

    def test_loss_at_limit_is_within(self, profile):
        assert profile.is_trade_within_risk_limits(-50)
        assert not profile.is_trade_within_risk_limits(-50.01)

    def test_would_exceed_max_drawdown_boundary(self, profile):
        near = profile.copy_with(current_balance=9100)
        assert not near.would_exceed_max_drawdown(-100)
        assert near.would_exceed_max_drawdown(-100.01)

    def test_profit_never_exceeds_drawdown(self, profile):
        assert not profile.copy_with(current_balance=0).would_exceed_max_drawdown(10)


class TestRiskStatus:
    """Distance between cumulative P&L and the trailing floor"""

    @pytest.mark.parametrize("pnl,expected", [
        (0, RiskStatus.LOW),
        (-600, RiskStatus.MEDIUM),
        (-850, RiskStatus.HIGH),
        (-1000, RiskStatus.CRITICAL),
    ])
    def test_status_bands(self, profile, pnl, expected):
        assert profile.update_balance(pnl).risk_status() == expected

    def test_unconfigured_profile_is_low(self):
        assert RiskProfile.default().risk_status() == RiskStatus.LOW


class TestThresholdRatchet:

    def test_loss_leaves_threshold(self, profile):
        after = profile.update_balance(-100).with_ratcheted_threshold(-100)
        assert after.current_drawdown_threshold == -1000

    def test_profit_trails_threshold(self, profile):
        after = profile.update_balance(500).with_ratcheted_threshold(500)
        assert after.current_drawdown_threshold == -500

    def test_profit_inside_slack_does_not_move_threshold(self, profile):
        after = profile.update_balance(-300).update_balance(100).with_ratcheted_threshold(100)
        assert after.current_drawdown_threshold == -1000

    def test_static_threshold_stops_at_break_even(self, profile):
        after = profile.update_balance(1500).with_ratcheted_threshold(1500)
        assert after.current_drawdown_threshold == 0

    def test_dynamic_threshold_rises_above_zero(self):
        p = RiskProfile.create(1000, 5, 10000, is_dynamic_max_drawdown=True)
        after = p.update_balance(1500).with_ratcheted_threshold(1500)
        assert after.current_drawdown_threshold == 500


class TestSizingHelpers:

    def test_position_size(self, profile):
        assert profile.position_size(100, 95) == pytest.approx(10.0)

    def test_position_size_degenerate_inputs(self, profile):
        assert profile.position_size(0, 95) == 0
        assert profile.position_size(100, 100) == 0

    def test_risk_reward_and_required_win_rate(self):
        assert RiskProfile.risk_reward_ratio(50, 150) == 3
        assert RiskProfile.risk_reward_ratio(0, 150) == 0
        assert RiskProfile.required_win_rate(150, -50) == pytest.approx(0.25)
        assert RiskProfile.required_win_rate(0, 0) == 0


class TestConstruction:
    """Impossible values are rejected at construction; validate() is stricter"""

    @pytest.mark.parametrize("kwargs", [
        dict(max_drawdown=100, loss_per_trade_percentage=5, account_balance=-1),
        dict(max_drawdown=-1, loss_per_trade_percentage=5, account_balance=100),
        dict(max_drawdown=200, loss_per_trade_percentage=5, account_balance=100),
        dict(max_drawdown=50, loss_per_trade_percentage=101, account_balance=100),
    ])
    def test_impossible_values_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            RiskProfile(**kwargs)

    def test_default_profile_is_unconfigured(self):
        default = RiskProfile.default()
        assert not default.is_configured
        with pytest.raises(ValidationError):
            default.validate()

    @pytest.mark.parametrize("pct", [0, -5, 100.5, "abc", None])
    def test_create_rejects_bad_percentage(self, pct):
        with pytest.raises(ValidationError):
            RiskProfile.create(1000, pct, 10000)

    def test_create_rejects_drawdown_above_balance(self):
        with pytest.raises(ValidationError) as exc:
            RiskProfile.create(20000, 5, 10000)
        assert exc.value.code == "DRAWDOWN_TOO_HIGH"

    def test_create_parses_string_input(self):
        p = RiskProfile.create("1000", " 2.5 ", "10000")
        assert p.loss_per_trade_percentage == 2.5


class TestSerialization:

    def test_persisted_keys(self, profile):
        assert set(profile.to_dict()) == {
            "maxDrawdown", "lossPerTradePercentage", "accountBalance",
            "currentBalance", "isDynamicMaxDrawdown", "currentDrawdownThreshold",
        }

    def test_from_dict_fills_optional_fields(self):
        p = RiskProfile.from_dict({"maxDrawdown": 500, "lossPerTradePercentage": 2, "accountBalance": 5000})
        assert p.current_balance == 5000
        assert p.current_drawdown_threshold == -500
        assert p.is_dynamic_max_drawdown is False

    def test_from_dict_missing_field(self):
        with pytest.raises(ValidationError):
            RiskProfile.from_dict({"maxDrawdown": 500})
