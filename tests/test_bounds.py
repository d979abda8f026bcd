"""目标金额边界测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from core.bounds import (
    clamp_percent,
    enforce_target,
    percent_from_amount,
    to_display,
    to_weekly,
    validate_desired_amount,
    weekly_target_from_percent,
)
from core.errors import ValidationError
from config.constants import CalculationMode, PaymentFrequency
from data_manager.schema import PlanTotals, ProgramBounds
from conftest import build_config

BOUNDS = ProgramBounds(min_weekly_target=50.0, min_percent=40.0, max_percent=100.0)


class TestClampPercent:
    def test_within_bounds_unchanged(self):
        result = clamp_percent(60, BOUNDS)
        assert result.value == 60
        assert not result.clamped

    def test_below_minimum(self):
        """30% -> 40%，差额 10"""
        result = clamp_percent(30, BOUNDS)
        assert result.applied == 40
        assert result.requested == 30
        assert result.delta == 10
        assert result.clamped

    def test_above_maximum(self):
        assert clamp_percent(150, BOUNDS).applied == 100

    @pytest.mark.parametrize("raw", ["abc", None, float("nan")])
    def test_non_numeric_uses_minimum(self, raw):
        result = clamp_percent(raw, BOUNDS)
        assert result.applied == 40
        assert result.requested is None


class TestPercentMode:
    def config(self, pct):
        return build_config(calculation_mode=CalculationMode.PERCENT_OF_CURRENT.value,
                            target_percent=pct, target_amount=None)

    def test_weekly_target(self):
        result = weekly_target_from_percent(self.config(50), PlanTotals(14000, 400))
        assert result.value == 200.0

    def test_clamped_percent_reported(self):
        result = enforce_target(self.config(30), PlanTotals(14000, 500))
        assert result.value == 200.0
        assert result.applied == 40
        assert result.clamped

    def test_floor_applies_to_small_payments(self):
        """当前还款额很小时不低于最低周目标，并报告实际生效的百分比"""
        result = weekly_target_from_percent(self.config(50), PlanTotals(14000, 60))
        assert result.value == 50.0
        assert result.requested == 50
        assert result.applied == 83.33
        assert result.delta == 33.33
        assert result.clamped

    @pytest.mark.parametrize("current", [60.0, 120.0, 400.0, 1000.0])
    def test_higher_percent_never_lowers_payment(self, current):
        totals = PlanTotals(14000, current)
        previous = 0.0
        for pct in [0, 20, 40, 55, 70, 85, 100, 120]:
            weekly = weekly_target_from_percent(self.config(pct), totals).value
            assert weekly >= previous
            assert weekly >= 50.0
            assert weekly <= max(current, 50.0)
            previous = weekly

    def test_requires_current_payment(self):
        with pytest.raises(ValidationError) as exc_info:
            weekly_target_from_percent(self.config(50), PlanTotals(14000))
        assert exc_info.value.field == "current_payment"


class TestDesiredAmount:
    def test_accepts_amount_in_range(self):
        result = validate_desired_amount(build_config(target_amount=300), PlanTotals(14000, 500))
        assert result.value == 300.0

    def test_above_maximum(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_desired_amount(build_config(target_amount=600), PlanTotals(14000, 500))
        err = exc_info.value
        assert err.message == "Desired payment cannot exceed $500.00"
        assert err.clamped_value == 500.0
        assert err.delta == -100.0

    def test_below_minimum(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_desired_amount(build_config(target_amount=40), PlanTotals(14000))
        assert exc_info.value.message == "Desired payment must be at least $50.00"
        assert exc_info.value.clamped_value == 50.0

    def test_monthly_rounding_accepted_at_minimum(self):
        """216.49/月 换算后四舍五入到 50/周，不因换算误差被拒"""
        config = build_config(payment_frequency=PaymentFrequency.MONTHLY.value, target_amount=216.49)
        result = validate_desired_amount(config, PlanTotals(14000))
        assert result.value == 50.0

    def test_monthly_bounds_in_display_terms(self):
        config = build_config(payment_frequency=PaymentFrequency.MONTHLY.value, target_amount=200)
        with pytest.raises(ValidationError) as exc_info:
            validate_desired_amount(config, PlanTotals(14000))
        assert exc_info.value.clamped_value == 216.5

    def test_rejects_non_positive(self):
        with pytest.raises(ValidationError):
            validate_desired_amount(build_config(target_amount=0), PlanTotals(14000))

    def test_no_upper_bound_without_current_payment(self):
        result = validate_desired_amount(build_config(target_amount=5000), PlanTotals(14000))
        assert result.value == 5000.0
        assert not result.clamped


class TestConversions:
    def test_weekly_monthly_round_trip(self):
        config = build_config(payment_frequency=PaymentFrequency.MONTHLY.value)
        assert to_display(200, config) == 866.0
        assert to_weekly(866, config) == 200.0

    def test_weekly_is_identity(self):
        assert to_weekly(206.19, build_config()) == 206.19

    def test_percent_from_amount(self):
        assert percent_from_amount(200, 400) == 50.0
        assert percent_from_amount(200, None) is None
