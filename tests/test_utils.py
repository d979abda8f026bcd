"""工具函数与输入校验测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date, datetime
import pytest
from data_manager.data_validator import validate_plan_inputs, validate_policy_value
from utils.date_utils import default_first_payment_date, parse_date, payment_date
from utils.formatters import fmt_amount, fmt_periods, parse_amount, round_money

TODAY = date(2030, 1, 1)


class TestFormatters:
    def test_round_half_up(self):
        assert round_money(85.595) == 85.6
        assert round_money(2.675) == 2.68

    @pytest.mark.parametrize("raw,expected", [
        ("$1,234.5", 1234.5), (" 35 ", 35.0), (12, 12.0), ("abc", None), ("", None), (None, None),
    ])
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected

    def test_fmt_amount(self):
        assert fmt_amount(1234.5) == "$1,234.50"
        assert fmt_amount(-5) == "-$5.00"

    def test_fmt_periods(self):
        assert fmt_periods(78) == "78 weeks (1y 6m)"
        assert fmt_periods(10, "monthly") == "10 months"


class TestDates:
    def test_default_first_date_is_next_monday(self):
        assert default_first_payment_date(date(2030, 1, 1)) == date(2030, 1, 7)
        assert default_first_payment_date(date(2030, 1, 7)) == date(2030, 1, 14)

    def test_monthly_end_of_month(self):
        assert payment_date(date(2030, 1, 31), 1, "monthly") == date(2030, 2, 28)

    def test_parse_date(self):
        assert parse_date("2030-01-07") == date(2030, 1, 7)
        assert parse_date(datetime(2030, 1, 7, 9, 30)) == date(2030, 1, 7)
        assert parse_date(float("nan")) is None
        assert parse_date("") is None


class TestPlanInputs:
    def base(self, **overrides):
        values = dict(total_debt=14000, current_payment=400, program_type="standard_split",
                      payment_frequency="weekly", calculation_mode="percent_of_current",
                      target_percent=50, target_amount=None, first_payment_date=date(2030, 1, 7),
                      today=TODAY)
        values.update(overrides)
        return validate_plan_inputs(**values)

    def test_valid(self):
        assert self.base() == (True, "")

    def test_percent_requires_current_payment(self):
        ok, msg = self.base(current_payment=None)
        assert not ok
        assert "Current payment" in msg

    def test_past_first_date(self):
        ok, _ = self.base(first_payment_date=date(2029, 12, 31))
        assert not ok

    def test_unknown_program(self):
        ok, msg = self.base(program_type="premium")
        assert not ok
        assert "premium" in msg

    def test_desired_amount_required(self):
        ok, _ = self.base(calculation_mode="desired_amount", target_amount=None)
        assert not ok

    def test_policy_values(self):
        assert validate_policy_value("banking_fee", "35") == (True, "")
        assert not validate_policy_value("banking_fee", "-1")[0]
        assert not validate_policy_value("escrow_split_ratio", "1.2")[0]
        assert not validate_policy_value("banking_fee", "abc")[0]
