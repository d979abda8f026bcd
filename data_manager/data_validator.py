from datetime import date
from typing import Optional, Tuple

from config.constants import CalculationMode, PaymentFrequency, ProgramType, WireFeeType


def validate_plan_inputs(
    total_debt: float,
    current_payment: Optional[float],
    program_type: str,
    payment_frequency: str,
    calculation_mode: str,
    target_percent: Optional[float],
    target_amount: Optional[float],
    first_payment_date: Optional[date],
    preferred_weekday: Optional[int] = None,
    today: Optional[date] = None,
) -> Tuple[bool, str]:
    """校验计算器输入，返回 (是否合法, 错误信息)"""
    if program_type not in [e.value for e in ProgramType]:
        return False, f"Unknown program type: {program_type}"

    if payment_frequency not in [e.value for e in PaymentFrequency]:
        return False, f"Unknown payment frequency: {payment_frequency}"

    if calculation_mode not in [e.value for e in CalculationMode]:
        return False, f"Unknown calculation mode: {calculation_mode}"

    if total_debt is None or total_debt <= 0:
        return False, "Total enrolled debt must be greater than 0"

    if current_payment is not None and current_payment < 0:
        return False, "Current payment cannot be negative"

    if calculation_mode == CalculationMode.PERCENT_OF_CURRENT.value:
        if not current_payment:
            return False, "Current payment is required for percent-based plans"
        if target_percent is None or target_percent <= 0:
            return False, "Target percent must be greater than 0"
    elif target_amount is None or target_amount <= 0:
        return False, "Desired payment must be greater than 0"

    if first_payment_date is not None and first_payment_date < (today or date.today()):
        return False, "First payment date cannot be in the past"

    if preferred_weekday is not None and not 0 <= preferred_weekday <= 6:
        return False, "Preferred weekday must be between 0 (Mon) and 6 (Sun)"

    return True, ""


def validate_wire_fee(
    schedule_item_id: Optional[str],
    fee_type: str,
    amount: Optional[float],
) -> Tuple[bool, str]:
    """校验电汇费用输入"""
    if not schedule_item_id:
        return False, "Save the schedule before adding wire fees to a payment"

    if fee_type not in [e.value for e in WireFeeType]:
        return False, f"Unknown wire fee type: {fee_type}"

    if amount is not None and amount < 0:
        return False, "Wire fee amount cannot be negative"

    return True, ""


def validate_policy_value(key: str, value: str) -> Tuple[bool, str]:
    """校验单个策略配置值"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False, f"{key} must be numeric"

    if number < 0:
        return False, f"{key} cannot be negative"

    if key.endswith("split_ratio") and number > 1:
        return False, f"{key} must be between 0 and 1"

    if key.endswith("percent") and number > 1000:
        return False, f"{key} looks wrong (>1000%)"

    return True, ""
