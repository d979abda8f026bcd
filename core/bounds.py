"""目标还款额边界：百分比截断、金额上下限、周/月换算

所有校验都在"周"口径下进行，月付输入先换算成周。
"""
from dataclasses import dataclass
from typing import Optional

from config.constants import CalculationMode, PaymentFrequency
from config.settings import BOUND_TOLERANCE
from core.errors import ValidationError
from data_manager.schema import PlanConfiguration, PlanTotals, ProgramBounds
from utils.formatters import round_money, fmt_amount


@dataclass(frozen=True)
class BoundResult:
    value: float  # 截断后的周目标金额
    requested: Optional[float]  # 原始输入（百分比或金额）
    applied: Optional[float]  # 实际采用的输入
    field: str

    @property
    def delta(self) -> float:
        if self.requested is None or self.applied is None:
            return 0.0
        return round(self.applied - self.requested, 4)

    @property
    def clamped(self) -> bool:
        return self.delta != 0


def _to_number(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return number


def clamp_percent(value, bounds: ProgramBounds) -> BoundResult:
    """百分比截断到 [min_percent, max_percent]，非数字按最小值处理"""
    number = _to_number(value)
    if number is None:
        return BoundResult(bounds.min_percent, None, bounds.min_percent, "target_percent")
    applied = min(max(number, bounds.min_percent), bounds.max_percent)
    return BoundResult(applied, number, applied, "target_percent")


def period_factor(config: PlanConfiguration) -> float:
    if config.payment_frequency == PaymentFrequency.MONTHLY.value:
        return config.weekly_to_monthly_factor
    return 1.0


def to_weekly(amount: float, config: PlanConfiguration) -> float:
    return round_money(amount / period_factor(config))


def to_display(weekly_amount: float, config: PlanConfiguration) -> float:
    return round_money(weekly_amount * period_factor(config))


def minimum_weekly_target(config: PlanConfiguration, current_payment: Optional[float]) -> float:
    floor = config.bounds.min_weekly_target
    if current_payment and current_payment > 0:
        floor = max(floor, current_payment * config.bounds.min_percent / 100)
    return round_money(floor)


def maximum_weekly_target(config: PlanConfiguration, current_payment: Optional[float]) -> Optional[float]:
    if current_payment and current_payment > 0:
        return round_money(current_payment * config.bounds.max_percent / 100)
    return None


def weekly_target_from_percent(config: PlanConfiguration, totals: PlanTotals) -> BoundResult:
    if not totals.has_current_payment:
        raise ValidationError(
            "Current payment is required to size the plan from a percentage",
            field="current_payment",
        )
    pct = clamp_percent(config.target_percent, config.bounds)
    weekly = round_money(totals.current_payment * pct.applied / 100)
    floor = minimum_weekly_target(config, totals.current_payment)
    if weekly >= floor:
        return BoundResult(weekly, pct.requested, pct.applied, pct.field)
    # 抬到最低周目标后，applied 记为实际生效的百分比
    effective = percent_from_amount(floor, totals.current_payment)
    requested = pct.requested if pct.requested is not None else pct.applied
    return BoundResult(floor, requested, effective, pct.field)


def validate_desired_amount(config: PlanConfiguration, totals: PlanTotals) -> BoundResult:
    """校验目标金额（显示口径），超出边界抛 ValidationError 并附带可接受的值"""
    amount = _to_number(config.target_amount)
    if amount is None or amount <= 0:
        raise ValidationError("Desired payment must be a positive amount", field="target_amount",
                              requested=amount)

    weekly = to_weekly(amount, config)
    low = minimum_weekly_target(config, totals.current_payment)
    high = maximum_weekly_target(config, totals.current_payment)

    if weekly < low - BOUND_TOLERANCE:
        minimum = to_display(low, config)
        raise ValidationError(
            f"Desired payment must be at least {fmt_amount(minimum)}",
            field="target_amount", requested=amount, minimum=minimum,
            maximum=to_display(high, config) if high is not None else None,
            clamped_value=minimum,
        )
    if high is not None and weekly > high + BOUND_TOLERANCE:
        maximum = to_display(high, config)
        raise ValidationError(
            f"Desired payment cannot exceed {fmt_amount(maximum)}",
            field="target_amount", requested=amount, minimum=to_display(low, config),
            maximum=maximum, clamped_value=maximum,
        )
    return BoundResult(weekly, amount, amount, "target_amount")


def percent_from_amount(weekly_amount: float, current_payment: Optional[float]) -> Optional[float]:
    """目标金额反推百分比，用于页面同步显示"""
    if not current_payment or current_payment <= 0:
        return None
    return round(weekly_amount / current_payment * 100, 2)


def enforce_target(config: PlanConfiguration, totals: PlanTotals) -> BoundResult:
    """按计算模式得到有界的周目标金额"""
    if config.calculation_mode == CalculationMode.DESIRED_AMOUNT.value:
        return validate_desired_amount(config, totals)
    return weekly_target_from_percent(config, totals)
