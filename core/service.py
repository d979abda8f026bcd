"""计算服务：对纯计算函数的异步封装，相同输入结果相同"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from core.bounds import BoundResult, enforce_target
from core.calculator import (
    calc_amount_from_duration, calc_duration_from_amount, calc_program_costs,
    generate_schedule, period_surcharge, program_period_bounds, rebalance,
)
from core.errors import CalculationServiceError, PaymentPlanError
from core.summary import EditSummary, edit_summary
from data_manager.schema import PlanConfiguration, PlanTotals, ScheduleItem, ScheduleSummary

logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    items: List[ScheduleItem]
    summary: ScheduleSummary
    bound: Optional[BoundResult] = None


@dataclass
class RebalanceResult:
    balances: List[float]  # 与传入行顺序一致
    summary: EditSummary


class CalculationService:
    async def calculate(self, config: PlanConfiguration, totals: PlanTotals) -> ScheduleResult:
        try:
            bound = enforce_target(config, totals)
            items, summary = generate_schedule(config, totals, bound.value)
        except PaymentPlanError:
            raise
        except (ArithmeticError, ValueError, TypeError) as exc:
            logger.error(f"Schedule calculation failed: {exc}")
            raise CalculationServiceError(f"Schedule calculation failed: {exc}") from exc
        if bound.clamped:
            logger.info(f"Target {bound.field} clamped from {bound.requested} to {bound.applied}")
        return ScheduleResult(items, summary, bound)

    async def calculate_duration_from_amount(
        self, config: PlanConfiguration, totals: PlanTotals, period_payment: float,
    ) -> int:
        _, _, _, total_cost = self._costs(config, totals)
        low, high = program_period_bounds(config)
        try:
            _, periods = calc_duration_from_amount(
                period_payment, total_cost, period_surcharge(config), low, high)
        except ZeroDivisionError as exc:
            raise CalculationServiceError(str(exc)) from exc
        return periods

    async def calculate_amount_from_duration(
        self, config: PlanConfiguration, totals: PlanTotals, number_of_periods: int,
    ) -> float:
        _, _, _, total_cost = self._costs(config, totals)
        _, payment = calc_amount_from_duration(number_of_periods, total_cost, period_surcharge(config))
        return payment

    async def rebalance(self, items: Sequence[ScheduleItem], total_cost: float) -> RebalanceResult:
        """表格编辑后的余额与汇总重算"""
        return RebalanceResult(rebalance(items, total_cost), edit_summary(items, total_cost))

    @staticmethod
    def _costs(config: PlanConfiguration, totals: PlanTotals):
        return calc_program_costs(totals.total_debt, config.settlement_percent,
                                  config.program_fee_percent, config.no_fee_program)
