"""核心计算：项目成本、期数 ↔ 金额互算、付款计划生成"""
import math
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple

from config.constants import ItemStatus, PaymentFrequency
from config.settings import NO_FEE_BASELINE_SIZING
from core.bounds import enforce_target, period_factor, to_weekly
from core.errors import ValidationError
from core.fees import decompose_payment, split_setup_fee
from data_manager.schema import PlanConfiguration, PlanTotals, ScheduleItem, ScheduleSummary
from utils.date_utils import next_payment_date, payment_date
from utils.formatters import round_money

# 每期允许的分位舍入残差
_PER_PERIOD_TOLERANCE = 0.005


@dataclass(frozen=True)
class FundingProgress:
    """冻结行已完成的部分，重算时从这里接着生成"""
    next_sequence: int = 1
    funded: float = 0.0
    program_collected: float = 0.0
    escrow_collected: float = 0.0
    setup_collected: float = 0.0
    setup_payments_made: int = 0
    frozen_count: int = 0
    last_date: Optional[date] = None


def funding_progress(frozen_items: Sequence[ScheduleItem]) -> FundingProgress:
    """只有 Cleared 的行计入已到账金额"""
    if not frozen_items:
        return FundingProgress()
    cleared = [i for i in frozen_items if i.status == ItemStatus.CLEARED.value]
    return FundingProgress(
        next_sequence=max(i.sequence_number for i in frozen_items) + 1,
        funded=round_money(sum(i.net_contribution for i in cleared)),
        program_collected=round_money(sum(i.program_fee_portion for i in cleared)),
        escrow_collected=round_money(sum(i.escrow_amount for i in cleared)),
        setup_collected=round_money(sum(i.setup_fee_portion for i in cleared)),
        setup_payments_made=sum(1 for i in cleared if i.setup_fee_portion > 0),
        frozen_count=len(frozen_items),
        last_date=max(i.payment_date for i in frozen_items),
    )


def calc_program_costs(
    total_debt: float,
    settlement_percent: float,
    program_fee_percent: float,
    no_fee_program: bool = False,
    baseline_sizing: bool = NO_FEE_BASELINE_SIZING,
) -> Tuple[float, float, float, float]:
    """返回 (和解金额, 实收服务费, 基准服务费, 项目总成本)

    免服务费方案不收服务费，但按基准服务费估算期数。
    """
    settlement = round_money(total_debt * settlement_percent / 100)
    baseline_fee = round_money(total_debt * program_fee_percent / 100)
    program_fee = 0.0 if no_fee_program else baseline_fee
    sizing_fee = baseline_fee if (not no_fee_program or baseline_sizing) else 0.0
    return settlement, program_fee, baseline_fee, round_money(settlement + sizing_fee)


def _periods_needed(net_per_period: float, total_cost: float) -> int:
    periods = math.ceil(total_cost / net_per_period)
    # 反算得到的净额已舍入到分，这里容忍每期半分的残差
    if periods > 1:
        shortfall = total_cost - net_per_period * (periods - 1)
        if shortfall <= _PER_PERIOD_TOLERANCE * (periods - 1) + 1e-9:
            periods -= 1
    return max(periods, 1)


def calc_duration_from_amount(
    payment: float,
    total_cost: float,
    surcharge: float,
    min_periods: int = 1,
    max_periods: Optional[int] = None,
) -> Tuple[float, int]:
    """正算：每期付款 -> (每期净额, 期数)，期数截断到 [min_periods, max_periods]"""
    net = round_money(payment - surcharge)
    if net <= 0:
        raise ValidationError(
            f"Payment must exceed the per-draft fees of {surcharge:.2f}",
            field="target_amount", requested=payment, minimum=round_money(surcharge + 0.01),
        )
    periods = max(_periods_needed(net, total_cost), min_periods)
    if max_periods is not None:
        periods = min(periods, max_periods)
    return net, periods


def calc_amount_from_duration(
    number_of_periods: int,
    total_cost: float,
    surcharge: float,
) -> Tuple[float, float]:
    """反算：期数 -> (每期净额, 每期付款)"""
    if number_of_periods < 1:
        raise ValidationError("Number of payments must be at least 1",
                              field="number_of_periods", requested=number_of_periods)
    net = round_money(total_cost / number_of_periods)
    return net, round_money(net + surcharge)


def program_period_bounds(config: PlanConfiguration) -> Tuple[int, int]:
    """项目周数上下限换算成当前频率的期数"""
    if config.payment_frequency == PaymentFrequency.MONTHLY.value:
        factor = config.weekly_to_monthly_factor
        low = max(1, math.ceil(config.min_program_weeks / factor))
        high = max(low, math.floor(config.max_program_weeks / factor))
        return low, high
    return config.min_program_weeks, config.max_program_weeks


def period_surcharge(config: PlanConfiguration) -> float:
    """每期在净额之外附加的费用（银行费 + 附加产品），开户费另计"""
    additional = config.additional_weekly_products_total * period_factor(config)
    return round_money(config.banking_fee + config.secondary_banking_fee + additional)


def generate_schedule(
    config: PlanConfiguration,
    totals: PlanTotals,
    weekly_target: Optional[float] = None,
    progress: Optional[FundingProgress] = None,
) -> Tuple[List[ScheduleItem], ScheduleSummary]:
    """生成付款计划

    weekly_target 为空时按计算模式校验/截断目标金额；progress 用于在冻结行
    之后继续生成剩余的 Scheduled 行。
    """
    if weekly_target is None:
        weekly_target = enforce_target(config, totals).value
    progress = progress or FundingProgress()

    settlement, program_fee, baseline_fee, total_cost = calc_program_costs(
        totals.total_debt, config.settlement_percent, config.program_fee_percent,
        config.no_fee_program,
    )
    factor = period_factor(config)
    surcharge = period_surcharge(config)
    additional = round_money(config.additional_weekly_products_total * factor)
    period_payment = round_money(weekly_target * factor)

    remaining_cost = round_money(total_cost - progress.funded)
    program_remaining = round_money(program_fee - progress.program_collected)
    escrow_remaining = round_money(total_cost - program_fee - progress.escrow_collected)

    low, high = program_period_bounds(config)
    low = max(low - progress.frozen_count, 1)
    high = max(high - progress.frozen_count, 1)

    if remaining_cost <= 0:
        periods, net, clamped = 0, 0.0, False
    else:
        net, periods = calc_duration_from_amount(period_payment, remaining_cost, surcharge, low, high)
        clamped = periods != _periods_needed(net, remaining_cost)
        if clamped:
            net = round_money(remaining_cost / periods)

    setup_remaining = round_money(config.setup_fee_total - progress.setup_collected)
    setup_slots = min(max(config.setup_fee_payments - progress.setup_payments_made, 1), periods)
    setup_portions = split_setup_fee(setup_remaining, setup_slots)

    if progress.last_date is not None:
        first_date = next_payment_date(progress.last_date, config.payment_frequency)
    else:
        first_date = config.first_payment_date

    items: List[ScheduleItem] = []
    cum_net = 0.0
    for i in range(periods):
        row_net = net if i < periods - 1 else round_money(remaining_cost - cum_net)
        setup_portion = setup_portions[i] if i < len(setup_portions) else 0.0
        payment = round_money(row_net + surcharge + setup_portion)

        breakdown = decompose_payment(
            payment, config.banking_fee, config.secondary_banking_fee, setup_portion,
            additional, config.program_split_ratio, program_remaining, escrow_remaining,
        )
        program_remaining = round_money(program_remaining - breakdown.program_fee_portion)
        escrow_remaining = round_money(escrow_remaining - breakdown.escrow_amount)

        cum_net = round_money(cum_net + row_net)
        balance = round_money(remaining_cost - cum_net)
        # 最后一期尾差调整
        if balance < 0.005:
            balance = 0.0

        items.append(ScheduleItem(
            sequence_number=progress.next_sequence + i,
            payment_date=payment_date(first_date, i, config.payment_frequency, config.preferred_weekday),
            payment_amount=breakdown.payment_amount,
            setup_fee_portion=breakdown.setup_fee_portion,
            program_fee_portion=breakdown.program_fee_portion,
            banking_fee_portion=breakdown.banking_fee_portion,
            secondary_banking_fee_portion=breakdown.secondary_banking_fee_portion,
            additional_products_portion=breakdown.additional_products_portion,
            escrow_amount=breakdown.escrow_amount,
            running_balance=balance,
            status=ItemStatus.SCHEDULED.value,
        ))

    actual_period_payment = round_money(net + surcharge) if periods else period_payment
    weekly_payment = to_weekly(actual_period_payment, config)
    savings = savings_pct = None
    if totals.has_current_payment:
        savings = round_money(totals.current_payment - weekly_payment)
        savings_pct = round(savings / totals.current_payment * 100, 2)

    summary = ScheduleSummary(
        weekly_payment=weekly_payment,
        period_payment=actual_period_payment,
        net_per_period=net,
        number_of_periods=periods,
        settlement_amount=settlement,
        program_fee=program_fee,
        baseline_program_fee=baseline_fee,
        total_program_cost=total_cost,
        setup_fee_per_payment=setup_portions[0] if setup_portions else 0.0,
        banking_fee_total=round_money(sum(
            i.banking_fee_portion + i.secondary_banking_fee_portion for i in items)),
        weekly_savings=savings,
        savings_percent=savings_pct,
        duration_clamped=clamped,
    )
    return items, summary


def regenerate_scheduled(
    items: Sequence[ScheduleItem],
    config: PlanConfiguration,
    totals: PlanTotals,
    weekly_target: Optional[float] = None,
) -> Tuple[List[ScheduleItem], ScheduleSummary]:
    """保留非 Scheduled 行原样，只重新生成 Scheduled 行"""
    frozen = [i for i in items if i.is_locked]
    regenerated, summary = generate_schedule(
        config, totals, weekly_target, progress=funding_progress(frozen))
    merged = list(frozen) + regenerated
    merged.sort(key=lambda i: i.sequence_number)
    return merged, summary


def _counts_toward_funding(item: ScheduleItem) -> bool:
    return item.status not in (ItemStatus.NSF.value, ItemStatus.CANCELLED.value)


def funding_target(items: Sequence[ScheduleItem]) -> float:
    """版本没有记录总成本时，按计入的各行净额之和推算"""
    return round_money(sum(i.net_contribution for i in items if _counts_toward_funding(i)))


def rebalance(items: Sequence[ScheduleItem], total_cost: float) -> List[float]:
    """手工编辑后按当前净额重算剩余余额，返回与 items 顺序一致的余额

    按日期、序号累计；NSF / Cancelled 行不计入，余额沿用上一行。
    超额缴付时余额为负，不截断。
    """
    order = sorted(range(len(items)), key=lambda k: (items[k].payment_date, items[k].sequence_number))
    balances = [0.0] * len(items)
    cum_net = 0.0
    for k in order:
        if _counts_toward_funding(items[k]):
            cum_net = round_money(cum_net + items[k].net_contribution)
        balance = round_money(total_cost - cum_net)
        if abs(balance) < 0.005:
            balance = 0.0
        balances[k] = balance
    return balances
