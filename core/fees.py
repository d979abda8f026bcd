"""单期付款的费用拆分"""
from dataclasses import dataclass
from typing import List

from utils.formatters import round_money


@dataclass(frozen=True)
class FeeBreakdown:
    payment_amount: float
    setup_fee_portion: float
    program_fee_portion: float
    banking_fee_portion: float
    secondary_banking_fee_portion: float
    additional_products_portion: float
    escrow_amount: float

    @property
    def total(self) -> float:
        return round_money(
            self.setup_fee_portion + self.program_fee_portion + self.banking_fee_portion
            + self.secondary_banking_fee_portion + self.additional_products_portion
            + self.escrow_amount
        )

    @property
    def net(self) -> float:
        return round_money(self.program_fee_portion + self.escrow_amount)


def split_setup_fee(total: float, payments: int) -> List[float]:
    """开户费均摊到前 payments 期，尾差由最后一期承担"""
    if payments <= 0 or total <= 0:
        return []
    each = round_money(total / payments)
    portions = [each] * (payments - 1)
    portions.append(round_money(total - each * (payments - 1)))
    return portions


def decompose_payment(
    payment_amount: float,
    banking_fee: float,
    secondary_banking_fee: float,
    setup_fee_portion: float,
    additional_products: float,
    program_split_ratio: float,
    program_remaining: float,
    escrow_remaining: float,
) -> FeeBreakdown:
    """扣除固定费用后的净额按比例分给服务费和储蓄

    服务费不超过剩余应收；储蓄超出剩余目标的部分转回服务费。
    """
    net = round_money(payment_amount - banking_fee - secondary_banking_fee
                      - setup_fee_portion - additional_products)
    program_cap = max(round_money(program_remaining), 0.0)
    program = min(round_money(net * program_split_ratio), program_cap)
    program = max(program, 0.0)
    escrow = round_money(net - program)

    overflow = round_money(escrow - max(escrow_remaining, 0.0))
    if overflow > 0 and program < program_cap:
        shift = min(overflow, round_money(program_cap - program))
        program = round_money(program + shift)
        escrow = round_money(escrow - shift)

    return FeeBreakdown(
        payment_amount=round_money(payment_amount),
        setup_fee_portion=round_money(setup_fee_portion),
        program_fee_portion=program,
        banking_fee_portion=round_money(banking_fee),
        secondary_banking_fee_portion=round_money(secondary_banking_fee),
        additional_products_portion=round_money(additional_products),
        escrow_amount=escrow,
    )


def recompute_escrow(
    payment_amount: float,
    banking_fee: float,
    program_fee: float,
    setup_fee: float,
    secondary_banking_fee: float = 0.0,
    additional_products: float = 0.0,
) -> float:
    """表格编辑时实时重算储蓄金额"""
    return round_money(payment_amount - banking_fee - program_fee - setup_fee
                       - secondary_banking_fee - additional_products)
