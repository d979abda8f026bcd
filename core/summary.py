"""计划表汇总：DataFrame 展示与表尾合计"""
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Set

import pandas as pd

from config.constants import SCHEDULE_ITEMS_COLUMNS, ItemStatus
from data_manager.schema import ScheduleItem
from utils.formatters import round_money

_TOTAL_FIELDS = (
    "payment_amount", "setup_fee_portion", "program_fee_portion", "banking_fee_portion",
    "secondary_banking_fee_portion", "additional_products_portion", "escrow_amount",
)


def schedule_frame(items: Iterable[ScheduleItem], modified: Optional[Set[int]] = None) -> pd.DataFrame:
    """明细转 DataFrame；modified 为相对上一版本有变化的序号"""
    columns = [c for c in SCHEDULE_ITEMS_COLUMNS if c != "version_id"]
    df = pd.DataFrame([i.to_record("") for i in items])
    if df.empty:
        return pd.DataFrame(columns=columns + ["is_locked", "changed"])
    df = df[columns]
    df["is_locked"] = df["status"] != ItemStatus.SCHEDULED.value
    df["changed"] = df["sequence_number"].isin(modified or set())
    return df


def footer_totals(items: Iterable[ScheduleItem]) -> Dict[str, float]:
    """表尾合计，NSF 行不计入"""
    counted = [i for i in items if i.status != ItemStatus.NSF.value]
    return {f: round_money(sum(getattr(i, f) for i in counted)) for f in _TOTAL_FIELDS}


def status_counts(items: Iterable[ScheduleItem]) -> Dict[str, int]:
    counts = {s.value: 0 for s in ItemStatus}
    for item in items:
        counts[item.status] = counts.get(item.status, 0) + 1
    return counts


@dataclass
class EditSummary:
    """表格编辑后的汇总：表尾合计、期数与剩余余额"""
    totals: Dict[str, float]
    number_of_periods: int
    total_program_cost: float
    funded: float
    remaining_balance: float

    @property
    def over_funded(self) -> bool:
        return self.remaining_balance < 0


def edit_summary(items: Sequence[ScheduleItem], total_cost: float) -> EditSummary:
    counted = [i for i in items if i.status not in (ItemStatus.NSF.value, ItemStatus.CANCELLED.value)]
    funded = round_money(sum(i.net_contribution for i in counted))
    return EditSummary(
        totals=footer_totals(items),
        number_of_periods=len(counted),
        total_program_cost=round_money(total_cost),
        funded=funded,
        remaining_balance=round_money(total_cost - funded),
    )
