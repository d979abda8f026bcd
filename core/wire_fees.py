"""电汇费用台账：挂在付款行上的附加记录，不参与计划计算"""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

import pandas as pd

from config.constants import WIRE_FEES_COLUMNS
from core.errors import ValidationError
from data_manager.data_validator import validate_wire_fee
from data_manager.schema import ScheduleItem, WireFee
from utils.formatters import round_money
from utils.id_generator import generate_wire_fee_id

logger = logging.getLogger(__name__)


class WireFeeStore(Protocol):
    def save_wire_fee(self, fee: WireFee): ...
    def load_wire_fees(self) -> List[WireFee]: ...
    def delete_wire_fee(self, fee_id: str) -> bool: ...


class WireFeeLedger:
    def __init__(self, store: WireFeeStore):
        self.store = store

    def add_fee(self, schedule_item_id: Optional[str], fee_type: str,
                amount: Optional[float] = None) -> WireFee:
        ok, msg = validate_wire_fee(schedule_item_id, fee_type, amount)
        if not ok:
            field = "schedule_item_id" if not schedule_item_id else (
                "amount" if amount is not None and amount < 0 else "fee_type")
            raise ValidationError(msg, field=field, requested=amount)
        fee = WireFee(
            fee_id=generate_wire_fee_id(),
            schedule_item_id=schedule_item_id,
            fee_type=fee_type,
            amount=round_money(amount) if amount is not None else None,
            created_at=datetime.now(),
        )
        self.store.save_wire_fee(fee)
        logger.info(f"Added {fee_type} {fee.fee_id} to item {schedule_item_id}")
        return fee

    def delete_fee(self, fee_id: str) -> bool:
        deleted = self.store.delete_wire_fee(fee_id)
        if deleted:
            logger.info(f"Deleted wire fee {fee_id}")
        return deleted

    def fees_by_item(self, items: Iterable[ScheduleItem]) -> Dict[str, List[WireFee]]:
        """按付款行分组；引用不存在行的费用直接忽略"""
        known = {i.item_id for i in items if i.item_id}
        grouped: Dict[str, List[WireFee]] = defaultdict(list)
        for fee in self.store.load_wire_fees():
            if fee.schedule_item_id not in known:
                logger.debug(f"Ignoring orphaned wire fee {fee.fee_id} -> {fee.schedule_item_id}")
                continue
            grouped[fee.schedule_item_id].append(fee)
        return dict(grouped)

    def total_for_item(self, item_id: str) -> float:
        return round_money(sum(f.amount or 0.0 for f in self.store.load_wire_fees()
                               if f.schedule_item_id == item_id))

    def ledger_frame(self, items: Iterable[ScheduleItem]) -> pd.DataFrame:
        rows = [fee.to_record() for fees in self.fees_by_item(items).values() for fee in fees]
        return pd.DataFrame(rows, columns=WIRE_FEES_COLUMNS)
