import json
from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from typing import List, Optional, Tuple

import pandas as pd

from config.constants import (
    ItemStatus, ProgramType, SyncStatus, VersionStatus, EDITABLE_STATUS,
)
from config.settings import RATIO_TOLERANCE
from core.errors import ValidationError
from utils.date_utils import parse_date


def _clean(value):
    """Excel 读回的 NaN 视为空"""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


@dataclass(frozen=True)
class ProgramBounds:
    min_weekly_target: float
    min_percent: float
    max_percent: float


@dataclass(frozen=True)
class PlanConfiguration:
    """一次计算的全部输入；比例之和为 1，免服务费时 escrow=1, program=0"""
    program_type: str
    payment_frequency: str
    calculation_mode: str
    target_percent: Optional[float]
    target_amount: Optional[float]  # 按 payment_frequency 显示的金额
    setup_fee_total: float
    setup_fee_payments: int
    banking_fee: float
    secondary_banking_fee: float
    program_split_ratio: float
    escrow_split_ratio: float
    first_payment_date: date
    settlement_percent: float
    program_fee_percent: float
    weekly_to_monthly_factor: float
    bounds: ProgramBounds
    min_program_weeks: int
    max_program_weeks: int
    preferred_weekday: Optional[int] = None
    no_fee_program: bool = False
    additional_weekly_products_total: float = 0.0
    selected_product_codes: Tuple[str, ...] = ()

    def __post_init__(self):
        no_fee = self.no_fee_program
        if self.program_type == ProgramType.NO_FEE_VARIANT.value:
            no_fee = True
        elif self.program_type == ProgramType.DEBT_FOCUSED.value and no_fee:
            raise ValidationError(
                "Debt focused programs cannot be no-fee", field="no_fee_program")
        object.__setattr__(self, "no_fee_program", no_fee)
        object.__setattr__(self, "selected_product_codes", tuple(self.selected_product_codes))

        if no_fee:
            object.__setattr__(self, "program_split_ratio", 0.0)
            object.__setattr__(self, "escrow_split_ratio", 1.0)
        elif abs(self.program_split_ratio + self.escrow_split_ratio - 1) > RATIO_TOLERANCE:
            raise ValidationError(
                f"Split ratios must sum to 1 (got {self.program_split_ratio} + {self.escrow_split_ratio})",
                field="program_split_ratio",
            )
        if self.weekly_to_monthly_factor <= 0:
            raise ValidationError("Weekly to monthly factor must be positive",
                                  field="weekly_to_monthly_factor")
        if self.setup_fee_payments < 1:
            raise ValidationError("Setup fee must be spread over at least one payment",
                                  field="setup_fee_payments")
        if self.min_program_weeks < 1 or self.max_program_weeks < self.min_program_weeks:
            raise ValidationError("Program length bounds are inconsistent", field="max_program_weeks")

    def with_target(self, calculation_mode: str, target_percent: Optional[float] = None,
                    target_amount: Optional[float] = None) -> "PlanConfiguration":
        return replace(self, calculation_mode=calculation_mode,
                       target_percent=target_percent, target_amount=target_amount)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["first_payment_date"] = self.first_payment_date.isoformat()
        data["selected_product_codes"] = list(self.selected_product_codes)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PlanConfiguration":
        data = dict(data)
        data["first_payment_date"] = parse_date(data["first_payment_date"])
        data["bounds"] = ProgramBounds(**data["bounds"])
        data["selected_product_codes"] = tuple(data.get("selected_product_codes") or ())
        return cls(**data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> "PlanConfiguration":
        return cls.from_dict(json.loads(text))


@dataclass(frozen=True)
class PlanTotals:
    total_debt: float
    current_payment: Optional[float] = None  # 当前周还款额，未知为 None / 0

    @property
    def has_current_payment(self) -> bool:
        return bool(self.current_payment) and self.current_payment > 0


@dataclass
class ScheduleItem:
    sequence_number: int
    payment_date: date
    payment_amount: float
    setup_fee_portion: float = 0.0
    program_fee_portion: float = 0.0
    banking_fee_portion: float = 0.0
    secondary_banking_fee_portion: float = 0.0
    additional_products_portion: float = 0.0
    escrow_amount: float = 0.0
    running_balance: float = 0.0
    status: str = ItemStatus.SCHEDULED.value
    item_id: Optional[str] = None

    @property
    def is_locked(self) -> bool:
        return self.status != EDITABLE_STATUS

    @property
    def fees_total(self) -> float:
        return (self.setup_fee_portion + self.program_fee_portion + self.banking_fee_portion
                + self.secondary_banking_fee_portion + self.additional_products_portion)

    @property
    def net_contribution(self) -> float:
        """计入和解资金的部分（服务费 + 储蓄）"""
        return round(self.program_fee_portion + self.escrow_amount, 2)

    def to_record(self, version_id: str) -> dict:
        return {
            "version_id": version_id,
            "item_id": self.item_id,
            "sequence_number": self.sequence_number,
            "payment_date": self.payment_date.strftime("%Y-%m-%d"),
            "payment_amount": self.payment_amount,
            "setup_fee_portion": self.setup_fee_portion,
            "program_fee_portion": self.program_fee_portion,
            "banking_fee_portion": self.banking_fee_portion,
            "secondary_banking_fee_portion": self.secondary_banking_fee_portion,
            "additional_products_portion": self.additional_products_portion,
            "escrow_amount": self.escrow_amount,
            "running_balance": self.running_balance,
            "status": self.status,
        }

    @classmethod
    def from_record(cls, record: dict) -> "ScheduleItem":
        item_id = _clean(record.get("item_id"))
        return cls(
            sequence_number=int(record["sequence_number"]),
            payment_date=parse_date(record["payment_date"]),
            payment_amount=float(record["payment_amount"]),
            setup_fee_portion=float(_clean(record.get("setup_fee_portion")) or 0.0),
            program_fee_portion=float(_clean(record.get("program_fee_portion")) or 0.0),
            banking_fee_portion=float(_clean(record.get("banking_fee_portion")) or 0.0),
            secondary_banking_fee_portion=float(_clean(record.get("secondary_banking_fee_portion")) or 0.0),
            additional_products_portion=float(_clean(record.get("additional_products_portion")) or 0.0),
            escrow_amount=float(_clean(record.get("escrow_amount")) or 0.0),
            running_balance=float(_clean(record.get("running_balance")) or 0.0),
            status=str(record.get("status") or ItemStatus.SCHEDULED.value),
            item_id=str(item_id) if item_id is not None else None,
        )


@dataclass
class ScheduleSummary:
    weekly_payment: float
    period_payment: float
    net_per_period: float
    number_of_periods: int
    settlement_amount: float
    program_fee: float
    baseline_program_fee: float
    total_program_cost: float
    setup_fee_per_payment: float
    banking_fee_total: float
    weekly_savings: Optional[float] = None  # 相对当前周还款额
    savings_percent: Optional[float] = None
    duration_clamped: bool = False


@dataclass
class PlanVersion:
    version_id: str
    case_id: str
    version_number: int
    status: str
    config: PlanConfiguration
    items: List[ScheduleItem] = field(default_factory=list)
    is_primary: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    created_by: str = "system"
    supersedes_id: Optional[str] = None
    sync_status: str = SyncStatus.IN_SYNC.value
    total_program_cost: Optional[float] = None  # 生成时的项目总成本，余额重算的起点

    @property
    def is_archived(self) -> bool:
        return self.status == VersionStatus.ARCHIVED.value

    def to_record(self) -> dict:
        return {
            "version_id": self.version_id,
            "case_id": self.case_id,
            "version_number": self.version_number,
            "status": self.status,
            "is_primary": bool(self.is_primary),
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
            "supersedes_id": self.supersedes_id,
            "sync_status": self.sync_status,
            "config_json": self.config.to_json(),
            "total_program_cost": self.total_program_cost,
        }

    @classmethod
    def from_record(cls, record: dict, items: List[ScheduleItem]) -> "PlanVersion":
        created_at = _clean(record.get("created_at"))
        supersedes = _clean(record.get("supersedes_id"))
        total_cost = _clean(record.get("total_program_cost"))
        return cls(
            version_id=str(record["version_id"]),
            case_id=str(record["case_id"]),
            version_number=int(record["version_number"]),
            status=str(record["status"]),
            config=PlanConfiguration.from_json(str(record["config_json"])),
            items=sorted(items, key=lambda i: i.sequence_number),
            is_primary=bool(_clean(record.get("is_primary")) or False),
            created_at=pd.to_datetime(created_at).to_pydatetime() if created_at else datetime.now(),
            created_by=str(_clean(record.get("created_by")) or "system"),
            supersedes_id=str(supersedes) if supersedes else None,
            sync_status=str(_clean(record.get("sync_status")) or SyncStatus.IN_SYNC.value),
            total_program_cost=float(total_cost) if total_cost is not None else None,
        )


@dataclass
class WireFee:
    fee_id: str
    schedule_item_id: str
    fee_type: str  # Wire Fee / Wire Received Fee
    amount: Optional[float] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_record(self) -> dict:
        return {
            "fee_id": self.fee_id,
            "schedule_item_id": self.schedule_item_id,
            "fee_type": self.fee_type,
            "amount": self.amount,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict) -> "WireFee":
        amount = _clean(record.get("amount"))
        created_at = _clean(record.get("created_at"))
        return cls(
            fee_id=str(record["fee_id"]),
            schedule_item_id=str(record["schedule_item_id"]),
            fee_type=str(record["fee_type"]),
            amount=float(amount) if amount is not None else None,
            created_at=pd.to_datetime(created_at).to_pydatetime() if created_at else datetime.now(),
        )
