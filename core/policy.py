"""策略配置服务：从配置表读取费率、边界等业务参数

配置缺失或无法解析时抛 ConfigurationUnavailable，绝不回退到代码里的默认值。
"""
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from config.constants import (
    ADDITIONAL_PRODUCTS, POLICY_KEYS, CalculationMode, ItemStatus, PaymentFrequency, ProgramType,
)
from config.settings import EXCEL_FILE
from core.errors import ConfigurationUnavailable, ValidationError
from data_manager.schema import PlanConfiguration, ProgramBounds
from utils.date_utils import default_first_payment_date
from utils.formatters import round_money

logger = logging.getLogger(__name__)

_INT_KEYS = {"setup_fee_min_payments", "setup_fee_max_payments", "min_program_weeks", "max_program_weeks"}


@dataclass(frozen=True)
class ProgramPolicy:
    settlement_percent: float
    program_fee_percent: float
    banking_fee: float
    secondary_banking_fee: float
    program_split_ratio: float
    escrow_split_ratio: float
    debt_focused_program_split_ratio: float
    debt_focused_escrow_split_ratio: float
    min_weekly_target: float
    min_weekly_target_debt_focused: float
    min_target_percent: float
    min_target_percent_debt_focused: float
    max_target_percent: float
    weekly_to_monthly_factor: float
    setup_fee: float
    no_fee_setup_fee: float
    debt_focused_setup_fee: float
    setup_fee_min_payments: int
    setup_fee_max_payments: int
    legal_monitoring_weekly_fee: float
    min_program_weeks: int
    max_program_weeks: int

    def bounds_for(self, program_type: str) -> ProgramBounds:
        if program_type == ProgramType.DEBT_FOCUSED.value:
            return ProgramBounds(self.min_weekly_target_debt_focused,
                                 self.min_target_percent_debt_focused, self.max_target_percent)
        return ProgramBounds(self.min_weekly_target, self.min_target_percent, self.max_target_percent)

    def split_for(self, program_type: str):
        if program_type == ProgramType.DEBT_FOCUSED.value:
            return self.debt_focused_program_split_ratio, self.debt_focused_escrow_split_ratio
        return self.program_split_ratio, self.escrow_split_ratio

    def setup_fee_for(self, program_type: str, no_fee_program: bool) -> float:
        if program_type == ProgramType.DEBT_FOCUSED.value:
            return self.debt_focused_setup_fee
        if no_fee_program or program_type == ProgramType.NO_FEE_VARIANT.value:
            return self.no_fee_setup_fee
        return self.setup_fee

    def product_fee(self, code: str) -> float:
        key = ADDITIONAL_PRODUCTS.get(code)
        if key is None:
            raise ValidationError(f"Unknown additional product: {code}", field="selected_product_codes")
        return getattr(self, key)


def parse_policy(raw: Dict[str, str]) -> ProgramPolicy:
    missing = [k for k in POLICY_KEYS if raw.get(k) in (None, "")]
    if missing:
        raise ConfigurationUnavailable(
            f"Program policy is incomplete; missing: {', '.join(missing)}", missing)
    values = {}
    bad = []
    for key in POLICY_KEYS:
        try:
            number = float(raw[key])
        except (TypeError, ValueError):
            bad.append(key)
            continue
        values[key] = int(number) if key in _INT_KEYS else number
    if bad:
        raise ConfigurationUnavailable(
            f"Program policy has unreadable values: {', '.join(bad)}", bad)
    return ProgramPolicy(**values)


def excel_policy_source(filepath: Path = EXCEL_FILE) -> Callable[[], Dict[str, str]]:
    """从 Excel 配置表读取策略的数据源"""
    def _load() -> Dict[str, str]:
        from data_manager.excel_handler import get_all_config
        df = get_all_config(filepath)
        if df.empty or "key" not in df.columns:
            return {}
        return {str(k): v for k, v in zip(df["key"], df["value"])}
    return _load


class ConfigurationService:
    def __init__(self, source: Callable[[], Dict[str, str]]):
        self._source = source
        self._policy: Optional[ProgramPolicy] = None

    def load_policy(self, refresh: bool = False) -> ProgramPolicy:
        if self._policy is not None and not refresh:
            return self._policy
        try:
            raw = self._source()
        except ConfigurationUnavailable:
            raise
        except (OSError, ValueError, KeyError) as exc:
            logger.error(f"Failed to load program policy: {exc}")
            raise ConfigurationUnavailable(f"Program policy could not be loaded: {exc}") from exc
        self._policy = parse_policy(raw)
        logger.info("Program policy loaded")
        return self._policy

    def build_configuration(
        self,
        program_type: str = ProgramType.STANDARD_SPLIT.value,
        payment_frequency: str = PaymentFrequency.WEEKLY.value,
        calculation_mode: str = CalculationMode.PERCENT_OF_CURRENT.value,
        target_percent: Optional[float] = None,
        target_amount: Optional[float] = None,
        first_payment_date: Optional[date] = None,
        preferred_weekday: Optional[int] = None,
        no_fee_program: bool = False,
        selected_product_codes: Iterable[str] = (),
        setup_fee_payments: Optional[int] = None,
    ) -> PlanConfiguration:
        """把页面 / CLI 的输入和策略合成一份 PlanConfiguration"""
        policy = self.load_policy()
        program_type = ProgramType(program_type).value
        if program_type == ProgramType.NO_FEE_VARIANT.value:
            no_fee_program = True
        elif program_type == ProgramType.DEBT_FOCUSED.value:
            no_fee_program = False

        program_ratio, escrow_ratio = policy.split_for(program_type)
        bounds = policy.bounds_for(program_type)
        if target_percent is None:
            target_percent = bounds.min_percent

        if setup_fee_payments is None:
            setup_fee_payments = policy.setup_fee_min_payments
        if not policy.setup_fee_min_payments <= setup_fee_payments <= policy.setup_fee_max_payments:
            raise ValidationError(
                f"Setup fee payments must be between {policy.setup_fee_min_payments} "
                f"and {policy.setup_fee_max_payments}",
                field="setup_fee_payments", requested=setup_fee_payments,
                minimum=policy.setup_fee_min_payments, maximum=policy.setup_fee_max_payments,
            )

        codes = tuple(selected_product_codes)
        products_total = round_money(sum(policy.product_fee(code) for code in codes))

        return PlanConfiguration(
            program_type=program_type,
            payment_frequency=PaymentFrequency(payment_frequency).value,
            calculation_mode=CalculationMode(calculation_mode).value,
            target_percent=target_percent,
            target_amount=target_amount,
            setup_fee_total=policy.setup_fee_for(program_type, no_fee_program),
            setup_fee_payments=int(setup_fee_payments),
            banking_fee=policy.banking_fee,
            secondary_banking_fee=policy.secondary_banking_fee,
            program_split_ratio=program_ratio,
            escrow_split_ratio=escrow_ratio,
            first_payment_date=first_payment_date or default_first_payment_date(),
            settlement_percent=policy.settlement_percent,
            program_fee_percent=policy.program_fee_percent,
            weekly_to_monthly_factor=policy.weekly_to_monthly_factor,
            bounds=bounds,
            min_program_weeks=policy.min_program_weeks,
            max_program_weeks=policy.max_program_weeks,
            preferred_weekday=preferred_weekday,
            no_fee_program=no_fee_program,
            additional_weekly_products_total=products_total,
            selected_product_codes=codes,
        )

    def row_defaults(self) -> dict:
        """表格新增行的默认费用"""
        policy = self.load_policy()
        return {
            "banking_fee_portion": policy.banking_fee,
            "secondary_banking_fee_portion": policy.secondary_banking_fee,
            "setup_fee_portion": 0.0,
            "program_fee_portion": 0.0,
            "additional_products_portion": 0.0,
            "status": ItemStatus.SCHEDULED.value,
        }
