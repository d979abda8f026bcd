import sys
import pytest
from datetime import date
from pathlib import Path

# 确保项目根目录在 sys.path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from config.constants import CalculationMode, PaymentFrequency, ProgramType  # noqa: E402
from core.policy import ConfigurationService  # noqa: E402
from data_manager.memory_store import InMemoryPlanStore  # noqa: E402
from data_manager.schema import PlanConfiguration, PlanTotals, ProgramBounds  # noqa: E402

# 测试用策略：与金额换算场景一致（60% 和解、35% 服务费、每期 35 银行费）
POLICY = {
    "settlement_percent": "60",
    "program_fee_percent": "35",
    "banking_fee": "35",
    "secondary_banking_fee": "0",
    "program_split_ratio": "0.5",
    "escrow_split_ratio": "0.5",
    "debt_focused_program_split_ratio": "0.7",
    "debt_focused_escrow_split_ratio": "0.3",
    "min_weekly_target": "50",
    "min_weekly_target_debt_focused": "75",
    "min_target_percent": "40",
    "min_target_percent_debt_focused": "50",
    "max_target_percent": "100",
    "weekly_to_monthly_factor": "4.33",
    "setup_fee": "100",
    "no_fee_setup_fee": "150",
    "debt_focused_setup_fee": "80",
    "setup_fee_min_payments": "1",
    "setup_fee_max_payments": "4",
    "legal_monitoring_weekly_fee": "10",
    "min_program_weeks": "1",
    "max_program_weeks": "520",
}

FIRST_MONDAY = date(2030, 1, 7)


def build_config(**overrides) -> PlanConfiguration:
    values = dict(
        program_type=ProgramType.STANDARD_SPLIT.value,
        payment_frequency=PaymentFrequency.WEEKLY.value,
        calculation_mode=CalculationMode.DESIRED_AMOUNT.value,
        target_percent=None,
        target_amount=206.19,
        setup_fee_total=0.0,
        setup_fee_payments=1,
        banking_fee=35.0,
        secondary_banking_fee=0.0,
        program_split_ratio=0.5,
        escrow_split_ratio=0.5,
        first_payment_date=FIRST_MONDAY,
        settlement_percent=60.0,
        program_fee_percent=35.0,
        weekly_to_monthly_factor=4.33,
        bounds=ProgramBounds(50.0, 40.0, 100.0),
        min_program_weeks=1,
        max_program_weeks=520,
    )
    values.update(overrides)
    return PlanConfiguration(**values)


@pytest.fixture
def make_config():
    return build_config


@pytest.fixture
def totals():
    return PlanTotals(total_debt=14000)


@pytest.fixture
def policy_values():
    return dict(POLICY)


@pytest.fixture
def config_service(policy_values):
    return ConfigurationService(lambda: policy_values)


@pytest.fixture
def store():
    return InMemoryPlanStore()


def set_statuses(items, statuses):
    """按位置设置行状态，statuses: {index: status}"""
    for index, status in statuses.items():
        items[index].status = status
    return items
