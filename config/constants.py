from enum import Enum


class ProgramType(str, Enum):
    STANDARD_SPLIT = "standard_split"  # 50/50 分配
    DEBT_FOCUSED = "debt_focused"  # 偏向服务费
    NO_FEE_VARIANT = "no_fee_variant"  # 免服务费

    @property
    def label(self) -> str:
        return {
            "standard_split": "Standard split",
            "debt_focused": "Debt focused",
            "no_fee_variant": "No-fee program",
        }[self.value]


class PaymentFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def label(self) -> str:
        return {
            "weekly": "Weekly",
            "monthly": "Monthly",
        }[self.value]


class CalculationMode(str, Enum):
    PERCENT_OF_CURRENT = "percent_of_current"  # 按当前还款额百分比
    DESIRED_AMOUNT = "desired_amount"  # 直接输入目标金额

    @property
    def label(self) -> str:
        return {
            "percent_of_current": "Percent of current payment",
            "desired_amount": "Desired amount",
        }[self.value]


class ItemStatus(str, Enum):
    SCHEDULED = "Scheduled"
    CLEARED = "Cleared"
    NSF = "NSF"
    CANCELLED = "Cancelled"

    @property
    def label(self) -> str:
        return {
            "Scheduled": "Scheduled",
            "Cleared": "Cleared",
            "NSF": "NSF (returned)",
            "Cancelled": "Cancelled",
        }[self.value]


class VersionStatus(str, Enum):
    DRAFT = "Draft"
    ACTIVE = "Active"
    SUSPENDED = "Suspended"
    ARCHIVED = "Archived"

    @property
    def label(self) -> str:
        return {
            "Draft": "Draft",
            "Active": "Active",
            "Suspended": "Suspended",
            "Archived": "Archived",
        }[self.value]


class SyncStatus(str, Enum):
    IN_SYNC = "In Sync"
    OUT_OF_SYNC = "Out of Sync"


class WireFeeType(str, Enum):
    WIRE_FEE = "Wire Fee"
    WIRE_RECEIVED_FEE = "Wire Received Fee"


# 唯一可编辑 / 可重算的行状态
EDITABLE_STATUS = ItemStatus.SCHEDULED.value

# 可删除的版本状态
DELETABLE_VERSION_STATUSES = (VersionStatus.DRAFT.value, VersionStatus.ARCHIVED.value)

# 可重算的版本状态
RECALCULABLE_VERSION_STATUSES = (
    VersionStatus.DRAFT.value, VersionStatus.ACTIVE.value, VersionStatus.SUSPENDED.value,
)

# 表格中可编辑的金额字段
NUMERIC_FIELDS = (
    "payment_amount", "setup_fee_portion", "program_fee_portion",
    "banking_fee_portion", "secondary_banking_fee_portion", "additional_products_portion",
)
DATE_FIELDS = ("payment_date",)
EDITABLE_FIELDS = NUMERIC_FIELDS + DATE_FIELDS

# 附加产品代码 -> 策略配置中的周费用 key
ADDITIONAL_PRODUCTS = {
    "legal_monitoring": "legal_monitoring_weekly_fee",
}

# 策略配置项（必须由配置表提供，不设默认值）
POLICY_KEYS = {
    "settlement_percent": "Settlement as percent of enrolled debt",
    "program_fee_percent": "Program fee as percent of enrolled debt",
    "banking_fee": "Banking fee per draft",
    "secondary_banking_fee": "Secondary banking fee per draft",
    "program_split_ratio": "Program share of net payment (standard split)",
    "escrow_split_ratio": "Escrow share of net payment (standard split)",
    "debt_focused_program_split_ratio": "Program share of net payment (debt focused)",
    "debt_focused_escrow_split_ratio": "Escrow share of net payment (debt focused)",
    "min_weekly_target": "Absolute minimum weekly target",
    "min_weekly_target_debt_focused": "Absolute minimum weekly target (debt focused)",
    "min_target_percent": "Minimum percent of current payment",
    "min_target_percent_debt_focused": "Minimum percent of current payment (debt focused)",
    "max_target_percent": "Maximum percent of current payment",
    "weekly_to_monthly_factor": "Weeks per month used for conversion",
    "setup_fee": "Setup fee total",
    "no_fee_setup_fee": "Setup fee total for no-fee programs",
    "debt_focused_setup_fee": "Setup fee total (debt focused)",
    "setup_fee_min_payments": "Fewest payments the setup fee may be spread over",
    "setup_fee_max_payments": "Most payments the setup fee may be spread over",
    "legal_monitoring_weekly_fee": "Legal monitoring product weekly fee",
    "min_program_weeks": "Shortest program length in weeks",
    "max_program_weeks": "Longest program length in weeks",
}

# Sheet 名称
SHEET_PLAN_VERSIONS = "plan_versions"
SHEET_SCHEDULE_ITEMS = "schedule_items"
SHEET_WIRE_FEES = "wire_fees"
SHEET_CONFIG = "config"

# 列定义
PLAN_VERSIONS_COLUMNS = [
    "version_id", "case_id", "version_number", "status", "is_primary",
    "created_at", "created_by", "supersedes_id", "sync_status", "config_json",
    "total_program_cost",
]

SCHEDULE_ITEMS_COLUMNS = [
    "version_id", "item_id", "sequence_number", "payment_date", "payment_amount",
    "setup_fee_portion", "program_fee_portion", "banking_fee_portion",
    "secondary_banking_fee_portion", "additional_products_portion",
    "escrow_amount", "running_balance", "status",
]

WIRE_FEES_COLUMNS = [
    "fee_id", "schedule_item_id", "fee_type", "amount", "created_at",
]

CONFIG_COLUMNS = ["key", "value", "description", "updated_at"]
