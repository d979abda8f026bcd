from pathlib import Path

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 数据文件路径
DATA_DIR = PROJECT_ROOT / "data"
EXCEL_FILE = DATA_DIR / "payment_plans.xlsx"
BACKUP_KEEP = 5

# 防抖延迟 (ms)
DEBOUNCE_DELAY_MS = 300
CALC_DEBOUNCE_DELAY_MS = 200

# Active 版本的 Scheduled 行是否冻结（默认按行状态判断可编辑性）
FREEZE_ACTIVE_VERSIONS = False

# 免服务费方案是否按基准服务费估算期数
NO_FEE_BASELINE_SIZING = True

# 新增行与上一行的间隔天数
ADD_ROW_STEP_DAYS = 7

# 日志
LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# 页面配置
PAGE_TITLE = "Payment Plan Workbench"
PAGE_ICON = "💳"
LAYOUT = "wide"

# 图表配色
COLORS = {
    "primary": "#1f77b4",
    "secondary": "#ff7f0e",
    "success": "#2ca02c",
    "danger": "#d62728",
    "warning": "#bcbd22",
    "info": "#17becf",
    "setup": "#9467bd",
    "program": "#ff7f0e",
    "banking": "#8c564b",
    "escrow": "#2ca02c",
    "products": "#17becf",
    "balance": "#1f77b4",
}

# 金额精度
AMOUNT_PRECISION = 2

# 金额边界校验容差
BOUND_TOLERANCE = 0.01

# 比例之和校验容差
RATIO_TOLERANCE = 1e-6
