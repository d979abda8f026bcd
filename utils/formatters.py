from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional

from config.settings import AMOUNT_PRECISION

_CENT = Decimal(1).scaleb(-AMOUNT_PRECISION)


def round_money(value: float) -> float:
    """四舍五入到分（half-up，不用银行家舍入）"""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def parse_amount(raw) -> Optional[float]:
    """清洗金额文本：'$1,234.5' -> 1234.5，无法解析返回 None"""
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return round_money(raw)
    cleaned = "".join(ch for ch in str(raw) if ch.isdigit() or ch in ".-")
    if cleaned in ("", "-", ".", "-."):
        return None
    try:
        return round_money(float(Decimal(cleaned)))
    except (InvalidOperation, ValueError):
        return None


def fmt_amount(value: float, unit: str = "$") -> str:
    """格式化金额：1234.5 -> $1,234.50"""
    if value < 0:
        return f"-{unit}{abs(value):,.2f}"
    return f"{unit}{value:,.2f}"


def fmt_percent(value: float) -> str:
    """格式化百分比：45.5 -> 45.50%"""
    return f"{value:.2f}%"


def fmt_periods(periods: int, frequency: str = "weekly") -> str:
    """格式化期数：78 -> 78 weeks (1y 6m)"""
    if frequency == "monthly":
        years, months = divmod(periods, 12)
        unit = "month" if periods == 1 else "months"
        if years == 0:
            return f"{periods} {unit}"
        return f"{periods} {unit} ({years}y {months}m)"
    unit = "week" if periods == 1 else "weeks"
    months = round(periods * 12 / 52)
    years, months = divmod(months, 12)
    if years == 0:
        return f"{periods} {unit}"
    return f"{periods} {unit} ({years}y {months}m)"
