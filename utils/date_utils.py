from datetime import date, datetime, timedelta
from typing import Optional

import pandas as pd
from dateutil.relativedelta import relativedelta, MO

from config.constants import PaymentFrequency


def snap_to_weekday(d: date, preferred_weekday: Optional[int]) -> date:
    """顺延到指定星期几（0=周一），当天即为该星期几时不变"""
    if preferred_weekday is None:
        return d
    return d + relativedelta(weekday=preferred_weekday)


def payment_date(
    first_date: date,
    index: int,
    frequency: str,
    preferred_weekday: Optional[int] = None,
) -> date:
    """计算第 index 期（从 0 开始）的扣款日"""
    if frequency == PaymentFrequency.MONTHLY.value:
        return snap_to_weekday(first_date + relativedelta(months=index), preferred_weekday)
    # 周付：首期对齐后按 7 天递增，星期几保持不变
    return snap_to_weekday(first_date, preferred_weekday) + timedelta(days=7 * index)


def next_payment_date(last_date: date, frequency: str) -> date:
    """上一期之后的下一个扣款日"""
    if frequency == PaymentFrequency.MONTHLY.value:
        return last_date + relativedelta(months=1)
    return last_date + timedelta(days=7)


def default_first_payment_date(today: Optional[date] = None) -> date:
    """默认首期扣款日：下一个周一"""
    today = today or date.today()
    return today + relativedelta(days=1, weekday=MO)


def parse_date(value) -> Optional[date]:
    """兼容 str / date / datetime / Timestamp，空值返回 None"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, float) and pd.isna(value):
        return None
    text = str(value).strip()
    if not text or text.lower() in ("nan", "nat", "none"):
        return None
    return pd.to_datetime(text).date()
