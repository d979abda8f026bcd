"""指标卡片组件"""
import streamlit as st

from data_manager.schema import ScheduleSummary
from utils.formatters import fmt_amount, fmt_percent, fmt_periods


def render_summary_metrics(summary: ScheduleSummary, frequency: str = "weekly"):
    """渲染计算结果摘要"""
    c1, c2, c3, c4 = st.columns(4)
    with c1:
        st.metric("Payment", fmt_amount(summary.period_payment))
    with c2:
        st.metric("Duration", fmt_periods(summary.number_of_periods, frequency))
    with c3:
        st.metric("Settlement", fmt_amount(summary.settlement_amount))
    with c4:
        st.metric("Program fee", fmt_amount(summary.program_fee))

    c5, c6, c7, c8 = st.columns(4)
    with c5:
        st.metric("Total program cost", fmt_amount(summary.total_program_cost))
    with c6:
        st.metric("Net per payment", fmt_amount(summary.net_per_period))
    with c7:
        st.metric("Setup fee / payment", fmt_amount(summary.setup_fee_per_payment))
    with c8:
        if summary.weekly_savings is not None:
            st.metric("Weekly savings", fmt_amount(summary.weekly_savings),
                      fmt_percent(summary.savings_percent))
        else:
            st.metric("Weekly savings", "n/a")

    if summary.duration_clamped:
        st.warning("Duration was clamped to the program length limits; the payment was adjusted.")
