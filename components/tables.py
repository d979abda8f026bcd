"""格式化表格组件"""
from typing import Dict, List, Optional

import pandas as pd
import streamlit as st

from data_manager.schema import PlanVersion

_COL_MAP = {
    "changed": "",
    "sequence_number": "#",
    "payment_date": "Date",
    "payment_amount": "Draft",
    "setup_fee_portion": "Setup",
    "program_fee_portion": "Program",
    "banking_fee_portion": "Banking",
    "secondary_banking_fee_portion": "Banking 2",
    "additional_products_portion": "Products",
    "escrow_amount": "Savings",
    "running_balance": "Balance",
    "status": "Status",
}

MONEY_COLS = ["Draft", "Setup", "Program", "Banking", "Banking 2", "Products", "Savings", "Balance"]


def schedule_display_frame(schedule: pd.DataFrame, draft_numbers: Optional[List[Optional[int]]] = None) -> pd.DataFrame:
    display_cols = [c for c in _COL_MAP if c in schedule.columns]
    display_df = schedule[display_cols].rename(columns=_COL_MAP)
    if "" in display_df.columns:
        display_df[""] = display_df[""].apply(lambda x: "★" if x else "")
    if draft_numbers is not None:
        display_df.insert(1, "Draft #", [n if n is not None else "" for n in draft_numbers])
    return display_df


def render_schedule_table(schedule: pd.DataFrame, draft_numbers: Optional[List[Optional[int]]] = None):
    """渲染付款计划表（只读）"""
    if schedule.empty:
        st.info("No scheduled payments.")
        return
    display_df = schedule_display_frame(schedule, draft_numbers)
    for col in MONEY_COLS:
        if col in display_df.columns:
            display_df[col] = display_df[col].apply(lambda x: f"{x:,.2f}")
    if len(display_df) > 24:
        st.dataframe(display_df, width='stretch', height=600)
    else:
        st.dataframe(display_df, width='stretch')


def render_footer(totals: Dict[str, float]):
    """表尾合计（不含 NSF）"""
    footer = {_COL_MAP[k]: f"{v:,.2f}" for k, v in totals.items() if k in _COL_MAP}
    st.caption("Totals (excluding NSF): " + " | ".join(f"{k} {v}" for k, v in footer.items()))


def render_versions_table(versions: List[PlanVersion]):
    if not versions:
        st.info("No versions for this case yet.")
        return
    rows = [{
        "Primary": "★" if v.is_primary else "",
        "Version": v.version_number,
        "Status": v.status,
        "Sync": v.sync_status,
        "Payments": len(v.items),
        "Created": v.created_at.strftime("%Y-%m-%d %H:%M"),
        "By": v.created_by,
        "ID": v.version_id,
    } for v in versions]
    st.dataframe(pd.DataFrame(rows), width='stretch', hide_index=True)
