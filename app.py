"""Payment Plan Workbench - 主入口"""
import logging

import streamlit as st

from config.settings import LAYOUT, LOG_FORMAT, LOG_LEVEL, PAGE_ICON, PAGE_TITLE
from data_manager.excel_handler import init_excel

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

st.set_page_config(
    page_title=PAGE_TITLE,
    page_icon=PAGE_ICON,
    layout=LAYOUT,
    initial_sidebar_state="expanded",
)

# 初始化 Excel
init_excel()

st.title(f"{PAGE_ICON} {PAGE_TITLE}")

st.markdown("""
Configure debt-settlement payment plans, review the generated schedule and hand-edit
scheduled payments before activating a plan.

### Pages

| Page | Purpose |
|------|---------|
| 🧮 **Payment calculator** | Size a plan by percent of current payment or by desired amount |
| 📋 **Plan editor** | Versions, spreadsheet edits, fill handle, activate / suspend, wire fees |
| ⚙️ **Policy settings** | Fee percentages, bounds and weekly-to-monthly factor |

### Quick start

1. Load the program policy on **Policy settings** (or `python cli.py init-store --seed policy.json`)
2. Calculate a plan and save it as a draft
3. Edit scheduled rows in **Plan editor**, then activate the draft

---

- Only *Scheduled* payments can be edited or regenerated; Cleared, NSF and Cancelled rows are frozen
- Every recalculation or saved edit creates a new version; exactly one version per case is primary
- Data is stored in an Excel workbook with automatic backups
""")

with st.sidebar:
    st.markdown("### About")
    st.markdown(f"{PAGE_TITLE} v1.0")
    st.markdown("Data is stored in `data/payment_plans.xlsx`")
