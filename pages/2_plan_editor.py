"""方案版本编辑"""
import asyncio

import pandas as pd
import streamlit as st

from components.charts import create_balance_line
from components.tables import render_footer, render_versions_table
from config.constants import EDITABLE_FIELDS, ItemStatus, SyncStatus, VersionStatus, WireFeeType
from core.errors import PaymentPlanError
from core.grid import CellRef
from core.policy import ConfigurationService, excel_policy_source
from core.session import EditorSession
from core.summary import schedule_frame, status_counts
from core.wire_fees import WireFeeLedger
from data_manager.excel_handler import ExcelPlanStore
from data_manager.schema import PlanTotals
from utils.formatters import fmt_amount

st.set_page_config(page_title="Plan editor", page_icon="📋", layout="wide")
st.title("📋 Plan editor")

case_id = st.text_input("Case ID", key="editor_case_id")
if not case_id:
    st.info("Enter a case ID to load its plan versions.")
    st.stop()

store = ExcelPlanStore()
sessions = st.session_state.setdefault("editor_sessions", {})
session: EditorSession = sessions.get(case_id)
if session is None or session.closed:
    session = EditorSession(case_id, store, ConfigurationService(excel_policy_source()), debounce_edits=False)
    session.load()
    sessions[case_id] = session

c1, c2 = st.columns([4, 1])
with c2:
    if st.button("Reload (records changed)"):
        asyncio.run(session.on_case_invalidated(case_id))
    if st.button("Close editor"):
        session.close()
        sessions.pop(case_id, None)
        st.rerun()

with c1:
    render_versions_table(session.versions)

if session.version is None:
    st.info("No versions yet. Create one on the **Payment calculator** page.")
    st.stop()

version_ids = [v.version_id for v in session.versions]
labels = {v.version_id: f"v{v.version_number} · {v.status}{' · primary' if v.is_primary else ''}"
          for v in session.versions}
selected = st.selectbox("Version", version_ids, index=version_ids.index(session.version.version_id),
                        format_func=lambda vid: labels[vid])
if selected != session.version.version_id:
    session.select_version(selected)

version = session.version
grid = session.grid
if version.sync_status == SyncStatus.OUT_OF_SYNC.value:
    st.warning("Related records changed since this version was generated. Recalculate to refresh it.")


def _report(exc: PaymentPlanError):
    st.error(exc.describe())


# ---- 表格编辑 ----

rows = grid.visible_rows()
base = schedule_frame([r.item for r in rows], grid.state.changed_from_previous)
base.insert(1, "draft_no", grid.draft_numbers())
base["payment_date"] = pd.to_datetime(base["payment_date"]).dt.date

edited = st.data_editor(
    base,
    key=f"grid_{version.version_id}",
    width='stretch',
    hide_index=True,
    disabled=["changed", "draft_no", "sequence_number", "item_id", "escrow_amount",
              "running_balance", "is_locked"],
    column_config={
        "changed": st.column_config.CheckboxColumn("★", help="Changed from the previous version"),
        "status": st.column_config.SelectboxColumn("Status", options=[s.value for s in ItemStatus]),
        "payment_date": st.column_config.DateColumn("Date"),
    },
)

for index in range(min(len(edited), len(rows))):
    before, after = base.iloc[index], edited.iloc[index]
    for field in EDITABLE_FIELDS:
        if after[field] != before[field]:
            try:
                grid.edit_cell(index, field, after[field])
                grid.commit_cell(index, field)
            except PaymentPlanError as exc:
                _report(exc)
    if after["status"] != before["status"]:
        try:
            asyncio.run(session.mark_status(index, after["status"]))
        except PaymentPlanError as exc:
            _report(exc)

summary = session.refresh_balances()
render_footer(summary.totals)
if summary.over_funded:
    st.warning(f"Edits over-fund the plan by {fmt_amount(-summary.remaining_balance)}.")
else:
    st.caption(f"{summary.number_of_periods} funding payments, remaining balance {fmt_amount(summary.remaining_balance)}")
st.caption(" | ".join(f"{k}: {v}" for k, v in status_counts(grid.items_for_save()).items()))

with st.expander("Fill handle"):
    f1, f2, f3 = st.columns(3)
    source_row = f1.number_input("Source row", min_value=0, max_value=max(len(rows) - 1, 0), step=1)
    fill_field = f2.selectbox("Field", list(EDITABLE_FIELDS))
    target_row = f3.number_input("Fill to row", min_value=0, max_value=max(len(rows) - 1, 0), step=1)
    if st.button("Fill"):
        if grid.begin_fill_drag(CellRef(int(source_row), fill_field)):
            grid.update_fill_drag(int(target_row))
            filled = grid.end_fill_drag()
            st.success(f"Filled {len(filled)} rows.")
            st.rerun()
        else:
            st.error("The source row is locked.")

b1, b2, b3 = st.columns(3)
if b1.button("Add row"):
    try:
        session.add_row()
        st.rerun()
    except PaymentPlanError as exc:
        _report(exc)
delete_index = b2.number_input("Row to delete", min_value=0, max_value=max(len(rows) - 1, 0), step=1)
if b2.button("Delete row"):
    try:
        grid.delete_row(int(delete_index))
        st.rerun()
    except PaymentPlanError as exc:
        _report(exc)
if b3.button("Save edits as new draft", type="primary", disabled=not grid.has_pending_changes()):
    try:
        new_version = asyncio.run(session.save_edits(created_by="operator"))
        st.success(f"Saved as v{new_version.version_number}.")
        st.rerun()
    except PaymentPlanError as exc:
        _report(exc)

# ---- 版本操作 ----

st.divider()
st.subheader("Version actions")
a1, a2, a3, a4 = st.columns(4)
total_debt = a1.number_input("Total enrolled debt ($)", min_value=0.0, value=10000.0, step=500.0)
current_payment = a1.number_input("Current weekly payment ($)", min_value=0.0, value=0.0, step=10.0)
if a1.button("Recalculate"):
    try:
        new_version = asyncio.run(session.recalculate(PlanTotals(total_debt, current_payment or None)))
        st.success(f"Recalculated into v{new_version.version_number}.")
        st.rerun()
    except PaymentPlanError as exc:
        _report(exc)

if a2.button("Activate", disabled=version.status != VersionStatus.DRAFT.value):
    try:
        session.manager.activate(version.version_id)
        session.load()
        st.rerun()
    except PaymentPlanError as exc:
        _report(exc)
if a2.button("Suspend", disabled=version.status != VersionStatus.ACTIVE.value):
    try:
        session.manager.suspend(version.version_id, "operator")
        session.load()
        st.rerun()
    except PaymentPlanError as exc:
        _report(exc)
if a3.button("Make primary", disabled=version.is_primary):
    try:
        session.manager.set_primary(version.version_id)
        session.load()
        st.rerun()
    except PaymentPlanError as exc:
        _report(exc)
if a4.button("Delete version"):
    try:
        session.manager.delete(version.version_id)
        session.load()
        st.rerun()
    except PaymentPlanError as exc:
        _report(exc)

st.plotly_chart(create_balance_line(schedule_frame(version.items)), width='stretch')

# ---- 电汇费用 ----

with st.expander("Wire fees"):
    ledger = WireFeeLedger(store)
    item_ids = [r.item.item_id for r in rows]
    w1, w2, w3 = st.columns(3)
    item_choice = w1.selectbox("Payment", list(range(len(rows))),
                               format_func=lambda i: f"#{rows[i].item.sequence_number} {rows[i].item.payment_date}")
    fee_type = w2.selectbox("Type", [e.value for e in WireFeeType])
    fee_amount = w3.number_input("Amount ($, optional)", min_value=0.0, value=0.0, step=5.0)
    if st.button("Add wire fee"):
        try:
            ledger.add_fee(item_ids[item_choice] if rows else None, fee_type, fee_amount or None)
            st.success("Wire fee added.")
        except PaymentPlanError as exc:
            _report(exc)
    st.dataframe(ledger.ledger_frame(version.items), width='stretch', hide_index=True)
