"""付款计算器"""
import asyncio

import streamlit as st

from components.charts import create_balance_line, create_cost_pie, create_fee_stack
from components.forms import render_plan_inputs
from components.metrics import render_summary_metrics
from components.tables import render_schedule_table
from core.errors import ConfigurationUnavailable, PaymentPlanError, ValidationError
from core.policy import ConfigurationService, excel_policy_source
from core.session import EditorSession
from core.summary import schedule_frame
from data_manager.data_validator import validate_plan_inputs
from data_manager.excel_handler import ExcelPlanStore
from data_manager.schema import PlanTotals

st.set_page_config(page_title="Payment calculator", page_icon="🧮", layout="wide")
st.title("🧮 Payment calculator")

config_service = ConfigurationService(excel_policy_source())
try:
    policy = config_service.load_policy()
except ConfigurationUnavailable as exc:
    st.error(f"The calculator is disabled: {exc.message}")
    st.info("Load the program policy on the **Policy settings** page or with `cli.py init-store --seed`.")
    st.stop()

case_id = st.text_input("Case ID", key="calc_case_id")
inputs = render_plan_inputs(policy)

ok, msg = validate_plan_inputs(
    inputs["total_debt"], inputs["current_payment"], inputs["program_type"],
    inputs["payment_frequency"], inputs["calculation_mode"], inputs["target_percent"],
    inputs["target_amount"], inputs["first_payment_date"], inputs["preferred_weekday"],
)
if not ok:
    st.warning(msg)
    st.stop()

totals = PlanTotals(inputs.pop("total_debt"), inputs.pop("current_payment"))
session = EditorSession(case_id or "preview", ExcelPlanStore(), config_service, debounce_edits=False)

try:
    result = asyncio.run(session.calculate_preview(totals, **inputs))
except ValidationError as exc:
    st.error(exc.message)
    if exc.clamped_value is not None:
        st.caption(f"Closest allowed value: {exc.clamped_value:,.2f}")
    st.stop()
except PaymentPlanError as exc:
    st.error(exc.describe())
    st.stop()

if result.bound is not None and result.bound.clamped:
    st.info(f"Target percent adjusted from {result.bound.requested:.2f}% to {result.bound.applied:.2f}% "
            f"to stay within program limits.")

render_summary_metrics(result.summary, inputs["payment_frequency"])

schedule = schedule_frame(result.items)
tab1, tab2, tab3 = st.tabs(["Schedule", "Composition", "Balance"])
with tab1:
    render_schedule_table(schedule)
with tab2:
    st.plotly_chart(create_fee_stack(schedule), width='stretch')
    fees = float(schedule["banking_fee_portion"].sum() + schedule["setup_fee_portion"].sum())
    st.plotly_chart(create_cost_pie(result.summary.settlement_amount, result.summary.program_fee, fees),
                    width='stretch')
with tab3:
    st.plotly_chart(create_balance_line(schedule), width='stretch')

st.divider()
created_by = st.text_input("Your name", value="operator", key="calc_created_by")
if st.button("Save as draft", type="primary", disabled=not case_id):
    try:
        version = session.create_from_preview(created_by)
    except PaymentPlanError as exc:
        st.error(exc.describe())
    else:
        st.success(f"Draft v{version.version_number} created ({version.version_id}).")
