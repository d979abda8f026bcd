"""表单组件"""
from datetime import date

import streamlit as st

from config.constants import ADDITIONAL_PRODUCTS, CalculationMode, PaymentFrequency, ProgramType
from core.policy import ProgramPolicy
from utils.date_utils import default_first_payment_date

WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def render_plan_inputs(policy: ProgramPolicy, key_prefix: str = "calc") -> dict:
    """渲染计算器输入，返回 (totals 参数, build_configuration 参数) 合并的 dict"""
    c1, c2 = st.columns(2)
    with c1:
        total_debt = st.number_input("Total enrolled debt ($)", min_value=0.0, value=10000.0,
                                     step=500.0, key=f"{key_prefix}_debt")
        current_payment = st.number_input("Current weekly payment ($)", min_value=0.0, value=0.0,
                                          step=10.0, key=f"{key_prefix}_current",
                                          help="Leave at 0 if unknown")
        program_type = st.selectbox(
            "Program type", [e.value for e in ProgramType],
            format_func=lambda v: ProgramType(v).label, key=f"{key_prefix}_type")
        no_fee_disabled = program_type != ProgramType.STANDARD_SPLIT.value
        no_fee = st.checkbox("No-fee program", value=program_type == ProgramType.NO_FEE_VARIANT.value,
                             disabled=no_fee_disabled, key=f"{key_prefix}_nofee")
    with c2:
        frequency = st.radio("Frequency", [e.value for e in PaymentFrequency], horizontal=True,
                             format_func=lambda v: PaymentFrequency(v).label, key=f"{key_prefix}_freq")
        mode = st.radio("Calculate by", [e.value for e in CalculationMode], horizontal=True,
                        format_func=lambda v: CalculationMode(v).label, key=f"{key_prefix}_mode")
        bounds = policy.bounds_for(program_type)
        if mode == CalculationMode.PERCENT_OF_CURRENT.value:
            percent = st.slider("Target percent of current payment", float(bounds.min_percent),
                                float(bounds.max_percent), float(bounds.min_percent), step=0.5,
                                key=f"{key_prefix}_pct")
            amount = None
        else:
            percent = None
            amount = st.number_input("Desired payment ($)", min_value=0.0, value=0.0, step=5.0,
                                     key=f"{key_prefix}_amount")
        first_date = st.date_input("First payment date", value=default_first_payment_date(),
                                   min_value=date.today(), key=f"{key_prefix}_date")
        weekday = st.selectbox("Preferred weekday", [None] + list(range(7)),
                               format_func=lambda v: "Any" if v is None else WEEKDAYS[v],
                               key=f"{key_prefix}_weekday")

    c3, c4 = st.columns(2)
    with c3:
        products = st.multiselect("Additional products", list(ADDITIONAL_PRODUCTS),
                                  key=f"{key_prefix}_products")
    with c4:
        setup_payments = st.number_input(
            "Setup fee payments", min_value=policy.setup_fee_min_payments,
            max_value=policy.setup_fee_max_payments, value=policy.setup_fee_min_payments,
            step=1, key=f"{key_prefix}_setup")

    return {
        "total_debt": total_debt,
        "current_payment": current_payment or None,
        "program_type": program_type,
        "payment_frequency": frequency,
        "calculation_mode": mode,
        "target_percent": percent,
        "target_amount": amount,
        "first_payment_date": first_date,
        "preferred_weekday": weekday,
        "no_fee_program": no_fee or program_type == ProgramType.NO_FEE_VARIANT.value,
        "selected_product_codes": tuple(products),
        "setup_fee_payments": int(setup_payments),
    }
