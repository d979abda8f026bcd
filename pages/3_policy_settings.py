"""策略配置"""
import streamlit as st

from config.constants import POLICY_KEYS
from core.errors import ConfigurationUnavailable
from core.policy import ConfigurationService, excel_policy_source
from data_manager.data_validator import validate_policy_value
from data_manager.excel_handler import get_all_config, set_config

st.set_page_config(page_title="Policy settings", page_icon="⚙️", layout="wide")
st.title("⚙️ Policy settings")

st.markdown("Program policy is required: the calculator stays disabled until every value is present.")

config_df = get_all_config()
current = {}
if not config_df.empty:
    current = {str(k): str(v) for k, v in zip(config_df["key"], config_df["value"])}

try:
    ConfigurationService(excel_policy_source()).load_policy()
    st.success("Policy is complete.")
except ConfigurationUnavailable as exc:
    st.error(exc.message)

with st.form("policy_form"):
    values = {}
    cols = st.columns(2)
    for i, (key, description) in enumerate(POLICY_KEYS.items()):
        values[key] = cols[i % 2].text_input(description, value=current.get(key, ""), key=f"policy_{key}")
    submitted = st.form_submit_button("Save", type="primary")

if submitted:
    errors = []
    for key, value in values.items():
        if value == current.get(key, "") or value == "":
            continue
        ok, msg = validate_policy_value(key, value)
        if not ok:
            errors.append(msg)
            continue
        set_config(key, value, POLICY_KEYS[key])
    if errors:
        for msg in errors:
            st.error(msg)
    else:
        st.success("Policy saved.")
        st.rerun()

st.subheader("Raw config sheet")
st.dataframe(config_df, width='stretch', hide_index=True)
