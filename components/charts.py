"""Plotly 图表工厂"""
import plotly.graph_objects as go
import plotly.express as px
import pandas as pd

import plotly.io as pio
from config.settings import COLORS

# 自定义 Plotly 主题
pio.templates["plan_workbench_light"] = go.layout.Template(
    layout=go.Layout(
        font=dict(family="sans-serif", color="#333"),
        title_font=dict(size=20, color="#333"),
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="rgba(0,0,0,0)",
        xaxis=dict(gridcolor="#e0e0e0", linecolor="#e0e0e0", zerolinecolor="#e0e0e0",
                   tickfont=dict(color="#666"), title_font=dict(color="#666")),
        yaxis=dict(gridcolor="#e0e0e0", linecolor="#e0e0e0", zerolinecolor="#e0e0e0",
                   tickfont=dict(color="#666"), title_font=dict(color="#666")),
        legend=dict(font=dict(color="#666"), bgcolor="rgba(255,255,255,0.5)",
                    bordercolor="#e0e0e0", borderwidth=1),
        colorway=px.colors.qualitative.Plotly,
    )
)

pio.templates.default = "plan_workbench_light"

_FEE_SERIES = [
    ("setup_fee_portion", "Setup fee", "setup"),
    ("program_fee_portion", "Program fee", "program"),
    ("banking_fee_portion", "Banking fee", "banking"),
    ("secondary_banking_fee_portion", "Secondary banking fee", "warning"),
    ("additional_products_portion", "Additional products", "products"),
    ("escrow_amount", "Escrow", "escrow"),
]


def _x_labels(schedule: pd.DataFrame) -> list:
    """横轴标签：「#N YYYY-MM-DD」"""
    return [f"#{int(s)} {str(d)[:10]}" for s, d in zip(schedule["sequence_number"], schedule["payment_date"])]


def create_balance_line(schedule: pd.DataFrame, template: str = "plan_workbench_light") -> go.Figure:
    """剩余应筹资金折线图，锁定行用标记区分"""
    fig = go.Figure()
    x_labels = _x_labels(schedule)
    fig.add_trace(go.Scatter(
        x=x_labels,
        y=schedule["running_balance"],
        mode="lines",
        name="Remaining balance",
        line=dict(color=COLORS["balance"], width=2),
        hovertemplate="%{x}<br>Balance: $%{y:,.2f}<extra></extra>",
    ))
    if "is_locked" in schedule.columns and schedule["is_locked"].any():
        locked = schedule[schedule["is_locked"]]
        fig.add_trace(go.Scatter(
            x=[x_labels[i] for i in locked.index],
            y=locked["running_balance"],
            mode="markers",
            name="Locked",
            marker=dict(color=COLORS["danger"], size=8, symbol="square"),
        ))
    fig.update_layout(
        title="Remaining balance",
        xaxis_title="Payment",
        yaxis_title="Amount ($)",
        hovermode="x unified",
        margin=dict(t=60, b=60, l=60, r=20),
        height=380,
        template=template,
    )
    return fig


def create_fee_stack(schedule: pd.DataFrame, template: str = "plan_workbench_light") -> go.Figure:
    """每期付款的费用构成堆叠柱状图"""
    fig = go.Figure()
    x_labels = _x_labels(schedule)
    for col, name, color in _FEE_SERIES:
        if col in schedule.columns and schedule[col].abs().sum() > 0:
            fig.add_trace(go.Bar(
                x=x_labels, y=schedule[col], name=name,
                marker_color=COLORS[color],
                hovertemplate=f"{name}: $%{{y:,.2f}}<extra></extra>",
            ))
    fig.update_layout(
        barmode="stack",
        title="Payment composition",
        xaxis_title="Payment",
        yaxis_title="Amount ($)",
        margin=dict(t=60, b=60, l=60, r=20),
        height=400,
        template=template,
    )
    return fig


def create_cost_pie(settlement: float, program_fee: float, fees: float,
                    template: str = "plan_workbench_light") -> go.Figure:
    """项目总成本环形图"""
    fig = go.Figure(data=[go.Pie(
        labels=["Settlement", "Program fee", "Banking & setup fees"],
        values=[settlement, program_fee, fees],
        hole=0.45,
        marker_colors=[COLORS["escrow"], COLORS["program"], COLORS["banking"]],
        textinfo="label+percent",
        textposition="outside",
    )])
    fig.update_layout(
        title="Cost breakdown",
        showlegend=True,
        margin=dict(t=60, b=20, l=20, r=20),
        height=380,
        template=template,
    )
    return fig
