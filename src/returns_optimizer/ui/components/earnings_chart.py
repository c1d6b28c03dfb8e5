"""Earnings strategy comparison chart."""

import plotly.graph_objects as go  # type: ignore[import-untyped]
import streamlit as st

from returns_optimizer.models import EarningsComparison, to_money


def build_earnings_figure(comparison: EarningsComparison) -> go.Figure:
    """Bar chart of single- vs multi-distributor earnings."""
    single_label = "Single distributor"
    if comparison.best_single_distributor:
        single_label = f"Single ({comparison.best_single_distributor})"

    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=[single_label, "Best per product"],
        y=[
            to_money(comparison.single_distributor_strategy),
            to_money(comparison.multiple_distributors_strategy),
        ],
        marker={"color": ["#1f77b4", "#2ca02c"]},
        text=[
            f"${to_money(comparison.single_distributor_strategy):,.2f}",
            f"${to_money(comparison.multiple_distributors_strategy):,.2f}",
        ],
        textposition="auto",
    ))

    fig.update_layout(
        title="Expected Credit by Strategy",
        yaxis_title="Expected credit ($)",
        showlegend=False,
    )
    return fig


def render_earnings_chart(comparison: EarningsComparison) -> None:
    """Render the strategy chart with the additional-earnings metric."""
    st.plotly_chart(build_earnings_figure(comparison), width="stretch")
    st.metric(
        label="Potential additional earnings",
        value=f"${to_money(comparison.potential_additional_earnings):,.2f}",
    )
