"""Recommendations page - best distributor per product."""

import logging

import polars as pl
import streamlit as st

from returns_optimizer.errors import OptimizerError
from returns_optimizer.models import OptimizationResult, to_money
from returns_optimizer.ui.components.earnings_chart import render_earnings_chart

logger = logging.getLogger(__name__)


def render_recommendations_page() -> None:
    """Render recommendations for the selected pharmacy.

    Optionally restricted to searched NDCs (comma separated, partial
    NDCs allowed).
    """
    st.title("Return Recommendations")

    optimizer = st.session_state.get("optimizer")
    pharmacy_id = st.session_state.get("pharmacy_id")
    if optimizer is None or not pharmacy_id:
        st.warning("Load the exports and choose a pharmacy from the sidebar.")
        return

    search = st.text_input(
        "Search NDCs",
        placeholder="e.g. 00456-0460-01, 0045604",
        help="Leave empty to optimize the whole inventory",
    )
    identifiers = [s for s in search.split(",") if s.strip()] or None

    try:
        result = optimizer.get_recommendations(pharmacy_id, identifiers=identifiers)
    except OptimizerError as e:
        logger.error(f"Recommendations failed for {pharmacy_id}: {e}")
        st.error(e.message)
        return

    _render_summary(result)
    st.markdown("---")

    if not result.recommendations:
        st.info("No inventory found for this pharmacy.")
        return

    st.dataframe(_recommendations_table(result), width="stretch", hide_index=True)

    st.markdown("---")
    st.markdown("### Strategy Comparison")
    render_earnings_chart(result.earnings_comparison)


def _render_summary(result: OptimizationResult) -> None:
    priced = sum(1 for r in result.recommendations if r.has_pricing)
    usage = result.distributor_usage

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Products", f"{len(result.recommendations):,}")
        st.caption(f"{priced:,} with pricing data")
    with col2:
        st.metric(
            "Potential savings", f"${to_money(result.total_potential_savings):,.2f}"
        )
    with col3:
        st.metric(
            "Distributors used this month",
            f"{usage.used_this_month} / {usage.total_distributors}",
        )


def _recommendations_table(result: OptimizationResult) -> pl.DataFrame:
    return pl.DataFrame(
        [
            {
                "NDC": r.identifier,
                "Product": r.product_name,
                "Full": r.full_units,
                "Partial": r.partial_units,
                "Recommended": r.recommended_distributor or "No data",
                "Price / unit": float(r.expected_price),
                "Worst price": float(r.worst_price),
                "Alternatives": len(r.alternatives),
                "Savings": to_money(r.savings),
            }
            for r in result.recommendations
        ]
    )
