"""Packages page - proposed shipments per distributor."""

import logging

import polars as pl
import streamlit as st

from returns_optimizer.errors import OptimizerError
from returns_optimizer.models import Package, to_money

logger = logging.getLogger(__name__)


def render_packages_page() -> None:
    """Render suggested packages for the selected pharmacy."""
    st.title("Suggested Packages")

    optimizer = st.session_state.get("optimizer")
    pharmacy_id = st.session_state.get("pharmacy_id")
    if optimizer is None or not pharmacy_id:
        st.warning("Load the exports and choose a pharmacy from the sidebar.")
        return

    try:
        result = optimizer.get_packages(pharmacy_id)
    except OptimizerError as e:
        logger.error(f"Package building failed for {pharmacy_id}: {e}")
        st.error(e.message)
        return

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Packages", result.total_packages)
    with col2:
        st.metric(
            "Total estimated value", f"${to_money(result.total_estimated_value):,.2f}"
        )
    with col3:
        st.metric("Products without pricing", result.summary.products_without_pricing)

    if not result.packages:
        st.info("Nothing left to package: no priced products or all units committed.")
        return

    for package in result.packages:
        _render_package(package)


def _render_package(package: Package) -> None:
    title = (
        f"{package.distributor_name} - {package.total_items} units, "
        f"${to_money(package.total_estimated_value):,.2f}"
    )
    with st.expander(title):
        if package.distributor is not None:
            contact = package.distributor
            st.caption(
                " | ".join(
                    part
                    for part in (contact.contact_email, contact.contact_phone, contact.location)
                    if part
                )
            )
        st.dataframe(
            pl.DataFrame([line.to_dict() for line in package.lines]),
            width="stretch",
            hide_index=True,
        )
