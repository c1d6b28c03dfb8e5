"""Main Streamlit application for the Return Optimization Engine.

Run with: streamlit run src/returns_optimizer/ui/app.py
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import streamlit as st

# Add src to path for imports when running directly
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point for Streamlit application."""
    # Import pages here to avoid E402 at module level
    from returns_optimizer.ui.pages.packages import render_packages_page
    from returns_optimizer.ui.pages.recommendations import (
        render_recommendations_page,
    )

    # Page configuration - must be first Streamlit command
    st.set_page_config(
        page_title="Returns Optimizer",
        page_icon="\U0001f4e6",
        layout="wide",
        initial_sidebar_state="expanded",
    )

    pages = {
        "Recommendations": render_recommendations_page,
        "Packages": render_packages_page,
    }

    st.sidebar.title("\U0001f4e6 Returns Optimizer")
    st.sidebar.caption("Reverse distributor recommendations")
    st.sidebar.markdown("---")

    st.sidebar.markdown("### Navigation")
    selected_page = st.sidebar.radio(
        label="Select Page",
        options=list(pages.keys()),
        index=0,
        label_visibility="collapsed",
    )

    st.sidebar.markdown("---")

    st.sidebar.markdown("### Data Source")
    _render_data_source()

    with st.sidebar.expander("About"):
        st.markdown(
            """
            **Returns Optimizer** recommends, for every product a pharmacy
            holds, the reverse distributor that historically paid the most
            per unit, and groups products into shipment packages.

            **Version:** 0.1.0
            """
        )

    pages[selected_page]()


def _render_data_source() -> None:
    """Load exports from DATA_DIR and pick the pharmacy."""
    from returns_optimizer.access.frames import FrameDataSource
    from returns_optimizer.config import Settings
    from returns_optimizer.errors import OptimizerError
    from returns_optimizer.service import ReturnOptimizer

    if "optimizer" not in st.session_state:
        try:
            settings = Settings.from_env()
            settings.configure_logging()
            source = FrameDataSource.from_directory(settings.data_dir)
        except OptimizerError as e:
            logger.error(f"Failed to load data source: {e}")
            st.sidebar.error(e.message)
            return
        st.session_state.settings = settings
        st.session_state.source = source
        st.session_state.optimizer = ReturnOptimizer(source, settings)

    settings = st.session_state.settings
    st.sidebar.markdown(f"✅ Exports loaded from `{settings.data_dir}`")

    pharmacy_ids = st.session_state.source.pharmacy_ids()
    if pharmacy_ids:
        st.session_state.pharmacy_id = st.sidebar.selectbox(
            "Pharmacy", options=pharmacy_ids
        )
    else:
        st.session_state.pharmacy_id = st.sidebar.text_input("Pharmacy ID")

    if st.sidebar.button("Reload exports"):
        for key in ("optimizer", "source", "settings"):
            st.session_state.pop(key, None)
        st.rerun()


if __name__ == "__main__":
    main()
