"""Reusable UI components for the Returns Optimizer."""

from returns_optimizer.ui.components.earnings_chart import (
    build_earnings_figure,
    render_earnings_chart,
)

__all__ = [
    "build_earnings_figure",
    "render_earnings_chart",
]
