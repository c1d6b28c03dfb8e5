"""Computation module for the Returns Optimizer.

This module handles:
- Matching inventory lines to price observations
- Recommendation ranking and savings
- Package building with open-package commitments
- Earnings strategy comparison and distributor availability
"""

from returns_optimizer.compute.availability import (
    AvailabilityPolicy,
    distributor_usage,
)
from returns_optimizer.compute.earnings import (
    compare_strategies,
    multi_distributor_total,
    single_distributor_total,
)
from returns_optimizer.compute.matching import (
    build_search_lines,
    match_observations,
    observations_frame,
    price_lines,
    select_distributor_prices,
    unique_term_positions,
)
from returns_optimizer.compute.packages import build_packages, net_units, package_lines
from returns_optimizer.compute.recommendations import (
    build_recommendation,
    build_recommendations,
    rank_prices,
    total_potential_savings,
)
from returns_optimizer.compute.suggestions import build_distributor_suggestions

__all__ = [
    # Matching
    "observations_frame",
    "match_observations",
    "select_distributor_prices",
    "price_lines",
    "unique_term_positions",
    "build_search_lines",
    # Recommendations
    "rank_prices",
    "build_recommendation",
    "build_recommendations",
    "total_potential_savings",
    # Packages
    "net_units",
    "package_lines",
    "build_packages",
    # Earnings
    "compare_strategies",
    "single_distributor_total",
    "multi_distributor_total",
    # Availability
    "AvailabilityPolicy",
    "distributor_usage",
    # Suggestions
    "build_distributor_suggestions",
]
