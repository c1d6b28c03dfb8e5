"""Recommendation building: best-paying distributor per inventory line."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from returns_optimizer.models import (
    ZERO,
    DistributorOption,
    DistributorPrice,
    LinePricing,
    Recommendation,
)

logger = logging.getLogger(__name__)


def rank_prices(prices: Iterable[DistributorPrice]) -> list[DistributorPrice]:
    """Order distributor prices best first (price descending, then name)."""
    return sorted(prices, key=lambda p: (-p.price_per_unit, p.distributor_name))


def build_recommendation(
    pricing: LinePricing,
    search_mode: bool = False,
    availability: Mapping[str, bool] | None = None,
) -> Recommendation:
    """Build the recommendation for one priced line.

    Args:
        pricing: Line with its per-distributor selected prices.
        search_mode: Use a quantity of 1 instead of the line's unit count.
        availability: Optional availability flag per distributor name;
            distributors not listed count as available.

    Returns:
        Recommendation; recommended_distributor is empty when the line
        has no prices.
    """
    line = pricing.line
    quantity = 1 if search_mode else line.quantity
    availability = availability or {}

    base = Recommendation(
        identifier=line.identifier,
        product_name=line.product_name,
        full_units=line.full_units,
        partial_units=line.partial_units,
        quantity=quantity,
        product_id=line.id,
    )

    ranked = rank_prices(pricing.prices)
    if not ranked:
        logger.debug(f"No pricing data for {line.identifier}")
        return base

    best = ranked[0]
    worst = ranked[-1]
    alternatives = tuple(
        DistributorOption(
            name=p.distributor_name,
            price=p.price_per_unit,
            difference=p.price_per_unit - best.price_per_unit,
            available=availability.get(p.distributor_name, True),
        )
        for p in ranked[1:]
    )
    savings = max(ZERO, (best.price_per_unit - worst.price_per_unit) * quantity)

    logger.debug(
        f"{line.identifier}: {best.distributor_name} at {best.price_per_unit} "
        f"({len(alternatives)} alternatives)"
    )

    return Recommendation(
        identifier=base.identifier,
        product_name=base.product_name,
        full_units=base.full_units,
        partial_units=base.partial_units,
        quantity=quantity,
        recommended_distributor=best.distributor_name,
        expected_price=best.price_per_unit,
        worst_price=worst.price_per_unit,
        alternatives=alternatives,
        savings=savings,
        available=availability.get(best.distributor_name, True),
        product_id=base.product_id,
    )


def build_recommendations(
    pricings: Sequence[LinePricing],
    search_mode: bool = False,
    availability: Mapping[str, bool] | None = None,
) -> tuple[Recommendation, ...]:
    """Build recommendations for every line, preserving line order."""
    recommendations = tuple(
        build_recommendation(p, search_mode=search_mode, availability=availability)
        for p in pricings
    )
    priced = sum(1 for r in recommendations if r.has_pricing)
    logger.info(f"Built {len(recommendations)} recommendations ({priced} priced)")
    return recommendations


def total_potential_savings(recommendations: Iterable[Recommendation]) -> Decimal:
    """Sum of savings across recommendations."""
    return sum((r.savings for r in recommendations), ZERO)
