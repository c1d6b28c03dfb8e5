"""Single-distributor vs multi-distributor earnings comparison."""

import logging
from collections.abc import Sequence
from decimal import Decimal

from returns_optimizer.models import ZERO, EarningsComparison, Recommendation

logger = logging.getLogger(__name__)


def multi_distributor_total(recommendations: Sequence[Recommendation]) -> Decimal:
    """Earnings when every line goes to its best-paying distributor."""
    return sum(
        (r.expected_price * r.quantity for r in recommendations if r.has_pricing),
        ZERO,
    )


def single_distributor_total(
    recommendations: Sequence[Recommendation],
    distributor_name: str,
) -> Decimal:
    """Earnings when every line goes to one distributor.

    Lines the distributor has no price for are valued at the line's
    worst price.
    """
    total = ZERO
    for rec in recommendations:
        if not rec.has_pricing:
            continue
        price = rec.price_for(distributor_name)
        total += (price if price is not None else rec.worst_price) * rec.quantity
    return total


def compare_strategies(recommendations: Sequence[Recommendation]) -> EarningsComparison:
    """Compare the best single distributor against per-line best choices.

    Args:
        recommendations: Recommendations of one request.

    Returns:
        EarningsComparison with both totals and the non-negative difference.
    """
    candidates = sorted(
        {name for rec in recommendations for name, _ in rec.options()}
    )
    if not candidates:
        return EarningsComparison()

    best_name = ""
    best_total = ZERO
    for name in candidates:
        total = single_distributor_total(recommendations, name)
        if not best_name or total > best_total:
            best_name, best_total = name, total

    multi_total = multi_distributor_total(recommendations)
    additional = max(ZERO, multi_total - best_total)

    logger.info(
        f"Earnings: single ({best_name}) {best_total}, multi {multi_total}, "
        f"additional {additional}"
    )

    return EarningsComparison(
        single_distributor_strategy=best_total,
        multiple_distributors_strategy=multi_total,
        potential_additional_earnings=additional,
        best_single_distributor=best_name,
    )
