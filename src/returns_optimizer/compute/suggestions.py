"""Distributor suggestions for an explicit list of items to return."""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from decimal import Decimal

import polars as pl

from returns_optimizer.access.directory import DistributorDirectory
from returns_optimizer.compute.matching import price_lines
from returns_optimizer.models import (
    ZERO,
    DistributorSuggestion,
    InventoryLine,
    LookupItem,
    MatchMode,
    PricePolicy,
    SuggestedItem,
    SuggestionResult,
)

logger = logging.getLogger(__name__)


def _unit_type_lines(items: Sequence[LookupItem]) -> list[InventoryLine]:
    # One FULL and one PARTIAL line per item, so each unit type gets its own price
    lines = []
    for item in items:
        lines.append(InventoryLine("", item.identifier, "", full_units=1))
        lines.append(InventoryLine("", item.identifier, "", partial_units=1))
    return lines


def build_distributor_suggestions(
    items: Sequence[LookupItem],
    observations_df: pl.DataFrame,
    generated_at: datetime,
    product_names: Mapping[str, str] | None = None,
    directory: DistributorDirectory | None = None,
    policy: PricePolicy = PricePolicy.LATEST,
) -> SuggestionResult:
    """Price a set of items at every distributor that buys any of them.

    Args:
        items: Validated lookup items.
        observations_df: Working frame from observations_frame().
        generated_at: Timestamp stamped on the result.
        product_names: Display names per item identifier.
        directory: Optional directory for contact enrichment.
        policy: Price aggregation policy.

    Returns:
        SuggestionResult with distributors ranked by total value descending.
    """
    product_names = product_names or {}
    pricings = price_lines(_unit_type_lines(items), observations_df, MatchMode.EXACT, policy)

    # prices[distributor][item position] = (full price, partial price)
    prices: dict[str, dict[int, list[Decimal]]] = {}
    for line_index, pricing in enumerate(pricings):
        position, slot = divmod(line_index, 2)
        for price in pricing.prices:
            per_item = prices.setdefault(price.distributor_name, {})
            per_item.setdefault(position, [ZERO, ZERO])[slot] = price.price_per_unit

    def describe(item: LookupItem, full: Decimal, partial: Decimal) -> SuggestedItem:
        return SuggestedItem(
            identifier=item.identifier,
            product_name=product_names.get(item.identifier)
            or f"Product {item.identifier}",
            full_units=item.full_units,
            partial_units=item.partial_units,
            full_price=full,
            partial_price=partial,
        )

    suggestions = []
    for name, per_item in prices.items():
        suggestions.append(
            DistributorSuggestion(
                distributor_name=name,
                items=tuple(
                    describe(items[position], *per_item[position])
                    for position in sorted(per_item)
                ),
                distributor=directory.lookup(name) if directory else None,
            )
        )
    suggestions.sort(
        key=lambda s: (-s.total_estimated_value, -s.priced_items, s.distributor_name)
    )
    if suggestions:
        first = suggestions[0]
        suggestions[0] = DistributorSuggestion(
            distributor_name=first.distributor_name,
            items=first.items,
            distributor=first.distributor,
            recommended=True,
        )

    priced_positions = {p for per_item in prices.values() for p in per_item}
    without_pricing = tuple(
        describe(item, ZERO, ZERO)
        for position, item in enumerate(items)
        if position not in priced_positions
    )

    logger.info(
        f"Suggested {len(suggestions)} distributors for {len(items)} items "
        f"({len(without_pricing)} without pricing)"
    )

    return SuggestionResult(
        distributors=tuple(suggestions),
        items_without_pricing=without_pricing,
        total_items=len(items),
        generated_at=generated_at,
    )
