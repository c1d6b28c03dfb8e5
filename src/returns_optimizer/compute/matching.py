"""Matching inventory lines to price observations and aggregating prices.

This module handles:
- Unit-type filtering (FULL lines only priced by FULL observations)
- Latest-wins or average price selection per (line, distributor)
- Expansion of search terms into recommendation lines
"""

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal

import polars as pl

from returns_optimizer.ingest.normalizers import (
    identifier_keys,
    identifiers_match,
    normalize_identifier,
    observations_to_frame,
)
from returns_optimizer.models import (
    DistributorPrice,
    InventoryLine,
    LinePricing,
    MatchMode,
    PriceObservation,
    PricePolicy,
    UnitType,
)

logger = logging.getLogger(__name__)

AVERAGE_PRICE_DECIMALS = 4


def unit_type_expr() -> pl.Expr:
    """Polars expression deriving an observation's unit type."""
    full = pl.col("full_units")
    partial = pl.col("partial_units")
    return (
        pl.when((partial == 0) & (full > 0))
        .then(pl.lit(UnitType.FULL.value))
        .when((full == 0) & (partial > 0))
        .then(pl.lit(UnitType.PARTIAL.value))
        .otherwise(pl.lit(None, dtype=pl.String))
    )


def observations_frame(observations: Iterable[PriceObservation]) -> pl.DataFrame:
    """Build the working frame of observations, newest first.

    The sort is stable, so observations sharing a date keep their store
    order; ``observation_order`` records that order for later tie-breaks.
    """
    df = observations_to_frame(observations).with_row_index("observation_order")
    return df.with_columns(unit_type_expr().alias("unit_type")).sort(
        "observed_at", descending=True, maintain_order=True
    )


def link_lines(
    lines: Sequence[InventoryLine],
    observations_df: pl.DataFrame,
    mode: MatchMode = MatchMode.EXACT,
) -> pl.DataFrame:
    """Pair every line with the observed identifiers that match it.

    Args:
        lines: Inventory lines to price.
        observations_df: Working frame from observations_frame().
        mode: Identifier comparison mode.

    Returns:
        DataFrame with line_index and identifier columns.
    """
    distinct = observations_df["identifier"].unique().to_list()
    pairs: list[dict[str, object]] = []

    if mode == MatchMode.EXACT:
        by_key: dict[str, set[str]] = {}
        for observed in distinct:
            for key in identifier_keys(observed):
                by_key.setdefault(key, set()).add(observed)

        for index, line in enumerate(lines):
            matched: set[str] = set()
            for key in identifier_keys(line.identifier):
                matched |= by_key.get(key, set())
            pairs.extend({"line_index": index, "identifier": m} for m in sorted(matched))
    else:
        for index, line in enumerate(lines):
            pairs.extend(
                {"line_index": index, "identifier": observed}
                for observed in distinct
                if identifiers_match(line.identifier, observed, mode)
            )

    return pl.DataFrame(
        pairs, schema={"line_index": pl.Int64, "identifier": pl.String}
    )


def _requirements_frame(lines: Sequence[InventoryLine]) -> pl.DataFrame:
    rows = []
    for index, line in enumerate(lines):
        requirement = line.unit_type
        if requirement is None:
            logger.debug(
                f"Line {line.identifier} has full={line.full_units} "
                f"partial={line.partial_units}; matching without unit-type filter"
            )
        rows.append(
            {
                "line_index": index,
                "required_unit_type": requirement.value if requirement else None,
            }
        )
    return pl.DataFrame(
        rows, schema={"line_index": pl.Int64, "required_unit_type": pl.String}
    )


def match_observations(
    lines: Sequence[InventoryLine],
    observations_df: pl.DataFrame,
    mode: MatchMode = MatchMode.EXACT,
) -> pl.DataFrame:
    """Join lines to the observations that may price them.

    An observation matches when its identifier matches and its unit type
    equals the line's requirement. Lines without a requirement take every
    identifier match.

    Returns:
        Matched rows (line_index plus observation columns), newest first,
        ties in store order.
    """
    links = link_lines(lines, observations_df, mode)
    if links.height == 0:
        return observations_df.clear().with_columns(
            pl.lit(None, dtype=pl.Int64).alias("line_index")
        )

    matched = (
        links.join(observations_df, on="identifier", how="inner")
        .join(_requirements_frame(lines), on="line_index", how="left")
        .filter(
            pl.col("required_unit_type").is_null()
            | (pl.col("unit_type") == pl.col("required_unit_type"))
        )
    )
    return matched.sort(
        ["observed_at", "observation_order"], descending=[True, False]
    )


def select_distributor_prices(
    matched: pl.DataFrame,
    policy: PricePolicy = PricePolicy.LATEST,
) -> pl.DataFrame:
    """Collapse matched observations to one price per (line, distributor).

    Args:
        matched: Output of match_observations().
        policy: LATEST keeps the first (newest) observation; AVERAGE takes
            the mean of all matching observations.

    Returns:
        DataFrame with line_index, distributor_name, price_per_unit and
        observed_at columns.
    """
    columns = ["line_index", "distributor_name", "price_per_unit", "observed_at"]
    if matched.height == 0:
        return matched.select(columns)

    if policy == PricePolicy.AVERAGE:
        return matched.group_by(
            ["line_index", "distributor_name"], maintain_order=True
        ).agg(
            pl.col("price_per_unit").mean().round(AVERAGE_PRICE_DECIMALS),
            pl.col("observed_at").max(),
        )

    return matched.unique(
        subset=["line_index", "distributor_name"], keep="first", maintain_order=True
    ).select(columns)


def price_lines(
    lines: Sequence[InventoryLine],
    observations: Iterable[PriceObservation] | pl.DataFrame,
    mode: MatchMode = MatchMode.EXACT,
    policy: PricePolicy = PricePolicy.LATEST,
) -> tuple[LinePricing, ...]:
    """Attach per-distributor prices to every line.

    Lines without any match come back with an empty price tuple.

    Args:
        lines: Inventory lines to price.
        observations: Price observations, or a frame from observations_frame().
        mode: Identifier comparison mode.
        policy: Price aggregation policy.

    Returns:
        One LinePricing per line, in input order.
    """
    observations_df = (
        observations
        if isinstance(observations, pl.DataFrame)
        else observations_frame(observations)
    )
    selected = select_distributor_prices(
        match_observations(lines, observations_df, mode), policy
    )

    prices: dict[int, list[DistributorPrice]] = {}
    for row in selected.iter_rows(named=True):
        prices.setdefault(row["line_index"], []).append(
            DistributorPrice(
                distributor_name=row["distributor_name"],
                price_per_unit=Decimal(str(row["price_per_unit"])),
                observed_at=row["observed_at"],
            )
        )

    pricings = tuple(
        LinePricing(line=line, prices=tuple(prices.get(index, [])))
        for index, line in enumerate(lines)
    )
    priced = sum(1 for p in pricings if p.prices)
    logger.info(
        f"Priced {priced} of {len(lines)} lines from "
        f"{observations_df.height:,} observations ({policy.value})"
    )
    return pricings


def unique_term_positions(terms: Sequence[str]) -> list[int]:
    """Positions of the first occurrence of each search term.

    Terms compare by canonical form, so "00456-0460-01" and "00456046001"
    count once. Blank terms are skipped.
    """
    seen: set[str] = set()
    positions = []
    for position, term in enumerate(terms):
        canonical = normalize_identifier(term)
        if not canonical or canonical in seen:
            continue
        seen.add(canonical)
        positions.append(position)
    return positions


def build_search_lines(
    terms: Sequence[str],
    observed_identifiers: Iterable[str],
    inventory: Sequence[InventoryLine] = (),
    full_counts: Sequence[int] | None = None,
    partial_counts: Sequence[int] | None = None,
) -> list[InventoryLine]:
    """Turn search terms into the lines a search-mode request prices.

    Every distinct canonical identifier that a term matches by containment
    becomes one line; a term that matches nothing becomes a line of its own
    so the caller still gets a (zero-value) recommendation for it.

    Args:
        terms: De-duplicated search terms.
        observed_identifiers: Identifiers present in the observations.
        inventory: The pharmacy's inventory, used for names and unit counts.
        full_counts: Optional full units per term.
        partial_counts: Optional partial units per term.

    Returns:
        Lines in term order.
    """
    observed = list(dict.fromkeys(observed_identifiers))
    lines: list[InventoryLine] = []
    # Keys of identifiers already turned into lines; 10- and 11-digit forms share one
    emitted: set[str] = set()

    for position, term in enumerate(terms):
        matched = [
            identifier
            for identifier in observed
            if identifiers_match(term, identifier, MatchMode.SEARCH)
        ]
        if not matched:
            logger.debug(f"Search term '{term}' matched no observed identifiers")
            matched = [term]

        for identifier in matched:
            keys = identifier_keys(identifier)
            if keys & emitted:
                continue
            emitted |= keys

            owned = next(
                (
                    line
                    for line in inventory
                    if identifiers_match(line.identifier, identifier)
                ),
                None,
            )
            if full_counts is not None or partial_counts is not None:
                full = full_counts[position] if full_counts is not None else 0
                partial = partial_counts[position] if partial_counts is not None else 0
            elif owned is not None:
                full, partial = owned.full_units, owned.partial_units
            else:
                full, partial = 0, 0

            lines.append(
                InventoryLine(
                    id=owned.id if owned else "",
                    identifier=identifier,
                    product_name=owned.product_name if owned else f"Product {identifier}",
                    full_units=full,
                    partial_units=partial,
                )
            )

    logger.info(f"Expanded {len(terms)} search terms into {len(lines)} lines")
    return lines
