"""Tests for matching lines to observations and price aggregation."""

from datetime import date
from decimal import Decimal

import pytest

from returns_optimizer.compute.matching import (
    build_search_lines,
    match_observations,
    observations_frame,
    price_lines,
    unique_term_positions,
)
from returns_optimizer.models import (
    InventoryLine,
    LinePricing,
    MatchMode,
    PriceObservation,
    PricePolicy,
)


def _obs(
    identifier: str,
    distributor: str,
    price: str,
    observed_at: date,
    full: int = 1,
    partial: int = 0,
) -> PriceObservation:
    return PriceObservation(
        identifier, distributor, full, partial, Decimal(price), observed_at
    )


def _prices(pricing: LinePricing) -> dict[str, Decimal]:
    return {p.distributor_name: p.price_per_unit for p in pricing.prices}


class TestUnitTypeFiltering:
    """Tests for unit-type exclusivity."""

    def test_full_line_ignores_partial_observations(self, full_line: InventoryLine) -> None:
        """FULL lines are priced only by FULL observations."""
        observations = [
            _obs("A", "X", "2.00", date(2024, 1, 1)),
            _obs("A", "Z", "9.00", date(2024, 2, 1), full=0, partial=3),
        ]
        (pricing,) = price_lines([full_line], observations)
        assert _prices(pricing) == {"X": Decimal("2.00")}

    def test_partial_line_ignores_full_observations(self) -> None:
        """PARTIAL lines are priced only by PARTIAL observations."""
        line = InventoryLine("1", "A", "A", full_units=0, partial_units=2)
        observations = [
            _obs("A", "X", "2.00", date(2024, 1, 1)),
            _obs("A", "Z", "0.50", date(2024, 2, 1), full=0, partial=3),
        ]
        (pricing,) = price_lines([line], observations)
        assert _prices(pricing) == {"Z": Decimal("0.50")}

    def test_mixed_observations_never_match_typed_lines(
        self, full_line: InventoryLine
    ) -> None:
        """Observations with both unit types set have no unit type."""
        observations = [_obs("A", "X", "2.00", date(2024, 1, 1), full=1, partial=1)]
        (pricing,) = price_lines([full_line], observations)
        assert pricing.prices == ()

    @pytest.mark.parametrize("full,partial", [(2, 3), (0, 0)])
    def test_degraded_mode_takes_all(self, full: int, partial: int) -> None:
        """Lines without a derivable unit type match every observation."""
        line = InventoryLine("1", "A", "A", full_units=full, partial_units=partial)
        observations = [
            _obs("A", "X", "2.00", date(2024, 1, 1)),
            _obs("A", "Z", "0.50", date(2024, 2, 1), full=0, partial=3),
        ]
        (pricing,) = price_lines([line], observations)
        assert _prices(pricing) == {"X": Decimal("2.00"), "Z": Decimal("0.50")}


class TestPriceSelection:
    """Tests for latest-wins and average aggregation."""

    @pytest.mark.parametrize("reverse", [False, True])
    def test_latest_wins_regardless_of_order(
        self, full_line: InventoryLine, reverse: bool
    ) -> None:
        """The newest observation per distributor is kept."""
        observations = [
            _obs("A", "X", "1.00", date(2024, 1, 1)),
            _obs("A", "X", "4.00", date(2024, 3, 1)),
            _obs("A", "X", "2.00", date(2024, 2, 1)),
        ]
        if reverse:
            observations.reverse()
        (pricing,) = price_lines([full_line], observations)
        assert _prices(pricing) == {"X": Decimal("4.00")}
        assert pricing.prices[0].observed_at == date(2024, 3, 1)

    def test_equal_dates_keep_store_order(self, full_line: InventoryLine) -> None:
        """Ties on date resolve to the first observation in store order."""
        observations = [
            _obs("A", "X", "1.50", date(2024, 1, 1)),
            _obs("A", "X", "3.50", date(2024, 1, 1)),
        ]
        (pricing,) = price_lines([full_line], observations)
        assert _prices(pricing) == {"X": Decimal("1.50")}

    def test_average_policy(self, full_line: InventoryLine) -> None:
        """AVERAGE takes the mean of matching observations."""
        observations = [
            _obs("A", "X", "1.00", date(2024, 1, 1)),
            _obs("A", "X", "2.00", date(2024, 2, 1)),
            _obs("A", "X", "4.00", date(2024, 3, 1), full=0, partial=1),
        ]
        (pricing,) = price_lines(
            [full_line], observations, policy=PricePolicy.AVERAGE
        )
        assert _prices(pricing) == {"X": Decimal("1.5")}

    def test_identifier_formats_pool_together(self) -> None:
        """Dashed, 10- and 11-digit observations price the same line."""
        line = InventoryLine("1", "00456-0460-01", "Lisinopril", full_units=10)
        observations = [
            _obs("0045604601", "X", "2.00", date(2024, 1, 1)),
            _obs("00456046001", "Y", "3.00", date(2024, 2, 1)),
            _obs("00456-0460-01", "Y", "2.50", date(2024, 1, 15)),
        ]
        (pricing,) = price_lines([line], observations)
        assert _prices(pricing) == {"X": Decimal("2.00"), "Y": Decimal("3.00")}

    def test_unmatched_line_has_no_prices(self, full_line: InventoryLine) -> None:
        """Lines without observations come back empty."""
        observations = [_obs("B", "X", "2.00", date(2024, 1, 1))]
        (pricing,) = price_lines([full_line], observations)
        assert pricing.prices == ()
        assert pricing.line == full_line

    def test_no_observations(self, full_line: InventoryLine) -> None:
        """An empty store prices nothing and does not fail."""
        (pricing,) = price_lines([full_line], [])
        assert pricing.prices == ()

    def test_lines_priced_independently(self) -> None:
        """Two lines sharing an identifier keep their own unit filters."""
        full = InventoryLine("1", "A", "A", full_units=1)
        partial = InventoryLine("2", "A", "A", partial_units=1)
        observations = [
            _obs("A", "X", "2.00", date(2024, 1, 1)),
            _obs("A", "X", "0.40", date(2024, 1, 1), full=0, partial=1),
        ]
        full_pricing, partial_pricing = price_lines([full, partial], observations)
        assert _prices(full_pricing) == {"X": Decimal("2.00")}
        assert _prices(partial_pricing) == {"X": Decimal("0.40")}


class TestMatchObservations:
    """Tests for the joined match frame."""

    def test_search_mode_containment(self) -> None:
        """Search mode links lines by identifier containment."""
        line = InventoryLine("", "00456", "", full_units=1)
        df = observations_frame(
            [
                _obs("00456-0460-01", "X", "2.00", date(2024, 1, 1)),
                _obs("00093-1234-05", "Y", "2.00", date(2024, 1, 1)),
            ]
        )
        matched = match_observations([line], df, MatchMode.SEARCH)
        assert matched["identifier"].to_list() == ["00456-0460-01"]

    def test_newest_first(self) -> None:
        """Matched rows are ordered newest first."""
        line = InventoryLine("", "A", "", full_units=1)
        df = observations_frame(
            [
                _obs("A", "X", "1.00", date(2024, 1, 1)),
                _obs("A", "Y", "2.00", date(2024, 3, 1)),
            ]
        )
        matched = match_observations([line], df)
        assert matched["distributor_name"].to_list() == ["Y", "X"]


class TestSearchLines:
    """Tests for search-term expansion."""

    def test_unique_term_positions(self) -> None:
        """Terms de-duplicate by canonical form, keeping the first."""
        terms = ["00456-0460-01", "00456046001", " 00093 ", "00093"]
        assert unique_term_positions(terms) == [0, 2]

    def test_each_matched_identifier_becomes_a_line(self) -> None:
        """A partial term expands to every distinct matching identifier."""
        lines = build_search_lines(
            ["00456"],
            ["00456-0460-01", "00456046001", "00456-0999-10"],
        )
        assert [line.identifier for line in lines] == ["00456-0460-01", "00456-0999-10"]
        assert lines[0].product_name == "Product 00456-0460-01"

    def test_unmatched_term_yields_line(self) -> None:
        """A term without matches is kept as its own line."""
        lines = build_search_lines(["99999"], ["00456-0460-01"])
        assert [line.identifier for line in lines] == ["99999"]

    def test_inventory_supplies_name_and_units(self) -> None:
        """Inventory lines provide names and unit counts."""
        inventory = [
            InventoryLine("inv-1", "00456046001", "Lisinopril", full_units=0, partial_units=3)
        ]
        (line,) = build_search_lines(["00456"], ["00456-0460-01"], inventory)
        assert line.product_name == "Lisinopril"
        assert line.id == "inv-1"
        assert line.partial_units == 3

    def test_counts_override_inventory(self) -> None:
        """Caller counts set the unit-type requirement."""
        inventory = [InventoryLine("inv-1", "00456046001", "Lisinopril", full_units=5)]
        (line,) = build_search_lines(
            ["00456"], ["00456-0460-01"], inventory, full_counts=[0], partial_counts=[2]
        )
        assert (line.full_units, line.partial_units) == (0, 2)
