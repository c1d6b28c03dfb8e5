"""Tests for package building."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from returns_optimizer.access.directory import DistributorDirectory
from returns_optimizer.compute.packages import build_packages, net_units, package_lines
from returns_optimizer.models import Distributor, Recommendation

GENERATED_AT = datetime(2024, 3, 15, tzinfo=timezone.utc)


def _rec(
    identifier: str,
    distributor: str,
    price: str,
    full: int = 0,
    partial: int = 0,
    quantity: int | None = None,
) -> Recommendation:
    return Recommendation(
        identifier=identifier,
        product_name=f"Product {identifier}",
        full_units=full,
        partial_units=partial,
        quantity=full + partial if quantity is None else quantity,
        recommended_distributor=distributor,
        expected_price=Decimal(price),
        worst_price=Decimal(price),
    )


class TestNetUnits:
    """Tests for commitment subtraction."""

    @pytest.mark.parametrize(
        "full,partial,committed,expected",
        [
            (10, 0, 4, (6, 0, 0)),
            (3, 5, 4, (0, 4, 0)),  # Full units consumed first
            (2, 0, 5, (0, 0, 3)),  # Leftover commitment carried on
            (2, 3, 0, (2, 3, 0)),
        ],
    )
    def test_net_units(
        self, full: int, partial: int, committed: int, expected: tuple[int, int, int]
    ) -> None:
        """Committed units come off full first, then partial."""
        assert net_units(full, partial, committed) == expected


class TestPackageLines:
    """Tests for netting recommendations into package lines."""

    def test_conservation(self) -> None:
        """Final quantity is max(0, suggested - committed)."""
        lines = package_lines(
            [_rec("00456-0460-01", "Y", "3.00", full=10)],
            committed={"00456046001": 4},
        )
        ((name, line),) = lines
        assert name == "Y"
        assert line.quantity == 6
        assert line.total_value == Decimal("18.00")

    def test_fully_committed_line_dropped(self) -> None:
        """Lines netted to zero never appear."""
        lines = package_lines(
            [_rec("A", "Y", "3.00", full=2)],
            committed={"A": 5},
        )
        assert lines == []

    def test_commitment_consumed_across_lines(self) -> None:
        """Lines sharing an identifier share one commitment, in order."""
        lines = package_lines(
            [
                _rec("A", "Y", "3.00", full=2),
                _rec("A", "Z", "1.00", partial=5),
            ],
            committed={"A": 4},
        )
        ((name, line),) = lines
        assert name == "Z"
        assert line.partial_units == 3

    def test_ten_digit_commitment_key(self) -> None:
        """Commitments match lines across identifier formats."""
        lines = package_lines(
            [_rec("0045604601", "Y", "3.00", full=3)],
            committed={"00456046001": 1},
        )
        assert lines[0][1].full_units == 2

    def test_eleven_digit_line_with_ten_digit_commitment(self) -> None:
        """A 10-digit commitment nets an 11-digit line of the same product."""
        lines = package_lines(
            [_rec("00456-0460-01", "Y", "3.00", full=10)],
            committed={"0045604601": 4},
        )
        assert lines[0][1].quantity == 6

    def test_commitments_in_several_formats_add_up(self) -> None:
        """Commitments stored under different formats all apply."""
        lines = package_lines(
            [_rec("00456-0460-01", "Y", "3.00", full=10)],
            committed={"0045604601": 4, "00456046001": 3},
        )
        assert lines[0][1].quantity == 3

    def test_unpriced_skipped(self) -> None:
        """Lines without a recommendation are skipped."""
        rec = Recommendation("A", "A", 1, 0, 1)
        assert package_lines([rec]) == []

    def test_identifier_only_line_ships_one_unit(self) -> None:
        """Lines without unit counts ship their search quantity."""
        lines = package_lines([_rec("A", "Y", "3.00", quantity=1)])
        assert lines[0][1].quantity == 1


class TestBuildPackages:
    """Tests for grouping into packages."""

    def test_grouping_sorting_and_summary(self) -> None:
        """Packages group by distributor and sort by value descending."""
        recs = [
            _rec("A", "Y", "3.00", full=2),  # 6.00
            _rec("B", "X", "1.00", full=4),  # 4.00
            _rec("C", "Y", "1.00", partial=1),  # 1.00
            Recommendation("D", "D", 1, 0, 1),  # no pricing
        ]
        result = build_packages(recs, generated_at=GENERATED_AT)

        assert [p.distributor_name for p in result.packages] == ["Y", "X"]
        assert result.packages[0].total_estimated_value == Decimal("7.00")
        assert result.total_products == 4
        assert result.total_packages == 2
        assert result.total_estimated_value == Decimal("11.00")
        assert result.summary.products_with_pricing == 3
        assert result.summary.products_without_pricing == 1
        assert result.summary.distributors_used == 2

    def test_ties_sorted_by_name(self) -> None:
        """Equal-value packages sort by distributor name."""
        recs = [_rec("A", "Zeta", "2.00", full=1), _rec("B", "Alpha", "1.00", full=2)]
        result = build_packages(recs, generated_at=GENERATED_AT)
        assert [p.distributor_name for p in result.packages] == ["Alpha", "Zeta"]

    def test_empty_packages_dropped(self) -> None:
        """A distributor whose lines are all committed gets no package."""
        recs = [_rec("A", "Y", "3.00", full=2), _rec("B", "X", "1.00", full=1)]
        result = build_packages(recs, generated_at=GENERATED_AT, committed={"A": 2})
        assert [p.distributor_name for p in result.packages] == ["X"]
        assert result.summary.distributors_used == 1

    def test_directory_enrichment(self) -> None:
        """Packages carry the matching directory entry."""
        directory = DistributorDirectory([Distributor("d1", "Y", contact_email="y@test")])
        result = build_packages(
            [_rec("A", "Y", "3.00", full=1)], generated_at=GENERATED_AT, directory=directory
        )
        package = result.packages[0]
        assert package.distributor is not None
        assert package.to_dict()["distributorContact"]["email"] == "y@test"
