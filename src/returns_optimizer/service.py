"""Caller-facing operations of the Return Optimization Engine."""

import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime, timezone

from returns_optimizer.access.directory import DistributorDirectory
from returns_optimizer.access.source import ReturnsDataSource, fetch_all_observations
from returns_optimizer.compute.availability import AvailabilityPolicy, distributor_usage
from returns_optimizer.compute.earnings import compare_strategies
from returns_optimizer.compute.matching import (
    build_search_lines,
    observations_frame,
    price_lines,
    unique_term_positions,
)
from returns_optimizer.compute.packages import build_packages
from returns_optimizer.compute.recommendations import (
    build_recommendations,
    total_potential_savings,
)
from returns_optimizer.compute.suggestions import build_distributor_suggestions
from returns_optimizer.config import Settings
from returns_optimizer.ingest.normalizers import identifiers_match
from returns_optimizer.ingest.validators import (
    validate_identifiers,
    validate_lookup_items,
    validate_pharmacy_id,
    validate_unit_counts,
)
from returns_optimizer.models import (
    InventoryLine,
    LinePricing,
    LookupItem,
    MatchMode,
    OptimizationResult,
    PackageResult,
    PricePolicy,
    SuggestionResult,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReturnOptimizer:
    """Recommends reverse distributors for a pharmacy's returnable inventory.

    Every call reads a fresh snapshot from the data source and builds its
    results from scratch; the optimizer holds no per-request state.

    Args:
        source: Read-only data-access collaborator.
        settings: Engine settings (loaded from the environment if omitted).
        clock: Returns the current time; stamped on results and used as
            the reference date of the availability window.
    """

    def __init__(
        self,
        source: ReturnsDataSource,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._source = source
        self._settings = settings or Settings.from_env()
        self._clock = clock
        self._availability = AvailabilityPolicy(
            enabled=self._settings.availability_filter_enabled,
            window_days=self._settings.availability_window_days,
        )

    def _directory(self) -> DistributorDirectory:
        return DistributorDirectory(
            self._source.fetch_distributors(),
            match_threshold=self._settings.distributor_match_threshold,
        )

    def _inventory_pricings(
        self,
        inventory: Sequence[InventoryLine],
        policy: PricePolicy,
    ) -> tuple[LinePricing, ...]:
        if not inventory:
            return ()

        observations = fetch_all_observations(
            self._source,
            identifiers=[line.identifier for line in inventory],
            mode=MatchMode.EXACT,
            batch_size=self._settings.observation_batch_size,
        )
        return price_lines(inventory, observations, MatchMode.EXACT, policy)

    def _search_pricings(
        self,
        identifiers: Sequence[str],
        inventory: Sequence[InventoryLine],
        policy: PricePolicy,
        full_counts: Sequence[int] | None = None,
        partial_counts: Sequence[int] | None = None,
    ) -> tuple[LinePricing, ...]:
        positions = unique_term_positions(identifiers)
        terms = [identifiers[p] for p in positions]
        full = [full_counts[p] for p in positions] if full_counts is not None else None
        partial = (
            [partial_counts[p] for p in positions] if partial_counts is not None else None
        )

        observations = fetch_all_observations(
            self._source,
            identifiers=terms,
            mode=MatchMode.SEARCH,
            batch_size=self._settings.observation_batch_size,
        )
        observations_df = observations_frame(observations)
        lines = build_search_lines(
            terms,
            observations_df["identifier"].to_list(),
            inventory,
            full_counts=full,
            partial_counts=partial,
        )
        return price_lines(lines, observations_df, MatchMode.EXACT, policy)

    def _availability_flags(
        self,
        pricings: Sequence[LinePricing],
        directory: DistributorDirectory,
        last_report_dates: dict[str, date],
        today: date,
    ) -> dict[str, bool] | None:
        if not self._availability.enabled:
            return None
        names = {price.distributor_name for p in pricings for price in p.prices}
        return self._availability.evaluate(
            sorted(names), last_report_dates, today, directory
        )

    def get_recommendations(
        self,
        pharmacy_id: str,
        identifiers: Sequence[str] | None = None,
        full_counts: Sequence[int] | None = None,
        partial_counts: Sequence[int] | None = None,
    ) -> OptimizationResult:
        """Best distributor per inventory line, or per searched identifier.

        Args:
            pharmacy_id: Pharmacy whose inventory is optimized.
            identifiers: Optional search terms (full or partial NDCs). When
                given, the pharmacy's inventory only supplies names and units.
            full_counts: Optional full units per search term.
            partial_counts: Optional partial units per search term.

        Returns:
            OptimizationResult; empty when the pharmacy has no inventory.

        Raises:
            ValidationError: If the pharmacy id, an identifier or the count
                arrays are invalid.
            ConfigurationError: If the data source is unavailable.
        """
        pharmacy_id = validate_pharmacy_id(pharmacy_id)
        search_terms = None
        if identifiers is not None:
            search_terms = validate_identifiers(identifiers)
            full_counts = validate_unit_counts(full_counts, len(search_terms), "full")
            partial_counts = validate_unit_counts(
                partial_counts, len(search_terms), "partial"
            )

        now = self._clock()
        policy = self._settings.recommendation_price_policy
        directory = self._directory()
        last_report_dates = self._source.fetch_last_report_dates(pharmacy_id)

        inventory = self._source.fetch_inventory(pharmacy_id)
        if search_terms is not None:
            pricings = self._search_pricings(
                search_terms,
                inventory,
                policy,
                full_counts=full_counts,
                partial_counts=partial_counts,
            )
        else:
            pricings = self._inventory_pricings(inventory, policy)

        recommendations = build_recommendations(
            pricings,
            search_mode=search_terms is not None,
            availability=self._availability_flags(
                pricings, directory, last_report_dates, now.date()
            ),
        )

        result = OptimizationResult(
            recommendations=recommendations,
            total_potential_savings=total_potential_savings(recommendations),
            distributor_usage=distributor_usage(
                directory,
                last_report_dates,
                now.date(),
                window_days=self._availability.window_days,
            ),
            earnings_comparison=compare_strategies(recommendations),
            generated_at=now,
        )
        logger.info(
            f"Pharmacy {pharmacy_id}: {len(recommendations)} recommendations, "
            f"potential savings {result.total_potential_savings}"
        )
        return result

    def get_packages(self, pharmacy_id: str) -> PackageResult:
        """Group the pharmacy's inventory into per-distributor packages.

        Units already committed to the pharmacy's undelivered packages are
        subtracted first.

        Raises:
            ValidationError: If the pharmacy id is missing.
            ConfigurationError: If the data source is unavailable.
        """
        pharmacy_id = validate_pharmacy_id(pharmacy_id)
        now = self._clock()

        inventory = self._source.fetch_inventory(pharmacy_id)
        recommendations = build_recommendations(
            self._inventory_pricings(inventory, self._settings.package_price_policy)
        )
        committed = (
            self._source.fetch_committed_quantities(pharmacy_id) if inventory else {}
        )

        return build_packages(
            recommendations,
            generated_at=now,
            committed=committed,
            directory=self._directory(),
        )

    def get_packages_for_identifiers(self, identifiers: Sequence[str]) -> PackageResult:
        """Group searched identifiers into packages, one unit per line.

        No pharmacy is involved, so nothing is subtracted for open packages.

        Raises:
            ValidationError: If no valid identifier is given.
            ConfigurationError: If the data source is unavailable.
        """
        terms = validate_identifiers(identifiers)
        now = self._clock()

        recommendations = build_recommendations(
            self._search_pricings(terms, (), self._settings.package_price_policy),
            search_mode=True,
        )
        return build_packages(
            recommendations,
            generated_at=now,
            directory=self._directory(),
        )

    def get_distributor_suggestions(
        self,
        pharmacy_id: str,
        items: Sequence[LookupItem],
    ) -> SuggestionResult:
        """Rank distributors for an explicit list of items to return.

        Args:
            pharmacy_id: Pharmacy the items belong to (used for names).
            items: Identifiers with the full/partial units to return.

        Returns:
            SuggestionResult; items nobody prices are listed separately.

        Raises:
            ValidationError: If the pharmacy id or any item is invalid.
            ConfigurationError: If the data source is unavailable.
        """
        pharmacy_id = validate_pharmacy_id(pharmacy_id)
        items = validate_lookup_items(items)
        now = self._clock()

        inventory = self._source.fetch_inventory(pharmacy_id)
        product_names: dict[str, str] = {}
        for item in items:
            if item.product_name:
                product_names[item.identifier] = item.product_name
                continue
            owned = next(
                (line for line in inventory if identifiers_match(line.identifier, item.identifier)),
                None,
            )
            if owned is not None:
                product_names[item.identifier] = owned.product_name

        observations = fetch_all_observations(
            self._source,
            identifiers=[item.identifier for item in items],
            mode=MatchMode.EXACT,
            batch_size=self._settings.observation_batch_size,
        )

        return build_distributor_suggestions(
            items,
            observations_frame(observations),
            generated_at=now,
            product_names=product_names,
            directory=self._directory(),
            policy=self._settings.recommendation_price_policy,
        )
