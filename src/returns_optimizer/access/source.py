"""Read-only data-access collaborator consumed by the engine."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date

from returns_optimizer.models import (
    Distributor,
    InventoryLine,
    MatchMode,
    PriceObservation,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


class ReturnsDataSource(ABC):
    """Backing store queries the engine depends on.

    Implementations normalize their own record shapes; the engine only ever
    sees InventoryLine, PriceObservation and Distributor records. A store
    that cannot be reached raises ConfigurationError.
    """

    @abstractmethod
    def fetch_inventory(self, pharmacy_id: str) -> list[InventoryLine]:
        """Current product list of a pharmacy (empty if none)."""

    @abstractmethod
    def fetch_observations(
        self,
        offset: int,
        limit: int,
        identifiers: Sequence[str] | None = None,
        mode: MatchMode = MatchMode.EXACT,
    ) -> list[PriceObservation]:
        """One page of price observations, newest observation first.

        Args:
            offset: Rows to skip.
            limit: Maximum rows to return.
            identifiers: Optional identifiers to restrict the read to.
            mode: How identifiers are compared (exact or containment).
        """

    @abstractmethod
    def fetch_committed_quantities(self, pharmacy_id: str) -> dict[str, int]:
        """Units already in the pharmacy's undelivered packages.

        Returns:
            Mapping of normalized identifier to committed unit count.
        """

    @abstractmethod
    def fetch_distributors(self) -> list[Distributor]:
        """Reverse distributor directory."""

    @abstractmethod
    def fetch_last_report_dates(self, pharmacy_id: str) -> dict[str, date]:
        """Most recent report date per distributor name for a pharmacy."""


def fetch_all_observations(
    source: ReturnsDataSource,
    identifiers: Sequence[str] | None = None,
    mode: MatchMode = MatchMode.EXACT,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[PriceObservation]:
    """Read every matching observation in fixed-size batches.

    The store caps single reads, so pages are concatenated until a short
    page is returned. The first failing read propagates; nothing is retried.

    Args:
        source: Data-access collaborator.
        identifiers: Optional identifiers to restrict the read to.
        mode: How identifiers are compared.
        batch_size: Page size.

    Returns:
        All observations, in the store's newest-first order.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    observations: list[PriceObservation] = []
    offset = 0
    batch_number = 0

    while True:
        batch_number += 1
        try:
            batch = source.fetch_observations(offset, batch_size, identifiers, mode)
        except Exception as e:
            logger.error(f"Observation read failed on batch {batch_number}: {e}")
            raise

        observations.extend(batch)
        if len(batch) < batch_size:
            break
        offset += batch_size

    logger.info(
        f"Fetched {len(observations):,} price observations in {batch_number} batches"
    )
    return observations
