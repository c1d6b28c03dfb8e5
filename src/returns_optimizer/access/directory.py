"""Distributor directory lookups for display enrichment."""

import logging
from collections.abc import Iterable

from returns_optimizer.ingest.normalizers import fuzzy_match_distributor
from returns_optimizer.models import Distributor

logger = logging.getLogger(__name__)


class DistributorDirectory:
    """Resolves distributor names from reports to directory entries.

    Never used for matching or pricing, only to attach contact details.
    """

    def __init__(
        self,
        distributors: Iterable[Distributor],
        match_threshold: int = 85,
    ) -> None:
        self._distributors = list(distributors)
        self._by_name = {d.name.casefold(): d for d in self._distributors}
        self._match_threshold = match_threshold

    def __len__(self) -> int:
        return len(self._distributors)

    @property
    def active(self) -> list[Distributor]:
        return [d for d in self._distributors if d.is_active]

    def lookup(self, name: str) -> Distributor | None:
        """Find the directory entry for a distributor name.

        Tries a case-insensitive exact match first, then a fuzzy match.

        Args:
            name: Distributor name as it appears in observations.

        Returns:
            Directory entry, or None if nothing is close enough.
        """
        if not name:
            return None

        exact = self._by_name.get(name.strip().casefold())
        if exact is not None:
            return exact

        matched = fuzzy_match_distributor(
            name,
            [d.name for d in self._distributors],
            threshold=self._match_threshold,
        )
        if matched is None:
            logger.debug(f"No directory entry for distributor '{name}'")
            return None
        return self._by_name[matched.casefold()]
