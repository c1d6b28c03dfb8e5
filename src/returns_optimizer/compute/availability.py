"""Distributor availability signal and monthly usage counts.

A distributor the pharmacy already sent a report to inside the window is
considered used for the period. The signal is informational only and never
changes which distributor is recommended.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta

from returns_optimizer.access.directory import DistributorDirectory
from returns_optimizer.models import DistributorUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityPolicy:
    """Per-request availability rule.

    Attributes:
        enabled: When False every distributor is reported available.
        window_days: Length of the usage window ending today.
    """

    enabled: bool = False
    window_days: int = 30

    def window_start(self, today: date) -> date:
        return today - timedelta(days=self.window_days)

    def is_available(self, last_report: date | None, today: date) -> bool:
        """Available iff the last report is absent or older than the window."""
        if not self.enabled or last_report is None:
            return True
        return last_report < self.window_start(today)

    def evaluate(
        self,
        distributor_names: Iterable[str],
        last_report_dates: Mapping[str, date],
        today: date,
        directory: DistributorDirectory | None = None,
    ) -> dict[str, bool]:
        """Availability flag for each distributor name.

        Names resolve through the directory when one is given, so a report
        filed under a spelling variant still marks the distributor as used.

        Args:
            distributor_names: Names appearing in recommendations.
            last_report_dates: Latest report date per distributor name.
            today: Reference date for the window.
            directory: Optional directory for resolving name variants.

        Returns:
            Mapping of name to availability flag.
        """

        def identity(name: str) -> str:
            entry = directory.lookup(name) if directory is not None else None
            return entry.id if entry is not None else name.strip().casefold()

        latest: dict[str, date] = {}
        for name, reported_on in last_report_dates.items():
            key = identity(name)
            if key not in latest or reported_on > latest[key]:
                latest[key] = reported_on

        flags = {
            name: self.is_available(latest.get(identity(name)), today)
            for name in distributor_names
        }
        if self.enabled:
            used = sorted(name for name, available in flags.items() if not available)
            logger.info(
                f"Availability window {self.window_days}d: "
                f"{len(used)} distributors already used"
            )
        return flags


def distributor_usage(
    directory: DistributorDirectory,
    last_report_dates: Mapping[str, date],
    today: date,
    window_days: int = 30,
) -> DistributorUsage:
    """Count active distributors the pharmacy reported to inside the window.

    Report names are resolved through the directory, so spelling variants
    of one distributor count once.
    """
    active_ids = {d.id for d in directory.active}
    window_start = today - timedelta(days=window_days)

    used_ids: set[str] = set()
    for name, reported_on in last_report_dates.items():
        if reported_on < window_start:
            continue
        entry = directory.lookup(name)
        if entry is not None and entry.id in active_ids:
            used_ids.add(entry.id)

    total = len(active_ids)
    return DistributorUsage(
        used_this_month=len(used_ids),
        total_distributors=total,
        still_available=max(0, total - len(used_ids)),
    )
