"""Grouping recommended lines into per-distributor shipment packages."""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

from returns_optimizer.access.directory import DistributorDirectory
from returns_optimizer.ingest.normalizers import identifier_keys
from returns_optimizer.models import (
    Package,
    PackageLine,
    PackageResult,
    PackageSummary,
    Recommendation,
)

logger = logging.getLogger(__name__)


def _commitment_keys(identifier: str, remaining: Mapping[str, int]) -> list[str]:
    """Committed identifiers sharing a key with ``identifier``, in sorted order."""
    keys = identifier_keys(identifier)
    return [
        committed for committed in sorted(remaining) if identifier_keys(committed) & keys
    ]


def net_units(
    full_units: int,
    partial_units: int,
    committed: int,
) -> tuple[int, int, int]:
    """Subtract committed units, full units first.

    Returns:
        Tuple of (net full, net partial, commitment left over).
    """
    take_full = min(full_units, committed)
    committed -= take_full
    take_partial = min(partial_units, committed)
    committed -= take_partial
    return full_units - take_full, partial_units - take_partial, committed


def package_lines(
    recommendations: Sequence[Recommendation],
    committed: Mapping[str, int] | None = None,
) -> list[tuple[str, PackageLine]]:
    """Net package lines per recommended distributor.

    Commitments are keyed by normalized identifier and consumed across
    recommendations sharing an identifier, in input order. Lines whose net
    quantity drops to zero are left out.

    Args:
        recommendations: Recommendations in inventory order.
        committed: Units already in open packages per normalized identifier.

    Returns:
        List of (distributor name, line) pairs in input order.
    """
    remaining = dict(committed or {})
    lines: list[tuple[str, PackageLine]] = []

    for rec in recommendations:
        if not rec.has_pricing:
            continue

        full, partial = rec.full_units, rec.partial_units
        if full + partial == 0:
            # Identifier-only lookups carry no unit counts; ship one unit each
            full = rec.quantity
        matched = _commitment_keys(rec.identifier, remaining)
        for key in matched:
            full, partial, remaining[key] = net_units(full, partial, remaining[key])
        if matched:
            logger.debug(
                f"{rec.identifier}: net {full} full / {partial} partial after "
                f"open package commitments"
            )

        if full + partial <= 0:
            continue

        lines.append(
            (
                rec.recommended_distributor,
                PackageLine(
                    identifier=rec.identifier,
                    product_id=rec.product_id,
                    product_name=rec.product_name,
                    full_units=full,
                    partial_units=partial,
                    price_per_unit=rec.expected_price,
                ),
            )
        )

    return lines


def build_packages(
    recommendations: Sequence[Recommendation],
    generated_at: datetime,
    committed: Mapping[str, int] | None = None,
    directory: DistributorDirectory | None = None,
) -> PackageResult:
    """Group recommendations into packages, one per recommended distributor.

    Args:
        recommendations: Recommendations in inventory order.
        generated_at: Timestamp stamped on the result.
        committed: Units already in open packages per normalized identifier.
        directory: Optional directory for contact enrichment.

    Returns:
        PackageResult with packages sorted by total estimated value
        descending (ties by distributor name).
    """
    grouped: dict[str, list[PackageLine]] = {}
    for distributor_name, line in package_lines(recommendations, committed):
        grouped.setdefault(distributor_name, []).append(line)

    packages = [
        Package(
            distributor_name=name,
            lines=tuple(lines),
            distributor=directory.lookup(name) if directory else None,
        )
        for name, lines in grouped.items()
        if lines
    ]
    packages.sort(key=lambda p: (-p.total_estimated_value, p.distributor_name))

    with_pricing = sum(1 for r in recommendations if r.has_pricing)
    summary = PackageSummary(
        products_with_pricing=with_pricing,
        products_without_pricing=len(recommendations) - with_pricing,
        distributors_used=len(packages),
    )

    logger.info(
        f"Built {len(packages)} packages from {len(recommendations)} products "
        f"({with_pricing} with pricing)"
    )

    return PackageResult(
        packages=tuple(packages),
        total_products=len(recommendations),
        summary=summary,
        generated_at=generated_at,
    )
