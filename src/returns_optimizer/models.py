"""Data models for the Return Optimization Engine.

Every record is immutable and rebuilt per request; nothing here is persisted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

ZERO = Decimal("0")
CENT = Decimal("0.01")


class UnitType(str, Enum):
    """Unit-accounting mode of an inventory line or observation."""

    FULL = "FULL"
    PARTIAL = "PARTIAL"


class MatchMode(str, Enum):
    """Identifier comparison mode."""

    EXACT = "exact"
    SEARCH = "search"


class PricePolicy(str, Enum):
    """How matching observations collapse into one distributor price."""

    LATEST = "latest"
    AVERAGE = "average"


def unit_type_of(full_units: int, partial_units: int) -> UnitType | None:
    """Derive the unit type from a full/partial split.

    Returns:
        FULL or PARTIAL when exactly one side is positive, else None
        (no requirement can be derived).
    """
    if partial_units == 0 and full_units > 0:
        return UnitType.FULL
    if full_units == 0 and partial_units > 0:
        return UnitType.PARTIAL
    return None


def to_money(value: Decimal) -> float:
    """Round a Decimal to cents and convert for JSON output."""
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class InventoryLine:
    """A product in a pharmacy's current inventory.

    Attributes:
        id: Inventory record id (empty for synthetic search-mode lines).
        identifier: Drug identifier (NDC) as stored.
        product_name: Display name.
        full_units: Count of full (sealed) units.
        partial_units: Count of partial (opened) units.
    """

    id: str
    identifier: str
    product_name: str
    full_units: int = 0
    partial_units: int = 0

    @property
    def quantity(self) -> int:
        return self.full_units + self.partial_units

    @property
    def unit_type(self) -> UnitType | None:
        return unit_type_of(self.full_units, self.partial_units)


@dataclass(frozen=True)
class PriceObservation:
    """Historical per-unit credit paid by a distributor for an identifier.

    Observations come from every pharmacy's return reports and carry no
    pharmacy identity.

    Attributes:
        identifier: Drug identifier as extracted from the report.
        distributor_name: Reverse distributor that paid the credit.
        full_units: Full units on the report line.
        partial_units: Partial units on the report line.
        price_per_unit: Credit per unit.
        observed_at: Report date (falling back to upload, then creation date).
    """

    identifier: str
    distributor_name: str
    full_units: int
    partial_units: int
    price_per_unit: Decimal
    observed_at: date

    @property
    def unit_type(self) -> UnitType | None:
        return unit_type_of(self.full_units, self.partial_units)


@dataclass(frozen=True)
class Distributor:
    """Reverse distributor directory entry (display enrichment only)."""

    id: str
    name: str
    code: str = ""
    contact_email: str | None = None
    contact_phone: str | None = None
    location: str | None = None
    fee_rates: dict[str, object] | None = field(default=None, compare=False)
    is_active: bool = True

    def to_contact_dict(self) -> dict[str, object]:
        return {
            "email": self.contact_email,
            "phone": self.contact_phone,
            "location": self.location,
            "feeRates": self.fee_rates,
        }


@dataclass(frozen=True)
class DistributorPrice:
    """Selected price of one distributor for one inventory line."""

    distributor_name: str
    price_per_unit: Decimal
    observed_at: date


@dataclass(frozen=True)
class LinePricing:
    """An inventory line together with its per-distributor prices."""

    line: InventoryLine
    prices: tuple[DistributorPrice, ...] = ()


@dataclass(frozen=True)
class DistributorOption:
    """Alternative distributor for a recommendation.

    Attributes:
        name: Distributor name.
        price: Selected per-unit price.
        difference: price minus the recommended price (never positive).
        available: Availability signal (informational only).
    """

    name: str
    price: Decimal
    difference: Decimal
    available: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "price": float(self.price),
            "difference": float(self.difference),
            "available": self.available,
        }


@dataclass(frozen=True)
class Recommendation:
    """Best-paying distributor for one inventory line.

    An empty recommended_distributor means no pricing data exists for the
    line; callers treat it as "no data", not as a failure.
    """

    identifier: str
    product_name: str
    full_units: int
    partial_units: int
    quantity: int
    recommended_distributor: str = ""
    expected_price: Decimal = ZERO
    worst_price: Decimal = ZERO
    alternatives: tuple[DistributorOption, ...] = ()
    savings: Decimal = ZERO
    available: bool = True
    product_id: str = ""

    @property
    def has_pricing(self) -> bool:
        return self.recommended_distributor != ""

    def options(self) -> list[tuple[str, Decimal]]:
        """All priced options (recommended first) as (name, price) pairs."""
        if not self.has_pricing:
            return []
        return [(self.recommended_distributor, self.expected_price)] + [
            (alt.name, alt.price) for alt in self.alternatives
        ]

    def price_for(self, distributor_name: str) -> Decimal | None:
        for name, price in self.options():
            if name == distributor_name:
                return price
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "ndc": self.identifier,
            "productName": self.product_name,
            "full": self.full_units,
            "partial": self.partial_units,
            "quantity": self.quantity,
            "recommendedDistributor": self.recommended_distributor,
            "expectedPrice": float(self.expected_price),
            "worstPrice": float(self.worst_price),
            "available": self.available,
            "alternativeDistributors": [a.to_dict() for a in self.alternatives],
            "savings": to_money(self.savings),
        }


@dataclass(frozen=True)
class DistributorUsage:
    """How many active distributors the pharmacy used inside the window."""

    used_this_month: int = 0
    total_distributors: int = 0
    still_available: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "usedThisMonth": self.used_this_month,
            "totalDistributors": self.total_distributors,
            "stillAvailable": self.still_available,
        }


@dataclass(frozen=True)
class EarningsComparison:
    """Single-distributor vs best-per-product earnings."""

    single_distributor_strategy: Decimal = ZERO
    multiple_distributors_strategy: Decimal = ZERO
    potential_additional_earnings: Decimal = ZERO
    best_single_distributor: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "singleDistributorStrategy": to_money(self.single_distributor_strategy),
            "multipleDistributorsStrategy": to_money(
                self.multiple_distributors_strategy
            ),
            "potentialAdditionalEarnings": to_money(
                self.potential_additional_earnings
            ),
            "bestSingleDistributor": self.best_single_distributor,
        }


@dataclass(frozen=True)
class OptimizationResult:
    """Response of the recommendations operation."""

    recommendations: tuple[Recommendation, ...]
    total_potential_savings: Decimal
    distributor_usage: DistributorUsage
    earnings_comparison: EarningsComparison
    generated_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "totalPotentialSavings": to_money(self.total_potential_savings),
            "generatedAt": self.generated_at.isoformat(),
            "distributorUsage": self.distributor_usage.to_dict(),
            "earningsComparison": self.earnings_comparison.to_dict(),
        }


@dataclass(frozen=True)
class PackageLine:
    """One product inside a proposed shipment package."""

    identifier: str
    product_id: str
    product_name: str
    full_units: int
    partial_units: int
    price_per_unit: Decimal

    @property
    def quantity(self) -> int:
        return self.full_units + self.partial_units

    @property
    def total_value(self) -> Decimal:
        return self.price_per_unit * self.quantity

    def to_dict(self) -> dict[str, object]:
        return {
            "ndc": self.identifier,
            "productId": self.product_id,
            "productName": self.product_name,
            "full": self.full_units,
            "partial": self.partial_units,
            "pricePerUnit": to_money(self.price_per_unit),
            "totalValue": to_money(self.total_value),
        }


@dataclass(frozen=True)
class Package:
    """Proposed shipment of inventory lines to one distributor."""

    distributor_name: str
    lines: tuple[PackageLine, ...]
    distributor: Distributor | None = None

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total_estimated_value(self) -> Decimal:
        return sum((line.total_value for line in self.lines), ZERO)

    @property
    def average_price_per_unit(self) -> Decimal:
        if self.total_items == 0:
            return ZERO
        return self.total_estimated_value / self.total_items

    def to_dict(self) -> dict[str, object]:
        return {
            "distributorName": self.distributor_name,
            "distributorId": self.distributor.id if self.distributor else None,
            "distributorContact": (
                self.distributor.to_contact_dict() if self.distributor else None
            ),
            "products": [line.to_dict() for line in self.lines],
            "totalItems": self.total_items,
            "totalEstimatedValue": to_money(self.total_estimated_value),
            "averagePricePerUnit": to_money(self.average_price_per_unit),
        }


@dataclass(frozen=True)
class PackageSummary:
    """Pricing coverage of a package-building run."""

    products_with_pricing: int = 0
    products_without_pricing: int = 0
    distributors_used: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "productsWithPricing": self.products_with_pricing,
            "productsWithoutPricing": self.products_without_pricing,
            "distributorsUsed": self.distributors_used,
        }


@dataclass(frozen=True)
class PackageResult:
    """Response of the package operations."""

    packages: tuple[Package, ...]
    total_products: int
    summary: PackageSummary
    generated_at: datetime

    @property
    def total_packages(self) -> int:
        return len(self.packages)

    @property
    def total_estimated_value(self) -> Decimal:
        return sum((p.total_estimated_value for p in self.packages), ZERO)

    def to_dict(self) -> dict[str, object]:
        return {
            "packages": [p.to_dict() for p in self.packages],
            "totalProducts": self.total_products,
            "totalPackages": self.total_packages,
            "totalEstimatedValue": to_money(self.total_estimated_value),
            "generatedAt": self.generated_at.isoformat(),
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True)
class LookupItem:
    """Explicit lookup request line for distributor suggestions."""

    identifier: str
    full_units: int = 0
    partial_units: int = 0
    product_name: str | None = None

    @property
    def quantity(self) -> int:
        return self.full_units + self.partial_units


@dataclass(frozen=True)
class SuggestedItem:
    """Pricing of one requested item at one distributor."""

    identifier: str
    product_name: str
    full_units: int
    partial_units: int
    full_price: Decimal = ZERO
    partial_price: Decimal = ZERO

    @property
    def total_value(self) -> Decimal:
        return self.full_units * self.full_price + self.partial_units * self.partial_price

    def to_dict(self) -> dict[str, object]:
        return {
            "ndc": self.identifier,
            "productName": self.product_name,
            "full": self.full_units,
            "partial": self.partial_units,
            "fullPricePerUnit": to_money(self.full_price),
            "partialPricePerUnit": to_money(self.partial_price),
            "totalEstimatedValue": to_money(self.total_value),
        }


@dataclass(frozen=True)
class DistributorSuggestion:
    """A distributor's offer for the whole set of requested items."""

    distributor_name: str
    items: tuple[SuggestedItem, ...]
    distributor: Distributor | None = None
    recommended: bool = False

    @property
    def total_items(self) -> int:
        return sum(item.full_units + item.partial_units for item in self.items)

    @property
    def total_estimated_value(self) -> Decimal:
        return sum((item.total_value for item in self.items), ZERO)

    @property
    def priced_items(self) -> int:
        return sum(
            1 for item in self.items if item.full_price > 0 or item.partial_price > 0
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "distributorName": self.distributor_name,
            "distributorId": self.distributor.id if self.distributor else None,
            "distributorContact": (
                self.distributor.to_contact_dict() if self.distributor else None
            ),
            "products": [item.to_dict() for item in self.items],
            "totalItems": self.total_items,
            "totalEstimatedValue": to_money(self.total_estimated_value),
            "ndcsCount": self.priced_items,
            "recommended": self.recommended,
        }


@dataclass(frozen=True)
class SuggestionResult:
    """Response of the distributor suggestions operation."""

    distributors: tuple[DistributorSuggestion, ...]
    items_without_pricing: tuple[SuggestedItem, ...]
    total_items: int
    generated_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "distributors": [d.to_dict() for d in self.distributors],
            "ndcsWithoutDistributors": [
                {
                    "ndc": item.identifier,
                    "productName": item.product_name,
                    "full": item.full_units,
                    "partial": item.partial_units,
                    "reason": "No distributor found offering returns for this NDC",
                }
                for item in self.items_without_pricing
            ],
            "totalItems": self.total_items,
            "generatedAt": self.generated_at.isoformat(),
        }
