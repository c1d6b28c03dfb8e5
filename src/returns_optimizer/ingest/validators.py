"""Schema checks for store exports and validation of caller requests."""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

import polars as pl

from returns_optimizer.errors import ValidationError
from returns_optimizer.ingest.normalizers import (
    CREDIT_FIELDS,
    DATE_FIELDS,
    DISTRIBUTOR_FIELDS,
    IDENTIFIER_FIELDS,
    PRICE_FIELDS,
    normalize_identifier,
)
from returns_optimizer.models import LookupItem

logger = logging.getLogger(__name__)

# Required columns after column mapping
INVENTORY_REQUIRED_COLUMNS = {"identifier", "pharmacy_id"}
INVENTORY_OPTIONAL_COLUMNS = {"id", "product_name", "full_units", "partial_units"}

PACKAGE_ITEM_REQUIRED_COLUMNS = {"pharmacy_id", "identifier", "full_units", "partial_units"}

DISTRIBUTOR_REQUIRED_COLUMNS = {"id", "name"}
DISTRIBUTOR_OPTIONAL_COLUMNS = {"code", "contact_email", "contact_phone", "location"}

DOCUMENT_REQUIRED_COLUMNS = {"pharmacy_id", "report_date"}
# Documents name their distributor by directory id, by name, or both
DOCUMENT_DISTRIBUTOR_COLUMNS = {"distributor_id", "distributor_name"}

# Digits and letters separated by the usual NDC delimiters
IDENTIFIER_PATTERN = re.compile(r"^[0-9A-Za-z]+(?:[\s\-./]+[0-9A-Za-z]+)*$")
MAX_IDENTIFIER_LENGTH = 11


@dataclass
class ValidationResult:
    """Result of a schema validation check.

    Attributes:
        is_valid: Whether the validation passed.
        message: Human-readable description of the result.
        missing_columns: List of required columns that are missing.
        row_count: Number of rows in the validated DataFrame.
        warnings: List of non-fatal issues detected.
    """

    is_valid: bool
    message: str
    missing_columns: list[str] = field(default_factory=list)
    row_count: int = 0
    warnings: list[str] = field(default_factory=list)


def _check_required(
    df: pl.DataFrame,
    required: set[str],
    label: str,
    optional: set[str] | None = None,
) -> ValidationResult:
    columns = set(df.columns)
    missing = required - columns

    if missing:
        return ValidationResult(
            is_valid=False,
            message=f"{label} missing required columns: {sorted(missing)}",
            missing_columns=sorted(missing),
            row_count=df.height,
        )

    warnings = []
    if optional:
        missing_optional = optional - columns
        if missing_optional:
            warnings.append(
                f"{label} missing recommended columns: {sorted(missing_optional)}"
            )

    return ValidationResult(
        is_valid=True,
        message=f"{label} schema valid with {df.height:,} rows",
        row_count=df.height,
        warnings=warnings,
    )


def validate_inventory_schema(df: pl.DataFrame) -> ValidationResult:
    """Validate a normalized inventory export.

    Args:
        df: DataFrame to validate (after normalize_inventory column mapping).

    Returns:
        ValidationResult with status and details.
    """
    result = _check_required(
        df, INVENTORY_REQUIRED_COLUMNS, "Inventory", INVENTORY_OPTIONAL_COLUMNS
    )
    if not result.is_valid or df.height == 0:
        return result

    if {"full_units", "partial_units"} <= set(df.columns):
        full = pl.col("full_units").cast(pl.Int64, strict=False).fill_null(0)
        partial = pl.col("partial_units").cast(pl.Int64, strict=False).fill_null(0)
        mixed = df.filter(
            ((full > 0) & (partial > 0)) | ((full <= 0) & (partial <= 0))
        ).height
        if mixed:
            result.warnings.append(
                f"{mixed} inventory lines do not have exactly one of full/partial "
                "units set; they will be matched without unit-type filtering"
            )

    return result


def validate_observation_schema(df: pl.DataFrame) -> ValidationResult:
    """Validate a raw return-report line export.

    The extraction pipeline names fields inconsistently, so each concern
    only needs one of its known variants.

    Args:
        df: Raw report-line DataFrame.

    Returns:
        ValidationResult with status and details.
    """
    columns = set(df.columns)
    groups = {
        "identifier": IDENTIFIER_FIELDS,
        "distributor": DISTRIBUTOR_FIELDS,
        "price": PRICE_FIELDS + CREDIT_FIELDS,
        "date": DATE_FIELDS,
    }
    missing = [name for name, variants in groups.items() if not columns & set(variants)]

    if missing:
        return ValidationResult(
            is_valid=False,
            message=f"Report lines missing fields for: {missing}",
            missing_columns=missing,
            row_count=df.height,
        )

    warnings = []
    if not columns & set(PRICE_FIELDS):
        warnings.append("No pricePerUnit column; deriving price from creditAmount")

    return ValidationResult(
        is_valid=True,
        message=f"Report lines valid with {df.height:,} rows",
        row_count=df.height,
        warnings=warnings,
    )


def validate_package_items_schema(df: pl.DataFrame) -> ValidationResult:
    """Validate a normalized package-item export."""
    return _check_required(df, PACKAGE_ITEM_REQUIRED_COLUMNS, "Package items")


def validate_distributor_schema(df: pl.DataFrame) -> ValidationResult:
    """Validate a normalized distributor directory export."""
    return _check_required(
        df, DISTRIBUTOR_REQUIRED_COLUMNS, "Distributors", DISTRIBUTOR_OPTIONAL_COLUMNS
    )


def validate_document_schema(df: pl.DataFrame) -> ValidationResult:
    """Validate a normalized uploaded-document export.

    Besides pharmacy and report date, a document needs a distributor id or
    a distributor name.
    """
    result = _check_required(df, DOCUMENT_REQUIRED_COLUMNS, "Documents")
    if result.is_valid and not DOCUMENT_DISTRIBUTOR_COLUMNS & set(df.columns):
        missing = sorted(DOCUMENT_DISTRIBUTOR_COLUMNS)
        return ValidationResult(
            is_valid=False,
            message=f"Documents missing a distributor column, one of: {missing}",
            missing_columns=missing,
            row_count=df.height,
        )
    return result


def validate_pharmacy_id(pharmacy_id: str | None) -> str:
    """Reject a missing pharmacy id.

    Raises:
        ValidationError: If the id is None or blank.
    """
    if pharmacy_id is None or not str(pharmacy_id).strip():
        raise ValidationError("Pharmacy ID is required")
    return str(pharmacy_id).strip()


def validate_identifier(identifier: str | None) -> str:
    """Check that an identifier is well formed.

    Accepts full or partial NDCs: letters and digits, optionally separated
    by dashes, spaces, dots or slashes, at most 11 significant characters.

    Args:
        identifier: Raw identifier from the caller.

    Returns:
        The trimmed identifier.

    Raises:
        ValidationError: If the identifier is blank or malformed.
    """
    text = "" if identifier is None else str(identifier).strip()
    if not text:
        raise ValidationError("Identifier must not be empty")
    if not IDENTIFIER_PATTERN.match(text):
        raise ValidationError(f"Malformed identifier: '{text}'")
    if len(normalize_identifier(text)) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"Identifier '{text}' exceeds {MAX_IDENTIFIER_LENGTH} characters"
        )
    return text


def validate_identifiers(identifiers: Sequence[str] | None) -> list[str]:
    """Validate a list of caller-supplied identifiers.

    Blank entries are ignored (a trailing comma in a query string), but at
    least one identifier must remain.

    Raises:
        ValidationError: If no identifiers remain or any is malformed.
    """
    cleaned = [str(i).strip() for i in (identifiers or []) if str(i).strip()]
    if not cleaned:
        raise ValidationError("At least one valid NDC is required")
    return [validate_identifier(i) for i in cleaned]


def validate_unit_counts(
    counts: Sequence[int] | None,
    expected_length: int,
    label: str,
) -> list[int] | None:
    """Validate per-identifier unit counts aligned with search terms.

    Raises:
        ValidationError: If lengths differ or a count is negative.
    """
    if counts is None:
        return None
    if len(counts) != expected_length:
        raise ValidationError(
            f"{label} array length ({len(counts)}) must match "
            f"NDC array length ({expected_length})"
        )
    values = []
    for value in counts:
        try:
            number = int(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"{label} values must be integers") from e
        if number < 0:
            raise ValidationError(f"{label} values must not be negative")
        values.append(number)
    return values


def validate_lookup_items(items: Sequence[LookupItem] | None) -> list[LookupItem]:
    """Validate an explicit distributor-suggestion request.

    Raises:
        ValidationError: If the list is empty, an identifier is malformed,
            or an item has no positive quantity.
    """
    if not items:
        raise ValidationError(
            "At least one item with NDC and full/partial units is required"
        )

    validated = []
    for position, item in enumerate(items, start=1):
        identifier = validate_identifier(item.identifier)
        if item.full_units < 0 or item.partial_units < 0:
            raise ValidationError(
                f"Item {position} ({identifier}): units must not be negative"
            )
        if item.quantity <= 0:
            raise ValidationError(
                f"Item {position} ({identifier}): at least one of full or "
                "partial must be greater than 0"
            )
        validated.append(
            LookupItem(
                identifier=identifier,
                full_units=item.full_units,
                partial_units=item.partial_units,
                product_name=item.product_name,
            )
        )

    logger.debug(f"Validated {len(validated)} lookup items")
    return validated
