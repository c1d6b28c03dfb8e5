"""Identifier normalization and record cleaning at the data-access boundary.

This module handles:
- NDC canonicalization for comparison (delimiters stripped, 5-4-2 padding)
- Exact and search-mode identifier matching
- Mapping the inconsistent field names of extracted return-report lines
  onto one observation schema
- Inventory, package-item and directory exports
- Fuzzy distributor name matching
"""

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

import polars as pl
from thefuzz import fuzz  # type: ignore[import-untyped]

from returns_optimizer.models import MatchMode, PriceObservation

logger = logging.getLogger(__name__)

DELIMITER_PATTERN = re.compile(r"[\s\-./]+")

# Segment widths of the 11-digit (5-4-2) NDC layout
SEGMENT_WIDTHS = (5, 4, 2)

# Field-name variants emitted by the report extraction pipeline, in priority order
IDENTIFIER_FIELDS = ("ndcCode", "ndc", "NDC", "identifier")
DISTRIBUTOR_FIELDS = (
    "reverseDistributor",
    "distributor_name",
    "distributorName",
    "distributor",
)
FULL_FIELDS = ("full", "full_units", "fullUnits")
PARTIAL_FIELDS = ("partial", "partial_units", "partialUnits")
PRICE_FIELDS = ("pricePerUnit", "price_per_unit")
CREDIT_FIELDS = ("creditAmount", "credit_amount")
QUANTITY_FIELDS = ("quantity",)
# observed_at falls back: report date -> upload date -> creation date
DATE_FIELDS = (
    "report_date",
    "reportDate",
    "uploaded_at",
    "uploadedAt",
    "upload_date",
    "created_at",
    "createdAt",
)

OBSERVATION_SCHEMA = {
    "identifier": pl.String,
    "identifier_normalized": pl.String,
    "distributor_name": pl.String,
    "full_units": pl.Int64,
    "partial_units": pl.Int64,
    "price_per_unit": pl.Float64,
    "observed_at": pl.Date,
}

INVENTORY_COLUMN_MAP = {
    "ndc": "identifier",
    "NDC": "identifier",
    "ndcCode": "identifier",
    "productName": "product_name",
    "Product Name": "product_name",
    "fullUnits": "full_units",
    "full": "full_units",
    "partialUnits": "partial_units",
    "partial": "partial_units",
    "added_by": "pharmacy_id",
    "pharmacyId": "pharmacy_id",
}

PACKAGE_ITEM_COLUMN_MAP = {
    "ndc": "identifier",
    "NDC": "identifier",
    "full": "full_units",
    "partial": "partial_units",
    "pharmacyId": "pharmacy_id",
}

DISTRIBUTOR_COLUMN_MAP = {
    "contactEmail": "contact_email",
    "contactPhone": "contact_phone",
    "feeRates": "fee_rates",
    "isActive": "is_active",
}

DOCUMENT_COLUMN_MAP = {
    "reportDate": "report_date",
    "pharmacyId": "pharmacy_id",
    "distributorName": "distributor_name",
    "reverseDistributor": "distributor_name",
    "reverse_distributor_id": "distributor_id",
    "reverseDistributorId": "distributor_id",
}


def normalize_identifier(identifier: str | None) -> str:
    """Canonicalize a drug identifier for comparison.

    Handles the common NDC conventions:
    - Dashed 5-4-2: 00456-0460-01 -> 00456046001
    - Dashed 4-4-2 / 5-3-2 / 5-4-1: segments padded to 5-4-2
    - Undelimited: 0045604601 -> 0045604601 (see identifier_keys)

    The result is used only for comparison, never for storage or display.

    Args:
        identifier: Raw identifier string.

    Returns:
        Canonical form, or empty string for None/blank input.
    """
    if identifier is None:
        return ""

    text = str(identifier).strip().upper()
    if not text:
        return ""

    segments = [s for s in DELIMITER_PATTERN.split(text) if s]
    if len(segments) == 3 and all(
        seg.isdigit() and len(seg) <= width
        for seg, width in zip(segments, SEGMENT_WIDTHS)
    ):
        return "".join(
            seg.zfill(width) for seg, width in zip(segments, SEGMENT_WIDTHS)
        )

    return "".join(segments)


def identifier_keys(identifier: str | None) -> frozenset[str]:
    """Return every canonical key an identifier may compare equal under.

    An undelimited 10-digit NDC does not say which segment lost its leading
    zero, so it expands to all three 11-digit layouts (4-4-2, 5-3-2, 5-4-1).

    Args:
        identifier: Raw identifier string.

    Returns:
        Set of canonical keys (empty for blank input).
    """
    canonical = normalize_identifier(identifier)
    if not canonical:
        return frozenset()

    keys = {canonical}
    if len(canonical) == 10 and canonical.isdigit():
        keys.add("0" + canonical)
        keys.add(canonical[:5] + "0" + canonical[5:])
        keys.add(canonical[:9] + "0" + canonical[9:])
    return frozenset(keys)


def identifiers_match(
    candidate: str,
    target: str,
    mode: MatchMode = MatchMode.EXACT,
) -> bool:
    """Check whether a requested identifier matches a stored one.

    Args:
        candidate: Identifier from the caller (inventory line or search term).
        target: Identifier from a price observation.
        mode: EXACT requires canonical equality; SEARCH also accepts the
            candidate as a substring of the target, tested against both the
            trimmed raw form and the canonical form.

    Returns:
        True when the identifiers match under the given mode.
    """
    candidate_keys = identifier_keys(candidate)
    if not candidate_keys:
        return False

    if candidate_keys & identifier_keys(target):
        return True

    if mode == MatchMode.SEARCH:
        raw_candidate = str(candidate).strip().upper()
        raw_target = str(target).strip().upper()
        if raw_candidate and raw_candidate in raw_target:
            return True
        return normalize_identifier(candidate) in normalize_identifier(target)

    return False


def normalize_identifier_column(
    df: pl.DataFrame,
    identifier_column: str = "identifier",
    output_column: str = "identifier_normalized",
) -> pl.DataFrame:
    """Apply identifier normalization to a DataFrame column.

    Args:
        df: DataFrame with an identifier column.
        identifier_column: Name of the identifier column.
        output_column: Name for the normalized output column.

    Returns:
        DataFrame with normalized identifier column added.
    """
    if identifier_column not in df.columns:
        logger.warning(f"Identifier column '{identifier_column}' not found in DataFrame")
        return df

    return df.with_columns(
        pl.col(identifier_column)
        .cast(pl.String)
        .map_elements(normalize_identifier, return_dtype=pl.String)
        .alias(output_column)
    )


def apply_column_mapping(
    df: pl.DataFrame,
    column_map: dict[str, str],
) -> pl.DataFrame:
    """Rename columns according to a mapping.

    Only renames columns that exist in the DataFrame and whose target name
    is not already taken.

    Args:
        df: DataFrame to rename columns in.
        column_map: Mapping of old names to new names.

    Returns:
        DataFrame with renamed columns.
    """
    renames: dict[str, str] = {}
    for old_name, new_name in column_map.items():
        if old_name not in df.columns or old_name == new_name:
            continue
        if new_name in df.columns or new_name in renames.values():
            continue
        renames[old_name] = new_name
        logger.debug(f"Mapping column: '{old_name}' -> '{new_name}'")

    if renames:
        df = df.rename(renames)
        logger.info(f"Renamed {len(renames)} columns")

    return df


def _coalesce(
    df: pl.DataFrame,
    fields: Iterable[str],
    dtype: type[pl.DataType],
) -> pl.Expr:
    present = [f for f in fields if f in df.columns]
    if not present:
        return pl.lit(None, dtype=dtype)
    return pl.coalesce([pl.col(f).cast(dtype, strict=False) for f in present])


def _date_expr(df: pl.DataFrame, column: str) -> pl.Expr:
    dtype = df.schema[column]
    if dtype == pl.Date:
        return pl.col(column)
    if isinstance(dtype, pl.Datetime):
        return pl.col(column).dt.date()
    return (
        pl.col(column)
        .cast(pl.String)
        .str.slice(0, 10)
        .str.to_date("%Y-%m-%d", strict=False)
    )


def _observed_at(df: pl.DataFrame) -> pl.Expr:
    present = [f for f in DATE_FIELDS if f in df.columns]
    if not present:
        return pl.lit(None, dtype=pl.Date)
    return pl.coalesce([_date_expr(df, f) for f in present])


def normalize_observations(df: pl.DataFrame) -> pl.DataFrame:
    """Map raw return-report lines onto the canonical observation schema.

    Price falls back to creditAmount / quantity when pricePerUnit is
    missing. Rows without identifier, distributor or date, or with a
    non-positive price, are dropped.

    Args:
        df: Raw return-report line DataFrame (one row per report line).

    Returns:
        DataFrame with OBSERVATION_SCHEMA columns.
    """
    logger.info(f"Normalizing {df.height} return-report lines")

    if df.height == 0:
        return pl.DataFrame(schema=OBSERVATION_SCHEMA)

    quantity = _coalesce(df, QUANTITY_FIELDS, pl.Float64).fill_null(1.0)
    credit = _coalesce(df, CREDIT_FIELDS, pl.Float64).fill_null(0.0)
    derived_price = (
        pl.when(quantity > 0)
        .then(credit / pl.max_horizontal(quantity, pl.lit(1.0)))
        .otherwise(0.0)
    )

    result = df.select(
        _coalesce(df, IDENTIFIER_FIELDS, pl.String)
        .str.strip_chars()
        .alias("identifier"),
        _coalesce(df, DISTRIBUTOR_FIELDS, pl.String)
        .str.strip_chars()
        .alias("distributor_name"),
        _coalesce(df, FULL_FIELDS, pl.Int64).fill_null(0).alias("full_units"),
        _coalesce(df, PARTIAL_FIELDS, pl.Int64).fill_null(0).alias("partial_units"),
        pl.coalesce([_coalesce(df, PRICE_FIELDS, pl.Float64), derived_price]).alias(
            "price_per_unit"
        ),
        _observed_at(df).alias("observed_at"),
    )

    valid = result.filter(
        pl.col("identifier").is_not_null()
        & (pl.col("identifier") != "")
        & pl.col("distributor_name").is_not_null()
        & (pl.col("distributor_name") != "")
        & pl.col("observed_at").is_not_null()
        & (pl.col("price_per_unit") > 0)
    )

    dropped = result.height - valid.height
    if dropped:
        logger.warning(
            f"Dropped {dropped} report lines without identifier, distributor, "
            f"date or positive price"
        )

    valid = normalize_identifier_column(valid)
    return valid.select(list(OBSERVATION_SCHEMA)).cast(OBSERVATION_SCHEMA)


def flatten_report_payloads(records: Iterable[Mapping[str, object]]) -> pl.DataFrame:
    """Flatten exported return_reports rows into one row per report line.

    Each record carries a ``data`` payload that is either a single line
    (current format), or holds an ``items`` list or object (legacy format).
    Record-level fields (report/upload/creation dates, distributor name)
    are copied onto each line unless the line sets them itself.

    Args:
        records: Exported rows, each a mapping with a ``data`` payload.

    Returns:
        DataFrame of raw report lines, ready for normalize_observations.
    """
    rows: list[dict[str, object]] = []

    for record in records:
        data = record.get("data")
        if not isinstance(data, Mapping):
            continue

        items_field = data.get("items")
        if isinstance(items_field, list):
            items = [i for i in items_field if isinstance(i, Mapping)]
        elif isinstance(items_field, Mapping):
            items = [items_field]
        elif any(f in data for f in IDENTIFIER_FIELDS):
            items = [data]
        else:
            continue

        context = {
            k: v
            for k, v in record.items()
            if k != "data" and v is not None and not isinstance(v, (Mapping, list))
        }
        document = record.get("uploaded_documents")
        if isinstance(document, Mapping):
            if document.get("report_date"):
                context.setdefault("report_date", document["report_date"])
            distributor = document.get("reverse_distributors")
            if isinstance(distributor, Mapping) and distributor.get("name"):
                context.setdefault("distributor_name", distributor["name"])
        for field_name in DISTRIBUTOR_FIELDS:
            if field_name in data and not isinstance(data[field_name], Mapping):
                context.setdefault(field_name, data[field_name])

        for item in items:
            row = dict(context)
            row.update({k: v for k, v in item.items() if not isinstance(v, (Mapping, list))})
            rows.append(row)

    if not rows:
        return pl.DataFrame()

    logger.info(f"Flattened {len(rows)} report lines from payload records")
    # Payload values are loosely typed; keep everything as text until normalized
    return pl.DataFrame(
        [{k: None if v is None else str(v) for k, v in row.items()} for row in rows],
        infer_schema_length=None,
    )


def frame_to_observations(df: pl.DataFrame) -> list[PriceObservation]:
    """Convert a canonical observation frame into typed records."""
    return [
        PriceObservation(
            identifier=row["identifier"],
            distributor_name=row["distributor_name"],
            full_units=int(row["full_units"]),
            partial_units=int(row["partial_units"]),
            price_per_unit=Decimal(str(row["price_per_unit"])),
            observed_at=row["observed_at"],
        )
        for row in df.iter_rows(named=True)
    ]


def observations_to_frame(observations: Iterable[PriceObservation]) -> pl.DataFrame:
    """Build a canonical observation frame from typed records."""
    rows = [
        {
            "identifier": o.identifier,
            "identifier_normalized": normalize_identifier(o.identifier),
            "distributor_name": o.distributor_name.strip(),
            "full_units": o.full_units,
            "partial_units": o.partial_units,
            "price_per_unit": float(o.price_per_unit),
            "observed_at": o.observed_at,
        }
        for o in observations
    ]
    return pl.DataFrame(rows, schema=OBSERVATION_SCHEMA)


def normalize_inventory(df: pl.DataFrame) -> pl.DataFrame:
    """Normalize a product-list export to the inventory schema.

    Args:
        df: Raw inventory DataFrame.

    Returns:
        DataFrame with id, pharmacy_id, identifier, identifier_normalized,
        product_name, full_units and partial_units columns.
    """
    logger.info(f"Normalizing inventory with {df.height} rows")

    df = apply_column_mapping(df, INVENTORY_COLUMN_MAP)
    defaults: dict[str, pl.Expr] = {
        "id": pl.lit(""),
        "pharmacy_id": pl.lit(""),
        "product_name": pl.lit(None, dtype=pl.String),
        "full_units": pl.lit(0),
        "partial_units": pl.lit(0),
    }
    missing = [expr.alias(name) for name, expr in defaults.items() if name not in df.columns]
    if missing:
        df = df.with_columns(missing)

    df = df.with_columns(
        pl.col("id").cast(pl.String).fill_null(""),
        pl.col("pharmacy_id").cast(pl.String).fill_null(""),
        pl.col("identifier").cast(pl.String).str.strip_chars(),
        pl.col("product_name").cast(pl.String),
        pl.col("full_units").cast(pl.Int64, strict=False).fill_null(0),
        pl.col("partial_units").cast(pl.Int64, strict=False).fill_null(0),
    ).filter(pl.col("identifier").is_not_null() & (pl.col("identifier") != ""))

    df = normalize_identifier_column(df)
    return df.with_columns(
        pl.col("product_name").fill_null(
            pl.concat_str(pl.lit("Product "), pl.col("identifier"))
        )
    )


def normalize_package_items(df: pl.DataFrame) -> pl.DataFrame:
    """Normalize a package-item export (items joined with their package).

    Expects one row per package item with the owning package's pharmacy id
    and a ``status`` flag that is true once the package has been delivered.

    Args:
        df: Raw package-item DataFrame.

    Returns:
        DataFrame with pharmacy_id, identifier, identifier_normalized,
        full_units, partial_units and delivered columns.
    """
    df = apply_column_mapping(df, PACKAGE_ITEM_COLUMN_MAP)
    if "status" in df.columns and "delivered" not in df.columns:
        df = df.rename({"status": "delivered"})
    if "delivered" not in df.columns:
        df = df.with_columns(pl.lit(False).alias("delivered"))

    df = df.with_columns(
        pl.col("pharmacy_id").cast(pl.String),
        pl.col("identifier").cast(pl.String).str.strip_chars(),
        pl.col("full_units").cast(pl.Int64, strict=False).fill_null(0),
        pl.col("partial_units").cast(pl.Int64, strict=False).fill_null(0),
        pl.col("delivered")
        .cast(pl.String)
        .str.to_lowercase()
        .is_in(["true", "1", "yes", "delivered"])
        .alias("delivered"),
    )
    return normalize_identifier_column(df)


def normalize_distributors(df: pl.DataFrame) -> pl.DataFrame:
    """Normalize a reverse-distributor directory export."""
    df = apply_column_mapping(df, DISTRIBUTOR_COLUMN_MAP)
    if "is_active" in df.columns:
        df = df.with_columns(
            pl.col("is_active")
            .cast(pl.String)
            .str.to_lowercase()
            .is_in(["true", "1", "yes"])
            .alias("is_active")
        )
    else:
        df = df.with_columns(pl.lit(True).alias("is_active"))
    return df.with_columns(pl.col("name").cast(pl.String).str.strip_chars())


def normalize_documents(df: pl.DataFrame) -> pl.DataFrame:
    """Normalize an uploaded-document export (pharmacy, distributor, date).

    The distributor is given by directory id (``reverse_distributor_id``),
    by name, or both; whichever column is absent is added as nulls.
    """
    df = apply_column_mapping(df, DOCUMENT_COLUMN_MAP)
    for column in ("distributor_id", "distributor_name"):
        if column not in df.columns:
            df = df.with_columns(pl.lit(None, dtype=pl.String).alias(column))
    return df.with_columns(
        pl.col("pharmacy_id").cast(pl.String),
        pl.col("distributor_id").cast(pl.String).str.strip_chars(),
        pl.col("distributor_name").cast(pl.String).str.strip_chars(),
        _date_expr(df, "report_date").alias("report_date"),
    ).filter(pl.col("report_date").is_not_null())


def fuzzy_match_distributor(
    name: str,
    candidates: list[str],
    threshold: int = 85,
) -> str | None:
    """Find the best fuzzy match for a distributor name.

    Report extraction spells distributor names inconsistently
    ("Return Solutions, Inc." vs "RETURN SOLUTIONS INC"), so token order
    and punctuation are ignored.

    Args:
        name: Distributor name as extracted from a report.
        candidates: Directory names to match against.
        threshold: Minimum similarity score (0-100).

    Returns:
        Best matching candidate name, or None if no match above threshold.
    """
    if not name or not candidates:
        return None

    best_match = None
    best_score = 0

    name_upper = name.upper()
    for candidate in candidates:
        if candidate is None:
            continue
        score = fuzz.token_sort_ratio(name_upper, candidate.upper())
        if score > best_score and score >= threshold:
            best_score = score
            best_match = candidate

    if best_match:
        logger.debug(f"Fuzzy match '{name}' -> '{best_match}' (score: {best_score})")

    return best_match


def latest_report_dates(
    documents_df: pl.DataFrame,
    pharmacy_id: str,
    distributor_names: Mapping[str, str] | None = None,
) -> dict[str, date]:
    """Most recent report date per distributor for one pharmacy.

    Args:
        documents_df: Output of normalize_documents().
        pharmacy_id: Pharmacy whose documents are considered.
        distributor_names: Directory name per distributor id. A document's
            id resolves through it first, then its own name column is used.

    Returns:
        Mapping of distributor name to latest report date.
    """
    if documents_df.height == 0:
        return {}

    resolved = pl.col("distributor_name")
    if distributor_names:
        resolved = pl.coalesce(
            pl.col("distributor_id").replace_strict(
                dict(distributor_names),
                default=pl.lit(None, dtype=pl.String),
                return_dtype=pl.String,
            ),
            pl.col("distributor_name"),
        )

    documents = documents_df.filter(pl.col("pharmacy_id") == pharmacy_id).with_columns(
        resolved.alias("distributor_name")
    )
    unresolved = documents.filter(pl.col("distributor_name").is_null()).height
    if unresolved:
        logger.warning(
            f"{unresolved} documents of pharmacy {pharmacy_id} name no known distributor"
        )

    latest = (
        documents.drop_nulls("distributor_name")
        .group_by("distributor_name")
        .agg(pl.col("report_date").max())
    )
    return {
        row["distributor_name"]: row["report_date"]
        for row in latest.iter_rows(named=True)
    }
