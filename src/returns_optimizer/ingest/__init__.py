"""Data ingestion module for the Returns Optimizer.

This module handles:
- Loading store exports (CSV, Excel, JSON report payloads)
- Validating export schemas and caller requests
- Normalizing identifiers and report-line field variants
"""

from returns_optimizer.ingest.loaders import (
    detect_file_type,
    find_export,
    load_csv_to_polars,
    load_excel_to_polars,
    load_file_auto,
    load_report_json,
)
from returns_optimizer.ingest.normalizers import (
    flatten_report_payloads,
    fuzzy_match_distributor,
    identifier_keys,
    identifiers_match,
    normalize_distributors,
    normalize_documents,
    normalize_identifier,
    normalize_identifier_column,
    normalize_inventory,
    normalize_observations,
    normalize_package_items,
)
from returns_optimizer.ingest.validators import (
    ValidationResult,
    validate_distributor_schema,
    validate_document_schema,
    validate_identifier,
    validate_identifiers,
    validate_inventory_schema,
    validate_lookup_items,
    validate_observation_schema,
    validate_package_items_schema,
    validate_pharmacy_id,
    validate_unit_counts,
)

__all__ = [
    # Loaders
    "load_excel_to_polars",
    "load_csv_to_polars",
    "load_report_json",
    "load_file_auto",
    "detect_file_type",
    "find_export",
    # Validators
    "ValidationResult",
    "validate_inventory_schema",
    "validate_observation_schema",
    "validate_package_items_schema",
    "validate_distributor_schema",
    "validate_document_schema",
    "validate_pharmacy_id",
    "validate_identifier",
    "validate_identifiers",
    "validate_unit_counts",
    "validate_lookup_items",
    # Normalizers
    "normalize_identifier",
    "normalize_identifier_column",
    "identifier_keys",
    "identifiers_match",
    "normalize_observations",
    "flatten_report_payloads",
    "normalize_inventory",
    "normalize_package_items",
    "normalize_distributors",
    "normalize_documents",
    "fuzzy_match_distributor",
]
